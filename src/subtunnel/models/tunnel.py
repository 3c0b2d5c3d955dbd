"""
Tunnel data model.

A tunnel maps an opaque path token to a local destination port. Routing
produces either a RouteFound with the forwarding target or RouteNotFound.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class TunnelEntry:
    """A registered tunnel: requests under /<token>/ go to <port>."""

    token: str
    port: int

    def to_json(self) -> dict[str, int]:
        """Persisted form: a single-key mapping of token to port."""
        return {self.token: self.port}


@dataclass(frozen=True)
class RouteFound:
    """Routing outcome for a known token."""

    destination_host: str
    destination_port: int
    remainder_path: str

    @property
    def url(self) -> str:
        host, port = self.destination_host, self.destination_port
        return f"http://{host}:{port}{self.remainder_path}"


@dataclass(frozen=True)
class RouteNotFound:
    """Routing outcome for an unknown or malformed subpath."""


RouteResult = RouteFound | RouteNotFound
