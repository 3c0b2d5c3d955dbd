"""
Request routing.

The first path segment selects a tunnel; everything after it, including
the query string, is forwarded to the tunnel's port.

    /ABCDEFGHIJ/foo/bar?x=1  ->  http://127.0.0.1:8080/foo/bar?x=1
"""

from subtunnel.models.tunnel import RouteFound, RouteNotFound, RouteResult
from subtunnel.registry.store import TunnelRegistry
from subtunnel.utils.logger import get_logger

logger = get_logger(__name__)


def split_target(target: str) -> tuple[list[str], str | None]:
    """Split a request target into path segments and an optional query."""
    path, sep, query = target.partition("?")
    return path.split("/"), (query if sep else None)


def build_remainder(segments: list[str], query: str | None) -> str:
    """
    Rebuild the path after the token.

    A single trailing empty segment (the path ended in '/') is dropped.
    Further empty segments are kept, so '/tok/a//' forwards as '/a/'.
    """
    rest = segments[2:]
    if rest and rest[-1] == "":
        rest = rest[:-1]

    remainder = "/" + "/".join(rest)
    if query is not None:
        remainder += "?" + query
    return remainder


class Router:
    """
    Resolve request targets against the registry.

    The registry is reloaded on every call so edits made by the CLI (or any
    other process) apply to the very next request.
    """

    def __init__(self, registry: TunnelRegistry, destination_host: str = "127.0.0.1"):
        self.registry = registry
        self.destination_host = destination_host

    def resolve(self, target: str) -> RouteResult:
        """
        Resolve a request target ("/path?query") to a forwarding destination.

        Raises:
            RegistryError: If the registry file is malformed.
        """
        segments, query = split_target(target)
        if len(segments) < 2 or not segments[1]:
            return RouteNotFound()

        token = segments[1]
        # First match wins if two tunnels ever share a token
        entry = next(
            (entry for entry in self.registry.load() if entry.token == token), None
        )
        if entry is None:
            logger.debug(f"No tunnel for token '{token}'")
            return RouteNotFound()

        return RouteFound(
            destination_host=self.destination_host,
            destination_port=entry.port,
            remainder_path=build_remainder(segments, query),
        )
