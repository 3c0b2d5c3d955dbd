"""
Exception types for subtunnel.

Per-request faults (routing, upstream) are converted to HTTP responses by
the relay; registry and bind faults surface to the CLI as error messages.
"""


class TunnelError(Exception):
    """Base class for all subtunnel errors."""


class RegistryError(TunnelError):
    """The persisted registry could not be read or has an invalid structure."""


class PortInUseError(TunnelError):
    """A tunnel already forwards to the requested destination port."""

    def __init__(self, port: int, token: str):
        super().__init__(
            f"Port {port} is already used by tunnel '{token}'. "
            f"Remove it first with: remove {port}"
        )
        self.port = port
        self.token = token


class UpstreamUnreachableError(TunnelError):
    """The destination could not be reached or failed mid-stream."""

    def __init__(self, url: str, cause: BaseException):
        super().__init__(f"Failed to proxy to {url}: {cause!r}")
        self.url = url
        self.cause = cause


class BindError(TunnelError):
    """The public listener port is already bound by another process."""

    def __init__(self, host: str, port: int):
        super().__init__(f"Port {port} on {host} is already in use.")
        self.host = host
        self.port = port
