"""
Relay FastAPI application.

One catch-all route accepts any method on any path, resolves the first
path segment to a registered tunnel and streams the request to
127.0.0.1:<port> and the response back.

Per request:
    Received -> Routed (NotFound -> 404)
             -> Proxying -> Completed
                         -> Failed (500 before headers, dropped connection after)
"""

import asyncio
import errno
import socket

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, Response, StreamingResponse

from subtunnel import __version__
from subtunnel.config import RelayConfig, config
from subtunnel.errors import BindError, RegistryError, UpstreamUnreachableError
from subtunnel.models.enums import LogLevel
from subtunnel.models.tunnel import RouteNotFound
from subtunnel.registry.store import TunnelRegistry
from subtunnel.relay.forwarder import Forwarder, UpstreamResponse
from subtunnel.relay.router import Router
from subtunnel.utils.logger import configure_logging, get_logger

logger = get_logger(__name__)

ERROR_BODY = "Internal Server Error"


# =============================================================================
# Streaming Response
# =============================================================================


class TunnelResponse(StreamingResponse):
    """Stream an upstream response, releasing the upstream connection when done."""

    def __init__(self, upstream: UpstreamResponse):
        super().__init__(upstream.iter_body(), status_code=upstream.status_code)
        self.upstream = upstream
        # Pass upstream headers through untouched
        self.raw_headers = upstream.raw_headers

    async def __call__(self, scope, receive, send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            # Runs on completion, client disconnect and upstream failure alike
            await self.upstream.aclose()


# =============================================================================
# Helpers
# =============================================================================


def request_target(request: Request) -> str:
    """Get the undecoded path and query string of a request."""
    raw_path = request.scope.get("raw_path") or request.scope["path"].encode()
    target = raw_path.decode("latin-1")
    # ASGI reports "/a?" and "/a" alike, so an empty query is not forwarded
    query = request.scope.get("query_string", b"")
    if query:
        target += "?" + query.decode("latin-1")
    return target


def has_body(request: Request) -> bool:
    """Check if the inbound request announces a body."""
    headers = request.headers
    return "transfer-encoding" in headers or headers.get("content-length", "0") != "0"


# =============================================================================
# Application Factory
# =============================================================================


def create_app(
    registry: TunnelRegistry | None = None,
    forwarder: Forwarder | None = None,
    relay_config: RelayConfig = config,
) -> FastAPI:
    """
    Build the relay application.

    Args:
        registry: Tunnel registry; defaults to the configured registry file.
        forwarder: Upstream forwarder; defaults to one using the configured
            timeouts.
        relay_config: Configuration to read defaults from.
    """
    registry = registry or TunnelRegistry(relay_config.REGISTRY_FILE)
    forwarder = forwarder or Forwarder(
        timeout=httpx.Timeout(
            relay_config.READ_TIMEOUT,
            connect=relay_config.CONNECT_TIMEOUT,
            write=relay_config.WRITE_TIMEOUT,
        )
    )
    router = Router(registry, destination_host=relay_config.DESTINATION_HOST)

    # No docs/openapi routes: every path belongs to the tunnels
    app = FastAPI(
        title="subtunnel relay",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    async def relay(request: Request) -> Response:
        target = request_target(request)

        try:
            # Reads the registry file; keep it off the event loop
            route = await asyncio.to_thread(router.resolve, target)
        except RegistryError as e:
            logger.error(f"Cannot route {target}: {e}")
            return PlainTextResponse(ERROR_BODY, status_code=500)

        if isinstance(route, RouteNotFound):
            return Response(status_code=404)

        logger.debug(f"{request.method} {target} -> {route.url}")

        try:
            upstream = await forwarder.forward(
                method=request.method,
                headers=list(request.headers.raw),
                body=request.stream() if has_body(request) else None,
                destination_host=route.destination_host,
                destination_port=route.destination_port,
                remainder_path=route.remainder_path,
            )
        except UpstreamUnreachableError as e:
            logger.error(f"Error while tunneling to {e.url}: {e.cause!r}")
            return PlainTextResponse(ERROR_BODY, status_code=500)

        return TunnelResponse(upstream)

    # No method filter: every method, WebDAV and PURGE included, is relayed
    app.add_route("/{full_path:path}", relay, include_in_schema=False)

    return app


# =============================================================================
# Server Entry Points
# =============================================================================


def bind_socket(host: str, port: int) -> socket.socket:
    """
    Bind the public listener socket.

    Raises:
        BindError: If the port is already in use. Other OS errors propagate.
    """
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((host, port))
    except OSError as e:
        sock.close()
        if e.errno == errno.EADDRINUSE:
            raise BindError(host, port) from e
        raise
    sock.set_inheritable(True)
    return sock


def run(relay_config: RelayConfig = config) -> None:
    """
    Run the relay using uvicorn on a pre-bound socket.

    Raises:
        BindError: If the listen port is already in use.
    """
    import uvicorn

    configure_logging(relay_config.LOG_LEVEL)

    uvicorn_level_map = {
        LogLevel.FULL: "trace",
        LogLevel.DEBUG: "debug",
        LogLevel.INFO: "info",
        LogLevel.WARNING: "warning",
    }
    uvicorn_level = uvicorn_level_map.get(relay_config.LOG_LEVEL, "info")

    sock = bind_socket(relay_config.BIND_IP, relay_config.PORT)
    logger.info(
        f"Relay listening on {relay_config.BIND_IP}:{relay_config.PORT} "
        f"(registry: {relay_config.get_registry_path()})"
    )
    logger.info("Tunnel server started! Run 'subtunnel add <port>' to open a tunnel")

    server = uvicorn.Server(
        uvicorn.Config(
            create_app(relay_config=relay_config),
            log_level=uvicorn_level,
            log_config=None,  # Keep loguru as the only handler
        )
    )
    try:
        server.run(sockets=[sock])
    finally:
        sock.close()
