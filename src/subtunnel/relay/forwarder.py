"""
Upstream forwarding.

Each inbound request gets its own httpx client and connection. The method,
headers and body are replayed verbatim; the upstream response is handed
back unread so the relay can stream it chunk by chunk.

Flow:
    forward() -> UpstreamResponse (status + headers received)
              -> iter_body() yields raw chunks until upstream EOF
              -> aclose() releases the connection (always, also on cancel)
"""

from collections.abc import AsyncIterable, AsyncIterator

import httpx

from subtunnel.errors import UpstreamUnreachableError
from subtunnel.utils.logger import format_traceback, get_logger

logger = get_logger(__name__)

RawHeaders = list[tuple[bytes, bytes]]


# =============================================================================
# Upstream Response
# =============================================================================


class UpstreamResponse:
    """An upstream response whose body has not been read yet."""

    def __init__(self, url: str, response: httpx.Response, client: httpx.AsyncClient):
        self.url = url
        self.response = response
        self.client = client
        self.closed = False

    @property
    def status_code(self) -> int:
        return self.response.status_code

    @property
    def raw_headers(self) -> RawHeaders:
        """Upstream headers exactly as received, duplicates included."""
        return list(self.response.headers.raw)

    async def iter_body(self) -> AsyncIterator[bytes]:
        """
        Yield the upstream body as it arrives, undecoded.

        The upstream connection is closed when iteration ends for any
        reason, including cancellation after the caller disconnected.

        Raises:
            UpstreamUnreachableError: If the upstream fails mid-stream.
        """
        completed = False
        try:
            async for chunk in self.response.aiter_raw():
                yield chunk
            completed = True
        except httpx.HTTPError as e:
            logger.error(f"Upstream failed mid-stream: {self.url} ({e!r})")
            logger.debug(format_traceback(e))
            raise UpstreamUnreachableError(self.url, e) from e
        finally:
            if not completed:
                logger.debug(f"Abandoning upstream stream: {self.url}")
            await self.aclose()

    async def aclose(self) -> None:
        """Release the upstream connection. Safe to call more than once."""
        if self.closed:
            return
        self.closed = True
        try:
            await self.response.aclose()
        finally:
            await self.client.aclose()


# =============================================================================
# Forwarder
# =============================================================================


class Forwarder:
    """
    Proxy single requests to a local destination.

    Args:
        timeout: Connect/read/write bounds for the upstream connection.
        transport: Optional httpx transport, used by tests to stand in for
            the destination service.
    """

    def __init__(
        self,
        timeout: httpx.Timeout | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.timeout = timeout or httpx.Timeout(300.0, connect=10.0)
        self.transport = transport

    async def forward(
        self,
        method: str,
        headers: RawHeaders,
        body: bytes | AsyncIterable[bytes] | None,
        destination_host: str,
        destination_port: int,
        remainder_path: str,
    ) -> UpstreamResponse:
        """
        Send a request upstream and wait for its status and headers.

        Raises:
            UpstreamUnreachableError: If the destination cannot be reached or
                fails before sending response headers. No retry is made.
        """
        url = f"http://{destination_host}:{destination_port}{remainder_path}"

        # Build the request directly so the client adds no default headers
        request = httpx.Request(
            method,
            url,
            headers=headers,
            content=body,
            extensions={"timeout": self.timeout.as_dict()},
        )

        client = httpx.AsyncClient(
            timeout=self.timeout, transport=self.transport, follow_redirects=False
        )
        try:
            response = await client.send(request, stream=True)
        except httpx.HTTPError as e:
            await client.aclose()
            raise UpstreamUnreachableError(url, e) from e
        except BaseException:
            await client.aclose()
            raise

        logger.debug(f"{method} {url} -> {response.status_code}")
        return UpstreamResponse(url, response, client)
