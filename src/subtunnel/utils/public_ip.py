"""Public IP lookup, used only to print a shareable tunnel URL."""

import httpx

from subtunnel.config import config
from subtunnel.utils.logger import get_logger

logger = get_logger(__name__)


def get_public_ip(url: str | None = None, timeout: float | None = None) -> str | None:
    """
    Ask an external echo service for this machine's public IP.

    Returns:
        The IP address, or None if the lookup failed.
    """
    url = url or config.PUBLIC_IP_URL
    timeout = timeout if timeout is not None else config.PUBLIC_IP_TIMEOUT

    try:
        response = httpx.get(url, timeout=timeout)
        response.raise_for_status()
        return response.json()["ip"]
    except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
        logger.warning(f"Public IP lookup via {url} failed: {e}")
        return None
