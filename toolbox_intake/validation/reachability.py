"""
URL syntax and reachability checks.
"""

from typing import Any, Optional
from urllib.parse import urlparse

import httpx
import structlog

logger = structlog.get_logger()

SOURCE_HOST = "github.com"
RAW_CONTENT_HOST = "raw.githubusercontent.com"


def is_valid_url(value: Any) -> bool:
    """True for absolute http(s) URLs with a host."""
    if not isinstance(value, str) or not value.strip():
        return False
    try:
        parsed = urlparse(value.strip())
        httpx.URL(value.strip())
    except (ValueError, httpx.InvalidURL):
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def hostname(url: str) -> str:
    return (urlparse(url).hostname or "").lower()


def is_source_host(url: str) -> bool:
    """True when ``url`` points at the source host's main web domain."""
    host = hostname(url)
    return host == SOURCE_HOST or host.endswith(f".{SOURCE_HOST}")


class UrlProbe:
    """Checks that a URL answers a HEAD request with 2xx or 3xx."""

    def __init__(
        self,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client = httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=False,
            transport=transport,
        )

    async def close(self) -> None:
        await self.client.aclose()

    async def is_reachable(self, url: str) -> bool:
        try:
            response = await self.client.head(url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.info("URL probe failed", url=url, error=str(e))
            return False
        reachable = 200 <= response.status_code < 400
        if not reachable:
            logger.info("URL probe rejected", url=url, status=response.status_code)
        return reachable
