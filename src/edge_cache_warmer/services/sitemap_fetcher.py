"""Single-attempt async sitemap fetching."""

from __future__ import annotations

import codecs
from dataclasses import dataclass
import gzip
import logging
from typing import Final
from urllib.parse import urlsplit
import zlib

import httpx

from edge_cache_warmer.config import get_settings

DEFAULT_TIMEOUT_SECONDS: Final[float] = 30.0
GZIP_MAGIC_BYTES: Final[bytes] = b"\x1f\x8b"
SITEMAP_REQUEST_HEADERS: Final[dict[str, str]] = {
    "Accept": "application/xml,text/xml",
}

_logger = logging.getLogger("edge_cache_warmer.sitemap.fetcher")


@dataclass(slots=True, frozen=True)
class SitemapFetchResult:
    """Decoded sitemap document."""

    url: str
    status_code: int
    content_type: str | None
    text: str


class SitemapFetchError(Exception):
    """Base exception for sitemap fetching failures."""


class SitemapFetchTimeoutError(SitemapFetchError):
    """Raised when a sitemap request times out."""


class SitemapFetchNetworkError(SitemapFetchError):
    """Raised when a sitemap request fails due to network issues."""


class SitemapFetchHTTPError(SitemapFetchError):
    """Raised when a sitemap request receives a non-success status."""

    def __init__(self, url: str, status_code: int) -> None:
        self.url = url
        self.status_code = status_code
        super().__init__(f"Failed to fetch {url}: {status_code}")


def _sanitize_sitemap_url(url: str) -> str:
    split_url = urlsplit(url)
    host = split_url.netloc.rsplit("@", maxsplit=1)[-1]
    path = split_url.path or "/"
    sanitized = f"{host}{path}".strip()
    return sanitized or "sitemap"


def _decode_payload(url: str, content: bytes, encoding: str | None) -> str:
    if content.startswith(GZIP_MAGIC_BYTES):
        try:
            content = gzip.decompress(content)
        except (OSError, EOFError, zlib.error) as exc:
            raise SitemapFetchError(
                f"Failed to decompress sitemap {url!r}: {exc}"
            ) from exc

    return content.decode(_usable_encoding(encoding), errors="replace")


def _usable_encoding(encoding: str | None) -> str:
    if not encoding:
        return "utf-8"
    try:
        return codecs.lookup(encoding).name
    except LookupError:
        _logger.warning("sitemap_charset_unknown", extra={"charset": encoding})
        return "utf-8"


async def fetch_sitemap(
    url: str,
    *,
    client: httpx.AsyncClient | None = None,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    user_agent: str | None = None,
) -> SitemapFetchResult:
    """Fetch one sitemap document. There is exactly one attempt per call."""

    if timeout_seconds <= 0:
        raise ValueError("timeout_seconds must be greater than zero")

    headers = {
        "User-Agent": user_agent or get_settings().OUTBOUND_HTTP_USER_AGENT,
        **SITEMAP_REQUEST_HEADERS,
    }

    owns_client = client is None
    http_client = client or httpx.AsyncClient(
        timeout=httpx.Timeout(timeout_seconds),
        follow_redirects=True,
    )
    try:
        response = await http_client.get(url, headers=headers)
    except httpx.TimeoutException as exc:
        _logger.warning(
            {
                "event": "sitemap_fetch_timeout",
                "sitemap_url_sanitized": _sanitize_sitemap_url(url),
                "exception_class": exc.__class__.__name__,
            }
        )
        raise SitemapFetchTimeoutError(f"Timed out fetching sitemap {url!r}") from exc
    except httpx.NetworkError as exc:
        _logger.warning(
            {
                "event": "sitemap_fetch_network_error",
                "sitemap_url_sanitized": _sanitize_sitemap_url(url),
                "exception_class": exc.__class__.__name__,
            }
        )
        raise SitemapFetchNetworkError(
            f"Network error fetching sitemap {url!r}: {exc}"
        ) from exc
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        raise SitemapFetchError(
            f"HTTP error while fetching sitemap {url!r}: {exc}"
        ) from exc
    finally:
        if owns_client:
            await http_client.aclose()

    if not response.is_success:
        raise SitemapFetchHTTPError(url=url, status_code=response.status_code)

    return SitemapFetchResult(
        url=str(response.url),
        status_code=response.status_code,
        content_type=response.headers.get("content-type"),
        text=_decode_payload(url, response.content, response.charset_encoding),
    )


__all__ = [
    "SitemapFetchError",
    "SitemapFetchHTTPError",
    "SitemapFetchNetworkError",
    "SitemapFetchResult",
    "SitemapFetchTimeoutError",
    "fetch_sitemap",
]
