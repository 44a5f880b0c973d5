"""Sitemap-driven URL catalog discovery."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
import html
import logging
import re
from typing import Final

from edge_cache_warmer.services.sitemap_fetcher import (
    SitemapFetchResult,
    fetch_sitemap,
)

DEFAULT_MAX_DEPTH: Final[int] = 5
SITEMAP_INDEX_MARKER: Final[str] = "<sitemapindex"

_LOC_PATTERN: Final[re.Pattern[str]] = re.compile(r"<loc>(.*?)</loc>", re.DOTALL)

SitemapFetcher = Callable[[str], Awaitable[SitemapFetchResult]]

logger = logging.getLogger("edge_cache_warmer.url_discovery")


@dataclass(slots=True, frozen=True)
class SitemapDiscoveryError:
    """Non-fatal failure for one sitemap document."""

    sitemap_url: str
    depth: int
    message: str


@dataclass(slots=True, frozen=True)
class URLDiscoveryResult:
    """Ordered, deduplicated URL catalog plus per-sitemap diagnostics."""

    urls: list[str]
    fetched_sitemaps: int
    errors: list[SitemapDiscoveryError]

    @property
    def total_urls(self) -> int:
        return len(self.urls)


@dataclass(slots=True)
class _DiscoveryState:
    seen_urls: dict[str, None] = field(default_factory=dict)
    visited_sitemaps: set[str] = field(default_factory=set)
    fetched_sitemaps: int = 0
    errors: list[SitemapDiscoveryError] = field(default_factory=list)


def extract_loc_values(document: str) -> list[str]:
    """Return the text of every ``<loc>`` element in document order.

    The document is not validated as XML; anything between a ``<loc>`` and
    the next ``</loc>`` is taken as one value, across line breaks.
    """

    values: list[str] = []
    for match in _LOC_PATTERN.finditer(document):
        value = html.unescape(match.group(1).strip())
        if value:
            values.append(value)
    return values


def is_sitemap_index(document: str) -> bool:
    return SITEMAP_INDEX_MARKER in document


class URLDiscoveryService:
    """Build the warming catalog from configured sitemap sources."""

    def __init__(
        self,
        *,
        fetcher: SitemapFetcher | None = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ) -> None:
        if max_depth < 0:
            raise ValueError("max_depth must be zero or greater")

        self._fetcher = fetcher or fetch_sitemap
        self._max_depth = max_depth

    async def discover(self, sitemap_sources: Sequence[str]) -> URLDiscoveryResult:
        """Fetch every source once and return the union of their page URLs.

        Order follows first encounter across sources, descending into
        nested sitemap indexes depth-first.
        """

        state = _DiscoveryState()
        for source in sitemap_sources:
            await self._discover_sitemap(source, depth=0, state=state)

        logger.info(
            "url_discovery_completed",
            extra={
                "sitemap_sources": len(sitemap_sources),
                "fetched_sitemaps": state.fetched_sitemaps,
                "failed_sitemaps": len(state.errors),
                "total_urls": len(state.seen_urls),
            },
        )
        return URLDiscoveryResult(
            urls=list(state.seen_urls),
            fetched_sitemaps=state.fetched_sitemaps,
            errors=state.errors,
        )

    async def _discover_sitemap(
        self,
        sitemap_url: str,
        *,
        depth: int,
        state: _DiscoveryState,
    ) -> None:
        if sitemap_url in state.visited_sitemaps:
            return
        state.visited_sitemaps.add(sitemap_url)

        try:
            fetched = await self._fetcher(sitemap_url)
        except Exception as exc:
            self._record_error(state, sitemap_url=sitemap_url, depth=depth, exc=exc)
            return

        state.fetched_sitemaps += 1
        loc_values = extract_loc_values(fetched.text)

        if not is_sitemap_index(fetched.text):
            for page_url in loc_values:
                state.seen_urls.setdefault(page_url, None)
            return

        if depth >= self._max_depth:
            logger.warning(
                "sitemap_index_max_depth_reached",
                extra={"sitemap_url": sitemap_url, "depth": depth},
            )
            return

        for nested_sitemap_url in loc_values:
            await self._discover_sitemap(
                nested_sitemap_url,
                depth=depth + 1,
                state=state,
            )

    @staticmethod
    def _record_error(
        state: _DiscoveryState,
        *,
        sitemap_url: str,
        depth: int,
        exc: Exception,
    ) -> None:
        event = "sitemap_source_failed" if depth == 0 else "nested_sitemap_failed"
        logger.error(event, extra={"sitemap_url": sitemap_url, "error": str(exc)})
        state.errors.append(
            SitemapDiscoveryError(sitemap_url=sitemap_url, depth=depth, message=str(exc))
        )


__all__ = [
    "DEFAULT_MAX_DEPTH",
    "SitemapDiscoveryError",
    "URLDiscoveryResult",
    "URLDiscoveryService",
    "extract_loc_values",
    "is_sitemap_index",
]
