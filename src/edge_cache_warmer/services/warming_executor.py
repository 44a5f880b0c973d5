"""Sequential, rate-limited cache warming for one region."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
import logging
from time import perf_counter
from typing import Final, Protocol

import httpx

from edge_cache_warmer.regions import Region
from edge_cache_warmer.schemas import RunResult, UrlWarmDetail
from edge_cache_warmer.services.result_store import format_rate

CACHE_STATUS_HEADER: Final[str] = "cf-cache-status"
TRACE_HEADER: Final[str] = "cf-ray"
CACHE_DIRECTIVE_HEADER: Final[str] = "X-Warmer-Cache-Ttl"
UNKNOWN: Final[str] = "UNKNOWN"
WARMING_REQUEST_HEADERS: Final[dict[str, str]] = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

_logger = logging.getLogger("edge_cache_warmer.warming")


class RunResultSink(Protocol):
    async def store_results(self, result: RunResult) -> bool: ...


@dataclass(slots=True, frozen=True)
class CachePolicy:
    """Edge TTLs requested per response class; zero means do not cache."""

    success_ttl_seconds: int
    not_found_ttl_seconds: int = 300
    server_error_ttl_seconds: int = 0

    def ttl_for_status(self, status_code: int) -> int | None:
        if 200 <= status_code <= 299:
            return self.success_ttl_seconds
        if status_code == 404:
            return self.not_found_ttl_seconds
        if 500 <= status_code <= 599:
            return self.server_error_ttl_seconds
        return None

    def directive(self) -> str:
        return (
            f"cache-everything; 200-299={self.success_ttl_seconds}; "
            f"404={self.not_found_ttl_seconds}; "
            f"500-599={self.server_error_ttl_seconds}"
        )


def classify_cache_status(raw_status: str | None) -> str:
    """Map a cache status header onto hit, miss, expired or other."""

    normalized = (raw_status or "").strip().upper()
    if normalized == "HIT":
        return "hit"
    if normalized == "MISS":
        return "miss"
    if normalized == "EXPIRED":
        return "expired"
    return "other"


def parse_location_code(trace_header: str | None) -> str | None:
    """Return the trailing location code of ``<id>-<CODE>``, or None."""

    if not trace_header or "-" not in trace_header:
        return None
    code = trace_header.rsplit("-", maxsplit=1)[-1].strip().upper()
    return code or None


@dataclass(slots=True)
class _RunCounters:
    success: int = 0
    failures: int = 0
    cache_hit: int = 0
    cache_miss: int = 0
    cache_expired: int = 0
    cache_other: int = 0
    location_matched: int = 0
    location_mismatched: int = 0
    region_matched: int = 0
    region_mismatched: int = 0
    location_breakdown: dict[str, int] = field(default_factory=dict)
    details: list[UrlWarmDetail] = field(default_factory=list)

    def tally_cache_status(self, cache_class: str) -> None:
        if cache_class == "hit":
            self.cache_hit += 1
        elif cache_class == "miss":
            self.cache_miss += 1
        elif cache_class == "expired":
            self.cache_expired += 1
        else:
            self.cache_other += 1

    def tally_location(self, region: Region, observed_code: str | None) -> None:
        if observed_code is not None:
            self.location_breakdown[observed_code] = (
                self.location_breakdown.get(observed_code, 0) + 1
            )
            if region.is_exact_match(observed_code):
                self.location_matched += 1
            else:
                self.location_mismatched += 1

        # Unknown codes cannot match the regional set.
        if region.is_regional_match(observed_code):
            self.region_matched += 1
        else:
            self.region_mismatched += 1


class CacheWarmingExecutor:
    """Request each URL in turn and summarize cache and edge-location outcomes."""

    def __init__(
        self,
        *,
        result_sink: RunResultSink,
        user_agent: str,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        now_factory: Callable[[], datetime] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._result_sink = result_sink
        self._user_agent = user_agent
        self._sleep = sleep
        self._now_factory = now_factory or self._default_now
        self._logger = logger or _logger

    async def warm(
        self,
        client: httpx.AsyncClient,
        *,
        region: Region,
        urls: Sequence[str],
        rate_limit_ms: int,
        cache_policy: CachePolicy,
        total_urls: int = 0,
    ) -> RunResult:
        """Warm ``urls`` and hand the finished result to the sink before returning."""

        if rate_limit_ms < 0:
            raise ValueError("rate_limit_ms must be zero or greater")

        started_at = perf_counter()
        counters = _RunCounters()
        headers = {
            "User-Agent": self._user_agent,
            CACHE_DIRECTIVE_HEADER: cache_policy.directive(),
            **WARMING_REQUEST_HEADERS,
        }

        for url in urls:
            await self._warm_url(
                client,
                url=url,
                region=region,
                headers=headers,
                cache_policy=cache_policy,
                counters=counters,
            )
            await self._sleep(rate_limit_ms / 1000)

        finished_at = self._now_factory()
        cached = counters.cache_hit + counters.cache_expired
        result = RunResult(
            region=region.label,
            timestamp=int(finished_at.timestamp() * 1000),
            timestamp_iso=finished_at.isoformat(),
            duration=round(perf_counter() - started_at, 2),
            target_code=region.representative_code,
            placement_hint=region.placement_hint,
            success=counters.success,
            failures=counters.failures,
            cache_hit=counters.cache_hit,
            cache_miss=counters.cache_miss,
            cache_expired=counters.cache_expired,
            cache_other=counters.cache_other,
            hit_rate=format_rate(cached, counters.success),
            location_matched=counters.location_matched,
            location_mismatched=counters.location_mismatched,
            location_match_rate=format_rate(
                counters.location_matched,
                counters.location_matched + counters.location_mismatched,
            ),
            location_breakdown=counters.location_breakdown,
            region_matched=counters.region_matched,
            region_mismatched=counters.region_mismatched,
            region_match_rate=format_rate(
                counters.region_matched,
                counters.region_matched + counters.region_mismatched,
            ),
            total_urls=total_urls,
            urls=tuple(counters.details),
        )

        self._logger.info(
            "warming_run_completed",
            extra={
                "region": result.region,
                "success": result.success,
                "failures": result.failures,
                "hit_rate": result.hit_rate,
                "location_match_rate": result.location_match_rate,
                "region_match_rate": result.region_match_rate,
                "duration_seconds": result.duration,
            },
        )
        await self._result_sink.store_results(result)
        return result

    async def _warm_url(
        self,
        client: httpx.AsyncClient,
        *,
        url: str,
        region: Region,
        headers: dict[str, str],
        cache_policy: CachePolicy,
        counters: _RunCounters,
    ) -> None:
        try:
            response = await client.get(url, headers=headers)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            counters.failures += 1
            counters.details.append(
                UrlWarmDetail(
                    url=url,
                    target_code=region.representative_code,
                    error=str(exc) or exc.__class__.__name__,
                    timestamp=self._timestamp_ms(),
                )
            )
            self._logger.warning(
                "warm_url_failed",
                extra={"region": region.label, "url": url, "error": str(exc)},
            )
            return

        cache_status = response.headers.get(CACHE_STATUS_HEADER) or UNKNOWN
        trace_header = response.headers.get(TRACE_HEADER)
        observed_code = parse_location_code(trace_header)

        if response.status_code >= 400:
            counters.failures += 1
            counters.details.append(
                UrlWarmDetail(
                    url=url,
                    status=response.status_code,
                    cache_status=cache_status,
                    trace_header=trace_header,
                    target_code=region.representative_code,
                    observed_code=observed_code,
                    cache_ttl_seconds=cache_policy.ttl_for_status(
                        response.status_code
                    ),
                    error=f"HTTP {response.status_code}",
                    timestamp=self._timestamp_ms(),
                )
            )
            return

        counters.success += 1
        counters.tally_cache_status(classify_cache_status(cache_status))
        counters.tally_location(region, observed_code)
        counters.details.append(
            UrlWarmDetail(
                url=url,
                status=response.status_code,
                cache_status=cache_status,
                trace_header=trace_header,
                target_code=region.representative_code,
                observed_code=observed_code,
                location_match=region.is_exact_match(observed_code),
                regional_match=region.is_regional_match(observed_code),
                cache_ttl_seconds=cache_policy.ttl_for_status(response.status_code),
                timestamp=self._timestamp_ms(),
            )
        )

    def _timestamp_ms(self) -> int:
        return int(self._now_factory().timestamp() * 1000)

    @staticmethod
    def _default_now() -> datetime:
        return datetime.now(UTC)


__all__ = [
    "CACHE_DIRECTIVE_HEADER",
    "CACHE_STATUS_HEADER",
    "CachePolicy",
    "CacheWarmingExecutor",
    "RunResultSink",
    "TRACE_HEADER",
    "classify_cache_status",
    "parse_location_code",
]
