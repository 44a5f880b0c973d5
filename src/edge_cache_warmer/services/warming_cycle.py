"""One warming cycle: pick a region, page the catalog, warm, and record."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from functools import partial
import logging

import httpx

from edge_cache_warmer.config import Settings
from edge_cache_warmer.regions import Region, RegionCatalog
from edge_cache_warmer.schemas import RunResult
from edge_cache_warmer.services.kv_store import KeyValueStore, SQLAlchemyKeyValueStore
from edge_cache_warmer.services.pagination import CatalogSlice, PaginationCursor
from edge_cache_warmer.services.region_dispatcher import (
    EgressProxyDispatcher,
    RegionDispatcher,
)
from edge_cache_warmer.services.region_rotator import RegionRotator
from edge_cache_warmer.services.result_store import ResultStore
from edge_cache_warmer.services.sitemap_fetcher import fetch_sitemap
from edge_cache_warmer.services.url_discovery import URLDiscoveryService
from edge_cache_warmer.services.warming_executor import (
    CachePolicy,
    CacheWarmingExecutor,
)

SYSTEM_ERROR_REGION = "system"

_logger = logging.getLogger("edge_cache_warmer.cycle")


@dataclass(slots=True, frozen=True)
class WarmingCycleOptions:
    sitemap_sources: tuple[str, ...]
    max_urls_per_run: int
    test_mode_url_count: int
    rate_limit_ms: int
    cache_policy: CachePolicy

    @classmethod
    def from_settings(cls, settings: Settings) -> WarmingCycleOptions:
        return cls(
            sitemap_sources=tuple(settings.SITEMAP_URLS),
            max_urls_per_run=settings.MAX_URLS_PER_RUN,
            test_mode_url_count=settings.TEST_MODE_URL_COUNT,
            rate_limit_ms=settings.RATE_LIMIT_MS,
            cache_policy=CachePolicy(
                success_ttl_seconds=settings.CACHE_TTL_SECONDS,
                not_found_ttl_seconds=settings.NOT_FOUND_CACHE_TTL_SECONDS,
            ),
        )


class WarmingCycleService:
    """Coordinate rotation, discovery, pagination, regional warming and storage."""

    def __init__(
        self,
        *,
        regions: RegionCatalog,
        rotator: RegionRotator,
        discovery: URLDiscoveryService,
        pagination: PaginationCursor,
        dispatcher: RegionDispatcher,
        executor: CacheWarmingExecutor,
        result_store: ResultStore,
        options: WarmingCycleOptions,
        logger: logging.Logger | None = None,
    ) -> None:
        self._regions = regions
        self._rotator = rotator
        self._discovery = discovery
        self._pagination = pagination
        self._dispatcher = dispatcher
        self._executor = executor
        self._result_store = result_store
        self._options = options
        self._logger = logger or _logger

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        store: KeyValueStore | None = None,
        dispatcher: RegionDispatcher | None = None,
    ) -> WarmingCycleService:
        kv_store = store or SQLAlchemyKeyValueStore()
        regions = settings.region_catalog()
        result_store = ResultStore(
            store=kv_store,
            regions=regions,
            result_ttl_seconds=settings.result_ttl_seconds,
            error_ttl_seconds=settings.error_ttl_seconds,
        )
        return cls(
            regions=regions,
            rotator=RegionRotator(store=kv_store, region_order=regions.labels),
            discovery=URLDiscoveryService(
                fetcher=partial(
                    fetch_sitemap,
                    timeout_seconds=settings.REQUEST_TIMEOUT_SECONDS,
                    user_agent=settings.OUTBOUND_HTTP_USER_AGENT,
                ),
                max_depth=settings.SITEMAP_MAX_DEPTH,
            ),
            pagination=PaginationCursor(store=kv_store),
            dispatcher=dispatcher
            or EgressProxyDispatcher(
                proxies=settings.REGION_EGRESS_PROXIES,
                timeout_seconds=settings.REQUEST_TIMEOUT_SECONDS,
            ),
            executor=CacheWarmingExecutor(
                result_sink=result_store,
                user_agent=settings.OUTBOUND_HTTP_USER_AGENT,
            ),
            result_store=result_store,
            options=WarmingCycleOptions.from_settings(settings),
        )

    @property
    def regions(self) -> RegionCatalog:
        return self._regions

    @property
    def rotator(self) -> RegionRotator:
        return self._rotator

    @property
    def result_store(self) -> ResultStore:
        return self._result_store

    @property
    def options(self) -> WarmingCycleOptions:
        return self._options

    async def run_cycle(self, *, test_mode: bool = False) -> RunResult:
        """Warm the next region's slice of the catalog.

        Test mode warms the first few catalog URLs and leaves the pagination
        cursor untouched. Any failure is recorded under the ``system`` label
        and re-raised.
        """

        mode = "test" if test_mode else "full"
        self._logger.info("warming_cycle_started", extra={"mode": mode})
        try:
            region = self._regions.require(await self._rotator.next_region())
            self._logger.info(
                "warming_cycle_region_selected",
                extra={
                    "region": region.label,
                    "target_code": region.representative_code,
                    "placement_hint": region.placement_hint,
                },
            )

            discovery = await self._discovery.discover(self._options.sitemap_sources)
            catalog = discovery.urls
            self._logger.info(
                "warming_cycle_catalog_discovered",
                extra={"region": region.label, "total_urls": len(catalog)},
            )

            if test_mode:
                urls = catalog[: self._options.test_mode_url_count]
                result = await self._warm(region, urls, total_urls=len(catalog))
            else:
                catalog_slice = await self._pagination.plan_slice(
                    region.label, catalog, self._options.max_urls_per_run
                )
                self._log_slice(catalog_slice)
                result = await self._warm(
                    region, catalog_slice.urls, total_urls=len(catalog)
                )
                await self._pagination.commit(catalog_slice)
        except Exception as error:
            self._logger.exception("warming_cycle_failed", extra={"mode": mode})
            await self._result_store.log_error(SYSTEM_ERROR_REGION, error)
            raise

        self._logger.info(
            "warming_cycle_completed",
            extra={
                "mode": mode,
                "region": result.region,
                "duration_seconds": result.duration,
                "success": result.success,
                "failures": result.failures,
                "cache_hit": result.cache_hit,
                "cache_miss": result.cache_miss,
                "cache_expired": result.cache_expired,
                "hit_rate": result.hit_rate,
                "location_matched": result.location_matched,
                "location_mismatched": result.location_mismatched,
                "location_match_rate": result.location_match_rate,
            },
        )
        return result

    async def _warm(
        self,
        region: Region,
        urls: Sequence[str],
        *,
        total_urls: int,
    ) -> RunResult:
        async def job(client: httpx.AsyncClient) -> RunResult:
            return await self._executor.warm(
                client,
                region=region,
                urls=urls,
                rate_limit_ms=self._options.rate_limit_ms,
                cache_policy=self._options.cache_policy,
                total_urls=total_urls,
            )

        return await self._dispatcher.run_in_region(region.placement_hint, job)

    def _log_slice(self, catalog_slice: CatalogSlice) -> None:
        self._logger.info(
            "warming_cycle_slice_planned",
            extra={
                "region": catalog_slice.region,
                "first_url_position": catalog_slice.start_offset + 1,
                "last_url_position": catalog_slice.end_offset,
                "total_urls": catalog_slice.total_urls,
                "progress_percent": catalog_slice.progress_percent,
                "final_page_of_cycle": catalog_slice.is_final_page_of_cycle,
            },
        )


__all__ = ["SYSTEM_ERROR_REGION", "WarmingCycleOptions", "WarmingCycleService"]
