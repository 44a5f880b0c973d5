"""Crash recovery of the pagination cursor against the SQLite store."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from pathlib import Path

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from edge_cache_warmer.database import build_engine, build_session_factory
from edge_cache_warmer.models import Base
from edge_cache_warmer.regions import Region, RegionCatalog
from edge_cache_warmer.services.kv_store import SQLAlchemyKeyValueStore
from edge_cache_warmer.services.pagination import PaginationCursor, progress_key
from edge_cache_warmer.services.region_rotator import RegionRotator
from edge_cache_warmer.services.result_store import ResultStore
from edge_cache_warmer.services.sitemap_fetcher import SitemapFetchResult
from edge_cache_warmer.services.url_discovery import URLDiscoveryService
from edge_cache_warmer.services.warming_cycle import (
    WarmingCycleOptions,
    WarmingCycleService,
)
from edge_cache_warmer.services.warming_executor import (
    CachePolicy,
    CacheWarmingExecutor,
)

PAGE_URLS = [f"https://recovery.example/page-{index}" for index in range(6)]
REGIONS = RegionCatalog(
    [
        Region("Western Europe", "weur", "AMS", frozenset({"AMS"})),
        Region("Oceania", "oc", "SYD", frozenset({"SYD"})),
    ]
)


async def _sitemap(url: str) -> SitemapFetchResult:
    entries = "".join(f"<url><loc>{page}</loc></url>" for page in PAGE_URLS)
    return SitemapFetchResult(
        url=url, status_code=200, content_type="application/xml", text=entries
    )


async def _no_sleep(seconds: float) -> None:
    return None


def _edge_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, headers={"cf-cache-status": "HIT", "cf-ray": "1-AMS"})


class _CrashOnceDispatcher:
    """Runs the job, then fails the first time the context is torn down."""

    def __init__(self) -> None:
        self.crashed = False
        self.warmed_batches: list[list[str]] = []

    async def run_in_region(self, hint, job):
        transport = httpx.MockTransport(_edge_handler)
        async with httpx.AsyncClient(transport=transport) as client:
            result = await job(client)
        self.warmed_batches.append([detail.url for detail in result.urls])
        if not self.crashed:
            self.crashed = True
            raise RuntimeError("worker evicted")
        return result


@asynccontextmanager
async def _sqlite_store(tmp_path: Path) -> AsyncIterator[SQLAlchemyKeyValueStore]:
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'recovery.sqlite'}")
    session_factory = build_session_factory(engine)

    @asynccontextmanager
    async def scoped_session() -> AsyncIterator[AsyncSession]:
        session = session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)

    try:
        yield SQLAlchemyKeyValueStore(
            session_factory=scoped_session,
            now_factory=lambda: datetime(2026, 3, 1, 12, tzinfo=UTC),
        )
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_crashed_cycle_leaves_cursor_so_region_rewarms_same_slice(
    tmp_path: Path,
) -> None:
    dispatcher = _CrashOnceDispatcher()
    async with _sqlite_store(tmp_path) as store:
        result_store = ResultStore(store=store, regions=REGIONS)
        service = WarmingCycleService(
            regions=REGIONS,
            rotator=RegionRotator(store=store, region_order=REGIONS.labels),
            discovery=URLDiscoveryService(fetcher=_sitemap),
            pagination=PaginationCursor(store=store),
            dispatcher=dispatcher,
            executor=CacheWarmingExecutor(
                result_sink=result_store,
                user_agent="WarmerAgent-Recovery",
                sleep=_no_sleep,
            ),
            result_store=result_store,
            options=WarmingCycleOptions(
                sitemap_sources=("https://recovery.example/sitemap.xml",),
                max_urls_per_run=2,
                test_mode_url_count=1,
                rate_limit_ms=0,
                cache_policy=CachePolicy(success_ttl_seconds=60),
            ),
        )

        with pytest.raises(RuntimeError, match="worker evicted"):
            await service.run_cycle()
        assert await store.get(progress_key("Western Europe")) is None

        oceania = await service.run_cycle()
        europe_retry = await service.run_cycle()

        assert oceania.region == "Oceania"
        assert europe_retry.region == "Western Europe"
        assert dispatcher.warmed_batches[0] == dispatcher.warmed_batches[2]
        assert await store.get(progress_key("Western Europe")) == "2"
        error_keys = await store.list_keys(prefix="error_system_", limit=10)
        assert len(error_keys) == 1
