"""Tests for warmer status, history and control routes."""

from __future__ import annotations

import httpx
import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from edge_cache_warmer.api.warmer import router
from edge_cache_warmer.regions import (
    SUPPORTED_LOCATION_HINTS,
    Region,
    RegionCatalog,
)
from edge_cache_warmer.services.pagination import PaginationCursor, progress_key
from edge_cache_warmer.services.region_dispatcher import EgressProxyDispatcher
from edge_cache_warmer.services.region_rotator import (
    ROTATION_CURSOR_KEY,
    RegionRotator,
)
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

PAGE_URLS = [f"https://example.com/page-{index}" for index in range(8)]
REGIONS = RegionCatalog(
    [
        Region("Western Europe", "weur", "AMS", frozenset({"AMS", "LHR"})),
        Region("Oceania", "oc", "SYD", frozenset({"SYD", "MEL"})),
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
    if request.url.path == "/page-1":
        return httpx.Response(
            200, headers={"cf-cache-status": "HIT", "cf-ray": "1-AMS"}
        )
    return httpx.Response(
        200, headers={"cf-cache-status": "MISS", "cf-ray": "2-LHR"}
    )


def _cycle_service(store, clock, *, supported_hints=None) -> WarmingCycleService:
    result_store = ResultStore(store=store, regions=REGIONS, now_factory=clock)
    dispatcher = EgressProxyDispatcher(
        transport=httpx.MockTransport(_edge_handler),
        supported_hints=supported_hints or SUPPORTED_LOCATION_HINTS,
    )
    return WarmingCycleService(
        regions=REGIONS,
        rotator=RegionRotator(store=store, region_order=REGIONS.labels),
        discovery=URLDiscoveryService(fetcher=_sitemap),
        pagination=PaginationCursor(store=store),
        dispatcher=dispatcher,
        executor=CacheWarmingExecutor(
            result_sink=result_store,
            user_agent="WarmerAgent-Test",
            sleep=_no_sleep,
            now_factory=clock,
        ),
        result_store=result_store,
        options=WarmingCycleOptions(
            sitemap_sources=("https://example.com/sitemap.xml",),
            max_urls_per_run=4,
            test_mode_url_count=2,
            rate_limit_ms=0,
            cache_policy=CachePolicy(success_ttl_seconds=14400),
        ),
    )


def _app(cycle_service: WarmingCycleService | None) -> FastAPI:
    app = FastAPI()
    app.include_router(router)
    if cycle_service is not None:
        app.state.warming_cycle_service = cycle_service
    return app


def _client(app: FastAPI) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_trigger_defaults_to_test_mode(memory_store, clock) -> None:
    async with _client(_app(_cycle_service(memory_store, clock))) as client:
        response = await client.get("/trigger")

    assert response.status_code == 200
    payload = response.json()
    assert payload["message"] == "Cache warming completed"
    assert payload["region"] == "Western Europe"
    assert payload["targetCode"] == "AMS"
    assert payload["urlsProcessed"] == 2
    assert payload["cacheStats"] == {
        "hit": 1,
        "miss": 1,
        "expired": 0,
        "hitRate": "50.00",
    }
    assert payload["locationVerification"]["matched"] == 1
    assert payload["locationVerification"]["mismatched"] == 1
    assert payload["locationVerification"]["matchRate"] == "50.00"
    assert payload["locationVerification"]["breakdown"] == {"AMS": 1, "LHR": 1}
    assert payload["locationVerification"]["regionMatchRate"] == "100.00"
    assert payload["note"] == "Test mode - 2 URLs"
    assert payload["duration"].endswith("s")
    assert progress_key("Western Europe") not in memory_store.values


@pytest.mark.asyncio
async def test_trigger_full_mode_advances_pagination(memory_store, clock) -> None:
    async with _client(_app(_cycle_service(memory_store, clock))) as client:
        response = await client.get("/trigger", params={"test": "false"})

    assert response.status_code == 200
    assert response.json()["urlsProcessed"] == 4
    assert response.json()["note"] == "Full run (4 URLs)"
    assert memory_store.values[progress_key("Western Europe")] == "4"


@pytest.mark.asyncio
async def test_trigger_failure_returns_error_and_stack(memory_store, clock) -> None:
    service = _cycle_service(
        memory_store, clock, supported_hints=frozenset({"enam"})
    )

    async with _client(_app(service)) as client:
        response = await client.get("/trigger")

    assert response.status_code == 500
    payload = response.json()
    assert "weur" in payload["error"]
    assert "RegionDispatchError" in payload["stack"]
    assert any(key.startswith("error_system_") for key in memory_store.values)


@pytest.mark.asyncio
async def test_status_and_history_reflect_stored_runs(memory_store, clock) -> None:
    app = _app(_cycle_service(memory_store, clock))
    async with _client(app) as client:
        await client.get("/trigger", params={"test": "false"})
        await client.get("/trigger", params={"test": "false"})
        status_response = await client.get("/status")
        history_response = await client.get("/history")
        filtered_response = await client.get(
            "/history", params={"region": "Oceania", "limit": 1}
        )

    assert status_response.status_code == 200
    assert status_response.headers["cache-control"] == "no-cache"
    regions = status_response.json()["regions"]
    assert regions["Western Europe"]["stats"]["success"] == 4
    assert regions["Western Europe"]["currentProgress"] == "4"
    assert regions["Oceania"]["representativeCode"] == "SYD"

    history = history_response.json()
    assert history["totals"]["totalExecutions"] == 2
    assert history["totals"]["totalSuccess"] == 8
    assert [result["region"] for result in history["results"]] == [
        "Oceania",
        "Western Europe",
    ]

    filtered = filtered_response.json()
    assert filtered["regions"] == ["Oceania"]
    assert len(filtered["results"]) == 1


@pytest.mark.asyncio
async def test_history_rejects_non_positive_limit(memory_store, clock) -> None:
    async with _client(_app(_cycle_service(memory_store, clock))) as client:
        response = await client.get("/history", params={"limit": 0})

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_reset_region_points_rotation_back_to_first_region(
    memory_store, clock
) -> None:
    async with _client(_app(_cycle_service(memory_store, clock))) as client:
        await client.get("/trigger")
        await client.get("/trigger")
        reset_response = await client.get("/reset-region")
        next_trigger = await client.get("/trigger")

    assert reset_response.status_code == 200
    assert reset_response.json() == {
        "message": "Region rotation reset to start",
        "nextRegion": "Western Europe",
    }
    assert next_trigger.json()["region"] == "Western Europe"
    assert memory_store.values[ROTATION_CURSOR_KEY] == "0"


@pytest.mark.asyncio
async def test_root_lists_endpoints_and_regions(memory_store, clock) -> None:
    async with _client(_app(_cycle_service(memory_store, clock))) as client:
        response = await client.get("/")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "GET /trigger" in response.text
    assert "GET /reset-region" in response.text
    assert "Regions: Western Europe, Oceania" in response.text


@pytest.mark.asyncio
async def test_routes_return_503_without_cycle_service() -> None:
    async with _client(_app(None)) as client:
        response = await client.get("/status")

    assert response.status_code == 503
