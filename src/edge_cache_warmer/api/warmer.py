"""Warmer status, history and manual control routes."""

from __future__ import annotations

import logging
import traceback

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse, PlainTextResponse

from edge_cache_warmer.config import Settings, get_settings
from edge_cache_warmer.schemas import (
    CamelModel,
    HistoryResponse,
    RunResult,
    StatusResponse,
)
from edge_cache_warmer.services.result_store import DEFAULT_HISTORY_LIMIT
from edge_cache_warmer.services.warming_cycle import WarmingCycleService

router = APIRouter(tags=["warmer"])

_trigger_logger = logging.getLogger("edge_cache_warmer.api.trigger")
_NO_CACHE_HEADERS = {"Cache-Control": "no-cache"}
_MAX_HISTORY_LIMIT = 1000


class CacheStatsResponse(CamelModel):
    hit: int
    miss: int
    expired: int
    hit_rate: str


class LocationVerificationResponse(CamelModel):
    matched: int
    mismatched: int
    match_rate: str
    breakdown: dict[str, int]
    region_matched: int
    region_mismatched: int
    region_match_rate: str


class TriggerResponse(CamelModel):
    """Summary of a manually triggered warming run."""

    message: str
    region: str
    target_code: str | None
    duration: str
    urls_processed: int
    failures: int
    cache_stats: CacheStatsResponse
    location_verification: LocationVerificationResponse
    note: str


class ResetRegionResponse(CamelModel):
    message: str
    next_region: str


def get_cycle_service(request: Request) -> WarmingCycleService:
    cycle_service = getattr(request.app.state, "warming_cycle_service", None)
    if isinstance(cycle_service, WarmingCycleService):
        return cycle_service

    raise HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Warming cycle service is unavailable",
    )


def _parse_test_flag(raw_value: str | None) -> bool:
    # Anything other than an explicit "false" keeps the cheap test run.
    return raw_value is None or raw_value.strip().lower() != "false"


def _trigger_response(
    result: RunResult,
    *,
    test_mode: bool,
    url_count: int,
) -> TriggerResponse:
    note = (
        f"Test mode - {url_count} URLs"
        if test_mode
        else f"Full run ({url_count} URLs)"
    )
    return TriggerResponse(
        message="Cache warming completed",
        region=result.region,
        target_code=result.target_code,
        duration=f"{result.duration:.2f}s",
        urls_processed=result.success,
        failures=result.failures,
        cache_stats=CacheStatsResponse(
            hit=result.cache_hit,
            miss=result.cache_miss,
            expired=result.cache_expired,
            hit_rate=result.hit_rate,
        ),
        location_verification=LocationVerificationResponse(
            matched=result.location_matched,
            mismatched=result.location_mismatched,
            match_rate=result.location_match_rate,
            breakdown=result.location_breakdown,
            region_matched=result.region_matched,
            region_mismatched=result.region_mismatched,
            region_match_rate=result.region_match_rate,
        ),
        note=note,
    )


def _api_overview(cycle_service: WarmingCycleService, settings: Settings) -> str:
    options = cycle_service.options
    interval_hours = settings.SCHEDULER_WARMING_INTERVAL_SECONDS / 3600
    return "\n".join(
        [
            "Edge Cache Warmer API",
            "",
            "Endpoints:",
            "  GET /dashboard           HTML dashboard with per-region statistics",
            "  GET /status              JSON status of all regions",
            "  GET /history             Historical execution data",
            "    ?region=<label>        Filter by region",
            f"    &limit={DEFAULT_HISTORY_LIMIT}             "
            f"Number of results (default: {DEFAULT_HISTORY_LIMIT})",
            f"  GET /trigger             Manual test run "
            f"({options.test_mode_url_count} URLs)",
            f"  GET /trigger?test=false  Full run "
            f"({options.max_urls_per_run} URLs, advances pagination)",
            f"  GET /reset-region        Restart rotation at "
            f"{cycle_service.rotator.first_region}",
            "  GET /api/scheduler       Scheduler jobs and run metrics",
            "  GET /health              Liveness check",
            "",
            f"Regions: {', '.join(cycle_service.regions.labels)}",
            "",
            "Configuration:",
            f"  - Schedule: every {interval_hours:g} hours"
            + ("" if settings.SCHEDULER_ENABLED else " (scheduler disabled)"),
            f"  - Processes {options.max_urls_per_run} URLs per scheduled run",
            f"  - Rate limit: {options.rate_limit_ms}ms between requests",
            f"  - Test mode: processes {options.test_mode_url_count} URLs",
            f"  - Sitemap sources: {len(options.sitemap_sources)}",
        ]
    )


@router.get("/", response_class=PlainTextResponse, status_code=status.HTTP_200_OK)
async def api_overview(
    cycle_service: WarmingCycleService = Depends(get_cycle_service),
    settings: Settings = Depends(get_settings),
) -> str:
    return _api_overview(cycle_service, settings)


@router.get("/status", response_model=StatusResponse, status_code=status.HTTP_200_OK)
async def get_status(
    response: Response,
    cycle_service: WarmingCycleService = Depends(get_cycle_service),
) -> StatusResponse:
    response.headers.update(_NO_CACHE_HEADERS)
    return await cycle_service.result_store.get_status()


@router.get("/history", response_model=HistoryResponse, status_code=status.HTTP_200_OK)
async def get_history(
    response: Response,
    region: str | None = Query(default=None),
    limit: int = Query(default=DEFAULT_HISTORY_LIMIT, ge=1, le=_MAX_HISTORY_LIMIT),
    cycle_service: WarmingCycleService = Depends(get_cycle_service),
) -> HistoryResponse:
    response.headers.update(_NO_CACHE_HEADERS)
    return await cycle_service.result_store.get_history(region=region, limit=limit)


@router.get(
    "/trigger",
    response_model=TriggerResponse,
    status_code=status.HTTP_200_OK,
    responses={status.HTTP_500_INTERNAL_SERVER_ERROR: {"description": "Run failed"}},
)
async def trigger_warming(
    test: str | None = Query(default=None),
    cycle_service: WarmingCycleService = Depends(get_cycle_service),
) -> TriggerResponse | JSONResponse:
    test_mode = _parse_test_flag(test)
    url_count = (
        cycle_service.options.test_mode_url_count
        if test_mode
        else cycle_service.options.max_urls_per_run
    )
    _trigger_logger.info(
        "manual_trigger_started",
        extra={"mode": "test" if test_mode else "full", "url_count": url_count},
    )

    try:
        result = await cycle_service.run_cycle(test_mode=test_mode)
    except Exception as error:
        _trigger_logger.error(
            "manual_trigger_failed", extra={"error": str(error)}
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": str(error),
                "stack": "".join(traceback.format_exception(error)),
            },
        )

    return _trigger_response(result, test_mode=test_mode, url_count=url_count)


@router.get(
    "/reset-region",
    response_model=ResetRegionResponse,
    status_code=status.HTTP_200_OK,
    responses={status.HTTP_500_INTERNAL_SERVER_ERROR: {"description": "Reset failed"}},
)
async def reset_region(
    cycle_service: WarmingCycleService = Depends(get_cycle_service),
) -> ResetRegionResponse | JSONResponse:
    rotator = cycle_service.rotator
    try:
        await rotator.reset()
    except Exception as error:
        _trigger_logger.error("region_reset_failed", extra={"error": str(error)})
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": str(error)},
        )

    return ResetRegionResponse(
        message="Region rotation reset to start",
        next_region=rotator.first_region,
    )


__all__ = [
    "ResetRegionResponse",
    "TriggerResponse",
    "get_cycle_service",
    "router",
]
