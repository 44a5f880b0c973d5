"""Application entry point for Edge Cache Warmer."""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from contextlib import asynccontextmanager
from datetime import UTC, datetime
import logging
from pathlib import Path
import signal
from typing import Any

from fastapi import FastAPI, Request
from fastapi.templating import Jinja2Templates
from starlette.responses import Response
import uvicorn

from edge_cache_warmer.api.dashboard import router as dashboard_router
from edge_cache_warmer.api.scheduler import router as scheduler_router
from edge_cache_warmer.api.warmer import router as warmer_router
from edge_cache_warmer.config import get_settings
from edge_cache_warmer.database import (
    close_database,
    initialize_database,
    run_startup_database_health_check,
)
from edge_cache_warmer.services.kv_store import SQLAlchemyKeyValueStore
from edge_cache_warmer.services.scheduler import SchedulerService
from edge_cache_warmer.services.warming_cycle import WarmingCycleService
from edge_cache_warmer.services.warming_jobs import (
    ScheduledJobsService,
    set_scheduled_jobs_service,
)
from edge_cache_warmer.utils.logging import (
    add_request_logging_middleware,
    setup_logging,
)

__all__ = ["app", "create_app", "main", "run_once"]

_lifecycle_logger = logging.getLogger("edge_cache_warmer.lifecycle")


def _initialize_lifecycle_state(app: FastAPI) -> None:
    app.state.inflight_requests = 0
    app.state.requests_drained = asyncio.Event()
    app.state.requests_drained.set()
    app.state.shutdown_requested = asyncio.Event()
    app.state.shutdown_signal = None
    app.state.session_started_at = datetime.now(UTC)


def _handle_shutdown_signal(app: FastAPI, signum: int) -> None:
    if app.state.shutdown_requested.is_set():
        return

    app.state.shutdown_signal = signal.Signals(signum).name
    app.state.shutdown_requested.set()
    _lifecycle_logger.warning(
        "shutdown_signal_received",
        extra={"signal": app.state.shutdown_signal},
    )


async def _wait_for_inflight_requests(app: FastAPI, *, timeout_seconds: int) -> bool:
    if app.state.inflight_requests <= 0:
        return True

    try:
        await asyncio.wait_for(
            app.state.requests_drained.wait(), timeout=timeout_seconds
        )
    except TimeoutError:
        return False

    return True


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    _initialize_lifecycle_state(app)

    kv_store = SQLAlchemyKeyValueStore()
    cycle_service = WarmingCycleService.from_settings(settings, store=kv_store)
    scheduler_service = SchedulerService.from_settings(settings)
    jobs_service = ScheduledJobsService(
        scheduler=scheduler_service,
        settings=settings,
        cycle_service=cycle_service,
        kv_store=kv_store,
    )
    set_scheduled_jobs_service(jobs_service)
    app.state.kv_store = kv_store
    app.state.warming_cycle_service = cycle_service
    app.state.scheduler_service = scheduler_service
    app.state.scheduled_jobs_service = jobs_service

    previous_handlers: dict[signal.Signals, Any] = {}
    for handled_signal in (signal.SIGTERM, signal.SIGINT):
        previous_handlers[handled_signal] = signal.getsignal(handled_signal)

        def _signal_handler(signum: int, frame: object | None) -> None:
            _handle_shutdown_signal(app, signum)
            previous_handler = previous_handlers[signal.Signals(signum)]
            if callable(previous_handler):
                previous_handler(signum, frame)

        signal.signal(handled_signal, _signal_handler)

    await initialize_database()
    health = await run_startup_database_health_check()
    _lifecycle_logger.info(
        "startup_summary",
        extra={
            "regions": cycle_service.regions.labels,
            "sitemap_sources": len(cycle_service.options.sitemap_sources),
            "stored_entries": health.stored_entries,
            "expired_entries": health.expired_entries,
            "scheduler_enabled": scheduler_service.enabled,
        },
    )
    jobs_service.register_jobs()
    await scheduler_service.start()

    try:
        yield
    finally:
        graceful_shutdown = await _wait_for_inflight_requests(
            app,
            timeout_seconds=settings.SHUTDOWN_GRACE_PERIOD_SECONDS,
        )
        await scheduler_service.shutdown()
        _lifecycle_logger.info(
            "shutdown_summary",
            extra={
                "job_metrics": [
                    {
                        "job_id": metrics.job_id,
                        "total_runs": metrics.total_runs,
                        "failed_runs": metrics.failed_runs,
                        "overlap_skips": metrics.overlap_skips,
                    }
                    for metrics in jobs_service.monitoring_snapshot()
                ],
                "graceful_shutdown": graceful_shutdown,
                "forced_timeout": not graceful_shutdown,
                "inflight_requests": app.state.inflight_requests,
                "signal": app.state.shutdown_signal,
            },
        )
        for handled_signal, previous_handler in previous_handlers.items():
            signal.signal(handled_signal, previous_handler)
        await close_database()


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings)

    package_directory = Path(__file__).resolve().parent
    templates = Jinja2Templates(directory=str(package_directory / "templates"))

    app = FastAPI(title="Edge Cache Warmer", lifespan=lifespan)
    _initialize_lifecycle_state(app)

    @app.middleware("http")
    async def track_inflight_requests(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        app.state.inflight_requests = (
            int(getattr(app.state, "inflight_requests", 0)) + 1
        )
        requests_drained = getattr(app.state, "requests_drained", None)
        if requests_drained is None:
            requests_drained = asyncio.Event()
            app.state.requests_drained = requests_drained
        requests_drained.clear()
        try:
            response = await call_next(request)
        finally:
            app.state.inflight_requests = max(0, app.state.inflight_requests - 1)
            if app.state.inflight_requests == 0:
                requests_drained.set()
        return response

    app.state.settings = settings
    app.state.templates = templates
    add_request_logging_middleware(app)
    app.include_router(warmer_router)
    app.include_router(dashboard_router)
    app.include_router(scheduler_router)

    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "edge_cache_warmer.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
        reload=False,
    )


async def _run_single_cycle(*, full: bool) -> str:
    settings = get_settings()
    await initialize_database()
    try:
        cycle_service = WarmingCycleService.from_settings(settings)
        result = await cycle_service.run_cycle(test_mode=not full)
    finally:
        await close_database()

    return result.summary().model_dump_json(by_alias=True, indent=2)


def run_once(argv: Sequence[str] | None = None) -> None:
    """Run one warming cycle from the shell and print its summary."""

    parser = argparse.ArgumentParser(
        prog="edge-cache-warmer-run",
        description="Warm the next region's slice of the sitemap catalog once.",
    )
    parser.add_argument(
        "--full",
        action="store_true",
        help="warm a full page and advance the pagination cursor",
    )
    args = parser.parse_args(argv)

    setup_logging(get_settings())
    print(asyncio.run(_run_single_cycle(full=args.full)))
