"""Tests for scheduler introspection routes."""

from __future__ import annotations

from pathlib import Path

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from edge_cache_warmer.api.scheduler import router
from edge_cache_warmer.config import Settings
from edge_cache_warmer.services.scheduler import SchedulerService
from edge_cache_warmer.services.warming_jobs import (
    RETENTION_PURGE_JOB_ID,
    WARMING_CYCLE_JOB_ID,
    ScheduledJobsService,
)


class _IdleCycleService:
    async def run_cycle(self, *, test_mode: bool = False) -> None:
        return None


class _IdleStore:
    async def purge_expired(self) -> int:
        return 0


def _app(scheduler: SchedulerService) -> tuple[FastAPI, ScheduledJobsService]:
    jobs_service = ScheduledJobsService(
        scheduler=scheduler,
        settings=Settings(),
        cycle_service=_IdleCycleService(),
        kv_store=_IdleStore(),
    )
    app = FastAPI()
    app.include_router(router)
    app.state.scheduler_service = scheduler
    app.state.scheduled_jobs_service = jobs_service
    return app, jobs_service


@pytest.mark.asyncio
async def test_scheduler_overview_lists_jobs_and_metrics(tmp_path: Path) -> None:
    scheduler = SchedulerService(
        enabled=True,
        jobstore_url=f"sqlite:///{tmp_path / 'scheduler-api.sqlite'}",
    )
    app, jobs_service = _app(scheduler)
    jobs_service.register_jobs()
    await jobs_service.run_warming_cycle_job()

    await scheduler.start()
    try:
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/api/scheduler")
    finally:
        await scheduler.shutdown()

    assert response.status_code == 200
    payload = response.json()
    assert payload["enabled"] is True
    assert payload["running"] is True
    assert {job["job_id"] for job in payload["jobs"]} == {
        WARMING_CYCLE_JOB_ID,
        RETENTION_PURGE_JOB_ID,
    }
    metrics = {item["job_id"]: item for item in payload["metrics"]}
    assert metrics[WARMING_CYCLE_JOB_ID]["successful_runs"] == 1
    assert metrics[RETENTION_PURGE_JOB_ID]["total_runs"] == 0


@pytest.mark.asyncio
async def test_scheduler_overview_when_disabled(tmp_path: Path) -> None:
    scheduler = SchedulerService(
        enabled=False,
        jobstore_url=f"sqlite:///{tmp_path / 'scheduler-api-disabled.sqlite'}",
    )
    app, _ = _app(scheduler)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/api/scheduler")

    assert response.status_code == 200
    assert response.json()["enabled"] is False
    assert response.json()["jobs"] == []


@pytest.mark.asyncio
async def test_scheduler_overview_unavailable_without_services() -> None:
    app = FastAPI()
    app.include_router(router)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/api/scheduler")

    assert response.status_code == 503
