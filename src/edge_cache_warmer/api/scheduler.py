"""Scheduler introspection API routes."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel

from edge_cache_warmer.services.scheduler import ScheduledJobState, SchedulerService
from edge_cache_warmer.services.warming_jobs import (
    JobExecutionMetrics,
    ScheduledJobsService,
)

router = APIRouter(prefix="/api/scheduler", tags=["scheduler"])


class SchedulerJobResponse(BaseModel):
    """Scheduler job response payload."""

    job_id: str
    name: str | None
    interval_seconds: int | None
    next_run_time: datetime | None
    paused: bool


class SchedulerJobMonitoringResponse(BaseModel):
    """Runtime metrics for one recurring job."""

    job_id: str
    name: str
    total_runs: int
    successful_runs: int
    failed_runs: int
    overlap_skips: int
    running: bool
    last_started_at: datetime | None
    last_finished_at: datetime | None
    last_duration_ms: float | None
    last_error: str | None


class SchedulerOverviewResponse(BaseModel):
    enabled: bool
    running: bool
    jobs: list[SchedulerJobResponse]
    metrics: list[SchedulerJobMonitoringResponse]


def _get_scheduler_service(request: Request) -> SchedulerService:
    scheduler = getattr(request.app.state, "scheduler_service", None)
    if isinstance(scheduler, SchedulerService):
        return scheduler

    raise HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Scheduler service is unavailable",
    )


def _get_scheduled_jobs_service(request: Request) -> ScheduledJobsService:
    jobs_service = getattr(request.app.state, "scheduled_jobs_service", None)
    if isinstance(jobs_service, ScheduledJobsService):
        return jobs_service

    raise HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Scheduled jobs service is unavailable",
    )


def _job_response_from_state(job_state: ScheduledJobState) -> SchedulerJobResponse:
    return SchedulerJobResponse(
        job_id=job_state.job_id,
        name=job_state.name,
        interval_seconds=job_state.interval_seconds,
        next_run_time=job_state.next_run_time,
        paused=job_state.paused,
    )


def _job_monitoring_response(
    metrics: JobExecutionMetrics,
) -> SchedulerJobMonitoringResponse:
    return SchedulerJobMonitoringResponse(
        job_id=metrics.job_id,
        name=metrics.name,
        total_runs=metrics.total_runs,
        successful_runs=metrics.successful_runs,
        failed_runs=metrics.failed_runs,
        overlap_skips=metrics.overlap_skips,
        running=metrics.running,
        last_started_at=metrics.last_started_at,
        last_finished_at=metrics.last_finished_at,
        last_duration_ms=metrics.last_duration_ms,
        last_error=metrics.last_error,
    )


@router.get(
    "", response_model=SchedulerOverviewResponse, status_code=status.HTTP_200_OK
)
async def get_scheduler_overview(
    scheduler: SchedulerService = Depends(_get_scheduler_service),
    jobs_service: ScheduledJobsService = Depends(_get_scheduled_jobs_service),
) -> SchedulerOverviewResponse:
    return SchedulerOverviewResponse(
        enabled=scheduler.enabled,
        running=scheduler.running,
        jobs=[_job_response_from_state(job) for job in scheduler.list_jobs()],
        metrics=[
            _job_monitoring_response(metrics)
            for metrics in jobs_service.monitoring_snapshot()
        ],
    )


__all__ = ["router"]
