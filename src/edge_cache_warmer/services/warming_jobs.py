"""Recurring scheduler jobs: the warming cycle and retention purge."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from datetime import UTC, datetime
import logging
from time import perf_counter

from edge_cache_warmer.config import Settings
from edge_cache_warmer.services.kv_store import SQLAlchemyKeyValueStore
from edge_cache_warmer.services.scheduler import RecurringJob, SchedulerService
from edge_cache_warmer.services.warming_cycle import WarmingCycleService

WARMING_CYCLE_JOB_ID = "warming-cycle-job"
RETENTION_PURGE_JOB_ID = "retention-purge-job"

_job_logger = logging.getLogger("edge_cache_warmer.scheduler.jobs")
_jobs_service: ScheduledJobsService | None = None


@dataclass(slots=True)
class JobExecutionMetrics:
    """In-memory runtime counters for one scheduled job."""

    job_id: str
    name: str
    total_runs: int = 0
    successful_runs: int = 0
    failed_runs: int = 0
    overlap_skips: int = 0
    running: bool = False
    last_started_at: datetime | None = None
    last_finished_at: datetime | None = None
    last_duration_ms: float | None = None
    last_error: str | None = None


class _OverlapProtectedRunner:
    """Execute jobs one at a time per job id and keep per-job metrics."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._metrics: dict[str, JobExecutionMetrics] = {}

    def register(self, *, job_id: str, name: str) -> None:
        self._locks.setdefault(job_id, asyncio.Lock())
        self._metrics.setdefault(job_id, JobExecutionMetrics(job_id=job_id, name=name))

    def snapshot(self) -> list[JobExecutionMetrics]:
        return [replace(metrics) for metrics in self._metrics.values()]

    async def run(self, *, job_id: str, run: Callable[[], Awaitable[object]]) -> None:
        """Run ``run`` unless it is already in flight; failures propagate."""

        lock = self._locks[job_id]
        metrics = self._metrics[job_id]
        if lock.locked():
            metrics.overlap_skips += 1
            _job_logger.warning(
                "scheduler_job_overlap_skipped", extra={"job_id": job_id}
            )
            return

        async with lock:
            metrics.total_runs += 1
            metrics.running = True
            metrics.last_started_at = datetime.now(UTC)
            started_at = perf_counter()
            try:
                await run()
            except Exception as error:
                metrics.failed_runs += 1
                metrics.last_error = str(error)
                raise
            else:
                metrics.successful_runs += 1
                metrics.last_error = None
            finally:
                metrics.running = False
                metrics.last_finished_at = datetime.now(UTC)
                metrics.last_duration_ms = round(
                    (perf_counter() - started_at) * 1000, 2
                )


class ScheduledJobsService:
    """Register and run the warmer's recurring jobs."""

    def __init__(
        self,
        *,
        scheduler: SchedulerService,
        settings: Settings,
        cycle_service: WarmingCycleService,
        kv_store: SQLAlchemyKeyValueStore,
    ) -> None:
        self._scheduler = scheduler
        self._settings = settings
        self._cycle_service = cycle_service
        self._kv_store = kv_store
        self._runner = _OverlapProtectedRunner()
        self._runner.register(job_id=WARMING_CYCLE_JOB_ID, name="Warming Cycle Job")
        self._runner.register(
            job_id=RETENTION_PURGE_JOB_ID, name="Retention Purge Job"
        )

    def register_jobs(self) -> None:
        if not self._scheduler.enabled:
            return

        self._scheduler.schedule(
            RecurringJob(
                job_id=WARMING_CYCLE_JOB_ID,
                name="Scheduled warming cycle",
                func=run_scheduled_warming_cycle_job,
                interval_seconds=self._settings.SCHEDULER_WARMING_INTERVAL_SECONDS,
            )
        )
        self._scheduler.schedule(
            RecurringJob(
                job_id=RETENTION_PURGE_JOB_ID,
                name="Scheduled retention purge",
                func=run_scheduled_retention_purge_job,
                interval_seconds=(
                    self._settings.SCHEDULER_RETENTION_PURGE_INTERVAL_SECONDS
                ),
            )
        )

    def monitoring_snapshot(self) -> list[JobExecutionMetrics]:
        return self._runner.snapshot()

    async def run_warming_cycle_job(self) -> None:
        await self._runner.run(
            job_id=WARMING_CYCLE_JOB_ID,
            run=lambda: self._cycle_service.run_cycle(test_mode=False),
        )

    async def run_retention_purge_job(self) -> None:
        await self._runner.run(
            job_id=RETENTION_PURGE_JOB_ID,
            run=self._kv_store.purge_expired,
        )


def set_scheduled_jobs_service(service: ScheduledJobsService) -> None:
    global _jobs_service
    _jobs_service = service


def _require_jobs_service() -> ScheduledJobsService:
    if _jobs_service is None:
        raise RuntimeError("Scheduled jobs service is not initialized")

    return _jobs_service


async def run_scheduled_warming_cycle_job() -> None:
    await _require_jobs_service().run_warming_cycle_job()


async def run_scheduled_retention_purge_job() -> None:
    await _require_jobs_service().run_retention_purge_job()


__all__ = [
    "JobExecutionMetrics",
    "RETENTION_PURGE_JOB_ID",
    "ScheduledJobsService",
    "WARMING_CYCLE_JOB_ID",
    "run_scheduled_retention_purge_job",
    "run_scheduled_warming_cycle_job",
    "set_scheduled_jobs_service",
]
