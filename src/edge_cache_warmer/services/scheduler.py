"""Recurring job scheduling on top of APScheduler."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import cast

from apscheduler.events import (  # type: ignore[import-untyped]
    EVENT_JOB_ERROR,
    EVENT_JOB_EXECUTED,
    EVENT_JOB_MISSED,
    JobExecutionEvent,
)
from apscheduler.job import Job  # type: ignore[import-untyped]
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore  # type: ignore[import-untyped]
from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore[import-untyped]
from apscheduler.triggers.interval import IntervalTrigger  # type: ignore[import-untyped]

from edge_cache_warmer.config import Settings

_logger = logging.getLogger("edge_cache_warmer.scheduler")


@dataclass(slots=True, frozen=True)
class RecurringJob:
    """A coroutine function to run every ``interval_seconds``.

    ``func`` must be importable by reference so the SQL job store can
    persist it.
    """

    job_id: str
    name: str
    func: Callable[[], Awaitable[None]]
    interval_seconds: int

    def __post_init__(self) -> None:
        if self.interval_seconds <= 0:
            raise ValueError("interval_seconds must be greater than zero")


@dataclass(slots=True, frozen=True)
class ScheduledJobState:
    job_id: str
    name: str | None
    interval_seconds: int | None
    next_run_time: datetime | None

    @property
    def paused(self) -> bool:
        return self.next_run_time is None


class SchedulerService:
    """Start, stop and introspect the warmer's recurring jobs.

    Jobs never overlap: each one allows a single running instance and missed
    runs are coalesced into one.
    """

    def __init__(
        self,
        *,
        enabled: bool,
        jobstore_url: str,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        self._enabled = enabled
        self._scheduler = scheduler or AsyncIOScheduler(
            jobstores={"default": SQLAlchemyJobStore(url=jobstore_url)},
            job_defaults={"max_instances": 1, "coalesce": True},
        )
        self._scheduler.add_listener(
            self._log_job_outcome,
            EVENT_JOB_EXECUTED | EVENT_JOB_ERROR | EVENT_JOB_MISSED,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> SchedulerService:
        return cls(
            enabled=settings.SCHEDULER_ENABLED,
            jobstore_url=settings.SCHEDULER_JOBSTORE_URL,
        )

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def running(self) -> bool:
        return self._enabled and cast(bool, self._scheduler.running)

    async def start(self) -> None:
        if not self._enabled:
            _logger.info("scheduler_disabled")
            return
        if not self._scheduler.running:
            self._scheduler.start()
            _logger.info(
                "scheduler_started",
                extra={"job_count": len(self._scheduler.get_jobs())},
            )

    async def shutdown(self) -> None:
        if self.running:
            self._scheduler.shutdown(wait=False)
            _logger.info("scheduler_stopped")

    def schedule(self, job: RecurringJob) -> None:
        """Add ``job``, replacing any persisted job with the same id."""

        if not self._enabled:
            raise RuntimeError("Scheduler is disabled")

        self._scheduler.add_job(
            job.func,
            trigger=IntervalTrigger(seconds=job.interval_seconds),
            id=job.job_id,
            name=job.name,
            replace_existing=True,
        )
        _logger.info(
            "scheduler_job_registered",
            extra={"job_id": job.job_id, "interval_seconds": job.interval_seconds},
        )

    def list_jobs(self) -> list[ScheduledJobState]:
        if not self._enabled:
            return []
        return [_job_state(job) for job in self._scheduler.get_jobs()]

    @staticmethod
    def _log_job_outcome(event: JobExecutionEvent) -> None:
        if event.code == EVENT_JOB_MISSED:
            _logger.warning(
                "scheduler_job_missed",
                extra={
                    "job_id": event.job_id,
                    "scheduled_run_time": event.scheduled_run_time.isoformat(),
                },
            )
        elif event.exception is not None:
            _logger.error(
                "scheduler_job_failed",
                extra={
                    "job_id": event.job_id,
                    "error": str(event.exception),
                    "traceback": event.traceback,
                },
            )
        else:
            _logger.debug("scheduler_job_finished", extra={"job_id": event.job_id})


def _job_state(job: Job) -> ScheduledJobState:
    interval = getattr(job.trigger, "interval", None)
    return ScheduledJobState(
        job_id=job.id,
        name=job.name,
        interval_seconds=int(interval.total_seconds()) if interval else None,
        next_run_time=getattr(job, "next_run_time", None),
    )


__all__ = ["RecurringJob", "ScheduledJobState", "SchedulerService"]
