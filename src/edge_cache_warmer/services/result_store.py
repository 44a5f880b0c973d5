"""Persistence and read models for warming run results."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
import logging
import traceback

from pydantic import ValidationError

from edge_cache_warmer.config import SECONDS_PER_DAY
from edge_cache_warmer.regions import RegionCatalog
from edge_cache_warmer.schemas import (
    ErrorRecord,
    HistoryResponse,
    HistoryTotals,
    RegionStatus,
    RunResult,
    RunSummary,
    StatusResponse,
)
from edge_cache_warmer.services.kv_store import KeyValueStore
from edge_cache_warmer.services.pagination import progress_key

DEFAULT_RESULT_TTL_SECONDS = 30 * SECONDS_PER_DAY
DEFAULT_ERROR_TTL_SECONDS = 7 * SECONDS_PER_DAY
DEFAULT_HISTORY_LIMIT = 100

_logger = logging.getLogger("edge_cache_warmer.result_store")


def results_key(region: str, timestamp_ms: int) -> str:
    return f"results_{region}_{timestamp_ms}"


def results_prefix(region: str) -> str:
    return f"results_{region}_"


def latest_key(region: str) -> str:
    return f"latest_{region}"


def error_key(region: str, timestamp_ms: int) -> str:
    return f"error_{region}_{timestamp_ms}"


def format_rate(numerator: float, denominator: float) -> str:
    """Percentage with two decimals, or ``"0.00"`` for an empty denominator."""

    if denominator <= 0:
        return "0.00"
    return f"{numerator / denominator * 100:.2f}"


def _parse_rate(value: str) -> float:
    try:
        return float(value)
    except ValueError:
        return 0.0


def summarize_history(results: list[RunSummary]) -> HistoryTotals:
    if not results:
        return HistoryTotals()

    average_hit_rate = sum(_parse_rate(result.hit_rate) for result in results) / len(
        results
    )
    return HistoryTotals(
        total_executions=len(results),
        total_success=sum(result.success for result in results),
        total_failures=sum(result.failures for result in results),
        total_cache_hit=sum(result.cache_hit for result in results),
        total_cache_miss=sum(result.cache_miss for result in results),
        total_cache_expired=sum(result.cache_expired for result in results),
        average_hit_rate=f"{average_hit_rate:.2f}",
    )


class ResultStore:
    """Store run summaries and error records; serve status and history views."""

    def __init__(
        self,
        *,
        store: KeyValueStore,
        regions: RegionCatalog,
        result_ttl_seconds: int = DEFAULT_RESULT_TTL_SECONDS,
        error_ttl_seconds: int = DEFAULT_ERROR_TTL_SECONDS,
        now_factory: Callable[[], datetime] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._regions = regions
        self._result_ttl_seconds = result_ttl_seconds
        self._error_ttl_seconds = error_ttl_seconds
        self._now_factory = now_factory or self._default_now
        self._logger = logger or _logger

    async def store_results(self, result: RunResult) -> bool:
        """Write the run summary and move the region's latest pointer.

        Writes are best-effort; a failure is logged and reported as ``False``.
        """

        summary = result.summary()
        payload = summary.model_dump_json(by_alias=True)
        try:
            await self._store.put(
                results_key(summary.region, summary.timestamp),
                payload,
                expiration_ttl=self._result_ttl_seconds,
            )
            await self._store.put(latest_key(summary.region), payload)
        except Exception:
            self._logger.exception(
                "run_result_store_failed",
                extra={"region": summary.region, "timestamp": summary.timestamp},
            )
            return False

        self._logger.info(
            "run_result_stored",
            extra={"region": summary.region, "timestamp": summary.timestamp},
        )
        return True

    async def log_error(self, region: str, error: BaseException | str) -> None:
        now = self._now_factory()
        timestamp_ms = int(now.timestamp() * 1000)
        if isinstance(error, BaseException):
            message = str(error) or error.__class__.__name__
            stack = "".join(traceback.format_exception(error)) or None
        else:
            message = error
            stack = None

        record = ErrorRecord(
            region=region,
            error=message,
            stack=stack,
            timestamp=timestamp_ms,
            timestamp_iso=now.isoformat(),
        )
        try:
            await self._store.put(
                error_key(region, timestamp_ms),
                record.model_dump_json(by_alias=True),
                expiration_ttl=self._error_ttl_seconds,
            )
        except Exception:
            self._logger.exception("error_record_store_failed", extra={"region": region})

    async def get_status(self) -> StatusResponse:
        regions: dict[str, RegionStatus] = {}
        for region in self._regions:
            try:
                latest_payload = await self._store.get(latest_key(region.label))
                progress = await self._store.get(progress_key(region.label))
            except Exception:
                self._logger.exception(
                    "region_status_read_failed", extra={"region": region.label}
                )
                regions[region.label] = RegionStatus(
                    representative_code=region.representative_code
                )
                continue

            regions[region.label] = RegionStatus(
                stats=self._parse_summary(latest_payload, key=latest_key(region.label)),
                current_progress=progress if progress is not None else "0",
                representative_code=region.representative_code,
            )

        return StatusResponse(
            last_updated=self._now_factory().isoformat(),
            regions=regions,
        )

    async def get_history(
        self,
        region: str | None = None,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> HistoryResponse:
        """Return up to ``limit`` runs per region, newest first, with totals."""

        target_regions = [region] if region else self._regions.labels
        results: list[RunSummary] = []

        for target_region in target_regions:
            try:
                keys = await self._store.list_keys(
                    prefix=results_prefix(target_region), limit=limit
                )
            except Exception:
                self._logger.exception(
                    "history_list_failed", extra={"region": target_region}
                )
                continue

            for key in keys:
                try:
                    payload = await self._store.get(key)
                except Exception:
                    self._logger.exception("history_get_failed", extra={"key": key})
                    continue

                summary = self._parse_summary(payload, key=key)
                if summary is not None:
                    results.append(summary)

        results.sort(key=lambda summary: summary.timestamp, reverse=True)
        return HistoryResponse(
            totals=summarize_history(results),
            results=results,
            regions=target_regions,
        )

    def _parse_summary(self, payload: str | None, *, key: str) -> RunSummary | None:
        if payload is None:
            return None

        try:
            return RunSummary.model_validate_json(payload)
        except ValidationError:
            self._logger.exception("run_summary_parse_failed", extra={"key": key})
            return None

    @staticmethod
    def _default_now() -> datetime:
        return datetime.now(UTC)


__all__ = [
    "DEFAULT_ERROR_TTL_SECONDS",
    "DEFAULT_HISTORY_LIMIT",
    "DEFAULT_RESULT_TTL_SECONDS",
    "ResultStore",
    "error_key",
    "format_rate",
    "latest_key",
    "results_key",
    "results_prefix",
    "summarize_history",
]
