"""Pydantic schemas for warming run records."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UrlWarmDetail(CamelModel):
    """Outcome of warming a single URL."""

    model_config = ConfigDict(frozen=True)

    url: str
    status: int | None = None
    cache_status: str | None = None
    trace_header: str | None = None
    target_code: str | None = None
    observed_code: str | None = None
    location_match: bool = False
    regional_match: bool = False
    cache_ttl_seconds: int | None = None
    error: str | None = None
    timestamp: int


class RunSummary(CamelModel):
    """Persisted summary of one warming invocation."""

    model_config = ConfigDict(frozen=True)

    region: str
    timestamp: int = 0
    timestamp_iso: str | None = None
    duration: float = 0.0
    target_code: str | None = None
    placement_hint: str | None = None

    success: int = 0
    failures: int = 0
    cache_hit: int = 0
    cache_miss: int = 0
    cache_expired: int = 0
    cache_other: int = 0
    hit_rate: str = "0.00"

    location_matched: int = 0
    location_mismatched: int = 0
    location_match_rate: str = "0.00"
    location_breakdown: dict[str, int] = Field(default_factory=dict)

    region_matched: int = 0
    region_mismatched: int = 0
    region_match_rate: str = "0.00"

    total_urls: int = 0


class RunResult(RunSummary):
    """Summary plus the per-URL detail entries of the run that produced it."""

    urls: tuple[UrlWarmDetail, ...] = ()

    def summary(self) -> RunSummary:
        return RunSummary.model_validate(self.model_dump(exclude={"urls"}))


class ErrorRecord(CamelModel):
    """Short-lived record of a failed operation."""

    region: str
    error: str
    stack: str | None = None
    timestamp: int
    timestamp_iso: str


class RegionStatus(CamelModel):
    stats: RunSummary | None = None
    current_progress: str = "0"
    representative_code: str


class StatusResponse(CamelModel):
    last_updated: str
    regions: dict[str, RegionStatus]


class HistoryTotals(CamelModel):
    total_executions: int = 0
    total_success: int = 0
    total_failures: int = 0
    total_cache_hit: int = 0
    total_cache_miss: int = 0
    total_cache_expired: int = 0
    average_hit_rate: str = "0.00"


class HistoryResponse(CamelModel):
    totals: HistoryTotals
    results: list[RunSummary]
    regions: list[str]


__all__ = [
    "CamelModel",
    "ErrorRecord",
    "HistoryResponse",
    "HistoryTotals",
    "RegionStatus",
    "RunResult",
    "RunSummary",
    "StatusResponse",
    "UrlWarmDetail",
]
