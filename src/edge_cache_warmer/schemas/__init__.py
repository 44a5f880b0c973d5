"""Schema exports for persistence and API serialization."""

from edge_cache_warmer import __version__
from edge_cache_warmer.schemas.run_result import (
    CamelModel,
    ErrorRecord,
    HistoryResponse,
    HistoryTotals,
    RegionStatus,
    RunResult,
    RunSummary,
    StatusResponse,
    UrlWarmDetail,
)

__all__ = [
    "__version__",
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
