"""API package exports."""

from edge_cache_warmer import __version__
from edge_cache_warmer.api.dashboard import router as dashboard_router
from edge_cache_warmer.api.scheduler import router as scheduler_router
from edge_cache_warmer.api.warmer import router as warmer_router

__all__ = [
    "__version__",
    "dashboard_router",
    "scheduler_router",
    "warmer_router",
]
