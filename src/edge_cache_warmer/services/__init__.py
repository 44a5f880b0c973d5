"""Service layer for discovery, rotation, warming and result storage."""

from edge_cache_warmer.services.kv_store import KeyValueStore, SQLAlchemyKeyValueStore
from edge_cache_warmer.services.pagination import CatalogSlice, PaginationCursor
from edge_cache_warmer.services.region_dispatcher import (
    EgressProxyDispatcher,
    RegionDispatchError,
    RegionDispatcher,
)
from edge_cache_warmer.services.region_rotator import RegionRotator
from edge_cache_warmer.services.result_store import ResultStore
from edge_cache_warmer.services.url_discovery import (
    URLDiscoveryResult,
    URLDiscoveryService,
)
from edge_cache_warmer.services.warming_cycle import WarmingCycleService
from edge_cache_warmer.services.warming_executor import (
    CachePolicy,
    CacheWarmingExecutor,
)

__all__ = [
    "CachePolicy",
    "CacheWarmingExecutor",
    "CatalogSlice",
    "EgressProxyDispatcher",
    "KeyValueStore",
    "PaginationCursor",
    "RegionDispatchError",
    "RegionDispatcher",
    "RegionRotator",
    "ResultStore",
    "SQLAlchemyKeyValueStore",
    "URLDiscoveryResult",
    "URLDiscoveryService",
    "WarmingCycleService",
]
