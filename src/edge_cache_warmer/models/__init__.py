"""ORM model exports."""

from edge_cache_warmer import __version__
from edge_cache_warmer.models.base import Base
from edge_cache_warmer.models.kv_entry import KeyValueEntry

__all__ = ["__version__", "Base", "KeyValueEntry"]
