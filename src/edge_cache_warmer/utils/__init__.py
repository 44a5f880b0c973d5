"""Utilities for shared application concerns."""

from edge_cache_warmer import __version__
from edge_cache_warmer.utils.logging import (
    add_request_logging_middleware,
    setup_logging,
)

__all__ = ["__version__", "add_request_logging_middleware", "setup_logging"]
