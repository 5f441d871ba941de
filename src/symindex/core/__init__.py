"""Core module exports."""

from symindex.core.errors import (
    CacheError,
    ConfigError,
    ErrorCode,
    IndexingError,
    SymIndexError,
)
from symindex.core.logging import configure_logging, get_scan_id, scan_context

__all__ = [
    # Errors
    "CacheError",
    "ConfigError",
    "ErrorCode",
    "IndexingError",
    "SymIndexError",
    # Logging
    "configure_logging",
    "get_scan_id",
    "scan_context",
]
