"""Config module exports."""

from symindex.config.loader import load_config
from symindex.config.models import (
    IndexConfig,
    LimitsConfig,
    LoggingConfig,
    LogOutputConfig,
    SymIndexConfig,
)

__all__ = [
    "load_config",
    "SymIndexConfig",
    "IndexConfig",
    "LimitsConfig",
    "LoggingConfig",
    "LogOutputConfig",
]
