"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (SYMINDEX__SECTION__KEY)
3. Repo YAML (.symindex/config.yaml)
4. Global YAML (~/.config/symindex/config.yaml)
5. Built-in defaults (this file)

Examples:
    SYMINDEX__LOGGING__LEVEL=DEBUG
    SYMINDEX__INDEX__CACHE_BY_FILE_HASH=true
    SYMINDEX__LIMITS__QUERY_DEFAULT=50
"""

import codecs
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from symindex.config.constants import QUERY_MAX_LIMIT

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class LogOutputConfig(BaseModel):
    """Single logging output configuration."""

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        SYMINDEX__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="INFO",
        description="Root log level. DEBUG logs every walked file.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class IndexConfig(BaseModel):
    """Repository indexing configuration.

    Env vars:
        SYMINDEX__INDEX__ENCODING: Default source encoding
        SYMINDEX__INDEX__CACHE_BY_FILE_HASH: Detect changes by content hash
        SYMINDEX__INDEX__MAX_FILE_SIZE_MB: Skip files larger than this
        SYMINDEX__INDEX__MAX_CONCURRENT_PARSES: Reads in flight during a scan
    """

    extensions: list[str] = Field(
        default_factory=lambda: ["*.php", "*.php3", "*.php5", "*.phtml", "*.inc"],
        description="Filename globs selecting files during a scan.",
    )
    exclude_dirs: list[str] = Field(
        default_factory=lambda: [".git", ".svn", ".hg", "node_modules"],
        description="Directory names never descended into during a scan.",
    )
    encoding: str = Field(
        default="utf-8",
        description="Encoding used when parse/refresh is called without one.",
    )
    cache_by_file_hash: bool = Field(
        default=False,
        description="Compare content hashes instead of mtime/size on refresh. "
        "Slower (every refresh reads the file) but immune to touched files.",
    )
    max_file_size_mb: int = Field(
        default=10,
        description="Reject files larger than this (MB).",
    )
    max_concurrent_parses: int = Field(
        default=8,
        description="Maximum number of file reads in flight during a scan.",
    )

    @field_validator("encoding")
    @classmethod
    def validate_encoding(cls, v: str) -> str:
        try:
            codecs.lookup(v)
        except LookupError as e:
            raise ValueError(f"Unknown encoding: {v}") from e
        return v

    @field_validator("max_concurrent_parses")
    @classmethod
    def validate_concurrency(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"max_concurrent_parses must be >= 1, got {v}")
        return v


class LimitsConfig(BaseModel):
    """Query limit defaults.

    See constants.py for hard maximums that cannot be exceeded.

    Env vars:
        SYMINDEX__LIMITS__QUERY_DEFAULT: Default result limit for by-type/by-name lookups
        SYMINDEX__LIMITS__EVENT_QUEUE_SIZE: Capacity of each event subscriber queue
    """

    query_default: int = Field(
        default=100,
        description="Default result limit for lookups. <= 0 means unbounded.",
    )
    event_queue_size: int = Field(
        default=1000,
        description="Capacity of each event subscriber queue. Events are dropped when full.",
    )

    @field_validator("query_default")
    @classmethod
    def validate_query_default(cls, v: int) -> int:
        if v > QUERY_MAX_LIMIT:
            raise ValueError(f"query_default must be <= {QUERY_MAX_LIMIT}, got {v}")
        return v


class SymIndexConfig(BaseModel):
    """Root configuration for symindex."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    index: IndexConfig = Field(default_factory=IndexConfig)
    limits: LimitsConfig = Field(default_factory=LimitsConfig)
