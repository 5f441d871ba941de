"""symindex error types with typed error codes.

Error code ranges:
- 2xxx: Config
- 3xxx: Index (file reads, parses, cache snapshots)

Lookup misses are never errors: queries return ``None`` or an empty list.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002

    # Index (3xxx)
    INDEX_READ_FAILED = 3001
    INDEX_PARSE_FAILED = 3002
    INDEX_CACHE_INVALID = 3003
    INDEX_FILE_TOO_LARGE = 3004


@dataclass(frozen=True, slots=True)
class SymIndexError(Exception):
    """Base error with structured context."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'INDEX_PARSE_FAILED')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigError(SymIndexError):
    """Configuration-related errors."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )


class IndexingError(SymIndexError):
    """A single file could not be read or parsed.

    Raised for the failing file's operation only; the repository itself
    stays usable.
    """

    @classmethod
    def read_failed(cls, name: str, reason: str) -> "IndexingError":
        return cls(
            code=ErrorCode.INDEX_READ_FAILED,
            message=f"Cannot read {name}: {reason}",
            retryable=True,
            details={"name": name, "reason": reason},
        )

    @classmethod
    def parse_failed(cls, name: str, reason: str) -> "IndexingError":
        return cls(
            code=ErrorCode.INDEX_PARSE_FAILED,
            message=f"Cannot parse {name}: {reason}",
            details={"name": name, "reason": reason},
        )

    @classmethod
    def file_too_large(cls, name: str, size: int, limit: int) -> "IndexingError":
        return cls(
            code=ErrorCode.INDEX_FILE_TOO_LARGE,
            message=f"{name} is {size} bytes, limit is {limit}",
            details={"name": name, "size": size, "limit": limit},
        )


class CacheError(SymIndexError):
    """Cache snapshot could not be imported."""

    @classmethod
    def invalid_snapshot(cls, reason: str, name: str | None = None) -> "CacheError":
        details: dict[str, Any] = {"reason": reason}
        if name is not None:
            details["name"] = name
        return cls(
            code=ErrorCode.INDEX_CACHE_INVALID,
            message=f"Invalid cache snapshot: {reason}",
            details=details,
        )

