"""pgtypegen error types with typed error codes.

Error code ranges:
- 2xxx: Config
- 3xxx: Scan
- 4xxx: Oracle / catalog
- 5xxx: Migration
- 6xxx: Write
- 9xxx: Internal
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002
    CONFIG_MISSING_REQUIRED = 2003
    CONFIG_FILE_NOT_FOUND = 2004

    # Scan (3xxx)
    SCAN_PARSE_FAILED = 3001
    SCAN_UNSUPPORTED_FILE = 3002
    SCAN_NOT_UTF8 = 3003

    # Oracle (4xxx)
    ORACLE_UNAVAILABLE = 4001
    CATALOG_UNAVAILABLE = 4002

    # Migration (5xxx)
    MIGRATION_DIRTY_TREE = 5001
    MIGRATION_UNSUPPORTED_VERSION = 5002

    # Write (6xxx)
    WRITE_FAILED = 6001
    WRITE_NOT_GENERATED = 6002

    # Internal (9xxx)
    INTERNAL_ERROR = 9001
    INTERNAL_TIMEOUT = 9002


@dataclass(eq=False)
class PgTypegenError(Exception):
    """Base error with structured context."""

    code: ErrorCode
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'CONFIG_PARSE_ERROR')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigError(PgTypegenError):
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

    @classmethod
    def file_not_found(cls, path: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_FILE_NOT_FOUND,
            message=f"Config file not found: {path}",
            details={"path": path},
        )


class ScanError(PgTypegenError):
    """A source file could not be parsed into usages."""

    @classmethod
    def parse_failed(cls, path: str, error_count: int) -> "ScanError":
        return cls(
            code=ErrorCode.SCAN_PARSE_FAILED,
            message=f"Failed to parse {path}: {error_count} syntax error(s)",
            details={"path": path, "error_count": error_count},
        )

    @classmethod
    def unsupported(cls, path: str) -> "ScanError":
        return cls(
            code=ErrorCode.SCAN_UNSUPPORTED_FILE,
            message=f"Unsupported file type: {path}",
            details={"path": path},
        )

    @classmethod
    def not_utf8(cls, path: str, offset: int) -> "ScanError":
        return cls(
            code=ErrorCode.SCAN_NOT_UTF8,
            message=f"{path} is not valid UTF-8 (byte offset {offset})",
            details={"path": path, "offset": offset},
        )


class OracleError(PgTypegenError):
    """The describe oracle or the schema catalog cannot be reached at all.

    Per-query describe failures are not raised; they are returned as
    ``DescribeFailure`` values.
    """

    @classmethod
    def unavailable(cls, command: str, reason: str) -> "OracleError":
        return cls(
            code=ErrorCode.ORACLE_UNAVAILABLE,
            message=f"Could not run '{command}': {reason}",
            details={"command": command, "reason": reason},
        )

    @classmethod
    def catalog_unavailable(cls, reason: str) -> "OracleError":
        return cls(
            code=ErrorCode.CATALOG_UNAVAILABLE,
            message=f"Schema catalog unavailable: {reason}",
            details={"reason": reason},
        )


class MigrationError(PgTypegenError):
    """Fatal migration precondition failures."""

    @classmethod
    def dirty_tree(cls, diagnostic: str) -> "MigrationError":
        return cls(
            code=ErrorCode.MIGRATION_DIRTY_TREE,
            message=(
                "Failure: git status should be clean - stage or commit your changes "
                f"before re-running.: {diagnostic}"
            ),
            details={"diagnostic": diagnostic},
        )

    @classmethod
    def unsupported_version(cls, version: str) -> "MigrationError":
        return cls(
            code=ErrorCode.MIGRATION_UNSUPPORTED_VERSION,
            message=f"Unsupported migration: {version}",
            details={"version": version},
        )


class WriteError(PgTypegenError):
    """Persisting a rewritten file failed."""

    @classmethod
    def failed(cls, path: str, reason: str) -> "WriteError":
        return cls(
            code=ErrorCode.WRITE_FAILED,
            message=f"Failed to write {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def not_generated(cls, path: str) -> "WriteError":
        return cls(
            code=ErrorCode.WRITE_NOT_GENERATED,
            message=f"Refusing to overwrite {path}: it does not start with the generated marker",
            details={"path": path},
        )


class InternalError(PgTypegenError):
    """Internal/unexpected errors."""

    @classmethod
    def unexpected(cls, reason: str, **details: Any) -> "InternalError":
        return cls(
            code=ErrorCode.INTERNAL_ERROR,
            message=f"Internal error: {reason}",
            details=details,
        )
