"""Core module exports."""

from pgtypegen.core.errors import (
    ConfigError,
    ErrorCode,
    InternalError,
    MigrationError,
    OracleError,
    PgTypegenError,
    ScanError,
    WriteError,
)
from pgtypegen.core.logging import configure_logging, set_run_id
from pgtypegen.core.progress import pluralize, spinner, status

__all__ = [
    # Errors
    "PgTypegenError",
    "ConfigError",
    "ErrorCode",
    "InternalError",
    "MigrationError",
    "OracleError",
    "ScanError",
    "WriteError",
    # Logging
    "configure_logging",
    "set_run_id",
    # Progress
    "pluralize",
    "spinner",
    "status",
]
