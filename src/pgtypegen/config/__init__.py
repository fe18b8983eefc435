"""Config module exports."""

from pgtypegen.config.loader import load_config
from pgtypegen.config.models import (
    DatabaseConfig,
    LoggingConfig,
    OutputConfig,
    TagConfig,
    TypegenConfig,
)

__all__ = [
    "load_config",
    "DatabaseConfig",
    "LoggingConfig",
    "OutputConfig",
    "TagConfig",
    "TypegenConfig",
]
