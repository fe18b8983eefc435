"""One-time migrations of legacy annotation formats."""

from pgtypegen.migrate.legacy import (
    LegacyMigration,
    MigrationEntry,
    MigrationReport,
    MigrationStage,
    MigrationStatus,
)

__all__ = [
    "LegacyMigration",
    "MigrationEntry",
    "MigrationReport",
    "MigrationStage",
    "MigrationStatus",
]
