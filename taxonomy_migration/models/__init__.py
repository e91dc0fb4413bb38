"""Data models for the migration application."""

from .record import (
    RelationshipRecord,
    Term,
    Entity,
    LogLevel,
    LogEntry,
    ConnectionResult,
)
from .migration import (
    MigrationStatus,
    MigrationProgress,
    MigrationRun,
    CancellationToken,
    MigrationOutcome,
    BatchResult,
    RollbackOutcome,
    MigrationStatistics,
)
from .config import (
    MigrationConfig,
    SourceConfig,
    TargetConfig,
    SourceType,
    TargetType,
)

__all__ = [
    "RelationshipRecord",
    "Term",
    "Entity",
    "LogLevel",
    "LogEntry",
    "ConnectionResult",
    "MigrationStatus",
    "MigrationProgress",
    "MigrationRun",
    "CancellationToken",
    "MigrationOutcome",
    "BatchResult",
    "RollbackOutcome",
    "MigrationStatistics",
    "MigrationConfig",
    "SourceConfig",
    "TargetConfig",
    "SourceType",
    "TargetType",
]
