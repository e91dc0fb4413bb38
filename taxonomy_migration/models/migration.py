"""Migration execution models."""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional
from enum import Enum
from datetime import datetime
import threading
import uuid

from dateutil import parser as date_parser

from ..exceptions import InvalidTransition
from .record import ConnectionResult, LogEntry


class MigrationStatus(str, Enum):
    """Status of a migration run."""
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ERROR = "error"


# Allowed status changes; anything else raises InvalidTransition
TRANSITIONS: Dict[MigrationStatus, FrozenSet[MigrationStatus]] = {
    MigrationStatus.NOT_STARTED: frozenset({
        MigrationStatus.IN_PROGRESS,
        MigrationStatus.ERROR,
    }),
    MigrationStatus.IN_PROGRESS: frozenset({
        MigrationStatus.PAUSED,
        MigrationStatus.COMPLETED,
        MigrationStatus.CANCELLED,
        MigrationStatus.ERROR,
    }),
    MigrationStatus.PAUSED: frozenset({
        MigrationStatus.IN_PROGRESS,
        MigrationStatus.CANCELLED,
        MigrationStatus.NOT_STARTED,
        MigrationStatus.ERROR,
    }),
    MigrationStatus.COMPLETED: frozenset({
        MigrationStatus.NOT_STARTED,
    }),
    MigrationStatus.CANCELLED: frozenset({
        MigrationStatus.NOT_STARTED,
        MigrationStatus.IN_PROGRESS,
        MigrationStatus.ERROR,
    }),
    MigrationStatus.ERROR: frozenset({
        MigrationStatus.NOT_STARTED,
        MigrationStatus.IN_PROGRESS,
        MigrationStatus.ERROR,
    }),
}

# States a fresh start may begin from
STARTABLE = frozenset({
    MigrationStatus.NOT_STARTED,
    MigrationStatus.CANCELLED,
    MigrationStatus.ERROR,
})


@dataclass
class MigrationProgress:
    """Progress counters of a run."""
    processed: int = 0
    total: int = 0
    migrated: int = 0
    failed: int = 0

    @property
    def percentage(self) -> int:
        """Processed share of the total, 0-100."""
        if self.total <= 0:
            return 0
        return round(self.processed / self.total * 100)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "processed": self.processed,
            "total": self.total,
            "migrated": self.migrated,
            "failed": self.failed,
            "percentage": self.percentage,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MigrationProgress":
        """Create from dictionary representation."""
        return cls(
            processed=int(data.get("processed", 0)),
            total=int(data.get("total", 0)),
            migrated=int(data.get("migrated", 0)),
            failed=int(data.get("failed", 0)),
        )


@dataclass
class MigrationRun:
    """A single execution of the migration engine."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: MigrationStatus = MigrationStatus.NOT_STARTED
    progress: MigrationProgress = field(default_factory=MigrationProgress)

    # Configuration
    batch_size: Optional[int] = None
    dry_run: bool = False

    # Timing
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def can_transition(self, status: MigrationStatus) -> bool:
        """Check whether the run may move to the given status."""
        return status in TRANSITIONS[self.status]

    def transition(self, status: MigrationStatus) -> None:
        """
        Move the run to a new status.

        Raises:
            InvalidTransition: If the change is not allowed from the current status
        """
        if status == self.status and status != MigrationStatus.ERROR:
            return
        if not self.can_transition(status):
            raise InvalidTransition(
                f"Cannot move migration from {self.status.value} to {status.value}",
                details={"from": self.status.value, "to": status.value},
            )

        if status == MigrationStatus.IN_PROGRESS and self.started_at is None:
            self.started_at = datetime.utcnow()
        if status in (MigrationStatus.COMPLETED, MigrationStatus.CANCELLED, MigrationStatus.ERROR):
            self.completed_at = datetime.utcnow()
        self.status = status

    def reset(self) -> None:
        """Return the run to its initial state."""
        self.transition(MigrationStatus.NOT_STARTED)
        self.id = str(uuid.uuid4())
        self.progress = MigrationProgress()
        self.started_at = None
        self.completed_at = None

    def begin(self, batch_size: Optional[int], dry_run: bool) -> None:
        """Start a fresh run from a startable state."""
        if self.status not in STARTABLE:
            raise InvalidTransition(
                f"Cannot start migration in status: {self.status.value}",
                details={"from": self.status.value},
            )
        self.id = str(uuid.uuid4())
        self.progress = MigrationProgress()
        self.batch_size = batch_size
        self.dry_run = dry_run
        self.started_at = None
        self.completed_at = None
        self.transition(MigrationStatus.IN_PROGRESS)

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "status": self.status.value,
            "progress": self.progress.to_dict(),
            "batch_size": self.batch_size,
            "dry_run": self.dry_run,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MigrationRun":
        """Create from dictionary representation."""
        started_at = data.get("started_at")
        completed_at = data.get("completed_at")
        return cls(
            id=data.get("id") or str(uuid.uuid4()),
            status=MigrationStatus(data.get("status", MigrationStatus.NOT_STARTED.value)),
            progress=MigrationProgress.from_dict(data.get("progress", {})),
            batch_size=data.get("batch_size"),
            dry_run=bool(data.get("dry_run", False)),
            started_at=date_parser.parse(started_at) if started_at else None,
            completed_at=date_parser.parse(completed_at) if completed_at else None,
        )


class CancellationToken:
    """
    Cooperative pause/cancel signal for a running migration.

    The engine consults the token only at checkpoint boundaries, so an
    in-flight batch always runs to completion.
    """

    def __init__(self):
        self._pause = threading.Event()
        self._cancel = threading.Event()

    def request_pause(self) -> None:
        self._pause.set()

    def request_cancel(self) -> None:
        self._cancel.set()

    def clear(self) -> None:
        self._pause.clear()
        self._cancel.clear()

    @property
    def paused(self) -> bool:
        return self._pause.is_set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()


@dataclass
class MigrationOutcome:
    """Aggregate result of a migrate() call."""
    success: bool
    message: str = ""
    posts_migrated: int = 0
    posts_failed: int = 0
    status: MigrationStatus = MigrationStatus.NOT_STARTED
    log: List[LogEntry] = field(default_factory=list)
    results: List[ConnectionResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "success": self.success,
            "message": self.message,
            "posts_migrated": self.posts_migrated,
            "posts_failed": self.posts_failed,
            "status": self.status.value,
            "log": [entry.to_dict() for entry in self.log],
        }


@dataclass
class BatchResult:
    """Result of a single batch protocol step."""
    processed: int = 0
    migrated: int = 0
    failed: int = 0
    progress: int = 0
    total: int = 0
    has_more: bool = False
    results: List[ConnectionResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the batch response shape."""
        return {
            "processed": self.processed,
            "migrated": self.migrated,
            "failed": self.failed,
            "progress": self.progress,
            "total": self.total,
            "continue": self.has_more,
        }


@dataclass
class RollbackOutcome:
    """Result of a rollback() call."""
    success: bool = True
    posts_cleared: int = 0
    posts_failed: int = 0
    log: List[LogEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "success": self.success,
            "posts_cleared": self.posts_cleared,
            "posts_failed": self.posts_failed,
            "log": [entry.to_dict() for entry in self.log],
        }


@dataclass
class MigrationStatistics:
    """Read-only statistics about the connections to migrate."""
    total_connections: int
    total_posts_involved: int
    connection_type: str
    source_post_type: str
    target_taxonomy: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "total_connections": self.total_connections,
            "total_posts_involved": self.total_posts_involved,
            "connection_type": self.connection_type,
            "source_post_type": self.source_post_type,
            "target_taxonomy": self.target_taxonomy,
        }
