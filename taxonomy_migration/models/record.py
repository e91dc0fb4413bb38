"""Record models for migration data."""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional
from enum import Enum
from datetime import datetime

from dateutil import parser as date_parser

from ..exceptions import MalformedRecord


# Legacy column name -> field name
_ROW_ALIASES = {
    "id": ("p2p_id", "id"),
    "from_id": ("p2p_from", "from_id", "from"),
    "to_id": ("p2p_to", "to_id", "to"),
    "type": ("p2p_type", "type", "connection_type"),
}


def _pick(row: Mapping[str, Any], keys) -> Any:
    for key in keys:
        if key in row and row[key] not in (None, ""):
            return row[key]
    return None


def _as_int(value: Any, name: str, row: Mapping[str, Any]) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise MalformedRecord(
            f"Field '{name}' is not an integer: {value!r}",
            details={"row": dict(row)},
        )
    if number <= 0:
        raise MalformedRecord(
            f"Field '{name}' must be positive: {number}",
            details={"row": dict(row)},
        )
    return number


@dataclass(frozen=True)
class RelationshipRecord:
    """A legacy connection between two entities."""
    from_id: int
    to_id: int
    type: str
    id: Optional[int] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "RelationshipRecord":
        """
        Build a record from a raw store row.

        Accepts either the legacy column names (p2p_from, p2p_to, p2p_type)
        or the plain field names.

        Raises:
            MalformedRecord: If a required field is missing or not an id
        """
        if not isinstance(row, Mapping):
            raise MalformedRecord(f"Expected a mapping, got {type(row).__name__}")

        missing = [
            name for name in ("from_id", "to_id", "type")
            if _pick(row, _ROW_ALIASES[name]) is None
        ]
        if missing:
            raise MalformedRecord(
                f"Connection row is missing fields: {', '.join(missing)}",
                details={"row": dict(row)},
            )

        raw_id = _pick(row, _ROW_ALIASES["id"])
        return cls(
            id=_as_int(raw_id, "id", row) if raw_id is not None else None,
            from_id=_as_int(_pick(row, _ROW_ALIASES["from_id"]), "from_id", row),
            to_id=_as_int(_pick(row, _ROW_ALIASES["to_id"]), "to_id", row),
            type=str(_pick(row, _ROW_ALIASES["type"])),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "from_id": self.from_id,
            "to_id": self.to_id,
            "type": self.type,
        }


@dataclass
class Term:
    """A taxonomy term."""
    id: int
    name: str
    taxonomy: str
    slug: str = ""
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "name": self.name,
            "taxonomy": self.taxonomy,
            "slug": self.slug,
            "description": self.description,
        }


@dataclass
class Entity:
    """A host entity (post) that can carry taxonomy terms."""
    id: int
    post_type: str
    title: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "post_type": self.post_type,
            "title": self.title,
        }


class LogLevel(str, Enum):
    """Severity of a run log entry."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    SUCCESS = "success"


@dataclass(frozen=True)
class LogEntry:
    """A single run log entry."""
    message: str
    level: LogLevel = LogLevel.INFO
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the display shape ({timestamp, type, message})."""
        return {
            "timestamp": self.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            "type": self.level.value,
            "message": self.message,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LogEntry":
        """Create from dictionary representation."""
        raw_time = data.get("timestamp")
        timestamp = date_parser.parse(raw_time) if raw_time else datetime.utcnow()
        level = data.get("type") or data.get("level") or LogLevel.INFO.value
        return cls(
            message=data.get("message", ""),
            level=LogLevel(level),
            timestamp=timestamp,
        )


@dataclass
class ConnectionResult:
    """Result of migrating a single connection."""
    connection: RelationshipRecord
    term_id: Optional[int] = None
    success: bool = False
    error: Optional[str] = None
    error_code: Optional[str] = None
    dry_run: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "connection": self.connection.to_dict(),
            "term_id": self.term_id,
            "success": self.success,
            "error": self.error,
            "error_code": self.error_code,
            "dry_run": self.dry_run,
        }
