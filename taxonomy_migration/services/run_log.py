"""Append-only run log."""

import logging
from typing import Any, Dict, Iterable, List

from ..models.record import LogEntry, LogLevel

logger = logging.getLogger(__name__)

_LOGGING_LEVELS = {
    LogLevel.INFO: logging.INFO,
    LogLevel.SUCCESS: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


class RunLog:
    """
    Structured, append-only record of engine activity.

    Entries are never mutated or removed. Display code asks for the most
    recent N with recent(); the full list stays available through entries.
    """

    def __init__(self, entries: Iterable[LogEntry] = ()):
        self._entries: List[LogEntry] = list(entries)

    def log(self, message: str, level: LogLevel = LogLevel.INFO) -> LogEntry:
        """Append an entry and mirror it to the Python logger."""
        entry = LogEntry(message=message, level=level)
        self._entries.append(entry)
        logger.log(_LOGGING_LEVELS[level], message)
        return entry

    def info(self, message: str) -> LogEntry:
        return self.log(message, LogLevel.INFO)

    def warning(self, message: str) -> LogEntry:
        return self.log(message, LogLevel.WARNING)

    def error(self, message: str) -> LogEntry:
        return self.log(message, LogLevel.ERROR)

    def success(self, message: str) -> LogEntry:
        return self.log(message, LogLevel.SUCCESS)

    @property
    def entries(self) -> List[LogEntry]:
        """Copy of all entries, oldest first."""
        return list(self._entries)

    def since(self, index: int) -> List[LogEntry]:
        """Entries appended after the first `index` entries."""
        return self._entries[index:]

    def recent(self, limit: int = 50) -> List[LogEntry]:
        """The most recent `limit` entries, oldest first."""
        if limit <= 0:
            return []
        return self._entries[-limit:]

    def count(self, level: LogLevel) -> int:
        return sum(1 for e in self._entries if e.level == level)

    def to_list(self) -> List[Dict[str, Any]]:
        return [e.to_dict() for e in self._entries]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(list(self._entries))
