"""In-memory relationship source."""

from typing import Any, Iterable, List, Mapping, Optional

from .base import BaseRelationshipSource


class InMemoryRelationshipSource(BaseRelationshipSource):
    """Relationship source backed by a list of rows."""

    name = "memory"

    def __init__(self, rows: Optional[List[Mapping[str, Any]]] = None, available: bool = True):
        self.rows = list(rows or [])
        self.available = available

    def add(self, from_id: int, to_id: int, connection_type: str) -> None:
        """Append a connection row."""
        self.rows.append({
            "p2p_id": len(self.rows) + 1,
            "p2p_from": from_id,
            "p2p_to": to_id,
            "p2p_type": connection_type,
        })

    def is_available(self) -> bool:
        return self.available

    def fetch_rows(self, connection_type: str) -> Iterable[Mapping[str, Any]]:
        # Filtering by type happens once the rows are typed
        return list(self.rows)
