"""Base relationship source interface."""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Mapping
import logging

from ..exceptions import MalformedRecord, SourceUnavailable
from ..models.record import RelationshipRecord

logger = logging.getLogger(__name__)


class BaseRelationshipSource(ABC):
    """
    Base class for all relationship sources.

    Sources give read-only access to legacy connection records. They never
    create or mutate connections.
    """

    name = "base"

    @abstractmethod
    def is_available(self) -> bool:
        """Check whether the legacy relationship store can be queried."""
        pass

    @abstractmethod
    def fetch_rows(self, connection_type: str) -> Iterable[Mapping[str, Any]]:
        """
        Fetch raw rows for a connection type.

        Raises:
            SourceUnavailable: If the store cannot be queried
        """
        pass

    def list_connections(self, connection_type: str) -> List[RelationshipRecord]:
        """
        List all connections of a type.

        Args:
            connection_type: Relationship type tag to filter by

        Returns:
            Typed relationship records in store order

        Raises:
            SourceUnavailable: If the store cannot be queried
            MalformedRecord: If a row does not have the expected shape
        """
        if not self.is_available():
            raise SourceUnavailable(
                f"Relationship source '{self.name}' is not available",
                details={"connection_type": connection_type},
            )

        records = []
        for index, row in enumerate(self.fetch_rows(connection_type)):
            try:
                record = RelationshipRecord.from_row(row)
            except MalformedRecord as e:
                e.details.setdefault("index", index)
                logger.error(f"Malformed connection row {index}: {e.message}")
                raise
            if record.type == connection_type:
                records.append(record)

        logger.debug(f"Loaded {len(records)} '{connection_type}' connections from {self.name}")
        return records

    def describe(self) -> Dict[str, Any]:
        """Describe the source for logs and previews."""
        return {"name": self.name}
