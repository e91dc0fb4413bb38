"""SQL relationship source reading the legacy connection table."""

import logging
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .base import BaseRelationshipSource
from ..exceptions import ConfigurationError, SourceUnavailable

logger = logging.getLogger(__name__)

_PREFIX_PATTERN = re.compile(r"^[A-Za-z0-9_]*$")


class SQLRelationshipSource(BaseRelationshipSource):
    """
    Relationship source backed by the `{prefix}p2p` table.

    Works against any database SQLAlchemy can reach (MySQL for a live
    WordPress install, SQLite for exported copies).
    """

    name = "sql"

    def __init__(
        self,
        database_url: Optional[str] = None,
        table_prefix: str = "wp_",
        engine: Optional[Engine] = None,
    ):
        """
        Initialize the SQL source.

        Args:
            database_url: SQLAlchemy database URL
            table_prefix: Table prefix of the host install
            engine: Existing engine to reuse instead of database_url
        """
        if not _PREFIX_PATTERN.match(table_prefix):
            raise ConfigurationError(f"Invalid table prefix: {table_prefix!r}")
        if engine is None and not database_url:
            raise ConfigurationError("SQL source requires a database URL or engine")

        self.table_name = f"{table_prefix}p2p"
        self._engine = engine or create_engine(database_url, pool_pre_ping=True)

    def is_available(self) -> bool:
        try:
            return inspect(self._engine).has_table(self.table_name)
        except SQLAlchemyError as e:
            logger.error(f"Connection table check failed: {e}")
            return False

    def fetch_rows(self, connection_type: str) -> Iterable[Mapping[str, Any]]:
        query = text(
            f"SELECT p2p_id, p2p_from, p2p_to, p2p_type FROM {self.table_name} "
            "WHERE p2p_type = :connection_type ORDER BY p2p_id"
        )
        try:
            with self._engine.connect() as conn:
                result = conn.execute(query, {"connection_type": connection_type})
                rows: List[Dict[str, Any]] = [dict(row) for row in result.mappings()]
        except SQLAlchemyError as e:
            raise SourceUnavailable(
                f"Failed to query {self.table_name}: {e}",
                details={"connection_type": connection_type},
            )
        return rows

    def describe(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "table": self.table_name,
            "url": self._engine.url.render_as_string(hide_password=True),
        }
