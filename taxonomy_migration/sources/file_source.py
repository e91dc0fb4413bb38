"""CSV/JSON export based relationship source."""

import csv
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping

from .base import BaseRelationshipSource
from ..exceptions import SourceUnavailable

logger = logging.getLogger(__name__)


class FileRelationshipSource(BaseRelationshipSource):
    """
    Relationship source reading an export of the legacy connection table.

    Supports:
    - CSV exports (delimiter sniffing, latin-1 fallback)
    - JSON exports (a list, or an object with a data/records/items/results list)
    """

    name = "file"

    def __init__(self, file_path: str, encoding: str = "utf-8", delimiter: str = ","):
        """
        Initialize the file source.

        Args:
            file_path: Path to the CSV or JSON export
            encoding: File encoding
            delimiter: CSV delimiter used when sniffing fails
        """
        self.file_path = Path(file_path)
        self.encoding = encoding
        self.delimiter = delimiter

    def is_available(self) -> bool:
        return self.file_path.is_file()

    def fetch_rows(self, connection_type: str) -> Iterable[Mapping[str, Any]]:
        logger.info(f"Reading connections from {self.file_path}")
        if self.file_path.suffix.lower() == ".json":
            return self._read_json()
        return self._read_csv()

    def _read_csv(self) -> List[Dict[str, Any]]:
        """Read rows from a CSV export."""
        try:
            return self._read_csv_with_encoding(self.encoding)
        except UnicodeDecodeError:
            logger.warning(f"{self.encoding} decode failed, trying latin-1 for {self.file_path}")
            return self._read_csv_with_encoding("latin-1")
        except OSError as e:
            raise SourceUnavailable(f"Failed to read CSV file {self.file_path}: {e}")

    def _read_csv_with_encoding(self, encoding: str) -> List[Dict[str, Any]]:
        with open(self.file_path, "r", encoding=encoding, newline="") as f:
            sample = f.read(8192)
            f.seek(0)

            try:
                delimiter = csv.Sniffer().sniff(sample, delimiters=",;\t|").delimiter
            except csv.Error:
                delimiter = self.delimiter

            return [dict(row) for row in csv.DictReader(f, delimiter=delimiter)]

    def _read_json(self) -> List[Dict[str, Any]]:
        """Read rows from a JSON export."""
        try:
            with open(self.file_path, "r", encoding=self.encoding) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise SourceUnavailable(f"Failed to read JSON file {self.file_path}: {e}")

        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            for key in ["data", "records", "items", "results"]:
                if key in data and isinstance(data[key], list):
                    return data[key]
        raise SourceUnavailable(f"Unexpected JSON structure in {self.file_path}")

    def describe(self) -> Dict[str, Any]:
        return {"name": self.name, "file_path": str(self.file_path)}
