"""Service layer for the migration application."""

from .run_log import RunLog
from .term_resolver import TermResolver
from .option_store import OptionStore, InMemoryOptionStore, JsonFileOptionStore

__all__ = [
    "RunLog",
    "TermResolver",
    "OptionStore",
    "InMemoryOptionStore",
    "JsonFileOptionStore",
]
