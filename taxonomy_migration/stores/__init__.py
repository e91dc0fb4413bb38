"""Term and entity stores for the migration target."""

from .base import BaseTermStore, BaseEntityStore
from .memory_store import InMemoryTermStore, InMemoryEntityStore
from .wordpress import WordPressClient, WordPressTermStore, WordPressEntityStore

__all__ = [
    "BaseTermStore",
    "BaseEntityStore",
    "InMemoryTermStore",
    "InMemoryEntityStore",
    "WordPressClient",
    "WordPressTermStore",
    "WordPressEntityStore",
]
