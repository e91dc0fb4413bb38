"""Relationship sources for legacy connection records."""

from .base import BaseRelationshipSource
from .memory_source import InMemoryRelationshipSource
from .file_source import FileRelationshipSource
from .sql_source import SQLRelationshipSource

__all__ = [
    "BaseRelationshipSource",
    "InMemoryRelationshipSource",
    "FileRelationshipSource",
    "SQLRelationshipSource",
]
