"""Error types raised by the migration engine and its collaborators."""

from typing import Any, Dict, Optional


class MigrationError(Exception):
    """Base class for all migration errors."""

    code = "migration_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(MigrationError):
    """Invalid or incomplete configuration."""

    code = "configuration_error"


class InvalidSettings(ConfigurationError):
    """A settings update was rejected."""

    code = "invalid_settings"


class SourceUnavailable(MigrationError):
    """The legacy relationship store cannot be queried."""

    code = "source_unavailable"


class MalformedRecord(MigrationError):
    """A relationship row does not have the expected shape."""

    code = "malformed_record"


class RelatedEntityMissing(MigrationError):
    """The related entity of a connection does not exist."""

    code = "related_entity_missing"


class TermCreationFailed(MigrationError):
    """The term store rejected a term creation."""

    code = "term_creation_failed"


class TermExists(MigrationError):
    """A term with the same name already exists in the taxonomy."""

    code = "term_exists"

    def __init__(self, message: str, term_id: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.term_id = term_id


class StoreError(MigrationError):
    """A read or write against the term/entity store failed."""

    code = "store_error"


class InvalidTransition(MigrationError):
    """The requested run status change is not allowed."""

    code = "invalid_transition"
