"""Base interfaces for the term and entity stores."""

from abc import ABC, abstractmethod
from typing import List, Optional

from ..models.record import Entity, Term


class BaseTermStore(ABC):
    """
    Base class for taxonomy term stores.

    The store is shared with other writers; implementations must reject a
    second term with the same name in one taxonomy by raising TermExists.
    """

    @abstractmethod
    def taxonomy_exists(self, taxonomy: str) -> bool:
        """Check whether a taxonomy is registered."""
        pass

    @abstractmethod
    def find_term(self, name: str, taxonomy: str) -> Optional[Term]:
        """
        Find a term by exact name.

        Args:
            name: Term name (case-sensitive)
            taxonomy: Taxonomy to search

        Returns:
            The term, or None if absent
        """
        pass

    @abstractmethod
    def create_term(self, name: str, taxonomy: str, description: str = "") -> Term:
        """
        Create a term.

        Raises:
            TermExists: If a term with this name already exists
            TermCreationFailed: If the store rejects the term
        """
        pass

    @abstractmethod
    def list_terms(self, taxonomy: str) -> List[Term]:
        """List all terms of a taxonomy."""
        pass


class BaseEntityStore(ABC):
    """Base class for stores holding the entities terms are attached to."""

    @abstractmethod
    def post_type_exists(self, post_type: str) -> bool:
        """Check whether an entity category (post type) is registered."""
        pass

    @abstractmethod
    def get_entity(self, entity_id: int) -> Optional[Entity]:
        """Load an entity by id, or None if it does not exist."""
        pass

    @abstractmethod
    def list_entities(self, post_type: str) -> List[Entity]:
        """List every entity of a post type."""
        pass

    @abstractmethod
    def get_entity_terms(self, entity_id: int, taxonomy: str) -> List[int]:
        """Get the term ids attached to an entity in a taxonomy."""
        pass

    @abstractmethod
    def set_entity_terms(
        self,
        entity_id: int,
        term_ids: List[int],
        taxonomy: str,
        append: bool = False
    ) -> List[int]:
        """
        Attach terms to an entity.

        Args:
            entity_id: Entity to update
            term_ids: Term ids to set
            taxonomy: Taxonomy of the terms
            append: If True, keep existing assignments; if False, replace them

        Returns:
            The entity's term ids in the taxonomy after the update

        Raises:
            StoreError: If the store rejects the update
        """
        pass
