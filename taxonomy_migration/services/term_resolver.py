"""Resolve related entities to taxonomy terms."""

import logging
from typing import Optional

from ..exceptions import RelatedEntityMissing, TermCreationFailed, TermExists
from ..models.record import Entity
from ..stores.base import BaseEntityStore, BaseTermStore

logger = logging.getLogger(__name__)

PROVENANCE_TEMPLATE = "Migrated from post ID: {entity_id}"


class TermResolver:
    """
    Maps a related entity to the term named after it.

    Resolution is idempotent: the same related entity always yields the same
    term id. Creation goes create-then-lookup on conflict, so a term created
    concurrently by another writer is reused instead of duplicated.
    """

    def __init__(self, term_store: BaseTermStore, entity_store: BaseEntityStore):
        self.term_store = term_store
        self.entity_store = entity_store

    def _load_entity(self, related_entity_id: int) -> Entity:
        entity = self.entity_store.get_entity(related_entity_id)
        if entity is None:
            raise RelatedEntityMissing(
                f"Related post does not exist: {related_entity_id}",
                details={"entity_id": related_entity_id},
            )
        return entity

    def resolve_term(self, related_entity_id: int, taxonomy: str) -> Optional[int]:
        """
        Look up the term for a related entity without creating it.

        Raises:
            RelatedEntityMissing: If the related entity does not exist

        Returns:
            Term id, or None if no term exists yet
        """
        entity = self._load_entity(related_entity_id)
        term = self.term_store.find_term(entity.title, taxonomy)
        return term.id if term else None

    def resolve_or_create_term(self, related_entity_id: int, taxonomy: str) -> int:
        """
        Resolve the term for a related entity, creating it if absent.

        Args:
            related_entity_id: Id of the entity the term is named after
            taxonomy: Target taxonomy

        Returns:
            Term id

        Raises:
            RelatedEntityMissing: If the related entity does not exist
            TermCreationFailed: If the term store rejects the new term
        """
        entity = self._load_entity(related_entity_id)

        existing = self.term_store.find_term(entity.title, taxonomy)
        if existing:
            return existing.id

        try:
            term = self.term_store.create_term(
                entity.title,
                taxonomy,
                description=PROVENANCE_TEMPLATE.format(entity_id=related_entity_id),
            )
        except TermExists as e:
            # Lost a race with another writer
            if e.term_id:
                return e.term_id
            winner = self.term_store.find_term(entity.title, taxonomy)
            if winner is None:
                raise TermCreationFailed(
                    f"Term '{entity.title}' reported as existing but could not be found",
                    details={"entity_id": related_entity_id, "taxonomy": taxonomy},
                )
            return winner.id

        logger.debug(f"Created term {term.id} '{term.name}' in {taxonomy}")
        return term.id
