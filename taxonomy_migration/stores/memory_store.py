"""In-memory term and entity stores."""

import itertools
import re
import threading
from typing import Any, Dict, Iterable, List, Optional

from .base import BaseEntityStore, BaseTermStore
from ..exceptions import StoreError, TermCreationFailed, TermExists
from ..models.record import Entity, Term


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "term"


class InMemoryTermStore(BaseTermStore):
    """Thread-safe term store keyed by taxonomy and exact name."""

    def __init__(self, taxonomies: Iterable[str] = ()):
        self.taxonomies = set(taxonomies)
        self._terms: Dict[int, Term] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def register_taxonomy(self, taxonomy: str) -> None:
        self.taxonomies.add(taxonomy)

    def taxonomy_exists(self, taxonomy: str) -> bool:
        return taxonomy in self.taxonomies

    def find_term(self, name: str, taxonomy: str) -> Optional[Term]:
        with self._lock:
            for term in self._terms.values():
                if term.taxonomy == taxonomy and term.name == name:
                    return term
        return None

    def create_term(self, name: str, taxonomy: str, description: str = "") -> Term:
        if taxonomy not in self.taxonomies:
            raise TermCreationFailed(f"Invalid taxonomy: {taxonomy}")
        if not name or not name.strip():
            raise TermCreationFailed("A term name is required")

        # Check and insert under one lock so concurrent creators cannot both win
        with self._lock:
            for term in self._terms.values():
                if term.taxonomy == taxonomy and term.name == name:
                    raise TermExists(
                        f"A term with the name '{name}' already exists in {taxonomy}",
                        term_id=term.id,
                    )
            term = Term(
                id=next(self._ids),
                name=name,
                taxonomy=taxonomy,
                slug=slugify(name),
                description=description,
            )
            self._terms[term.id] = term
        return term

    def get_term(self, term_id: int) -> Optional[Term]:
        return self._terms.get(term_id)

    def list_terms(self, taxonomy: str) -> List[Term]:
        with self._lock:
            return [t for t in self._terms.values() if t.taxonomy == taxonomy]


class InMemoryEntityStore(BaseEntityStore):
    """Entity store holding entities and their term assignments in memory."""

    def __init__(self, post_types: Iterable[str] = ()):
        self.post_types = set(post_types)
        self._entities: Dict[int, Entity] = {}
        # (entity_id, taxonomy) -> ordered term ids
        self._assignments: Dict[tuple, List[int]] = {}
        self._lock = threading.Lock()

    def add_entity(self, entity_id: int, post_type: str, title: str = "") -> Entity:
        entity = Entity(id=entity_id, post_type=post_type, title=title)
        self._entities[entity_id] = entity
        self.post_types.add(post_type)
        return entity

    def post_type_exists(self, post_type: str) -> bool:
        return post_type in self.post_types

    def get_entity(self, entity_id: int) -> Optional[Entity]:
        return self._entities.get(entity_id)

    def list_entities(self, post_type: str) -> List[Entity]:
        return [e for e in self._entities.values() if e.post_type == post_type]

    def get_entity_terms(self, entity_id: int, taxonomy: str) -> List[int]:
        with self._lock:
            return list(self._assignments.get((entity_id, taxonomy), []))

    def set_entity_terms(
        self,
        entity_id: int,
        term_ids: List[int],
        taxonomy: str,
        append: bool = False
    ) -> List[int]:
        if entity_id not in self._entities:
            raise StoreError(f"Invalid post ID: {entity_id}")

        with self._lock:
            key = (entity_id, taxonomy)
            current = list(self._assignments.get(key, [])) if append else []
            for term_id in term_ids:
                if term_id not in current:
                    current.append(term_id)
            self._assignments[key] = current
            return list(current)

    def assignment_count(self, taxonomy: Optional[str] = None) -> int:
        """Count entity-term associations, optionally for one taxonomy."""
        with self._lock:
            return sum(
                len(ids) for (_, tax), ids in self._assignments.items()
                if taxonomy is None or tax == taxonomy
            )

    @classmethod
    def from_fixtures(cls, fixtures: Dict[str, Any]) -> "InMemoryEntityStore":
        """Create from a fixture dict: {"post_types": [...], "posts": [{id, post_type, title}]}."""
        store = cls(post_types=fixtures.get("post_types", []))
        for post in fixtures.get("posts", []):
            store.add_entity(int(post["id"]), post["post_type"], post.get("title", ""))
        return store
