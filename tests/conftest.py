"""Shared fixtures for the taxonomy migration tests."""

import pytest

from taxonomy_migration.controller import MigrationController
from taxonomy_migration.engine import MigrationEngine
from taxonomy_migration.models.config import MigrationConfig
from taxonomy_migration.services.option_store import InMemoryOptionStore
from taxonomy_migration.sources.memory_source import InMemoryRelationshipSource
from taxonomy_migration.stores.memory_store import InMemoryEntityStore, InMemoryTermStore

CONNECTION_TYPE = "related_products"
POST_TYPE = "product"
TAXONOMY = "product_tag"


@pytest.fixture
def config():
    return MigrationConfig(
        source_post_type=POST_TYPE,
        target_taxonomy=TAXONOMY,
        connection_type=CONNECTION_TYPE,
        batch_size=2,
        batch_delay=0,
    )


@pytest.fixture
def entity_store():
    store = InMemoryEntityStore()
    store.add_entity(10, POST_TYPE, "Alpha")
    store.add_entity(20, POST_TYPE, "Beta")
    store.add_entity(30, POST_TYPE, "Gamma")
    return store


@pytest.fixture
def term_store():
    return InMemoryTermStore([TAXONOMY])


@pytest.fixture
def source():
    """Three related_products connections plus one of another type."""
    src = InMemoryRelationshipSource()
    src.add(10, 20, CONNECTION_TYPE)
    src.add(10, 30, CONNECTION_TYPE)
    src.add(20, 30, CONNECTION_TYPE)
    src.add(30, 10, "accessories")
    return src


@pytest.fixture
def engine(config, source, term_store, entity_store):
    return MigrationEngine(config, source, term_store, entity_store)


@pytest.fixture
def controller(engine):
    return MigrationController(engine, InMemoryOptionStore())
