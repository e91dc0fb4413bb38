"""Tests for the migration engine.

Tests cover:
- Full runs with checkpoints, failure isolation and dry runs
- Precondition failures
- Cooperative pause, resume and cancel
- Batch protocol steps
- Rollback and statistics
"""

from unittest.mock import patch

import pytest

from taxonomy_migration.engine import MigrationEngine, build_engine
from taxonomy_migration.exceptions import ConfigurationError, InvalidTransition, MigrationError, StoreError
from taxonomy_migration.models.config import MigrationConfig
from taxonomy_migration.models.migration import CancellationToken, MigrationStatus
from taxonomy_migration.models.record import LogLevel
from taxonomy_migration.services.run_log import RunLog
from taxonomy_migration.sources.memory_source import InMemoryRelationshipSource
from taxonomy_migration.stores.memory_store import InMemoryTermStore

TAXONOMY = "product_tag"


def _messages(outcome):
    return [entry.message for entry in outcome.log]


# ── Tests: Full migration ────────────────────────────────────────────────


class TestMigrate:

    def test_migrates_every_connection(self, engine, term_store, entity_store):
        outcome = engine.migrate(batch_size=2)

        assert outcome.success
        assert outcome.posts_migrated == 3
        assert outcome.posts_failed == 0
        assert outcome.status == MigrationStatus.COMPLETED

        beta = term_store.find_term("Beta", TAXONOMY)
        gamma = term_store.find_term("Gamma", TAXONOMY)
        assert entity_store.get_entity_terms(10, TAXONOMY) == [beta.id, gamma.id]
        assert entity_store.get_entity_terms(20, TAXONOMY) == [gamma.id]
        # One term per distinct related post
        assert len(term_store.list_terms(TAXONOMY)) == 2

    def test_checkpoint_after_each_batch(self, engine):
        messages = _messages(engine.migrate(batch_size=2))

        checkpoint = messages.index("Batch processed: 2 items")
        assert messages[checkpoint - 1] == "Migrated connection for post 10 to term 2"
        assert "Batch processed: 3 items" not in messages
        assert messages[-1] == "Migration completed. Migrated: 3, Failed: 0"

    def test_log_sequence(self, engine):
        messages = _messages(engine.migrate())

        assert messages[:3] == [
            "Starting migration process",
            "Starting migration initialization",
            "Initialization successful",
        ]
        assert "Found 3 connections" in messages

    def test_counts_always_add_up(self, engine, source):
        source.add(999, 20, "related_products")
        source.add(10, 888, "related_products")

        outcome = engine.migrate(batch_size=3)

        assert outcome.posts_migrated + outcome.posts_failed == 5
        assert outcome.posts_failed == 2
        assert outcome.success

    def test_invalid_source_post_is_skipped(self, engine, source, entity_store):
        entity_store.add_entity(40, "page", "About")
        source.add(40, 20, "related_products")

        outcome = engine.migrate()

        assert outcome.posts_failed == 1
        assert "Invalid post ID: 40" in _messages(outcome)
        assert entity_store.get_entity_terms(40, TAXONOMY) == []

    def test_missing_related_post_is_reported(self, engine, source):
        source.add(10, 888, "related_products")

        outcome = engine.migrate()

        errors = [e.message for e in outcome.log if e.level == LogLevel.ERROR]
        assert any(m.startswith("Failed to create/get term for post ID: 888") for m in errors)

    def test_rerun_is_idempotent(self, engine, term_store, entity_store):
        engine.migrate()
        before = entity_store.get_entity_terms(10, TAXONOMY)
        engine.reset()

        outcome = engine.migrate()

        assert outcome.posts_migrated == 3
        assert entity_store.get_entity_terms(10, TAXONOMY) == before
        assert len(term_store.list_terms(TAXONOMY)) == 2

    def test_preserves_unrelated_assignments(self, engine, term_store, entity_store):
        manual = term_store.create_term("Manual", TAXONOMY)
        entity_store.set_entity_terms(10, [manual.id], TAXONOMY)

        engine.migrate()

        assert entity_store.get_entity_terms(10, TAXONOMY)[0] == manual.id
        assert len(entity_store.get_entity_terms(10, TAXONOMY)) == 3

    def test_unexpected_error_is_isolated(self, engine, entity_store):
        original = entity_store.set_entity_terms
        calls = []

        def flaky(entity_id, term_ids, taxonomy, append=False):
            calls.append(entity_id)
            if len(calls) == 1:
                raise RuntimeError("database went away")
            return original(entity_id, term_ids, taxonomy, append=append)

        with patch.object(entity_store, "set_entity_terms", side_effect=flaky):
            outcome = engine.migrate()

        assert outcome.posts_failed == 1
        assert outcome.posts_migrated == 2
        assert outcome.status == MigrationStatus.COMPLETED

    def test_no_connections(self, config, term_store, entity_store):
        engine = MigrationEngine(config, InMemoryRelationshipSource(), term_store, entity_store)

        outcome = engine.migrate()

        assert outcome.success
        assert outcome.posts_migrated == 0
        assert outcome.status == MigrationStatus.COMPLETED
        assert "No connections found for type: related_products" in _messages(outcome)

    def test_invalid_batch_size(self, engine):
        with pytest.raises(ConfigurationError):
            engine.migrate(batch_size=0)

    def test_completed_run_cannot_restart_without_reset(self, engine):
        engine.migrate()
        outcome = engine.migrate()

        assert not outcome.success
        assert outcome.status == MigrationStatus.COMPLETED


class TestDryRun:

    def test_writes_nothing(self, engine, term_store, entity_store):
        outcome = engine.migrate(dry_run=True)

        assert outcome.success
        assert outcome.posts_migrated == 3
        assert term_store.list_terms(TAXONOMY) == []
        assert entity_store.assignment_count() == 0
        assert engine.run.dry_run

    def test_reports_existing_terms(self, engine, term_store):
        beta = term_store.create_term("Beta", TAXONOMY)

        messages = _messages(engine.migrate(dry_run=True))

        assert f"[dry run] Would assign term {beta.id} to post 10" in messages
        assert "[dry run] Would create a term for post 30 and assign it to post 10" in messages


# ── Tests: Preconditions ─────────────────────────────────────────────────


class TestPreconditions:

    def test_missing_taxonomy(self, config, source, entity_store):
        engine = MigrationEngine(config, source, InMemoryTermStore(), entity_store)

        outcome = engine.migrate()

        assert not outcome.success
        assert outcome.message == "Migration initialization failed"
        assert outcome.status == MigrationStatus.ERROR
        assert "Target taxonomy does not exist: product_tag" in _messages(outcome)

    def test_unavailable_source(self, config, term_store, entity_store):
        source = InMemoryRelationshipSource(available=False)
        engine = MigrationEngine(config, source, term_store, entity_store)

        outcome = engine.migrate()

        assert outcome.status == MigrationStatus.ERROR
        assert "Relationship source is not available" in _messages(outcome)

    def test_error_run_can_start_again(self, config, source, entity_store):
        term_store = InMemoryTermStore()
        engine = MigrationEngine(config, source, term_store, entity_store)
        engine.migrate()

        term_store.register_taxonomy(TAXONOMY)
        outcome = engine.migrate()

        assert outcome.success
        assert outcome.status == MigrationStatus.COMPLETED


# ── Tests: Pause / resume / cancel ───────────────────────────────────────


class TestCooperativeControl:

    def test_pause_at_checkpoint_and_resume(self, engine, source, entity_store):
        source.add(20, 10, "related_products")
        token = CancellationToken()
        token.request_pause()

        paused = engine.migrate(batch_size=2, token=token)

        assert paused.status == MigrationStatus.PAUSED
        assert engine.run.progress.processed == 2

        token.clear()
        resumed = engine.resume(token)

        assert resumed.status == MigrationStatus.COMPLETED
        assert resumed.posts_migrated == 4
        assert engine.run.progress.processed == 4

    def test_cancel_at_checkpoint(self, engine):
        token = CancellationToken()
        token.request_cancel()

        outcome = engine.migrate(batch_size=1, token=token)

        assert outcome.status == MigrationStatus.CANCELLED
        assert outcome.posts_migrated == 1
        assert "Migration cancelled after 1 items" in _messages(outcome)

    def test_token_ignored_after_last_item(self, engine):
        token = CancellationToken()
        token.request_cancel()

        outcome = engine.migrate(batch_size=3, token=token)

        assert outcome.status == MigrationStatus.COMPLETED

    def test_resume_requires_paused(self, engine):
        outcome = engine.resume()
        assert not outcome.success

    def test_cancel_requires_active_run(self, engine):
        with pytest.raises(InvalidTransition):
            engine.cancel()


# ── Tests: Batch protocol ────────────────────────────────────────────────


class TestProcessBatch:

    def test_batches_until_done(self, engine):
        first = engine.process_batch(0, 2)

        assert first.to_dict() == {
            "processed": 2, "migrated": 2, "failed": 0,
            "progress": 2, "total": 3, "continue": True,
        }
        assert engine.status == MigrationStatus.IN_PROGRESS

        second = engine.process_batch(2, 2)

        assert second.processed == 1
        assert second.has_more is False
        assert engine.status == MigrationStatus.COMPLETED
        assert engine.run.progress.migrated == 3

    def test_fresh_run_must_start_at_offset_zero(self, engine, entity_store):
        with pytest.raises(InvalidTransition) as exc_info:
            engine.process_batch(2, 2)

        assert exc_info.value.details["offset"] == 2
        assert engine.status == MigrationStatus.NOT_STARTED
        assert entity_store.assignment_count(TAXONOMY) == 0

    def test_dry_run_kept_for_later_batches(self, engine, term_store, entity_store):
        engine.process_batch(0, 2, dry_run=True)

        result = engine.process_batch(2, 2)

        assert result.migrated == 1
        assert engine.run.dry_run is True
        assert engine.status == MigrationStatus.COMPLETED
        assert term_store.list_terms(TAXONOMY) == []
        assert entity_store.assignment_count(TAXONOMY) == 0

    def test_dry_run_mode_cannot_change_mid_run(self, engine, term_store):
        engine.process_batch(0, 2, dry_run=True)

        with pytest.raises(InvalidTransition):
            engine.process_batch(2, 2, dry_run=False)

        assert engine.run.progress.processed == 2
        assert term_store.list_terms(TAXONOMY) == []

    def test_batch_after_cancel_does_not_restart(self, engine, entity_store):
        engine.process_batch(0, 1)
        engine.cancel()
        assignments = entity_store.assignment_count(TAXONOMY)

        with pytest.raises(InvalidTransition):
            engine.process_batch(2, 2)

        assert engine.status == MigrationStatus.CANCELLED
        assert engine.run.progress.processed == 1
        assert entity_store.assignment_count(TAXONOMY) == assignments

    def test_replayed_offset_is_rejected(self, engine):
        engine.process_batch(0, 2)

        with pytest.raises(InvalidTransition) as exc_info:
            engine.process_batch(0, 2)

        assert exc_info.value.details["expected_offset"] == 2
        assert engine.run.progress.migrated == 2
        assert engine.run.progress.processed == 2

    def test_pause_during_last_batch_completes(self, engine, entity_store):
        engine.process_batch(0, 2)
        assign = entity_store.set_entity_terms

        def pause_then_assign(*args, **kwargs):
            engine.pause()
            return assign(*args, **kwargs)

        with patch.object(entity_store, "set_entity_terms", side_effect=pause_then_assign):
            result = engine.process_batch(2, 2)

        assert result.has_more is False
        assert engine.status == MigrationStatus.COMPLETED
        assert engine.run.progress.migrated == 3

    def test_pause_during_batch_applies_after_it(self, engine, entity_store):
        assign = entity_store.set_entity_terms

        def pause_then_assign(*args, **kwargs):
            engine.pause()
            return assign(*args, **kwargs)

        with patch.object(entity_store, "set_entity_terms", side_effect=pause_then_assign):
            result = engine.process_batch(0, 1)

        assert result.migrated == 1
        assert result.has_more is True
        assert engine.status == MigrationStatus.PAUSED
        assert engine.log.recent(1)[0].message == "Migration paused at item 1"

        engine.unpause()
        engine.process_batch(1, 2)
        assert engine.status == MigrationStatus.COMPLETED

    def test_cancel_during_batch_applies_after_it(self, engine, entity_store):
        assign = entity_store.set_entity_terms

        def cancel_then_assign(*args, **kwargs):
            engine.cancel()
            return assign(*args, **kwargs)

        with patch.object(entity_store, "set_entity_terms", side_effect=cancel_then_assign):
            result = engine.process_batch(0, 1)

        assert result.migrated == 1
        assert engine.status == MigrationStatus.CANCELLED
        assert engine.run.progress.processed == 1

    def test_paused_run_rejects_batches(self, engine):
        engine.process_batch(0, 1)
        engine.pause()

        with pytest.raises(InvalidTransition):
            engine.process_batch(1, 1)

    def test_failed_preconditions_raise(self, config, source, entity_store):
        engine = MigrationEngine(config, source, InMemoryTermStore(), entity_store)

        with pytest.raises(MigrationError):
            engine.process_batch(0, 2)
        assert engine.status == MigrationStatus.ERROR

    def test_negative_offset(self, engine):
        with pytest.raises(ConfigurationError):
            engine.process_batch(-1, 2)


# ── Tests: Rollback and statistics ───────────────────────────────────────


class TestRollback:

    def test_clears_assignments_and_keeps_terms(self, engine, term_store, entity_store):
        engine.migrate()

        outcome = engine.rollback()

        assert outcome.success
        assert outcome.posts_cleared == 3
        assert entity_store.assignment_count(TAXONOMY) == 0
        assert len(term_store.list_terms(TAXONOMY)) == 2
        assert engine.status == MigrationStatus.NOT_STARTED
        assert outcome.log[-1].message == "Rollback completed. Removed term assignments from 3 posts"

    def test_rejected_while_in_progress(self, engine):
        engine.process_batch(0, 1)
        with pytest.raises(InvalidTransition):
            engine.rollback()

    def test_failure_on_one_post_is_isolated(self, engine, entity_store):
        engine.migrate()
        clear = entity_store.set_entity_terms

        def fail_for_beta(entity_id, *args, **kwargs):
            if entity_id == 20:
                raise StoreError("Database unavailable")
            return clear(entity_id, *args, **kwargs)

        with patch.object(entity_store, "set_entity_terms", side_effect=fail_for_beta):
            outcome = engine.rollback()

        assert outcome.success
        assert outcome.posts_cleared == 2
        assert outcome.posts_failed == 1
        assert entity_store.get_entity_terms(10, TAXONOMY) == []
        assert entity_store.get_entity_terms(20, TAXONOMY) != []
        assert "Failed to clear terms of post 20: Database unavailable" in _messages(outcome)
        assert outcome.log[-1].message == "Rollback completed. Removed term assignments from 2 posts"

    def test_unexpected_error_on_one_post_is_isolated(self, engine, entity_store):
        engine.migrate()
        clear = entity_store.set_entity_terms

        def crash_for_gamma(entity_id, *args, **kwargs):
            if entity_id == 30:
                raise ValueError("bad term list")
            return clear(entity_id, *args, **kwargs)

        with patch.object(entity_store, "set_entity_terms", side_effect=crash_for_gamma):
            outcome = engine.rollback()

        assert outcome.success
        assert outcome.posts_cleared == 2
        assert outcome.posts_failed == 1
        assert engine.status == MigrationStatus.NOT_STARTED


class TestStatistics:

    def test_counts_distinct_posts(self, engine):
        stats = engine.get_statistics()

        assert stats.total_connections == 3
        assert stats.total_posts_involved == 3
        assert stats.connection_type == "related_products"

    def test_empty_type(self, config, term_store, entity_store):
        engine = MigrationEngine(config, InMemoryRelationshipSource(), term_store, entity_store)
        stats = engine.get_statistics()

        assert stats.total_connections == 0
        assert stats.total_posts_involved == 0


# ── Tests: Wiring ────────────────────────────────────────────────────────


class TestBuildEngine:

    def test_from_memory_fixtures(self):
        config = MigrationConfig.from_dict({
            "source_post_type": "product",
            "target_taxonomy": TAXONOMY,
            "connection_type": "related_products",
            "source": {"rows": [{"p2p_from": 1, "p2p_to": 2, "p2p_type": "related_products"}]},
            "target": {"fixtures": {"posts": [
                {"id": 1, "post_type": "product", "title": "One"},
                {"id": 2, "post_type": "product", "title": "Two"},
            ]}},
        })
        log = RunLog()
        engine = build_engine(config, run_log=log)

        outcome = engine.migrate()

        assert outcome.posts_migrated == 1
        assert engine.log is log
        assert engine.entity_store.get_entity_terms(1, TAXONOMY) == [1]
