"""Migration engine - converts legacy connections into taxonomy terms."""

import logging
import threading
from typing import List, Optional

from .exceptions import (
    ConfigurationError,
    InvalidTransition,
    MigrationError,
)
from .models.config import (
    MigrationConfig,
    SourceType,
    TargetType,
    validate_batch_size,
)
from .models.migration import (
    STARTABLE,
    BatchResult,
    CancellationToken,
    MigrationOutcome,
    MigrationRun,
    MigrationStatistics,
    MigrationStatus,
    RollbackOutcome,
)
from .models.record import ConnectionResult, RelationshipRecord
from .services.run_log import RunLog
from .services.term_resolver import TermResolver
from .sources.base import BaseRelationshipSource
from .sources.file_source import FileRelationshipSource
from .sources.memory_source import InMemoryRelationshipSource
from .sources.sql_source import SQLRelationshipSource
from .stores.base import BaseEntityStore, BaseTermStore
from .stores.memory_store import InMemoryEntityStore, InMemoryTermStore
from .stores.wordpress import WordPressClient, WordPressEntityStore, WordPressTermStore

logger = logging.getLogger(__name__)


class MigrationEngine:
    """
    Migrates connections of one type into terms of one taxonomy.

    Handles:
    - Precondition checks
    - Per-connection migration with failure isolation
    - Checkpoints every batch_size connections, with cooperative pause/cancel
    - Batch protocol steps for external drivers
    - Rollback and read-only statistics

    The engine owns the run state machine and the run log. Collaborators are
    injected so the engine never reaches for global state.
    """

    def __init__(
        self,
        config: MigrationConfig,
        source: BaseRelationshipSource,
        term_store: BaseTermStore,
        entity_store: BaseEntityStore,
        run_log: Optional[RunLog] = None,
        run: Optional[MigrationRun] = None
    ):
        """
        Initialize the engine.

        Args:
            config: Migration configuration
            source: Legacy relationship source
            term_store: Store holding the target taxonomy
            entity_store: Store holding the source entities
            run_log: Log to append to (a new one by default)
            run: Existing run state to continue from
        """
        self.config = config
        self.source = source
        self.term_store = term_store
        self.entity_store = entity_store
        self.resolver = TermResolver(term_store, entity_store)
        self.log = run_log if run_log is not None else RunLog()
        self.run = run or MigrationRun(batch_size=config.batch_size, dry_run=config.dry_run)
        self._log_mark = 0

        # Batch protocol: one batch at a time, control requests deferred while it runs
        self._lock = threading.Lock()
        self._in_flight = False
        self._pause_requested = False
        self._cancel_requested = False

    @property
    def status(self) -> MigrationStatus:
        return self.run.status

    # =========================================================================
    # Preconditions
    # =========================================================================

    def initialize(self) -> bool:
        """
        Check prerequisites.

        Returns:
            True if the relationship source, target taxonomy and source post
            type are all available
        """
        self.log.info("Starting migration initialization")

        try:
            if not self.source.is_available():
                self.log.error("Relationship source is not available")
                return False

            if not self.term_store.taxonomy_exists(self.config.target_taxonomy):
                self.log.error(f"Target taxonomy does not exist: {self.config.target_taxonomy}")
                return False

            if not self.entity_store.post_type_exists(self.config.source_post_type):
                self.log.error(f"Source post type does not exist: {self.config.source_post_type}")
                return False

        except MigrationError as e:
            self.log.error(f"Initialization check failed: {e.message}")
            return False

        self.log.success("Initialization successful")
        return True

    def _fail_precondition(self) -> None:
        if self.run.can_transition(MigrationStatus.ERROR):
            self.run.transition(MigrationStatus.ERROR)

    def _load_connections(self) -> List[RelationshipRecord]:
        return self.source.list_connections(self.config.connection_type)

    # =========================================================================
    # Single connection
    # =========================================================================

    def migrate_connection(self, connection: RelationshipRecord, dry_run: bool = False) -> ConnectionResult:
        """
        Migrate a single connection.

        Args:
            connection: Connection to migrate
            dry_run: If True, only look terms up and never write

        Returns:
            ConnectionResult; failures are reported, not raised
        """
        post_id = connection.from_id
        related_post_id = connection.to_id
        taxonomy = self.config.target_taxonomy
        result = ConnectionResult(connection=connection, dry_run=dry_run)

        try:
            post = self.entity_store.get_entity(post_id)
        except MigrationError as e:
            self.log.error(f"Error loading post {post_id}: {e.message}")
            result.error, result.error_code = e.message, e.code
            return result

        if post is None or post.post_type != self.config.source_post_type:
            self.log.warning(f"Invalid post ID: {post_id}")
            result.error, result.error_code = f"Invalid post ID: {post_id}", "invalid_post"
            return result

        try:
            if dry_run:
                term_id = self.resolver.resolve_term(related_post_id, taxonomy)
            else:
                term_id = self.resolver.resolve_or_create_term(related_post_id, taxonomy)
        except MigrationError as e:
            self.log.error(f"Failed to create/get term for post ID: {related_post_id} ({e.message})")
            result.error, result.error_code = e.message, e.code
            return result

        result.term_id = term_id

        if dry_run:
            if term_id is None:
                self.log.info(f"[dry run] Would create a term for post {related_post_id} and assign it to post {post_id}")
            else:
                self.log.info(f"[dry run] Would assign term {term_id} to post {post_id}")
            result.success = True
            return result

        try:
            self.entity_store.set_entity_terms(post_id, [term_id], taxonomy, append=True)
        except MigrationError as e:
            self.log.error(f"Error assigning term to post {post_id}: {e.message}")
            result.error, result.error_code = e.message, e.code
            return result

        self.log.info(f"Migrated connection for post {post_id} to term {term_id}")
        result.success = True
        return result

    def _safe_migrate(self, connection: RelationshipRecord, dry_run: bool) -> ConnectionResult:
        """Migrate one connection, converting unexpected errors into a failed result."""
        try:
            return self.migrate_connection(connection, dry_run=dry_run)
        except Exception as e:
            self.log.error(f"Unexpected error migrating connection {connection.from_id} -> {connection.to_id}: {e}")
            logger.exception("Connection migration crashed")
            return ConnectionResult(
                connection=connection,
                dry_run=dry_run,
                error=str(e),
                error_code="unexpected_error",
            )

    # =========================================================================
    # Full runs
    # =========================================================================

    def migrate(
        self,
        batch_size: Optional[int] = None,
        token: Optional[CancellationToken] = None,
        dry_run: Optional[bool] = None
    ) -> MigrationOutcome:
        """
        Run the migration.

        Args:
            batch_size: Emit a checkpoint every batch_size connections (None: no checkpoints)
            token: Pause/cancel signal checked at checkpoints
            dry_run: Override the configured dry-run flag

        Returns:
            MigrationOutcome; posts_failed > 0 does not make the run a failure
        """
        if batch_size is not None:
            batch_size = validate_batch_size(batch_size)
        dry_run = self.config.dry_run if dry_run is None else dry_run

        self._log_mark = len(self.log)
        self.log.info("Starting migration process")

        if self.run.status not in STARTABLE:
            self.log.error(f"Cannot start migration in status: {self.run.status.value}")
            return self._outcome(False, f"Cannot start migration in status: {self.run.status.value}")

        if not self.initialize():
            self._fail_precondition()
            return self._outcome(False, "Migration initialization failed")

        try:
            connections = self._load_connections()
        except MigrationError as e:
            self.log.error(f"Could not load connections: {e.message}")
            self._fail_precondition()
            return self._outcome(False, "Migration initialization failed")

        self.run.begin(batch_size, dry_run)
        self.run.progress.total = len(connections)

        if not connections:
            self.log.warning(f"No connections found for type: {self.config.connection_type}")
            self.run.transition(MigrationStatus.COMPLETED)
            return self._outcome(True, "No connections to migrate")

        self.log.info(f"Found {len(connections)} connections")
        return self._run_loop(connections, token)

    def resume(self, token: Optional[CancellationToken] = None) -> MigrationOutcome:
        """
        Continue a paused run from where it stopped.

        Returns:
            MigrationOutcome with cumulative counts
        """
        if self.run.status != MigrationStatus.PAUSED:
            self.log.error(f"Cannot resume migration in status: {self.run.status.value}")
            return self._outcome(False, f"Cannot resume migration in status: {self.run.status.value}")

        self.log.info(f"Resuming migration at item {self.run.progress.processed}")

        if not self.initialize():
            self._fail_precondition()
            return self._outcome(False, "Migration initialization failed")

        try:
            connections = self._load_connections()
        except MigrationError as e:
            self.log.error(f"Could not load connections: {e.message}")
            self._fail_precondition()
            return self._outcome(False, "Migration initialization failed")

        if len(connections) != self.run.progress.total:
            self.log.warning(
                f"Connection count changed from {self.run.progress.total} to {len(connections)} while paused"
            )
            self.run.progress.total = len(connections)

        self.run.transition(MigrationStatus.IN_PROGRESS)
        return self._run_loop(connections, token)

    def _run_loop(
        self,
        connections: List[RelationshipRecord],
        token: Optional[CancellationToken]
    ) -> MigrationOutcome:
        progress = self.run.progress
        batch_size = self.run.batch_size

        while progress.processed < len(connections):
            result = self._safe_migrate(connections[progress.processed], self.run.dry_run)
            progress.processed += 1
            if result.success:
                progress.migrated += 1
            else:
                progress.failed += 1

            if batch_size and progress.processed % batch_size == 0:
                self.log.info(f"Batch processed: {progress.processed} items")

                if token and progress.processed < len(connections):
                    if token.cancelled:
                        self.run.transition(MigrationStatus.CANCELLED)
                        self.log.warning(f"Migration cancelled after {progress.processed} items")
                        return self._outcome(True, "Migration cancelled")
                    if token.paused:
                        self.run.transition(MigrationStatus.PAUSED)
                        self.log.info(f"Migration paused after {progress.processed} items")
                        return self._outcome(True, "Migration paused")

        self.log.success(f"Migration completed. Migrated: {progress.migrated}, Failed: {progress.failed}")
        self.run.transition(MigrationStatus.COMPLETED)
        return self._outcome(True, "Migration completed")

    def _outcome(self, success: bool, message: str) -> MigrationOutcome:
        return MigrationOutcome(
            success=success,
            message=message,
            posts_migrated=self.run.progress.migrated,
            posts_failed=self.run.progress.failed,
            status=self.run.status,
            log=self.log.since(self._log_mark),
        )

    # =========================================================================
    # Batch protocol
    # =========================================================================

    def process_batch(self, offset: int, batch_size: int, dry_run: Optional[bool] = None) -> BatchResult:
        """
        Process one batch of connections for an external driver.

        A call at offset 0 while no run is active starts a new run. Later
        calls must continue where the previous batch stopped, and the run
        keeps the dry-run mode it was started with. The run completes when
        a batch reaches the end of the connection list.

        Args:
            offset: Index of the first connection to process
            batch_size: Number of connections to process
            dry_run: Dry-run mode for a new run (None: configured default)

        Returns:
            BatchResult with processed/migrated/progress/total/continue

        Raises:
            ConfigurationError: If offset or batch_size is out of range
            InvalidTransition: If the run cannot take this batch
            MigrationError: If the preconditions fail
        """
        batch_size = validate_batch_size(batch_size)
        if offset < 0:
            raise ConfigurationError(f"Offset must not be negative, got {offset}")

        with self._lock:
            status = self.run.status
            self._check_batch(status, offset, dry_run)
            self._in_flight = True

        try:
            if status in STARTABLE:
                self._log_mark = len(self.log)
                self.log.info("Starting migration process")
                if not self.initialize():
                    self._fail_precondition()
                    raise MigrationError("Migration initialization failed")
                with self._lock:
                    self._pause_requested = self._cancel_requested = False
                self.run.begin(batch_size, self.config.dry_run if dry_run is None else dry_run)

            return self._run_batch(offset, batch_size)
        except BaseException:
            with self._lock:
                self._in_flight = False
            raise

    def _check_batch(self, status: MigrationStatus, offset: int, dry_run: Optional[bool]) -> None:
        if self._in_flight:
            raise InvalidTransition("Another batch is still being processed")

        if status in (MigrationStatus.PAUSED, MigrationStatus.COMPLETED):
            raise InvalidTransition(
                f"Cannot process a batch while migration is {status.value}",
                details={"status": status.value},
            )

        if status in STARTABLE:
            if offset != 0:
                raise InvalidTransition(
                    f"Cannot continue a {status.value} migration at offset {offset}; start again at offset 0",
                    details={"status": status.value, "offset": offset},
                )
            return

        expected = self.run.progress.processed
        if offset != expected:
            raise InvalidTransition(
                f"Batch offset {offset} does not match migration progress {expected}",
                details={"offset": offset, "expected_offset": expected},
            )
        if dry_run is not None and dry_run != self.run.dry_run:
            raise InvalidTransition(
                "Cannot change dry run mode of a migration in progress",
                details={"dry_run": self.run.dry_run},
            )

    def _run_batch(self, offset: int, batch_size: int) -> BatchResult:
        try:
            connections = self._load_connections()
        except MigrationError as e:
            self.log.error(f"Could not load connections: {e.message}")
            self._fail_precondition()
            raise

        total = len(connections)
        self.run.progress.total = total
        result = BatchResult(total=total)

        for connection in connections[offset:offset + batch_size]:
            connection_result = self._safe_migrate(connection, self.run.dry_run)
            result.results.append(connection_result)
            result.processed += 1
            if connection_result.success:
                result.migrated += 1
            else:
                result.failed += 1

        progress = self.run.progress
        progress.processed = min(offset + result.processed, total)
        progress.migrated += result.migrated
        progress.failed += result.failed

        result.progress = progress.processed
        result.has_more = progress.processed < total

        self.log.info(f"Batch processed: {progress.processed} items")

        with self._lock:
            self._in_flight = False
            pause, cancel = self._pause_requested, self._cancel_requested
            self._pause_requested = self._cancel_requested = False

            if not result.has_more:
                self.log.success(
                    f"Migration completed. Migrated: {progress.migrated}, Failed: {progress.failed}"
                )
                self.run.transition(MigrationStatus.COMPLETED)
            elif cancel:
                self.run.transition(MigrationStatus.CANCELLED)
                self.log.warning(f"Migration cancelled at item {progress.processed}")
            elif pause:
                self.run.transition(MigrationStatus.PAUSED)
                self.log.info(f"Migration paused at item {progress.processed}")

        return result

    # =========================================================================
    # Control
    # =========================================================================

    def pause(self) -> None:
        """Mark the active run paused, after the batch in flight if there is one."""
        with self._lock:
            if self._in_flight:
                self._pause_requested = True
                self.log.info("Pause requested; it takes effect when the current batch finishes")
                return
            self.run.transition(MigrationStatus.PAUSED)
            self.log.info(f"Migration paused at item {self.run.progress.processed}")

    def unpause(self) -> None:
        """Mark a paused run active again (the driver continues issuing batches)."""
        if self.run.status != MigrationStatus.PAUSED:
            raise InvalidTransition(f"Cannot resume migration in status: {self.run.status.value}")
        self.run.transition(MigrationStatus.IN_PROGRESS)
        self.log.info(f"Resuming migration at item {self.run.progress.processed}")

    def cancel(self) -> None:
        """Cancel an active or paused run, after the batch in flight if there is one."""
        with self._lock:
            if self.run.status not in (MigrationStatus.IN_PROGRESS, MigrationStatus.PAUSED):
                raise InvalidTransition(f"Cannot cancel migration in status: {self.run.status.value}")
            if self._in_flight:
                self._cancel_requested = True
                self.log.warning("Cancel requested; it takes effect when the current batch finishes")
                return
            self.run.transition(MigrationStatus.CANCELLED)
            self.log.warning(f"Migration cancelled at item {self.run.progress.processed}")

    def reset(self) -> None:
        """Return the run to not_started."""
        self.run.reset()
        self.log.info("Migration reset")

    # =========================================================================
    # Rollback and statistics
    # =========================================================================

    def rollback(self) -> RollbackOutcome:
        """
        Remove every target-taxonomy term from every entity of the source post type.

        Terms themselves are kept. A failure on one entity only lowers the
        cleared count; the rollback as a whole always succeeds.

        Raises:
            InvalidTransition: If a run is in progress
        """
        if self.run.status == MigrationStatus.IN_PROGRESS:
            raise InvalidTransition("Cannot roll back while a migration is in progress")

        mark = len(self.log)
        self.log.warning("Starting migration rollback")

        try:
            posts = self.entity_store.list_entities(self.config.source_post_type)
        except MigrationError as e:
            self.log.error(f"Could not list {self.config.source_post_type} posts: {e.message}")
            posts = []

        outcome = RollbackOutcome()
        for post in posts:
            try:
                self.entity_store.set_entity_terms(post.id, [], self.config.target_taxonomy, append=False)
                outcome.posts_cleared += 1
            except MigrationError as e:
                outcome.posts_failed += 1
                self.log.error(f"Failed to clear terms of post {post.id}: {e.message}")
            except Exception as e:
                outcome.posts_failed += 1
                self.log.error(f"Unexpected error clearing terms of post {post.id}: {e}")
                logger.exception("Post rollback crashed")

        self.log.success(f"Rollback completed. Removed term assignments from {outcome.posts_cleared} posts")

        if self.run.status != MigrationStatus.NOT_STARTED:
            self.run.reset()

        outcome.log = self.log.since(mark)
        return outcome

    def get_statistics(self) -> MigrationStatistics:
        """
        Summarize the connections to migrate without changing anything.

        Raises:
            SourceUnavailable: If the relationship source cannot be queried
        """
        connections = self._load_connections()
        posts = {c.from_id for c in connections} | {c.to_id for c in connections}

        return MigrationStatistics(
            total_connections=len(connections),
            total_posts_involved=len(posts),
            connection_type=self.config.connection_type,
            source_post_type=self.config.source_post_type,
            target_taxonomy=self.config.target_taxonomy,
        )


def create_source(config: MigrationConfig) -> BaseRelationshipSource:
    """Create the relationship source described by the configuration."""
    source = config.source
    if source.type == SourceType.MEMORY:
        return InMemoryRelationshipSource(source.rows)
    elif source.type == SourceType.FILE:
        return FileRelationshipSource(source.file_path)
    elif source.type == SourceType.SQL:
        return SQLRelationshipSource(source.database_url, table_prefix=source.table_prefix)
    else:
        raise ConfigurationError(f"Unsupported source type: {source.type}")


def create_stores(config: MigrationConfig):
    """Create the (term_store, entity_store) pair described by the configuration."""
    target = config.target

    if target.type == TargetType.MEMORY:
        fixtures = target.fixtures
        term_store = InMemoryTermStore(fixtures.get("taxonomies", [config.target_taxonomy]))
        for term in fixtures.get("terms", []):
            term_store.create_term(term["name"], term.get("taxonomy", config.target_taxonomy),
                                   term.get("description", ""))
        entity_store = InMemoryEntityStore.from_fixtures(fixtures)
        return term_store, entity_store

    elif target.type == TargetType.WORDPRESS:
        client = WordPressClient(
            base_url=target.base_url,
            username=target.username,
            api_key=target.api_key,
            timeout=config.request_timeout,
            rate_limit=target.rate_limit,
            max_read_retries=target.max_read_retries,
        )
        term_store = WordPressTermStore(client)
        lookup = [config.source_post_type] + [
            t for t in target.lookup_post_types if t != config.source_post_type
        ]
        entity_store = WordPressEntityStore(client, lookup, term_store)
        return term_store, entity_store

    else:
        raise ConfigurationError(f"Unsupported target type: {target.type}")


def build_engine(config: MigrationConfig, run_log: Optional[RunLog] = None,
                 run: Optional[MigrationRun] = None) -> MigrationEngine:
    """Wire an engine and its collaborators from configuration."""
    term_store, entity_store = create_stores(config)
    return MigrationEngine(
        config,
        source=create_source(config),
        term_store=term_store,
        entity_store=entity_store,
        run_log=run_log,
        run=run,
    )
