"""Control surface - the batch protocol driver over the migration engine."""

import logging
import time
from typing import Any, Callable, Dict, List, Optional

from .engine import MigrationEngine
from .exceptions import ConfigurationError, InvalidSettings, MigrationError
from .models.config import validate_batch_size
from .models.migration import CancellationToken, MigrationRun, MigrationStatus
from .services.option_store import InMemoryOptionStore, OptionStore

logger = logging.getLogger(__name__)

STATUS_OPTION = "p2p_taxonomy_migration_status"
PROGRESS_OPTION = "p2p_taxonomy_migration_progress"
LOG_OPTION = "p2p_taxonomy_migration_log"
BATCH_SIZE_OPTION = "p2p_taxonomy_migration_batch_size"
RUN_OPTION = "p2p_taxonomy_migration_run"

# Persisted log history kept across runs
LOG_HISTORY_LIMIT = 1000


def ok(data: Any = None) -> Dict[str, Any]:
    return {"success": True, "data": data if data is not None else {}}


def fail(message: str) -> Dict[str, Any]:
    return {"success": False, "data": {"message": message}}


class MigrationController:
    """
    Drives the engine for an external controller and persists its state.

    Every operation returns a {success, data} envelope. Status, progress and
    log are written to the option store after each operation so a stateless
    front end (or a restarted process) can pick them up.
    """

    def __init__(self, engine: MigrationEngine, options: Optional[OptionStore] = None):
        """
        Initialize the controller.

        Args:
            engine: Engine to drive
            options: Key-value store for status/progress/log/settings
        """
        self.engine = engine
        self.config = engine.config
        self.options = options or InMemoryOptionStore()
        self._log_cursor = len(engine.log)
        self._restore()

    def _restore(self) -> None:
        """Load a previously persisted run into the engine."""
        run_data = self.options.get(RUN_OPTION)
        if run_data:
            self.engine.run = MigrationRun.from_dict(run_data)
            logger.info(f"Restored migration run {self.engine.run.id} ({self.engine.run.status.value})")

    def _persist(self) -> None:
        run = self.engine.run
        self.options.set(STATUS_OPTION, run.status.value)
        self.options.set(PROGRESS_OPTION, run.progress.to_dict())
        self.options.set(RUN_OPTION, run.to_dict())

        new_entries = self.engine.log.since(self._log_cursor)
        if new_entries:
            history = list(self.options.get(LOG_OPTION, []))
            history.extend(e.to_dict() for e in new_entries)
            self.options.set(LOG_OPTION, history[-LOG_HISTORY_LIMIT:])
            self._log_cursor = len(self.engine.log)

    def _status_data(self) -> Dict[str, Any]:
        run = self.engine.run
        return {
            "status": run.status.value,
            "progress": run.progress.to_dict(),
            "dry_run": run.dry_run,
        }

    # =========================================================================
    # Settings
    # =========================================================================

    @property
    def batch_size(self) -> int:
        return int(self.options.get(BATCH_SIZE_OPTION, self.config.batch_size))

    def save_settings(self, batch_size: Any) -> Dict[str, Any]:
        """
        Persist the batch size setting.

        Raises:
            InvalidSettings: If batch_size is not an integer in [1, 1000]
        """
        try:
            size = validate_batch_size(batch_size)
        except ConfigurationError as e:
            raise InvalidSettings(e.message)
        self.options.set(BATCH_SIZE_OPTION, size)
        self.engine.log.success(f"Settings saved (batch size {size})")
        self._persist()
        return ok({"batch_size": size})

    # =========================================================================
    # Batch protocol
    # =========================================================================

    def get_mappings(self) -> Dict[str, Any]:
        """Preview of what the migration maps to what."""
        try:
            stats = self.engine.get_statistics()
        except MigrationError as e:
            return fail(e.message)

        return ok([{
            "post_type": stats.source_post_type,
            "relationship": stats.connection_type,
            "mapped_taxonomy": stats.target_taxonomy,
            "count": stats.total_connections,
        }])

    def process_batch(
        self,
        offset: int,
        batch_size: Optional[int] = None,
        dry_run: Optional[bool] = None
    ) -> Dict[str, Any]:
        """
        Process one batch.

        A run in progress keeps its own dry-run mode; dry_run only applies
        to the batch that starts a run.

        Returns:
            {success, data: {processed, migrated, failed, progress, total, continue}}
            or {success: false, data: {message}}
        """
        batch_size = batch_size or self.batch_size

        try:
            result = self.engine.process_batch(offset, batch_size, dry_run=dry_run)
        except MigrationError as e:
            return fail(e.message)
        finally:
            self._persist()

        return ok(result.to_dict())

    def start(self, dry_run: Optional[bool] = None, batch_size: Optional[int] = None) -> Dict[str, Any]:
        """Start a new run by processing its first batch."""
        if self.engine.status not in (MigrationStatus.NOT_STARTED, MigrationStatus.CANCELLED,
                                      MigrationStatus.ERROR):
            return fail(f"Cannot start migration in status: {self.engine.status.value}")
        return self.process_batch(0, batch_size, dry_run)

    def pause(self) -> Dict[str, Any]:
        return self._control(self.engine.pause)

    def resume(self) -> Dict[str, Any]:
        """Resume a paused run; data.offset is where the driver continues."""
        response = self._control(self.engine.unpause)
        if response["success"]:
            response["data"]["offset"] = self.engine.run.progress.processed
        return response

    def cancel(self) -> Dict[str, Any]:
        return self._control(self.engine.cancel)

    def reset(self) -> Dict[str, Any]:
        return self._control(self.engine.reset)

    def _control(self, action: Callable[[], None]) -> Dict[str, Any]:
        try:
            action()
        except MigrationError as e:
            return fail(e.message)
        finally:
            self._persist()
        return ok(self._status_data())

    # =========================================================================
    # Reporting
    # =========================================================================

    def rollback(self) -> Dict[str, Any]:
        try:
            outcome = self.engine.rollback()
        except MigrationError as e:
            return fail(e.message)
        finally:
            self._persist()
        return ok(outcome.to_dict())

    def statistics(self) -> Dict[str, Any]:
        try:
            return ok(self.engine.get_statistics().to_dict())
        except MigrationError as e:
            return fail(e.message)

    def status(self) -> Dict[str, Any]:
        return ok(self._status_data())

    def get_log(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Most recent persisted log entries, oldest first."""
        limit = limit or self.config.log_display_limit
        history = self.options.get(LOG_OPTION, [])
        return list(history[-limit:]) if limit > 0 else []

    # =========================================================================
    # Local driver
    # =========================================================================

    def run(
        self,
        token: Optional[CancellationToken] = None,
        dry_run: Optional[bool] = None,
        batch_size: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep
    ) -> Dict[str, Any]:
        """
        Drive batches until the run ends, pauses or is cancelled.

        Issues one batch at a time with config.batch_delay between batches
        and consults the token between batches, the same points at which a
        remote driver would stop issuing requests.
        """
        batch_size = batch_size or self.batch_size

        if self.engine.status == MigrationStatus.PAUSED:
            response = self.resume()
            if not response["success"]:
                return response
            offset = response["data"]["offset"]
            dry_run = self.engine.run.dry_run if dry_run is None else dry_run
        elif self.engine.status == MigrationStatus.IN_PROGRESS:
            # Restored from an interrupted process
            offset = self.engine.run.progress.processed
            dry_run = self.engine.run.dry_run if dry_run is None else dry_run
        else:
            offset = 0

        while True:
            response = self.process_batch(offset, batch_size, dry_run)
            if not response["success"] or not response["data"]["continue"]:
                return response

            offset = response["data"]["progress"]

            if token is not None and token.cancelled:
                return self.cancel()
            if token is not None and token.paused:
                return self.pause()

            sleep(self.config.batch_delay)
