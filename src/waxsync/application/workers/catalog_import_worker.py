# Hey future me - this is the monthly import job, start to finish!
#
# FLOW of CatalogImportJob.run(period):
# 1. Validate period. Latest attempt already COMPLETED → return it, nothing to do
# 2. tracker.start_run → PENDING run (raises ImportRunConflictError if another run is active)
# 3. DOWNLOADING: dump source locates + verifies the files (no actual download, see IDumpSource)
# 4. READY_FOR_PROCESSING → PROCESSING
# 5. labels → artists → masters → releases, one CatalogImportService.import_entity each
#    (files already COMPLETED in a resumed attempt are skipped)
# 6. COMPLETED
#
# Anything that goes wrong after step 2 ends the run FAILED with the error message, and run()
# RETURNS the failed run instead of raising. Only "could not even start" problems (bad period,
# conflict) are raised. The scheduler/CLI looks at run.status to decide the exit code.
# If another process already ended the row (stale-run abandonment), run() returns the row as
# stored, with that process's error message.
#
# Cancellation: cancel(reason) sets an event; the current batch finishes, then the run becomes
# Failed("cancelled: <reason>"). Cancelling the asyncio task itself also marks the run failed
# before the CancelledError propagates.
# The event is cleared when run() returns, so the same job can run again.
"""Catalog import job - orchestrates one import run."""

import asyncio
import logging

from waxsync.application.services.catalog_import_service import CatalogImportService
from waxsync.application.services.import_run_tracker import ImportRunTracker
from waxsync.config import Settings
from waxsync.domain.entities import DUMP_ENTITY_TYPES, ImportRun, ImportRunStatus
from waxsync.domain.exceptions import (
    DomainException,
    ImportCancelledError,
    InvalidStateException,
)
from waxsync.domain.ports import DumpFile, IDumpSource
from waxsync.domain.value_objects import current_period, validate_period
from waxsync.infrastructure.dumps.local_dump_source import LocalDumpSource
from waxsync.infrastructure.observability.logger_template import log_operation
from waxsync.infrastructure.observability.logging import set_correlation_id
from waxsync.infrastructure.persistence.database import Database
from waxsync.infrastructure.persistence.repositories import ImportRunRepository
from waxsync.infrastructure.persistence.retry import DatabaseLockMetrics

logger = logging.getLogger(__name__)


class CatalogImportJob:
    """Runs a full catalog import for one period."""

    def __init__(
        self,
        db: Database,
        settings: Settings,
        dump_source: IDumpSource | None = None,
        tracker: ImportRunTracker | None = None,
        service: CatalogImportService | None = None,
    ) -> None:
        """Initialize job.

        Args:
            db: Database instance for creating sessions
            settings: Application settings
            dump_source: Where dump files come from (local dump_dir by default)
            tracker: Import run tracker (built from settings if omitted)
            service: Per-file import service (built from settings if omitted)
        """
        self.db = db
        self.settings = settings
        self.dump_source = dump_source or LocalDumpSource.from_settings(settings.catalog_import)
        self.tracker = tracker or ImportRunTracker(settings.catalog_import)
        self.service = service or CatalogImportService(
            db, settings.catalog_import, self.tracker
        )
        self._cancel_event = asyncio.Event()
        self._cancel_reason = "requested"
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def cancel(self, reason: str = "requested") -> None:
        """Request cooperative cancellation after the current batch."""
        self._cancel_reason = reason
        self._cancel_event.set()
        logger.warning("Cancellation requested: %s", reason)

    async def run(self, period: str | None = None) -> ImportRun:
        """Import the dumps of a period.

        Args:
            period: YYYY-MM, defaults to the current UTC month

        Returns:
            The run in its final state (COMPLETED or FAILED), or the existing
            completed run if the period was already imported.

        Raises:
            ValidationException: Malformed period.
            ImportRunConflictError: Another import run is active.
        """
        period = validate_period(period or current_period())

        async with self.db.session_scope() as session:
            latest = await self.tracker.latest_for_period(session, period)
        if latest is not None and latest.status == ImportRunStatus.COMPLETED:
            logger.info(
                "Period %s already imported by run %s, nothing to do", period, latest.id
            )
            return latest

        async with self.db.session_scope() as session:
            run = await self.tracker.start_run(session, period)
        set_correlation_id(run.id)

        self._running = True
        try:
            async with log_operation(
                logger,
                "catalog_import.run",
                period=period,
                run_id=run.id,
                attempt=run.attempt,
            ):
                await self._execute(run)
        except asyncio.CancelledError:
            run = await self._mark_failed(run, "cancelled: import task was cancelled")
            raise
        except ImportCancelledError as e:
            run = await self._mark_failed(run, e.message)
        except DomainException as e:
            run = await self._mark_failed(run, f"{type(e).__name__}: {e.message}")
        except Exception as e:
            logger.exception("Unexpected error in import run %s", run.id)
            run = await self._mark_failed(run, f"unexpected {type(e).__name__}: {e}")
        finally:
            self._running = False
            # A cancellation ends this run only, the job can be run again
            self._cancel_event.clear()
            self._cancel_reason = "requested"
            logger.info(
                "Database lock stats after run %s: %s",
                run.id,
                DatabaseLockMetrics.get_instance().get_stats(),
            )
        return run

    async def _execute(self, run: ImportRun) -> None:
        await self._advance(run, ImportRunStatus.DOWNLOADING)

        completed = run.stats.completed_entities()
        pending_types = [t for t in DUMP_ENTITY_TYPES if t.value not in completed]
        files = await self.dump_source.prepare(run.period, pending_types)
        for entity_type, dump in files.items():
            self._record_file(run, dump)

        await self._advance(run, ImportRunStatus.READY_FOR_PROCESSING)
        await self._advance(run, ImportRunStatus.PROCESSING)

        for entity_type in DUMP_ENTITY_TYPES:
            if entity_type.value in completed:
                logger.info("Skipping %s, completed by a previous attempt", entity_type.value)
                continue
            self._check_cancelled()
            async with log_operation(
                logger, "catalog_import.entity", entity_type=entity_type.value
            ):
                await self.service.import_entity(
                    run,
                    files[entity_type],
                    self._cancel_event,
                    lambda: self._cancel_reason,
                )

        await self._advance(run, ImportRunStatus.COMPLETED)
        logger.info(
            "Import run %s completed: %d rows affected, %d record errors",
            run.id,
            run.stats.total_rows_affected,
            run.stats.total_errors,
        )

    def _record_file(self, run: ImportRun, dump: DumpFile) -> None:
        stats = run.stats.for_entity(dump.entity_type)
        stats.dump_path = str(dump.path)
        stats.size_bytes = dump.size_bytes
        stats.checksum = dump.checksum

    def _check_cancelled(self) -> None:
        if self._cancel_event.is_set():
            raise ImportCancelledError(f"cancelled: {self._cancel_reason}")

    async def _advance(self, run: ImportRun, status: ImportRunStatus) -> None:
        async with self.db.session_scope() as session:
            await self.tracker.advance(session, run, status)

    async def _mark_failed(self, run: ImportRun, error: str) -> ImportRun:
        try:
            async with self.db.session_scope() as session:
                return await self.tracker.fail(session, run, error)
        except InvalidStateException:
            # The row is already terminal, e.g. abandoned as stale by another process.
            # Report what the database holds instead of our in-memory copy.
            async with self.db.session_scope() as session:
                stored = await ImportRunRepository(session).get_by_id(run.id)
            if stored is None:
                raise
            logger.warning(
                "Import run %s was already %s (%s), not recording: %s",
                run.id,
                stored.status.value,
                stored.error_message,
                error,
            )
            return stored
