"""Processing state tracker for import runs."""

import logging
from copy import deepcopy
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from waxsync.config import CatalogImportSettings
from waxsync.domain.entities import ImportRun, ImportRunStatus
from waxsync.domain.exceptions import ImportRunConflictError, InvalidStateException
from waxsync.domain.value_objects import validate_period
from waxsync.infrastructure.persistence.repositories import ImportRunRepository
from waxsync.infrastructure.persistence.retry import run_db_operation

logger = logging.getLogger(__name__)


class ImportRunTracker:
    """Owns every status change of an import run.

    Hey future me - the import job NEVER writes ImportRun rows itself, it always goes through
    this tracker. That keeps three rules in one place:
    1. at most one non-terminal run exists (checked here, backstopped by active_slot in the DB)
    2. status changes follow the state machine (ImportRun.transition_to)
    3. terminal runs are never written again (ImportRunRepository.update refuses)

    Every method takes the session of the caller's unit of work and leaves committing to it.
    """

    def __init__(self, settings: CatalogImportSettings) -> None:
        self.settings = settings
        self.stale_after = timedelta(minutes=settings.stale_run_timeout_minutes)
        self.timeout_seconds = settings.db_operation_timeout_seconds

    async def latest_for_period(self, session: AsyncSession, period: str) -> ImportRun | None:
        """Highest attempt of a period, or None if the period never ran."""
        period = validate_period(period)
        repo = ImportRunRepository(session)
        return await run_db_operation(
            lambda: repo.get_latest_for_period(period),
            timeout_seconds=self.timeout_seconds,
            description="load latest import run",
        )

    async def active_run(self, session: AsyncSession) -> ImportRun | None:
        repo = ImportRunRepository(session)
        return await run_db_operation(
            repo.get_active,
            timeout_seconds=self.timeout_seconds,
            description="load active import run",
        )

    def is_stale(self, run: ImportRun, now: datetime | None = None) -> bool:
        """True if an active run stopped sending heartbeats (crashed process)."""
        now = now or datetime.now(UTC)
        last_sign_of_life = run.heartbeat_at or run.updated_at or run.created_at
        return now - last_sign_of_life > self.stale_after

    # Listen up, this is the concurrency gate! Same idea as stale lock recovery in a job queue:
    # an active run whose heartbeat is older than stale_run_timeout_minutes belongs to a process
    # that died (OOM, kill -9, host reboot). We mark it Failed("abandoned") and carry on. A run
    # with a fresh heartbeat is really running → conflict, nothing is touched.
    async def start_run(self, session: AsyncSession, period: str) -> ImportRun:
        """Create a new Pending run for a period.

        Raises:
            ValidationException: Malformed period.
            ImportRunConflictError: Another run is active and not stale.
            InvalidStateException: The period already completed.
        """
        period = validate_period(period)
        repo = ImportRunRepository(session)

        active = await self.active_run(session)
        if active is not None:
            if not self.is_stale(active):
                raise ImportRunConflictError(active.period, active.status.value)
            heartbeat = active.heartbeat_at.isoformat() if active.heartbeat_at else "never"
            logger.warning(
                "Marking stale import run %s (%s, %s) as abandoned, last heartbeat %s",
                active.id,
                active.period,
                active.status.value,
                heartbeat,
            )
            active.fail(f"abandoned: no heartbeat since {heartbeat}")
            await self._update(repo, active)

        latest = await self.latest_for_period(session, period)
        if latest is not None and latest.status == ImportRunStatus.COMPLETED:
            raise InvalidStateException(f"Period {period} is already completed")

        run = ImportRun(period=period, attempt=(latest.attempt + 1) if latest else 1)
        if (
            latest is not None
            and latest.status == ImportRunStatus.FAILED
            and self.settings.resume_completed_files
        ):
            for key in sorted(latest.stats.completed_entities()):
                run.stats.entities[key] = deepcopy(latest.stats.entities[key])
            if run.stats.entities:
                logger.info(
                    "Attempt %d of %s resumes with completed files: %s",
                    run.attempt,
                    period,
                    ", ".join(run.stats.entities),
                )

        run.touch()
        await run_db_operation(
            lambda: repo.add(run),
            timeout_seconds=self.timeout_seconds,
            description="create import run",
        )
        logger.info("Created import run %s for %s (attempt %d)", run.id, period, run.attempt)
        return run

    async def advance(
        self, session: AsyncSession, run: ImportRun, status: ImportRunStatus
    ) -> ImportRun:
        """Move a run forward along the state machine and persist it."""
        previous = run.status
        run.transition_to(status)
        await self._update(ImportRunRepository(session), run)
        logger.info(
            "Import run %s: %s → %s", run.id, previous.value, status.value
        )
        return run

    async def fail(self, session: AsyncSession, run: ImportRun, error: str) -> ImportRun:
        """Mark a run Failed with an error detail.

        A run that is already terminal is left untouched.
        """
        if run.is_terminal:
            logger.warning(
                "Import run %s is already %s, not recording failure: %s",
                run.id,
                run.status.value,
                error,
            )
            return run
        run.fail(error)
        await self._update(ImportRunRepository(session), run)
        logger.error("Import run %s failed: %s", run.id, error)
        return run

    async def record_progress(self, session: AsyncSession, run: ImportRun) -> None:
        """Persist the run's stats and refresh its heartbeat."""
        run.touch()
        await self._update(ImportRunRepository(session), run)

    async def _update(self, repo: ImportRunRepository, run: ImportRun) -> None:
        await run_db_operation(
            lambda: repo.update(run),
            timeout_seconds=self.timeout_seconds,
            description="update import run",
        )
