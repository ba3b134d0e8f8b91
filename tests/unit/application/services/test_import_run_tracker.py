"""Tests for ImportRunTracker (real SQLite database).

Hey future me - these cover the concurrency gate: one active run, stale runs get abandoned,
completed periods are never restarted, failed periods resume with their finished files.
"""

from datetime import UTC, datetime, timedelta

import pytest

from waxsync.application.services.import_run_tracker import ImportRunTracker
from waxsync.config import Settings
from waxsync.domain.entities import EntityType, FileProcessingStatus, ImportRunStatus
from waxsync.domain.exceptions import (
    ImportRunConflictError,
    InvalidStateException,
    ValidationException,
)
from waxsync.infrastructure.persistence.database import Database
from waxsync.infrastructure.persistence.repositories import ImportRunRepository


@pytest.fixture
def tracker(settings: Settings) -> ImportRunTracker:
    return ImportRunTracker(settings.catalog_import)


async def _complete(db: Database, tracker: ImportRunTracker, run) -> None:  # type: ignore[no-untyped-def]
    for status in (
        ImportRunStatus.DOWNLOADING,
        ImportRunStatus.READY_FOR_PROCESSING,
        ImportRunStatus.PROCESSING,
        ImportRunStatus.COMPLETED,
    ):
        async with db.session_scope() as session:
            await tracker.advance(session, run, status)


class TestStartRun:
    """Test ImportRunTracker.start_run()."""

    @pytest.mark.asyncio
    async def test_first_run_is_pending_attempt_one(
        self, db: Database, tracker: ImportRunTracker
    ) -> None:
        """A fresh period starts at attempt 1 with a heartbeat."""
        async with db.session_scope() as session:
            run = await tracker.start_run(session, "2026-10")
        assert run.status == ImportRunStatus.PENDING
        assert run.attempt == 1
        assert run.heartbeat_at is not None

    @pytest.mark.asyncio
    async def test_invalid_period(self, db: Database, tracker: ImportRunTracker) -> None:
        """Malformed periods never create a run."""
        with pytest.raises(ValidationException):
            async with db.session_scope() as session:
                await tracker.start_run(session, "2026-13")

    @pytest.mark.asyncio
    async def test_active_run_blocks_new_run(
        self, db: Database, tracker: ImportRunTracker
    ) -> None:
        """A live run makes a second start a conflict."""
        async with db.session_scope() as session:
            first = await tracker.start_run(session, "2026-10")

        with pytest.raises(ImportRunConflictError):
            async with db.session_scope() as session:
                await tracker.start_run(session, "2026-11")

        async with db.session_scope() as session:
            active = await tracker.active_run(session)
        assert active is not None and active.id == first.id

    @pytest.mark.asyncio
    async def test_stale_run_is_abandoned(self, db: Database, tracker: ImportRunTracker) -> None:
        """A run without heartbeat for too long is failed and replaced."""
        async with db.session_scope() as session:
            stale = await tracker.start_run(session, "2026-10")

        # Pretend the process died two hours ago
        stale.heartbeat_at = datetime.now(UTC) - timedelta(hours=2)
        async with db.session_scope() as session:
            await ImportRunRepository(session).update(stale)

        async with db.session_scope() as session:
            run = await tracker.start_run(session, "2026-10")

        assert run.attempt == 2
        async with db.session_scope() as session:
            old = await ImportRunRepository(session).get_by_id(stale.id)
        assert old is not None
        assert old.status == ImportRunStatus.FAILED
        assert (old.error_message or "").startswith("abandoned")

    @pytest.mark.asyncio
    async def test_completed_period_cannot_restart(
        self, db: Database, tracker: ImportRunTracker
    ) -> None:
        """A completed period is final."""
        async with db.session_scope() as session:
            run = await tracker.start_run(session, "2026-10")
        await _complete(db, tracker, run)

        with pytest.raises(InvalidStateException):
            async with db.session_scope() as session:
                await tracker.start_run(session, "2026-10")

    @pytest.mark.asyncio
    async def test_failed_period_resumes_completed_files(
        self, db: Database, tracker: ImportRunTracker
    ) -> None:
        """A new attempt inherits the stats of files already finished."""
        async with db.session_scope() as session:
            run = await tracker.start_run(session, "2026-10")
        labels = run.stats.for_entity(EntityType.LABEL)
        labels.status = FileProcessingStatus.COMPLETED
        labels.inserted = 2
        run.stats.for_entity(EntityType.ARTIST).status = FileProcessingStatus.FAILED
        async with db.session_scope() as session:
            await tracker.fail(session, run, "artists broke")

        async with db.session_scope() as session:
            retry = await tracker.start_run(session, "2026-10")

        assert retry.attempt == 2
        assert retry.stats.completed_entities() == {"labels"}
        assert retry.stats.for_entity(EntityType.LABEL).inserted == 2

    @pytest.mark.asyncio
    async def test_resume_can_be_disabled(self, db: Database, settings: Settings) -> None:
        """Without resume a retry starts from scratch."""
        settings.catalog_import.resume_completed_files = False
        tracker = ImportRunTracker(settings.catalog_import)
        async with db.session_scope() as session:
            run = await tracker.start_run(session, "2026-10")
        run.stats.for_entity(EntityType.LABEL).status = FileProcessingStatus.COMPLETED
        async with db.session_scope() as session:
            await tracker.fail(session, run, "boom")

        async with db.session_scope() as session:
            retry = await tracker.start_run(session, "2026-10")
        assert retry.stats.completed_entities() == set()


class TestStatusChanges:
    """Test advance(), fail() and record_progress()."""

    @pytest.mark.asyncio
    async def test_invalid_advance_is_refused(
        self, db: Database, tracker: ImportRunTracker
    ) -> None:
        """Skipping states raises and nothing is written."""
        async with db.session_scope() as session:
            run = await tracker.start_run(session, "2026-10")

        with pytest.raises(InvalidStateException):
            async with db.session_scope() as session:
                await tracker.advance(session, run, ImportRunStatus.COMPLETED)

        async with db.session_scope() as session:
            stored = await ImportRunRepository(session).get_by_id(run.id)
        assert stored is not None and stored.status == ImportRunStatus.PENDING

    @pytest.mark.asyncio
    async def test_fail_on_terminal_run_is_noop(
        self, db: Database, tracker: ImportRunTracker
    ) -> None:
        """A completed run keeps its status when something later tries to fail it."""
        async with db.session_scope() as session:
            run = await tracker.start_run(session, "2026-10")
        await _complete(db, tracker, run)

        async with db.session_scope() as session:
            await tracker.fail(session, run, "late error")

        async with db.session_scope() as session:
            stored = await ImportRunRepository(session).get_by_id(run.id)
        assert stored is not None
        assert stored.status == ImportRunStatus.COMPLETED
        assert stored.error_message is None

    @pytest.mark.asyncio
    async def test_record_progress_refreshes_heartbeat(
        self, db: Database, tracker: ImportRunTracker
    ) -> None:
        """Progress saves move the heartbeat forward."""
        async with db.session_scope() as session:
            run = await tracker.start_run(session, "2026-10")
        first = run.heartbeat_at
        run.stats.for_entity(EntityType.LABEL).decoded = 10

        async with db.session_scope() as session:
            await tracker.record_progress(session, run)
            stored = await ImportRunRepository(session).get_by_id(run.id)

        assert stored is not None
        assert stored.heartbeat_at is not None and first is not None
        assert stored.heartbeat_at >= first
        assert stored.stats.for_entity(EntityType.LABEL).decoded == 10

    def test_is_stale(self, tracker: ImportRunTracker) -> None:
        """Staleness is measured from the last heartbeat."""
        from waxsync.domain.entities import ImportRun

        run = ImportRun(period="2026-10")
        now = datetime.now(UTC)
        run.heartbeat_at = now - timedelta(minutes=30)
        assert not tracker.is_stale(run, now=now)
        run.heartbeat_at = now - timedelta(minutes=90)
        assert tracker.is_stale(run, now=now)
