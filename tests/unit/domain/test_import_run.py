"""Tests for the ImportRun state machine and its statistics."""

from datetime import UTC, datetime

import pytest

from waxsync.domain.entities import (
    EntityImportStats,
    EntityType,
    FileProcessingStatus,
    ImportRun,
    ImportRunStatus,
    ProcessingStats,
    can_transition,
)
from waxsync.domain.exceptions import InvalidStateException

# Hey future me - these tests walk the lifecycle:
# Pending → Downloading → ReadyForProcessing → Processing → Completed | Failed


def _run_in(status: ImportRunStatus) -> ImportRun:
    run = ImportRun(period="2026-10")
    path = [
        ImportRunStatus.DOWNLOADING,
        ImportRunStatus.READY_FOR_PROCESSING,
        ImportRunStatus.PROCESSING,
        ImportRunStatus.COMPLETED,
    ]
    for step in path:
        if run.status == status:
            break
        run.transition_to(step)
    assert run.status == status
    return run


class TestTransitions:
    """Test allowed and forbidden status changes."""

    def test_happy_path_sets_timestamps(self) -> None:
        """Each step records its timestamp."""
        run = ImportRun(period="2026-10")
        t1 = datetime(2026, 10, 1, 1, tzinfo=UTC)
        t2 = datetime(2026, 10, 1, 2, tzinfo=UTC)
        t3 = datetime(2026, 10, 1, 3, tzinfo=UTC)
        t4 = datetime(2026, 10, 1, 4, tzinfo=UTC)

        run.transition_to(ImportRunStatus.DOWNLOADING, now=t1)
        run.transition_to(ImportRunStatus.READY_FOR_PROCESSING, now=t2)
        run.transition_to(ImportRunStatus.PROCESSING, now=t3)
        run.transition_to(ImportRunStatus.COMPLETED, now=t4)

        assert run.download_started_at == t1
        assert run.download_completed_at == t2
        assert run.processing_started_at == t3
        assert run.completed_at == t4
        assert run.heartbeat_at == t4
        assert run.is_terminal

    def test_cannot_skip_steps(self) -> None:
        """Pending cannot jump straight to Processing."""
        run = ImportRun(period="2026-10")
        with pytest.raises(InvalidStateException):
            run.transition_to(ImportRunStatus.PROCESSING)
        assert run.status == ImportRunStatus.PENDING

    @pytest.mark.parametrize(
        "status",
        [
            ImportRunStatus.PENDING,
            ImportRunStatus.DOWNLOADING,
            ImportRunStatus.READY_FOR_PROCESSING,
            ImportRunStatus.PROCESSING,
        ],
    )
    def test_failed_reachable_from_every_active_state(self, status: ImportRunStatus) -> None:
        """Any non-terminal run can fail."""
        run = _run_in(status)
        run.fail("boom")
        assert run.status == ImportRunStatus.FAILED
        assert run.error_message == "boom"
        assert run.completed_at is not None

    def test_failed_requires_error_detail(self) -> None:
        """A failure without a message is refused."""
        run = ImportRun(period="2026-10")
        with pytest.raises(InvalidStateException):
            run.transition_to(ImportRunStatus.FAILED, error="  ")

    @pytest.mark.parametrize("target", list(ImportRunStatus))
    def test_terminal_runs_never_change(self, target: ImportRunStatus) -> None:
        """Completed and Failed admit no further transition."""
        completed = _run_in(ImportRunStatus.COMPLETED)
        failed = ImportRun(period="2026-10")
        failed.fail("boom")
        for run in (completed, failed):
            with pytest.raises(InvalidStateException):
                run.transition_to(target, error="again")

    def test_touch_refused_on_terminal_run(self) -> None:
        """Heartbeats stop once a run is terminal."""
        run = _run_in(ImportRunStatus.COMPLETED)
        with pytest.raises(InvalidStateException):
            run.touch()

    def test_long_error_is_truncated(self) -> None:
        """Error details are capped so the row stays small."""
        run = ImportRun(period="2026-10")
        run.fail("x" * 5000)
        assert len(run.error_message or "") == ImportRun.MAX_ERROR_LENGTH

    def test_can_transition_table(self) -> None:
        """The transition table matches the lifecycle."""
        assert can_transition(ImportRunStatus.PROCESSING, ImportRunStatus.COMPLETED)
        assert not can_transition(ImportRunStatus.COMPLETED, ImportRunStatus.PROCESSING)
        assert not can_transition(ImportRunStatus.DOWNLOADING, ImportRunStatus.COMPLETED)


class TestProcessingStats:
    """Test per-entity statistics."""

    def test_for_entity_accepts_enum_and_value(self) -> None:
        """Enum and plain value address the same entry."""
        stats = ProcessingStats()
        stats.for_entity(EntityType.RELEASE).inserted = 3
        assert stats.for_entity("releases").inserted == 3

    def test_round_trip_through_dict(self) -> None:
        """Stats survive serialization into the run row."""
        stats = ProcessingStats()
        entry = stats.for_entity(EntityType.MASTER)
        entry.status = FileProcessingStatus.COMPLETED
        entry.errored = 2
        entry.error_samples = ["master without id"]
        entry.add_association_rows("master_artists", 5)
        entry.add_association_rows("master_artists", 2)

        restored = ProcessingStats.from_dict(stats.to_dict())

        assert restored.completed_entities() == {"masters"}
        assert restored.for_entity(EntityType.MASTER).associations == {"master_artists": 7}
        assert restored.total_errors == 2

    def test_totals(self) -> None:
        """Totals sum over all entities."""
        stats = ProcessingStats(
            entities={
                "labels": EntityImportStats(rows_affected=2, errored=1),
                "artists": EntityImportStats(rows_affected=3),
            }
        )
        assert stats.total_rows_affected == 5
        assert stats.total_errors == 1

    def test_from_empty_dict(self) -> None:
        """Missing stats load as empty."""
        assert ProcessingStats.from_dict(None).entities == {}
