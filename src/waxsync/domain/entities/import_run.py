"""Import run entity and its processing statistics."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, ClassVar
from uuid import uuid4

from waxsync.domain.exceptions import InvalidStateException


# Yo, ImportRunStatus is the STATE MACHINE of a monthly import! Transitions:
# PENDING → DOWNLOADING → READY_FOR_PROCESSING → PROCESSING → COMPLETED.
# FAILED is reachable from every non-terminal state. COMPLETED and FAILED are
# terminal - a failed period gets a NEW run (attempt + 1), the old row is never
# touched again. Always go through ImportRun.transition_to(), never assign status.
class ImportRunStatus(str, Enum):
    """Status of an import run."""

    PENDING = "pending"
    DOWNLOADING = "downloading"
    READY_FOR_PROCESSING = "ready_for_processing"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ImportRunStatus.COMPLETED, ImportRunStatus.FAILED)


_TRANSITIONS: dict[ImportRunStatus, frozenset[ImportRunStatus]] = {
    ImportRunStatus.PENDING: frozenset(
        {ImportRunStatus.DOWNLOADING, ImportRunStatus.FAILED}
    ),
    ImportRunStatus.DOWNLOADING: frozenset(
        {ImportRunStatus.READY_FOR_PROCESSING, ImportRunStatus.FAILED}
    ),
    ImportRunStatus.READY_FOR_PROCESSING: frozenset(
        {ImportRunStatus.PROCESSING, ImportRunStatus.FAILED}
    ),
    ImportRunStatus.PROCESSING: frozenset(
        {ImportRunStatus.COMPLETED, ImportRunStatus.FAILED}
    ),
    ImportRunStatus.COMPLETED: frozenset(),
    ImportRunStatus.FAILED: frozenset(),
}


def can_transition(current: ImportRunStatus, target: ImportRunStatus) -> bool:
    return target in _TRANSITIONS[current]


class FileProcessingStatus(str, Enum):
    """Progress of one dump file inside a run."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class EntityImportStats:
    """Counters for one entity type (one dump file) within a run."""

    status: FileProcessingStatus = FileProcessingStatus.PENDING
    dump_path: str | None = None
    size_bytes: int | None = None
    checksum: str | None = None
    decoded: int = 0
    filtered: int = 0
    errored: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    rows_affected: int = 0
    batches: int = 0
    associations: dict[str, int] = field(default_factory=dict)
    error_samples: list[str] = field(default_factory=list)

    def add_association_rows(self, association: str, inserted: int) -> None:
        self.associations[association] = self.associations.get(association, 0) + inserted

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "dump_path": self.dump_path,
            "size_bytes": self.size_bytes,
            "checksum": self.checksum,
            "decoded": self.decoded,
            "filtered": self.filtered,
            "errored": self.errored,
            "inserted": self.inserted,
            "updated": self.updated,
            "skipped": self.skipped,
            "rows_affected": self.rows_affected,
            "batches": self.batches,
            "associations": dict(self.associations),
            "error_samples": list(self.error_samples),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EntityImportStats":
        return cls(
            status=FileProcessingStatus(data.get("status", "pending")),
            dump_path=data.get("dump_path"),
            size_bytes=data.get("size_bytes"),
            checksum=data.get("checksum"),
            decoded=data.get("decoded", 0),
            filtered=data.get("filtered", 0),
            errored=data.get("errored", 0),
            inserted=data.get("inserted", 0),
            updated=data.get("updated", 0),
            skipped=data.get("skipped", 0),
            rows_affected=data.get("rows_affected", 0),
            batches=data.get("batches", 0),
            associations=dict(data.get("associations", {})),
            error_samples=list(data.get("error_samples", [])),
        )


@dataclass
class ProcessingStats:
    """Per-entity statistics of a run, keyed by entity type value."""

    entities: dict[str, EntityImportStats] = field(default_factory=dict)

    def for_entity(self, entity_type: str) -> EntityImportStats:
        """Get (or lazily create) the stats entry of an entity type."""
        key = getattr(entity_type, "value", entity_type)
        if key not in self.entities:
            self.entities[key] = EntityImportStats()
        return self.entities[key]

    def completed_entities(self) -> set[str]:
        return {
            key
            for key, stats in self.entities.items()
            if stats.status == FileProcessingStatus.COMPLETED
        }

    @property
    def total_errors(self) -> int:
        return sum(stats.errored for stats in self.entities.values())

    @property
    def total_rows_affected(self) -> int:
        return sum(stats.rows_affected for stats in self.entities.values())

    def to_dict(self) -> dict[str, Any]:
        return {key: stats.to_dict() for key, stats in self.entities.items()}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ProcessingStats":
        if not data:
            return cls()
        return cls(
            entities={
                key: EntityImportStats.from_dict(value) for key, value in data.items()
            }
        )


# Hey future me, ImportRun is one attempt at importing one period's dumps. The
# timestamps are set by transition_to() so you never end up with a PROCESSING run
# that has no processing_started_at. heartbeat_at is touched after every batch -
# the tracker uses it to tell a crashed run from a slow one.
@dataclass
class ImportRun:
    """Import run entity for one period (YYYY-MM)."""

    period: str
    id: str = field(default_factory=lambda: str(uuid4()))
    attempt: int = 1
    status: ImportRunStatus = ImportRunStatus.PENDING
    error_message: str | None = None
    stats: ProcessingStats = field(default_factory=ProcessingStats)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    download_started_at: datetime | None = None
    download_completed_at: datetime | None = None
    processing_started_at: datetime | None = None
    completed_at: datetime | None = None
    heartbeat_at: datetime | None = None
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    MAX_ERROR_LENGTH: ClassVar[int] = 2000

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def transition_to(
        self,
        target: ImportRunStatus,
        error: str | None = None,
        now: datetime | None = None,
    ) -> None:
        """Move the run to another status.

        Args:
            target: Desired status
            error: Error detail, required when target is FAILED
            now: Override for the transition timestamp (tests)

        Raises:
            InvalidStateException: If the transition is not allowed or FAILED
                is requested without an error detail.
        """
        if not can_transition(self.status, target):
            raise InvalidStateException(
                f"Cannot move import run {self.id} from {self.status.value} to {target.value}"
            )
        if target == ImportRunStatus.FAILED and not (error and error.strip()):
            raise InvalidStateException("A failed import run needs an error detail")

        now = now or datetime.now(UTC)
        if target == ImportRunStatus.DOWNLOADING:
            self.download_started_at = now
        elif target == ImportRunStatus.READY_FOR_PROCESSING:
            self.download_completed_at = now
        elif target == ImportRunStatus.PROCESSING:
            self.processing_started_at = now
        elif target.is_terminal:
            self.completed_at = now
        if target == ImportRunStatus.FAILED:
            self.error_message = error[: self.MAX_ERROR_LENGTH]  # type: ignore[index]

        self.status = target
        self.heartbeat_at = now
        self.updated_at = now

    def fail(self, error: str, now: datetime | None = None) -> None:
        self.transition_to(ImportRunStatus.FAILED, error=error, now=now)

    def touch(self, now: datetime | None = None) -> None:
        """Refresh the heartbeat of an active run."""
        if self.is_terminal:
            raise InvalidStateException(
                f"Import run {self.id} is {self.status.value} and can no longer change"
            )
        now = now or datetime.now(UTC)
        self.heartbeat_at = now
        self.updated_at = now
