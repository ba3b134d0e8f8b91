"""Domain ports (interfaces) for dependency inversion."""

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

from waxsync.domain.entities import EntityType, ImportRun


@dataclass(frozen=True)
class DumpFile:
    """A located, validated dump file for one entity type."""

    entity_type: EntityType
    path: Path
    size_bytes: int
    checksum: str | None = None

    @property
    def is_gzipped(self) -> bool:
        return self.path.suffix == ".gz"


# Hey future me, IDumpSource is the seam between "where do the monthly files live" and the
# import job. Downloading/decompressing remote files is NOT our job - an external fetcher drops
# them somewhere and this port only locates and validates them. Tests plug in a local directory.
class IDumpSource(ABC):
    """Locates the dump files of a period."""

    @abstractmethod
    async def prepare(
        self, period: str, entity_types: Sequence[EntityType]
    ) -> dict[EntityType, DumpFile]:
        """Locate and validate the dump of every requested entity type.

        Raises:
            SourceUnavailableError: If any file is missing or fails validation.
        """
        pass


class ICatalogRepository(ABC):
    """Read access to stored catalog rows needed for change detection."""

    @abstractmethod
    async def get_content_hashes(
        self, entity_type: EntityType, ids: Iterable[int]
    ) -> dict[int, str | None]:
        """Get id -> content_hash for exactly the given ids that exist."""
        pass

    @abstractmethod
    async def count(self, entity_type: EntityType) -> int:
        """Count stored rows of an entity type."""
        pass


class IImportRunRepository(ABC):
    """Repository interface for ImportRun entities."""

    @abstractmethod
    async def add(self, run: ImportRun) -> None:
        """Insert a new run."""
        pass

    @abstractmethod
    async def update(self, run: ImportRun) -> None:
        """Persist a run's current state. Terminal rows are never modified."""
        pass

    @abstractmethod
    async def get_by_id(self, run_id: str) -> ImportRun | None:
        """Get a run by id."""
        pass

    @abstractmethod
    async def get_latest_for_period(self, period: str) -> ImportRun | None:
        """Get the highest attempt of a period."""
        pass

    @abstractmethod
    async def get_active(self) -> ImportRun | None:
        """Get the non-terminal run, if any."""
        pass

    @abstractmethod
    async def list_recent(self, limit: int = 10) -> list[ImportRun]:
        """List the most recently created runs."""
        pass


__all__ = [
    "DumpFile",
    "ICatalogRepository",
    "IDumpSource",
    "IImportRunRepository",
]
