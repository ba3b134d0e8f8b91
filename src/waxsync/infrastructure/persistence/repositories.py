"""Repository implementations for catalog lookups and import runs."""

import json
import logging
from collections.abc import Iterable

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from waxsync.domain.entities import (
    EntityType,
    ImportRun,
    ImportRunStatus,
    ProcessingStats,
)
from waxsync.domain.exceptions import ImportRunConflictError, InvalidStateException
from waxsync.domain.ports import ICatalogRepository, IImportRunRepository
from waxsync.infrastructure.persistence.catalog_tables import entity_table
from waxsync.infrastructure.persistence.models import ImportRunModel, ensure_utc_aware

logger = logging.getLogger(__name__)

# Ids per lookup query, well under every bind parameter limit
_LOOKUP_CHUNK = 10000


class CatalogRepository(ICatalogRepository):
    """Change-detection lookups against the catalog tables."""

    # Hey future me, same repo pattern as everywhere: the session is injected and NOT committed
    # here. The import service builds one repo per unit of work.
    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def get_content_hashes(
        self, entity_type: EntityType, ids: Iterable[int]
    ) -> dict[int, str | None]:
        """Fetch stored fingerprints for exactly the given ids.

        Ids that are not stored are simply absent from the result, which is
        what tells the classifier "insert".
        """
        wanted = sorted(set(ids))
        if not wanted:
            return {}

        table = entity_table(entity_type)
        hashes: dict[int, str | None] = {}
        for start in range(0, len(wanted), _LOOKUP_CHUNK):
            chunk = wanted[start : start + _LOOKUP_CHUNK]
            stmt = select(table.c.id, table.c.content_hash).where(table.c.id.in_(chunk))
            result = await self.session.execute(stmt)
            hashes.update({row.id: row.content_hash for row in result})
        return hashes

    async def count(self, entity_type: EntityType) -> int:
        table = entity_table(entity_type)
        result = await self.session.execute(select(func.count()).select_from(table))
        return int(result.scalar_one())


class ImportRunRepository(IImportRunRepository):
    """SQLAlchemy implementation of the ImportRun repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    @staticmethod
    def _model_to_entity(model: ImportRunModel) -> ImportRun:
        return ImportRun(
            id=model.id,
            period=model.period,
            attempt=model.attempt,
            status=ImportRunStatus(model.status),
            error_message=model.error_message,
            stats=ProcessingStats.from_dict(json.loads(model.stats) if model.stats else None),
            created_at=ensure_utc_aware(model.created_at),
            download_started_at=_aware_or_none(model.download_started_at),
            download_completed_at=_aware_or_none(model.download_completed_at),
            processing_started_at=_aware_or_none(model.processing_started_at),
            completed_at=_aware_or_none(model.completed_at),
            heartbeat_at=_aware_or_none(model.heartbeat_at),
            updated_at=ensure_utc_aware(model.updated_at),
        )

    @staticmethod
    def _state_values(run: ImportRun) -> dict[str, object]:
        return {
            "status": run.status.value,
            "error_message": run.error_message,
            "stats": json.dumps(run.stats.to_dict()),
            # NULL frees the slot for the next run
            "active_slot": None if run.is_terminal else 1,
            "download_started_at": run.download_started_at,
            "download_completed_at": run.download_completed_at,
            "processing_started_at": run.processing_started_at,
            "completed_at": run.completed_at,
            "heartbeat_at": run.heartbeat_at,
            "updated_at": run.updated_at,
        }

    # Yo, add() flushes immediately so a second active run fails HERE with an IntegrityError on
    # active_slot (or on period+attempt) instead of at some later commit. The caller's session
    # scope rolls back.
    async def add(self, run: ImportRun) -> None:
        """Insert a new run.

        Raises:
            ImportRunConflictError: Another non-terminal run holds the active slot.
        """
        model = ImportRunModel(
            id=run.id,
            period=run.period,
            attempt=run.attempt,
            created_at=run.created_at,
            **self._state_values(run),
        )
        self.session.add(model)
        try:
            await self.session.flush()
        except IntegrityError as e:
            logger.warning("Import run for %s rejected by database: %s", run.period, e.orig)
            raise ImportRunConflictError(run.period, "active") from e

    # Listen up, the WHERE active_slot IS NOT NULL makes terminal rows immutable at the database
    # level too. If the row was already Completed/Failed (maybe by another process marking it
    # abandoned), rowcount is 0 and we refuse loudly instead of resurrecting it.
    async def update(self, run: ImportRun) -> None:
        """Persist a run's state. Terminal rows are never modified."""
        stmt = (
            update(ImportRunModel)
            .where(ImportRunModel.id == run.id)
            .where(ImportRunModel.active_slot.is_not(None))
            .values(**self._state_values(run))
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount == 0:  # type: ignore[attr-defined]
            raise InvalidStateException(
                f"Import run {run.id} is terminal or missing and cannot be updated"
            )

    async def get_by_id(self, run_id: str) -> ImportRun | None:
        model = await self.session.get(ImportRunModel, run_id, populate_existing=True)
        return self._model_to_entity(model) if model else None

    async def get_latest_for_period(self, period: str) -> ImportRun | None:
        stmt = (
            select(ImportRunModel)
            .where(ImportRunModel.period == period)
            .order_by(ImportRunModel.attempt.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._model_to_entity(model) if model else None

    async def get_active(self) -> ImportRun | None:
        stmt = (
            select(ImportRunModel)
            .where(ImportRunModel.active_slot.is_not(None))
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        model = result.scalars().first()
        return self._model_to_entity(model) if model else None

    async def list_recent(self, limit: int = 10) -> list[ImportRun]:
        stmt = (
            select(ImportRunModel)
            .order_by(ImportRunModel.created_at.desc(), ImportRunModel.attempt.desc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return [self._model_to_entity(model) for model in result.scalars()]


def _aware_or_none(value):  # type: ignore[no-untyped-def]
    return ensure_utc_aware(value) if value is not None else None
