# Hey future me - this is THE hot path of a monthly import! Millions of rows go through here.
#
# One statement per chunk:
#   INSERT INTO releases (...) VALUES (...), (...), ...
#   ON CONFLICT (id) DO UPDATE SET col = excluded.col, ...
#   WHERE releases.content_hash <> excluded.content_hash
#
# The WHERE is what makes reruns cheap: a row whose fingerprint did not change is not touched
# at all, so rowcount stays 0 and updated_at keeps its old value.
#
# GOLDEN RULE (same as everywhere else with SQLite): commit per chunk. A chunk that fails is
# rolled back alone; the chunks before it stay committed and BatchWriteError says how many.
"""Chunked, conflict-aware bulk upsert of catalog records."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import Table
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from waxsync.config import CatalogImportSettings
from waxsync.domain.entities import EntityType, FingerprintedRecord
from waxsync.domain.exceptions import (
    BatchWriteError,
    ConfigurationError,
    DatabaseTimeoutError,
)
from waxsync.infrastructure.persistence.catalog_tables import (
    entity_table,
    record_to_row,
)
from waxsync.infrastructure.persistence.retry import run_db_operation

logger = logging.getLogger(__name__)

_DIALECT_INSERTS: dict[str, Callable[[Table], Any]] = {
    "sqlite": sqlite_insert,
    "postgresql": postgresql_insert,
}

# Never overwritten by an update
_INSERT_ONLY_COLUMNS = frozenset({"id", "created_at"})


def dialect_insert(session: AsyncSession) -> Callable[[Table], Any]:
    """Pick the INSERT construct with ON CONFLICT support for the session's database.

    Raises:
        ConfigurationError: If the database is neither SQLite nor PostgreSQL.
    """
    dialect_name = session.get_bind().dialect.name
    try:
        return _DIALECT_INSERTS[dialect_name]
    except KeyError:
        raise ConfigurationError(
            f"Bulk upserts need SQLite or PostgreSQL, got '{dialect_name}'"
        ) from None


@dataclass(frozen=True)
class UpsertResult:
    """Outcome of one upsert call."""

    rows_submitted: int
    rows_affected: int
    chunks_committed: int


class BatchUpsertWriter:
    """Writes fingerprinted records with one conflict-aware statement per chunk."""

    def __init__(
        self,
        batch_size: int = 2000,
        max_bind_params: int = 30000,
        timeout_seconds: float = 120.0,
    ) -> None:
        if batch_size < 1:
            raise ConfigurationError("batch_size must be at least 1")
        self.batch_size = batch_size
        self.max_bind_params = max_bind_params
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, settings: CatalogImportSettings) -> BatchUpsertWriter:
        return cls(
            batch_size=settings.batch_size,
            max_bind_params=settings.max_bind_params,
            timeout_seconds=settings.db_operation_timeout_seconds,
        )

    def chunk_size_for(self, column_count: int) -> int:
        """Rows per statement so that rows * columns stays under the bind limit."""
        by_params = self.max_bind_params // max(column_count, 1)
        return max(1, min(self.batch_size, by_params))

    async def upsert(
        self,
        session: AsyncSession,
        entity_type: EntityType,
        records: Sequence[FingerprintedRecord],
    ) -> UpsertResult:
        """Insert new records and update changed ones.

        Args:
            session: Session of the current unit of work; committed per chunk
            entity_type: Target table
            records: Records with their fingerprints, at most one per id

        Returns:
            UpsertResult with submitted rows, affected rows and committed chunks.

        Raises:
            BatchWriteError: A chunk failed; it was rolled back, earlier chunks stay.
            DatabaseTimeoutError: A chunk exceeded the operation timeout.
            ConfigurationError: Unsupported database dialect.
        """
        if not records:
            return UpsertResult(rows_submitted=0, rows_affected=0, chunks_committed=0)

        insert = dialect_insert(session)
        table = entity_table(entity_type)
        now = datetime.now(UTC)
        rows = [record_to_row(item.record, item.content_hash, now) for item in records]
        chunk_size = self.chunk_size_for(len(rows[0]))

        rows_affected = 0
        committed = 0
        for chunk_index, start in enumerate(range(0, len(rows), chunk_size)):
            chunk = rows[start : start + chunk_size]
            stmt = self._build_statement(insert, table, chunk)
            try:
                result = await run_db_operation(
                    lambda stmt=stmt: session.execute(stmt),
                    timeout_seconds=self.timeout_seconds,
                    description=f"upsert {entity_type.value}",
                )
                await run_db_operation(
                    session.commit,
                    timeout_seconds=self.timeout_seconds,
                    description=f"commit {entity_type.value}",
                )
            except DatabaseTimeoutError:
                await session.rollback()
                raise
            except Exception as e:
                await session.rollback()
                logger.error(
                    "Upsert of %s chunk %d (%d rows) failed after %d committed chunks: %s",
                    entity_type.value,
                    chunk_index,
                    len(chunk),
                    committed,
                    e,
                )
                raise BatchWriteError(entity_type.value, chunk_index, committed, e) from e

            affected = max(result.rowcount or 0, 0)
            rows_affected += affected
            committed += 1
            logger.debug(
                "Upserted %s chunk %d: %d rows submitted, %d affected",
                entity_type.value,
                chunk_index,
                len(chunk),
                affected,
            )

        return UpsertResult(
            rows_submitted=len(rows),
            rows_affected=rows_affected,
            chunks_committed=committed,
        )

    @staticmethod
    def _build_statement(
        insert: Callable[[Table], Any], table: Table, rows: list[dict[str, Any]]
    ) -> Any:
        stmt = insert(table).values(rows)
        excluded = stmt.excluded
        updates = {
            column.name: excluded[column.name]
            for column in table.columns
            if column.name not in _INSERT_ONLY_COLUMNS
        }
        return stmt.on_conflict_do_update(
            index_elements=[table.c.id],
            set_=updates,
            where=table.c.content_hash != excluded.content_hash,
        )
