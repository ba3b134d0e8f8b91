# Hey future me - READ THIS before touching association inserts!
#
# The bug this module exists to prevent: a batch with master 10 (artists 1, 2) and master 11
# (artist 3) must produce exactly {(10,1), (10,2), (11,3)}. If you ever build the insert as
# "all masters of the batch x all artists of the batch" you get six rows and the catalog claims
# artist 3 played on master 10. So we ONLY ever insert the exact pairs handed in.
#
# The statement per sub-chunk:
#   INSERT INTO master_artists (master_id, artist_id)
#   SELECT c.left_id, c.right_id
#   FROM (SELECT ? AS left_id, ? AS right_id UNION ALL SELECT ?, ? ...) AS c
#   JOIN masters ON masters.id = c.left_id
#   JOIN artists ON artists.id = c.right_id
#   WHERE c.left_id IS NOT NULL
#   ORDER BY c.left_id, c.right_id
#   ON CONFLICT (master_id, artist_id) DO NOTHING
#
# - the JOINs drop pairs whose entity row does not exist (referential integrity, no FK error)
# - the WHERE is required by SQLite: without it "ON CONFLICT" parses as a join condition
# - ORDER BY plus sorted input keeps lock order stable between concurrent writers
# - sub-chunks stay under SQLite's 500-term compound SELECT limit
"""Exact-pair association inserts with a referential join."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import BigInteger, literal, select, union_all
from sqlalchemy.ext.asyncio import AsyncSession

from waxsync.config import CatalogImportSettings
from waxsync.domain.entities import AssociationType
from waxsync.domain.exceptions import AssociationWriteError, ConfigurationError
from waxsync.infrastructure.persistence.batch_upsert import dialect_insert
from waxsync.infrastructure.persistence.catalog_tables import (
    AssociationTable,
    association_table,
)
from waxsync.infrastructure.persistence.retry import run_db_operation

logger = logging.getLogger(__name__)

# SQLite's default SQLITE_MAX_COMPOUND_SELECT
MAX_COMPOUND_SELECT = 500

Pair = tuple[int, int]


@dataclass(frozen=True)
class AssociationResult:
    """Outcome of one insert_pairs call."""

    pairs_submitted: int
    pairs_unique: int
    rows_inserted: int


class AssociationBuilder:
    """Inserts exactly the given (left, right) pairs into an association table."""

    def __init__(self, sub_batch_size: int = 400, timeout_seconds: float = 120.0) -> None:
        if not 1 <= sub_batch_size <= MAX_COMPOUND_SELECT:
            raise ConfigurationError(
                f"association sub-batch size must be between 1 and {MAX_COMPOUND_SELECT}"
            )
        self.sub_batch_size = sub_batch_size
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, settings: CatalogImportSettings) -> AssociationBuilder:
        return cls(
            sub_batch_size=settings.association_batch_size,
            timeout_seconds=settings.db_operation_timeout_seconds,
        )

    async def insert_pairs(
        self,
        session: AsyncSession,
        association_type: AssociationType,
        pairs: Iterable[Pair],
    ) -> AssociationResult:
        """Insert pairs whose both sides exist; duplicates and existing rows are no-ops.

        All sub-chunks of one call share one transaction: either every
        qualifying pair is stored or none is.

        Args:
            session: Session of the current unit of work
            association_type: Target association table
            pairs: (left id, right id) pairs, e.g. (master_id, artist_id)

        Returns:
            AssociationResult with submitted, unique and inserted counts.

        Raises:
            AssociationWriteError: Any statement failed; the whole call was rolled back.
        """
        submitted = list(pairs)
        unique = sorted(set(submitted))
        if not unique:
            return AssociationResult(pairs_submitted=len(submitted), pairs_unique=0, rows_inserted=0)

        insert = dialect_insert(session)
        target = association_table(association_type)
        inserted = 0
        try:
            for start in range(0, len(unique), self.sub_batch_size):
                chunk = unique[start : start + self.sub_batch_size]
                stmt = self._build_statement(insert, target, chunk)
                result = await run_db_operation(
                    lambda stmt=stmt: session.execute(stmt),
                    timeout_seconds=self.timeout_seconds,
                    description=f"insert {association_type.value}",
                )
                inserted += max(result.rowcount or 0, 0)
            await run_db_operation(
                session.commit,
                timeout_seconds=self.timeout_seconds,
                description=f"commit {association_type.value}",
            )
        except Exception as e:
            await session.rollback()
            logger.error(
                "Association insert into %s failed, %d pairs rolled back: %s",
                association_type.value,
                len(unique),
                e,
            )
            raise AssociationWriteError(association_type.value, len(unique), e) from e

        logger.debug(
            "Associated %s: %d submitted, %d unique, %d inserted",
            association_type.value,
            len(submitted),
            len(unique),
            inserted,
        )
        return AssociationResult(
            pairs_submitted=len(submitted),
            pairs_unique=len(unique),
            rows_inserted=inserted,
        )

    @staticmethod
    def _build_statement(insert, target: AssociationTable, pairs: list[Pair]):  # type: ignore[no-untyped-def]
        rows = [
            select(
                literal(left, BigInteger).label("left_id"),
                literal(right, BigInteger).label("right_id"),
            )
            for left, right in pairs
        ]
        candidate = (rows[0] if len(rows) == 1 else union_all(*rows)).subquery("candidate")

        left_table = target.left_table
        right_table = target.right_table
        source = (
            select(candidate.c.left_id, candidate.c.right_id)
            .select_from(
                candidate.join(left_table, left_table.c.id == candidate.c.left_id).join(
                    right_table, right_table.c.id == candidate.c.right_id
                )
            )
            .where(candidate.c.left_id.is_not(None))
            .order_by(candidate.c.left_id, candidate.c.right_id)
        )
        return (
            insert(target.table)
            .from_select([target.left_column.name, target.right_column.name], source)
            .on_conflict_do_nothing(
                index_elements=[target.left_column, target.right_column]
            )
        )
