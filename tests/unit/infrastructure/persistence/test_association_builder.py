"""Tests for exact-pair association inserts (real SQLite database).

Hey future me - the first test is the one that matters: master 10 with artists {1, 2} must
produce exactly {(10,1), (10,2)}, and artist 3 must never get linked to it.
"""

import pytest
from sqlalchemy import select, text

from waxsync.domain.entities import (
    ArtistRecord,
    AssociationType,
    EntityType,
    FingerprintedRecord,
    MasterRecord,
)
from waxsync.domain.exceptions import AssociationWriteError, ConfigurationError
from waxsync.domain.value_objects import fingerprint_record
from waxsync.infrastructure.persistence.association_builder import AssociationBuilder
from waxsync.infrastructure.persistence.batch_upsert import BatchUpsertWriter
from waxsync.infrastructure.persistence.database import Database
from waxsync.infrastructure.persistence.models import MasterArtistModel


async def _seed(db: Database) -> None:
    writer = BatchUpsertWriter()
    artists = [ArtistRecord(id=i, name=f"Artist {i}") for i in (1, 2, 3)]
    masters = [MasterRecord(id=10, title="Ten"), MasterRecord(id=11, title="Eleven")]
    async with db.session_scope() as session:
        for entity_type, records in ((EntityType.ARTIST, artists), (EntityType.MASTER, masters)):
            await writer.upsert(
                session,
                entity_type,
                [FingerprintedRecord(r, fingerprint_record(r)) for r in records],
            )


async def _stored_pairs(db: Database) -> set[tuple[int, int]]:
    async with db.session_scope() as session:
        result = await session.execute(
            select(MasterArtistModel.master_id, MasterArtistModel.artist_id)
        )
        return {(row.master_id, row.artist_id) for row in result}


class TestAssociationBuilder:
    """Test AssociationBuilder.insert_pairs()."""

    @pytest.mark.asyncio
    async def test_inserts_exactly_the_given_pairs(self, db: Database) -> None:
        """No cross product: artist 3 is never linked to master 10."""
        await _seed(db)
        builder = AssociationBuilder(sub_batch_size=400)

        async with db.session_scope() as session:
            result = await builder.insert_pairs(
                session, AssociationType.MASTER_ARTIST, [(10, 1), (10, 2)]
            )

        assert result.rows_inserted == 2
        assert await _stored_pairs(db) == {(10, 1), (10, 2)}

    @pytest.mark.asyncio
    async def test_rerun_inserts_nothing(self, db: Database) -> None:
        """Existing pairs are silently ignored."""
        await _seed(db)
        builder = AssociationBuilder()
        pairs = [(10, 1), (10, 2), (11, 3)]
        async with db.session_scope() as session:
            await builder.insert_pairs(session, AssociationType.MASTER_ARTIST, pairs)

        async with db.session_scope() as session:
            result = await builder.insert_pairs(session, AssociationType.MASTER_ARTIST, pairs)

        assert result.rows_inserted == 0
        assert await _stored_pairs(db) == set(pairs)

    @pytest.mark.asyncio
    async def test_pairs_with_missing_entities_are_dropped(self, db: Database) -> None:
        """Pairs referencing unknown masters or artists are filtered by the join."""
        await _seed(db)
        async with db.session_scope() as session:
            result = await AssociationBuilder().insert_pairs(
                session,
                AssociationType.MASTER_ARTIST,
                [(10, 1), (10, 999), (999, 1)],
            )

        assert result.rows_inserted == 1
        assert await _stored_pairs(db) == {(10, 1)}

    @pytest.mark.asyncio
    async def test_duplicates_are_collapsed(self, db: Database) -> None:
        """Repeated pairs in the input count once."""
        await _seed(db)
        async with db.session_scope() as session:
            result = await AssociationBuilder().insert_pairs(
                session, AssociationType.MASTER_ARTIST, [(10, 1), (10, 1), (10, 1)]
            )

        assert result.pairs_submitted == 3
        assert result.pairs_unique == 1
        assert result.rows_inserted == 1

    @pytest.mark.asyncio
    async def test_sub_batches(self, db: Database) -> None:
        """Pairs are split into sub-batches yet all land."""
        await _seed(db)
        pairs = [(10, 1), (10, 2), (10, 3), (11, 1), (11, 2), (11, 3)]
        async with db.session_scope() as session:
            result = await AssociationBuilder(sub_batch_size=4).insert_pairs(
                session, AssociationType.MASTER_ARTIST, pairs
            )

        assert result.rows_inserted == 6
        assert await _stored_pairs(db) == set(pairs)

    @pytest.mark.asyncio
    async def test_empty_input(self, db: Database) -> None:
        """No pairs, no statement."""
        async with db.session_scope() as session:
            result = await AssociationBuilder().insert_pairs(
                session, AssociationType.MASTER_ARTIST, []
            )
        assert result.rows_inserted == 0

    @pytest.mark.asyncio
    async def test_failure_rolls_back_whole_call(self, db: Database) -> None:
        """A failing statement rolls back every sub-batch of the call."""
        await _seed(db)
        builder = AssociationBuilder(sub_batch_size=2)
        original = builder._build_statement
        calls = []

        def failing_second_statement(insert, target, pairs):  # type: ignore[no-untyped-def]
            calls.append(pairs)
            if len(calls) == 2:
                return text("INSERT INTO no_such_table VALUES (1)")
            return original(insert, target, pairs)

        builder._build_statement = failing_second_statement  # type: ignore[method-assign]

        async with db.session_scope() as session:
            with pytest.raises(AssociationWriteError) as exc_info:
                await builder.insert_pairs(
                    session, AssociationType.MASTER_ARTIST, [(10, 1), (10, 2), (11, 3)]
                )

        assert exc_info.value.pair_count == 3
        assert await _stored_pairs(db) == set()

    def test_sub_batch_size_is_bounded(self) -> None:
        """SQLite refuses compound selects with more than 500 terms."""
        with pytest.raises(ConfigurationError):
            AssociationBuilder(sub_batch_size=501)
        with pytest.raises(ConfigurationError):
            AssociationBuilder(sub_batch_size=0)
