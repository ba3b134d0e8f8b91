# Hey future me - this is the per-file workhorse of an import run!
#
# For ONE dump file (one entity type) it runs a pipelined loop:
#
#   worker thread:  decode batch 1 │ decode batch 2 │ decode batch 3 │ ...
#   event loop:                    │ write batch 1  │ write batch 2  │ ...
#
# lxml parsing is CPU-bound and blocking, the database writes are async I/O, so decoding the
# next batch in asyncio.to_thread while the current one is written roughly halves wall time.
# There is never more than ONE decode in flight (the generator is not thread-safe), and before
# the dump file is closed we always wait for that decode to finish.
#
# Per batch, in one unit of work (db.session_scope):
#   1. fetch stored content hashes for the batch ids
#   2. classify → inserts / updates / skips
#   3. bulk upsert inserts + updates (commits per chunk)
#   4. masters/releases: upsert genres, then insert the exact association pairs
# After the batch: persist stats + heartbeat, then check for cancellation.
"""Imports one catalog dump file into the database."""

import asyncio
import logging
import time
from collections.abc import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from waxsync.application.services.association_pairs import (
    extract_pairs,
    genre_records,
)
from waxsync.application.services.change_classifier import ChangeSet, classify_changes
from waxsync.application.services.import_run_tracker import ImportRunTracker
from waxsync.config import CatalogImportSettings
from waxsync.domain.entities import (
    ASSOCIATIONS_BY_ENTITY,
    CatalogRecord,
    EntityImportStats,
    EntityType,
    FileProcessingStatus,
    ImportRun,
)
from waxsync.domain.exceptions import ImportCancelledError
from waxsync.domain.ports import DumpFile
from waxsync.infrastructure.observability.logger_template import (
    log_batch_summary,
    log_slow_operation,
)
from waxsync.infrastructure.parsers.xml_decoder import (
    DecodeStats,
    StreamingEntityDecoder,
    open_dump,
)
from waxsync.infrastructure.persistence.association_builder import AssociationBuilder
from waxsync.infrastructure.persistence.batch_upsert import BatchUpsertWriter
from waxsync.infrastructure.persistence.database import Database
from waxsync.infrastructure.persistence.repositories import CatalogRepository
from waxsync.infrastructure.persistence.retry import run_db_operation

logger = logging.getLogger(__name__)

SLOW_BATCH_MS = 30_000


def first_occurrences(records: list[CatalogRecord]) -> list[CatalogRecord]:
    """Drop repeated ids, keeping the first record of each id in input order."""
    seen: set[int] = set()
    unique: list[CatalogRecord] = []
    for record in records:
        if record.id not in seen:
            seen.add(record.id)
            unique.append(record)
    return unique


class CatalogImportService:
    """Imports a single dump file batch by batch."""

    def __init__(
        self,
        db: Database,
        settings: CatalogImportSettings,
        tracker: ImportRunTracker,
        writer: BatchUpsertWriter | None = None,
        association_builder: AssociationBuilder | None = None,
    ) -> None:
        """Initialize service.

        Args:
            db: Database for per-batch units of work
            settings: Import tuning (batch sizes, timeouts, vinyl filter)
            tracker: Tracker used to persist progress and heartbeats
            writer: Bulk upsert writer (built from settings if omitted)
            association_builder: Association inserter (built from settings if omitted)
        """
        self.db = db
        self.settings = settings
        self.tracker = tracker
        self.writer = writer or BatchUpsertWriter.from_settings(settings)
        self.association_builder = association_builder or AssociationBuilder.from_settings(
            settings
        )

    async def import_entity(
        self,
        run: ImportRun,
        dump: DumpFile,
        cancel_event: asyncio.Event,
        cancel_reason: Callable[[], str] = lambda: "requested",
    ) -> EntityImportStats:
        """Decode, classify and write one dump file.

        Args:
            run: The active run; its stats entry for the entity is updated in place
            dump: Located dump file
            cancel_event: Checked after every batch
            cancel_reason: Supplies the reason recorded on cancellation

        Returns:
            The entity's stats entry.

        Raises:
            ImportCancelledError: cancel_event was set; the current batch finished first.
            StreamReadError, BatchWriteError, AssociationWriteError, DatabaseTimeoutError:
                fatal to the run.
        """
        entity_type = dump.entity_type
        stats = run.stats.for_entity(entity_type)
        stats.status = FileProcessingStatus.PROCESSING
        stats.dump_path = str(dump.path)
        stats.size_bytes = dump.size_bytes
        stats.checksum = dump.checksum
        await self._save_progress(run)

        try:
            with open_dump(dump.path) as stream:
                decoder = StreamingEntityDecoder(
                    entity_type,
                    stream,
                    vinyl_only=self.settings.vinyl_only,
                    error_sample_limit=self.settings.error_sample_limit,
                )
                await self._run_pipeline(run, decoder, stats, cancel_event, cancel_reason)
        except BaseException:
            stats.status = FileProcessingStatus.FAILED
            raise

        stats.status = FileProcessingStatus.COMPLETED
        await self._save_progress(run)
        logger.info(
            "Finished %s: %d decoded, %d filtered, %d errored, %d inserted, %d updated, %d unchanged",
            entity_type.value,
            stats.decoded,
            stats.filtered,
            stats.errored,
            stats.inserted,
            stats.updated,
            stats.skipped,
        )
        return stats

    async def _run_pipeline(
        self,
        run: ImportRun,
        decoder: StreamingEntityDecoder,
        stats: EntityImportStats,
        cancel_event: asyncio.Event,
        cancel_reason: Callable[[], str],
    ) -> None:
        batches = decoder.batches(self.settings.batch_size)
        pending: asyncio.Task[list[CatalogRecord] | None] | None = asyncio.create_task(
            asyncio.to_thread(next, batches, None)
        )
        batch_number = 0
        try:
            while pending is not None:
                batch = await pending
                pending = None
                if batch is None:
                    break
                pending = asyncio.create_task(asyncio.to_thread(next, batches, None))

                batch_number += 1
                await self._process_batch(decoder.entity_type, batch_number, batch, stats)
                self._sync_decoder_stats(stats, decoder.stats)
                await self._save_progress(run)

                if cancel_event.is_set():
                    raise ImportCancelledError(f"cancelled: {cancel_reason()}")
        finally:
            # The stream closes after we return, never while a decode is still reading it
            if pending is not None:
                await asyncio.gather(pending, return_exceptions=True)
            batches.close()
            self._sync_decoder_stats(stats, decoder.stats)

    async def _process_batch(
        self,
        entity_type: EntityType,
        batch_number: int,
        batch: list[CatalogRecord],
        stats: EntityImportStats,
    ) -> None:
        started = time.monotonic()
        async with self.db.session_scope() as session:
            changes = await self._classify(session, entity_type, batch)
            upserted = await self.writer.upsert(session, entity_type, changes.writes)

            association_counts: dict[str, int] = {}
            associations = ASSOCIATIONS_BY_ENTITY.get(entity_type, ())
            if associations:
                records = first_occurrences(batch)
                genres = genre_records(records)
                if genres:
                    genre_changes = await self._classify(
                        session, EntityType.GENRE, [item.record for item in genres]
                    )
                    # Genre ids come from the normalized name, so a stored genre never changes.
                    # Spelling variants in other batches ("Rock" vs "rock") must not rewrite it.
                    await self.writer.upsert(session, EntityType.GENRE, genre_changes.inserts)
                for association_type in associations:
                    result = await self.association_builder.insert_pairs(
                        session, association_type, extract_pairs(association_type, records)
                    )
                    stats.add_association_rows(association_type.value, result.rows_inserted)
                    association_counts[association_type.value] = result.rows_inserted

        stats.decoded += len(batch)
        stats.inserted += len(changes.inserts)
        stats.updated += len(changes.updates)
        stats.skipped += len(changes.skips)
        stats.rows_affected += upserted.rows_affected
        stats.batches += 1

        duration_ms = int((time.monotonic() - started) * 1000)
        log_batch_summary(
            logger,
            entity_type.value,
            batch_number,
            records=len(batch),
            inserted=len(changes.inserts),
            updated=len(changes.updates),
            skipped=len(changes.skips),
            rows_affected=upserted.rows_affected,
            duration_ms=duration_ms,
            extra_stats=association_counts or None,
        )
        log_slow_operation(
            logger,
            "catalog_import.batch",
            duration_ms,
            threshold_ms=SLOW_BATCH_MS,
            entity_type=entity_type.value,
            batch=batch_number,
        )

    async def _classify(
        self, session: AsyncSession, entity_type: EntityType, records: list[CatalogRecord]
    ) -> ChangeSet:
        repo = CatalogRepository(session)
        ids = [record.id for record in records]
        existing = await run_db_operation(
            lambda: repo.get_content_hashes(entity_type, ids),
            timeout_seconds=self.settings.db_operation_timeout_seconds,
            description=f"load {entity_type.value} hashes",
        )
        return classify_changes(records, existing)

    def _sync_decoder_stats(self, stats: EntityImportStats, decoded: DecodeStats) -> None:
        # decoded is counted per processed batch; filter and error counters come from the
        # decoder and may run one batch ahead while the next decode is in flight
        stats.filtered = decoded.filtered
        stats.errored = decoded.errored
        stats.error_samples = list(decoded.error_samples[: self.settings.error_sample_limit])

    async def _save_progress(self, run: ImportRun) -> None:
        async with self.db.session_scope() as session:
            await self.tracker.record_progress(session, run)
