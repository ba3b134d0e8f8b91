"""Insert/update/skip classification by content fingerprint."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from waxsync.domain.entities import CatalogRecord, FingerprintedRecord
from waxsync.domain.value_objects import fingerprint_record


@dataclass
class ChangeSet:
    """A batch split by what the database has to do with each record."""

    inserts: list[FingerprintedRecord] = field(default_factory=list)
    updates: list[FingerprintedRecord] = field(default_factory=list)
    skips: list[FingerprintedRecord] = field(default_factory=list)

    @property
    def writes(self) -> list[FingerprintedRecord]:
        """Records the upsert writer has to send, inserts first."""
        return self.inserts + self.updates

    @property
    def total(self) -> int:
        return len(self.inserts) + len(self.updates) + len(self.skips)


# Hey future me, this is a PURE function - no database, no I/O. The caller fetches
# existing_hashes for the batch ids first (CatalogRepository.get_content_hashes) and hands
# them in. Classification per record:
#   id not stored            → insert
#   stored hash differs      → update (NULL stored hash counts as different)
#   stored hash equal        → skip
# Duplicate ids inside one batch: the FIRST occurrence is classified, later ones are skips.
# One ON CONFLICT statement must never touch the same row twice (Postgres refuses outright).
def classify_changes(
    records: Iterable[CatalogRecord],
    existing_hashes: Mapping[int, str | None],
) -> ChangeSet:
    """Classify records against the stored fingerprints of their ids.

    Args:
        records: Decoded records of one batch, in input order
        existing_hashes: id -> stored content_hash for ids already in the database

    Returns:
        ChangeSet whose lists keep the input order.
    """
    changes = ChangeSet()
    seen: set[int] = set()
    for record in records:
        item = FingerprintedRecord(record=record, content_hash=fingerprint_record(record))
        if record.id in seen:
            changes.skips.append(item)
            continue
        seen.add(record.id)

        if record.id not in existing_hashes:
            changes.inserts.append(item)
        elif existing_hashes[record.id] != item.content_hash:
            changes.updates.append(item)
        else:
            changes.skips.append(item)
    return changes
