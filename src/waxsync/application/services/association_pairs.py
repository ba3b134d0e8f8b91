"""Exact association pairs observed on decoded records."""

from collections.abc import Iterable, Iterator

from waxsync.domain.entities import (
    AssociationType,
    CatalogRecord,
    EntityType,
    FingerprintedRecord,
    GenreRecord,
    MasterRecord,
    ReleaseRecord,
)
from waxsync.domain.value_objects import (
    fingerprint_record,
    genre_id_for,
    normalize_genre_name,
)


def _right_ids(association_type: AssociationType, record: CatalogRecord) -> Iterable[int]:
    if association_type in (AssociationType.MASTER_ARTIST, AssociationType.RELEASE_ARTIST):
        return record.artist_ids  # type: ignore[attr-defined]
    if association_type == AssociationType.RELEASE_LABEL:
        return record.label_ids  # type: ignore[attr-defined]
    return (genre_id_for(name) for name in record.genres if name.strip())  # type: ignore[attr-defined]


# Yo, the ONLY correct way to build association pairs: walk record by record and emit the ids
# THAT record mentions. Never collect "all artist ids of the batch" and combine them with "all
# master ids of the batch" - that is the cross product bug.
def extract_pairs(
    association_type: AssociationType, records: Iterable[CatalogRecord]
) -> Iterator[tuple[int, int]]:
    """Yield (left id, right id) for every relationship a record carries.

    Records of the wrong kind for the association are ignored.
    """
    record_type = MasterRecord if association_type.left == EntityType.MASTER else ReleaseRecord
    for record in records:
        if not isinstance(record, record_type):
            continue
        for right_id in _right_ids(association_type, record):
            yield (record.id, right_id)


def genre_records(records: Iterable[CatalogRecord]) -> list[FingerprintedRecord]:
    """Distinct genres mentioned by masters/releases, ready for the upsert writer.

    The first spelling seen for a normalized name wins, so "Rock" and "rock"
    become one genre row. Callers only insert these; an existing genre row keeps
    the spelling it was first stored with.
    """
    genres: dict[int, GenreRecord] = {}
    for record in records:
        for name in getattr(record, "genres", ()):
            if not normalize_genre_name(name):
                continue
            genre_id = genre_id_for(name)
            if genre_id not in genres:
                genres[genre_id] = GenreRecord(id=genre_id, name=name.strip())
    return [
        FingerprintedRecord(record=genre, content_hash=fingerprint_record(genre))
        for genre in genres.values()
    ]
