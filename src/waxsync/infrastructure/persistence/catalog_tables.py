"""Table registry and record-to-row mapping for the catalog.

Hey future me - this is the only place that knows how a decoded record turns into a database
row. The rule is simple: every row field of the record becomes a column of the same name,
tuples and nested track entries become JSON text, enums become their value. content_hash and
the timestamps are added on top. Because the row is built from exactly the fields that were
fingerprinted, the stored hash always matches the stored values.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import Column, Table

from waxsync.domain.entities import AssociationType, CatalogRecord, EntityType
from waxsync.infrastructure.persistence.models import (
    ArtistModel,
    Base,
    GenreModel,
    LabelModel,
    MasterArtistModel,
    MasterGenreModel,
    MasterModel,
    ReleaseArtistModel,
    ReleaseGenreModel,
    ReleaseLabelModel,
    ReleaseModel,
)

ENTITY_MODELS: dict[EntityType, type[Base]] = {
    EntityType.LABEL: LabelModel,
    EntityType.ARTIST: ArtistModel,
    EntityType.GENRE: GenreModel,
    EntityType.MASTER: MasterModel,
    EntityType.RELEASE: ReleaseModel,
}

ASSOCIATION_MODELS: dict[AssociationType, type[Base]] = {
    AssociationType.MASTER_ARTIST: MasterArtistModel,
    AssociationType.MASTER_GENRE: MasterGenreModel,
    AssociationType.RELEASE_ARTIST: ReleaseArtistModel,
    AssociationType.RELEASE_LABEL: ReleaseLabelModel,
    AssociationType.RELEASE_GENRE: ReleaseGenreModel,
}

# Columns the upsert writer manages itself and never takes from the record
BOOKKEEPING_COLUMNS = frozenset({"content_hash", "created_at", "updated_at"})


def entity_table(entity_type: EntityType) -> Table:
    return ENTITY_MODELS[entity_type].__table__  # type: ignore[return-value]


@dataclass(frozen=True)
class AssociationTable:
    """An association table with the entity tables on both sides."""

    association_type: AssociationType
    table: Table
    left_column: Column[Any]
    right_column: Column[Any]
    left_table: Table
    right_table: Table


def association_table(association_type: AssociationType) -> AssociationTable:
    table: Table = ASSOCIATION_MODELS[association_type].__table__  # type: ignore[assignment]
    left_name, right_name = (column.name for column in table.primary_key.columns)
    return AssociationTable(
        association_type=association_type,
        table=table,
        left_column=table.c[left_name],
        right_column=table.c[right_name],
        left_table=entity_table(association_type.left),
        right_table=entity_table(association_type.right),
    )


def _to_column_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple, dict)):
        # Empty lists are stored as NULL
        if not value:
            return None
        return json.dumps(value, ensure_ascii=False, default=_json_default)
    return value


def _json_default(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"Cannot serialize {type(value).__name__} to JSON")


def record_to_row(record: CatalogRecord, content_hash: str, now: datetime) -> dict[str, Any]:
    """Build the insert row of a record.

    Args:
        record: Decoded record
        content_hash: Fingerprint of the record's row fields
        now: Timestamp for created_at/updated_at

    Returns:
        Column name to value, covering every column of the entity table.
    """
    row = {key: _to_column_value(value) for key, value in record.hashable_fields().items()}
    row["content_hash"] = content_hash
    row["created_at"] = now
    row["updated_at"] = now
    return row
