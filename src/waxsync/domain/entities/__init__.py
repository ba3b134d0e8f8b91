"""Domain entities."""

from waxsync.domain.entities.catalog import (
    ASSOCIATIONS_BY_ENTITY,
    DUMP_ENTITY_TYPES,
    ArtistRecord,
    AssociationType,
    CatalogRecord,
    EntityType,
    FingerprintedRecord,
    GenreRecord,
    LabelRecord,
    MasterRecord,
    ReleaseRecord,
    TrackEntry,
)
from waxsync.domain.entities.import_run import (
    EntityImportStats,
    FileProcessingStatus,
    ImportRun,
    ImportRunStatus,
    ProcessingStats,
    can_transition,
)

__all__ = [
    "ASSOCIATIONS_BY_ENTITY",
    "DUMP_ENTITY_TYPES",
    "ArtistRecord",
    "AssociationType",
    "CatalogRecord",
    "EntityImportStats",
    "EntityType",
    "FileProcessingStatus",
    "FingerprintedRecord",
    "GenreRecord",
    "ImportRun",
    "ImportRunStatus",
    "LabelRecord",
    "MasterRecord",
    "ProcessingStats",
    "ReleaseRecord",
    "TrackEntry",
    "can_transition",
]
