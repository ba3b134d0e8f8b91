"""Infrastructure persistence layer."""

from .association_builder import AssociationBuilder, AssociationResult
from .batch_upsert import BatchUpsertWriter, UpsertResult, dialect_insert
from .database import Database
from .models import (
    ArtistModel,
    Base,
    GenreModel,
    ImportRunModel,
    LabelModel,
    MasterArtistModel,
    MasterGenreModel,
    MasterModel,
    ReleaseArtistModel,
    ReleaseGenreModel,
    ReleaseLabelModel,
    ReleaseModel,
)
from .repositories import CatalogRepository, ImportRunRepository
from .retry import (
    DatabaseLockMetrics,
    execute_with_retry,
    is_lock_error,
    run_db_operation,
)

__all__ = [
    # Database
    "Database",
    "Base",
    # Models
    "LabelModel",
    "ArtistModel",
    "GenreModel",
    "MasterModel",
    "ReleaseModel",
    "MasterArtistModel",
    "MasterGenreModel",
    "ReleaseArtistModel",
    "ReleaseLabelModel",
    "ReleaseGenreModel",
    "ImportRunModel",
    # Repositories
    "CatalogRepository",
    "ImportRunRepository",
    # Bulk writers
    "BatchUpsertWriter",
    "UpsertResult",
    "AssociationBuilder",
    "AssociationResult",
    "dialect_insert",
    # Retry utilities
    "run_db_operation",
    "execute_with_retry",
    "is_lock_error",
    "DatabaseLockMetrics",
]
