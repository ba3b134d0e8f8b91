"""Application services - change detection, state tracking and per-file imports."""

from waxsync.application.services.association_pairs import extract_pairs, genre_records
from waxsync.application.services.catalog_import_service import CatalogImportService
from waxsync.application.services.change_classifier import ChangeSet, classify_changes
from waxsync.application.services.import_run_tracker import ImportRunTracker

__all__ = [
    "CatalogImportService",
    "ChangeSet",
    "ImportRunTracker",
    "classify_changes",
    "extract_pairs",
    "genre_records",
]
