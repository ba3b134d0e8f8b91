"""Worker system - long-running import jobs."""

from waxsync.application.workers.catalog_import_worker import CatalogImportJob

__all__ = ["CatalogImportJob"]
