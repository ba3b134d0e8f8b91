"""Domain exceptions."""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, we store message as an attribute so code can inspect it without parsing str(exception).
    # This is the base class - DON'T raise it directly! Always use a specific subclass so the import job
    # can decide precisely what is fatal to a run and what is a conflict.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class ValidationException(DomainException):
    """Raised when input validation fails (e.g. a malformed period label)."""

    pass


class InvalidStateException(DomainException):
    """Raised when an entity is in an invalid state for the requested operation.

    Example: moving a Completed import run back to Processing, or iterating
    a streaming decoder a second time.
    """

    pass


class ConfigurationError(DomainException):
    """Application misconfiguration (unsupported database dialect, bad paths)."""

    pass


# =============================================================================
# Import pipeline errors
# Hey future me - these map 1:1 to how the import job reacts:
# - RecordDecodeError: recovered locally, counted, never leaves the decoder
# - StreamReadError / SourceUnavailableError: fatal to the run
# - BatchWriteError / AssociationWriteError: fatal to the run, earlier chunks stay
# - ImportRunConflictError: rejected before any work, reported as a conflict
# - ImportCancelledError: cooperative cancellation, run ends Failed
# =============================================================================


class RecordDecodeError(DomainException):
    """A single dump record is malformed or incomplete."""

    def __init__(self, message: str, record_id: Any = None) -> None:
        super().__init__(message)
        self.record_id = record_id


class StreamReadError(DomainException):
    """The source byte stream cannot be read any further."""

    pass


class SourceUnavailableError(DomainException):
    """A dump file for the requested period is missing or failed validation."""

    pass


class BatchWriteError(DomainException):
    """A bulk upsert chunk failed and was rolled back.

    Chunks committed before the failing one stay committed.
    """

    def __init__(
        self,
        entity_type: str,
        chunk_index: int,
        committed_chunks: int,
        cause: BaseException,
    ) -> None:
        super().__init__(
            f"Bulk upsert of {entity_type} failed in chunk {chunk_index} "
            f"({committed_chunks} earlier chunks committed): {cause}"
        )
        self.entity_type = entity_type
        self.chunk_index = chunk_index
        self.committed_chunks = committed_chunks


class AssociationWriteError(DomainException):
    """An association batch was rejected as a whole."""

    def __init__(self, association: str, pair_count: int, cause: BaseException) -> None:
        super().__init__(
            f"Inserting {pair_count} {association} pairs failed: {cause}"
        )
        self.association = association
        self.pair_count = pair_count


class ImportRunConflictError(DomainException):
    """Another import run is still active."""

    def __init__(self, period: str, status: str) -> None:
        super().__init__(
            f"Import run for period {period} is still {status}; "
            "refusing to start a second run"
        )
        self.period = period
        self.status = status


class ImportCancelledError(DomainException):
    """The import job received a cancellation signal."""

    pass


class DatabaseTimeoutError(DomainException):
    """A single database operation exceeded its timeout."""

    pass


__all__ = [
    "AssociationWriteError",
    "BatchWriteError",
    "ConfigurationError",
    "DatabaseTimeoutError",
    "DomainException",
    "ImportCancelledError",
    "ImportRunConflictError",
    "InvalidStateException",
    "RecordDecodeError",
    "SourceUnavailableError",
    "StreamReadError",
    "ValidationException",
]
