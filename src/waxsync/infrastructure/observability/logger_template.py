"""Shared logger utilities for the import pipeline.

Hey future me - this keeps import logs consistent and greppable!

USAGE:
    from waxsync.infrastructure.observability.logger_template import (
        log_batch_summary,
        log_operation,
        log_slow_operation,
    )

    async with log_operation(logger, "catalog_import.entity", entity_type="releases"):
        await service.import_entity(...)

RULE OF THUMB: one INFO line per batch, DEBUG for anything per record. A releases dump has
millions of records - a per-record INFO line is a multi-gigabyte log file.
"""

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any


# Yo, this context manager logs start/end with automatic duration tracking. The **context args
# become extra fields in all three logs. On exception it logs the failure and re-raises so the
# caller decides what the error means for the run. CancelledError is a BaseException and
# bypasses the failure log on purpose - the job logs cancellation itself.
@asynccontextmanager
async def log_operation(
    logger: logging.Logger,
    operation: str,
    **context: Any,
) -> AsyncIterator[None]:
    """Context manager for logging operation start/end with automatic timing.

    Logs:
    - {operation}.started with context fields
    - {operation}.completed with context + duration_ms
    - {operation}.failed with context + duration_ms + error details (if exception)

    Args:
        logger: Module logger
        operation: Operation name (e.g., "catalog_import.run")
        **context: Additional fields to include in logs (e.g., period="2024-01")
    """
    start = time.monotonic()
    logger.info(f"{operation}.started", extra=context)

    try:
        yield
    except Exception as e:
        duration_ms = int((time.monotonic() - start) * 1000)
        logger.error(
            f"{operation}.failed",
            extra={
                **context,
                "duration_ms": duration_ms,
                "error": str(e),
                "error_type": type(e).__name__,
            },
        )
        raise

    duration_ms = int((time.monotonic() - start) * 1000)
    logger.info(
        f"{operation}.completed",
        extra={**context, "duration_ms": duration_ms},
    )


def log_batch_summary(
    logger: logging.Logger,
    entity_type: str,
    batch_number: int,
    records: int,
    inserted: int,
    updated: int,
    skipped: int,
    rows_affected: int,
    duration_ms: int,
    extra_stats: dict[str, Any] | None = None,
) -> None:
    """Log one batch of an entity import in a consistent format."""
    log_data = {
        "entity_type": entity_type,
        "batch": batch_number,
        "records": records,
        "inserted": inserted,
        "updated": updated,
        "skipped": skipped,
        "rows_affected": rows_affected,
        "duration_ms": duration_ms,
    }
    if extra_stats:
        log_data.update(extra_stats)

    logger.info(
        "catalog_import.batch %s #%d: %d records (%d new, %d changed, %d unchanged) in %dms",
        entity_type,
        batch_number,
        records,
        inserted,
        updated,
        skipped,
        duration_ms,
        extra=log_data,
    )


# Yo, simple slow-batch detection. A batch that suddenly takes 10x longer usually means lock
# contention or a missing index - the warning is the first hint.
def log_slow_operation(
    logger: logging.Logger,
    operation: str,
    duration_ms: int,
    threshold_ms: int = 100,
    **context: Any,
) -> None:
    """Log warning if operation exceeded threshold.

    Args:
        logger: Logger instance
        operation: Operation name
        duration_ms: Actual operation duration
        threshold_ms: Threshold for "slow" (default: 100ms)
        **context: Additional fields (e.g., entity_type, batch)
    """
    if duration_ms > threshold_ms:
        logger.warning(
            "operation.slow",
            extra={
                **context,
                "operation": operation,
                "duration_ms": duration_ms,
                "threshold_ms": threshold_ms,
            },
        )
