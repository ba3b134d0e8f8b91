# Hey future me - every database round trip of an import goes through run_db_operation()!
#
# Two things can go wrong that are NOT bugs:
# 1. SQLite says "database is locked" because `waxsync status` or a backup holds a lock.
#    Locks are TEMPORARY - waiting and retrying almost always works.
# 2. A statement hangs (lock that never clears, dead Postgres connection). Without a bound the
#    import would sit in PROCESSING forever and block every future run.
#
# So: lock errors retry with exponential backoff, and the whole thing (including retries) runs
# under asyncio.timeout(). A timeout surfaces as DatabaseTimeoutError and fails the run.
"""Database retry and timeout utilities."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from sqlalchemy.exc import OperationalError

from waxsync.domain.exceptions import DatabaseTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DatabaseLockMetrics:
    """Track database lock events for the run summary.

    Metrics tracked:
    - lock_attempts: Total operations that attempted DB access
    - lock_retries: Total retry attempts made
    - lock_failures: Operations that failed after all retries exhausted
    - timeouts: Operations that exceeded their timeout
    - total_wait_time_ms: Cumulative time spent waiting for locks
    """

    _instance: DatabaseLockMetrics | None = None

    def __init__(self) -> None:
        """Initialize metrics counters."""
        self.lock_attempts: int = 0
        self.lock_retries: int = 0
        self.lock_failures: int = 0
        self.timeouts: int = 0
        self.total_wait_time_ms: float = 0.0
        self.last_lock_event: float | None = None

    @classmethod
    def get_instance(cls) -> DatabaseLockMetrics:
        """Get singleton instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def record_retry(self, wait_time_ms: float) -> None:
        self.lock_retries += 1
        self.total_wait_time_ms += wait_time_ms
        self.last_lock_event = time.time()

    def record_failure(self) -> None:
        self.lock_failures += 1
        self.last_lock_event = time.time()

    def get_stats(self) -> dict[str, Any]:
        return {
            "lock_attempts": self.lock_attempts,
            "lock_retries": self.lock_retries,
            "lock_failures": self.lock_failures,
            "timeouts": self.timeouts,
            "total_wait_time_ms": round(self.total_wait_time_ms, 2),
            "retry_rate": round(
                self.lock_retries / self.lock_attempts if self.lock_attempts > 0 else 0,
                4,
            ),
            "last_lock_event_timestamp": self.last_lock_event,
        }

    def reset(self) -> None:
        """Reset all metrics (for testing)."""
        self.lock_attempts = 0
        self.lock_retries = 0
        self.lock_failures = 0
        self.timeouts = 0
        self.total_wait_time_ms = 0.0
        self.last_lock_event = None


def is_lock_error(exception: BaseException) -> bool:
    """Check if an exception is a retryable database lock error."""
    if not isinstance(exception, OperationalError):
        return False

    error_msg = str(exception).lower()
    return "locked" in error_msg or "busy" in error_msg


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    initial_delay: float = 0.5,
    max_delay: float = 5.0,
    backoff_factor: float = 2.0,
) -> T:
    """Execute an async operation, retrying on lock errors.

    The backoff is exponential: 0.5s → 1s → 2s (capped at max_delay). Other
    OperationalErrors are raised immediately.

    Args:
        operation: Zero-argument callable returning an awaitable
        max_attempts: Maximum attempts including the first one
        initial_delay: Initial delay between retries in seconds
        max_delay: Upper bound for a single delay
        backoff_factor: Multiply delay by this each retry

    Returns:
        Result of the operation
    """
    metrics = DatabaseLockMetrics.get_instance()
    metrics.lock_attempts += 1
    delay = initial_delay

    for attempt in range(max_attempts):
        try:
            return await operation()
        except OperationalError as e:
            if not is_lock_error(e) or attempt == max_attempts - 1:
                if is_lock_error(e):
                    metrics.record_failure()
                    logger.error(
                        "Database locked after %d attempts, giving up", max_attempts
                    )
                raise

            logger.warning(
                "Database locked (attempt %d/%d), retrying in %.1fs",
                attempt + 1,
                max_attempts,
                delay,
            )
            metrics.record_retry(delay * 1000)
            await asyncio.sleep(delay)
            delay = min(delay * backoff_factor, max_delay)

    raise RuntimeError("Unexpected state in execute_with_retry")


async def run_db_operation(
    operation: Callable[[], Awaitable[T]],
    *,
    timeout_seconds: float,
    description: str,
    max_attempts: int = 3,
    initial_delay: float = 0.5,
) -> T:
    """Run one database round trip with lock retries under a hard timeout.

    Args:
        operation: Zero-argument callable returning an awaitable
        timeout_seconds: Upper bound for the operation including retries
        description: Short name used in logs and the timeout error
        max_attempts: Lock retry attempts
        initial_delay: First backoff delay

    Raises:
        DatabaseTimeoutError: If the operation did not finish in time.
    """
    try:
        async with asyncio.timeout(timeout_seconds):
            return await execute_with_retry(
                operation, max_attempts=max_attempts, initial_delay=initial_delay
            )
    except TimeoutError as e:
        DatabaseLockMetrics.get_instance().timeouts += 1
        raise DatabaseTimeoutError(
            f"Database operation '{description}' exceeded {timeout_seconds:.0f}s"
        ) from e
