"""Observability infrastructure for structured logging."""

from waxsync.infrastructure.observability.logger_template import (
    log_batch_summary,
    log_operation,
    log_slow_operation,
)
from waxsync.infrastructure.observability.logging import (
    configure_logging,
    get_correlation_id,
    set_correlation_id,
)

__all__ = [
    "configure_logging",
    "get_correlation_id",
    "log_batch_summary",
    "log_operation",
    "log_slow_operation",
    "set_correlation_id",
]
