"""Dump file sources."""

from waxsync.infrastructure.dumps.local_dump_source import LocalDumpSource

__all__ = ["LocalDumpSource"]
