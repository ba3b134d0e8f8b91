"""Dump file parsers."""

from waxsync.infrastructure.parsers.xml_decoder import (
    DecodeStats,
    StreamingEntityDecoder,
    open_dump,
)

__all__ = ["DecodeStats", "StreamingEntityDecoder", "open_dump"]
