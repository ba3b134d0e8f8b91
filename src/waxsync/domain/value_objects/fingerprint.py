"""Content fingerprints for catalog records.

A fingerprint is the SHA-256 of a canonical JSON rendering of a record's
semantically relevant fields. Canonical means: keys sorted at every nesting
level, compact separators, tuples rendered as lists. Two records with equal
relevant fields therefore always hash the same no matter how the mapping was
built in memory.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from enum import Enum
from typing import Any, Protocol

FINGERPRINT_LENGTH = 64


class Hashable(Protocol):
    """Anything that can list the fields its fingerprint is computed from."""

    def hashable_fields(self) -> dict[str, Any]: ...


def _normalize(value: Any) -> Any:
    # Hey future me - Enum must come before str: ReleaseFormat is a str subclass
    # and json would happily dump it, but normalizing to .value keeps the
    # digest independent of the Python type.
    if isinstance(value, Enum):
        return _normalize(value.value)
    if isinstance(value, Mapping):
        return {str(key): _normalize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted(_normalize(item) for item in value)
    return value


def canonical_json(fields: Mapping[str, Any]) -> str:
    """Render fields as canonical JSON (sorted keys, no whitespace)."""
    return json.dumps(
        _normalize(fields),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


def fingerprint(fields: Mapping[str, Any]) -> str:
    """Compute the content fingerprint of a mapping of relevant fields.

    Args:
        fields: Field name to value. Bookkeeping fields (timestamps, the
            hash itself) must already be excluded by the caller.

    Returns:
        64-character lowercase hex digest.
    """
    return hashlib.sha256(canonical_json(fields).encode("utf-8")).hexdigest()


def fingerprint_record(record: Hashable) -> str:
    """Compute the content fingerprint of a catalog record."""
    return fingerprint(record.hashable_fields())
