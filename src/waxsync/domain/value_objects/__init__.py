"""Value objects for the catalog domain."""

import hashlib
import re
from datetime import UTC, datetime

from waxsync.domain.exceptions import ValidationException

from .fingerprint import (
    FINGERPRINT_LENGTH,
    canonical_json,
    fingerprint,
    fingerprint_record,
)
from .release_format import ReleaseFormat, classify_format

_PERIOD_RE = re.compile(r"^(\d{4})-(\d{2})$")


def validate_period(value: str) -> str:
    """Validate a calendar period label of the form ``YYYY-MM``.

    Returns:
        The period, stripped of surrounding whitespace.

    Raises:
        ValidationException: If the label is malformed or the month is out of range.
    """
    period = (value or "").strip()
    match = _PERIOD_RE.match(period)
    if not match:
        raise ValidationException(f"Invalid period '{value}': expected YYYY-MM")
    month = int(match.group(2))
    if not 1 <= month <= 12:
        raise ValidationException(f"Invalid period '{value}': month must be 01-12")
    return period


def current_period(now: datetime | None = None) -> str:
    """Period label of the current UTC month."""
    now = now or datetime.now(UTC)
    return now.strftime("%Y-%m")


def normalize_genre_name(name: str) -> str:
    return name.strip().lower()


def genre_id_for(name: str) -> int:
    """Stable identifier for a genre name.

    The dumps carry genre names only. We derive a positive 63-bit integer from
    the normalized name so genres fit the same BIGINT-keyed tables and bulk
    primitives as every other catalog entity. "Rock" and " rock " share an id.
    """
    normalized = normalize_genre_name(name)
    if not normalized:
        raise ValidationException("Genre name must not be empty")
    digest = hashlib.sha256(normalized.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big") >> 1


__all__ = [
    "FINGERPRINT_LENGTH",
    "ReleaseFormat",
    "canonical_json",
    "classify_format",
    "current_period",
    "fingerprint",
    "fingerprint_record",
    "genre_id_for",
    "normalize_genre_name",
    "validate_period",
]
