"""Physical format classification for releases."""

from enum import Enum


class ReleaseFormat(str, Enum):
    """Coarse physical medium of a release."""

    VINYL = "vinyl"
    CD = "cd"
    CASSETTE = "cassette"
    DIGITAL = "digital"
    OTHER = "other"


# Hey future me - order matters here! Vinyl markers are checked first, then "cd",
# so a name mentioning both ends up as vinyl.
_VINYL_MARKERS = ("vinyl", "lp", '12"', '7"')
_CASSETTE_MARKERS = ("cassette", "tape")
_DIGITAL_MARKERS = ("digital", "file")


def classify_format(name: str | None) -> ReleaseFormat:
    """Map a dump format name (e.g. ``Vinyl``, ``CD``, ``File``) to a ReleaseFormat.

    A release without any format name is treated as vinyl, the medium this
    catalog is built around.
    """
    if name is None:
        return ReleaseFormat.VINYL
    normalized = name.strip().lower()
    if not normalized:
        return ReleaseFormat.VINYL
    if any(marker in normalized for marker in _VINYL_MARKERS):
        return ReleaseFormat.VINYL
    if "cd" in normalized:
        return ReleaseFormat.CD
    if any(marker in normalized for marker in _CASSETTE_MARKERS):
        return ReleaseFormat.CASSETTE
    if any(marker in normalized for marker in _DIGITAL_MARKERS):
        return ReleaseFormat.DIGITAL
    return ReleaseFormat.OTHER
