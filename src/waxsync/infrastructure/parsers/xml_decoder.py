# Hey future me - the dumps are HUGE (releases is tens of GB uncompressed)! Never load a dump
# into memory. This decoder streams with lxml.etree.iterparse and throws every processed element
# away immediately:
#
#   elem.clear()                        → drops the element's children and text
#   del parent[0] while previous exists → drops the already-processed siblings
#
# Without the second step the root element keeps an (empty) child per record and memory grows
# linearly with the file. With both, memory is flat no matter how big the dump is.
#
# Error policy:
# - a malformed RECORD (no id, no name/title, garbage id) is counted, sampled and skipped
# - a broken STREAM (bad XML, truncated gzip, I/O error) is fatal → StreamReadError
"""Streaming decoder for catalog XML dumps."""

from __future__ import annotations

import gzip
import logging
import re
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import IO, Any

from lxml import etree

from waxsync.domain.entities import (
    ArtistRecord,
    CatalogRecord,
    EntityType,
    LabelRecord,
    MasterRecord,
    ReleaseRecord,
    TrackEntry,
)
from waxsync.domain.exceptions import (
    InvalidStateException,
    RecordDecodeError,
    StreamReadError,
)
from waxsync.domain.value_objects import ReleaseFormat, classify_format

logger = logging.getLogger(__name__)

_YEAR_RE = re.compile(r"^\s*(\d{4})")


def open_dump(path: Path) -> IO[bytes]:
    """Open a dump file for streaming, decompressing .gz on the fly."""
    if path.suffix == ".gz":
        return gzip.open(path, "rb")
    return open(path, "rb")


# =============================================================================
# Element helpers
# =============================================================================


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _text(elem: Any, path: str) -> str | None:
    return _clean(elem.findtext(path))


def _texts(elem: Any, path: str) -> tuple[str, ...]:
    values = (_clean(child.text) for child in elem.iterfind(path))
    return tuple(value for value in values if value)


def _int_or_none(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _required_id(value: str | None, entity: str) -> int:
    value = _clean(value)
    if value is None:
        raise RecordDecodeError(f"{entity} without id")
    try:
        return int(value)
    except ValueError:
        raise RecordDecodeError(f"{entity} has non-integer id '{value}'", value) from None


def _required_text(value: str | None, what: str, record_id: int) -> str:
    value = _clean(value)
    if value is None:
        raise RecordDecodeError(f"{what} is empty", record_id)
    return value


def _credited_ids(elem: Any, path: str) -> tuple[int, ...]:
    ids: list[int] = []
    for child in elem.iterfind(path):
        credit_id = _int_or_none(_clean(child.findtext("id")))
        if credit_id is not None and credit_id not in ids:
            ids.append(credit_id)
    return tuple(ids)


def parse_year(released: str | None) -> int | None:
    """Year from a release date like ``1999-03-00`` or ``1999``, if plausible."""
    if not released:
        return None
    match = _YEAR_RE.match(released)
    if not match:
        return None
    year = int(match.group(1))
    return year if 1800 < year < 3000 else None


def parse_duration(value: str | None) -> int | None:
    """Track duration ``m:ss`` or ``h:mm:ss`` in seconds."""
    value = _clean(value)
    if not value:
        return None
    seconds = 0
    try:
        for part in value.split(":"):
            seconds = seconds * 60 + int(part)
    except ValueError:
        return None
    return seconds


def first_format_name(elem: Any) -> str | None:
    fmt = elem.find("formats/format")
    return fmt.get("name") if fmt is not None else None


# =============================================================================
# Record mappers
# =============================================================================


def decode_label(elem: Any) -> LabelRecord:
    label_id = _required_id(elem.findtext("id"), "label")
    parent = elem.find("parentLabel")
    return LabelRecord(
        id=label_id,
        name=_required_text(elem.findtext("name"), "label name", label_id),
        profile=_text(elem, "profile"),
        contact_info=_text(elem, "contactinfo"),
        parent_label_id=_int_or_none(_clean(parent.get("id"))) if parent is not None else None,
        parent_label_name=_clean(parent.text) if parent is not None else None,
        urls=_texts(elem, "urls/url"),
        data_quality=_text(elem, "data_quality"),
    )


def decode_artist(elem: Any) -> ArtistRecord:
    artist_id = _required_id(elem.findtext("id"), "artist")
    return ArtistRecord(
        id=artist_id,
        name=_required_text(elem.findtext("name"), "artist name", artist_id),
        real_name=_text(elem, "realname"),
        profile=_text(elem, "profile"),
        name_variations=_texts(elem, "namevariations/name"),
        urls=_texts(elem, "urls/url"),
        data_quality=_text(elem, "data_quality"),
    )


def decode_master(elem: Any) -> MasterRecord:
    master_id = _required_id(elem.get("id"), "master")
    year = _int_or_none(_text(elem, "year"))
    return MasterRecord(
        id=master_id,
        title=_required_text(elem.findtext("title"), "master title", master_id),
        main_release=_int_or_none(_text(elem, "main_release")),
        year=year if year else None,
        data_quality=_text(elem, "data_quality"),
        styles=_texts(elem, "styles/style"),
        artist_ids=_credited_ids(elem, "artists/artist"),
        genres=_texts(elem, "genres/genre"),
    )


def decode_release(elem: Any, release_format: ReleaseFormat | None = None) -> ReleaseRecord:
    release_id = _required_id(elem.get("id"), "release")
    released = _text(elem, "released")
    master = elem.find("master_id")

    descriptions: list[str] = []
    for description in _texts(elem, "formats/format/descriptions/description"):
        if description not in descriptions:
            descriptions.append(description)

    label_ids: list[int] = []
    catalog_number: str | None = None
    for label in elem.iterfind("labels/label"):
        if catalog_number is None:
            catalog_number = _clean(label.get("catno"))
        label_id = _int_or_none(_clean(label.get("id")))
        if label_id is not None and label_id not in label_ids:
            label_ids.append(label_id)

    tracklist = tuple(
        TrackEntry(
            position=_text(track, "position"),
            title=_text(track, "title") or "",
            duration=parse_duration(track.findtext("duration")),
        )
        for track in elem.iterfind("tracklist/track")
    )

    return ReleaseRecord(
        id=release_id,
        title=_required_text(elem.findtext("title"), "release title", release_id),
        status=_clean(elem.get("status")),
        country=_text(elem, "country"),
        released=released,
        year=parse_year(released),
        format=release_format or classify_format(first_format_name(elem)),
        format_descriptions=tuple(descriptions),
        master_id=_int_or_none(_clean(master.text)) if master is not None else None,
        is_main_release=(
            master is not None and (master.get("is_main_release") or "").lower() == "true"
        ),
        catalog_number=catalog_number,
        track_count=len(tracklist),
        tracklist=tracklist,
        styles=_texts(elem, "styles/style"),
        data_quality=_text(elem, "data_quality"),
        artist_ids=_credited_ids(elem, "artists/artist"),
        label_ids=tuple(label_ids),
        genres=_texts(elem, "genres/genre"),
    )


_MAPPERS: dict[EntityType, Callable[[Any], CatalogRecord]] = {
    EntityType.LABEL: decode_label,
    EntityType.ARTIST: decode_artist,
    EntityType.MASTER: decode_master,
    EntityType.RELEASE: decode_release,
}


# =============================================================================
# Streaming decoder
# =============================================================================


@dataclass
class DecodeStats:
    """Running counters of one decoder."""

    decoded: int = 0
    filtered: int = 0
    errored: int = 0
    error_samples: list[str] = field(default_factory=list)
    sample_limit: int = 20

    def record_error(self, message: str) -> None:
        self.errored += 1
        if len(self.error_samples) < self.sample_limit:
            self.error_samples.append(message)


class StreamingEntityDecoder:
    """Lazily decodes one dump stream into catalog records.

    A decoder is single-use: the stream is consumed by the first iteration.

    Args:
        entity_type: Entity kind of the dump (labels, artists, masters, releases)
        stream: Binary file object positioned at the start of the XML
        vinyl_only: Discard non-vinyl releases before mapping them
        error_sample_limit: How many record error messages to keep
    """

    def __init__(
        self,
        entity_type: EntityType,
        stream: IO[bytes],
        vinyl_only: bool = True,
        error_sample_limit: int = 20,
    ) -> None:
        if entity_type not in _MAPPERS:
            raise InvalidStateException(f"No dump decoder for {entity_type.value}")
        self.entity_type = entity_type
        self.stream = stream
        self.vinyl_only = vinyl_only
        self.stats = DecodeStats(sample_limit=error_sample_limit)
        self._mapper = _MAPPERS[entity_type]
        self._started = False

    def __iter__(self) -> Iterator[CatalogRecord]:
        if self._started:
            raise InvalidStateException(
                f"{self.entity_type.value} decoder was already consumed"
            )
        self._started = True
        return self._decode()

    def batches(self, size: int) -> Iterator[list[CatalogRecord]]:
        """Group decoded records into lists of at most ``size``."""
        if size < 1:
            raise ValueError("Batch size must be at least 1")
        batch: list[CatalogRecord] = []
        for record in self:
            batch.append(record)
            if len(batch) >= size:
                yield batch
                batch = []
        if batch:
            yield batch

    def _decode(self) -> Iterator[CatalogRecord]:
        container = self.entity_type.container_tag
        context = etree.iterparse(
            self.stream,
            events=("end",),
            tag=self.entity_type.element_tag,
            huge_tree=True,
        )
        try:
            for _event, elem in context:
                parent = elem.getparent()
                # Nested elements with the same tag (<sublabels><label>) are not records
                if parent is None or parent.tag != container:
                    continue
                try:
                    record = self._decode_element(elem)
                finally:
                    elem.clear(keep_tail=True)
                    while elem.getprevious() is not None:
                        del parent[0]
                if record is not None:
                    yield record
        except (etree.XMLSyntaxError, OSError, EOFError) as e:
            raise StreamReadError(
                f"Cannot read {self.entity_type.value} dump: {e}"
            ) from e

    def _decode_element(self, elem: Any) -> CatalogRecord | None:
        if self.entity_type == EntityType.RELEASE:
            release_format = classify_format(first_format_name(elem))
            if self.vinyl_only and release_format != ReleaseFormat.VINYL:
                self.stats.filtered += 1
                return None
            mapper: Callable[[Any], CatalogRecord] = partial(
                decode_release, release_format=release_format
            )
        else:
            mapper = self._mapper

        try:
            record = mapper(elem)
        except RecordDecodeError as e:
            self.stats.record_error(e.message)
            logger.debug(
                "Skipping malformed %s record %s: %s",
                self.entity_type.element_tag,
                e.record_id,
                e.message,
            )
            return None

        self.stats.decoded += 1
        return record
