"""Catalog records decoded from the monthly dumps.

Hey future me - these are plain frozen dataclasses, not ORM models! The decoder
produces them, the classifier fingerprints them, the upsert writer turns them
into rows. The split between "row fields" and "relation fields" is the one
thing to get right here:

- row fields end up as columns AND in the fingerprint
- relation fields (artist ids, label ids, genre names) end up in association
  tables only and are NOT hashed

If you add a column, add a field. If you add a relationship, add it to
relation_fields or every record will look "changed" on the next run.
"""

from dataclasses import asdict, dataclass, fields
from enum import Enum
from typing import Any, ClassVar

from waxsync.domain.value_objects import ReleaseFormat


class EntityType(str, Enum):
    """Catalog entity kinds. Values double as table names."""

    LABEL = "labels"
    ARTIST = "artists"
    MASTER = "masters"
    RELEASE = "releases"
    GENRE = "genres"

    @property
    def container_tag(self) -> str:
        """Root element of the dump file (``<labels>``)."""
        return self.value

    @property
    def element_tag(self) -> str:
        """Per-record element (``<label>``)."""
        return self.value[:-1]


# Fixed processing order of a run. Releases go last so their label/artist
# associations can join against rows written earlier in the same run.
DUMP_ENTITY_TYPES: tuple[EntityType, ...] = (
    EntityType.LABEL,
    EntityType.ARTIST,
    EntityType.MASTER,
    EntityType.RELEASE,
)


class AssociationType(str, Enum):
    """Many-to-many relationships between catalog entities."""

    MASTER_ARTIST = "master_artists"
    MASTER_GENRE = "master_genres"
    RELEASE_ARTIST = "release_artists"
    RELEASE_LABEL = "release_labels"
    RELEASE_GENRE = "release_genres"

    @property
    def left(self) -> EntityType:
        return EntityType.MASTER if self.value.startswith("master") else EntityType.RELEASE

    @property
    def right(self) -> EntityType:
        suffix = self.value.split("_", 1)[1]
        return EntityType(suffix)


ASSOCIATIONS_BY_ENTITY: dict[EntityType, tuple[AssociationType, ...]] = {
    EntityType.MASTER: (AssociationType.MASTER_ARTIST, AssociationType.MASTER_GENRE),
    EntityType.RELEASE: (
        AssociationType.RELEASE_ARTIST,
        AssociationType.RELEASE_LABEL,
        AssociationType.RELEASE_GENRE,
    ),
}


class CatalogRecord:
    """Mixin for decoded records: knows which of its fields are hashed."""

    entity_type: ClassVar[EntityType]
    relation_fields: ClassVar[frozenset[str]] = frozenset()

    id: int

    def hashable_fields(self) -> dict[str, Any]:
        """Row fields of the record, nested dataclasses rendered as dicts."""
        return {
            key: value
            for key, value in asdict(self).items()  # type: ignore[call-overload]
            if key not in self.relation_fields
        }

    def row_field_names(self) -> tuple[str, ...]:
        return tuple(
            f.name
            for f in fields(self)  # type: ignore[arg-type]
            if f.name not in self.relation_fields
        )


@dataclass(frozen=True)
class TrackEntry:
    """One tracklist line of a release."""

    position: str | None
    title: str
    duration: int | None = None  # seconds


@dataclass(frozen=True)
class LabelRecord(CatalogRecord):
    """A record label."""

    entity_type: ClassVar[EntityType] = EntityType.LABEL

    id: int
    name: str
    profile: str | None = None
    contact_info: str | None = None
    parent_label_id: int | None = None
    parent_label_name: str | None = None
    urls: tuple[str, ...] = ()
    data_quality: str | None = None


@dataclass(frozen=True)
class ArtistRecord(CatalogRecord):
    """A performing artist or group."""

    entity_type: ClassVar[EntityType] = EntityType.ARTIST

    id: int
    name: str
    real_name: str | None = None
    profile: str | None = None
    name_variations: tuple[str, ...] = ()
    urls: tuple[str, ...] = ()
    data_quality: str | None = None


@dataclass(frozen=True)
class GenreRecord(CatalogRecord):
    """A genre. The id is derived from the name, see genre_id_for()."""

    entity_type: ClassVar[EntityType] = EntityType.GENRE

    id: int
    name: str


@dataclass(frozen=True)
class MasterRecord(CatalogRecord):
    """The abstract work grouping several releases."""

    entity_type: ClassVar[EntityType] = EntityType.MASTER
    relation_fields: ClassVar[frozenset[str]] = frozenset({"artist_ids", "genres"})

    id: int
    title: str
    main_release: int | None = None
    year: int | None = None
    data_quality: str | None = None
    styles: tuple[str, ...] = ()
    artist_ids: tuple[int, ...] = ()
    genres: tuple[str, ...] = ()


@dataclass(frozen=True)
class ReleaseRecord(CatalogRecord):
    """A concrete physical pressing."""

    entity_type: ClassVar[EntityType] = EntityType.RELEASE
    relation_fields: ClassVar[frozenset[str]] = frozenset(
        {"artist_ids", "label_ids", "genres"}
    )

    id: int
    title: str
    status: str | None = None
    country: str | None = None
    released: str | None = None
    year: int | None = None
    format: ReleaseFormat = ReleaseFormat.VINYL
    format_descriptions: tuple[str, ...] = ()
    master_id: int | None = None
    is_main_release: bool = False
    catalog_number: str | None = None
    track_count: int = 0
    tracklist: tuple[TrackEntry, ...] = ()
    styles: tuple[str, ...] = ()
    data_quality: str | None = None
    artist_ids: tuple[int, ...] = ()
    label_ids: tuple[int, ...] = ()
    genres: tuple[str, ...] = ()


@dataclass(frozen=True)
class FingerprintedRecord:
    """A record paired with the fingerprint of its row fields."""

    record: CatalogRecord
    content_hash: str

    @property
    def id(self) -> int:
        return self.record.id
