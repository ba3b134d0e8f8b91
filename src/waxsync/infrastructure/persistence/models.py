"""SQLAlchemy ORM models for waxsync."""

from datetime import UTC, datetime

import sqlalchemy as sa
from sqlalchemy import BigInteger, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from waxsync.domain.value_objects import FINGERPRINT_LENGTH


# Hey future me, utc_now() ensures ALL timestamps are UTC! Never use datetime.now() without
# timezone - naive datetimes break the stale-run check in ImportRunTracker.
def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


# Hey future me - SQLite doesn't preserve timezone info! When we store UTC datetimes, they come
# back as "naive" (no tzinfo). ALWAYS run DB datetimes through this before comparing them with
# datetime.now(UTC) or you get "can't compare offset-naive and offset-aware" TypeError!
def ensure_utc_aware(dt: datetime) -> datetime:
    """Ensure datetime is UTC-aware, assuming naive datetimes are UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


class Base(DeclarativeBase):
    """Base class for all ORM models.

    All models inherit from this to use the same metadata registry.
    """

    pass


# Yo, every catalog table follows the same shape: the SOURCE id is the primary key (no
# autoincrement - the dump assigns ids and an upsert must hit the same row every month),
# content_hash is the fingerprint of the row fields, timestamps are bookkeeping and NOT hashed.
# List-valued fields are JSON text (SQLite compatible), the app layer (catalog_tables.py)
# serializes them.
class LabelModel(Base):
    """Record label from the labels dump."""

    __tablename__ = "labels"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(512), nullable=False, index=True)
    profile: Mapped[str | None] = mapped_column(Text, nullable=True)
    contact_info: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Plain column, the parent may show up later in the same dump
    parent_label_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    parent_label_name: Mapped[str | None] = mapped_column(String(512), nullable=True)
    urls: Mapped[str | None] = mapped_column(Text, nullable=True)
    data_quality: Mapped[str | None] = mapped_column(String(64), nullable=True)
    content_hash: Mapped[str] = mapped_column(
        String(FINGERPRINT_LENGTH), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )


class ArtistModel(Base):
    """Artist from the artists dump."""

    __tablename__ = "artists"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(512), nullable=False, index=True)
    real_name: Mapped[str | None] = mapped_column(String(512), nullable=True)
    profile: Mapped[str | None] = mapped_column(Text, nullable=True)
    name_variations: Mapped[str | None] = mapped_column(Text, nullable=True)
    urls: Mapped[str | None] = mapped_column(Text, nullable=True)
    data_quality: Mapped[str | None] = mapped_column(String(64), nullable=True)
    content_hash: Mapped[str] = mapped_column(
        String(FINGERPRINT_LENGTH), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )


class GenreModel(Base):
    """Genre derived from master/release genre names."""

    __tablename__ = "genres"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    content_hash: Mapped[str] = mapped_column(
        String(FINGERPRINT_LENGTH), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )


class MasterModel(Base):
    """Master (abstract work) from the masters dump."""

    __tablename__ = "masters"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    title: Mapped[str] = mapped_column(String(1024), nullable=False, index=True)
    main_release: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    data_quality: Mapped[str | None] = mapped_column(String(64), nullable=True)
    styles: Mapped[str | None] = mapped_column(Text, nullable=True)
    content_hash: Mapped[str] = mapped_column(
        String(FINGERPRINT_LENGTH), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )


# Listen up, master_id is deliberately NOT a foreign key! Releases reference masters that may
# be missing from a trimmed dump, and a FK would reject the whole upsert chunk. Joins on it are
# best effort, the index keeps them fast.
class ReleaseModel(Base):
    """Vinyl release from the releases dump."""

    __tablename__ = "releases"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    title: Mapped[str] = mapped_column(String(1024), nullable=False, index=True)
    status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    country: Mapped[str | None] = mapped_column(String(128), nullable=True)
    released: Mapped[str | None] = mapped_column(String(32), nullable=True)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    format: Mapped[str] = mapped_column(String(16), nullable=False, default="vinyl")
    format_descriptions: Mapped[str | None] = mapped_column(Text, nullable=True)
    master_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True, index=True)
    is_main_release: Mapped[bool] = mapped_column(
        sa.Boolean(), nullable=False, server_default="0", default=False
    )
    catalog_number: Mapped[str | None] = mapped_column(String(255), nullable=True)
    track_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # [{"position": "A1", "title": "...", "duration": 245}, ...]
    tracklist: Mapped[str | None] = mapped_column(Text, nullable=True)
    styles: Mapped[str | None] = mapped_column(Text, nullable=True)
    data_quality: Mapped[str | None] = mapped_column(String(64), nullable=True)
    content_hash: Mapped[str] = mapped_column(
        String(FINGERPRINT_LENGTH), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )


# Hey future me, association tables hold ONLY exactly observed pairs! The composite primary key
# is also the ON CONFLICT target of AssociationBuilder - rerunning an import inserts nothing.
# ondelete=CASCADE keeps them clean if someone prunes catalog rows by hand (we never do).
class MasterArtistModel(Base):
    """Master <-> artist credit."""

    __tablename__ = "master_artists"

    master_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("masters.id", ondelete="CASCADE"), primary_key=True
    )
    artist_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("artists.id", ondelete="CASCADE"), primary_key=True
    )

    __table_args__ = (Index("ix_master_artists_artist_id", "artist_id"),)


class MasterGenreModel(Base):
    """Master <-> genre."""

    __tablename__ = "master_genres"

    master_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("masters.id", ondelete="CASCADE"), primary_key=True
    )
    genre_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("genres.id", ondelete="CASCADE"), primary_key=True
    )

    __table_args__ = (Index("ix_master_genres_genre_id", "genre_id"),)


class ReleaseArtistModel(Base):
    """Release <-> artist credit."""

    __tablename__ = "release_artists"

    release_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("releases.id", ondelete="CASCADE"), primary_key=True
    )
    artist_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("artists.id", ondelete="CASCADE"), primary_key=True
    )

    __table_args__ = (Index("ix_release_artists_artist_id", "artist_id"),)


class ReleaseLabelModel(Base):
    """Release <-> label credit."""

    __tablename__ = "release_labels"

    release_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("releases.id", ondelete="CASCADE"), primary_key=True
    )
    label_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("labels.id", ondelete="CASCADE"), primary_key=True
    )

    __table_args__ = (Index("ix_release_labels_label_id", "label_id"),)


class ReleaseGenreModel(Base):
    """Release <-> genre."""

    __tablename__ = "release_genres"

    release_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("releases.id", ondelete="CASCADE"), primary_key=True
    )
    genre_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("genres.id", ondelete="CASCADE"), primary_key=True
    )

    __table_args__ = (Index("ix_release_genres_genre_id", "genre_id"),)


# Yo, ImportRunModel is the persisted state machine! One row per ATTEMPT: (period, attempt) is
# unique and the highest attempt is "the" record of a period. active_slot is the concurrency
# backstop - it's 1 while the run is non-terminal and NULL once terminal. A UNIQUE column allows
# any number of NULLs but only one 1, so the database itself refuses a second active run even if
# two processes pass the tracker's check at the same moment.
class ImportRunModel(Base):
    """Persisted import run."""

    __tablename__ = "import_runs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    period: Mapped[str] = mapped_column(String(7), nullable=False, index=True)
    attempt: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    # ProcessingStats.to_dict() as JSON text
    stats: Mapped[str | None] = mapped_column(Text, nullable=True)
    active_slot: Mapped[int | None] = mapped_column(Integer, nullable=True, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, nullable=False
    )
    download_started_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    download_completed_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    processing_started_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    heartbeat_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    __table_args__ = (
        sa.UniqueConstraint("period", "attempt", name="uq_import_runs_period_attempt"),
    )
