"""initial catalog schema

Revision ID: aa00001abC01
Revises:
Create Date: 2026-10-01 12:00:00.000000

Hey future me - this is the WHOLE waxsync schema in one go!

CATALOG TABLES (labels, artists, genres, masters, releases):
- id: the dump's own id, NO autoincrement (upserts must hit the same row every month)
- content_hash: sha256 fingerprint of the row fields, compared on every import
- list fields (urls, styles, tracklist, ...) are JSON text
- releases.master_id is indexed but NOT a foreign key (dumps reference missing masters)

ASSOCIATION TABLES (master_artists, master_genres, release_artists, release_labels,
release_genres):
- composite primary key = the ON CONFLICT DO NOTHING target of the association builder
- foreign keys with ON DELETE CASCADE on both sides
- extra index on the right-hand column for "all releases of artist X" lookups

IMPORT_RUNS:
- one row per attempt, (period, attempt) unique
- active_slot is 1 while a run is non-terminal and NULL afterwards. The UNIQUE constraint
  makes the database refuse a second concurrent active run.
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'aa00001abC01'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def _association(name: str, left: tuple[str, str], right: tuple[str, str]) -> None:
    left_column, left_table = left
    right_column, right_table = right
    op.create_table(
        name,
        sa.Column(
            left_column,
            sa.BigInteger,
            sa.ForeignKey(f'{left_table}.id', ondelete='CASCADE'),
            primary_key=True,
        ),
        sa.Column(
            right_column,
            sa.BigInteger,
            sa.ForeignKey(f'{right_table}.id', ondelete='CASCADE'),
            primary_key=True,
        ),
    )
    op.create_index(f'ix_{name}_{right_column}', name, [right_column])


ASSOCIATIONS = [
    ('master_artists', ('master_id', 'masters'), ('artist_id', 'artists')),
    ('master_genres', ('master_id', 'masters'), ('genre_id', 'genres')),
    ('release_artists', ('release_id', 'releases'), ('artist_id', 'artists')),
    ('release_labels', ('release_id', 'releases'), ('label_id', 'labels')),
    ('release_genres', ('release_id', 'releases'), ('genre_id', 'genres')),
]


def upgrade() -> None:
    # === Catalog Tables ===
    op.create_table(
        'labels',
        sa.Column('id', sa.BigInteger, primary_key=True, autoincrement=False),
        sa.Column('name', sa.String(512), nullable=False, index=True),
        sa.Column('profile', sa.Text, nullable=True),
        sa.Column('contact_info', sa.Text, nullable=True),
        sa.Column('parent_label_id', sa.BigInteger, nullable=True),
        sa.Column('parent_label_name', sa.String(512), nullable=True),
        sa.Column('urls', sa.Text, nullable=True),
        sa.Column('data_quality', sa.String(64), nullable=True),
        sa.Column('content_hash', sa.String(64), nullable=False, index=True),
        *_timestamps(),
    )
    op.create_table(
        'artists',
        sa.Column('id', sa.BigInteger, primary_key=True, autoincrement=False),
        sa.Column('name', sa.String(512), nullable=False, index=True),
        sa.Column('real_name', sa.String(512), nullable=True),
        sa.Column('profile', sa.Text, nullable=True),
        sa.Column('name_variations', sa.Text, nullable=True),
        sa.Column('urls', sa.Text, nullable=True),
        sa.Column('data_quality', sa.String(64), nullable=True),
        sa.Column('content_hash', sa.String(64), nullable=False, index=True),
        *_timestamps(),
    )
    op.create_table(
        'genres',
        sa.Column('id', sa.BigInteger, primary_key=True, autoincrement=False),
        sa.Column('name', sa.String(255), nullable=False, unique=True),
        sa.Column('content_hash', sa.String(64), nullable=False, index=True),
        *_timestamps(),
    )
    op.create_table(
        'masters',
        sa.Column('id', sa.BigInteger, primary_key=True, autoincrement=False),
        sa.Column('title', sa.String(1024), nullable=False, index=True),
        sa.Column('main_release', sa.BigInteger, nullable=True),
        sa.Column('year', sa.Integer, nullable=True),
        sa.Column('data_quality', sa.String(64), nullable=True),
        sa.Column('styles', sa.Text, nullable=True),
        sa.Column('content_hash', sa.String(64), nullable=False, index=True),
        *_timestamps(),
    )
    op.create_table(
        'releases',
        sa.Column('id', sa.BigInteger, primary_key=True, autoincrement=False),
        sa.Column('title', sa.String(1024), nullable=False, index=True),
        sa.Column('status', sa.String(32), nullable=True),
        sa.Column('country', sa.String(128), nullable=True),
        sa.Column('released', sa.String(32), nullable=True),
        sa.Column('year', sa.Integer, nullable=True, index=True),
        sa.Column('format', sa.String(16), nullable=False, server_default='vinyl'),
        sa.Column('format_descriptions', sa.Text, nullable=True),
        sa.Column('master_id', sa.BigInteger, nullable=True, index=True),
        sa.Column('is_main_release', sa.Boolean, nullable=False, server_default='0'),
        sa.Column('catalog_number', sa.String(255), nullable=True),
        sa.Column('track_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('tracklist', sa.Text, nullable=True),
        sa.Column('styles', sa.Text, nullable=True),
        sa.Column('data_quality', sa.String(64), nullable=True),
        sa.Column('content_hash', sa.String(64), nullable=False, index=True),
        *_timestamps(),
    )

    # === Association Tables ===
    for name, left, right in ASSOCIATIONS:
        _association(name, left, right)

    # === Import Runs ===
    op.create_table(
        'import_runs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('period', sa.String(7), nullable=False, index=True),
        sa.Column('attempt', sa.Integer, nullable=False, server_default='1'),
        sa.Column('status', sa.String(32), nullable=False, index=True),
        sa.Column('error_message', sa.Text, nullable=True),
        sa.Column('stats', sa.Text, nullable=True),
        sa.Column('active_slot', sa.Integer, nullable=True, unique=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('download_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('download_completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('processing_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('heartbeat_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('period', 'attempt', name='uq_import_runs_period_attempt'),
    )


def downgrade() -> None:
    op.drop_table('import_runs')

    # Association tables first, they reference the catalog tables
    for name, _left, right in reversed(ASSOCIATIONS):
        op.drop_index(f'ix_{name}_{right[0]}', table_name=name)
        op.drop_table(name)

    for table in ('releases', 'masters', 'genres', 'artists', 'labels'):
        op.drop_table(table)
