"""initial schema: users, lists, list_items, albums, distinct pairs, admin events

Revision ID: aa00001aaA01
Revises:
Create Date: 2026-10-17 10:00:00.000000

Hey future me - FIRST MIGRATION!

list_items.album_id is intentionally NOT a foreign key to albums.album_id.
Manual albums can leave dangling references behind and the reconciliation
audit has to SEE those orphans instead of the DB rejecting them.

Every compressible list_items column (artist, album, release_date, country,
genre_1, genre_2, tracks, cover_image, cover_image_format) uses NULL to mean
"inherit from the albums row with the same album_id". Do not add NOT NULL or
server defaults to these columns or inheritance silently breaks.
"""

import logging

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "aa00001aaA01"
down_revision = None
branch_labels = None
depends_on = None

logger = logging.getLogger("alembic.runtime.migration")

_COMPRESSIBLE_COLUMNS = (
    ("artist", sa.String(512)),
    ("album", sa.String(512)),
    ("release_date", sa.String(32)),
    ("country", sa.String(128)),
    ("genre_1", sa.String(255)),
    ("genre_2", sa.String(255)),
    ("tracks", sa.JSON()),
    ("cover_image", sa.LargeBinary()),
    ("cover_image_format", sa.String(16)),
)


def _compressible_columns() -> list[sa.Column]:
    return [sa.Column(name, type_, nullable=True) for name, type_ in _COMPRESSIBLE_COLUMNS]


def upgrade() -> None:
    """Create the full schema (idempotent - skips tables that already exist)."""
    conn = op.get_bind()
    existing = set(sa.inspect(conn).get_table_names())

    if "users" not in existing:
        op.create_table(
            "users",
            sa.Column("id", sa.String(36), primary_key=True),
            sa.Column("username", sa.String(255), nullable=False, unique=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        )

    if "lists" not in existing:
        op.create_table(
            "lists",
            sa.Column("id", sa.String(36), primary_key=True),
            sa.Column(
                "user_id",
                sa.String(36),
                sa.ForeignKey("users.id", ondelete="CASCADE"),
                nullable=False,
                index=True,
            ),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("year", sa.Integer(), nullable=True, index=True),
            sa.Column("is_main", sa.Boolean(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index("ix_lists_year_is_main", "lists", ["year", "is_main"])

    if "list_items" not in existing:
        op.create_table(
            "list_items",
            sa.Column("id", sa.String(36), primary_key=True),
            sa.Column(
                "list_id",
                sa.String(36),
                sa.ForeignKey("lists.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("position", sa.Integer(), nullable=False),
            sa.Column("album_id", sa.String(255), nullable=True, index=True),
            *_compressible_columns(),
            # Row-only fields, never inherited
            sa.Column("comments", sa.Text(), nullable=True),
            sa.Column("track_pick", sa.String(512), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            # SQLite can't ALTER TABLE ADD CONSTRAINT, so it goes inline
            sa.UniqueConstraint("list_id", "position", name="uq_list_items_list_position"),
        )

    if "albums" not in existing:
        op.create_table(
            "albums",
            sa.Column("album_id", sa.String(255), primary_key=True),
            *_compressible_columns(),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index("ix_albums_artist_album", "albums", ["artist", "album"])

    if "album_distinct_pairs" not in existing:
        op.create_table(
            "album_distinct_pairs",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("album_id_1", sa.String(255), nullable=False, index=True),
            sa.Column("album_id_2", sa.String(255), nullable=False, index=True),
            sa.Column("created_by", sa.String(36), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.UniqueConstraint("album_id_1", "album_id_2", name="uq_album_distinct_pair"),
        )

    if "admin_events" not in existing:
        op.create_table(
            "admin_events",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("event_type", sa.String(64), nullable=False, index=True),
            sa.Column("event_data", sa.JSON(), nullable=False),
            sa.Column("created_by", sa.String(36), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        )

    if "aggregate_list_contributors" not in existing:
        op.create_table(
            "aggregate_list_contributors",
            sa.Column("year", sa.Integer(), primary_key=True),
            sa.Column(
                "user_id",
                sa.String(36),
                sa.ForeignKey("users.id", ondelete="CASCADE"),
                primary_key=True,
            ),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        )

    logger.info("RecordKeeper schema ready")


def downgrade() -> None:
    """Drop everything in reverse dependency order."""
    conn = op.get_bind()
    existing = set(sa.inspect(conn).get_table_names())

    for table in (
        "aggregate_list_contributors",
        "admin_events",
        "album_distinct_pairs",
        "albums",
        "list_items",
        "lists",
        "users",
    ):
        if table in existing:
            op.drop_table(table)
