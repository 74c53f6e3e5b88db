"""SQLAlchemy ORM models for RecordKeeper."""

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# Hey future me, utc_now() ensures ALL timestamps are UTC! Never use datetime.now() without
# timezone - naive datetimes break comparisons as soon as SQLite hands them back.
def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


def ensure_utc_aware(dt: datetime) -> datetime:
    """Ensure datetime is UTC-aware, assuming naive datetimes are UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class UserModel(Base):
    """A list owner."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    username: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)

    lists: Mapped[list["ListModel"]] = relationship(
        "ListModel", back_populates="user", cascade="all, delete-orphan"
    )


class ListModel(Base):
    """A user's album list (usually one per year; is_main marks the ranked one)."""

    __tablename__ = "lists"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    is_main: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )

    user: Mapped["UserModel"] = relationship("UserModel", back_populates="lists")
    items: Mapped[list["ListItemModel"]] = relationship(
        "ListItemModel", back_populates="parent_list", cascade="all, delete-orphan"
    )

    __table_args__ = (Index("ix_lists_year_is_main", "year", "is_main"),)


# Listen up, ListItemModel is the COMPRESSED list row! Every compressible column follows the
# "NULL means inherit from albums.<same column>" rule - see FieldCompressor. album_id is
# deliberately NOT a foreign key: manual albums can leave dangling references behind, and the
# reconciliation audit needs to SEE those orphans instead of having the DB reject them.
# comments and track_pick are row-only and never compressed.
class ListItemModel(Base):
    """One row of a user's list."""

    __tablename__ = "list_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    list_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("lists.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    album_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    artist: Mapped[str | None] = mapped_column(String(512), nullable=True)
    album: Mapped[str | None] = mapped_column(String(512), nullable=True)
    release_date: Mapped[str | None] = mapped_column(String(32), nullable=True)
    country: Mapped[str | None] = mapped_column(String(128), nullable=True)
    genre_1: Mapped[str | None] = mapped_column(String(255), nullable=True)
    genre_2: Mapped[str | None] = mapped_column(String(255), nullable=True)
    tracks: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON, nullable=True)
    cover_image: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)
    cover_image_format: Mapped[str | None] = mapped_column(String(16), nullable=True)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    track_pick: Mapped[str | None] = mapped_column(String(512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )

    parent_list: Mapped["ListModel"] = relationship("ListModel", back_populates="items")

    __table_args__ = (
        UniqueConstraint("list_id", "position", name="uq_list_items_list_position"),
    )


# Hey future me - AlbumModel is the canonical album table, keyed by the external-or-internal
# album_id string (Spotify base62, MusicBrainz UUID, "internal-...", "manual-..."). Rows are
# upserted on first sight and only deleted when a manual album is merged away.
class AlbumModel(Base):
    """Canonical album record."""

    __tablename__ = "albums"

    album_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    artist: Mapped[str | None] = mapped_column(String(512), nullable=True)
    album: Mapped[str | None] = mapped_column(String(512), nullable=True)
    release_date: Mapped[str | None] = mapped_column(String(32), nullable=True)
    country: Mapped[str | None] = mapped_column(String(128), nullable=True)
    genre_1: Mapped[str | None] = mapped_column(String(255), nullable=True)
    genre_2: Mapped[str | None] = mapped_column(String(255), nullable=True)
    tracks: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON, nullable=True)
    cover_image: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)
    cover_image_format: Mapped[str | None] = mapped_column(String(16), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )

    __table_args__ = (
        Index("ix_albums_artist_album", "artist", "album"),
    )


class AlbumDistinctPairModel(Base):
    """Admin-declared pair of album IDs that are NOT the same album.

    Stored with album_id_1 < album_id_2 so each unordered pair is one row.
    """

    __tablename__ = "album_distinct_pairs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    album_id_1: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    album_id_2: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    created_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)

    __table_args__ = (
        UniqueConstraint("album_id_1", "album_id_2", name="uq_album_distinct_pair"),
    )


# Yo, AdminEventModel is APPEND-ONLY! Nothing in this codebase updates or deletes rows here.
# event_data is JSON so each event type can carry its own payload (merge source/target, counts).
class AdminEventModel(Base):
    """Audit trail of admin operations."""

    __tablename__ = "admin_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_type: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    event_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)


class AggregateListContributorModel(Base):
    """Users whose main list counts towards a year's aggregate list."""

    __tablename__ = "aggregate_list_contributors"

    year: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
