"""Domain entities."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from recordkeeper.domain.value_objects.album_identity import KEY_SEPARATOR

# Hey future me - these are the ListRow fields that may be "compressed" (stored as NULL
# because they equal the canonical album's value). comments and track_pick are row-only
# and are NEVER compressed - they have no canonical counterpart.
COMPRESSIBLE_FIELDS: tuple[str, ...] = (
    "artist",
    "album",
    "release_date",
    "country",
    "genre_1",
    "genre_2",
    "tracks",
    "cover_image",
    "cover_image_format",
)

ROW_ONLY_FIELDS: tuple[str, ...] = ("comments", "track_pick")


class AdminEventType(str, Enum):
    """Types of append-only admin audit events."""

    ALBUM_MERGE = "album_merge"
    ORPHANED_ALBUM_DELETED = "orphaned_album_deleted"
    AGGREGATE_FIX = "aggregate_fix"


class IntegrityIssueType(str, Enum):
    """Data integrity problems found among manual albums."""

    ORPHANED = "orphaned"
    MISSING_METADATA = "missing_metadata"
    DUPLICATE_MANUAL = "duplicate_manual"


class Severity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {"high": 0, "medium": 1, "low": 2}[self.value]


@dataclass
class CanonicalAlbum:
    """Authoritative metadata for one album identifier.

    This is the single source of truth that compressed list rows fall back to.
    """

    album_id: str
    artist: str | None = None
    album: str | None = None
    release_date: str | None = None
    country: str | None = None
    genre_1: str | None = None
    genre_2: str | None = None
    tracks: list[dict[str, Any]] | None = None
    cover_image: bytes | None = None
    cover_image_format: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def has_cover(self) -> bool:
        return self.cover_image is not None

    def field_value(self, name: str) -> Any:
        """Value of a compressible field by name."""
        if name not in COMPRESSIBLE_FIELDS:
            raise KeyError(name)
        return getattr(self, name)


@dataclass
class ListRow:
    """One entry of a user's list, as the list editor submits it.

    Field values here are the values the user SEES; the compressor decides
    which of them actually need storing.
    """

    position: int
    album_id: str | None = None
    artist: str | None = None
    album: str | None = None
    release_date: str | None = None
    country: str | None = None
    genre_1: str | None = None
    genre_2: str | None = None
    tracks: list[dict[str, Any]] | None = None
    cover_image: bytes | None = None
    cover_image_format: str | None = None
    comments: str | None = None
    track_pick: str | None = None


@dataclass
class DuplicateEntry:
    """A single list row taking part in a duplicate group."""

    album_id: str | None
    user_id: str
    username: str
    list_id: str
    list_name: str
    position: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "album_id": self.album_id,
            "user_id": self.user_id,
            "username": self.username,
            "list_id": self.list_id,
            "list_name": self.list_name,
            "position": self.position,
        }


@dataclass
class DuplicateGroup:
    """Rows sharing one normalized key but more than one album ID.

    album_ids keeps first-seen order (it's a set semantically, but the
    selector breaks ties by input order so the order must be stable).
    """

    normalized_key: str
    artist: str | None
    album: str | None
    album_ids: list[str] = field(default_factory=list)
    entries: list[DuplicateEntry] = field(default_factory=list)

    @property
    def entry_count(self) -> int:
        return len(self.entries)

    def add_album_id(self, album_id: str | None) -> None:
        if album_id and album_id not in self.album_ids:
            self.album_ids.append(album_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "normalized_key": self.normalized_key,
            "artist": self.artist,
            "album": self.album,
            "album_ids": list(self.album_ids),
            "entry_count": self.entry_count,
            "entries": [entry.to_dict() for entry in self.entries],
        }


@dataclass(frozen=True)
class ExclusionPair:
    """Admin statement that two IDs are NOT the same album.

    Unordered: ExclusionPair("a", "b") == ExclusionPair("b", "a"). We store the
    lexicographically smaller ID first so the DB unique constraint sees one row.
    """

    album_id_1: str
    album_id_2: str

    @classmethod
    def of(cls, first: str, second: str) -> "ExclusionPair":
        low, high = sorted((first, second))
        return cls(album_id_1=low, album_id_2=high)

    def matches(self, first: str, second: str) -> bool:
        return {self.album_id_1, self.album_id_2} == {first, second}

    def pair_keys(self) -> tuple[str, str]:
        """Both orderings, for set lookups."""
        return (
            f"{self.album_id_1}{KEY_SEPARATOR}{self.album_id_2}",
            f"{self.album_id_2}{KEY_SEPARATOR}{self.album_id_1}",
        )


@dataclass(frozen=True)
class AffectedList:
    """A list touched by a merge/cleanup - used for audit and cache invalidation."""

    list_id: str
    list_name: str
    year: int | None
    user_id: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "list_id": self.list_id,
            "list_name": self.list_name,
            "year": self.year,
            "user_id": self.user_id,
        }


@dataclass
class AdminMergeEvent:
    """Append-only audit record of an album merge."""

    source_id: str
    target_id: str
    actor_id: str | None
    affected_list_count: int
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    type: AdminEventType = AdminEventType.ALBUM_MERGE
    details: dict[str, Any] = field(default_factory=dict)

    def to_event_data(self) -> dict[str, Any]:
        return {
            "source_id": self.source_id,
            "target_id": self.target_id,
            "affected_list_count": self.affected_list_count,
            "timestamp": self.timestamp.isoformat(),
            **self.details,
        }


__all__ = [
    "COMPRESSIBLE_FIELDS",
    "ROW_ONLY_FIELDS",
    "AdminEventType",
    "AdminMergeEvent",
    "AffectedList",
    "CanonicalAlbum",
    "DuplicateEntry",
    "DuplicateGroup",
    "ExclusionPair",
    "IntegrityIssueType",
    "ListRow",
    "Severity",
]
