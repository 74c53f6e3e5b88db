"""Per-field storage compression for list rows.

Hey future me - list_items duplicates most of the albums table (artist, album,
genres, tracks, even the cover image). Storing every value on every row of
every user's list was the single biggest storage cost, so a row only stores a
field when it DIFFERS from the canonical album. NULL = inherit.

Write path: FieldCompressor.classify()/compute_storable() per field, driven by
ListItemWriter.save_list_items() for a whole list save.
Read path: ListItemReader.get_resolved_items() substitutes the canonical value
for every inherited field, independently per field.

The canonical lookups are memoized in a CanonicalLookupCache that lives for ONE
batch (one list save). It is created per writer, cleared at the start and end
of every save, and never shared between callers.
"""

import json
import logging
from collections.abc import Sequence
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from recordkeeper.domain.entities import (
    COMPRESSIBLE_FIELDS,
    CanonicalAlbum,
    ListRow,
)
from recordkeeper.domain.exceptions import EntityNotFoundError, ValidationError
from recordkeeper.domain.ports import ICanonicalAlbumLookup
from recordkeeper.domain.value_objects.album_identity import sanitize_for_storage
from recordkeeper.domain.value_objects.stored_field import (
    INHERITED,
    Override,
    StoredField,
    from_column,
)
from recordkeeper.infrastructure.persistence.models import ListItemModel, ListModel
from recordkeeper.infrastructure.persistence.repositories import (
    CanonicalAlbumRepository,
    ListItemRepository,
)

logger = logging.getLogger(__name__)

# Fields that go through sanitize_for_storage() before being compared or stored
_SANITIZED_FIELDS = frozenset({"artist", "album"})


def _is_absent(value: Any) -> bool:
    """None and "" both mean "no value" for comparison purposes."""
    return value is None or value == ""


def _coerce_tracks(value: Any) -> Any:
    # Tracks may arrive as a JSON string from older clients
    if isinstance(value, str | bytes):
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


def values_equal(field: str, row_value: Any, canonical_value: Any) -> bool:
    """Compare a row value with the canonical value for one field.

    tracks is compared structurally (ordered list of dicts, key order inside a
    dict doesn't matter). Everything else uses value equality after folding ""
    and None together.
    """
    if field == "tracks":
        row_tracks = _coerce_tracks(row_value)
        canonical_tracks = _coerce_tracks(canonical_value)
        # [] is a real (empty) track list, only None and "" are absent
        if _is_absent(row_tracks) or _is_absent(canonical_tracks):
            return _is_absent(row_tracks) and _is_absent(canonical_tracks)
        return bool(row_tracks == canonical_tracks)

    normalized_row = None if _is_absent(row_value) else row_value
    normalized_canonical = None if _is_absent(canonical_value) else canonical_value
    return bool(normalized_row == normalized_canonical)


class CanonicalLookupCache:
    """Memoizes canonical album lookups for the duration of one batch.

    Misses are cached too (as None) so a list full of unknown IDs doesn't
    query once per field.
    """

    def __init__(self, lookup: ICanonicalAlbumLookup) -> None:
        self._lookup = lookup
        self._albums: dict[str, CanonicalAlbum | None] = {}
        self.hits = 0
        self.misses = 0

    async def get(self, album_id: str | None) -> CanonicalAlbum | None:
        if not album_id:
            return None
        if album_id in self._albums:
            self.hits += 1
            return self._albums[album_id]

        self.misses += 1
        album = await self._lookup.get_album(album_id)
        self._albums[album_id] = album
        return album

    def clear(self) -> None:
        self._albums.clear()
        self.hits = 0
        self.misses = 0

    @property
    def size(self) -> int:
        return len(self._albums)


class FieldCompressor:
    """Decides per field whether a row value is stored or inherited."""

    def __init__(self, cache: CanonicalLookupCache) -> None:
        self.cache = cache

    async def classify(
        self, row_value: Any, album_id: str | None, field: str
    ) -> StoredField:
        """Tag a row value as Inherited or Override.

        Args:
            row_value: Value the user sees/submitted for this field
            album_id: Canonical album the row points at (may be None)
            field: Compressible field name

        Returns:
            INHERITED if the value equals the canonical one, else Override(row_value)
        """
        if field not in COMPRESSIBLE_FIELDS:
            raise ValidationError(f"Field '{field}' is not compressible", field=field)

        if row_value is None:
            return INHERITED

        # "" only counts as a cleared field when there is a canonical value to clear
        if not album_id:
            return INHERITED if _is_absent(row_value) else Override(row_value)

        canonical = await self.cache.get(album_id)
        if canonical is None:
            # Nothing to inherit from - keep the value
            return INHERITED if _is_absent(row_value) else Override(row_value)

        if values_equal(field, row_value, canonical.field_value(field)):
            return INHERITED
        return Override(row_value)

    async def compute_storable(
        self, row_value: Any, album_id: str | None, field: str
    ) -> Any:
        """Column value to persist: None when inherited, else the row value verbatim."""
        stored = await self.classify(row_value, album_id, field)
        return stored.to_column()

    async def compress_row(self, row: ListRow) -> dict[str, Any]:
        """Column dict for one list row, ready for insertion."""
        columns: dict[str, Any] = {
            "position": row.position,
            "album_id": row.album_id or None,
            "comments": row.comments,
            "track_pick": row.track_pick,
        }
        for field in COMPRESSIBLE_FIELDS:
            value = getattr(row, field)
            if field in _SANITIZED_FIELDS and value is not None:
                value = sanitize_for_storage(value)
            if field == "tracks":
                value = _coerce_tracks(value)
            columns[field] = await self.compute_storable(value, columns["album_id"], field)
        return columns


class ListItemWriter:
    """Write path: every list save goes through here."""

    def __init__(
        self,
        session: AsyncSession,
        cache: CanonicalLookupCache | None = None,
    ) -> None:
        self.session = session
        self.list_items = ListItemRepository(session)
        self.cache = cache or CanonicalLookupCache(CanonicalAlbumRepository(session))
        self.compressor = FieldCompressor(self.cache)

    @staticmethod
    def _validate_positions(items: Sequence[ListRow]) -> None:
        seen: set[int] = set()
        for item in items:
            if item.position < 1:
                raise ValidationError(
                    f"Position must be 1 or greater, got {item.position}",
                    field="position",
                )
            if item.position in seen:
                raise ValidationError(
                    f"Duplicate position {item.position} in list", field="position"
                )
            seen.add(item.position)

    async def save_list_items(
        self, list_id: str, items: Sequence[ListRow]
    ) -> list[ListItemModel]:
        """Replace a list's rows with the compressed form of items.

        Args:
            list_id: List to write
            items: Rows as the user sees them

        Returns:
            Stored row models (compressed columns)

        Raises:
            EntityNotFoundError: List does not exist
            ValidationError: Positions are not unique and 1-based
        """
        if await self.session.get(ListModel, list_id) is None:
            raise EntityNotFoundError("List", list_id)
        self._validate_positions(items)

        self.cache.clear()
        try:
            columns = [await self.compressor.compress_row(item) for item in items]
            stored = await self.list_items.replace_for_list(list_id, columns)
        finally:
            lookups = self.cache.hits + self.cache.misses
            self.cache.clear()

        inherited = sum(
            1 for row in columns for field in COMPRESSIBLE_FIELDS if row[field] is None
        )
        logger.debug(
            f"Saved {len(stored)} rows for list {list_id} "
            f"({inherited} inherited fields, {lookups} canonical lookups)"
        )
        return stored


class ListItemReader:
    """Read path: reconstitutes inherited fields from the canonical album."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.list_items = ListItemRepository(session)
        self.albums = CanonicalAlbumRepository(session)

    @staticmethod
    def resolve_row(
        model: ListItemModel, canonical: CanonicalAlbum | None
    ) -> dict[str, Any]:
        """Merge one stored row with its canonical album, field by field."""
        resolved: dict[str, Any] = {
            "position": model.position,
            "album_id": model.album_id,
            "comments": model.comments,
            "track_pick": model.track_pick,
        }
        overridden: list[str] = []
        for field in COMPRESSIBLE_FIELDS:
            stored = from_column(getattr(model, field))
            canonical_value = canonical.field_value(field) if canonical else None
            resolved[field] = stored.resolve(canonical_value)
            if isinstance(stored, Override):
                overridden.append(field)
        resolved["overridden_fields"] = overridden
        return resolved

    async def get_resolved_items(self, list_id: str) -> list[dict[str, Any]]:
        """All rows of a list with inherited fields filled in.

        Raises:
            EntityNotFoundError: List does not exist
        """
        if await self.session.get(ListModel, list_id) is None:
            raise EntityNotFoundError("List", list_id)

        models = await self.list_items.get_for_list(list_id)
        albums = await self.albums.list_by_ids(
            {model.album_id for model in models if model.album_id}
        )
        return [
            self.resolve_row(model, albums.get(model.album_id) if model.album_id else None)
            for model in models
        ]
