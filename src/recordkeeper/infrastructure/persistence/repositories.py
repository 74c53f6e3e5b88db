"""Repository implementations for the album reconciliation tables."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from recordkeeper.domain.entities import (
    COMPRESSIBLE_FIELDS,
    AffectedList,
    CanonicalAlbum,
    ExclusionPair,
)
from recordkeeper.domain.ports import ICanonicalAlbumLookup
from recordkeeper.domain.value_objects.album_id_policy import (
    INTERNAL_PREFIX,
    MANUAL_PREFIX,
)

from .models import (
    AdminEventModel,
    AggregateListContributorModel,
    AlbumDistinctPairModel,
    AlbumModel,
    ListItemModel,
    ListModel,
    UserModel,
    ensure_utc_aware,
    utc_now,
)


def _resolved(column_name: str) -> Any:
    """COALESCE(NULLIF(list_items.<col>, ''), albums.<col>) - the read-path fallback join."""
    row_column = getattr(ListItemModel, column_name)
    album_column = getattr(AlbumModel, column_name)
    return func.coalesce(func.nullif(row_column, ""), album_column)


@dataclass
class ScannedRow:
    """One list row in an audit scan, with artist/album already resolved."""

    album_id: str | None
    artist: str | None
    album: str | None
    user_id: str
    username: str
    list_id: str
    list_name: str
    position: int
    updated_at: datetime


@dataclass
class AlbumUsage:
    """Where a given album ID is referenced (operator context only)."""

    list_id: str
    list_name: str
    year: int | None
    user_id: str
    username: str
    position: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "list_id": self.list_id,
            "list_name": self.list_name,
            "year": self.year,
            "user_id": self.user_id,
            "username": self.username,
            "position": self.position,
        }


class CanonicalAlbumRepository(ICanonicalAlbumLookup):
    """SQLAlchemy implementation of the canonical album table."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    # Hey future me - this is the ONE place that maps DB → Entity for albums!
    # When you add a canonical field, update this AND COMPRESSIBLE_FIELDS.
    @staticmethod
    def _model_to_entity(model: AlbumModel) -> CanonicalAlbum:
        return CanonicalAlbum(
            album_id=model.album_id,
            artist=model.artist,
            album=model.album,
            release_date=model.release_date,
            country=model.country,
            genre_1=model.genre_1,
            genre_2=model.genre_2,
            tracks=model.tracks,
            cover_image=model.cover_image,
            cover_image_format=model.cover_image_format,
            created_at=ensure_utc_aware(model.created_at),
            updated_at=ensure_utc_aware(model.updated_at),
        )

    async def get_album(self, album_id: str) -> CanonicalAlbum | None:
        """Get a canonical album by ID."""
        model = await self.session.get(AlbumModel, album_id)
        if model is None:
            return None
        return self._model_to_entity(model)

    async def exists(self, album_id: str) -> bool:
        stmt = select(AlbumModel.album_id).where(AlbumModel.album_id == album_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def upsert(self, album: CanonicalAlbum) -> tuple[bool, list[str]]:
        """Create the album row or update its fields.

        Args:
            album: Canonical data to store

        Returns:
            Tuple of (created, names of fields whose value changed)
        """
        model = await self.session.get(AlbumModel, album.album_id)
        if model is None:
            model = AlbumModel(album_id=album.album_id)
            for name in COMPRESSIBLE_FIELDS:
                setattr(model, name, album.field_value(name))
            self.session.add(model)
            await self.session.flush()
            return True, []

        changed: list[str] = []
        for name in COMPRESSIBLE_FIELDS:
            new_value = album.field_value(name)
            if getattr(model, name) != new_value:
                setattr(model, name, new_value)
                changed.append(name)
        if changed:
            model.updated_at = utc_now()
            await self.session.flush()
        return False, changed

    async def delete(self, album_id: str) -> int:
        stmt = delete(AlbumModel).where(AlbumModel.album_id == album_id)
        result = await self.session.execute(stmt)
        return result.rowcount  # type: ignore[attr-defined]

    async def list_manual(self) -> list[CanonicalAlbum]:
        """All album rows whose ID carries the manual prefix."""
        stmt = (
            select(AlbumModel)
            .where(AlbumModel.album_id.like(f"{MANUAL_PREFIX}%"))
            .order_by(AlbumModel.album_id)
        )
        result = await self.session.execute(stmt)
        return [self._model_to_entity(model) for model in result.scalars().all()]

    async def list_by_ids(self, album_ids: Iterable[str]) -> dict[str, CanonicalAlbum]:
        ids = list(album_ids)
        if not ids:
            return {}
        stmt = select(AlbumModel).where(AlbumModel.album_id.in_(ids))
        result = await self.session.execute(stmt)
        return {
            model.album_id: self._model_to_entity(model)
            for model in result.scalars().all()
        }

    async def list_match_candidates(self) -> list[CanonicalAlbum]:
        """Non-manual, non-internal albums with both artist and album set.

        These are the albums a manual entry may be reconciled against.
        """
        stmt = (
            select(AlbumModel)
            .where(
                AlbumModel.album_id.not_like(f"{MANUAL_PREFIX}%"),
                AlbumModel.album_id.not_like(f"{INTERNAL_PREFIX}%"),
                AlbumModel.artist.is_not(None),
                AlbumModel.artist != "",
                AlbumModel.album.is_not(None),
                AlbumModel.album != "",
            )
            .order_by(AlbumModel.album_id)
        )
        result = await self.session.execute(stmt)
        return [self._model_to_entity(model) for model in result.scalars().all()]


class ListItemRepository:
    """Queries and bulk writes over list_items."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def replace_for_list(
        self, list_id: str, columns: list[dict[str, Any]]
    ) -> list[ListItemModel]:
        """Replace every row of a list with the given (already compressed) column dicts."""
        await self.session.execute(
            delete(ListItemModel).where(ListItemModel.list_id == list_id)
        )
        models = [ListItemModel(list_id=list_id, **values) for values in columns]
        self.session.add_all(models)
        await self.session.flush()
        return models

    async def get_for_list(self, list_id: str) -> list[ListItemModel]:
        stmt = (
            select(ListItemModel)
            .where(ListItemModel.list_id == list_id)
            .order_by(ListItemModel.position)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # Yo, this is the audit corpus query! Always bounded by a year - there is no
    # "scan everything" variant on purpose. Artist/album come back already resolved
    # (row override if non-empty, else canonical), so grouping sees what users see.
    async def scan_year(
        self,
        year: int,
        *,
        max_position: int,
        main_lists_only: bool = True,
        contributors_only: bool = True,
    ) -> list[ScannedRow]:
        """Fetch all rows in scope for one year with resolved artist/album."""
        stmt = (
            select(
                ListItemModel.album_id,
                _resolved("artist").label("artist"),
                _resolved("album").label("album"),
                ListModel.user_id,
                UserModel.username,
                ListModel.id.label("list_id"),
                ListModel.name.label("list_name"),
                ListItemModel.position,
                ListItemModel.updated_at,
            )
            .join(ListModel, ListModel.id == ListItemModel.list_id)
            .join(UserModel, UserModel.id == ListModel.user_id)
            .outerjoin(AlbumModel, AlbumModel.album_id == ListItemModel.album_id)
            .where(ListModel.year == year, ListItemModel.position <= max_position)
            .order_by(UserModel.username, ListModel.name, ListItemModel.position)
        )
        if main_lists_only:
            stmt = stmt.where(ListModel.is_main.is_(True))
        if contributors_only:
            contributors = select(AggregateListContributorModel.user_id).where(
                AggregateListContributorModel.year == year
            )
            stmt = stmt.where(ListModel.user_id.in_(contributors))

        result = await self.session.execute(stmt)
        return [
            ScannedRow(
                album_id=row.album_id,
                artist=row.artist,
                album=row.album,
                user_id=row.user_id,
                username=row.username,
                list_id=row.list_id,
                list_name=row.list_name,
                position=row.position,
                updated_at=ensure_utc_aware(row.updated_at),
            )
            for row in result.all()
        ]

    async def referenced_manual_ids(self) -> set[str]:
        """Distinct manual-prefixed IDs referenced by any list row."""
        stmt = (
            select(ListItemModel.album_id)
            .where(ListItemModel.album_id.like(f"{MANUAL_PREFIX}%"))
            .distinct()
        )
        result = await self.session.execute(stmt)
        return {album_id for album_id in result.scalars().all() if album_id}

    async def usage_for(self, album_ids: Iterable[str]) -> dict[str, list[AlbumUsage]]:
        """Lists and users referencing each of the given album IDs."""
        ids = list(album_ids)
        if not ids:
            return {}
        stmt = (
            select(
                ListItemModel.album_id,
                ListModel.id.label("list_id"),
                ListModel.name.label("list_name"),
                ListModel.year,
                ListModel.user_id,
                UserModel.username,
                ListItemModel.position,
            )
            .join(ListModel, ListModel.id == ListItemModel.list_id)
            .join(UserModel, UserModel.id == ListModel.user_id)
            .where(ListItemModel.album_id.in_(ids))
            .order_by(ListItemModel.album_id, UserModel.username, ListModel.name)
        )
        result = await self.session.execute(stmt)

        usage: dict[str, list[AlbumUsage]] = {}
        for row in result.all():
            usage.setdefault(row.album_id, []).append(
                AlbumUsage(
                    list_id=row.list_id,
                    list_name=row.list_name,
                    year=row.year,
                    user_id=row.user_id,
                    username=row.username,
                    position=row.position,
                )
            )
        return usage

    async def affected_lists(self, album_id: str) -> list[AffectedList]:
        """Deduplicated lists containing at least one row referencing album_id."""
        stmt = (
            select(ListModel.id, ListModel.name, ListModel.year, ListModel.user_id)
            .join(ListItemModel, ListItemModel.list_id == ListModel.id)
            .where(ListItemModel.album_id == album_id)
            .distinct()
            .order_by(ListModel.user_id, ListModel.name)
        )
        result = await self.session.execute(stmt)
        return [
            AffectedList(
                list_id=row.id, list_name=row.name, year=row.year, user_id=row.user_id
            )
            for row in result.all()
        ]

    async def user_ids_referencing(self, album_id: str) -> set[str]:
        stmt = (
            select(ListModel.user_id)
            .join(ListItemModel, ListItemModel.list_id == ListModel.id)
            .where(ListItemModel.album_id == album_id)
            .distinct()
        )
        result = await self.session.execute(stmt)
        return set(result.scalars().all())

    async def count_references(self, album_id: str) -> int:
        stmt = select(func.count(ListItemModel.id)).where(
            ListItemModel.album_id == album_id
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    # Listen up! ONLY the album_id column changes here. Every per-row override (comments,
    # track_pick, custom cover, artist spelling...) stays exactly as the user left it.
    async def repoint(
        self,
        from_album_id: str,
        to_album_id: str,
        *,
        list_ids: Iterable[str] | None = None,
    ) -> int:
        """Rewrite album_id on all rows referencing from_album_id.

        Args:
            from_album_id: ID being replaced
            to_album_id: Replacement ID
            list_ids: Optionally restrict the rewrite to these lists

        Returns:
            Number of rows rewritten
        """
        stmt = (
            update(ListItemModel)
            .where(ListItemModel.album_id == from_album_id)
            .values(album_id=to_album_id, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        if list_ids is not None:
            stmt = stmt.where(ListItemModel.list_id.in_(list(list_ids)))
        result = await self.session.execute(stmt)
        return result.rowcount  # type: ignore[attr-defined]

    async def delete_references(self, album_id: str) -> int:
        stmt = delete(ListItemModel).where(ListItemModel.album_id == album_id)
        result = await self.session.execute(stmt)
        return result.rowcount  # type: ignore[attr-defined]


class ExclusionPairRepository:
    """Persistence for admin-declared "not the same album" pairs."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def get(self, pair: ExclusionPair) -> AlbumDistinctPairModel | None:
        stmt = select(AlbumDistinctPairModel).where(
            AlbumDistinctPairModel.album_id_1 == pair.album_id_1,
            AlbumDistinctPairModel.album_id_2 == pair.album_id_2,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def add(
        self, pair: ExclusionPair, created_by: str | None = None
    ) -> AlbumDistinctPairModel:
        model = AlbumDistinctPairModel(
            album_id_1=pair.album_id_1,
            album_id_2=pair.album_id_2,
            created_by=created_by,
        )
        self.session.add(model)
        await self.session.flush()
        return model

    # Hey future me - older rows may have been written unsorted, so we match BOTH orderings
    # everywhere instead of trusting album_id_1 < album_id_2.
    async def exists(self, first: str, second: str) -> bool:
        stmt = select(AlbumDistinctPairModel.id).where(
            or_(
                and_(
                    AlbumDistinctPairModel.album_id_1 == first,
                    AlbumDistinctPairModel.album_id_2 == second,
                ),
                and_(
                    AlbumDistinctPairModel.album_id_1 == second,
                    AlbumDistinctPairModel.album_id_2 == first,
                ),
            )
        )
        result = await self.session.execute(stmt)
        return result.first() is not None

    async def list_all(self) -> list[ExclusionPair]:
        stmt = select(AlbumDistinctPairModel).order_by(
            AlbumDistinctPairModel.album_id_1, AlbumDistinctPairModel.album_id_2
        )
        result = await self.session.execute(stmt)
        return [
            ExclusionPair.of(model.album_id_1, model.album_id_2)
            for model in result.scalars().all()
        ]

    async def delete_for_album(self, album_id: str) -> int:
        stmt = delete(AlbumDistinctPairModel).where(
            or_(
                AlbumDistinctPairModel.album_id_1 == album_id,
                AlbumDistinctPairModel.album_id_2 == album_id,
            )
        )
        result = await self.session.execute(stmt)
        return result.rowcount  # type: ignore[attr-defined]


class AdminEventRepository:
    """Append-only admin audit trail."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def add(
        self,
        event_type: str,
        event_data: dict[str, Any],
        created_by: str | None = None,
    ) -> AdminEventModel:
        model = AdminEventModel(
            event_type=event_type, event_data=event_data, created_by=created_by
        )
        self.session.add(model)
        await self.session.flush()
        return model

    async def list_recent(
        self, event_type: str | None = None, limit: int = 50
    ) -> list[AdminEventModel]:
        stmt = select(AdminEventModel).order_by(AdminEventModel.id.desc()).limit(limit)
        if event_type:
            stmt = stmt.where(AdminEventModel.event_type == event_type)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())


__all__ = [
    "AdminEventRepository",
    "AlbumUsage",
    "CanonicalAlbumRepository",
    "ExclusionPairRepository",
    "ListItemRepository",
    "ScannedRow",
]
