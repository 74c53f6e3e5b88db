"""Shared fixtures: a throwaway SQLite database per test plus seeding helpers.

Hey future me - every test gets its OWN database file under tmp_path. Seeding goes
through LibrarySeeder, which opens a short session_scope() per call. Don't hold a
session open across a merge in tests - the merge service opens its own transactions
on separate connections, exactly like in production.
"""

import asyncio
from collections.abc import AsyncGenerator, Awaitable, Callable, Iterable
from datetime import datetime
from pathlib import Path
from typing import Any

import pytest
from sqlalchemy import select

from recordkeeper.config import (
    AuditSettings,
    DatabaseSettings,
    ObservabilitySettings,
    ReconciliationSettings,
    Settings,
)
from recordkeeper.infrastructure.persistence.database import Database
from recordkeeper.infrastructure.persistence.models import (
    AdminEventModel,
    AggregateListContributorModel,
    AlbumDistinctPairModel,
    AlbumModel,
    ListItemModel,
    ListModel,
    UserModel,
)


class LibrarySeeder:
    """Writes users, lists, albums and list rows straight through the ORM."""

    def __init__(self, database: Database) -> None:
        self.database = database

    async def user(self, username: str, *, contributor_years: Iterable[int] = ()) -> str:
        async with self.database.session_scope() as session:
            user = UserModel(username=username)
            session.add(user)
            await session.flush()
            for year in contributor_years:
                session.add(AggregateListContributorModel(year=year, user_id=user.id))
            return user.id

    async def user_list(
        self,
        user_id: str,
        year: int | None,
        *,
        name: str | None = None,
        is_main: bool = True,
    ) -> str:
        async with self.database.session_scope() as session:
            model = ListModel(
                user_id=user_id,
                name=name or f"Best of {year}",
                year=year,
                is_main=is_main,
            )
            session.add(model)
            await session.flush()
            return model.id

    async def album(
        self,
        album_id: str,
        artist: str | None = None,
        album: str | None = None,
        **fields: Any,
    ) -> None:
        async with self.database.session_scope() as session:
            session.add(AlbumModel(album_id=album_id, artist=artist, album=album, **fields))

    async def item(
        self,
        list_id: str,
        position: int,
        album_id: str | None,
        *,
        artist: str | None = None,
        album: str | None = None,
        updated_at: datetime | None = None,
        **fields: Any,
    ) -> str:
        async with self.database.session_scope() as session:
            model = ListItemModel(
                list_id=list_id,
                position=position,
                album_id=album_id,
                artist=artist,
                album=album,
                **fields,
            )
            if updated_at is not None:
                model.updated_at = updated_at
            session.add(model)
            await session.flush()
            return model.id

    async def exclusion(self, album_id_1: str, album_id_2: str) -> None:
        async with self.database.session_scope() as session:
            session.add(AlbumDistinctPairModel(album_id_1=album_id_1, album_id_2=album_id_2))

    # ---- read helpers -------------------------------------------------------

    async def items(self) -> list[ListItemModel]:
        async with self.database.session_scope() as session:
            result = await session.execute(
                select(ListItemModel).order_by(ListItemModel.list_id, ListItemModel.position)
            )
            return list(result.scalars().all())

    async def item_by_id(self, item_id: str) -> ListItemModel | None:
        async with self.database.session_scope() as session:
            return await session.get(ListItemModel, item_id)

    async def album_ids(self) -> set[str]:
        async with self.database.session_scope() as session:
            result = await session.execute(select(AlbumModel.album_id))
            return set(result.scalars().all())

    async def admin_events(self) -> list[AdminEventModel]:
        async with self.database.session_scope() as session:
            result = await session.execute(select(AdminEventModel).order_by(AdminEventModel.id))
            return list(result.scalars().all())

    async def exclusion_pairs(self) -> list[tuple[str, str]]:
        async with self.database.session_scope() as session:
            result = await session.execute(select(AlbumDistinctPairModel))
            return [(pair.album_id_1, pair.album_id_2) for pair in result.scalars().all()]


def build_settings(db_path: Path, **overrides: Any) -> Settings:
    return Settings(
        database=DatabaseSettings(url=f"sqlite+aiosqlite:///{db_path}", auto_create_tables=True),
        audit=overrides.pop("audit", AuditSettings()),
        reconciliation=overrides.pop("reconciliation", ReconciliationSettings()),
        observability=ObservabilitySettings(log_level="DEBUG"),
        **overrides,
    )


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return build_settings(tmp_path / "recordkeeper-test.db")


@pytest.fixture
async def database(settings: Settings) -> AsyncGenerator[Database, None]:
    db = Database(settings)
    await db.create_tables()
    yield db
    await db.close()


@pytest.fixture
def seed(database: Database) -> LibrarySeeder:
    return LibrarySeeder(database)


@pytest.fixture
def seed_sync(settings: Settings) -> Callable[[Callable[[LibrarySeeder], Awaitable[Any]]], Any]:
    """Run an async seeding function from a sync (TestClient) test."""

    def _run(build: Callable[[LibrarySeeder], Awaitable[Any]]) -> Any:
        async def _seed() -> Any:
            db = Database(settings)
            await db.create_tables()
            try:
                return await build(LibrarySeeder(db))
            finally:
                await db.close()

        return asyncio.run(_seed())

    return _run
