"""Tests for the Database session manager."""

import pytest
from sqlalchemy import text

from recordkeeper.infrastructure.persistence.database import Database
from recordkeeper.infrastructure.persistence.models import UserModel


class TestDatabase:
    async def test_sqlite_is_transactional(self, database: Database) -> None:
        assert database.dialect_name == "sqlite"
        assert database.supports_transactions is True

    async def test_pragmas_applied(self, database: Database) -> None:
        async with database.session_scope() as session:
            foreign_keys = (await session.execute(text("PRAGMA foreign_keys"))).scalar_one()
            journal_mode = (await session.execute(text("PRAGMA journal_mode"))).scalar_one()
        assert foreign_keys == 1
        assert journal_mode.lower() == "wal"

    async def test_session_scope_commits(self, database: Database) -> None:
        async with database.session_scope() as session:
            session.add(UserModel(username="alice"))

        async with database.session_scope() as session:
            count = (await session.execute(text("SELECT COUNT(*) FROM users"))).scalar_one()
        assert count == 1

    async def test_session_scope_rolls_back_on_error(self, database: Database) -> None:
        with pytest.raises(RuntimeError):
            async with database.session_scope() as session:
                session.add(UserModel(username="alice"))
                await session.flush()
                raise RuntimeError("boom")

        async with database.session_scope() as session:
            count = (await session.execute(text("SELECT COUNT(*) FROM users"))).scalar_one()
        assert count == 0

    async def test_pool_stats_for_sqlite(self, database: Database) -> None:
        assert database.get_pool_stats()["pool_type"] == "sqlite"
