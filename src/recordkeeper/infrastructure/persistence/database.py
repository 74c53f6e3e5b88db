"""Database session management."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from recordkeeper.config import Settings

logger = logging.getLogger(__name__)

# Dialects whose drivers give us real multi-statement transactions. Anything else
# (e.g. a read-only replica proxy or a custom dialect) is refused by the merge code.
TRANSACTIONAL_DIALECTS = frozenset({"postgresql", "sqlite", "mysql", "mariadb"})

# SQLSTATE codes for "serialization_failure" and "deadlock_detected".
_SERIALIZATION_SQLSTATES = frozenset({"40001", "40P01"})


def is_serialization_failure(error: BaseException) -> bool:
    """True if the store aborted the transaction because of a concurrent writer.

    Covers PostgreSQL serialization failures/deadlocks (SQLSTATE 40001/40P01)
    and SQLite's "database is locked" after the busy timeout expired.
    """
    if not isinstance(error, DBAPIError):
        return False

    orig = error.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in _SERIALIZATION_SQLSTATES:
        return True

    return isinstance(error, OperationalError) and "database is locked" in str(orig)


class Database:
    """Database connection and session manager."""

    def __init__(self, settings: Settings) -> None:
        """Initialize database with settings."""
        self.settings = settings

        engine_kwargs: dict[str, Any] = {
            "echo": settings.database.echo,
            "pool_pre_ping": settings.database.pool_pre_ping,
        }

        # Only apply pool settings for PostgreSQL
        if "postgresql" in settings.database.url:
            engine_kwargs.update(
                {
                    "pool_size": settings.database.pool_size,
                    "max_overflow": settings.database.max_overflow,
                    "pool_timeout": settings.database.pool_timeout,
                    "pool_recycle": settings.database.pool_recycle,
                }
            )
        elif "sqlite" in settings.database.url:
            engine_kwargs.update(
                {
                    "connect_args": {
                        "check_same_thread": False,
                        "timeout": 30,  # Wait up to 30s for lock
                    }
                }
            )

        self._engine = create_async_engine(
            settings.database.url,
            **engine_kwargs,
        )

        if "sqlite" in settings.database.url:
            self._enable_sqlite_foreign_keys()

        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    def _enable_sqlite_foreign_keys(self) -> None:
        """Enable foreign key constraints and WAL journaling for SQLite.

        SQLite has foreign keys disabled by default. This method enables them
        for all connections.
        """

        @event.listens_for(self._engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_conn: Any, _connection_record: Any) -> None:
            """Set SQLite pragmas on connection."""
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            # WAL lets audit reads run while a merge transaction is writing
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()
            logger.debug("Enabled foreign keys and WAL for SQLite connection")

    @property
    def dialect_name(self) -> str:
        return self._engine.dialect.name

    # Hey future me - the merge executor checks this BEFORE touching anything. There is no
    # "safe degraded mode" for a reference rewrite across many users' rows, so a store we
    # can't trust with a transaction gets a ConfigurationError instead of a best-effort merge.
    @property
    def supports_transactions(self) -> bool:
        """Whether the configured store gives us atomic multi-statement writes."""
        return self.dialect_name in TRANSACTIONAL_DIALECTS

    @asynccontextmanager
    async def session_scope(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide a transactional scope for database operations.

        Commits when the block exits normally, rolls back on any exception.
        """
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def close(self) -> None:
        """Close database connection."""
        await self._engine.dispose()

    async def create_tables(self) -> None:
        """Create all tables (for testing and local development)."""
        from recordkeeper.infrastructure.persistence.models import Base

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    def get_pool_stats(self) -> dict[str, Any]:
        """Get connection pool statistics for monitoring.

        Returns:
            Dictionary with pool statistics. SQLite reports its pool type only.
        """
        if "sqlite" in self.settings.database.url:
            return {
                "pool_type": "sqlite",
                "note": "SQLite does not use connection pooling",
            }

        pool = self._engine.pool
        return {
            "pool_size": getattr(pool, "size", lambda: 0)(),
            "checked_out": getattr(pool, "checkedout", lambda: 0)(),
            "overflow": getattr(pool, "overflow", lambda: 0)(),
            "checked_in": getattr(pool, "checkedin", lambda: 0)(),
            "pool_timeout": self.settings.database.pool_timeout,
            "pool_recycle": self.settings.database.pool_recycle,
            "max_overflow": self.settings.database.max_overflow,
        }
