"""Application lifecycle management for startup and shutdown tasks."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from recordkeeper.application.cache.invalidation import CacheInvalidationDispatcher
from recordkeeper.application.cache.response_cache import InMemoryResponseCache
from recordkeeper.config import Settings, get_settings
from recordkeeper.infrastructure.observability.logging import configure_logging
from recordkeeper.infrastructure.persistence.database import Database

logger = logging.getLogger(__name__)


# Listen future me, everything before `yield` runs at STARTUP, everything after at SHUTDOWN.
# Routes get their collaborators from app.state: db, response_cache, invalidation_dispatcher.
# Shutdown drains the invalidation queue first so a merge right before shutdown still
# invalidates what it should.
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings: Settings = getattr(app.state, "settings", None) or get_settings()
    app.state.settings = settings

    configure_logging(
        log_level=settings.observability.log_level,
        json_format=settings.observability.log_json_format,
        app_name=settings.app_name,
    )
    logger.info(f"Starting application: {settings.app_name}")

    db = Database(settings)
    app.state.db = db
    logger.info(f"Database initialized (dialect: {db.dialect_name})")

    if not db.supports_transactions:
        logger.warning(
            f"Datastore '{db.dialect_name}' has no transaction support - "
            "merges and fixes will be refused"
        )

    dispatcher: CacheInvalidationDispatcher | None = None
    try:
        if settings.database.auto_create_tables:
            await db.create_tables()
            logger.info("Database tables created")

        response_cache = InMemoryResponseCache()
        app.state.response_cache = response_cache

        dispatcher = CacheInvalidationDispatcher(response_cache)
        dispatcher.start()
        app.state.invalidation_dispatcher = dispatcher

        yield
    finally:
        logger.info("Shutting down application")
        if dispatcher is not None:
            await dispatcher.stop()
        await db.close()
        logger.info("Shutdown complete")
