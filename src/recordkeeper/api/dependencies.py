"""Dependency injection for API endpoints."""

import logging
from collections.abc import AsyncGenerator

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from recordkeeper.application.cache.invalidation import CacheInvalidationDispatcher
from recordkeeper.application.services.album_audit_service import AlbumAuditService
from recordkeeper.application.services.album_merge_service import AlbumMergeService
from recordkeeper.application.services.exclusion_service import ExclusionService
from recordkeeper.application.services.manual_reconciliation_service import (
    ManualReconciliationService,
)
from recordkeeper.config import Settings
from recordkeeper.infrastructure.persistence.database import Database

logger = logging.getLogger(__name__)

ADMIN_USER_HEADER = "X-Admin-User"


# Hey future me - everything below reads from app.state, which create_app()'s lifespan fills.
# Tests override nothing here; they build the app with their own Settings instead.
def get_settings_from_app(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def get_database(request: Request) -> Database:
    db: Database = request.app.state.db
    return db


def get_dispatcher(request: Request) -> CacheInvalidationDispatcher:
    dispatcher: CacheInvalidationDispatcher = request.app.state.invalidation_dispatcher
    return dispatcher


async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Get database session from app state.

    Uses session_scope() so the request's writes commit once it completes.
    """
    db: Database = request.app.state.db
    async with db.session_scope() as session:
        yield session


# Authentication itself lives in front of this service; we only need to know WHO acted so
# the admin event trail is meaningful. Missing header = 401, not a silent anonymous merge.
def get_admin_user(
    admin_user: str | None = Header(default=None, alias=ADMIN_USER_HEADER),
) -> str:
    """Acting admin's user ID from the request header."""
    if not admin_user or not admin_user.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"{ADMIN_USER_HEADER} header is required",
        )
    return admin_user.strip()


def get_audit_service(
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_settings_from_app),
    db: Database = Depends(get_database),
    dispatcher: CacheInvalidationDispatcher = Depends(get_dispatcher),
) -> AlbumAuditService:
    return AlbumAuditService(session, settings.audit, database=db, dispatcher=dispatcher)


def get_reconciliation_service(
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_settings_from_app),
) -> ManualReconciliationService:
    return ManualReconciliationService(session, settings.reconciliation)


# The merge service opens its own transactions - it must NOT share the request session.
def get_merge_service(
    db: Database = Depends(get_database),
    dispatcher: CacheInvalidationDispatcher = Depends(get_dispatcher),
) -> AlbumMergeService:
    return AlbumMergeService(db, dispatcher=dispatcher)


def get_exclusion_service(
    session: AsyncSession = Depends(get_db_session),
) -> ExclusionService:
    return ExclusionService(session)
