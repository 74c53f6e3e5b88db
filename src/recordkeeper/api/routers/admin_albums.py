"""Admin endpoints for album identity reconciliation.

Hey future me - this is a THIN binding. Every endpoint hands straight off to a
service; no business logic lives here. Read endpoints (duplicates, audit,
preview, diagnose, reconciliation) never write. Write endpoints (fix, merge,
orphan cleanup, exclusions) require the X-Admin-User header so the admin event
trail knows who did it.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from recordkeeper.api.dependencies import (
    get_admin_user,
    get_audit_service,
    get_exclusion_service,
    get_merge_service,
    get_reconciliation_service,
)
from recordkeeper.application.services.album_audit_service import AlbumAuditService
from recordkeeper.application.services.album_merge_service import AlbumMergeService
from recordkeeper.application.services.exclusion_service import ExclusionService
from recordkeeper.application.services.manual_reconciliation_service import (
    ManualReconciliationService,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/albums", tags=["admin-albums"])


# =============================================================================
# Request Models
# =============================================================================


class FixRequest(BaseModel):
    """Apply the previewed ID rewrites for a year."""

    year: int
    dry_run: bool = False


class MergeRequest(BaseModel):
    """Merge a manual album into a canonical album."""

    manual_id: str = Field(..., min_length=1)
    canonical_id: str = Field(..., min_length=1)
    sync_metadata: bool = True


class ExclusionRequest(BaseModel):
    """Declare two album IDs as different albums."""

    album_id_1: str = Field(..., min_length=1)
    album_id_2: str = Field(..., min_length=1)


# =============================================================================
# AUDIT (read-only)
# =============================================================================


@router.get("/duplicates")
async def get_duplicates(
    year: int = Query(..., description="Year whose main lists are scanned"),
    service: AlbumAuditService = Depends(get_audit_service),
) -> dict[str, Any]:
    """Albums appearing under more than one album ID in a year."""
    scan = await service.find_duplicates(year)
    return scan.to_dict()


@router.get("/audit")
async def get_audit_report(
    year: int = Query(..., description="Year to audit"),
    service: AlbumAuditService = Depends(get_audit_service),
) -> dict[str, Any]:
    """Full audit snapshot: summary, duplicate groups and proposed changes."""
    return await service.get_audit_report(year)


@router.get("/audit/preview")
async def preview_fix(
    year: int = Query(..., description="Year to preview"),
    service: AlbumAuditService = Depends(get_audit_service),
) -> dict[str, Any]:
    """Rows that a fix would repoint, and to which canonical ID."""
    return await service.preview_fix(year)


@router.get("/audit/diagnose")
async def diagnose_normalization(
    year: int = Query(..., description="Year to diagnose"),
    service: AlbumAuditService = Depends(get_audit_service),
) -> dict[str, Any]:
    """Compare basic and full name normalization for a year."""
    return await service.diagnose_normalization(year)


@router.post("/audit/fix")
async def execute_fix(
    request: FixRequest,
    admin_user: str = Depends(get_admin_user),
    service: AlbumAuditService = Depends(get_audit_service),
) -> dict[str, Any]:
    """Apply the previewed changes, one transaction per change."""
    return await service.execute_fix(
        request.year, dry_run=request.dry_run, admin_user_id=admin_user
    )


# =============================================================================
# MANUAL ALBUM RECONCILIATION
# =============================================================================


@router.get("/reconciliation/manual")
async def get_manual_reconciliation(
    service: ManualReconciliationService = Depends(get_reconciliation_service),
) -> dict[str, Any]:
    """Manual albums with catalog match suggestions and integrity issues."""
    return await service.find_manual_albums_for_reconciliation()


@router.post("/merge")
async def merge_manual_album(
    request: MergeRequest,
    admin_user: str = Depends(get_admin_user),
    service: AlbumMergeService = Depends(get_merge_service),
) -> dict[str, Any]:
    """Repoint all references of a manual album to a canonical album."""
    return await service.merge_manual_album(
        request.manual_id,
        request.canonical_id,
        sync_metadata=request.sync_metadata,
        admin_user_id=admin_user,
    )


@router.delete("/orphans/{album_id}")
async def delete_orphaned_references(
    album_id: str,
    admin_user: str = Depends(get_admin_user),
    service: AlbumMergeService = Depends(get_merge_service),
) -> dict[str, Any]:
    """Remove list rows that point at a manual album with no album row."""
    return await service.delete_orphaned_references(album_id, admin_user_id=admin_user)


# =============================================================================
# EXCLUSIONS
# =============================================================================


@router.get("/exclusions")
async def list_exclusions(
    service: ExclusionService = Depends(get_exclusion_service),
) -> dict[str, Any]:
    """All pairs marked as distinct albums."""
    pairs = await service.list_pairs()
    return {
        "pairs": [
            {"album_id_1": pair.album_id_1, "album_id_2": pair.album_id_2}
            for pair in pairs
        ],
        "total": len(pairs),
    }


@router.post("/exclusions")
async def create_exclusion(
    request: ExclusionRequest,
    admin_user: str = Depends(get_admin_user),
    service: ExclusionService = Depends(get_exclusion_service),
) -> dict[str, Any]:
    """Mark two album IDs as distinct so they are never suggested as a match."""
    return await service.mark_distinct(
        request.album_id_1, request.album_id_2, admin_user_id=admin_user
    )
