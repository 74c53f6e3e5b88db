"""Aggregate list audit: preview, report, diagnose and apply album ID fixes.

Hey future me - the same album can sit on different users' lists under
different album IDs (one user added it from MusicBrainz, another from Spotify,
a third typed it in). The aggregate list groups by normalized name so the
OUTPUT is fine, but the underlying data is messy. This service shows how messy
and proposes which ID everybody should be pointing at.

Everything except execute_fix() is strictly read-only. execute_fix() applies
each proposed change in its OWN transaction - one failing change does not roll
back the others, and the result says exactly which ones failed.
"""

import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from recordkeeper.application.cache.invalidation import (
    CacheInvalidationDispatcher,
    InvalidationEvent,
)
from recordkeeper.application.services.duplicate_finder import (
    DuplicateFinder,
    DuplicateScan,
    group_rows,
)
from recordkeeper.config import AuditSettings
from recordkeeper.domain.entities import AdminEventType, DuplicateGroup
from recordkeeper.domain.exceptions import (
    ConfigurationError,
    DomainException,
    TransientConflictError,
)
from recordkeeper.domain.value_objects.album_id_policy import select_canonical
from recordkeeper.domain.value_objects.album_identity import (
    basic_normalize_key,
    normalize_key,
)
from recordkeeper.infrastructure.persistence.database import (
    Database,
    is_serialization_failure,
)
from recordkeeper.infrastructure.persistence.repositories import (
    AdminEventRepository,
    ListItemRepository,
)

logger = logging.getLogger(__name__)

# How many overlapping albums diagnose_normalization() lists
TOP_OVERLAP_LIMIT = 20


def _now() -> str:
    return datetime.now(UTC).isoformat()


def build_changes(duplicates: Iterable[DuplicateGroup]) -> list[dict[str, Any]]:
    """Proposed ID rewrites for each duplicate group.

    Entries already on the canonical ID, and entries without any ID, are not
    affected. Groups with nothing to rewrite produce no change.
    """
    changes: list[dict[str, Any]] = []
    for group in duplicates:
        canonical_id = select_canonical(group.album_ids)
        affected = [
            entry
            for entry in group.entries
            if entry.album_id is not None and entry.album_id != canonical_id
        ]
        if not affected:
            continue
        changes.append(
            {
                "artist": group.artist,
                "album": group.album,
                "normalized_key": group.normalized_key,
                "canonical_album_id": canonical_id,
                "current_album_ids": list(group.album_ids),
                "entry_count": group.entry_count,
                "affected_entries": [
                    {
                        "current_album_id": entry.album_id,
                        "user_id": entry.user_id,
                        "username": entry.username,
                        "list_id": entry.list_id,
                        "list_name": entry.list_name,
                        "position": entry.position,
                    }
                    for entry in affected
                ],
            }
        )
    return changes


class AlbumAuditService:
    """Read-only audit of a year's lists plus the bulk fix."""

    def __init__(
        self,
        session: AsyncSession,
        settings: AuditSettings,
        database: Database | None = None,
        dispatcher: CacheInvalidationDispatcher | None = None,
    ) -> None:
        self.session = session
        self.settings = settings
        self.database = database
        self.dispatcher = dispatcher
        self.finder = DuplicateFinder(session, settings)

    async def find_duplicates(self, year: Any) -> DuplicateScan:
        return await self.finder.find_duplicates(year)

    @staticmethod
    def _preview_from_scan(scan: DuplicateScan) -> dict[str, Any]:
        changes = build_changes(scan.duplicates)
        preview: dict[str, Any] = {
            "year": scan.year,
            "previewed_at": _now(),
            "changes_required": len(changes) > 0,
            "total_changes": sum(len(change["affected_entries"]) for change in changes),
            "changes": changes,
        }
        if not changes:
            preview["message"] = "No duplicates found - no changes needed"
        return preview

    async def preview_fix(self, year: Any) -> dict[str, Any]:
        """Which rows would be repointed to which canonical ID. No writes.

        Args:
            year: Scope key

        Returns:
            Dict with changes_required, total_changes and changes
        """
        scan = await self.finder.find_duplicates(year)
        logger.info(f"Generating fix preview for year {scan.year}")
        return self._preview_from_scan(scan)

    async def get_audit_report(self, year: Any) -> dict[str, Any]:
        """Duplicate scan and fix preview from one snapshot, for operator review."""
        scan = await self.finder.find_duplicates(year)
        preview = self._preview_from_scan(scan)
        return {
            "year": scan.year,
            "generated_at": _now(),
            "summary": {
                "total_albums_scanned": scan.total_albums_scanned,
                "unique_albums": scan.unique_albums,
                "albums_with_multiple_ids": scan.duplicate_groups,
                "changes_required": preview["changes_required"],
                "total_changes_needed": preview["total_changes"],
            },
            "duplicates": [group.to_dict() for group in scan.duplicates],
            "proposed_changes": preview["changes"],
        }

    # Yo, this one answers "is the fancy normalization worth it?". A sophisticated group that
    # spans several basic groups is an album the old lowercase+trim key would have split up.
    async def diagnose_normalization(self, year: Any) -> dict[str, Any]:
        """Compare basic and full normalization over a year's rows.

        Returns:
            Dict with unique counts under both keys, missed_by_basic groups and
            overlap statistics (how many users' lists an album appears on)
        """
        scope, rows = await self.finder.scan(year)
        logger.info(f"Running normalization diagnostic for year {scope}")

        full_groups = group_rows(rows)
        basic_groups: dict[str, list[Any]] = {}
        # dict used as an ordered set of basic keys per full key
        basic_keys_by_full: dict[str, dict[str, None]] = {}
        for row in rows:
            basic_key = basic_normalize_key(row.artist, row.album)
            basic_groups.setdefault(basic_key, []).append(row)
            full_key = normalize_key(row.artist, row.album)
            basic_keys_by_full.setdefault(full_key, {})[basic_key] = None

        missed_by_basic = []
        for full_key, basic_keys in basic_keys_by_full.items():
            if len(basic_keys) < 2:
                continue
            group = full_groups[full_key]
            variants = []
            for basic_key in basic_keys:
                variant_rows = basic_groups[basic_key]
                variants.append(
                    {
                        "basic_key": basic_key,
                        "artist": variant_rows[0].artist,
                        "album": variant_rows[0].album,
                        "entry_count": len(variant_rows),
                        "entries": [
                            {
                                "username": row.username,
                                "position": row.position,
                                "album_id": row.album_id,
                            }
                            for row in variant_rows
                        ],
                    }
                )
            missed_by_basic.append(
                {
                    "sophisticated_key": full_key,
                    "canonical_artist": group.artist,
                    "canonical_album": group.album,
                    "total_entries": group.entry_count,
                    "variant_count": len(basic_keys),
                    "variants": variants,
                }
            )

        overlapping = []
        for group in full_groups.values():
            voters = {entry.user_id for entry in group.entries}
            if len(voters) > 1:
                overlapping.append(
                    {
                        "artist": group.artist,
                        "album": group.album,
                        "voter_count": len(voters),
                        "entries": group.entry_count,
                    }
                )
        overlapping.sort(key=lambda item: item["voter_count"], reverse=True)

        logger.info(
            f"Normalization diagnostic for {scope}: basic found {len(basic_groups)} unique, "
            f"full found {len(full_groups)} unique, {len(missed_by_basic)} albums "
            "would be duplicated with basic normalization"
        )
        return {
            "year": scope,
            "diagnosed_at": _now(),
            "total_list_entries": len(rows),
            "unique_albums_basic": len(basic_groups),
            "unique_albums_sophisticated": len(full_groups),
            "albums_missed_by_basic_normalization": len(missed_by_basic),
            "missed_by_basic": missed_by_basic,
            "overlap_stats": {
                "albums_appearing_on_multiple_lists": len(overlapping),
                "top_overlapping_albums": overlapping[:TOP_OVERLAP_LIMIT],
                "distribution": {
                    "appears_on_1_list": len(full_groups) - len(overlapping),
                    "appears_on_2_plus_lists": len(overlapping),
                    "appears_on_3_plus_lists": sum(
                        1 for item in overlapping if item["voter_count"] >= 3
                    ),
                    "appears_on_5_plus_lists": sum(
                        1 for item in overlapping if item["voter_count"] >= 5
                    ),
                },
            },
        }

    async def _apply_change(
        self, year: int, change: dict[str, Any], admin_user_id: str | None
    ) -> int:
        if self.database is None:
            raise ConfigurationError("No database configured for aggregate fix")
        canonical_id = change["canonical_album_id"]
        list_ids = {entry["list_id"] for entry in change["affected_entries"]}
        current_ids = list(
            dict.fromkeys(entry["current_album_id"] for entry in change["affected_entries"])
        )

        async with self.database.session_scope() as session:
            list_items = ListItemRepository(session)
            updated = 0
            for current_id in current_ids:
                updated += await list_items.repoint(
                    current_id, canonical_id, list_ids=list_ids
                )
            await AdminEventRepository(session).add(
                AdminEventType.AGGREGATE_FIX.value,
                {
                    "year": year,
                    "canonical_album_id": canonical_id,
                    "replaced_album_ids": current_ids,
                    "updated_list_items": updated,
                },
                created_by=admin_user_id,
            )
        return updated

    async def execute_fix(
        self,
        year: Any,
        dry_run: bool = False,
        admin_user_id: str | None = None,
    ) -> dict[str, Any]:
        """Apply the previewed ID rewrites, one transaction per change.

        Args:
            year: Scope key
            dry_run: Only report what would change
            admin_user_id: Actor recorded on the admin events

        Returns:
            Dict with success (all changes applied), changes_applied (rows
            rewritten) and failed_changes

        Raises:
            ConfigurationError: No transactional database configured
        """
        if not dry_run and (self.database is None or not self.database.supports_transactions):
            raise ConfigurationError(
                "Aggregate fix requires a datastore with transaction support"
            )

        logger.info(f"Executing aggregate fix for year {year} (dry_run: {dry_run})")
        preview = await self.preview_fix(year)
        scope = preview["year"]

        if not preview["changes_required"]:
            return {
                "year": scope,
                "executed_at": _now(),
                "dry_run": dry_run,
                "success": True,
                "message": "No changes needed",
                "changes_applied": 0,
                "failed_changes": [],
            }

        if dry_run:
            return {
                "year": scope,
                "executed_at": _now(),
                "dry_run": True,
                "success": True,
                "message": f"Dry run: Would apply {preview['total_changes']} changes",
                "changes_applied": 0,
                "would_change": preview["changes"],
                "failed_changes": [],
            }

        # Release the read snapshot before writing from other connections
        await self.session.rollback()

        total_updated = 0
        failed: list[dict[str, Any]] = []
        affected_users: set[str] = set()
        for change in preview["changes"]:
            try:
                updated = await self._apply_change(scope, change, admin_user_id)
            except (SQLAlchemyError, DomainException) as e:
                error: Exception = e
                if is_serialization_failure(e):
                    error = TransientConflictError(str(e), operation="aggregate_fix")
                logger.warning(
                    f"Aggregate fix change for {change['canonical_album_id']} failed: {error}",
                    exc_info=True,
                )
                failed.append(
                    {
                        "canonical_album_id": change["canonical_album_id"],
                        "error": str(error),
                        "retryable": isinstance(error, TransientConflictError),
                    }
                )
                continue
            total_updated += updated
            affected_users.update(entry["user_id"] for entry in change["affected_entries"])

        if affected_users and self.dispatcher is not None:
            self.dispatcher.publish(InvalidationEvent.for_users("aggregate_fix", affected_users))

        logger.info(
            f"Aggregate fix for {scope}: updated {total_updated} list_items, "
            f"{len(failed)} of {len(preview['changes'])} changes failed"
        )
        return {
            "year": scope,
            "executed_at": _now(),
            "dry_run": False,
            "success": not failed,
            "message": f"Updated {total_updated} list_items",
            "changes_applied": total_updated,
            "failed_changes": failed,
            "details": preview["changes"],
        }
