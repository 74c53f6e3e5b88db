"""Merge manual albums into catalog albums.

Hey future me - this is the ONLY place (besides the aggregate fix) that
rewrites album references across many users' lists. Rules that matter:

1. Validate everything BEFORE writing (cheap, clear errors for the operator)
2. Re-validate INSIDE the transaction (the audit preview may be stale)
3. Only list_items.album_id changes - user overrides on the rows stay put
4. Rewrite + delete + admin event commit together or not at all
5. Cache invalidation happens AFTER commit and never fails the merge

Serialization failures / lock timeouts from the store come back as
TransientConflictError (retryable). We never retry internally.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from recordkeeper.application.cache.invalidation import (
    CacheInvalidationDispatcher,
    InvalidationEvent,
)
from recordkeeper.domain.entities import AdminEventType, AdminMergeEvent, AffectedList
from recordkeeper.domain.exceptions import (
    BusinessRuleViolation,
    ConfigurationError,
    EntityNotFoundError,
    TransientConflictError,
    ValidationError,
)
from recordkeeper.domain.value_objects.album_id_policy import is_manual_id
from recordkeeper.infrastructure.persistence.database import (
    Database,
    is_serialization_failure,
)
from recordkeeper.infrastructure.persistence.repositories import (
    AdminEventRepository,
    CanonicalAlbumRepository,
    ExclusionPairRepository,
    ListItemRepository,
)

logger = logging.getLogger(__name__)


def _affected_years(affected: list[AffectedList]) -> list[int]:
    return sorted({item.year for item in affected if item.year is not None})


class AlbumMergeService:
    """Transactional merge of a manual album into a canonical one."""

    def __init__(
        self,
        database: Database,
        dispatcher: CacheInvalidationDispatcher | None = None,
    ) -> None:
        self.database = database
        self.dispatcher = dispatcher

    def _require_transactions(self) -> None:
        if not self.database.supports_transactions:
            raise ConfigurationError(
                f"Datastore '{self.database.dialect_name}' does not support transactions; "
                "refusing to rewrite album references without one"
            )

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[AsyncSession]:
        """session_scope() that turns serialization failures into TransientConflictError."""
        try:
            async with self.database.session_scope() as session:
                yield session
        except DBAPIError as e:
            if is_serialization_failure(e):
                logger.warning(f"{operation} aborted by concurrent writer: {e.orig}")
                raise TransientConflictError(
                    f"{operation} conflicted with a concurrent change, retry the request",
                    operation=operation,
                ) from e
            raise

    @staticmethod
    def _validate_merge_args(manual_id: str | None, canonical_id: str | None) -> None:
        if not manual_id or not is_manual_id(manual_id):
            raise ValidationError(f"Invalid manual album ID: {manual_id!r}", field="manual_id")
        if not canonical_id or not canonical_id.strip():
            raise ValidationError("Canonical album ID is required", field="canonical_id")
        if manual_id == canonical_id:
            raise ValidationError("Cannot merge album into itself", field="canonical_id")

    @staticmethod
    async def _verify_merge_targets(
        albums: CanonicalAlbumRepository, manual_id: str, canonical_id: str
    ) -> None:
        if not await albums.exists(manual_id):
            raise ValidationError(
                f"Invalid manual album ID: {manual_id!r} does not exist", field="manual_id"
            )
        if not await albums.exists(canonical_id):
            raise EntityNotFoundError("Canonical album", canonical_id)

    async def merge_manual_album(
        self,
        manual_id: str,
        canonical_id: str,
        *,
        sync_metadata: bool = True,
        admin_user_id: str | None = None,
    ) -> dict[str, Any]:
        """Repoint every reference of manual_id to canonical_id and drop manual_id.

        Args:
            manual_id: Manual album to merge away ("manual-..." ID)
            canonical_id: Album that takes over all references
            sync_metadata: Include the canonical artist/album in the result and
                audit event (the canonical row itself is never modified)
            admin_user_id: Acting admin, recorded on the audit event

        Returns:
            Dict with success, updated_list_items, affected_lists, affected_years
            and synced_metadata

        Raises:
            ValidationError: manual_id not manual-shaped or missing, bad canonical_id
            EntityNotFoundError: canonical album does not exist
            ConfigurationError: store without transaction support
            TransientConflictError: concurrent writer aborted the transaction
        """
        self._validate_merge_args(manual_id, canonical_id)
        self._require_transactions()

        logger.info(f"Merging manual album {manual_id} into {canonical_id}")

        # Pre-check in a short read so obviously bad input never opens a write transaction
        async with self.database.session_scope() as session:
            await self._verify_merge_targets(
                CanonicalAlbumRepository(session), manual_id, canonical_id
            )

        async with self._transaction("album_merge") as session:
            albums = CanonicalAlbumRepository(session)
            list_items = ListItemRepository(session)

            # Re-verify: the rows may have gone away since the pre-check
            await self._verify_merge_targets(albums, manual_id, canonical_id)

            synced_metadata: dict[str, Any] | None = None
            if sync_metadata:
                canonical = await albums.get_album(canonical_id)
                if canonical is None:
                    raise EntityNotFoundError("Canonical album", canonical_id)
                synced_metadata = {"artist": canonical.artist, "album": canonical.album}

            affected = await list_items.affected_lists(manual_id)
            updated = await list_items.repoint(manual_id, canonical_id)
            removed_pairs = await ExclusionPairRepository(session).delete_for_album(manual_id)
            await albums.delete(manual_id)

            event = AdminMergeEvent(
                source_id=manual_id,
                target_id=canonical_id,
                actor_id=admin_user_id,
                affected_list_count=len(affected),
                details={
                    "updated_list_items": updated,
                    "affected_lists": [item.list_name for item in affected],
                    "affected_years": _affected_years(affected),
                    "removed_exclusion_pairs": removed_pairs,
                    "sync_metadata": sync_metadata,
                    **(
                        {
                            "canonical_artist": synced_metadata["artist"],
                            "canonical_album": synced_metadata["album"],
                        }
                        if synced_metadata
                        else {}
                    ),
                },
            )
            await AdminEventRepository(session).add(
                event.type.value, event.to_event_data(), created_by=admin_user_id
            )

            # Everyone now pointing at the canonical album, affected users included
            users_to_invalidate = {item.user_id for item in affected}
            users_to_invalidate |= await list_items.user_ids_referencing(canonical_id)

        affected_years = _affected_years(affected)
        logger.info(
            f"Merged manual album {manual_id}: {updated} list_items updated, "
            f"{len(affected)} lists affected, years: "
            f"{', '.join(str(year) for year in affected_years) or '-'}"
        )

        if self.dispatcher is not None:
            self.dispatcher.publish(
                InvalidationEvent.for_users(
                    AdminEventType.ALBUM_MERGE.value, users_to_invalidate, album_id=canonical_id
                )
            )

        return {
            "success": True,
            "manual_album_id": manual_id,
            "canonical_album_id": canonical_id,
            "updated_list_items": updated,
            "affected_lists": [item.to_dict() for item in affected],
            "affected_years": affected_years,
            "synced_metadata": synced_metadata,
        }

    async def delete_orphaned_references(
        self, album_id: str, admin_user_id: str | None = None
    ) -> dict[str, Any]:
        """Delete list rows pointing at a manual ID that has no album row.

        Raises:
            ValidationError: album_id is not manual-shaped
            BusinessRuleViolation: the album row exists (not orphaned)
            ConfigurationError: store without transaction support
        """
        if not album_id or not is_manual_id(album_id):
            raise ValidationError(
                "album_id must be a manual album (manual-* prefix)", field="album_id"
            )
        self._require_transactions()

        async with self._transaction("orphan_cleanup") as session:
            if await CanonicalAlbumRepository(session).exists(album_id):
                raise BusinessRuleViolation("Album exists in albums table - not orphaned")

            list_items = ListItemRepository(session)
            affected = await list_items.affected_lists(album_id)
            deleted = await list_items.delete_references(album_id)
            await ExclusionPairRepository(session).delete_for_album(album_id)
            await AdminEventRepository(session).add(
                AdminEventType.ORPHANED_ALBUM_DELETED.value,
                {
                    "album_id": album_id,
                    "deleted_list_items": deleted,
                    "affected_lists": [item.list_name for item in affected],
                    "affected_years": _affected_years(affected),
                },
                created_by=admin_user_id,
            )

        logger.info(
            f"Deleted {deleted} orphaned references to {album_id} "
            f"from {len(affected)} lists"
        )

        if self.dispatcher is not None:
            self.dispatcher.publish(
                InvalidationEvent.for_users(
                    AdminEventType.ORPHANED_ALBUM_DELETED.value,
                    {item.user_id for item in affected},
                    album_id=album_id,
                )
            )

        return {
            "album_id": album_id,
            "deleted_list_items": deleted,
            "affected_lists": [item.to_dict() for item in affected],
            "affected_years": _affected_years(affected),
        }
