"""Canonical album upserts with cache invalidation fan-out."""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from recordkeeper.application.cache.invalidation import (
    CacheInvalidationDispatcher,
    InvalidationEvent,
)
from recordkeeper.domain.entities import CanonicalAlbum
from recordkeeper.domain.exceptions import ValidationError
from recordkeeper.domain.value_objects.album_identity import sanitize_for_storage
from recordkeeper.infrastructure.persistence.repositories import (
    CanonicalAlbumRepository,
    ListItemRepository,
)

logger = logging.getLogger(__name__)


class CanonicalAlbumService:
    """Creates canonical albums on first sight and keeps them current.

    Hey future me - when canonical data changes, every user whose list inherits
    from that album now renders differently, so their cached responses are
    stale. We publish ONE invalidation event after commit and never wait on it.
    """

    def __init__(
        self,
        session: AsyncSession,
        dispatcher: CacheInvalidationDispatcher | None = None,
    ) -> None:
        self.session = session
        self.albums = CanonicalAlbumRepository(session)
        self.list_items = ListItemRepository(session)
        self.dispatcher = dispatcher

    async def upsert_album(self, album: CanonicalAlbum) -> dict[str, Any]:
        """Create or update a canonical album.

        Args:
            album: Canonical data keyed by album_id

        Returns:
            Dict with album_id, created flag, changed_fields and invalidated_users
        """
        if not album.album_id or not album.album_id.strip():
            raise ValidationError("album_id is required", field="album_id")

        if album.artist is not None:
            album.artist = sanitize_for_storage(album.artist)
        if album.album is not None:
            album.album = sanitize_for_storage(album.album)

        created, changed_fields = await self.albums.upsert(album)

        affected_users: set[str] = set()
        if changed_fields:
            affected_users = await self.list_items.user_ids_referencing(album.album_id)

        await self.session.commit()

        if created:
            logger.info(f"Created canonical album {album.album_id}")
        elif changed_fields:
            logger.info(
                f"Updated canonical album {album.album_id}: {', '.join(changed_fields)} "
                f"({len(affected_users)} users affected)"
            )

        if affected_users and self.dispatcher is not None:
            self.dispatcher.publish(
                InvalidationEvent.for_users(
                    "canonical_update", affected_users, album_id=album.album_id
                )
            )

        return {
            "album_id": album.album_id,
            "created": created,
            "changed_fields": changed_fields,
            "invalidated_users": sorted(affected_users),
        }
