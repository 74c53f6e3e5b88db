"""Admin-declared "these are different albums" pairs."""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from recordkeeper.domain.entities import ExclusionPair
from recordkeeper.domain.exceptions import ValidationError
from recordkeeper.infrastructure.persistence.repositories import ExclusionPairRepository

logger = logging.getLogger(__name__)


class ExclusionService:
    """Persists and queries ExclusionPairs.

    Pairs are unordered; mark_distinct("b", "a") and mark_distinct("a", "b")
    store the same single row.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.pairs = ExclusionPairRepository(session)

    async def mark_distinct(
        self,
        album_id_1: str,
        album_id_2: str,
        admin_user_id: str | None = None,
    ) -> dict[str, Any]:
        """Record that two album IDs are not the same album. Idempotent.

        Returns:
            Dict with the stored (sorted) pair and whether it was newly created
        """
        first = (album_id_1 or "").strip()
        second = (album_id_2 or "").strip()
        if not first or not second:
            raise ValidationError("Both album IDs are required", field="album_id")
        if first == second:
            raise ValidationError("An album cannot be distinct from itself", field="album_id")

        pair = ExclusionPair.of(first, second)
        created = False
        if not await self.pairs.exists(first, second):
            await self.pairs.add(pair, created_by=admin_user_id)
            await self.session.commit()
            created = True
            logger.info(f"Marked {pair.album_id_1} and {pair.album_id_2} as distinct albums")

        return {
            "album_id_1": pair.album_id_1,
            "album_id_2": pair.album_id_2,
            "created": created,
        }

    async def is_excluded(self, album_id_1: str, album_id_2: str) -> bool:
        return await self.pairs.exists(album_id_1, album_id_2)

    async def list_pairs(self) -> list[ExclusionPair]:
        return await self.pairs.list_all()
