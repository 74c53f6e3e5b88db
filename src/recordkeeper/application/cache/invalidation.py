# Hey future me - this is the side channel between "canonical data changed" and the response
# cache! Merges and canonical upserts PUBLISH an event and move on; a consumer task applies
# the invalidations later. That way:
#
# 1. A merge's success response never waits on (or fails because of) the cache
# 2. Services are testable with a plain dispatcher and no cache at all
# 3. Every attempt and outcome is logged in one place
#
# Flow:
#   AlbumMergeService.merge_manual_album()
#       └─► dispatcher.publish(InvalidationEvent(...))
#           └─► CacheInvalidationDispatcher._consume()
#               └─► cache.invalidate(":<userId>")  (once per user)
#
# No retries. A missed invalidation heals on the next natural cache expiry.
"""Fire-and-forget response cache invalidation."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from recordkeeper.application.cache.response_cache import user_pattern
from recordkeeper.domain.exceptions import CacheInvalidationWarning
from recordkeeper.domain.ports import IResponseCache

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InvalidationEvent:
    """Request to drop cached responses of some users.

    Attributes:
        reason: What triggered it, e.g. "album_merge" (logged only)
        user_ids: Users whose cached responses are stale
        album_id: Album whose canonical data or references changed, if any
    """

    reason: str
    user_ids: frozenset[str]
    album_id: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def for_users(
        cls, reason: str, user_ids: Any, album_id: str | None = None
    ) -> InvalidationEvent:
        return cls(
            reason=reason,
            user_ids=frozenset(uid for uid in user_ids if uid),
            album_id=album_id,
        )


class CacheInvalidationDispatcher:
    """Queue of invalidation events with a background consumer.

    Usage:
        dispatcher = CacheInvalidationDispatcher(cache)
        dispatcher.start()
        dispatcher.publish(InvalidationEvent.for_users("album_merge", {"u1", "u2"}))
        await dispatcher.drain()   # tests / shutdown only
        await dispatcher.stop()
    """

    def __init__(self, cache: IResponseCache | None, max_size: int = 10000) -> None:
        """Initialize dispatcher.

        Args:
            cache: Response cache to invalidate (None disables invalidation)
            max_size: Queue bound; events beyond it are dropped with a warning
        """
        self._cache = cache
        self._queue: asyncio.Queue[InvalidationEvent] = asyncio.Queue(maxsize=max_size)
        self._task: asyncio.Task[None] | None = None
        self._stats: dict[str, int] = {
            "published": 0,
            "dropped": 0,
            "invalidated_users": 0,
            "invalidated_entries": 0,
            "failures": 0,
        }

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the consumer task on the running event loop."""
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._consume(), name="cache-invalidation-consumer"
        )
        logger.debug("Cache invalidation consumer started")

    # Listen up! publish() is deliberately NOT async - there is nothing to await. If the queue
    # is full we drop the event and log it; the cache entries will expire on their own.
    def publish(self, event: InvalidationEvent) -> bool:
        """Enqueue an invalidation event without waiting for it.

        Returns:
            True if queued, False if dropped (empty event or queue full)
        """
        if not event.user_ids:
            return False

        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self._stats["dropped"] += 1
            logger.warning(
                f"Invalidation queue full, dropping event '{event.reason}' "
                f"for {len(event.user_ids)} users",
                extra={"category": CacheInvalidationWarning.__name__},
            )
            return False

        self._stats["published"] += 1
        logger.debug(
            f"Queued cache invalidation '{event.reason}' for {len(event.user_ids)} users",
            extra={"album_id": event.album_id},
        )

        # Lazily start the consumer when publish() is the first thing called inside a loop
        if not self.is_running:
            with contextlib.suppress(RuntimeError):
                self.start()
        return True

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._apply(event)
            finally:
                self._queue.task_done()

    async def _apply(self, event: InvalidationEvent) -> None:
        if self._cache is None:
            logger.debug(f"No response cache configured, skipping '{event.reason}'")
            return

        for user_id in sorted(event.user_ids):
            try:
                removed = await self._cache.invalidate(user_pattern(user_id))
            except Exception as e:
                # Never propagated - invalidation is best-effort by contract
                self._stats["failures"] += 1
                logger.warning(
                    f"Cache invalidation failed for user {user_id} ({event.reason}): {e}",
                    extra={
                        "category": CacheInvalidationWarning.__name__,
                        "user_id": user_id,
                        "album_id": event.album_id,
                        "error_type": type(e).__name__,
                    },
                )
                continue

            self._stats["invalidated_users"] += 1
            self._stats["invalidated_entries"] += removed
            logger.debug(
                f"Invalidated {removed} cached responses for user {user_id} ({event.reason})",
                extra={"user_id": user_id, "album_id": event.album_id},
            )

    async def drain(self) -> None:
        """Wait until every queued event has been applied."""
        if self._queue.empty():
            return
        if not self.is_running:
            self.start()
        await self._queue.join()

    async def stop(self) -> None:
        """Apply what's queued, then stop the consumer."""
        if self._task is None:
            return
        await self.drain()
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.debug("Cache invalidation consumer stopped")

    def get_stats(self) -> dict[str, int]:
        return {**self._stats, "pending": self._queue.qsize()}
