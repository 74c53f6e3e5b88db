"""In-memory HTTP response cache with pattern invalidation."""

import asyncio
import time
from dataclasses import dataclass
from typing import Any

from recordkeeper.domain.ports import IResponseCache


def make_cache_key(verb: str, path: str, user_id: str) -> str:
    """Build a response cache key in "<verb>:<path>:<userId>" form."""
    return f"{verb.upper()}:{path}:{user_id}"


def user_pattern(user_id: str) -> str:
    """Substring pattern matching every cached response of one user.

    User IDs are fixed-length uuid4 strings (see models.new_id), so ":<userId>"
    can never be a prefix of a different user's key segment.
    """
    return f":{user_id}"


@dataclass
class CacheEntry:
    """Cache entry with value and metadata."""

    value: Any
    created_at: float
    ttl_seconds: int

    def is_expired(self) -> bool:
        return time.time() > (self.created_at + self.ttl_seconds)


class InMemoryResponseCache(IResponseCache):
    """Per-process response cache.

    Good enough for a single worker and for tests. Multi-worker deployments
    plug a shared cache in behind the same IResponseCache port.
    """

    # Listen up future me, always "async with self._lock" before touching self._cache -
    # the invalidation consumer runs concurrently with request handlers.
    def __init__(self, default_ttl_seconds: int = 300) -> None:
        self._cache: dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()
        self.default_ttl_seconds = default_ttl_seconds

    async def get(self, key: str) -> Any | None:
        """Get value from cache, None if missing or expired."""
        async with self._lock:
            entry = self._cache.get(key)
            if not entry:
                return None
            if entry.is_expired():
                del self._cache[key]
                return None
            return entry.value

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        async with self._lock:
            self._cache[key] = CacheEntry(
                value=value,
                created_at=time.time(),
                ttl_seconds=ttl_seconds if ttl_seconds is not None else self.default_ttl_seconds,
            )

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._cache.pop(key, None) is not None

    async def clear(self) -> None:
        async with self._lock:
            self._cache.clear()

    # Hey future me - plain substring match, that IS the port contract. User invalidation
    # relies on user IDs all being 36-char UUIDs; free-form IDs would over-match.
    async def invalidate(self, pattern: str) -> int:
        """Drop every entry whose key contains pattern.

        Args:
            pattern: Substring to look for in cache keys

        Returns:
            Number of entries removed
        """
        async with self._lock:
            matching = [key for key in self._cache if pattern in key]
            for key in matching:
                del self._cache[key]
            return len(matching)

    def get_stats(self) -> dict[str, Any]:
        """Cache statistics for health checks (unlocked, best-effort)."""
        total_entries = len(self._cache)
        expired_entries = sum(1 for entry in self._cache.values() if entry.is_expired())
        return {
            "total_entries": total_entries,
            "active_entries": total_entries - expired_entries,
            "expired_entries": expired_entries,
        }
