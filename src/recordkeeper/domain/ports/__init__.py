"""Domain ports (interfaces)."""

from abc import ABC, abstractmethod

from recordkeeper.domain.entities import CanonicalAlbum


# Hey future me, IResponseCache is the ONLY thing the core knows about the HTTP response
# cache! Keys look like "<verb>:<path>:<userId>" and invalidate() does a SUBSTRING match,
# so invalidate(":user-42") drops every cached response of that user. Only the invalidation
# dispatcher's consumer task ever awaits this - request code publishes events instead.
class IResponseCache(ABC):
    """Port for the response cache."""

    @abstractmethod
    async def invalidate(self, pattern: str) -> int:
        """Drop every cached entry whose key contains pattern.

        Returns:
            Number of entries removed
        """
        pass


# Yo, ICanonicalAlbumLookup is what the field compressor compares row values against.
# The implementation in the persistence layer hits the albums table; tests pass dict-backed
# fakes. It does NOT cache - caching is the per-batch CanonicalLookupCache's job.
class ICanonicalAlbumLookup(ABC):
    """Port for fetching canonical album records."""

    @abstractmethod
    async def get_album(self, album_id: str) -> CanonicalAlbum | None:
        """Fetch a canonical album by ID, None if no row exists."""
        pass


__all__ = ["ICanonicalAlbumLookup", "IResponseCache"]
