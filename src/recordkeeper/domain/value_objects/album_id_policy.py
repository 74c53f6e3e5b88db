"""Canonical album ID selection policy.

Hey future me - when several IDs point at the SAME logical album we have to pick
one to keep. We prefer IDs we can re-resolve against an external catalog later
(cover art, genres, tracks can be refreshed) over IDs we minted ourselves.

The policy is an ORDERED list of named predicates. First tier that matches any
candidate wins; inside a tier the input order decides. Add a tier by adding a
predicate to ID_TIERS - select_canonical() itself never changes.

Tiers (best first):
1. Streaming-service ID shape (22 chars base62, e.g. "6dVIqQ8qmQ5GBnJ9shOYGE")
2. UUID shape (8-4-4-4-12 hex, MusicBrainz release groups)
3. Any other ID without an internal/manual prefix
4. "internal-..." IDs
5. "manual-..." IDs
"""

import re
from collections.abc import Callable, Iterable

MANUAL_PREFIX = "manual-"
INTERNAL_PREFIX = "internal-"

_STREAMING_ID = re.compile(r"^[A-Za-z0-9]{22}$")
_UUID = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def is_streaming_id(album_id: str) -> bool:
    """22-character base62 ID (streaming-service album/track shape)."""
    return bool(_STREAMING_ID.match(album_id))


def is_uuid(album_id: str) -> bool:
    """Canonical 8-4-4-4-12 hex UUID."""
    return bool(_UUID.match(album_id))


def has_internal_prefix(album_id: str) -> bool:
    return album_id.startswith(INTERNAL_PREFIX)


def has_manual_prefix(album_id: str) -> bool:
    return album_id.startswith(MANUAL_PREFIX)


def is_external_id(album_id: str) -> bool:
    """Anything that was not minted internally or typed in by a user."""
    return not has_internal_prefix(album_id) and not has_manual_prefix(album_id)


def is_manual_id(album_id: str | None) -> bool:
    """True for IDs of manually entered albums."""
    return album_id is not None and has_manual_prefix(album_id)


def is_internal_id(album_id: str | None) -> bool:
    return album_id is not None and has_internal_prefix(album_id)


ID_TIERS: tuple[tuple[str, Callable[[str], bool]], ...] = (
    ("streaming", is_streaming_id),
    ("uuid", is_uuid),
    ("external", is_external_id),
    ("internal", has_internal_prefix),
    ("manual", has_manual_prefix),
)

# Rank for IDs that match no tier at all (can't happen with the current
# predicates, but keeps id_tier() total if a tier is ever removed).
FALLBACK_TIER = len(ID_TIERS)


def _valid_ids(ids: Iterable[str | None]) -> list[str]:
    return [album_id for album_id in ids if album_id and album_id.strip()]


def id_tier(album_id: str) -> int:
    """Rank of an ID under the selection policy (0 = most preferred)."""
    for index, (_name, predicate) in enumerate(ID_TIERS):
        if predicate(album_id):
            return index
    return FALLBACK_TIER


def id_tier_name(album_id: str) -> str:
    """Human readable tier name, "unknown" for the fallback tier."""
    tier = id_tier(album_id)
    return ID_TIERS[tier][0] if tier < FALLBACK_TIER else "unknown"


def select_canonical(ids: Iterable[str | None] | None) -> str | None:
    """Choose the canonical ID among IDs known to mean the same album.

    None, empty and whitespace-only entries are ignored.

    Args:
        ids: Candidate IDs in input order

    Returns:
        The preferred ID, or None if no valid candidate remains

    Examples:
        >>> select_canonical(["manual-123", "6dVIqQ8qmQ5GBnJ9shOYGE", "internal-abc"])
        '6dVIqQ8qmQ5GBnJ9shOYGE'
        >>> select_canonical(["manual-1", "manual-2"])
        'manual-1'
    """
    if not ids:
        return None

    candidates = _valid_ids(ids)
    if not candidates:
        return None

    for _name, predicate in ID_TIERS:
        for album_id in candidates:
            if predicate(album_id):
                return album_id

    return candidates[0]


__all__ = [
    "FALLBACK_TIER",
    "ID_TIERS",
    "INTERNAL_PREFIX",
    "MANUAL_PREFIX",
    "has_internal_prefix",
    "has_manual_prefix",
    "id_tier",
    "id_tier_name",
    "is_external_id",
    "is_internal_id",
    "is_manual_id",
    "is_streaming_id",
    "is_uuid",
    "select_canonical",
]
