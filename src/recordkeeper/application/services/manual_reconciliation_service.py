"""Manual album reconciliation: match typed-in albums to catalog albums.

Hey future me - users can add albums by typing artist/album themselves. Those
rows get a "manual-<something>" album_id and no catalog metadata. Later the
same album often shows up with a real catalog ID. This service finds those
pairs for an admin to review and merge (AlbumMergeService does the merge).

Matching:
- Exact: same normalize_key() -> confidence 100
- Fuzzy (opt-in via settings.reconciliation.fuzzy_matching): rapidfuzz ratio
  over the normalized artist and album segments, weighted 40/60
- Pairs an admin marked as distinct (ExclusionPair) are never suggested

Independently it flags integrity problems among manual albums:
- orphaned: referenced by list rows but no metadata at all (high)
- missing_metadata: row exists but artist or album is blank (medium)
- duplicate_manual: several manual albums share one normalized key (low)
"""

import logging
from typing import Any

from rapidfuzz import fuzz
from sqlalchemy.ext.asyncio import AsyncSession

from recordkeeper.config import ReconciliationSettings
from recordkeeper.domain.entities import CanonicalAlbum, IntegrityIssueType, Severity
from recordkeeper.domain.value_objects.album_id_policy import id_tier
from recordkeeper.domain.value_objects.album_identity import (
    KEY_SEPARATOR,
    normalize_for_comparison,
    normalize_key,
)
from recordkeeper.infrastructure.persistence.repositories import (
    AlbumUsage,
    CanonicalAlbumRepository,
    ExclusionPairRepository,
    ListItemRepository,
)

logger = logging.getLogger(__name__)

EXACT_MATCH_CONFIDENCE = 100

# Weights for the fuzzy score; album titles vary less between sources than
# artist credits ("feat." lists, collaborations), so they count more.
ARTIST_WEIGHT = 0.4
ALBUM_WEIGHT = 0.6
# Each segment must at least clear this on its own, or "Live" by everyone matches
MIN_SEGMENT_SIMILARITY = 0.5


def is_orphaned(album: CanonicalAlbum | None) -> bool:
    """No metadata at all - typically a dangling reference with no album row."""
    return album is None or (
        album.artist is None and album.album is None and not album.has_cover
    )


def missing_fields(album: CanonicalAlbum) -> list[str]:
    missing = []
    if not album.artist or not album.artist.strip():
        missing.append("artist")
    if not album.album or not album.album.strip():
        missing.append("album")
    return missing


def _usage_dicts(usage: list[AlbumUsage]) -> list[dict[str, Any]]:
    return [item.to_dict() for item in usage]


class _Candidate:
    """Catalog album prepared for matching (normalized once, not per manual album)."""

    __slots__ = ("album", "artist_key", "album_key", "key")

    def __init__(self, album: CanonicalAlbum) -> None:
        self.album = album
        self.artist_key = normalize_for_comparison(album.artist, remove_articles=True)
        self.album_key = normalize_for_comparison(album.album, strip_editions=True)
        self.key = f"{self.artist_key}{KEY_SEPARATOR}{self.album_key}"


class ManualReconciliationService:
    """Finds catalog matches and integrity issues for manual albums."""

    def __init__(self, session: AsyncSession, settings: ReconciliationSettings) -> None:
        self.session = session
        self.settings = settings
        self.albums = CanonicalAlbumRepository(session)
        self.list_items = ListItemRepository(session)
        self.exclusions = ExclusionPairRepository(session)

    def _fuzzy_confidence(self, manual: _Candidate, candidate: _Candidate) -> int | None:
        artist_score = fuzz.ratio(manual.artist_key, candidate.artist_key) / 100.0
        album_score = fuzz.ratio(manual.album_key, candidate.album_key) / 100.0
        if artist_score < MIN_SEGMENT_SIMILARITY or album_score < MIN_SEGMENT_SIMILARITY:
            return None
        combined = ARTIST_WEIGHT * artist_score + ALBUM_WEIGHT * album_score
        if combined < self.settings.fuzzy_threshold:
            return None
        return round(combined * 100)

    def find_matches(
        self,
        manual: CanonicalAlbum,
        candidates: list[_Candidate],
        excluded: set[str],
    ) -> list[dict[str, Any]]:
        """Ranked catalog matches for one manual album.

        Sorted by confidence, then cover presence, then ID tier (catalog IDs
        that can be re-resolved first).
        """
        prepared = _Candidate(manual)
        scored: list[tuple[int, str, CanonicalAlbum]] = []
        for candidate in candidates:
            if candidate.album.album_id == manual.album_id:
                continue
            if f"{manual.album_id}{KEY_SEPARATOR}{candidate.album.album_id}" in excluded:
                continue

            if candidate.key == prepared.key:
                scored.append((EXACT_MATCH_CONFIDENCE, "exact", candidate.album))
            elif self.settings.fuzzy_matching:
                confidence = self._fuzzy_confidence(prepared, candidate)
                if confidence is not None:
                    scored.append((confidence, "fuzzy", candidate.album))

        scored.sort(
            key=lambda item: (-item[0], not item[2].has_cover, id_tier(item[2].album_id))
        )
        return [
            {
                "album_id": album.album_id,
                "artist": album.artist,
                "album": album.album,
                "has_cover": album.has_cover,
                "confidence": confidence,
                "match_type": match_type,
            }
            for confidence, match_type, album in scored[: self.settings.max_matches_per_album]
        ]

    async def find_manual_albums_for_reconciliation(self) -> dict[str, Any]:
        """Scan all manual albums for catalog matches and integrity issues.

        Returns:
            Dict with manual_albums (matches first), total_manual,
            total_with_matches, integrity_issues (by severity) and
            total_integrity_issues
        """
        logger.info("Finding manual albums for reconciliation")

        manual_rows = {album.album_id: album for album in await self.albums.list_manual()}
        referenced_ids = await self.list_items.referenced_manual_ids()
        manual_ids = sorted(set(manual_rows) | referenced_ids)

        if not manual_ids:
            logger.info("No manual albums found")
            return {
                "manual_albums": [],
                "total_manual": 0,
                "total_with_matches": 0,
                "integrity_issues": [],
                "total_integrity_issues": 0,
            }

        usage = await self.list_items.usage_for(manual_ids)
        candidates = [_Candidate(album) for album in await self.albums.list_match_candidates()]

        excluded: set[str] = set()
        for pair in await self.exclusions.list_all():
            excluded.update(pair.pair_keys())

        manual_albums: list[dict[str, Any]] = []
        integrity_issues: list[dict[str, Any]] = []
        by_key: dict[str, list[dict[str, Any]]] = {}
        total_with_matches = 0

        for manual_id in manual_ids:
            album = manual_rows.get(manual_id)
            used_in = _usage_dicts(usage.get(manual_id, []))

            if album is None or is_orphaned(album):
                integrity_issues.append(
                    {
                        "type": IntegrityIssueType.ORPHANED.value,
                        "severity": Severity.HIGH.value,
                        "manual_id": manual_id,
                        "artist": None,
                        "album": None,
                        "description": "Album referenced in lists but has no album metadata",
                        "used_in": used_in,
                        "fix_action": "delete_references",
                    }
                )
                continue

            missing = missing_fields(album)
            if missing:
                integrity_issues.append(
                    {
                        "type": IntegrityIssueType.MISSING_METADATA.value,
                        "severity": Severity.MEDIUM.value,
                        "manual_id": manual_id,
                        "artist": album.artist or None,
                        "album": album.album or None,
                        "description": f"Missing {' and '.join(missing)} name",
                        "used_in": used_in,
                        "fix_action": "manual_review",
                    }
                )
                continue

            by_key.setdefault(normalize_key(album.artist, album.album), []).append(
                {
                    "manual_id": manual_id,
                    "artist": album.artist,
                    "album": album.album,
                    "used_in": used_in,
                }
            )

            matches = self.find_matches(album, candidates, excluded)
            if matches:
                total_with_matches += 1
            manual_albums.append(
                {
                    "manual_id": manual_id,
                    "artist": album.artist,
                    "album": album.album,
                    "has_cover": album.has_cover,
                    "used_in": used_in,
                    "matches": matches,
                }
            )

        for key, albums in by_key.items():
            if len(albums) > 1:
                integrity_issues.append(
                    {
                        "type": IntegrityIssueType.DUPLICATE_MANUAL.value,
                        "severity": Severity.LOW.value,
                        "normalized_key": key,
                        "description": f"{len(albums)} manual albums with same normalized name",
                        "duplicates": albums,
                        "fix_action": "merge_manual_albums",
                    }
                )

        # Albums with matches first, best match first; stable otherwise
        manual_albums.sort(
            key=lambda item: (
                not item["matches"],
                -item["matches"][0]["confidence"] if item["matches"] else 0,
            )
        )
        integrity_issues.sort(key=lambda issue: Severity(issue["severity"]).rank)

        logger.info(
            f"Found {len(manual_ids)} manual albums: {total_with_matches} with matches, "
            f"{len(integrity_issues)} with integrity issues"
        )
        return {
            "manual_albums": manual_albums,
            "total_manual": len(manual_ids),
            "total_with_matches": total_with_matches,
            "integrity_issues": integrity_issues,
            "total_integrity_issues": len(integrity_issues),
        }
