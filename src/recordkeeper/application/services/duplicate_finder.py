"""Duplicate album detection within one year's lists."""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from recordkeeper.config import AuditSettings
from recordkeeper.domain.entities import DuplicateEntry, DuplicateGroup
from recordkeeper.domain.exceptions import ValidationError
from recordkeeper.domain.value_objects.album_identity import normalize_key
from recordkeeper.infrastructure.persistence.repositories import (
    ListItemRepository,
    ScannedRow,
)

logger = logging.getLogger(__name__)


def validate_scope(year: Any, settings: AuditSettings) -> int:
    """Check a scope key (a year) and return it as int.

    Raises:
        ValidationError: Not an integer year inside the configured bounds
    """
    if isinstance(year, bool):
        raise ValidationError(f"Invalid year: {year!r}", field="year")
    try:
        value = int(year)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid year: {year!r}", field="year") from e
    if isinstance(year, float) and not year.is_integer():
        raise ValidationError(f"Invalid year: {year!r}", field="year")
    if not settings.min_year <= value <= settings.max_year:
        raise ValidationError(
            f"Year {value} outside allowed range {settings.min_year}-{settings.max_year}",
            field="year",
        )
    return value


@dataclass
class DuplicateScan:
    """Result of one duplicate scan."""

    year: int
    total_albums_scanned: int
    unique_albums: int
    duplicates: list[DuplicateGroup] = field(default_factory=list)
    audited_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def duplicate_groups(self) -> int:
        return len(self.duplicates)

    def to_dict(self) -> dict[str, Any]:
        return {
            "year": self.year,
            "audited_at": self.audited_at.isoformat(),
            "total_albums_scanned": self.total_albums_scanned,
            "unique_albums": self.unique_albums,
            "duplicate_groups": self.duplicate_groups,
            "duplicates": [group.to_dict() for group in self.duplicates],
        }


def group_rows(rows: list[ScannedRow]) -> dict[str, DuplicateGroup]:
    """Group scanned rows by normalized key.

    Display artist/album come from the most recently updated row of each group.
    """
    groups: dict[str, DuplicateGroup] = {}
    newest: dict[str, datetime] = {}

    for row in rows:
        key = normalize_key(row.artist, row.album)
        group = groups.get(key)
        if group is None:
            group = DuplicateGroup(normalized_key=key, artist=row.artist, album=row.album)
            groups[key] = group
            newest[key] = row.updated_at
        elif row.updated_at > newest[key]:
            group.artist = row.artist
            group.album = row.album
            newest[key] = row.updated_at

        group.add_album_id(row.album_id)
        group.entries.append(
            DuplicateEntry(
                album_id=row.album_id,
                user_id=row.user_id,
                username=row.username,
                list_id=row.list_id,
                list_name=row.list_name,
                position=row.position,
            )
        )
    return groups


class DuplicateFinder:
    """Finds albums that appear under more than one album ID in a year."""

    def __init__(self, session: AsyncSession, settings: AuditSettings) -> None:
        self.session = session
        self.settings = settings
        self.list_items = ListItemRepository(session)

    async def scan(self, year: Any) -> tuple[int, list[ScannedRow]]:
        """Validated year plus all rows in its scope."""
        scope = validate_scope(year, self.settings)
        rows = await self.list_items.scan_year(
            scope,
            max_position=self.settings.max_position,
            main_lists_only=self.settings.main_lists_only,
            contributors_only=self.settings.contributors_only,
        )
        return scope, rows

    async def find_duplicates(self, year: Any) -> DuplicateScan:
        """Group a year's rows by normalized key and report multi-ID groups.

        Args:
            year: Scope key; unscoped scans are not supported

        Returns:
            DuplicateScan with groups sorted by distinct ID count, largest first
        """
        scope, rows = await self.scan(year)
        logger.info(f"Running duplicate scan for year {scope}")

        groups = group_rows(rows)
        duplicates = [group for group in groups.values() if len(group.album_ids) > 1]
        # Stable sort keeps scan order among equally sized groups
        duplicates.sort(key=lambda group: len(group.album_ids), reverse=True)

        logger.info(
            f"Duplicate scan for {scope}: {len(rows)} rows, {len(groups)} unique albums, "
            f"{len(duplicates)} albums with multiple album_ids"
        )
        return DuplicateScan(
            year=scope,
            total_albums_scanned=len(rows),
            unique_albums=len(groups),
            duplicates=duplicates,
        )
