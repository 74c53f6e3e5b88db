"""Tests for duplicate detection within a year's main lists."""

from datetime import UTC, datetime, timedelta

import pytest

from recordkeeper.application.services.duplicate_finder import (
    DuplicateFinder,
    validate_scope,
)
from recordkeeper.config import AuditSettings
from recordkeeper.domain.exceptions import ValidationError

STREAMING_ID = "6dVIqQ8qmQ5GBnJ9shOYGE"
YEAR = 2024


async def _contributor_list(seed, username: str, year: int = YEAR) -> str:
    user_id = await seed.user(username, contributor_years=[year])
    return await seed.user_list(user_id, year)


class TestValidateScope:
    @pytest.mark.parametrize("year", ["abc", None, 1800, 2500, True, 2024.5])
    def test_rejects_invalid_years(self, year: object) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_scope(year, AuditSettings())
        assert exc_info.value.field == "year"

    def test_accepts_numeric_string(self) -> None:
        assert validate_scope("2024", AuditSettings()) == 2024


class TestFindDuplicates:
    async def test_same_album_under_two_ids(self, database, seed) -> None:
        list_a = await _contributor_list(seed, "alice")
        list_b = await _contributor_list(seed, "bob")
        list_c = await _contributor_list(seed, "carol")
        await seed.item(list_a, 1, "manual-abc", artist="Radiohead", album="OK Computer")
        await seed.item(
            list_b, 3, STREAMING_ID, artist="radiohead", album="OK Computer (Deluxe Edition)"
        )
        await seed.item(list_c, 2, STREAMING_ID, artist="Radiohead", album="OK Computer")

        async with database.session_scope() as session:
            scan = await DuplicateFinder(session, AuditSettings()).find_duplicates(YEAR)

        assert scan.total_albums_scanned == 3
        assert scan.unique_albums == 1
        assert scan.duplicate_groups == 1
        group = scan.duplicates[0]
        assert group.normalized_key == "radiohead::ok computer"
        assert set(group.album_ids) == {"manual-abc", STREAMING_ID}
        assert group.entry_count == 3
        assert {entry.username for entry in group.entries} == {"alice", "bob", "carol"}

    async def test_unrelated_album_counted_but_not_grouped(self, database, seed) -> None:
        list_a = await _contributor_list(seed, "alice")
        list_b = await _contributor_list(seed, "bob")
        await seed.item(list_a, 1, "mb-uuid-123", artist="Radiohead", album="OK Computer")
        await seed.item(list_b, 1, "spotify-abc", artist="Radiohead", album="OK Computer")
        await seed.item(list_b, 2, "other-id", artist="Nirvana", album="Nevermind")

        async with database.session_scope() as session:
            scan = await DuplicateFinder(session, AuditSettings()).find_duplicates(YEAR)

        assert scan.total_albums_scanned == 3
        assert scan.unique_albums == 2
        assert scan.duplicate_groups == 1
        group = scan.duplicates[0]
        assert group.normalized_key == "radiohead::ok computer"
        assert len(group.album_ids) == 2
        assert "other-id" not in group.album_ids

    async def test_single_id_is_not_a_duplicate(self, database, seed) -> None:
        list_a = await _contributor_list(seed, "alice")
        list_b = await _contributor_list(seed, "bob")
        await seed.item(list_a, 1, STREAMING_ID, artist="Radiohead", album="OK Computer")
        await seed.item(list_b, 1, STREAMING_ID, artist="Radiohead", album="OK Computer")

        async with database.session_scope() as session:
            scan = await DuplicateFinder(session, AuditSettings()).find_duplicates(YEAR)

        assert scan.duplicates == []
        assert scan.unique_albums == 1

    async def test_empty_year(self, database) -> None:
        async with database.session_scope() as session:
            scan = await DuplicateFinder(session, AuditSettings()).find_duplicates(YEAR)
        assert scan.total_albums_scanned == 0
        assert scan.to_dict()["duplicates"] == []

    async def test_inherited_names_come_from_canonical_album(self, database, seed) -> None:
        await seed.album(STREAMING_ID, "Radiohead", "OK Computer")
        list_a = await _contributor_list(seed, "alice")
        list_b = await _contributor_list(seed, "bob")
        # Compressed row: names inherited from the albums table
        await seed.item(list_a, 1, STREAMING_ID)
        # Legacy row with blank names also falls back to the canonical album
        await seed.item(list_a, 2, STREAMING_ID, artist="", album="")
        await seed.item(list_b, 1, "manual-1", artist="Radiohead", album="OK Computer")

        async with database.session_scope() as session:
            scan = await DuplicateFinder(session, AuditSettings()).find_duplicates(YEAR)

        assert scan.unique_albums == 1
        assert scan.duplicates[0].entry_count == 3

    async def test_scope_limits(self, database, seed) -> None:
        main = await _contributor_list(seed, "alice")
        outsider = await seed.user("mallory")  # not a contributor
        outsider_list = await seed.user_list(outsider, YEAR)
        contributor = await seed.user("bob", contributor_years=[YEAR, 2023])
        side_list = await seed.user_list(
            contributor, YEAR, name="Honorable mentions", is_main=False
        )
        other_year = await seed.user_list(contributor, 2023)

        await seed.item(main, 1, STREAMING_ID, artist="Radiohead", album="OK Computer")
        await seed.item(main, 41, "manual-deep", artist="Radiohead", album="OK Computer")
        await seed.item(outsider_list, 1, "manual-out", artist="Radiohead", album="OK Computer")
        await seed.item(side_list, 1, "manual-side", artist="Radiohead", album="OK Computer")
        await seed.item(other_year, 1, "manual-old", artist="Radiohead", album="OK Computer")

        async with database.session_scope() as session:
            scan = await DuplicateFinder(session, AuditSettings()).find_duplicates(YEAR)

        assert scan.total_albums_scanned == 1
        assert scan.duplicates == []

    async def test_scope_limits_are_configurable(self, database, seed) -> None:
        main = await _contributor_list(seed, "alice")
        await seed.item(main, 1, STREAMING_ID, artist="Radiohead", album="OK Computer")
        await seed.item(main, 41, "manual-deep", artist="Radiohead", album="OK Computer")

        settings = AuditSettings(max_position=50)
        async with database.session_scope() as session:
            scan = await DuplicateFinder(session, settings).find_duplicates(YEAR)

        assert scan.duplicate_groups == 1

    async def test_display_names_from_most_recent_row(self, database, seed) -> None:
        now = datetime.now(UTC)
        list_a = await _contributor_list(seed, "alice")
        list_b = await _contributor_list(seed, "bob")
        await seed.item(
            list_a,
            1,
            "manual-1",
            artist="radiohead",
            album="ok computer",
            updated_at=now - timedelta(days=3),
        )
        await seed.item(
            list_b, 1, STREAMING_ID, artist="Radiohead", album="OK Computer", updated_at=now
        )

        async with database.session_scope() as session:
            scan = await DuplicateFinder(session, AuditSettings()).find_duplicates(YEAR)

        assert scan.duplicates[0].artist == "Radiohead"
        assert scan.duplicates[0].album == "OK Computer"

    async def test_groups_sorted_by_id_count(self, database, seed) -> None:
        lists = [await _contributor_list(seed, f"user{i}") for i in range(3)]
        await seed.item(lists[0], 1, "manual-a1", artist="A", album="One")
        await seed.item(lists[1], 1, "manual-a2", artist="A", album="One")
        await seed.item(lists[0], 2, "manual-b1", artist="B", album="Two")
        await seed.item(lists[1], 2, "manual-b2", artist="B", album="Two")
        await seed.item(lists[2], 2, "manual-b3", artist="B", album="Two")

        async with database.session_scope() as session:
            scan = await DuplicateFinder(session, AuditSettings()).find_duplicates(YEAR)

        assert [len(group.album_ids) for group in scan.duplicates] == [3, 2]

    async def test_invalid_year_raises(self, database) -> None:
        async with database.session_scope() as session:
            with pytest.raises(ValidationError):
                await DuplicateFinder(session, AuditSettings()).find_duplicates("nope")
