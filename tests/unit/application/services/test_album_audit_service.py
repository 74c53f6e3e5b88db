"""Tests for the aggregate list audit: preview, report, diagnose and fix."""

from unittest.mock import MagicMock, PropertyMock, patch

import pytest
from sqlalchemy.exc import SQLAlchemyError

from recordkeeper.application.cache.invalidation import CacheInvalidationDispatcher
from recordkeeper.application.services.album_audit_service import (
    AlbumAuditService,
    build_changes,
)
from recordkeeper.config import AuditSettings
from recordkeeper.domain.entities import DuplicateEntry, DuplicateGroup
from recordkeeper.domain.exceptions import ConfigurationError
from recordkeeper.infrastructure.persistence.database import Database
from recordkeeper.infrastructure.persistence.repositories import ListItemRepository

STREAMING_ID = "6dVIqQ8qmQ5GBnJ9shOYGE"
YEAR = 2024


async def _contributor_list(seed, username: str, year: int = YEAR) -> str:
    user_id = await seed.user(username, contributor_years=[year])
    return await seed.user_list(user_id, year)


async def _seed_radiohead(seed) -> dict[str, str]:
    """alice has the manual ID, bob and carol the streaming one."""
    lists = {name: await _contributor_list(seed, name) for name in ("alice", "bob", "carol")}
    await seed.item(lists["alice"], 1, "manual-abc", artist="Radiohead", album="OK Computer")
    await seed.item(
        lists["bob"], 3, STREAMING_ID, artist="radiohead", album="OK Computer (Deluxe Edition)"
    )
    await seed.item(lists["carol"], 2, STREAMING_ID, artist="Radiohead", album="OK Computer")
    return lists


def _entry(album_id: str | None, user: str) -> DuplicateEntry:
    return DuplicateEntry(
        album_id=album_id,
        user_id=user,
        username=user,
        list_id=f"list-{user}",
        list_name="Best of",
        position=1,
    )


class TestBuildChanges:
    def test_only_non_canonical_entries_affected(self) -> None:
        group = DuplicateGroup(
            normalized_key="radiohead::ok computer",
            artist="Radiohead",
            album="OK Computer",
            album_ids=["manual-abc", STREAMING_ID],
            entries=[_entry("manual-abc", "alice"), _entry(STREAMING_ID, "bob")],
        )

        changes = build_changes([group])

        assert len(changes) == 1
        assert changes[0]["canonical_album_id"] == STREAMING_ID
        assert changes[0]["entry_count"] == 2
        assert [e["current_album_id"] for e in changes[0]["affected_entries"]] == ["manual-abc"]

    def test_entries_without_id_are_ignored(self) -> None:
        group = DuplicateGroup(
            normalized_key="a::b",
            artist="A",
            album="B",
            album_ids=["manual-1"],
            entries=[_entry(None, "alice"), _entry("manual-1", "bob")],
        )
        assert build_changes([group]) == []


class TestPreviewAndReport:
    async def test_preview_proposes_canonical_id(self, database, seed) -> None:
        await _seed_radiohead(seed)

        async with database.session_scope() as session:
            preview = await AlbumAuditService(session, AuditSettings()).preview_fix(YEAR)

        assert preview["changes_required"] is True
        assert preview["total_changes"] == 1
        change = preview["changes"][0]
        assert change["canonical_album_id"] == STREAMING_ID
        assert change["affected_entries"][0]["username"] == "alice"
        assert change["affected_entries"][0]["position"] == 1

    async def test_preview_without_duplicates(self, database) -> None:
        async with database.session_scope() as session:
            preview = await AlbumAuditService(session, AuditSettings()).preview_fix(YEAR)

        assert preview["changes_required"] is False
        assert preview["total_changes"] == 0
        assert "No duplicates" in preview["message"]

    async def test_report_is_read_only(self, database, seed) -> None:
        await _seed_radiohead(seed)
        before = [(item.id, item.album_id) for item in await seed.items()]

        async with database.session_scope() as session:
            report = await AlbumAuditService(session, AuditSettings()).get_audit_report(YEAR)

        assert report["summary"] == {
            "total_albums_scanned": 3,
            "unique_albums": 1,
            "albums_with_multiple_ids": 1,
            "changes_required": True,
            "total_changes_needed": 1,
        }
        assert len(report["duplicates"]) == 1
        assert len(report["proposed_changes"]) == 1
        assert [(item.id, item.album_id) for item in await seed.items()] == before
        assert await seed.admin_events() == []


class TestDiagnoseNormalization:
    async def test_basic_key_misses_edition_variant(self, database, seed) -> None:
        await _seed_radiohead(seed)

        async with database.session_scope() as session:
            result = await AlbumAuditService(session, AuditSettings()).diagnose_normalization(YEAR)

        assert result["total_list_entries"] == 3
        assert result["unique_albums_basic"] == 2
        assert result["unique_albums_sophisticated"] == 1
        assert result["albums_missed_by_basic_normalization"] == 1
        missed = result["missed_by_basic"][0]
        assert missed["sophisticated_key"] == "radiohead::ok computer"
        assert missed["variant_count"] == 2

        overlap = result["overlap_stats"]
        assert overlap["albums_appearing_on_multiple_lists"] == 1
        assert overlap["top_overlapping_albums"][0]["voter_count"] == 3
        assert overlap["distribution"] == {
            "appears_on_1_list": 0,
            "appears_on_2_plus_lists": 1,
            "appears_on_3_plus_lists": 1,
            "appears_on_5_plus_lists": 0,
        }


class TestExecuteFix:
    async def test_fix_repoints_rows_and_records_event(self, database: Database, seed) -> None:
        lists = await _seed_radiohead(seed)
        # Same manual ID on a list outside the audited year stays untouched
        old_list = await seed.user_list((await seed.user("dave", contributor_years=[2023])), 2023)
        await seed.item(old_list, 1, "manual-abc", artist="Radiohead", album="OK Computer")
        dispatcher = MagicMock(spec=CacheInvalidationDispatcher)

        async with database.session_scope() as session:
            service = AlbumAuditService(
                session, AuditSettings(), database=database, dispatcher=dispatcher
            )
            result = await service.execute_fix(YEAR, admin_user_id="admin-1")

        assert result["success"] is True
        assert result["changes_applied"] == 1
        assert result["failed_changes"] == []

        by_list = {item.list_id: item.album_id for item in await seed.items()}
        assert by_list[lists["alice"]] == STREAMING_ID
        assert by_list[old_list] == "manual-abc"

        events = await seed.admin_events()
        assert [event.event_type for event in events] == ["aggregate_fix"]
        assert events[0].created_by == "admin-1"
        assert events[0].event_data["replaced_album_ids"] == ["manual-abc"]

        dispatcher.publish.assert_called_once()
        event = dispatcher.publish.call_args.args[0]
        assert event.reason == "aggregate_fix"
        assert len(event.user_ids) == 1

        async with database.session_scope() as session:
            preview = await AlbumAuditService(session, AuditSettings()).preview_fix(YEAR)
        assert preview["changes_required"] is False

    async def test_dry_run_writes_nothing(self, database: Database, seed) -> None:
        await _seed_radiohead(seed)
        before = [(item.id, item.album_id) for item in await seed.items()]

        async with database.session_scope() as session:
            service = AlbumAuditService(session, AuditSettings(), database=database)
            result = await service.execute_fix(YEAR, dry_run=True)

        assert result["dry_run"] is True
        assert result["changes_applied"] == 0
        assert len(result["would_change"]) == 1
        assert [(item.id, item.album_id) for item in await seed.items()] == before

    async def test_nothing_to_fix(self, database: Database) -> None:
        async with database.session_scope() as session:
            service = AlbumAuditService(session, AuditSettings(), database=database)
            result = await service.execute_fix(YEAR)
        assert result["success"] is True
        assert result["message"] == "No changes needed"

    async def test_requires_transactional_database(self, database: Database, seed) -> None:
        await _seed_radiohead(seed)

        async with database.session_scope() as session:
            with pytest.raises(ConfigurationError):
                await AlbumAuditService(session, AuditSettings()).execute_fix(YEAR)

            with patch.object(
                Database, "supports_transactions", new_callable=PropertyMock, return_value=False
            ):
                service = AlbumAuditService(session, AuditSettings(), database=database)
                with pytest.raises(ConfigurationError):
                    await service.execute_fix(YEAR)

        assert await seed.admin_events() == []

    async def test_failed_change_is_reported(self, database: Database, seed) -> None:
        await _seed_radiohead(seed)

        with patch.object(
            ListItemRepository, "repoint", side_effect=SQLAlchemyError("disk on fire")
        ):
            async with database.session_scope() as session:
                service = AlbumAuditService(session, AuditSettings(), database=database)
                result = await service.execute_fix(YEAR)

        assert result["success"] is False
        assert result["changes_applied"] == 0
        assert result["failed_changes"][0]["canonical_album_id"] == STREAMING_ID
        assert result["failed_changes"][0]["retryable"] is False
        assert {item.album_id for item in await seed.items()} == {"manual-abc", STREAMING_ID}
        assert await seed.admin_events() == []
