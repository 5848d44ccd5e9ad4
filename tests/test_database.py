#!/usr/bin/env python3
"""
Tests for the SQLite store.
"""

from datetime import timedelta
from pathlib import Path

import pytest

from jira_sync.errors import DatabaseError
from jira_sync.models.enums import ChangeType, HistorySortOrder, SortOrder
from jira_sync.models.filters import DateRange, FilterConfig, IssueFilter
from jira_sync.models.history import HistoryFilter
from jira_sync.services.database import SQLiteStore, from_db_timestamp, to_db_timestamp

from tests.factories import BASE_TIME, make_history, make_issue

pytestmark = pytest.mark.database


class TestSQLiteStoreSetup:
    """Test construction and lifecycle."""

    def test_invalid_arguments(self) -> None:
        with pytest.raises(ValueError):
            SQLiteStore(db_path=" ")
        with pytest.raises(ValueError):
            SQLiteStore(timeout=0)

    def test_timestamp_format_orders_lexically(self) -> None:
        earlier = to_db_timestamp(BASE_TIME)
        later = to_db_timestamp(BASE_TIME + timedelta(microseconds=1))
        assert earlier == "2024-01-15T10:00:00.000000Z"
        assert earlier < later
        assert from_db_timestamp(earlier) == BASE_TIME

    async def test_uninitialized_store_raises(self) -> None:
        store = SQLiteStore()
        with pytest.raises(DatabaseError, match="not initialized"):
            await store.count_issues(IssueFilter())

    async def test_file_database(self, tmp_path: Path) -> None:
        db_path = tmp_path / "nested" / "jira.db"
        async with SQLiteStore(db_path=str(db_path)) as store:
            await store.save_issues([make_issue("TEST-1")])
        assert db_path.exists()

        async with SQLiteStore(db_path=str(db_path)) as store:
            assert [i.key for i in await store.load_all_issues()] == ["TEST-1"]


class TestSQLiteStoreIssues:
    """Test issue persistence."""

    async def test_count_by_project(self, sqlite_store: SQLiteStore, sample_issues) -> None:
        """Test three issues across TEST/TEST/DEMO."""
        assert await sqlite_store.save_issues(sample_issues) == 3
        assert await sqlite_store.count_issues(IssueFilter(project_keys=["TEST"])) == 2

    async def test_save_upserts(self, sqlite_store: SQLiteStore) -> None:
        """Test that a second save merges by id."""
        await sqlite_store.save_issues([make_issue("TEST-1"), make_issue("TEST-2")])
        await sqlite_store.save_issues([make_issue("TEST-3"), make_issue("TEST-1", summary="Renamed")])

        issues = await sqlite_store.load_issues(IssueFilter(sort_order=SortOrder.KEY_ASC))
        assert [i.key for i in issues] == ["TEST-1", "TEST-2", "TEST-3"]
        assert issues[0].summary == "Renamed"
        assert sqlite_store.supports_incremental_save

    async def test_conflicting_key_is_skipped(self, sqlite_store: SQLiteStore) -> None:
        saved = await sqlite_store.save_issues([
            make_issue("TEST-1", issue_id="1"),
            make_issue("TEST-1", issue_id="2"),
        ])
        assert saved == 1
        assert await sqlite_store.count_issues(IssueFilter()) == 1

    async def test_unserializable_issue_is_skipped(self, sqlite_store: SQLiteStore) -> None:
        bad = make_issue("TEST-2")
        bad.fields.custom_fields['customfield_1'] = object()
        assert await sqlite_store.save_issues([make_issue("TEST-1"), bad]) == 1

    async def test_labels_and_description(self, sqlite_store: SQLiteStore) -> None:
        await sqlite_store.save_issues([
            make_issue("TEST-1", labels=["backend", "urgent"], description="Null pointer in Parser"),
            make_issue("TEST-2", labels=["frontend"]),
            make_issue("TEST-3", labels="not-a-list"),
        ])
        by_label = await sqlite_store.load_issues(IssueFilter(labels=["urgent", "nothing"]))
        by_text = await sqlite_store.load_issues(IssueFilter(description_contains="POINTER"))
        assert [i.key for i in by_label] == ["TEST-1"]
        assert [i.key for i in by_text] == ["TEST-1"]

    async def test_paging(self, sqlite_store: SQLiteStore) -> None:
        await sqlite_store.save_issues([make_issue(f"TEST-{n}") for n in range(1, 6)])
        ordered = IssueFilter.from_dict({'sort_order': 'KeyAsc', 'offset': 3})
        assert [i.key for i in await sqlite_store.load_issues(ordered)] == ["TEST-4", "TEST-5"]

    async def test_delete_issues(self, sqlite_store: SQLiteStore, sample_issues) -> None:
        await sqlite_store.save_issues(sample_issues)
        assert await sqlite_store.delete_issues(["TEST-1", "NOPE-1"]) == 1
        assert await sqlite_store.delete_issues([]) == 0
        assert await sqlite_store.count_issues(IssueFilter()) == 2

    async def test_stats_and_optimize(self, sqlite_store: SQLiteStore, sample_issues) -> None:
        await sqlite_store.save_issues(sample_issues)
        await sqlite_store.optimize()
        stats = await sqlite_store.get_stats()

        assert stats.total_issues == 3
        assert stats.issues_by_project == {"TEST": 2, "DEMO": 1}
        assert stats.issues_by_type == {"Task": 3}
        assert stats.index_count == 4
        assert stats.storage_size_bytes > 0


class TestSQLiteStoreFilterConfigs:
    """Test saved filter configurations."""

    async def test_round_trip(self, sqlite_store: SQLiteStore) -> None:
        config = FilterConfig(
            id="recent",
            name="Recent",
            filter=IssueFilter(created_range=DateRange.last_days(7), statuses=["Done"]),
        )
        await sqlite_store.save_filter_config(config)
        loaded = await sqlite_store.load_filter_config()

        assert loaded.id == "recent"
        assert loaded.filter.statuses == ["Done"]
        assert loaded.filter.created_range == config.filter.created_range

    async def test_latest_and_delete(self, sqlite_store: SQLiteStore) -> None:
        older = FilterConfig(id="old", name="Old", updated_at=BASE_TIME)
        newer = FilterConfig(id="new", name="New", updated_at=BASE_TIME + timedelta(days=1))
        await sqlite_store.save_filter_config(newer)
        await sqlite_store.save_filter_config(older)

        assert (await sqlite_store.load_filter_config()).id == "new"
        assert [c.id for c in await sqlite_store.list_filter_configs()] == ["new", "old"]
        assert await sqlite_store.delete_filter_config("new")
        assert not await sqlite_store.delete_filter_config("new")


class TestSQLiteStoreHistory:
    """Test history persistence."""

    async def test_history_is_append_only(self, sqlite_store: SQLiteStore) -> None:
        """Test that saving the same rows twice stores duplicates."""
        rows = [make_history("TEST-1", "1"), make_history("TEST-1", "1", "priority")]
        await sqlite_store.save_issue_history(rows)
        await sqlite_store.save_issue_history(rows)

        stored = await sqlite_store.load_issue_history(HistoryFilter())
        assert len(stored) == 4
        assert all(h.history_id is not None for h in stored)

    async def test_filtering(self, sqlite_store: SQLiteStore) -> None:
        await sqlite_store.save_issue_history([
            make_history("TEST-1", "1", "status", offset_minutes=0),
            make_history("TEST-1", "2", "Sprint", offset_minutes=5, field_id="customfield_10020"),
            make_history("TEST-2", "3", "assignee", offset_minutes=10, author="Bob"),
            make_history("TEST-3", "4", "summary", offset_minutes=15, author=None),
        ])

        custom = await sqlite_store.load_issue_history(HistoryFilter(change_types=[ChangeType.CUSTOM_FIELD]))
        by_author = await sqlite_store.load_issue_history(HistoryFilter(authors=["acc-bob"]))
        oldest_first = await sqlite_store.load_issue_history(
            HistoryFilter(sort_order=HistorySortOrder.TIMESTAMP_ASC, limit=2)
        )

        assert [h.field_name for h in custom] == ["Sprint"]
        assert [h.issue_key for h in by_author] == ["TEST-2"]
        assert [h.change_id for h in oldest_first] == ["1", "2"]

        no_author = await sqlite_store.load_issue_history(HistoryFilter(issue_keys=["TEST-3"]))
        assert no_author[0].author is None

    async def test_stats_and_delete(self, sqlite_store: SQLiteStore) -> None:
        await sqlite_store.save_issue_history([
            make_history("TEST-1", "1", offset_minutes=3),
            make_history("TEST-1", "2", "priority", offset_minutes=1),
            make_history("TEST-2", "3", author="Bob", offset_minutes=7),
        ])
        stats = await sqlite_store.get_history_stats()
        assert stats.total_changes == 3
        assert stats.unique_authors == 2
        assert stats.field_change_counts == {"status": 2, "priority": 1}
        assert stats.oldest_change == BASE_TIME + timedelta(minutes=1)
        assert stats.newest_change == BASE_TIME + timedelta(minutes=7)

        assert await sqlite_store.delete_issue_history(["TEST-1"]) == 2
        assert (await sqlite_store.get_history_stats()).total_changes == 1

    async def test_empty_history_stats(self, sqlite_store: SQLiteStore) -> None:
        stats = await sqlite_store.get_history_stats()
        assert stats.total_changes == 0
        assert stats.oldest_change is None
