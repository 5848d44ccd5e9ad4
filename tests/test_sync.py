#!/usr/bin/env python3
"""
Tests for the sync service state machine, run bookkeeping and persistence.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
from unittest.mock import AsyncMock

import pytest

from jira_sync.errors import InvalidInputError, JiraAPIError, RequestFailedError
from jira_sync.models.enums import HistorySortOrder, SyncStatus
from jira_sync.models.filters import IssueFilter
from jira_sync.models.history import HistoryFilter
from jira_sync.models.issue import Issue
from jira_sync.services import sync as sync_module
from jira_sync.services.sync import SyncConfig, SyncResult, SyncService, SyncState
from jira_sync.services.time_filter import format_jira_datetime

from tests.factories import BASE_TIME, changelog_entry, make_issue, search_page, status_item


def project_of(jql: str) -> str:
    return jql.split()[2]


def searcher(
    issues_by_project: Dict[str, List[Issue]],
    failing: tuple = (),
    page_cap: Optional[int] = None
):
    """Fake search_issues serving fixed issues per project, honoring start_at.

    ``page_cap`` mimics Jira's server-side cap on maxResults.
    """
    async def search(jql, params):
        project = project_of(jql)
        if project in failing:
            raise JiraAPIError(f"Jira API error: 500 - boom in {project}", status_code=500)
        issues = issues_by_project.get(project, [])
        size = params.max_results if page_cap is None else min(params.max_results, page_cap)
        page = issues[params.start_at:params.start_at + size]
        return search_page(page, total=len(issues), start_at=params.start_at)
    return search


def finished_result(success: bool = True, start: datetime = BASE_TIME) -> SyncResult:
    result = SyncResult(start_time=start)
    if not success:
        result.add_error("failed")
    result.finish()
    return result


class TestSyncConfig:
    """Test SyncConfig validation."""

    def test_defaults(self) -> None:
        config = SyncConfig()
        assert config.interval_minutes == 60
        assert config.max_history_count == 100
        assert config.target_projects == []

    @pytest.mark.parametrize("kwargs", [
        {'interval_minutes': -1},
        {'max_history_count': 0},
        {'concurrent_sync_count': 0},
    ])
    def test_invalid_values(self, kwargs) -> None:
        with pytest.raises(ValueError):
            SyncConfig(**kwargs)

    def test_service_rejects_wrong_config_type(self) -> None:
        with pytest.raises(TypeError):
            SyncService(config={'interval_minutes': 5})  # type: ignore


class TestSyncState:
    """Test SyncState values."""

    def test_constructors(self) -> None:
        assert SyncState.idle().is_idle
        assert SyncState.syncing().is_syncing
        assert SyncState.completed().is_completed
        error = SyncState.error("boom")
        assert error.is_error
        assert error.message == "boom"
        assert str(error) == "error: boom"
        assert str(SyncState.idle()) == "idle"


class TestSyncHistory:
    """Test run bookkeeping without any syncing."""

    def test_retention_evicts_oldest(self) -> None:
        service = SyncService(SyncConfig(max_history_count=2))
        results = [finished_result(start=BASE_TIME + timedelta(minutes=n)) for n in range(3)]
        for result in results:
            service.add_sync_result(result)

        assert service.sync_history == results[1:]
        assert service.latest_sync_result() is results[2]

    def test_only_successful_runs_move_last_success(self) -> None:
        service = SyncService()
        service.add_sync_result(finished_result(start=BASE_TIME))
        service.add_sync_result(finished_result(success=False, start=BASE_TIME + timedelta(hours=1)))
        assert service.last_successful_sync == BASE_TIME

    def test_update_config_trims_history(self) -> None:
        service = SyncService()
        for n in range(5):
            service.add_sync_result(finished_result(start=BASE_TIME + timedelta(minutes=n)))
        service.update_config(SyncConfig(max_history_count=2))
        assert len(service.sync_history) == 2
        assert service.sync_history[-1].start_time == BASE_TIME + timedelta(minutes=4)

    def test_sync_history_is_a_copy(self) -> None:
        service = SyncService()
        service.sync_history.append(finished_result())
        assert service.sync_history == []

    def test_should_sync(self) -> None:
        service = SyncService(SyncConfig(interval_minutes=60))
        assert service.should_sync()

        service.add_sync_result(finished_result(start=datetime.now(timezone.utc)))
        assert not service.should_sync()

        service.update_config(SyncConfig(interval_minutes=0))
        assert service.should_sync()

    def test_get_stats(self) -> None:
        service = SyncService()
        assert service.get_stats().total_syncs == 0

        ok = finished_result()
        ok.synced_issues_count = 4
        service.add_sync_result(ok)
        service.add_sync_result(finished_result(success=False))

        stats = service.get_stats()
        assert stats.total_syncs == 2
        assert stats.successful_syncs == 1
        assert stats.total_issues_synced == 4
        assert stats.last_successful_sync_time == ok.start_time

    def test_duration(self) -> None:
        result = SyncResult(start_time=BASE_TIME)
        assert result.duration_seconds() == 0.0
        result.end_time = BASE_TIME + timedelta(seconds=90)
        assert result.duration_seconds() == 90.0


class TestDeduplicate:
    """Test issue deduplication."""

    def test_first_occurrence_wins_and_order_is_kept(self) -> None:
        first = make_issue("TEST-1", summary="first")
        issues = [first, make_issue("TEST-2"), make_issue("TEST-1", summary="second")]
        unique = SyncService.deduplicate_issues(issues)

        assert [i.key for i in unique] == ["TEST-1", "TEST-2"]
        assert unique[0] is first

    def test_idempotent(self) -> None:
        issues = [make_issue(k) for k in ("A-1", "B-1", "A-1", "C-1", "B-1")]
        once = SyncService.deduplicate_issues(issues)
        assert SyncService.deduplicate_issues(once) == once
        assert len(once) <= len(issues)


class TestSyncRun:
    """Test running syncs against a mock client."""

    async def test_full_sync_counts_everything_as_new(self, mock_jira_client) -> None:
        mock_jira_client.search_issues = AsyncMock(side_effect=searcher({
            "TEST": [make_issue("TEST-1"), make_issue("TEST-2")],
            "DEMO": [make_issue("DEMO-1")],
        }))
        service = SyncService()

        result = await service.sync_full(mock_jira_client)

        assert result.is_success
        assert result.synced_issues_count == 3
        assert result.new_issues_count == 3
        assert result.updated_issues_count == 0
        assert set(result.project_stats) == {"TEST", "DEMO"}
        assert result.project_stats["TEST"].synced_count == 2
        assert result.end_time is not None
        assert service.current_state == SyncState.completed()
        assert service.last_successful_sync == result.start_time
        mock_jira_client.get_projects.assert_awaited_once()

    async def test_incremental_classifies_new_and_updated(self, mock_jira_client) -> None:
        mock_jira_client.search_issues = AsyncMock(side_effect=searcher({
            "TEST": [make_issue("TEST-1"), make_issue("TEST-2")],
        }))
        service = SyncService(SyncConfig(target_projects=["TEST"]))

        result = await service.sync_incremental(mock_jira_client, [make_issue("TEST-1")])

        assert result.new_issues_count == 1
        assert result.updated_issues_count == 1
        mock_jira_client.get_projects.assert_not_awaited()

    async def test_first_window_is_last_day_then_incremental(self, mock_jira_client) -> None:
        service = SyncService(SyncConfig(target_projects=["TEST"]))

        first = await service.sync_full(mock_jira_client)
        first_jql = mock_jira_client.search_issues.await_args.args[0]
        assert first_jql.startswith("project = TEST AND (((created >= '")
        assert "OR (updated >= '" in first_jql

        await service.sync_full(mock_jira_client)
        second_jql = mock_jira_client.search_issues.await_args.args[0]
        assert f"created >= '{format_jira_datetime(first.start_time)}'" in second_jql

    async def test_pagination(self, mock_jira_client, monkeypatch) -> None:
        monkeypatch.setattr(sync_module, "SYNC_PAGE_SIZE", 2)
        mock_jira_client.search_issues = AsyncMock(side_effect=searcher({
            "TEST": [make_issue(f"TEST-{n}") for n in range(1, 6)],
        }))
        service = SyncService(SyncConfig(target_projects=["TEST"]))

        result = await service.sync_full(mock_jira_client)

        assert result.synced_issues_count == 5
        starts = [c.args[1].start_at for c in mock_jira_client.search_issues.await_args_list]
        assert starts == [0, 2, 4]

    async def test_pagination_with_server_capped_pages(self, mock_jira_client) -> None:
        """Test that short pages below the requested size do not end paging."""
        mock_jira_client.search_issues = AsyncMock(side_effect=searcher({
            "TEST": [make_issue(f"TEST-{n}") for n in range(1, 251)],
        }, page_cap=100))
        service = SyncService(SyncConfig(target_projects=["TEST"]))

        result = await service.sync_full(mock_jira_client)

        assert result.is_success
        assert result.synced_issues_count == 250
        starts = [c.args[1].start_at for c in mock_jira_client.search_issues.await_args_list]
        assert starts == [0, 100, 200]

    async def test_empty_page_ends_paging(self, mock_jira_client) -> None:
        """Test that an empty page stops paging even if total claims more."""
        mock_jira_client.search_issues = AsyncMock(side_effect=[
            search_page([make_issue("TEST-1")], total=5),
            search_page([], total=5, start_at=1),
        ])
        service = SyncService(SyncConfig(target_projects=["TEST"]))

        result = await service.sync_full(mock_jira_client)

        assert result.synced_issues_count == 1
        assert mock_jira_client.search_issues.await_count == 2

    async def test_duplicates_across_projects_counted_once(self, mock_jira_client) -> None:
        shared = make_issue("TEST-1")
        mock_jira_client.search_issues = AsyncMock(side_effect=searcher({
            "TEST": [shared],
            "DEMO": [shared, make_issue("DEMO-1")],
        }))
        service = SyncService(SyncConfig(target_projects=["TEST", "DEMO"], concurrent_sync_count=1))

        result = await service.sync_full(mock_jira_client)

        assert result.synced_issues_count == 2

    async def test_disabled_time_optimization_fetches_whole_project(self, mock_jira_client) -> None:
        service = SyncService(SyncConfig(target_projects=["TEST"], enable_time_optimization=False))

        await service.sync_full(mock_jira_client)
        await service.sync_full(mock_jira_client)

        jqls = [c.args[0] for c in mock_jira_client.search_issues.await_args_list]
        assert jqls == ["project = TEST", "project = TEST"]

    async def test_request_fields_honor_exclusions(self, mock_jira_client) -> None:
        service = SyncService(SyncConfig(target_projects=["TEST"], excluded_fields=["reporter"]))
        await service.sync_full(mock_jira_client, include_history=False)

        params = mock_jira_client.search_issues.await_args.args[1]
        assert "reporter" not in params.fields
        assert "summary" in params.fields
        assert params.expand is None

    async def test_partial_failure_continues(self, mock_jira_client) -> None:
        """Test that one failing project does not stop the others."""
        mock_jira_client.search_issues = AsyncMock(side_effect=searcher(
            {"TEST": [make_issue("TEST-1")]},
            failing=("DEMO",),
        ))
        service = SyncService()

        result = await service.sync_full(mock_jira_client)

        assert not result.is_success
        assert result.error_count == 1
        assert "DEMO" in result.error_messages[0]
        assert result.synced_issues_count == 1
        assert result.project_stats["DEMO"].error_count == 1
        assert service.current_state.status == SyncStatus.ERROR
        assert service.current_state.message == "1 errors"
        assert service.last_successful_sync is None
        assert service.sync_history == [result]

    async def test_project_listing_failure_aborts(self, mock_jira_client) -> None:
        mock_jira_client.get_projects = AsyncMock(side_effect=RequestFailedError("connection refused"))
        service = SyncService()

        result = await service.sync_full(mock_jira_client)

        assert not result.is_success
        assert result.error_messages == ["Failed to fetch projects: connection refused"]
        assert service.current_state.is_error
        mock_jira_client.search_issues.assert_not_awaited()

        service.recover_from_error()
        assert service.current_state.is_idle
        assert service.can_sync()

    async def test_invalid_window_aborts(self, mock_jira_client) -> None:
        service = SyncService(SyncConfig(target_projects=["TEST"]))
        service.add_sync_result(finished_result(start=datetime.now(timezone.utc) + timedelta(days=1)))

        result = await service.sync_incremental(mock_jira_client, [])

        assert result.error_messages[0].startswith("Invalid time filter:")
        assert service.current_state.is_error
        mock_jira_client.search_issues.assert_not_awaited()

    async def test_recover_is_noop_outside_error(self) -> None:
        service = SyncService()
        service.recover_from_error()
        assert service.current_state.is_idle


class TestConcurrentSync:
    """Test the in-progress guard."""

    async def test_second_sync_rejected_while_running(self, mock_jira_client) -> None:
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow_search(jql, params):
            started.set()
            await release.wait()
            return search_page([make_issue("TEST-1")])

        mock_jira_client.search_issues = AsyncMock(side_effect=slow_search)
        service = SyncService(SyncConfig(target_projects=["TEST"]))

        task = asyncio.create_task(service.sync_full(mock_jira_client))
        await started.wait()

        assert service.current_state.is_syncing
        assert not service.can_sync()
        assert not service.should_sync()
        with pytest.raises(InvalidInputError, match="already in progress"):
            await service.sync_incremental(mock_jira_client, [])
        assert service.sync_history == []

        release.set()
        result = await task
        assert result.is_success
        assert service.sync_history == [result]

    async def test_cancelled_sync_leaves_error_state(self, mock_jira_client) -> None:
        started = asyncio.Event()

        async def hanging_search(jql, params):
            started.set()
            await asyncio.Event().wait()

        mock_jira_client.search_issues = AsyncMock(side_effect=hanging_search)
        service = SyncService(SyncConfig(target_projects=["TEST"]))

        task = asyncio.create_task(service.sync_full(mock_jira_client))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert service.current_state.is_error
        service.recover_from_error()
        assert service.can_sync()


class TestSyncPersistence:
    """Test persisting synced issues and history."""

    @pytest.mark.database
    async def test_persists_into_sql_store(self, mock_jira_client, sqlite_store) -> None:
        mock_jira_client.search_issues = AsyncMock(side_effect=searcher({
            "TEST": [make_issue("TEST-1"), make_issue("TEST-2")],
        }))
        service = SyncService(SyncConfig(target_projects=["TEST"]))

        await service.sync_full(mock_jira_client, store=sqlite_store)

        assert await sqlite_store.count_issues(IssueFilter()) == 2

    async def test_merges_into_replacing_store(self, mock_jira_client, json_store) -> None:
        """Test that the document store keeps previously stored issues."""
        await json_store.save_issues([make_issue("OLD-1"), make_issue("TEST-1", summary="stale")])
        mock_jira_client.search_issues = AsyncMock(side_effect=searcher({
            "TEST": [make_issue("TEST-1", summary="fresh"), make_issue("TEST-2")],
        }))
        service = SyncService(SyncConfig(target_projects=["TEST"]))

        await service.sync_full(mock_jira_client, store=json_store)

        stored = {i.key: i for i in await json_store.load_all_issues()}
        assert set(stored) == {"OLD-1", "TEST-1", "TEST-2"}
        assert stored["TEST-1"].summary == "fresh"

    @pytest.mark.database
    async def test_history_is_not_duplicated_across_runs(self, mock_jira_client, sqlite_store) -> None:
        changelog = {'histories': [
            changelog_entry("100", BASE_TIME, [status_item("Open", "In Progress")]),
            changelog_entry("101", BASE_TIME + timedelta(hours=1), [status_item("In Progress", "Done")]),
        ]}
        mock_jira_client.search_issues = AsyncMock(side_effect=searcher({
            "TEST": [make_issue("TEST-1", changelog=changelog)],
        }))
        service = SyncService(SyncConfig(target_projects=["TEST"]))

        await service.sync_full(mock_jira_client, store=sqlite_store, include_history=True)
        await service.sync_full(mock_jira_client, store=sqlite_store, include_history=True)

        params = mock_jira_client.search_issues.await_args.args[1]
        assert params.expand == ["changelog"]
        histories = await sqlite_store.load_issue_history(HistoryFilter(issue_keys=["TEST-1"]))
        assert [h.change_id for h in histories] == ["101", "100"]

    async def test_same_field_items_of_one_entry_are_all_kept(self, mock_jira_client, any_store) -> None:
        changelog = {'histories': [
            changelog_entry("100", BASE_TIME, [
                {'field': 'Attachment', 'to': '1', 'toString': 'a.png'},
                {'field': 'Attachment', 'to': '2', 'toString': 'b.png'},
            ]),
        ]}
        mock_jira_client.search_issues = AsyncMock(side_effect=searcher({
            "TEST": [make_issue("TEST-1", changelog=changelog)],
        }))
        service = SyncService(SyncConfig(target_projects=["TEST"]))

        await service.sync_full(mock_jira_client, store=any_store, include_history=True)
        await service.sync_full(mock_jira_client, store=any_store, include_history=True)

        histories = await any_store.load_issue_history(
            HistoryFilter(sort_order=HistorySortOrder.TIMESTAMP_ASC)
        )
        assert [(h.field_name, h.to_display_value) for h in histories] == [
            ("Attachment", "a.png"), ("Attachment", "b.png"),
        ]

    async def test_history_appended_in_document_store(self, mock_jira_client, json_store) -> None:
        first = {'histories': [changelog_entry("100", BASE_TIME, [status_item("Open", "Done")])]}
        second = {'histories': [changelog_entry("200", BASE_TIME, [status_item("Open", "Done")])]}
        mock_jira_client.search_issues = AsyncMock(side_effect=searcher({
            "TEST": [make_issue("TEST-1", changelog=first), make_issue("TEST-2", changelog=second)],
        }))
        service = SyncService(SyncConfig(target_projects=["TEST"]))

        await service.sync_full(mock_jira_client, store=json_store, include_history=True)
        await service.sync_full(mock_jira_client, store=json_store, include_history=True)

        stats = await json_store.get_history_stats()
        assert stats.total_changes == 2
        assert stats.unique_issues == 2

    async def test_bad_changelog_is_recorded(self, mock_jira_client, json_store) -> None:
        mock_jira_client.search_issues = AsyncMock(side_effect=searcher({
            "TEST": [make_issue("TEST-1", changelog={'histories': [{'id': '1'}]})],
        }))
        service = SyncService(SyncConfig(target_projects=["TEST"]))

        result = await service.sync_full(mock_jira_client, store=json_store, include_history=True)

        assert not result.is_success
        assert result.error_messages[0].startswith("Changelog TEST-1:")
        assert await json_store.count_issues(IssueFilter()) == 1
