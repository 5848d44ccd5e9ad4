#!/usr/bin/env python3
"""
Synchronization service.

Pulls issues from Jira project by project over a time window, classifies
them as new or updated against already-known issues, optionally persists
them (and their parsed changelogs) to a store, and keeps a bounded history
of run results behind a small state machine:

    Idle -> Syncing -> Completed | Error(message)
    Error -> Idle via recover_from_error()
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Protocol, Set

from ..errors import InvalidFilterError, InvalidInputError, JiraSyncError
from ..models.enums import HistorySortOrder, SyncStatus
from ..models.history import HistoryFilter
from ..models.issue import Issue
from ..models.project import Project
from ..models.search import SearchParams, SearchResult
from ..utils.constants import DEFAULT_SYNC_FIELDS, DEFAULT_SYNC_WINDOW_HOURS, SYNC_PAGE_SIZE
from .changelog_parser import extract_histories, filter_new_histories
from .persistence import PersistenceStore, deduplicate_issues, merge_issues
from .time_filter import TimeBasedFilter


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IssueSource(Protocol):
    """What the sync service needs from a Jira client."""

    async def search_issues(self, jql: str, params: SearchParams) -> SearchResult:
        ...

    async def get_projects(self) -> List[Project]:
        ...


@dataclass
class SyncConfig:
    """Sync service configuration.

    With ``enable_time_optimization`` off every run fetches each project in
    full instead of only the issues created or updated in the sync window.
    """

    interval_minutes: int = 60
    max_history_count: int = 100
    enable_time_optimization: bool = True
    concurrent_sync_count: int = 3
    target_projects: List[str] = field(default_factory=list)
    excluded_fields: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not isinstance(self.interval_minutes, int) or self.interval_minutes < 0:
            raise ValueError("interval_minutes must be a non-negative integer")
        if not isinstance(self.max_history_count, int) or self.max_history_count <= 0:
            raise ValueError("max_history_count must be a positive integer")
        if not isinstance(self.concurrent_sync_count, int) or self.concurrent_sync_count <= 0:
            raise ValueError("concurrent_sync_count must be a positive integer")
        self.target_projects = list(self.target_projects)
        self.excluded_fields = list(self.excluded_fields)


@dataclass
class ProjectSyncStats:
    """Counters for one project within one sync run."""

    project_key: str
    synced_count: int = 0
    new_count: int = 0
    updated_count: int = 0
    error_count: int = 0
    last_sync_time: datetime = field(default_factory=_utcnow)


@dataclass
class SyncResult:
    """Outcome of one sync run."""

    start_time: datetime = field(default_factory=_utcnow)
    end_time: Optional[datetime] = None
    synced_issues_count: int = 0
    new_issues_count: int = 0
    updated_issues_count: int = 0
    deleted_issues_count: int = 0
    error_count: int = 0
    project_stats: Dict[str, ProjectSyncStats] = field(default_factory=dict)
    error_messages: List[str] = field(default_factory=list)
    is_success: bool = False

    def finish(self) -> None:
        self.end_time = _utcnow()
        self.is_success = self.error_count == 0

    def add_error(self, message: str) -> None:
        self.error_count += 1
        self.error_messages.append(message)

    def add_project_stats(self, stats: ProjectSyncStats) -> None:
        self.project_stats[stats.project_key] = stats

    def duration_seconds(self) -> float:
        """Run duration; 0.0 while the run is unfinished."""
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()


@dataclass(frozen=True)
class SyncState:
    """Current state of the sync service."""

    status: SyncStatus = SyncStatus.IDLE
    message: Optional[str] = None

    @classmethod
    def idle(cls) -> 'SyncState':
        return cls(SyncStatus.IDLE)

    @classmethod
    def syncing(cls) -> 'SyncState':
        return cls(SyncStatus.SYNCING)

    @classmethod
    def completed(cls) -> 'SyncState':
        return cls(SyncStatus.COMPLETED)

    @classmethod
    def error(cls, message: str) -> 'SyncState':
        return cls(SyncStatus.ERROR, message)

    @property
    def is_idle(self) -> bool:
        return self.status is SyncStatus.IDLE

    @property
    def is_syncing(self) -> bool:
        return self.status is SyncStatus.SYNCING

    @property
    def is_completed(self) -> bool:
        return self.status is SyncStatus.COMPLETED

    @property
    def is_error(self) -> bool:
        return self.status is SyncStatus.ERROR

    def __str__(self) -> str:
        if self.message:
            return f"{self.status.value}: {self.message}"
        return self.status.value


@dataclass
class SyncServiceStats:
    """Aggregates over the retained sync history."""

    total_syncs: int
    successful_syncs: int
    total_issues_synced: int
    average_duration_seconds: float
    last_sync_time: Optional[datetime]
    last_successful_sync_time: Optional[datetime]


class SyncService:
    """Runs incremental/full syncs and tracks their results."""

    def __init__(self, config: Optional[SyncConfig] = None) -> None:
        if config is not None and not isinstance(config, SyncConfig):
            raise TypeError("config must be a SyncConfig instance")

        self._config = config or SyncConfig()
        self._state = SyncState.idle()
        self._history: List[SyncResult] = []
        self._last_successful_sync: Optional[datetime] = None
        self.logger = logging.getLogger(__name__)

    # =============================================================================
    # STATE AND HISTORY
    # =============================================================================

    @property
    def current_state(self) -> SyncState:
        return self._state

    @property
    def config(self) -> SyncConfig:
        return self._config

    @property
    def sync_history(self) -> List[SyncResult]:
        return list(self._history)

    @property
    def last_successful_sync(self) -> Optional[datetime]:
        return self._last_successful_sync

    def update_config(self, config: SyncConfig) -> None:
        """Replace the configuration, trimming history to the new bound."""
        if not isinstance(config, SyncConfig):
            raise TypeError("config must be a SyncConfig instance")
        self._config = config
        del self._history[:max(0, len(self._history) - config.max_history_count)]

    def add_sync_result(self, result: SyncResult) -> None:
        """Append a run result, evicting the oldest beyond max_history_count.

        A successful run moves ``last_successful_sync`` to its start time, so
        the next incremental window overlaps the run instead of leaving a gap.
        """
        self._history.append(result)
        del self._history[:max(0, len(self._history) - self._config.max_history_count)]
        if result.is_success:
            self._last_successful_sync = result.start_time

    def latest_sync_result(self) -> Optional[SyncResult]:
        return self._history[-1] if self._history else None

    def can_sync(self) -> bool:
        return not self._state.is_syncing

    def should_sync(self) -> bool:
        """True if idle enough: never synced, or the interval has elapsed."""
        if self._state.is_syncing:
            return False
        if self._last_successful_sync is None:
            return True
        elapsed = _utcnow() - self._last_successful_sync
        return elapsed >= timedelta(minutes=self._config.interval_minutes)

    def recover_from_error(self) -> None:
        """Move from Error back to Idle; no effect in any other state."""
        if self._state.is_error:
            self.logger.info(f"Recovering from sync error: {self._state.message}")
            self._state = SyncState.idle()

    def get_stats(self) -> SyncServiceStats:
        total = len(self._history)
        return SyncServiceStats(
            total_syncs=total,
            successful_syncs=sum(1 for r in self._history if r.is_success),
            total_issues_synced=sum(r.synced_issues_count for r in self._history),
            average_duration_seconds=(
                sum(r.duration_seconds() for r in self._history) / total if total else 0.0
            ),
            last_sync_time=self._history[-1].end_time if self._history else None,
            last_successful_sync_time=self._last_successful_sync,
        )

    @staticmethod
    def deduplicate_issues(issues: Iterable[Issue]) -> List[Issue]:
        """Drop repeated keys, keeping the first occurrence."""
        return deduplicate_issues(issues)

    # =============================================================================
    # SYNC OPERATIONS
    # =============================================================================

    async def sync_full(
        self,
        client: IssueSource,
        store: Optional[PersistenceStore] = None,
        include_history: bool = False
    ) -> SyncResult:
        """Sync with no known issues (every fetched issue counts as new)."""
        return await self.sync_incremental(client, [], store=store, include_history=include_history)

    async def sync_incremental(
        self,
        client: IssueSource,
        existing_issues: Iterable[Issue],
        store: Optional[PersistenceStore] = None,
        include_history: bool = False
    ) -> SyncResult:
        """Fetch issues changed since the last successful sync.

        Without a previous success the window is the last 24 hours; with
        time optimization disabled there is no window at all. A failure
        while fetching one project is recorded and the remaining projects are
        still synced; an invalid window or a failed project listing aborts the
        run. Either way the result is recorded and returned.

        Args:
            client: Jira client (anything with search_issues/get_projects)
            existing_issues: Issues already known; used to classify new vs updated
            store: Optional store to persist fetched issues into
            include_history: Also fetch changelogs and persist parsed history
                (requires store)

        Returns:
            SyncResult of this run

        Raises:
            InvalidInputError: If a sync is already running
        """
        if self._state.is_syncing:
            raise InvalidInputError("Sync is already in progress")

        self._state = SyncState.syncing()
        try:
            return await self._run(client, existing_issues, store, include_history)
        except BaseException as e:
            if self._state.is_syncing:
                self._state = SyncState.error(f"Sync aborted: {e!r}")
            raise

    async def _run(
        self,
        client: IssueSource,
        existing_issues: Iterable[Issue],
        store: Optional[PersistenceStore],
        include_history: bool
    ) -> SyncResult:
        result = SyncResult()
        existing_keys: Set[str] = {issue.key for issue in existing_issues}

        time_filter: Optional[TimeBasedFilter] = None
        if self._config.enable_time_optimization:
            if self._last_successful_sync is not None:
                time_filter = TimeBasedFilter.incremental_since(self._last_successful_sync)
            else:
                time_filter = TimeBasedFilter.last_hours(DEFAULT_SYNC_WINDOW_HOURS)

            try:
                time_filter.is_valid()
            except InvalidFilterError as e:
                return self._abort(result, f"Invalid time filter: {e}")

        try:
            project_keys = await self._resolve_projects(client)
        except JiraSyncError as e:
            return self._abort(result, f"Failed to fetch projects: {e}")

        self.logger.info(f"Starting sync of {len(project_keys)} projects")

        fetched: List[Issue] = []
        seen_keys: Set[str] = set()
        semaphore = asyncio.Semaphore(self._config.concurrent_sync_count)

        async def sync_one(project_key: str) -> None:
            stats = ProjectSyncStats(project_key=project_key)
            async with semaphore:
                try:
                    await self._sync_project(
                        client, project_key, time_filter, include_history,
                        existing_keys, seen_keys, stats, fetched
                    )
                except JiraSyncError as e:
                    stats.error_count += 1
                    result.add_error(f"Project {project_key}: {e}")
                    self.logger.warning(f"Sync of project {project_key} failed: {e}")
            stats.last_sync_time = _utcnow()
            result.add_project_stats(stats)
            result.synced_issues_count += stats.synced_count
            result.new_issues_count += stats.new_count
            result.updated_issues_count += stats.updated_count

        await asyncio.gather(*(sync_one(key) for key in project_keys))

        if store is not None:
            await self._persist(store, fetched, include_history, result)

        result.finish()
        if result.is_success:
            self._state = SyncState.completed()
        else:
            self._state = SyncState.error(f"{result.error_count} errors")
        self.add_sync_result(result)

        self.logger.info(
            f"Sync finished: {result.synced_issues_count} issues "
            f"({result.new_issues_count} new, {result.updated_issues_count} updated), "
            f"{result.error_count} errors in {result.duration_seconds():.2f}s"
        )
        return result

    def _abort(self, result: SyncResult, message: str) -> SyncResult:
        self.logger.error(message)
        result.add_error(message)
        result.finish()
        self._state = SyncState.error(message)
        self.add_sync_result(result)
        return result

    async def _resolve_projects(self, client: IssueSource) -> List[str]:
        if self._config.target_projects:
            return list(self._config.target_projects)
        projects = await client.get_projects()
        return [project.key for project in projects]

    def _request_fields(self) -> Optional[List[str]]:
        if not self._config.excluded_fields:
            return None
        excluded = set(self._config.excluded_fields)
        return [f for f in DEFAULT_SYNC_FIELDS if f not in excluded]

    async def _sync_project(
        self,
        client: IssueSource,
        project_key: str,
        time_filter: Optional[TimeBasedFilter],
        include_history: bool,
        existing_keys: Set[str],
        seen_keys: Set[str],
        stats: ProjectSyncStats,
        fetched: List[Issue]
    ) -> None:
        """Page through one project's matching issues.

        Without a time filter every issue of the project is fetched.
        """
        jql = f"project = {project_key}"
        time_condition = time_filter.to_jql_time_condition() if time_filter else None
        if time_condition:
            jql = f"{jql} AND ({time_condition})"

        start_at = 0
        while True:
            params = SearchParams(
                start_at=start_at,
                max_results=SYNC_PAGE_SIZE,
                fields=self._request_fields(),
                expand=["changelog"] if include_history else None,
            )
            page = await client.search_issues(jql, params)

            for issue in page.issues:
                if issue.key in seen_keys:
                    continue
                seen_keys.add(issue.key)
                fetched.append(issue)
                stats.synced_count += 1
                if issue.key in existing_keys:
                    stats.updated_count += 1
                else:
                    stats.new_count += 1

            # Jira may return fewer than max_results per page (it caps the
            # page size), so only an empty page or the reported total ends paging.
            received = len(page.issues)
            if received == 0 or start_at + received >= page.total:
                break
            start_at += received

    async def _persist(
        self,
        store: PersistenceStore,
        fetched: List[Issue],
        include_history: bool,
        result: SyncResult
    ) -> None:
        """Save fetched issues (and history) into the store, recording failures."""
        issues = deduplicate_issues(fetched)
        try:
            if issues:
                if store.supports_incremental_save:
                    await store.save_issues(issues)
                else:
                    await store.save_issues(merge_issues(await store.load_all_issues(), issues))

            if not include_history:
                return

            histories, parse_errors = extract_histories(issues)
            for message in parse_errors:
                result.add_error(f"Changelog {message}")
            if not histories:
                return

            if store.supports_incremental_save:
                keys = sorted({h.issue_key for h in histories})
                existing = await store.load_issue_history(
                    HistoryFilter(issue_keys=keys, sort_order=HistorySortOrder.TIMESTAMP_ASC)
                )
                await store.save_issue_history(filter_new_histories(existing, histories))
            else:
                existing = await store.load_issue_history(
                    HistoryFilter(sort_order=HistorySortOrder.TIMESTAMP_ASC)
                )
                await store.save_issue_history(existing + filter_new_histories(existing, histories))
        except JiraSyncError as e:
            result.add_error(f"Failed to persist synced data: {e}")
            self.logger.error(f"Failed to persist synced data: {e}")
