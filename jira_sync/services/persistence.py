#!/usr/bin/env python3
"""
Storage abstraction shared by the document store and the SQL store.

The two backends differ in one important way, advertised by
``supports_incremental_save``:

* ``JsonStore.save_issues`` replaces the whole stored collection with the
  issues passed in (and ``save_issue_history`` replaces all history).
* ``SQLiteStore.save_issues`` upserts by issue id, and
  ``save_issue_history`` appends.

Callers that need merge semantics on a replacing store must load, merge and
save themselves (see ``merge_issues``).
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Iterable

from ..models.filters import FilterConfig, IssueFilter, StorageStats
from ..models.history import HistoryFilter, HistoryStats, IssueHistory
from ..models.issue import Issue


def deduplicate_issues(issues: Iterable[Issue]) -> List[Issue]:
    """Drop repeated keys, keeping the first occurrence and the input order."""
    seen = set()
    unique = []
    for issue in issues:
        if issue.key in seen:
            continue
        seen.add(issue.key)
        unique.append(issue)
    return unique


def merge_issues(existing: Iterable[Issue], incoming: Iterable[Issue]) -> List[Issue]:
    """Upsert incoming issues into existing ones by key.

    Existing order is kept; replaced issues stay in place and new ones are
    appended in input order.
    """
    merged = {issue.key: issue for issue in existing}
    for issue in deduplicate_issues(incoming):
        merged[issue.key] = issue
    return list(merged.values())


class PersistenceStore(ABC):
    """Abstract issue/history/filter-config store."""

    @property
    @abstractmethod
    def supports_incremental_save(self) -> bool:
        """True if save_issues upserts, False if it replaces everything."""

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @abstractmethod
    async def initialize(self) -> None:
        """Create directories/tables as needed."""

    async def close(self) -> None:
        """Release resources held by the store."""

    # Issues

    @abstractmethod
    async def save_issues(self, issues: List[Issue]) -> int:
        """Persist issues and return how many were written."""

    @abstractmethod
    async def load_issues(self, issue_filter: IssueFilter) -> List[Issue]:
        """Return issues matching the filter, sorted and paged."""

    async def load_all_issues(self) -> List[Issue]:
        return await self.load_issues(IssueFilter())

    @abstractmethod
    async def count_issues(self, issue_filter: IssueFilter) -> int:
        """Count issues matching the filter (paging is ignored)."""

    @abstractmethod
    async def delete_issues(self, issue_keys: List[str]) -> int:
        """Delete issues by key and return how many were removed."""

    @abstractmethod
    async def optimize(self) -> None:
        """Compact storage / refresh cached aggregates."""

    @abstractmethod
    async def get_stats(self) -> StorageStats:
        """Aggregates over the stored issues."""

    # Filter configs

    @abstractmethod
    async def save_filter_config(self, config: FilterConfig) -> None:
        """Insert or replace a filter config by id."""

    @abstractmethod
    async def load_filter_config(self) -> Optional[FilterConfig]:
        """Return the most recently updated filter config, if any."""

    @abstractmethod
    async def list_filter_configs(self) -> List[FilterConfig]:
        """All filter configs, most recently updated first."""

    @abstractmethod
    async def delete_filter_config(self, config_id: str) -> bool:
        """Delete a filter config; False if it did not exist."""

    # History

    @abstractmethod
    async def save_issue_history(self, histories: List[IssueHistory]) -> int:
        """Persist history rows and return how many were written."""

    @abstractmethod
    async def load_issue_history(self, history_filter: HistoryFilter) -> List[IssueHistory]:
        """Return history rows matching the filter."""

    @abstractmethod
    async def get_history_stats(self) -> HistoryStats:
        """Aggregates over the stored history."""

    @abstractmethod
    async def delete_issue_history(self, issue_keys: List[str]) -> int:
        """Delete every history row of the given issues."""
