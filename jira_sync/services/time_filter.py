#!/usr/bin/env python3
"""
Time-window filters used to build incremental sync queries.

A TimeBasedFilter renders to a JQL condition over the ``created`` and/or
``updated`` fields and can be split into fixed-size TimeChunks.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional, List

from ..errors import InvalidFilterError
from ..models.issue import ensure_utc
from ..utils.constants import JQL_DATETIME_FORMAT, DEFAULT_CHUNK_LOOKBACK_DAYS


def format_jira_datetime(value: datetime) -> str:
    """Format a datetime for use in JQL (``YYYY-MM-DD HH:MM``, UTC)."""
    return ensure_utc(value).strftime(JQL_DATETIME_FORMAT)


def parse_jira_datetime(value: str) -> datetime:
    """Parse a JQL ``YYYY-MM-DD HH:MM`` string as a UTC datetime.

    Raises:
        ValueError: If the string does not match the format
    """
    return datetime.strptime(value, JQL_DATETIME_FORMAT).replace(tzinfo=timezone.utc)


def _window(field_name: str, since: Optional[datetime], until: Optional[datetime]) -> Optional[str]:
    bounds = []
    if since is not None:
        bounds.append(f"{field_name} >= '{format_jira_datetime(since)}'")
    if until is not None:
        bounds.append(f"{field_name} <= '{format_jira_datetime(until)}'")
    return " AND ".join(bounds) if bounds else None


def _combine_windows(windows: List[str]) -> str:
    if len(windows) == 1:
        return windows[0]
    return "(" + " OR ".join(f"({w})" for w in windows) + ")"


@dataclass
class TimeChunk:
    """A closed slice of a time window."""

    start: datetime
    end: datetime

    def duration_seconds(self) -> int:
        return int((self.end - self.start).total_seconds())

    def duration_hours(self) -> float:
        return self.duration_seconds() / 3600.0

    def to_jql_condition(self, filter_by_created: bool = True, filter_by_updated: bool = True) -> str:
        windows = []
        if filter_by_created:
            windows.append(_window("created", self.start, self.end))
        if filter_by_updated:
            windows.append(_window("updated", self.start, self.end))
        return _combine_windows(windows) if windows else ""


@dataclass
class TimeBasedFilter:
    """Created/updated time window plus an optional key exclusion list.

    When both ``filter_by_created`` and ``filter_by_updated`` are set an issue
    qualifies if either timestamp falls inside the window.
    """

    since: Optional[datetime] = None
    until: Optional[datetime] = None
    granularity_hours: int = 1
    filter_by_created: bool = True
    filter_by_updated: bool = True
    exclude_existing: bool = True
    excluded_issue_keys: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.since is not None:
            self.since = ensure_utc(self.since)
        if self.until is not None:
            self.until = ensure_utc(self.until)
        self.excluded_issue_keys = list(self.excluded_issue_keys)

    @classmethod
    def last_hours(cls, hours: int) -> 'TimeBasedFilter':
        now = datetime.now(timezone.utc)
        return cls(since=now - timedelta(hours=hours), until=now, granularity_hours=1)

    @classmethod
    def last_days(cls, days: int) -> 'TimeBasedFilter':
        now = datetime.now(timezone.utc)
        return cls(since=now - timedelta(days=days), until=now, granularity_hours=24)

    @classmethod
    def date_range(cls, start: datetime, end: datetime) -> 'TimeBasedFilter':
        return cls(since=start, until=end, granularity_hours=24)

    @classmethod
    def incremental_since(
        cls,
        last_sync_time: datetime,
        excluded_issue_keys: Optional[List[str]] = None
    ) -> 'TimeBasedFilter':
        """Window from the last successful sync until now."""
        return cls(
            since=last_sync_time,
            until=datetime.now(timezone.utc),
            granularity_hours=1,
            filter_by_updated=True,
            exclude_existing=True,
            excluded_issue_keys=list(excluded_issue_keys or []),
        )

    def to_jql_time_condition(self) -> Optional[str]:
        """Render the filter as a JQL condition, or None if it is unbounded."""
        windows = []
        if self.filter_by_created:
            created = _window("created", self.since, self.until)
            if created:
                windows.append(created)
        if self.filter_by_updated:
            updated = _window("updated", self.since, self.until)
            if updated:
                windows.append(updated)

        conditions = []
        if windows:
            conditions.append(_combine_windows(windows))
        if self.exclude_existing and self.excluded_issue_keys:
            keys = ", ".join(f"'{key}'" for key in self.excluded_issue_keys)
            conditions.append(f"key NOT IN ({keys})")

        return " AND ".join(conditions) if conditions else None

    def is_valid(self) -> None:
        """Validate the filter.

        Raises:
            InvalidFilterError: If the window is inverted, the granularity is
                not positive, or neither timestamp is filtered on
        """
        if self.since is not None and self.until is not None and self.since > self.until:
            raise InvalidFilterError("Start time is after end time")
        if self.granularity_hours <= 0:
            raise InvalidFilterError("Granularity must be at least one hour")
        if not self.filter_by_created and not self.filter_by_updated:
            raise InvalidFilterError("Filtering by created or updated time is required")

    def split_into_chunks(self) -> List[TimeChunk]:
        """Split the window into chunks of ``granularity_hours``.

        A missing ``until`` means now; a missing ``since`` means 30 days
        before the end.

        Raises:
            InvalidFilterError: If the granularity is not positive
        """
        if self.granularity_hours <= 0:
            raise InvalidFilterError("Granularity must be at least one hour")
        end = self.until or datetime.now(timezone.utc)
        start = self.since or end - timedelta(days=DEFAULT_CHUNK_LOOKBACK_DAYS)
        step = timedelta(hours=self.granularity_hours)

        chunks = []
        current = start
        while current < end:
            chunk_end = min(current + step, end)
            chunks.append(TimeChunk(start=current, end=chunk_end))
            current = chunk_end
        return chunks
