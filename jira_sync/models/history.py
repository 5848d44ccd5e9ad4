#!/usr/bin/env python3
"""
Issue change-history models.

One IssueHistory row represents one field change inside one changelog
entry. HistoryFilter and HistoryStats are the history counterparts of
IssueFilter and StorageStats.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List, Iterable

from ..errors import InvalidFilterError
from .enums import ChangeType, HistorySortOrder
from .filters import DateRange
from .issue import ensure_utc, format_iso, parse_jira_iso


@dataclass
class HistoryAuthor:
    """Author of a changelog entry."""

    account_id: str
    display_name: str
    email_address: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'account_id': self.account_id,
            'display_name': self.display_name,
            'email_address': self.email_address,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'HistoryAuthor':
        return cls(
            account_id=data['account_id'],
            display_name=data['display_name'],
            email_address=data.get('email_address'),
        )


@dataclass
class IssueHistory:
    """A single field change of an issue.

    ``history_id`` is assigned by storage backends that keep a surrogate key.
    ``created_at`` records when the row was materialized, not when the
    change happened (that is ``change_timestamp``).
    """

    issue_id: str
    issue_key: str
    change_id: str
    change_timestamp: datetime
    field_name: str
    author: Optional[HistoryAuthor] = None
    field_id: Optional[str] = None
    from_value: Optional[str] = None
    to_value: Optional[str] = None
    from_display_value: Optional[str] = None
    to_display_value: Optional[str] = None
    history_id: Optional[int] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        """Validate identity fields and normalize timestamps."""
        for name in ('issue_id', 'issue_key', 'change_id', 'field_name'):
            if not isinstance(getattr(self, name), str):
                raise TypeError(f"{name} must be a string")
        if self.author is not None and not isinstance(self.author, HistoryAuthor):
            raise TypeError("author must be a HistoryAuthor or None")
        if not isinstance(self.change_timestamp, datetime):
            raise TypeError("change_timestamp must be a datetime object")
        if not isinstance(self.created_at, datetime):
            raise TypeError("created_at must be a datetime object")
        self.change_timestamp = ensure_utc(self.change_timestamp)
        self.created_at = ensure_utc(self.created_at)

    @property
    def change_type(self) -> ChangeType:
        return ChangeType.classify(self.field_name, self.field_id)

    def change_summary(self) -> str:
        """One-line human readable description of the change."""
        author = self.author.display_name if self.author else "System"
        return (
            f"{self.change_timestamp.strftime('%Y-%m-%d %H:%M:%S')}: {author} changed "
            f"{self.field_name} from '{self.from_display_value or 'None'}' "
            f"to '{self.to_display_value or 'None'}'"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'history_id': self.history_id,
            'issue_id': self.issue_id,
            'issue_key': self.issue_key,
            'change_id': self.change_id,
            'change_timestamp': format_iso(self.change_timestamp),
            'author': self.author.to_dict() if self.author else None,
            'field_name': self.field_name,
            'field_id': self.field_id,
            'from_value': self.from_value,
            'to_value': self.to_value,
            'from_display_value': self.from_display_value,
            'to_display_value': self.to_display_value,
            'created_at': format_iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'IssueHistory':
        """Create an IssueHistory from its stored JSON form.

        Raises:
            TypeError: If data is not a dictionary
            ValueError: If required fields are missing or malformed
        """
        if not isinstance(data, dict):
            raise TypeError("history data must be a dictionary")
        change_timestamp = parse_jira_iso(data.get('change_timestamp'))
        if change_timestamp is None:
            raise ValueError("Invalid change_timestamp in history data")
        author = data.get('author')
        created_at = parse_jira_iso(data.get('created_at'))
        return cls(
            history_id=data.get('history_id'),
            issue_id=data['issue_id'],
            issue_key=data['issue_key'],
            change_id=data['change_id'],
            change_timestamp=change_timestamp,
            author=HistoryAuthor.from_dict(author) if author else None,
            field_name=data['field_name'],
            field_id=data.get('field_id'),
            from_value=data.get('from_value'),
            to_value=data.get('to_value'),
            from_display_value=data.get('from_display_value'),
            to_display_value=data.get('to_display_value'),
            created_at=created_at or datetime.now(timezone.utc),
        )


def sort_histories(histories: Iterable[IssueHistory], order: HistorySortOrder) -> List[IssueHistory]:
    """Sort histories; ties keep their stored order."""
    if order is HistorySortOrder.TIMESTAMP_ASC:
        return sorted(histories, key=lambda h: h.change_timestamp)
    if order is HistorySortOrder.TIMESTAMP_DESC:
        return sorted(histories, key=lambda h: h.change_timestamp, reverse=True)
    if order is HistorySortOrder.ISSUE_KEY:
        return sorted(histories, key=lambda h: h.issue_key)
    return sorted(histories, key=lambda h: h.field_name)


@dataclass
class HistoryFilter:
    """Criteria for retrieving stored history rows.

    ``authors`` holds account ids.
    """

    issue_keys: Optional[List[str]] = None
    field_names: Optional[List[str]] = None
    authors: Optional[List[str]] = None
    date_range: Optional[DateRange] = None
    change_types: Optional[List[ChangeType]] = None
    limit: Optional[int] = None
    sort_order: HistorySortOrder = HistorySortOrder.TIMESTAMP_DESC

    def __post_init__(self) -> None:
        for name in ('issue_keys', 'field_names', 'authors', 'change_types'):
            value = getattr(self, name)
            if value is not None:
                if isinstance(value, str) or not isinstance(value, (list, tuple, set)):
                    raise TypeError(f"{name} must be a list or None")
                setattr(self, name, list(value))
        if self.change_types:
            self.change_types = [
                ct if isinstance(ct, ChangeType) else ChangeType.from_string(ct)
                for ct in self.change_types
            ]
        if self.date_range is not None and not isinstance(self.date_range, DateRange):
            raise TypeError("date_range must be a DateRange or None")
        if self.limit is not None:
            if not isinstance(self.limit, int) or isinstance(self.limit, bool):
                raise TypeError("limit must be an integer or None")
            if self.limit < 0:
                raise InvalidFilterError("Limit cannot be negative")
        if not isinstance(self.sort_order, HistorySortOrder):
            raise TypeError("sort_order must be a HistorySortOrder")

    def validate(self) -> None:
        """Raises InvalidFilterError for a zero limit or an inverted range."""
        if self.date_range is not None:
            self.date_range.validate()
        if self.limit == 0:
            raise InvalidFilterError("Limit cannot be zero")
        if self.limit is not None and self.limit < 0:
            raise InvalidFilterError("Limit cannot be negative")

    def matches(self, history: IssueHistory) -> bool:
        if self.issue_keys and history.issue_key not in self.issue_keys:
            return False
        if self.field_names and history.field_name not in self.field_names:
            return False
        if self.authors:
            if history.author is None or history.author.account_id not in self.authors:
                return False
        if self.date_range and not self.date_range.contains(history.change_timestamp):
            return False
        if self.change_types and history.change_type not in self.change_types:
            return False
        return True

    def apply(self, histories: Iterable[IssueHistory]) -> List[IssueHistory]:
        """Filter, sort, then truncate to limit."""
        selected = sort_histories((h for h in histories if self.matches(h)), self.sort_order)
        if self.limit is not None:
            return selected[:self.limit]
        return selected


@dataclass
class HistoryStats:
    """Aggregates over stored history rows."""

    total_changes: int = 0
    unique_issues: int = 0
    unique_authors: int = 0
    field_change_counts: Dict[str, int] = field(default_factory=dict)
    oldest_change: Optional[datetime] = None
    newest_change: Optional[datetime] = None

    def update(self, histories: List[IssueHistory]) -> None:
        """Recompute every aggregate from the given rows."""
        self.total_changes = len(histories)
        self.unique_issues = len({h.issue_key for h in histories})
        self.unique_authors = len({h.author.account_id for h in histories if h.author})
        self.field_change_counts = {}
        for history in histories:
            self.field_change_counts[history.field_name] = self.field_change_counts.get(history.field_name, 0) + 1
        timestamps = [h.change_timestamp for h in histories]
        self.oldest_change = min(timestamps) if timestamps else None
        self.newest_change = max(timestamps) if timestamps else None

    @classmethod
    def from_histories(cls, histories: List[IssueHistory]) -> 'HistoryStats':
        stats = cls()
        stats.update(histories)
        return stats
