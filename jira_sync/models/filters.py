#!/usr/bin/env python3
"""
Query model for stored issues.

IssueFilter.matches() is the reference semantics of every filter criterion;
the SQL store compiles the same criteria to SQL and must agree with it.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, List, Iterable

from ..errors import InvalidFilterError
from .enums import SortOrder
from .issue import Issue, ensure_utc, format_iso, parse_jira_iso


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DateRange:
    """Inclusive UTC time range.

    Construction accepts ``start > end``; call validate() to reject it.
    An inverted range simply matches nothing.
    """

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if not isinstance(self.start, datetime) or not isinstance(self.end, datetime):
            raise TypeError("start and end must be datetime objects")
        self.start = ensure_utc(self.start)
        self.end = ensure_utc(self.end)

    @classmethod
    def last_days(cls, days: int) -> 'DateRange':
        end = _utcnow()
        return cls(start=end - timedelta(days=days), end=end)

    @classmethod
    def last_hours(cls, hours: int) -> 'DateRange':
        end = _utcnow()
        return cls(start=end - timedelta(hours=hours), end=end)

    def contains(self, value: datetime) -> bool:
        """Check whether value falls inside the range (both ends inclusive)."""
        value = ensure_utc(value)
        return self.start <= value <= self.end

    def validate(self) -> None:
        """Raise InvalidFilterError if the range is inverted."""
        if self.start > self.end:
            raise InvalidFilterError("Start date must be before end date")

    def to_dict(self) -> Dict[str, Any]:
        return {'start': format_iso(self.start), 'end': format_iso(self.end)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DateRange':
        start = parse_jira_iso(data.get('start'))
        end = parse_jira_iso(data.get('end'))
        if start is None or end is None:
            raise ValueError("DateRange requires valid start and end timestamps")
        return cls(start=start, end=end)


def sort_issues(issues: Iterable[Issue], order: SortOrder) -> List[Issue]:
    """Sort issues by the given order, breaking ties by key ascending.

    Issues without a priority sort last in both priority orders.
    """
    result = sorted(issues, key=lambda issue: issue.key)

    if order in (SortOrder.CREATED_ASC, SortOrder.CREATED_DESC):
        result.sort(key=lambda issue: issue.created, reverse=order.is_descending)
    elif order in (SortOrder.UPDATED_ASC, SortOrder.UPDATED_DESC):
        result.sort(key=lambda issue: issue.updated, reverse=order.is_descending)
    elif order is SortOrder.KEY_ASC:
        pass
    elif order is SortOrder.KEY_DESC:
        result.sort(key=lambda issue: issue.key, reverse=True)
    elif order is SortOrder.PRIORITY_ASC:
        result.sort(key=lambda issue: (issue.priority_name is None, issue.priority_name or ""))
    elif order is SortOrder.PRIORITY_DESC:
        result.sort(
            key=lambda issue: (issue.priority_name is not None, issue.priority_name or ""),
            reverse=True
        )
    return result


@dataclass
class IssueFilter:
    """Conjunction of optional issue criteria plus paging and ordering.

    List criteria match any of their values; different criteria must all
    match. An absent or empty criterion places no constraint.
    """

    project_keys: Optional[List[str]] = None
    statuses: Optional[List[str]] = None
    priorities: Optional[List[str]] = None
    issue_types: Optional[List[str]] = None
    reporters: Optional[List[str]] = None
    assignees: Optional[List[str]] = None
    created_range: Optional[DateRange] = None
    updated_range: Optional[DateRange] = None
    summary_contains: Optional[str] = None
    description_contains: Optional[str] = None
    labels: Optional[List[str]] = None
    limit: Optional[int] = None
    offset: Optional[int] = None
    sort_order: SortOrder = SortOrder.CREATED_DESC

    LIST_CRITERIA = (
        'project_keys', 'statuses', 'priorities', 'issue_types',
        'reporters', 'assignees', 'labels',
    )

    def __post_init__(self) -> None:
        for name in self.LIST_CRITERIA:
            value = getattr(self, name)
            if value is not None:
                if isinstance(value, str) or not isinstance(value, (list, tuple, set)):
                    raise TypeError(f"{name} must be a list of strings or None")
                setattr(self, name, list(value))
        for name in ('created_range', 'updated_range'):
            value = getattr(self, name)
            if value is not None and not isinstance(value, DateRange):
                raise TypeError(f"{name} must be a DateRange or None")
        for name in ('limit', 'offset'):
            value = getattr(self, name)
            if value is not None and (not isinstance(value, int) or isinstance(value, bool)):
                raise TypeError(f"{name} must be an integer or None")
            if value is not None and value < 0:
                raise InvalidFilterError(f"{name.capitalize()} cannot be negative")
        if not isinstance(self.sort_order, SortOrder):
            raise TypeError("sort_order must be a SortOrder")

    def is_empty(self) -> bool:
        """True when no criterion is set (paging and ordering are ignored)."""
        return (
            not any(getattr(self, name) for name in self.LIST_CRITERIA)
            and self.created_range is None
            and self.updated_range is None
            and not self.summary_contains
            and not self.description_contains
        )

    def validate(self) -> None:
        """Validate date ranges and paging values.

        Raises:
            InvalidFilterError: If a range is inverted or paging is negative
        """
        for date_range in (self.created_range, self.updated_range):
            if date_range is not None:
                date_range.validate()
        if self.limit is not None and self.limit < 0:
            raise InvalidFilterError("Limit cannot be negative")
        if self.offset is not None and self.offset < 0:
            raise InvalidFilterError("Offset cannot be negative")

    def matches(self, issue: Issue) -> bool:
        """Check whether an issue satisfies every criterion of the filter."""
        if self.project_keys and issue.project_key not in self.project_keys:
            return False
        if self.statuses and issue.status_name not in self.statuses:
            return False
        if self.priorities and issue.priority_name not in self.priorities:
            return False
        if self.issue_types and issue.issue_type_name not in self.issue_types:
            return False
        if self.reporters and issue.reporter_name not in self.reporters:
            return False
        if self.assignees and issue.assignee_name not in self.assignees:
            return False
        if self.created_range and not self.created_range.contains(issue.created):
            return False
        if self.updated_range and not self.updated_range.contains(issue.updated):
            return False
        if self.summary_contains and self.summary_contains.lower() not in issue.summary.lower():
            return False
        if self.description_contains:
            text = issue.description_text
            if text is None or self.description_contains.lower() not in text.lower():
                return False
        if self.labels and not set(self.labels).intersection(issue.labels):
            return False
        return True

    def apply(self, issues: Iterable[Issue]) -> List[Issue]:
        """Filter, sort, then slice by offset/limit."""
        selected = sort_issues((issue for issue in issues if self.matches(issue)), self.sort_order)
        start = self.offset or 0
        if self.limit is None:
            return selected[start:]
        return selected[start:start + self.limit]

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {name: getattr(self, name) for name in self.LIST_CRITERIA}
        data.update({
            'created_range': self.created_range.to_dict() if self.created_range else None,
            'updated_range': self.updated_range.to_dict() if self.updated_range else None,
            'summary_contains': self.summary_contains,
            'description_contains': self.description_contains,
            'limit': self.limit,
            'offset': self.offset,
            'sort_order': self.sort_order.value,
        })
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'IssueFilter':
        if not isinstance(data, dict):
            raise TypeError("filter data must be a dictionary")
        created_range = data.get('created_range')
        updated_range = data.get('updated_range')
        return cls(
            **{name: data.get(name) for name in cls.LIST_CRITERIA},
            created_range=DateRange.from_dict(created_range) if created_range else None,
            updated_range=DateRange.from_dict(updated_range) if updated_range else None,
            summary_contains=data.get('summary_contains'),
            description_contains=data.get('description_contains'),
            limit=data.get('limit'),
            offset=data.get('offset'),
            sort_order=SortOrder.from_string(data.get('sort_order') or SortOrder.CREATED_DESC.value),
        )


@dataclass
class FilterConfig:
    """A named, persisted IssueFilter with usage counters."""

    id: str
    name: str
    filter: IssueFilter = field(default_factory=IssueFilter)
    description: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    usage_count: int = 0
    last_used_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id.strip():
            raise ValueError("id must be a non-empty string")
        if not isinstance(self.name, str):
            raise TypeError("name must be a string")
        if not isinstance(self.filter, IssueFilter):
            raise TypeError("filter must be an IssueFilter")
        if not isinstance(self.usage_count, int) or self.usage_count < 0:
            raise ValueError("usage_count must be a non-negative integer")

    def increment_usage(self) -> None:
        now = _utcnow()
        self.usage_count += 1
        self.last_used_at = now
        self.updated_at = now

    def update_filter(self, new_filter: IssueFilter) -> None:
        self.filter = new_filter
        self.updated_at = _utcnow()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'filter': self.filter.to_dict(),
            'created_at': format_iso(self.created_at),
            'updated_at': format_iso(self.updated_at),
            'usage_count': self.usage_count,
            'last_used_at': format_iso(self.last_used_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FilterConfig':
        """Create a FilterConfig from its stored JSON form.

        Raises:
            TypeError: If data is not a dictionary
            ValueError: If required fields are missing or malformed
        """
        if not isinstance(data, dict):
            raise TypeError("filter config data must be a dictionary")
        if not data.get('id'):
            raise ValueError("Missing required field in filter config: id")

        created_at = parse_jira_iso(data.get('created_at')) or _utcnow()
        return cls(
            id=data['id'],
            name=data.get('name') or "",
            description=data.get('description'),
            filter=IssueFilter.from_dict(data.get('filter') or {}),
            created_at=created_at,
            updated_at=parse_jira_iso(data.get('updated_at')) or created_at,
            usage_count=int(data.get('usage_count') or 0),
            last_used_at=parse_jira_iso(data.get('last_used_at')),
        )


@dataclass
class StorageStats:
    """Aggregates over the stored issue collection; always recomputable."""

    total_issues: int = 0
    issues_by_project: Dict[str, int] = field(default_factory=dict)
    issues_by_status: Dict[str, int] = field(default_factory=dict)
    issues_by_type: Dict[str, int] = field(default_factory=dict)
    storage_size_bytes: int = 0
    last_updated: datetime = field(default_factory=_utcnow)
    index_count: int = 0
    compression_ratio: float = 1.0

    @classmethod
    def from_issues(cls, issues: Iterable[Issue], **kwargs: Any) -> 'StorageStats':
        """Count issues by project, status and type."""
        stats = cls(**kwargs)
        for issue in issues:
            stats.total_issues += 1
            if issue.project_key is not None:
                stats.issues_by_project[issue.project_key] = stats.issues_by_project.get(issue.project_key, 0) + 1
            stats.issues_by_status[issue.status_name] = stats.issues_by_status.get(issue.status_name, 0) + 1
            stats.issues_by_type[issue.issue_type_name] = stats.issues_by_type.get(issue.issue_type_name, 0) + 1
        return stats

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_issues': self.total_issues,
            'issues_by_project': dict(self.issues_by_project),
            'issues_by_status': dict(self.issues_by_status),
            'issues_by_type': dict(self.issues_by_type),
            'storage_size_bytes': self.storage_size_bytes,
            'last_updated': format_iso(self.last_updated),
            'index_count': self.index_count,
            'compression_ratio': self.compression_ratio,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StorageStats':
        if not isinstance(data, dict):
            raise TypeError("stats data must be a dictionary")
        return cls(
            total_issues=int(data.get('total_issues', 0)),
            issues_by_project=dict(data.get('issues_by_project') or {}),
            issues_by_status=dict(data.get('issues_by_status') or {}),
            issues_by_type=dict(data.get('issues_by_type') or {}),
            storage_size_bytes=int(data.get('storage_size_bytes', 0)),
            last_updated=parse_jira_iso(data.get('last_updated')) or _utcnow(),
            index_count=int(data.get('index_count', 0)),
            compression_ratio=float(data.get('compression_ratio', 1.0)),
        )
