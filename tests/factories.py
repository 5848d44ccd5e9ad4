#!/usr/bin/env python3
"""
Builders for Jira-shaped payloads and models used across the test suite.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from jira_sync.models.history import HistoryAuthor, IssueHistory
from jira_sync.models.issue import Issue
from jira_sync.models.search import SearchResult

BASE_TIME = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)


def jira_timestamp(value: datetime) -> str:
    """Format a datetime the way Jira does (``+0000`` offset)."""
    return value.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%S.000+0000')


def user_payload(display_name: str) -> Dict[str, Any]:
    slug = display_name.lower().replace(' ', '-')
    return {
        'accountId': f"acc-{slug}",
        'displayName': display_name,
        'self': f"https://example.atlassian.net/rest/api/3/user?accountId=acc-{slug}",
        'active': True,
    }


def issue_payload(
    key: str,
    issue_id: Optional[str] = None,
    summary: Optional[str] = None,
    status: str = "To Do",
    priority: Optional[str] = "Medium",
    issue_type: str = "Task",
    reporter: str = "Alice Reporter",
    assignee: Optional[str] = None,
    project_key: Optional[str] = None,
    created: Optional[datetime] = None,
    updated: Optional[datetime] = None,
    description: Any = None,
    labels: Optional[List[Any]] = None,
    changelog: Optional[Dict[str, Any]] = None,
    with_project: bool = True,
) -> Dict[str, Any]:
    """Build an issue JSON object as returned by the search endpoint."""
    issue_id = issue_id or f"id-{key}"
    project_key = project_key or key.split('-')[0]
    created = created or BASE_TIME
    updated = updated or created

    fields: Dict[str, Any] = {
        'summary': summary if summary is not None else f"Summary of {key}",
        'description': description,
        'issuetype': {'id': '10001', 'name': issue_type, 'subtask': False},
        'priority': {'id': '3', 'name': priority} if priority else None,
        'status': {
            'id': '1',
            'name': status,
            'statusCategory': {'id': 2, 'key': 'new', 'name': 'To Do', 'colorName': 'blue-gray'},
        },
        'reporter': user_payload(reporter),
        'assignee': user_payload(assignee) if assignee else None,
        'created': jira_timestamp(created),
        'updated': jira_timestamp(updated),
        'resolutiondate': None,
    }
    if with_project:
        fields['project'] = {'id': f"p-{project_key}", 'key': project_key, 'name': f"{project_key} Project"}
    if labels is not None:
        fields['labels'] = labels

    payload: Dict[str, Any] = {
        'id': issue_id,
        'key': key,
        'self': f"https://example.atlassian.net/rest/api/3/issue/{issue_id}",
        'fields': fields,
    }
    if changelog is not None:
        payload['changelog'] = changelog
    return payload


def make_issue(key: str, **kwargs: Any) -> Issue:
    """Build an Issue model through the same path as API responses."""
    return Issue.from_dict(issue_payload(key, **kwargs))


def changelog_entry(
    change_id: str,
    created: datetime,
    items: List[Dict[str, Any]],
    author: Optional[str] = "Test User",
) -> Dict[str, Any]:
    entry: Dict[str, Any] = {
        'id': change_id,
        'created': jira_timestamp(created),
        'items': items,
    }
    if author is not None:
        entry['author'] = {'accountId': f"acc-{author.lower().replace(' ', '-')}", 'displayName': author}
    return entry


def status_item(from_name: str, to_name: str) -> Dict[str, Any]:
    return {'field': 'status', 'from': '1', 'to': '3', 'fromString': from_name, 'toString': to_name}


def make_history(
    issue_key: str,
    change_id: str,
    field_name: str = "status",
    offset_minutes: int = 0,
    author: Optional[str] = "Test User",
    field_id: Optional[str] = None,
    to_display_value: Optional[str] = None,
) -> IssueHistory:
    return IssueHistory(
        issue_id=f"id-{issue_key}",
        issue_key=issue_key,
        change_id=change_id,
        change_timestamp=BASE_TIME + timedelta(minutes=offset_minutes),
        author=HistoryAuthor(
            account_id=f"acc-{author.lower().replace(' ', '-')}",
            display_name=author,
        ) if author else None,
        field_name=field_name,
        field_id=field_id,
        from_value="1",
        to_value="3",
        from_display_value="Open",
        to_display_value=to_display_value or "In Progress",
    )


def search_page(issues: List[Issue], total: Optional[int] = None, start_at: int = 0) -> SearchResult:
    return SearchResult(
        start_at=start_at,
        max_results=max(len(issues), 1),
        total=len(issues) if total is None else total,
        issues=list(issues),
    )
