#!/usr/bin/env python3
"""
Issue model for the Jira sync client.

Contains Issue, IssueFields and the small value types embedded in an issue
payload (status, priority, issue type), plus the timestamp helpers shared by
every model that stores Jira datetimes.
"""

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List

from .project import Project
from .user import User

# Keys of the "fields" object that map onto typed attributes; everything else
# is kept verbatim in IssueFields.custom_fields.
KNOWN_FIELD_KEYS = frozenset({
    'summary', 'description', 'issuetype', 'priority', 'status', 'assignee',
    'reporter', 'created', 'updated', 'resolutiondate', 'project',
})


def parse_jira_iso(date_str: Optional[str]) -> Optional[datetime]:
    """Parse Jira ISO datetime string with tolerant handling.

    Handles the formats Jira emits:
    - ISO format with Z suffix: 2023-12-01T10:30:00.000Z
    - ISO format with timezone: 2023-12-01T10:30:00.000+0000
    - ISO format with colon timezone: 2023-12-01T10:30:00.000+00:00

    Naive values are taken as UTC. The result is always converted to UTC.

    Args:
        date_str: Date string from Jira API

    Returns:
        Parsed datetime object or None if parsing fails
    """
    if not date_str or not isinstance(date_str, str):
        return None

    try:
        if date_str.endswith('Z'):
            date_str = date_str[:-1] + '+00:00'
        elif re.search(r'[+-]\d{4}$', date_str):
            date_str = date_str[:-2] + ':' + date_str[-2:]

        return ensure_utc(datetime.fromisoformat(date_str))
    except (ValueError, AttributeError, TypeError):
        return None


def ensure_utc(value: datetime) -> datetime:
    """Return value as an aware UTC datetime (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_iso(value: Optional[datetime]) -> Optional[str]:
    """Format a datetime as an ISO-8601 UTC string."""
    if value is None:
        return None
    return ensure_utc(value).isoformat()


def description_text(value: Any) -> Optional[str]:
    """Canonical text of an issue description.

    Plain strings are returned unchanged; structured values (Atlassian
    document format) are rendered as compact JSON. Both storage backends
    match ``description_contains`` against this text.
    """
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, separators=(',', ':'))


def _require_dict(data: Any, what: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise TypeError(f"{what} data must be a dictionary")
    return data


def _require_keys(data: Dict[str, Any], what: str, *keys: str) -> None:
    for key in keys:
        if data.get(key) in (None, ""):
            raise ValueError(f"Missing required field in {what} data: {key}")


def _drop_none(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


@dataclass
class StatusCategory:
    """Category a status belongs to (To Do / In Progress / Done)."""

    id: int
    key: str
    name: str
    color_name: str = ""
    self_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StatusCategory':
        data = _require_dict(data, "status category")
        _require_keys(data, "status category", 'id', 'key')
        return cls(
            id=int(data['id']),
            key=data['key'],
            name=data.get('name') or "",
            color_name=data.get('colorName') or "",
            self_url=data.get('self'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            'id': self.id,
            'key': self.key,
            'name': self.name,
            'colorName': self.color_name,
            'self': self.self_url,
        })


@dataclass
class Status:
    """Workflow status of an issue."""

    id: str
    name: str
    self_url: str = ""
    description: Optional[str] = None
    icon_url: Optional[str] = None
    status_category: Optional[StatusCategory] = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValueError("status name must be a non-empty string")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Status':
        data = _require_dict(data, "status")
        _require_keys(data, "status", 'id', 'name')
        category = data.get('statusCategory')
        return cls(
            id=str(data['id']),
            name=data['name'],
            self_url=data.get('self') or "",
            description=data.get('description'),
            icon_url=data.get('iconUrl'),
            status_category=StatusCategory.from_dict(category) if isinstance(category, dict) else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            'id': self.id,
            'name': self.name,
            'self': self.self_url,
            'description': self.description,
            'iconUrl': self.icon_url,
            'statusCategory': self.status_category.to_dict() if self.status_category else None,
        })


@dataclass
class Priority:
    """Issue priority."""

    id: str
    name: str
    self_url: str = ""
    description: Optional[str] = None
    icon_url: Optional[str] = None
    status_color: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValueError("priority name must be a non-empty string")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Priority':
        data = _require_dict(data, "priority")
        _require_keys(data, "priority", 'id', 'name')
        return cls(
            id=str(data['id']),
            name=data['name'],
            self_url=data.get('self') or "",
            description=data.get('description'),
            icon_url=data.get('iconUrl'),
            status_color=data.get('statusColor'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            'id': self.id,
            'name': self.name,
            'self': self.self_url,
            'description': self.description,
            'iconUrl': self.icon_url,
            'statusColor': self.status_color,
        })


@dataclass
class IssueType:
    """Issue type (Bug, Story, Task...)."""

    id: str
    name: str
    self_url: str = ""
    description: Optional[str] = None
    subtask: Optional[bool] = None
    icon_url: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValueError("issue type name must be a non-empty string")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'IssueType':
        data = _require_dict(data, "issue type")
        _require_keys(data, "issue type", 'id', 'name')
        return cls(
            id=str(data['id']),
            name=data['name'],
            self_url=data.get('self') or "",
            description=data.get('description'),
            subtask=data.get('subtask'),
            icon_url=data.get('iconUrl'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            'id': self.id,
            'name': self.name,
            'self': self.self_url,
            'description': self.description,
            'subtask': self.subtask,
            'iconUrl': self.icon_url,
        })


@dataclass
class IssueFields:
    """The ``fields`` aggregate of a Jira issue.

    Custom fields (and any standard field without a typed attribute, such as
    ``labels``) are kept as raw JSON values in ``custom_fields``.
    """

    summary: str
    issue_type: IssueType
    status: Status
    reporter: User
    created: datetime
    updated: datetime
    description: Any = None
    priority: Optional[Priority] = None
    assignee: Optional[User] = None
    resolution_date: Optional[datetime] = None
    project: Optional[Project] = None
    custom_fields: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate field types and normalize timestamps to UTC."""
        if not isinstance(self.summary, str):
            raise TypeError("summary must be a string")
        if not isinstance(self.issue_type, IssueType):
            raise TypeError("issue_type must be an IssueType instance")
        if not isinstance(self.status, Status):
            raise TypeError("status must be a Status instance")
        if not isinstance(self.reporter, User):
            raise TypeError("reporter must be a User instance")
        if self.priority is not None and not isinstance(self.priority, Priority):
            raise TypeError("priority must be a Priority instance or None")
        if self.assignee is not None and not isinstance(self.assignee, User):
            raise TypeError("assignee must be a User instance or None")
        if self.project is not None and not isinstance(self.project, Project):
            raise TypeError("project must be a Project instance or None")
        if not isinstance(self.custom_fields, dict):
            raise TypeError("custom_fields must be a dictionary")

        for name in ('created', 'updated', 'resolution_date'):
            value = getattr(self, name)
            if value is None and name == 'resolution_date':
                continue
            if not isinstance(value, datetime):
                raise TypeError(f"{name} must be a datetime object")
            setattr(self, name, ensure_utc(value))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'IssueFields':
        """Create IssueFields from the ``fields`` object of an issue payload.

        Raises:
            TypeError: If data or a nested object has the wrong type
            ValueError: If a required field is missing or malformed
        """
        data = _require_dict(data, "issue fields")
        for required in ('summary', 'issuetype', 'status', 'reporter', 'created', 'updated'):
            if data.get(required) is None:
                raise ValueError(f"Missing required field in issue fields: {required}")

        created = parse_jira_iso(data['created'])
        updated = parse_jira_iso(data['updated'])
        if created is None or updated is None:
            raise ValueError("Invalid created/updated timestamp in issue fields")

        def optional(key: str, factory):
            value = data.get(key)
            return factory(value) if value is not None else None

        return cls(
            summary=data['summary'],
            description=data.get('description'),
            issue_type=IssueType.from_dict(data['issuetype']),
            priority=optional('priority', Priority.from_dict),
            status=Status.from_dict(data['status']),
            assignee=optional('assignee', User.from_dict),
            reporter=User.from_dict(data['reporter']),
            created=created,
            updated=updated,
            resolution_date=parse_jira_iso(data.get('resolutiondate')),
            project=optional('project', Project.from_dict),
            custom_fields={k: v for k, v in data.items() if k not in KNOWN_FIELD_KEYS},
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the Jira ``fields`` JSON shape (custom fields flattened in)."""
        data: Dict[str, Any] = dict(self.custom_fields)
        data.update({
            'summary': self.summary,
            'description': self.description,
            'issuetype': self.issue_type.to_dict(),
            'priority': self.priority.to_dict() if self.priority else None,
            'status': self.status.to_dict(),
            'assignee': self.assignee.to_dict() if self.assignee else None,
            'reporter': self.reporter.to_dict(),
            'created': format_iso(self.created),
            'updated': format_iso(self.updated),
            'resolutiondate': format_iso(self.resolution_date),
            'project': self.project.to_dict() if self.project else None,
        })
        return data


@dataclass
class Issue:
    """Jira issue with its fields and, when fetched with expand=changelog,
    the raw changelog document."""

    id: str
    key: str
    fields: IssueFields
    self_url: str = ""
    changelog: Optional[Dict[str, Any]] = None

    def __post_init__(self) -> None:
        """Validate identity fields after initialization."""
        for field_name in ('id', 'key'):
            value = getattr(self, field_name)
            if not isinstance(value, str):
                raise TypeError(f"{field_name} must be a string")
            if not value.strip():
                raise ValueError(f"{field_name} cannot be empty")
        if not isinstance(self.fields, IssueFields):
            raise TypeError("fields must be an IssueFields instance")
        if self.changelog is not None and not isinstance(self.changelog, dict):
            raise TypeError("changelog must be a dictionary or None")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Issue':
        """Create an Issue from a Jira API issue payload.

        Args:
            data: Issue JSON object (``id``, ``key``, ``self``, ``fields``,
                optional ``changelog``)

        Returns:
            Issue instance

        Raises:
            TypeError: If data has the wrong shape
            ValueError: If required fields are missing
        """
        data = _require_dict(data, "issue")
        _require_keys(data, "issue", 'id', 'key', 'fields')
        changelog = data.get('changelog')
        return cls(
            id=str(data['id']),
            key=data['key'],
            self_url=data.get('self') or "",
            fields=IssueFields.from_dict(data['fields']),
            changelog=changelog if isinstance(changelog, dict) else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the Jira API issue JSON shape."""
        data: Dict[str, Any] = {
            'id': self.id,
            'key': self.key,
            'self': self.self_url,
            'fields': self.fields.to_dict(),
        }
        if self.changelog is not None:
            data['changelog'] = self.changelog
        return data

    # Flattened accessors used by filters and storage

    @property
    def summary(self) -> str:
        return self.fields.summary

    @property
    def project_key(self) -> Optional[str]:
        return self.fields.project.key if self.fields.project else None

    @property
    def project_name(self) -> Optional[str]:
        return self.fields.project.name if self.fields.project else None

    @property
    def status_name(self) -> str:
        return self.fields.status.name

    @property
    def priority_name(self) -> Optional[str]:
        return self.fields.priority.name if self.fields.priority else None

    @property
    def issue_type_name(self) -> str:
        return self.fields.issue_type.name

    @property
    def reporter_name(self) -> str:
        return self.fields.reporter.display_name

    @property
    def assignee_name(self) -> Optional[str]:
        return self.fields.assignee.display_name if self.fields.assignee else None

    @property
    def created(self) -> datetime:
        return self.fields.created

    @property
    def updated(self) -> datetime:
        return self.fields.updated

    @property
    def description_text(self) -> Optional[str]:
        return description_text(self.fields.description)

    @property
    def labels(self) -> List[str]:
        """Labels carried in the ``labels`` entry of the custom-field map."""
        labels = self.fields.custom_fields.get('labels')
        if not isinstance(labels, list):
            return []
        return [label for label in labels if isinstance(label, str)]
