#!/usr/bin/env python3
"""
Project model for the Jira sync client.
"""

from dataclasses import dataclass
from typing import Optional, Dict, Any

from .user import User


@dataclass
class Project:
    """Jira project, either standalone or embedded in an issue's fields."""

    id: str
    key: str
    name: str
    self_url: str = ""
    description: Optional[str] = None
    project_type_key: Optional[str] = None
    avatar_urls: Optional[Dict[str, str]] = None
    lead: Optional[User] = None
    url: Optional[str] = None
    simplified: Optional[bool] = None

    def __post_init__(self) -> None:
        """Validate project data after initialization."""
        required_fields = {'id': self.id, 'key': self.key, 'name': self.name}
        for field_name, field_value in required_fields.items():
            if not isinstance(field_value, str):
                raise TypeError(f"{field_name} must be a string")
            if not field_value.strip():
                raise ValueError(f"{field_name} cannot be empty")
        if self.lead is not None and not isinstance(self.lead, User):
            raise TypeError("lead must be a User instance or None")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Project':
        """Create a Project from Jira API data.

        Raises:
            TypeError: If data is not a dictionary
            ValueError: If id, key or name is missing
        """
        if not isinstance(data, dict):
            raise TypeError("project data must be a dictionary")
        for required in ('id', 'key', 'name'):
            if not data.get(required):
                raise ValueError(f"Missing required field in project data: {required}")

        lead_data = data.get('lead')
        return cls(
            id=str(data['id']),
            key=data['key'],
            name=data['name'],
            self_url=data.get('self') or "",
            description=data.get('description'),
            project_type_key=data.get('projectTypeKey'),
            avatar_urls=data.get('avatarUrls'),
            lead=User.from_dict(lead_data) if isinstance(lead_data, dict) else None,
            url=data.get('url'),
            simplified=data.get('simplified'),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the Jira API JSON shape."""
        data: Dict[str, Any] = {
            'id': self.id,
            'key': self.key,
            'name': self.name,
            'self': self.self_url,
        }
        optional = {
            'description': self.description,
            'projectTypeKey': self.project_type_key,
            'avatarUrls': self.avatar_urls,
            'lead': self.lead.to_dict() if self.lead else None,
            'url': self.url,
            'simplified': self.simplified,
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        return data
