#!/usr/bin/env python3
"""
User model for the Jira sync client.

Mirrors the user object embedded in Jira issue payloads (reporter,
assignee, changelog authors).
"""

from dataclasses import dataclass
from typing import Optional, Dict, Any


@dataclass
class User:
    """Jira user as returned by the REST API."""

    account_id: str
    display_name: str
    self_url: str = ""
    email_address: Optional[str] = None
    avatar_urls: Optional[Dict[str, str]] = None
    active: Optional[bool] = None
    time_zone: Optional[str] = None
    account_type: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate user data after initialization."""
        if not isinstance(self.account_id, str):
            raise TypeError("account_id must be a string")
        if not self.account_id.strip():
            raise ValueError("account_id cannot be empty")
        if not isinstance(self.display_name, str):
            raise TypeError("display_name must be a string")
        if not isinstance(self.self_url, str):
            raise TypeError("self_url must be a string")
        if self.email_address is not None and not isinstance(self.email_address, str):
            raise TypeError("email_address must be a string or None")
        if self.active is not None and not isinstance(self.active, bool):
            raise TypeError("active must be a boolean or None")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'User':
        """Create a User from a Jira API user object.

        Args:
            data: User JSON object

        Returns:
            User instance

        Raises:
            TypeError: If data is not a dictionary
            ValueError: If accountId is missing
        """
        if not isinstance(data, dict):
            raise TypeError("user data must be a dictionary")
        if not data.get('accountId'):
            raise ValueError("Missing required field in user data: accountId")

        return cls(
            account_id=data['accountId'],
            display_name=data.get('displayName') or "",
            self_url=data.get('self') or "",
            email_address=data.get('emailAddress'),
            avatar_urls=data.get('avatarUrls'),
            active=data.get('active'),
            time_zone=data.get('timeZone'),
            account_type=data.get('accountType'),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the Jira API JSON shape."""
        data: Dict[str, Any] = {
            'accountId': self.account_id,
            'displayName': self.display_name,
            'self': self.self_url,
        }
        optional = {
            'emailAddress': self.email_address,
            'avatarUrls': self.avatar_urls,
            'active': self.active,
            'timeZone': self.time_zone,
            'accountType': self.account_type,
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        return data
