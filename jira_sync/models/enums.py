#!/usr/bin/env python3
"""
Enumerations for the Jira sync client.

Contains all enum definitions used throughout the library.
"""

from enum import Enum
from typing import List


class SortOrder(Enum):
    """Sort order applied to stored issues."""
    CREATED_ASC = "CreatedAsc"
    CREATED_DESC = "CreatedDesc"
    UPDATED_ASC = "UpdatedAsc"
    UPDATED_DESC = "UpdatedDesc"
    KEY_ASC = "KeyAsc"
    KEY_DESC = "KeyDesc"
    PRIORITY_ASC = "PriorityAsc"
    PRIORITY_DESC = "PriorityDesc"

    @classmethod
    def from_string(cls, value: str) -> 'SortOrder':
        """Create SortOrder from string with case-insensitive matching.

        Args:
            value: Sort order string to parse (e.g. "CreatedDesc" or "created_desc")

        Returns:
            SortOrder instance

        Raises:
            TypeError: If value is not a string
            ValueError: If value doesn't match any sort order
        """
        if not isinstance(value, str):
            raise TypeError("value must be a string")

        normalized = value.replace('_', '').upper()
        for order in cls:
            if order.value.upper() == normalized:
                return order

        raise ValueError(f"Invalid sort order: {value}. Valid options: {[o.value for o in cls]}")

    @classmethod
    def get_all_values(cls) -> List[str]:
        """Get all sort order values as a list."""
        return [order.value for order in cls]

    @property
    def is_descending(self) -> bool:
        return self.value.endswith("Desc")


class HistorySortOrder(Enum):
    """Sort order applied to stored history rows."""
    TIMESTAMP_ASC = "TimestampAsc"
    TIMESTAMP_DESC = "TimestampDesc"
    ISSUE_KEY = "IssueKey"
    FIELD_NAME = "FieldName"

    @classmethod
    def from_string(cls, value: str) -> 'HistorySortOrder':
        """Create HistorySortOrder from string with case-insensitive matching."""
        if not isinstance(value, str):
            raise TypeError("value must be a string")

        normalized = value.replace('_', '').upper()
        for order in cls:
            if order.value.upper() == normalized:
                return order

        raise ValueError(f"Invalid history sort order: {value}. Valid options: {[o.value for o in cls]}")


class ChangeType(Enum):
    """Classification of a single field change."""
    STATUS_CHANGE = "StatusChange"
    ASSIGNEE_CHANGE = "AssigneeChange"
    PRIORITY_CHANGE = "PriorityChange"
    CUSTOM_FIELD = "CustomField"
    FIELD_UPDATE = "FieldUpdate"

    @classmethod
    def from_string(cls, value: str) -> 'ChangeType':
        """Create ChangeType from string with case-insensitive matching."""
        if not isinstance(value, str):
            raise TypeError("value must be a string")

        value_upper = value.upper()
        for change_type in cls:
            if change_type.value.upper() == value_upper:
                return change_type

        raise ValueError(f"Invalid change type: {value}. Valid options: {[c.value for c in cls]}")

    @classmethod
    def classify(cls, field_name: str, field_id: object = None) -> 'ChangeType':
        """Derive the change type from a field name and optional field id."""
        if field_name == "status":
            return cls.STATUS_CHANGE
        if field_name == "assignee":
            return cls.ASSIGNEE_CHANGE
        if field_name == "priority":
            return cls.PRIORITY_CHANGE
        if field_id is not None:
            return cls.CUSTOM_FIELD
        return cls.FIELD_UPDATE

    @property
    def label(self) -> str:
        """Group label used when partitioning histories by change type."""
        labels = {
            ChangeType.STATUS_CHANGE: "Status Changes",
            ChangeType.ASSIGNEE_CHANGE: "Assignee Changes",
            ChangeType.PRIORITY_CHANGE: "Priority Changes",
            ChangeType.CUSTOM_FIELD: "Custom Field Changes",
            ChangeType.FIELD_UPDATE: "Other Changes",
        }
        return labels[self]


class SyncStatus(Enum):
    """States of the sync service state machine."""
    IDLE = "idle"
    SYNCING = "syncing"
    COMPLETED = "completed"
    ERROR = "error"


class AuthType(Enum):
    """Authentication schemes supported by the Jira client."""
    BASIC = "basic"
    BEARER = "bearer"

    @classmethod
    def from_string(cls, value: str) -> 'AuthType':
        """Create AuthType from string with case-insensitive matching."""
        if not isinstance(value, str):
            raise TypeError("value must be a string")

        value_lower = value.strip().lower()
        for auth_type in cls:
            if auth_type.value == value_lower:
                return auth_type

        raise ValueError(f"Invalid auth type: {value}. Valid options: {[a.value for a in cls]}")
