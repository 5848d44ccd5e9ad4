#!/usr/bin/env python3
"""
Field metadata model for the Jira sync client.
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List


@dataclass
class FieldSchema:
    """Type information of a Jira field."""

    type: str
    items: Optional[str] = None
    system: Optional[str] = None
    custom: Optional[str] = None
    custom_id: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FieldSchema':
        if not isinstance(data, dict):
            raise TypeError("field schema data must be a dictionary")
        return cls(
            type=data.get('type') or "",
            items=data.get('items'),
            system=data.get('system'),
            custom=data.get('custom'),
            custom_id=data.get('customId'),
        )


@dataclass
class Field:
    """Field definition as listed by the ``field`` endpoint."""

    id: str
    name: str
    key: Optional[str] = None
    custom: bool = False
    orderable: Optional[bool] = None
    navigable: Optional[bool] = None
    searchable: Optional[bool] = None
    clause_names: List[str] = field(default_factory=list)
    schema: Optional[FieldSchema] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Field':
        """Create a Field from Jira API data.

        Raises:
            TypeError: If data is not a dictionary
            ValueError: If id or name is missing
        """
        if not isinstance(data, dict):
            raise TypeError("field data must be a dictionary")
        if not data.get('id') or not data.get('name'):
            raise ValueError("Missing required field in field data: id/name")

        schema = data.get('schema')
        return cls(
            id=data['id'],
            name=data['name'],
            key=data.get('key'),
            custom=bool(data.get('custom', False)),
            orderable=data.get('orderable'),
            navigable=data.get('navigable'),
            searchable=data.get('searchable'),
            clause_names=list(data.get('clauseNames') or []),
            schema=FieldSchema.from_dict(schema) if isinstance(schema, dict) else None,
        )
