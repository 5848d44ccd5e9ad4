#!/usr/bin/env python3
"""
Search request/response models for the Jira sync client.
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List

from ..utils.constants import DEFAULT_SEARCH_MAX_RESULTS
from .issue import Issue


@dataclass
class SearchParams:
    """Pagination, field selection and expansion for an issue search."""

    start_at: int = 0
    max_results: int = DEFAULT_SEARCH_MAX_RESULTS
    fields: Optional[List[str]] = None
    expand: Optional[List[str]] = None
    validate_query: Optional[bool] = None

    def __post_init__(self) -> None:
        if not isinstance(self.start_at, int) or self.start_at < 0:
            raise ValueError("start_at must be a non-negative integer")
        if not isinstance(self.max_results, int) or self.max_results <= 0:
            raise ValueError("max_results must be a positive integer")

    def to_query_params(self, jql: str) -> Dict[str, Any]:
        """Build the query string parameters of a ``search`` request."""
        params: Dict[str, Any] = {
            'jql': jql,
            'startAt': self.start_at,
            'maxResults': self.max_results,
        }
        if self.fields:
            params['fields'] = ",".join(self.fields)
        if self.expand:
            params['expand'] = ",".join(self.expand)
        if self.validate_query is not None:
            params['validateQuery'] = "true" if self.validate_query else "false"
        return params


@dataclass
class SearchResult:
    """One page of search results."""

    start_at: int
    max_results: int
    total: int
    issues: List[Issue] = field(default_factory=list)
    expand: Optional[str] = None
    names: Optional[Dict[str, str]] = None
    schema: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SearchResult':
        """Create a SearchResult from a ``search`` response.

        Raises:
            TypeError: If data is not a dictionary
            ValueError: If an issue payload is malformed
        """
        if not isinstance(data, dict):
            raise TypeError("search result data must be a dictionary")

        issues = [Issue.from_dict(item) for item in data.get('issues') or []]
        return cls(
            start_at=int(data.get('startAt', 0)),
            max_results=int(data.get('maxResults', len(issues))),
            total=int(data.get('total', len(issues))),
            issues=issues,
            expand=data.get('expand'),
            names=data.get('names'),
            schema=data.get('schema'),
        )

    @property
    def has_more(self) -> bool:
        return self.start_at + len(self.issues) < self.total
