"""Data models for the Jira sync client."""

from .enums import SortOrder, HistorySortOrder, ChangeType, SyncStatus, AuthType
from .user import User
from .project import Project
from .issue import (
    Issue, IssueFields, Status, StatusCategory, Priority, IssueType,
    parse_jira_iso, description_text,
)
from .field import Field, FieldSchema
from .search import SearchParams, SearchResult
from .filters import DateRange, IssueFilter, FilterConfig, StorageStats, sort_issues
from .history import HistoryAuthor, IssueHistory, HistoryFilter, HistoryStats, sort_histories

__all__ = [
    'SortOrder', 'HistorySortOrder', 'ChangeType', 'SyncStatus', 'AuthType',
    'User', 'Project',
    'Issue', 'IssueFields', 'Status', 'StatusCategory', 'Priority', 'IssueType',
    'parse_jira_iso', 'description_text',
    'Field', 'FieldSchema',
    'SearchParams', 'SearchResult',
    'DateRange', 'IssueFilter', 'FilterConfig', 'StorageStats', 'sort_issues',
    'HistoryAuthor', 'IssueHistory', 'HistoryFilter', 'HistoryStats', 'sort_histories',
]
