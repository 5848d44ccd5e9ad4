#!/usr/bin/env python3
"""
Jira sync client.

Typed models for the Jira REST API, an async client, local persistence of
issues and their change history (JSON documents or SQLite), and an
incremental sync service.
"""

from .errors import (
    JiraSyncError, RequestFailedError, JsonParsingError, JiraAPIError, AuthenticationError,
    NotFoundError, RateLimitExceededError, InvalidConfigurationError, ConfigurationMissingError,
    InvalidInputError, StorageIOError, SerializationError, DatabaseError, InvalidDataError,
    InvalidFilterError, UnexpectedError,
)
from .models import (
    ChangeType, DateRange, FilterConfig, HistoryAuthor, HistoryFilter, HistorySortOrder,
    HistoryStats, Issue, IssueFields, IssueFilter, IssueHistory, IssueType, Priority, Project,
    SearchParams, SearchResult, SortOrder, Status, StatusCategory, StorageStats, User,
)
from .services import (
    JiraAuth, JiraClient, JiraConfig, JsonStore, PersistenceStore, SQLiteStore,
    SyncConfig, SyncResult, SyncService, SyncState, TimeBasedFilter, parse_changelog,
)
from .utils.constants import CLIENT_INFO

__version__ = CLIENT_INFO['VERSION']

__all__ = [
    "JiraSyncError", "RequestFailedError", "JsonParsingError", "JiraAPIError",
    "AuthenticationError", "NotFoundError", "RateLimitExceededError",
    "InvalidConfigurationError", "ConfigurationMissingError", "InvalidInputError",
    "StorageIOError", "SerializationError", "DatabaseError", "InvalidDataError",
    "InvalidFilterError", "UnexpectedError",
    "ChangeType", "DateRange", "FilterConfig", "HistoryAuthor", "HistoryFilter",
    "HistorySortOrder", "HistoryStats", "Issue", "IssueFields", "IssueFilter", "IssueHistory",
    "IssueType", "Priority", "Project", "SearchParams", "SearchResult", "SortOrder", "Status",
    "StatusCategory", "StorageStats", "User",
    "JiraAuth", "JiraClient", "JiraConfig", "JsonStore", "PersistenceStore", "SQLiteStore",
    "SyncConfig", "SyncResult", "SyncService", "SyncState", "TimeBasedFilter", "parse_changelog",
    "__version__",
]
