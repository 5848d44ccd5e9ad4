#!/usr/bin/env python3
"""
Services package for the Jira sync client.

Contains the Jira REST client, the two persistence backends, the changelog
parser, the time-window filter and the sync service.
"""

from .changelog_parser import (
    parse_changelog, extract_histories, extract_field_changes,
    generate_change_summary, group_by_change_type, filter_new_histories,
)
from .config_store import AppConfig, ConfigStore, FileConfigStore
from .database import SQLiteStore
from .jira_client import JiraAuth, JiraClient, JiraConfig
from .json_store import JsonStore
from .persistence import PersistenceStore, deduplicate_issues, merge_issues
from .sync import (
    ProjectSyncStats, SyncConfig, SyncResult, SyncService, SyncServiceStats, SyncState,
)
from .time_filter import TimeBasedFilter, TimeChunk, format_jira_datetime, parse_jira_datetime

__all__ = [
    "parse_changelog", "extract_histories", "extract_field_changes",
    "generate_change_summary", "group_by_change_type", "filter_new_histories",
    "AppConfig", "ConfigStore", "FileConfigStore",
    "SQLiteStore",
    "JiraAuth", "JiraClient", "JiraConfig",
    "JsonStore",
    "PersistenceStore", "deduplicate_issues", "merge_issues",
    "ProjectSyncStats", "SyncConfig", "SyncResult", "SyncService", "SyncServiceStats", "SyncState",
    "TimeBasedFilter", "TimeChunk", "format_jira_datetime", "parse_jira_datetime",
]
