#!/usr/bin/env python3
"""
Constants for the Jira sync client.

Contains version info, API defaults and storage layout names.
"""

from typing import Dict, List, Final

CLIENT_INFO: Final[Dict[str, str]] = {
    'NAME': 'jira-sync-client',
    'VERSION': '0.1.0',
}

# REST API
API_PATH: Final[str] = "rest/api/3"
DEFAULT_TIMEOUT: Final[int] = 30
DEFAULT_MAX_RETRIES: Final[int] = 3
DEFAULT_RETRY_DELAY: Final[float] = 1.0
DEFAULT_SEARCH_MAX_RESULTS: Final[int] = 50

# Sync
SYNC_PAGE_SIZE: Final[int] = 1000
DEFAULT_SYNC_WINDOW_HOURS: Final[int] = 24
DEFAULT_CHUNK_LOOKBACK_DAYS: Final[int] = 30
DEFAULT_SYNC_FIELDS: Final[List[str]] = [
    "key",
    "summary",
    "status",
    "priority",
    "issuetype",
    "reporter",
    "created",
    "updated",
    "project",
]

# Jira JQL datetime format
JQL_DATETIME_FORMAT: Final[str] = "%Y-%m-%d %H:%M"

# Document store layout
ISSUES_DIR: Final[str] = "issues"
FILTERS_DIR: Final[str] = "filters"
HISTORY_DIR: Final[str] = "history"
METADATA_DIR: Final[str] = "metadata"
ISSUES_FILE: Final[str] = "issues.json"
FILTERS_FILE: Final[str] = "filter_configs.json"
HISTORY_FILE: Final[str] = "history.json"
METADATA_FILE: Final[str] = "metadata.json"
