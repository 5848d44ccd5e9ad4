#!/usr/bin/env python3
"""
Exception hierarchy for the Jira sync client.

Every failure raised by the client, the stores and the sync service derives
from JiraSyncError so callers can catch the whole family at once.
"""

from typing import Optional, Dict, Any


class JiraSyncError(Exception):
    """Base class for all library errors."""
    pass


class RequestFailedError(JiraSyncError):
    """Transport level failure (connection refused, timeout, DNS...)."""
    pass


class JsonParsingError(JiraSyncError):
    """A response or payload could not be (de)serialized as JSON."""
    pass


class JiraAPIError(JiraSyncError):
    """Non-2xx response from the Jira REST API."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_data: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data or {}


class AuthenticationError(JiraAPIError):
    """Credentials were rejected (401/403)."""
    pass


class NotFoundError(JiraAPIError):
    """Requested resource does not exist (404)."""
    pass


class RateLimitExceededError(JiraAPIError):
    """Server throttled the client (429)."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = 429,
        response_data: Optional[Dict[str, Any]] = None,
        retry_after: Optional[float] = None
    ):
        super().__init__(message, status_code, response_data)
        self.retry_after = retry_after


class InvalidConfigurationError(JiraSyncError):
    """Configuration value present but malformed."""
    pass


class ConfigurationMissingError(JiraSyncError):
    """Required configuration value is missing."""
    pass


class InvalidInputError(JiraSyncError):
    """Caller supplied an argument the operation cannot accept."""
    pass


class StorageIOError(JiraSyncError):
    """Filesystem failure while reading or writing persisted data."""
    pass


class SerializationError(JiraSyncError):
    """Persisted data could not be encoded or decoded."""
    pass


class DatabaseError(JiraSyncError):
    """Custom exception for database operations."""
    pass


class InvalidDataError(JiraSyncError):
    """Input data is structurally invalid (e.g. malformed changelog)."""
    pass


class InvalidFilterError(JiraSyncError):
    """A filter failed validation."""
    pass


class UnexpectedError(JiraSyncError):
    """Anything that does not fit the other categories."""
    pass
