#!/usr/bin/env python3
"""
Jira REST client.

Thin aiohttp wrapper that authenticates requests, retries transport
failures, maps error responses onto the library's exception types and
converts JSON payloads to models.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any
from urllib.parse import quote, urlparse

import aiohttp
from aiohttp import ClientTimeout, ClientError

from ..errors import (
    AuthenticationError, InvalidConfigurationError, JiraAPIError, JsonParsingError,
    NotFoundError, RateLimitExceededError, RequestFailedError,
)
from ..models.enums import AuthType
from ..models.field import Field
from ..models.issue import Issue, IssueType, Priority, StatusCategory
from ..models.project import Project
from ..models.search import SearchParams, SearchResult
from ..models.user import User
from ..utils.constants import API_PATH, DEFAULT_MAX_RETRIES, DEFAULT_RETRY_DELAY, DEFAULT_TIMEOUT


@dataclass(frozen=True)
class JiraAuth:
    """Credentials for basic (user + API token) or bearer authentication."""

    auth_type: AuthType
    username: Optional[str] = None
    api_token: Optional[str] = None
    token: Optional[str] = None

    def __post_init__(self) -> None:
        if self.auth_type is AuthType.BASIC:
            if not self.username or not self.api_token:
                raise InvalidConfigurationError("Basic auth requires username and api_token")
        elif self.auth_type is AuthType.BEARER:
            if not self.token:
                raise InvalidConfigurationError("Bearer auth requires a token")
        else:
            raise InvalidConfigurationError(f"Unsupported auth type: {self.auth_type}")

    @classmethod
    def basic(cls, username: str, api_token: str) -> 'JiraAuth':
        return cls(AuthType.BASIC, username=username, api_token=api_token)

    @classmethod
    def bearer(cls, token: str) -> 'JiraAuth':
        return cls(AuthType.BEARER, token=token)

    def to_dict(self) -> Dict[str, Any]:
        if self.auth_type is AuthType.BASIC:
            return {'type': 'basic', 'username': self.username, 'api_token': self.api_token}
        return {'type': 'bearer', 'token': self.token}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'JiraAuth':
        try:
            auth_type = AuthType.from_string(data.get('type', ''))
        except (TypeError, ValueError) as e:
            raise InvalidConfigurationError(str(e)) from e
        if auth_type is AuthType.BASIC:
            return cls.basic(data.get('username') or "", data.get('api_token') or "")
        return cls.bearer(data.get('token') or "")


@dataclass(frozen=True)
class JiraConfig:
    """Connection settings for a Jira instance."""

    base_url: str
    auth: JiraAuth
    timeout: int = DEFAULT_TIMEOUT
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay: float = DEFAULT_RETRY_DELAY

    def __post_init__(self) -> None:
        """Validate the base URL and retry settings.

        Raises:
            InvalidConfigurationError: If a value is invalid
        """
        if not isinstance(self.base_url, str) or not self.base_url.strip():
            raise InvalidConfigurationError("base_url must be a non-empty string")
        parsed = urlparse(self.base_url)
        if parsed.scheme not in ('http', 'https') or not parsed.netloc:
            raise InvalidConfigurationError(f"Invalid base URL: {self.base_url}")
        if not isinstance(self.auth, JiraAuth):
            raise InvalidConfigurationError("auth must be a JiraAuth instance")
        if not isinstance(self.timeout, int) or self.timeout <= 0:
            raise InvalidConfigurationError("timeout must be a positive integer")
        if not isinstance(self.max_retries, int) or self.max_retries < 0:
            raise InvalidConfigurationError("max_retries must be a non-negative integer")
        if not isinstance(self.retry_delay, (int, float)) or self.retry_delay < 0:
            raise InvalidConfigurationError("retry_delay must be a non-negative number")

    @property
    def api_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/{API_PATH}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'base_url': self.base_url,
            'auth': self.auth.to_dict(),
            'timeout': self.timeout,
            'max_retries': self.max_retries,
            'retry_delay': self.retry_delay,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'JiraConfig':
        if not isinstance(data, dict) or 'base_url' not in data or 'auth' not in data:
            raise InvalidConfigurationError("Jira config requires base_url and auth")
        return cls(
            base_url=data['base_url'],
            auth=JiraAuth.from_dict(data['auth']),
            timeout=int(data.get('timeout', DEFAULT_TIMEOUT)),
            max_retries=int(data.get('max_retries', DEFAULT_MAX_RETRIES)),
            retry_delay=float(data.get('retry_delay', DEFAULT_RETRY_DELAY)),
        )


class JiraClient:
    """Async client for the Jira REST API v3."""

    def __init__(self, config: JiraConfig) -> None:
        """Initialize Jira client.

        Args:
            config: Connection settings

        Raises:
            TypeError: If config is not a JiraConfig
        """
        if not isinstance(config, JiraConfig):
            raise TypeError("config must be a JiraConfig instance")

        self.config = config
        self.api_url = config.api_url
        self._session: Optional[aiohttp.ClientSession] = None
        self.logger = logging.getLogger(__name__)

    def _session_kwargs(self) -> Dict[str, Any]:
        headers = {
            'Accept': 'application/json',
            'Content-Type': 'application/json'
        }
        kwargs: Dict[str, Any] = {'timeout': ClientTimeout(total=self.config.timeout)}
        auth = self.config.auth
        if auth.auth_type is AuthType.BASIC:
            kwargs['auth'] = aiohttp.BasicAuth(auth.username, auth.api_token)
        else:
            headers['Authorization'] = f"Bearer {auth.token}"
        kwargs['headers'] = headers
        return kwargs

    @asynccontextmanager
    async def _get_session(self):
        """Get aiohttp session with proper configuration."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(**self._session_kwargs())
        yield self._session

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    @staticmethod
    def _error_message(status: int, error_data: Dict[str, Any]) -> str:
        messages = list(error_data.get('errorMessages') or [])
        if error_data.get('message'):
            messages.append(error_data['message'])
        for key, value in (error_data.get('errors') or {}).items():
            messages.append(f"{key}: {value}")
        detail = "; ".join(str(m) for m in messages) or "Unknown error"
        return f"Jira API error: {status} - {detail}"

    async def _raise_for_status(self, response: aiohttp.ClientResponse) -> None:
        error_data: Dict[str, Any] = {}
        try:
            payload = await response.json(content_type=None)
            if isinstance(payload, dict):
                error_data = payload
        except (ValueError, ClientError):
            self.logger.debug(f"Error response {response.status} has no JSON body")

        status = response.status
        message = self._error_message(status, error_data)
        if status in (401, 403):
            raise AuthenticationError(message, status_code=status, response_data=error_data)
        if status == 404:
            raise NotFoundError(message, status_code=status, response_data=error_data)
        if status == 429:
            retry_after = response.headers.get('Retry-After')
            raise RateLimitExceededError(
                message,
                status_code=status,
                response_data=error_data,
                retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None
            )
        raise JiraAPIError(message, status_code=status, response_data=error_data)

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        retry_count: int = 0
    ) -> Any:
        """Make HTTP request to Jira API with retry logic."""
        url = f"{self.api_url}/{endpoint.lstrip('/')}"

        try:
            async with self._get_session() as session:
                if method.upper() == 'GET':
                    response = await session.get(url, params=params)
                elif method.upper() == 'POST':
                    response = await session.post(url, json=data, params=params)
                else:
                    raise ValueError(f"Unsupported HTTP method: {method}")

                try:
                    if response.status == 204:
                        return {}
                    if not 200 <= response.status < 300:
                        await self._raise_for_status(response)
                    try:
                        return await response.json(content_type=None)
                    except ValueError as e:
                        raise JsonParsingError(f"Invalid JSON in response from {endpoint}: {e}") from e
                finally:
                    response.release()

        except (ClientError, asyncio.TimeoutError) as e:
            if retry_count < self.config.max_retries:
                self.logger.warning(f"Request failed, retrying in {self.config.retry_delay}s: {e}")
                await asyncio.sleep(self.config.retry_delay)
                return await self._make_request(method, endpoint, params, data, retry_count + 1)
            raise RequestFailedError(f"Request failed after {self.config.max_retries} retries: {e}") from e

    def _convert_list(self, items: Any, factory, what: str) -> List[Any]:
        """Convert a JSON list, skipping entries that do not validate."""
        if not isinstance(items, list):
            raise JsonParsingError(f"Expected a list of {what}")
        converted = []
        for item in items:
            try:
                converted.append(factory(item))
            except (ValueError, TypeError, KeyError) as e:
                identifier = item.get('key') or item.get('id') if isinstance(item, dict) else None
                self.logger.warning(f"Skipping invalid {what} {identifier or 'unknown'}: {e}")
        return converted

    # =============================================================================
    # USER OPERATIONS
    # =============================================================================

    async def get_current_user(self) -> User:
        """Get the user the client is authenticated as."""
        data = await self._make_request('GET', 'myself')
        try:
            return User.from_dict(data)
        except (ValueError, TypeError) as e:
            raise JsonParsingError(f"Invalid user payload: {e}") from e

    async def test_connection(self) -> bool:
        """Test Jira API connection and permissions."""
        try:
            await self.get_current_user()
            return True
        except (JiraAPIError, RequestFailedError, JsonParsingError) as e:
            self.logger.warning(f"Jira connection test failed: {e}")
            return False

    async def search_users(self, query: str, max_results: int = 50) -> List[User]:
        data = await self._make_request('GET', 'user/search', params={'query': query, 'maxResults': max_results})
        return self._convert_list(data, User.from_dict, "user")

    # =============================================================================
    # PROJECT AND METADATA OPERATIONS
    # =============================================================================

    async def get_projects(self) -> List[Project]:
        """Get all projects visible to the user.

        Returns:
            List of Project models

        Raises:
            JiraAPIError: If API request fails
        """
        data = await self._make_request('GET', 'project')
        return self._convert_list(data, Project.from_dict, "project")

    async def get_priorities(self) -> List[Priority]:
        data = await self._make_request('GET', 'priority')
        return self._convert_list(data, Priority.from_dict, "priority")

    async def get_issue_types(self) -> List[IssueType]:
        data = await self._make_request('GET', 'issuetype')
        return self._convert_list(data, IssueType.from_dict, "issue type")

    async def get_fields(self) -> List[Field]:
        data = await self._make_request('GET', 'field')
        return self._convert_list(data, Field.from_dict, "field")

    async def get_status_categories(self) -> List[StatusCategory]:
        data = await self._make_request('GET', 'statuscategory')
        return self._convert_list(data, StatusCategory.from_dict, "status category")

    # =============================================================================
    # ISSUE OPERATIONS
    # =============================================================================

    async def search_issues(self, jql: str, params: Optional[SearchParams] = None) -> SearchResult:
        """Search issues with JQL.

        Args:
            jql: JQL query string
            params: Pagination, field selection and expansion

        Returns:
            One page of results

        Raises:
            JiraAPIError: If API request fails
            JsonParsingError: If the response cannot be converted
        """
        if not isinstance(jql, str) or not jql.strip():
            raise ValueError("jql must be a non-empty string")
        params = params or SearchParams()

        data = await self._make_request('GET', 'search', params=params.to_query_params(jql))
        try:
            return SearchResult.from_dict(data)
        except (ValueError, TypeError, KeyError) as e:
            raise JsonParsingError(f"Invalid search response: {e}") from e

    async def get_issue(self, issue_key: str, expand: Optional[List[str]] = None) -> Issue:
        """Get a single issue by key.

        Raises:
            NotFoundError: If the issue does not exist
        """
        if not isinstance(issue_key, str) or not issue_key.strip():
            raise ValueError("issue_key must be a non-empty string")

        params = {'expand': ",".join(expand)} if expand else None
        data = await self._make_request('GET', f"issue/{quote(issue_key)}", params=params)
        try:
            return Issue.from_dict(data)
        except (ValueError, TypeError, KeyError) as e:
            raise JsonParsingError(f"Invalid issue payload for {issue_key}: {e}") from e
