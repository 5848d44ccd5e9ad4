#!/usr/bin/env python3
"""
Pytest configuration and fixtures for the Jira sync client test suite.

Contains shared fixtures for both storage backends, the config store and a
mock Jira client.
"""

import logging
import sys
from pathlib import Path
from typing import AsyncGenerator, List
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add the parent directory to Python path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from jira_sync.models.issue import Issue
from jira_sync.models.project import Project
from jira_sync.services.config_store import FileConfigStore
from jira_sync.services.database import SQLiteStore
from jira_sync.services.jira_client import JiraClient
from jira_sync.services.json_store import JsonStore

from tests.factories import make_issue, search_page


@pytest.fixture
def sample_issues() -> List[Issue]:
    """Three issues across two projects.

    Returns:
        List[Issue]: TEST-1, TEST-2 and DEMO-1
    """
    return [
        make_issue("TEST-1", status="To Do", priority="High"),
        make_issue("TEST-2", status="In Progress", priority="Low"),
        make_issue("DEMO-1", status="Done", priority="Medium"),
    ]


@pytest.fixture
async def sqlite_store() -> AsyncGenerator[SQLiteStore, None]:
    """Create and initialize an in-memory SQL store.

    Yields:
        SQLiteStore: Initialized store
    """
    store = SQLiteStore(db_path=":memory:")
    await store.initialize()

    yield store

    await store.close()


@pytest.fixture
async def json_store(tmp_path: Path) -> AsyncGenerator[JsonStore, None]:
    """Create and initialize a compressed document store in a temp directory.

    Yields:
        JsonStore: Initialized store
    """
    store = JsonStore(tmp_path / "store", compression=True)
    await store.initialize()

    yield store

    await store.close()


@pytest.fixture(params=["json", "sqlite"])
async def any_store(request, tmp_path: Path):
    """Each storage backend in turn."""
    if request.param == "json":
        store = JsonStore(tmp_path / "store", compression=False)
    else:
        store = SQLiteStore(db_path=":memory:")
    await store.initialize()

    yield store

    await store.close()


@pytest.fixture
async def config_store(tmp_path: Path) -> FileConfigStore:
    store = FileConfigStore(tmp_path / "config")
    await store.initialize()
    return store


@pytest.fixture
def mock_jira_client() -> JiraClient:
    """Create a mock Jira client.

    ``get_projects`` returns TEST and DEMO; ``search_issues`` returns an
    empty page unless a test overrides it.

    Returns:
        JiraClient: Mock client
    """
    client = MagicMock(spec=JiraClient)
    client.get_projects = AsyncMock(return_value=[
        Project(id="p-TEST", key="TEST", name="Test Project"),
        Project(id="p-DEMO", key="DEMO", name="Demo Project"),
    ])
    client.search_issues = AsyncMock(return_value=search_page([]))
    return client


@pytest.fixture(autouse=True)
def setup_test_logging() -> None:
    """Set up logging for tests."""
    logging.basicConfig(
        level=logging.DEBUG,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    logging.getLogger('aiosqlite').setLevel(logging.WARNING)


def pytest_configure(config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "database: mark test as requiring database")
