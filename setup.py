#!/usr/bin/env python3
"""
Setup script for the Jira sync client.

Async Jira REST client with local issue/history persistence and
incremental synchronization.
"""

import sys
from pathlib import Path
from typing import List, Dict, Any

from setuptools import setup, find_packages


def read_file(filepath: str) -> str:
    """Read file contents safely."""
    try:
        with open(filepath, 'r', encoding='utf-8') as f:
            return f.read()
    except FileNotFoundError:
        return ""


def get_version() -> str:
    """Get version from the constants file."""
    version_file = Path(__file__).parent / "jira_sync" / "utils" / "constants.py"
    if version_file.exists():
        content = read_file(str(version_file))
        for line in content.split('\n'):
            if "'VERSION':" in line and "CLIENT_INFO" in content:
                # Extract version from CLIENT_INFO dict
                return line.split("'")[3]
    return "0.1.0"  # Fallback version


def read_requirements(filename: str, fallback: List[str]) -> List[str]:
    """Read a requirements file, skipping comments and blank lines."""
    requirements_file = Path(__file__).parent / filename
    if requirements_file.exists():
        with open(requirements_file, 'r', encoding='utf-8') as f:
            return [
                line.strip()
                for line in f
                if line.strip() and not line.startswith('#')
            ]
    return fallback


def get_requirements() -> List[str]:
    """Get requirements from requirements.txt."""
    return read_requirements("requirements.txt", [
        "aiohttp>=3.8.0,<4.0.0",
        "aiosqlite>=0.17.0,<1.0.0",
        "python-dotenv>=0.19.0,<2.0.0",
    ])


def get_dev_requirements() -> List[str]:
    """Get development requirements."""
    return read_requirements("requirements-dev.txt", [
        "pytest>=7.0.0",
        "pytest-asyncio>=0.21.0",
        "pytest-cov>=4.0.0",
        "pytest-mock>=3.10.0",
        "black>=23.0.0",
        "flake8>=6.0.0",
        "mypy>=1.0.0",
        "isort>=5.12.0",
    ])


def validate_python_version() -> None:
    """Validate Python version compatibility."""
    if sys.version_info < (3, 9):
        raise RuntimeError(
            "This package requires Python 3.9 or higher. "
            f"You are using Python {sys.version_info.major}.{sys.version_info.minor}."
        )


def get_classifiers() -> List[str]:
    """Get package classifiers."""
    return [
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Bug Tracking",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3 :: Only",
        "Operating System :: OS Independent",
        "Framework :: AsyncIO",
        "Typing :: Typed",
    ]


# Validate Python version before proceeding
validate_python_version()

setup_config: Dict[str, Any] = {
    "name": "jira-sync-client",
    "version": get_version(),
    "description": "Async Jira client with local issue persistence and incremental sync",
    "long_description": read_file(str(Path(__file__).parent / "README.md")),
    "long_description_content_type": "text/markdown",
    "packages": find_packages(exclude=['tests*', 'docs*', 'examples*']),
    "classifiers": get_classifiers(),
    "keywords": "jira atlassian issue-tracking sync async sqlite",
    "license": "MIT",
    "python_requires": ">=3.9",
    "install_requires": get_requirements(),
    "extras_require": {
        "dev": get_dev_requirements(),
        "testing": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.0.0",
            "pytest-mock>=3.10.0",
        ],
        "linting": [
            "black>=23.0.0",
            "flake8>=6.0.0",
            "mypy>=1.0.0",
            "isort>=5.12.0",
        ],
    },
    "include_package_data": True,
    "package_data": {
        "jira_sync": ["py.typed"],
    },
    "zip_safe": False,
}

if __name__ == "__main__":
    setup(**setup_config)
