#!/usr/bin/env python3
"""
Configuration package for the Jira sync client.

Contains settings loading, validation, and logging setup.
"""

from .settings import Settings, load_config_from_env, setup_logging, validate_config

__all__ = [
    "Settings",
    "load_config_from_env",
    "setup_logging",
    "validate_config",
]
