#!/usr/bin/env python3
"""
Configuration settings for the Jira sync client.

Handles environment variables, validation, and logging setup. Nothing in
the core library reads the environment; applications load Settings here
and hand the derived JiraConfig / SyncConfig to the core.
"""

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Dict, Any
from urllib.parse import urlparse

from dotenv import load_dotenv

from ..errors import ConfigurationMissingError, InvalidConfigurationError
from ..services.jira_client import JiraAuth, JiraConfig
from ..services.sync import SyncConfig

logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}


@dataclass(frozen=True)
class Settings:
    """Application configuration for the Jira sync client."""

    jira_url: str
    jira_user: Optional[str] = None
    jira_api_token: Optional[str] = None
    jira_bearer_token: Optional[str] = None
    jira_timeout: int = 30
    jira_max_retries: int = 3
    jira_retry_delay: float = 1.0

    # Storage
    storage_dir: str = "jira_data"
    database_path: str = "jira_data/jira.db"
    storage_compression: bool = True

    # Sync
    sync_interval_minutes: int = 60
    sync_max_history: int = 100
    sync_target_projects: List[str] = field(default_factory=list)
    sync_excluded_fields: List[str] = field(default_factory=list)

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None
    log_max_size: int = 10 * 1024 * 1024
    log_backup_count: int = 5

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        self._validate_jira_url()
        self._validate_credentials()
        self._validate_numeric_fields()
        self._validate_log_level()
        self._validate_paths()

    def _validate_jira_url(self) -> None:
        if not isinstance(self.jira_url, str) or not self.jira_url.strip():
            raise ConfigurationMissingError("jira_url must be a non-empty string")
        parsed = urlparse(self.jira_url)
        if parsed.scheme not in ('http', 'https') or not parsed.netloc:
            raise InvalidConfigurationError(f"jira_url must be an http(s) URL: {self.jira_url}")

    def _validate_credentials(self) -> None:
        """Require basic credentials or a bearer token."""
        has_basic = bool(self.jira_user and self.jira_api_token)
        if not has_basic and not self.jira_bearer_token:
            raise ConfigurationMissingError(
                "Either jira_user and jira_api_token or jira_bearer_token must be set"
            )

    def _validate_numeric_fields(self) -> None:
        """Validate numeric configuration fields."""
        numeric_fields = {
            'jira_timeout': (self.jira_timeout, 1, 600),
            'jira_max_retries': (self.jira_max_retries, 0, 10),
            'sync_interval_minutes': (self.sync_interval_minutes, 0, 7 * 24 * 60),
            'sync_max_history': (self.sync_max_history, 1, 100000),
            'log_max_size': (self.log_max_size, 1024, 1024 * 1024 * 1024),
            'log_backup_count': (self.log_backup_count, 0, 100),
        }

        for field_name, (value, min_val, max_val) in numeric_fields.items():
            if not isinstance(value, int) or not (min_val <= value <= max_val):
                raise InvalidConfigurationError(
                    f"{field_name} must be an integer between {min_val} and {max_val}"
                )

        if not isinstance(self.jira_retry_delay, (int, float)) or self.jira_retry_delay < 0:
            raise InvalidConfigurationError("jira_retry_delay must be a non-negative number")

    def _validate_log_level(self) -> None:
        """Validate log level is supported."""
        if self.log_level.upper() not in VALID_LOG_LEVELS:
            raise InvalidConfigurationError(f"log_level must be one of: {sorted(VALID_LOG_LEVELS)}")

    def _validate_paths(self) -> None:
        """Validate file paths."""
        for name in ('storage_dir', 'database_path'):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise InvalidConfigurationError(f"{name} must be a non-empty string")

    def to_jira_config(self) -> JiraConfig:
        """Build the client connection config (basic auth preferred)."""
        if self.jira_user and self.jira_api_token:
            auth = JiraAuth.basic(self.jira_user, self.jira_api_token)
        else:
            auth = JiraAuth.bearer(self.jira_bearer_token or "")
        return JiraConfig(
            base_url=self.jira_url,
            auth=auth,
            timeout=self.jira_timeout,
            max_retries=self.jira_max_retries,
            retry_delay=self.jira_retry_delay,
        )

    def to_sync_config(self) -> SyncConfig:
        return SyncConfig(
            interval_minutes=self.sync_interval_minutes,
            max_history_count=self.sync_max_history,
            target_projects=list(self.sync_target_projects),
            excluded_fields=list(self.sync_excluded_fields),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary with secrets masked."""
        return {
            'jira_url': self.jira_url,
            'jira_user': self.jira_user,
            'jira_api_token': '***' if self.jira_api_token else None,
            'jira_bearer_token': '***' if self.jira_bearer_token else None,
            'jira_timeout': self.jira_timeout,
            'jira_max_retries': self.jira_max_retries,
            'jira_retry_delay': self.jira_retry_delay,
            'storage_dir': self.storage_dir,
            'database_path': self.database_path,
            'storage_compression': self.storage_compression,
            'sync_interval_minutes': self.sync_interval_minutes,
            'sync_max_history': self.sync_max_history,
            'sync_target_projects': list(self.sync_target_projects),
            'sync_excluded_fields': list(self.sync_excluded_fields),
            'log_level': self.log_level,
            'log_file': self.log_file,
        }


def load_config_from_env(env_file: Optional[str] = None) -> Settings:
    """Load configuration from environment variables.

    Args:
        env_file: Optional path to .env file

    Returns:
        Loaded and validated settings

    Raises:
        ConfigurationMissingError: If required variables or env_file are missing
        InvalidConfigurationError: If a value is invalid
    """
    if env_file:
        env_path = Path(env_file)
        if not env_path.exists():
            raise ConfigurationMissingError(f"Environment file not found: {env_file}")
        load_dotenv(env_path)

    if not os.getenv('JIRA_URL'):
        raise ConfigurationMissingError("Missing required environment variable: JIRA_URL")

    def parse_list(env_var: str) -> List[str]:
        value = os.getenv(env_var, '')
        return [item.strip() for item in value.split(',') if item.strip()]

    def parse_int(env_var: str, default: int, min_val: int, max_val: int) -> int:
        try:
            value = int(os.getenv(env_var, str(default)))
            if min_val <= value <= max_val:
                return value
            else:
                logger.warning(f"Invalid {env_var} value {value}, using default {default}")
                return default
        except (ValueError, TypeError):
            logger.warning(f"Invalid {env_var} value, using default {default}")
            return default

    def parse_float(env_var: str, default: float, min_val: float) -> float:
        try:
            value = float(os.getenv(env_var, str(default)))
            if value >= min_val:
                return value
            else:
                logger.warning(f"Invalid {env_var} value {value}, using default {default}")
                return default
        except (ValueError, TypeError):
            logger.warning(f"Invalid {env_var} value, using default {default}")
            return default

    def parse_bool(env_var: str, default: bool) -> bool:
        value = os.getenv(env_var, '').lower()
        if value in ('true', '1', 'yes', 'on'):
            return True
        elif value in ('false', '0', 'no', 'off'):
            return False
        else:
            return default

    storage_dir = os.getenv('STORAGE_DIR', 'jira_data')
    return Settings(
        jira_url=os.getenv('JIRA_URL', ''),
        jira_user=os.getenv('JIRA_USER') or None,
        jira_api_token=os.getenv('JIRA_API_TOKEN') or None,
        jira_bearer_token=os.getenv('JIRA_BEARER_TOKEN') or None,
        jira_timeout=parse_int('JIRA_TIMEOUT', 30, 1, 600),
        jira_max_retries=parse_int('JIRA_MAX_RETRIES', 3, 0, 10),
        jira_retry_delay=parse_float('JIRA_RETRY_DELAY', 1.0, 0.0),

        storage_dir=storage_dir,
        database_path=os.getenv('DATABASE_PATH', str(Path(storage_dir) / 'jira.db')),
        storage_compression=parse_bool('STORAGE_COMPRESSION', True),

        sync_interval_minutes=parse_int('SYNC_INTERVAL_MINUTES', 60, 0, 7 * 24 * 60),
        sync_max_history=parse_int('SYNC_MAX_HISTORY', 100, 1, 100000),
        sync_target_projects=parse_list('SYNC_TARGET_PROJECTS'),
        sync_excluded_fields=parse_list('SYNC_EXCLUDED_FIELDS'),

        log_level=os.getenv('LOG_LEVEL', 'INFO').upper(),
        log_file=os.getenv('LOG_FILE') or None,
        log_max_size=parse_int('LOG_MAX_SIZE', 10 * 1024 * 1024, 1024, 1024 * 1024 * 1024),
        log_backup_count=parse_int('LOG_BACKUP_COUNT', 5, 0, 100),
    )


def setup_logging(settings: Settings) -> None:
    """Set up logging configuration.

    Args:
        settings: Settings containing logging options
    """
    from logging.handlers import RotatingFileHandler

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    root_logger.handlers.clear()

    if settings.log_file:
        Path(settings.log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            settings.log_file,
            maxBytes=settings.log_max_size,
            backupCount=settings.log_backup_count,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    logging.getLogger('aiohttp').setLevel(logging.WARNING)
    logging.getLogger('aiosqlite').setLevel(logging.WARNING)


def validate_config(settings: Settings) -> List[str]:
    """Validate configuration and return list of warnings.

    Args:
        settings: Configuration to validate

    Returns:
        List of warning messages
    """
    warnings = []

    if settings.jira_url.startswith('http://'):
        warnings.append("JIRA_URL uses plain http; credentials are sent unencrypted")

    if settings.jira_user and settings.jira_api_token and settings.jira_bearer_token:
        warnings.append("Both basic credentials and a bearer token are set; basic auth will be used")

    if not settings.sync_target_projects:
        warnings.append("No SYNC_TARGET_PROJECTS configured - every visible project will be synced")

    if settings.sync_interval_minutes < 5:
        warnings.append("SYNC_INTERVAL_MINUTES is very short, consider the Jira rate limits")

    if settings.jira_max_retries == 0:
        warnings.append("JIRA_MAX_RETRIES is 0 - transient network errors will fail immediately")

    db_path = Path(settings.database_path)
    if not db_path.parent.exists():
        warnings.append(f"Database directory does not exist: {db_path.parent}")

    if settings.log_file:
        log_path = Path(settings.log_file)
        if not log_path.parent.exists():
            warnings.append(f"Log directory does not exist: {log_path.parent}")

    return warnings
