#!/usr/bin/env python3
"""
File-based configuration store.

Persists the Jira connection config, saved filter configs (one file per
filter) and application settings as JSON files under one directory.
"""

import asyncio
import json
import logging
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..errors import InvalidInputError, SerializationError, StorageIOError
from ..models.filters import FilterConfig
from ..models.issue import format_iso, parse_jira_iso
from .jira_client import JiraConfig

JIRA_CONFIG_FILE = "jira_config.json"
APP_CONFIG_FILE = "app_config.json"
FILTERS_SUBDIR = "filters"


@dataclass
class AppConfig:
    """Application-level settings."""

    app_name: str = "JIRA API Client"
    version: str = "0.1.0"
    default_sync_interval_minutes: int = 60
    default_max_results: int = 100
    debug_mode: bool = False
    log_level: str = "info"
    custom_settings: Dict[str, Any] = field(default_factory=dict)
    last_updated: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def _touch(self) -> None:
        self.last_updated = datetime.now(timezone.utc)

    def set_custom_setting(self, key: str, value: Any) -> None:
        self.custom_settings[key] = value
        self._touch()

    def get_custom_setting(self, key: str, default: Any = None) -> Any:
        return self.custom_settings.get(key, default)

    def set_debug_mode(self, enabled: bool) -> None:
        self.debug_mode = enabled
        self.log_level = "debug" if enabled else "info"
        self._touch()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'app_name': self.app_name,
            'version': self.version,
            'default_sync_interval_minutes': self.default_sync_interval_minutes,
            'default_max_results': self.default_max_results,
            'debug_mode': self.debug_mode,
            'log_level': self.log_level,
            'custom_settings': self.custom_settings,
            'last_updated': format_iso(self.last_updated),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AppConfig':
        if not isinstance(data, dict):
            raise TypeError("app config data must be a dictionary")
        defaults = cls()
        return cls(
            app_name=data.get('app_name', defaults.app_name),
            version=data.get('version', defaults.version),
            default_sync_interval_minutes=int(
                data.get('default_sync_interval_minutes', defaults.default_sync_interval_minutes)
            ),
            default_max_results=int(data.get('default_max_results', defaults.default_max_results)),
            debug_mode=bool(data.get('debug_mode', defaults.debug_mode)),
            log_level=data.get('log_level', defaults.log_level),
            custom_settings=dict(data.get('custom_settings') or {}),
            last_updated=parse_jira_iso(data.get('last_updated')) or defaults.last_updated,
        )


class ConfigStore(ABC):
    """Storage of connection, filter and application configuration."""

    @abstractmethod
    async def initialize(self) -> None: ...

    @abstractmethod
    async def save_jira_config(self, config: JiraConfig) -> None: ...

    @abstractmethod
    async def load_jira_config(self) -> Optional[JiraConfig]: ...

    @abstractmethod
    async def save_filter_config(self, config: FilterConfig) -> None: ...

    @abstractmethod
    async def load_filter_config(self, config_id: str) -> Optional[FilterConfig]: ...

    @abstractmethod
    async def list_filter_configs(self) -> List[FilterConfig]: ...

    @abstractmethod
    async def delete_filter_config(self, config_id: str) -> bool: ...

    @abstractmethod
    async def save_app_config(self, config: AppConfig) -> None: ...

    @abstractmethod
    async def load_app_config(self) -> AppConfig: ...

    @abstractmethod
    async def clear(self) -> None: ...


class FileConfigStore(ConfigStore):
    """ConfigStore backed by plain JSON files."""

    def __init__(self, config_dir: Union[str, Path]) -> None:
        if not isinstance(config_dir, (str, Path)):
            raise TypeError("config_dir must be a string or Path")
        if not str(config_dir).strip():
            raise ValueError("config_dir cannot be empty")

        self.config_dir = Path(config_dir)
        self.logger = logging.getLogger(__name__)

    @property
    def filters_dir(self) -> Path:
        return self.config_dir / FILTERS_SUBDIR

    def _filter_path(self, config_id: str) -> Path:
        if not config_id or any(sep in config_id for sep in ('/', '\\')) or config_id in ('.', '..'):
            raise InvalidInputError(f"Invalid filter config id: {config_id!r}")
        return self.filters_dir / f"{config_id}.json"

    @staticmethod
    def _read_sync(path: Path) -> Optional[Any]:
        if not path.exists():
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except ValueError as e:
            raise SerializationError(f"Failed to decode {path}: {e}") from e
        except OSError as e:
            raise StorageIOError(f"Failed to read {path}: {e}") from e

    @staticmethod
    def _write_sync(path: Path, data: Any) -> None:
        try:
            text = json.dumps(data, indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Failed to encode {path.name}: {e}") from e
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding='utf-8')
        except OSError as e:
            raise StorageIOError(f"Failed to write {path}: {e}") from e

    async def _read(self, path: Path) -> Optional[Any]:
        return await asyncio.to_thread(self._read_sync, path)

    async def _write(self, path: Path, data: Any) -> None:
        await asyncio.to_thread(self._write_sync, path, data)

    async def initialize(self) -> None:
        try:
            await asyncio.to_thread(self.filters_dir.mkdir, parents=True, exist_ok=True)
        except OSError as e:
            raise StorageIOError(f"Failed to create config directory: {e}") from e
        self.logger.info(f"Config store initialized at {self.config_dir}")

    async def save_jira_config(self, config: JiraConfig) -> None:
        await self._write(self.config_dir / JIRA_CONFIG_FILE, config.to_dict())

    async def load_jira_config(self) -> Optional[JiraConfig]:
        data = await self._read(self.config_dir / JIRA_CONFIG_FILE)
        return JiraConfig.from_dict(data) if data is not None else None

    async def save_filter_config(self, config: FilterConfig) -> None:
        await self._write(self._filter_path(config.id), config.to_dict())

    async def load_filter_config(self, config_id: str) -> Optional[FilterConfig]:
        data = await self._read(self._filter_path(config_id))
        if data is None:
            return None
        try:
            return FilterConfig.from_dict(data)
        except (TypeError, ValueError, KeyError) as e:
            raise SerializationError(f"Malformed filter config {config_id}: {e}") from e

    async def list_filter_configs(self) -> List[FilterConfig]:
        """All saved filter configs, most recently updated first."""
        paths = await asyncio.to_thread(
            lambda: sorted(self.filters_dir.glob('*.json')) if self.filters_dir.exists() else []
        )
        configs = []
        for path in paths:
            config = await self.load_filter_config(path.stem)
            if config is not None:
                configs.append(config)
        configs.sort(key=lambda c: c.updated_at, reverse=True)
        return configs

    async def delete_filter_config(self, config_id: str) -> bool:
        path = self._filter_path(config_id)
        if not path.exists():
            return False
        try:
            await asyncio.to_thread(path.unlink)
        except OSError as e:
            raise StorageIOError(f"Failed to delete {path}: {e}") from e
        return True

    async def save_app_config(self, config: AppConfig) -> None:
        await self._write(self.config_dir / APP_CONFIG_FILE, config.to_dict())

    async def load_app_config(self) -> AppConfig:
        """Load application settings, falling back to defaults."""
        data = await self._read(self.config_dir / APP_CONFIG_FILE)
        if data is None:
            return AppConfig()
        try:
            return AppConfig.from_dict(data)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Malformed app config: {e}") from e

    async def clear(self) -> None:
        """Remove every stored configuration file."""
        try:
            if self.config_dir.exists():
                await asyncio.to_thread(shutil.rmtree, self.config_dir)
            await asyncio.to_thread(self.filters_dir.mkdir, parents=True, exist_ok=True)
        except OSError as e:
            raise StorageIOError(f"Failed to clear config directory: {e}") from e
        self.logger.info(f"Config store cleared at {self.config_dir}")
