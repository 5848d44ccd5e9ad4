#!/usr/bin/env python3
"""
Document store backend.

Each collection (issues, filter configs, history, metadata) lives in a single
JSON file, optionally gzip-compressed. Filtering and sorting happen in memory
after the whole collection is loaded. ``save_issues`` and
``save_issue_history`` replace the stored collection.
"""

import asyncio
import gzip
import json
import logging
import os
import zlib
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from ..errors import SerializationError, StorageIOError
from ..models.filters import FilterConfig, IssueFilter, StorageStats
from ..models.history import HistoryFilter, HistoryStats, IssueHistory
from ..models.issue import Issue
from ..utils.constants import (
    FILTERS_DIR, FILTERS_FILE, HISTORY_DIR, HISTORY_FILE,
    ISSUES_DIR, ISSUES_FILE, METADATA_DIR, METADATA_FILE,
)
from .persistence import PersistenceStore


class JsonStore(PersistenceStore):
    """Stores issues and history as whole-collection JSON documents."""

    def __init__(self, data_dir: Union[str, Path], compression: bool = True) -> None:
        """Initialize the document store.

        Args:
            data_dir: Root directory of the store
            compression: Write gzip-compressed ``.json.gz`` files

        Raises:
            TypeError: If arguments have wrong types
            ValueError: If data_dir is empty
        """
        if not isinstance(data_dir, (str, Path)):
            raise TypeError("data_dir must be a string or Path")
        if not str(data_dir).strip():
            raise ValueError("data_dir cannot be empty")
        if not isinstance(compression, bool):
            raise TypeError("compression must be a boolean")

        self.data_dir = Path(data_dir)
        self.compression = compression
        self.logger = logging.getLogger(__name__)
        self._lock = asyncio.Lock()
        self._stats_cache: Optional[StorageStats] = None

    @property
    def supports_incremental_save(self) -> bool:
        return False

    def _file_path(self, subdir: str, filename: str) -> Path:
        if self.compression:
            filename = f"{filename}.gz"
        return self.data_dir / subdir / filename

    @property
    def issues_path(self) -> Path:
        return self._file_path(ISSUES_DIR, ISSUES_FILE)

    @property
    def filters_path(self) -> Path:
        return self._file_path(FILTERS_DIR, FILTERS_FILE)

    @property
    def history_path(self) -> Path:
        return self._file_path(HISTORY_DIR, HISTORY_FILE)

    @property
    def metadata_path(self) -> Path:
        return self._file_path(METADATA_DIR, METADATA_FILE)

    async def initialize(self) -> None:
        """Create the store directory layout.

        Raises:
            StorageIOError: If the directories cannot be created
        """
        try:
            for subdir in (ISSUES_DIR, FILTERS_DIR, HISTORY_DIR, METADATA_DIR):
                await asyncio.to_thread((self.data_dir / subdir).mkdir, parents=True, exist_ok=True)
        except OSError as e:
            self.logger.error(f"Failed to initialize document store at {self.data_dir}: {e}")
            raise StorageIOError(f"Failed to create store directories: {e}") from e
        self.logger.info(f"Document store initialized at {self.data_dir}")

    # =============================================================================
    # FILE I/O
    # =============================================================================

    @staticmethod
    def _read_json_sync(path: Path) -> Optional[Any]:
        if not path.exists():
            return None
        try:
            if path.suffix == '.gz':
                with gzip.open(path, 'rt', encoding='utf-8') as f:
                    return json.load(f)
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (gzip.BadGzipFile, EOFError, ValueError, zlib.error) as e:
            raise SerializationError(f"Failed to decode {path}: {e}") from e
        except OSError as e:
            raise StorageIOError(f"Failed to read {path}: {e}") from e

    @staticmethod
    def _write_json_sync(path: Path, data: Any) -> None:
        try:
            payload = json.dumps(data, ensure_ascii=False).encode('utf-8')
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Failed to encode {path.name}: {e}") from e
        if path.suffix == '.gz':
            payload = gzip.compress(payload)

        tmp_path = path.with_name(path.name + '.tmp')
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, 'wb') as f:
                f.write(payload)
            os.replace(tmp_path, path)
        except OSError as e:
            raise StorageIOError(f"Failed to write {path}: {e}") from e

    async def _read_json(self, path: Path) -> Optional[Any]:
        return await asyncio.to_thread(self._read_json_sync, path)

    async def _write_json(self, path: Path, data: Any) -> None:
        await asyncio.to_thread(self._write_json_sync, path, data)

    async def _read_list(self, path: Path) -> List[Dict[str, Any]]:
        data = await self._read_json(path)
        if data is None:
            return []
        if not isinstance(data, list):
            raise SerializationError(f"Expected a JSON array in {path}")
        return data

    # =============================================================================
    # ISSUE OPERATIONS
    # =============================================================================

    async def _read_issues(self) -> List[Issue]:
        records = await self._read_list(self.issues_path)
        try:
            return [Issue.from_dict(record) for record in records]
        except (TypeError, ValueError, KeyError) as e:
            raise SerializationError(f"Malformed issue record in {self.issues_path}: {e}") from e

    async def _write_issues(self, issues: List[Issue]) -> int:
        """Write issues, skipping any that cannot be serialized."""
        records = []
        written = []
        for issue in issues:
            try:
                record = issue.to_dict()
                json.dumps(record)
            except (TypeError, ValueError) as e:
                self.logger.warning(f"Skipping issue {issue.key} that failed to serialize: {e}")
                continue
            records.append(record)
            written.append(issue)

        await self._write_json(self.issues_path, records)
        await self._refresh_stats(written)
        return len(records)

    async def save_issues(self, issues: List[Issue]) -> int:
        """Replace the stored issue collection with ``issues``.

        Args:
            issues: Complete new collection

        Returns:
            Number of issues written

        Raises:
            StorageIOError: If the file cannot be written
        """
        async with self._lock:
            count = await self._write_issues(issues)
        self.logger.info(f"Saved {count} issues to {self.issues_path}")
        return count

    async def load_issues(self, issue_filter: IssueFilter) -> List[Issue]:
        issues = await self._read_issues()
        return issue_filter.apply(issues)

    async def count_issues(self, issue_filter: IssueFilter) -> int:
        issues = await self._read_issues()
        return sum(1 for issue in issues if issue_filter.matches(issue))

    async def delete_issues(self, issue_keys: List[str]) -> int:
        """Delete issues by key, rewriting the collection if anything matched."""
        keys = set(issue_keys)
        async with self._lock:
            issues = await self._read_issues()
            remaining = [issue for issue in issues if issue.key not in keys]
            deleted = len(issues) - len(remaining)
            if deleted:
                await self._write_issues(remaining)
        if deleted:
            self.logger.info(f"Deleted {deleted} issues")
        return deleted

    async def optimize(self) -> None:
        """Recompute and persist the metadata cache."""
        async with self._lock:
            await self._refresh_stats(await self._read_issues())
        self.logger.info("Document store metadata refreshed")

    async def get_stats(self) -> StorageStats:
        if self._stats_cache is None:
            async with self._lock:
                self._stats_cache = await self._compute_stats(await self._read_issues())
        return self._stats_cache

    # =============================================================================
    # STATS
    # =============================================================================

    def _measure_sync(self) -> Tuple[int, float]:
        """Return (bytes on disk, compression ratio of the issues file)."""
        total_size = 0
        if self.data_dir.exists():
            for path in self.data_dir.rglob('*'):
                if path.is_file():
                    total_size += path.stat().st_size

        ratio = 1.0
        if self.compression and self.issues_path.exists():
            compressed = self.issues_path.read_bytes()
            raw_size = len(gzip.decompress(compressed))
            if raw_size:
                ratio = len(compressed) / raw_size
        return total_size, ratio

    async def _compute_stats(self, issues: List[Issue]) -> StorageStats:
        try:
            size, ratio = await asyncio.to_thread(self._measure_sync)
        except (OSError, EOFError, zlib.error) as e:
            raise StorageIOError(f"Failed to measure store size: {e}") from e
        return StorageStats.from_issues(
            issues,
            storage_size_bytes=size,
            index_count=0,
            compression_ratio=ratio,
        )

    async def _refresh_stats(self, issues: List[Issue]) -> None:
        stats = await self._compute_stats(issues)
        await self._write_json(self.metadata_path, stats.to_dict())
        self._stats_cache = stats

    # =============================================================================
    # FILTER CONFIG OPERATIONS
    # =============================================================================

    async def _read_filter_configs(self) -> List[FilterConfig]:
        records = await self._read_list(self.filters_path)
        try:
            return [FilterConfig.from_dict(record) for record in records]
        except (TypeError, ValueError, KeyError) as e:
            raise SerializationError(f"Malformed filter config in {self.filters_path}: {e}") from e

    async def save_filter_config(self, config: FilterConfig) -> None:
        async with self._lock:
            configs = [c for c in await self._read_filter_configs() if c.id != config.id]
            configs.append(config)
            await self._write_json(self.filters_path, [c.to_dict() for c in configs])
        self.logger.debug(f"Saved filter config {config.id}")

    async def load_filter_config(self) -> Optional[FilterConfig]:
        configs = await self.list_filter_configs()
        return configs[0] if configs else None

    async def list_filter_configs(self) -> List[FilterConfig]:
        configs = await self._read_filter_configs()
        return sorted(configs, key=lambda c: c.updated_at, reverse=True)

    async def delete_filter_config(self, config_id: str) -> bool:
        async with self._lock:
            configs = await self._read_filter_configs()
            remaining = [c for c in configs if c.id != config_id]
            if len(remaining) == len(configs):
                return False
            await self._write_json(self.filters_path, [c.to_dict() for c in remaining])
        return True

    # =============================================================================
    # HISTORY OPERATIONS
    # =============================================================================

    async def _read_histories(self) -> List[IssueHistory]:
        records = await self._read_list(self.history_path)
        try:
            return [IssueHistory.from_dict(record) for record in records]
        except (TypeError, ValueError, KeyError) as e:
            raise SerializationError(f"Malformed history record in {self.history_path}: {e}") from e

    async def save_issue_history(self, histories: List[IssueHistory]) -> int:
        """Replace the stored history with ``histories``."""
        async with self._lock:
            await self._write_json(self.history_path, [h.to_dict() for h in histories])
        self.logger.info(f"Saved {len(histories)} history records")
        return len(histories)

    async def load_issue_history(self, history_filter: HistoryFilter) -> List[IssueHistory]:
        return history_filter.apply(await self._read_histories())

    async def get_history_stats(self) -> HistoryStats:
        return HistoryStats.from_histories(await self._read_histories())

    async def delete_issue_history(self, issue_keys: List[str]) -> int:
        """Remove every history row belonging to the given issue keys."""
        keys = set(issue_keys)
        async with self._lock:
            histories = await self._read_histories()
            remaining = [h for h in histories if h.issue_key not in keys]
            deleted = len(histories) - len(remaining)
            if deleted:
                await self._write_json(self.history_path, [h.to_dict() for h in remaining])
        return deleted
