#!/usr/bin/env python3
"""
Embedded SQL store backend.

Issues, filter configs and issue history live in SQLite tables accessed
through aiosqlite. The store owns a single connection; every operation runs
under an asyncio lock, and aiosqlite executes the underlying sqlite3 calls on
its own worker thread so the event loop never blocks.
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, List, Dict, Any, Tuple

import aiosqlite

from ..errors import DatabaseError, JiraSyncError, SerializationError
from ..models.enums import HistorySortOrder, SortOrder
from ..models.filters import FilterConfig, IssueFilter, StorageStats
from ..models.history import HistoryAuthor, HistoryFilter, HistoryStats, IssueHistory
from ..models.issue import Issue, ensure_utc
from .persistence import PersistenceStore

MEMORY_DATABASE = ":memory:"

# Fixed-width UTC format so that text comparison orders like time.
DB_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

ISSUE_ORDER_BY: Dict[SortOrder, str] = {
    SortOrder.CREATED_ASC: "created ASC, issue_key ASC",
    SortOrder.CREATED_DESC: "created DESC, issue_key ASC",
    SortOrder.UPDATED_ASC: "updated ASC, issue_key ASC",
    SortOrder.UPDATED_DESC: "updated DESC, issue_key ASC",
    SortOrder.KEY_ASC: "issue_key ASC",
    SortOrder.KEY_DESC: "issue_key DESC",
    SortOrder.PRIORITY_ASC: "priority_name IS NULL, priority_name ASC, issue_key ASC",
    SortOrder.PRIORITY_DESC: "priority_name IS NULL, priority_name DESC, issue_key ASC",
}

HISTORY_ORDER_BY: Dict[HistorySortOrder, str] = {
    HistorySortOrder.TIMESTAMP_ASC: "change_timestamp ASC, history_id ASC",
    HistorySortOrder.TIMESTAMP_DESC: "change_timestamp DESC, history_id ASC",
    HistorySortOrder.ISSUE_KEY: "issue_key ASC, history_id ASC",
    HistorySortOrder.FIELD_NAME: "field_name ASC, history_id ASC",
}

CHANGE_TYPE_SQL = """
    CASE
        WHEN field_name = 'status' THEN 'StatusChange'
        WHEN field_name = 'assignee' THEN 'AssigneeChange'
        WHEN field_name = 'priority' THEN 'PriorityChange'
        WHEN field_id IS NOT NULL THEN 'CustomField'
        ELSE 'FieldUpdate'
    END
"""

ISSUE_COLUMNS = (
    "id", "issue_key", "summary", "description", "status_name", "priority_name",
    "issue_type_name", "project_key", "project_name", "reporter_display_name",
    "assignee_display_name", "created", "updated", "raw_json",
)

HISTORY_COLUMNS = (
    "issue_id", "issue_key", "change_id", "change_timestamp", "author_account_id",
    "author_display_name", "author_email", "field_name", "field_id", "from_value",
    "to_value", "from_display_value", "to_display_value", "created_at",
)


def to_db_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return ensure_utc(value).strftime(DB_TIMESTAMP_FORMAT)


def from_db_timestamp(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.strptime(value, DB_TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


def _contains_ci(haystack: Optional[str], needle: Optional[str]) -> int:
    """SQL function: case-insensitive substring test using Python lowering."""
    if haystack is None or needle is None:
        return 0
    return 1 if needle.lower() in haystack.lower() else 0


def _placeholders(values: List[Any]) -> str:
    return ", ".join("?" for _ in values)


class SQLiteStore(PersistenceStore):
    """Stores issues and history in an embedded SQLite database."""

    def __init__(self, db_path: str = MEMORY_DATABASE, timeout: int = 30) -> None:
        """Initialize the SQL store.

        Args:
            db_path: Path to SQLite database file, or ``":memory:"``
            timeout: Busy timeout in seconds

        Raises:
            TypeError: If arguments have wrong types
            ValueError: If arguments are invalid
        """
        if not isinstance(db_path, str):
            raise TypeError("db_path must be a string")
        if not db_path.strip():
            raise ValueError("db_path cannot be empty")
        if not isinstance(timeout, int) or timeout <= 0:
            raise ValueError("timeout must be a positive integer")

        self.db_path = db_path
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)
        self._conn: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

        if db_path != MEMORY_DATABASE:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    @property
    def supports_incremental_save(self) -> bool:
        return True

    @property
    def is_memory(self) -> bool:
        return self.db_path == MEMORY_DATABASE

    async def initialize(self) -> None:
        """Open the connection and create the schema.

        Raises:
            DatabaseError: If database initialization fails
        """
        async with self._lock:
            try:
                if self._conn is None:
                    self._conn = await self._open_connection()
                await self._create_tables(self._conn)
                await self._create_indexes(self._conn)
                self.logger.info(f"Database initialized successfully at {self.db_path}")
            except Exception as e:
                self.logger.error(f"Database initialization failed: {e}")
                raise DatabaseError(f"Failed to initialize database: {e}") from e

    async def _open_connection(self) -> aiosqlite.Connection:
        conn = await aiosqlite.connect(
            self.db_path,
            timeout=self.timeout,
            isolation_level=None  # Use autocommit mode
        )
        if not self.is_memory:
            await conn.execute("PRAGMA journal_mode = WAL")
            await conn.execute("PRAGMA synchronous = NORMAL")
        await conn.execute("PRAGMA temp_store = MEMORY")
        await conn.create_function("contains_ci", 2, _contains_ci, deterministic=True)
        conn.row_factory = aiosqlite.Row
        return conn

    async def close(self) -> None:
        """Close the database connection."""
        async with self._lock:
            if self._conn is not None:
                await self._conn.close()
                self._conn = None
                self.logger.debug("Database connection closed")

    @asynccontextmanager
    async def _get_connection(self):
        """Yield the store's connection while holding the store lock."""
        async with self._lock:
            if self._conn is None:
                raise DatabaseError("Database is not initialized; call initialize() first")
            yield self._conn

    @asynccontextmanager
    async def _transaction(self, conn: aiosqlite.Connection):
        await conn.execute("BEGIN")
        try:
            yield
        except BaseException:
            await conn.execute("ROLLBACK")
            raise
        await conn.execute("COMMIT")

    async def _create_tables(self, conn: aiosqlite.Connection) -> None:
        """Create database tables."""

        # Issues table
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS issues (
                id TEXT PRIMARY KEY,
                issue_key TEXT UNIQUE NOT NULL CHECK (length(issue_key) > 0),
                summary TEXT NOT NULL,
                description TEXT,
                status_name TEXT NOT NULL,
                priority_name TEXT,
                issue_type_name TEXT NOT NULL,
                project_key TEXT,
                project_name TEXT,
                reporter_display_name TEXT NOT NULL,
                assignee_display_name TEXT,
                created TEXT NOT NULL,
                updated TEXT NOT NULL,
                raw_json TEXT NOT NULL
            )
        """)

        # Saved filters table
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS filter_configs (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                description TEXT,
                filter_json TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                usage_count INTEGER NOT NULL DEFAULT 0 CHECK (usage_count >= 0),
                last_used_at TEXT
            )
        """)

        # Issue history table (append-only)
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS issue_history (
                history_id INTEGER PRIMARY KEY AUTOINCREMENT,
                issue_id TEXT NOT NULL,
                issue_key TEXT NOT NULL,
                change_id TEXT NOT NULL,
                change_timestamp TEXT NOT NULL,
                author_account_id TEXT,
                author_display_name TEXT,
                author_email TEXT,
                field_name TEXT NOT NULL,
                field_id TEXT,
                from_value TEXT,
                to_value TEXT,
                from_display_value TEXT,
                to_display_value TEXT,
                created_at TEXT NOT NULL
            )
        """)

    async def _create_indexes(self, conn: aiosqlite.Connection) -> None:
        """Create database indexes for performance."""
        indexes = [
            "CREATE INDEX IF NOT EXISTS idx_issues_project_key ON issues(project_key)",
            "CREATE INDEX IF NOT EXISTS idx_issues_status_name ON issues(status_name)",
            "CREATE INDEX IF NOT EXISTS idx_issues_created ON issues(created)",
            "CREATE INDEX IF NOT EXISTS idx_issues_updated ON issues(updated)",
            "CREATE INDEX IF NOT EXISTS idx_history_issue_key ON issue_history(issue_key)",
            "CREATE INDEX IF NOT EXISTS idx_history_change_timestamp ON issue_history(change_timestamp)",
            "CREATE INDEX IF NOT EXISTS idx_history_field_name ON issue_history(field_name)",
            "CREATE INDEX IF NOT EXISTS idx_history_author ON issue_history(author_account_id)",
            "CREATE INDEX IF NOT EXISTS idx_history_issue_key_timestamp "
            "ON issue_history(issue_key, change_timestamp DESC)",
        ]
        for index_sql in indexes:
            await conn.execute(index_sql)

    # =============================================================================
    # QUERY BUILDING
    # =============================================================================

    @staticmethod
    def _build_issue_where(issue_filter: IssueFilter) -> Tuple[str, List[Any]]:
        """Compile an IssueFilter into a WHERE clause and its parameters."""
        conditions: List[str] = []
        params: List[Any] = []

        list_columns = (
            ('project_key', issue_filter.project_keys),
            ('status_name', issue_filter.statuses),
            ('priority_name', issue_filter.priorities),
            ('issue_type_name', issue_filter.issue_types),
            ('reporter_display_name', issue_filter.reporters),
            ('assignee_display_name', issue_filter.assignees),
        )
        for column, values in list_columns:
            if values:
                conditions.append(f"{column} IN ({_placeholders(values)})")
                params.extend(values)

        for column, date_range in (('created', issue_filter.created_range),
                                   ('updated', issue_filter.updated_range)):
            if date_range is not None:
                conditions.append(f"{column} >= ? AND {column} <= ?")
                params.extend([to_db_timestamp(date_range.start), to_db_timestamp(date_range.end)])

        if issue_filter.summary_contains:
            conditions.append("contains_ci(summary, ?)")
            params.append(issue_filter.summary_contains)

        if issue_filter.description_contains:
            conditions.append("contains_ci(description, ?)")
            params.append(issue_filter.description_contains)

        if issue_filter.labels:
            conditions.append(
                "json_type(raw_json, '$.fields.labels') = 'array' AND EXISTS ("
                "SELECT 1 FROM json_each(raw_json, '$.fields.labels') AS label "
                f"WHERE label.type = 'text' AND label.value IN ({_placeholders(issue_filter.labels)}))"
            )
            params.extend(issue_filter.labels)

        where_clause = " AND ".join(f"({c})" for c in conditions) if conditions else "1=1"
        return where_clause, params

    @staticmethod
    def _build_history_where(history_filter: HistoryFilter) -> Tuple[str, List[Any]]:
        """Compile a HistoryFilter into a WHERE clause and its parameters."""
        conditions: List[str] = []
        params: List[Any] = []

        list_columns = (
            ('issue_key', history_filter.issue_keys),
            ('field_name', history_filter.field_names),
            ('author_account_id', history_filter.authors),
        )
        for column, values in list_columns:
            if values:
                conditions.append(f"{column} IN ({_placeholders(values)})")
                params.extend(values)

        if history_filter.date_range is not None:
            conditions.append("change_timestamp >= ? AND change_timestamp <= ?")
            params.extend([
                to_db_timestamp(history_filter.date_range.start),
                to_db_timestamp(history_filter.date_range.end),
            ])

        if history_filter.change_types:
            values = [ct.value for ct in history_filter.change_types]
            conditions.append(f"{CHANGE_TYPE_SQL} IN ({_placeholders(values)})")
            params.extend(values)

        where_clause = " AND ".join(f"({c})" for c in conditions) if conditions else "1=1"
        return where_clause, params

    @staticmethod
    def _paging_clause(limit: Optional[int], offset: Optional[int]) -> Tuple[str, List[Any]]:
        if limit is not None:
            if offset:
                return " LIMIT ? OFFSET ?", [limit, offset]
            return " LIMIT ?", [limit]
        if offset:
            return " LIMIT -1 OFFSET ?", [offset]
        return "", []

    # =============================================================================
    # ROW CONVERSION
    # =============================================================================

    @staticmethod
    def _issue_row(issue: Issue) -> Tuple[Any, ...]:
        """Build the column values of an issue; raises if it cannot be serialized."""
        return (
            issue.id,
            issue.key,
            issue.summary,
            issue.description_text,
            issue.status_name,
            issue.priority_name,
            issue.issue_type_name,
            issue.project_key,
            issue.project_name,
            issue.reporter_name,
            issue.assignee_name,
            to_db_timestamp(issue.created),
            to_db_timestamp(issue.updated),
            json.dumps(issue.to_dict(), ensure_ascii=False),
        )

    @staticmethod
    def _row_to_issue(row: aiosqlite.Row) -> Issue:
        try:
            return Issue.from_dict(json.loads(row['raw_json']))
        except (TypeError, ValueError, KeyError) as e:
            raise SerializationError(f"Malformed raw_json for issue {row['issue_key']}: {e}") from e

    @staticmethod
    def _history_row(history: IssueHistory) -> Tuple[Any, ...]:
        author = history.author
        return (
            history.issue_id,
            history.issue_key,
            history.change_id,
            to_db_timestamp(history.change_timestamp),
            author.account_id if author else None,
            author.display_name if author else None,
            author.email_address if author else None,
            history.field_name,
            history.field_id,
            history.from_value,
            history.to_value,
            history.from_display_value,
            history.to_display_value,
            to_db_timestamp(history.created_at),
        )

    @staticmethod
    def _row_to_history(row: aiosqlite.Row) -> IssueHistory:
        author = None
        if row['author_account_id'] is not None:
            author = HistoryAuthor(
                account_id=row['author_account_id'],
                display_name=row['author_display_name'] or "",
                email_address=row['author_email'],
            )
        return IssueHistory(
            history_id=row['history_id'],
            issue_id=row['issue_id'],
            issue_key=row['issue_key'],
            change_id=row['change_id'],
            change_timestamp=from_db_timestamp(row['change_timestamp']),
            author=author,
            field_name=row['field_name'],
            field_id=row['field_id'],
            from_value=row['from_value'],
            to_value=row['to_value'],
            from_display_value=row['from_display_value'],
            to_display_value=row['to_display_value'],
            created_at=from_db_timestamp(row['created_at']),
        )

    @staticmethod
    def _row_to_filter_config(row: aiosqlite.Row) -> FilterConfig:
        try:
            issue_filter = IssueFilter.from_dict(json.loads(row['filter_json']))
        except (TypeError, ValueError, KeyError) as e:
            raise SerializationError(f"Malformed filter_json for filter {row['id']}: {e}") from e
        return FilterConfig(
            id=row['id'],
            name=row['name'],
            description=row['description'],
            filter=issue_filter,
            created_at=from_db_timestamp(row['created_at']),
            updated_at=from_db_timestamp(row['updated_at']),
            usage_count=row['usage_count'],
            last_used_at=from_db_timestamp(row['last_used_at']),
        )

    # =============================================================================
    # ISSUE OPERATIONS
    # =============================================================================

    async def save_issues(self, issues: List[Issue]) -> int:
        """Upsert issues by id.

        Issues that cannot be serialized, or whose key already belongs to a
        different id, are skipped with a warning.

        Returns:
            Number of issues inserted or updated

        Raises:
            DatabaseError: If the transaction fails
        """
        columns = ", ".join(ISSUE_COLUMNS)
        updates = ", ".join(f"{c} = excluded.{c}" for c in ISSUE_COLUMNS if c != "id")
        sql = (
            f"INSERT INTO issues ({columns}) VALUES ({_placeholders(ISSUE_COLUMNS)}) "
            f"ON CONFLICT(id) DO UPDATE SET {updates}"
        )

        saved = 0
        try:
            async with self._get_connection() as conn:
                async with self._transaction(conn):
                    for issue in issues:
                        try:
                            row = self._issue_row(issue)
                        except (TypeError, ValueError) as e:
                            self.logger.warning(f"Skipping issue {issue.key} that failed to serialize: {e}")
                            continue
                        try:
                            await conn.execute(sql, row)
                        except aiosqlite.IntegrityError as e:
                            self.logger.warning(f"Skipping issue {issue.key}: {e}")
                            continue
                        saved += 1
        except JiraSyncError:
            raise
        except Exception as e:
            self.logger.error(f"Failed to save issues: {e}")
            raise DatabaseError(f"Failed to save issues: {e}") from e

        self.logger.info(f"Saved {saved} issues")
        return saved

    async def load_issues(self, issue_filter: IssueFilter) -> List[Issue]:
        where_clause, params = self._build_issue_where(issue_filter)
        paging, paging_params = self._paging_clause(issue_filter.limit, issue_filter.offset)
        sql = (
            f"SELECT issue_key, raw_json FROM issues WHERE {where_clause} "
            f"ORDER BY {ISSUE_ORDER_BY[issue_filter.sort_order]}{paging}"
        )
        try:
            async with self._get_connection() as conn:
                cursor = await conn.execute(sql, params + paging_params)
                rows = await cursor.fetchall()
            return [self._row_to_issue(row) for row in rows]
        except JiraSyncError:
            raise
        except Exception as e:
            self.logger.error(f"Failed to load issues: {e}")
            raise DatabaseError(f"Failed to load issues: {e}") from e

    async def count_issues(self, issue_filter: IssueFilter) -> int:
        where_clause, params = self._build_issue_where(issue_filter)
        try:
            async with self._get_connection() as conn:
                cursor = await conn.execute(f"SELECT COUNT(*) AS total FROM issues WHERE {where_clause}", params)
                row = await cursor.fetchone()
            return row['total'] if row else 0
        except JiraSyncError:
            raise
        except Exception as e:
            self.logger.error(f"Failed to count issues: {e}")
            raise DatabaseError(f"Failed to count issues: {e}") from e

    async def delete_issues(self, issue_keys: List[str]) -> int:
        if not issue_keys:
            return 0
        try:
            async with self._get_connection() as conn:
                cursor = await conn.execute(
                    f"DELETE FROM issues WHERE issue_key IN ({_placeholders(issue_keys)})",
                    list(issue_keys)
                )
                deleted = cursor.rowcount
        except JiraSyncError:
            raise
        except Exception as e:
            self.logger.error(f"Failed to delete issues: {e}")
            raise DatabaseError(f"Failed to delete issues: {e}") from e

        self.logger.info(f"Deleted {deleted} issues")
        return deleted

    async def optimize(self) -> None:
        """Vacuum the database and refresh planner statistics."""
        try:
            async with self._get_connection() as conn:
                await conn.execute("VACUUM")
                await conn.execute("ANALYZE")
            self.logger.info("Database optimized successfully")
        except JiraSyncError:
            raise
        except Exception as e:
            self.logger.error(f"Failed to optimize database: {e}")
            raise DatabaseError(f"Failed to optimize database: {e}") from e

    async def get_stats(self) -> StorageStats:
        try:
            async with self._get_connection() as conn:
                cursor = await conn.execute("SELECT COUNT(*) AS total FROM issues")
                total = (await cursor.fetchone())['total']

                grouped: Dict[str, Dict[str, int]] = {}
                for column in ('project_key', 'status_name', 'issue_type_name'):
                    cursor = await conn.execute(
                        f"SELECT {column} AS name, COUNT(*) AS count FROM issues "
                        f"WHERE {column} IS NOT NULL GROUP BY {column}"
                    )
                    grouped[column] = {row['name']: row['count'] for row in await cursor.fetchall()}

                # Database size
                cursor = await conn.execute("PRAGMA page_count")
                page_count = (await cursor.fetchone())[0]
                cursor = await conn.execute("PRAGMA page_size")
                page_size = (await cursor.fetchone())[0]

                cursor = await conn.execute(
                    "SELECT COUNT(*) AS count FROM sqlite_master "
                    "WHERE type = 'index' AND tbl_name = 'issues' AND name LIKE 'idx_%'"
                )
                index_count = (await cursor.fetchone())['count']

            return StorageStats(
                total_issues=total,
                issues_by_project=grouped['project_key'],
                issues_by_status=grouped['status_name'],
                issues_by_type=grouped['issue_type_name'],
                storage_size_bytes=page_count * page_size,
                last_updated=datetime.now(timezone.utc),
                index_count=index_count,
                compression_ratio=1.0,
            )
        except JiraSyncError:
            raise
        except Exception as e:
            self.logger.error(f"Failed to get database stats: {e}")
            raise DatabaseError(f"Failed to retrieve database statistics: {e}") from e

    # =============================================================================
    # FILTER CONFIG OPERATIONS
    # =============================================================================

    async def save_filter_config(self, config: FilterConfig) -> None:
        try:
            async with self._get_connection() as conn:
                await conn.execute("""
                    INSERT INTO filter_configs
                    (id, name, description, filter_json, created_at, updated_at, usage_count, last_used_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        name = excluded.name,
                        description = excluded.description,
                        filter_json = excluded.filter_json,
                        updated_at = excluded.updated_at,
                        usage_count = excluded.usage_count,
                        last_used_at = excluded.last_used_at
                """, (
                    config.id,
                    config.name,
                    config.description,
                    json.dumps(config.filter.to_dict()),
                    to_db_timestamp(config.created_at),
                    to_db_timestamp(config.updated_at),
                    config.usage_count,
                    to_db_timestamp(config.last_used_at),
                ))
            self.logger.debug(f"Saved filter config {config.id}")
        except JiraSyncError:
            raise
        except Exception as e:
            self.logger.error(f"Failed to save filter config {config.id}: {e}")
            raise DatabaseError(f"Failed to save filter config: {e}") from e

    async def _select_filter_configs(self, limit: Optional[int] = None) -> List[FilterConfig]:
        sql = "SELECT * FROM filter_configs ORDER BY updated_at DESC, id ASC"
        params: List[Any] = []
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        try:
            async with self._get_connection() as conn:
                cursor = await conn.execute(sql, params)
                rows = await cursor.fetchall()
            return [self._row_to_filter_config(row) for row in rows]
        except JiraSyncError:
            raise
        except Exception as e:
            self.logger.error(f"Failed to load filter configs: {e}")
            raise DatabaseError(f"Failed to load filter configs: {e}") from e

    async def load_filter_config(self) -> Optional[FilterConfig]:
        """Return the most recently updated filter config."""
        configs = await self._select_filter_configs(limit=1)
        return configs[0] if configs else None

    async def list_filter_configs(self) -> List[FilterConfig]:
        return await self._select_filter_configs()

    async def delete_filter_config(self, config_id: str) -> bool:
        try:
            async with self._get_connection() as conn:
                cursor = await conn.execute("DELETE FROM filter_configs WHERE id = ?", (config_id,))
                return cursor.rowcount > 0
        except JiraSyncError:
            raise
        except Exception as e:
            self.logger.error(f"Failed to delete filter config {config_id}: {e}")
            raise DatabaseError(f"Failed to delete filter config: {e}") from e

    # =============================================================================
    # HISTORY OPERATIONS
    # =============================================================================

    async def save_issue_history(self, histories: List[IssueHistory]) -> int:
        """Append history rows.

        No uniqueness is enforced: saving the same changelog twice stores
        duplicate rows. Rows the database rejects are skipped with a warning.
        """
        sql = (
            f"INSERT INTO issue_history ({', '.join(HISTORY_COLUMNS)}) "
            f"VALUES ({_placeholders(HISTORY_COLUMNS)})"
        )
        saved = 0
        try:
            async with self._get_connection() as conn:
                async with self._transaction(conn):
                    for history in histories:
                        try:
                            await conn.execute(sql, self._history_row(history))
                        except aiosqlite.Error as e:
                            self.logger.warning(
                                f"Skipping history {history.issue_key}/{history.change_id}: {e}"
                            )
                            continue
                        saved += 1
        except JiraSyncError:
            raise
        except Exception as e:
            self.logger.error(f"Failed to save issue history: {e}")
            raise DatabaseError(f"Failed to save issue history: {e}") from e

        self.logger.info(f"Saved {saved} history records")
        return saved

    async def load_issue_history(self, history_filter: HistoryFilter) -> List[IssueHistory]:
        where_clause, params = self._build_history_where(history_filter)
        paging, paging_params = self._paging_clause(history_filter.limit, None)
        sql = (
            f"SELECT * FROM issue_history WHERE {where_clause} "
            f"ORDER BY {HISTORY_ORDER_BY[history_filter.sort_order]}{paging}"
        )
        try:
            async with self._get_connection() as conn:
                cursor = await conn.execute(sql, params + paging_params)
                rows = await cursor.fetchall()
            return [self._row_to_history(row) for row in rows]
        except JiraSyncError:
            raise
        except Exception as e:
            self.logger.error(f"Failed to load issue history: {e}")
            raise DatabaseError(f"Failed to load issue history: {e}") from e

    async def get_history_stats(self) -> HistoryStats:
        try:
            async with self._get_connection() as conn:
                cursor = await conn.execute("""
                    SELECT COUNT(*) AS total_changes,
                           COUNT(DISTINCT issue_key) AS unique_issues,
                           COUNT(DISTINCT author_account_id) AS unique_authors,
                           MIN(change_timestamp) AS oldest_change,
                           MAX(change_timestamp) AS newest_change
                    FROM issue_history
                """)
                summary = await cursor.fetchone()

                cursor = await conn.execute(
                    "SELECT field_name, COUNT(*) AS count FROM issue_history GROUP BY field_name"
                )
                field_counts = {row['field_name']: row['count'] for row in await cursor.fetchall()}

            return HistoryStats(
                total_changes=summary['total_changes'],
                unique_issues=summary['unique_issues'],
                unique_authors=summary['unique_authors'],
                field_change_counts=field_counts,
                oldest_change=from_db_timestamp(summary['oldest_change']),
                newest_change=from_db_timestamp(summary['newest_change']),
            )
        except JiraSyncError:
            raise
        except Exception as e:
            self.logger.error(f"Failed to get history stats: {e}")
            raise DatabaseError(f"Failed to retrieve history statistics: {e}") from e

    async def delete_issue_history(self, issue_keys: List[str]) -> int:
        if not issue_keys:
            return 0
        try:
            async with self._get_connection() as conn:
                cursor = await conn.execute(
                    f"DELETE FROM issue_history WHERE issue_key IN ({_placeholders(issue_keys)})",
                    list(issue_keys)
                )
                return cursor.rowcount
        except JiraSyncError:
            raise
        except Exception as e:
            self.logger.error(f"Failed to delete issue history: {e}")
            raise DatabaseError(f"Failed to delete issue history: {e}") from e
