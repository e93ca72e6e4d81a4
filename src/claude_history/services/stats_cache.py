"""SQLite store for per-file index rows, daily aggregates and session metadata."""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Optional

import orjson

from claude_history.errors import CacheCorruptionError
from claude_history.types.messages import TokenUsage
from claude_history.types.sessions import SessionMetadataRecord
from claude_history.types.stats import (
    ALL_PROJECTS,
    CachedTotals,
    CacheStats,
    DailyStats,
    DateRange,
    FileIndexRecord,
    merge_counts,
)
from claude_history.utils.date_parsing import today_key

logger = logging.getLogger(__name__)

DEFAULT_CACHE_DIR = Path.home() / ".cache" / "claude-history"
DEFAULT_DB_NAME = "stats-cache.db"

# Open-ended bounds for date range queries
MIN_DATE = "0000-01-01"
MAX_DATE = "9999-12-31"

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS daily_stats (
        date TEXT NOT NULL,
        project TEXT NOT NULL DEFAULT '__all__',
        conversations INTEGER NOT NULL DEFAULT 0,
        messages INTEGER NOT NULL DEFAULT 0,
        subagent_sessions INTEGER NOT NULL DEFAULT 0,
        tool_counts TEXT NOT NULL DEFAULT '{}',
        hourly_activity TEXT NOT NULL DEFAULT '{}',
        token_usage TEXT NOT NULL DEFAULT '{}',
        model_counts TEXT NOT NULL DEFAULT '{}',
        branch_counts TEXT NOT NULL DEFAULT '{}',
        computed_at TEXT NOT NULL,
        PRIMARY KEY (date, project)
    );

    CREATE TABLE IF NOT EXISTS file_index (
        file_path TEXT PRIMARY KEY,
        mtime INTEGER NOT NULL,
        message_count INTEGER NOT NULL DEFAULT 0,
        first_date TEXT,
        last_date TEXT,
        project TEXT,
        is_subagent INTEGER NOT NULL DEFAULT 0,
        last_indexed TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS cache_meta (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS totals_cache (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        total_conversations INTEGER NOT NULL DEFAULT 0,
        total_messages INTEGER NOT NULL DEFAULT 0,
        total_subagents INTEGER NOT NULL DEFAULT 0,
        project_count INTEGER NOT NULL DEFAULT 0,
        last_updated TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS session_metadata (
        file_path TEXT PRIMARY KEY,
        session_id TEXT,
        custom_title TEXT,
        summary TEXT,
        first_prompt TEXT,
        git_branch TEXT,
        project TEXT,
        cwd TEXT,
        mtime INTEGER NOT NULL,
        first_timestamp TEXT,
        is_subagent INTEGER NOT NULL DEFAULT 0
    );

    CREATE INDEX IF NOT EXISTS idx_daily_stats_date ON daily_stats(date);
    CREATE INDEX IF NOT EXISTS idx_file_index_dates ON file_index(first_date, last_date);
    CREATE INDEX IF NOT EXISTS idx_session_metadata_project ON session_metadata(project);
"""

# Columns added after the first schema version
_MIGRATIONS = (
    "ALTER TABLE daily_stats ADD COLUMN token_usage TEXT NOT NULL DEFAULT '{}'",
    "ALTER TABLE daily_stats ADD COLUMN model_counts TEXT NOT NULL DEFAULT '{}'",
    "ALTER TABLE daily_stats ADD COLUMN branch_counts TEXT NOT NULL DEFAULT '{}'",
)

_TABLES = ("daily_stats", "file_index", "cache_meta", "totals_cache", "session_metadata")


class StatsCache:
    """Incremental statistics cache backed by one SQLite connection.

    The connection is shared across threads; every statement and every
    multi-statement sequence runs under one re-entrant lock, inside a
    single transaction opened with ``transaction()``.
    """

    def __init__(self, db_path: str | Path | None = None):
        if db_path is None:
            DEFAULT_CACHE_DIR.mkdir(parents=True, exist_ok=True)
            db_path = DEFAULT_CACHE_DIR / DEFAULT_DB_NAME
        elif str(db_path) != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db_path = str(db_path)
        self._lock = threading.RLock()
        self._depth = 0
        self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")
        self._conn.row_factory = sqlite3.Row
        self.initialize()

    @property
    def db_path(self) -> str:
        return self._db_path

    def initialize(self):
        """Create tables and apply column migrations. Safe to call repeatedly."""
        with self._lock:
            self._conn.executescript(_SCHEMA)
            for statement in _MIGRATIONS:
                try:
                    self._conn.execute(statement)
                except sqlite3.OperationalError:
                    pass  # Column already exists
            self._conn.commit()

    def close(self):
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "StatsCache":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Hold the lock and run the enclosed statements as one transaction.

        Nested calls join the outermost transaction.
        """
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self._conn
                finally:
                    self._depth -= 1
                return
            self._depth = 1
            try:
                with self._conn:
                    yield self._conn
            finally:
                self._depth = 0

    # ------------------------------------------------------------------
    # File index
    # ------------------------------------------------------------------

    def get_file_index(self, file_path: str) -> Optional[FileIndexRecord]:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM file_index WHERE file_path = ?", (file_path,)
            ).fetchone()
        return self._row_to_file_index(row) if row else None

    def upsert_file_index(self, record: FileIndexRecord):
        last_indexed = record.last_indexed or _now_iso()
        with self.transaction() as conn:
            conn.execute("""
                INSERT OR REPLACE INTO file_index
                (file_path, mtime, message_count, first_date, last_date,
                 project, is_subagent, last_indexed)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                record.file_path, record.mtime, record.message_count,
                record.first_date, record.last_date, record.project,
                1 if record.is_subagent else 0, last_indexed,
            ))

    def remove_file_index(self, file_path: str):
        with self.transaction() as conn:
            conn.execute("DELETE FROM file_index WHERE file_path = ?", (file_path,))

    def list_file_index(self) -> list[FileIndexRecord]:
        with self._lock:
            rows = self._conn.execute("SELECT * FROM file_index ORDER BY file_path").fetchall()
        return [self._row_to_file_index(r) for r in rows]

    # ------------------------------------------------------------------
    # Daily stats
    # ------------------------------------------------------------------

    def get_daily_stats(self, date: str, project: str = ALL_PROJECTS) -> Optional[DailyStats]:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM daily_stats WHERE date = ? AND project = ?", (date, project)
            ).fetchone()
        return self._row_to_daily(row) if row else None

    def upsert_daily_stats(self, stats: DailyStats, merge: bool = True):
        """Write a daily bucket, adding onto the stored row when merge is set."""
        with self.transaction() as conn:
            if merge:
                existing = self.get_daily_stats(stats.date, stats.project)
                if existing is not None:
                    stats = _merge_daily(existing, stats)
            conn.execute("""
                INSERT OR REPLACE INTO daily_stats
                (date, project, conversations, messages, subagent_sessions,
                 tool_counts, hourly_activity, token_usage, model_counts,
                 branch_counts, computed_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                stats.date, stats.project, stats.conversations, stats.messages,
                stats.subagent_sessions,
                _dumps(stats.tool_counts),
                _dumps(stats.hourly_activity),
                _dumps(stats.token_usage.to_dict()),
                _dumps(stats.model_counts),
                _dumps(stats.branch_counts),
                _now_iso(),
            ))

    def get_daily_stats_in_range(
        self,
        date_range: Optional[DateRange] = None,
        project: str = ALL_PROJECTS,
    ) -> list[DailyStats]:
        """Daily buckets for a project, newest date first."""
        start, end = _bounds(date_range)
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM daily_stats WHERE project = ? AND date BETWEEN ? AND ? "
                "ORDER BY date DESC",
                (project, start, end),
            ).fetchall()
        return [self._row_to_daily(r) for r in rows]

    def delete_daily_stats(self, start: str, end: Optional[str] = None):
        """Delete every project's buckets for dates in [start, end]."""
        with self.transaction() as conn:
            conn.execute(
                "DELETE FROM daily_stats WHERE date BETWEEN ? AND ?", (start, end or start)
            )

    def get_cached_dates(self, project: str = ALL_PROJECTS) -> list[str]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT date FROM daily_stats WHERE project = ? ORDER BY date", (project,)
            ).fetchall()
        return [r["date"] for r in rows]

    # ------------------------------------------------------------------
    # Cache meta and totals
    # ------------------------------------------------------------------

    def get_meta(self, key: str) -> Optional[str]:
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM cache_meta WHERE key = ?", (key,)
            ).fetchone()
        return row["value"] if row else None

    def set_meta(self, key: str, value: str):
        with self.transaction() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO cache_meta (key, value) VALUES (?, ?)", (key, value)
            )

    def get_totals(self) -> Optional[CachedTotals]:
        with self._lock:
            row = self._conn.execute("SELECT * FROM totals_cache WHERE id = 1").fetchone()
        if row is None:
            return None
        return CachedTotals(
            total_conversations=row["total_conversations"],
            total_messages=row["total_messages"],
            total_subagents=row["total_subagents"],
            project_count=row["project_count"],
            last_updated=row["last_updated"],
        )

    def update_totals(self, totals: CachedTotals):
        with self.transaction() as conn:
            conn.execute("""
                INSERT OR REPLACE INTO totals_cache
                (id, total_conversations, total_messages, total_subagents,
                 project_count, last_updated)
                VALUES (1, ?, ?, ?, ?, ?)
            """, (
                totals.total_conversations, totals.total_messages,
                totals.total_subagents, totals.project_count,
                totals.last_updated or _now_iso(),
            ))

    # ------------------------------------------------------------------
    # Session metadata
    # ------------------------------------------------------------------

    def get_session_metadata(self, file_path: str) -> Optional[SessionMetadataRecord]:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM session_metadata WHERE file_path = ?", (file_path,)
            ).fetchone()
        return self._row_to_session(row) if row else None

    def get_session_mtimes(self) -> dict[str, int]:
        with self._lock:
            rows = self._conn.execute("SELECT file_path, mtime FROM session_metadata").fetchall()
        return {r["file_path"]: r["mtime"] for r in rows}

    def upsert_session_metadata(self, record: SessionMetadataRecord):
        with self.transaction() as conn:
            conn.execute("""
                INSERT OR REPLACE INTO session_metadata
                (file_path, session_id, custom_title, summary, first_prompt,
                 git_branch, project, cwd, mtime, first_timestamp, is_subagent)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                record.file_path, record.session_id, record.custom_title,
                record.summary, record.first_prompt, record.git_branch,
                record.project, record.cwd, record.mtime,
                record.first_timestamp, 1 if record.is_subagent else 0,
            ))

    def list_session_metadata(self, exclude_subagents: bool = False) -> list[SessionMetadataRecord]:
        sql = "SELECT * FROM session_metadata"
        if exclude_subagents:
            sql += " WHERE is_subagent = 0"
        with self._lock:
            rows = self._conn.execute(sql).fetchall()
        return [self._row_to_session(r) for r in rows]

    def get_session_metadata_by_project(
        self, project: str, exclude_subagents: bool = False
    ) -> list[SessionMetadataRecord]:
        """Rows whose project name contains the given string, case-insensitively."""
        sql = "SELECT * FROM session_metadata WHERE project LIKE ? ESCAPE '\\'"
        if exclude_subagents:
            sql += " AND is_subagent = 0"
        with self._lock:
            rows = self._conn.execute(sql, (f"%{_like_escape(project)}%",)).fetchall()
        return [self._row_to_session(r) for r in rows]

    def get_session_metadata_by_dir(self, directory: str | Path) -> list[SessionMetadataRecord]:
        """Rows for transcripts anywhere below a directory."""
        prefix = str(directory).rstrip("/") + "/"
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM session_metadata WHERE file_path LIKE ? ESCAPE '\\'",
                (f"{_like_escape(prefix)}%",),
            ).fetchall()
        return [self._row_to_session(r) for r in rows]

    def remove_session_metadata(self, file_path: str):
        with self.transaction() as conn:
            conn.execute("DELETE FROM session_metadata WHERE file_path = ?", (file_path,))

    def clear_session_metadata(self):
        with self.transaction() as conn:
            conn.execute("DELETE FROM session_metadata")

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    def invalidate_today(self, now: Optional[datetime] = None) -> tuple[str, str]:
        today = today_key(now)
        return self.invalidate_date_range(today, today)

    def invalidate_date(self, date: str) -> tuple[str, str]:
        return self.invalidate_date_range(date, date)

    def invalidate_date_range(self, start: Optional[str], end: Optional[str]) -> tuple[str, str]:
        """Drop the daily buckets for a range and forget the files feeding them.

        A bucket holds the sum of several files, so deleting it only stays
        consistent if every file that touches it is recomputed. The range is
        widened until it covers the full span of every overlapping file; those
        file_index rows are removed so the next pass reprocesses them.
        Returns the range actually invalidated.
        """
        lo = start or end
        hi = end or start
        if lo is None:
            return ("", "")
        if lo > hi:
            lo, hi = hi, lo

        with self.transaction() as conn:
            while True:
                row = conn.execute("""
                    SELECT MIN(first_date), MAX(last_date) FROM file_index
                    WHERE first_date IS NOT NULL
                      AND NOT (last_date < ? OR first_date > ?)
                """, (lo, hi)).fetchone()
                if row[0] is None:
                    break
                new_lo, new_hi = min(lo, row[0]), max(hi, row[1])
                if (new_lo, new_hi) == (lo, hi):
                    break
                lo, hi = new_lo, new_hi

            conn.execute("DELETE FROM daily_stats WHERE date BETWEEN ? AND ?", (lo, hi))
            removed = conn.execute("""
                DELETE FROM file_index
                WHERE first_date IS NOT NULL
                  AND NOT (last_date < ? OR first_date > ?)
            """, (lo, hi)).rowcount

        logger.debug("Invalidated %s..%s (%d files to recompute)", lo, hi, removed)
        return (lo, hi)

    def reset_stats(self):
        """Forget every daily bucket and indexed file so the next pass rebuilds them."""
        with self.transaction() as conn:
            conn.execute("DELETE FROM daily_stats")
            conn.execute("DELETE FROM file_index")
            conn.execute("DELETE FROM totals_cache")
        logger.info("Reset daily stats in %s", self._db_path)

    def clear_all(self):
        """Wipe every table."""
        with self.transaction() as conn:
            for table in _TABLES:
                conn.execute(f"DELETE FROM {table}")
        logger.info("Cleared stats cache at %s", self._db_path)

    # ------------------------------------------------------------------
    # Read-side summaries
    # ------------------------------------------------------------------

    def get_cache_stats(self) -> CacheStats:
        with self._lock:
            days = self._conn.execute("""
                SELECT COUNT(*) AS n, MIN(date) AS oldest, MAX(date) AS newest
                FROM daily_stats WHERE project = ?
            """, (ALL_PROJECTS,)).fetchone()
            files = self._conn.execute("SELECT COUNT(*) AS n FROM file_index").fetchone()
        return CacheStats(
            total_days=days["n"],
            total_files=files["n"],
            oldest_date=days["oldest"],
            newest_date=days["newest"],
            last_updated=self.get_meta("last_full_update"),
        )

    def project_counts(self, date_range: Optional[DateRange] = None) -> dict[str, int]:
        """Conversation count per project from the file index.

        With a range, only files whose date span overlaps it are counted.
        """
        sql = "SELECT project, COUNT(*) AS n FROM file_index WHERE project IS NOT NULL"
        params: tuple = ()
        if date_range is not None:
            sql += " AND NOT (last_date < ? OR first_date > ?)"
            params = _bounds(date_range)
        sql += " GROUP BY project ORDER BY n DESC, project"
        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return {r["project"]: r["n"] for r in rows}

    def conversation_lengths(self) -> list[int]:
        """Sorted per-file message counts, for a length histogram."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT message_count FROM file_index WHERE message_count > 0 "
                "ORDER BY message_count"
            ).fetchall()
        return [r["message_count"] for r in rows]

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    def _row_to_file_index(self, row: sqlite3.Row) -> FileIndexRecord:
        return FileIndexRecord(
            file_path=row["file_path"],
            mtime=row["mtime"],
            message_count=row["message_count"],
            first_date=row["first_date"],
            last_date=row["last_date"],
            project=row["project"],
            is_subagent=bool(row["is_subagent"]),
            last_indexed=row["last_indexed"],
        )

    def _row_to_daily(self, row: sqlite3.Row) -> DailyStats:
        return DailyStats(
            date=row["date"],
            project=row["project"],
            conversations=row["conversations"],
            messages=row["messages"],
            subagent_sessions=row["subagent_sessions"],
            tool_counts=_load_counts("tool_counts", row["tool_counts"]),
            hourly_activity=_load_counts("hourly_activity", row["hourly_activity"]),
            token_usage=TokenUsage.from_dict(_loads("token_usage", row["token_usage"])),
            model_counts=_load_counts("model_counts", row["model_counts"]),
            branch_counts=_load_counts("branch_counts", row["branch_counts"]),
        )

    def _row_to_session(self, row: sqlite3.Row) -> SessionMetadataRecord:
        return SessionMetadataRecord(
            file_path=row["file_path"],
            mtime=row["mtime"],
            session_id=row["session_id"],
            custom_title=row["custom_title"],
            summary=row["summary"],
            first_prompt=row["first_prompt"],
            git_branch=row["git_branch"],
            project=row["project"],
            cwd=row["cwd"],
            first_timestamp=row["first_timestamp"],
            is_subagent=bool(row["is_subagent"]),
        )


def _merge_daily(a: DailyStats, b: DailyStats) -> DailyStats:
    return DailyStats(
        date=a.date,
        project=a.project,
        conversations=a.conversations + b.conversations,
        messages=a.messages + b.messages,
        subagent_sessions=a.subagent_sessions + b.subagent_sessions,
        tool_counts=merge_counts(a.tool_counts, b.tool_counts),
        hourly_activity=merge_counts(a.hourly_activity, b.hourly_activity),
        token_usage=a.token_usage.merged(b.token_usage),
        model_counts=merge_counts(a.model_counts, b.model_counts),
        branch_counts=merge_counts(a.branch_counts, b.branch_counts),
    )


def _loads(column: str, raw: Any) -> Any:
    """Decode a JSON column, returning None (and logging) when corrupt."""
    if raw is None or raw == "":
        return None
    try:
        return orjson.loads(raw)
    except orjson.JSONDecodeError:
        logger.warning("%s", CacheCorruptionError(column, str(raw)))
        return None


def _load_counts(column: str, raw: Any) -> dict[str, int]:
    data = _loads(column, raw)
    if not isinstance(data, dict):
        if data is not None:
            logger.warning("%s", CacheCorruptionError(column, str(raw)))
        return {}
    return {str(k): v for k, v in data.items() if isinstance(v, int) and not isinstance(v, bool)}


def _dumps(value: Any) -> str:
    return orjson.dumps(value).decode("utf-8")


def _bounds(date_range: Optional[DateRange]) -> tuple[str, str]:
    if date_range is None:
        return (MIN_DATE, MAX_DATE)
    return (date_range.start or MIN_DATE, date_range.end or MAX_DATE)


def _like_escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
