"""Incremental usage statistics built on top of StatsCache."""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

from claude_history.errors import FileReadError
from claude_history.services.file_discovery import file_mtime_ms, find_conversation_files
from claude_history.services.jsonl_parser import stream_jsonl_file
from claude_history.services.stats_cache import StatsCache
from claude_history.services.text_matcher import extract_tool_uses
from claude_history.types.messages import MessageKind, TokenUsage
from claude_history.types.search import ProgressCallback
from claude_history.types.sessions import ConversationFile
from claude_history.types.stats import (
    ALL_PROJECTS,
    CachedTotals,
    ConversationStats,
    DailyStats,
    DateRange,
    FileIndexRecord,
    FileStats,
    merge_counts,
)
from claude_history.utils.date_parsing import local_hour, to_date_key
from claude_history.utils.path_codec import extract_project_name, is_subagent_path

logger = logging.getLogger(__name__)

LAST_FULL_UPDATE_KEY = "last_full_update"


def extract_model_name(model_id: str) -> str:
    """Reduce a model id like "claude-opus-4-5-20251101" to its family."""
    lowered = model_id.lower()
    for family in ("opus", "sonnet", "haiku"):
        if family in lowered:
            return family
    return "other"


def compute_file_stats(file_path: str | Path) -> FileStats:
    """Derive everything one transcript contributes to the daily buckets.

    Raises FileReadError if the file cannot be read.
    """
    stats = FileStats(subagent_sessions=1 if is_subagent_path(file_path) else 0)

    for msg in stream_jsonl_file(file_path):
        stats.messages += 1

        ts = msg.parsed_timestamp
        if ts is not None:
            date_key = to_date_key(ts)
            hour = local_hour(ts)
            stats.daily_activity[date_key] = stats.daily_activity.get(date_key, 0) + 1
            day_hours = stats.daily_hourly.setdefault(date_key, {})
            day_hours[hour] = day_hours.get(hour, 0) + 1
            stats.hourly_activity[hour] = stats.hourly_activity.get(hour, 0) + 1
            if stats.first_date is None or date_key < stats.first_date:
                stats.first_date = date_key
            if stats.last_date is None or date_key > stats.last_date:
                stats.last_date = date_key

        for tool in extract_tool_uses(msg):
            stats.tool_counts[tool.name] = stats.tool_counts.get(tool.name, 0) + 1

        if msg.git_branch:
            stats.branch_counts[msg.git_branch] = stats.branch_counts.get(msg.git_branch, 0) + 1

        if msg.kind is MessageKind.ASSISTANT:
            if msg.model:
                family = extract_model_name(msg.model)
                stats.model_counts[family] = stats.model_counts.get(family, 0) + 1
            if msg.usage is not None:
                stats.token_usage = stats.token_usage.merged(msg.usage)

    return stats


def aggregate_daily_stats(rows: Iterable[DailyStats]) -> ConversationStats:
    """Additive reduction of daily buckets."""
    result = ConversationStats()
    for day in rows:
        result.total_conversations += day.conversations
        result.total_messages += day.messages
        result.subagent_count += day.subagent_sessions
        result.daily_activity[day.date] = result.daily_activity.get(day.date, 0) + day.messages
        result.tool_counts = merge_counts(result.tool_counts, day.tool_counts)
        result.hourly_activity = merge_counts(result.hourly_activity, day.hourly_activity)
        result.token_usage = result.token_usage.merged(day.token_usage)
        result.daily_tokens[day.date] = day.token_usage.merged(result.daily_tokens.get(day.date))
        result.model_counts = merge_counts(result.model_counts, day.model_counts)
        result.branch_counts = merge_counts(result.branch_counts, day.branch_counts)
    return result


class StatsEngine:
    """Keeps the daily buckets in step with the transcripts on disk."""

    def __init__(self, cache: StatsCache, projects_root: str | Path):
        self._cache = cache
        self._projects_root = Path(projects_root)

    @property
    def cache(self) -> StatsCache:
        return self._cache

    def compute_file_stats(self, file_path: str | Path) -> FileStats:
        return compute_file_stats(file_path)

    def process_file_for_cache(self, file_path: str | Path) -> Optional[FileStats]:
        """Bring one file's contribution to the cache up to date.

        Returns the recomputed FileStats, or None when the file is unchanged
        since it was last indexed or cannot be read.
        """
        path = Path(file_path)
        key = str(path)
        try:
            mtime = file_mtime_ms(path)
        except OSError as e:
            logger.warning("Cannot stat %s: %s", path, e)
            return None

        with self._cache.transaction():
            existing = self._cache.get_file_index(key)
            if existing is not None and existing.mtime == mtime:
                logger.debug("Unchanged, skipping: %s", path)
                return None

            if existing is not None and existing.first_date:
                self._cache.invalidate_date_range(existing.first_date, existing.last_date)

            try:
                stats = compute_file_stats(path)
            except FileReadError as e:
                logger.warning("%s", e)
                return None

            is_subagent = is_subagent_path(path)
            self._cache.upsert_file_index(FileIndexRecord(
                file_path=key,
                mtime=mtime,
                message_count=stats.messages,
                first_date=stats.first_date,
                last_date=stats.last_date,
                project=extract_project_name(path, self._projects_root),
                is_subagent=is_subagent,
            ))

            for date_key, count in stats.daily_activity.items():
                first = date_key == stats.first_date
                # Categorical breakdowns all land on the file's first date
                self._cache.upsert_daily_stats(DailyStats(
                    date=date_key,
                    project=ALL_PROJECTS,
                    conversations=1 if first else 0,
                    messages=count,
                    subagent_sessions=1 if first and is_subagent else 0,
                    tool_counts=stats.tool_counts if first else {},
                    hourly_activity=stats.daily_hourly.get(date_key, {}),
                    token_usage=stats.token_usage if first else TokenUsage(),
                    model_counts=stats.model_counts if first else {},
                    branch_counts=stats.branch_counts if first else {},
                ))

        return stats

    def get_conversation_stats_with_cache(
        self,
        date_range: Optional[DateRange] = None,
        force_refresh: bool = False,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ConversationStats:
        """Full pass: refresh every changed file, then aggregate from the cache.

        Today's bucket is always recomputed since the day is still growing.
        force_refresh wipes the daily buckets and file index first.
        """
        files = find_conversation_files(None, self._projects_root)
        paths = [str(f.path) for f in files]

        with self._cache.transaction():
            if force_refresh:
                self._cache.reset_stats()
            self._cache.invalidate_today()
            self._invalidate_changed(files)

        total = len(paths)
        for processed, path in enumerate(paths, 1):
            try:
                self.process_file_for_cache(path)
            except Exception:
                logger.exception("Failed to index %s", path)
            if on_progress is not None:
                _notify(on_progress, processed, total, path)

        now = datetime.now(timezone.utc).isoformat()
        self._cache.set_meta(LAST_FULL_UPDATE_KEY, now)

        result = aggregate_daily_stats(self._cache.get_daily_stats_in_range(date_range))
        result.project_counts = self._cache.project_counts()
        result.conversation_lengths = self._cache.conversation_lengths()

        overall = result
        if date_range is not None:
            overall = aggregate_daily_stats(self._cache.get_daily_stats_in_range())
        self._cache.update_totals(CachedTotals(
            total_conversations=overall.total_conversations,
            total_messages=overall.total_messages,
            total_subagents=overall.subagent_count,
            project_count=len(result.project_counts),
            last_updated=now,
        ))
        logger.info(
            "Stats pass over %d files: %d conversations, %d messages",
            total, result.total_conversations, result.total_messages,
        )
        return result

    def get_stats_for_date_range(self, date_range: DateRange) -> ConversationStats:
        """Cached stats for a range, falling back to a full pass when none exist."""
        rows = self._cache.get_daily_stats_in_range(date_range)
        if not rows:
            return self.get_conversation_stats_with_cache(date_range=date_range)

        result = aggregate_daily_stats(rows)
        result.project_counts = self._cache.project_counts(date_range)
        result.conversation_lengths = self._cache.conversation_lengths()
        return result

    def get_quick_stats(self) -> Optional[CachedTotals]:
        """Totals from the last full pass, without touching the transcripts."""
        return self._cache.get_totals()

    def _invalidate_changed(self, files: list[ConversationFile]) -> None:
        on_disk = {str(f.path): f.mtime for f in files}
        for record in self._cache.list_file_index():
            current = on_disk.get(record.file_path)
            if current == record.mtime:
                continue
            if record.first_date:
                self._cache.invalidate_date_range(record.first_date, record.last_date)
            if current is None:
                # Deleted from disk: its buckets are gone, drop the row too
                self._cache.remove_file_index(record.file_path)


def _notify(callback: ProgressCallback, processed: int, total: int, identifier: str) -> None:
    try:
        callback(processed, total, identifier)
    except Exception:
        logger.exception("Progress callback failed")
