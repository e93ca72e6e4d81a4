"""Session listing backed by the session_metadata table."""

import logging
from pathlib import Path
from typing import Iterable, Optional

from claude_history.errors import FileReadError
from claude_history.services.file_discovery import find_conversation_files
from claude_history.services.jsonl_parser import HEAD_MAX_BYTES, HEAD_MAX_LINES, read_session_head
from claude_history.services.stats_cache import StatsCache
from claude_history.services.text_matcher import matches_query
from claude_history.types.messages import Message, MessageKind
from claude_history.types.search import ProgressCallback, SearchFilters
from claude_history.types.sessions import (
    ConversationFile,
    SessionListingResult,
    SessionMetadataRecord,
)
from claude_history.utils.date_parsing import ensure_aware, parse_timestamp
from claude_history.utils.path_codec import extract_project_name, is_subagent_path

logger = logging.getLogger(__name__)

# Bump when extract_session_metadata changes what it stores
METADATA_VERSION = "3"
METADATA_VERSION_KEY = "session_metadata_version"

FIRST_PROMPT_LENGTH = 120


def first_user_text(message: Message) -> str:
    """Prompt text typed by the user, ignoring tool results."""
    if message.kind is not MessageKind.USER or message.raw.get("isMeta"):
        return ""
    if isinstance(message.content, str):
        return message.content.strip()
    for block in message.content_blocks:
        if block.get("type") == "text":
            text = block.get("text")
            if isinstance(text, str) and text.strip():
                return text.strip()
    return ""


def extract_session_metadata(
    file_path: str | Path,
    projects_root: str | Path,
    mtime: int,
    max_bytes: int = HEAD_MAX_BYTES,
    max_lines: int = HEAD_MAX_LINES,
) -> SessionMetadataRecord:
    """Build a metadata row from the head of a transcript.

    Raises FileReadError if the file cannot be read.
    """
    path = Path(file_path)
    record = SessionMetadataRecord(
        file_path=str(path),
        mtime=mtime,
        project=extract_project_name(path, projects_root),
        is_subagent=is_subagent_path(path),
    )

    for msg in read_session_head(path, max_bytes=max_bytes, max_lines=max_lines):
        if msg.kind is MessageKind.SUMMARY and msg.summary:
            record.summary = msg.summary
        elif msg.kind is MessageKind.CUSTOM_TITLE and msg.custom_title:
            record.custom_title = msg.custom_title

        if not record.session_id and msg.session_id:
            record.session_id = msg.session_id
        if not record.git_branch and msg.git_branch:
            record.git_branch = msg.git_branch
        if not record.cwd and msg.cwd:
            record.cwd = msg.cwd
        if not record.first_timestamp and msg.timestamp:
            record.first_timestamp = msg.timestamp
        if not record.first_prompt:
            text = first_user_text(msg)
            if text:
                record.first_prompt = text[:FIRST_PROMPT_LENGTH]

    if not record.session_id:
        record.session_id = path.stem
    return record


class SessionIndex:
    """Keeps session_metadata rows fresh and answers listing queries from them."""

    def __init__(
        self,
        cache: StatsCache,
        projects_root: str | Path,
        head_max_bytes: int = HEAD_MAX_BYTES,
        head_max_lines: int = HEAD_MAX_LINES,
    ):
        self._cache = cache
        self._projects_root = Path(projects_root)
        self._head_max_bytes = head_max_bytes
        self._head_max_lines = head_max_lines

    def ensure_version(self) -> bool:
        """Wipe the table if it was filled by a different extraction version.

        Returns True when the table was wiped.
        """
        with self._cache.transaction():
            stored = self._cache.get_meta(METADATA_VERSION_KEY)
            if stored == METADATA_VERSION:
                return False
            self._cache.clear_session_metadata()
            self._cache.set_meta(METADATA_VERSION_KEY, METADATA_VERSION)
        logger.info("Session metadata version %s -> %s, reindexing", stored, METADATA_VERSION)
        return True

    def refresh(
        self,
        files: Iterable[ConversationFile],
        on_progress: Optional[ProgressCallback] = None,
    ) -> int:
        """Re-extract rows whose stored mtime differs from the file's.

        Returns the number of files (re)extracted.
        """
        files = list(files)
        known = self._cache.get_session_mtimes()
        indexed = 0
        for processed, conv in enumerate(files, 1):
            key = str(conv.path)
            if known.get(key) != conv.mtime:
                try:
                    record = extract_session_metadata(
                        conv.path, self._projects_root, conv.mtime,
                        max_bytes=self._head_max_bytes, max_lines=self._head_max_lines,
                    )
                except FileReadError as e:
                    logger.warning("%s", e)
                else:
                    self._cache.upsert_session_metadata(record)
                    indexed += 1
            if on_progress is not None:
                try:
                    on_progress(processed, len(files), key)
                except Exception:
                    logger.exception("Progress callback failed")
        if indexed:
            logger.debug("Indexed metadata for %d of %d files", indexed, len(files))
        return indexed

    def get_session_listing(
        self,
        project: Optional[str] = None,
        exclude_subagents: bool = True,
        limit: Optional[int] = None,
        offset: int = 0,
        on_progress: Optional[ProgressCallback] = None,
    ) -> SessionListingResult:
        """Page through sessions, newest first, refreshing stale rows on the way."""
        reindexed = self.ensure_version()

        files = find_conversation_files(
            SearchFilters(project=project, exclude_agents=exclude_subagents),
            self._projects_root,
        )
        indexed = self.refresh(files, on_progress)

        rows = self._rows_for(files)
        rows.sort(key=lambda r: _sort_key(r.first_timestamp), reverse=True)

        end = None if limit is None else offset + limit
        return SessionListingResult(
            sessions=rows[offset:end],
            total=len(rows),
            subagents=sum(1 for r in rows if r.is_subagent),
            indexed=indexed,
            project_count=len({r.project for r in rows if r.project}),
            reindexed=reindexed,
        )

    def search_metadata(self, filters: SearchFilters) -> list[SessionMetadataRecord]:
        """Rows whose title matches the query, in discovery order."""
        self.ensure_version()
        files = find_conversation_files(filters, self._projects_root)
        self.refresh(files, filters.on_progress)

        matches = []
        for record in self._rows_for(files):
            if filters.exclude_current_session and record.session_id == filters.exclude_current_session:
                continue
            if not _in_conversation_window(record, filters):
                continue
            if matches_query(record.title, filters.query, filters.exact, filters.regex):
                matches.append(record)
        return matches

    def _rows_for(self, files: list[ConversationFile]) -> list[SessionMetadataRecord]:
        by_path = {r.file_path: r for r in self._cache.list_session_metadata()}
        return [by_path[str(f.path)] for f in files if str(f.path) in by_path]


def _sort_key(timestamp: Optional[str]) -> float:
    parsed = parse_timestamp(timestamp) if timestamp else None
    return parsed.timestamp() if parsed else float("-inf")


def _in_conversation_window(record: SessionMetadataRecord, filters: SearchFilters) -> bool:
    if filters.conversation_date is None and filters.conversation_date_until is None:
        return True
    started = parse_timestamp(record.first_timestamp) if record.first_timestamp else None
    if started is None:
        return True
    if filters.conversation_date is not None and started < ensure_aware(filters.conversation_date):
        return False
    if filters.conversation_date_until is not None and started > ensure_aware(filters.conversation_date_until):
        return False
    return True
