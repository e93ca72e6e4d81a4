"""Cross-session search over Claude Code transcripts."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from claude_history.errors import FileReadError
from claude_history.services.file_discovery import find_conversation_files, get_available_projects
from claude_history.services.jsonl_parser import parse_jsonl_file
from claude_history.services.relevance import calculate_relevance_score
from claude_history.services.session_index import SessionIndex
from claude_history.services.stats_cache import StatsCache
from claude_history.services.text_matcher import (
    extract_commit_hashes,
    extract_text,
    extract_tool_uses,
    matches_filters,
    matches_query,
)
from claude_history.types.messages import Message, MessageKind
from claude_history.types.search import ConversationMetadata, SearchFilters, SearchResult
from claude_history.types.sessions import ConversationFile
from claude_history.utils.date_parsing import ensure_aware, parse_timestamp
from claude_history.utils.path_codec import extract_project_name, is_subagent_path

logger = logging.getLogger(__name__)

COMMIT_TOOL_NAME = "Bash"
COMMIT_COMMAND = "git commit"


@dataclass
class _Conversation:
    """A parsed transcript with the metadata scanned out of it."""
    file: ConversationFile
    messages: list[Message]
    session_id: str
    summary: Optional[str] = None
    custom_title: Optional[str] = None
    git_branch: Optional[str] = None
    first_timestamp: Optional[datetime] = None
    first_user_message: Optional[str] = None

    @property
    def title(self) -> str:
        return self.custom_title or self.summary or ""

    @property
    def turns(self) -> list[Message]:
        return [m for m in self.messages if m.is_conversation_turn]

    def to_result(self, **extra) -> SearchResult:
        return SearchResult(
            file_path=str(self.file.path),
            project=self.file.project,
            session_id=self.session_id,
            timestamp=self.first_timestamp or datetime.now(timezone.utc),
            summary=self.summary,
            custom_title=self.custom_title,
            git_branch=self.git_branch,
            is_subagent=self.file.is_subagent,
            **extra,
        )


class SearchEngine:
    """Searches across transcript files for messages matching SearchFilters.

    Summary-only queries are answered from the session metadata cache when
    one is supplied; everything else parses the transcripts in discovery
    order (newest first).
    """

    def __init__(
        self,
        projects_root: str | Path,
        cache: Optional[StatsCache] = None,
        index: Optional[SessionIndex] = None,
    ):
        self._projects_root = Path(projects_root)
        if index is None and cache is not None:
            index = SessionIndex(cache, projects_root)
        self._index = index

    @property
    def projects_root(self) -> Path:
        return self._projects_root

    def search(self, filters: SearchFilters) -> list[SearchResult]:
        if filters.summary_only and not filters.commit_hash and not filters.commit_message:
            if self._index is not None:
                return self._search_metadata_cache(filters)

        needs_global_sort = bool(filters.sort_by_relevance and filters.query)
        files = find_conversation_files(filters, self._projects_root)
        total = len(files)
        results: list[SearchResult] = []

        for processed, conv_file in enumerate(files, 1):
            self._notify(filters, processed, total, conv_file.session_id)

            conv = self._load(conv_file)
            if conv is None or not self._passes_session_filters(conv, filters):
                continue

            if filters.summary_only:
                result = self._match_summary(conv, filters)
            elif filters.commit_hash:
                result = self._match_commit_hash(conv, filters.commit_hash)
            elif filters.commit_message:
                result = self._match_commit_message(conv, filters.commit_message)
            else:
                result = self._match_messages(conv, filters)

            if result is None:
                continue
            results.append(result)
            if filters.limit and not needs_global_sort and len(results) >= filters.limit:
                break

        if needs_global_sort:
            results = sorted(results, key=lambda r: r.relevance_score or 0, reverse=True)
        if filters.limit:
            results = results[:filters.limit]
        return results

    def list_conversation_summaries(self, filters: Optional[SearchFilters] = None) -> list[SearchResult]:
        """Conversations that carry a summary or custom title, newest first."""
        filters = filters or SearchFilters()
        results = []
        for conv_file in find_conversation_files(filters, self._projects_root):
            conv = self._load(conv_file)
            if conv is None or not self._passes_session_filters(conv, filters):
                continue
            if not conv.title:
                continue
            results.append(conv.to_result())
            if filters.limit and len(results) >= filters.limit:
                break
        return results

    def get_all_conversations(self, filters: Optional[SearchFilters] = None) -> list[SearchResult]:
        """Every conversation with its user/assistant turns and per-role counts."""
        filters = filters or SearchFilters()
        results = []
        for conv_file in find_conversation_files(filters, self._projects_root):
            conv = self._load(conv_file)
            if conv is None:
                continue
            results.append(conv.to_result(
                matched_messages=conv.turns,
                user_message_count=sum(1 for m in conv.messages if m.kind is MessageKind.USER),
                assistant_message_count=sum(
                    1 for m in conv.messages if m.kind is MessageKind.ASSISTANT
                ),
            ))
            if filters.limit and len(results) >= filters.limit:
                break
        return results

    def get_conversation_metadata(self, file_path: str | Path) -> ConversationMetadata:
        """Metadata over the whole file, including first and last timestamps.

        Raises FileReadError if the file cannot be read.
        """
        path = Path(file_path)
        messages = parse_jsonl_file(path)
        meta = ConversationMetadata(
            file_path=str(path),
            project=extract_project_name(path, self._projects_root),
            session_id=path.stem,
            message_count=len(messages),
            is_subagent=is_subagent_path(path),
        )
        session_id = None
        for msg in messages:
            if msg.kind is MessageKind.SUMMARY:
                meta.summary = msg.summary
            elif msg.kind is MessageKind.CUSTOM_TITLE:
                meta.custom_title = msg.custom_title
            if msg.git_branch:
                meta.git_branch = msg.git_branch
            if msg.session_id:
                session_id = msg.session_id
            ts = msg.parsed_timestamp
            if ts is not None:
                if meta.first_timestamp is None or ts < meta.first_timestamp:
                    meta.first_timestamp = ts
                if meta.last_timestamp is None or ts > meta.last_timestamp:
                    meta.last_timestamp = ts
        if session_id:
            meta.session_id = session_id
        return meta

    def get_conversation_by_session_id(self, session_id: str) -> Optional[SearchResult]:
        """Whole conversation for a session id, every message as a match.

        Files named after the session win over files whose path merely
        mentions it. Transcripts with no parseable messages are skipped.
        """
        if not session_id:
            return None
        files = find_conversation_files(None, self._projects_root)
        exact = [f for f in files if f.path.stem == session_id]
        partial = [f for f in files if f.path.stem != session_id and session_id in str(f.path)]
        for conv_file in exact + partial:
            conv = self._load(conv_file)
            if conv is None:
                continue
            return conv.to_result(matched_messages=conv.messages)
        return None

    def get_available_projects(self) -> list[str]:
        return get_available_projects(self._projects_root)

    # ------------------------------------------------------------------
    # Mode handlers
    # ------------------------------------------------------------------

    def _search_metadata_cache(self, filters: SearchFilters) -> list[SearchResult]:
        results = []
        for record in self._index.search_metadata(filters):
            started = parse_timestamp(record.first_timestamp) if record.first_timestamp else None
            title = record.title
            score = 0
            if filters.query:
                score = calculate_relevance_score(
                    filters.query, record.summary, record.custom_title,
                    record.first_prompt, title, started,
                )
            results.append(SearchResult(
                file_path=record.file_path,
                project=record.project or "",
                session_id=record.session_id or Path(record.file_path).stem,
                timestamp=started or datetime.now(timezone.utc),
                summary=record.summary,
                custom_title=record.custom_title,
                git_branch=record.git_branch,
                is_subagent=record.is_subagent,
                relevance_score=score,
            ))

        if filters.sort_by_relevance and filters.query:
            results = sorted(results, key=lambda r: r.relevance_score or 0, reverse=True)
        if filters.limit:
            results = results[:filters.limit]
        return results

    def _match_summary(self, conv: _Conversation, filters: SearchFilters) -> Optional[SearchResult]:
        title = conv.title
        if filters.query and not matches_query(title, filters.query, filters.exact, filters.regex):
            return None
        score = 0
        if filters.query:
            score = calculate_relevance_score(
                filters.query, conv.summary, conv.custom_title,
                conv.first_user_message, title, conv.first_timestamp,
            )
        return conv.to_result(relevance_score=score)

    def _match_commit_hash(self, conv: _Conversation, prefix: str) -> Optional[SearchResult]:
        hashes = extract_commit_hashes(conv.messages)
        wanted = prefix.lower()
        if not any(h.lower().startswith(wanted) for h in hashes):
            return None
        return conv.to_result(matched_messages=conv.turns, commit_hashes=hashes)

    def _match_commit_message(self, conv: _Conversation, text: str) -> Optional[SearchResult]:
        wanted = text.lower()
        for msg in conv.messages:
            for tool in extract_tool_uses(msg):
                if tool.name != COMMIT_TOOL_NAME:
                    continue
                command = tool.input.get("command")
                if isinstance(command, str) and COMMIT_COMMAND in command and wanted in command.lower():
                    return conv.to_result(
                        matched_messages=conv.turns,
                        commit_hashes=extract_commit_hashes(conv.messages),
                    )
        return None

    def _match_messages(self, conv: _Conversation, filters: SearchFilters) -> Optional[SearchResult]:
        matched: list[Message] = []
        matched_indices: list[int] = []
        texts: list[str] = []

        for i, msg in enumerate(conv.messages):
            text = extract_text(msg, filters.exclude_thinking)
            texts.append(text)
            if matches_filters(msg, filters, text):
                matched.append(msg)
                matched_indices.append(i)

        if not matched and filters.query:
            return None

        context_messages = None
        if filters.context > 0 and matched_indices:
            window = set()
            last = len(conv.messages) - 1
            for idx in matched_indices:
                window.update(range(max(0, idx - filters.context), min(last, idx + filters.context) + 1))
            context_messages = [conv.messages[i] for i in sorted(window)]

        score = 0
        if filters.query:
            score = calculate_relevance_score(
                filters.query, conv.summary, conv.custom_title,
                conv.first_user_message, " ".join(texts), conv.first_timestamp,
            )

        return conv.to_result(
            matched_messages=matched,
            context_messages=context_messages,
            relevance_score=score,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load(self, conv_file: ConversationFile) -> Optional[_Conversation]:
        try:
            messages = parse_jsonl_file(conv_file.path)
        except FileReadError as e:
            logger.warning("%s", e)
            return None
        if not messages:
            return None

        conv = _Conversation(file=conv_file, messages=messages, session_id=conv_file.session_id)
        for msg in messages:
            if msg.kind is MessageKind.SUMMARY:
                conv.summary = msg.summary
            elif msg.kind is MessageKind.CUSTOM_TITLE:
                conv.custom_title = msg.custom_title
            if msg.git_branch:
                conv.git_branch = msg.git_branch
            if msg.session_id:
                conv.session_id = msg.session_id
            if conv.first_timestamp is None and msg.timestamp:
                conv.first_timestamp = msg.parsed_timestamp
            if conv.first_user_message is None and msg.kind is MessageKind.USER:
                conv.first_user_message = extract_text(msg, exclude_thinking=True)
        return conv

    def _passes_session_filters(self, conv: _Conversation, filters: SearchFilters) -> bool:
        if filters.exclude_current_session and conv.session_id == filters.exclude_current_session:
            return False
        started = conv.first_timestamp
        if started is not None:
            if filters.conversation_date is not None and started < ensure_aware(filters.conversation_date):
                return False
            if (filters.conversation_date_until is not None
                    and started > ensure_aware(filters.conversation_date_until)):
                return False
        return True

    def _notify(self, filters: SearchFilters, processed: int, total: int, identifier: str):
        if filters.on_progress is None:
            return
        try:
            filters.on_progress(processed, total, identifier)
        except Exception:
            logger.exception("Progress callback failed")
