"""Search query and result types."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from claude_history.types.messages import Message

ProgressCallback = Callable[[int, int, str], None]


@dataclass(frozen=True)
class SearchFilters:
    query: str = ""

    # Match modes
    exact: bool = False
    regex: bool = False
    summary_only: bool = False
    agents_only: bool = False
    exclude_agents: bool = False
    exclude_thinking: bool = False
    sort_by_relevance: bool = False

    # Scope
    project: Optional[str] = None
    since: Optional[datetime] = None
    until: Optional[datetime] = None
    conversation_date: Optional[datetime] = None
    conversation_date_until: Optional[datetime] = None

    # Auxiliary filters
    tool: Optional[str] = None
    file: Optional[str] = None
    commit_hash: Optional[str] = None
    commit_message: Optional[str] = None

    # Pagination
    limit: Optional[int] = None
    context: int = 0

    exclude_current_session: Optional[str] = None
    on_progress: Optional[ProgressCallback] = field(default=None, compare=False)


@dataclass
class SearchResult:
    file_path: str
    project: str
    session_id: str
    timestamp: datetime
    summary: Optional[str] = None
    custom_title: Optional[str] = None
    git_branch: Optional[str] = None
    is_subagent: bool = False
    matched_messages: list[Message] = field(default_factory=list)
    context_messages: Optional[list[Message]] = None
    relevance_score: Optional[float] = None
    commit_hashes: Optional[list[str]] = None
    user_message_count: Optional[int] = None
    assistant_message_count: Optional[int] = None

    @property
    def title(self) -> str:
        return self.custom_title or self.summary or ""


@dataclass
class ConversationMetadata:
    file_path: str
    project: str
    session_id: str
    first_timestamp: Optional[datetime] = None
    last_timestamp: Optional[datetime] = None
    summary: Optional[str] = None
    custom_title: Optional[str] = None
    git_branch: Optional[str] = None
    message_count: int = 0
    is_subagent: bool = False
