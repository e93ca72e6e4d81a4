"""Cache rows and aggregate statistics types."""

from dataclasses import dataclass, field
from typing import Optional

from claude_history.types.messages import TokenUsage

ALL_PROJECTS = "__all__"


@dataclass
class DateRange:
    start: Optional[str] = None  # YYYY-MM-DD, inclusive
    end: Optional[str] = None  # YYYY-MM-DD, inclusive


@dataclass
class FileIndexRecord:
    file_path: str
    mtime: int  # Integer milliseconds
    message_count: int = 0
    first_date: Optional[str] = None
    last_date: Optional[str] = None
    project: Optional[str] = None
    is_subagent: bool = False
    last_indexed: str = ""


@dataclass
class DailyStats:
    date: str
    project: str = ALL_PROJECTS
    conversations: int = 0
    messages: int = 0
    subagent_sessions: int = 0
    tool_counts: dict[str, int] = field(default_factory=dict)
    hourly_activity: dict[str, int] = field(default_factory=dict)
    token_usage: TokenUsage = field(default_factory=TokenUsage)
    model_counts: dict[str, int] = field(default_factory=dict)
    branch_counts: dict[str, int] = field(default_factory=dict)


@dataclass
class CachedTotals:
    total_conversations: int = 0
    total_messages: int = 0
    total_subagents: int = 0
    project_count: int = 0
    last_updated: str = ""


@dataclass
class CacheStats:
    total_days: int = 0
    total_files: int = 0
    oldest_date: Optional[str] = None
    newest_date: Optional[str] = None
    last_updated: Optional[str] = None


@dataclass
class FileStats:
    """Everything one transcript contributes to the daily buckets."""
    messages: int = 0
    subagent_sessions: int = 0
    tool_counts: dict[str, int] = field(default_factory=dict)
    daily_activity: dict[str, int] = field(default_factory=dict)
    daily_hourly: dict[str, dict[str, int]] = field(default_factory=dict)
    hourly_activity: dict[str, int] = field(default_factory=dict)
    token_usage: TokenUsage = field(default_factory=TokenUsage)
    model_counts: dict[str, int] = field(default_factory=dict)
    branch_counts: dict[str, int] = field(default_factory=dict)
    first_date: Optional[str] = None
    last_date: Optional[str] = None


@dataclass
class ConversationStats:
    total_conversations: int = 0
    total_messages: int = 0
    subagent_count: int = 0
    project_counts: dict[str, int] = field(default_factory=dict)
    tool_counts: dict[str, int] = field(default_factory=dict)
    daily_activity: dict[str, int] = field(default_factory=dict)
    hourly_activity: dict[str, int] = field(default_factory=dict)
    token_usage: TokenUsage = field(default_factory=TokenUsage)
    daily_tokens: dict[str, TokenUsage] = field(default_factory=dict)
    model_counts: dict[str, int] = field(default_factory=dict)
    branch_counts: dict[str, int] = field(default_factory=dict)
    conversation_lengths: list[int] = field(default_factory=list)


def merge_counts(a: dict[str, int], b: dict[str, int]) -> dict[str, int]:
    """Pointwise sum of two count maps."""
    result = dict(a)
    for key, value in b.items():
        result[key] = result.get(key, 0) + value
    return result
