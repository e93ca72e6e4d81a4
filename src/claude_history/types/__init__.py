"""Type definitions for claude-history."""

from claude_history.types.messages import (
    Message,
    MessageKind,
    TokenUsage,
    ToolUse,
)
from claude_history.types.search import (
    ConversationMetadata,
    ProgressCallback,
    SearchFilters,
    SearchResult,
)
from claude_history.types.sessions import (
    ConversationFile,
    SessionListingResult,
    SessionMetadataRecord,
)
from claude_history.types.stats import (
    ALL_PROJECTS,
    CachedTotals,
    CacheStats,
    ConversationStats,
    DailyStats,
    DateRange,
    FileIndexRecord,
    FileStats,
)

__all__ = [
    "Message",
    "MessageKind",
    "TokenUsage",
    "ToolUse",
    "ConversationMetadata",
    "ProgressCallback",
    "SearchFilters",
    "SearchResult",
    "ConversationFile",
    "SessionListingResult",
    "SessionMetadataRecord",
    "ALL_PROJECTS",
    "CachedTotals",
    "CacheStats",
    "ConversationStats",
    "DailyStats",
    "DateRange",
    "FileIndexRecord",
    "FileStats",
]
