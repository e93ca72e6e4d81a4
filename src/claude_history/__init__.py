"""Incremental search and usage statistics over Claude Code transcripts."""

from claude_history.app import ClaudeHistory
from claude_history.errors import (
    CacheCorruptionError,
    ClaudeHistoryError,
    FileReadError,
    InvalidPatternError,
    ParseError,
)
from claude_history.services import (
    ConfigManager,
    SearchEngine,
    SessionIndex,
    StatsCache,
    StatsEngine,
    configure_logging,
)
from claude_history.types import DateRange, SearchFilters, SearchResult
from claude_history.utils.date_parsing import parse_date

__version__ = "0.1.0"

__all__ = [
    "ClaudeHistory",
    "CacheCorruptionError",
    "ClaudeHistoryError",
    "FileReadError",
    "InvalidPatternError",
    "ParseError",
    "ConfigManager",
    "SearchEngine",
    "SessionIndex",
    "StatsCache",
    "StatsEngine",
    "configure_logging",
    "DateRange",
    "SearchFilters",
    "SearchResult",
    "parse_date",
]
