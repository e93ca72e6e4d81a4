"""Services for claude-history."""

from claude_history.services.config_manager import ConfigManager, configure_logging
from claude_history.services.search_engine import SearchEngine
from claude_history.services.session_index import SessionIndex
from claude_history.services.stats_cache import StatsCache
from claude_history.services.stats_engine import StatsEngine

__all__ = [
    "ConfigManager",
    "configure_logging",
    "SearchEngine",
    "SessionIndex",
    "StatsCache",
    "StatsEngine",
]
