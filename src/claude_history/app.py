"""Wiring of the cache, search, stats and listing services from configuration."""

import dataclasses
import logging
from typing import Optional

from claude_history.services.config_manager import ConfigManager, configure_logging
from claude_history.services.search_engine import SearchEngine
from claude_history.services.session_index import SessionIndex
from claude_history.services.stats_cache import StatsCache
from claude_history.services.stats_engine import StatsEngine
from claude_history.types.search import SearchFilters, SearchResult
from claude_history.types.sessions import SessionListingResult
from claude_history.types.stats import ConversationStats, DateRange

logger = logging.getLogger(__name__)


class ClaudeHistory:
    """One cache connection shared by the search, stats and listing services.

    Close it when done, or use it as a context manager.
    """

    def __init__(self, config: Optional[ConfigManager] = None, setup_logging: bool = False):
        self.config = config or ConfigManager()
        if setup_logging:
            configure_logging(self.config.get_bool("advanced/debugLogging"))

        projects_root = self.config.projects_root()
        self.cache = StatsCache(self.config.cache_db_path())
        self.sessions = SessionIndex(
            self.cache,
            projects_root,
            head_max_bytes=self.config.get_int("index/headMaxBytes"),
            head_max_lines=self.config.get_int("index/headMaxLines"),
        )
        self.search_engine = SearchEngine(projects_root, cache=self.cache, index=self.sessions)
        self.stats = StatsEngine(self.cache, projects_root)
        logger.debug("Using projects root %s, cache %s", projects_root, self.cache.db_path)

    def search(self, filters: SearchFilters) -> list[SearchResult]:
        """Search with the configured default limit when the filters set none."""
        if filters.limit is None:
            filters = dataclasses.replace(filters, limit=self.config.get_int("search/defaultLimit"))
        return self.search_engine.search(filters)

    def conversation_stats(
        self,
        date_range: Optional[DateRange] = None,
        force_refresh: bool = False,
    ) -> ConversationStats:
        return self.stats.get_conversation_stats_with_cache(date_range, force_refresh)

    def session_listing(self, **kwargs) -> SessionListingResult:
        return self.sessions.get_session_listing(**kwargs)

    def close(self):
        self.cache.close()

    def __enter__(self) -> "ClaudeHistory":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
