"""Integration tests for claude_history.app.ClaudeHistory."""

import shutil

import pytest

from claude_history import ClaudeHistory, SearchFilters, parse_date
from claude_history.services.config_manager import ConfigManager
from helpers import make_user, write_jsonl


@pytest.fixture
def history(tmp_path, projects_root):
    config = ConfigManager(
        tmp_path / "settings.json",
        environ={
            "CLAUDE_HISTORY_PROJECTS_DIR": str(projects_root),
            "CLAUDE_HISTORY_CACHE_DIR": str(tmp_path / "cache"),
        },
    )
    with ClaudeHistory(config) as app:
        yield app


def test_wiring_uses_config(history, tmp_path, projects_root):
    assert history.cache.db_path == str(tmp_path / "cache" / "stats-cache.db")
    assert history.search_engine.projects_root == projects_root


def test_default_limit_applied(history, project_dir):
    history.config.set_int("search/defaultLimit", 2)
    for i in range(4):
        write_jsonl(project_dir / f"s{i}.jsonl", [make_user("deploy", session_id=f"s{i}")], mtime=1_771_000_000 + i)

    assert len(history.search(SearchFilters(query="deploy"))) == 2
    assert len(history.search(SearchFilters(query="deploy", limit=3))) == 3


def test_end_to_end(history, project_dir, simple_session_path, tools_session_path):
    shutil.copy(simple_session_path, project_dir / "simple-001.jsonl")
    shutil.copy(tools_session_path, project_dir / "tools-001.jsonl")

    stats = history.conversation_stats()
    assert stats.total_conversations == 2

    listing = history.session_listing(limit=1)
    assert [s.session_id for s in listing.sessions] == ["tools-001"]
    assert listing.total == 2

    results = history.search(SearchFilters(query="csv", summary_only=True))
    assert [r.session_id for r in results] == ["simple-001"]


def test_parse_date_bounds_search(history, project_dir):
    write_jsonl(project_dir / "old.jsonl", [
        make_user("deploy", timestamp="2026-02-10T10:00:00.000Z", session_id="old"),
    ])
    write_jsonl(project_dir / "new.jsonl", [
        make_user("deploy", timestamp="2026-02-14T10:00:00.000Z", session_id="new"),
    ])

    results = history.search(SearchFilters(query="deploy", since=parse_date("2026-02-12")))

    assert [r.session_id for r in results] == ["new"]
