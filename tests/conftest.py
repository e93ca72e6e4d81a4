"""Shared test fixtures for claude-history."""

from pathlib import Path

import pytest

from claude_history.services.stats_cache import StatsCache

FIXTURES_DIR = Path(__file__).parent / "fixtures"

PROJECT_DIR = "-home-wiz-projects-myapp"


@pytest.fixture
def fixtures_dir() -> Path:
    """Path to the test fixtures directory."""
    return FIXTURES_DIR


@pytest.fixture
def simple_session_path(fixtures_dir) -> Path:
    return fixtures_dir / "simple_session.jsonl"


@pytest.fixture
def tools_session_path(fixtures_dir) -> Path:
    return fixtures_dir / "session_with_tools.jsonl"


@pytest.fixture
def malformed_session_path(fixtures_dir) -> Path:
    return fixtures_dir / "malformed_session.jsonl"


@pytest.fixture
def projects_root(tmp_path) -> Path:
    """Claude projects directory with one empty project folder."""
    root = tmp_path / ".claude" / "projects"
    (root / PROJECT_DIR).mkdir(parents=True)
    return root


@pytest.fixture
def project_dir(projects_root) -> Path:
    return projects_root / PROJECT_DIR


@pytest.fixture
def cache(tmp_path):
    """StatsCache in a temp directory, closed on teardown."""
    stats_cache = StatsCache(tmp_path / "cache" / "stats-cache.db")
    yield stats_cache
    stats_cache.close()
