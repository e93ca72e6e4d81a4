"""Tests for claude_history.services.search_engine."""

import shutil
from datetime import datetime, timezone

import pytest

from claude_history.errors import FileReadError
from claude_history.services.search_engine import SearchEngine
from claude_history.types.search import SearchFilters
from helpers import make_assistant, make_user, tool_result, tool_use, write_jsonl

T1, T2, T3 = 1_771_000_000, 1_771_000_100, 1_771_000_200


@pytest.fixture
def fixture_projects(projects_root, project_dir, simple_session_path, tools_session_path):
    """Projects root holding copies of the two fixture transcripts."""
    shutil.copy(simple_session_path, project_dir / "simple-001.jsonl")
    shutil.copy(tools_session_path, project_dir / "tools-001.jsonl")
    return projects_root


def _ts(minute):
    return f"2026-02-13T10:{minute:02d}:00.000Z"


# ---------------------------------------------------------------------------
# 1. Standard mode
# ---------------------------------------------------------------------------

def test_fuzzy_query_finds_messages(fixture_projects):
    engine = SearchEngine(fixture_projects)
    results = engine.search(SearchFilters(query="csv parse"))

    assert [r.session_id for r in results] == ["simple-001"]
    result = results[0]
    assert result.summary == "Python CSV parsing script"
    assert result.git_branch == "main"
    assert result.matched_messages
    assert result.context_messages is None


def test_no_match_yields_no_result(fixture_projects):
    assert SearchEngine(fixture_projects).search(SearchFilters(query="kubernetes")) == []


def test_tool_filter_with_empty_query(fixture_projects):
    results = SearchEngine(fixture_projects).search(SearchFilters(tool="Edit"))

    by_session = {r.session_id: r for r in results}
    edits = by_session["tools-001"].matched_messages
    assert len(edits) == 1
    assert edits[0].content[0]["name"] == "Edit"


def test_file_filter(fixture_projects):
    results = SearchEngine(fixture_projects).search(SearchFilters(file="src/*.py"))
    matched = {r.session_id: len(r.matched_messages) for r in results}
    assert matched["tools-001"] == 2
    assert matched["simple-001"] == 0


def test_regex_gate_rejects_pattern(fixture_projects):
    results = SearchEngine(fixture_projects).search(SearchFilters(query="(a+)+$", regex=True))
    assert results == []


def test_exclude_thinking(project_dir, projects_root):
    write_jsonl(project_dir / "s.jsonl", [
        make_user("hello"),
        make_assistant([{"type": "thinking", "thinking": "secret plan"}, {"type": "text", "text": "hi"}]),
    ])
    engine = SearchEngine(projects_root)

    assert engine.search(SearchFilters(query="secret plan"))
    assert engine.search(SearchFilters(query="secret plan", exclude_thinking=True)) == []


# ---------------------------------------------------------------------------
# 2. Context expansion
# ---------------------------------------------------------------------------

def test_context_window_around_single_match(project_dir, projects_root):
    lines = [make_user(f"line {i}", timestamp=_ts(i)) for i in range(10)]
    lines[5] = make_user("the needle is here", timestamp=_ts(5))
    write_jsonl(project_dir / "s.jsonl", lines)

    results = SearchEngine(projects_root).search(SearchFilters(query="needle", context=2))

    context = results[0].context_messages
    assert [m.content for m in context] == ["line 3", "line 4", "the needle is here", "line 6", "line 7"]


def test_context_window_deduplicates_overlaps(project_dir, projects_root):
    lines = [make_user(f"line {i}", timestamp=_ts(i)) for i in range(10)]
    lines[1] = make_user("needle one", timestamp=_ts(1))
    lines[2] = make_user("needle two", timestamp=_ts(2))
    write_jsonl(project_dir / "s.jsonl", lines)

    results = SearchEngine(projects_root).search(SearchFilters(query="needle", context=2))

    context = results[0].context_messages
    assert [m.timestamp for m in context] == [_ts(i) for i in range(5)]


# ---------------------------------------------------------------------------
# 3. Ordering, limits and relevance
# ---------------------------------------------------------------------------

def test_discovery_order_newest_first(project_dir, projects_root):
    for name, mtime in (("t1", T1), ("t3", T3), ("t2", T2)):
        write_jsonl(project_dir / f"{name}.jsonl", [make_user("shared words", session_id=name)], mtime=mtime)

    results = SearchEngine(projects_root).search(SearchFilters(query="shared"))
    assert [r.session_id for r in results] == ["t3", "t2", "t1"]


def test_limit_stops_early(project_dir, projects_root):
    seen = []
    for name, mtime in (("t1", T1), ("t2", T2), ("t3", T3)):
        write_jsonl(project_dir / f"{name}.jsonl", [make_user("shared", session_id=name)], mtime=mtime)

    filters = SearchFilters(query="shared", limit=1, on_progress=lambda n, total, ident: seen.append(ident))
    results = SearchEngine(projects_root).search(filters)

    assert [r.session_id for r in results] == ["t3"]
    assert seen == ["t3"]


def test_sort_by_relevance_title_hit_first(project_dir, projects_root):
    write_jsonl(project_dir / "plain.jsonl", [
        {"type": "summary", "summary": "unrelated work"},
        make_user("we hit a login bug today", session_id="plain"),
    ], mtime=T3)
    write_jsonl(project_dir / "titled.jsonl", [
        {"type": "summary", "summary": "Fixing the login bug"},
        make_user("we hit a login bug today", session_id="titled"),
    ], mtime=T1)

    engine = SearchEngine(projects_root)
    default = engine.search(SearchFilters(query="login bug"))
    ranked = engine.search(SearchFilters(query="login bug", sort_by_relevance=True))

    assert [r.session_id for r in default] == ["plain", "titled"]
    assert [r.session_id for r in ranked] == ["titled", "plain"]
    assert ranked[0].relevance_score - ranked[1].relevance_score >= 100


def test_progress_callback_errors_ignored(fixture_projects):
    def boom(processed, total, ident):
        raise RuntimeError("listener failed")

    results = SearchEngine(fixture_projects).search(SearchFilters(query="csv", on_progress=boom))
    assert len(results) == 1


# ---------------------------------------------------------------------------
# 4. Session filters
# ---------------------------------------------------------------------------

def test_exclude_current_session(fixture_projects):
    results = SearchEngine(fixture_projects).search(
        SearchFilters(tool="Edit", exclude_current_session="tools-001")
    )
    assert "tools-001" not in {r.session_id for r in results}


def test_conversation_date_window(fixture_projects):
    engine = SearchEngine(fixture_projects)
    feb14 = datetime(2026, 2, 14, tzinfo=timezone.utc)

    after = engine.search(SearchFilters(conversation_date=feb14))
    before = engine.search(SearchFilters(conversation_date_until=feb14))

    assert [r.session_id for r in after] == ["tools-001"]
    assert [r.session_id for r in before] == ["simple-001"]


def test_message_date_filters(fixture_projects):
    since = datetime(2026, 2, 13, 10, 1, 30, tzinfo=timezone.utc)
    results = SearchEngine(fixture_projects).search(SearchFilters(query="thanks", since=since))
    assert [r.session_id for r in results] == ["simple-001"]

    until = datetime(2026, 2, 13, 10, 0, 30, tzinfo=timezone.utc)
    assert SearchEngine(fixture_projects).search(SearchFilters(query="thanks", until=until)) == []


# ---------------------------------------------------------------------------
# 5. Commit modes
# ---------------------------------------------------------------------------

def test_commit_hash_prefix(fixture_projects):
    results = SearchEngine(fixture_projects).search(SearchFilters(commit_hash="A1B2"))

    assert [r.session_id for r in results] == ["tools-001"]
    assert results[0].commit_hashes == ["a1b2c3d"]
    assert results[0].matched_messages


def test_commit_hash_no_match(fixture_projects):
    assert SearchEngine(fixture_projects).search(SearchFilters(commit_hash="ffff")) == []


def test_commit_message(fixture_projects):
    engine = SearchEngine(fixture_projects)

    results = engine.search(SearchFilters(commit_message="token REFRESH"))
    assert [r.session_id for r in results] == ["tools-001"]
    assert results[0].commit_hashes == ["a1b2c3d"]

    assert engine.search(SearchFilters(commit_message="unrelated change")) == []


def test_commit_message_requires_git_commit(project_dir, projects_root):
    write_jsonl(project_dir / "s.jsonl", [
        make_user("run it"),
        make_assistant([tool_use("Bash", {"command": "echo 'fix token refresh'"})]),
        make_user([tool_result("fix token refresh")]),
    ])
    assert SearchEngine(projects_root).search(SearchFilters(commit_message="token refresh")) == []


# ---------------------------------------------------------------------------
# 6. Summary-only mode
# ---------------------------------------------------------------------------

def test_summary_only_slow_path(fixture_projects):
    results = SearchEngine(fixture_projects).search(SearchFilters(query="auth", summary_only=True))

    assert [r.session_id for r in results] == ["tools-001"]
    assert results[0].title == "Auth token refresh fix"


def test_summary_only_ignores_body_text(fixture_projects):
    assert SearchEngine(fixture_projects).search(SearchFilters(query="greeting", summary_only=True)) == []
    assert SearchEngine(fixture_projects).search(SearchFilters(query="thanks", summary_only=True)) == []


def test_summary_only_fast_path_matches_slow_path(fixture_projects, cache):
    slow = SearchEngine(fixture_projects).search(SearchFilters(query="csv", summary_only=True))
    fast = SearchEngine(fixture_projects, cache=cache).search(SearchFilters(query="csv", summary_only=True))

    assert [r.session_id for r in fast] == [r.session_id for r in slow] == ["simple-001"]
    assert fast[0].summary == "Python CSV parsing script"
    assert fast[0].git_branch == "main"
    assert cache.get_session_metadata(fast[0].file_path) is not None


def test_summary_only_fast_path_sees_updates(project_dir, projects_root, cache):
    engine = SearchEngine(projects_root, cache=cache)
    path = write_jsonl(project_dir / "s.jsonl", [make_user("hello")], mtime=T1)
    assert engine.search(SearchFilters(query="deploy", summary_only=True)) == []

    write_jsonl(path, [{"type": "summary", "summary": "Deploy pipeline"}, make_user("hello")], mtime=T2)
    results = engine.search(SearchFilters(query="deploy", summary_only=True))
    assert [r.title for r in results] == ["Deploy pipeline"]


# ---------------------------------------------------------------------------
# 7. Listings and lookups
# ---------------------------------------------------------------------------

def test_list_conversation_summaries(fixture_projects, project_dir):
    write_jsonl(project_dir / "untitled.jsonl", [make_user("no title here")])

    results = SearchEngine(fixture_projects).list_conversation_summaries()
    assert sorted(r.title for r in results) == ["Auth token refresh fix", "Python CSV parsing script"]


def test_get_all_conversations_counts(fixture_projects):
    results = SearchEngine(fixture_projects).get_all_conversations()
    by_session = {r.session_id: r for r in results}

    simple = by_session["simple-001"]
    assert simple.user_message_count == 3
    assert simple.assistant_message_count == 2
    assert len(simple.matched_messages) == 5

    tools = by_session["tools-001"]
    assert tools.user_message_count == 4
    assert tools.assistant_message_count == 4


def test_get_all_conversations_limit(fixture_projects):
    assert len(SearchEngine(fixture_projects).get_all_conversations(SearchFilters(limit=1))) == 1


def test_get_conversation_metadata(fixture_projects, project_dir):
    meta = SearchEngine(fixture_projects).get_conversation_metadata(project_dir / "tools-001.jsonl")

    assert meta.session_id == "tools-001"
    assert meta.custom_title == "Auth token refresh fix"
    assert meta.git_branch == "feature/auth"
    assert meta.message_count == 10
    assert meta.first_timestamp < meta.last_timestamp


def test_get_conversation_metadata_missing(projects_root):
    with pytest.raises(FileReadError):
        SearchEngine(projects_root).get_conversation_metadata(projects_root / "nope.jsonl")


def test_get_conversation_by_session_id(fixture_projects, project_dir):
    engine = SearchEngine(fixture_projects)

    result = engine.get_conversation_by_session_id("tools-001")
    assert result.file_path == str(project_dir / "tools-001.jsonl")
    assert result.session_id == "tools-001"
    assert result.custom_title == "Auth token refresh fix"
    assert result.git_branch == "feature/auth"
    assert not result.is_subagent
    assert len(result.matched_messages) == 10
    assert result.timestamp == datetime(2026, 2, 14, 9, tzinfo=timezone.utc)

    assert engine.get_conversation_by_session_id("simple").session_id == "simple-001"
    assert engine.get_conversation_by_session_id("missing") is None
    assert engine.get_conversation_by_session_id("") is None


def test_get_conversation_by_session_id_skips_empty_files(projects_root, project_dir):
    (project_dir / "s-42.jsonl").write_text("not json\n")
    write_jsonl(project_dir / "s-42-resumed.jsonl", [make_user("hello", session_id="s-42-resumed")])

    result = SearchEngine(projects_root).get_conversation_by_session_id("s-42")

    assert result.file_path == str(project_dir / "s-42-resumed.jsonl")
    assert [m.content for m in result.matched_messages] == ["hello"]


def test_missing_root_yields_empty(tmp_path):
    engine = SearchEngine(tmp_path / "absent")

    assert engine.search(SearchFilters(query="x")) == []
    assert engine.list_conversation_summaries() == []
    assert engine.get_all_conversations() == []
    assert engine.get_available_projects() == []
