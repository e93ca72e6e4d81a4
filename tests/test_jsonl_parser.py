"""Tests for claude_history.services.jsonl_parser."""

import json

import pytest

from claude_history.errors import FileReadError
from claude_history.services.jsonl_parser import (
    message_from_raw,
    parse_jsonl_file,
    read_session_head,
    stream_jsonl_file,
)
from claude_history.types.messages import MessageKind, TokenUsage
from helpers import make_user, write_jsonl


# ---------------------------------------------------------------------------
# 1. Parse simple session
# ---------------------------------------------------------------------------

def test_parse_simple_session(simple_session_path):
    """summary line plus five alternating user / assistant turns."""
    messages = parse_jsonl_file(simple_session_path)

    assert len(messages) == 6
    assert [m.kind for m in messages] == [
        MessageKind.SUMMARY,
        MessageKind.USER,
        MessageKind.ASSISTANT,
        MessageKind.USER,
        MessageKind.ASSISTANT,
        MessageKind.USER,
    ]
    assert messages[0].summary == "Python CSV parsing script"
    assert messages[1].content == "Hello, can you help me with a Python script?"
    assert messages[1].session_id == "simple-001"
    assert messages[1].git_branch == "main"
    assert messages[5].content == "Thanks, that looks great!"


# ---------------------------------------------------------------------------
# 2. Assistant model and usage
# ---------------------------------------------------------------------------

def test_assistant_usage_parsed(simple_session_path):
    messages = parse_jsonl_file(simple_session_path)
    assistant = messages[2]

    assert assistant.model == "claude-opus-4-5-20251101"
    assert assistant.usage == TokenUsage(
        input_tokens=120,
        output_tokens=30,
        cache_read_input_tokens=1000,
        cache_creation_input_tokens=200,
    )
    assert [b["type"] for b in assistant.content_blocks] == ["thinking", "text"]


# ---------------------------------------------------------------------------
# 3. Variant payloads
# ---------------------------------------------------------------------------

def test_custom_title_and_queue_operation(tools_session_path):
    messages = parse_jsonl_file(tools_session_path)

    titles = [m for m in messages if m.kind is MessageKind.CUSTOM_TITLE]
    queued = [m for m in messages if m.kind is MessageKind.QUEUE_OP]
    assert titles[0].custom_title == "Auth token refresh fix"
    assert queued[0].queue_content == "also run the test suite"


# ---------------------------------------------------------------------------
# 4. Malformed lines are skipped
# ---------------------------------------------------------------------------

def test_malformed_lines_skipped(malformed_session_path):
    """Broken JSON, arrays and bare strings are dropped, valid lines survive."""
    messages = parse_jsonl_file(malformed_session_path)

    assert [m.uuid for m in messages] == ["msg-m01", "msg-m03", "msg-m04", "msg-c01"]


def test_unknown_type_preserved(malformed_session_path):
    messages = parse_jsonl_file(malformed_session_path)
    mystery = messages[1]

    assert mystery.kind is MessageKind.UNKNOWN
    assert mystery.type_name == "mystery-event"
    assert mystery.raw["payload"] == {"x": 1}


def test_crlf_line_endings(malformed_session_path):
    messages = parse_jsonl_file(malformed_session_path)
    assert messages[-1].content == "crlf line"


# ---------------------------------------------------------------------------
# 5. Missing file
# ---------------------------------------------------------------------------

def test_missing_file_raises(tmp_path):
    with pytest.raises(FileReadError):
        parse_jsonl_file(tmp_path / "nope.jsonl")


def test_stream_is_lazy(tmp_path):
    """Opening is deferred until iteration starts."""
    gen = stream_jsonl_file(tmp_path / "nope.jsonl")
    with pytest.raises(FileReadError):
        next(gen)


def test_empty_file(tmp_path):
    path = tmp_path / "empty.jsonl"
    path.write_text("")
    assert parse_jsonl_file(path) == []


# ---------------------------------------------------------------------------
# 6. Invalid UTF-8 is replaced, not fatal
# ---------------------------------------------------------------------------

def test_invalid_utf8_replaced(tmp_path):
    path = tmp_path / "bytes.jsonl"
    line = json.dumps(make_user("café")).encode("utf-8")
    bad = b'{"type":"user","message":{"role":"user","content":"bad \xff byte"}}'
    path.write_bytes(line + b"\n" + bad + b"\n")

    messages = parse_jsonl_file(path)

    assert len(messages) == 2
    assert messages[0].content == "café"
    assert "�" in messages[1].content


# ---------------------------------------------------------------------------
# 7. Bounded head read
# ---------------------------------------------------------------------------

def test_read_session_head_line_limit(tmp_path):
    path = write_jsonl(tmp_path / "long.jsonl", [
        make_user(f"message {i}", timestamp=f"2026-02-13T10:{i:02d}:00.000Z") for i in range(60)
    ])

    head = read_session_head(path, max_lines=50)

    assert len(head) == 50
    assert head[0].content == "message 0"


def test_read_session_head_byte_limit(tmp_path):
    """A line cut off by the byte limit is dropped."""
    lines = [make_user("x" * 100, timestamp=f"2026-02-13T10:{i:02d}:00.000Z") for i in range(10)]
    path = write_jsonl(tmp_path / "bytes.jsonl", lines)
    first_line_len = len(json.dumps(lines[0])) + 1

    head = read_session_head(path, max_bytes=first_line_len * 2 + 10)

    assert len(head) == 2


def test_read_session_head_missing_file(tmp_path):
    with pytest.raises(FileReadError):
        read_session_head(tmp_path / "missing.jsonl")


def test_read_session_head_keeps_unicode_line_separators(tmp_path):
    """Raw U+2028 and U+0085 inside strings do not split a line."""
    lines = [
        {"type": "summary", "summary": "Fix\u2028the parser"},
        make_user("first\u0085second"),
    ]
    path = tmp_path / "separators.jsonl"
    path.write_text("\n".join(json.dumps(line, ensure_ascii=False) for line in lines) + "\n", encoding="utf-8")

    head = read_session_head(path)

    assert len(head) == len(parse_jsonl_file(path)) == 2
    assert head[0].summary == "Fix\u2028the parser"
    assert head[1].content == "first\u0085second"


def test_read_session_head_crlf(malformed_session_path):
    assert read_session_head(malformed_session_path)[-1].content == "crlf line"


# ---------------------------------------------------------------------------
# 8. message_from_raw edge cases
# ---------------------------------------------------------------------------

def test_message_from_raw_non_dict_body():
    msg = message_from_raw({"type": "user", "message": "oops"})
    assert msg.kind is MessageKind.USER
    assert msg.content == ""


def test_message_from_raw_missing_type():
    msg = message_from_raw({"uuid": "x"})
    assert msg.kind is MessageKind.UNKNOWN
    assert msg.uuid == "x"


def test_numeric_timestamp_kept():
    msg = message_from_raw({"type": "user", "timestamp": 1771000000000, "message": {}})
    assert msg.parsed_timestamp is not None
    assert msg.parsed_timestamp.year == 2026
