"""Streaming JSONL parser for Claude Code transcript files."""

import logging
from pathlib import Path
from typing import Iterable, Iterator

import orjson

from claude_history.errors import FileReadError, ParseError
from claude_history.types.messages import Message, MessageKind, TokenUsage

logger = logging.getLogger(__name__)

# Max size for a single JSONL line (10MB)
MAX_LINE_SIZE = 10 * 1024 * 1024

# Bounds for the metadata head read
HEAD_MAX_BYTES = 64 * 1024
HEAD_MAX_LINES = 50


def parse_jsonl_file(file_path: str | Path) -> list[Message]:
    """Parse an entire JSONL transcript into a list of Message objects."""
    return list(stream_jsonl_file(file_path))


def stream_jsonl_file(file_path: str | Path) -> Iterator[Message]:
    """Stream-parse a JSONL transcript, yielding one Message per line.

    Malformed lines and non-object lines are logged at debug and skipped.
    Lines exceeding MAX_LINE_SIZE are skipped with a warning.
    Raises FileReadError if the file is missing or unreadable.
    """
    path = Path(file_path)
    try:
        f = open(path, "r", encoding="utf-8", errors="replace")
    except OSError as e:
        raise FileReadError(str(path), e.strerror or str(e)) from e

    with f:
        try:
            yield from _decode_lines(path, f)
        except OSError as e:
            raise FileReadError(str(path), e.strerror or str(e)) from e


def read_session_head(
    file_path: str | Path,
    max_bytes: int = HEAD_MAX_BYTES,
    max_lines: int = HEAD_MAX_LINES,
) -> list[Message]:
    """Parse only the beginning of a transcript.

    Reads at most max_bytes and stops after max_lines successfully parsed
    messages. A line cut off by the byte limit fails to decode and is dropped.
    """
    path = Path(file_path)
    try:
        with open(path, "rb") as f:
            head = f.read(max_bytes)
    except OSError as e:
        raise FileReadError(str(path), e.strerror or str(e)) from e

    text = head.decode("utf-8", errors="replace")
    messages = []
    # Split on \n only: U+0085 and U+2028 may appear raw inside JSON strings
    for msg in _decode_lines(path, text.split("\n")):
        messages.append(msg)
        if len(messages) >= max_lines:
            break
    return messages


def message_from_raw(raw: dict) -> Message:
    """Build a typed Message from one decoded JSONL object."""
    type_name = raw.get("type", "")
    kind = MessageKind.from_type(type_name)

    common = dict(
        kind=kind,
        raw=raw,
        type_name=type_name if isinstance(type_name, str) else "",
        uuid=_str(raw.get("uuid")),
        session_id=_str(raw.get("sessionId")),
        timestamp=_timestamp_str(raw.get("timestamp")),
        git_branch=_str(raw.get("gitBranch")),
        cwd=_str(raw.get("cwd")),
    )

    if kind in (MessageKind.USER, MessageKind.ASSISTANT):
        body = raw.get("message", {})
        if not isinstance(body, dict):
            body = {}
        content = body.get("content", "")
        if not isinstance(content, (str, list)):
            content = ""
        usage = None
        if kind is MessageKind.ASSISTANT:
            usage = TokenUsage.from_api_usage(body.get("usage"))
        return Message(
            **common,
            role=_str(body.get("role")) or kind.value,
            content=content,
            model=_str(body.get("model")),
            usage=usage,
        )

    if kind is MessageKind.SUMMARY:
        return Message(**common, summary=_str(raw.get("summary")))

    if kind is MessageKind.CUSTOM_TITLE:
        return Message(**common, custom_title=_str(raw.get("customTitle")))

    if kind is MessageKind.QUEUE_OP:
        return Message(**common, queue_content=_str(raw.get("content")))

    return Message(**common)


def _decode_lines(path: Path, lines: Iterable[str]) -> Iterator[Message]:
    line_num = 0
    for line in lines:
        line_num += 1
        line = line.strip()
        if not line:
            continue

        if len(line) > MAX_LINE_SIZE:
            logger.warning(
                "Line %d in %s exceeds %dMB, skipping",
                line_num, path.name, MAX_LINE_SIZE // (1024 * 1024),
            )
            continue

        try:
            raw = orjson.loads(line)
        except orjson.JSONDecodeError as e:
            logger.debug("%s", ParseError(str(path), line_num, str(e)))
            continue

        if not isinstance(raw, dict):
            logger.debug("%s", ParseError(str(path), line_num, "not a JSON object"))
            continue

        yield message_from_raw(raw)


def _str(value) -> str:
    return value if isinstance(value, str) else ""


def _timestamp_str(value) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""
