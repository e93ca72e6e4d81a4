"""Text extraction and query/filter matching over parsed messages."""

import logging
import re
from typing import Iterable

from claude_history.errors import InvalidPatternError
from claude_history.types.messages import Message, MessageKind, ToolUse
from claude_history.types.search import SearchFilters
from claude_history.utils.date_parsing import ensure_aware
from claude_history.utils.regex_validator import compile_safe_regex, glob_to_regex

logger = logging.getLogger(__name__)

FILE_PATH_KEYS = ("file_path", "path", "filePath")

_COMMIT_CUE_RE = re.compile(r"git commit|committed|Commit:", re.IGNORECASE)
_COMMIT_HASH_RE = re.compile(r"\b([a-f0-9]{7,40})\b", re.IGNORECASE)


def extract_text(message: Message, exclude_thinking: bool = False) -> str:
    """Searchable text of a message, parts joined with a single space.

    Kinds without searchable content yield "".
    """
    kind = message.kind
    parts: list[str] = []

    if kind is MessageKind.USER:
        if isinstance(message.content, str):
            parts.append(message.content)
        for block in message.content_blocks:
            block_type = block.get("type")
            if block_type == "text":
                parts.append(_block_str(block, "text"))
            elif block_type == "tool_result":
                parts.append(_block_str(block, "content"))

    elif kind is MessageKind.ASSISTANT:
        if isinstance(message.content, str):
            parts.append(message.content)
        for block in message.content_blocks:
            block_type = block.get("type")
            if block_type == "text":
                parts.append(_block_str(block, "text"))
            elif block_type == "thinking" and not exclude_thinking:
                parts.append(_block_str(block, "thinking"))

    elif kind is MessageKind.SUMMARY:
        parts.append(message.summary)

    elif kind is MessageKind.CUSTOM_TITLE:
        parts.append(message.custom_title)

    elif kind is MessageKind.QUEUE_OP:
        parts.append(message.queue_content)

    return " ".join(p for p in parts if p)


def extract_tool_uses(message: Message) -> list[ToolUse]:
    """tool_use blocks of an assistant message."""
    if message.kind is not MessageKind.ASSISTANT:
        return []
    tools = []
    for block in message.content_blocks:
        if block.get("type") != "tool_use":
            continue
        tool_input = block.get("input")
        tools.append(ToolUse(
            id=_block_str(block, "id"),
            name=_block_str(block, "name"),
            input=tool_input if isinstance(tool_input, dict) else {},
        ))
    return tools


def extract_file_paths(message: Message) -> list[str]:
    """File paths referenced by the message's tool-use inputs."""
    paths = []
    for tool in extract_tool_uses(message):
        for key in FILE_PATH_KEYS:
            value = tool.input.get(key)
            if isinstance(value, str):
                paths.append(value)
    return paths


def matches_query(text: str, query: str, exact: bool = False, regex: bool = False) -> bool:
    """Match text against a query.

    An empty query matches everything. Regex mode goes through the safety
    gate and matches nothing when the pattern is rejected. Exact mode is
    case-insensitive containment; otherwise every whitespace-separated word
    must appear somewhere in the text, in any order.
    """
    if not query:
        return True

    if regex:
        try:
            pattern = compile_safe_regex(query)
        except InvalidPatternError as e:
            logger.debug("Regex query rejected: %s", e)
            return False
        return pattern.search(text) is not None

    lowered = text.lower()
    if exact:
        return query.lower() in lowered

    return all(word in lowered for word in query.lower().split())


def matches_file_pattern(file_path: str, pattern: str) -> bool:
    """Match a path against a ``*`` glob, or a substring when there is no ``*``."""
    if "*" not in pattern:
        return pattern.lower() in file_path.lower()
    try:
        compiled = compile_safe_regex(glob_to_regex(pattern))
    except InvalidPatternError as e:
        logger.debug("File pattern rejected: %s", e)
        return False
    return compiled.search(file_path) is not None


def extract_commit_hashes(messages: Iterable[Message]) -> list[str]:
    """Commit hashes reported by git in tool results, in first-seen order."""
    hashes: list[str] = []
    seen: set[str] = set()
    for msg in messages:
        if msg.kind is not MessageKind.USER:
            continue
        for block in msg.content_blocks:
            if block.get("type") != "tool_result":
                continue
            content = block.get("content")
            if not isinstance(content, str) or not _COMMIT_CUE_RE.search(content):
                continue
            for match in _COMMIT_HASH_RE.finditer(content):
                candidate = match.group(1)
                # Runs like "aaaaaaa" are separators, not hashes
                if len(set(candidate.lower())) == 1:
                    continue
                if candidate not in seen:
                    seen.add(candidate)
                    hashes.append(candidate)
    return hashes


def matches_filters(message: Message, filters: SearchFilters, text: str | None = None) -> bool:
    """Query, tool, file and timestamp filters, all of which must pass."""
    if text is None:
        text = extract_text(message, filters.exclude_thinking)

    if filters.query and not matches_query(text, filters.query, filters.exact, filters.regex):
        return False

    if filters.tool:
        wanted = filters.tool.lower()
        if not any(wanted in tool.name.lower() for tool in extract_tool_uses(message)):
            return False

    if filters.file:
        if not any(matches_file_pattern(p, filters.file) for p in extract_file_paths(message)):
            return False

    if filters.since is not None or filters.until is not None:
        ts = message.parsed_timestamp
        if ts is not None:
            if filters.since is not None and ts < ensure_aware(filters.since):
                return False
            if filters.until is not None and ts > ensure_aware(filters.until):
                return False

    return True


def _block_str(block: dict, key: str) -> str:
    value = block.get(key)
    return value if isinstance(value, str) else ""
