"""Message-level types for parsed JSONL transcript lines."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from claude_history.utils.date_parsing import parse_timestamp


class MessageKind(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    SUMMARY = "summary"
    CUSTOM_TITLE = "custom-title"
    FILE_HISTORY = "file-history-snapshot"
    QUEUE_OP = "queue-operation"
    SUBAGENT = "subagent"
    PROGRESS = "progress"
    PR_LINK = "pr-link"
    UNKNOWN = "unknown"

    @classmethod
    def from_type(cls, type_str: Any) -> "MessageKind":
        try:
            kind = cls(type_str)
        except ValueError:
            return cls.UNKNOWN
        return kind


@dataclass
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_input_tokens: int = 0
    cache_creation_input_tokens: int = 0

    @property
    def total(self) -> int:
        return (self.input_tokens + self.output_tokens +
                self.cache_read_input_tokens + self.cache_creation_input_tokens)

    def merged(self, other: Optional["TokenUsage"]) -> "TokenUsage":
        """Return the pointwise sum of two usages."""
        if other is None:
            return TokenUsage(**vars(self))
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            cache_read_input_tokens=self.cache_read_input_tokens + other.cache_read_input_tokens,
            cache_creation_input_tokens=(
                self.cache_creation_input_tokens + other.cache_creation_input_tokens
            ),
        )

    def to_dict(self) -> dict[str, int]:
        """Serialize with the camelCase keys stored in the cache."""
        return {
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "cacheCreateTokens": self.cache_creation_input_tokens,
            "cacheReadTokens": self.cache_read_input_tokens,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "TokenUsage":
        if not isinstance(data, dict):
            return cls()
        return cls(
            input_tokens=_as_int(data.get("inputTokens")),
            output_tokens=_as_int(data.get("outputTokens")),
            cache_read_input_tokens=_as_int(data.get("cacheReadTokens")),
            cache_creation_input_tokens=_as_int(data.get("cacheCreateTokens")),
        )

    @classmethod
    def from_api_usage(cls, raw: Any) -> Optional["TokenUsage"]:
        """Build from the snake_case ``usage`` object of an assistant message."""
        if not isinstance(raw, dict):
            return None
        return cls(
            input_tokens=_as_int(raw.get("input_tokens")),
            output_tokens=_as_int(raw.get("output_tokens")),
            cache_read_input_tokens=_as_int(raw.get("cache_read_input_tokens")),
            cache_creation_input_tokens=_as_int(raw.get("cache_creation_input_tokens")),
        )


@dataclass(frozen=True)
class ToolUse:
    id: str
    name: str
    input: dict = field(default_factory=dict)


@dataclass(frozen=True, eq=False)
class Message:
    """One decoded JSONL line.

    ``kind`` is the discriminant. Fields that do not apply to a kind keep
    their empty defaults; ``raw`` always holds the decoded object so generic
    field checks work on unknown kinds too.
    """
    kind: MessageKind
    raw: dict
    type_name: str = ""
    uuid: str = ""
    session_id: str = ""
    timestamp: str = ""
    git_branch: str = ""
    cwd: str = ""
    role: str = ""
    content: Any = ""  # str or list of content block dicts
    model: str = ""
    usage: Optional[TokenUsage] = None
    summary: str = ""
    custom_title: str = ""
    queue_content: str = ""

    @property
    def parsed_timestamp(self) -> Optional[datetime]:
        return parse_timestamp(self.timestamp) if self.timestamp else None

    @property
    def content_blocks(self) -> list[dict]:
        if isinstance(self.content, list):
            return [b for b in self.content if isinstance(b, dict)]
        return []

    @property
    def is_conversation_turn(self) -> bool:
        return self.kind in (MessageKind.USER, MessageKind.ASSISTANT)


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return int(value)
    return 0
