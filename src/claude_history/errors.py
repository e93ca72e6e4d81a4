"""Exception types shared by the parser, matcher, and cache."""


class ClaudeHistoryError(Exception):
    """Base class for all claude-history errors."""


class FileReadError(ClaudeHistoryError):
    """A transcript or cache file could not be read."""

    def __init__(self, path: str, reason: str = ""):
        self.path = path
        self.reason = reason
        message = f"Cannot read {path}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ParseError(ClaudeHistoryError):
    """A single JSONL line failed to decode. Logged, never surfaced."""

    def __init__(self, path: str, line_number: int, reason: str = ""):
        self.path = path
        self.line_number = line_number
        self.reason = reason
        super().__init__(f"Malformed JSON at line {line_number} in {path}: {reason}")


class InvalidPatternError(ClaudeHistoryError):
    """A user-supplied regex or glob was rejected by the safety gate."""

    def __init__(self, pattern: str, reason: str):
        self.pattern = pattern
        self.reason = reason
        super().__init__(f"Rejected pattern {pattern[:50]!r}: {reason}")


class CacheCorruptionError(ClaudeHistoryError):
    """A JSON column in the cache database failed to decode."""

    def __init__(self, column: str, raw: str):
        self.column = column
        self.raw = raw
        super().__init__(f"Corrupt JSON in column {column}: {raw[:100]!r}")
