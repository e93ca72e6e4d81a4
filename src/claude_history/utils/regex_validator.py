"""Regex pattern validation and safe compilation of user-supplied patterns."""

import re
from functools import lru_cache

from claude_history.errors import InvalidPatternError

# Safety limits
MAX_PATTERN_LENGTH = 200
# A quantifier followed (optionally across a closing group) by another
# quantifier, e.g. a++, (a+)+, (x*){2}
_NESTED_QUANTIFIER_RE = re.compile(r"(\+|\*|\?|\{[\d,]+\})\s*\)?\s*(\+|\*|\?|\{[\d,]+\})")
_GLOB_ESCAPE_RE = re.compile(r"([.+?^${}()|\[\]\\])")


def is_safe_regex(pattern: str, max_length: int = MAX_PATTERN_LENGTH) -> bool:
    """Cheap ReDoS heuristic: bounded length and no nested quantifiers."""
    if len(pattern) > max_length:
        return False
    return _NESTED_QUANTIFIER_RE.search(pattern) is None


def validate_regex(pattern: str, max_length: int = MAX_PATTERN_LENGTH) -> tuple[bool, str]:
    """Validate a regex pattern for safety and correctness.

    Returns (is_valid, error_message). If valid, error_message is empty.

    Checks:
    - Non-empty
    - Length <= max_length
    - No nested quantifiers (catastrophic backtracking risk)
    - Compilable by re module
    """
    if not pattern:
        return False, "Pattern is empty"

    if len(pattern) > max_length:
        return False, f"Pattern exceeds {max_length} characters"

    if _NESTED_QUANTIFIER_RE.search(pattern):
        return False, "Nested quantifiers detected (backtracking risk)"

    try:
        re.compile(pattern)
    except re.error as e:
        return False, f"Invalid regex: {e}"

    return True, ""


@lru_cache(maxsize=256)
def compile_safe_regex(pattern: str, max_length: int = MAX_PATTERN_LENGTH) -> re.Pattern:
    """Compile a user pattern case-insensitively after the safety gate.

    Raises InvalidPatternError when the pattern is rejected or does not compile.
    """
    valid, reason = validate_regex(pattern, max_length)
    if not valid:
        raise InvalidPatternError(pattern, reason)
    return re.compile(pattern, re.IGNORECASE)


def glob_to_regex(pattern: str) -> str:
    """Translate a ``*`` glob into a regex source string.

    Every other metacharacter is escaped, so only ``*`` is special.
    """
    return _GLOB_ESCAPE_RE.sub(r"\\\1", pattern).replace("*", ".*")
