"""Encode and decode Claude Code project path <-> directory name."""

import os
from functools import lru_cache
from pathlib import Path, PurePath

SUBAGENTS_DIR_NAME = "subagents"
AGENT_FILE_PREFIX = "agent-"


def encode_path(path: str) -> str:
    """Encode a filesystem path to a Claude project directory name.

    /home/wiz/AI/LLM → -home-wiz-AI-LLM
    """
    if not path:
        return ""
    encoded = path.replace("/", "-")
    # On Windows-origin paths, also handle backslash
    encoded = encoded.replace("\\", "-")
    return encoded


def decode_path(encoded: str) -> str:
    """Naively decode a project directory name back to a path.

    -home-wiz-AI-LLM → /home/wiz/AI/LLM

    Dashes inside real directory names are indistinguishable from
    separators here; resolve_project_name consults the filesystem instead.
    """
    if not encoded:
        return ""
    return encoded.replace("-", "/")


def is_subagent_path(file_path: str | os.PathLike) -> bool:
    """True for transcripts written by subagents.

    Subagent transcripts live in a ``subagents/`` directory or carry an
    ``agent-`` filename prefix. This is a filesystem convention of the
    transcript writer, not a schema field, so every check goes through here.
    """
    path = PurePath(file_path)
    if path.name.startswith(AGENT_FILE_PREFIX):
        return True
    return SUBAGENTS_DIR_NAME in path.parts[:-1]


def project_dir_name(file_path: str | os.PathLike, projects_root: str | os.PathLike) -> str:
    """First path segment of file_path below projects_root."""
    path = Path(file_path)
    try:
        relative = path.relative_to(projects_root)
    except ValueError:
        return path.parent.name
    return relative.parts[0] if len(relative.parts) > 1 else path.parent.name


def extract_project_name(file_path: str | os.PathLike, projects_root: str | os.PathLike) -> str:
    """Human-friendly project name for a transcript path."""
    return resolve_project_name(project_dir_name(file_path, projects_root))


@lru_cache(maxsize=1024)
def resolve_project_name(dir_name: str, home: str | None = None) -> str:
    """Resolve a project display name from an encoded directory name.

    Names that do not start with "-" are not encoded and are returned as is.
    Encoded names under the home directory are resolved by walking the
    filesystem, because "my-app" and "my/app" encode identically:
    ~/Code → exists, ~/Code/my → missing, ~/Code/my-app → exists → "my-app".
    Anything else falls back to the last dash-separated segment.
    """
    if not dir_name or not dir_name.startswith("-"):
        return dir_name

    if home is None:
        home = str(Path.home())
    home_encoded = encode_path(home)

    if not dir_name.startswith(home_encoded + "-"):
        if dir_name == home_encoded:
            return Path(home).name or dir_name
        parts = dir_name.split("-")
        return parts[-1] or dir_name

    parts = dir_name[len(home_encoded) + 1:].split("-")
    resolved = home
    i = 0
    while i < len(parts):
        candidate = os.path.join(resolved, parts[i])
        if parts[i] and os.path.exists(candidate):
            resolved = candidate
            i += 1
            continue

        # Segment may itself contain dashes; try accumulating the rest
        accumulated = parts[i]
        found = False
        for j in range(i + 1, len(parts)):
            accumulated += "-" + parts[j]
            if os.path.exists(os.path.join(resolved, accumulated)):
                resolved = os.path.join(resolved, accumulated)
                i = j + 1
                found = True
                break

        if not found:
            resolved = os.path.join(resolved, accumulated)
            break

    return os.path.basename(resolved.rstrip(os.sep)) or dir_name
