"""Discovery of transcript files under the projects root."""

import logging
from pathlib import Path
from typing import Iterable, Optional

from claude_history.types.search import SearchFilters
from claude_history.types.sessions import ConversationFile
from claude_history.utils.path_codec import (
    SUBAGENTS_DIR_NAME,
    extract_project_name,
    is_subagent_path,
    resolve_project_name,
)

logger = logging.getLogger(__name__)

ALL_PROJECTS_SELECTOR = "all"


def find_conversation_files(
    filters: Optional[SearchFilters],
    projects_root: str | Path,
) -> list[ConversationFile]:
    """List transcripts matching the project and agent filters, newest first.

    A missing root yields an empty list. Files that disappear between
    listing and stat are dropped.
    """
    root = Path(projects_root)
    if not root.is_dir():
        logger.debug("Projects root does not exist: %s", root)
        return []

    filters = filters or SearchFilters()
    project = filters.project
    if project and project.lower() != ALL_PROJECTS_SELECTOR:
        needle = project.lower()
        bases = [d for d in sorted(root.iterdir()) if d.is_dir() and needle in d.name.lower()]
    else:
        bases = [root]

    candidates: list[Path] = []
    for base in bases:
        if filters.agents_only:
            candidates.extend(base.rglob(f"{SUBAGENTS_DIR_NAME}/*.jsonl"))
            candidates.extend(base.rglob("agent-*.jsonl"))
        else:
            candidates.extend(base.rglob("*.jsonl"))

    files = _stat_unique(candidates, root)
    if filters.exclude_agents:
        files = [f for f in files if not f.is_subagent]
    return files


def find_files_in_dir(project_dir: str | Path, exclude_subagents: bool = True) -> list[ConversationFile]:
    """Shallow listing of one project directory, newest first.

    Covers top-level transcripts plus ``subagents/`` and
    ``<session>/subagents/`` when subagents are wanted.
    """
    directory = Path(project_dir)
    if not directory.is_dir():
        return []

    candidates = list(directory.glob("*.jsonl"))
    if not exclude_subagents:
        candidates.extend(directory.glob(f"{SUBAGENTS_DIR_NAME}/*.jsonl"))
        candidates.extend(directory.glob(f"*/{SUBAGENTS_DIR_NAME}/*.jsonl"))

    files = _stat_unique(candidates, directory.parent)
    if exclude_subagents:
        files = [f for f in files if not f.is_subagent]
    return files


def get_available_projects(projects_root: str | Path) -> list[str]:
    """Sorted unique display names of all project directories."""
    root = Path(projects_root)
    if not root.is_dir():
        return []
    names = {resolve_project_name(d.name) for d in root.iterdir() if d.is_dir()}
    return sorted(n for n in names if n)


def file_mtime_ms(path: str | Path) -> int:
    """Integer-millisecond mtime. Raises OSError if the file is gone."""
    return Path(path).stat().st_mtime_ns // 1_000_000


def _stat_unique(paths: Iterable[Path], root: Path) -> list[ConversationFile]:
    seen: set[Path] = set()
    files = []
    for path in sorted(paths):
        if path in seen:
            continue
        seen.add(path)
        try:
            mtime = file_mtime_ms(path)
        except OSError:
            logger.debug("File vanished before stat: %s", path)
            continue
        files.append(ConversationFile(
            path=path,
            mtime=mtime,
            project=extract_project_name(path, root),
            is_subagent=is_subagent_path(path),
        ))
    files.sort(key=lambda f: f.mtime, reverse=True)
    return files
