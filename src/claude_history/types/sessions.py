"""Session metadata and listing types."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass
class SessionMetadataRecord:
    file_path: str
    mtime: int
    session_id: Optional[str] = None
    custom_title: Optional[str] = None
    summary: Optional[str] = None
    first_prompt: Optional[str] = None  # First 120 chars of the first user message
    git_branch: Optional[str] = None
    project: Optional[str] = None
    cwd: Optional[str] = None
    first_timestamp: Optional[str] = None
    is_subagent: bool = False

    @property
    def title(self) -> str:
        return self.custom_title or self.summary or ""


@dataclass
class SessionListingResult:
    sessions: list[SessionMetadataRecord] = field(default_factory=list)
    total: int = 0
    subagents: int = 0
    indexed: int = 0  # Files (re)extracted during this call
    project_count: int = 0
    reindexed: bool = False  # Metadata version changed, table was wiped


@dataclass
class ConversationFile:
    """A discovered transcript on disk."""
    path: Path
    mtime: int  # Integer milliseconds
    project: str = ""
    is_subagent: bool = False

    @property
    def session_id(self) -> str:
        return self.path.stem
