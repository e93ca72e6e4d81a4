"""Shared test helpers: builders for raw transcript lines."""

import json
import os
from pathlib import Path


def make_user(text, timestamp="2026-02-13T10:00:00.000Z", session_id="sess-1", **extra):
    """Raw user line. text may be a string or a list of content blocks."""
    msg = {
        "type": "user",
        "uuid": extra.pop("uuid", "u-" + timestamp),
        "sessionId": session_id,
        "timestamp": timestamp,
        "cwd": "/home/wiz/projects/myapp",
        "message": {"role": "user", "content": text},
    }
    msg.update(extra)
    return msg


def make_assistant(blocks, timestamp="2026-02-13T10:00:05.000Z", session_id="sess-1",
                   model="claude-sonnet-4-5-20250929", usage=None, **extra):
    """Raw assistant line. blocks may be a string or a list of content blocks."""
    if isinstance(blocks, str):
        blocks = [{"type": "text", "text": blocks}]
    body = {"role": "assistant", "content": blocks, "model": model}
    if usage is not None:
        body["usage"] = usage
    msg = {
        "type": "assistant",
        "uuid": extra.pop("uuid", "a-" + timestamp),
        "sessionId": session_id,
        "timestamp": timestamp,
        "message": body,
    }
    msg.update(extra)
    return msg


def tool_use(name, tool_input, tool_id="toolu_01"):
    return {"type": "tool_use", "id": tool_id, "name": name, "input": tool_input}


def tool_result(content, tool_id="toolu_01"):
    return {"type": "tool_result", "tool_use_id": tool_id, "content": content}


def write_jsonl(path: Path, lines, mtime=None) -> Path:
    """Write dicts (or raw strings) as JSONL, optionally pinning the mtime (seconds)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    text = "\n".join(line if isinstance(line, str) else json.dumps(line) for line in lines)
    path.write_text(text + "\n")
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path
