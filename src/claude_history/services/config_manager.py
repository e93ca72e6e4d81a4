"""Library configuration backed by a JSON settings file."""

import logging
import os
from pathlib import Path
from typing import Any, Optional

import orjson

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_PATH = Path.home() / ".config" / "claude-history" / "settings.json"

# Default values
DEFAULTS = {
    "general/projectsDir": "~/.claude/projects",
    "cache/dir": "~/.cache/claude-history",
    "cache/dbName": "stats-cache.db",
    "search/defaultLimit": 50,
    "index/headMaxLines": 50,
    "index/headMaxBytes": 65536,
    "advanced/debugLogging": False,
}

# Environment variables that win over the settings file
ENV_OVERRIDES = {
    "general/projectsDir": "CLAUDE_HISTORY_PROJECTS_DIR",
    "cache/dir": "CLAUDE_HISTORY_CACHE_DIR",
}


class ConfigManager:
    """Centralized settings with typed getters and DEFAULTS fallback."""

    def __init__(self, settings_path: str | Path | None = None, environ: Optional[dict] = None):
        self._path = Path(settings_path) if settings_path is not None else DEFAULT_SETTINGS_PATH
        self._environ = os.environ if environ is None else environ
        self._settings: dict[str, Any] = self._load()

    @property
    def settings_path(self) -> Path:
        return self._path

    def value(self, key: str) -> Any:
        env_name = ENV_OVERRIDES.get(key)
        if env_name and self._environ.get(env_name):
            return self._environ[env_name]
        return self._settings.get(key, DEFAULTS.get(key))

    def get_string(self, key: str) -> str:
        val = self.value(key)
        return "" if val is None else str(val)

    def get_int(self, key: str) -> int:
        val = self.value(key)
        try:
            return int(val)
        except (ValueError, TypeError):
            return DEFAULTS.get(key, 0)

    def get_bool(self, key: str) -> bool:
        val = self.value(key)
        if isinstance(val, bool):
            return val
        if isinstance(val, str):
            return val.lower() in ("true", "1", "yes")
        return bool(val)

    def set_string(self, key: str, value: str):
        self._set(key, value)

    def set_int(self, key: str, value: int):
        self._set(key, value)

    def set_bool(self, key: str, value: bool):
        self._set(key, value)

    def projects_root(self) -> Path:
        return Path(self.get_string("general/projectsDir")).expanduser()

    def cache_db_path(self) -> Path:
        cache_dir = Path(self.get_string("cache/dir")).expanduser()
        return cache_dir / self.get_string("cache/dbName")

    def _set(self, key: str, value: Any):
        self._settings[key] = value
        self._save()

    def _load(self) -> dict[str, Any]:
        try:
            raw = self._path.read_bytes()
        except FileNotFoundError:
            return {}
        except OSError as e:
            logger.warning("Cannot read settings %s: %s", self._path, e)
            return {}
        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            logger.warning("Ignoring malformed settings %s: %s", self._path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self):
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_bytes(orjson.dumps(self._settings, option=orjson.OPT_INDENT_2))


def configure_logging(debug: bool = False):
    """Basic stderr logging for embedding applications. No-op if logging is already set up."""
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger("claude_history").setLevel(level)
