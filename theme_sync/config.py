"""Configuration management for theme-sync.

Reads the project settings (source/output trees, bundler, reload endpoint,
logging) and the per-environment theme settings from a JSON file that
lives in the project root.
"""

import json
import logging
from pathlib import Path
from typing import Any

from theme_sync.errors import ErrorKind, PipelineError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "theme-sync.json"
STATE_DIRNAME = ".theme-sync"
DEFAULT_THEME = "development"

# Theme sync modes
MODE_REMOTE = "remote"
MODE_LOCAL = "local"

DEFAULT_CONFIG: dict[str, Any] = {
    "in": "src",
    "out": "build",
    # {"command": [...], "outputs": [...], "watch": [...], "debounce_ms": 200}
    "js": None,
    "reload": {"host": "127.0.0.1", "port": 3000},
    # quiet time before a watched file counts as written; 0 handles every raw event
    "settle_ms": 300,
    "log_level": "INFO",
    # ---- log rotation ----
    "max_log_size_mb": 10,
    "log_backup_count": 3,
    "themes": {
        DEFAULT_THEME: {
            "store": "",
            "password": "",
            "theme_id": 0,
            "ignore_files": [],
        },
    },
}

DEFAULT_THEME_CONFIG: dict[str, Any] = {
    "mode": "",
    "store": "",
    "password": "",
    "theme_id": 0,
    "api_version": "2024-01",
    "timeout_seconds": 30,
    "max_retries": 3,
    "ignore_files": [],
}


def get_config_path(directory: Path | None = None) -> Path:
    """Return the path to the project configuration file."""
    return (directory or Path.cwd()) / CONFIG_FILENAME


class ThemeConfig:
    """Settings for one theme environment (remote credentials + ignore rules)."""

    def __init__(self, name: str, data: dict[str, Any] | None = None):
        self.name = name
        self._data: dict[str, Any] = {**DEFAULT_THEME_CONFIG, **(data or {})}

    @property
    def store(self) -> str:
        """Return the store domain, e.g. ``example.myshopify.com``."""
        return str(self._data["store"] or "").strip()

    @property
    def password(self) -> str:
        return str(self._data["password"] or "")

    @property
    def theme_id(self) -> int:
        try:
            return int(self._data["theme_id"] or 0)
        except (TypeError, ValueError):
            raise PipelineError(
                ErrorKind.CONFIG_INVALID,
                f"theme_id for '{self.name}' must be a number",
            ) from None

    @property
    def api_version(self) -> str:
        return str(self._data["api_version"])

    @property
    def timeout(self) -> float:
        return float(self._data["timeout_seconds"])

    @property
    def max_retries(self) -> int:
        return max(0, int(self._data["max_retries"]))

    @property
    def ignore_files(self) -> list[str]:
        """Return glob patterns excluded from copy, sync and watch."""
        return [p for p in self._data.get("ignore_files") or [] if p.strip()]

    @property
    def has_credentials(self) -> bool:
        return bool(self.store) and bool(self.password) and bool(self.theme_id)

    @property
    def mode(self) -> str:
        """Return ``remote`` or ``local``.

        An explicit ``"mode": "local"`` selects local-only mode. Without an
        explicit mode, a theme lacking credentials is local-only too.
        """
        mode = str(self._data.get("mode") or "").strip().lower()
        if mode == MODE_LOCAL:
            return MODE_LOCAL
        if mode == MODE_REMOTE:
            if not self.has_credentials:
                raise PipelineError(
                    ErrorKind.CONFIG_INVALID,
                    f"theme '{self.name}' is in remote mode but store, "
                    "password or theme_id is missing",
                )
            return MODE_REMOTE
        if mode:
            raise PipelineError(
                ErrorKind.CONFIG_INVALID,
                f"unknown mode '{mode}' for theme '{self.name}'",
            )
        return MODE_REMOTE if self.has_credentials else MODE_LOCAL


class Config:
    """Project configuration backed by a JSON file."""

    def __init__(self, path: Path | None = None):
        """Load config from *path*, falling back to ``./theme-sync.json``."""
        self._path = Path(path) if path else get_config_path()
        self._data: dict[str, Any] = dict(DEFAULT_CONFIG)
        self.load()

    # ---- persistence ----

    def load(self) -> None:
        """Load configuration from disk, applying defaults for missing keys."""
        if not self._path.exists():
            self._data = dict(DEFAULT_CONFIG)
            logger.info("No config at %s; using defaults.", self._path)
            return
        try:
            with open(self._path, encoding="utf-8") as fh:
                stored = json.load(fh)
        except json.JSONDecodeError as exc:
            raise PipelineError(
                ErrorKind.CONFIG_INVALID, f"cannot parse {self._path}: {exc}"
            ) from exc
        except OSError as exc:
            raise PipelineError(
                ErrorKind.CONFIG_INVALID, f"cannot read {self._path}: {exc}"
            ) from exc
        if not isinstance(stored, dict):
            raise PipelineError(
                ErrorKind.CONFIG_INVALID, f"{self._path} must hold a JSON object"
            )
        # Merge stored values over defaults so new keys get defaults
        self._data = {**DEFAULT_CONFIG, **stored}
        logger.debug("Configuration loaded from %s", self._path)

    def save(self) -> None:
        """Persist the current configuration to disk."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._path, "w", encoding="utf-8") as fh:
            json.dump(self._data, fh, indent=2)
        logger.info("Configuration saved to %s", self._path)

    # ---- accessors ----

    @property
    def path(self) -> Path:
        return self._path

    @property
    def root(self) -> Path:
        """Return the directory relative paths resolve against."""
        return self._path.parent.resolve()

    def _resolve(self, value: str) -> Path:
        p = Path(value).expanduser()
        return p if p.is_absolute() else self.root / p

    @property
    def source_root(self) -> Path:
        """Return the absolute source tree root."""
        return self._resolve(self._data["in"])

    @property
    def dest_root(self) -> Path:
        """Return the absolute output tree root."""
        return self._resolve(self._data["out"])

    @property
    def js(self) -> dict[str, Any] | None:
        """Return the bundler settings, or None when nothing is bundled."""
        js = self._data.get("js")
        if not js:
            return None
        if not isinstance(js, dict) or not js.get("command"):
            raise PipelineError(
                ErrorKind.CONFIG_INVALID, "'js' needs at least a 'command' list"
            )
        return js

    def resolve_paths(self, values: list[str] | str | None) -> list[Path]:
        if not values:
            return []
        if isinstance(values, str):
            values = [values]
        return [self._resolve(v) for v in values]

    @property
    def reload_host(self) -> str:
        return str((self._data.get("reload") or {}).get("host", "127.0.0.1"))

    @property
    def reload_port(self) -> int:
        return int((self._data.get("reload") or {}).get("port", 3000))

    @property
    def settle_seconds(self) -> float:
        """Return how long a watched file must stay quiet before it is handled."""
        return max(0, int(self._data.get("settle_ms", 300))) / 1000

    @property
    def log_level(self) -> str:
        """Return the current logging level name."""
        return self._data.get("log_level", "INFO")

    @property
    def log_path(self) -> Path:
        return self.root / STATE_DIRNAME / "theme_sync.log"

    @property
    def max_log_size_mb(self) -> int:
        """Return the maximum log file size in MB before rotation."""
        return max(1, int(self._data.get("max_log_size_mb", 10)))

    @property
    def log_backup_count(self) -> int:
        """Return the number of rotated log backups to keep."""
        return max(0, int(self._data.get("log_backup_count", 3)))

    # ---- themes ----

    @property
    def theme_names(self) -> list[str]:
        return list((self._data.get("themes") or {}).keys())

    def theme(self, name: str | None = None) -> ThemeConfig:
        """Return the theme environment called *name* (default ``development``).

        A project without any themes gets an empty local-only theme.
        """
        themes = self._data.get("themes") or {}
        if name is None:
            name = DEFAULT_THEME
            if not themes:
                return ThemeConfig(name)
        if name not in themes:
            raise PipelineError(
                ErrorKind.CONFIG_INVALID,
                f"no theme named '{name}' in {self._path}",
            )
        return ThemeConfig(name, themes[name])
