"""Configuration management for Template Sync.

Stores and retrieves settings from a JSON config file kept in the
working directory next to the capture and template files.
"""

import json
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".template-sync.json"

DEFAULT_CONFIG: dict[str, Any] = {
    # ---- watched / generated files (relative to the working directory) ----
    "capture_file": ".fetch",
    "template_file": "template.html",
    "artifact_file": "template.pdf",
    "write_default_template": True,
    # ---- preview ----
    "preview_enabled": False,
    "preview_port": 3000,
    "poll_interval_ms": 1000,
    "save_action": "SAVE_EDIT",  # value swapped out for the preview request
    "preview_action": "PREVIEW",
    # ---- network ----
    "request_timeout_seconds": 30,
    # ---- watching ----
    "debounce_seconds": 0.2,  # coalesce bursts of events for one file
    # ---- logging ----
    "log_level": "DEBUG",
    "log_file": ".template-sync.log",
    "max_log_size_mb": 10,  # rotate log when it exceeds this size
    "log_backup_count": 3,  # number of rotated log files to keep
}


class Config:
    """Configuration manager backed by a JSON file."""

    def __init__(self, workdir: Path | None = None, path: Path | None = None):
        """Load config for *workdir*, from *path* if given."""
        self.workdir = Path(workdir or Path.cwd()).resolve()
        self._path = path or self.workdir / CONFIG_FILENAME
        self._data: dict[str, Any] = dict(DEFAULT_CONFIG)
        self.load()

    # ---- persistence ----

    def load(self) -> None:
        """Load configuration from disk, applying defaults for missing keys."""
        if self._path.exists():
            try:
                with open(self._path, encoding="utf-8") as fh:
                    stored = json.load(fh)
                # Merge stored values over defaults so new keys get defaults
                self._data = {**DEFAULT_CONFIG, **stored}
                logger.info("Configuration loaded from %s", self._path)
            except (json.JSONDecodeError, OSError) as exc:
                logger.warning("Could not read config (%s); using defaults.", exc)
                self._data = dict(DEFAULT_CONFIG)
        else:
            self._data = dict(DEFAULT_CONFIG)
            self.save()
            logger.info("Created default configuration at %s", self._path)

    def save(self) -> None:
        """Persist the current configuration to disk."""
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "w", encoding="utf-8") as fh:
                json.dump(self._data, fh, indent=2)
            logger.info("Configuration saved.")
        except OSError as exc:
            logger.error("Failed to save configuration: %s", exc)

    def _resolve(self, key: str) -> Path:
        return self.workdir / self._data.get(key, DEFAULT_CONFIG[key])

    # ---- files ----

    @property
    def capture_path(self) -> Path:
        """Return the absolute path of the captured request file."""
        return self._resolve("capture_file")

    @property
    def template_path(self) -> Path:
        """Return the absolute path of the watched template."""
        return self._resolve("template_file")

    @property
    def artifact_path(self) -> Path:
        """Return the absolute path the rendered preview is written to."""
        return self._resolve("artifact_file")

    @property
    def log_path(self) -> Path:
        """Return the absolute path of the log file."""
        return self._resolve("log_file")

    @property
    def write_default_template(self) -> bool:
        """Return whether a skeleton template is written when missing."""
        return bool(self._data.get("write_default_template", True))

    @write_default_template.setter
    def write_default_template(self, value: bool) -> None:
        self._data["write_default_template"] = value

    # ---- preview ----

    @property
    def preview_enabled(self) -> bool:
        """Return whether the preview fetch and server are enabled."""
        return bool(self._data.get("preview_enabled", False))

    @preview_enabled.setter
    def preview_enabled(self, value: bool) -> None:
        self._data["preview_enabled"] = value

    @property
    def preview_port(self) -> int:
        """Return the preview server port."""
        return int(self._data.get("preview_port", 3000))

    @preview_port.setter
    def preview_port(self, value: int) -> None:
        """Set the preview server port (0 picks a free port)."""
        self._data["preview_port"] = min(65535, max(0, int(value)))

    @property
    def poll_interval_ms(self) -> int:
        """Return how often the viewer polls for a new artifact."""
        return int(self._data.get("poll_interval_ms", 1000))

    @poll_interval_ms.setter
    def poll_interval_ms(self, value: int) -> None:
        """Set the viewer poll interval (minimum 100 ms)."""
        self._data["poll_interval_ms"] = max(100, int(value))

    @property
    def save_action(self) -> str:
        return self._data.get("save_action", "SAVE_EDIT")

    @save_action.setter
    def save_action(self, value: str) -> None:
        self._data["save_action"] = value.strip() or "SAVE_EDIT"

    @property
    def preview_action(self) -> str:
        return self._data.get("preview_action", "PREVIEW")

    @preview_action.setter
    def preview_action(self, value: str) -> None:
        self._data["preview_action"] = value.strip() or "PREVIEW"

    # ---- network ----

    @property
    def request_timeout(self) -> float:
        """Return the HTTP timeout in seconds."""
        return float(self._data.get("request_timeout_seconds", 30))

    @request_timeout.setter
    def request_timeout(self, value: float) -> None:
        """Set the HTTP timeout (minimum 1 s)."""
        self._data["request_timeout_seconds"] = max(1.0, float(value))

    # ---- watching ----

    @property
    def debounce_seconds(self) -> float:
        """Return the window used to coalesce events for one file."""
        return float(self._data.get("debounce_seconds", 0.2))

    @debounce_seconds.setter
    def debounce_seconds(self, value: float) -> None:
        self._data["debounce_seconds"] = max(0.0, float(value))

    # ---- logging ----

    @property
    def log_level(self) -> str:
        """Return the current logging level name."""
        return self._data.get("log_level", "DEBUG")

    @log_level.setter
    def log_level(self, value: str) -> None:
        self._data["log_level"] = value

    @property
    def max_log_size_mb(self) -> int:
        """Return the maximum log file size in MB before rotation."""
        return int(self._data.get("max_log_size_mb", 10))

    @max_log_size_mb.setter
    def max_log_size_mb(self, value: int) -> None:
        """Set the maximum log file size in MB (minimum 1)."""
        self._data["max_log_size_mb"] = max(1, int(value))

    @property
    def log_backup_count(self) -> int:
        """Return the number of rotated log backups to keep."""
        return int(self._data.get("log_backup_count", 3))

    @log_backup_count.setter
    def log_backup_count(self, value: int) -> None:
        """Set the number of rotated log backups to keep."""
        self._data["log_backup_count"] = max(0, int(value))
