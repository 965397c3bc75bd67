from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError

log = logging.getLogger("chat-runtime.config")

DEFAULT_ARTIFACT_DIR = Path.home() / ".nomic"


def _env_float(name: str) -> float | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    try:
        return float(raw)
    except ValueError:
        log.warning("Ignoring non-numeric %s=%r", name, raw)
        return None


class RuntimeConfig(BaseModel):
    artifact_dir: str = str(DEFAULT_ARTIFACT_DIR)
    executable_name: str = "gpt4all"
    idle_timeout_sec: float = Field(default=4.0, gt=0)
    startup_timeout_sec: Optional[float] = Field(default=180.0, gt=0)
    shutdown_grace_sec: float = Field(default=5.0, ge=0)
    download_timeout_sec: Optional[float] = None
    show_progress: bool = True
    log_dir: str = str(DEFAULT_ARTIFACT_DIR / "logs")

    @classmethod
    def _resolve_path(cls, path: Path | None) -> Path | None:
        if path is not None:
            return Path(path).expanduser()
        raw = os.getenv("CHAT_RUNTIME_CONFIG", "")
        if raw.strip():
            return Path(raw.strip()).expanduser()
        return None

    def _apply_env_overrides(self) -> "RuntimeConfig":
        idle = _env_float("CHAT_RUNTIME_IDLE_TIMEOUT")
        if idle is not None and idle > 0:
            self.idle_timeout_sec = idle
        startup = _env_float("CHAT_RUNTIME_STARTUP_TIMEOUT")
        if startup is not None:
            self.startup_timeout_sec = startup if startup > 0 else None
        return self

    @classmethod
    def load(cls, path: Path | None = None) -> "RuntimeConfig":
        """
        Load a runtime config safely.

        Never raises due to config path/IO/JSON/validation issues; any problem
        is logged and the defaults are used instead.
        """
        config_path = cls._resolve_path(path)
        if config_path is None:
            return cls()._apply_env_overrides()

        if not config_path.is_file():
            log.warning("Config file %s not found; using defaults.", config_path)
            return cls()._apply_env_overrides()

        try:
            raw_text = config_path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            log.warning("Failed to read config file %s: %s", config_path, exc)
            return cls()._apply_env_overrides()

        try:
            data: dict[str, Any] = json.loads(raw_text or "{}")
        except json.JSONDecodeError as exc:
            log.warning("Corrupt config JSON in %s (%s); using defaults.", config_path, exc)
            return cls()._apply_env_overrides()

        try:
            config = cls.model_validate(data)
        except ValidationError as exc:
            log.warning("Invalid config schema in %s (%s); using defaults.", config_path, exc)
            return cls()._apply_env_overrides()

        if not config.artifact_dir.strip():
            config.artifact_dir = str(DEFAULT_ARTIFACT_DIR)
        return config._apply_env_overrides()

    @property
    def artifact_path(self) -> Path:
        return Path(self.artifact_dir).expanduser()
