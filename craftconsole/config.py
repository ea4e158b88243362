"""Persistent console service configuration helpers."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

logger = logging.getLogger("craftconsole.config")

CONFIG_PATH = Path.home() / ".craftconsole" / "config.json"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8080
HEARTBEAT_INTERVAL_SECONDS = 5.0
CLIENT_TIMEOUT_SECONDS = 10.0
STOP_TIMEOUT_SECONDS = 30.0


class LaunchConfig(BaseModel):
    """How to launch the supervised server process."""

    command: list[str]
    working_dir: Optional[Path] = None
    stop_command: str = "stop"
    stop_timeout_seconds: Optional[float] = STOP_TIMEOUT_SECONDS
    env: dict[str, str] = Field(default_factory=dict)

    @field_validator("command")
    @classmethod
    def _command_not_empty(cls, value: list[str]) -> list[str]:
        if not value or not str(value[0]).strip():
            raise ValueError("command must name an executable")
        return value

    @field_validator("stop_timeout_seconds")
    @classmethod
    def _positive_timeout(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and value <= 0:
            raise ValueError("stop_timeout_seconds must be positive")
        return value

    @classmethod
    def for_script(cls, file_path: str | Path, working_dir: str | Path | None = None) -> "LaunchConfig":
        """Launch a start script, defaulting the working dir to its folder.

        A relative script path is resolved against ``working_dir`` when given,
        otherwise against the current directory.
        """
        script = Path(file_path).expanduser()
        base = Path(working_dir).expanduser() if working_dir else Path.cwd()
        if not script.is_absolute():
            script = (base / script).absolute()
        cwd = base.absolute() if working_dir else script.parent
        return cls(command=[str(script)], working_dir=cwd)

    def environment(self) -> dict[str, str] | None:
        if not self.env:
            return None
        merged = dict(os.environ)
        merged.update(self.env)
        return merged


class ConsoleSettings(BaseModel):
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    heartbeat_interval_seconds: float = HEARTBEAT_INTERVAL_SECONDS
    client_timeout_seconds: float = CLIENT_TIMEOUT_SECONDS
    max_backlog: Optional[int] = None
    launch: Optional[LaunchConfig] = None

    @model_validator(mode="after")
    def _check_liveness_window(self) -> "ConsoleSettings":
        if self.heartbeat_interval_seconds <= 0:
            raise ValueError("heartbeat_interval_seconds must be positive")
        if self.client_timeout_seconds <= self.heartbeat_interval_seconds:
            raise ValueError("client_timeout_seconds must exceed heartbeat_interval_seconds")
        if self.max_backlog is not None and self.max_backlog < 1:
            raise ValueError("max_backlog must be at least 1")
        if not 0 < self.port < 65536:
            raise ValueError("port out of range")
        return self


def load_settings(path: Path = CONFIG_PATH) -> ConsoleSettings:
    """Load settings from disk or return defaults."""
    if not path.exists():
        return ConsoleSettings()
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", path, exc)
        return ConsoleSettings()
    if not isinstance(raw, dict):
        return ConsoleSettings()
    try:
        return ConsoleSettings.model_validate(raw)
    except ValidationError as exc:
        logger.warning("Ignoring invalid config %s: %s", path, exc)
        return ConsoleSettings()


def save_settings(settings: ConsoleSettings, path: Path = CONFIG_PATH) -> ConsoleSettings:
    """Validate and persist settings to disk."""
    validated = ConsoleSettings.model_validate(settings.model_dump())
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_suffix(".json.tmp")
    temp_path.write_text(json.dumps(validated.model_dump(mode="json"), indent=2), encoding="utf-8")
    temp_path.replace(path)
    return validated


def apply_env_overrides(settings: ConsoleSettings) -> ConsoleSettings:
    """Layer CRAFTCONSOLE_* environment variables over file settings."""
    updates: dict[str, object] = {}
    host = os.getenv("CRAFTCONSOLE_HOST")
    if host:
        updates["host"] = host
    port = os.getenv("CRAFTCONSOLE_PORT")
    if port:
        try:
            updates["port"] = int(port)
        except ValueError:
            logger.warning("Ignoring non-numeric CRAFTCONSOLE_PORT=%r", port)
    script = os.getenv("CRAFTCONSOLE_SERVER_SCRIPT")
    if script:
        updates["launch"] = LaunchConfig.for_script(script)
    return with_updates(settings, updates)


def with_updates(settings: ConsoleSettings, updates: dict[str, object]) -> ConsoleSettings:
    """Return ``settings`` with ``updates`` applied and revalidated."""
    if not updates:
        return settings
    return ConsoleSettings.model_validate({**settings.model_dump(), **updates})
