"""Configuration loading from environment variables and bizflow.toml."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

_DEFAULT_DATA_DIR = Path.home() / ".bizflow" / "data"
_CONFIG_FILENAME = "bizflow.toml"


@dataclass
class StoreConfig:
    """Document backend selection."""

    backend: str = "file"  # memory | file | firestore
    data_dir: Path = _DEFAULT_DATA_DIR
    project_id: str = ""
    credentials: Path | None = None


@dataclass
class SessionConfig:
    """How the actor identity is established."""

    actor_id: str = "local"
    token: str = ""


@dataclass
class SchedulerConfig:
    """Scheduler configuration."""

    reminder_interval: int = 300


@dataclass
class BizflowConfig:
    """Top-level bizflow configuration."""

    store: StoreConfig = field(default_factory=StoreConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    app_id: str = "default-app-id"
    pid_file: Path = Path.home() / ".bizflow" / "bizflow.pid"
    log_level: str = "INFO"


def load_config(config_path: Path | None = None) -> BizflowConfig:
    """Load configuration from environment variables and optional bizflow.toml.

    Priority: environment variables > bizflow.toml > defaults.
    """
    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text())
    else:
        for candidate in [Path.cwd() / _CONFIG_FILENAME, Path.home() / ".bizflow" / _CONFIG_FILENAME]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text())
                break

    store_data = file_data.get("store", {})
    session_data = file_data.get("session", {})
    scheduler_data = file_data.get("scheduler", {})

    credentials = os.getenv("GOOGLE_APPLICATION_CREDENTIALS", store_data.get("credentials"))

    config = BizflowConfig(
        store=StoreConfig(
            backend=os.getenv("BIZFLOW_BACKEND", store_data.get("backend", "file")),
            data_dir=Path(
                os.getenv("BIZFLOW_DATA_DIR", store_data.get("data_dir", str(_DEFAULT_DATA_DIR)))
            ).expanduser(),
            project_id=os.getenv("BIZFLOW_PROJECT_ID", store_data.get("project_id", "")),
            credentials=Path(credentials).expanduser() if credentials else None,
        ),
        session=SessionConfig(
            actor_id=os.getenv("BIZFLOW_ACTOR_ID", session_data.get("actor_id", "local")),
            token=os.getenv("BIZFLOW_AUTH_TOKEN", session_data.get("token", "")),
        ),
        scheduler=SchedulerConfig(
            reminder_interval=int(
                os.getenv(
                    "BIZFLOW_REMINDER_INTERVAL", scheduler_data.get("reminder_interval", 300)
                )
            ),
        ),
        app_id=os.getenv("BIZFLOW_APP_ID", file_data.get("app_id", "default-app-id")),
        log_level=os.getenv("BIZFLOW_LOG_LEVEL", file_data.get("log_level", "INFO")),
    )
    return config
