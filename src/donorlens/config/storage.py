"""Storage configuration for checkpoints and HTTP caches."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final, Literal

from .env import env_float, optional_env
from .errors import ConfigurationError

APP_DIR_NAME: Final[str] = "donorlens"
DEFAULT_DB_FILENAME: Final[str] = "checkpoints.db"
HTTP_CACHE_FILENAME: Final[str] = "http_cache.db"
DEFAULT_STALE_AFTER_SECONDS: Final[float] = 300.0

type CheckpointBackend = Literal["sqlalchemy", "memory"]


@dataclass(frozen=True, slots=True)
class StorageConfig:
    """Where donorlens keeps its files and which checkpoint store it uses."""

    data_dir: Path
    checkpoint_backend: CheckpointBackend = "sqlalchemy"
    stale_after_seconds: float = DEFAULT_STALE_AFTER_SECONDS

    def ensure_data_dir(self) -> Path:
        data_dir = self.data_dir.expanduser().resolve()
        data_dir.mkdir(parents=True, exist_ok=True)
        return data_dir

    def database_uri(self) -> str:
        return f"sqlite+pysqlite:///{self.ensure_data_dir() / DEFAULT_DB_FILENAME}"

    def http_cache_path(self) -> Path:
        return self.ensure_data_dir() / HTTP_CACHE_FILENAME


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    uri: str


def _default_data_dir() -> Path:
    if os.name == "nt":
        base = os.getenv("LOCALAPPDATA")
        base_path = Path(base) if base else (Path.home() / "AppData" / "Local")
    else:
        base = os.getenv("XDG_DATA_HOME")
        base_path = Path(base) if base else (Path.home() / ".local" / "share")
    return base_path / APP_DIR_NAME


def _checkpoint_backend() -> CheckpointBackend:
    raw = (optional_env("DONORLENS_CHECKPOINT_BACKEND") or "sqlalchemy").lower()
    if raw == "sqlalchemy":
        return "sqlalchemy"
    if raw == "memory":
        return "memory"
    raise ConfigurationError(
        f"DONORLENS_CHECKPOINT_BACKEND must be 'sqlalchemy' or 'memory', got {raw!r}"
    )


def get_storage_config() -> StorageConfig:
    env_dir = optional_env("DONORLENS_DATA_DIR")
    return StorageConfig(
        data_dir=Path(env_dir) if env_dir else _default_data_dir(),
        checkpoint_backend=_checkpoint_backend(),
        stale_after_seconds=env_float(
            "DONORLENS_STALE_CHECKPOINT_SECONDS", DEFAULT_STALE_AFTER_SECONDS
        ),
    )


def get_database_config(*, storage: StorageConfig | None = None) -> DatabaseConfig:
    env_uri = optional_env("DATABASE_URI")
    if env_uri:
        return DatabaseConfig(uri=env_uri)
    storage_config = storage or get_storage_config()
    return DatabaseConfig(uri=storage_config.database_uri())


def get_http_cache_path() -> Path:
    return get_storage_config().http_cache_path()
