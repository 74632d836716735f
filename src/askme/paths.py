"""Per-user directories and well-known file locations for askme."""

from __future__ import annotations

from pathlib import Path

from platformdirs import PlatformDirs

APP_NAME = "askme"
STATE_FILENAME = "chats.json"
ENV_FILENAME = ".env"


def _dirs() -> PlatformDirs:
    return PlatformDirs(appname=APP_NAME, appauthor=False)


def ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def config_dir() -> Path:
    return ensure_dir(Path(_dirs().user_config_path))


def state_dir() -> Path:
    return ensure_dir(Path(_dirs().user_state_path))


def log_dir() -> Path:
    return ensure_dir(Path(_dirs().user_log_path))


def default_state_file() -> Path:
    """Location of the persisted chat collection."""
    return state_dir() / STATE_FILENAME


def env_file() -> Path:
    """Optional dotenv file read at startup (never required to exist)."""
    return config_dir() / ENV_FILENAME
