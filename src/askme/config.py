"""Runtime configuration for the chat client.

Values come from the process environment, then from an optional `.env` file
in the user config directory (loaded with python-dotenv, never overriding
variables that are already set), then from the defaults below. Command-line
flags are applied on top via `ClientConfig.with_overrides`.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path

from dotenv import load_dotenv

from askme import paths

logger = logging.getLogger(__name__)

DEFAULT_BACKEND_URL = "http://localhost:8000"
DEFAULT_REQUEST_TIMEOUT = 60.0
DEFAULT_CONNECT_TIMEOUT = 10.0


@dataclass(frozen=True)
class ClientConfig:
    backend_url: str = DEFAULT_BACKEND_URL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    state_file: Path | None = None
    persist: bool = True

    @property
    def chat_url(self) -> str:
        return f"{self.backend_url}/api/chat"

    def with_overrides(
        self,
        *,
        backend_url: str | None = None,
        state_file: str | Path | None = None,
        persist: bool | None = None,
    ) -> "ClientConfig":
        updated = self
        if backend_url:
            updated = replace(updated, backend_url=normalize_base_url(backend_url))
        if state_file:
            updated = replace(updated, state_file=Path(state_file).expanduser())
        if persist is not None:
            updated = replace(updated, persist=persist)
        return updated


def normalize_base_url(value: str) -> str:
    return value.strip().rstrip("/") or DEFAULT_BACKEND_URL


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r", name, raw)
        return default
    if value <= 0:
        logger.warning("Ignoring non-positive %s=%r", name, raw)
        return default
    return value


def load_config(env_file: Path | None = None) -> ClientConfig:
    """Resolve the client configuration from the environment."""

    dotenv_path = env_file or paths.env_file()
    if dotenv_path.is_file():
        load_dotenv(dotenv_path, override=False)

    state_raw = os.getenv("ASKME_STATE_FILE")
    state_file = Path(state_raw).expanduser() if state_raw and state_raw.strip() else paths.default_state_file()

    return ClientConfig(
        backend_url=normalize_base_url(os.getenv("ASKME_BACKEND_URL") or DEFAULT_BACKEND_URL),
        request_timeout=_env_float("ASKME_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT),
        connect_timeout=_env_float("ASKME_CONNECT_TIMEOUT", DEFAULT_CONNECT_TIMEOUT),
        state_file=state_file,
    )
