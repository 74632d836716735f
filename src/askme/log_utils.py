"""Log file setup and key=value event helpers.

The terminal belongs to the REPL, so everything is written to a rotating file
under the platform log directory.
"""

from __future__ import annotations

import contextlib
import contextvars
import json
import logging
import os
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterator, Mapping

from askme.paths import log_dir

LOG_FILE_NAME = "askme.log"
ROTATE_AT_BYTES = 2_000_000
ROTATED_FILES_KEPT = 3
LINE_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

# These log every request at INFO.
HTTP_LOGGERS = ("httpx", "httpcore")

_event_context: contextvars.ContextVar[Mapping[str, Any]] = contextvars.ContextVar("askme_event_context", default={})
_chunk_logging = False


@dataclass(frozen=True)
class LogConfig:
    log_file: Path
    level: int = logging.INFO
    log_chunks: bool = False

    @property
    def http_level(self) -> int:
        return self.level if self.level <= logging.DEBUG else logging.WARNING


def build_log_config(*, log_file_name: str = LOG_FILE_NAME, level: str | None = None) -> LogConfig:
    """Read ASKME_LOG_DIR, ASKME_LOG_LEVEL and ASKME_LOG_CHUNKS.

    An explicit `level` (from the command line) wins over the environment;
    unknown level names mean INFO.
    """
    directory = Path(os.getenv("ASKME_LOG_DIR") or log_dir())
    directory.mkdir(parents=True, exist_ok=True)
    name = (level or os.getenv("ASKME_LOG_LEVEL") or "INFO").strip().upper()
    chunks = os.getenv("ASKME_LOG_CHUNKS", "").strip().lower() in {"1", "true", "yes", "on"}
    return LogConfig(
        log_file=directory / log_file_name,
        level=logging.getLevelNamesMapping().get(name, logging.INFO),
        log_chunks=chunks,
    )


def configure_logging(config: LogConfig) -> None:
    """Route the root logger to the rotating log file only."""
    global _chunk_logging
    _chunk_logging = config.log_chunks

    handler = RotatingFileHandler(
        config.log_file,
        maxBytes=ROTATE_AT_BYTES,
        backupCount=ROTATED_FILES_KEPT,
        encoding="utf-8",
    )
    handler.setFormatter(EventFormatter(LINE_FORMAT))

    root = logging.getLogger()
    for previous in root.handlers[:]:
        root.removeHandler(previous)
    root.addHandler(handler)
    root.setLevel(config.level)
    for name in HTTP_LOGGERS:
        logging.getLogger(name).setLevel(config.http_level)


def log_chunks_enabled() -> bool:
    return _chunk_logging


@contextlib.contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Add fields (e.g. session_id) to every event logged inside the block."""
    merged = {**_event_context.get(), **{k: v for k, v in fields.items() if v is not None}}
    token = _event_context.set(merged)
    try:
        yield
    finally:
        _event_context.reset(token)


def log_event(logger: logging.Logger, event: str, *, level: int = logging.INFO, **fields: Any) -> None:
    """Log a stable event name; the fields are rendered after it as key=value."""
    logger.log(level, event, extra={"event_fields": {**_event_context.get(), **fields}})


class EventFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields: Mapping[str, Any] = getattr(record, "event_fields", {})
        pairs = " ".join(f"{key}={_render(value)}" for key, value in sorted(fields.items()) if value is not None)
        return f"{line} {pairs}" if pairs else line


def _render(value: Any) -> str:
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, ensure_ascii=True, separators=(",", ":"))
    text = str(value)
    if not text or any(ch.isspace() or ch in '="' for ch in text):
        return json.dumps(text)
    return text
