"""Durable snapshots of the session collection.

The store calls `save` after every data mutation and `load` once at startup.
Adapters never raise from `load`: missing or unreadable data is an empty
collection, which makes the store create a fresh session.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable, List, Literal, Protocol

from pydantic import BaseModel, Field, ValidationError

from askme.chat.models import PLACEHOLDER_TITLE, Message, Session
from askme.log_utils import log_event

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


class StoredMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class StoredSession(BaseModel):
    id: str = Field(min_length=1)
    title: str = PLACEHOLDER_TITLE
    messages: List[StoredMessage] = Field(min_length=1)


class Snapshot(BaseModel):
    """On-disk document; `sessions` keeps collection order (newest first)."""

    version: int = SNAPSHOT_VERSION
    sessions: List[StoredSession] = Field(default_factory=list)

    @classmethod
    def from_sessions(cls, sessions: Iterable[Session]) -> "Snapshot":
        return cls(
            sessions=[
                StoredSession(
                    id=session.id,
                    title=session.title,
                    messages=[StoredMessage(role=m.role, content=m.content) for m in session.messages],
                )
                for session in sessions
            ]
        )

    def to_sessions(self) -> list[Session]:
        sessions: list[Session] = []
        seen: set[str] = set()
        for stored in self.sessions:
            if stored.id in seen:
                continue
            seen.add(stored.id)
            sessions.append(
                Session(
                    id=stored.id,
                    title=stored.title,
                    messages=[Message(role=m.role, content=m.content) for m in stored.messages],
                )
            )
        return sessions


class PersistenceAdapter(Protocol):
    def load(self) -> list[Session]: ...

    def save(self, sessions: Iterable[Session]) -> None: ...


class JsonFileStore:
    """Keep the whole collection in one JSON file, replaced atomically on save."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> list[Session]:
        if not self.path.exists():
            return []
        try:
            raw = self.path.read_text(encoding="utf-8")
            snapshot = Snapshot.model_validate_json(raw)
        except (OSError, ValueError, ValidationError) as exc:
            log_event(
                logger,
                "persist.load_failed",
                level=logging.WARNING,
                path=str(self.path),
                error=type(exc).__name__,
            )
            return []
        sessions = snapshot.to_sessions()
        logger.debug("Loaded %d session(s) from %s", len(sessions), self.path)
        return sessions

    def save(self, sessions: Iterable[Session]) -> None:
        payload = Snapshot.from_sessions(sessions).model_dump(mode="json")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, ensure_ascii=False)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


class MemoryStore:
    """Holds the last snapshot in memory; used for `--no-persist` and tests."""

    def __init__(self, sessions: Iterable[Session] = ()) -> None:
        self._document = Snapshot.from_sessions(sessions).model_dump_json()
        self.saves = 0

    def load(self) -> list[Session]:
        return Snapshot.model_validate_json(self._document).to_sessions()

    def save(self, sessions: Iterable[Session]) -> None:
        self._document = Snapshot.from_sessions(sessions).model_dump_json()
        self.saves += 1
