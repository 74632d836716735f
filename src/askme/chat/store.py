"""Authoritative in-memory model of all chat sessions.

All mutations are synchronous and run on the event loop thread, so they are
atomic with respect to fragment application; the only suspension points
are inside `send_message` while the stream is being read. Every data
mutation is persisted and then announced to observers.
"""

from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass
from typing import Callable, Literal

from askme.chat.cancellation import CancellationController, CancelToken
from askme.chat.models import ERROR_NOTICE, Message, Session, derive_title
from askme.chat.persistence import PersistenceAdapter
from askme.chat.stream import ChatStreamer, StreamOutcome
from askme.log_utils import log_chunks_enabled, log_context, log_event

logger = logging.getLogger(__name__)

EventKind = Literal["created", "deleted", "selected", "message", "fragment", "finished"]


@dataclass(frozen=True)
class StoreSnapshot:
    sessions: tuple[Session, ...]
    active_id: str | None
    generating: bool
    generating_session_id: str | None


@dataclass(frozen=True)
class StoreEvent:
    kind: EventKind
    session_id: str | None
    snapshot: StoreSnapshot
    text: str = ""
    outcome: StreamOutcome | None = None


Observer = Callable[[StoreEvent], None]


@dataclass(frozen=True)
class _Generation:
    session_id: str
    token: CancelToken


class SessionStore:
    def __init__(
        self,
        persistence: PersistenceAdapter,
        streamer: ChatStreamer,
        *,
        controller: CancellationController | None = None,
    ) -> None:
        self._persistence = persistence
        self._streamer = streamer
        self._controller = controller or CancellationController()
        self._sessions: dict[str, Session] = {}
        self._active_id: str | None = None
        self._generation: _Generation | None = None
        self._observers: list[Observer] = []

    @classmethod
    def open(
        cls,
        persistence: PersistenceAdapter,
        streamer: ChatStreamer,
        *,
        controller: CancellationController | None = None,
    ) -> "SessionStore":
        """Restore the persisted collection, creating a session if it is empty."""
        store = cls(persistence, streamer, controller=controller)
        store._restore()
        return store

    # -- read side -------------------------------------------------------

    @property
    def sessions(self) -> tuple[Session, ...]:
        """Live sessions, newest first. Treat as read-only."""
        return tuple(self._sessions.values())

    @property
    def active_id(self) -> str | None:
        return self._active_id

    @property
    def active_session(self) -> Session | None:
        if self._active_id is None:
            return None
        return self._sessions.get(self._active_id)

    @property
    def generating(self) -> bool:
        return self._generation is not None

    @property
    def generating_session_id(self) -> str | None:
        return self._generation.session_id if self._generation else None

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def snapshot(self) -> StoreSnapshot:
        return StoreSnapshot(
            sessions=tuple(session.copy() for session in self._sessions.values()),
            active_id=self._active_id,
            generating=self.generating,
            generating_session_id=self.generating_session_id,
        )

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register `observer`; returns a callable that unregisters it."""
        self._observers.append(observer)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._observers.remove(observer)

        return _unsubscribe

    # -- session lifecycle -----------------------------------------------

    def create_session(self) -> str:
        session_id = self._insert_fresh()
        self._commit("created", session_id)
        return session_id

    def delete_session(self, session_id: str) -> None:
        if session_id not in self._sessions:
            return
        generation = self._generation
        if generation is not None and generation.session_id == session_id:
            # Stop the stream before its session disappears; late fragments are dropped.
            self._controller.signal(generation.token)
        del self._sessions[session_id]
        log_event(logger, "session.deleted", session_id=session_id)

        replacement: str | None = None
        if not self._sessions:
            replacement = self._insert_fresh()
        elif self._active_id == session_id:
            self._active_id = next(iter(self._sessions))
        self._commit("deleted", session_id)
        if replacement is not None:
            self._notify("created", replacement)

    def select_session(self, session_id: str) -> bool:
        if session_id not in self._sessions:
            return False
        if session_id != self._active_id:
            self._active_id = session_id
            log_event(logger, "session.selected", level=logging.DEBUG, session_id=session_id)
            self._notify("selected", session_id)
        return True

    # -- generation ------------------------------------------------------

    def cancel_active(self) -> bool:
        cancelled = self._controller.cancel_active()
        if cancelled:
            log_event(logger, "generation.cancel_requested", session_id=self.generating_session_id)
        return cancelled

    async def send_to_active(self, text: str) -> StreamOutcome | None:
        if self._active_id is None:
            return None
        return await self.send_message(self._active_id, text)

    async def send_message(self, session_id: str, text: str) -> StreamOutcome | None:
        """Run one generation for `session_id`.

        Returns the terminal outcome, or None when the send was ignored
        (blank text, unknown session, or another generation in flight).
        """
        if not text.strip():
            return None
        if self._generation is not None:
            log_event(
                logger,
                "generation.busy",
                level=logging.DEBUG,
                session_id=session_id,
                active=self._generation.session_id,
            )
            return None
        session = self._sessions.get(session_id)
        if session is None:
            return None

        token = self._controller.begin()
        self._generation = _Generation(session_id, token)
        with log_context(session_id=session_id):
            reply = self._start_exchange(session, text)
            applied = False
            outcome: StreamOutcome | None = None
            try:
                outcome, applied = await self._consume(session, reply, token)
            except Exception as exc:
                logger.exception("Generation failed unexpectedly")
                outcome = StreamOutcome("failed", type(exc).__name__)
            finally:
                self._controller.release(token)
                self._generation = None
                if outcome is None:
                    # Task cancelled while suspended in the stream.
                    outcome = StreamOutcome("aborted")
                applied = applied or bool(reply.content)
                self._finish(session_id, reply, outcome, applied)
        return outcome

    def _start_exchange(self, session: Session, text: str) -> Message:
        first_user_message = not session.has_user_message
        session.messages.append(Message(role="user", content=text))
        if first_user_message:
            session.title = derive_title(text)
        reply = Message(role="assistant", content="", in_progress=True)
        session.messages.append(reply)
        log_event(logger, "generation.started", messages=len(session.messages) - 1)
        self._commit("message", session.id)
        return reply

    async def _consume(self, session: Session, reply: Message, token: CancelToken) -> tuple[StreamOutcome, bool]:
        history = session.history()
        applied = False
        async with contextlib.aclosing(self._streamer.stream(history, token)) as items:
            async for item in items:
                if isinstance(item, StreamOutcome):
                    return item, applied
                if token.cancelled or session.id not in self._sessions:
                    return StreamOutcome("aborted"), applied
                if not item.text:
                    continue
                reply.content += item.text
                applied = True
                if log_chunks_enabled():
                    log_event(logger, "generation.fragment", level=logging.DEBUG, size=len(item.text))
                self._commit("fragment", session.id, text=item.text)
        if token.cancelled:
            return StreamOutcome("aborted"), applied
        return StreamOutcome("failed", "stream ended without outcome"), applied

    def _finish(self, session_id: str, reply: Message, outcome: StreamOutcome, applied: bool) -> None:
        log_event(
            logger,
            "generation.finished",
            status=outcome.status,
            reason=outcome.reason,
            chars=len(reply.content),
        )
        session = self._sessions.get(session_id)
        if session is None or not any(message is reply for message in session.messages):
            self._notify("finished", session_id, outcome=outcome)
            return
        reply.in_progress = False
        if outcome.status == "failed":
            if applied:
                session.messages.append(Message(role="assistant", content=ERROR_NOTICE))
            else:
                reply.content = ERROR_NOTICE
        self._commit("finished", session_id, outcome=outcome)

    # -- internals -------------------------------------------------------

    def _insert_fresh(self) -> str:
        session = Session.fresh()
        self._sessions = {session.id: session, **self._sessions}
        self._active_id = session.id
        log_event(logger, "session.created", session_id=session.id)
        return session.id

    def _restore(self) -> None:
        try:
            loaded = self._persistence.load()
        except Exception as exc:
            log_event(logger, "persist.load_failed", level=logging.WARNING, error=repr(exc))
            loaded = []
        for session in loaded:
            if session.messages and session.id not in self._sessions:
                self._sessions[session.id] = session
        if self._sessions:
            self._active_id = next(iter(self._sessions))
            logger.info("Restored %d session(s)", len(self._sessions))
        else:
            self.create_session()

    def _commit(
        self,
        kind: EventKind,
        session_id: str | None,
        *,
        text: str = "",
        outcome: StreamOutcome | None = None,
    ) -> None:
        self._persist()
        self._notify(kind, session_id, text=text, outcome=outcome)

    def _persist(self) -> None:
        try:
            self._persistence.save(self._sessions.values())
        except Exception as exc:
            log_event(logger, "persist.save_failed", level=logging.WARNING, error=repr(exc))

    def _notify(
        self,
        kind: EventKind,
        session_id: str | None,
        *,
        text: str = "",
        outcome: StreamOutcome | None = None,
    ) -> None:
        if not self._observers:
            return
        event = StoreEvent(kind=kind, session_id=session_id, snapshot=self.snapshot(), text=text, outcome=outcome)
        for observer in list(self._observers):
            try:
                observer(event)
            except Exception:
                logger.exception("Store observer failed on %s", kind)
