"""Starting replies and echoing them as they stream in."""

from __future__ import annotations

import asyncio
import logging

from askme.chat.models import ERROR_NOTICE
from askme.chat.store import SessionStore, StoreEvent
from askme.client.display import print_error, print_notice, print_reply_header, print_reply_text
from askme.client.session_state import ReplState

logger = logging.getLogger(__name__)

BUSY_NOTICE = "[still answering; press Esc or send /stop to cancel]"

_BACKGROUND_VERBS = {"completed": "finished", "failed": "failed", "aborted": "stopped"}


def start_reply(store: SessionStore, state: ReplState, text: str) -> bool:
    """Send `text` to the active chat in the background unless a reply is running."""
    if store.generating:
        print_notice(BUSY_NOTICE)
        return False

    state.streaming_session_id = store.active_id
    print_reply_header()
    state.mid_line = True
    task = asyncio.create_task(store.send_to_active(text))
    state.pending.add(task)
    task.add_done_callback(state.pending.discard)
    return True


class ReplyRenderer:
    """Store observer that echoes the streaming reply for the active chat.

    A reply whose chat is no longer on screen stays quiet and only gets a
    one-line note when it ends.
    """

    def __init__(self, state: ReplState) -> None:
        self._state = state

    def __call__(self, event: StoreEvent) -> None:
        streaming = self._state.streaming_session_id
        if streaming is None or event.session_id != streaming:
            return
        if event.kind == "fragment":
            if event.snapshot.active_id == streaming:
                print_reply_text(event.text)
                self._state.mid_line = not event.text.endswith("\n")
        elif event.kind == "finished":
            self._end_line()
            self._state.streaming_session_id = None
            outcome = event.outcome
            if outcome is None:
                return
            if event.snapshot.active_id != streaming:
                title = next((s.title for s in event.snapshot.sessions if s.id == streaming), None)
                if title is not None:
                    print_notice(f"[chat {title} {_BACKGROUND_VERBS[outcome.status]}]")
            elif outcome.status == "failed":
                print_error(ERROR_NOTICE)
            elif outcome.status == "aborted":
                print_notice("[stopped]")
        elif event.kind == "deleted":
            self._end_line()
            self._state.streaming_session_id = None

    def _end_line(self) -> None:
        if self._state.mid_line:
            print()
            self._state.mid_line = False
