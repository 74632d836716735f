"""Interactive REPL loop for chatting against the session store."""

from __future__ import annotations

import asyncio
import logging

from prompt_toolkit import PromptSession  # type: ignore
from prompt_toolkit.key_binding import KeyBindings  # type: ignore
from prompt_toolkit.patch_stdout import patch_stdout  # type: ignore

from askme.chat.store import SessionStore
from askme.client.display import print_banner
from askme.client.replies import ReplyRenderer, start_reply
from askme.client.session_state import ReplState
from askme.client.slash import handle_slash_command, show_active_chat
from askme.client.status_box import build_status_toolbar, build_welcome_banner

logger = logging.getLogger(__name__)


async def interactive_loop(store: SessionStore, state: ReplState) -> None:
    """Read lines, dispatch slash commands, and send everything else to the active chat."""
    kb = KeyBindings()

    @kb.add("escape")
    def _(event):  # type: ignore
        if store.cancel_active():
            logger.info("Generation cancelled from keyboard")

    session: PromptSession = PromptSession(
        key_bindings=kb,
        bottom_toolbar=lambda: build_status_toolbar(store),
    )
    unsubscribe = store.subscribe(ReplyRenderer(state))

    if state.show_banner_on_start:
        print_banner(build_welcome_banner(state, store))
        show_active_chat(store)
        state.show_banner_on_start = False

    try:
        with patch_stdout():
            while True:
                try:
                    line = await session.prompt_async("you> ")
                except EOFError:
                    break
                except KeyboardInterrupt:
                    store.cancel_active()
                    continue

                if not line.strip():
                    continue
                if line.startswith("/"):
                    await handle_slash_command(line, store, state)
                    continue
                start_reply(store, state, line)
    finally:
        store.cancel_active()
        if state.pending:
            await asyncio.gather(*state.pending, return_exceptions=True)
        unsubscribe()
