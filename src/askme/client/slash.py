"""Client-side slash command registry and dispatch."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from askme.chat.models import EXAMPLE_PROMPTS
from askme.chat.store import SessionStore
from askme.client.display import (
    print_banner,
    print_error,
    print_example_prompts,
    print_history,
    print_notice,
    print_session_list,
)
from askme.client.replies import start_reply
from askme.client.session_state import ReplState
from askme.client.status_box import build_welcome_banner

logger = logging.getLogger(__name__)

SlashHandler = Callable[[SessionStore, ReplState, str], Awaitable[bool] | bool]


@dataclass
class SlashCommandDef:
    description: str
    hint: str
    handler: SlashHandler


SLASH_HANDLERS: dict[str, SlashCommandDef] = {}


def register_slash_command(name: str, description: str, hint: str) -> Callable[[SlashHandler], SlashHandler]:
    """Decorator to register a slash command."""

    def _decorator(func: SlashHandler) -> SlashHandler:
        SLASH_HANDLERS[name] = SlashCommandDef(description=description, hint=hint, handler=func)
        return func

    return _decorator


def resolve_session_ref(store: SessionStore, ref: str) -> str | None:
    """Map a list position (1-based) or an id prefix to a session id."""
    ref = ref.strip()
    if not ref:
        return None
    sessions = store.sessions
    if ref.isdigit():
        index = int(ref) - 1
        if 0 <= index < len(sessions):
            return sessions[index].id
    matches = [session.id for session in sessions if session.id.startswith(ref)]
    return matches[0] if len(matches) == 1 else None


def show_active_chat(store: SessionStore) -> None:
    """Print the active chat, plus the example prompts while it is untouched."""
    session = store.active_session
    if session is None:
        return
    print_history(session)
    if session.is_fresh:
        print_example_prompts(EXAMPLE_PROMPTS)


@register_slash_command("/help", description="Show available slash commands.", hint="/help")
def _handle_help(_store: SessionStore, _state: ReplState, _argument: str) -> bool:
    print_notice("Available slash commands:", style="bold")
    for entry in SLASH_HANDLERS.values():
        print(f"{entry.hint:<18} - {entry.description}")
    return True


@register_slash_command("/new", description="Start a new chat and switch to it.", hint="/new")
def _handle_new(store: SessionStore, _state: ReplState, _argument: str) -> bool:
    store.create_session()
    print_notice("[new chat]")
    show_active_chat(store)
    return True


@register_slash_command("/list", description="List chats, newest first.", hint="/list")
def _handle_list(store: SessionStore, _state: ReplState, _argument: str) -> bool:
    print_session_list(store.sessions, store.active_id, store.generating_session_id)
    return True


@register_slash_command("/select", description="Switch to a chat by number or id.", hint="/select <n|id>")
def _handle_select(store: SessionStore, _state: ReplState, argument: str) -> bool:
    session_id = resolve_session_ref(store, argument)
    if session_id is None or not store.select_session(session_id):
        print_error(f"[no such chat: {argument or '<missing>'}]")
        return True
    show_active_chat(store)
    return True


@register_slash_command("/delete", description="Delete a chat (default: the current one).", hint="/delete [n|id]")
def _handle_delete(store: SessionStore, _state: ReplState, argument: str) -> bool:
    session_id = resolve_session_ref(store, argument) if argument else store.active_id
    if session_id is None:
        print_error(f"[no such chat: {argument}]")
        return True
    store.delete_session(session_id)
    print_notice("[chat deleted]")
    return True


@register_slash_command("/stop", description="Stop the reply being generated.", hint="/stop")
def _handle_stop(store: SessionStore, _state: ReplState, _argument: str) -> bool:
    if not store.cancel_active():
        print_notice("[nothing to stop]")
    return True


@register_slash_command("/history", description="Show the current chat.", hint="/history")
def _handle_history(store: SessionStore, _state: ReplState, _argument: str) -> bool:
    session = store.active_session
    if session is not None:
        print_history(session)
    return True


@register_slash_command("/status", description="Show backend and storage settings.", hint="/status")
def _handle_status(store: SessionStore, state: ReplState, _argument: str) -> bool:
    print_banner(build_welcome_banner(state, store))
    return True


@register_slash_command("/try", description="Send one of the example prompts.", hint="/try <n>")
def _handle_try(store: SessionStore, state: ReplState, argument: str) -> bool:
    index = int(argument) - 1 if argument.isdigit() else -1
    if not 0 <= index < len(EXAMPLE_PROMPTS):
        print_error(f"[no such example: {argument or '<missing>'}]")
        return True
    start_reply(store, state, EXAMPLE_PROMPTS[index])
    return True


@register_slash_command("/exit", description="Exit the client.", hint="/exit")
@register_slash_command("/quit", description="Exit the client.", hint="/quit")
def _handle_exit(_store: SessionStore, _state: ReplState, _argument: str) -> bool:
    print_notice("[exiting]")
    raise SystemExit(0)


async def handle_slash_command(line: str, store: SessionStore, state: ReplState) -> bool:
    """Dispatch client-side slash commands, returning True if handled."""
    trimmed = line.strip()
    if not trimmed.startswith("/"):
        return False

    parts = trimmed.split(maxsplit=1)
    command = parts[0] if parts else ""
    argument = parts[1].strip() if len(parts) > 1 else ""

    entry = SLASH_HANDLERS.get(command)
    if entry is None:
        print_error(f"[unknown command: {command}; send /help]")
        return True

    try:
        result = entry.handler(store, state, argument)
        if asyncio.iscoroutine(result):
            return bool(await result)
        return bool(result)
    except SystemExit:
        raise
    except Exception as exc:  # noqa: BLE001
        logger.error("Slash command failed (%s): %s", command, exc)
        return True
