"""Welcome banner and bottom toolbar for the REPL."""

from __future__ import annotations

from pathlib import Path

from rich.panel import Panel
from rich.table import Table

from askme.chat.store import SessionStore
from askme.client.session_state import ReplState


def format_path(path: str | None) -> str:
    if not path:
        return "(not persisted)"
    resolved = Path(path).expanduser()
    try:
        return str(Path("~") / resolved.relative_to(Path.home()))
    except ValueError:
        return str(resolved)


def build_status_toolbar(store: SessionStore) -> list[tuple[str, str]]:
    active = store.active_session
    title = active.title if active else "none"
    status = "generating" if store.generating else "idle"

    gap = ("", "  ")
    parts: list[tuple[str, str]] = [
        ("class:toolbar.label", "Chat: "),
        ("class:toolbar.value", title),
        gap,
        ("class:toolbar.label", "Chats: "),
        ("class:toolbar.value", str(len(store))),
        gap,
        ("class:toolbar.label", "Status: "),
        ("class:toolbar.value", status),
        gap,
        ("class:toolbar.label", "Esc: "),
        ("class:toolbar.value", "stop"),
        gap,
        ("class:toolbar.label", "Ctrl-D: "),
        ("class:toolbar.value", "exit"),
    ]
    return parts


def build_welcome_banner(state: ReplState, store: SessionStore) -> Panel:
    """Backend, history file and chat count in a bordered box."""
    details = Table.grid(padding=(0, 2))
    details.add_column(style="bold")
    details.add_column()
    details.add_row("Backend", state.backend_url)
    details.add_row("History", format_path(state.state_file))
    details.add_row("Chats", str(len(store)))
    return Panel(
        details,
        title="✨ AskMe ✨",
        subtitle="/help for commands",
        border_style="cyan",
        expand=False,
    )
