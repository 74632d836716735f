"""Rich console output that cooperates with prompt_toolkit's patched stdout."""

from __future__ import annotations

from io import StringIO
from threading import Lock
from typing import Any, Sequence

from prompt_toolkit.formatted_text import ANSI  # type: ignore
from prompt_toolkit.shortcuts import print_formatted_text  # type: ignore
from rich.console import Console
from rich.table import Table
from rich.text import Text

from askme.chat.models import Session

_render_buffer = StringIO()
_render_console = Console(
    file=_render_buffer,
    force_terminal=True,
    color_system="standard",
    markup=False,
    highlight=False,
)
_render_lock = Lock()

ROLE_STYLES = {"user": "bold cyan", "assistant": "bold green"}


def _render_and_print(*args: Any, **kwargs: Any) -> bool:
    """Render with rich into a buffer, then print through prompt_toolkit.

    Returns True when the printed output ended with a newline.
    """
    kwargs.setdefault("end", "\n")
    with _render_lock:
        _render_buffer.seek(0)
        _render_buffer.truncate(0)
        _render_console.print(*args, **kwargs)
        output = _render_buffer.getvalue()
    if output:
        print_formatted_text(ANSI(output), end="")
        return output.endswith("\n")
    return False


def print_reply_text(text: str) -> None:
    _render_and_print(Text(text), end="")


def print_reply_header() -> None:
    _render_and_print(Text("assistant> ", style=ROLE_STYLES["assistant"]), end="")


def print_notice(text: str, *, style: str = "yellow") -> None:
    _render_and_print(Text(text, style=style))


def print_error(text: str) -> None:
    print_notice(text, style="red")


def print_session_list(sessions: Sequence[Session], active_id: str | None, generating_id: str | None) -> None:
    table = Table(show_header=True, box=None, header_style="bold")
    table.add_column("#", justify="right", style="cyan")
    table.add_column("", width=1)
    table.add_column("Title")
    table.add_column("Msgs", justify="right")
    table.add_column("Id", style="dim")
    for idx, session in enumerate(sessions, start=1):
        marker = "*" if session.id == active_id else ""
        title = Text(session.title)
        if session.id == generating_id:
            title.append(" (generating)", style="yellow")
        table.add_row(str(idx), marker, title, str(len(session.messages)), session.id[:8])
    _render_and_print(table)


def print_history(session: Session) -> None:
    _render_and_print(Text(session.title, style="bold underline"))
    for message in session.messages:
        line = Text(f"{message.role}> ", style=ROLE_STYLES.get(message.role, "bold"))
        line.append(message.content)
        if message.in_progress:
            line.append(" …", style="dim")
        _render_and_print(line)


def print_example_prompts(prompts: Sequence[str]) -> None:
    _render_and_print(Text("Not sure where to start? Send /try <n>:", style="dim"))
    for idx, prompt in enumerate(prompts, start=1):
        line = Text(f"  {idx}. ", style="cyan")
        line.append(prompt)
        _render_and_print(line)


def print_banner(renderable: Any) -> None:
    _render_and_print(renderable)
