"""UI-only state for the terminal client (never persisted)."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field


@dataclass
class ReplState:
    backend_url: str
    state_file: str | None = None
    show_banner_on_start: bool = True
    # Session whose reply is currently being echoed to the terminal.
    streaming_session_id: str | None = None
    mid_line: bool = False
    pending: set[asyncio.Task] = field(default_factory=set)
