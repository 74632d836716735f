from __future__ import annotations

from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def _isolate_home(tmp_path_factory, monkeypatch):
    """Force tests to use a temporary HOME/XDG dirs and a clean ASKME_* environment."""
    base = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(base))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(base / ".config"))
    monkeypatch.setenv("XDG_STATE_HOME", str(base / ".local" / "state"))
    monkeypatch.setenv("XDG_DATA_HOME", str(base / ".local" / "share"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(base / ".cache"))
    monkeypatch.setattr(Path, "home", lambda: base)
    for name in (
        "ASKME_BACKEND_URL",
        "ASKME_REQUEST_TIMEOUT",
        "ASKME_CONNECT_TIMEOUT",
        "ASKME_STATE_FILE",
        "ASKME_LOG_DIR",
        "ASKME_LOG_LEVEL",
        "ASKME_LOG_CHUNKS",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def printed(monkeypatch):
    """Capture client output instead of writing through prompt_toolkit."""
    from askme.client import repl, replies, slash

    lines: list[tuple[str, str]] = []

    def _recorder(kind: str):
        def _record(*args, **_kwargs):
            lines.append((kind, " ".join(str(a) for a in args)))

        return _record

    names = (
        "print_notice",
        "print_error",
        "print_history",
        "print_session_list",
        "print_reply_text",
        "print_reply_header",
        "print_example_prompts",
        "print_banner",
    )
    for module in (slash, repl, replies):
        for name in names:
            if hasattr(module, name):
                monkeypatch.setattr(module, name, _recorder(name))
    return lines
