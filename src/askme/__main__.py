"""Module entrypoint for `python -m askme`."""

from __future__ import annotations

from askme.cli import run


if __name__ == "__main__":
    run()
