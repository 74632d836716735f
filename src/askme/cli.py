"""Command-line entry point: wire config, logging, storage and the REPL."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from askme import __version__
from askme.chat.persistence import JsonFileStore, MemoryStore, PersistenceAdapter
from askme.chat.store import SessionStore
from askme.chat.stream import StreamIngestor
from askme.client.repl import interactive_loop
from askme.client.session_state import ReplState
from askme.config import ClientConfig, load_config
from askme.log_utils import build_log_config, configure_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="askme", description="Chat with a streaming completion backend.")
    parser.add_argument("--backend-url", help="Base URL of the completion service (env: ASKME_BACKEND_URL).")
    parser.add_argument("--state-file", help="Where chats are stored (env: ASKME_STATE_FILE).")
    parser.add_argument("--no-persist", action="store_true", help="Keep chats in memory only.")
    parser.add_argument("--log-level", help="Log level for the log file (env: ASKME_LOG_LEVEL).")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def build_persistence(config: ClientConfig) -> PersistenceAdapter:
    if not config.persist or config.state_file is None:
        return MemoryStore()
    return JsonFileStore(config.state_file)


async def run_client(config: ClientConfig) -> int:
    persistence = build_persistence(config)
    state = ReplState(
        backend_url=config.backend_url,
        state_file=str(config.state_file) if config.persist and config.state_file else None,
    )
    async with StreamIngestor.from_config(config) as ingestor:
        store = SessionStore.open(persistence, ingestor)
        logger.info("Client started backend=%s sessions=%d", config.backend_url, len(store))
        try:
            await interactive_loop(store, state)
        except KeyboardInterrupt:
            return 130
    return 0


async def main(argv: list[str]) -> int:
    args = build_parser().parse_args(argv[1:])
    configure_logging(build_log_config(level=args.log_level))
    config = load_config().with_overrides(
        backend_url=args.backend_url,
        state_file=args.state_file,
        persist=False if args.no_persist else None,
    )
    return await run_client(config)


def run() -> None:
    """Console script entry point."""
    try:
        raise SystemExit(asyncio.run(main(sys.argv)))
    except KeyboardInterrupt:
        raise SystemExit(130)
