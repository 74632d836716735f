from __future__ import annotations

import asyncio
from typing import AsyncIterator, Callable, Iterable, Mapping, Sequence

import httpx

from askme.chat.cancellation import CancelToken
from askme.chat.stream import StreamFragment, StreamItem, StreamOutcome


class ScriptedStreamer:
    """Plays back a fixed list of fragments, then an outcome."""

    def __init__(self, fragments: Iterable[str] = (), outcome: StreamOutcome | None = None) -> None:
        self.fragments = list(fragments)
        self.outcome = outcome or StreamOutcome("completed")
        self.calls: list[list[dict[str, str]]] = []

    async def stream(self, messages: Sequence[Mapping[str, str]], token: CancelToken) -> AsyncIterator[StreamItem]:
        self.calls.append([dict(m) for m in messages])
        for text in self.fragments:
            if token.cancelled:
                yield StreamOutcome("aborted")
                return
            yield StreamFragment(text)
            await asyncio.sleep(0)
        yield StreamOutcome("aborted") if token.cancelled else self.outcome


class QueueStreamer:
    """Yields whatever the test pushes, one item per `push`.

    Deliberately ignores the token so tests can check that the store drops
    fragments that arrive after a cancellation.
    """

    def __init__(self) -> None:
        self.queue: asyncio.Queue[StreamItem] = asyncio.Queue()
        self.started = asyncio.Event()
        self.calls: list[list[dict[str, str]]] = []
        self.closed = False

    def push(self, item: str | StreamItem) -> None:
        self.queue.put_nowait(StreamFragment(item) if isinstance(item, str) else item)

    async def stream(self, messages: Sequence[Mapping[str, str]], token: CancelToken) -> AsyncIterator[StreamItem]:
        self.calls.append([dict(m) for m in messages])
        self.started.set()
        try:
            while True:
                item = await self.queue.get()
                yield item
                if isinstance(item, StreamOutcome):
                    return
        finally:
            self.closed = True


class ExplodingStreamer:
    def __init__(self, after: Iterable[str] = ()) -> None:
        self.after = list(after)

    async def stream(self, messages: Sequence[Mapping[str, str]], token: CancelToken) -> AsyncIterator[StreamItem]:
        for text in self.after:
            yield StreamFragment(text)
        raise RuntimeError("backend adapter bug")


async def until(predicate: Callable[[], bool], attempts: int = 200) -> None:
    """Yield to the loop until `predicate` holds."""
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


async def byte_chunks(chunks: Iterable[bytes], hang: asyncio.Event | None = None) -> AsyncIterator[bytes]:
    for chunk in chunks:
        yield chunk
    if hang is not None:
        await hang.wait()


def mock_client(handler: Callable[[httpx.Request], object]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))  # type: ignore[arg-type]
