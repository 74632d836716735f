"""Streaming client for the completion service's `/api/chat` endpoint.

One call to `StreamIngestor.stream` is one generation: a POST carrying the whole
conversation, then the response body decoded incrementally into text
fragments. The iterator always ends with exactly one `StreamOutcome`.
"""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Literal, Mapping, Protocol, Sequence, TypeVar

import httpx

from askme.chat.cancellation import CancelToken
from askme.chat.errors import ChatError, DecodeFailure, ServerFailure, TransportFailure, UserAbort
from askme.config import ClientConfig
from askme.log_utils import log_chunks_enabled, log_event

logger = logging.getLogger(__name__)

StreamStatus = Literal["completed", "aborted", "failed"]

_T = TypeVar("_T")

# Success statuses that never carry a body.
_BODYLESS_STATUSES = {204, 205}


@dataclass(frozen=True)
class StreamFragment:
    """Decoded text from one chunk; may be empty when a chunk ends mid-character."""

    text: str


@dataclass(frozen=True)
class StreamOutcome:
    status: StreamStatus
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "completed"


StreamItem = StreamFragment | StreamOutcome


class ChatStreamer(Protocol):
    """Anything that can run one generation for a message history."""

    def stream(self, messages: Sequence[Mapping[str, str]], token: CancelToken) -> AsyncIterator[StreamItem]: ...


class StreamIngestor:
    def __init__(
        self,
        chat_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: httpx.Timeout | float | None = None,
    ) -> None:
        self.chat_url = chat_url
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout if timeout is not None else 60.0)

    @classmethod
    def from_config(cls, config: ClientConfig, *, client: httpx.AsyncClient | None = None) -> "StreamIngestor":
        timeout = httpx.Timeout(config.request_timeout, connect=config.connect_timeout)
        return cls(config.chat_url, client=client, timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "StreamIngestor":
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    async def stream(self, messages: Sequence[Mapping[str, str]], token: CancelToken) -> AsyncIterator[StreamItem]:
        """Yield fragments for one generation, then its outcome."""
        if token.cancelled:
            yield StreamOutcome("aborted")
            return
        try:
            async with contextlib.aclosing(self._fragments(messages, token)) as fragments:
                async for fragment in fragments:
                    yield fragment
        except UserAbort:
            log_event(logger, "stream.aborted", level=logging.DEBUG)
            yield StreamOutcome("aborted")
        except ChatError as exc:
            log_event(logger, "stream.failed", level=logging.WARNING, reason=exc.reason, error=str(exc))
            yield StreamOutcome("failed", exc.reason)
        else:
            yield StreamOutcome("completed")

    async def _fragments(self, messages: Sequence[Mapping[str, str]], token: CancelToken) -> AsyncIterator[StreamFragment]:
        payload = {"messages": [{"role": m["role"], "content": m["content"]} for m in messages]}
        log_event(logger, "stream.request", url=self.chat_url, messages=len(payload["messages"]))
        decoder = codecs.getincrementaldecoder("utf-8")()
        try:
            request = self._client.build_request(
                "POST",
                self.chat_url,
                json=payload,
                headers={"Content-Type": "application/json"},
            )
            response = await _until_cancelled(self._client.send(request, stream=True), token)
            try:
                if not response.is_success:
                    raise ServerFailure(response.status_code)
                if response.status_code in _BODYLESS_STATUSES:
                    raise DecodeFailure("empty body")
                chunks = response.aiter_bytes()
                while True:
                    chunk = await _until_cancelled(_next_chunk(chunks), token)
                    if chunk is None:
                        break
                    text = _decode(decoder, chunk)
                    if log_chunks_enabled():
                        log_event(logger, "stream.chunk", level=logging.DEBUG, size=len(chunk), text=text)
                    yield StreamFragment(text)
                tail = _decode(decoder, b"", final=True)
                if tail:
                    yield StreamFragment(tail)
            finally:
                await response.aclose()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise TransportFailure(_transport_code(exc), str(exc) or type(exc).__name__) from exc


async def _next_chunk(chunks: AsyncIterator[bytes]) -> bytes | None:
    return await anext(chunks, None)


async def _until_cancelled(awaitable: Awaitable[_T], token: CancelToken) -> _T:
    """Await `awaitable` unless `token` is signalled first.

    A result that lands after the token was signalled is thrown away, so a
    read racing an abort never surfaces as a fragment.
    """
    task: asyncio.Future[_T] = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(token.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except BaseException:
        if task.done():
            await _discard(task)
        else:
            task.cancel()
        raise
    finally:
        waiter.cancel()

    if not token.cancelled:
        return task.result()

    if task.done():
        await _discard(task)
    else:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError, Exception):
            await task
    raise UserAbort()


async def _discard(task: asyncio.Future[Any]) -> None:
    if task.cancelled() or task.exception() is not None:
        return
    closer = getattr(task.result(), "aclose", None)
    if callable(closer):
        with contextlib.suppress(Exception):
            await closer()


def _decode(decoder: codecs.IncrementalDecoder, chunk: bytes, final: bool = False) -> str:
    try:
        return decoder.decode(chunk, final)
    except UnicodeDecodeError as exc:
        raise DecodeFailure() from exc


def _transport_code(exc: Exception) -> str:
    if isinstance(exc, (httpx.ConnectError, httpx.ConnectTimeout)):
        return "connect failed"
    if isinstance(exc, httpx.TimeoutException):
        return "timeout"
    if isinstance(exc, (httpx.RemoteProtocolError, httpx.ReadError)):
        return "stream reset"
    return type(exc).__name__
