from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from askme.chat.cancellation import CancelToken
from askme.chat.models import ERROR_NOTICE, GREETING
from askme.chat.persistence import MemoryStore
from askme.chat.store import SessionStore
from askme.chat.stream import StreamFragment, StreamIngestor, StreamOutcome, _until_cancelled
from askme.config import ClientConfig
from tests.utils import byte_chunks, mock_client

CHAT_URL = "http://backend.test/api/chat"
HISTORY = [{"role": "assistant", "content": GREETING}, {"role": "user", "content": "Hello"}]


async def _collect(ingestor: StreamIngestor, token: CancelToken | None = None) -> tuple[list[str], StreamOutcome]:
    fragments: list[str] = []
    outcome: StreamOutcome | None = None
    async for item in ingestor.stream(HISTORY, token or CancelToken()):
        assert outcome is None, "nothing may follow the outcome"
        if isinstance(item, StreamFragment):
            fragments.append(item.text)
        else:
            outcome = item
    assert outcome is not None
    return fragments, outcome


def _split(data: bytes, size: int) -> list[bytes]:
    return [data[i : i + size] for i in range(0, len(data), size)]


@pytest.mark.asyncio
@pytest.mark.parametrize("chunk_size", [1, 2, 3, 5, 64])
async def test_fragments_reassemble_split_multibyte_characters(chunk_size: int) -> None:
    text = "Grüße, 世界! 🙂 done"
    body = text.encode("utf-8")

    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=byte_chunks(_split(body, chunk_size)))

    ingestor = StreamIngestor(CHAT_URL, client=mock_client(handler))
    fragments, outcome = await _collect(ingestor)

    assert outcome == StreamOutcome("completed")
    assert "".join(fragments) == text
    assert all("�" not in fragment for fragment in fragments)


@pytest.mark.asyncio
async def test_chunk_ending_mid_character_yields_empty_fragment() -> None:
    euro = "€".encode("utf-8")

    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=byte_chunks([euro[:1], euro[1:]]))

    fragments, outcome = await _collect(StreamIngestor(CHAT_URL, client=mock_client(handler)))

    assert fragments == ["", "€"]
    assert outcome.ok


@pytest.mark.asyncio
async def test_request_carries_full_history_as_json() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=b"ok")

    await _collect(StreamIngestor(CHAT_URL, client=mock_client(handler)))

    assert len(seen) == 1
    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == CHAT_URL
    assert request.headers["content-type"] == "application/json"
    assert json.loads(request.content) == {"messages": HISTORY}


@pytest.mark.asyncio
async def test_server_error_status_fails_without_fragments() -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, content=b"internal error text")

    fragments, outcome = await _collect(StreamIngestor(CHAT_URL, client=mock_client(handler)))

    assert fragments == []
    assert outcome == StreamOutcome("failed", "HTTP 500")


@pytest.mark.asyncio
async def test_connect_error_is_transport_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    fragments, outcome = await _collect(StreamIngestor(CHAT_URL, client=mock_client(handler)))

    assert fragments == []
    assert outcome == StreamOutcome("failed", "connect failed")


@pytest.mark.asyncio
async def test_stream_reset_keeps_earlier_fragments() -> None:
    async def body():
        yield b"Hi"
        raise httpx.ReadError("connection reset")

    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=body())

    fragments, outcome = await _collect(StreamIngestor(CHAT_URL, client=mock_client(handler)))

    assert fragments == ["Hi"]
    assert outcome == StreamOutcome("failed", "stream reset")


@pytest.mark.asyncio
async def test_invalid_utf8_is_decode_failure() -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=byte_chunks([b"ok ", b"\xff\xfe"]))

    fragments, outcome = await _collect(StreamIngestor(CHAT_URL, client=mock_client(handler)))

    assert fragments == ["ok "]
    assert outcome == StreamOutcome("failed", "decode error")


@pytest.mark.asyncio
async def test_truncated_character_at_end_is_decode_failure() -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=byte_chunks([b"abc", "€".encode("utf-8")[:2]]))

    fragments, outcome = await _collect(StreamIngestor(CHAT_URL, client=mock_client(handler)))

    assert "".join(fragments) == "abc"
    assert outcome == StreamOutcome("failed", "decode error")


@pytest.mark.asyncio
async def test_success_without_body_is_failure() -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(204)

    fragments, outcome = await _collect(StreamIngestor(CHAT_URL, client=mock_client(handler)))

    assert fragments == []
    assert outcome == StreamOutcome("failed", "empty body")


@pytest.mark.asyncio
async def test_cancelled_token_skips_request() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, content=b"never")

    token = CancelToken()
    token.cancel()
    fragments, outcome = await _collect(StreamIngestor(CHAT_URL, client=mock_client(handler)), token)

    assert calls == []
    assert fragments == []
    assert outcome == StreamOutcome("aborted")


@pytest.mark.asyncio
async def test_cancel_interrupts_a_hung_read() -> None:
    hang = asyncio.Event()

    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=byte_chunks([b"Hi"], hang=hang))

    ingestor = StreamIngestor(CHAT_URL, client=mock_client(handler))
    token = CancelToken()
    items = ingestor.stream(HISTORY, token)

    first = await anext(items)
    assert first == StreamFragment("Hi")
    token.cancel()
    second = await asyncio.wait_for(anext(items), timeout=2)
    assert second == StreamOutcome("aborted")
    with pytest.raises(StopAsyncIteration):
        await anext(items)


@pytest.mark.asyncio
async def test_chunk_arriving_after_cancel_is_discarded() -> None:
    token = CancelToken()

    async def body():
        yield b"Hi"
        token.cancel()
        yield b" there"

    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=body())

    fragments, outcome = await _collect(StreamIngestor(CHAT_URL, client=mock_client(handler)), token)

    assert fragments == ["Hi"]
    assert outcome == StreamOutcome("aborted")


@pytest.mark.asyncio
async def test_response_ready_when_task_is_cancelled_gets_closed() -> None:
    class _Response:
        closed = False

        async def aclose(self) -> None:
            self.closed = True

    response = _Response()
    sent: asyncio.Future[_Response] = asyncio.get_running_loop().create_future()
    waiting = asyncio.create_task(_until_cancelled(sent, CancelToken()))
    await asyncio.sleep(0)

    sent.set_result(response)
    waiting.cancel()

    with pytest.raises(asyncio.CancelledError):
        await waiting
    assert response.closed is True


@pytest.mark.asyncio
async def test_from_config_targets_chat_endpoint() -> None:
    config = ClientConfig(backend_url="http://example.invalid:9000", request_timeout=5.0, connect_timeout=1.0)
    async with StreamIngestor.from_config(config) as ingestor:
        assert ingestor.chat_url == "http://example.invalid:9000/api/chat"


@pytest.mark.asyncio
async def test_store_end_to_end_with_http_backend() -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=byte_chunks([b"Hi", b" there", b"!"]))

    async with StreamIngestor(CHAT_URL, client=mock_client(handler)) as ingestor:
        store = SessionStore.open(MemoryStore(), ingestor)
        outcome = await store.send_to_active("Hello")

    session = store.active_session
    assert outcome == StreamOutcome("completed")
    assert session is not None
    assert [(m.role, m.content) for m in session.messages] == [
        ("assistant", GREETING),
        ("user", "Hello"),
        ("assistant", "Hi there!"),
    ]
    assert session.title == "Hello"


@pytest.mark.asyncio
async def test_store_end_to_end_server_error() -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    async with StreamIngestor(CHAT_URL, client=mock_client(handler)) as ingestor:
        store = SessionStore.open(MemoryStore(), ingestor)
        await store.send_to_active("Hello")

    session = store.active_session
    assert session is not None
    assert session.last_message.content == ERROR_NOTICE
    assert store.generating is False
