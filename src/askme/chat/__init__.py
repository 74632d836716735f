"""Chat session management: sessions, streaming, cancellation and persistence."""

from askme.chat.cancellation import CancellationController, CancelToken
from askme.chat.models import Message, Session
from askme.chat.persistence import JsonFileStore, MemoryStore, PersistenceAdapter
from askme.chat.store import SessionStore, StoreEvent, StoreSnapshot
from askme.chat.stream import StreamFragment, StreamIngestor, StreamOutcome

__all__ = [
    "CancelToken",
    "CancellationController",
    "JsonFileStore",
    "MemoryStore",
    "Message",
    "PersistenceAdapter",
    "Session",
    "SessionStore",
    "StoreEvent",
    "StoreSnapshot",
    "StreamFragment",
    "StreamIngestor",
    "StreamOutcome",
]
