"""Session and message types held by the session store."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Literal

ChatRole = Literal["user", "assistant"]

GREETING = "Hello! I'm your advanced AI assistant. How can I assist you today?"
PLACEHOLDER_TITLE = "New Conversation"
ERROR_NOTICE = "An error occurred. Please try again."
TITLE_MAX_CHARS = 40

# Offered while a chat holds nothing but the greeting.
EXAMPLE_PROMPTS = (
    "Write a python script to sort a list",
    "Explain quantum computing in simple terms",
    "What are the main differences between React and Vue?",
)


def new_session_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Message:
    role: ChatRole
    content: str
    # Set while a generation is still appending to this message; never persisted.
    in_progress: bool = False

    def to_wire(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class Session:
    id: str = field(default_factory=new_session_id)
    title: str = PLACEHOLDER_TITLE
    messages: list[Message] = field(default_factory=list)

    @classmethod
    def fresh(cls) -> "Session":
        """A new session seeded with the assistant greeting."""
        return cls(messages=[Message(role="assistant", content=GREETING)])

    @property
    def has_user_message(self) -> bool:
        return any(message.role == "user" for message in self.messages)

    @property
    def is_fresh(self) -> bool:
        return len(self.messages) == 1 and not self.has_user_message

    @property
    def last_message(self) -> Message:
        return self.messages[-1]

    def history(self) -> list[dict[str, str]]:
        """Finalized messages in request order."""
        return [message.to_wire() for message in self.messages if not message.in_progress]

    def copy(self) -> "Session":
        return Session(
            id=self.id,
            title=self.title,
            messages=[Message(m.role, m.content, m.in_progress) for m in self.messages],
        )


def derive_title(text: str) -> str:
    return text[:TITLE_MAX_CHARS]
