"""Failure taxonomy for a generation.

The stream ingestor raises these internally and reports them to callers as a
terminal `StreamOutcome`; they do not propagate out of a generation.
"""

from __future__ import annotations


class ChatError(RuntimeError):
    """Base class for generation failures."""

    reason: str = "error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.reason)


class UserAbort(ChatError):
    """The user cancelled the generation. Not a failure."""

    reason = "aborted"


class TransportFailure(ChatError):
    """Connect failure, reset or timeout before the body finished."""

    def __init__(self, code: str, message: str | None = None) -> None:
        self.reason = code
        super().__init__(message or code)


class ServerFailure(ChatError):
    """The completion service answered with a non-success status."""

    def __init__(self, status: int) -> None:
        self.status = status
        self.reason = f"HTTP {status}"
        super().__init__(self.reason)


class DecodeFailure(ChatError):
    """The response body is missing or is not valid UTF-8."""

    def __init__(self, reason: str = "decode error") -> None:
        self.reason = reason
        super().__init__(reason)
