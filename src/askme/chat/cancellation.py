"""Single-slot cancellation for the in-flight generation."""

from __future__ import annotations

import asyncio
import itertools
import logging

logger = logging.getLogger(__name__)

_token_ids = itertools.count(1)


class CancelToken:
    """One generation's right to keep running.

    Wraps an `asyncio.Event`; once set it stays set.
    """

    __slots__ = ("id", "_event")

    def __init__(self) -> None:
        self.id = next(_token_ids)
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "live"
        return f"<CancelToken {self.id} {state}>"


class CancellationController:
    """Holds at most one live token."""

    def __init__(self) -> None:
        self._current: CancelToken | None = None

    @property
    def current(self) -> CancelToken | None:
        return self._current

    @property
    def active(self) -> bool:
        return self._current is not None and not self._current.cancelled

    def begin(self) -> CancelToken:
        """Signal any previously live token, then mint a new one."""
        previous = self._current
        if previous is not None and not previous.cancelled:
            logger.debug("Superseding live token %s", previous.id)
            previous.cancel()
        self._current = CancelToken()
        return self._current

    def signal(self, token: CancelToken) -> None:
        token.cancel()

    def is_cancelled(self, token: CancelToken) -> bool:
        return token.cancelled

    def cancel_active(self) -> bool:
        """Signal the live token; returns False when nothing is running."""
        if not self.active:
            return False
        assert self._current is not None
        self._current.cancel()
        return True

    def release(self, token: CancelToken) -> None:
        """Forget `token` once its generation has finished."""
        if self._current is token:
            self._current = None
