"""Closable single-consumer async streams.

A ``SignalStream`` is an unbounded queue that can be closed. Once closed and
drained, ``receive()`` raises ``StreamClosed`` on every call.
"""

from __future__ import annotations

import asyncio
from typing import Generic, TypeVar

T = TypeVar("T")

_CLOSED = object()


class StreamClosed(Exception):
    """The stream was closed and every value has been received."""


class SignalStream(Generic[T]):
    def __init__(self, name: str = "stream") -> None:
        self.name = name
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> bool:
        """True if ``receive()`` would return without waiting."""
        return not self._queue.empty()

    def send(self, value: T) -> None:
        if self._closed:
            raise RuntimeError(f"{self.name} is closed")
        self._queue.put_nowait(value)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    async def receive(self) -> T:
        value = await self._queue.get()
        if value is _CLOSED:
            # keep the marker so later receives also see the closure
            self._queue.put_nowait(_CLOSED)
            raise StreamClosed(self.name)
        return value  # type: ignore[return-value]


class ErrorStream(SignalStream[BaseException]):
    """Carries at most one error, then closes."""

    def __init__(self, name: str = "errors") -> None:
        super().__init__(name)

    def fail(self, error: BaseException) -> None:
        if self.closed:
            return
        self.send(error)
        self.close()


__all__ = ["ErrorStream", "SignalStream", "StreamClosed"]
