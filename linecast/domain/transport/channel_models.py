"""Transport channel models.

A transport channel reports its lifecycle as tagged events on a per-channel
queue instead of through registered callbacks. Consumers drive an explicit
loop over ``next_event()``:

    event = await channel.next_event()
    match event:
        case Opened(): ...
        case MessageReceived(payload=text): ...
        case Closed(error=err): ...

Concrete channels live in ``linecast.services.integrations.rtc_transport``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from linecast.schemas import DescriptionType, SessionDescription


@dataclass(frozen=True)
class Opened:
    """The channel is open and ready to send."""


@dataclass(frozen=True)
class MessageReceived:
    payload: str


@dataclass(frozen=True)
class Closed:
    """The channel closed. ``error`` is set when it closed because of a failure."""

    reason: str = "closed"
    error: Exception | None = None


ChannelEvent = Opened | MessageReceived | Closed


class ChannelEvents:
    """Single-consumer event queue that delivers at most one ``Closed``."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[ChannelEvent] = asyncio.Queue()
        self._opened = False
        self._closed = False

    @property
    def opened(self) -> bool:
        return self._opened

    @property
    def closed(self) -> bool:
        return self._closed

    def put(self, event: ChannelEvent) -> bool:
        """Enqueue an event. Returns False if it was dropped after close."""
        if self._closed:
            return False
        if isinstance(event, Opened):
            if self._opened:
                return False
            self._opened = True
        elif isinstance(event, Closed):
            self._closed = True
        self._queue.put_nowait(event)
        return True

    async def get(self) -> ChannelEvent:
        return await self._queue.get()


@runtime_checkable
class TransportChannel(Protocol):
    """Ordered, reliable duplex text channel."""

    @property
    def label(self) -> str: ...

    @property
    def is_open(self) -> bool: ...

    async def next_event(self) -> ChannelEvent: ...

    def send_text(self, text: str) -> None:
        """Send one message.

        Raises:
            TransportError: If the channel is not open or the send fails
        """
        ...

    async def flush(self, timeout: float) -> None: ...

    async def close(self) -> None: ...


@runtime_checkable
class PeerTransport(Protocol):
    """One peer connection able to negotiate and carry data channels."""

    @property
    def connection_state(self) -> str: ...

    @property
    def local_description(self) -> SessionDescription | None: ...

    async def set_local_description(self, role: DescriptionType) -> SessionDescription:
        """Create the local offer or answer and wait until gathering completes."""
        ...

    async def set_remote_description(self, description: SessionDescription) -> None: ...

    def create_channel(self, label: str) -> TransportChannel: ...

    async def accept_channel(self) -> TransportChannel:
        """Wait for the first channel created by the remote peer."""
        ...

    async def wait_closed(self, timeout: float | None = None) -> bool:
        """Wait for the connection to close or fail. False on timeout, None waits forever."""
        ...

    async def close(self) -> None: ...


__all__ = [
    "ChannelEvent",
    "ChannelEvents",
    "Closed",
    "MessageReceived",
    "Opened",
    "PeerTransport",
    "TransportChannel",
]
