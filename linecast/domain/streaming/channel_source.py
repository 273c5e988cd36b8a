"""Adapts a transport channel's event queue into line and error streams."""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING

from loguru import logger

from linecast.domain.streaming.signal_stream import ErrorStream, SignalStream
from linecast.domain.transport.channel_models import (
    Closed,
    MessageReceived,
    Opened,
    TransportChannel,
)

if TYPE_CHECKING:
    from loguru import Logger


class ChannelLineSource:
    """Line source fed by one channel.

    ``MessageReceived`` becomes a line, a clean ``Closed`` closes the line
    stream, and a ``Closed`` carrying an error is delivered on the error
    stream.
    """

    def __init__(self, channel: TransportChannel, log: Logger = logger) -> None:
        self._channel = channel
        self._log = log.bind(component="source", channel=channel.label)
        self._lines: SignalStream[str] = SignalStream("lines")
        self._errors = ErrorStream()
        self._pump_task: asyncio.Task[None] | None = None

    def receive_lines(self) -> tuple[SignalStream[str], SignalStream[BaseException]]:
        if self._pump_task is None:
            self._pump_task = asyncio.create_task(self._pump(), name=f"pump-{self._channel.label}")
        return self._lines, self._errors

    async def _pump(self) -> None:
        try:
            while True:
                event = await self._channel.next_event()
                if isinstance(event, Opened):
                    self._log.debug("Channel opened")
                elif isinstance(event, MessageReceived):
                    self._lines.send(event.payload)
                elif isinstance(event, Closed):
                    if event.error is not None:
                        self._errors.fail(event.error)
                    else:
                        self._lines.close()
                        self._errors.close()
                    self._log.debug("Channel event stream ended: {}", event.reason)
                    return
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._log.error("Channel event pump failed: {}", exc)
            self._errors.fail(exc)

    async def aclose(self) -> None:
        if self._pump_task is not None and not self._pump_task.done():
            self._pump_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._pump_task
