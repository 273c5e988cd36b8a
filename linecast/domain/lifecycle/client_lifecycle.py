"""Client process lifecycle.

The client owns exactly one session:

    IDLE --answer applied--> SIGNALING_UP --channel accepted--> STREAMING
                                                                   |
    CLOSED <----------- DRAINING <--- channel closed / shutdown ---+

A shutdown request closes the transport, which closes the line source and
lets the processor finish with whatever was received.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Protocol, TypeVar

from loguru import logger

from linecast.app_config import DEFAULT_INIT_CHANNEL
from linecast.domain.lifecycle.lifecycle_state_machine import LifecycleStateMachine
from linecast.domain.signaling.exchange import DEFAULT_GATHERING_TIMEOUT, SignalingExchange
from linecast.domain.streaming.channel_source import ChannelLineSource
from linecast.domain.streaming.line_processor import LineProcessor, TransferStats
from linecast.domain.transport.channel_models import PeerTransport, TransportChannel
from linecast.schemas import DescriptionType, LifecycleState, SessionDescription
from linecast.utils.app_errors import LifecycleError, TransportError

if TYPE_CHECKING:
    from loguru import Logger

T = TypeVar("T")


class OfferPoster(Protocol):
    async def post_offer(self, offer: SessionDescription) -> SessionDescription: ...


class _ShutdownRequested(Exception):
    pass


class ClientLifecycle:
    def __init__(
        self,
        *,
        transport: PeerTransport,
        signaling: OfferPoster,
        output: str,
        gathering_timeout: float = DEFAULT_GATHERING_TIMEOUT,
        processor: LineProcessor | None = None,
        on_ready: Callable[[], None] | None = None,
        log: Logger = logger,
    ) -> None:
        self._transport = transport
        self._signaling = signaling
        self._output = output
        self._gathering_timeout = gathering_timeout
        self._processor = processor or LineProcessor(log=log)
        self._on_ready = on_ready
        self._base_log = log
        self._log = log.bind(component="lifecycle")

        self._state = LifecycleState.IDLE
        self._shutdown = asyncio.Event()

    @property
    def state(self) -> LifecycleState:
        return self._state

    def transition(self, new_state: LifecycleState) -> None:
        if not LifecycleStateMachine.can_transition(self._state, new_state):
            raise LifecycleError(f"Invalid lifecycle transition: {self._state} -> {new_state}")
        self._log.info("Lifecycle {} -> {}", self._state, new_state)
        self._state = new_state

    def request_shutdown(self) -> bool:
        """Ask ``run()`` to stop. Returns False if already requested."""
        if self._shutdown.is_set():
            return False
        self._log.info("Shutting down client...")
        self._shutdown.set()
        return True

    async def _until_shutdown(self, aw: Awaitable[T]) -> T:
        """Await ``aw`` unless shutdown is requested first, in which case it is cancelled."""
        task = asyncio.ensure_future(aw)
        stopper = asyncio.ensure_future(self._shutdown.wait())
        try:
            done, _ = await asyncio.wait({task, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stopper.cancel()

        if task in done:
            return task.result()

        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        raise _ShutdownRequested()

    async def _negotiate(self) -> None:
        # the offer needs at least one channel to carry an SCTP section
        self._transport.create_channel(DEFAULT_INIT_CHANNEL)

        exchange = SignalingExchange(
            self._transport,
            gathering_timeout=self._gathering_timeout,
            log=self._base_log,
        )
        offer = await exchange.create_local_description(DescriptionType.OFFER)
        answer = await self._signaling.post_offer(offer)
        await exchange.apply_remote_description(answer)

    async def _accept_channel(self) -> TransportChannel:
        accept = asyncio.ensure_future(self._transport.accept_channel())
        lost = asyncio.ensure_future(self._transport.wait_closed())
        try:
            done, _ = await asyncio.wait({accept, lost}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (accept, lost):
                if not task.done():
                    task.cancel()

        if accept in done:
            return accept.result()
        raise TransportError("connection closed before the data channel arrived")

    async def _receive(self, channel: TransportChannel) -> TransferStats:
        source = ChannelLineSource(channel, log=self._base_log)
        processing = asyncio.ensure_future(self._processor.process(source, self._output))
        stopper = asyncio.ensure_future(self._shutdown.wait())
        try:
            done, _ = await asyncio.wait(
                {processing, stopper}, return_when=asyncio.FIRST_COMPLETED
            )
            if processing not in done:
                self.transition(LifecycleState.DRAINING)
                await self._transport.close()
            return await processing
        finally:
            stopper.cancel()
            await source.aclose()

    async def run(self) -> TransferStats:
        """Negotiate, receive the stream into the output, and shut down.

        Returns:
            TransferStats of the received stream; zero lines when shutdown was
            requested before the stream started

        Raises:
            NegotiationError: If the offer/answer exchange fails
            TransportError: If the connection closes before a channel arrives
        """
        start = time.monotonic()
        try:
            try:
                await self._until_shutdown(self._negotiate())
            except _ShutdownRequested:
                return TransferStats(line_count=0, elapsed=time.monotonic() - start)

            self.transition(LifecycleState.SIGNALING_UP)
            if self._on_ready is not None:
                self._on_ready()

            try:
                channel = await self._until_shutdown(self._accept_channel())
            except _ShutdownRequested:
                return TransferStats(line_count=0, elapsed=time.monotonic() - start)

            self._log.info("New data channel: {}", channel.label)
            self.transition(LifecycleState.STREAMING)
            return await self._receive(channel)
        finally:
            await self._finish()

    async def _finish(self) -> None:
        if self._state is LifecycleState.IDLE and not self._shutdown.is_set():
            # startup failed before anything was negotiated
            await self._transport.close()
            self.transition(LifecycleState.CLOSED)
            return

        if self._state is not LifecycleState.DRAINING:
            self.transition(LifecycleState.DRAINING)
        await self._transport.close()
        self.transition(LifecycleState.CLOSED)
        self._log.info("Client shutdown complete")
