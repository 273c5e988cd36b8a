"""Server process lifecycle.

Owns the lifecycle state, the registry of active sender sessions and the
watcher tasks of channels that have not opened yet.

Session flow:
1. ``start_session`` spawns a watcher for a freshly negotiated channel
2. the watcher waits for ``Opened`` (bounded by ``open_timeout``)
3. the session is registered and the file is streamed over the channel
4. the channel is flushed and closed, the peer gets ``close_grace`` seconds
   to hang up, then the transport is closed and the session unregistered

Shutdown (``request_shutdown`` then ``drain``) stops accepting offers, closes
watchers of channels that never opened and waits for active sessions to
finish on their own.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import TYPE_CHECKING

from loguru import logger

from linecast.domain.lifecycle.lifecycle_state_machine import LifecycleStateMachine
from linecast.domain.lifecycle.session_models import SessionOutcome, StreamSession
from linecast.domain.lifecycle.session_registry import SessionRegistry
from linecast.domain.streaming.file_streamer import FileStreamer
from linecast.domain.transport.channel_models import (
    Closed,
    MessageReceived,
    Opened,
    PeerTransport,
    TransportChannel,
)
from linecast.schemas import LifecycleState
from linecast.utils.app_errors import LifecycleError

if TYPE_CHECKING:
    from loguru import Logger

DEFAULT_OPEN_TIMEOUT = 30.0
DEFAULT_CLOSE_GRACE = 2.0
DEFAULT_FLUSH_TIMEOUT = 5.0


class ServerLifecycle:
    def __init__(
        self,
        *,
        file_path: str,
        delay_ms: int,
        registry: SessionRegistry | None = None,
        open_timeout: float = DEFAULT_OPEN_TIMEOUT,
        close_grace: float = DEFAULT_CLOSE_GRACE,
        flush_timeout: float = DEFAULT_FLUSH_TIMEOUT,
        streamer_factory: Callable[..., FileStreamer] = FileStreamer,
        log: Logger = logger,
    ) -> None:
        self.file_path = file_path
        self.delay_ms = delay_ms
        self.registry = registry or SessionRegistry(log=log)
        self.open_timeout = open_timeout
        self.close_grace = close_grace
        self.flush_timeout = flush_timeout
        self._streamer_factory = streamer_factory
        self._log = log.bind(component="lifecycle")
        self._base_log = log

        self._state = LifecycleState.IDLE
        self._pending: set[asyncio.Task[None]] = set()
        self._tasks: set[asyncio.Task[None]] = set()
        self._fatal: BaseException | None = None

        self.registry.add_listener(self._on_session_count)

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def accepting(self) -> bool:
        return self._state in LifecycleState.accepting_states()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def fatal_error(self) -> BaseException | None:
        return self._fatal

    @property
    def exit_code(self) -> int:
        return 1 if self._fatal is not None else 0

    def transition(self, new_state: LifecycleState) -> None:
        """Move to ``new_state``.

        Raises:
            LifecycleError: If the transition is not allowed from the current state
        """
        if not LifecycleStateMachine.can_transition(self._state, new_state):
            raise LifecycleError(f"Invalid lifecycle transition: {self._state} -> {new_state}")
        self._log.info("Lifecycle {} -> {}", self._state, new_state)
        self._state = new_state

    def mark_listening(self) -> None:
        if self._state is not LifecycleState.IDLE:
            # shutdown was requested while the listener was starting
            self._log.info("Listener up while {}, not accepting offers", self._state)
            return
        self.transition(LifecycleState.SIGNALING_UP)

    def request_shutdown(self) -> bool:
        """Stop accepting offers. Returns False if shutdown was already requested."""
        if self._state in (LifecycleState.DRAINING, LifecycleState.CLOSED):
            return False
        self.transition(LifecycleState.DRAINING)
        return True

    def abort(self) -> None:
        """Cancel every session task, opened or not."""
        for task in list(self._tasks):
            task.cancel()

    def report_fatal(self, error: BaseException) -> None:
        if self._fatal is None:
            self._fatal = error
        self._log.error("Fatal error: {}", error)

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            # session errors are handled inside the task, anything left is a bug
            self.report_fatal(error)

    def _on_session_count(self, count: int) -> None:
        if count and self._state is LifecycleState.SIGNALING_UP:
            self.transition(LifecycleState.STREAMING)
        elif not count and self._state is LifecycleState.STREAMING:
            self.transition(LifecycleState.SIGNALING_UP)

    def start_session(
        self, transport: PeerTransport, channel: TransportChannel
    ) -> asyncio.Task[None]:
        """Watch ``channel`` and stream the file once it opens.

        The task owns ``transport`` from here on and always closes it.
        """
        session = StreamSession(channel=channel, path=self.file_path, delay_ms=self.delay_ms)
        task = asyncio.create_task(
            self._run_session(session, transport), name=f"session-{session.session_id}"
        )
        self._pending.add(task)
        self._tasks.add(task)
        task.add_done_callback(self._pending.discard)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(self._on_task_done)
        self._log.info("Session {} waiting for channel {}", session.session_id, channel.label)
        return task

    async def _wait_opened(self, channel: TransportChannel) -> Closed | None:
        """Wait for ``Opened``. Returns the ``Closed`` event if the channel closed first."""
        while True:
            event = await channel.next_event()
            if isinstance(event, Opened):
                return None
            if isinstance(event, Closed):
                return event
            if isinstance(event, MessageReceived):
                self._log.debug("Ignoring message before open: {}", event.payload)

    async def _run_session(self, session: StreamSession, transport: PeerTransport) -> None:
        log = self._log.bind(session=session.session_id)
        registered = False
        try:
            try:
                closed = await asyncio.wait_for(
                    self._wait_opened(session.channel), timeout=self.open_timeout
                )
            except asyncio.TimeoutError:
                session.outcome = SessionOutcome.NEVER_OPENED
                log.warning(
                    "Session {} channel did not open within {:g}s",
                    session.session_id,
                    self.open_timeout,
                )
                return
            except asyncio.CancelledError:
                session.outcome = SessionOutcome.NEVER_OPENED
                log.info("Session {} closed before its channel opened", session.session_id)
                raise

            if closed is not None:
                session.outcome = SessionOutcome.NEVER_OPENED
                log.warning(
                    "Session {} channel closed before opening: {}",
                    session.session_id,
                    closed.reason,
                )
                return

            # from here on the session runs to completion, drain waits for it
            self._pending.discard(asyncio.current_task())
            self.registry.register(session)
            registered = True

            log.info("Starting to stream file: {}", session.path)
            streamer = self._streamer_factory(log=self._base_log.bind(session=session.session_id))
            try:
                sent = await streamer.stream(session.channel, session.path, session.delay_ms)
            except Exception as exc:
                session.finish(streamer.lines_sent, error=exc)
                log.error(
                    "Session {} failed after {} lines: {}",
                    session.session_id,
                    streamer.lines_sent,
                    exc,
                )
            else:
                session.finish(sent)
                log.info("Session {} completed, sent {} lines", session.session_id, sent)

            await session.channel.flush(self.flush_timeout)
        finally:
            try:
                await self._release(session, transport, graceful=registered)
            finally:
                if registered:
                    self.registry.unregister(session)

    async def _release(
        self, session: StreamSession, transport: PeerTransport, *, graceful: bool
    ) -> None:
        try:
            await session.channel.close()
            if graceful and self.close_grace > 0:
                if not await transport.wait_closed(self.close_grace):
                    self._log.debug("Session {} peer did not hang up, closing", session.session_id)
        finally:
            await transport.close()

    async def drain(self, timeout: float | None = None) -> bool:
        """Shut down: close unopened watchers and wait for active sessions.

        Returns:
            True if every session finished, False if ``timeout`` elapsed first
        """
        self.request_shutdown()

        pending = list(self._pending)
        if pending:
            self._log.info("Closing {} session(s) that never opened", len(pending))
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        active = len(self.registry)
        if active:
            self._log.info("Waiting for {} active session(s) to finish", active)
        finished = await self.registry.wait_empty(timeout)
        if not finished:
            self._log.warning("{} session(s) still active at shutdown", len(self.registry))
            running = list(self._tasks)
            for task in running:
                task.cancel()
            await asyncio.gather(*running, return_exceptions=True)

        self.transition(LifecycleState.CLOSED)
        return finished
