"""Registry of in-flight sender sessions.

This is the only state touched by several tasks. ``register`` and
``unregister`` are synchronous, so each runs atomically on the event loop,
and an ``asyncio.Event`` tracks emptiness for ``wait_empty()``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import TYPE_CHECKING

from loguru import logger

from linecast.domain.lifecycle.session_models import StreamSession

if TYPE_CHECKING:
    from loguru import Logger

CountListener = Callable[[int], None]


class SessionRegistry:
    def __init__(self, log: Logger = logger) -> None:
        self._sessions: dict[str, StreamSession] = {}
        self._empty = asyncio.Event()
        self._empty.set()
        self._listeners: list[CountListener] = []
        self._log = log.bind(component="registry")

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session: StreamSession) -> bool:
        return session.session_id in self._sessions

    @property
    def is_empty(self) -> bool:
        return not self._sessions

    def sessions(self) -> list[StreamSession]:
        return list(self._sessions.values())

    def add_listener(self, listener: CountListener) -> None:
        """Call ``listener(active_count)`` after every register/unregister."""
        self._listeners.append(listener)

    def _notify(self, count: int) -> None:
        for listener in self._listeners:
            listener(count)

    def register(self, session: StreamSession) -> None:
        if session.session_id in self._sessions:
            raise ValueError(f"session {session.session_id} already registered")
        self._sessions[session.session_id] = session
        self._empty.clear()
        count = len(self._sessions)
        self._log.info("Session {} registered ({} active)", session.session_id, count)
        self._notify(count)

    def unregister(self, session: StreamSession) -> None:
        if self._sessions.pop(session.session_id, None) is None:
            self._log.warning("Session {} was not registered", session.session_id)
            return
        count = len(self._sessions)
        if not count:
            self._empty.set()
        self._log.info("Session {} unregistered ({} active)", session.session_id, count)
        self._notify(count)

    async def wait_empty(self, timeout: float | None = None) -> bool:
        """Block until no session is registered.

        Returns:
            True once empty, False if ``timeout`` elapsed first
        """
        try:
            await asyncio.wait_for(self._empty.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True
