"""Stream session models."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum

from linecast.domain.transport.channel_models import TransportChannel
from linecast.domain.utils.idgen import new_session_id


class SessionOutcome(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    NEVER_OPENED = "never_opened"

    def __str__(self) -> str:
        return self.value


@dataclass
class StreamSession:
    """One open channel paired with the file streamed over it."""

    channel: TransportChannel
    path: str
    delay_ms: int
    session_id: str = field(default_factory=new_session_id)
    created_at: float = field(default_factory=time.monotonic)
    lines_sent: int = 0
    outcome: SessionOutcome = SessionOutcome.PENDING
    error: Exception | None = None

    @property
    def age(self) -> float:
        return time.monotonic() - self.created_at

    def finish(self, lines_sent: int, error: Exception | None = None) -> None:
        self.lines_sent = lines_sent
        self.error = error
        self.outcome = SessionOutcome.FAILED if error else SessionOutcome.COMPLETED
