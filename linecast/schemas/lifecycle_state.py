"""Common enums used across schemas."""

from enum import Enum


class LifecycleState(str, Enum):
    """Process lifecycle states.

    State Transition Flow:

    IDLE → SIGNALING_UP ⇄ STREAMING
      ↓          ↓            ↓
      ↓      DRAINING  ←──────┘
      ↓          ↓
      └──────→ CLOSED

    IDLE may also move straight to DRAINING when a shutdown signal arrives
    before the listener (or negotiation) is up.

    State Descriptions:
    - IDLE: Process started, nothing listening or negotiated yet.
    - SIGNALING_UP: Server listener accepting offers, or client negotiated
      and waiting for its channel to open.
    - STREAMING: At least one stream session is active.
    - DRAINING: Shutdown requested. No new offers are accepted and in-flight
      sessions are allowed to finish.
    - CLOSED: All sessions finished and resources released.

    Terminal state (no further transitions): CLOSED
    """

    IDLE = "idle"
    SIGNALING_UP = "signaling_up"
    STREAMING = "streaming"
    DRAINING = "draining"
    CLOSED = "closed"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def accepting_states(cls) -> list["LifecycleState"]:
        """States in which new offers are accepted."""
        return [LifecycleState.SIGNALING_UP, LifecycleState.STREAMING]


__all__ = ["LifecycleState"]
