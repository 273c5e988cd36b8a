"""Lifecycle state machine for managing process state transitions."""

from linecast.schemas import LifecycleState


class LifecycleStateMachine:
    """State machine for managing lifecycle state transitions.

    State flow with triggers:
    - IDLE -> SIGNALING_UP (listener started / offer answered) | DRAINING | CLOSED
    - SIGNALING_UP -> STREAMING (first channel opened) | DRAINING
    - STREAMING -> SIGNALING_UP (last active session finished) | DRAINING
    - DRAINING -> CLOSED (registry empty, resources released)
    - CLOSED is terminal
    """

    TRANSITIONS: dict[LifecycleState, set[LifecycleState]] = {
        LifecycleState.IDLE: {
            LifecycleState.SIGNALING_UP,
            LifecycleState.DRAINING,
            LifecycleState.CLOSED,
        },
        LifecycleState.SIGNALING_UP: {
            LifecycleState.STREAMING,
            LifecycleState.DRAINING,
        },
        LifecycleState.STREAMING: {
            LifecycleState.SIGNALING_UP,
            LifecycleState.DRAINING,
        },
        LifecycleState.DRAINING: {LifecycleState.CLOSED},
        LifecycleState.CLOSED: set(),
    }

    TERMINAL_STATES: set[LifecycleState] = {LifecycleState.CLOSED}

    @classmethod
    def can_transition(cls, current: LifecycleState, new: LifecycleState) -> bool:
        """Check if state transition is valid.

        Args:
            current: Current lifecycle state
            new: Target state to transition to

        Returns:
            True if transition is valid, False otherwise
        """
        return new in cls.TRANSITIONS.get(current, set())

    @classmethod
    def is_terminal(cls, state: LifecycleState) -> bool:
        return state in cls.TERMINAL_STATES

    @classmethod
    def get_valid_transitions(cls, state: LifecycleState) -> set[LifecycleState]:
        return cls.TRANSITIONS.get(state, set())

    @classmethod
    def get_valid_sources(cls, target: LifecycleState) -> set[LifecycleState]:
        """Get all states that can transition to the target state."""
        return {state for state, targets in cls.TRANSITIONS.items() if target in targets}
