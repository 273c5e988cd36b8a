"""Schemas shared by the signaling endpoint, the CLI and the domain layer."""

from .lifecycle_state import LifecycleState
from .session_description import DescriptionType, SessionDescription

__all__ = [
    "DescriptionType",
    "LifecycleState",
    "SessionDescription",
]
