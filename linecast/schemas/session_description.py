"""Session description schema and its signaling wire format.

The wire format is the JSON object exchanged over `POST /offer`:

    {"type": "offer", "sdp": "v=0\\r\\n..."}

It matches the JSON shape used by browser and pion peers, so any WebRTC
implementation can act as the remote side.
"""

from __future__ import annotations

from enum import Enum

import orjson
from pydantic import BaseModel, ConfigDict, ValidationError

from linecast.utils.app_errors import MalformedDescriptionError


class DescriptionType(str, Enum):
    """Role of a session description in the offer/answer exchange."""

    OFFER = "offer"
    ANSWER = "answer"

    def __str__(self) -> str:
        return self.value


class SessionDescription(BaseModel):
    """A finalized negotiation payload. Immutable once built."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    type: DescriptionType
    sdp: str

    def to_wire(self) -> bytes:
        return orjson.dumps({"type": self.type.value, "sdp": self.sdp})

    @classmethod
    def from_wire(cls, payload: bytes | str) -> SessionDescription:
        """Parse a wire payload.

        Raises:
            MalformedDescriptionError: If the payload is not JSON or does not
                describe an offer/answer with an SDP body
        """
        try:
            data = orjson.loads(payload)
        except orjson.JSONDecodeError as exc:
            raise MalformedDescriptionError(f"Failed to parse description: {exc}") from exc

        if not isinstance(data, dict):
            raise MalformedDescriptionError("Failed to parse description: expected a JSON object")

        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            details = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'body'}: {err['msg']}"
                for err in exc.errors()
            )
            raise MalformedDescriptionError(f"Failed to parse description: {details}") from exc

    def summary(self) -> str:
        """Short description for logs: type, size and candidate count."""
        candidates = sum(1 for line in self.sdp.splitlines() if line.startswith("a=candidate:"))
        return f"{self.type} ({len(self.sdp)} bytes, {candidates} candidates)"


__all__ = ["DescriptionType", "SessionDescription"]
