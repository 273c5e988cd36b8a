"""Offer/answer exchange over a peer transport.

Ordering rules:
- the offerer creates its local description first, then applies the answer
- the answerer applies the remote offer first, then creates its answer
- each side applies exactly one remote description

Gathering can stall when no network path exists, so local description
creation is bounded by the exchange timeout.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from loguru import logger

from linecast.domain.transport.channel_models import PeerTransport
from linecast.schemas import DescriptionType, SessionDescription
from linecast.utils.app_errors import AppErrorCode, NegotiationError

if TYPE_CHECKING:
    from loguru import Logger

DEFAULT_GATHERING_TIMEOUT = 10.0


class SignalingExchange:
    """Drives one side of a single offer/answer exchange."""

    def __init__(
        self,
        transport: PeerTransport,
        *,
        gathering_timeout: float = DEFAULT_GATHERING_TIMEOUT,
        log: Logger = logger,
    ) -> None:
        self._transport = transport
        self._gathering_timeout = gathering_timeout
        self._log = log.bind(component="signaling")
        self._local: SessionDescription | None = None
        self._remote: SessionDescription | None = None

    @property
    def local_description(self) -> SessionDescription | None:
        return self._local

    @property
    def remote_description(self) -> SessionDescription | None:
        return self._remote

    @property
    def is_complete(self) -> bool:
        return self._local is not None and self._remote is not None

    def _check_can_create(self, role: DescriptionType) -> None:
        if self._local is not None:
            raise NegotiationError(f"local description already created ({self._local.type})")

        if role is DescriptionType.OFFER and self._remote is not None:
            raise NegotiationError("cannot create an offer after a remote description was applied")

        if role is DescriptionType.ANSWER:
            if self._remote is None:
                raise NegotiationError("remote offer must be applied before creating an answer")
            if self._remote.type is not DescriptionType.OFFER:
                raise NegotiationError(f"cannot answer a remote {self._remote.type}")

    def _check_can_apply(self, description: SessionDescription) -> None:
        if self._remote is not None:
            raise NegotiationError("remote description already applied")

        if description.type is DescriptionType.OFFER and self._local is not None:
            raise NegotiationError("cannot apply a remote offer after creating a local description")

        if description.type is DescriptionType.ANSWER:
            if self._local is None:
                raise NegotiationError("cannot apply a remote answer before creating a local offer")
            if self._local.type is not DescriptionType.OFFER:
                raise NegotiationError(f"cannot apply a remote answer to a local {self._local.type}")

    async def create_local_description(self, role: DescriptionType) -> SessionDescription:
        """Create and install the local description, waiting for gathering to complete.

        Args:
            role: OFFER on the initiating side, ANSWER on the answering side

        Returns:
            The finalized description, ready to serialize

        Raises:
            NegotiationError: If the ordering rules are violated, the transport
                rejects the description, or gathering exceeds the timeout
        """
        self._check_can_create(role)

        try:
            description = await asyncio.wait_for(
                self._transport.set_local_description(role),
                timeout=self._gathering_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise NegotiationError(
                f"ICE gathering did not complete within {self._gathering_timeout:g}s",
                errcode=AppErrorCode.E_NEGOTIATION_TIMEOUT,
            ) from exc

        if description.type is not role:
            raise NegotiationError(f"transport produced {description.type}, expected {role}")

        self._local = description
        self._log.info("Local {} ready: {}", role, description.summary())
        self._log.debug("Local SDP:\n{}", description.sdp)
        return description

    async def apply_remote_description(self, description: SessionDescription) -> None:
        """Install the description received from the remote peer.

        Raises:
            NegotiationError: If the exchange does not accept a remote
                description in its current state, or the transport rejects it
        """
        self._check_can_apply(description)

        await self._transport.set_remote_description(description)

        self._remote = description
        self._log.info("Remote {} applied: {}", description.type, description.summary())
