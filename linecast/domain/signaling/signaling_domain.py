"""Signaling domain service - answers offers and hands channels to the lifecycle."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from loguru import logger

from linecast.app_config import DEFAULT_STREAM_CHANNEL
from linecast.domain.lifecycle.server_lifecycle import ServerLifecycle
from linecast.domain.signaling.exchange import DEFAULT_GATHERING_TIMEOUT, SignalingExchange
from linecast.domain.transport.channel_models import PeerTransport
from linecast.schemas import DescriptionType, SessionDescription
from linecast.utils.app_errors import (
    AppError,
    AppErrorCode,
    HttpStatusCode,
    MalformedDescriptionError,
    NegotiationError,
)

if TYPE_CHECKING:
    from loguru import Logger

DEFAULT_MAX_OFFER_BYTES = 65536

TransportFactory = Callable[[], PeerTransport]


class SignalingService:
    """Answering side of the offer/answer exchange."""

    def __init__(
        self,
        lifecycle: ServerLifecycle,
        transport_factory: TransportFactory,
        *,
        gathering_timeout: float = DEFAULT_GATHERING_TIMEOUT,
        max_offer_bytes: int = DEFAULT_MAX_OFFER_BYTES,
        channel_label: str = DEFAULT_STREAM_CHANNEL,
        log: Logger = logger,
    ) -> None:
        self.lifecycle = lifecycle
        self._transport_factory = transport_factory
        self._gathering_timeout = gathering_timeout
        self.max_offer_bytes = max_offer_bytes
        self._channel_label = channel_label
        self._base_log = log
        self._log = log.bind(component="signaling")

    async def answer_offer(self, offer: SessionDescription) -> SessionDescription:
        """Negotiate a new peer session for ``offer`` and start streaming to it.

        Raises:
            AppError: E_DRAINING (503) once shutdown has begun
            MalformedDescriptionError: If ``offer`` is not an offer
            NegotiationError: If any negotiation step fails. The transport
                created for the offer is closed before raising.
        """
        if not self.lifecycle.accepting:
            raise AppError(
                "Server is shutting down",
                errcode=AppErrorCode.E_DRAINING,
                status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
            )

        if offer.type is not DescriptionType.OFFER:
            raise MalformedDescriptionError(f"Expected an offer, got {offer.type.value}")

        self._log.info("Received offer: {}", offer.summary())

        try:
            transport = self._transport_factory()
        except Exception as exc:
            raise NegotiationError(f"Failed to create peer connection: {exc}") from exc

        ok = False
        try:
            exchange = SignalingExchange(
                transport,
                gathering_timeout=self._gathering_timeout,
                log=self._base_log,
            )
            await exchange.apply_remote_description(offer)

            channel = transport.create_channel(self._channel_label)
            self._log.info("Created data channel: {}", self._channel_label)

            answer = await exchange.create_local_description(DescriptionType.ANSWER)
            ok = True
        except AppError as exc:
            self._log.error("Negotiation failed: {}", exc)
            raise
        except Exception as exc:
            self._log.error("Negotiation failed: {}", exc)
            raise NegotiationError(f"Negotiation failed: {exc}") from exc
        finally:
            if not ok:
                await transport.close()

        self.lifecycle.start_session(transport, channel)
        return answer
