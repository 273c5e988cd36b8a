"""Tests for SignalingService offer answering."""

from pathlib import Path

import pytest

from linecast.domain.lifecycle.server_lifecycle import ServerLifecycle
from linecast.domain.signaling.signaling_domain import SignalingService
from linecast.schemas import DescriptionType, SessionDescription
from linecast.utils.app_errors import (
    AppError,
    AppErrorCode,
    MalformedDescriptionError,
    NegotiationError,
)
from tests.fixtures.transport_fixtures import FakeTransport


@pytest.fixture
def lifecycle(tmp_path: Path) -> ServerLifecycle:
    path = tmp_path / "sample.txt"
    path.write_text("Line 1\n", encoding="utf-8")
    lifecycle = ServerLifecycle(file_path=str(path), delay_ms=0, open_timeout=0.05, close_grace=0)
    lifecycle.mark_listening()
    return lifecycle


class TransportFactory:
    """Hands out prepared transports and remembers them."""

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.created: list[FakeTransport] = []

    def __call__(self) -> FakeTransport:
        transport = FakeTransport(**self.kwargs)
        self.created.append(transport)
        return transport


class TestAnswerOffer:
    @pytest.mark.asyncio
    async def test_answers_offer_and_starts_session(
        self, lifecycle: ServerLifecycle, offer: SessionDescription
    ):
        factory = TransportFactory()
        service = SignalingService(lifecycle, factory)

        answer = await service.answer_offer(offer)

        assert answer.type is DescriptionType.ANSWER
        assert "candidate" in answer.sdp
        transport = factory.created[0]
        assert transport.remote == offer
        assert [channel.label for channel in transport.channels] == ["fileStream"]
        assert lifecycle.pending_count == 1

        await lifecycle.drain()

    @pytest.mark.asyncio
    async def test_custom_channel_label(self, lifecycle: ServerLifecycle, offer: SessionDescription):
        factory = TransportFactory()
        service = SignalingService(lifecycle, factory, channel_label="lines")

        await service.answer_offer(offer)

        assert factory.created[0].channels[0].label == "lines"
        await lifecycle.drain()

    @pytest.mark.asyncio
    async def test_rejects_offers_while_draining(
        self, lifecycle: ServerLifecycle, offer: SessionDescription
    ):
        factory = TransportFactory()
        service = SignalingService(lifecycle, factory)
        lifecycle.request_shutdown()

        with pytest.raises(AppError) as exc_info:
            await service.answer_offer(offer)

        assert exc_info.value.errcode == AppErrorCode.E_DRAINING
        assert exc_info.value.status_code == 503
        assert factory.created == []

    @pytest.mark.asyncio
    async def test_rejects_answer_as_offer(
        self, lifecycle: ServerLifecycle, answer: SessionDescription
    ):
        factory = TransportFactory()
        service = SignalingService(lifecycle, factory)

        with pytest.raises(MalformedDescriptionError, match="Expected an offer"):
            await service.answer_offer(answer)

        assert factory.created == []

    @pytest.mark.asyncio
    async def test_factory_failure_is_negotiation_error(
        self, lifecycle: ServerLifecycle, offer: SessionDescription
    ):
        def broken_factory():
            raise OSError("no network interfaces")

        service = SignalingService(lifecycle, broken_factory)

        with pytest.raises(NegotiationError, match="Failed to create peer connection"):
            await service.answer_offer(offer)

    @pytest.mark.asyncio
    async def test_remote_rejection_closes_transport(
        self, lifecycle: ServerLifecycle, offer: SessionDescription
    ):
        """Test a transport is closed when the offer cannot be applied."""
        factory = TransportFactory(fail_remote=ValueError("bad fingerprint"))
        service = SignalingService(lifecycle, factory)

        with pytest.raises(NegotiationError, match="bad fingerprint"):
            await service.answer_offer(offer)

        assert factory.created[0].closed is True
        assert lifecycle.pending_count == 0

    @pytest.mark.asyncio
    async def test_gathering_timeout_closes_transport(
        self, lifecycle: ServerLifecycle, offer: SessionDescription
    ):
        factory = TransportFactory(gather_delay=1.0)
        service = SignalingService(lifecycle, factory, gathering_timeout=0.01)

        with pytest.raises(NegotiationError) as exc_info:
            await service.answer_offer(offer)

        assert exc_info.value.errcode == AppErrorCode.E_NEGOTIATION_TIMEOUT
        assert factory.created[0].closed is True
        assert lifecycle.pending_count == 0
