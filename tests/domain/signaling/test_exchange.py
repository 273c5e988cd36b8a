"""Tests for SignalingExchange ordering rules and gathering timeout."""

import pytest

from linecast.domain.signaling.exchange import SignalingExchange
from linecast.schemas import DescriptionType, SessionDescription
from linecast.utils.app_errors import AppErrorCode, NegotiationError
from tests.fixtures.transport_fixtures import FakeTransport


class TestOffererSide:
    @pytest.mark.asyncio
    async def test_offer_then_answer(self, fake_transport: FakeTransport, answer: SessionDescription):
        """Test the normal offerer flow: local offer, then remote answer."""
        exchange = SignalingExchange(fake_transport)

        offer = await exchange.create_local_description(DescriptionType.OFFER)
        await exchange.apply_remote_description(answer)

        assert offer.type is DescriptionType.OFFER
        assert exchange.local_description == offer
        assert exchange.remote_description == answer
        assert fake_transport.remote == answer
        assert exchange.is_complete is True

    @pytest.mark.asyncio
    async def test_answer_before_local_offer_rejected(
        self, fake_transport: FakeTransport, answer: SessionDescription
    ):
        """Test a remote answer cannot be applied before a local offer exists."""
        exchange = SignalingExchange(fake_transport)

        with pytest.raises(NegotiationError, match="before creating a local offer"):
            await exchange.apply_remote_description(answer)

        assert fake_transport.remote is None

    @pytest.mark.asyncio
    async def test_remote_offer_after_local_rejected(
        self, fake_transport: FakeTransport, offer: SessionDescription
    ):
        """Test a remote offer is rejected once the local description exists."""
        exchange = SignalingExchange(fake_transport)
        await exchange.create_local_description(DescriptionType.OFFER)

        with pytest.raises(NegotiationError):
            await exchange.apply_remote_description(offer)

    @pytest.mark.asyncio
    async def test_remote_applied_twice_rejected(
        self, fake_transport: FakeTransport, answer: SessionDescription
    ):
        exchange = SignalingExchange(fake_transport)
        await exchange.create_local_description(DescriptionType.OFFER)
        await exchange.apply_remote_description(answer)

        with pytest.raises(NegotiationError, match="already applied"):
            await exchange.apply_remote_description(answer)

    @pytest.mark.asyncio
    async def test_local_created_twice_rejected(self, fake_transport: FakeTransport):
        exchange = SignalingExchange(fake_transport)
        await exchange.create_local_description(DescriptionType.OFFER)

        with pytest.raises(NegotiationError, match="already created"):
            await exchange.create_local_description(DescriptionType.OFFER)


class TestAnswererSide:
    @pytest.mark.asyncio
    async def test_remote_offer_then_answer(
        self, fake_transport: FakeTransport, offer: SessionDescription
    ):
        """Test the normal answerer flow: remote offer, then local answer."""
        exchange = SignalingExchange(fake_transport)

        await exchange.apply_remote_description(offer)
        answer = await exchange.create_local_description(DescriptionType.ANSWER)

        assert answer.type is DescriptionType.ANSWER
        assert exchange.is_complete is True

    @pytest.mark.asyncio
    async def test_answer_without_remote_offer_rejected(self, fake_transport: FakeTransport):
        """Test an answer cannot be created before the remote offer is applied."""
        exchange = SignalingExchange(fake_transport)

        with pytest.raises(NegotiationError, match="remote offer must be applied"):
            await exchange.create_local_description(DescriptionType.ANSWER)

        assert fake_transport.local_description is None

    @pytest.mark.asyncio
    async def test_offer_after_remote_offer_rejected(
        self, fake_transport: FakeTransport, offer: SessionDescription
    ):
        """Test the answering side cannot switch to offering."""
        exchange = SignalingExchange(fake_transport)
        await exchange.apply_remote_description(offer)

        with pytest.raises(NegotiationError):
            await exchange.create_local_description(DescriptionType.OFFER)


class TestTransportFailures:
    @pytest.mark.asyncio
    async def test_gathering_timeout_raises_negotiation_error(self):
        """Test gathering that exceeds the timeout fails instead of hanging."""
        transport = FakeTransport(gather_delay=5.0)
        exchange = SignalingExchange(transport, gathering_timeout=0.05)

        with pytest.raises(NegotiationError) as exc_info:
            await exchange.create_local_description(DescriptionType.OFFER)

        assert exc_info.value.errcode == AppErrorCode.E_NEGOTIATION_TIMEOUT.value
        assert exchange.local_description is None

    @pytest.mark.asyncio
    async def test_transport_rejection_propagates(self, offer: SessionDescription):
        """Test a transport error on the remote description surfaces as-is."""
        transport = FakeTransport(fail_remote=NegotiationError("Failed to set remote description: bad sdp"))
        exchange = SignalingExchange(transport)

        with pytest.raises(NegotiationError, match="bad sdp"):
            await exchange.apply_remote_description(offer)

        assert exchange.remote_description is None

    @pytest.mark.asyncio
    async def test_wrong_role_from_transport_rejected(self, fake_transport: FakeTransport):
        """Test a transport that produced the wrong role is caught."""

        async def produce_answer(role):
            return SessionDescription(type=DescriptionType.ANSWER, sdp="v=0")

        fake_transport.set_local_description = produce_answer  # type: ignore[method-assign]
        exchange = SignalingExchange(fake_transport)

        with pytest.raises(NegotiationError, match="expected offer"):
            await exchange.create_local_description(DescriptionType.OFFER)
