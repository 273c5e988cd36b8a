"""In-process connection test.

Connects two local peers directly, opens a channel from the "server" peer and
checks that a message arrives at the "client" peer. Useful to verify that the
host can establish WebRTC connections at all before running server and client.
"""

import asyncio

from loguru import logger

from linecast.domain.signaling.exchange import SignalingExchange
from linecast.domain.streaming.channel_source import ChannelLineSource
from linecast.domain.streaming.signal_stream import StreamClosed
from linecast.domain.transport.channel_models import Closed, Opened
from linecast.schemas import DescriptionType
from linecast.services.integrations.rtc_transport import RtcPeerTransport

SELFTEST_CHANNEL = "test"
SELFTEST_MESSAGE = "Hello from server!"
DEFAULT_SELFTEST_TIMEOUT = 15.0


async def _loopback(server: RtcPeerTransport, client: RtcPeerTransport) -> bool:
    channel = server.create_channel(SELFTEST_CHANNEL)

    server_exchange = SignalingExchange(server, log=logger.bind(peer="server"))
    client_exchange = SignalingExchange(client, log=logger.bind(peer="client"))

    offer = await server_exchange.create_local_description(DescriptionType.OFFER)
    await client_exchange.apply_remote_description(offer)
    answer = await client_exchange.create_local_description(DescriptionType.ANSWER)
    await server_exchange.apply_remote_description(answer)

    event = await channel.next_event()
    if isinstance(event, Closed):
        logger.error("Server data channel closed before opening: {}", event.reason)
        return False
    if isinstance(event, Opened):
        logger.info("Server data channel opened")

    received = await client.accept_channel()
    source = ChannelLineSource(received)
    lines, _ = source.receive_lines()

    channel.send_text(SELFTEST_MESSAGE)
    try:
        message = await lines.receive()
    except StreamClosed:
        logger.error("Client data channel closed before any message arrived")
        return False
    finally:
        await source.aclose()

    logger.info("Client received message: {}", message)
    return message == SELFTEST_MESSAGE


async def run_selftest(stun_url: str | None = None, timeout: float = DEFAULT_SELFTEST_TIMEOUT) -> bool:
    """Run the loopback test. Returns True if the message made it across."""
    logger.info("Starting WebRTC connection test")

    server = RtcPeerTransport(stun_url, log=logger.bind(peer="server"))
    client = RtcPeerTransport(stun_url, log=logger.bind(peer="client"))
    try:
        ok = await asyncio.wait_for(_loopback(server, client), timeout=timeout)
    except asyncio.TimeoutError:
        logger.error("Connection test timed out after {:g}s", timeout)
        ok = False
    finally:
        await client.close()
        await server.close()

    if ok:
        logger.info("Connection test passed")
    else:
        logger.error("Connection test failed")
    return ok
