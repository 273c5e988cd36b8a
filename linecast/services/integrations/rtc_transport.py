"""WebRTC transport backed by aiortc.

This module provides a thin wrapper around ``aiortc`` that exposes the
``PeerTransport`` / ``TransportChannel`` capability used by the signaling and
streaming code:

- description creation waits for ICE gathering to complete (aiortc gathers
  inside ``setLocalDescription``), so the returned description is final
- data channel callbacks are turned into ``Opened`` / ``MessageReceived`` /
  ``Closed`` events on a per-channel queue
- a failed or closed peer connection closes every channel it carries

Usage:
    transport = RtcPeerTransport(stun_url=None)
    channel = transport.create_channel("fileStream")
    answer = await transport.set_local_description(DescriptionType.ANSWER)
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from aiortc import (
    RTCConfiguration,
    RTCDataChannel,
    RTCIceServer,
    RTCPeerConnection,
    RTCSessionDescription,
)
from loguru import logger

from linecast.domain.transport.channel_models import (
    ChannelEvent,
    ChannelEvents,
    Closed,
    MessageReceived,
    Opened,
)
from linecast.schemas import DescriptionType, SessionDescription
from linecast.utils.app_errors import NegotiationError, TransportError

if TYPE_CHECKING:
    from loguru import Logger

FLUSH_POLL_INTERVAL = 0.01


def build_rtc_configuration(stun_url: str | None) -> RTCConfiguration:
    """Build the peer connection configuration.

    An empty STUN url means host candidates only. aiortc falls back to a public
    STUN server when no configuration is given, so the empty list is explicit.
    """
    if stun_url:
        return RTCConfiguration(iceServers=[RTCIceServer(urls=[stun_url])])
    return RTCConfiguration(iceServers=[])


def to_rtc_description(description: SessionDescription) -> RTCSessionDescription:
    return RTCSessionDescription(sdp=description.sdp, type=description.type.value)


def from_rtc_description(description: RTCSessionDescription) -> SessionDescription:
    return SessionDescription(type=DescriptionType(description.type), sdp=description.sdp)


class RtcDataChannel:
    """``TransportChannel`` over an aiortc ``RTCDataChannel``."""

    def __init__(self, channel: RTCDataChannel, log: Logger = logger) -> None:
        self._channel = channel
        self._events = ChannelEvents()
        self._log = log.bind(component="channel", channel=channel.label)

        channel.on("open", self._on_open)
        channel.on("message", self._on_message)
        channel.on("close", self._on_close)

        # channels announced by the remote peer are already open when handed over
        if channel.readyState == "open":
            self._on_open()

    @property
    def label(self) -> str:
        return self._channel.label

    @property
    def is_open(self) -> bool:
        return self._channel.readyState == "open" and not self._events.closed

    def _on_open(self) -> None:
        if self._events.put(Opened()):
            self._log.info("Data channel opened: {}", self.label)

    def _on_message(self, message: str | bytes) -> None:
        if isinstance(message, bytes):
            message = message.decode("utf-8", errors="replace")
        self._events.put(MessageReceived(payload=message))

    def _on_close(self) -> None:
        if self._events.put(Closed()):
            self._log.info("Data channel closed: {}", self.label)

    def fail(self, reason: str) -> None:
        """Close the event stream because the underlying connection failed."""
        error = TransportError(f"channel {self.label}: {reason}")
        if self._events.put(Closed(reason=reason, error=error)):
            self._log.warning("Data channel {} failed: {}", self.label, reason)

    def mark_closed(self, reason: str) -> None:
        if self._events.put(Closed(reason=reason)):
            self._log.info("Data channel {} closed: {}", self.label, reason)

    async def next_event(self) -> ChannelEvent:
        return await self._events.get()

    def send_text(self, text: str) -> None:
        if not self.is_open:
            raise TransportError(
                f"channel {self.label} is not open (state={self._channel.readyState})"
            )
        try:
            self._channel.send(text)
        except Exception as exc:
            raise TransportError(f"channel {self.label} send failed: {exc}") from exc

    async def flush(self, timeout: float) -> None:
        """Wait until buffered messages have been handed to the transport."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while self._channel.bufferedAmount > 0 and self._channel.readyState == "open":
            if loop.time() >= deadline:
                self._log.warning(
                    "Flush timed out on {} with {} bytes buffered",
                    self.label,
                    self._channel.bufferedAmount,
                )
                return
            await asyncio.sleep(FLUSH_POLL_INTERVAL)

    async def close(self) -> None:
        if self._channel.readyState not in ("closing", "closed"):
            self._channel.close()
        self.mark_closed("closed locally")


class RtcPeerTransport:
    """``PeerTransport`` over an aiortc ``RTCPeerConnection``."""

    def __init__(self, stun_url: str | None = None, log: Logger = logger) -> None:
        self._log = log.bind(component="transport")
        self._pc = RTCPeerConnection(configuration=build_rtc_configuration(stun_url))
        self._channels: list[RtcDataChannel] = []
        self._own_labels: set[str] = set()
        self._accepted: asyncio.Queue[RtcDataChannel] = asyncio.Queue()
        self._closed = False
        self._finished = asyncio.Event()

        self._pc.on("connectionstatechange", self._on_connection_state_change)
        self._pc.on("datachannel", self._on_datachannel)

    @property
    def connection_state(self) -> str:
        return self._pc.connectionState

    @property
    def local_description(self) -> SessionDescription | None:
        description = self._pc.localDescription
        return from_rtc_description(description) if description else None

    async def _on_connection_state_change(self) -> None:
        state = self._pc.connectionState
        self._log.info("Connection state changed: {}", state)

        if state == "connected":
            self._log.info("WebRTC connection established successfully!")
        elif state == "failed":
            self._log.error("WebRTC connection failed")
            for channel in self._channels:
                channel.fail("connection failed")
            self._finished.set()
        elif state == "closed":
            self._log.info("WebRTC connection closed")
            for channel in self._channels:
                channel.mark_closed("connection closed")
            self._finished.set()

    def _on_datachannel(self, channel: RTCDataChannel) -> None:
        self._log.info("New data channel: {}", channel.label)
        wrapped = RtcDataChannel(channel, log=self._log)
        self._channels.append(wrapped)
        if channel.label not in self._own_labels:
            self._accepted.put_nowait(wrapped)

    async def set_local_description(self, role: DescriptionType) -> SessionDescription:
        try:
            if role is DescriptionType.OFFER:
                description = await self._pc.createOffer()
            else:
                description = await self._pc.createAnswer()

            self._log.info("Waiting for ICE gathering to complete...")
            await self._pc.setLocalDescription(description)
        except NegotiationError:
            raise
        except Exception as exc:
            raise NegotiationError(f"Failed to create {role}: {exc}") from exc

        if self._pc.iceGatheringState != "complete":
            raise NegotiationError(f"ICE gathering incomplete ({self._pc.iceGatheringState})")
        self._log.info("ICE gathering complete")

        return from_rtc_description(self._pc.localDescription)

    async def set_remote_description(self, description: SessionDescription) -> None:
        try:
            await self._pc.setRemoteDescription(to_rtc_description(description))
        except Exception as exc:
            raise NegotiationError(f"Failed to set remote description: {exc}") from exc

    def create_channel(self, label: str) -> RtcDataChannel:
        try:
            channel = self._pc.createDataChannel(label, ordered=True)
        except Exception as exc:
            raise NegotiationError(f"Failed to create data channel: {exc}") from exc
        self._own_labels.add(label)
        wrapped = RtcDataChannel(channel, log=self._log)
        self._channels.append(wrapped)
        return wrapped

    async def accept_channel(self) -> RtcDataChannel:
        return await self._accepted.get()

    async def wait_closed(self, timeout: float | None = None) -> bool:
        try:
            await asyncio.wait_for(self._finished.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._pc.close()
        except Exception as exc:
            self._log.warning("Error closing peer connection: {}", exc)
        for channel in self._channels:
            channel.mark_closed("connection closed")
        self._finished.set()


def create_rtc_transport(stun_url: str | None = None) -> RtcPeerTransport:
    return RtcPeerTransport(stun_url=stun_url)


__all__ = [
    "RtcDataChannel",
    "RtcPeerTransport",
    "build_rtc_configuration",
    "create_rtc_transport",
    "from_rtc_description",
    "to_rtc_description",
]
