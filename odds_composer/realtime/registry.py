from __future__ import annotations

import logging
import uuid

from odds_composer.realtime.channels import OutboundChannel, SseChannel

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """Tracks open WebSocket and SSE channels.

    Lives on the event loop and is not thread-safe.
    """

    def __init__(self, *, heartbeat_seconds: float = 30) -> None:
        self._heartbeat_seconds = heartbeat_seconds
        self._channels: dict[str, OutboundChannel] = {}

    def register(self, channel: OutboundChannel) -> str:
        channel_id = uuid.uuid4().hex
        channel.channel_id = channel_id
        self._channels[channel_id] = channel
        if isinstance(channel, SseChannel):
            channel.start_heartbeat(self._heartbeat_seconds)
        logger.info(
            "%s client connected (id=%s). Total: websocket=%s sse=%s",
            channel.kind,
            channel_id,
            self.count("websocket"),
            self.count("sse"),
        )
        return channel_id

    def unregister(self, channel: OutboundChannel) -> bool:
        """Remove *channel*; returns False when it was not registered."""
        removed = self._channels.pop(channel.channel_id, None) if channel.channel_id else None
        channel.close()
        if removed is None:
            return False
        logger.info(
            "%s client disconnected (id=%s). Total: websocket=%s sse=%s",
            channel.kind,
            channel.channel_id,
            self.count("websocket"),
            self.count("sse"),
        )
        return True

    def channels(self, kind: str | None = None) -> list[OutboundChannel]:
        return [
            channel
            for channel in self._channels.values()
            if kind is None or channel.kind == kind
        ]

    def count(self, kind: str | None = None) -> int:
        if kind is None:
            return len(self._channels)
        return sum(1 for channel in self._channels.values() if channel.kind == kind)

    def close_all(self) -> None:
        for channel in list(self._channels.values()):
            self.unregister(channel)
