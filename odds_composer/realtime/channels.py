"""Outbound channels: one uniform send/close contract over WebSocket and SSE."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator

from fastapi import WebSocket
from starlette.websockets import WebSocketState

logger = logging.getLogger(__name__)

HEARTBEAT_FRAME = ":\n\n"


class ChannelClosedError(RuntimeError):
    pass


class OutboundChannel:
    kind = "channel"

    def __init__(self) -> None:
        self.channel_id: str | None = None
        self._closed = False

    @property
    def is_open(self) -> bool:
        return not self._closed

    async def send(self, text: str) -> None:
        raise NotImplementedError

    def close(self) -> None:
        self._closed = True


class WebSocketChannel(OutboundChannel):
    kind = "websocket"

    def __init__(self, websocket: WebSocket) -> None:
        super().__init__()
        self.websocket = websocket

    @property
    def is_open(self) -> bool:
        return (
            not self._closed
            and self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send(self, text: str) -> None:
        if self._closed:
            raise ChannelClosedError(f"websocket channel {self.channel_id} is closed")
        await self.websocket.send_text(text)


class _EndOfStream:
    pass


_END = _EndOfStream()


class SseChannel(OutboundChannel):
    """A server-sent-events stream fed through a bounded frame queue.

    ``send`` never waits: a full queue means the reader has stalled and is
    reported as a write failure. ``frames()`` is consumed by the streaming
    response and ends once the channel is closed.
    """

    kind = "sse"

    def __init__(self, max_queue: int = 256) -> None:
        super().__init__()
        self._queue: asyncio.Queue[str | _EndOfStream] = asyncio.Queue(maxsize=max_queue)
        self._heartbeat_task: asyncio.Task | None = None

    async def send(self, text: str) -> None:
        self.push_frame(f"data: {text}\n\n")

    def push_frame(self, frame: str) -> None:
        if self._closed:
            raise ChannelClosedError(f"sse channel {self.channel_id} is closed")
        self._queue.put_nowait(frame)

    def start_heartbeat(self, interval_seconds: float) -> None:
        if self._heartbeat_task is None and not self._closed:
            self._heartbeat_task = asyncio.create_task(
                self._heartbeat_loop(interval_seconds),
                name=f"sse_heartbeat_{self.channel_id}",
            )

    async def _heartbeat_loop(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            if not self.is_open:
                return
            try:
                self.push_frame(HEARTBEAT_FRAME)
            except asyncio.QueueFull:
                logger.debug("SSE channel %s: heartbeat skipped, queue full", self.channel_id)

    async def frames(self) -> AsyncIterator[str]:
        while not self._closed or not self._queue.empty():
            frame = await self._queue.get()
            if isinstance(frame, _EndOfStream):
                return
            yield frame

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            self._heartbeat_task = None
        try:
            self._queue.put_nowait(_END)
        except asyncio.QueueFull:
            # Drop pending frames so the reader wakes up and sees the end.
            while not self._queue.empty():
                self._queue.get_nowait()
            self._queue.put_nowait(_END)
