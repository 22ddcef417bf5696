"""Blocking server-sent-events reader built on requests."""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Callable, Iterable, Iterator

import requests

logger = logging.getLogger(__name__)

DEFAULT_RECONNECT_SECONDS = 3.0
DEFAULT_CONNECT_TIMEOUT_SECONDS = 5
# Must outlast the server's heartbeat interval.
DEFAULT_READ_TIMEOUT_SECONDS = 90


def iter_sse_messages(lines: Iterable[str]) -> Iterator[tuple[str, str]]:
    """Yield (event name, data) pairs from decoded SSE lines.

    Comment lines (heartbeats) are skipped and multi-line data is joined with
    newlines. A trailing message without its blank terminator is discarded.
    """
    event: str | None = None
    data: list[str] = []
    for raw in lines:
        line = raw.rstrip("\r")
        if not line:
            if data:
                yield event or "message", "\n".join(data)
            event = None
            data = []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "data":
            data.append(value)
        elif field == "event":
            event = value


class SseListener:
    def __init__(
        self,
        url: str,
        on_message: Callable[[dict[str, Any]], None],
        *,
        reconnect_seconds: float = DEFAULT_RECONNECT_SECONDS,
        session: requests.Session | None = None,
    ) -> None:
        self.url = url
        self._on_message = on_message
        self._reconnect_seconds = reconnect_seconds
        self._session = session or requests.Session()

    def _consume(self, stop_event: threading.Event) -> None:
        headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}
        with self._session.get(
            self.url,
            headers=headers,
            stream=True,
            timeout=(DEFAULT_CONNECT_TIMEOUT_SECONDS, DEFAULT_READ_TIMEOUT_SECONDS),
        ) as response:
            response.raise_for_status()
            response.encoding = response.encoding or "utf-8"
            logger.info("SSE connected url=%s", self.url)
            for _event, data in iter_sse_messages(response.iter_lines(decode_unicode=True)):
                if stop_event.is_set():
                    return
                try:
                    message = json.loads(data)
                except json.JSONDecodeError:
                    logger.warning("Ignoring non-JSON SSE data: %s", data[:200])
                    continue
                if isinstance(message, dict):
                    self._on_message(message)

    def run(self, stop_event: threading.Event) -> None:
        """Follow the stream until *stop_event* is set, reconnecting after every drop."""
        while not stop_event.is_set():
            try:
                self._consume(stop_event)
                if not stop_event.is_set():
                    logger.warning("SSE stream closed by server url=%s", self.url)
            except requests.RequestException as exc:
                logger.warning("SSE connection error url=%s: %s", self.url, exc)
            if stop_event.wait(self._reconnect_seconds):
                break
        logger.info("SSE listener stopped url=%s", self.url)
