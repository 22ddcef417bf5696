from __future__ import annotations

import json
import logging
from typing import Any

from odds_composer.realtime.registry import ConnectionRegistry

logger = logging.getLogger(__name__)


def encode_message(message: dict[str, Any]) -> str:
    return json.dumps(message, ensure_ascii=False, separators=(",", ":"), default=str)


class Broadcaster:
    """Best-effort fan-out of one message to every registered channel."""

    def __init__(self, registry: ConnectionRegistry) -> None:
        self._registry = registry

    async def broadcast(self, message: dict[str, Any], *, kind: str | None = None) -> int:
        """Send *message* to all open channels (or only those of *kind*).

        The message is encoded once. A channel that fails to take the write is
        unregistered and the fan-out carries on; returns how many channels got it.
        """
        payload = encode_message(message)
        delivered = 0
        dead = []
        for channel in self._registry.channels(kind):
            if not channel.is_open:
                continue
            try:
                await channel.send(payload)
                delivered += 1
            except Exception as exc:
                logger.warning(
                    "Dropping %s client %s after write failure: %s: %s",
                    channel.kind,
                    channel.channel_id,
                    type(exc).__name__,
                    exc,
                )
                dead.append(channel)

        for channel in dead:
            self._registry.unregister(channel)

        logger.debug(
            "Broadcast type=%s delivered=%s dropped=%s",
            message.get("type"),
            delivered,
            len(dead),
        )
        return delivered
