from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from odds_composer.client.state import ClientState

logger = logging.getLogger(__name__)


class UpdateQueue:
    """Single consumer that applies broadcast messages strictly in arrival order.

    Each message is fully applied before the next one is taken, with a short
    yield in between so other tasks (rendering, the reader) get to run.
    """

    def __init__(
        self,
        state: ClientState,
        *,
        yield_seconds: float = 0.01,
        on_applied: Callable[[dict[str, Any]], None] | None = None,
    ) -> None:
        self._state = state
        self._yield_seconds = yield_seconds
        self._on_applied = on_applied
        self._queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self._worker: asyncio.Task | None = None

    def start(self) -> None:
        if self._worker is None:
            self._worker = asyncio.create_task(self._run(), name="client_update_queue")

    def put(self, message: dict[str, Any]) -> None:
        self._queue.put_nowait(message)

    async def join(self) -> None:
        await self._queue.join()

    async def stop(self) -> None:
        if self._worker is None:
            return
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None

    async def _run(self) -> None:
        while True:
            message = await self._queue.get()
            try:
                if self._state.apply(message) and self._on_applied is not None:
                    self._on_applied(message)
            except Exception:
                logger.exception("Failed to apply message type=%s", message.get("type"))
            finally:
                self._queue.task_done()
            await asyncio.sleep(self._yield_seconds)
