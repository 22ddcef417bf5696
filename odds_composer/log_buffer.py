"""Recent service activity kept in memory and served by ``GET /api/logs``."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime, timezone

from odds_composer.settings import get_settings

PACKAGE_LOGGER = "odds_composer"


@dataclass(frozen=True)
class LogEntry:
    timestamp: str
    level: str
    logger: str
    message: str


class BufferHandler(logging.Handler):
    """Ring buffer of formatted records, newest served first.

    Each slot keeps the numeric level next to the entry so reads can filter
    by severity and by logger prefix without re-parsing level names.
    """

    def __init__(self, maxlen: int = 200) -> None:
        super().__init__()
        self._records: deque[tuple[int, LogEntry]] = deque(maxlen=maxlen)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            stamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
            entry = LogEntry(
                timestamp=stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
                level=record.levelname,
                logger=record.name,
                message=self.format(record),
            )
        except Exception:
            self.handleError(record)
            return
        self._records.append((record.levelno, entry))

    def entries(
        self,
        limit: int = 100,
        *,
        min_level: int = logging.NOTSET,
        logger_prefix: str | None = None,
    ) -> list[dict]:
        if limit < 1:
            return []
        selected: list[dict] = []
        for levelno, entry in reversed(self._records):
            if levelno < min_level:
                continue
            if logger_prefix and not (
                entry.logger == logger_prefix or entry.logger.startswith(logger_prefix + ".")
            ):
                continue
            selected.append(asdict(entry))
            if len(selected) == limit:
                break
        return selected

    def __len__(self) -> int:
        return len(self._records)


def parse_level(name: str | None) -> int:
    """Numeric level for a name such as ``"warning"``; unknown names mean no filter."""
    if not name:
        return logging.NOTSET
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else logging.NOTSET


_handler: BufferHandler | None = None


def get_buffer_handler() -> BufferHandler:
    global _handler
    if _handler is None:
        _handler = BufferHandler(maxlen=get_settings().log_buffer_size)
        _handler.setFormatter(logging.Formatter("%(message)s"))
    return _handler


def install_buffer_handler() -> BufferHandler:
    """Attach the buffer to the package logger so every submodule feeds it."""
    handler = get_buffer_handler()
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    if handler not in package_logger.handlers:
        package_logger.addHandler(handler)
    package_logger.setLevel(parse_level(get_settings().log_level) or logging.INFO)
    return handler
