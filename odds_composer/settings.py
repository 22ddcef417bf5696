from __future__ import annotations

import logging
import os
from dataclasses import dataclass

logger = logging.getLogger(__name__)
_SETTINGS: ServerSettings | None = None


@dataclass(frozen=True)
class ServerSettings:
    host: str
    port: int
    sse_heartbeat_seconds: int
    sse_queue_size: int
    cors_origins: tuple[str, ...]
    log_level: str
    log_buffer_size: int


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("%s=%r is not an integer, using default %s", name, raw, default)
        return default
    if value < minimum:
        logger.warning("%s=%s is below %s, using default %s", name, value, minimum, default)
        return default
    return value


def _parse_origins(raw: str) -> tuple[str, ...]:
    origins = tuple(origin.strip() for origin in raw.split(",") if origin.strip())
    return origins or ("*",)


def load_settings() -> ServerSettings:
    return ServerSettings(
        host=(os.getenv("HOST") or "0.0.0.0").strip(),
        port=_env_int("PORT", 3001),
        sse_heartbeat_seconds=_env_int("SSE_HEARTBEAT_SECONDS", 30),
        sse_queue_size=_env_int("SSE_QUEUE_SIZE", 256),
        cors_origins=_parse_origins(os.getenv("CORS_ORIGINS", "*")),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").strip().upper(),
        log_buffer_size=_env_int("LOG_BUFFER_SIZE", 200),
    )


def get_settings() -> ServerSettings:
    global _SETTINGS
    if _SETTINGS is not None:
        return _SETTINGS
    _SETTINGS = load_settings()
    return _SETTINGS
