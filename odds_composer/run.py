"""CLI entrypoint for the odds composer server."""

from __future__ import annotations

import argparse
import logging

import uvicorn

from odds_composer.settings import get_settings


def _parse_args() -> argparse.Namespace:
    settings = get_settings()
    parser = argparse.ArgumentParser(
        description="Serve the odds composer API, WebSocket and SSE endpoints.",
    )
    parser.add_argument(
        "--host",
        type=str,
        default=settings.host,
        help="Bind address (default: HOST or 0.0.0.0).",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.port,
        help="Bind port (default: PORT or 3001).",
    )
    return parser.parse_args()


def main() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    args = _parse_args()
    logging.info("Server URL: http://localhost:%s", args.port)
    logging.info("WebSocket URL: ws://localhost:%s/ws", args.port)
    logging.info("SSE URL: http://localhost:%s/api/events", args.port)
    uvicorn.run("odds_composer.main:app", host=args.host, port=args.port, log_config=None)


if __name__ == "__main__":
    main()
