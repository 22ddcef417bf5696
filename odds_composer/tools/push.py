"""Post a snapshot or update payload file to a running server."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

import requests

DEFAULT_TIMEOUT_SECONDS = 10


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Send a JSON payload file to POST /api/data.",
    )
    parser.add_argument("file", type=Path, help="Path to the JSON payload.")
    parser.add_argument(
        "--url",
        type=str,
        default="http://localhost:3001",
        help="Base URL of the odds composer server.",
    )
    return parser.parse_args()


def load_payload(path: Path) -> dict:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise SystemExit(f"Cannot read payload {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise SystemExit(f"Payload {path} must be a JSON object")
    return payload


def push_payload(base_url: str, payload: dict) -> dict:
    response = requests.post(
        f"{base_url.rstrip('/')}/api/data",
        json=payload,
        timeout=DEFAULT_TIMEOUT_SECONDS,
    )
    if response.status_code != 200:
        raise SystemExit(f"Server rejected payload: status={response.status_code} body={response.text[:300]}")
    return response.json()


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    args = _parse_args()
    payload = load_payload(args.file)
    kind = "update" if "player_id" in payload else "snapshot"

    try:
        result = push_payload(args.url, payload)
    except requests.RequestException as exc:
        logging.error("Request failed: %s", exc)
        raise SystemExit(1) from exc

    logging.info("Sent %s to %s: %s", kind, args.url, result.get("message"))


if __name__ == "__main__":
    main()
