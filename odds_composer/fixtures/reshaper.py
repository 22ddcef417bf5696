"""Reshape flat line records into the fixture -> player -> market -> line document."""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from odds_composer.fixtures.schema import MISSING, LineRecord, UpdatePayload

logger = logging.getLogger(__name__)

UNKNOWN_PLAYER_KEY = "unknown"

# Captured once per player from the first line seen for that player.
PLAYER_FIELDS = (
    "player_id",
    "player_name",
    "player_position",
    "player_team_id",
    "player_team_name",
    "opponent_team_id",
    "opponent_team_name",
    "game_date",
    "fixture_id",
)

# Player-level fields that do not belong in a market cell. Ids stay in the cell.
_PLAYER_ONLY_FIELDS = frozenset(PLAYER_FIELDS) - {"player_id", "fixture_id"}

_SNAPSHOT_META_FIELDS = ("isNew", "messageId", "specials")


class NoSnapshotError(RuntimeError):
    pass


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def normalize_number(value: Any) -> Any:
    """Collapse numeric-looking values so 20, 20.0 and "20" share one key."""
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else value
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return value
        if not math.isfinite(number):
            return value
        return int(number) if number.is_integer() else number
    return value


def _hashable(value: Any) -> Any:
    if isinstance(value, (dict, list)):
        return str(value)
    return value


def player_key(value: Any) -> str:
    if value is MISSING or value is None:
        return UNKNOWN_PLAYER_KEY
    return str(normalize_number(value))


def line_key(record: LineRecord) -> Any:
    """Balance line of *record*, falling back to its milestone line."""
    value = record.value("balance_line", None)
    if value is None:
        value = record.value("milestone_line", None)
    if value is None:
        return None
    return _hashable(normalize_number(value))


def _as_record(item: LineRecord | Mapping[str, Any]) -> LineRecord:
    if isinstance(item, LineRecord):
        return item
    return LineRecord.model_validate(item)


def _player_entry(record: LineRecord) -> dict[str, Any]:
    entry: dict[str, Any] = {}
    for field in PLAYER_FIELDS:
        value = record.value(field)
        if value is not MISSING:
            entry[field] = value
    entry["markets"] = {}
    return entry


def _cell(record: LineRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in record.present().items()
        if key not in _PLAYER_ONLY_FIELDS
    }


def build_snapshot(
    lines: Iterable[LineRecord | Mapping[str, Any]],
    meta: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Build a fresh fixture document from a full snapshot's line records.

    Players are created on first sight and keep the descriptive fields of that
    first line. A repeated (player, market, line) triple overwrites the earlier
    cell, so the last one in input order wins.
    """
    meta = meta or {}
    records = [_as_record(item) for item in lines]
    players: dict[str, dict[str, Any]] = {}

    for record in records:
        key = player_key(record.value("player_id"))
        player = players.get(key)
        if player is None:
            player = _player_entry(record)
            players[key] = player

        market_type = _hashable(record.value("market_type", None))
        market = player["markets"].setdefault(market_type, {})
        market[line_key(record)] = _cell(record)

    document: dict[str, Any] = {
        "type": "fixture",
        "fixture_id": meta.get("fixture_id"),
        "players": players,
    }
    for field in _SNAPSHOT_META_FIELDS:
        if field in meta:
            document[field] = meta[field]
    document["new_lines"] = len(records)
    document["timestamp"] = utc_timestamp()
    return document


def apply_update(existing: dict[str, Any] | None, update: UpdatePayload) -> dict[str, Any]:
    """Replace one player's market with the update's lines.

    The first line's market_type names the market for the whole batch. The
    market's previous lines are dropped, and a line marked balanced clears the
    flag on every line written before it. Unknown players and empty batches
    leave the players untouched.
    """
    if existing is None:
        raise NoSnapshotError("No fixture snapshot to update. Send a full snapshot first.")

    sent = update.model_fields_set
    records = [_as_record(item) for item in (update.lines or [])]
    players = existing.get("players")
    if not isinstance(players, dict):
        players = {}

    key = player_key(update.player_id if "player_id" in sent else MISSING)
    player = players.get(key)
    if player is None:
        logger.warning("Update for unknown player_id=%s left fixture unchanged", key)
    elif not records:
        logger.info("Update for player_id=%s has no lines, fixture unchanged", key)
    else:
        market_type = _hashable(records[0].value("market_type", None))
        fresh: dict[Any, dict[str, Any]] = {}
        player.setdefault("markets", {})[market_type] = fresh
        for record in records:
            cell = _cell(record)
            if cell.get("is_balanced") is True:
                for other in fresh.values():
                    other["is_balanced"] = False
            fresh[line_key(record)] = cell

    document = dict(existing)
    document["type"] = "fixture_update"
    document["players"] = players
    document["isUpdate"] = True
    if "messageId" in sent:
        document["updateMessageId"] = update.messageId
    if "specials" in sent:
        document["specials"] = update.specials
    document["new_lines"] = len(records)
    document["timestamp"] = utc_timestamp()
    return document
