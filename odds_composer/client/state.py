"""Client-side view of the broadcast fixture stream."""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

MARKET_TYPES: tuple[str, ...] = (
    "points",
    "total_rebounds",
    "assists",
    "blocks",
    "steals",
    "turnovers",
    "three_point_field_goal",
    "pra",
    "pr",
    "pa",
    "bs",
    "ra",
)


@dataclass(frozen=True)
class CellView:
    player_id: str
    market_type: str
    balance_line: int | float
    over_odds: Any
    under_odds: Any
    is_balanced: bool
    is_suspended: bool
    settlement_value: Any
    over_settlement: Any
    under_settlement: Any


@dataclass(frozen=True)
class MilestoneCell:
    milestone_line: int | float
    over_odds: Any
    over_settlement: Any
    settlement_value: Any
    is_suspended: bool


def as_number(value: Any) -> int | float | None:
    """Numeric value of a balance-line key, or None when it is not a number."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        try:
            number = float(str(value).strip())
        except ValueError:
            return None
    if not math.isfinite(number):
        return None
    return int(number) if number.is_integer() else number


def market_type_label(market_type: str) -> str:
    return market_type.replace("_", " ").title()


def _is_suspended(cell: dict[str, Any] | None) -> bool:
    if not cell:
        return False
    return cell.get("is_suspended") in (True, 1)


class ClientState:
    """Holds the single fixture view rebuilt from broadcast messages.

    Full snapshots replace the view and drop manual line picks, specials and
    accordion state. Updates are already merged server-side, so their
    top-level fields overwrite the view and their players are taken as-is.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self.fixture: dict[str, Any] | None = None
        self.specials: dict[str, Any] | None = None
        self.balance_lines: dict[tuple[str, str], int | float] = {}
        self.open_accordions: dict[str, bool] = {}
        self.last_new_lines: int | None = None

    def reset(self) -> None:
        self.fixture = None
        self.specials = None
        self.balance_lines = {}
        self.open_accordions = {}

    def _now_iso(self) -> str:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc).isoformat()

    def _specials_from(self, message: dict[str, Any]) -> dict[str, Any]:
        return {
            "fixture_id": message.get("fixture_id"),
            "specials": message["specials"],
            "isSpecials": True,
            "specialsMessageId": message.get("messageId") or str(int(self._clock() * 1000)),
        }

    def apply(self, message: Any) -> bool:
        """Fold one broadcast message into the view; returns True when it changed."""
        if not isinstance(message, dict):
            return False
        if message.get("type") == "clear":
            self.reset()
            return True

        changed = False
        if message.get("isSpecials") and message.get("specials"):
            self.specials = message
            changed = True

        if not isinstance(message.get("players"), dict):
            return changed

        if message.get("new_lines") is not None:
            self.last_new_lines = message["new_lines"]

        if message.get("isUpdate"):
            self.fixture = {**(self.fixture or {}), **message, "timestamp": self._now_iso()}
            self.balance_lines = {}
            if message.get("specials"):
                self.specials = self._specials_from(message)
            return True

        self.fixture = {
            **message,
            "timestamp": self._now_iso(),
            "isNew": True,
            "messageId": message.get("messageId") or str(int(self._clock() * 1000)),
        }
        self.balance_lines = {}
        self.open_accordions = {}
        self.specials = self._specials_from(message) if message.get("specials") else None
        return True

    # Players and markets

    def players(self) -> list[tuple[str, dict[str, Any]]]:
        """(player key, entry) pairs sorted by team name."""
        if not self.fixture or not isinstance(self.fixture.get("players"), dict):
            return []
        items = [
            (str(key), entry)
            for key, entry in self.fixture["players"].items()
            if isinstance(entry, dict)
        ]
        return sorted(items, key=lambda item: str(item[1].get("player_team_name") or ""))

    def _player(self, player_id: Any) -> dict[str, Any] | None:
        if not self.fixture or not isinstance(self.fixture.get("players"), dict):
            return None
        player = self.fixture["players"].get(str(player_id))
        return player if isinstance(player, dict) else None

    def _market(self, player_id: Any, market_type: str) -> dict[Any, Any] | None:
        player = self._player(player_id)
        if player is None:
            return None
        market = (player.get("markets") or {}).get(market_type)
        return market if isinstance(market, dict) and market else None

    def _line_index(self, player_id: Any, market_type: str) -> list[tuple[int | float, Any]]:
        market = self._market(player_id, market_type)
        if market is None:
            return []
        pairs = []
        for key in market:
            number = as_number(key)
            if number is not None:
                pairs.append((number, key))
        pairs.sort(key=lambda pair: pair[0])
        return pairs

    def available_lines(self, player_id: Any, market_type: str) -> list[int | float]:
        return [number for number, _ in self._line_index(player_id, market_type)]

    def _cell(self, player_id: Any, market_type: str, line: int | float) -> dict[str, Any] | None:
        market = self._market(player_id, market_type)
        if market is None:
            return None
        for number, key in self._line_index(player_id, market_type):
            if number == line:
                cell = market[key]
                return cell if isinstance(cell, dict) else None
        return None

    # Balance lines

    def default_balance_line(self, player_id: Any, market_type: str) -> int | float | None:
        """First line flagged balanced, else the smallest line."""
        market = self._market(player_id, market_type)
        index = self._line_index(player_id, market_type)
        if market is None or not index:
            return None
        for number, key in index:
            cell = market[key]
            if isinstance(cell, dict) and cell.get("is_balanced") is True:
                return number
        return index[0][0]

    def current_balance_line(self, player_id: Any, market_type: str) -> int | float | None:
        key = (str(player_id), market_type)
        if key in self.balance_lines:
            return self.balance_lines[key]
        return self.default_balance_line(player_id, market_type)

    def stepped_line(self, player_id: Any, market_type: str, direction: str) -> int | float | None:
        """Line one step up or down from the current one, wrapping at the ends.

        When the picked line no longer exists, returns its nearest neighbour
        in that direction. The view is left unchanged.
        """
        if direction not in ("up", "down"):
            raise ValueError("direction must be 'up' or 'down'")
        lines = self.available_lines(player_id, market_type)
        if not lines:
            return None

        current = self.current_balance_line(player_id, market_type)
        if current in lines:
            index = lines.index(current)
            step = 1 if direction == "up" else -1
            new_line = lines[(index + step) % len(lines)]
        elif direction == "up":
            higher = [line for line in lines if line > current]
            new_line = higher[0] if higher else lines[0]
        else:
            lower = [line for line in lines if line < current]
            new_line = lower[-1] if lower else lines[-1]

        return new_line

    def step_balance_line(self, player_id: Any, market_type: str, direction: str) -> int | float | None:
        new_line = self.stepped_line(player_id, market_type, direction)
        if new_line is not None:
            self.balance_lines[(str(player_id), market_type)] = new_line
        return new_line

    def pick_balance_line(self, player_id: Any, market_type: str, line: Any) -> bool:
        """Show *line* for this cell; ignored unless the market offers it."""
        number = as_number(line)
        if number is None or number not in self.available_lines(player_id, market_type):
            return False
        self.balance_lines[(str(player_id), market_type)] = number
        return True

    def cell_view(self, player_id: Any, market_type: str) -> CellView | None:
        line = self.current_balance_line(player_id, market_type)
        if line is None:
            return None
        cell = self._cell(player_id, market_type, line) or {}
        return CellView(
            player_id=str(player_id),
            market_type=market_type,
            balance_line=line,
            over_odds=cell.get("balance_line_over_odds"),
            under_odds=cell.get("balance_line_under_odds"),
            is_balanced=bool(cell.get("is_balanced")),
            is_suspended=_is_suspended(cell),
            settlement_value=cell.get("settlement_value"),
            over_settlement=cell.get("balance_line_over_settlement"),
            under_settlement=cell.get("balance_line_under_settlement"),
        )

    def table_rows(self, market_types: tuple[str, ...] = MARKET_TYPES) -> list[dict[str, Any]]:
        rows = []
        for key, player in self.players():
            rows.append(
                {
                    "player_id": key,
                    "player_name": player.get("player_name"),
                    "player_team_name": player.get("player_team_name"),
                    "cells": {mt: self.cell_view(key, mt) for mt in market_types},
                }
            )
        return rows

    # Milestones

    def _milestone_value(self, key: Any, cell: Any) -> int | float | None:
        if isinstance(cell, dict):
            for field in ("milestone_line", "line_key"):
                number = as_number(cell.get(field))
                if number is not None:
                    return number
        return as_number(key)

    def milestone_lines(self, market_type: str) -> list[int | float]:
        seen: set[int | float] = set()
        for key, _ in self.players():
            market = self._market(key, market_type)
            if market is None:
                continue
            for line_key, cell in market.items():
                if as_number(line_key) is None:
                    continue
                value = self._milestone_value(line_key, cell)
                if value is not None:
                    seen.add(value)
        return sorted(seen)

    def milestone_cell(self, player_id: Any, market_type: str, milestone_line: int | float) -> MilestoneCell | None:
        market = self._market(player_id, market_type)
        if market is None:
            return None
        for key, cell in market.items():
            if not isinstance(cell, dict):
                continue
            if self._milestone_value(key, cell) == milestone_line:
                return MilestoneCell(
                    milestone_line=milestone_line,
                    over_odds=cell.get("milestone_over_odds"),
                    over_settlement=cell.get("milestone_over_settlement"),
                    settlement_value=cell.get("settlement_value"),
                    is_suspended=_is_suspended(cell),
                )
        return None

    def has_suspended_milestone(self, player_id: Any, market_type: str) -> bool:
        return any(
            cell is not None and cell.is_suspended
            for cell in (
                self.milestone_cell(player_id, market_type, line)
                for line in self.milestone_lines(market_type)
            )
        )

    def milestone_rows(self, market_type: str) -> list[dict[str, Any]]:
        """One row per player with cells aligned to ``milestone_lines(market_type)``."""
        lines = self.milestone_lines(market_type)
        rows = []
        for key, player in self.players():
            rows.append(
                {
                    "player_id": key,
                    "player_name": player.get("player_name"),
                    "player_team_name": player.get("player_team_name"),
                    "cells": [self.milestone_cell(key, market_type, line) for line in lines],
                    "has_suspended": self.has_suspended_milestone(key, market_type),
                }
            )
        return rows

    # Specials

    def specials_by_market_type(self) -> dict[str, list[dict[str, Any]]]:
        if not self.specials or not isinstance(self.specials.get("specials"), list):
            return {}
        grouped: dict[str, list[dict[str, Any]]] = {}
        for special in self.specials["specials"]:
            if isinstance(special, dict):
                grouped.setdefault(special.get("market_type"), []).append(special)
        for selections in grouped.values():
            selections.sort(key=lambda special: str(special.get("selection_name") or ""))
        return grouped

    def toggle_accordion(self, market_type: str) -> bool:
        self.open_accordions[market_type] = not self.open_accordions.get(market_type, False)
        return self.open_accordions[market_type]
