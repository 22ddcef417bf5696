"""Data contracts for fixture ingestion payloads."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class _Missing:
    """Marker for a field the sender never provided."""

    _instance: _Missing | None = None

    def __new__(cls) -> _Missing:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


class LineRecord(BaseModel):
    """
    One market quotation for one player at one balance/milestone line.

    Every field is optional and loosely typed. A field that was not sent is
    reported as MISSING by ``value()`` and is left out of ``present()``, so it
    never turns into a zero or a null in the reshaped document. Unknown keys
    are kept as-is.
    """

    model_config = ConfigDict(extra="allow")

    # Player / fixture identity
    id: Optional[Any] = None
    fixture_id: Optional[Any] = None
    player_id: Optional[Any] = None
    player_name: Optional[Any] = None
    player_position: Optional[Any] = None
    player_team_id: Optional[Any] = None
    player_team_name: Optional[Any] = None
    opponent_team_id: Optional[Any] = None
    opponent_team_name: Optional[Any] = None
    game_date: Optional[Any] = None

    # Market
    market_type: Optional[Any] = None
    line_key: Optional[Any] = None
    balance_line: Optional[Any] = None
    balance_line_over_odds: Optional[Any] = None
    balance_line_under_odds: Optional[Any] = None
    milestone_line: Optional[Any] = None
    milestone_over_odds: Optional[Any] = None
    milestone_under_odds: Optional[Any] = None

    # State flags
    is_balanced: Optional[Any] = None
    is_suspended: Optional[Any] = None
    is_closed: Optional[Any] = None
    suspension_reasons: Optional[Any] = None

    # Settlement
    settlement_value: Optional[Any] = None
    balance_line_over_settlement: Optional[Any] = None
    balance_line_under_settlement: Optional[Any] = None
    milestone_over_settlement: Optional[Any] = None

    created_at: Optional[Any] = None
    updated_at: Optional[Any] = None

    def value(self, name: str, default: Any = MISSING) -> Any:
        """Return the sent value of *name*, or *default* when it was not sent."""
        if name in self.model_fields_set:
            return getattr(self, name)
        extra = self.model_extra or {}
        if name in extra:
            return extra[name]
        return default

    def present(self) -> dict[str, Any]:
        """Return only the fields the sender provided, extras included."""
        data = self.model_dump(exclude_unset=True)
        for key, value in (self.model_extra or {}).items():
            data.setdefault(key, value)
        return data


class SnapshotPayload(BaseModel):
    """Full replacement of a fixture's player/market state."""

    model_config = ConfigDict(extra="allow")

    fixture_id: Optional[Any] = None
    player_lines: list[LineRecord] = []
    isNew: Optional[Any] = None
    messageId: Optional[Any] = None
    specials: Optional[Any] = None


class UpdatePayload(BaseModel):
    """Partial update scoped to one player and one market type."""

    model_config = ConfigDict(extra="allow")

    player_id: Optional[Any] = None
    lines: Optional[list[LineRecord]] = None
    messageId: Optional[Any] = None
    specials: Optional[Any] = None
