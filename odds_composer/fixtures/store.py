"""In-memory holder for the current fixture document."""

from __future__ import annotations

import logging
from typing import Any

from odds_composer.fixtures.reshaper import NoSnapshotError, apply_update, build_snapshot
from odds_composer.fixtures.schema import SnapshotPayload, UpdatePayload

logger = logging.getLogger(__name__)

_META_FIELDS = {"fixture_id", "isNew", "messageId", "specials"}


class FixtureStore:
    """Owns one fixture document at a time.

    Callers must invoke it from a single event loop; there is no lock.
    """

    def __init__(self) -> None:
        self._document: dict[str, Any] | None = None

    @property
    def document(self) -> dict[str, Any] | None:
        return self._document

    def ingest(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Route *payload* to a snapshot or an update and return the document to broadcast.

        A payload carrying ``player_id`` is an update, anything else a snapshot.
        Raises pydantic.ValidationError for malformed line lists and
        NoSnapshotError for an update that arrives before any snapshot.
        """
        if "player_id" in payload:
            return self.apply_update(UpdatePayload.model_validate(payload))
        return self.replace_snapshot(SnapshotPayload.model_validate(payload))

    def replace_snapshot(self, snapshot: SnapshotPayload) -> dict[str, Any]:
        meta = snapshot.model_dump(include=_META_FIELDS, exclude_unset=True)
        document = build_snapshot(snapshot.player_lines, meta)
        self._document = document
        logger.info(
            "Snapshot stored: fixture_id=%s players=%s lines=%s",
            document.get("fixture_id"),
            len(document["players"]),
            document["new_lines"],
        )
        return document

    def apply_update(self, update: UpdatePayload) -> dict[str, Any]:
        if self._document is None:
            logger.warning("Update for player_id=%s rejected: no snapshot", update.player_id)
            raise NoSnapshotError("No fixture snapshot to update. Send a full snapshot first.")
        document = apply_update(self._document, update)
        logger.info(
            "Update applied: fixture_id=%s player_id=%s lines=%s",
            document.get("fixture_id"),
            update.player_id,
            document["new_lines"],
        )
        return document

    def clear(self) -> None:
        if self._document is not None:
            logger.info("Fixture cleared: fixture_id=%s", self._document.get("fixture_id"))
        self._document = None
