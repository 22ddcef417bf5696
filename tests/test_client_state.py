from __future__ import annotations

import unittest

from odds_composer.client.state import ClientState, as_number
from odds_composer.client.update_queue import UpdateQueue


def _snapshot(**overrides) -> dict:
    message = {
        "type": "fixture",
        "fixture_id": 3001,
        "players": {
            "7": {
                "player_id": 7,
                "player_name": "Jokic",
                "player_team_name": "Denver",
                "markets": {
                    "points": {
                        "20": {"balance_line": 20, "balance_line_over_odds": 1.9, "balance_line_under_odds": 1.9, "is_balanced": False},
                        "22": {"balance_line": 22, "balance_line_over_odds": 2.1, "is_balanced": True},
                        "24.5": {"balance_line": 24.5, "balance_line_over_odds": 2.6, "is_suspended": 1},
                    },
                    "assists": {
                        "8": {"balance_line": 8, "milestone_line": 10, "milestone_over_odds": 3.5, "milestone_over_settlement": "W"},
                        "6": {"balance_line": 6, "milestone_line": 5, "milestone_over_odds": 1.4, "is_suspended": 1},
                    },
                },
            },
            "15": {
                "player_id": 15,
                "player_name": "Curry",
                "player_team_name": "Atlanta",
                "markets": {
                    "points": {"30": {"balance_line": 30}, "28": {"balance_line": 28}},
                },
            },
        },
        "new_lines": 7,
    }
    message.update(overrides)
    return message


class ClientStateApplyTests(unittest.TestCase):
    def test_snapshot_replaces_view(self) -> None:
        state = ClientState(clock=lambda: 1_700_000_000.0)

        changed = state.apply(_snapshot())

        self.assertTrue(changed)
        self.assertEqual(3001, state.fixture["fixture_id"])
        self.assertTrue(state.fixture["isNew"])
        self.assertEqual("1700000000000", state.fixture["messageId"])
        self.assertEqual(7, state.last_new_lines)

    def test_snapshot_resets_overrides_specials_and_accordions(self) -> None:
        state = ClientState()
        state.apply(_snapshot(specials=[{"market_type": "first_basket", "selection_name": "A"}]))
        state.step_balance_line("7", "points", "up")
        state.toggle_accordion("first_basket")

        state.apply(_snapshot(fixture_id=3002))

        self.assertEqual({}, state.balance_lines)
        self.assertEqual({}, state.open_accordions)
        self.assertIsNone(state.specials)
        self.assertEqual(3002, state.fixture["fixture_id"])

    def test_update_merges_top_level_and_takes_players(self) -> None:
        state = ClientState()
        state.apply(_snapshot(messageId="snap-1"))
        state.step_balance_line("7", "points", "up")
        players = {"7": {"player_id": 7, "markets": {"points": {"21": {"is_balanced": True}}}}}

        changed = state.apply({"isUpdate": True, "players": players, "updateMessageId": "u-1"})

        self.assertTrue(changed)
        self.assertEqual(players, state.fixture["players"])
        self.assertEqual(3001, state.fixture["fixture_id"])
        self.assertEqual("snap-1", state.fixture["messageId"])
        self.assertEqual("u-1", state.fixture["updateMessageId"])
        self.assertEqual({}, state.balance_lines)
        self.assertEqual(21, state.current_balance_line("7", "points"))

    def test_messages_without_players_do_not_touch_view(self) -> None:
        state = ClientState()
        state.apply(_snapshot())

        changed = state.apply({"type": "notification", "message": "hello"})

        self.assertFalse(changed)
        self.assertEqual(3001, state.fixture["fixture_id"])
        self.assertFalse(state.apply("not-a-dict"))

    def test_clear_message_resets_everything(self) -> None:
        state = ClientState()
        state.apply(_snapshot())

        self.assertTrue(state.apply({"type": "clear"}))

        self.assertIsNone(state.fixture)
        self.assertEqual([], state.table_rows())

    def test_specials_message(self) -> None:
        state = ClientState()
        specials = [
            {"id": 1, "market_type": "first_basket", "selection_name": "Murray"},
            {"id": 2, "market_type": "first_basket", "selection_name": "Gordon"},
            {"id": 3, "market_type": "double_double", "selection_name": "Jokic"},
        ]

        state.apply({"isSpecials": True, "specials": specials})

        grouped = state.specials_by_market_type()
        self.assertEqual(["Gordon", "Murray"], [s["selection_name"] for s in grouped["first_basket"]])
        self.assertEqual(["Jokic"], [s["selection_name"] for s in grouped["double_double"]])
        self.assertTrue(state.toggle_accordion("first_basket"))
        self.assertFalse(state.toggle_accordion("first_basket"))


class BalanceLineTests(unittest.TestCase):
    def setUp(self) -> None:
        self.state = ClientState()
        self.state.apply(_snapshot())

    def test_players_sorted_by_team(self) -> None:
        self.assertEqual(["15", "7"], [key for key, _ in self.state.players()])

    def test_available_lines_sorted_numerically(self) -> None:
        self.assertEqual([20, 22, 24.5], self.state.available_lines("7", "points"))
        self.assertEqual([], self.state.available_lines("7", "blocks"))

    def test_default_prefers_balanced_then_smallest(self) -> None:
        self.assertEqual(22, self.state.current_balance_line("7", "points"))
        self.assertEqual(28, self.state.current_balance_line(15, "points"))
        self.assertIsNone(self.state.current_balance_line("7", "blocks"))

    def test_step_up_and_down_wrap(self) -> None:
        self.assertEqual(24.5, self.state.step_balance_line("7", "points", "up"))
        self.assertEqual(20, self.state.step_balance_line("7", "points", "up"))
        self.assertEqual(24.5, self.state.step_balance_line("7", "points", "down"))
        self.assertEqual(22, self.state.step_balance_line("7", "points", "down"))

    def test_step_from_vanished_line_moves_to_neighbour(self) -> None:
        self.state.balance_lines[("7", "points")] = 23

        self.assertEqual(24.5, self.state.step_balance_line("7", "points", "up"))
        self.state.balance_lines[("7", "points")] = 23
        self.assertEqual(22, self.state.step_balance_line("7", "points", "down"))
        self.state.balance_lines[("7", "points")] = 99
        self.assertEqual(20, self.state.step_balance_line("7", "points", "up"))

    def test_stepped_line_leaves_view_unchanged(self) -> None:
        self.assertEqual(24.5, self.state.stepped_line("7", "points", "up"))
        self.assertEqual(20, self.state.stepped_line("7", "points", "down"))
        self.assertEqual({}, self.state.balance_lines)
        self.assertIsNone(self.state.stepped_line("7", "blocks", "up"))

    def test_pick_balance_line_accepts_offered_lines_only(self) -> None:
        self.assertTrue(self.state.pick_balance_line("7", "points", "24.5"))
        self.assertEqual(24.5, self.state.current_balance_line("7", "points"))

        self.assertFalse(self.state.pick_balance_line("7", "points", "23"))
        self.assertFalse(self.state.pick_balance_line("7", "points", "abc"))
        self.assertFalse(self.state.pick_balance_line("99", "points", "20"))
        self.assertEqual({("7", "points"): 24.5}, self.state.balance_lines)

    def test_step_rejects_unknown_direction(self) -> None:
        with self.assertRaises(ValueError):
            self.state.step_balance_line("7", "points", "left")

    def test_cell_view_follows_current_line(self) -> None:
        cell = self.state.cell_view("7", "points")
        self.assertEqual(22, cell.balance_line)
        self.assertEqual(2.1, cell.over_odds)
        self.assertIsNone(cell.under_odds)
        self.assertTrue(cell.is_balanced)

        self.state.step_balance_line("7", "points", "up")
        cell = self.state.cell_view("7", "points")
        self.assertEqual(24.5, cell.balance_line)
        self.assertTrue(cell.is_suspended)
        self.assertIsNone(self.state.cell_view("7", "blocks"))

    def test_table_rows(self) -> None:
        rows = self.state.table_rows(("points", "assists"))

        self.assertEqual(["Curry", "Jokic"], [row["player_name"] for row in rows])
        self.assertIsNone(rows[0]["cells"]["assists"])
        self.assertEqual(22, rows[1]["cells"]["points"].balance_line)


class MilestoneTests(unittest.TestCase):
    def test_milestone_columns_and_cells(self) -> None:
        state = ClientState()
        state.apply(_snapshot())

        self.assertEqual([5, 10], state.milestone_lines("assists"))
        cell = state.milestone_cell("7", "assists", 10)
        self.assertEqual(3.5, cell.over_odds)
        self.assertEqual("W", cell.over_settlement)
        self.assertIsNone(state.milestone_cell("15", "assists", 10))
        self.assertTrue(state.has_suspended_milestone("7", "assists"))
        self.assertFalse(state.has_suspended_milestone("15", "points"))

    def test_milestone_rows_align_with_columns(self) -> None:
        state = ClientState()
        state.apply(_snapshot())

        rows = state.milestone_rows("assists")

        self.assertEqual(["Curry", "Jokic"], [row["player_name"] for row in rows])
        self.assertEqual([None, None], rows[0]["cells"])
        self.assertFalse(rows[0]["has_suspended"])
        self.assertEqual([1.4, 3.5], [cell.over_odds for cell in rows[1]["cells"]])
        self.assertTrue(rows[1]["has_suspended"])

    def test_as_number(self) -> None:
        self.assertEqual(20, as_number("20"))
        self.assertEqual(20.5, as_number("20.5"))
        self.assertIsNone(as_number("null"))
        self.assertIsNone(as_number(True))


class UpdateQueueTests(unittest.IsolatedAsyncioTestCase):
    async def test_messages_applied_in_arrival_order(self) -> None:
        state = ClientState()
        applied: list[str] = []
        queue = UpdateQueue(
            state,
            yield_seconds=0,
            on_applied=lambda message: applied.append(message.get("updateMessageId") or message["messageId"]),
        )
        queue.start()

        queue.put(_snapshot(messageId="snap"))
        for index in range(5):
            players = {"7": {"markets": {"points": {str(20 + index): {"is_balanced": True}}}}}
            queue.put({"isUpdate": True, "players": players, "updateMessageId": f"u{index}"})
        await queue.join()
        await queue.stop()

        self.assertEqual(["snap", "u0", "u1", "u2", "u3", "u4"], applied)
        self.assertEqual(24, state.current_balance_line("7", "points"))

    async def test_failing_message_does_not_stop_consumer(self) -> None:
        class _ExplodingState(ClientState):
            def apply(self, message):
                if message.get("boom"):
                    raise RuntimeError("bad message")
                return super().apply(message)

        state = _ExplodingState()
        queue = UpdateQueue(state, yield_seconds=0)
        queue.start()

        queue.put({"boom": True})
        queue.put(_snapshot())
        with self.assertLogs("odds_composer.client.update_queue", level="ERROR"):
            await queue.join()
        await queue.stop()

        self.assertEqual(3001, state.fixture["fixture_id"])


if __name__ == "__main__":
    unittest.main()
