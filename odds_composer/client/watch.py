"""Follow the odds stream from a terminal and print one of the dashboard views."""

from __future__ import annotations

import argparse
import asyncio
import logging
import threading
from typing import Any, Callable

from odds_composer.client.sse_listener import SseListener
from odds_composer.client.state import MARKET_TYPES, CellView, ClientState
from odds_composer.client.update_queue import UpdateQueue

VIEWS = ("balanced", "milestones", "specials")
READER_JOIN_SECONDS = 1.0


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Follow /api/events and print the balanced-lines table on every fixture message.",
    )
    parser.add_argument(
        "--url",
        type=str,
        default="http://localhost:3001",
        help="Base URL of the odds composer server.",
    )
    parser.add_argument(
        "--view",
        choices=VIEWS,
        default="balanced",
        help="Table to print: balanced lines, milestone ladder or specials.",
    )
    parser.add_argument(
        "--market",
        type=str,
        default="points",
        help="Market type shown by the milestones view.",
    )
    parser.add_argument(
        "--expand",
        action="append",
        default=[],
        metavar="MARKET_TYPE",
        help="Specials group to show expanded (repeatable).",
    )
    parser.add_argument(
        "--markets",
        type=str,
        default=",".join(MARKET_TYPES),
        help="Comma-separated market types to show as columns.",
    )
    return parser.parse_args()


def _parse_markets(raw: str) -> tuple[str, ...]:
    markets = tuple(market.strip() for market in raw.split(",") if market.strip())
    invalid = [market for market in markets if market not in MARKET_TYPES]
    if invalid:
        supported = ", ".join(MARKET_TYPES)
        raise SystemExit(f"Unsupported markets: {', '.join(invalid)}. Supported: {supported}")
    if not markets:
        raise SystemExit("No markets provided. Use --markets points,assists,...")
    return markets


def _format_cell(cell: CellView | None) -> str:
    if cell is None:
        return "N/A"
    over = "N/A" if cell.over_odds is None else cell.over_odds
    under = "N/A" if cell.under_odds is None else cell.under_odds
    flags = ("*" if cell.is_balanced else "") + ("S" if cell.is_suspended else "")
    return f"{cell.balance_line}{flags} O|{over} U|{under}"


def _align(rows: list[list[Any]]) -> list[str]:
    widths = [max(len(str(r[i])) for r in rows) for i in range(len(rows[0]))]
    return ["  ".join(str(value).ljust(width) for value, width in zip(r, widths)) for r in rows]


def format_table(state: ClientState, market_types: tuple[str, ...]) -> str:
    if state.fixture is None:
        return "No player data available."
    header = ["Player", *market_types]
    rows = [header]
    for row in state.table_rows(market_types):
        name = row["player_name"] or "N/A"
        if row["player_team_name"]:
            name = f"{name} ({row['player_team_name']})"
        rows.append([name, *(_format_cell(row["cells"][mt]) for mt in market_types)])
    return "\n".join([f"fixture id: {state.fixture.get('fixture_id')}", *_align(rows)])


def format_milestones(state: ClientState, market_type: str) -> str:
    if state.fixture is None:
        return "No player data available."
    lines = state.milestone_lines(market_type)
    if not lines:
        return f"No milestone lines for {market_type}."
    rows = [["Player", *(f"{line}+" for line in lines)]]
    for row in state.milestone_rows(market_type):
        name = row["player_name"] or "N/A"
        if row["has_suspended"]:
            name = f"{name} [S]"
        cells = []
        for cell in row["cells"]:
            if cell is None:
                cells.append("N/A")
                continue
            odds = "N/A" if cell.over_odds is None else cell.over_odds
            settled = f" ({cell.over_settlement})" if cell.over_settlement else ""
            cells.append(f"{odds}{'S' if cell.is_suspended else ''}{settled}")
        rows.append([name, *cells])
    return "\n".join([f"fixture id: {state.fixture.get('fixture_id')} market: {market_type}", *_align(rows)])


def format_specials(state: ClientState) -> str:
    grouped = state.specials_by_market_type()
    if not grouped:
        return "No specials data available."
    out = []
    for market_type, selections in grouped.items():
        expanded = state.open_accordions.get(market_type, False)
        out.append(f"{'-' if expanded else '+'} {market_type} ({len(selections)})")
        if expanded:
            for special in selections:
                suspended = " SUSPENDED" if special.get("is_suspended") in (True, 1) else ""
                out.append(
                    f"    {special.get('selection_name') or 'N/A'}  {special.get('odds') or 'N/A'}"
                    f"  {special.get('status') or 'N/A'}{suspended}"
                )
    return "\n".join(out)


def render(state: ClientState, view: str, market_types: tuple[str, ...], market: str) -> str:
    if view == "milestones":
        return format_milestones(state, market)
    if view == "specials":
        return format_specials(state)
    return format_table(state, market_types)


def threadsafe_delivery(
    loop: asyncio.AbstractEventLoop,
    put: Callable[[dict[str, Any]], None],
    stop_event: threading.Event,
) -> Callable[[dict[str, Any]], None]:
    """Callback for the reader thread that hands messages to *put* on *loop*.

    Messages are dropped once *stop_event* is set or the loop has closed.
    """

    def deliver(message: dict[str, Any]) -> None:
        if stop_event.is_set() or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(put, message)
        except RuntimeError:
            # Loop closed between the check and the call.
            stop_event.set()

    return deliver


async def watch(
    base_url: str,
    market_types: tuple[str, ...],
    view: str = "balanced",
    market: str = "points",
    expand: tuple[str, ...] = (),
) -> None:
    state = ClientState()

    def _on_applied(message: dict[str, Any]) -> None:
        if message.get("new_lines") is not None:
            logging.info("Received data with %s lines", message["new_lines"])
        # Snapshots close every group.
        for market_type in expand:
            if not state.open_accordions.get(market_type):
                state.toggle_accordion(market_type)
        print(render(state, view, market_types, market), flush=True)

    queue = UpdateQueue(state, on_applied=_on_applied)
    queue.start()

    loop = asyncio.get_running_loop()
    stop_event = threading.Event()

    listener = SseListener(
        f"{base_url.rstrip('/')}/api/events",
        threadsafe_delivery(loop, queue.put, stop_event),
    )
    reader = threading.Thread(target=listener.run, args=(stop_event,), name="sse-listener", daemon=True)
    reader.start()
    try:
        while reader.is_alive():
            await asyncio.sleep(0.5)
    finally:
        stop_event.set()
        await queue.stop()
        await asyncio.to_thread(reader.join, READER_JOIN_SECONDS)


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    args = _parse_args()
    markets = _parse_markets(args.markets)
    if args.market not in MARKET_TYPES:
        raise SystemExit(f"Unsupported market: {args.market}")
    try:
        asyncio.run(watch(args.url, markets, args.view, args.market, tuple(args.expand)))
    except KeyboardInterrupt:
        logging.info("Watch interrupted.")


if __name__ == "__main__":
    main()
