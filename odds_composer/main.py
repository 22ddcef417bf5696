from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlencode

from fastapi import Depends, FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError

from odds_composer.client.state import MARKET_TYPES, ClientState, market_type_label
from odds_composer.fixtures.reshaper import NoSnapshotError, utc_timestamp
from odds_composer.fixtures.store import FixtureStore
from odds_composer.log_buffer import get_buffer_handler, install_buffer_handler, parse_level
from odds_composer.realtime.broadcaster import Broadcaster, encode_message
from odds_composer.realtime.channels import SseChannel, WebSocketChannel
from odds_composer.realtime.registry import ConnectionRegistry
from odds_composer.schemas import DataReceivedOut, LogsResponse, PushOut, StatusOut
from odds_composer.settings import get_settings

BASE_DIR = Path(__file__).resolve().parent
settings = get_settings()

app = FastAPI(title="Odds Composer")
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)
app.mount("/static", StaticFiles(directory=BASE_DIR / "static"), name="static")
templates = Jinja2Templates(directory=BASE_DIR / "templates")
templates.env.globals["market_type_label"] = market_type_label
logger = logging.getLogger(__name__)
_started_at = time.monotonic()

_store = FixtureStore()
_registry = ConnectionRegistry(heartbeat_seconds=settings.sse_heartbeat_seconds)
_broadcaster = Broadcaster(_registry)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def get_store() -> FixtureStore:
    return _store


def get_registry() -> ConnectionRegistry:
    return _registry


def get_broadcaster() -> Broadcaster:
    return _broadcaster


@app.on_event("startup")
async def on_startup() -> None:
    install_buffer_handler()
    logger.info(
        "Odds composer starting: sse_heartbeat=%ss sse_queue=%s",
        settings.sse_heartbeat_seconds,
        settings.sse_queue_size,
    )


@app.on_event("shutdown")
async def on_shutdown() -> None:
    _registry.close_all()
    logger.info("Odds composer stopped.")


DASHBOARD_VIEWS = ("balanced", "milestones", "specials")


def _parse_pick(raw: str) -> tuple[str, str, str] | None:
    parts = raw.rsplit(":", 2)
    if len(parts) != 3 or not all(parts):
        return None
    return parts[0], parts[1], parts[2]


def _dashboard_url(view: str, market: str, picks: dict[tuple[str, str], Any], opened: list[str]) -> str:
    params: list[tuple[str, str]] = [("view", view)]
    if view == "milestones":
        params.append(("market", market))
    params.extend(("pick", f"{player}:{mt}:{line}") for (player, mt), line in picks.items())
    params.extend(("open", mt) for mt in opened)
    return "/?" + urlencode(params)


@app.get("/", response_class=HTMLResponse)
async def home(
    request: Request,
    view: str = "balanced",
    market: str = "points",
    pick: list[str] = Query(default=[]),
    open_: list[str] = Query(default=[], alias="open"),
    store: FixtureStore = Depends(get_store),
):
    if view not in DASHBOARD_VIEWS:
        raise HTTPException(status_code=400, detail=f"Unknown view: {view}")
    if market not in MARKET_TYPES:
        raise HTTPException(status_code=400, detail=f"Unsupported market: {market}")

    state = ClientState()
    if store.document is not None:
        state.apply(store.document)
    for raw in pick:
        parsed = _parse_pick(raw)
        if parsed is not None:
            state.pick_balance_line(*parsed)
    for market_type in dict.fromkeys(open_):
        state.toggle_accordion(market_type)

    picks = dict(state.balance_lines)
    opened = [mt for mt, is_open in state.open_accordions.items() if is_open]

    def view_url(target: str, target_market: str = market) -> str:
        return _dashboard_url(target, target_market, picks, opened)

    def step_url(player_id: str, market_type: str, direction: str) -> str:
        line = state.stepped_line(player_id, market_type, direction)
        return _dashboard_url(view, market, {**picks, (player_id, market_type): line}, opened)

    def toggle_url(market_type: str) -> str:
        toggled = [mt for mt in opened if mt != market_type]
        if market_type not in opened:
            toggled.append(market_type)
        return _dashboard_url(view, market, picks, toggled)

    return templates.TemplateResponse(
        request,
        "index.html",
        {
            "fixture_id": state.fixture.get("fixture_id") if state.fixture else None,
            "view": view,
            "market": market,
            "market_types": MARKET_TYPES,
            "rows": state.table_rows(MARKET_TYPES) if view == "balanced" else [],
            "milestone_lines": state.milestone_lines(market) if view == "milestones" else [],
            "milestone_rows": state.milestone_rows(market) if view == "milestones" else [],
            "specials": state.specials_by_market_type() if view == "specials" else {},
            "open_accordions": state.open_accordions,
            "view_url": view_url,
            "step_url": step_url,
            "toggle_url": toggle_url,
        },
    )


@app.get("/api/events")
async def api_events(registry: ConnectionRegistry = Depends(get_registry)):
    channel = SseChannel(max_queue=settings.sse_queue_size)

    async def stream():
        registry.register(channel)
        try:
            welcome = {
                "type": "connection",
                "message": "SSE connected",
                "timestamp": utc_timestamp(),
            }
            yield f"data: {encode_message(welcome)}\n\n"
            async for frame in channel.frames():
                yield frame
        finally:
            registry.unregister(channel)

    return StreamingResponse(stream(), media_type="text/event-stream", headers=SSE_HEADERS)


@app.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    registry: ConnectionRegistry = Depends(get_registry),
    broadcaster: Broadcaster = Depends(get_broadcaster),
) -> None:
    await websocket.accept()
    channel = WebSocketChannel(websocket)
    registry.register(channel)
    try:
        await websocket.send_text(
            encode_message(
                {
                    "type": "connection",
                    "message": "WebSocket connection established",
                    "timestamp": utc_timestamp(),
                }
            )
        )
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None and message.get("bytes") is not None:
                raw = message["bytes"].decode("utf-8", errors="replace")
            try:
                data = json.loads(raw or "")
            except json.JSONDecodeError as exc:
                logger.warning("Dropping malformed WebSocket message: %s", exc)
                continue
            logger.info("Received WebSocket message: %s", data)
            await broadcaster.broadcast(
                {"type": "broadcast", "data": data, "timestamp": utc_timestamp()},
                kind="websocket",
            )
    except WebSocketDisconnect:
        pass
    finally:
        registry.unregister(channel)


@app.get("/api/hello")
async def api_hello():
    return {"message": "Hello from the backend!"}


@app.post("/api/data", response_model=DataReceivedOut)
async def api_data(
    payload: dict,
    store: FixtureStore = Depends(get_store),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    try:
        document = store.ingest(payload)
    except NoSnapshotError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ValidationError as exc:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid payload: {exc.error_count()} validation error(s)",
        ) from exc

    await broadcaster.broadcast(document)
    return DataReceivedOut(
        message="Data received successfully!",
        receivedData=payload,
        timestamp=utc_timestamp(),
    )


@app.get("/api/status", response_model=StatusOut)
async def api_status(registry: ConnectionRegistry = Depends(get_registry)):
    websocket_count = registry.count("websocket")
    sse_count = registry.count("sse")
    return StatusOut(
        status="OK",
        timestamp=utc_timestamp(),
        uptime=round(time.monotonic() - _started_at, 3),
        websocketConnections=websocket_count,
        sseConnections=sse_count,
        totalConnections=websocket_count + sse_count,
    )


@app.post("/api/push", response_model=PushOut)
async def api_push(payload: dict, broadcaster: Broadcaster = Depends(get_broadcaster)):
    message = payload.get("message")
    if not message:
        raise HTTPException(status_code=400, detail="Message is required")

    await broadcaster.broadcast(
        {
            "type": payload.get("type") or "notification",
            "message": message,
            "timestamp": utc_timestamp(),
        }
    )
    return PushOut(
        success=True,
        message="Data pushed to all connected clients",
        timestamp=utc_timestamp(),
    )


@app.post("/api/clear", response_model=PushOut)
async def api_clear(
    store: FixtureStore = Depends(get_store),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    store.clear()
    await broadcaster.broadcast({"type": "clear", "timestamp": utc_timestamp()})
    return PushOut(
        success=True,
        message="Fixture data cleared",
        timestamp=utc_timestamp(),
    )


@app.get("/api/logs", response_model=LogsResponse)
async def api_logs(
    limit: int = 100,
    level: Optional[str] = None,
    logger_name: Optional[str] = Query(None, alias="logger"),
):
    entries = get_buffer_handler().entries(
        limit=limit,
        min_level=parse_level(level),
        logger_prefix=logger_name,
    )
    return LogsResponse(entries=entries, count=len(entries))
