from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import requests
import uvicorn
from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from attention import ActiveWindowEvent, SessionStateError, Settings
from attention.service import TrackerService
from attention.session import FocusSession, now_ms
from webfilter import FilterController

from . import analytics
from .client import FocusBackendClient
from .config_loader import load_settings, persist_settings
from .db import Database
from .schemas import (
    ActiveWindowSchema,
    BypassRequest,
    BypassResponse,
    FilterListsSchema,
    HistoryResponse,
    NavigationRequest,
    NavigationResponse,
    SettingsSchema,
    SummaryResponse,
)

logger = logging.getLogger(__name__)

ROOT = Path(__file__).resolve().parent.parent
CONFIG_PATH = Path(os.getenv("FOCUS_CONFIG", str(ROOT / "configs" / "default.yaml")))

settings: Settings = load_settings(str(CONFIG_PATH))
DB_PATH = Path(os.getenv("FOCUS_DB_PATH", str(ROOT / settings.storage.database_path)))
DB_PATH.parent.mkdir(parents=True, exist_ok=True)
database = Database(str(DB_PATH))

app = FastAPI(title="focus-tracker", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

tracker = TrackerService(settings, db=database)
filters = FilterController(config=settings.filters)
last_rule_update: Dict[str, Any] = {"removeRuleIds": [], "addRules": []}
poll_task: Optional[asyncio.Task] = None


def _client() -> Optional[FocusBackendClient]:
    if not settings.backend.base_url:
        return None
    return FocusBackendClient(
        settings.backend.base_url,
        auth_token=settings.backend.auth_token or None,
        timeout_seconds=settings.backend.timeout_seconds,
    )


def _apply_filters(allowlist, blacklist, session_on: bool) -> Dict[str, Any]:
    global last_rule_update
    last_rule_update = filters.apply(allowlist, blacklist, session_on)
    return last_rule_update


async def _poll_once() -> None:
    client = _client()
    if client is None:
        return
    loop = asyncio.get_running_loop()
    try:
        active = await loop.run_in_executor(None, client.active_filters)
        _apply_filters(active.allowlist, active.blacklist, active.session_on)
    except requests.RequestException as exc:
        logger.warning("filter poll failed: %s", exc)
    except Exception:
        logger.exception("filter poll failed unexpectedly, keeping current filters")


async def _poll_filters() -> None:
    while True:
        await _poll_once()
        await asyncio.sleep(max(settings.backend.poll_interval_seconds, 1.0))


def _time_window(start: Optional[float], end: Optional[float]) -> Tuple[float, float]:
    now = now_ms()
    start_ms = now - 7 * 24 * 3600 * 1000 if start is None else start
    end_ms = now if end is None else end
    return start_ms, end_ms


async def _upload(record: FocusSession, session_id: int) -> Optional[str]:
    client = _client()
    if client is None or not settings.backend.user_id:
        return None
    loop = asyncio.get_running_loop()
    payload = record.to_payload(settings.backend.user_id)
    try:
        created = await loop.run_in_executor(None, client.post_session, payload)
    except requests.RequestException as exc:
        logger.warning("session upload failed, kept locally as #%d: %s", session_id, exc)
        return None
    remote_id = created.get("id") or created.get("_id")
    if remote_id:
        database.set_remote_id(session_id, str(remote_id))
    return remote_id


@app.on_event("startup")
async def startup() -> None:
    global poll_task
    if settings.backend.base_url:
        poll_task = asyncio.create_task(_poll_filters())


@app.on_event("shutdown")
async def shutdown() -> None:
    if poll_task is not None:
        poll_task.cancel()
    if tracker.running:
        await tracker.stop_session()


@app.get("/api/health")
async def health() -> Dict[str, Any]:
    return {"status": "ok", "session_running": tracker.running, "session_on": filters.session_on}


@app.get("/api/settings", response_model=SettingsSchema)
async def get_settings() -> SettingsSchema:
    return SettingsSchema(**settings.to_dict())


@app.post("/api/settings", response_model=SettingsSchema)
async def update_settings(payload: SettingsSchema) -> SettingsSchema:
    global settings
    settings = Settings.from_dict(payload.model_dump())
    tracker.update_settings(settings)
    filters.config = settings.filters
    filters.bypasses.window_ms = settings.filters.bypass_window_ms
    persist_settings(str(CONFIG_PATH), payload.model_dump())
    return payload


@app.post("/api/session/start")
async def start_session() -> Dict[str, Any]:
    try:
        await tracker.start_session()
    except SessionStateError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return {"status": "STARTED", **tracker.metrics().to_dict()}


@app.post("/api/session/pause")
async def pause_session() -> Dict[str, Any]:
    if not tracker.running:
        raise HTTPException(status_code=409, detail="session is not running")
    tracker.pause_session()
    return {"status": "PAUSED"}


@app.post("/api/session/resume")
async def resume_session() -> Dict[str, Any]:
    if not tracker.running:
        raise HTTPException(status_code=409, detail="session is not running")
    tracker.resume_session()
    return {"status": "RESUMED"}


@app.post("/api/session/stop")
async def stop_session() -> Dict[str, Any]:
    try:
        record = await tracker.stop_session()
    except SessionStateError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    session_id = database.save_session(record)
    remote_id = await _upload(record, session_id)
    return {
        "id": session_id,
        "remoteId": remote_id,
        "session": record.to_payload(settings.backend.user_id),
        "sites": record.sites,
        "durationAwayMs": record.duration_away_ms,
    }


@app.get("/api/session/live")
async def live_session() -> Dict[str, Any]:
    payload = tracker.metrics().to_dict()
    payload["running"] = tracker.running
    payload["paused"] = tracker.session.paused
    payload.update(tracker.session.accumulator.totals(now_ms()))
    return payload


@app.post("/api/active-window")
async def active_window(payload: ActiveWindowSchema) -> Dict[str, Any]:
    event = ActiveWindowEvent.from_payload(payload.model_dump())
    tracker.post_window_event(event)
    accumulator = tracker.session.accumulator
    return {"app": accumulator.current_app, "site": accumulator.current_site}


@app.websocket("/api/stream")
async def websocket_stream(ws: WebSocket) -> None:
    await ws.accept()
    queue = tracker.subscribe()
    try:
        while True:
            payload = await queue.get()
            await ws.send_text(payload)
    except WebSocketDisconnect:
        pass
    finally:
        tracker.unsubscribe(queue)


@app.get("/api/history", response_model=HistoryResponse)
async def history(
    start: Optional[float] = Query(None),
    end: Optional[float] = Query(None),
) -> HistoryResponse:
    start_ms, end_ms = _time_window(start, end)
    sessions = database.history(start_ms, end_ms)
    events = database.events(start_ms / 1000.0, end_ms / 1000.0)
    return HistoryResponse(sessions=sessions, events=events)


@app.get("/api/summary", response_model=SummaryResponse)
async def summary() -> SummaryResponse:
    sessions = database.all_sessions()
    return SummaryResponse(
        avg_focus_score=analytics.avg_focus_score(sessions),
        total_sessions=len(sessions),
        current_streak=analytics.current_streak(sessions),
        recent=analytics.recent_sessions(sessions),
        app_totals=database.app_totals(),
    )


@app.delete("/api/summary/app-totals")
async def clear_app_totals() -> Dict[str, str]:
    database.clear_app_totals()
    return {"status": "CLEARED"}


@app.get("/api/export")
async def export(
    start: Optional[float] = Query(None),
    end: Optional[float] = Query(None),
) -> StreamingResponse:
    start_ms, end_ms = _time_window(start, end)
    filename = f"sessions_{int(start_ms)}_{int(end_ms)}.csv"
    generator = database.export_csv(start_ms, end_ms)
    return StreamingResponse(generator, media_type="text/csv", headers={"Content-Disposition": f'attachment; filename="{filename}"'})


@app.get("/api/filters", response_model=FilterListsSchema)
async def get_filters() -> FilterListsSchema:
    return FilterListsSchema(allowlist=filters.allowlist, blacklist=filters.blocklist, sessionOn=filters.session_on)


@app.put("/api/filters")
async def put_filters(payload: FilterListsSchema) -> Dict[str, Any]:
    return _apply_filters(payload.allowlist, payload.blacklist, payload.sessionOn)


@app.get("/api/filters/rules")
async def get_rules() -> Dict[str, Any]:
    return {"rules": filters.batch.to_payload(), "update": last_rule_update}


@app.post("/api/navigation", response_model=NavigationResponse)
async def navigation(payload: NavigationRequest) -> NavigationResponse:
    decision = filters.check(payload.tabId, payload.url, now_ms())
    blocked = filters.blocked_navigation(payload.tabId) if decision.soft_block else None
    return NavigationResponse(
        softBlock=decision.soft_block,
        reason=decision.reason,
        blocked=blocked.to_dict() if blocked else None,
    )


@app.post("/api/bypass", response_model=BypassResponse)
async def bypass(payload: BypassRequest) -> BypassResponse:
    parked = filters.grant_bypass(payload.tabId, now_ms())
    return BypassResponse(
        tabId=payload.tabId,
        blockedUrl=parked.blocked_url if parked else None,
        expiresInMs=settings.filters.bypass_window_ms,
    )


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run("backend.main:app", host="127.0.0.1", port=8000, reload=False)
