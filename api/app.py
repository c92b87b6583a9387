from __future__ import annotations

import logging
import os
import secrets
from datetime import date
from typing import Any

from fastapi import Body, Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from cadence import (
    AlreadyRunning,
    CadenceError,
    Item,
    ItemNotFound,
    LifecycleManager,
    NotRunning,
    PersistenceFailure,
    build_cleanup_stats,
    build_insight_stats,
    deserialize,
    insight_period,
    item_urgency,
    load_settings,
    open_store,
    workspace_root,
)
from cadence.snapshot import MERGE_MODES

logger = logging.getLogger(__name__)

# camelCase request keys -> Item attribute names
_FIELD_NAMES = {
    "title": "title",
    "baseTitle": "base_title",
    "categoryId": "category_id",
    "sortKey": "sort_key",
    "dueDate": "due_date",
    "recurrence": "recurrence",
    "requiredMinutes": "required_minutes",
}


# ── Auth ──────────────────────────────────────────────────────

app = FastAPI(title="MCadence", version="0.1.0")

security = HTTPBasic(auto_error=False)


def get_current_user(credentials: HTTPBasicCredentials | None = Depends(security)) -> str:
    expected_username = os.environ.get("CADENCE_USERNAME", "")
    expected_password = os.environ.get("CADENCE_PASSWORD", "")

    if not expected_username or not expected_password:
        return "guest"

    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Basic"},
        )

    correct_username = secrets.compare_digest(credentials.username.encode("utf-8"), expected_username.encode("utf-8"))
    correct_password = secrets.compare_digest(credentials.password.encode("utf-8"), expected_password.encode("utf-8"))

    if not (correct_username and correct_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Basic"},
        )

    return credentials.username


# ── Error mapping ─────────────────────────────────────────────


@app.exception_handler(ItemNotFound)
def _not_found(request: Request, exc: ItemNotFound) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(PersistenceFailure)
def _persistence_failure(request: Request, exc: PersistenceFailure) -> JSONResponse:
    logger.error("Persistence failure on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.exception_handler(CadenceError)
def _invalid_input(request: Request, exc: CadenceError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


def _manager() -> LifecycleManager:
    root = workspace_root()
    return LifecycleManager.load(open_store(root), load_settings(root))


def _item_view(mgr: LifecycleManager, item: Item) -> dict[str, Any]:
    return {**item.to_dict(), "urgency": item_urgency(item, mgr.now())}


# ── Items ─────────────────────────────────────────────────────


@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"ok": "true"}


@app.get("/api/items")
def api_list_items(
    tab: str,
    include_archived: bool = False,
    username: str = Depends(get_current_user),
) -> dict[str, Any]:
    """Visible items of one tab with their current status."""
    mgr = _manager()
    items = mgr.items_by_tab(tab, include_archived=include_archived)
    return {"tab": tab, "items": [_item_view(mgr, i) for i in items]}


@app.get("/api/items/{item_id}")
def api_get_item(item_id: str, username: str = Depends(get_current_user)) -> dict[str, Any]:
    mgr = _manager()
    return {"item": _item_view(mgr, mgr.get_item(item_id))}


@app.post("/api/items")
def api_create_item(payload: dict[str, Any] = Body(...), username: str = Depends(get_current_user)) -> dict[str, Any]:
    """Create a new item."""
    if not payload.get("tab"):
        raise HTTPException(status_code=400, detail="Missing tab")
    item = _manager().create_item(
        tab=str(payload["tab"]),
        title=str(payload.get("title") or ""),
        category_id=payload.get("categoryId"),
        due_date=payload.get("dueDate"),
        recurrence=payload.get("recurrence"),
        required_minutes=payload.get("requiredMinutes"),
        sort_key=payload.get("sortKey"),
    )
    return {"ok": True, "item": item.to_dict()}


@app.patch("/api/items/{item_id}")
def api_update_item(
    item_id: str,
    payload: dict[str, Any] = Body(...),
    username: str = Depends(get_current_user),
) -> dict[str, Any]:
    """Edit whitelisted fields of an item."""
    if not payload:
        raise HTTPException(status_code=400, detail="Missing updates")
    changes = {_FIELD_NAMES.get(k, k): v for k, v in payload.items()}
    item = _manager().update_fields(item_id, changes)
    return {"ok": True, "item": item.to_dict()}


@app.post("/api/items/{item_id}/toggle")
def api_toggle_item(item_id: str, username: str = Depends(get_current_user)) -> dict[str, Any]:
    return {"ok": True, "item": _manager().toggle_complete(item_id).to_dict()}


@app.post("/api/items/{item_id}/archive")
def api_archive_item(item_id: str, username: str = Depends(get_current_user)) -> dict[str, Any]:
    return {"ok": True, "item": _manager().archive(item_id).to_dict()}


@app.post("/api/items/{item_id}/unarchive")
def api_unarchive_item(item_id: str, username: str = Depends(get_current_user)) -> dict[str, Any]:
    return {"ok": True, "item": _manager().unarchive(item_id).to_dict()}


@app.delete("/api/items/{item_id}")
def api_delete_item(item_id: str, username: str = Depends(get_current_user)) -> dict[str, Any]:
    """Soft-delete an item. Its record and history stay in the snapshot."""
    _manager().soft_delete(item_id)
    return {"ok": True, "item_id": item_id}


# ── Timers ────────────────────────────────────────────────────


@app.post("/api/items/{item_id}/timer/start")
def api_timer_start(item_id: str, username: str = Depends(get_current_user)) -> dict[str, Any]:
    """Start the timer on a time item."""
    try:
        item = _manager().start_timer(item_id)
    except AlreadyRunning as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"ok": True, "item": item.to_dict()}


@app.post("/api/items/{item_id}/timer/stop")
def api_timer_stop(item_id: str, username: str = Depends(get_current_user)) -> dict[str, Any]:
    """Stop the running timer and credit its minutes."""
    try:
        item = _manager().stop_timer(item_id)
    except NotRunning as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"ok": True, "item": item.to_dict()}


@app.get("/api/timers")
def api_running_timers(username: str = Depends(get_current_user)) -> dict[str, Any]:
    return {"running": [i.to_dict() for i in _manager().running_timers()]}


# ── Log, cleanup, import/export ───────────────────────────────


@app.get("/api/actions")
def api_list_actions(
    item_id: str | None = None,
    limit: int = 100,
    username: str = Depends(get_current_user),
) -> dict[str, Any]:
    """Most recent action log entries, newest last."""
    log = _manager().log
    entries = log.entries_for(item_id) if item_id else list(log)
    recent = entries[-limit:] if limit > 0 else []
    return {"count": len(recent), "actions": [a.to_dict() for a in recent]}


@app.get("/api/cleanup/stats")
def api_cleanup_stats(username: str = Depends(get_current_user)) -> dict[str, Any]:
    """Cleanup candidates for the current week."""
    mgr = _manager()
    stats = build_cleanup_stats(
        mgr.state,
        mgr.now(),
        tz_name=mgr.timezone,
        week_start_day=mgr.week_start_day,
    )
    return stats.to_dict()


@app.get("/api/insight/stats")
def api_insight_stats(
    period: str = "this_week",
    start: date | None = None,
    end: date | None = None,
    username: str = Depends(get_current_user),
) -> dict[str, Any]:
    """Aggregated time-tracking and checklist statistics for a period."""
    mgr = _manager()
    window = insight_period(period, mgr.now(), mgr.timezone, mgr.week_start_day, start, end)
    stats = build_insight_stats(
        mgr.state,
        mgr.now(),
        window,
        tz_name=mgr.timezone,
        week_start_day=mgr.week_start_day,
    )
    return stats.to_dict()


@app.get("/api/export")
def api_export(username: str = Depends(get_current_user)) -> dict[str, Any]:
    """Full snapshot dump, statuses re-derived as of now."""
    return _manager().snapshot()


@app.post("/api/import")
def api_import(
    payload: dict[str, Any] = Body(...),
    mode: str = "combine",
    username: str = Depends(get_current_user),
) -> dict[str, Any]:
    """Merge (combine) or replace (overwrite) the stored state with a snapshot."""
    if mode not in MERGE_MODES:
        raise HTTPException(status_code=400, detail=f"Invalid mode: {mode}")
    incoming = deserialize(payload)
    merged = _manager().import_state(incoming, mode)
    return {"ok": True, "mode": mode, "items": len(merged.items), "actions": len(merged.actions)}
