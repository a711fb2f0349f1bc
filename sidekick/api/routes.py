"""
FastAPI API routes for Sidekick.
"""

import logging
from datetime import datetime
from typing import Optional, Union

from dateutil import parser as date_parser
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from sidekick.config import (
    API_KEY,
    DOSE_OPTIONS_MG,
    EXPORT_DEFAULT_DAYS,
    EXPORT_MAX_DAYS,
    METABOLISM_OFFSET_LIMIT_MIN,
)
from sidekick.core import database
from sidekick.core.dates import day_bounds_ms, from_ms, now_ms, parse_timestamp
from sidekick.core.effect_engine import build_effect_points, current_effect
from sidekick.core.export import build_export_markdown
from sidekick.core.logs import build_day_stats, build_logs_for_range, latest_intake_today
from sidekick.core.models import AppState, DoseMg, MealType, NotificationKey
from sidekick.core.notifications import InProcessScheduler
from sidekick.core.store import EventStore

log = logging.getLogger("sidekick.api")

router = APIRouter(prefix="/api")

Timestamp = Union[int, str, None]


# --- Auth ---

def verify_api_key(x_api_key: str = Header(default="")):
    if API_KEY and x_api_key != API_KEY:
        raise HTTPException(status_code=401, detail="Invalid API key")


def get_store(request: Request) -> EventStore:
    """The shared store. Handlers using it are async so every mutation runs on the event loop."""
    return request.app.state.store


def _timestamp(value: Timestamp) -> Optional[int]:
    try:
        return parse_timestamp(value)
    except (ValueError, OverflowError) as e:
        raise HTTPException(status_code=422, detail=f"Invalid timestamp: {value}") from e


def _range(start: Timestamp, end: Timestamp, today: bool) -> tuple[int, int]:
    if today:
        return day_bounds_ms(datetime.now())
    lo = _timestamp(start)
    hi = _timestamp(end)
    return (lo if lo is not None else 0, hi if hi is not None else now_ms())


# --- Models ---

class IntakeRequest(BaseModel):
    dose_mg: Optional[DoseMg] = None
    with_food: Optional[bool] = None
    note: Optional[str] = None
    timestamp: Timestamp = None


class IntakeUpdateRequest(BaseModel):
    dose_mg: Optional[DoseMg] = None
    with_food: Optional[bool] = None
    note: Optional[str] = None
    timestamp: Timestamp = None


class CheckinRequest(BaseModel):
    # 0 means "not rated" and is dropped by the store
    stimmung: Optional[int] = Field(None, ge=0, le=5)
    fokus: Optional[int] = Field(None, ge=0, le=5)
    reizbarkeit: Optional[int] = Field(None, ge=0, le=5)
    unruhe: Optional[int] = Field(None, ge=0, le=5)
    note: Optional[str] = None
    timestamp: Timestamp = None


class MealRequest(BaseModel):
    meal_type: MealType
    description: str = ""
    timestamp: Timestamp = None


class NoteRequest(BaseModel):
    content: str = ""
    timestamp: Timestamp = None


class DayContextRequest(BaseModel):
    date: Optional[str] = None
    sleep_quality: Optional[int] = Field(None, ge=1, le=5)


class ToggleRequest(BaseModel):
    value: bool


class OffsetRequest(BaseModel):
    minutes: float


# --- Medication ---

@router.post("/intake", dependencies=[Depends(verify_api_key)])
async def log_intake(req: IntakeRequest, store: EventStore = Depends(get_store)):
    """Log an intake. Dose and food flag default to the last used values."""
    ts = _timestamp(req.timestamp)
    intake = await store.log_medication(
        timestamp=ts if ts is not None else now_ms(),
        dose_mg=req.dose_mg if req.dose_mg is not None else store.state.last_dose_mg,
        with_food=req.with_food if req.with_food is not None else store.state.last_with_food,
        note=req.note,
    )
    return {"status": "ok", **intake.model_dump()}


@router.patch("/intake/{intake_id}", dependencies=[Depends(verify_api_key)])
async def update_intake(intake_id: str, req: IntakeUpdateRequest,
                        store: EventStore = Depends(get_store)):
    updates = req.model_dump(exclude_unset=True, exclude_none=True)
    if "timestamp" in updates:
        updates["timestamp"] = _timestamp(updates["timestamp"])
    updated = await store.update_medication(intake_id, updates)
    if updated is None:
        return {"found": False}
    return {"found": True, "status": "ok", **updated.model_dump()}


@router.get("/intake", dependencies=[Depends(verify_api_key)])
async def get_intakes(
    start: Timestamp = None,
    end: Timestamp = None,
    today: bool = False,
    store: EventStore = Depends(get_store),
):
    """Query intakes, newest first."""
    lo, hi = _range(start, end, today)
    return [i.model_dump() for i in store.state.intakes if lo <= i.timestamp <= hi]


# --- Check-ins, meals, notes ---

@router.post("/checkin", dependencies=[Depends(verify_api_key)])
async def log_checkin(req: CheckinRequest, store: EventStore = Depends(get_store)):
    values = req.model_dump(include={"stimmung", "fokus", "reizbarkeit", "unruhe"})
    entry = store.log_checkin(values, note=req.note, timestamp=_timestamp(req.timestamp))
    return {"status": "ok", **entry.model_dump()}


@router.post("/meal", dependencies=[Depends(verify_api_key)])
async def log_meal(req: MealRequest, store: EventStore = Depends(get_store)):
    entry = store.log_meal(req.meal_type, req.description, _timestamp(req.timestamp))
    if entry is None:
        return {"status": "skipped"}
    return {"status": "ok", **entry.model_dump()}


@router.post("/note", dependencies=[Depends(verify_api_key)])
async def log_note(req: NoteRequest, store: EventStore = Depends(get_store)):
    entry = store.log_note(req.content, _timestamp(req.timestamp))
    if entry is None:
        return {"status": "skipped"}
    return {"status": "ok", **entry.model_dump()}


@router.put("/day-context", dependencies=[Depends(verify_api_key)])
async def set_day_context(req: DayContextRequest, store: EventStore = Depends(get_store)):
    """Morning check: sleep quality for a day (default today)."""
    if req.date:
        try:
            day = date_parser.isoparse(req.date)
        except ValueError as e:
            raise HTTPException(status_code=422, detail=f"Invalid date: {req.date}") from e
    else:
        day = datetime.now()
    context = store.set_day_context(day, req.sleep_quality)
    return {"status": "ok", **context.model_dump()}


@router.get("/day-context/{date_key}", dependencies=[Depends(verify_api_key)])
async def get_day_context(date_key: str, store: EventStore = Depends(get_store)):
    context = store.state.day_contexts.get(date_key)
    if context is None:
        return {"found": False, "date_key": date_key}
    return {"found": True, **context.model_dump()}


# --- Settings ---

@router.get("/settings", dependencies=[Depends(verify_api_key)])
async def get_settings(store: EventStore = Depends(get_store)):
    state = store.state
    return {
        "notification_settings": state.notification_settings.model_dump(),
        "metabolism_offset_minutes": state.metabolism_offset_minutes,
        "last_dose_mg": state.last_dose_mg,
        "last_with_food": state.last_with_food,
    }


@router.put("/settings/notifications/{key}", dependencies=[Depends(verify_api_key)])
async def set_notification_setting(key: NotificationKey, req: ToggleRequest,
                                   store: EventStore = Depends(get_store)):
    await store.set_notification_setting(key, req.value)
    return {"status": "ok", **store.state.notification_settings.model_dump()}


@router.put("/settings/metabolism-offset", dependencies=[Depends(verify_api_key)])
async def set_metabolism_offset(req: OffsetRequest, store: EventStore = Depends(get_store)):
    stored = store.set_metabolism_offset(req.minutes)
    return {"status": "ok", "metabolism_offset_minutes": stored}


# --- Effect curve ---

@router.get("/effect/curve", dependencies=[Depends(verify_api_key)])
async def get_effect_curve(
    dose_mg: Optional[int] = None,
    offset_minutes: Optional[float] = Query(
        default=None, ge=-METABOLISM_OFFSET_LIMIT_MIN, le=METABOLISM_OFFSET_LIMIT_MIN,
    ),
    store: EventStore = Depends(get_store),
):
    """Sampled 0-12 h curve. Defaults to today's intake dose and the stored offset."""
    if dose_mg is not None and dose_mg not in DOSE_OPTIONS_MG:
        raise HTTPException(status_code=422, detail=f"Unsupported dose: {dose_mg} mg")
    state = store.state
    intake = latest_intake_today(state)
    dose = dose_mg or (intake.dose_mg if intake else state.last_dose_mg)
    offset = offset_minutes if offset_minutes is not None else state.metabolism_offset_minutes
    return {
        "dose_mg": dose,
        "offset_minutes": offset,
        "points": build_effect_points(dose, offset),
    }


@router.get("/effect/current", dependencies=[Depends(verify_api_key)])
async def get_current_effect(store: EventStore = Depends(get_store)):
    state = store.state
    intake = latest_intake_today(state)
    result = current_effect(intake, state.metabolism_offset_minutes)
    result["intake"] = intake.model_dump() if intake else None
    return result


# --- Feed, stats, export ---

@router.get("/logs", dependencies=[Depends(verify_api_key)])
async def get_logs(
    start: Timestamp = None,
    end: Timestamp = None,
    today: bool = False,
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    store: EventStore = Depends(get_store),
):
    """Unified activity feed, newest first."""
    lo, hi = _range(start, end, today)
    logs = build_logs_for_range(store.state, lo, hi)
    if limit is not None:
        logs = logs[:limit]
    return [entry.model_dump() for entry in logs]


@router.get("/stats/today", dependencies=[Depends(verify_api_key)])
async def get_stats_today(store: EventStore = Depends(get_store)):
    return build_day_stats(store.state)


@router.get("/export", dependencies=[Depends(verify_api_key)], response_class=PlainTextResponse)
async def export_report(
    days: int = Query(default=EXPORT_DEFAULT_DAYS, ge=1, le=EXPORT_MAX_DAYS),
    store: EventStore = Depends(get_store),
):
    return build_export_markdown(days, store.state)


# --- State, notifications, status ---

@router.get("/state", dependencies=[Depends(verify_api_key)])
async def get_state(store: EventStore = Depends(get_store)):
    return store.snapshot().model_dump()


@router.put("/state", dependencies=[Depends(verify_api_key)])
async def replace_state(state: AppState, store: EventStore = Depends(get_store)):
    """Whole-state overwrite (restore from a backup)."""
    await store.load(state)
    log.info("State replaced: %d intakes, %d check-ins, %d meals, %d notes",
             len(state.intakes), len(state.checkins), len(state.meals), len(state.notes))
    return {"status": "ok"}


@router.get("/notifications", dependencies=[Depends(verify_api_key)])
async def get_notifications(store: EventStore = Depends(get_store)):
    scheduler = store.scheduler
    if not isinstance(scheduler, InProcessScheduler):
        return []
    return [
        {**r, "fire_at_local": from_ms(r["fire_at"]).isoformat(timespec="minutes")}
        for r in scheduler.pending()
    ]


@router.get("/status")
async def status(store: EventStore = Depends(get_store)):
    state = store.state
    return {
        "status": "ok",
        "service": "sidekick",
        "intakes": len(state.intakes),
        "checkins": len(state.checkins),
        "meals": len(state.meals),
        "notes": len(state.notes),
        "last_saved": database.get_state_updated_at(),
    }
