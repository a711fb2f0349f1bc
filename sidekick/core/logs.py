"""
Activity feed: merges intakes, check-ins, meals and notes into one
newest-first list of uniform entries.
"""

from datetime import datetime
from typing import Optional

from sidekick.config import MEDICATION_NAME, NOTE_LABEL_MAX_CHARS
from sidekick.core.dates import day_bounds_ms
from sidekick.core.labels import format_checkin_values, format_dose, format_meal_type
from sidekick.core.models import ActivityLogEntry, AppState, MedicationIntake


def within_range(timestamp: int, start: int, end: int) -> bool:
    return start <= timestamp <= end


def _truncate_label(text: str, limit: int = NOTE_LABEL_MAX_CHARS) -> str:
    return f"{text[:limit]}..." if len(text) > limit else text


def build_logs_for_range(state: AppState, start: int, end: int) -> list[ActivityLogEntry]:
    """All entries with start <= timestamp <= end, newest first."""
    logs: list[ActivityLogEntry] = []

    for entry in state.intakes:
        if not within_range(entry.timestamp, start, end):
            continue
        logs.append(ActivityLogEntry(
            id=f"med-{entry.id}",
            type="medication",
            label=MEDICATION_NAME,
            value=format_dose(entry.dose_mg, entry.with_food),
            timestamp=entry.timestamp,
        ))

    for entry in state.checkins:
        if not within_range(entry.timestamp, start, end):
            continue
        values = format_checkin_values(entry.values)
        note = f"Notiz: {entry.note}" if entry.note else ""
        if not values and not note:
            continue
        logs.append(ActivityLogEntry(
            id=f"chk-{entry.id}",
            type="checkin",
            label="Check-in",
            value=" · ".join(part for part in (values, note) if part),
            timestamp=entry.timestamp,
        ))

    for entry in state.meals:
        if not within_range(entry.timestamp, start, end):
            continue
        logs.append(ActivityLogEntry(
            id=f"meal-{entry.id}",
            type="meal",
            label=f"Mahlzeit: {format_meal_type(entry.type)}",
            value=entry.description,
            timestamp=entry.timestamp,
        ))

    for entry in state.notes:
        if not within_range(entry.timestamp, start, end):
            continue
        logs.append(ActivityLogEntry(
            id=f"note-{entry.id}",
            type="note",
            label=_truncate_label(entry.content),
            timestamp=entry.timestamp,
        ))

    logs.sort(key=lambda e: e.timestamp, reverse=True)
    return logs


def latest_intake_today(state: AppState, now: Optional[datetime] = None) -> Optional[MedicationIntake]:
    """Most recent intake if it was taken today; drives the effect curve."""
    if now is None:
        now = datetime.now()
    start, end = day_bounds_ms(now)
    todays = [i for i in state.intakes if within_range(i.timestamp, start, end)]
    if not todays:
        return None
    return max(todays, key=lambda i: i.timestamp)


def build_day_stats(state: AppState, now: Optional[datetime] = None) -> dict:
    """Simple counts for today."""
    if now is None:
        now = datetime.now()
    start, end = day_bounds_ms(now)

    def count(entries) -> int:
        return sum(1 for e in entries if within_range(e.timestamp, start, end))

    return {
        "total_logs": len(build_logs_for_range(state, start, end)),
        "intakes": count(state.intakes),
        "checkins": count(state.checkins),
        "meals": count(state.meals),
        "notes": count(state.notes),
    }
