"""
Markdown report: one section per calendar day, oldest entry first within a day.
Intended to be pasted into an AI agent for analysis.
"""

from datetime import date, datetime
from typing import Optional

from sidekick.core.dates import (
    MS_PER_HOUR,
    day_bounds_ms,
    days_back,
    format_date_short,
    format_time,
    from_ms,
    to_date_key,
)
from sidekick.core.labels import format_checkin_values, format_dose, format_meal_type
from sidekick.core.logs import within_range
from sidekick.core.models import AppState

SLEEP_FALLBACK_H = 7


def build_day_timeline(state: AppState, day: date) -> list[tuple[int, str]]:
    """(timestamp, text) lines for one day, ascending."""
    start, end = day_bounds_ms(day)
    timeline: list[tuple[int, str]] = []

    for entry in state.intakes:
        if within_range(entry.timestamp, start, end):
            timeline.append((entry.timestamp, f"Einnahme {format_dose(entry.dose_mg, entry.with_food)}"))

    for entry in state.meals:
        if within_range(entry.timestamp, start, end):
            timeline.append((entry.timestamp, f"{format_meal_type(entry.type)}: {entry.description}"))

    for entry in state.checkins:
        if not within_range(entry.timestamp, start, end):
            continue
        values = format_checkin_values(entry.values, separator=" ")
        note = f"(Notiz: {entry.note})" if entry.note else ""
        if not values and not note:
            continue
        text = " ".join(part for part in ("Check-in", values, note) if part)
        timeline.append((entry.timestamp, text))

    for entry in state.notes:
        if within_range(entry.timestamp, start, end):
            timeline.append((entry.timestamp, f"Notiz: {entry.content}"))

    context = state.day_contexts.get(to_date_key(day))
    if context is not None and context.sleep_quality:
        ts = context.sleep_logged_at
        if ts is None:
            ts = start + SLEEP_FALLBACK_H * MS_PER_HOUR
        timeline.append((ts, f"Morgen-Check Schlafqualitaet {context.sleep_quality}/5"))

    timeline.sort(key=lambda item: item[0])
    return timeline


def build_export_markdown(days: int, state: AppState, now: Optional[datetime] = None) -> str:
    lines = [f"# Sidekick Bericht ({days} Tage)", ""]

    for day in days_back(days, now):
        lines.append(f"## {format_date_short(day)}")
        lines.append("")
        timeline = build_day_timeline(state, day)
        if not timeline:
            lines.append("- Keine Eintraege")
        for ts, text in timeline:
            lines.append(f"- {format_time(from_ms(ts))} {text}")
        lines.append("")

    lines.append("---")
    lines.append("Hinweis: Der Bericht ist fuer die Analyse in einem KI-Agenten gedacht.")
    return "\n".join(lines)
