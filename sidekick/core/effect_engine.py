"""
Effect Engine: piecewise effect curve for a methylphenidate intake.

This is a display heuristic, not a pharmacokinetic model. It shapes the
familiar two-peak profile of a modified-release dose so the dashboard can
show roughly where in the day's curve the user is.

Base curve B(t) over hours since intake:
  t <= 0           0
  0   < t <= 1.5   linear 0 -> 100        (peak 1)
  1.5 < t <= 3     linear 100 -> 80
  3   < t <= 4     80                     (plateau)
  4   < t <= 5.5   linear 80 -> 95        (peak 2)
  5.5 < t <= 12    95 * e^(-k*(t - 5.5)), k = ln(95 / 2) / (12 - 5.5)
  t > 12           0

Effect E(h) for hour h, offset o (minutes) and dose D:
  E = clamp((clamp(B(h - o/60) * s(D) / 100, 0, 1) ^ 1.3) * 100, 0, 100)
  s(20 mg) = 1.15, s(10 mg) = 1.0
  E(h <= 0) = 0
"""

import math
from datetime import datetime
from typing import Optional

from sidekick.config import (
    EFFECT_CURVE,
    EFFECT_DISPLAY_EXPONENT,
    EFFECT_DOSE_SCALE,
    EFFECT_SAMPLE_STEP_H,
)
from sidekick.core.dates import clamp, hours_between, to_ms
from sidekick.core.models import MedicationIntake

WINDOW_START_H = EFFECT_CURVE["start_hour"]
WINDOW_END_H = EFFECT_CURVE["end_hour"]

# Solved once so the tail lands exactly on tail_target at end_hour.
_DECAY = math.log(EFFECT_CURVE["peak2_effect"] / EFFECT_CURVE["tail_target"]) / (
    EFFECT_CURVE["end_hour"] - EFFECT_CURVE["peak2_hour"]
)


# ── Curve pieces ─────────────────────────────────────────────────────

def _lerp(t: float, t0: float, t1: float, v0: float, v1: float) -> float:
    ratio = (t - t0) / (t1 - t0)
    return v0 + (v1 - v0) * ratio


def base_effect(hour: float) -> float:
    """Unscaled base curve B(t), 0-100."""
    c = EFFECT_CURVE
    if hour <= c["start_hour"]:
        return 0.0
    if hour <= c["peak1_hour"]:
        return _lerp(hour, c["start_hour"], c["peak1_hour"], 0.0, c["peak1_effect"])
    if hour <= c["plateau_start_hour"]:
        return _lerp(hour, c["peak1_hour"], c["plateau_start_hour"],
                     c["peak1_effect"], c["plateau_effect"])
    if hour <= c["plateau_end_hour"]:
        return c["plateau_effect"]
    if hour <= c["peak2_hour"]:
        return _lerp(hour, c["plateau_end_hour"], c["peak2_hour"],
                     c["plateau_effect"], c["peak2_effect"])
    if hour <= c["end_hour"]:
        return c["peak2_effect"] * math.exp(-_DECAY * (hour - c["peak2_hour"]))
    return 0.0


def dose_scale(dose_mg: int) -> float:
    return EFFECT_DOSE_SCALE.get(dose_mg, 1.0)


def shape_effect(value: float) -> float:
    """Compress low values for display. Monotonic on [0, 100]."""
    normalized = clamp(value / 100.0, 0.0, 1.0)
    return clamp(math.pow(normalized, EFFECT_DISPLAY_EXPONENT) * 100.0, 0.0, 100.0)


# ── Public model ─────────────────────────────────────────────────────

def effect_at(hour_offset: float, metabolism_offset_minutes: float = 0,
              dose_mg: int = 10) -> float:
    """
    Displayed effect (0-100) at `hour_offset` hours after intake.
    A positive metabolism offset delays the curve, a negative one advances it.
    """
    if hour_offset <= 0:
        return 0.0
    effective_hour = hour_offset - metabolism_offset_minutes / 60.0
    raw = base_effect(effective_hour) * dose_scale(dose_mg)
    return shape_effect(raw)


def build_effect_points(dose_mg: int, offset_minutes: float) -> list[dict]:
    """25 samples over hours 0-12 for plotting."""
    steps = int(round((WINDOW_END_H - WINDOW_START_H) / EFFECT_SAMPLE_STEP_H)) + 1
    points: list[dict] = []
    for i in range(steps):
        h = WINDOW_START_H + i * EFFECT_SAMPLE_STEP_H
        points.append({
            "hour": round(h, 2),
            "effect": round(effect_at(h, offset_minutes, dose_mg), 2),
        })
    return points


def _adjusted_hours(taken_at: int, offset_minutes: float, now: Optional[datetime]) -> float:
    if now is None:
        now = datetime.now()
    return hours_between(to_ms(now), taken_at) - offset_minutes / 60.0


def current_marker(taken_at: Optional[int], offset_minutes: float,
                   now: Optional[datetime] = None) -> dict:
    """
    Marker position on the 0-12 h plot.
    The display hour is clamped; `is_active` uses the unclamped value, so the
    dot rests on the boundary while reporting inactive after 12 h.
    """
    if taken_at is None:
        return {"current_hour": 0.0, "is_active": False}

    adjusted = _adjusted_hours(taken_at, offset_minutes, now)
    current_hour = clamp(adjusted, WINDOW_START_H, WINDOW_END_H)
    is_active = WINDOW_START_H <= adjusted <= WINDOW_END_H
    return {"current_hour": current_hour, "is_active": is_active}


def phase_label(effective_hour: float) -> str:
    """German name of the curve segment at an offset-adjusted hour."""
    c = EFFECT_CURVE
    if effective_hour <= c["start_hour"]:
        return "Vor Einnahme"
    if effective_hour <= c["peak1_hour"]:
        return "Anflutung"
    if effective_hour <= c["plateau_start_hour"]:
        return "Uebergang"
    if effective_hour <= c["plateau_end_hour"]:
        return "Plateau"
    if effective_hour <= c["peak2_hour"]:
        return "Peak 2"
    if effective_hour <= c["end_hour"]:
        return "Abklingen"
    return "Vorbei"


def current_effect(intake: Optional[MedicationIntake], offset_minutes: float,
                   now: Optional[datetime] = None) -> dict:
    """Marker plus effect value and phase for the intake driving today's curve."""
    if intake is None:
        return {
            **current_marker(None, offset_minutes, now),
            "effect": 0.0,
            "phase": phase_label(0.0),
        }

    if now is None:
        now = datetime.now()
    hours_since = hours_between(to_ms(now), intake.timestamp)
    adjusted = hours_since - offset_minutes / 60.0
    return {
        **current_marker(intake.timestamp, offset_minutes, now),
        "effect": round(effect_at(hours_since, offset_minutes, intake.dose_mg), 2),
        "phase": phase_label(adjusted),
    }
