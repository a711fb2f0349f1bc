from datetime import datetime, timedelta

import pytest

from sidekick.core.dates import to_ms
from sidekick.core.effect_engine import (
    base_effect,
    build_effect_points,
    current_effect,
    current_marker,
    effect_at,
    phase_label,
    shape_effect,
)
from sidekick.core.models import MedicationIntake

NOW = datetime(2026, 10, 19, 12, 0, 0)
HOURS = [i * 0.25 for i in range(0, 61)]


@pytest.mark.parametrize("hour", [0, -0.5, -3, -24])
@pytest.mark.parametrize("offset", [-60, 0, 60])
@pytest.mark.parametrize("dose", [10, 20])
def test_non_positive_hour_is_zero(hour, offset, dose):
    assert effect_at(hour, offset, dose) == 0


def test_effect_within_bounds():
    for dose in (10, 20):
        for offset in (-60, -15, 0, 30, 60):
            for hour in HOURS:
                assert 0 <= effect_at(hour, offset, dose) <= 100


def test_base_curve_landmarks():
    assert base_effect(0) == 0
    assert base_effect(1.5) == pytest.approx(100)
    assert base_effect(3) == pytest.approx(80)
    assert base_effect(3.5) == 80
    assert base_effect(5.5) == pytest.approx(95)
    assert base_effect(12) == pytest.approx(2)
    assert base_effect(12.01) == 0


def test_tail_value_is_compressed_tail_target():
    value = effect_at(12, 0, 10)
    assert value == pytest.approx(100 * 0.02 ** 1.3)
    assert 0 < value < 2


def test_higher_dose_never_lower():
    for offset in (-60, 0, 45):
        for hour in HOURS:
            assert effect_at(hour, offset, 20) >= effect_at(hour, offset, 10)


def test_higher_dose_saturates_at_peak():
    assert effect_at(1.5, 0, 20) == 100
    assert effect_at(1.5, 0, 10) == pytest.approx(100)
    assert effect_at(3.5, 0, 20) > effect_at(3.5, 0, 10)


def test_positive_offset_delays_onset():
    assert effect_at(1, 30, 10) <= effect_at(1, 0, 10)
    assert effect_at(0.5, 30, 10) == 0


def test_negative_offset_speeds_onset():
    assert effect_at(0.5, -30, 10) > effect_at(0.5, 0, 10)


def test_offset_extends_tail_past_twelve_hours():
    assert effect_at(12.5, 0, 10) == 0
    assert effect_at(12.5, 60, 10) > 0


def test_shape_effect_clamps():
    assert shape_effect(-5) == 0
    assert shape_effect(150) == 100
    assert shape_effect(50) < 50


def test_build_effect_points_shape():
    points = build_effect_points(10, 0)
    assert len(points) == 25
    assert [p["hour"] for p in points] == [i * 0.5 for i in range(25)]
    assert points[0]["effect"] == 0
    assert all(0 <= p["effect"] <= 100 for p in points)
    assert points == build_effect_points(10, 0)


def test_build_effect_points_rounded():
    for p in build_effect_points(20, -45):
        assert p["effect"] == round(p["effect"], 2)


def test_marker_without_intake():
    assert current_marker(None, 30, NOW) == {"current_hour": 0.0, "is_active": False}


def test_marker_during_window():
    taken = to_ms(NOW - timedelta(hours=2))
    marker = current_marker(taken, 0, NOW)
    assert marker["current_hour"] == pytest.approx(2.0)
    assert marker["is_active"] is True


def test_marker_subtracts_offset():
    taken = to_ms(NOW - timedelta(hours=2))
    assert current_marker(taken, 30, NOW)["current_hour"] == pytest.approx(1.5)


def test_marker_clamped_but_inactive_after_window():
    taken = to_ms(NOW - timedelta(hours=13))
    marker = current_marker(taken, 0, NOW)
    assert marker["current_hour"] == 12
    assert marker["is_active"] is False


def test_marker_before_adjusted_start():
    taken = to_ms(NOW - timedelta(minutes=30))
    marker = current_marker(taken, 60, NOW)
    assert marker["current_hour"] == 0
    assert marker["is_active"] is False


def test_marker_at_exact_end_is_active():
    taken = to_ms(NOW - timedelta(hours=12))
    assert current_marker(taken, 0, NOW)["is_active"] is True


def test_phase_labels():
    assert phase_label(-1) == "Vor Einnahme"
    assert phase_label(1) == "Anflutung"
    assert phase_label(2) == "Uebergang"
    assert phase_label(3.5) == "Plateau"
    assert phase_label(5) == "Peak 2"
    assert phase_label(8) == "Abklingen"
    assert phase_label(13) == "Vorbei"


def test_current_effect_for_intake():
    intake = MedicationIntake(id="a", timestamp=to_ms(NOW - timedelta(hours=3, minutes=30)),
                              dose_mg=10, with_food=True)
    result = current_effect(intake, 0, NOW)
    assert result["phase"] == "Plateau"
    assert result["is_active"] is True
    assert result["effect"] == pytest.approx(round(effect_at(3.5, 0, 10), 2))


def test_current_effect_without_intake():
    result = current_effect(None, 0, NOW)
    assert result["effect"] == 0
    assert result["is_active"] is False
