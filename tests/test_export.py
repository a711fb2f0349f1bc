from datetime import date, datetime, timedelta

from sidekick.core.dates import to_ms
from sidekick.core.export import build_day_timeline, build_export_markdown
from sidekick.core.models import (
    AppState,
    CheckinEntry,
    CheckinValues,
    DayContext,
    MealEntry,
    MedicationIntake,
    NoteEntry,
)

NOW = datetime(2026, 10, 19, 12, 0)
FOOTER = "---\nHinweis: Der Bericht ist fuer die Analyse in einem KI-Agenten gedacht."


def at(hour, minute=0, day=NOW):
    return to_ms(day.replace(hour=hour, minute=minute))


def test_two_day_report():
    state = AppState(
        intakes=[MedicationIntake(id="i", timestamp=at(8), dose_mg=10, with_food=True)],
        notes=[NoteEntry(id="n", timestamp=at(9), content="Feeling focused")],
    )
    expected = "\n".join([
        "# Sidekick Bericht (2 Tage)",
        "",
        "## 19.10.2026",
        "",
        "- 08:00 Einnahme 10 mg, mit Nahrung",
        "- 09:00 Notiz: Feeling focused",
        "",
        "## 18.10.2026",
        "",
        "- Keine Eintraege",
        "",
        FOOTER,
    ])
    assert build_export_markdown(2, state, NOW) == expected


def test_empty_report_has_every_day():
    report = build_export_markdown(3, AppState(), NOW)
    assert report.startswith("# Sidekick Bericht (3 Tage)\n\n## 19.10.2026")
    assert report.count("- Keine Eintraege") == 3
    assert "## 17.10.2026" in report
    assert report.endswith(FOOTER)


def test_timeline_sorted_ascending_across_kinds():
    state = AppState(
        intakes=[MedicationIntake(id="i", timestamp=at(8), dose_mg=20, with_food=False)],
        meals=[MealEntry(id="m", timestamp=at(7, 30), type="fruehstueck", description="Muesli")],
        checkins=[CheckinEntry(id="c", timestamp=at(11), values=CheckinValues(stimmung=4, fokus=3))],
        notes=[NoteEntry(id="n", timestamp=at(9, 15), content="ruhig")],
    )
    lines = [text for _, text in build_day_timeline(state, NOW.date())]
    assert lines == [
        "Fruehstueck: Muesli",
        "Einnahme 20 mg, ohne Nahrung",
        "Notiz: ruhig",
        "Check-in Stimmung 4/5, Fokus 3/5",
    ]


def test_checkin_note_in_parentheses():
    state = AppState(checkins=[
        CheckinEntry(id="a", timestamp=at(10), values=CheckinValues(unruhe=2), note="Kaffee"),
        CheckinEntry(id="b", timestamp=at(11), note="nur Notiz"),
        CheckinEntry(id="c", timestamp=at(12)),
    ])
    lines = [text for _, text in build_day_timeline(state, NOW.date())]
    assert lines == [
        "Check-in Unruhe 2/5 (Notiz: Kaffee)",
        "Check-in (Notiz: nur Notiz)",
    ]


def test_sleep_line_uses_logged_time():
    state = AppState(day_contexts={
        "2026-10-19": DayContext(date_key="2026-10-19", sleep_quality=3, sleep_logged_at=at(6, 45)),
    })
    timeline = build_day_timeline(state, NOW.date())
    assert timeline == [(at(6, 45), "Morgen-Check Schlafqualitaet 3/5")]


def test_sleep_line_falls_back_to_seven():
    state = AppState(
        day_contexts={"2026-10-19": DayContext(date_key="2026-10-19", sleep_quality=5)},
        intakes=[MedicationIntake(id="i", timestamp=at(6), dose_mg=10, with_food=True)],
    )
    report = build_export_markdown(1, state, NOW)
    assert "- 06:00 Einnahme 10 mg, mit Nahrung\n- 07:00 Morgen-Check Schlafqualitaet 5/5" in report


def test_day_context_without_sleep_is_skipped():
    state = AppState(day_contexts={"2026-10-19": DayContext(date_key="2026-10-19")})
    assert build_day_timeline(state, date(2026, 10, 19)) == []


def test_entries_outside_window_are_ignored():
    old = NOW - timedelta(days=5)
    state = AppState(notes=[NoteEntry(id="n", timestamp=at(9, day=old), content="alt")])
    report = build_export_markdown(3, state, NOW)
    assert "alt" not in report


def test_day_boundaries():
    state = AppState(notes=[
        NoteEntry(id="a", timestamp=at(0, 0), content="Mitternacht"),
        NoteEntry(id="b", timestamp=to_ms(NOW.replace(hour=23, minute=59, second=59)), content="spaet"),
    ])
    lines = [text for _, text in build_day_timeline(state, NOW.date())]
    assert lines == ["Notiz: Mitternacht", "Notiz: spaet"]
