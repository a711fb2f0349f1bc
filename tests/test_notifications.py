import asyncio
import json
from datetime import datetime, timedelta

import httpx
import pytest

from sidekick.core import notifications
from sidekick.core.dates import MS_PER_HOUR, to_ms
from sidekick.core.models import MedicationIntake, NotificationSettings
from sidekick.core.notifications import (
    InProcessScheduler,
    deliver_reminder,
    dispatch_due_reminders,
    plan_intake_reminders,
)

NOW = datetime(2026, 10, 19, 12, 0)


def make_intake(hours_ago=0.0, with_food=False, intake_id="i1"):
    return MedicationIntake(
        id=intake_id,
        timestamp=to_ms(NOW - timedelta(hours=hours_ago)),
        dose_mg=10,
        with_food=with_food,
    )


# --- Planning ---

def test_plan_offsets_without_food():
    intake = make_intake()
    planned = plan_intake_reminders(intake, NotificationSettings(), NOW - timedelta(seconds=1))
    assert [(r["kind"], r["fire_at"] - intake.timestamp) for r in planned] == [
        ("meal", 60 * 1000),
        ("snack", int(3.5 * MS_PER_HOUR)),
        ("rebound", 8 * MS_PER_HOUR),
    ]
    assert all(r["intake_id"] == "i1" for r in planned)
    assert planned[0]["title"] == "Erinnerung an Nahrung"


def test_plan_respects_settings():
    settings = NotificationSettings(meal_reminder=False, rebound_reminder=False)
    planned = plan_intake_reminders(make_intake(), settings, NOW)
    assert [r["kind"] for r in planned] == ["snack"]


def test_plan_all_disabled():
    settings = NotificationSettings(meal_reminder=False, snack_reminder=False, rebound_reminder=False)
    assert plan_intake_reminders(make_intake(), settings, NOW) == []


def test_plan_skips_fire_time_equal_to_now():
    intake = make_intake(hours_ago=3.5, with_food=True)
    planned = plan_intake_reminders(intake, NotificationSettings(), NOW)
    assert [r["kind"] for r in planned] == ["rebound"]


def test_plan_for_old_intake_is_empty():
    assert plan_intake_reminders(make_intake(hours_ago=9), NotificationSettings(), NOW) == []


# --- In-process scheduler ---

@pytest.mark.asyncio
async def test_in_process_scheduler_roundtrip():
    scheduler = InProcessScheduler(permission=True)
    assert await scheduler.ensure_permission() is True

    intake = MedicationIntake(id="x", timestamp=to_ms(datetime.now() + timedelta(hours=1)),
                              dose_mg=20, with_food=False)
    ids = await scheduler.schedule_intake_notifications(intake, NotificationSettings())
    assert len(ids) == 3
    assert len(set(ids)) == 3
    pending = scheduler.pending()
    assert [r["kind"] for r in pending] == ["meal", "snack", "rebound"]
    assert [r["id"] for r in pending] == ids

    await scheduler.cancel_notifications(ids[:2])
    assert [r["id"] for r in scheduler.pending()] == ids[2:]

    await scheduler.cancel_notifications(None)
    await scheduler.cancel_notifications(["unknown"])
    assert len(scheduler.pending()) == 1


@pytest.mark.asyncio
async def test_permission_flag():
    assert await InProcessScheduler(permission=False).ensure_permission() is False


@pytest.mark.asyncio
async def test_pop_due_removes_only_due():
    scheduler = InProcessScheduler(permission=True)
    base = datetime.now() + timedelta(minutes=5)
    intake = MedicationIntake(id="x", timestamp=to_ms(base), dose_mg=10, with_food=False)
    await scheduler.schedule_intake_notifications(intake, NotificationSettings())

    due = scheduler.pop_due(base + timedelta(hours=4))
    assert [r["kind"] for r in due] == ["meal", "snack"]
    assert [r["kind"] for r in scheduler.pending()] == ["rebound"]
    assert scheduler.pop_due(base + timedelta(hours=4)) == []


# --- Delivery ---

@pytest.mark.asyncio
async def test_deliver_without_home_assistant_only_logs(monkeypatch):
    monkeypatch.setattr(notifications, "HA_URL", "")
    reminder = {"kind": "snack", "title": "t", "body": "b"}
    assert await deliver_reminder(reminder) is False


@pytest.mark.asyncio
async def test_deliver_posts_to_notify_service(monkeypatch):
    monkeypatch.setattr(notifications, "HA_URL", "http://ha.local:8123/")
    monkeypatch.setattr(notifications, "HA_TOKEN", "secret")
    monkeypatch.setattr(notifications, "HA_NOTIFY_SERVICE", "mobile_app_phone")
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json=[])

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        ok = await deliver_reminder({"kind": "rebound", "title": "Rebound Hinweis", "body": "Ruhe"}, client)

    assert ok is True
    assert str(requests[0].url) == "http://ha.local:8123/api/services/notify/mobile_app_phone"
    assert requests[0].headers["Authorization"] == "Bearer secret"
    assert json.loads(requests[0].read()) == {"title": "Rebound Hinweis", "message": "Ruhe"}


@pytest.mark.asyncio
async def test_deliver_http_error_returns_false(monkeypatch):
    monkeypatch.setattr(notifications, "HA_URL", "http://ha.local:8123")
    monkeypatch.setattr(notifications, "HA_TOKEN", "secret")
    transport = httpx.MockTransport(lambda request: httpx.Response(500))
    async with httpx.AsyncClient(transport=transport) as client:
        assert await deliver_reminder({"kind": "meal", "title": "t", "body": "b"}, client) is False


@pytest.mark.asyncio
async def test_dispatch_counts_delivered(monkeypatch):
    monkeypatch.setattr(notifications, "HA_URL", "http://ha.local:8123")
    monkeypatch.setattr(notifications, "HA_TOKEN", "secret")
    scheduler = InProcessScheduler(permission=True)
    base = datetime.now() + timedelta(minutes=5)
    intake = MedicationIntake(id="x", timestamp=to_ms(base), dose_mg=10, with_food=False)
    await scheduler.schedule_intake_notifications(intake, NotificationSettings())

    transport = httpx.MockTransport(lambda request: httpx.Response(200, json=[]))
    async with httpx.AsyncClient(transport=transport) as client:
        delivered = await dispatch_due_reminders(scheduler, base + timedelta(hours=9), client)

    assert delivered == 3
    assert scheduler.pending() == []


@pytest.mark.asyncio
async def test_deliver_with_malformed_url_returns_false(monkeypatch):
    monkeypatch.setattr(notifications, "HA_URL", "http://[ha.local")
    monkeypatch.setattr(notifications, "HA_TOKEN", "secret")
    assert await deliver_reminder({"kind": "snack", "title": "t", "body": "b"}) is False


@pytest.mark.asyncio
async def test_dispatch_continues_after_unexpected_error(monkeypatch):
    monkeypatch.setattr(notifications, "HA_URL", "http://ha.local:8123")
    monkeypatch.setattr(notifications, "HA_TOKEN", "secret")
    scheduler = InProcessScheduler(permission=True)
    base = datetime.now() + timedelta(minutes=5)
    intake = MedicationIntake(id="x", timestamp=to_ms(base), dose_mg=10, with_food=False)
    await scheduler.schedule_intake_notifications(intake, NotificationSettings())
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            raise RuntimeError("proxy exploded")
        return httpx.Response(200, json=[])

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        delivered = await dispatch_due_reminders(scheduler, base + timedelta(hours=9), client)

    assert len(calls) == 3
    assert delivered == 2
    assert scheduler.pending() == []


@pytest.mark.asyncio
async def test_reminder_loop_survives_dispatch_errors(monkeypatch):
    calls = []

    async def flaky_dispatch(scheduler):
        calls.append(scheduler)
        if len(calls) == 1:
            raise RuntimeError("boom")
        raise asyncio.CancelledError

    monkeypatch.setattr(notifications, "dispatch_due_reminders", flaky_dispatch)
    with pytest.raises(asyncio.CancelledError):
        await notifications.run_reminder_loop(InProcessScheduler(permission=True), 0)
    assert len(calls) == 2
