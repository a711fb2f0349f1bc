"""
Reminder scheduling for medication intakes.

The store only talks to the `NotificationScheduler` interface. The in-process
implementation keeps pending reminders in memory and a small loop delivers
them through the Home Assistant notify service (or the log, when HA is not
configured).
"""

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Iterable, Optional

import httpx

from sidekick.config import (
    HA_NOTIFY_SERVICE,
    HA_TOKEN,
    HA_URL,
    MEAL_REMINDER_OFFSET_MIN,
    NOTIFICATIONS_ENABLED,
    REBOUND_REMINDER_OFFSET_H,
    SNACK_REMINDER_OFFSET_H,
)
from sidekick.core.dates import MS_PER_HOUR, to_ms
from sidekick.core.models import MedicationIntake, NotificationSettings

log = logging.getLogger("sidekick.notify")

REMINDER_TEXTS = {
    "meal": (
        "Erinnerung an Nahrung",
        "Bitte iss etwas, um die Wirkung zu stabilisieren.",
    ),
    "snack": (
        "Snack Erinnerung",
        "Zeit fuer einen kleinen Snack in der Uebergangsphase.",
    ),
    "rebound": (
        "Rebound Hinweis",
        "Achte auf moegliche Rebound-Effekte und plane Ruhe ein.",
    ),
}


# ── Offset math ──────────────────────────────────────────────────────

def plan_intake_reminders(intake: MedicationIntake, settings: NotificationSettings,
                          now: Optional[datetime] = None) -> list[dict]:
    """
    Candidate reminders for an intake:
      +1 min   meal reminder, only when taken without food
      +3.5 h   snack reminder
      +8 h     rebound reminder
    Fire times at or before `now` are dropped.
    """
    if now is None:
        now = datetime.now()
    now_ts = to_ms(now)
    base = intake.timestamp

    candidates = []
    if not intake.with_food and settings.meal_reminder:
        candidates.append(("meal", base + MEAL_REMINDER_OFFSET_MIN * 60 * 1000))
    if settings.snack_reminder:
        candidates.append(("snack", base + int(SNACK_REMINDER_OFFSET_H * MS_PER_HOUR)))
    if settings.rebound_reminder:
        candidates.append(("rebound", base + int(REBOUND_REMINDER_OFFSET_H * MS_PER_HOUR)))

    planned = []
    for kind, fire_at in candidates:
        if fire_at <= now_ts:
            continue
        title, body = REMINDER_TEXTS[kind]
        planned.append({
            "kind": kind,
            "fire_at": fire_at,
            "title": title,
            "body": body,
            "intake_id": intake.id,
        })
    return planned


# ── Scheduler interface ──────────────────────────────────────────────

class NotificationScheduler:
    """Boundary the event store schedules intake reminders through."""

    async def ensure_permission(self) -> bool:
        raise NotImplementedError

    async def schedule_intake_notifications(self, intake: MedicationIntake,
                                            settings: NotificationSettings) -> list[str]:
        raise NotImplementedError

    async def cancel_notifications(self, ids: Optional[Iterable[str]]) -> None:
        raise NotImplementedError


class InProcessScheduler(NotificationScheduler):
    def __init__(self, permission: bool = NOTIFICATIONS_ENABLED):
        self.permission = permission
        self._pending: dict[str, dict] = {}

    async def ensure_permission(self) -> bool:
        return self.permission

    async def schedule_intake_notifications(self, intake: MedicationIntake,
                                            settings: NotificationSettings) -> list[str]:
        ids = []
        for reminder in plan_intake_reminders(intake, settings):
            schedule_id = uuid.uuid4().hex
            self._pending[schedule_id] = {"id": schedule_id, **reminder}
            ids.append(schedule_id)
        if ids:
            log.debug("Scheduled %d reminder(s) for intake %s", len(ids), intake.id)
        return ids

    async def cancel_notifications(self, ids: Optional[Iterable[str]]) -> None:
        for schedule_id in ids or []:
            self._pending.pop(schedule_id, None)

    def pending(self) -> list[dict]:
        return sorted(self._pending.values(), key=lambda r: r["fire_at"])

    def pop_due(self, now: Optional[datetime] = None) -> list[dict]:
        if now is None:
            now = datetime.now()
        now_ts = to_ms(now)
        due = [r for r in self.pending() if r["fire_at"] <= now_ts]
        for reminder in due:
            del self._pending[reminder["id"]]
        return due


# ── Delivery ─────────────────────────────────────────────────────────

async def deliver_reminder(reminder: dict, client: Optional[httpx.AsyncClient] = None) -> bool:
    """Push one reminder to Home Assistant. Returns False when not delivered."""
    if not (HA_URL and HA_TOKEN):
        log.info("Reminder due: %s - %s", reminder["title"], reminder["body"])
        return False

    url = f"{HA_URL.rstrip('/')}/api/services/notify/{HA_NOTIFY_SERVICE}"
    headers = {"Authorization": f"Bearer {HA_TOKEN}"}
    payload = {"title": reminder["title"], "message": reminder["body"]}
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=10) as own_client:
                r = await own_client.post(url, json=payload, headers=headers)
        else:
            r = await client.post(url, json=payload, headers=headers)
        r.raise_for_status()
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        log.warning("Reminder delivery failed (%s): %s", reminder["kind"], e)
        return False
    return True


async def dispatch_due_reminders(scheduler: InProcessScheduler,
                                 now: Optional[datetime] = None,
                                 client: Optional[httpx.AsyncClient] = None) -> int:
    """
    Deliver all reminders that are due. Returns the number delivered.
    Due reminders leave the queue whether or not delivery succeeds.
    """
    delivered = 0
    for reminder in scheduler.pop_due(now):
        try:
            ok = await deliver_reminder(reminder, client)
        except Exception:
            log.exception("Reminder %s for intake %s could not be delivered",
                          reminder["kind"], reminder.get("intake_id"))
            continue
        if ok:
            delivered += 1
    return delivered


async def run_reminder_loop(scheduler: InProcessScheduler, interval_sec: int) -> None:
    log.info("Reminder loop started (every %ds)", interval_sec)
    while True:
        try:
            await dispatch_due_reminders(scheduler)
        except Exception:
            log.exception("Reminder dispatch failed")
        await asyncio.sleep(interval_sec)
