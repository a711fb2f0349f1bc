"""
Event store: the single owner of all logged entries.

Mutations are the methods below. Reads go through `snapshot()` and the pure
functions in `logs`, `export` and `effect_engine`.

Intake reminders are best-effort. The intake is committed first, then the
scheduler is awaited and the returned ids are written back in a second step.
Two awaits on the same intake (an edit and a settings change) can interleave
between those steps; the last write of the id list wins.
"""

import logging
import secrets
from datetime import date, datetime
from typing import Callable, Optional, Union

from pydantic import ValidationError

from sidekick.config import (
    MEAL_DESCRIPTION_MAX_CHARS,
    METABOLISM_OFFSET_LIMIT_MIN,
    NOTE_MAX_CHARS,
    RATING_MAX,
    RATING_MIN,
    REBOUND_REMINDER_OFFSET_H,
    RESCHEDULE_GRACE_SEC,
)
from sidekick.core.dates import MS_PER_HOUR, now_ms, to_date_key
from sidekick.core.models import (
    AppState,
    CheckinEntry,
    CheckinValues,
    DayContext,
    DoseMg,
    MealEntry,
    MealType,
    MedicationIntake,
    NoteEntry,
    NotificationKey,
)
from sidekick.core.notifications import NotificationScheduler

log = logging.getLogger("sidekick.store")

EDITABLE_INTAKE_FIELDS = ("timestamp", "dose_mg", "with_food", "note")


def clamp_offset(value: float) -> int:
    limit = METABOLISM_OFFSET_LIMIT_MIN
    return int(max(-limit, min(limit, value)))


class EventStore:
    def __init__(self, scheduler: NotificationScheduler,
                 state: Optional[AppState] = None,
                 on_change: Optional[Callable[[AppState], None]] = None):
        self.scheduler = scheduler
        self._state = state.model_copy(deep=True) if state is not None else AppState()
        self._on_change = on_change

    # --- State access ---

    @property
    def state(self) -> AppState:
        """Live state. Treat as read-only."""
        return self._state

    def snapshot(self) -> AppState:
        return self._state.model_copy(deep=True)

    async def load(self, state: AppState) -> None:
        """
        Replace the whole state (restore from a backup). Reminders of the old
        intakes are cancelled and the new intakes get fresh ones.
        """
        for intake in self._state.intakes:
            await self._cancel(intake)
        self._state = state.model_copy(deep=True)
        self._changed()
        await self.restore_reminders()

    def get_intake(self, intake_id: str) -> Optional[MedicationIntake]:
        return next((i for i in self._state.intakes if i.id == intake_id), None)

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change(self.snapshot())

    def _new_id(self) -> str:
        taken = {
            entry.id
            for collection in (self._state.intakes, self._state.checkins,
                               self._state.notes, self._state.meals)
            for entry in collection
        }
        while True:
            candidate = f"{now_ms()}-{secrets.token_hex(3)}"
            if candidate not in taken:
                return candidate

    # --- Notifications ---

    async def _schedule(self, intake: MedicationIntake) -> list[str]:
        try:
            if not await self.scheduler.ensure_permission():
                log.info("Notification permission denied, intake %s has no reminders", intake.id)
                return []
            return await self.scheduler.schedule_intake_notifications(
                intake, self._state.notification_settings,
            )
        except Exception as e:
            log.warning("Scheduling reminders for intake %s failed: %s", intake.id, e)
            return []

    async def _cancel(self, intake: MedicationIntake) -> None:
        try:
            await self.scheduler.cancel_notifications(intake.notification_ids)
        except Exception as e:
            log.warning("Cancelling reminders for intake %s failed: %s", intake.id, e)

    def _replace_intake(self, updated: MedicationIntake) -> bool:
        for index, entry in enumerate(self._state.intakes):
            if entry.id == updated.id:
                self._state.intakes[index] = updated
                return True
        return False

    def _attach_notification_ids(self, intake_id: str, ids: list[str]) -> Optional[MedicationIntake]:
        current = self.get_intake(intake_id)
        if current is None:
            return None
        updated = current.model_copy(update={"notification_ids": list(ids)})
        self._replace_intake(updated)
        self._changed()
        return updated

    # --- Medication ---

    async def log_medication(self, timestamp: int, dose_mg: DoseMg, with_food: bool,
                             note: Optional[str] = None) -> MedicationIntake:
        intake = MedicationIntake(
            id=self._new_id(),
            timestamp=timestamp,
            dose_mg=dose_mg,
            with_food=with_food,
            note=note,
        )
        self._state.intakes.insert(0, intake)
        self._state.last_dose_mg = intake.dose_mg
        self._state.last_with_food = intake.with_food
        self._changed()
        log.info("Logged intake %s: %s mg, with_food=%s", intake.id, intake.dose_mg, intake.with_food)

        ids = await self._schedule(intake)
        return self._attach_notification_ids(intake.id, ids) or intake

    async def update_medication(self, intake_id: str, updates: dict) -> Optional[MedicationIntake]:
        """Shallow-merge `updates` into an intake. Unknown ids are ignored."""
        existing = self.get_intake(intake_id)
        if existing is None:
            log.debug("update_medication: intake %s not found", intake_id)
            return None

        fields = {k: v for k, v in updates.items() if k in EDITABLE_INTAKE_FIELDS}
        try:
            updated = MedicationIntake.model_validate({
                **existing.model_dump(),
                **fields,
                "id": existing.id,
                "notification_ids": [],
            })
        except ValidationError as e:
            log.warning("Rejected update for intake %s: %s", intake_id, e)
            return None

        await self._cancel(existing)
        if not self._replace_intake(updated):
            return None
        self._state.last_dose_mg = updated.dose_mg
        self._state.last_with_food = updated.with_food
        self._changed()
        log.info("Updated intake %s: %s", intake_id, sorted(fields))

        ids = await self._schedule(updated)
        return self._attach_notification_ids(intake_id, ids) or updated

    # --- Check-ins, meals, notes ---

    def log_checkin(self, values: dict, note: Optional[str] = None,
                    timestamp: Optional[int] = None) -> CheckinEntry:
        """
        Store a check-in. Zero, empty and out-of-range ratings are dropped.
        An entry with no ratings and no note is still stored; the feed hides it.
        """
        ratings = {
            str(getattr(k, "value", k)): v
            for k, v in values.items()
            if isinstance(v, int) and RATING_MIN <= v <= RATING_MAX
        }
        entry = CheckinEntry(
            id=self._new_id(),
            timestamp=timestamp if timestamp is not None else now_ms(),
            values=CheckinValues(**ratings),
            note=note or None,
        )
        self._state.checkins.insert(0, entry)
        self._changed()
        log.info("Logged check-in %s (%d rating(s))", entry.id, len(entry.values.present()))
        return entry

    def log_meal(self, meal_type: Union[MealType, str], description: str,
                 timestamp: Optional[int] = None) -> Optional[MealEntry]:
        trimmed = (description or "").strip()
        if not trimmed:
            return None
        entry = MealEntry(
            id=self._new_id(),
            timestamp=timestamp if timestamp is not None else now_ms(),
            type=MealType(meal_type),
            description=trimmed[:MEAL_DESCRIPTION_MAX_CHARS],
        )
        self._state.meals.insert(0, entry)
        self._changed()
        log.info("Logged meal %s (%s)", entry.id, entry.type.value)
        return entry

    def log_note(self, content: str, timestamp: Optional[int] = None) -> Optional[NoteEntry]:
        trimmed = (content or "").strip()
        if not trimmed:
            return None
        entry = NoteEntry(
            id=self._new_id(),
            timestamp=timestamp if timestamp is not None else now_ms(),
            content=trimmed[:NOTE_MAX_CHARS],
        )
        self._state.notes.insert(0, entry)
        self._changed()
        log.info("Logged note %s", entry.id)
        return entry

    # --- Day context ---

    def set_day_context(self, day: Union[date, datetime],
                        sleep_quality: Optional[int] = None) -> DayContext:
        date_key = to_date_key(day)
        existing = self._state.day_contexts.get(date_key)
        if sleep_quality is not None:
            context = DayContext(date_key=date_key, sleep_quality=sleep_quality,
                                 sleep_logged_at=now_ms())
        else:
            context = DayContext(
                date_key=date_key,
                sleep_quality=existing.sleep_quality if existing else None,
                sleep_logged_at=existing.sleep_logged_at if existing else None,
            )
        self._state.day_contexts[date_key] = context
        self._changed()
        return context

    # --- Settings ---

    async def set_notification_setting(self, key: NotificationKey, value: bool) -> None:
        """Flip one reminder flag and reschedule intakes that are still relevant."""
        settings = self._state.notification_settings.model_copy(update={key: bool(value)})
        self._state.notification_settings = settings
        self._changed()
        log.info("Notification setting %s=%s", key, value)
        await self.reschedule_upcoming()

    async def reschedule_upcoming(self) -> int:
        """
        Cancel and reschedule reminders of intakes at most RESCHEDULE_GRACE_SEC
        old under the current settings. Older intakes keep their ids.
        Returns the number of intakes rescheduled.
        """
        if not await self._permission_granted():
            return 0
        return await self._reschedule_since(now_ms() - RESCHEDULE_GRACE_SEC * 1000)

    async def restore_reminders(self) -> int:
        """
        Re-register reminders after the scheduler lost them (process start,
        whole-state replacement). Every intake whose last reminder can still
        fire is rescheduled; older intakes drop their stale ids.
        Returns the number of intakes rescheduled.
        """
        cutoff = now_ms() - int(REBOUND_REMINDER_OFFSET_H * MS_PER_HOUR)
        granted = await self._permission_granted()
        for intake in list(self._state.intakes):
            if intake.notification_ids and (not granted or intake.timestamp < cutoff):
                self._attach_notification_ids(intake.id, [])
        if not granted:
            return 0
        rescheduled = await self._reschedule_since(cutoff)
        if rescheduled:
            log.info("Restored reminders for %d intake(s)", rescheduled)
        return rescheduled

    async def _permission_granted(self) -> bool:
        try:
            return await self.scheduler.ensure_permission()
        except Exception as e:
            log.warning("Permission check failed: %s", e)
            return False

    async def _reschedule_since(self, cutoff: int) -> int:
        settings = self._state.notification_settings
        rescheduled = 0
        for intake in list(self._state.intakes):
            if intake.timestamp < cutoff:
                continue
            await self._cancel(intake)
            try:
                ids = await self.scheduler.schedule_intake_notifications(intake, settings)
            except Exception as e:
                log.warning("Rescheduling intake %s failed: %s", intake.id, e)
                ids = []
            self._attach_notification_ids(intake.id, ids)
            rescheduled += 1
        return rescheduled

    def set_metabolism_offset(self, value: float) -> int:
        self._state.metabolism_offset_minutes = clamp_offset(value)
        self._changed()
        return self._state.metabolism_offset_minutes
