"""
Entities and the serializable application state.

All timestamps are epoch milliseconds. Entries are frozen; the store replaces
an intake with an updated copy instead of mutating it.
"""

from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

DoseMg = Literal[10, 20]
NotificationKey = Literal["meal_reminder", "snack_reminder", "rebound_reminder"]
LogType = Literal["medication", "checkin", "meal", "sleep", "note"]

Rating = Optional[int]


class MealType(str, Enum):
    FRUEHSTUECK = "fruehstueck"
    BIO_SNACK = "bio_snack"
    MITTAGESSEN = "mittagessen"
    ABENDESSEN = "abendessen"


class CheckinCategory(str, Enum):
    STIMMUNG = "stimmung"
    FOKUS = "fokus"
    REIZBARKEIT = "reizbarkeit"
    UNRUHE = "unruhe"


class _Entry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    timestamp: int


class MedicationIntake(_Entry):
    dose_mg: DoseMg
    with_food: bool
    note: Optional[str] = None
    notification_ids: list[str] = Field(default_factory=list)


class CheckinValues(BaseModel):
    """One optional 1-5 rating per category; unset categories stay None."""

    model_config = ConfigDict(frozen=True)

    stimmung: Rating = Field(None, ge=1, le=5)
    fokus: Rating = Field(None, ge=1, le=5)
    reizbarkeit: Rating = Field(None, ge=1, le=5)
    unruhe: Rating = Field(None, ge=1, le=5)

    def present(self) -> list[tuple[CheckinCategory, int]]:
        """Set ratings in fixed category order."""
        return [
            (category, getattr(self, category.value))
            for category in CheckinCategory
            if getattr(self, category.value) is not None
        ]


class CheckinEntry(_Entry):
    values: CheckinValues = Field(default_factory=CheckinValues)
    note: Optional[str] = None


class MealEntry(_Entry):
    type: MealType
    description: str


class NoteEntry(_Entry):
    content: str


class DayContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    date_key: str
    sleep_quality: Rating = Field(None, ge=1, le=5)
    sleep_logged_at: Optional[int] = None


class NotificationSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    meal_reminder: bool = True
    snack_reminder: bool = True
    rebound_reminder: bool = True


class ActivityLogEntry(BaseModel):
    id: str
    type: LogType
    label: str
    value: Optional[str] = None
    timestamp: int


class AppState(BaseModel):
    """Everything that is persisted under the storage namespace."""

    intakes: list[MedicationIntake] = Field(default_factory=list)
    checkins: list[CheckinEntry] = Field(default_factory=list)
    notes: list[NoteEntry] = Field(default_factory=list)
    meals: list[MealEntry] = Field(default_factory=list)
    day_contexts: dict[str, DayContext] = Field(default_factory=dict)
    notification_settings: NotificationSettings = Field(default_factory=NotificationSettings)
    metabolism_offset_minutes: int = 0
    last_dose_mg: DoseMg = 10
    last_with_food: bool = True
