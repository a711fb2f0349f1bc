"""
Sidekick Configuration.
All settings via environment variables with sensible defaults.
"""

import os
from pathlib import Path

# --- Paths ---
BASE_DIR = Path(os.getenv("SIDEKICK_DATA_DIR", "/data"))
DB_PATH = BASE_DIR / "sidekick.db"
STORAGE_NAMESPACE = os.getenv("SIDEKICK_STORAGE_NAMESPACE", "sidekick-storage")

# --- Auth ---
API_KEY = os.getenv("SIDEKICK_API_KEY", "")

# --- Logging ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# --- Medication ---
MEDICATION_NAME = os.getenv("SIDEKICK_MEDICATION_NAME", "Medikinet Adult")
DOSE_OPTIONS_MG = (10, 20)
DEFAULT_DOSE_MG = 10
DEFAULT_WITH_FOOD = True

# --- Effect curve (presentation heuristic, not a PK model) ---
# Hours since intake and relative effect (0-100) of the base curve segments.
EFFECT_CURVE = {
    "start_hour": 0.0,
    "peak1_hour": 1.5,
    "plateau_start_hour": 3.0,
    "plateau_end_hour": 4.0,
    "peak2_hour": 5.5,
    "end_hour": 12.0,
    "peak1_effect": 100.0,
    "plateau_effect": 80.0,
    "peak2_effect": 95.0,
    "tail_target": 2.0,   # base value reached exactly at end_hour
}
EFFECT_SAMPLE_STEP_H = 0.5
EFFECT_DISPLAY_EXPONENT = 1.3
EFFECT_DOSE_SCALE = {10: 1.0, 20: 1.15}

# --- User metabolism offset (minutes, positive = later onset) ---
METABOLISM_OFFSET_LIMIT_MIN = 60

# --- Ratings (check-ins, sleep quality) ---
RATING_MIN = 1
RATING_MAX = 5

# --- Text limits ---
NOTE_MAX_CHARS = 500
MEAL_DESCRIPTION_MAX_CHARS = 120
NOTE_LABEL_MAX_CHARS = 30

# --- Reminders ---
# Offsets relative to the intake timestamp.
MEAL_REMINDER_OFFSET_MIN = 1
SNACK_REMINDER_OFFSET_H = 3.5
REBOUND_REMINDER_OFFSET_H = 8.0
# Intakes newer than this are still rescheduled when settings change.
RESCHEDULE_GRACE_SEC = 60
NOTIFICATIONS_ENABLED: bool = os.getenv("SIDEKICK_NOTIFICATIONS_ENABLED", "true").lower() == "true"
REMINDER_POLL_INTERVAL_SEC = int(os.getenv("SIDEKICK_REMINDER_POLL_INTERVAL_SEC", "30"))  # 0 = off

# --- Home Assistant (reminder delivery) ---
HA_URL = os.getenv("HA_URL", "")
HA_TOKEN = os.getenv("HA_TOKEN", "")
HA_NOTIFY_SERVICE = os.getenv("HA_NOTIFY_SERVICE", "notify")

# --- Export ---
EXPORT_DEFAULT_DAYS = int(os.getenv("SIDEKICK_EXPORT_DEFAULT_DAYS", "3"))
EXPORT_MAX_DAYS = 30
