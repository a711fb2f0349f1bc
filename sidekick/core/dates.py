"""
Local calendar helpers. Epoch milliseconds in, local wall-clock out.
"""

import time
from datetime import date, datetime, timedelta
from typing import Optional, Union

from dateutil import parser as date_parser

MS_PER_HOUR = 60 * 60 * 1000


def now_ms() -> int:
    return int(time.time() * 1000)


def to_ms(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)


def from_ms(timestamp: int) -> datetime:
    """Naive local datetime for an epoch-ms timestamp."""
    return datetime.fromtimestamp(timestamp / 1000)


def to_date_key(day: Union[date, datetime]) -> str:
    """YYYY-MM-DD from the local year/month/day only."""
    return f"{day.year:04d}-{day.month:02d}-{day.day:02d}"


def start_of_day(day: Union[date, datetime]) -> datetime:
    return datetime(day.year, day.month, day.day, 0, 0, 0, 0)


def end_of_day(day: Union[date, datetime]) -> datetime:
    return datetime(day.year, day.month, day.day, 23, 59, 59, 999000)


def day_bounds_ms(day: Union[date, datetime]) -> tuple[int, int]:
    return to_ms(start_of_day(day)), to_ms(end_of_day(day))


def days_back(days: int, now: Optional[datetime] = None) -> list[date]:
    """Calendar dates from today (index 0) backwards."""
    if now is None:
        now = datetime.now()
    today = now.date()
    return [today - timedelta(days=i) for i in range(days)]


def format_time(dt: datetime) -> str:
    return dt.strftime("%H:%M")


def format_date_short(day: Union[date, datetime]) -> str:
    return day.strftime("%d.%m.%Y")


def hours_between(later: int, earlier: int) -> float:
    return (later - earlier) / MS_PER_HOUR


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def parse_timestamp(value: Union[int, float, str, None]) -> Optional[int]:
    """
    Accept epoch ms (number or numeric string) or an ISO-8601 string.
    Naive ISO strings are interpreted as local time.
    """
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return int(value)
    text = str(value).strip()
    if text.lstrip("-").isdigit():
        return int(text)
    return to_ms(date_parser.isoparse(text))
