"""Weekday and day-of-month resolution helpers.

Pure date arithmetic shared by the granularity expanders:
- weekday names ("Monday", "mon", " SUN ") to a date inside a given week
- day-of-month specs (15, "31", "start_of_month", "end_of_month") to a date
  inside a given month, clamped so February never gets a 30th
- host calendar alignment (configurable first weekday, local timezone)

`dateutil.relativedelta` handles month arithmetic so that Jan 31 + 1 month
lands on Feb 28/29 instead of overflowing into March.
"""
from __future__ import annotations

import calendar
import re
from datetime import date, datetime, timedelta
from typing import Optional, Union
from zoneinfo import ZoneInfo

from dateutil.relativedelta import relativedelta

from habitmap.api.schemas.schedule import END_OF_MONTH, START_OF_MONTH

DateLike = Union[date, datetime]

WEEKDAY_INDEX = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
    "mon": 0,
    "tue": 1,
    "wed": 2,
    "thu": 3,
    "fri": 4,
    "sat": 5,
    "sun": 6,
}

_CLOCK_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


def weekday_index(name: object) -> Optional[int]:
    """Return 0 (Monday) .. 6 (Sunday) for a weekday name, or None if unknown."""
    if not isinstance(name, str):
        return None
    return WEEKDAY_INDEX.get(name.strip().lower())


def resolve_weekday(name: object, week_start: date) -> Optional[date]:
    """Return the date of weekday `name` in the 7 days starting at `week_start`.

    None for unknown names and for dates past `date.max`.
    """
    target = weekday_index(name)
    if target is None:
        return None
    return add_days(week_start, (target - week_start.weekday()) % 7)


def start_of_week(day: date, first_weekday: int = 0) -> date:
    """Align `day` back to the first day of its week under the host calendar."""
    return add_days(day, -((day.weekday() - first_weekday) % 7)) or date.min


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def first_of_month(day: date) -> date:
    return day.replace(day=1)


def add_days(day: date, days: int) -> Optional[date]:
    """`day + days`, or None when the result leaves the supported date range."""
    try:
        return day + timedelta(days=days)
    except OverflowError:
        return None


def add_months(day: date, months: int) -> Optional[date]:
    """`day + months` clamped to the target month, or None past the date range."""
    try:
        return day + relativedelta(months=months)
    except (OverflowError, ValueError):
        return None


def months_between(start: date, end: date) -> int:
    """Whole months from `start` to `end` (0 when `end` is not after `start`)."""
    if end <= start:
        return 0
    delta = relativedelta(end, start)
    return delta.years * 12 + delta.months


def month_day_key(spec: object) -> Optional[Union[int, str]]:
    """Normalize a day-of-month spec to an int day or END_OF_MONTH.

    "start_of_month" becomes 1; numeric strings become ints. Anything else is
    malformed and yields None.
    """
    if isinstance(spec, bool):
        return None
    if isinstance(spec, int):
        return spec
    if not isinstance(spec, str):
        return None
    cleaned = spec.strip().lower()
    if cleaned == START_OF_MONTH:
        return 1
    if cleaned == END_OF_MONTH:
        return END_OF_MONTH
    try:
        return int(cleaned)
    except ValueError:
        return None


def resolve_month_day(spec: object, month_anchor: date) -> Optional[date]:
    """Return the date `spec` names inside the month containing `month_anchor`."""
    key = month_day_key(spec)
    if key is None:
        return None
    last_day = days_in_month(month_anchor.year, month_anchor.month)
    if key == END_OF_MONTH:
        day_number = last_day
    else:
        day_number = min(max(int(key), 1), last_day)
    return month_anchor.replace(day=day_number)


def parse_clock_time(value: Optional[str]) -> Optional[int]:
    """Parse "HH:MM" into minutes since midnight; None for missing or malformed input."""
    if not isinstance(value, str):
        return None
    match = _CLOCK_RE.match(value)
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if not (0 <= hour < 24 and 0 <= minute < 60):
        return None
    return hour * 60 + minute


def _localize(value: datetime, tz_name: str) -> datetime:
    if value.tzinfo is None:
        return value
    try:
        return value.astimezone(ZoneInfo(tz_name))
    except OverflowError:
        return value


def to_local_date(value: DateLike, tz_name: str = "UTC") -> date:
    """Normalize a date or datetime to its local calendar day (midnight key)."""
    if isinstance(value, datetime):
        return _localize(value, tz_name).date()
    return value


def time_of_day_minutes(value: DateLike, tz_name: str = "UTC") -> Optional[int]:
    """Minutes since local midnight for datetimes; None for plain dates."""
    if not isinstance(value, datetime):
        return None
    local = _localize(value, tz_name)
    return local.hour * 60 + local.minute
