"""Pure calendar predicates used by recurring windows.

Weekdays follow datetime.date.weekday(): Monday=0 .. Sunday=6.
Ordinals are 1-based; -1 means "last".
"""

from __future__ import annotations

import calendar as _calendar
import datetime

WEEKDAY_NAMES: dict[str, int] = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}

WEEKDAYS = frozenset({0, 1, 2, 3, 4})
WEEKEND = frozenset({5, 6})


def days_in_month(year: int, month: int) -> int:
    return _calendar.monthrange(year, month)[1]


def weekday_ordinal(day: datetime.date) -> int:
    """1 for the first occurrence of this weekday in its month, 2 for the second, ..."""
    return (day.day - 1) // 7 + 1


def is_last_weekday_of_month(day: datetime.date) -> bool:
    return day.day + 7 > days_in_month(day.year, day.month)


def matches_weekday_ordinal(day: datetime.date, weekday: int, ordinal: int) -> bool:
    if day.weekday() != weekday:
        return False
    if ordinal == -1:
        return is_last_weekday_of_month(day)
    return weekday_ordinal(day) == ordinal


def matches_day_of_month(day: datetime.date, day_of_month: int) -> bool:
    if day_of_month == -1:
        return day.day == days_in_month(day.year, day.month)
    return day.day == day_of_month
