"""Parser for human-readable schedule text.

Supported phrases (case-insensitive, combinable in any order, one day part and one
time part per string):
  - "at any time"
  - "after 08:00", "before 10am", "after 09:00 and before 12:00", "between 9am and 5pm"
  - "on tuesday", "on monday and friday", "on saturdays", "every weekday", "every weekend"
  - "on the first thursday of the month", "on the last friday of the month"
  - "on the first day of the month", "on the 15th day of the month"

A list of strings is OR'ed into one TimeWindow. Anything unrecognised raises
InvalidWindowSpec so malformed policies fail at load time.
"""

from __future__ import annotations

import datetime
import re
from typing import Iterable, Optional

from depcadence.core.errors import InvalidWindowSpec
from depcadence.core.schedule.calendar import WEEKDAY_NAMES, WEEKDAYS, WEEKEND
from depcadence.core.schedule.window import TimeWindow, WindowClause, resolve_zone

_TIME = r"(\d{1,2})(?::(\d{2}))?\s*(am|pm)?"
_DAY = r"(monday|tuesday|wednesday|thursday|friday|saturday|sunday)s?"
_ORDINALS = {"first": 1, "second": 2, "third": 3, "fourth": 4, "fifth": 5, "last": -1}

_ANY_TIME_RE = re.compile(r"at any time\b")
_AFTER_BEFORE_RE = re.compile(rf"after {_TIME}\s+(?:and\s+)?before {_TIME}")
_BETWEEN_RE = re.compile(rf"between {_TIME} and {_TIME}")
_AFTER_RE = re.compile(rf"after {_TIME}")
_BEFORE_RE = re.compile(rf"before {_TIME}")
_EVERY_WEEKDAY_RE = re.compile(r"every weekday\b")
_EVERY_WEEKEND_RE = re.compile(r"every weekend\b")
_ORDINAL_WEEKDAY_RE = re.compile(
    rf"on the (first|second|third|fourth|fifth|last) {_DAY} of (?:the|each|every) month"
)
_DAY_OF_MONTH_RE = re.compile(
    r"on the (first|last|\d{1,2}(?:st|nd|rd|th)?) day of (?:the|each|every) month"
)
_DAYS_RE = re.compile(rf"on {_DAY}((?:\s*(?:,|and|,\s*and)\s*{_DAY})*)")
_CONNECTOR_RE = re.compile(r"(?:and|,)\s+")


def parse_time(hour: str, minute: Optional[str], meridiem: Optional[str], text: str) -> datetime.time:
    h = int(hour)
    m = int(minute) if minute is not None else 0
    if meridiem is not None:
        if h < 1 or h > 12:
            raise InvalidWindowSpec(f"Invalid 12-hour time in '{text}'")
        h = h % 12 + (12 if meridiem == "pm" else 0)
    if h > 23 or m > 59:
        raise InvalidWindowSpec(f"Invalid time in '{text}'")
    return datetime.time(h, m)


def _parse_day_of_month(token: str, text: str) -> int:
    if token == "first":
        return 1
    if token == "last":
        return -1
    value = int(re.sub(r"(st|nd|rd|th)$", "", token))
    if value < 1 or value > 31:
        raise InvalidWindowSpec(f"Invalid day of month in '{text}'")
    return value


def parse_clause(text: str) -> WindowClause:
    if not isinstance(text, str):
        raise InvalidWindowSpec(f"Schedule entries must be strings, got {type(text).__name__}")
    normalized = " ".join(text.strip().lower().split())
    if not normalized:
        raise InvalidWindowSpec("Schedule entry is empty")

    weekdays: Optional[frozenset[int]] = None
    weekday_ordinal: Optional[tuple[int, int]] = None
    day_of_month: Optional[int] = None
    start: Optional[datetime.time] = None
    end: Optional[datetime.time] = None
    has_day = False
    has_time = False
    any_time = False

    rest = normalized
    while rest:
        match = _ANY_TIME_RE.match(rest)
        if match:
            any_time = True
        elif (match := _AFTER_BEFORE_RE.match(rest)) or (match := _BETWEEN_RE.match(rest)):
            if has_time:
                raise InvalidWindowSpec(f"Multiple time ranges in '{text}'")
            g = match.groups()
            start = parse_time(g[0], g[1], g[2], text)
            end = parse_time(g[3], g[4], g[5], text)
            has_time = True
        elif (match := _AFTER_RE.match(rest)) or (match := _BEFORE_RE.match(rest)):
            if has_time:
                raise InvalidWindowSpec(f"Multiple time ranges in '{text}'")
            value = parse_time(*match.groups(), text)
            if rest.startswith("after"):
                start = value
            else:
                end = value
            has_time = True
        elif (match := _EVERY_WEEKDAY_RE.match(rest)) or (match := _EVERY_WEEKEND_RE.match(rest)):
            if has_day:
                raise InvalidWindowSpec(f"Multiple day restrictions in '{text}'")
            weekdays = WEEKDAYS if "weekday" in match.group(0) else WEEKEND
            has_day = True
        elif match := _ORDINAL_WEEKDAY_RE.match(rest):
            if has_day:
                raise InvalidWindowSpec(f"Multiple day restrictions in '{text}'")
            weekday_ordinal = (WEEKDAY_NAMES[match.group(2)], _ORDINALS[match.group(1)])
            has_day = True
        elif match := _DAY_OF_MONTH_RE.match(rest):
            if has_day:
                raise InvalidWindowSpec(f"Multiple day restrictions in '{text}'")
            day_of_month = _parse_day_of_month(match.group(1), text)
            has_day = True
        elif match := _DAYS_RE.match(rest):
            if has_day:
                raise InvalidWindowSpec(f"Multiple day restrictions in '{text}'")
            names = re.findall(_DAY, match.group(0))
            weekdays = frozenset(WEEKDAY_NAMES[name] for name in names)
            has_day = True
        elif match := _CONNECTOR_RE.match(rest):
            pass
        else:
            raise InvalidWindowSpec(f"Unrecognised schedule text '{text}' near '{rest}'")
        rest = rest[match.end():].lstrip()

    if any_time and (has_day or has_time):
        raise InvalidWindowSpec(f"'at any time' cannot be combined with other parts in '{text}'")

    clause = WindowClause(
        weekdays=weekdays,
        weekday_ordinal=weekday_ordinal,
        day_of_month=day_of_month,
        start=start,
        end=end,
        text=normalized,
    )
    clause.validate()
    return clause


def parse_schedule(entries: Iterable[str] | str, timezone: str = "UTC") -> TimeWindow:
    if isinstance(entries, str):
        entries = [entries]
    entries = list(entries)
    if not entries:
        raise InvalidWindowSpec("Schedule must contain at least one entry")
    resolve_zone(timezone)
    return TimeWindow(clauses=tuple(parse_clause(entry) for entry in entries), timezone=timezone)
