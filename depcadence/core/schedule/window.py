"""Recurring time windows and their evaluation.

Responsibilities:
  - Define TimeWindow (union of clauses in a named zone) and WindowIntersection (AND).
  - Answer is_active(window, instant) timezone-aware and DST-safe.
  - Find the next instant at which a window (or intersection) becomes active.

Invariants:
  - Boundaries are closed-open: start inclusive, end exclusive.
  - Evaluation fails closed: any unresolvable window is never active.
  - An intersection is never active where one of its members is inactive.
"""

from __future__ import annotations

import datetime
import functools
import logging
from dataclasses import dataclass, field
from typing import Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from depcadence.core.errors import InvalidWindowSpec
from depcadence.core.schedule.calendar import matches_day_of_month, matches_weekday_ordinal

logger = logging.getLogger(__name__)

_MIDNIGHT = datetime.time(0, 0)
DEFAULT_HORIZON_DAYS = 400


@functools.lru_cache(maxsize=64)
def resolve_zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, TypeError) as exc:
        raise InvalidWindowSpec(f"Unknown timezone '{name}'") from exc


@dataclass(frozen=True)
class WindowClause:
    weekdays: Optional[frozenset[int]] = None
    weekday_ordinal: Optional[tuple[int, int]] = None  # (weekday, ordinal)
    day_of_month: Optional[int] = None
    start: Optional[datetime.time] = None
    end: Optional[datetime.time] = None
    text: str = ""

    def validate(self) -> None:
        if self.start is not None and self.end is not None and self.start == self.end:
            raise InvalidWindowSpec(f"Empty time range in '{self.text}'")
        if self.weekdays is not None and (not self.weekdays or not self.weekdays <= set(range(7))):
            raise InvalidWindowSpec(f"Invalid weekdays in '{self.text}'")
        if self.weekday_ordinal is not None:
            weekday, ordinal = self.weekday_ordinal
            if weekday not in range(7) or ordinal not in (-1, 1, 2, 3, 4, 5):
                raise InvalidWindowSpec(f"Invalid weekday ordinal in '{self.text}'")
        if self.day_of_month is not None and self.day_of_month not in (-1, *range(1, 32)):
            raise InvalidWindowSpec(f"Invalid day of month in '{self.text}'")

    def day_matches(self, day: datetime.date) -> bool:
        if self.weekdays is not None and day.weekday() not in self.weekdays:
            return False
        if self.weekday_ordinal is not None and not matches_weekday_ordinal(day, *self.weekday_ordinal):
            return False
        if self.day_of_month is not None and not matches_day_of_month(day, self.day_of_month):
            return False
        return True

    def time_matches(self, t: datetime.time) -> bool:
        start, end = self.start, self.end
        if start is None and end is None:
            return True
        if start is None:
            return t < end
        if end is None:
            return t >= start
        if start < end:
            return start <= t < end
        # wraps midnight
        return t >= start or t < end

    def matches(self, local: datetime.datetime) -> bool:
        return self.day_matches(local.date()) and self.time_matches(local.time())


@dataclass(frozen=True)
class TimeWindow:
    """Union of clauses evaluated in one named timezone. No clauses means never active."""

    clauses: tuple[WindowClause, ...]
    timezone: str = "UTC"

    def describe(self) -> str:
        texts = [clause.text or "at any time" for clause in self.clauses]
        return f"{' | '.join(texts) or 'never'} ({self.timezone})"


@dataclass(frozen=True)
class WindowIntersection:
    """AND of windows; the empty intersection is always active."""

    windows: tuple[TimeWindow, ...] = field(default_factory=tuple)

    def describe(self) -> str:
        if not self.windows:
            return "at any time"
        return " AND ".join(window.describe() for window in self.windows)


AnyWindow = Union[TimeWindow, WindowIntersection]

ALWAYS = TimeWindow(clauses=(WindowClause(text="at any time"),), timezone="UTC")
NEVER = TimeWindow(clauses=(), timezone="UTC")


def intersect(*windows: Optional[AnyWindow]) -> WindowIntersection:
    members: list[TimeWindow] = []
    for window in windows:
        if window is None:
            continue
        if isinstance(window, WindowIntersection):
            members.extend(window.windows)
        else:
            members.append(window)
    return WindowIntersection(windows=tuple(members))


def _members(window: AnyWindow) -> tuple[TimeWindow, ...]:
    if isinstance(window, WindowIntersection):
        return window.windows
    return (window,)


def _is_active_single(window: TimeWindow, instant: datetime.datetime) -> bool:
    if instant.tzinfo is None or instant.utcoffset() is None:
        raise InvalidWindowSpec("Instant must be timezone-aware")
    local = instant.astimezone(resolve_zone(window.timezone))
    return any(clause.matches(local) for clause in window.clauses)


def is_active(window: AnyWindow, instant: datetime.datetime) -> bool:
    try:
        return all(_is_active_single(member, instant) for member in _members(window))
    except (InvalidWindowSpec, ValueError, TypeError, AttributeError) as exc:
        logger.warning("Window %r failed closed: %s", window, exc)
        return False


def validate_window(window: AnyWindow) -> None:
    for member in _members(window):
        resolve_zone(member.timezone)
        for clause in member.clauses:
            clause.validate()


def next_active(
    window: AnyWindow,
    after: datetime.datetime,
    horizon_days: int = DEFAULT_HORIZON_DAYS,
) -> Optional[datetime.datetime]:
    """Earliest instant >= after at which every member is active, or None within the horizon.

    An intersection of closed-open ranges opens at one of its members' openings, so only
    clause start times and local midnights need to be checked.
    """
    if after.tzinfo is None or after.utcoffset() is None:
        logger.warning("next_active called with naive instant %s; failing closed", after)
        return None
    if is_active(window, after):
        return after
    instants: set[datetime.datetime] = set()
    try:
        for member in _members(window):
            zone = resolve_zone(member.timezone)
            first_day = after.astimezone(zone).date()
            boundaries = {_MIDNIGHT} | {c.start for c in member.clauses if c.start is not None}
            for offset in range(horizon_days + 1):
                day = first_day + datetime.timedelta(days=offset)
                for boundary in boundaries:
                    instant = datetime.datetime.combine(day, boundary, tzinfo=zone).astimezone(
                        datetime.timezone.utc
                    )
                    if instant > after:
                        instants.add(instant)
    except (InvalidWindowSpec, ValueError, TypeError) as exc:
        logger.warning("Window %r failed closed: %s", window, exc)
        return None
    for instant in sorted(instants):
        if is_active(window, instant):
            return instant
    return None
