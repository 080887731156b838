"""Tests for window evaluation, intersection and next-coincidence search."""

from __future__ import annotations

import datetime

from depcadence.core.schedule.parser import parse_schedule
from depcadence.core.schedule.window import (
    NEVER,
    TimeWindow,
    WindowClause,
    WindowIntersection,
    intersect,
    is_active,
    next_active,
)

UTC = datetime.timezone.utc


def at(*parts: int) -> datetime.datetime:
    return datetime.datetime(*parts, tzinfo=UTC)


def business_hours() -> TimeWindow:
    return parse_schedule(["after 08:00 and before 18:00"], "Europe/Dublin")


def test_boundaries_are_closed_open() -> None:
    window = business_hours()
    # Dublin is on GMT in January.
    assert not is_active(window, at(2026, 1, 6, 7, 59, 59))
    assert is_active(window, at(2026, 1, 6, 8, 0))
    assert is_active(window, at(2026, 1, 6, 17, 59, 59))
    assert not is_active(window, at(2026, 1, 6, 18, 0))


def test_local_time_follows_summer_offset() -> None:
    window = business_hours()
    assert is_active(window, at(2026, 6, 2, 7, 0))
    assert not is_active(window, at(2026, 6, 2, 17, 0))


def test_range_wrapping_midnight() -> None:
    window = parse_schedule(["after 22:00 and before 06:00"], "UTC")
    assert is_active(window, at(2026, 1, 6, 23, 0))
    assert is_active(window, at(2026, 1, 7, 5, 59))
    assert not is_active(window, at(2026, 1, 7, 6, 0))
    assert not is_active(window, at(2026, 1, 7, 12, 0))


def test_spring_forward_gap_window() -> None:
    window = parse_schedule(["on sunday after 01:00 and before 03:00"], "Europe/Dublin")
    assert not is_active(window, at(2026, 3, 29, 0, 30))
    # 01:00 UTC is 02:00 IST, just after the jump.
    assert is_active(window, at(2026, 3, 29, 1, 0))
    assert not is_active(window, at(2026, 3, 29, 2, 0))

    opens = next_active(window, at(2026, 3, 29, 0, 30))
    assert opens is not None
    assert opens.date() == datetime.date(2026, 3, 29)
    assert is_active(window, opens)


def test_fall_back_repeated_hour_matches_twice() -> None:
    window = parse_schedule(["after 01:00 and before 02:00"], "Europe/Dublin")
    assert is_active(window, at(2026, 10, 25, 0, 30))
    assert is_active(window, at(2026, 10, 25, 1, 30))
    assert not is_active(window, at(2026, 10, 25, 2, 0))


def test_intersection_only_active_where_all_members_are() -> None:
    weekly = parse_schedule(["on tuesday before 10:00"], "Europe/Dublin")
    combined = intersect(business_hours(), weekly)
    start = at(2026, 1, 5, 0, 0)
    for step in range(7 * 24 * 4):
        instant = start + datetime.timedelta(minutes=15 * step)
        if is_active(combined, instant):
            assert is_active(business_hours(), instant)
            assert is_active(weekly, instant)
    assert is_active(combined, at(2026, 1, 6, 9, 0))
    assert not is_active(combined, at(2026, 1, 6, 7, 0))
    assert not is_active(combined, at(2026, 1, 6, 10, 0))


def test_intersect_flattens_and_skips_none() -> None:
    a = business_hours()
    b = parse_schedule(["on monday"], "UTC")
    nested = intersect(intersect(a), None, b)
    assert nested == WindowIntersection(windows=(a, b))


def test_empty_intersection_always_active_and_never_window_inactive() -> None:
    assert is_active(WindowIntersection(), at(2026, 1, 1, 3, 0))
    assert not is_active(NEVER, at(2026, 1, 1, 3, 0))


def test_evaluation_fails_closed() -> None:
    naive = datetime.datetime(2026, 1, 6, 9, 0)
    assert not is_active(business_hours(), naive)
    broken = TimeWindow(clauses=(WindowClause(text="at any time"),), timezone="Nowhere/City")
    assert not is_active(broken, at(2026, 1, 6, 9, 0))


def test_next_active_returns_first_coincidence() -> None:
    weekly = parse_schedule(["on tuesday before 10:00"], "Europe/Dublin")
    combined = intersect(business_hours(), weekly)
    assert next_active(combined, at(2026, 1, 7, 12, 0)) == at(2026, 1, 13, 8, 0)
    assert next_active(combined, at(2026, 1, 6, 9, 0)) == at(2026, 1, 6, 9, 0)


def test_next_active_none_when_windows_never_coincide() -> None:
    early = parse_schedule(["before 07:00"], "Europe/Dublin")
    assert next_active(intersect(business_hours(), early), at(2026, 1, 6, 6, 30), horizon_days=30) is None
    assert next_active(business_hours(), datetime.datetime(2026, 1, 6, 6, 30)) is None
