from __future__ import annotations

import datetime


class SystemClock:
    def now(self) -> datetime.datetime:
        return datetime.datetime.now(datetime.timezone.utc)


class FixedClock:
    def __init__(self, instant: datetime.datetime) -> None:
        if instant.tzinfo is None:
            raise ValueError("FixedClock requires a timezone-aware instant")
        self._instant = instant

    def now(self) -> datetime.datetime:
        return self._instant

    def advance(self, delta: datetime.timedelta) -> None:
        self._instant = self._instant + delta
