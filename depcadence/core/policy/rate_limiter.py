"""Pull-request creation caps.

Two counters: change-sets created in the current clock hour (UTC) and change-sets
currently open. A limit of 0 disables that cap. Denials are deferrals; the caller
retries on a later tick.
"""

from __future__ import annotations

import datetime
from typing import Iterable, Optional


def _hour_bucket(now: datetime.datetime) -> datetime.datetime:
    return now.astimezone(datetime.timezone.utc).replace(minute=0, second=0, microsecond=0)


class RateLimiter:
    def __init__(self, hourly_limit: int = 0, concurrent_limit: int = 0) -> None:
        if hourly_limit < 0 or concurrent_limit < 0:
            raise ValueError("limits must be >= 0")
        self._hourly_limit = hourly_limit
        self._concurrent_limit = concurrent_limit
        self._hour: Optional[datetime.datetime] = None
        self._created_this_hour: set[str] = set()
        self._open: set[str] = set()

    @property
    def created_this_hour(self) -> int:
        return len(self._created_this_hour)

    @property
    def open_count(self) -> int:
        return len(self._open)

    def on_tick(self, now: datetime.datetime) -> None:
        bucket = _hour_bucket(now)
        if bucket != self._hour:
            self._hour = bucket
            self._created_this_hour.clear()

    def seed_open(self, change_set_ids: Iterable[str]) -> None:
        self._open.update(change_set_ids)

    def seed_created(self, change_set_ids: Iterable[str], now: datetime.datetime) -> None:
        self.on_tick(now)
        self._created_this_hour.update(change_set_ids)

    def is_created(self, change_set_id: str) -> bool:
        return change_set_id in self._created_this_hour

    def is_open(self, change_set_id: str) -> bool:
        return change_set_id in self._open

    def admit(self, change_set_id: str, now: datetime.datetime, opens_pull_request: bool = True) -> bool:
        self.on_tick(now)
        reopening = opens_pull_request and change_set_id not in self._open
        if reopening and self._concurrent_limit and len(self._open) >= self._concurrent_limit:
            return False
        if change_set_id not in self._created_this_hour:
            if self._hourly_limit and len(self._created_this_hour) >= self._hourly_limit:
                return False
            self._created_this_hour.add(change_set_id)
        if reopening:
            self._open.add(change_set_id)
        return True

    def revoke(self, change_set_id: str, created: bool = True, opened: bool = True) -> None:
        """Undo an admission whose change-set never reached execution."""
        if created:
            self._created_this_hour.discard(change_set_id)
        if opened:
            self._open.discard(change_set_id)

    def release(self, change_set_id: str) -> bool:
        if change_set_id not in self._open:
            return False
        self._open.discard(change_set_id)
        return True
