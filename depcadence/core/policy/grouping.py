"""Pending group buckets.

Responsibilities:
  - Track which candidates wait in which named bucket; the evaluator batches from here.
  - Record manual triggers for buckets that have waiting members.

Invariants:
  - A candidate belongs to at most one bucket; adding it elsewhere moves it.
  - Empty buckets are dropped; flushed members leave their bucket.
  - A trigger outlives a tick only while its bucket has members.
"""

from __future__ import annotations

from typing import Iterable, Optional

from depcadence.core.domain.models import UpdateCandidate


class GroupingEngine:
    def __init__(self) -> None:
        self._buckets: dict[str, dict[str, UpdateCandidate]] = {}
        self._member_group: dict[str, str] = {}
        self._triggers: set[str] = set()

    def add(self, candidate: UpdateCandidate, group_name: str) -> None:
        candidate_id = candidate.candidate_id
        current = self._member_group.get(candidate_id)
        if current == group_name:
            return
        if current is not None:
            self.remove(candidate_id)
        self._buckets.setdefault(group_name, {})[candidate_id] = candidate
        self._member_group[candidate_id] = group_name

    def remove(self, candidate_id: str) -> Optional[str]:
        group_name = self._member_group.pop(candidate_id, None)
        if group_name is None:
            return None
        bucket = self._buckets.get(group_name, {})
        bucket.pop(candidate_id, None)
        if not bucket:
            self._buckets.pop(group_name, None)
        return group_name

    def members(self, group_name: str) -> list[UpdateCandidate]:
        return sorted(self._buckets.get(group_name, {}).values(), key=lambda c: c.sort_key)

    def trigger(self, group_name: str) -> None:
        self._triggers.add(group_name)

    def is_triggered(self, group_name: str) -> bool:
        return group_name in self._triggers

    def expire_triggers(self) -> list[str]:
        expired = sorted(name for name in self._triggers if name not in self._buckets)
        self._triggers.difference_update(expired)
        return expired

    def flush(self, group_name: str, candidate_ids: Iterable[str]) -> None:
        for candidate_id in candidate_ids:
            if self._member_group.get(candidate_id) == group_name:
                self.remove(candidate_id)
        self._triggers.discard(group_name)
