"""Port definitions for app-level collaborators.

Responsibilities:
  - Define interface contracts for discovery, execution and the clock.
Must not:
  - Implement logic; interfaces only.
"""

from __future__ import annotations

import datetime
from typing import Protocol

from depcadence.core.domain.models import ChangeSet, UpdateCandidate


class CandidateSource(Protocol):
    def get_candidates(self) -> list[UpdateCandidate]:
        ...


class ChangeSetSink(Protocol):
    def execute(self, change_set: ChangeSet) -> None:
        ...


class Clock(Protocol):
    def now(self) -> datetime.datetime:
        ...
