"""Domain models for candidates, decisions and emitted change-sets.

Responsibilities:
  - Define immutable data carriers for update candidates, decisions and transitions.

Inputs/Outputs:
  - UpdateCandidate comes from the discovery collaborator.
  - Decision and ChangeSet go to the execution collaborator and the journal.

Invariants:
  - Models must be deterministic containers with no policy behavior.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import Optional

from depcadence.core.schedule.window import WindowIntersection
from .enums import ACTION_RANK, Action, AutomergeMode, DepType, Manager, ReasonCode, State, UpdateType


@dataclass(frozen=True)
class UpdateCandidate:
    manager: Manager
    dep_type: Optional[DepType]
    update_type: UpdateType
    package_name: str
    current_version: Optional[str]
    candidate_version: str
    detected_at: datetime.datetime
    vulnerability: bool = False

    @property
    def candidate_id(self) -> str:
        return f"{self.manager.value}:{self.package_name}@{self.candidate_version}"

    @property
    def sort_key(self) -> tuple[datetime.datetime, str]:
        return (self.detected_at, self.candidate_id)


@dataclass(frozen=True)
class Decision:
    candidate: UpdateCandidate
    action: Action
    automerge: bool
    automerge_mode: AutomergeMode
    effective_schedule: WindowIntersection
    group_name: Optional[str]
    labels: tuple[str, ...] = ()
    pr_priority: int = 0
    ignore_tests: bool = False
    automerge_strategy: Optional[str] = None
    post_update_options: tuple[str, ...] = ()
    matched_rules: tuple[str, ...] = ()
    reasons: tuple[ReasonCode, ...] = ()
    not_before: Optional[datetime.datetime] = None

    @property
    def candidate_id(self) -> str:
        return self.candidate.candidate_id


@dataclass(frozen=True)
class ChangeSet:
    """One unit handed to execution: a flushed group, or a single ungrouped decision."""

    group_name: Optional[str]
    decisions: tuple[Decision, ...]
    manual: bool = False

    @property
    def action(self) -> Action:
        return min((d.action for d in self.decisions), key=ACTION_RANK.__getitem__)

    @property
    def change_set_id(self) -> str:
        if self.group_name is not None:
            return f"group:{self.group_name}"
        return self.decisions[0].candidate_id

    @property
    def candidate_ids(self) -> tuple[str, ...]:
        return tuple(d.candidate_id for d in self.decisions)


@dataclass(frozen=True)
class Transition:
    candidate_id: str
    from_state: State
    to_state: State
    reason_codes: tuple[ReasonCode, ...] = field(default_factory=tuple)
