"""Result payload for one evaluator tick.

Responsibilities:
  - Capture emitted change-sets, deferrals, suppressions and transitions for audit.

Inputs/Outputs:
  - Inputs: produced by PolicyEvaluator.tick.
  - Outputs: consumed by the application facade and CLIs.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import Optional

from ..domain.enums import ReasonCode
from ..domain.models import ChangeSet, Decision, Transition


@dataclass(frozen=True)
class Suppression:
    candidate_id: str
    reason: ReasonCode
    detail: Optional[str] = None


@dataclass
class TickResult:
    tick_at: datetime.datetime
    change_sets: list[ChangeSet] = field(default_factory=list)
    deferred: dict[str, ReasonCode] = field(default_factory=dict)
    suppressed: list[Suppression] = field(default_factory=list)
    transitions: list[Transition] = field(default_factory=list)

    @property
    def decisions(self) -> list[Decision]:
        return [decision for change_set in self.change_sets for decision in change_set.decisions]
