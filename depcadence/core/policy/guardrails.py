"""Lifecycle guardrails for candidate state transitions.

Responsibilities:
  - Enforce the allowed transition graph.
  - Gate readiness on the effective rule's extra delay.

Invariants:
  - Must be deterministic and free of I/O.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass

from depcadence.core.domain.enums import State
from depcadence.core.domain.models import Decision, UpdateCandidate
from depcadence.core.domain.transition_graph import ALLOWED_TRANSITIONS
from .rules.types import EffectiveRule


@dataclass
class GuardrailResult:
    allowed: bool
    final_state: State


class IllegalTransition(RuntimeError):
    pass


def apply_guardrails(prev_state: State, proposed_state: State) -> GuardrailResult:
    if proposed_state not in ALLOWED_TRANSITIONS[prev_state]:
        return GuardrailResult(allowed=False, final_state=prev_state)
    return GuardrailResult(allowed=True, final_state=proposed_state)


def ready_at(candidate: UpdateCandidate, effective: EffectiveRule) -> datetime.datetime:
    if effective.extra_delay is None:
        return candidate.detected_at
    return candidate.detected_at + effective.extra_delay


def delay_elapsed(decision: Decision, now: datetime.datetime) -> bool:
    return decision.not_before is None or now >= decision.not_before
