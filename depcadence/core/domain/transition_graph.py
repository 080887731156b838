"""Allowed lifecycle transitions for a single update candidate.

Responsibilities:
  - Define legal next states per current state.
  - The evaluator must respect this graph; guardrails reject anything else.

Invariants:
  - SUPPRESSED is reachable from every non-terminal state (terminal veto).
  - READY -> READY is the rate-limit deferral loop.
  - DECIDED -> READY returns a change-set whose execution failed.
  - Terminal states have no outgoing transitions.
"""

from __future__ import annotations

from .enums import State

ALLOWED_TRANSITIONS: dict[State, set[State]] = {
    State.DISCOVERED: {State.MATCHED, State.SUPPRESSED},
    State.MATCHED: {State.WINDOW_PENDING, State.SUPPRESSED},
    State.WINDOW_PENDING: {State.WINDOW_PENDING, State.READY, State.SUPPRESSED},
    State.READY: {State.READY, State.WINDOW_PENDING, State.DECIDED, State.SUPPRESSED},
    State.DECIDED: {State.EMITTED, State.READY, State.SUPPRESSED},
    State.EMITTED: set(),
    State.SUPPRESSED: set(),
}
