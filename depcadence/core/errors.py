"""Error kinds raised by policy loading and window evaluation.

Rate limiting is not an error: denials surface as ReasonCode.RATE_LIMITED.
Group conflicts are recorded as AmbiguousGroupConflict and logged, never raised.
"""

from __future__ import annotations

from dataclasses import dataclass


class DepcadenceError(Exception):
    pass


class InvalidWindowSpec(DepcadenceError, ValueError):
    pass


class InvalidRulePredicate(DepcadenceError, ValueError):
    pass


class PolicyConfigError(DepcadenceError, ValueError):
    pass


@dataclass(frozen=True)
class AmbiguousGroupConflict:
    candidate_id: str
    group_names: tuple[str | None, ...]
    resolved: str | None
