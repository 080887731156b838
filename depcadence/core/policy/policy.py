"""Immutable policy snapshot passed explicitly to the evaluator.

Responsibilities:
  - Hold the global window, ordered rules, limits and policy-wide defaults.
  - Build the RuleMatcher including the implicit lockfile and vulnerability rules.

Invariants:
  - A Policy is never mutated after load; a new policy means a new snapshot.
  - Implicit lockfile rule precedes package rules; implicit vulnerability rule follows them.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass, field
from typing import Literal, Optional

from depcadence.core.domain.enums import UpdateType
from depcadence.core.domain.models import UpdateCandidate
from depcadence.core.schedule.window import TimeWindow
from .rules.matcher import RuleMatcher
from .rules.predicate import RulePredicate
from .rules.types import UNSET, Rule

UnreachableWindows = Literal["defer", "suppress"]

LOCKFILE_RULE_NAME = "lockfile_maintenance"
VULNERABILITY_RULE_NAME = "vulnerability_alerts"


@dataclass(frozen=True)
class RateLimits:
    hourly: int = 0
    concurrent: int = 0


@dataclass(frozen=True)
class LockfileMaintenance:
    enabled: bool = True
    automerge: bool = False
    schedule: Optional[TimeWindow] = None


@dataclass(frozen=True)
class VulnerabilityAlerts:
    enabled: bool = True
    automerge: bool = False
    add_labels: tuple[str, ...] = ()


def _is_vulnerability_fix(candidate: UpdateCandidate) -> bool:
    return candidate.vulnerability


@dataclass(frozen=True)
class Policy:
    policy_id: str = "custom"
    policy_version: str = "dev"
    timezone: str = "UTC"
    global_window: Optional[TimeWindow] = None
    rules: tuple[Rule, ...] = ()
    limits: RateLimits = field(default_factory=RateLimits)
    labels: tuple[str, ...] = ()
    automerge_strategy: Optional[str] = None
    unreachable_windows: UnreachableWindows = "defer"
    lockfile_maintenance: LockfileMaintenance = field(default_factory=LockfileMaintenance)
    vulnerability_alerts: VulnerabilityAlerts = field(default_factory=VulnerabilityAlerts)

    @functools.cached_property
    def matcher(self) -> RuleMatcher:
        defaults = Rule(name="defaults", labels=self.labels if self.labels else UNSET)

        lockfile = self.lockfile_maintenance
        leading = [
            Rule(
                name=LOCKFILE_RULE_NAME,
                predicate=RulePredicate(match_update_types=frozenset({UpdateType.LOCKFILE})),
                enabled=lockfile.enabled,
                automerge=lockfile.automerge,
                schedule=lockfile.schedule if lockfile.schedule is not None else UNSET,
            )
        ]

        trailing = []
        alerts = self.vulnerability_alerts
        if alerts.enabled:
            trailing.append(
                Rule(
                    name=VULNERABILITY_RULE_NAME,
                    custom_predicate=_is_vulnerability_fix,
                    group_name=None,
                    schedule=None,
                    automerge=alerts.automerge,
                    add_labels=alerts.add_labels,
                )
            )
        return RuleMatcher(self.rules, defaults=defaults, leading=leading, trailing=trailing)
