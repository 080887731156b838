"""Rule records and their field-level merge.

Responsibilities:
  - Define Rule (override fields default to UNSET) and the resolved EffectiveRule.
  - Implement declaration-order override: for every field, the last rule that sets it wins.

Invariants:
  - override() is associative: merging [A, B, C] equals merging [merge(A, B), C].
  - An explicit None is a value (it clears the field); only UNSET is skipped.
  - add_labels accumulate in declaration order; every other field is last-writer-wins.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Iterable, Optional

from depcadence.core.domain.enums import AutomergeMode
from depcadence.core.domain.models import UpdateCandidate
from depcadence.core.schedule.window import TimeWindow
from .predicate import RulePredicate


class _Unset:
    _instance: Optional["_Unset"] = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()

OVERRIDE_FIELDS: tuple[str, ...] = (
    "enabled",
    "group_name",
    "schedule",
    "automerge",
    "automerge_mode",
    "extra_delay",
    "labels",
    "pr_priority",
    "ignore_tests",
    "post_update_options",
)


@dataclass(frozen=True)
class Rule:
    name: str
    predicate: RulePredicate = field(default_factory=RulePredicate)
    custom_predicate: Optional[Callable[[UpdateCandidate], bool]] = field(default=None, compare=False)
    description: str = ""
    enabled: Any = UNSET
    group_name: Any = UNSET
    schedule: Any = UNSET
    automerge: Any = UNSET
    automerge_mode: Any = UNSET
    extra_delay: Any = UNSET
    labels: Any = UNSET
    pr_priority: Any = UNSET
    ignore_tests: Any = UNSET
    post_update_options: Any = UNSET
    add_labels: tuple[str, ...] = ()

    def matches(self, candidate: UpdateCandidate) -> bool:
        if not self.predicate.matches(candidate):
            return False
        if self.custom_predicate is not None:
            return bool(self.custom_predicate(candidate))
        return True

    def overrides(self) -> dict[str, Any]:
        values = {name: getattr(self, name) for name in OVERRIDE_FIELDS if getattr(self, name) is not UNSET}
        if self.add_labels:
            values["add_labels"] = self.add_labels
        return values


def override(base: Rule, top: Rule) -> Rule:
    changes: dict[str, Any] = {
        name: getattr(top, name) for name in OVERRIDE_FIELDS if getattr(top, name) is not UNSET
    }
    changes["add_labels"] = base.add_labels + top.add_labels
    changes["name"] = f"{base.name}+{top.name}" if base.name else top.name
    return replace(base, **changes)


def merge_rules(rules: Iterable[Rule]) -> Rule:
    merged = Rule(name="")
    for rule in rules:
        merged = override(merged, rule)
    return merged


@dataclass(frozen=True)
class EffectiveRule:
    enabled: bool = True
    group_name: Optional[str] = None
    schedule: Optional[TimeWindow] = None
    automerge: bool = False
    automerge_mode: AutomergeMode = AutomergeMode.PR
    extra_delay: Optional[datetime.timedelta] = None
    labels: tuple[str, ...] = ()
    pr_priority: int = 0
    ignore_tests: bool = False
    post_update_options: tuple[str, ...] = ()
    matched_rules: tuple[str, ...] = ()


def resolve(merged: Rule, matched_rules: tuple[str, ...] = ()) -> EffectiveRule:
    values = merged.overrides()
    labels = tuple(values.pop("labels", None) or ())
    for label in values.pop("add_labels", ()):
        if label not in labels:
            labels += (label,)
    effective = EffectiveRule(labels=labels, matched_rules=matched_rules)
    for name, value in values.items():
        if value is None and name in ("enabled", "automerge", "automerge_mode", "ignore_tests", "pr_priority"):
            continue
        if name == "post_update_options":
            value = tuple(value or ())
        effective = replace(effective, **{name: value})
    return effective
