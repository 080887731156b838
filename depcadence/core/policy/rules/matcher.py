"""Rule matching and resolution for a single candidate.

Responsibilities:
  - Return every rule whose predicate holds, in declaration order (multi-valued matching).
  - Resolve the matched list into one EffectiveRule via field-level override.
  - Record and log group conflicts; the last rule's group name wins.

Must not:
  - Use first-match or most-specific-wins; declaration order is the only resolution rule.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from depcadence.core.domain.models import UpdateCandidate
from depcadence.core.errors import AmbiguousGroupConflict
from .types import UNSET, EffectiveRule, Rule, merge_rules, resolve

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchResult:
    rules: tuple[Rule, ...]
    effective: EffectiveRule
    group_conflict: Optional[AmbiguousGroupConflict]


def find_group_conflict(candidate: UpdateCandidate, rules: Sequence[Rule]) -> Optional[AmbiguousGroupConflict]:
    assigned = [rule.group_name for rule in rules if rule.group_name is not UNSET]
    # Clearing the group is not a competing assignment.
    distinct = tuple(dict.fromkeys(name for name in assigned if name is not None))
    if len(distinct) < 2:
        return None
    return AmbiguousGroupConflict(
        candidate_id=candidate.candidate_id,
        group_names=distinct,
        resolved=assigned[-1],
    )


class RuleMatcher:
    def __init__(
        self,
        rules: Sequence[Rule],
        defaults: Optional[Rule] = None,
        leading: Sequence[Rule] = (),
        trailing: Sequence[Rule] = (),
    ) -> None:
        self._defaults = defaults
        self._rules = tuple(leading) + tuple(rules) + tuple(trailing)

    @property
    def rules(self) -> tuple[Rule, ...]:
        return self._rules

    def match(self, candidate: UpdateCandidate) -> list[Rule]:
        return [rule for rule in self._rules if rule.matches(candidate)]

    def resolve(self, candidate: UpdateCandidate) -> MatchResult:
        matched = self.match(candidate)
        conflict = find_group_conflict(candidate, matched)
        if conflict is not None:
            logger.warning(
                "Ambiguous group for %s: %s; using %r",
                conflict.candidate_id,
                list(conflict.group_names),
                conflict.resolved,
            )
        chain = ([self._defaults] if self._defaults is not None else []) + matched
        effective = resolve(merge_rules(chain), matched_rules=tuple(rule.name for rule in matched))
        return MatchResult(rules=tuple(matched), effective=effective, group_conflict=conflict)
