from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional

from depcadence.core.domain.enums import DepType, Manager, UpdateType
from depcadence.core.domain.models import UpdateCandidate
from depcadence.core.errors import InvalidRulePredicate


def compile_patterns(patterns: Iterable[str]) -> tuple[re.Pattern[str], ...]:
    compiled = []
    for pattern in patterns:
        if not isinstance(pattern, str) or not pattern:
            raise InvalidRulePredicate(f"Package pattern must be a non-empty string, got {pattern!r}")
        try:
            compiled.append(re.compile(pattern))
        except re.error as exc:
            raise InvalidRulePredicate(f"Invalid package pattern {pattern!r}: {exc}") from exc
    return tuple(compiled)


@dataclass(frozen=True)
class RulePredicate:
    """Structured match criteria; a None field is a wildcard.

    Package names and patterns are alternatives: a candidate satisfies the package
    criterion when it equals one of the names or is found by one of the patterns.
    """

    match_managers: Optional[frozenset[Manager]] = None
    match_dep_types: Optional[frozenset[DepType]] = None
    match_update_types: Optional[frozenset[UpdateType]] = None
    exclude_update_types: Optional[frozenset[UpdateType]] = None
    match_package_names: Optional[frozenset[str]] = None
    match_package_patterns: Optional[tuple[re.Pattern[str], ...]] = None
    exclude_package_patterns: Optional[tuple[re.Pattern[str], ...]] = None

    def validate(self) -> None:
        for name in ("match_managers", "match_dep_types", "match_update_types", "match_package_names"):
            value = getattr(self, name)
            if value is not None and not value:
                raise InvalidRulePredicate(f"'{name}' must not be empty when present")
        if self.match_package_patterns is not None and not self.match_package_patterns:
            raise InvalidRulePredicate("'match_package_patterns' must not be empty when present")

    def _package_matches(self, package_name: str) -> bool:
        names = self.match_package_names
        patterns = self.match_package_patterns
        if names is None and patterns is None:
            return True
        if names is not None and package_name in names:
            return True
        if patterns is not None and any(p.search(package_name) for p in patterns):
            return True
        return False

    def matches(self, candidate: UpdateCandidate) -> bool:
        if self.match_managers is not None and candidate.manager not in self.match_managers:
            return False
        if self.match_dep_types is not None and candidate.dep_type not in self.match_dep_types:
            return False
        if self.match_update_types is not None and candidate.update_type not in self.match_update_types:
            return False
        if self.exclude_update_types is not None and candidate.update_type in self.exclude_update_types:
            return False
        if not self._package_matches(candidate.package_name):
            return False
        if self.exclude_package_patterns is not None and any(
            p.search(candidate.package_name) for p in self.exclude_package_patterns
        ):
            return False
        return True
