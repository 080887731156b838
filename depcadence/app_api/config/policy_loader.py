"""Load and validate declarative policy documents.

Responsibilities:
  - Read JSON or YAML policy files into an immutable Policy snapshot.
  - Reject unknown fields, unknown enum values and malformed windows at load time.

Invariants:
  - Rule order is the order of the `rules` mapping in the document.
  - Errors are raised, never degraded: a bad policy must stop startup.
"""

from __future__ import annotations

import datetime
import json
import logging
import re
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Optional, Type, TypeVar

import yaml

from depcadence.core.domain.enums import AutomergeMode, DepType, Manager, UpdateType
from depcadence.core.errors import InvalidRulePredicate, InvalidWindowSpec, PolicyConfigError
from depcadence.core.policy.policy import LockfileMaintenance, Policy, RateLimits, VulnerabilityAlerts
from depcadence.core.policy.rules.predicate import RulePredicate, compile_patterns
from depcadence.core.policy.rules.types import Rule
from depcadence.core.schedule.parser import parse_schedule
from depcadence.core.schedule.window import TimeWindow, intersect, next_active, resolve_zone

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)

_TOP_LEVEL_FIELDS = {
    "policy_id",
    "policy_version",
    "description",
    "timezone",
    "schedule",
    "limits",
    "labels",
    "automerge_strategy",
    "unreachable_windows",
    "lockfile_maintenance",
    "vulnerability_alerts",
    "rules",
}
_LIMIT_FIELDS = {"hourly", "concurrent"}
_LOCKFILE_FIELDS = {"enabled", "automerge", "schedule"}
_VULNERABILITY_FIELDS = {"enabled", "automerge", "add_labels"}
_PREDICATE_FIELDS = {
    "match_managers",
    "match_dep_types",
    "match_update_types",
    "exclude_update_types",
    "match_package_names",
    "match_package_patterns",
    "exclude_package_patterns",
}
_RULE_FIELDS = _PREDICATE_FIELDS | {
    "description",
    "enabled",
    "group_name",
    "schedule",
    "automerge",
    "automerge_mode",
    "extra_delay",
    "labels",
    "add_labels",
    "pr_priority",
    "ignore_tests",
    "post_update_options",
}
_AUTOMERGE_STRATEGIES = {"merge-commit", "squash", "rebase", "fast-forward"}
_DURATION_RE = re.compile(r"^(\d+)\s*(minute|hour|day|week)s?$")


def _reject_unknown(payload: Mapping[str, Any], allowed: set[str], where: str) -> None:
    unknown = sorted(set(payload) - allowed)
    if unknown:
        raise PolicyConfigError(f"Unknown field(s) {unknown} in {where}")


def _require_object(value: Any, where: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise PolicyConfigError(f"{where} must be an object")
    return value


def _require_str(value: Any, where: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise PolicyConfigError(f"{where} must be a non-empty string")
    return value


def _require_bool(value: Any, where: str) -> bool:
    if not isinstance(value, bool):
        raise PolicyConfigError(f"{where} must be a boolean")
    return value


def _require_int(value: Any, where: str, minimum: int = 0) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < minimum:
        raise PolicyConfigError(f"{where} must be an int >= {minimum}")
    return value


def _require_string_list(value: Any, where: str) -> list[str]:
    if not isinstance(value, list):
        raise PolicyConfigError(f"{where} must be a list")
    out: list[str] = []
    for item in value:
        if not isinstance(item, str) or not item.strip():
            raise PolicyConfigError(f"{where} must contain non-empty strings")
        out.append(item)
    return out


def _require_enum_set(value: Any, enum_type: Type[E], where: str) -> frozenset[E]:
    members = set()
    for item in _require_string_list(value, where):
        try:
            members.add(enum_type(item))
        except ValueError as exc:
            raise InvalidRulePredicate(f"Unknown {enum_type.__name__} '{item}' in {where}") from exc
    if not members:
        raise InvalidRulePredicate(f"{where} must not be empty")
    return frozenset(members)


def parse_duration(value: Any, where: str) -> datetime.timedelta:
    text = _require_str(value, where).strip().lower()
    match = _DURATION_RE.match(text)
    if match is None:
        raise PolicyConfigError(f"{where} must look like '3 days' or '12 hours', got '{value}'")
    amount, unit = int(match.group(1)), match.group(2)
    return datetime.timedelta(**{f"{unit}s": amount})


def _parse_window(value: Any, timezone: str, where: str) -> TimeWindow:
    if isinstance(value, str):
        value = [value]
    entries = _require_string_list(value, where)
    try:
        return parse_schedule(entries, timezone)
    except InvalidWindowSpec as exc:
        raise InvalidWindowSpec(f"{where}: {exc}") from exc


def _parse_predicate(payload: Mapping[str, Any], where: str) -> RulePredicate:
    kwargs: dict[str, Any] = {}
    if "match_managers" in payload:
        kwargs["match_managers"] = _require_enum_set(payload["match_managers"], Manager, f"{where}.match_managers")
    if "match_dep_types" in payload:
        kwargs["match_dep_types"] = _require_enum_set(payload["match_dep_types"], DepType, f"{where}.match_dep_types")
    if "match_update_types" in payload:
        kwargs["match_update_types"] = _require_enum_set(
            payload["match_update_types"], UpdateType, f"{where}.match_update_types"
        )
    if "exclude_update_types" in payload:
        kwargs["exclude_update_types"] = _require_enum_set(
            payload["exclude_update_types"], UpdateType, f"{where}.exclude_update_types"
        )
    if "match_package_names" in payload:
        kwargs["match_package_names"] = frozenset(
            _require_string_list(payload["match_package_names"], f"{where}.match_package_names")
        )
    for key in ("match_package_patterns", "exclude_package_patterns"):
        if key in payload:
            try:
                kwargs[key] = compile_patterns(_require_string_list(payload[key], f"{where}.{key}"))
            except InvalidRulePredicate as exc:
                raise InvalidRulePredicate(f"{where}.{key}: {exc}") from exc
    predicate = RulePredicate(**kwargs)
    try:
        predicate.validate()
    except InvalidRulePredicate as exc:
        raise InvalidRulePredicate(f"{where}: {exc}") from exc
    return predicate


def _parse_rule(name: str, payload: Any, timezone: str) -> Rule:
    where = f"rule '{name}'"
    payload = _require_object(payload, where)
    _reject_unknown(payload, _RULE_FIELDS, where)

    fields: dict[str, Any] = {}
    if "description" in payload:
        fields["description"] = _require_str(payload["description"], f"{where}.description")
    for key in ("enabled", "automerge", "ignore_tests"):
        if key in payload:
            fields[key] = _require_bool(payload[key], f"{where}.{key}")
    if "group_name" in payload:
        value = payload["group_name"]
        fields["group_name"] = None if value is None else _require_str(value, f"{where}.group_name")
    if "schedule" in payload:
        value = payload["schedule"]
        fields["schedule"] = None if value is None else _parse_window(value, timezone, f"{where}.schedule")
    if "automerge_mode" in payload:
        try:
            fields["automerge_mode"] = AutomergeMode(payload["automerge_mode"])
        except ValueError as exc:
            raise PolicyConfigError(f"{where}.automerge_mode must be 'branch' or 'pr'") from exc
    if "extra_delay" in payload:
        value = payload["extra_delay"]
        fields["extra_delay"] = None if value is None else parse_duration(value, f"{where}.extra_delay")
    if "labels" in payload:
        fields["labels"] = tuple(_require_string_list(payload["labels"], f"{where}.labels"))
    if "add_labels" in payload:
        fields["add_labels"] = tuple(_require_string_list(payload["add_labels"], f"{where}.add_labels"))
    if "pr_priority" in payload:
        value = payload["pr_priority"]
        if not isinstance(value, int) or isinstance(value, bool):
            raise PolicyConfigError(f"{where}.pr_priority must be an int")
        fields["pr_priority"] = value
    if "post_update_options" in payload:
        fields["post_update_options"] = tuple(
            _require_string_list(payload["post_update_options"], f"{where}.post_update_options")
        )

    return Rule(name=name, predicate=_parse_predicate(payload, where), **fields)


def parse_policy(payload: Any, source: str = "<policy>") -> Policy:
    payload = _require_object(payload, f"policy {source}")
    _reject_unknown(payload, _TOP_LEVEL_FIELDS, f"policy {source}")

    timezone = _require_str(payload.get("timezone", "UTC"), "timezone")
    try:
        resolve_zone(timezone)
    except InvalidWindowSpec as exc:
        raise InvalidWindowSpec(f"timezone: {exc}") from exc

    global_window: Optional[TimeWindow] = None
    if payload.get("schedule") is not None:
        global_window = _parse_window(payload["schedule"], timezone, "schedule")

    limits_payload = _require_object(payload.get("limits", {}), "limits")
    _reject_unknown(limits_payload, _LIMIT_FIELDS, "limits")
    limits = RateLimits(
        hourly=_require_int(limits_payload.get("hourly", 0), "limits.hourly"),
        concurrent=_require_int(limits_payload.get("concurrent", 0), "limits.concurrent"),
    )

    automerge_strategy = payload.get("automerge_strategy")
    if automerge_strategy is not None and automerge_strategy not in _AUTOMERGE_STRATEGIES:
        raise PolicyConfigError(f"automerge_strategy must be one of {sorted(_AUTOMERGE_STRATEGIES)}")

    unreachable = payload.get("unreachable_windows", "defer")
    if unreachable not in ("defer", "suppress"):
        raise PolicyConfigError("unreachable_windows must be 'defer' or 'suppress'")

    lockfile_payload = _require_object(payload.get("lockfile_maintenance", {}), "lockfile_maintenance")
    _reject_unknown(lockfile_payload, _LOCKFILE_FIELDS, "lockfile_maintenance")
    lockfile = LockfileMaintenance(
        enabled=_require_bool(lockfile_payload.get("enabled", True), "lockfile_maintenance.enabled"),
        automerge=_require_bool(lockfile_payload.get("automerge", False), "lockfile_maintenance.automerge"),
        schedule=(
            _parse_window(lockfile_payload["schedule"], timezone, "lockfile_maintenance.schedule")
            if lockfile_payload.get("schedule") is not None
            else None
        ),
    )

    alerts_payload = _require_object(payload.get("vulnerability_alerts", {}), "vulnerability_alerts")
    _reject_unknown(alerts_payload, _VULNERABILITY_FIELDS, "vulnerability_alerts")
    alerts = VulnerabilityAlerts(
        enabled=_require_bool(alerts_payload.get("enabled", True), "vulnerability_alerts.enabled"),
        automerge=_require_bool(alerts_payload.get("automerge", False), "vulnerability_alerts.automerge"),
        add_labels=tuple(_require_string_list(alerts_payload.get("add_labels", []), "vulnerability_alerts.add_labels")),
    )

    rules_payload = _require_object(payload.get("rules", {}), "rules")
    rules = tuple(_parse_rule(str(name), record, timezone) for name, record in rules_payload.items())

    policy = Policy(
        policy_id=_require_str(payload.get("policy_id", "custom"), "policy_id"),
        policy_version=_require_str(payload.get("policy_version", "dev"), "policy_version"),
        timezone=timezone,
        global_window=global_window,
        rules=rules,
        limits=limits,
        labels=tuple(_require_string_list(payload.get("labels", []), "labels")),
        automerge_strategy=automerge_strategy,
        unreachable_windows=unreachable,
        lockfile_maintenance=lockfile,
        vulnerability_alerts=alerts,
    )
    warn_unreachable_rules(policy)
    return policy


def warn_unreachable_rules(policy: Policy, reference: Optional[datetime.datetime] = None) -> list[str]:
    """Log rules whose schedule never overlaps the global window; returns their names."""
    if policy.global_window is None:
        return []
    reference = reference or datetime.datetime.now(datetime.timezone.utc)
    unreachable = []
    for rule in policy.rules:
        if not isinstance(rule.schedule, TimeWindow):
            continue
        if next_active(intersect(policy.global_window, rule.schedule), reference) is None:
            logger.warning(
                "Rule '%s' schedule %s never overlaps the global window %s",
                rule.name,
                rule.schedule.describe(),
                policy.global_window.describe(),
            )
            unreachable.append(rule.name)
    return unreachable


def load_policy(path: str | Path) -> Policy:
    policy_path = Path(path)
    if not policy_path.exists():
        raise PolicyConfigError(f"Policy file not found: {policy_path}")
    text = policy_path.read_text(encoding="utf-8")
    try:
        if policy_path.suffix.lower() in (".yaml", ".yml"):
            payload = yaml.safe_load(text)
        else:
            payload = json.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise PolicyConfigError(f"Cannot parse policy file {policy_path}: {exc}") from exc
    return parse_policy(payload, source=str(policy_path))
