"""Tests for policy factory wiring and the bundled preset."""

from __future__ import annotations

import pytest

from depcadence.app_api.config.policy_loader import warn_unreachable_rules
from depcadence.app_api.factories.policy_factory import PolicyFactory, build_policy, default_policy_factory
from depcadence.core.domain.enums import UpdateType
from depcadence.core.policy.policy import LOCKFILE_RULE_NAME, VULNERABILITY_RULE_NAME, Policy


def test_factory_returns_policy_and_errors_on_unknown():
    factory = PolicyFactory()
    factory.register("custom", "dev", lambda: Policy())
    assert factory.create("custom", "dev") == Policy()
    assert factory.available() == [("custom", "dev")]
    with pytest.raises(ValueError):
        factory.create("unknown", "v0")


def test_default_factory_ships_preset():
    assert ("dragonsecurity", "v1") in default_policy_factory.available()
    policy = build_policy(preset="dragonsecurity")
    assert policy.policy_id == "dragonsecurity"
    assert policy.timezone == "Europe/Dublin"
    assert policy.limits.hourly == 10
    assert policy.limits.concurrent == 20
    assert policy.automerge_strategy == "squash"
    assert [rule.name for rule in policy.rules] == [
        "safe-instant-automerge",
        "minor-automerge",
        "go-tidy",
        "github-actions",
        "js-prod-deps",
        "js-dev-deps",
        "typescript-types",
        "js-test-tools",
        "docker-digests",
        "docker-versions",
        "go-modules",
        "js-minor-cooldown",
        "monthly-upgrade-day",
    ]


def test_implicit_rules_wrap_package_rules():
    policy = build_policy(preset="dragonsecurity")
    names = [rule.name for rule in policy.matcher.rules]
    assert names[0] == LOCKFILE_RULE_NAME
    assert names[-1] == VULNERABILITY_RULE_NAME
    assert policy.matcher.rules[0].predicate.match_update_types == frozenset({UpdateType.LOCKFILE})


def test_preset_reports_docker_digest_schedule_as_unreachable():
    policy = build_policy(preset="dragonsecurity")
    assert warn_unreachable_rules(policy) == ["docker-digests"]


def test_build_policy_requires_a_source():
    with pytest.raises(ValueError):
        build_policy()
