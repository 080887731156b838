"""Tests for decide() and the per-tick PolicyEvaluator lifecycle."""

from __future__ import annotations

import datetime
import logging
from dataclasses import replace

import pytest

from depcadence.app_api.factories.policy_factory import default_policy_factory
from depcadence.core.domain.enums import Action, AutomergeMode, DepType, Manager, ReasonCode, State, UpdateType
from depcadence.core.domain.models import UpdateCandidate
from depcadence.core.engine.evaluator import PolicyEvaluator, decide
from depcadence.core.policy.policy import LockfileMaintenance, Policy, RateLimits
from depcadence.core.policy.rules.predicate import RulePredicate
from depcadence.core.policy.rules.types import Rule
from depcadence.core.schedule.parser import parse_schedule

UTC = datetime.timezone.utc


def at(*parts: int) -> datetime.datetime:
    return datetime.datetime(*parts, tzinfo=UTC)


def make_candidate(
    package_name: str = "react",
    manager: Manager = Manager.NPM,
    dep_type: DepType | None = DepType.DEPENDENCIES,
    update_type: UpdateType = UpdateType.MINOR,
    version: str = "18.3.0",
    detected_at: datetime.datetime = at(2026, 1, 1, 9, 0),
    vulnerability: bool = False,
) -> UpdateCandidate:
    return UpdateCandidate(
        manager=manager,
        dep_type=dep_type,
        update_type=update_type,
        package_name=package_name,
        current_version="1.0.0",
        candidate_version=version,
        detected_at=detected_at,
        vulnerability=vulnerability,
    )


@pytest.fixture(scope="module")
def preset() -> Policy:
    return default_policy_factory.create("dragonsecurity", "v1")


# Preset scenarios ------------------------------------------------------------


def test_js_prod_minor_emitted_in_tuesday_window(preset: Policy) -> None:
    evaluator = PolicyEvaluator(preset)
    candidate = make_candidate()
    assert evaluator.submit(candidate)

    result = evaluator.tick(at(2026, 1, 6, 9, 0))

    assert len(result.change_sets) == 1
    change_set = result.change_sets[0]
    assert change_set.group_name == "JS prod dependencies"
    assert change_set.change_set_id == "group:JS prod dependencies"
    assert change_set.action == Action.OPEN_AND_AUTOMERGE
    decision = change_set.decisions[0]
    assert decision.matched_rules == ("minor-automerge", "js-prod-deps", "js-minor-cooldown")
    assert decision.automerge is True
    assert decision.ignore_tests is True
    assert decision.automerge_strategy == "squash"
    assert decision.labels == ("dependencies",)
    assert decision.not_before == at(2026, 1, 4, 9, 0)
    assert evaluator.state_of("react") == State.EMITTED


def test_js_prod_minor_waits_for_tuesday(preset: Policy) -> None:
    evaluator = PolicyEvaluator(preset)
    candidate = make_candidate()
    evaluator.submit(candidate)

    monday = evaluator.tick(at(2026, 1, 5, 9, 0))
    assert monday.change_sets == []
    assert monday.deferred == {candidate.candidate_id: ReasonCode.WINDOW_PENDING}
    assert evaluator.state_of("react") == State.WINDOW_PENDING

    tuesday = evaluator.tick(at(2026, 1, 6, 9, 0))
    assert [d.candidate_id for d in tuesday.decisions] == [candidate.candidate_id]


def test_extra_delay_defers_until_elapsed(preset: Policy) -> None:
    evaluator = PolicyEvaluator(preset)
    candidate = make_candidate(detected_at=at(2026, 1, 5, 9, 0))
    evaluator.submit(candidate)

    first = evaluator.tick(at(2026, 1, 6, 9, 0))
    assert first.deferred == {candidate.candidate_id: ReasonCode.EXTRA_DELAY_PENDING}

    later = evaluator.tick(at(2026, 1, 13, 9, 0))
    assert [d.candidate_id for d in later.decisions] == [candidate.candidate_id]


def test_gomod_major_routed_to_monthly_upgrade_day(preset: Policy) -> None:
    candidate = make_candidate(
        "golang.org/x/net", manager=Manager.GOMOD, dep_type=DepType.REQUIRE, update_type=UpdateType.MAJOR
    )
    decision = decide(candidate, preset)

    assert decision.action == Action.OPEN_PULL_REQUEST
    assert decision.automerge is False
    assert decision.automerge_strategy is None
    assert decision.group_name == "Monthly Upgrade Day (majors)"
    assert decision.pr_priority == 2
    assert decision.post_update_options == ("gomodTidy",)
    assert decision.matched_rules == ("go-tidy", "monthly-upgrade-day")

    evaluator = PolicyEvaluator(preset)
    evaluator.submit(candidate)
    second_thursday = evaluator.tick(at(2026, 2, 12, 10, 0))
    assert second_thursday.deferred == {candidate.candidate_id: ReasonCode.WINDOW_PENDING}
    first_thursday = evaluator.tick(at(2026, 3, 5, 10, 0))
    assert [cs.group_name for cs in first_thursday.change_sets] == ["Monthly Upgrade Day (majors)"]


def test_docker_digest_windows_never_coincide(preset: Policy, caplog: pytest.LogCaptureFixture) -> None:
    evaluator = PolicyEvaluator(preset, horizon_days=30)
    candidate = make_candidate(
        "library/nginx", manager=Manager.DOCKERFILE, dep_type=DepType.IMAGE, update_type=UpdateType.DIGEST
    )
    evaluator.submit(candidate)

    with caplog.at_level(logging.WARNING):
        first = evaluator.tick(at(2026, 1, 6, 6, 30))
        second = evaluator.tick(at(2026, 1, 6, 9, 0))

    assert first.deferred == {candidate.candidate_id: ReasonCode.WINDOW_NEVER_COINCIDES}
    assert second.deferred == {candidate.candidate_id: ReasonCode.WINDOW_NEVER_COINCIDES}
    assert evaluator.state_of("library/nginx") == State.WINDOW_PENDING
    assert caplog.text.count("Windows never coincide") == 1


def test_unreachable_windows_can_suppress(preset: Policy) -> None:
    evaluator = PolicyEvaluator(replace(preset, unreachable_windows="suppress"), horizon_days=30)
    candidate = make_candidate(
        "library/nginx", manager=Manager.DOCKERFILE, dep_type=DepType.IMAGE, update_type=UpdateType.DIGEST
    )
    evaluator.submit(candidate)

    result = evaluator.tick(at(2026, 1, 6, 6, 30))

    assert [(s.candidate_id, s.reason) for s in result.suppressed] == [
        (candidate.candidate_id, ReasonCode.WINDOW_NEVER_COINCIDES)
    ]
    assert evaluator.state_of("library/nginx") == State.SUPPRESSED


def test_vulnerability_fix_skips_grouping_but_not_global_window(preset: Policy) -> None:
    candidate = make_candidate(
        "express", dep_type=DepType.DEV_DEPENDENCIES, update_type=UpdateType.MAJOR, vulnerability=True
    )
    decision = decide(candidate, preset)

    assert decision.group_name is None
    assert decision.action == Action.OPEN_AND_AUTOMERGE
    assert decision.labels == ("dependencies", "security")
    assert ReasonCode.VULNERABILITY_FIX in decision.reasons
    assert ReasonCode.GROUP_CONFLICT not in decision.reasons
    assert decision.matched_rules == ("monthly-upgrade-day", "vulnerability_alerts")

    evaluator = PolicyEvaluator(preset)
    evaluator.submit(candidate)
    night = evaluator.tick(at(2026, 1, 5, 20, 0))
    assert night.deferred == {candidate.candidate_id: ReasonCode.WINDOW_PENDING}
    morning = evaluator.tick(at(2026, 1, 6, 9, 0))
    assert [cs.change_set_id for cs in morning.change_sets] == [candidate.candidate_id]


def test_lockfile_maintenance_rule(preset: Policy) -> None:
    candidate = make_candidate("package-lock.json", dep_type=None, update_type=UpdateType.LOCKFILE)

    assert decide(candidate, preset).action == Action.MERGE_IMMEDIATELY

    disabled = replace(preset, lockfile_maintenance=LockfileMaintenance(enabled=False))
    decision = decide(candidate, disabled)
    assert decision.action == Action.SUPPRESS
    assert ReasonCode.DISABLED in decision.reasons


# Lifecycle ---------------------------------------------------------------------


def test_decide_is_idempotent(preset: Policy) -> None:
    candidate = make_candidate()
    assert decide(candidate, preset) == decide(candidate, preset)


def test_emitted_candidate_not_emitted_twice() -> None:
    evaluator = PolicyEvaluator(Policy())
    candidate = make_candidate()
    evaluator.submit(candidate)

    first = evaluator.tick(at(2026, 1, 6, 9, 0))
    assert not evaluator.submit(candidate)
    second = evaluator.tick(at(2026, 1, 6, 10, 0))

    assert len(first.change_sets) == 1
    assert second.change_sets == []
    assert [t.to_state for t in first.transitions] == [
        State.MATCHED,
        State.WINDOW_PENDING,
        State.READY,
        State.DECIDED,
        State.EMITTED,
    ]


def test_newer_candidate_supersedes_and_stale_is_ignored() -> None:
    evaluator = PolicyEvaluator(Policy())
    old = make_candidate(version="18.2.0", detected_at=at(2026, 1, 1, 9, 0))
    new = make_candidate(version="18.3.0", detected_at=at(2026, 1, 2, 9, 0))
    stale = make_candidate(version="18.1.0", detected_at=at(2025, 12, 30, 9, 0))

    assert evaluator.submit(old)
    assert evaluator.submit(new)
    assert not evaluator.submit(stale)
    assert evaluator.pending() == [new]

    result = evaluator.tick(at(2026, 1, 6, 9, 0))
    assert [(s.candidate_id, s.reason) for s in result.suppressed] == [(old.candidate_id, ReasonCode.SUPERSEDED)]
    assert [d.candidate_id for d in result.decisions] == [new.candidate_id]


def test_close_suppresses_pending_candidate() -> None:
    window = parse_schedule("on monday", "UTC")
    evaluator = PolicyEvaluator(Policy(global_window=window))
    evaluator.submit(make_candidate())
    evaluator.tick(at(2026, 1, 6, 9, 0))

    assert evaluator.close("react", "merged manually")
    assert not evaluator.close("react")
    result = evaluator.tick(at(2026, 1, 12, 9, 0))

    assert result.change_sets == []
    assert [(s.reason, s.detail) for s in result.suppressed] == [(ReasonCode.CLOSED, "merged manually")]


def test_failing_candidate_is_isolated() -> None:
    def explode(candidate: UpdateCandidate) -> bool:
        if candidate.package_name == "boom":
            raise RuntimeError("predicate blew up")
        return False

    evaluator = PolicyEvaluator(Policy(rules=(Rule(name="explode", custom_predicate=explode),)))
    evaluator.submit(make_candidate("boom"))
    evaluator.submit(make_candidate("fine"))

    result = evaluator.tick(at(2026, 1, 6, 9, 0))

    assert [(s.reason, s.detail) for s in result.suppressed] == [
        (ReasonCode.EVALUATION_ERROR, "predicate blew up")
    ]
    assert [d.candidate.package_name for d in result.decisions] == ["fine"]
    assert evaluator.state_of("boom") == State.SUPPRESSED


def test_disabled_rule_suppresses() -> None:
    rule = Rule(name="no-left-pad", predicate=RulePredicate(match_package_names=frozenset({"left-pad"})), enabled=False)
    evaluator = PolicyEvaluator(Policy(rules=(rule,)))
    evaluator.submit(make_candidate("left-pad"))

    result = evaluator.tick(at(2026, 1, 6, 9, 0))

    assert [(s.reason, s.detail) for s in result.suppressed] == [(ReasonCode.DISABLED, "no-left-pad")]


def test_group_batch_takes_least_permissive_action() -> None:
    rules = (
        Rule(name="batch", predicate=RulePredicate(match_managers=frozenset({Manager.NPM})), group_name="batch"),
        Rule(name="automerge-a", predicate=RulePredicate(match_package_names=frozenset({"a"})), automerge=True),
    )
    evaluator = PolicyEvaluator(Policy(rules=rules))
    evaluator.submit(make_candidate("b", detected_at=at(2026, 1, 2, 9, 0)))
    evaluator.submit(make_candidate("a", detected_at=at(2026, 1, 1, 9, 0)))

    result = evaluator.tick(at(2026, 1, 6, 9, 0))

    assert len(result.change_sets) == 1
    change_set = result.change_sets[0]
    assert [d.action for d in change_set.decisions] == [Action.OPEN_AND_AUTOMERGE, Action.OPEN_PULL_REQUEST]
    assert change_set.action == Action.OPEN_PULL_REQUEST
    assert evaluator.grouping.members("batch") == []


def test_manual_trigger_bypasses_rule_window_not_blackout() -> None:
    rule = Rule(name="weekly", group_name="weekly", schedule=parse_schedule("on monday", "UTC"))
    policy = Policy(global_window=parse_schedule("after 08:00 and before 18:00", "UTC"), rules=(rule,))
    evaluator = PolicyEvaluator(policy)
    candidate = make_candidate()
    evaluator.submit(candidate)

    tuesday = evaluator.tick(at(2026, 1, 6, 10, 0))
    assert tuesday.deferred == {candidate.candidate_id: ReasonCode.WINDOW_PENDING}

    evaluator.trigger_group("weekly")
    blackout = evaluator.tick(at(2026, 1, 6, 20, 0))
    assert blackout.change_sets == []
    assert evaluator.grouping.is_triggered("weekly")

    morning = evaluator.tick(at(2026, 1, 7, 9, 0))
    assert len(morning.change_sets) == 1
    assert morning.change_sets[0].manual
    assert ReasonCode.MANUAL_TRIGGER in morning.decisions[0].reasons
    assert not evaluator.grouping.is_triggered("weekly")


def test_trigger_for_group_without_members_expires_after_tick() -> None:
    rule = Rule(name="weekly", group_name="weekly", schedule=parse_schedule("on monday", "UTC"))
    evaluator = PolicyEvaluator(Policy(rules=(rule,)))

    evaluator.trigger_group("weekly")
    assert evaluator.tick(at(2026, 1, 6, 9, 0)).change_sets == []
    assert not evaluator.grouping.is_triggered("weekly")

    candidate = make_candidate(detected_at=at(2026, 1, 13, 8, 0))
    evaluator.submit(candidate)
    result = evaluator.tick(at(2026, 1, 14, 9, 0))

    assert result.change_sets == []
    assert result.deferred == {candidate.candidate_id: ReasonCode.WINDOW_PENDING}


def test_held_group_batch_leaves_bucket_only_when_confirmed() -> None:
    rule = Rule(name="batch", group_name="batch")
    evaluator = PolicyEvaluator(Policy(rules=(rule,), limits=RateLimits(concurrent=1)))
    evaluator.submit(make_candidate("a", detected_at=at(2026, 1, 1, 9, 0)))
    evaluator.submit(make_candidate("b", detected_at=at(2026, 1, 2, 9, 0)))

    result = evaluator.tick(at(2026, 1, 6, 9, 0), hold=True)
    change_set = result.change_sets[0]
    assert [c.package_name for c in evaluator.grouping.members("batch")] == ["a", "b"]
    assert evaluator.state_of("a") == State.DECIDED

    transitions = evaluator.confirm(change_set)

    assert [(t.candidate_id, t.to_state) for t in transitions] == [
        (make_candidate("a").candidate_id, State.EMITTED),
        (make_candidate("b").candidate_id, State.EMITTED),
    ]
    assert evaluator.grouping.members("batch") == []
    assert evaluator.rate_limiter.open_count == 1


def test_abandoned_change_set_returns_to_ready_and_frees_its_slot() -> None:
    evaluator = PolicyEvaluator(Policy(limits=RateLimits(hourly=1, concurrent=1)))
    candidate = make_candidate()
    evaluator.submit(candidate)

    held = evaluator.tick(at(2026, 1, 6, 9, 0), hold=True)
    evaluator.abandon(held.change_sets[0])

    assert evaluator.state_of("react") == State.READY
    assert evaluator.rate_limiter.open_count == 0
    assert evaluator.rate_limiter.created_this_hour == 0
    with pytest.raises(KeyError):
        evaluator.confirm(held.change_sets[0])

    retry = evaluator.tick(at(2026, 1, 6, 9, 15))
    assert [d.candidate_id for d in retry.decisions] == [candidate.candidate_id]
    assert evaluator.state_of("react") == State.EMITTED


def test_unconfirmed_change_set_is_abandoned_by_next_tick() -> None:
    evaluator = PolicyEvaluator(Policy(limits=RateLimits(concurrent=1)))
    evaluator.submit(make_candidate())

    evaluator.tick(at(2026, 1, 6, 9, 0), hold=True)
    retry = evaluator.tick(at(2026, 1, 6, 9, 15))

    assert len(retry.change_sets) == 1
    assert evaluator.rate_limiter.open_count == 1


def test_rate_limit_defers_latest_candidate() -> None:
    evaluator = PolicyEvaluator(Policy(limits=RateLimits(hourly=2)))
    first = make_candidate("a", detected_at=at(2026, 1, 1, 9, 0))
    second = make_candidate("b", detected_at=at(2026, 1, 2, 9, 0))
    third = make_candidate("c", detected_at=at(2026, 1, 3, 9, 0))
    for candidate in (third, first, second):
        evaluator.submit(candidate)

    result = evaluator.tick(at(2026, 1, 6, 9, 0))
    assert [d.candidate_id for d in result.decisions] == [first.candidate_id, second.candidate_id]
    assert result.deferred == {third.candidate_id: ReasonCode.RATE_LIMITED}
    assert evaluator.state_of("c") == State.READY

    next_hour = evaluator.tick(at(2026, 1, 6, 10, 0))
    assert [d.candidate_id for d in next_hour.decisions] == [third.candidate_id]


def test_concurrent_slot_freed_by_release() -> None:
    evaluator = PolicyEvaluator(Policy(limits=RateLimits(concurrent=1)))
    first = make_candidate("a", detected_at=at(2026, 1, 1, 9, 0))
    second = make_candidate("b", detected_at=at(2026, 1, 2, 9, 0))
    evaluator.submit(first)
    evaluator.submit(second)

    result = evaluator.tick(at(2026, 1, 6, 9, 0))
    assert result.deferred == {second.candidate_id: ReasonCode.RATE_LIMITED}

    assert evaluator.release(first.candidate_id)
    later = evaluator.tick(at(2026, 1, 6, 9, 15))
    assert [d.candidate_id for d in later.decisions] == [second.candidate_id]


def test_branch_automerge_ignores_concurrent_cap() -> None:
    rule = Rule(name="instant", automerge=True, automerge_mode=AutomergeMode.BRANCH)
    evaluator = PolicyEvaluator(Policy(rules=(rule,), limits=RateLimits(concurrent=1)))
    evaluator.submit(make_candidate("a"))
    evaluator.submit(make_candidate("b"))

    result = evaluator.tick(at(2026, 1, 6, 9, 0))

    assert [cs.action for cs in result.change_sets] == [Action.MERGE_IMMEDIATELY, Action.MERGE_IMMEDIATELY]
    assert evaluator.rate_limiter.open_count == 0


def test_tick_rejects_naive_instant() -> None:
    evaluator = PolicyEvaluator(Policy())
    with pytest.raises(ValueError):
        evaluator.tick(datetime.datetime(2026, 1, 6, 9, 0))


def test_tick_accepts_new_policy_snapshot() -> None:
    evaluator = PolicyEvaluator(Policy(global_window=parse_schedule("on monday", "UTC")))
    candidate = make_candidate()
    evaluator.submit(candidate)
    assert evaluator.tick(at(2026, 1, 6, 9, 0)).deferred == {candidate.candidate_id: ReasonCode.WINDOW_PENDING}

    result = evaluator.tick(at(2026, 1, 6, 9, 5), policy=Policy())
    assert [d.candidate_id for d in result.decisions] == [candidate.candidate_id]
    assert evaluator.policy == Policy()
