"""Policy evaluation for update candidates.

Responsibilities:
  - decide(): pure, idempotent mapping of one candidate + policy snapshot to a Decision.
  - PolicyEvaluator: per-tick orchestration of the candidate lifecycle
    DISCOVERED -> MATCHED -> WINDOW_PENDING -> READY -> DECIDED -> {EMITTED | SUPPRESSED}.

Inputs/Outputs:
  - Inputs: candidates via submit(), vetoes via close(), manual group triggers,
    completion signals via release(), and the current instant via tick().
  - Outputs: TickResult with emitted change-sets, deferrals, suppressions and transitions.

Invariants:
  - Candidates are processed in (detected_at, candidate_id) order within a tick.
  - At most one live candidate per package name; a newer one supersedes the old.
  - WINDOW_PENDING -> READY is level-triggered: rechecked on every tick.
  - Rate-limit denials defer (READY stays READY); nothing is dropped silently.
  - One failing candidate is suppressed with EVALUATION_ERROR; the tick continues.
  - A held change-set (tick(hold=True)) is EMITTED only once confirmed; abandoning
    it returns its members to READY and undoes its rate-limit admission.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, replace
from typing import Optional, Sequence

from ..domain.enums import TERMINAL_STATES, Action, AutomergeMode, ReasonCode, State
from ..domain.models import ChangeSet, Decision, Transition, UpdateCandidate
from ..policy.grouping import GroupingEngine
from ..policy.guardrails import IllegalTransition, apply_guardrails, delay_elapsed, ready_at
from ..policy.policy import Policy
from ..policy.rate_limiter import RateLimiter
from ..policy.rules.matcher import MatchResult
from ..policy.rules.types import EffectiveRule
from ..schedule.window import DEFAULT_HORIZON_DAYS, WindowIntersection, intersect, is_active, next_active
from .result import Suppression, TickResult

logger = logging.getLogger(__name__)


def action_for(effective: EffectiveRule) -> Action:
    if not effective.enabled:
        return Action.SUPPRESS
    if not effective.automerge:
        return Action.OPEN_PULL_REQUEST
    if effective.automerge_mode == AutomergeMode.BRANCH:
        return Action.MERGE_IMMEDIATELY
    return Action.OPEN_AND_AUTOMERGE


def decide(candidate: UpdateCandidate, policy: Policy, match: Optional[MatchResult] = None) -> Decision:
    if match is None:
        match = policy.matcher.resolve(candidate)
    effective = match.effective

    reasons = [ReasonCode.RULES_MATCHED if match.rules else ReasonCode.NO_RULE_MATCHED]
    if match.group_conflict is not None:
        reasons.append(ReasonCode.GROUP_CONFLICT)
    if candidate.vulnerability and policy.vulnerability_alerts.enabled:
        reasons.append(ReasonCode.VULNERABILITY_FIX)
    if not effective.enabled:
        reasons.append(ReasonCode.DISABLED)

    automerge = effective.enabled and effective.automerge
    return Decision(
        candidate=candidate,
        action=action_for(effective),
        automerge=automerge,
        automerge_mode=effective.automerge_mode,
        effective_schedule=intersect(policy.global_window, effective.schedule),
        group_name=effective.group_name,
        labels=effective.labels,
        pr_priority=effective.pr_priority,
        ignore_tests=effective.ignore_tests,
        automerge_strategy=policy.automerge_strategy if automerge else None,
        post_update_options=effective.post_update_options,
        matched_rules=effective.matched_rules,
        reasons=tuple(reasons),
        not_before=ready_at(candidate, effective) if effective.extra_delay is not None else None,
    )


@dataclass
class _Tracked:
    candidate: UpdateCandidate
    state: State = State.DISCOVERED
    decision: Optional[Decision] = None
    unreachable_warned: bool = False


@dataclass
class _Proposal:
    change_set: ChangeSet
    members: list[_Tracked]
    new_created: bool
    new_open: bool


class PolicyEvaluator:
    def __init__(
        self,
        policy: Policy,
        rate_limiter: Optional[RateLimiter] = None,
        grouping: Optional[GroupingEngine] = None,
        horizon_days: int = DEFAULT_HORIZON_DAYS,
    ) -> None:
        self._policy = policy
        self._rate_limiter = rate_limiter or RateLimiter(policy.limits.hourly, policy.limits.concurrent)
        self._grouping = grouping or GroupingEngine()
        self._horizon_days = horizon_days
        self._tracked: dict[str, _Tracked] = {}
        self._transitions: list[Transition] = []
        self._suppressed: list[Suppression] = []
        self._proposed: dict[str, _Proposal] = {}

    @property
    def policy(self) -> Policy:
        return self._policy

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    @property
    def grouping(self) -> GroupingEngine:
        return self._grouping

    def state_of(self, package_name: str) -> Optional[State]:
        tracked = self._tracked.get(package_name)
        return tracked.state if tracked is not None else None

    def pending(self) -> list[UpdateCandidate]:
        live = [t for t in self._tracked.values() if t.state not in TERMINAL_STATES]
        return [t.candidate for t in sorted(live, key=lambda t: t.candidate.sort_key)]

    # Signals -----------------------------------------------------------------
    def submit(self, candidate: UpdateCandidate) -> bool:
        existing = self._tracked.get(candidate.package_name)
        if existing is not None:
            if existing.candidate.candidate_id == candidate.candidate_id:
                return False
            if candidate.detected_at < existing.candidate.detected_at:
                logger.info(
                    "Ignoring stale candidate %s; %s is newer",
                    candidate.candidate_id,
                    existing.candidate.candidate_id,
                )
                return False
            self._suppress(existing, ReasonCode.SUPERSEDED, f"superseded by {candidate.candidate_id}")
        self._tracked[candidate.package_name] = _Tracked(candidate=candidate)
        return True

    def close(self, package_name: str, detail: Optional[str] = None) -> bool:
        tracked = self._tracked.get(package_name)
        if tracked is None or tracked.state in TERMINAL_STATES:
            return False
        self._suppress(tracked, ReasonCode.CLOSED, detail)
        return True

    def trigger_group(self, group_name: str) -> None:
        self._grouping.trigger(group_name)

    def release(self, change_set_id: str) -> bool:
        return self._rate_limiter.release(change_set_id)

    def confirm(self, change_set: ChangeSet) -> list[Transition]:
        """Mark a held change-set as executed: members become EMITTED and leave their bucket."""
        proposal = self._proposed.pop(change_set.change_set_id, None)
        if proposal is None:
            raise KeyError(f"No held change-set {change_set.change_set_id}")
        self._confirm(proposal)
        return self._drain_transitions()

    def abandon(self, change_set: ChangeSet) -> list[Transition]:
        """Return a held change-set's members to READY and give back its rate-limit admission."""
        proposal = self._proposed.pop(change_set.change_set_id, None)
        if proposal is None:
            raise KeyError(f"No held change-set {change_set.change_set_id}")
        self._abandon(proposal)
        return self._drain_transitions()

    # Tick ----------------------------------------------------------------------
    def tick(self, now: datetime.datetime, policy: Optional[Policy] = None, hold: bool = False) -> TickResult:
        """Advance every live candidate and batch the ready ones into change-sets.

        With hold=True, change-sets stop at DECIDED; the caller must confirm() each
        one after execution or abandon() it. Proposals left over from an earlier
        tick are abandoned first.
        """
        if now.tzinfo is None or now.utcoffset() is None:
            raise ValueError("tick requires a timezone-aware instant")
        if policy is not None:
            self._policy = policy
        for proposal in list(self._proposed.values()):
            logger.warning("Abandoning unconfirmed change-set %s", proposal.change_set.change_set_id)
            self._abandon(proposal)
        self._proposed.clear()
        self._rate_limiter.on_tick(now)
        result = TickResult(tick_at=now)

        ordered = sorted(
            (t for t in self._tracked.values() if t.state not in TERMINAL_STATES),
            key=lambda t: t.candidate.sort_key,
        )
        reachability: dict[WindowIntersection, bool] = {}
        for tracked in ordered:
            try:
                blocker = self._advance(tracked, now, reachability)
            except Exception as exc:
                logger.warning(
                    "Evaluation failed for %s: %s", tracked.candidate.candidate_id, exc, exc_info=True
                )
                self._suppress(tracked, ReasonCode.EVALUATION_ERROR, str(exc) or type(exc).__name__)
                continue
            if blocker is not None:
                result.deferred[tracked.candidate.candidate_id] = blocker

        self._emit(ordered, now, result, hold)
        for group_name in self._grouping.expire_triggers():
            logger.info("Manual trigger for %r expired: no waiting members", group_name)

        result.transitions = self._drain_transitions()
        result.suppressed, self._suppressed = self._suppressed, []
        return result

    def _advance(
        self,
        tracked: _Tracked,
        now: datetime.datetime,
        reachability: dict[WindowIntersection, bool],
    ) -> Optional[ReasonCode]:
        candidate = tracked.candidate
        decision = decide(candidate, self._policy)
        tracked.decision = decision

        if tracked.state == State.DISCOVERED:
            self._move(tracked, State.MATCHED, decision.reasons[:1])
        if decision.action == Action.SUPPRESS:
            self._suppress(tracked, ReasonCode.DISABLED, ", ".join(decision.matched_rules) or None)
            return None
        if tracked.state == State.MATCHED:
            self._move(tracked, State.WINDOW_PENDING)

        manual = False
        if decision.group_name is not None:
            self._grouping.add(candidate, decision.group_name)
            manual = self._grouping.is_triggered(decision.group_name)
        else:
            self._grouping.remove(candidate.candidate_id)

        # A manual trigger bypasses rule windows and delays, never the global blackout.
        window = intersect(self._policy.global_window) if manual else decision.effective_schedule
        if not is_active(window, now):
            blocker: Optional[ReasonCode] = self._window_blocker(tracked, window, now, reachability)
        elif not manual and not delay_elapsed(decision, now):
            blocker = ReasonCode.EXTRA_DELAY_PENDING
        else:
            blocker = None

        if blocker is None:
            self._move(tracked, State.READY)
            return None
        if blocker == ReasonCode.WINDOW_NEVER_COINCIDES and self._policy.unreachable_windows == "suppress":
            self._suppress(tracked, blocker, window.describe())
            return None
        self._move(tracked, State.WINDOW_PENDING, (blocker,))
        return blocker

    def _window_blocker(
        self,
        tracked: _Tracked,
        window: WindowIntersection,
        now: datetime.datetime,
        reachability: dict[WindowIntersection, bool],
    ) -> ReasonCode:
        reachable = reachability.get(window)
        if reachable is None:
            reachable = next_active(window, now, self._horizon_days) is not None
            reachability[window] = reachable
        if reachable:
            return ReasonCode.WINDOW_PENDING
        if not tracked.unreachable_warned:
            logger.warning(
                "Windows never coincide for %s within %d days: %s",
                tracked.candidate.candidate_id,
                self._horizon_days,
                window.describe(),
            )
            tracked.unreachable_warned = True
        return ReasonCode.WINDOW_NEVER_COINCIDES

    def _bucket_members(self, group_name: str) -> list[_Tracked]:
        members = []
        for candidate in self._grouping.members(group_name):
            tracked = self._tracked.get(candidate.package_name)
            if tracked is None or tracked.candidate.candidate_id != candidate.candidate_id:
                continue
            if tracked.state == State.READY and tracked.decision is not None:
                members.append(tracked)
        return members

    def _emit(self, ordered: Sequence[_Tracked], now: datetime.datetime, result: TickResult, hold: bool) -> None:
        handled_groups: set[str] = set()
        for tracked in ordered:
            if tracked.state != State.READY or tracked.decision is None:
                continue
            group_name = tracked.decision.group_name
            if group_name is None:
                self._emit_change_set([tracked], None, False, now, result, hold)
                continue
            if group_name in handled_groups:
                continue
            handled_groups.add(group_name)
            members = self._bucket_members(group_name)
            if members:
                manual = self._grouping.is_triggered(group_name)
                self._emit_change_set(members, group_name, manual, now, result, hold)

    def _emit_change_set(
        self,
        members: Sequence[_Tracked],
        group_name: Optional[str],
        manual: bool,
        now: datetime.datetime,
        result: TickResult,
        hold: bool,
    ) -> None:
        decisions = [m.decision for m in members if m.decision is not None]
        if manual:
            decisions = [replace(d, reasons=d.reasons + (ReasonCode.MANUAL_TRIGGER,)) for d in decisions]
        change_set = ChangeSet(group_name=group_name, decisions=tuple(decisions), manual=manual)
        change_set_id = change_set.change_set_id
        was_created = self._rate_limiter.is_created(change_set_id)
        was_open = self._rate_limiter.is_open(change_set_id)
        opens_pull_request = change_set.action != Action.MERGE_IMMEDIATELY
        if not self._rate_limiter.admit(change_set_id, now, opens_pull_request=opens_pull_request):
            for member in members:
                result.deferred[member.candidate.candidate_id] = ReasonCode.RATE_LIMITED
            return
        for member in members:
            self._move(member, State.DECIDED)
        result.change_sets.append(change_set)
        proposal = _Proposal(
            change_set=change_set,
            members=list(members),
            new_created=not was_created,
            new_open=not was_open and self._rate_limiter.is_open(change_set_id),
        )
        if hold:
            self._proposed[change_set_id] = proposal
        else:
            self._confirm(proposal)

    def _confirm(self, proposal: _Proposal) -> None:
        for member in proposal.members:
            if member.state == State.DECIDED:
                self._move(member, State.EMITTED, (ReasonCode.EMITTED,))
        group_name = proposal.change_set.group_name
        if group_name is not None:
            self._grouping.flush(group_name, proposal.change_set.candidate_ids)

    def _abandon(self, proposal: _Proposal) -> None:
        for member in proposal.members:
            if member.state == State.DECIDED:
                self._move(member, State.READY)
        self._rate_limiter.revoke(
            proposal.change_set.change_set_id,
            created=proposal.new_created,
            opened=proposal.new_open,
        )

    # State bookkeeping -------------------------------------------------------
    def _move(self, tracked: _Tracked, to_state: State, reasons: Sequence[ReasonCode] = ()) -> None:
        if tracked.state == to_state:
            return
        guard = apply_guardrails(tracked.state, to_state)
        if not guard.allowed:
            raise IllegalTransition(
                f"{tracked.candidate.candidate_id}: {tracked.state.value} -> {to_state.value}"
            )
        self._transitions.append(
            Transition(
                candidate_id=tracked.candidate.candidate_id,
                from_state=tracked.state,
                to_state=to_state,
                reason_codes=tuple(reasons),
            )
        )
        tracked.state = to_state

    def _suppress(self, tracked: _Tracked, reason: ReasonCode, detail: Optional[str] = None) -> None:
        if tracked.state in TERMINAL_STATES:
            return
        self._grouping.remove(tracked.candidate.candidate_id)
        self._move(tracked, State.SUPPRESSED, (reason,))
        self._suppressed.append(Suppression(candidate_id=tracked.candidate.candidate_id, reason=reason, detail=detail))
        logger.info("Suppressed %s: %s", tracked.candidate.candidate_id, reason.value)

    def _drain_transitions(self) -> list[Transition]:
        transitions, self._transitions = self._transitions, []
        return transitions
