"""Explain how a policy treats one update candidate.

Purpose:
  - Show matched rules, the merged decision and when its windows next open.
Inputs:
  - CLI args describing the candidate and the instant to evaluate at.
Outputs:
  - Human-readable report on stdout.
Example:
  - PYTHONPATH=. python3 depcadence/cli/explain_candidate.py --preset dragonsecurity \
      --manager npm --dep-type dependencies --update-type minor --package react --version 18.3.0 \
      --detected-at 2026-01-01T09:00:00Z --at 2026-01-06T09:00:00Z
"""

from __future__ import annotations

import argparse
import datetime
import logging
import sys

from depcadence.app_api.providers.json_candidate_source import candidate_from_record
from depcadence.cli._debug_utils import _dbg, format_reason, primary_blocker
from depcadence.cli._policy_args import add_logging_args, add_policy_args, parse_now, policy_from_args
from depcadence.core.domain.enums import DepType, Manager, ReasonCode, UpdateType
from depcadence.core.domain.models import Decision
from depcadence.core.engine.evaluator import decide
from depcadence.core.errors import DepcadenceError
from depcadence.core.policy.guardrails import delay_elapsed
from depcadence.core.schedule.window import is_active, next_active


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Explain the policy decision for one candidate")
    add_policy_args(parser)
    parser.add_argument("--manager", required=True, choices=[m.value for m in Manager])
    parser.add_argument("--dep-type", choices=[d.value for d in DepType])
    parser.add_argument("--update-type", required=True, choices=[u.value for u in UpdateType])
    parser.add_argument("--package", required=True, help="Package name")
    parser.add_argument("--current", help="Current version")
    parser.add_argument("--version", required=True, help="Candidate version")
    parser.add_argument("--detected-at", help="Detection instant, ISO-8601 with offset (default: --at)")
    parser.add_argument("--vulnerability", action="store_true", help="Candidate fixes a security advisory")
    parser.add_argument("--at", help="Evaluation instant, ISO-8601 with offset (default: now)")
    add_logging_args(parser)
    return parser.parse_args(argv)


def explain(decision: Decision, at: datetime.datetime) -> list[str]:
    candidate = decision.candidate
    lines = [
        f"CANDIDATE {candidate.candidate_id} update_type={candidate.update_type.value} "
        f"dep_type={candidate.dep_type.value if candidate.dep_type else '-'}",
        f"MATCHED {', '.join(decision.matched_rules) or '-'}",
        f"ACTION {decision.action.value} automerge={int(decision.automerge)} "
        f"mode={decision.automerge_mode.value} strategy={decision.automerge_strategy or '-'}",
        f"GROUP {decision.group_name or '-'}",
        f"LABELS {','.join(decision.labels) or '-'}",
        f"PRIORITY {decision.pr_priority} ignore_tests={int(decision.ignore_tests)}",
        f"POST_UPDATE {','.join(decision.post_update_options) or '-'}",
        f"SCHEDULE {decision.effective_schedule.describe()}",
    ]
    active = is_active(decision.effective_schedule, at)
    opens = next_active(decision.effective_schedule, at)
    lines.append(f"ACTIVE_AT {at.isoformat()} {int(active)}")
    lines.append(f"NEXT_ACTIVE {opens.isoformat() if opens else 'never'}")
    if decision.not_before is not None:
        lines.append(f"NOT_BEFORE {decision.not_before.isoformat()} elapsed={int(delay_elapsed(decision, at))}")
    blockers = list(decision.reasons)
    if not active:
        blockers.append(ReasonCode.WINDOW_PENDING if opens else ReasonCode.WINDOW_NEVER_COINCIDES)
    elif not delay_elapsed(decision, at):
        blockers.append(ReasonCode.EXTRA_DELAY_PENDING)
    lines.append(f"BLOCKER {primary_blocker(blockers)}")
    for reason in decision.reasons:
        lines.append(f"REASON {format_reason(reason)}")
    return lines


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=args.log_level.upper())
    try:
        policy = policy_from_args(args)
        at = parse_now(args.at) or datetime.datetime.now(datetime.timezone.utc)
        record = {
            "manager": args.manager,
            "dep_type": args.dep_type,
            "update_type": args.update_type,
            "package_name": args.package,
            "current_version": args.current,
            "candidate_version": args.version,
            "detected_at": args.detected_at or at.isoformat(),
            "vulnerability": args.vulnerability,
        }
        candidate = candidate_from_record(record)
    except (DepcadenceError, ValueError) as exc:
        print(f"ERROR {exc}", file=sys.stderr)
        return 2

    _dbg(args, f"policy={policy.policy_id}:{policy.policy_version} rules={len(policy.matcher.rules)}")
    for line in explain(decide(candidate, policy), at):
        print(line)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
