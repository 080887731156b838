"""Run one evaluation tick over a candidate file.

Purpose:
  - Load a policy, evaluate discovered candidates and emit ready change-sets.
Inputs:
  - CLI args for policy/preset, candidate file, journal DB, evaluation instant.
Outputs:
  - Change-sets and a TICK summary on stdout; dc_tick_run / dc_change_set / dc_decision rows.
Example:
  - PYTHONPATH=. python3 depcadence/cli/run_tick.py --preset dragonsecurity --candidates candidates.json
Debug:
  - --debug / --debug-limit control diagnostic output volume.
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections import Counter

from depcadence.app_api.factories import build_depcadence_app
from depcadence.cli._debug_utils import _dbg, _dbg_list, _debug_enabled, format_reason
from depcadence.cli._policy_args import add_logging_args, add_policy_args, parse_now, policy_from_args
from depcadence.core.engine.result import TickResult
from depcadence.core.errors import DepcadenceError
from depcadence.infra.sqlite.db import get_connection


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run one depcadence evaluation tick")
    add_policy_args(parser)
    parser.add_argument("--candidates", required=True, help="Candidate file (JSON array or JSON lines)")
    parser.add_argument("--journal-db", default="depcadence_journal.db", help="Journal SQLite path")
    parser.add_argument("--now", help="Evaluation instant, ISO-8601 with offset (default: now)")
    parser.add_argument("--trigger-group", action="append", default=[], help="Flush this group now (repeatable)")
    parser.add_argument(
        "--closed-change-set", action="append", default=[], help="Mark a change-set id as closed (repeatable)"
    )
    add_logging_args(parser)
    return parser.parse_args(argv)


def summarize(run_id: str, result: TickResult) -> str:
    deferred = Counter(reason.value for reason in result.deferred.values())
    suppressed = Counter(s.reason.value for s in result.suppressed)
    return (
        f"TICK run_id={run_id} at={result.tick_at.isoformat()} "
        f"change_sets={len(result.change_sets)} emitted={len(result.decisions)} "
        f"deferred={len(result.deferred)} {dict(sorted(deferred.items()))} "
        f"suppressed={len(result.suppressed)} {dict(sorted(suppressed.items()))}"
    )


def _print_debug(args: argparse.Namespace, result: TickResult) -> None:
    if not _debug_enabled(args):
        return
    _dbg_list(
        args,
        "deferred",
        [f"{cid} {format_reason(reason)}" for cid, reason in sorted(result.deferred.items())],
    )
    _dbg_list(
        args,
        "suppressed",
        [f"{s.candidate_id} {format_reason(s.reason)} detail={s.detail or '-'}" for s in result.suppressed],
    )
    _dbg_list(
        args,
        "transitions",
        [
            f"{t.candidate_id} {t.from_state.value} -> {t.to_state.value} "
            f"{','.join(r.value for r in t.reason_codes) or '-'}"
            for t in result.transitions
        ],
    )


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=args.log_level.upper())
    try:
        policy = policy_from_args(args)
        now = parse_now(args.now)
    except (DepcadenceError, ValueError) as exc:
        print(f"ERROR {exc}", file=sys.stderr)
        return 2
    _dbg(args, f"policy={policy.policy_id}:{policy.policy_version} rules={len(policy.rules)} tz={policy.timezone}")

    conn = get_connection(args.journal_db)
    try:
        app = build_depcadence_app(conn, candidates_path=args.candidates, policy=policy)
        for change_set_id in args.closed_change_set:
            released = app.on_change_set_closed(change_set_id)
            _dbg(args, f"closed {change_set_id} released={released}")
        for group_name in args.trigger_group:
            app.trigger_group(group_name)
            _dbg(args, f"triggered group {group_name!r}")
        run_id, result = app.run_tick(now)
    finally:
        conn.close()

    print(summarize(run_id, result))
    _print_debug(args, result)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
