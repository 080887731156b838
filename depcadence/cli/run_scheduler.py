"""Run evaluation ticks periodically in one long-lived process.

Purpose:
  - Keep group buckets and rate counters in memory across ticks.
Inputs:
  - CLI args for policy/preset, candidate file, journal DB and tick interval.
Outputs:
  - Change-sets and one TICK summary per run on stdout; journal rows.
Example:
  - PYTHONPATH=. python3 depcadence/cli/run_scheduler.py --preset dragonsecurity --candidates candidates.json --interval-minutes 15
"""

from __future__ import annotations

import argparse
import logging
import sys

from apscheduler.schedulers.blocking import BlockingScheduler

from depcadence.app_api.facade import DepcadenceApplication
from depcadence.app_api.factories import build_depcadence_app
from depcadence.cli._policy_args import add_logging_args, add_policy_args, policy_from_args
from depcadence.cli.run_tick import summarize
from depcadence.core.errors import DepcadenceError
from depcadence.core.schedule.window import resolve_zone
from depcadence.infra.sqlite.db import get_connection

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run depcadence ticks on an interval")
    add_policy_args(parser)
    parser.add_argument("--candidates", required=True, help="Candidate file (JSON array or JSON lines)")
    parser.add_argument("--journal-db", default="depcadence_journal.db", help="Journal SQLite path")
    parser.add_argument("--interval-minutes", type=int, default=15, help="Minutes between ticks")
    add_logging_args(parser)
    return parser.parse_args(argv)


def run_once(app: DepcadenceApplication) -> None:
    try:
        run_id, result = app.run_tick()
    except Exception:
        logger.exception("Tick failed")
        return
    print(summarize(run_id, result), flush=True)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=args.log_level.upper())
    if args.interval_minutes < 1:
        print("ERROR --interval-minutes must be >= 1", file=sys.stderr)
        return 2
    try:
        policy = policy_from_args(args)
        timezone = resolve_zone(policy.timezone)
    except DepcadenceError as exc:
        print(f"ERROR {exc}", file=sys.stderr)
        return 2

    # Scheduled ticks run on a worker thread; max_instances=1 keeps access serial.
    conn = get_connection(args.journal_db, check_same_thread=False)
    try:
        app = build_depcadence_app(conn, candidates_path=args.candidates, policy=policy)

        # Run once at startup, then keep a fixed interval cadence.
        run_once(app)

        scheduler = BlockingScheduler(timezone=timezone)
        scheduler.add_job(
            run_once,
            trigger="interval",
            args=[app],
            minutes=args.interval_minutes,
            max_instances=1,
            coalesce=True,
        )
        logger.info(
            "Scheduler started (%s): immediate tick done; interval=%smin policy=%s:%s",
            timezone.key,
            args.interval_minutes,
            policy.policy_id,
            policy.policy_version,
        )
        try:
            scheduler.start()
        except (KeyboardInterrupt, SystemExit):
            logger.info("Scheduler stopped")
    finally:
        conn.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
