from __future__ import annotations

import datetime
import logging
import sqlite3
import uuid
from typing import Optional

from depcadence.core.domain.models import ChangeSet
from depcadence.core.engine.evaluator import PolicyEvaluator
from depcadence.core.engine.result import TickResult
from depcadence.core.policy.policy import Policy
from depcadence.infra.sqlite.repos.decision_repo import DecisionRepo
from depcadence.infra.sqlite.repos.tick_run_repo import TickRunRepo
from .ports import CandidateSource, ChangeSetSink, Clock

logger = logging.getLogger(__name__)


class DepcadenceApplication:
    def __init__(
        self,
        conn: sqlite3.Connection,
        evaluator: PolicyEvaluator,
        candidate_source: CandidateSource,
        sink: ChangeSetSink,
        clock: Clock,
    ) -> None:
        self._conn = conn
        self._evaluator = evaluator
        self._candidate_source = candidate_source
        self._sink = sink
        self._clock = clock
        self._run_repo = TickRunRepo(conn)
        self._decision_repo = DecisionRepo(conn)
        self._evaluator.rate_limiter.seed_open(self._decision_repo.open_change_set_ids())
        self._journaled = self._decision_repo.emitted_candidate_ids() | self._decision_repo.closed_candidate_ids()

    @property
    def evaluator(self) -> PolicyEvaluator:
        return self._evaluator

    def run_tick(self, now: Optional[datetime.datetime] = None, policy: Optional[Policy] = None) -> tuple[str, TickResult]:
        now = now or self._clock.now()
        if now.tzinfo is None:
            raise ValueError("run_tick requires a timezone-aware instant")
        now_utc = now.astimezone(datetime.timezone.utc)
        hour_start = now_utc.replace(minute=0, second=0, microsecond=0)
        self._evaluator.rate_limiter.seed_created(
            self._decision_repo.change_set_ids_opened_since(hour_start.isoformat()), now
        )
        for candidate in self._candidate_source.get_candidates():
            # Emitted or closed in an earlier process.
            if candidate.candidate_id in self._journaled:
                continue
            self._evaluator.submit(candidate)
        result = self._evaluator.tick(now, policy=policy, hold=True)

        run_id = str(uuid.uuid4())
        opened_at = now_utc.isoformat()
        confirmed: list[ChangeSet] = []

        self._conn.execute("BEGIN")
        try:
            self._insert_run(run_id, now_utc, result, emitted=len(result.decisions))
            for change_set in result.change_sets:
                self._decision_repo.insert_change_set(run_id, change_set, opened_at=opened_at)
                self._sink.execute(change_set)
                confirmed.append(change_set)
                result.transitions.extend(self._evaluator.confirm(change_set))
            for suppression in result.suppressed:
                self._decision_repo.insert_suppression(run_id, suppression)
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            for change_set in result.change_sets[len(confirmed):]:
                self._evaluator.abandon(change_set)
            if confirmed:
                self._journal_executed(run_id, now_utc, result, confirmed)
            raise
        self._journaled.update(decision.candidate_id for decision in result.decisions)

        logger.info(
            "Tick %s at %s: emitted=%d deferred=%d suppressed=%d",
            run_id,
            now.isoformat(),
            len(result.decisions),
            len(result.deferred),
            len(result.suppressed),
        )
        return run_id, result

    def _insert_run(self, run_id: str, now_utc: datetime.datetime, result: TickResult, emitted: int) -> None:
        active_policy = self._evaluator.policy
        self._run_repo.insert_run(
            run_id,
            datetime.datetime.now(datetime.timezone.utc).isoformat(),
            now_utc.isoformat(),
            active_policy.policy_id,
            active_policy.policy_version,
            emitted=emitted,
            deferred=len(result.deferred),
            suppressed=len(result.suppressed),
        )

    def _journal_executed(
        self,
        run_id: str,
        now_utc: datetime.datetime,
        result: TickResult,
        executed: list[ChangeSet],
    ) -> None:
        """Record change-sets the sink already executed in a tick that failed later."""
        ids = [change_set.change_set_id for change_set in executed]
        self._conn.execute("BEGIN")
        try:
            self._insert_run(run_id, now_utc, result, emitted=sum(len(cs.decisions) for cs in executed))
            for change_set in executed:
                self._decision_repo.insert_change_set(run_id, change_set, opened_at=now_utc.isoformat())
            for suppression in result.suppressed:
                self._decision_repo.insert_suppression(run_id, suppression)
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            logger.exception("Executed change-sets %s could not be journaled", ids)
            return
        self._journaled.update(cid for change_set in executed for cid in change_set.candidate_ids)
        logger.warning("Tick %s failed after executing %s; journaled them", run_id, ids)

    def on_change_set_closed(self, change_set_id: str, closed_at: Optional[datetime.datetime] = None) -> bool:
        closed_at = closed_at or self._clock.now()
        released = self._evaluator.release(change_set_id)
        self._decision_repo.mark_closed(change_set_id, closed_at.astimezone(datetime.timezone.utc).isoformat())
        self._conn.commit()
        return released

    def close_candidate(self, package_name: str, detail: Optional[str] = None) -> bool:
        return self._evaluator.close(package_name, detail)

    def trigger_group(self, group_name: str) -> None:
        self._evaluator.trigger_group(group_name)
