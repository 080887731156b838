"""Construct a fully wired app instance for running ticks.

Responsibilities:
  - Assemble policy, evaluator, providers and persistence based on config.
Must not:
  - Implement policy logic; composition only.
"""

from __future__ import annotations

import sqlite3
from typing import Any, Optional

from depcadence.app_api.facade import DepcadenceApplication
from depcadence.app_api.factories.policy_factory import build_policy
from depcadence.app_api.ports import CandidateSource, ChangeSetSink, Clock
from depcadence.app_api.providers.json_candidate_source import JsonFileCandidateSource
from depcadence.app_api.providers.stdout_sink import StdoutChangeSetSink
from depcadence.app_api.providers.system_clock import SystemClock
from depcadence.core.engine.evaluator import PolicyEvaluator
from depcadence.core.policy.policy import Policy
from depcadence.infra.sqlite.migrator import apply_migrations


def build_depcadence_app(
    conn: sqlite3.Connection,
    candidates_path: Optional[str] = None,
    policy: Optional[Policy] = None,
    **kwargs: Any,
) -> DepcadenceApplication:
    """
    Composition root: build and wire all runtime components (policy, evaluator, ports)
    and return the application facade.
    """
    if policy is None:
        policy = build_policy(
            policy_path=kwargs.pop("policy_path", None),
            preset=kwargs.pop("preset", None),
            preset_version=kwargs.pop("preset_version", "v1"),
        )
    candidate_source: Optional[CandidateSource] = kwargs.pop("candidate_source", None)
    if candidate_source is None:
        if candidates_path is None:
            raise ValueError("candidates_path or candidate_source is required")
        candidate_source = JsonFileCandidateSource(candidates_path)
    sink: ChangeSetSink = kwargs.pop("sink", None) or StdoutChangeSetSink()
    clock: Clock = kwargs.pop("clock", None) or SystemClock()
    horizon_days = kwargs.pop("horizon_days", None)
    if kwargs:
        raise TypeError(f"Unexpected options: {sorted(kwargs)}")

    apply_migrations(conn)

    evaluator = (
        PolicyEvaluator(policy, horizon_days=horizon_days) if horizon_days is not None else PolicyEvaluator(policy)
    )
    return DepcadenceApplication(
        conn=conn,
        evaluator=evaluator,
        candidate_source=candidate_source,
        sink=sink,
        clock=clock,
    )
