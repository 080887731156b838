"""SQLite repository for emitted change-sets, decisions and suppressions.

Responsibilities:
  - Insert journal rows deterministically and track open/closed change-sets.
Must not:
  - Modify policy or evaluation logic; persistence only.
"""

from __future__ import annotations

import json
import sqlite3

from depcadence.core.domain.enums import ReasonCode, reason_from_persisted
from depcadence.core.domain.models import ChangeSet, Decision
from depcadence.core.engine.result import Suppression


def _json_list(values) -> str:
    return json.dumps(list(values), separators=(",", ":"), ensure_ascii=False)


class DecisionRepo:
    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def insert_change_set(self, run_id: str, change_set: ChangeSet, opened_at: str) -> None:
        self._conn.execute(
            """
            INSERT INTO dc_change_set (run_id, change_set_id, group_name, action, manual, opened_at, closed_at)
            VALUES (?, ?, ?, ?, ?, ?, NULL)
            """,
            (
                run_id,
                change_set.change_set_id,
                change_set.group_name,
                change_set.action.value,
                1 if change_set.manual else 0,
                opened_at,
            ),
        )
        for decision in change_set.decisions:
            self._insert_decision(run_id, change_set.change_set_id, decision)

    def _insert_decision(self, run_id: str, change_set_id: str, decision: Decision) -> None:
        candidate = decision.candidate
        self._conn.execute(
            """
            INSERT INTO dc_decision (
                run_id,
                change_set_id,
                candidate_id,
                package_name,
                manager,
                update_type,
                current_version,
                candidate_version,
                action,
                automerge,
                automerge_mode,
                group_name,
                labels_json,
                reasons_json
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                run_id,
                change_set_id,
                decision.candidate_id,
                candidate.package_name,
                candidate.manager.value,
                candidate.update_type.value,
                candidate.current_version,
                candidate.candidate_version,
                decision.action.value,
                1 if decision.automerge else 0,
                decision.automerge_mode.value,
                decision.group_name,
                _json_list(decision.labels),
                _json_list(reason.value for reason in decision.reasons),
            ),
        )

    def insert_suppression(self, run_id: str, suppression: Suppression) -> None:
        self._conn.execute(
            """
            INSERT OR REPLACE INTO dc_suppression (run_id, candidate_id, reason, detail)
            VALUES (?, ?, ?, ?)
            """,
            (run_id, suppression.candidate_id, suppression.reason.value, suppression.detail),
        )

    def open_change_set_ids(self) -> list[str]:
        rows = self._conn.execute(
            """
            SELECT DISTINCT change_set_id FROM dc_change_set
            WHERE closed_at IS NULL AND action != 'merge-immediately'
            ORDER BY change_set_id
            """
        ).fetchall()
        return [row[0] for row in rows]

    def mark_closed(self, change_set_id: str, closed_at: str) -> int:
        cursor = self._conn.execute(
            "UPDATE dc_change_set SET closed_at=? WHERE change_set_id=? AND closed_at IS NULL",
            (closed_at, change_set_id),
        )
        return cursor.rowcount

    def emitted_candidate_ids(self) -> set[str]:
        rows = self._conn.execute("SELECT DISTINCT candidate_id FROM dc_decision").fetchall()
        return {row[0] for row in rows}

    def closed_candidate_ids(self) -> set[str]:
        rows = self._conn.execute("SELECT candidate_id, reason FROM dc_suppression").fetchall()
        return {row[0] for row in rows if reason_from_persisted(row[1]) == ReasonCode.CLOSED}

    def change_set_ids_opened_since(self, since: str) -> list[str]:
        rows = self._conn.execute(
            "SELECT DISTINCT change_set_id FROM dc_change_set WHERE opened_at >= ? ORDER BY change_set_id",
            (since,),
        ).fetchall()
        return [row[0] for row in rows]
