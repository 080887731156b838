"""SQLite repository for tick run metadata (dc_tick_run)."""

from __future__ import annotations

import sqlite3


class TickRunRepo:
    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def insert_run(
        self,
        run_id: str,
        created_at: str,
        tick_at: str,
        policy_id: str,
        policy_version: str,
        emitted: int,
        deferred: int,
        suppressed: int,
    ) -> None:
        self._conn.execute(
            """
            INSERT INTO dc_tick_run (
                run_id, created_at, tick_at, policy_id, policy_version, emitted, deferred, suppressed
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (run_id, created_at, tick_at, policy_id, policy_version, emitted, deferred, suppressed),
        )
