"""SQLite schema migrations for the decision journal.

Responsibilities:
  - Apply each bundled .sql file once, in file-name order, recording it in dc_schema_migration.
Must not:
  - Embed business logic; migrations only.
"""

from __future__ import annotations

import datetime
import sqlite3
from pathlib import Path


def _migrations_dir() -> Path:
    return Path(__file__).resolve().parent / "migrations"


def applied_migrations(conn: sqlite3.Connection) -> set[str]:
    conn.execute(
        "CREATE TABLE IF NOT EXISTS dc_schema_migration (name TEXT PRIMARY KEY, applied_at TEXT NOT NULL)"
    )
    return {row[0] for row in conn.execute("SELECT name FROM dc_schema_migration").fetchall()}


def apply_migrations(conn: sqlite3.Connection) -> list[str]:
    done = applied_migrations(conn)
    applied: list[str] = []
    for migration in sorted(_migrations_dir().glob("*.sql")):
        if migration.name in done:
            continue
        conn.executescript(migration.read_text(encoding="utf-8"))
        conn.execute(
            "INSERT INTO dc_schema_migration (name, applied_at) VALUES (?, ?)",
            (migration.name, datetime.datetime.now(datetime.timezone.utc).isoformat()),
        )
        conn.commit()
        applied.append(migration.name)
    return applied
