from __future__ import annotations

import os
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable

from .settings import settings


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _resolve_db_path() -> str:
    """Return a file path usable by sqlite.

    If the configured path is a directory (e.g. a bind mount of /var/lib/ncr)
    the DB file is placed inside it. Missing parents are created.
    """

    p = os.path.abspath(settings.db_path)

    if os.path.isdir(p):
        p = os.path.join(p, "ncr.db")

    parent = os.path.dirname(p)
    if parent and not os.path.exists(parent):
        os.makedirs(parent, exist_ok=True)

    return p


def connect() -> sqlite3.Connection:
    conn = sqlite3.connect(_resolve_db_path(), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def init_db() -> None:
    """Create tables if they do not exist."""
    with connect() as conn:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS events (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              ts TEXT NOT NULL,
              level TEXT NOT NULL,
              target TEXT,
              message TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS cycles (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              ts TEXT NOT NULL,
              checksum TEXT,
              status TEXT NOT NULL, -- succeeded|succeeded-with-failures|failed|skipped
              reason TEXT NOT NULL,
              steps_total INTEGER NOT NULL DEFAULT 0,
              steps_failed INTEGER NOT NULL DEFAULT 0,
              restart_requested INTEGER NOT NULL DEFAULT 0,
              description TEXT NOT NULL,
              failure_reason TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_events_ts ON events(ts);
            CREATE INDEX IF NOT EXISTS idx_cycles_ts ON cycles(ts);
            """
        )


def log_event(level: str, message: str, target: str | None = None) -> None:
    init_db()
    with connect() as conn:
        conn.execute(
            "INSERT INTO events (ts, level, target, message) VALUES (?, ?, ?, ?)",
            (utc_now(), level.upper(), target, message),
        )


@dataclass(frozen=True)
class EventRow:
    id: int
    ts: str
    level: str
    target: str | None
    message: str


@dataclass(frozen=True)
class CycleRow:
    id: int
    ts: str
    checksum: str | None
    status: str
    reason: str
    steps_total: int
    steps_failed: int
    restart_requested: int
    description: str
    failure_reason: str | None


def _rows_to_dataclass(rows: Iterable[sqlite3.Row], cls: Any) -> list[Any]:
    out: list[Any] = []
    for r in rows:
        out.append(cls(**dict(r)))
    return out


def record_cycle(
    checksum: str | None,
    status: str,
    reason: str,
    steps_total: int,
    steps_failed: int,
    restart_requested: bool,
    description: str,
    failure_reason: str | None = None,
) -> CycleRow:
    init_db()
    with connect() as conn:
        cur = conn.execute(
            """
            INSERT INTO cycles (ts, checksum, status, reason, steps_total, steps_failed, restart_requested, description, failure_reason)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                utc_now(),
                checksum,
                status,
                reason,
                steps_total,
                steps_failed,
                int(restart_requested),
                description,
                failure_reason,
            ),
        )
        row = conn.execute("SELECT * FROM cycles WHERE id=?", (cur.lastrowid,)).fetchone()
        return CycleRow(**dict(row))


def list_cycles(limit: int = 20) -> list[CycleRow]:
    init_db()
    with connect() as conn:
        rows = conn.execute("SELECT * FROM cycles ORDER BY id DESC LIMIT ?", (max(1, int(limit)),)).fetchall()
        return _rows_to_dataclass(rows, CycleRow)


def last_cycle() -> CycleRow | None:
    rows = list_cycles(limit=1)
    return rows[0] if rows else None


def list_events(limit: int = 50, target: str | None = None) -> list[EventRow]:
    init_db()
    with connect() as conn:
        if target:
            rows = conn.execute(
                "SELECT * FROM events WHERE target=? ORDER BY id DESC LIMIT ?", (target, max(1, int(limit)))
            ).fetchall()
        else:
            rows = conn.execute("SELECT * FROM events ORDER BY id DESC LIMIT ?", (max(1, int(limit)),)).fetchall()
        return _rows_to_dataclass(rows, EventRow)
