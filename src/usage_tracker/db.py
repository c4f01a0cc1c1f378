"""SQLite database layer for usage records."""

from __future__ import annotations

import sqlite3
from datetime import date
from pathlib import Path

from .models import UsageKey


DATE_FMT = "%Y-%m-%d"


def open_database(path: Path, *, check_same_thread: bool = True) -> sqlite3.Connection:
    """Open (and initialize) the SQLite database."""
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(
        path,
        isolation_level=None,
        check_same_thread=check_same_thread,
    )
    conn.row_factory = sqlite3.Row
    initialize_schema(conn)
    return conn


def initialize_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS app_usage (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            task TEXT NOT NULL,
            app_name TEXT NOT NULL,
            duration INTEGER NOT NULL CHECK (duration >= 0),
            usage_date TEXT NOT NULL,
            UNIQUE (task, app_name, usage_date)
        );

        CREATE INDEX IF NOT EXISTS idx_usage_date
            ON app_usage(usage_date);
        """
    )


def upsert_usage(conn: sqlite3.Connection, key: UsageKey, seconds: int) -> None:
    """Insert a record for ``key`` or add ``seconds`` to the existing one."""
    conn.execute(
        """
        INSERT INTO app_usage (task, app_name, duration, usage_date)
        VALUES (?, ?, ?, ?)
        ON CONFLICT (task, app_name, usage_date)
        DO UPDATE SET duration = duration + excluded.duration
        """,
        (key.task, key.application, seconds, key.day.strftime(DATE_FMT)),
    )


def fetch_totals_by_application(conn: sqlite3.Connection) -> list[sqlite3.Row]:
    """Return total seconds per application across all tasks and days."""
    return list(
        conn.execute(
            """
            SELECT app_name, SUM(duration) AS seconds
            FROM app_usage
            GROUP BY app_name
            ORDER BY seconds DESC, app_name;
            """
        )
    )


def fetch_usage_for_day(conn: sqlite3.Connection, day: date) -> list[sqlite3.Row]:
    """Fetch every task/application record of the provided day."""
    return list(
        conn.execute(
            """
            SELECT task, app_name, duration, usage_date
            FROM app_usage
            WHERE usage_date = ?
            ORDER BY duration DESC, app_name, task;
            """,
            (day.strftime(DATE_FMT),),
        )
    )


def fetch_records(conn: sqlite3.Connection) -> list[sqlite3.Row]:
    return list(
        conn.execute(
            """
            SELECT task, app_name, duration, usage_date
            FROM app_usage
            ORDER BY usage_date, app_name, task;
            """
        )
    )


def parse_day(value: str) -> date:
    return date.fromisoformat(value)
