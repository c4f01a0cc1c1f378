"""Durable accumulation of per-day focus time."""

from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import date
from pathlib import Path

from .db import (
    fetch_records,
    fetch_totals_by_application,
    fetch_usage_for_day,
    open_database,
    parse_day,
    upsert_usage,
)
from .errors import PersistenceFailure
from .models import UsageKey, UsageRecord

logger = logging.getLogger(__name__)


class UsageStore:
    """Keyed store of usage records backed by a single SQLite connection.

    Every merge is one ``INSERT ... ON CONFLICT DO UPDATE`` statement, so an
    increment is applied completely or not at all. The connection is guarded by
    a lock so readers on other threads never interleave with a merge.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self._lock = threading.Lock()
        try:
            self._conn = open_database(self.db_path, check_same_thread=False)
        except sqlite3.Error as exc:
            raise PersistenceFailure(f"Cannot open usage database {self.db_path}: {exc}") from exc

    def upsert_accumulate(self, key: UsageKey, increment_seconds: int) -> None:
        if increment_seconds <= 0:
            raise ValueError(f"increment_seconds must be positive, got {increment_seconds}")
        with self._lock:
            try:
                upsert_usage(self._conn, key, increment_seconds)
            except sqlite3.Error as exc:
                raise PersistenceFailure(f"Failed to record usage for {key}: {exc}") from exc

    def record_one_second(self, key: UsageKey) -> None:
        self.upsert_accumulate(key, 1)

    def totals_by_application(self) -> dict[str, int]:
        with self._lock:
            try:
                rows = fetch_totals_by_application(self._conn)
            except sqlite3.Error as exc:
                raise PersistenceFailure(f"Failed to read usage totals: {exc}") from exc
        return {row["app_name"]: int(row["seconds"]) for row in rows}

    def usage_for_day(self, day: date) -> list[UsageRecord]:
        with self._lock:
            try:
                rows = fetch_usage_for_day(self._conn, day)
            except sqlite3.Error as exc:
                raise PersistenceFailure(f"Failed to read usage for {day}: {exc}") from exc
        return [_row_to_record(row) for row in rows]

    def records(self) -> list[UsageRecord]:
        with self._lock:
            try:
                rows = fetch_records(self._conn)
            except sqlite3.Error as exc:
                raise PersistenceFailure(f"Failed to read usage records: {exc}") from exc
        return [_row_to_record(row) for row in rows]

    def close(self) -> None:
        with self._lock:
            self._conn.close()
        logger.debug("Closed usage database %s", self.db_path)

    def __enter__(self) -> "UsageStore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def _row_to_record(row: sqlite3.Row) -> UsageRecord:
    return UsageRecord(
        task=row["task"],
        application=row["app_name"],
        day=parse_day(row["usage_date"]),
        duration_seconds=int(row["duration"]),
    )
