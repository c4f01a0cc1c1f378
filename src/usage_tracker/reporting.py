"""Simple reporting utilities for CLI output."""

from __future__ import annotations

from collections import defaultdict
from datetime import date
from typing import Iterable

from .models import UsageRecord
from .store import UsageStore

_UNTITLED = "(untitled)"


class SummaryPrinter:
    """Render human-readable summaries in the console."""

    def __init__(self, store: UsageStore) -> None:
        self.store = store

    def print_daily_summary(self, day: date, *, limit: int = 10) -> None:
        records = self.store.usage_for_day(day)
        if not records:
            print("No activity recorded for the selected day.")
            return

        total = sum(record.duration_seconds for record in records)
        print(f"Summary for {day.isoformat()}")
        print("-" * 40)
        print(f"Active time: {format_duration(total)}")
        print()

        print("Top applications:")
        for application, seconds in aggregate_by_application(records)[:limit]:
            print(f"  {(application or _UNTITLED)[:30]:<30} {format_duration(seconds)}")

        tasks = [record for record in records if record.task]
        if tasks:
            print()
            print("Top tasks:")
            for record in tasks[:limit]:
                application = (record.application or _UNTITLED)[:16]
                print(
                    f"  {application:<16} {record.task[:45]:<45} "
                    f"{format_duration(record.duration_seconds)}"
                )

    def print_totals(self) -> None:
        totals = self.store.totals_by_application()
        if not totals:
            print("No activity recorded yet.")
            return
        print("All-time usage by application")
        print("-" * 40)
        for application, seconds in totals.items():
            print(f"  {(application or _UNTITLED)[:30]:<30} {format_duration(seconds)}")


def aggregate_by_application(records: Iterable[UsageRecord]) -> list[tuple[str, int]]:
    totals: defaultdict[str, int] = defaultdict(int)
    for record in records:
        totals[record.application] += record.duration_seconds
    return sorted(totals.items(), key=lambda item: item[1], reverse=True)


def format_duration(seconds: float) -> str:
    total_seconds = int(round(seconds))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
