"""Domain models for recorded usage."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date


@dataclass(frozen=True, slots=True)
class WindowSample:
    """Point-in-time view of the foreground window; pid 0 means nothing focused."""

    process_id: int
    title: str


@dataclass(frozen=True, slots=True)
class TitleLabel:
    task: str
    application: str


@dataclass(frozen=True, slots=True)
class UsageKey:
    """Identity of a usage record: one row per task, application and day."""

    task: str
    application: str
    day: date


@dataclass(slots=True)
class UsageRecord:
    """Accumulated focus time for a single usage key."""

    task: str
    application: str
    day: date
    duration_seconds: int
