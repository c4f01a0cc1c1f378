"""Configuration models and helpers for the usage agent."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta


@dataclass(slots=True)
class AgentSettings:
    """Runtime configuration for the sampling loop."""

    sample_interval: timedelta = timedelta(seconds=1)
    snapshot_interval: timedelta = timedelta(seconds=60)
    idle_check_ticks: int = 5
    idle_threshold: timedelta = timedelta(seconds=30)
    persistence_retries: int = 1
    max_persistence_failures: int = 10

    @classmethod
    def from_intervals(
        cls,
        sample_seconds: float = 1.0,
        snapshot_seconds: float = 60.0,
        idle_seconds: float = 30.0,
        idle_check_ticks: int | None = None,
        max_persistence_failures: int | None = None,
    ) -> "AgentSettings":
        # Keep the idle re-check near every five seconds regardless of cadence.
        ticks = (
            idle_check_ticks
            if idle_check_ticks is not None
            else max(1, round(5.0 / sample_seconds))
        )
        failures = (
            max_persistence_failures if max_persistence_failures is not None else 10
        )
        return cls(
            sample_interval=timedelta(seconds=sample_seconds),
            snapshot_interval=timedelta(seconds=snapshot_seconds),
            idle_check_ticks=ticks,
            idle_threshold=timedelta(seconds=idle_seconds),
            max_persistence_failures=failures,
        )
