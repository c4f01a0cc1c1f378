from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Mapping, Optional

import pytest

from usage_tracker.models import WindowSample
from usage_tracker.store import UsageStore

DAY = date(2026, 10, 19)


class FakeClock:
    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeStopEvent:
    """Stands in for ``threading.Event``; waiting advances the fake clock."""

    def __init__(self, clock: FakeClock, stop_at: Optional[float] = None) -> None:
        self.clock = clock
        self.stop_at = stop_at
        self.waits: list[float] = []
        self._set = False

    def is_set(self) -> bool:
        return self._set

    def set(self) -> None:
        self._set = True

    def wait(self, timeout: Optional[float] = None) -> bool:
        self.waits.append(timeout or 0.0)
        if self._set:
            return True
        self.clock.advance(timeout or 0.0)
        if self.stop_at is not None and self.clock.now >= self.stop_at:
            self._set = True
        return self._set


class FakeProbe:
    def __init__(self, sample: WindowSample) -> None:
        self.sample = sample
        self.calls = 0

    def __call__(self) -> WindowSample:
        self.calls += 1
        return self.sample


class FakeIdleQuery:
    def __init__(self, millis: int = 0) -> None:
        self.millis = millis
        self.calls = 0

    def __call__(self) -> int:
        self.calls += 1
        return self.millis


class RecordingRenderer:
    def __init__(self) -> None:
        self.renders: list[dict[str, int]] = []

    def __call__(self, totals: Mapping[str, int]) -> Path:
        self.renders.append(dict(totals))
        return Path("usage_graph.png")


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "app_usage.sqlite3"


@pytest.fixture
def store(db_path: Path):
    usage_store = UsageStore(db_path)
    yield usage_store
    usage_store.close()
