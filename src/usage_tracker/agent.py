"""Sampling loop that attributes focus time to applications."""

from __future__ import annotations

import logging
import signal
import threading
import time
from datetime import date
from pathlib import Path
from typing import Callable, Mapping, Optional

from .classifier import classify_title
from .config import AgentSettings
from .errors import PersistenceFailure, ProbeFailure, RenderFailure
from .idle import IdleState, advance_idle_state
from .models import TitleLabel, UsageKey, WindowSample
from .snapshot import BarChartRenderer
from .store import UsageStore

logger = logging.getLogger(__name__)

Probe = Callable[[], WindowSample]
IdleQuery = Callable[[], int]
Renderer = Callable[[Mapping[str, int]], Path]


class SamplingLoop:
    """Multiplexes the sample timer, the snapshot timer and cancellation.

    All work happens on the thread calling :meth:`run`; the loop only blocks in
    ``stop_event.wait`` until the next timer is due or cancellation arrives.
    """

    def __init__(
        self,
        store: UsageStore,
        probe: Probe,
        idle_query: IdleQuery,
        renderer: Renderer,
        settings: Optional[AgentSettings] = None,
        *,
        classifier: Callable[[str], TitleLabel] = classify_title,
        clock: Callable[[], float] = time.monotonic,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.store = store
        self.settings = settings or AgentSettings()
        self._probe = probe
        self._idle_query = idle_query
        self._renderer = renderer
        self._classifier = classifier
        self._clock = clock
        self._today = today
        self.idle_state = IdleState()
        self.persistence_failures = 0

    def sample_tick(self) -> Optional[UsageKey]:
        """Run one sample tick; return the key credited with a second, if any."""
        try:
            self.idle_state = advance_idle_state(
                self.idle_state,
                check_interval=self.settings.idle_check_ticks,
                threshold=self.settings.idle_threshold,
                millis_since_input=self._idle_query,
            )
        except ProbeFailure as exc:
            logger.warning("Idle query failed; skipping this tick: %s", exc)
            self.idle_state = IdleState(ticks_since_check=0, is_idle=self.idle_state.is_idle)
            return None

        if self.idle_state.is_idle:
            return None

        try:
            sample = self._probe()
        except ProbeFailure as exc:
            logger.warning("Window probe failed; skipping this tick: %s", exc)
            return None
        if sample.process_id == 0:
            return None

        label = self._classifier(sample.title)
        key = UsageKey(task=label.task, application=label.application, day=self._today())
        if not self._merge(key):
            return None
        logger.debug("Recorded 1s for app=%r task=%r", key.application, key.task)
        return key

    def snapshot_tick(self) -> bool:
        """Render the current totals; return whether a snapshot was written."""
        try:
            totals = self.store.totals_by_application()
        except PersistenceFailure:
            logger.exception("Cannot read usage totals; snapshot skipped.")
            return False
        try:
            self._renderer(totals)
        except RenderFailure as exc:
            logger.warning("Snapshot render failed: %s", exc)
            return False
        return True

    def run(self, stop_event: threading.Event) -> None:
        """Sample until ``stop_event`` is set, then render a final snapshot.

        Raises :class:`PersistenceFailure` once too many consecutive ticks
        could not be stored; the final snapshot is still attempted first.
        """
        sample_period = self.settings.sample_interval.total_seconds()
        snapshot_period = self.settings.snapshot_interval.total_seconds()
        started = self._clock()
        next_sample = started
        next_snapshot = started + snapshot_period
        logger.info(
            "Sampling every %.1fs; snapshot every %.0fs.", sample_period, snapshot_period
        )
        try:
            while not stop_event.is_set():
                now = self._clock()
                if now >= next_sample:
                    self.sample_tick()
                    next_sample = _next_deadline(next_sample, sample_period, self._clock())
                if now >= next_snapshot:
                    logger.info("Generating usage graph...")
                    self.snapshot_tick()
                    next_snapshot = _next_deadline(next_snapshot, snapshot_period, self._clock())
                timeout = min(next_sample, next_snapshot) - self._clock()
                stop_event.wait(max(0.0, timeout))
        finally:
            logger.info("Shutting down; generating final usage graph...")
            self.snapshot_tick()

    def _merge(self, key: UsageKey) -> bool:
        attempts = 1 + max(0, self.settings.persistence_retries)
        for attempt in range(1, attempts + 1):
            try:
                self.store.record_one_second(key)
            except PersistenceFailure as exc:
                if attempt < attempts:
                    logger.warning("Usage write failed (attempt %d/%d): %s", attempt, attempts, exc)
                    continue
                self.persistence_failures += 1
                logger.error(
                    "Usage write failed; %d consecutive tick(s) lost: %s",
                    self.persistence_failures,
                    exc,
                )
                if self.persistence_failures >= self.settings.max_persistence_failures:
                    raise
                return False
            else:
                self.persistence_failures = 0
                return True
        return False


def _next_deadline(previous: float, period: float, now: float) -> float:
    deadline = previous + period
    # Late ticks are neither bursted nor queued.
    if deadline <= now:
        deadline = now + period
    return deadline


def install_signal_handlers(stop_event: threading.Event) -> None:
    """Route interrupt and termination signals to ``stop_event``."""

    def _request_stop(signum: int, _frame: object) -> None:
        if stop_event.is_set():
            logger.debug("Ignoring signal %s; shutdown already in progress.", signum)
            return
        logger.info("Received shutdown signal %s.", signum)
        stop_event.set()

    for name in ("SIGINT", "SIGTERM", "SIGBREAK"):
        signum = getattr(signal, name, None)
        if signum is not None:
            signal.signal(signum, _request_stop)


def run_agent(
    *,
    db_path: Path,
    snapshot_path: Path,
    settings: AgentSettings,
    stop_event: threading.Event,
) -> None:
    """Open the store and platform probes and sample until stopped."""
    from .probes import create_default_probes

    window_probe, idle_detector = create_default_probes()
    store = UsageStore(db_path)
    logger.info("Starting usage agent; writing to %s", db_path)
    try:
        loop = SamplingLoop(
            store,
            window_probe.probe_foreground_window,
            idle_detector.milliseconds_since_input,
            BarChartRenderer(snapshot_path).render,
            settings,
        )
        loop.run(stop_event)
    finally:
        store.close()
        logger.info("Usage agent stopped.")
