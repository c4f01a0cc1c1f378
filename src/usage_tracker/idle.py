"""Idle-state machine driven by the sampling loop."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Callable


@dataclass(frozen=True, slots=True)
class IdleState:
    """Idle bookkeeping carried from one sample tick to the next."""

    ticks_since_check: int = 0
    is_idle: bool = False


def advance_idle_state(
    state: IdleState,
    *,
    check_interval: int,
    threshold: timedelta,
    millis_since_input: Callable[[], int],
) -> IdleState:
    """Return the idle state after one more sample tick.

    The input query is only made on every ``check_interval``-th tick; any
    ``ProbeFailure`` it raises is left to the caller.
    """
    ticks = state.ticks_since_check + 1
    if ticks < check_interval:
        return IdleState(ticks_since_check=ticks, is_idle=state.is_idle)

    elapsed = timedelta(milliseconds=millis_since_input())
    return IdleState(ticks_since_check=0, is_idle=elapsed > threshold)
