from datetime import timedelta

import pytest

from usage_tracker.errors import ProbeFailure
from usage_tracker.idle import IdleState, advance_idle_state

THRESHOLD = timedelta(seconds=30)


def _advance(state, millis, calls=None):
    def query():
        if calls is not None:
            calls.append(1)
        return millis

    return advance_idle_state(
        state, check_interval=5, threshold=THRESHOLD, millis_since_input=query
    )


def test_initial_state_is_active():
    assert IdleState() == IdleState(ticks_since_check=0, is_idle=False)


def test_query_only_on_check_ticks():
    calls = []
    state = IdleState()
    for _ in range(4):
        state = _advance(state, 60_000, calls)
    assert calls == []
    assert state == IdleState(ticks_since_check=4, is_idle=False)

    state = _advance(state, 60_000, calls)
    assert calls == [1]
    assert state == IdleState(ticks_since_check=0, is_idle=True)


def test_single_check_flips_back_to_active():
    state = IdleState(ticks_since_check=4, is_idle=True)
    assert _advance(state, 1_000) == IdleState(ticks_since_check=0, is_idle=False)


def test_threshold_must_be_exceeded():
    state = IdleState(ticks_since_check=4)
    assert not _advance(state, 30_000).is_idle
    assert _advance(state, 30_001).is_idle


def test_idle_flag_held_between_checks():
    state = IdleState(ticks_since_check=1, is_idle=True)
    assert _advance(state, 0) == IdleState(ticks_since_check=2, is_idle=True)


def test_query_failure_propagates():
    def broken():
        raise ProbeFailure("no input info")

    with pytest.raises(ProbeFailure):
        advance_idle_state(
            IdleState(ticks_since_check=4),
            check_interval=5,
            threshold=THRESHOLD,
            millis_since_input=broken,
        )
