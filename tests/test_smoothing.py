import pytest

from src.ridecore.core import CoreState, WindowClassification
from src.ridecore.smoothing import SmoothingState, initial_smoothing_state, step_smoothing
from src.ridecore.thresholds import DEFAULT_CONFIG


def candidate(state, confidence=0.9, reason="gps_speed_moving"):
    return WindowClassification(state=state, confidence=confidence, reason=reason)


def run(states, start=None, duration=5.0, config=DEFAULT_CONFIG):
    classifications = [candidate(s) for s in states]
    state = start or initial_smoothing_state(classifications)
    decisions = []
    for c in classifications:
        state, decision = step_smoothing(state, c, duration, config)
        decisions.append(decision)
    return state, decisions


def test_stable_windows_keep_their_own_reason():
    state, decisions = run([CoreState.MOVING] * 3)
    assert state == SmoothingState(current=CoreState.MOVING)
    assert [d.reason for d in decisions] == ["gps_speed_moving"] * 3
    assert [d.confidence for d in decisions] == [0.9] * 3


def test_switch_requires_two_consecutive_windows():
    _, decisions = run([CoreState.MOVING, CoreState.STATIC, CoreState.STATIC])
    pending, switched = decisions[1], decisions[2]
    assert pending.state == CoreState.MOVING
    assert pending.reason == "hysteresis_hold"
    assert pending.confidence == pytest.approx(0.54)
    assert switched.state == CoreState.STATIC
    assert switched.reason == "hysteresis_switch"


def test_single_outlier_window_is_absorbed():
    state, decisions = run([CoreState.MOVING, CoreState.STATIC, CoreState.MOVING])
    assert [d.state for d in decisions] == [CoreState.MOVING] * 3
    assert not state.is_pending


def test_pending_candidate_change_restarts_count():
    state, decisions = run(
        [CoreState.MOVING, CoreState.STATIC, CoreState.SLOW_MOVING, CoreState.SLOW_MOVING]
    )
    assert [d.state for d in decisions] == [
        CoreState.MOVING,
        CoreState.MOVING,
        CoreState.MOVING,
        CoreState.SLOW_MOVING,
    ]


def test_event_bypasses_hysteresis_and_keeps_pending():
    state, decisions = run(
        [CoreState.SLOW_MOVING, CoreState.EVENT, CoreState.MOVING, CoreState.MOVING]
    )
    assert decisions[1].state == CoreState.EVENT
    assert decisions[2].state == CoreState.SLOW_MOVING
    assert decisions[3].state == CoreState.MOVING


def test_long_event_run_is_forced_unknown():
    _, decisions = run([CoreState.MOVING] + [CoreState.EVENT] * 3 + [CoreState.MOVING])
    assert [d.state for d in decisions[1:4]] == [CoreState.EVENT, CoreState.EVENT, CoreState.UNKNOWN]
    assert decisions[3].reason == "event_over_max"
    assert decisions[3].confidence == 0.0
    assert decisions[4].state == CoreState.MOVING


def test_event_run_resets_after_non_event_window():
    states = [CoreState.MOVING, CoreState.EVENT, CoreState.EVENT, CoreState.MOVING, CoreState.EVENT]
    state, decisions = run(states)
    assert decisions[4].state == CoreState.EVENT
    assert state.event_run_sec == 5.0


def test_initial_state_skips_leading_events():
    state = initial_smoothing_state([candidate(CoreState.EVENT), candidate(CoreState.STATIC)])
    assert state.current == CoreState.STATIC
    assert initial_smoothing_state([]).current == CoreState.UNKNOWN


def test_hysteresis_window_count_is_configurable():
    config = DEFAULT_CONFIG.with_overrides(smoothing={"hysteresis_windows": 1})
    _, decisions = run([CoreState.MOVING, CoreState.STATIC], config=config)
    assert decisions[1].state == CoreState.STATIC
