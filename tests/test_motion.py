import math

import pytest

from src.ridecore.core import CoreMetrics, MotionState
from src.ridecore.motion import classify_motion
from src.ridecore.scoring.archetypes import MovingScorer, StaticScorer, WalkingScorer, build_scorers
from src.ridecore.thresholds import DEFAULT_CONFIG


def metrics(accel, jerk, gyro=None):
    return CoreMetrics(accel_rms=accel, accel_p95=accel, jerk_rms=jerk, jerk_p95=jerk, gyro_rms=gyro)


def test_static_signals():
    result = classify_motion(metrics(0.05, 1.0, 0.5), frame_count=250)
    assert result.state == MotionState.STATIC
    assert result.confidence == pytest.approx(1.0)
    assert result.debug["scores"]["static"] == 1.0


def test_walking_signals():
    result = classify_motion(metrics(1.2, 20.0, 8.0), frame_count=250)
    assert result.state == MotionState.WALKING
    assert result.confidence == pytest.approx(0.857, abs=1e-3)


def test_moving_signals():
    result = classify_motion(metrics(0.5, 4.0, 2.0), frame_count=250)
    assert result.state == MotionState.MOVING
    assert result.confidence == pytest.approx(0.25)
    assert result.debug["scores"]["static"] == pytest.approx(0.75)


def test_missing_gyro_lowers_confidence():
    full = classify_motion(metrics(0.05, 1.0, 0.5), frame_count=250)
    partial = classify_motion(metrics(0.05, 1.0), frame_count=250)
    assert partial.state == MotionState.STATIC
    assert partial.debug["available_signals"] == 2
    assert partial.confidence < full.confidence


def test_small_sample_factor():
    result = classify_motion(metrics(0.05, 1.0, 0.5), frame_count=5)
    assert result.confidence == pytest.approx(0.6)


def test_no_usable_signals_is_unknown():
    m = CoreMetrics(accel_rms=math.nan, accel_p95=0.0, jerk_rms=math.inf, jerk_p95=0.0)
    result = classify_motion(m, frame_count=250)
    assert result.state == MotionState.UNKNOWN
    assert result.confidence == 0.0


def test_low_confidence_is_unknown():
    config = DEFAULT_CONFIG.with_overrides(motion_scoring={"min_confidence": 0.5})
    result = classify_motion(metrics(0.5, 4.0, 2.0), frame_count=250, config=config)
    assert result.state == MotionState.UNKNOWN
    assert result.debug["top"] == "MOVING"
    assert result.confidence == pytest.approx(0.25)


def test_scorers_follow_config_tables():
    scorers = build_scorers(DEFAULT_CONFIG.motion_scoring)
    assert [type(s) for s in scorers] == [StaticScorer, WalkingScorer, MovingScorer]
    static = scorers[0]
    # missing signals are excluded from the mean rather than counted as 0
    assert static.score({"accel_rms": 0.1, "jerk_rms": None, "gyro_rms": None}) == 1.0
    assert static.score({}) == 0.0


class FixedScorer:
    def __init__(self, state, value):
        self.state = state
        self.value = value

    def score(self, signals):
        return self.value


def fixed_scores(monkeypatch, static, walking, moving=0.0):
    scorers = [
        FixedScorer(MotionState.STATIC, static),
        FixedScorer(MotionState.WALKING, walking),
        FixedScorer(MotionState.MOVING, moving),
    ]
    monkeypatch.setattr("src.ridecore.motion.build_scorers", lambda scoring: scorers)


def test_tied_scores_fall_back_to_top_score(monkeypatch):
    fixed_scores(monkeypatch, 0.5, 0.5)
    result = classify_motion(metrics(0.05, 1.0, 0.5), frame_count=250)
    assert result.state == MotionState.STATIC
    assert result.confidence == pytest.approx(0.3)


def test_small_separation_does_not_fall_back(monkeypatch):
    # separation 0.001 -> 신뢰도는 0 으로 반올림되지만 동점은 아님
    fixed_scores(monkeypatch, 0.501, 0.5)
    result = classify_motion(metrics(0.05, math.nan), frame_count=5)
    assert result.debug["separation"] == 0.001
    assert result.confidence == 0.0
    assert result.state == MotionState.UNKNOWN
