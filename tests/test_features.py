import math

import pytest
from pydantic import ValidationError

from src.ridecore.core import CoreFlag, Frame, GyroRate, Vector3
from src.ridecore.features import extract_features


def make_frames(mags, dt_ms=20, lin_acc=True, gyro=None, start=1_700_000_000_000):
    frames = []
    for i, mag in enumerate(mags):
        frames.append(
            Frame(
                timestamp=start + i * dt_ms,
                acc_g=Vector3(x=0.0, y=0.0, z=1.0),
                lin_acc=Vector3(x=mag, y=0.0, z=0.0) if lin_acc else None,
                gyro_rate=GyroRate(alpha=gyro, beta=0.0, gamma=0.0) if gyro is not None else None,
            )
        )
    return frames


def test_empty_input_is_insufficient():
    result = extract_features([])
    assert CoreFlag.INSUFFICIENT_DATA in result.flags
    m = result.metrics
    assert (m.accel_rms, m.accel_p95, m.jerk_rms, m.jerk_p95) == (0.0, 0.0, 0.0, 0.0)
    assert m.gyro_rms is None


def test_uses_lin_acc_when_majority_present():
    result = extract_features(make_frames([0.5] * 50))
    assert result.metrics.accel_rms == pytest.approx(0.5)
    assert result.metrics.jerk_rms == 0.0
    assert CoreFlag.LINACC_MISSING_FALLBACK_TO_ACCG not in result.flags
    assert len(result.accel_mags) == 50


def test_falls_back_to_acc_g_when_lin_acc_sparse():
    frames = make_frames([0.5] * 10) + make_frames([0.5] * 30, lin_acc=False, start=1_700_000_001_000)
    result = extract_features(frames)
    assert CoreFlag.LINACC_MISSING_FALLBACK_TO_ACCG in result.flags
    # acc_g magnitude is 1.0 on every frame
    assert result.metrics.accel_rms == pytest.approx(1.0)


def test_gyro_metrics_absent_without_gyro():
    result = extract_features(make_frames([0.2] * 30))
    assert result.metrics.gyro_rms is None
    assert result.metrics.gyro_p95 is None


def test_gyro_metrics_present():
    result = extract_features(make_frames([0.2] * 30, gyro=3.0))
    assert result.metrics.gyro_rms == pytest.approx(3.0)
    assert result.metrics.gyro_p95 >= result.metrics.gyro_rms


def test_p95_never_below_rms_with_rare_spike():
    mags = [0.1] * 99 + [20.0]
    result = extract_features(make_frames(mags))
    m = result.metrics
    assert m.accel_p95 >= m.accel_rms
    assert m.jerk_p95 >= m.jerk_rms


def test_non_finite_lin_acc_is_discarded():
    mags = [0.3] * 40
    mags[10] = math.nan
    result = extract_features(make_frames(mags))
    m = result.metrics
    assert math.isfinite(m.accel_rms)
    assert math.isfinite(m.jerk_rms)
    assert m.accel_rms == pytest.approx(0.3)


def test_small_sample_marks_metrics_incomplete():
    result = extract_features(make_frames([0.3] * 5))
    assert CoreFlag.CORE_METRICS_INCOMPLETE in result.flags


def test_duplicate_timestamps_skipped_for_jerk():
    frames = make_frames([0.1, 0.9, 0.1], dt_ms=0)
    result = extract_features(frames)
    assert result.jerk_mags == []
    assert result.metrics.jerk_rms == 0.0


@pytest.mark.parametrize("timestamp", [None, math.nan, math.inf, 1.5, True])
def test_frame_rejects_bad_timestamp(timestamp):
    with pytest.raises(ValidationError):
        Frame(timestamp=timestamp, acc_g=Vector3(x=0.0, y=0.0, z=1.0))


def test_frame_rejects_non_finite_acc_g():
    with pytest.raises(ValidationError):
        Frame(timestamp=0, acc_g=Vector3(x=math.inf, y=0.0, z=1.0))


def test_frame_accepts_camel_case_wire_names():
    frame = Frame.model_validate(
        {
            "timestamp": 1000.0,
            "accG": {"x": 0.0, "y": 0.0, "z": 1.0},
            "gyroRate": {"alpha": None, "beta": 1.0, "gamma": None},
        }
    )
    assert frame.timestamp == 1000
    assert frame.gyro_rate.has_data
    assert frame.gyro_rate.magnitude == pytest.approx(1.0)
