import math

import pytest

from src.ridecore.core import EventTrigger, Frame, GpsFix, ScanScope, Vector3
from src.ridecore.events import (
    detect_impacts,
    detect_window_event,
    energy_index,
    nearest_gps_context,
    robust_threshold,
    select_trigger,
)

START = 1_700_000_000_000
DT_MS = 40


def make_frames(n, gps_every=None, speed=5.0):
    frames = []
    for i in range(n):
        ts = START + i * DT_MS
        fix = None
        if gps_every and i % gps_every == 0:
            fix = GpsFix(lat=37.5, lon=127.0, accuracy=6.0, speed=speed, timestamp=ts)
        frames.append(Frame(timestamp=ts, acc_g=Vector3(x=0.0, y=0.0, z=1.0), gps=fix))
    return frames


def spiky(n, spikes, base=0.5, value=4.0):
    mags = [base] * n
    for index in spikes:
        mags[index] = value
    return mags


def test_robust_threshold_uses_min_delta_floor():
    baseline, threshold = robust_threshold([0.5] * 100, min_delta=2.5, mad_multiplier=3.5)
    assert baseline == 0.5
    assert threshold == pytest.approx(3.0)


def test_robust_threshold_ignores_non_finite():
    baseline, _ = robust_threshold([0.5, 0.5, math.nan, -1.0, 0.5], 1.8, 3.5)
    assert baseline == 0.5


def test_energy_index():
    assert energy_index(3.0, 0.5, 80) == pytest.approx(2.5 * math.log1p(80))
    assert energy_index(0.4, 0.5, 80) == 0.0


def test_trigger_priority():
    assert select_trigger(3.0, 10.0, 30.0) == EventTrigger.PEAK
    assert select_trigger(1.0, 10.0, 30.0) == EventTrigger.ENERGY
    assert select_trigger(1.0, 0.5, 30.0) == EventTrigger.JERK
    assert select_trigger(1.0, 0.5, None) is None
    assert EventTrigger.JERK.reason == "event_jerk"


def test_stream_scope_groups_by_time_gap():
    frames = make_frames(500)
    # two bursts 8 seconds apart, each three samples long
    mags = spiky(500, [100, 101, 102, 300, 301, 302])

    events = detect_impacts(frames, mags, START, ScanScope.STREAM)

    assert len(events) == 2
    first, second = events
    assert first.t_start_sec == pytest.approx(4.0)
    assert first.t_end_sec == pytest.approx(4.08)
    assert first.trigger == EventTrigger.PEAK
    assert first.peak_acc == 4.0
    assert second.t_peak_sec == pytest.approx(12.0)


def test_stream_scope_merges_close_bursts():
    frames = make_frames(500)
    mags = spiky(500, [100, 110])

    events = detect_impacts(frames, mags, START, ScanScope.STREAM)

    assert len(events) == 1
    assert events[0].duration_sec == pytest.approx(0.4)


def test_stream_scope_quiet_signal_has_no_events():
    frames = make_frames(500)
    assert detect_impacts(frames, [0.5] * 500, START) == []
    assert detect_impacts([], [], START) == []


def test_stream_scope_custom_floor_and_gap():
    frames = make_frames(500)
    mags = spiky(500, [100, 160], value=2.8)
    # 2.8 stays under the default 0.5 + 2.5 threshold
    assert detect_impacts(frames, mags, START) == []

    events = detect_impacts(frames, mags, START, min_delta=1.5, group_gap_ms=1000)
    assert len(events) == 2


def test_stream_scope_attaches_nearby_gps():
    frames = make_frames(500, gps_every=10, speed=12.0)
    mags = spiky(500, [205])

    events = detect_impacts(frames, mags, START)

    assert len(events) == 1
    assert events[0].gps_context is not None
    assert events[0].gps_context.speed == 12.0


def test_window_scope_returns_single_event():
    frames = make_frames(125)
    mags = spiky(125, [50, 51, 52, 90], value=3.0)

    event = detect_window_event(frames, mags, START, jerk_rms=5.0, gps_fixes=[])

    assert event is not None
    assert event.t_start_sec == pytest.approx(2.0)
    assert event.t_peak_sec == pytest.approx(2.0)
    assert event.t_end_sec == pytest.approx(3.6)
    assert event.gps_context is None


def test_window_scope_jerk_trigger():
    frames = make_frames(125)
    # 2.2 > 0.2 + 1.8 이지만 peak_acc_min 미만, 단일 샘플이라 energy 0
    mags = spiky(125, [60], base=0.2, value=2.2)
    event = detect_window_event(frames, mags, START, jerk_rms=25.0, gps_fixes=[])
    assert event is not None
    assert event.trigger == EventTrigger.JERK
    assert event.energy_index == 0.0


def test_window_scope_quiet_window():
    frames = make_frames(125)
    assert detect_window_event(frames, [0.5] * 125, START, jerk_rms=2.0, gps_fixes=[]) is None


def test_window_scope_needs_sample_above_threshold():
    frames = make_frames(125)
    # 중력 포함 크기(~9.8)는 peak_acc_min 을 넘지만 기준선 대비 초과 샘플이 없음
    mags = [9.81 + (0.01 if i % 2 else -0.01) for i in range(125)]
    assert detect_window_event(frames, mags, START, jerk_rms=25.0, gps_fixes=[]) is None
    assert detect_impacts(frames, mags, START, ScanScope.WINDOW) == []


def test_nearest_gps_context():
    fixes = [
        GpsFix(lat=0.0, lon=0.0, accuracy=3.0, speed=1.0, timestamp=1000),
        GpsFix(lat=0.0, lon=0.0, accuracy=9.0, speed=2.0, timestamp=4000),
    ]
    context = nearest_gps_context(fixes, 3500, max_age_ms=5000)
    assert context.accuracy == 9.0
    assert nearest_gps_context(fixes, 20000, max_age_ms=5000) is None
