"""
Windowing engine.

Frames -> 고정 길이 윈도우 -> 윈도우별 특징/이벤트/상태 판정 -> hysteresis -> 세그먼트.
입력 순서를 신뢰하지 않고 timestamp 로 정렬한 복사본에서 작업합니다.
"""

import bisect
import math
from typing import List, Optional, Sequence

from loguru import logger

from src.ridecore.core import (
    CoreFlag,
    CoreState,
    Frame,
    GpsFix,
    ImpactEvent,
    WindowClassification,
    WindowGpsStats,
    WindowImuStats,
    WindowingResult,
    WindowSummary,
)
from src.ridecore.events import detect_window_event
from src.ridecore.features import extract_features
from src.ridecore.motion import classify_motion
from src.ridecore.segments import build_display_segments, build_segments
from src.ridecore.smoothing import apply_state_smoothing
from src.ridecore.stats import median, percentile
from src.ridecore.thresholds import DEFAULT_CONFIG, AnalysisConfig
from src.ridecore.vehicle import (
    VehicleGpsInput,
    VehicleImuInput,
    VehicleWindowInput,
    apply_vehicle_hysteresis,
    gps_quality_ok,
    is_imu_walking_veto,
)

# P95 와 RMS 비교 허용 오차
STATS_EPS = 1e-3

LOW_DATA_QUALITY = 0.6


class WindowingError(ValueError):
    """잘못된 윈도우 크기 / step"""


def unique_gps_fixes(frames: Sequence[Frame]) -> List[GpsFix]:
    """timestamp 기준 중복 제거 후 정렬 (같은 fix 가 여러 프레임에 반복 첨부됨)"""
    by_time = {}
    for frame in frames:
        if frame.gps is not None and frame.gps.timestamp not in by_time:
            by_time[frame.gps.timestamp] = frame.gps
    return [by_time[t] for t in sorted(by_time)]


def compute_window_gps_stats(
    fixes: Sequence[GpsFix], duration_ms: int, config: AnalysisConfig = DEFAULT_CONFIG
) -> WindowGpsStats:
    samples_count = len(fixes)
    if samples_count == 0:
        return WindowGpsStats()

    cfg = config.gps
    intervals = sorted(
        dt
        for dt in (fixes[i].timestamp - fixes[i - 1].timestamp for i in range(1, samples_count))
        if cfg.min_interval_ms <= dt <= cfg.max_interval_ms
    )

    observed_hz = 0.0
    if intervals:
        observed_hz = 1000.0 / median(intervals)
    elif samples_count > 1 and duration_ms > 0:
        observed_hz = (samples_count - 1) / (duration_ms / 1000.0)

    accuracies = sorted(f.accuracy for f in fixes if _finite(f.accuracy))
    speeds = sorted(f.speed for f in fixes if _finite(f.speed))
    accuracy_median = median(accuracies)
    accuracy_p95 = percentile(accuracies, 0.95)
    speed_median = median(speeds)

    return WindowGpsStats(
        samples_count=samples_count,
        observed_hz=round(observed_hz, 2),
        accuracy_median_m=_round_or_none(accuracy_median, 2),
        accuracy_p95_m=_round_or_none(accuracy_p95, 2),
        speed_median=_round_or_none(speed_median, 2),
    )


def _finite(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value)


def _round_or_none(value: Optional[float], digits: int) -> Optional[float]:
    return round(value, digits) if value is not None else None


def classify_window_state(
    imu: WindowImuStats,
    gps: WindowGpsStats,
    event: Optional[ImpactEvent],
    config: AnalysisConfig = DEFAULT_CONFIG,
) -> WindowClassification:
    """
    윈도우 상태 규칙표 (위에서부터 첫 번째 일치):
      1. 이벤트 후보           -> EVENT 0.95
      2. GPS 사용 가능 + 속도   -> MOVING 0.9 / SLOW_MOVING 0.8 / STATIC 0.85
      3. IMU 정지 후보          -> STATIC 0.65
      4. IMU 움직임 (보행 veto 아님) -> MOVING 0.6
      5. 그 외                 -> UNKNOWN 0.35
    모든 신뢰도에 data quality (샘플 부족 시 0.6) 를 곱합니다.
    """
    imu_cfg, gps_cfg = config.imu, config.gps
    has_imu = imu.samples_count > 0

    walking_veto = has_imu and is_imu_walking_veto(
        VehicleImuInput(accel_rms=imu.accel_rms, jerk_rms=imu.jerk_rms, gyro_rms=imu.gyro_rms),
        config,
    )
    gps_usable = gps_quality_ok(gps.samples_count, gps.observed_hz, gps.accuracy_p95_m, config)
    quality = LOW_DATA_QUALITY if imu.samples_count < config.windowing.min_imu_samples else 1.0

    def verdict(state: CoreState, base: float, reason: str) -> WindowClassification:
        return WindowClassification(
            state=state,
            confidence=round(base * quality, 3),
            reason=reason,
            signals={
                "accel_rms": imu.accel_rms,
                "jerk_rms": imu.jerk_rms,
                "gyro_rms": imu.gyro_rms,
                "gps_speed_median": gps.speed_median,
                "gps_hz": gps.observed_hz,
                "gps_accuracy_p95_m": gps.accuracy_p95_m,
            },
            debug={"walking_veto": walking_veto, "gps_usable": gps_usable},
        )

    if event is not None:
        return verdict(CoreState.EVENT, 0.95, event.trigger.reason)

    if gps_usable and gps.speed_median is not None:
        if gps.speed_median >= gps_cfg.moving_speed_mps:
            return verdict(CoreState.MOVING, 0.9, "gps_speed_moving")
        if gps.speed_median >= gps_cfg.slow_speed_mps:
            return verdict(CoreState.SLOW_MOVING, 0.8, "gps_speed_slow")
        if gps.speed_median <= gps_cfg.static_speed_mps:
            return verdict(CoreState.STATIC, 0.85, "gps_speed_static")

    if has_imu:
        static_candidate = (
            imu.accel_rms <= imu_cfg.static_accel_rms_max
            and imu.jerk_rms <= imu_cfg.static_jerk_rms_max
            and (imu.gyro_rms is None or imu.gyro_rms <= imu_cfg.static_gyro_rms_max)
        )
        if static_candidate:
            return verdict(CoreState.STATIC, 0.65, "imu_static")

        moving_candidate = (
            imu.accel_rms >= imu_cfg.moving_accel_rms_min
            or imu.jerk_rms >= imu_cfg.moving_jerk_rms_min
        )
        if moving_candidate and not walking_veto:
            return verdict(CoreState.MOVING, 0.6, "imu_motion")

    reason = "imu_walking_veto" if walking_veto else "signals_ambiguous"
    return verdict(CoreState.UNKNOWN, 0.35, reason)


def window_flags(
    feature_flags: Sequence[CoreFlag],
    imu: WindowImuStats,
    gps: WindowGpsStats,
    config: AnalysisConfig = DEFAULT_CONFIG,
) -> List[CoreFlag]:
    flags = list(feature_flags)
    if imu.samples_count < config.windowing.min_imu_samples:
        flags.append(CoreFlag.INSUFFICIENT_DATA)
    # fix 1개로는 최소 수신 주기를 입증할 수 없으므로 observed_hz 0 -> low rate
    if gps.samples_count > 0 and gps.observed_hz < config.gps.min_hz:
        flags.append(CoreFlag.GPS_LOW_RATE)

    pairs = [(imu.accel_p95, imu.accel_rms), (imu.jerk_p95, imu.jerk_rms)]
    if imu.gyro_rms is not None and imu.gyro_p95 is not None:
        pairs.append((imu.gyro_p95, imu.gyro_rms))
    if any(p95 + STATS_EPS < value_rms for p95, value_rms in pairs):
        flags.append(CoreFlag.STATS_INCONSISTENT)

    return list(dict.fromkeys(flags))


def build_core_windowing(
    frames: Sequence[Frame],
    window_size_ms: Optional[int] = None,
    step_ms: Optional[int] = None,
    config: AnalysisConfig = DEFAULT_CONFIG,
) -> WindowingResult:
    """
    전체 윈도우 파이프라인을 실행합니다.

    :param window_size_ms: 기본값 config.windowing.size_ms
    :param step_ms: 기본값 config.windowing.step_ms (size 와 독립적으로 설정 가능)
    :raises WindowingError: size 또는 step 이 0 이하일 때
    """
    size_ms = window_size_ms if window_size_ms is not None else config.windowing.size_ms
    step = step_ms if step_ms is not None else config.windowing.step_ms
    if size_ms <= 0 or step <= 0:
        raise WindowingError(f"window size and step must be positive (size={size_ms}, step={step})")

    if len(frames) == 0:
        return WindowingResult(window_size_ms=size_ms, step_ms=step)

    # 1. 정렬 및 GPS fix 정리
    ordered = sorted(frames, key=lambda f: f.timestamp)
    timestamps = [f.timestamp for f in ordered]
    start, end = timestamps[0], timestamps[-1]
    fixes = unique_gps_fixes(ordered)
    fix_times = [fix.timestamp for fix in fixes]

    # 2. 윈도우별 요약
    windows: List[WindowSummary] = []
    vehicle_inputs: List[VehicleWindowInput] = []
    window_start = start
    while window_start < end:
        window_end = min(window_start + size_ms, end)
        lo, hi = bisect.bisect_left(timestamps, window_start), bisect.bisect_left(timestamps, window_end)
        window_frames = ordered[lo:hi]
        window_fixes = fixes[bisect.bisect_left(fix_times, window_start):bisect.bisect_left(fix_times, window_end)]
        if not window_frames and not window_fixes:
            window_start += step
            continue

        summary, vehicle_input = _summarize_window(
            window_frames, window_fixes, window_start, window_end, start, config
        )
        windows.append(summary)
        vehicle_inputs.append(vehicle_input)
        window_start += step

    # 3. 차량 hysteresis
    for window, detection in zip(windows, apply_vehicle_hysteresis(vehicle_inputs, config)):
        window.in_vehicle = detection

    # 4. 상태 smoothing -> 세그먼트
    decisions = apply_state_smoothing(windows, config)
    segments = build_segments(windows, decisions, config)
    display_segments = build_display_segments(segments, config.smoothing.unknown_bridge_sec)
    events = [w.event for w in windows if w.event is not None]

    logger.debug(
        f"windowing: {len(ordered)} frames -> {len(windows)} windows, "
        f"{len(segments)} segments, {len(events)} events"
    )

    return WindowingResult(
        window_size_ms=size_ms,
        step_ms=step,
        windows=windows,
        segments=segments,
        display_segments=display_segments,
        events=events,
    )


def _summarize_window(
    window_frames: Sequence[Frame],
    window_fixes: Sequence[GpsFix],
    window_start: int,
    window_end: int,
    session_start: int,
    config: AnalysisConfig,
):
    features = extract_features(window_frames, config)
    metrics = features.metrics

    imu = WindowImuStats(samples_count=len(window_frames), **metrics.model_dump())
    gps = compute_window_gps_stats(window_fixes, window_end - window_start, config)

    event = None
    motion = None
    if window_frames:
        event = detect_window_event(
            window_frames, features.accel_mags, session_start, metrics.jerk_rms, window_fixes, config
        )
        motion = classify_motion(metrics, len(window_frames), config)

    summary = WindowSummary(
        t_start_sec=round((window_start - session_start) / 1000.0, 1),
        t_end_sec=round((window_end - session_start) / 1000.0, 1),
        duration_ms=window_end - window_start,
        imu=imu,
        gps=gps,
        classification=classify_window_state(imu, gps, event, config),
        motion=motion,
        event=event,
        flags=window_flags(features.flags, imu, gps, config),
    )

    if window_frames:
        vehicle_imu = VehicleImuInput(
            accel_rms=metrics.accel_rms, jerk_rms=metrics.jerk_rms, gyro_rms=metrics.gyro_rms
        )
    else:
        vehicle_imu = VehicleImuInput()
    vehicle_input = VehicleWindowInput(
        imu=vehicle_imu,
        gps=VehicleGpsInput(
            samples_count=gps.samples_count,
            observed_hz=gps.observed_hz,
            accuracy_p95_m=gps.accuracy_p95_m,
            speed_median=gps.speed_median,
        ),
        motion_state=motion.state if motion is not None else None,
    )
    return summary, vehicle_input
