"""
Impact (shock) event detection.

Robust baseline (median) + MAD 기반 임계값으로 짧고 강한 가속 버스트를 찾습니다.
하나의 알고리즘을 scan scope 로 매개변수화합니다:
  - STREAM: 전체 스트림을 훑어 시간 간격 기준으로 여러 이벤트를 그룹핑
  - WINDOW: 윈도우 하나에서 대표 이벤트를 최대 1개 반환
"""

import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
from loguru import logger

from src.ridecore.core import EventTrigger, Frame, GpsContext, GpsFix, ImpactEvent, ScanScope
from src.ridecore.stats import mad, median
from src.ridecore.thresholds import DEFAULT_CONFIG, AnalysisConfig


@dataclass
class Burst:
    start: int
    peak: int
    end: int


def robust_threshold(
    accel_mags: Sequence[float], min_delta: float, mad_multiplier: float
) -> Tuple[float, float]:
    """
    (baseline, threshold). threshold = median + max(min_delta, MAD * k).
    비정상 값(NaN, 음수)은 기준선 계산에서 제외합니다.
    """
    arr = np.asarray(accel_mags, dtype=float)
    clean = np.sort(arr[np.isfinite(arr) & (arr >= 0)])
    baseline = median(clean) or 0.0
    spread = mad(clean)
    return baseline, baseline + max(min_delta, spread * mad_multiplier)


def energy_index(peak_acc: float, baseline: float, duration_ms: float) -> float:
    """(peak - baseline) * ln(1 + duration_ms)"""
    return max(0.0, peak_acc - baseline) * math.log1p(max(0.0, duration_ms))


def select_trigger(
    peak_acc: float,
    energy: float,
    jerk_rms: Optional[float],
    config: AnalysisConfig = DEFAULT_CONFIG,
) -> Optional[EventTrigger]:
    """우선순위: peak > energy > jerk (jerk 는 윈도우 scope 에서만 전달됨)"""
    cfg = config.event
    if peak_acc >= cfg.peak_acc_min:
        return EventTrigger.PEAK
    if energy >= cfg.energy_index_min:
        return EventTrigger.ENERGY
    if jerk_rms is not None and jerk_rms >= cfg.jerk_rms_min:
        return EventTrigger.JERK
    return None


def nearest_gps_context(
    fixes: Sequence[GpsFix], t_peak_ms: int, max_age_ms: int
) -> Optional[GpsContext]:
    best = None
    best_age = None
    for fix in fixes:
        age = abs(fix.timestamp - t_peak_ms)
        if age < max_age_ms and (best_age is None or age < best_age):
            best, best_age = fix, age
    if best is None:
        return None
    return GpsContext(accuracy=best.accuracy, speed=best.speed)


def _stream_bursts(
    timestamps: Sequence[int], mags: np.ndarray, threshold: float, gap_ms: int
) -> List[Burst]:
    """임계값 초과 샘플을 마지막 초과 시점으로부터의 시간 간격으로 그룹핑"""
    bursts: List[Burst] = []
    current: Optional[Burst] = None
    for i, value in enumerate(mags):
        if current is not None and timestamps[i] - timestamps[current.end] > gap_ms:
            bursts.append(current)
            current = None
        if value > threshold:
            if current is None:
                current = Burst(start=i, peak=i, end=i)
            else:
                if value > mags[current.peak]:
                    current.peak = i
                current.end = i
    if current is not None:
        bursts.append(current)
    return bursts


def _window_burst(mags: np.ndarray, threshold: float) -> Optional[Burst]:
    """윈도우 전체의 최대값을 peak 로, 첫/마지막 초과 샘플을 시작/끝으로. 초과 샘플이 없으면 None"""
    above = np.flatnonzero(mags > threshold)
    if len(above) == 0:
        return None
    peak = int(np.argmax(np.where(np.isfinite(mags), mags, -np.inf)))
    return Burst(start=int(above[0]), peak=peak, end=int(above[-1]))


def detect_impacts(
    frames: Sequence[Frame],
    accel_mags: Sequence[float],
    session_start_ms: int,
    scope: ScanScope = ScanScope.STREAM,
    config: AnalysisConfig = DEFAULT_CONFIG,
    *,
    min_delta: Optional[float] = None,
    group_gap_ms: Optional[int] = None,
    gps_max_age_ms: Optional[int] = None,
    jerk_rms: Optional[float] = None,
    gps_fixes: Optional[Sequence[GpsFix]] = None,
) -> List[ImpactEvent]:
    """
    frames 와 accel_mags 는 1:1 로 정렬되어 있어야 합니다 (timestamp 오름차순).

    :param scope: STREAM 은 여러 이벤트, WINDOW 는 최대 1개
    :param jerk_rms: WINDOW scope 의 jerk trigger 용 윈도우 jerk RMS
    :param gps_fixes: WINDOW scope 에서 GPS 문맥 검색 대상. 없으면 peak 주변 프레임에서 검색
    """
    if len(frames) == 0 or len(accel_mags) == 0:
        return []

    cfg = config.event
    if min_delta is None:
        min_delta = cfg.stream_min_delta if scope == ScanScope.STREAM else cfg.accel_min_delta
    gap_ms = group_gap_ms if group_gap_ms is not None else cfg.group_gap_ms
    max_age_ms = gps_max_age_ms if gps_max_age_ms is not None else cfg.gps_max_age_ms

    mags = np.asarray(accel_mags, dtype=float)
    timestamps = [f.timestamp for f in frames]

    # 1. Robust baseline
    baseline, threshold = robust_threshold(mags, min_delta, cfg.accel_mad_multiplier)

    # 2. 버스트 탐색
    if scope == ScanScope.STREAM:
        bursts = _stream_bursts(timestamps, mags, threshold, gap_ms)
        window_jerk = None
    else:
        burst = _window_burst(mags, threshold)
        bursts = [burst] if burst is not None else []
        window_jerk = jerk_rms

    # 3. 후보 판정 + 이벤트 생성
    events: List[ImpactEvent] = []
    for burst in bursts:
        peak_acc = float(mags[burst.peak])
        duration_ms = timestamps[burst.end] - timestamps[burst.start]
        energy = energy_index(peak_acc, baseline, duration_ms)
        trigger = select_trigger(peak_acc, energy, window_jerk, config)
        if trigger is None:
            continue

        t_peak_ms = timestamps[burst.peak]
        if gps_fixes is None:
            radius = cfg.gps_search_radius
            lo, hi = max(0, burst.peak - radius), min(len(frames), burst.peak + radius)
            candidates = [f.gps for f in frames[lo:hi] if f.gps is not None]
        else:
            candidates = gps_fixes

        events.append(
            ImpactEvent(
                t_start_sec=round((timestamps[burst.start] - session_start_ms) / 1000.0, 3),
                t_peak_sec=round((t_peak_ms - session_start_ms) / 1000.0, 3),
                t_end_sec=round((timestamps[burst.end] - session_start_ms) / 1000.0, 3),
                peak_acc=round(peak_acc, 2),
                energy_index=round(energy, 2),
                trigger=trigger,
                gps_context=nearest_gps_context(candidates, t_peak_ms, max_age_ms),
            )
        )

    if events:
        logger.debug(
            f"{scope.value} scan: {len(events)} impact event(s), "
            f"baseline={baseline:.3f} threshold={threshold:.3f}"
        )
    return events


def detect_window_event(
    frames: Sequence[Frame],
    accel_mags: Sequence[float],
    session_start_ms: int,
    jerk_rms: float,
    gps_fixes: Sequence[GpsFix],
    config: AnalysisConfig = DEFAULT_CONFIG,
) -> Optional[ImpactEvent]:
    events = detect_impacts(
        frames,
        accel_mags,
        session_start_ms,
        ScanScope.WINDOW,
        config,
        jerk_rms=jerk_rms,
        gps_fixes=gps_fixes,
    )
    return events[0] if events else None
