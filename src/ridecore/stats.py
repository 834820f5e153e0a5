"""
Primitive robust statistics used across the ride core.

모든 함수는 정렬된(오름차순) 입력을 가정합니다 (rms / stream_stats 제외).
빈 입력은 예외 대신 None 또는 0 을 반환합니다.
"""

import math
from typing import Optional, Sequence

import numpy as np
from scipy.stats import median_abs_deviation

from src.ridecore.core import StreamStats


def median(sorted_values: Sequence[float]) -> Optional[float]:
    """짝수 길이는 가운데 두 값의 평균. 빈 입력은 None."""
    if len(sorted_values) == 0:
        return None
    return float(np.median(np.asarray(sorted_values, dtype=float)))


def percentile(sorted_values: Sequence[float], p: float) -> Optional[float]:
    """
    Nearest-rank percentile: index = ceil((n - 1) * p).

    median() 과 달리 보간하지 않으므로 짝수 길이에서 percentile(x, 0.5) != median(x) 일 수 있습니다.
    """
    n = len(sorted_values)
    if n == 0 or not math.isfinite(p):
        return None
    if p <= 0:
        return float(sorted_values[0])
    if p >= 1:
        return float(sorted_values[n - 1])
    index = math.ceil((n - 1) * p)
    return float(sorted_values[index])


def mad(sorted_values: Sequence[float]) -> float:
    """Median Absolute Deviation: median(|x_i - median(X)|), scale 보정 없음."""
    if len(sorted_values) == 0:
        return 0.0
    value = median_abs_deviation(np.asarray(sorted_values, dtype=float), scale=1.0)
    return float(value)


def rms(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    arr = np.asarray(values, dtype=float)
    return float(np.sqrt(np.mean(np.square(arr))))


def stream_stats(timestamps: Sequence[int]) -> StreamStats:
    """
    샘플 간 타이밍 통계 (observed Hz, dt median, dt P95).

    샘플이 3개 미만이거나 양의 간격이 없으면 jitter 통계는 None 입니다.
    "측정 불가" 와 "jitter 0" 을 구분하기 위함이므로 0 으로 바꾸지 마세요.
    """
    samples_count = len(timestamps)
    if samples_count < 2:
        return StreamStats(samples_count=samples_count, observed_hz=0.0)

    intervals = [
        timestamps[i] - timestamps[i - 1]
        for i in range(1, samples_count)
        if timestamps[i] - timestamps[i - 1] > 0
    ]

    if samples_count < 3 or not intervals:
        duration_s = (timestamps[-1] - timestamps[0]) / 1000.0
        observed_hz = (samples_count - 1) / duration_s if duration_s > 0 else 0.0
        return StreamStats(samples_count=samples_count, observed_hz=round(observed_hz, 2))

    intervals.sort()
    dt_median = median(intervals)
    dt_p95 = percentile(intervals, 0.95)
    observed_hz = 1000.0 / dt_median if dt_median else 0.0

    return StreamStats(
        samples_count=samples_count,
        observed_hz=round(observed_hz, 1),
        dt_median=round(dt_median, 2),
        dt_p95=round(dt_p95, 2),
    )
