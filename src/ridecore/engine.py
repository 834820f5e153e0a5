"""
Single-pass analysis engine.

ingest(frame)* -> set_capabilities(report)? -> finalize() -> reset()
윈도우 없이 버퍼 전체에 대해 AnalyzeResult 하나를 만듭니다.
"""

import math
from typing import List, Optional, Sequence

from loguru import logger
from pydantic import Field

from src.ridecore.core import (
    AnalyzeResult,
    CapabilitiesReport,
    CoreFlag,
    CoreModel,
    Frame,
    GpsFix,
    GpsStreamStats,
    ImuStreamStats,
)
from src.ridecore.events import detect_impacts
from src.ridecore.features import extract_features
from src.ridecore.stats import median, percentile, stream_stats
from src.ridecore.thresholds import DEFAULT_CONFIG, AnalysisConfig
from src.ridecore.windowing import unique_gps_fixes


class AnalyzeOptions(CoreModel):
    expected_imu_hz: float = 50.0
    gps_max_age_ms: int = 5000
    # stream scope 이벤트 그룹 간격 (ms)
    event_window_ms: int = 1500
    # stream scope 고정 임계 하한. None 이면 config.event.stream_min_delta
    impact_threshold: Optional[float] = Field(default=None, gt=0)


def compute_gps_stream_stats(
    fixes: Sequence[GpsFix], duration_ms: int, config: AnalysisConfig = DEFAULT_CONFIG
) -> GpsStreamStats:
    """
    세션 전체 GPS 통계. fixes 는 timestamp 기준 중복 제거 + 정렬된 상태여야 합니다.
    200ms 미만 / 60s 초과 간격은 버리고, 남는 간격이 없으면 (n-1)/duration 으로 추정합니다.
    """
    samples_count = len(fixes)
    intervals = sorted(
        dt
        for dt in (fixes[i].timestamp - fixes[i - 1].timestamp for i in range(1, samples_count))
        if config.gps.min_interval_ms <= dt <= config.gps.max_interval_ms
    )

    dt_median = dt_p95 = None
    observed_hz = 0.0
    if intervals:
        dt_median = median(intervals)
        dt_p95 = percentile(intervals, 0.95)
        observed_hz = 1000.0 / dt_median if dt_median else 0.0
    elif duration_ms > 0 and samples_count > 1:
        observed_hz = (samples_count - 1) / (duration_ms / 1000.0)

    accuracies = sorted(f.accuracy for f in fixes if math.isfinite(f.accuracy))
    return GpsStreamStats(
        samples_count=samples_count,
        observed_hz=round(observed_hz, 2),
        dt_median=round(dt_median, 2) if dt_median else None,
        dt_p95=round(dt_p95, 2) if dt_p95 else None,
        accuracy_median_m=median(accuracies),
        accuracy_p95_m=percentile(accuracies, 0.95),
        has_speed_observed=any(f.speed is not None for f in fixes),
    )


class RideCoreEngine:
    """버퍼링 엔진. finalize() 는 버퍼를 비우지 않으므로 여러 번 호출할 수 있습니다."""

    def __init__(
        self,
        options: Optional[AnalyzeOptions] = None,
        config: AnalysisConfig = DEFAULT_CONFIG,
    ):
        self.options = options or AnalyzeOptions(
            expected_imu_hz=config.engine.expected_imu_hz,
            gps_max_age_ms=config.event.gps_max_age_ms,
            event_window_ms=config.event.group_gap_ms,
        )
        self.config = config
        self.frames: List[Frame] = []
        self.capabilities: Optional[CapabilitiesReport] = None

    def ingest(self, frame: Frame) -> None:
        self.frames.append(frame)

    def set_capabilities(self, report: CapabilitiesReport) -> None:
        self.capabilities = report

    def finalize(self) -> AnalyzeResult:
        cfg = self.config.engine
        frames = sorted(self.frames, key=lambda f: f.timestamp)
        frames_count = len(frames)
        if frames_count == 0:
            logger.warning("finalize() called with no ingested frames")

        flags: List[CoreFlag] = []

        # 1. 특징 추출
        features = extract_features(frames, self.config)
        flags.extend(features.flags)

        # 2. IMU 스트림 통계
        imu_timing = stream_stats([f.timestamp for f in frames])
        duration_ms = frames[-1].timestamp - frames[0].timestamp if frames_count > 1 else 0

        # 3. GPS 스트림 통계 (fix 자체의 timestamp 기준, forward-fill 된 중복 제거)
        gps = compute_gps_stream_stats(unique_gps_fixes(frames), duration_ms, self.config)

        # 4. 플래그
        if imu_timing.observed_hz < self.options.expected_imu_hz * cfg.low_rate_ratio:
            flags.append(CoreFlag.IMU_LOW_RATE)
        if (
            imu_timing.dt_median is not None
            and imu_timing.dt_p95 is not None
            and imu_timing.dt_p95 - imu_timing.dt_median > cfg.jitter_high_ms
        ):
            flags.append(CoreFlag.IMU_JITTER_HIGH)

        gps_denied = (
            self.capabilities is not None and not self.capabilities.gps.supported_in_practice
        )
        if gps_denied or gps.samples_count == 0:
            flags.append(CoreFlag.GPS_DENIED_OR_UNAVAILABLE)
        elif gps.observed_hz < cfg.gps_low_rate_hz:
            flags.append(CoreFlag.GPS_LOW_RATE)

        if frames_count < cfg.min_frames:
            flags.append(CoreFlag.INSUFFICIENT_DATA)

        metrics = features.metrics
        if (
            frames_count > 0
            and metrics.accel_rms <= self.config.imu.static_accel_rms_max
            and metrics.jerk_rms <= self.config.imu.static_jerk_rms_max
        ):
            flags.append(CoreFlag.STABLE_OR_STATIC_OBSERVED)

        # 5. 충격 이벤트 (stream scope)
        impact_events = []
        if frames_count > 0:
            impact_events = detect_impacts(
                frames,
                features.accel_mags,
                frames[0].timestamp,
                config=self.config,
                min_delta=self.options.impact_threshold,
                group_gap_ms=self.options.event_window_ms,
                gps_max_age_ms=self.options.gps_max_age_ms,
            )

        logger.debug(
            f"finalize: {frames_count} frames, {gps.samples_count} gps fixes, "
            f"{len(impact_events)} impact events"
        )

        return AnalyzeResult(
            duration_ms=duration_ms,
            imu=ImuStreamStats(**imu_timing.model_dump(), **metrics.model_dump()),
            gps=gps,
            flags=list(dict.fromkeys(flags)),
            impact_events=impact_events,
        )

    def reset(self) -> None:
        self.frames = []
        self.capabilities = None


def create_engine(
    options: Optional[AnalyzeOptions] = None, config: AnalysisConfig = DEFAULT_CONFIG
) -> RideCoreEngine:
    return RideCoreEngine(options, config)
