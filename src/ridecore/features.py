"""
Feature extraction engine.
Raw Frames -> acceleration magnitude / jerk series -> RMS & P95 summary metrics.
"""

from typing import List, Sequence, Tuple

import numpy as np
from loguru import logger

from src.ridecore.core import CoreFlag, CoreMetrics, FeatureResult, Frame
from src.ridecore.stats import median, percentile, rms
from src.ridecore.thresholds import DEFAULT_CONFIG, AnalysisConfig

# dt 가 이보다 작으면 중복 타임스탬프로 보고 jerk 계산에서 제외 (초)
MIN_JERK_DT_S = 0.001


class FeatureExtractor:
    """특징 추출 전용 클래스"""

    @staticmethod
    def extract(
        frames: Sequence[Frame], config: AnalysisConfig = DEFAULT_CONFIG
    ) -> FeatureResult:
        """
        프레임 목록에서 가속도 크기, jerk, 요약 지표를 계산합니다.

        입력 프레임은 변경하지 않습니다. 빈 입력은 0 지표와 INSUFFICIENT_DATA 를 반환합니다.
        """
        if len(frames) == 0:
            return FeatureResult(
                metrics=CoreMetrics(), flags=[CoreFlag.INSUFFICIENT_DATA]
            )

        flags: List[CoreFlag] = []

        # 1. 소스 선택 (linAcc vs accG)
        use_lin_acc, lin_acc_count = FeatureExtractor.select_source(frames)
        if not use_lin_acc and lin_acc_count > 0:
            logger.debug(
                f"linAcc present on {lin_acc_count}/{len(frames)} frames, falling back to accG"
            )
            flags.append(CoreFlag.LINACC_MISSING_FALLBACK_TO_ACCG)

        # 2. 프레임별 가속도 크기 (프레임과 1:1 정렬)
        accel_mags = FeatureExtractor.magnitudes(frames, use_lin_acc)

        # 3. Jerk
        timestamps = np.array([f.timestamp for f in frames], dtype=float)
        jerk_mags = FeatureExtractor.jerk_series(np.asarray(accel_mags), timestamps)

        # 4. 요약 지표 - RMS 와 P95 는 같은 정제된 배열에서 계산
        accel_clean = FeatureExtractor.sanitize(accel_mags)
        jerk_clean = FeatureExtractor.sanitize(jerk_mags)
        accel_rms, accel_p95 = FeatureExtractor.summarize(accel_clean)
        jerk_rms, jerk_p95 = FeatureExtractor.summarize(jerk_clean)

        min_samples = config.imu.min_core_samples
        if len(accel_clean) < min_samples or len(jerk_clean) < min_samples:
            flags.append(CoreFlag.CORE_METRICS_INCOMPLETE)

        metrics = CoreMetrics(
            accel_rms=round(accel_rms, 3),
            accel_p95=round(accel_p95, 3),
            jerk_rms=round(jerk_rms, 3),
            jerk_p95=round(jerk_p95, 3),
        )

        # 5. Gyro (선택) - 데이터가 하나라도 있을 때만 필드를 채움
        gyro_mags = [
            f.gyro_rate.magnitude
            for f in frames
            if f.gyro_rate is not None and f.gyro_rate.has_data
        ]
        if gyro_mags:
            gyro_rms, gyro_p95 = FeatureExtractor.summarize(
                FeatureExtractor.sanitize(gyro_mags)
            )
            metrics.gyro_rms = round(gyro_rms, 3)
            metrics.gyro_p95 = round(gyro_p95, 3)

        return FeatureResult(
            metrics=metrics,
            accel_mags=accel_mags,
            jerk_mags=jerk_mags,
            flags=flags,
        )

    @staticmethod
    def select_source(frames: Sequence[Frame]) -> Tuple[bool, int]:
        """절반 초과 프레임에 linAcc 가 있으면 linAcc 사용"""
        lin_acc_count = sum(1 for f in frames if f.lin_acc is not None)
        return lin_acc_count > len(frames) * 0.5, lin_acc_count

    @staticmethod
    def magnitudes(frames: Sequence[Frame], use_lin_acc: bool) -> List[float]:
        mags = []
        for f in frames:
            vec = f.lin_acc if (use_lin_acc and f.lin_acc is not None) else f.acc_g
            mags.append(vec.magnitude)
        return mags

    @staticmethod
    def jerk_series(accel_mags: np.ndarray, timestamps_ms: np.ndarray) -> List[float]:
        """|mag[i] - mag[i-1]| / dt, dt <= 1ms 구간은 건너뜀"""
        if len(accel_mags) < 2:
            return []
        dt_s = np.diff(timestamps_ms) / 1000.0
        d_mag = np.abs(np.diff(accel_mags))
        valid = dt_s > MIN_JERK_DT_S
        return (d_mag[valid] / dt_s[valid]).tolist()

    @staticmethod
    def sanitize(values: Sequence[float]) -> np.ndarray:
        """NaN / inf / 음수 제거 후 오름차순 정렬"""
        arr = np.asarray(values, dtype=float)
        arr = arr[np.isfinite(arr) & (arr >= 0)]
        return np.sort(arr)

    @staticmethod
    def summarize(sorted_clean: np.ndarray) -> Tuple[float, float]:
        """
        (RMS, P95). P95 는 median, RMS, 0 이상으로 clamp 합니다.
        Nearest-rank 방식은 작은 표본에서 P95 < median 이 될 수 있고,
        드문 스파이크가 섞이면 P95 < RMS 가 될 수 있습니다.
        """
        if len(sorted_clean) == 0:
            return 0.0, 0.0
        value_rms = rms(sorted_clean)
        med = median(sorted_clean) or 0.0
        p95 = percentile(sorted_clean, 0.95) or 0.0
        return value_rms, max(p95, med, value_rms, 0.0)


def extract_features(
    frames: Sequence[Frame], config: AnalysisConfig = DEFAULT_CONFIG
) -> FeatureResult:
    return FeatureExtractor.extract(frames, config)
