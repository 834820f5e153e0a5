"""
In-vehicle detection with cross-window hysteresis.

단일 윈도우의 GPS 속도 스파이크로 상태가 깜빡이지 않도록,
진입 조건이 연속 N 개 윈도우 동안 유지되어야 차량 상태로 전환합니다.
GPS 를 쓸 수 없는 윈도우에서는 추측하지 않고 직전 차량 상태를 유지합니다.
"""

import math
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence, Tuple

from loguru import logger

from src.ridecore.core import CoreModel, InVehicleDetection, MotionState
from src.ridecore.scoring.base import SIGNAL_NAMES, clamp01, finite_or_none, score_band
from src.ridecore.thresholds import DEFAULT_CONFIG, AnalysisConfig


class VehicleImuInput(CoreModel):
    accel_rms: Optional[float] = None
    jerk_rms: Optional[float] = None
    gyro_rms: Optional[float] = None


class VehicleGpsInput(CoreModel):
    samples_count: int = 0
    observed_hz: float = 0.0
    accuracy_p95_m: Optional[float] = None
    speed_median: Optional[float] = None


class VehicleWindowInput(CoreModel):
    imu: VehicleImuInput
    gps: VehicleGpsInput = VehicleGpsInput()
    motion_state: Optional[MotionState] = None


@dataclass(frozen=True)
class VehicleHysteresisState:
    in_vehicle: bool = False
    on_count: int = 0
    off_count: int = 0


def gps_quality_ok(
    samples_count: int,
    observed_hz: float,
    accuracy_p95_m: Optional[float],
    config: AnalysisConfig = DEFAULT_CONFIG,
) -> bool:
    """샘플 수, 수신 주기, 정확도 P95 가 모두 기준 이내인지"""
    accuracy_ok = accuracy_p95_m is None or accuracy_p95_m <= config.gps.max_accuracy_p95_m
    return (
        samples_count >= config.windowing.min_gps_samples
        and observed_hz >= config.gps.min_hz
        and accuracy_ok
    )


def is_gps_usable_for_vehicle(gps: VehicleGpsInput, config: AnalysisConfig = DEFAULT_CONFIG) -> bool:
    if gps.speed_median is None or not math.isfinite(gps.speed_median):
        return False
    return gps_quality_ok(gps.samples_count, gps.observed_hz, gps.accuracy_p95_m, config)


def imu_signals(imu: VehicleImuInput) -> Dict[str, Optional[float]]:
    return {name: finite_or_none(getattr(imu, name)) for name in SIGNAL_NAMES}


def is_imu_walking_veto(imu: VehicleImuInput, config: AnalysisConfig = DEFAULT_CONFIG) -> bool:
    signals = imu_signals(imu)
    jerk, gyro = signals["jerk_rms"], signals["gyro_rms"]
    return (jerk is not None and jerk >= config.imu.walking_veto_jerk_rms) or (
        gyro is not None and gyro >= config.imu.walking_veto_gyro_rms
    )


def is_imu_in_vehicle_band(imu: VehicleImuInput, config: AnalysisConfig = DEFAULT_CONFIG) -> bool:
    """사용 가능한 모든 IMU 신호가 moving 대역 안쪽(membership > 0)에 있는지"""
    bands = config.motion_scoring.moving
    available = [(name, value) for name, value in imu_signals(imu).items() if value is not None]
    if not available:
        return False
    for name, value in available:
        band = getattr(bands, name)
        if score_band(value, band.low_bad, band.low_good, band.high_good, band.high_bad) <= 0:
            return False
    return True


def _outside_band_distance(value: float, low: float, high: float) -> float:
    if value < low:
        return clamp01((low - value) / low) if low > 0 else 0.0
    if value > high:
        return clamp01((value - high) / high) if high > 0 else 0.0
    return 0.0


def non_vehicle_confidence(
    imu: VehicleImuInput,
    motion_state: Optional[MotionState],
    config: AnalysisConfig = DEFAULT_CONFIG,
) -> float:
    """
    moving 대역의 [low_good, high_good] 바깥으로 얼마나 벗어났는지에 따라 0.5~1.0.
    모션 분류가 STATIC 이면 최소 0.9.
    """
    bands = config.motion_scoring.moving
    distances = []
    for name, value in imu_signals(imu).items():
        if value is None:
            continue
        band = getattr(bands, name)
        distances.append(_outside_band_distance(value, band.low_good, band.high_good))
    distance = sum(distances) / len(distances) if distances else 0.0
    confidence = 0.5 + 0.5 * math.sqrt(clamp01(distance))
    if motion_state == MotionState.STATIC:
        confidence = max(confidence, 0.9)
    return round(confidence, 3)


def _build_signals(window: VehicleWindowInput) -> Dict[str, Optional[float]]:
    signals = {name: (value if value is not None else 0.0) for name, value in imu_signals(window.imu).items()}
    signals.update(
        {
            "gps_speed_median": window.gps.speed_median,
            "gps_hz": window.gps.observed_hz,
            "gps_accuracy_p95_m": window.gps.accuracy_p95_m,
        }
    )
    return signals


def step_vehicle(
    state: VehicleHysteresisState,
    window: VehicleWindowInput,
    config: AnalysisConfig = DEFAULT_CONFIG,
) -> Tuple[VehicleHysteresisState, InVehicleDetection]:
    """윈도우 하나에 대한 상태 전이. (새 상태, 판정) 을 반환합니다."""
    signals = _build_signals(window)
    required = config.vehicle.min_consecutive_windows

    if all(value is None for value in imu_signals(window.imu).values()):
        return replace(state, on_count=0), InVehicleDetection(
            value=False, confidence=0.0, reason="imu_missing", signals=signals
        )

    gps_usable = is_gps_usable_for_vehicle(window.gps, config)

    if not state.in_vehicle:
        walking_veto = is_imu_walking_veto(window.imu, config)
        gps_on = gps_usable and window.gps.speed_median >= config.vehicle.enter_speed_mps
        imu_on = (not gps_usable) and (not walking_veto) and is_imu_in_vehicle_band(window.imu, config)
        on_count = state.on_count + 1 if (gps_on or imu_on) else 0

        if on_count >= required:
            reason = "gps_speed_hysteresis_on" if gps_on else "imu_band_hysteresis_on"
            logger.debug(f"entering vehicle state ({reason})")
            new_state = VehicleHysteresisState(in_vehicle=True)
            return new_state, InVehicleDetection(
                value=True, confidence=0.95, reason=reason, signals=signals
            )

        new_state = replace(state, on_count=on_count)
        if on_count > 0:
            return new_state, InVehicleDetection(
                value=False, confidence=0.5, reason="hysteresis_pending", signals=signals
            )

        if not gps_usable and walking_veto:
            reason = "imu_walking_veto"
        elif gps_usable:
            reason = "gps_speed_below_threshold"
        else:
            reason = "imu_out_of_band"
        return new_state, InVehicleDetection(
            value=False,
            confidence=non_vehicle_confidence(window.imu, window.motion_state, config),
            reason=reason,
            signals=signals,
        )

    # 차량 상태 유지 중: GPS 로 확인된 정지/저속만 이탈 근거로 인정
    gps_off = gps_usable and window.gps.speed_median <= config.vehicle.exit_speed_mps
    off_count = state.off_count + 1 if gps_off else 0

    if off_count >= required:
        logger.debug("leaving vehicle state (gps_speed_hysteresis_off)")
        return VehicleHysteresisState(in_vehicle=False), InVehicleDetection(
            value=False, confidence=0.85, reason="gps_speed_hysteresis_off", signals=signals
        )

    new_state = replace(state, off_count=off_count)
    if gps_usable:
        return new_state, InVehicleDetection(
            value=True, confidence=0.9, reason="hysteresis_hold", signals=signals
        )
    return new_state, InVehicleDetection(
        value=True, confidence=0.75, reason="gps_unusable_hold", signals=signals
    )


def apply_vehicle_hysteresis(
    windows: Sequence[VehicleWindowInput], config: AnalysisConfig = DEFAULT_CONFIG
) -> List[InVehicleDetection]:
    """입력과 같은 순서, 같은 길이의 판정 목록"""
    state = VehicleHysteresisState()
    detections = []
    for window in windows:
        state, detection = step_vehicle(state, window, config)
        detections.append(detection)
    return detections
