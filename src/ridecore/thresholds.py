"""
Analysis threshold tables.

모든 임계값을 이름 있는 불변(frozen) 섹션으로 묶은 설정 객체입니다.
컴포넌트는 전역 변수를 읽지 않고 config 를 명시적으로 전달받습니다.
"""

from pydantic import BaseModel, ConfigDict, Field


class _Section(BaseModel):
    model_config = ConfigDict(frozen=True)


class WindowingConfig(_Section):
    size_ms: int = 5000
    step_ms: int = 5000
    min_imu_samples: int = 120
    min_gps_samples: int = 2


class GpsConfig(_Section):
    min_hz: float = 0.2
    max_accuracy_p95_m: float = 25.0
    moving_speed_mps: float = 4.0
    slow_speed_mps: float = 1.5
    static_speed_mps: float = 0.5
    # 200ms 미만 / 60s 초과 간격은 이상치로 버림
    min_interval_ms: int = 200
    max_interval_ms: int = 60000


class ImuConfig(_Section):
    static_accel_rms_max: float = 0.25
    static_jerk_rms_max: float = 6.0
    static_gyro_rms_max: float = 2.5
    moving_accel_rms_min: float = 0.3
    moving_jerk_rms_min: float = 3.5
    walking_veto_jerk_rms: float = 15.0
    walking_veto_gyro_rms: float = 5.0
    # 이보다 적은 샘플로 계산된 지표는 CORE_METRICS_INCOMPLETE
    min_core_samples: int = 20


class LowBand(_Section):
    """낮을수록 좋음: good_max 이하 1, bad_max 이상 0"""

    good_max: float
    bad_max: float


class HighBand(_Section):
    """높을수록 좋음: bad_min 이하 0, good_min 이상 1"""

    bad_min: float
    good_min: float


class TrapezoidBand(_Section):
    low_bad: float
    low_good: float
    high_good: float
    high_bad: float


class StaticScoring(_Section):
    accel_rms: LowBand = LowBand(good_max=0.2, bad_max=0.6)
    jerk_rms: LowBand = LowBand(good_max=5.0, bad_max=12.0)
    gyro_rms: LowBand = LowBand(good_max=2.0, bad_max=6.0)


class WalkingScoring(_Section):
    accel_rms: HighBand = HighBand(bad_min=0.3, good_min=1.0)
    jerk_rms: HighBand = HighBand(bad_min=5.0, good_min=15.0)
    gyro_rms: HighBand = HighBand(bad_min=2.0, good_min=5.0)


class MovingScoring(_Section):
    accel_rms: TrapezoidBand = TrapezoidBand(
        low_bad=0.15, low_good=0.3, high_good=0.8, high_bad=1.5
    )
    jerk_rms: TrapezoidBand = TrapezoidBand(
        low_bad=1.0, low_good=2.5, high_good=8.0, high_bad=15.0
    )
    gyro_rms: TrapezoidBand = TrapezoidBand(
        low_bad=0.5, low_good=1.5, high_good=4.0, high_bad=6.0
    )


class MotionScoringConfig(_Section):
    static: StaticScoring = StaticScoring()
    walking: WalkingScoring = WalkingScoring()
    moving: MovingScoring = MovingScoring()
    min_top_score: float = 0.35
    min_confidence: float = 0.1


class EventConfig(_Section):
    peak_acc_min: float = 2.5
    energy_index_min: float = 2.0
    jerk_rms_min: float = 18.0
    accel_mad_multiplier: float = 3.5
    # 고정 하한: MAD 가 0 에 가까운 조용한 신호에서 임계값이 노이즈 바닥으로 내려가는 것을 막음
    accel_min_delta: float = 1.8
    stream_min_delta: float = 2.5
    group_gap_ms: int = 1500
    gps_max_age_ms: int = 5000
    gps_search_radius: int = 20


class MinSegmentSec(_Section):
    moving: float = 10.0
    static: float = 10.0


class SmoothingConfig(_Section):
    hysteresis_windows: int = 2
    min_segment_sec: MinSegmentSec = MinSegmentSec()
    event_max_sec: float = 10.0
    unknown_bridge_sec: float = 20.0
    pending_confidence_factor: float = 0.6
    demoted_confidence_cap: float = 0.3


class VehicleConfig(_Section):
    enter_speed_mps: float = 3.0
    exit_speed_mps: float = 0.5
    min_consecutive_windows: int = 2


class EngineConfig(_Section):
    expected_imu_hz: float = 50.0
    min_frames: int = 120
    gps_low_rate_hz: float = 0.5
    jitter_high_ms: float = 5.0
    low_rate_ratio: float = 0.75


class AnalysisConfig(_Section):
    windowing: WindowingConfig = Field(default_factory=WindowingConfig)
    gps: GpsConfig = Field(default_factory=GpsConfig)
    imu: ImuConfig = Field(default_factory=ImuConfig)
    motion_scoring: MotionScoringConfig = Field(default_factory=MotionScoringConfig)
    event: EventConfig = Field(default_factory=EventConfig)
    smoothing: SmoothingConfig = Field(default_factory=SmoothingConfig)
    vehicle: VehicleConfig = Field(default_factory=VehicleConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)

    def with_overrides(self, **sections: dict) -> "AnalysisConfig":
        """
        섹션 단위 부분 수정본을 만듭니다.

        >>> cfg = DEFAULT_CONFIG.with_overrides(gps={"min_hz": 0.5})
        """
        update = {}
        for name, values in sections.items():
            current = getattr(self, name)
            update[name] = current.model_copy(update=values)
        return self.model_copy(update=update)


DEFAULT_CONFIG = AnalysisConfig()
