"""
Core data structures for ride motion analysis.

입력(Frame) 계약과 모든 출력 레코드를 한 곳에 정의합니다.
Python 속성은 snake_case, 직렬화(wire) 이름은 camelCase 입니다.
"""

import math
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CoreModel(BaseModel):
    """camelCase alias 를 공유하는 베이스 모델"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class FrozenModel(CoreModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class CoreState(str, Enum):
    STATIC = "STATIC"
    SLOW_MOVING = "SLOW_MOVING"
    MOVING = "MOVING"
    EVENT = "EVENT"
    UNKNOWN = "UNKNOWN"


class MotionState(str, Enum):
    STATIC = "STATIC"
    WALKING = "WALKING"
    MOVING = "MOVING"
    UNKNOWN = "UNKNOWN"


class EventTrigger(str, Enum):
    PEAK = "peak"
    ENERGY = "energy"
    JERK = "jerk"

    @property
    def reason(self) -> str:
        return f"event_{self.value}"


class ScanScope(str, Enum):
    STREAM = "stream"  # 전체 스트림, 시간 간격 기준 그룹핑
    WINDOW = "window"  # 윈도우당 대표 이벤트 1개


class CoreFlag(str, Enum):
    IMU_LOW_RATE = "IMU_LOW_RATE"
    IMU_JITTER_HIGH = "IMU_JITTER_HIGH"
    LINACC_MISSING_FALLBACK_TO_ACCG = "LINACC_MISSING_FALLBACK_TO_ACCG"
    GPS_DENIED_OR_UNAVAILABLE = "GPS_DENIED_OR_UNAVAILABLE"
    GPS_LOW_RATE = "GPS_LOW_RATE"
    INSUFFICIENT_DATA = "INSUFFICIENT_DATA"
    CORE_METRICS_INCOMPLETE = "CORE_METRICS_INCOMPLETE"
    STATS_INCONSISTENT = "STATS_INCONSISTENT"
    STABLE_OR_STATIC_OBSERVED = "STABLE_OR_STATIC_OBSERVED"


# ---------------------------------------------------------------------------
# Input contracts
# ---------------------------------------------------------------------------


class Vector3(FrozenModel):
    x: float
    y: float
    z: float

    @property
    def magnitude(self) -> float:
        return math.sqrt(self.x * self.x + self.y * self.y + self.z * self.z)

    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in (self.x, self.y, self.z))


class GyroRate(FrozenModel):
    """각속도 (deg/s 또는 rad/s). 축마다 독립적으로 null 가능."""

    alpha: Optional[float] = None
    beta: Optional[float] = None
    gamma: Optional[float] = None

    @property
    def has_data(self) -> bool:
        return any(v is not None for v in (self.alpha, self.beta, self.gamma))

    @property
    def magnitude(self) -> float:
        a = self.alpha or 0.0
        b = self.beta or 0.0
        g = self.gamma or 0.0
        return math.sqrt(a * a + b * b + g * g)


class GpsFix(FrozenModel):
    lat: float
    lon: float
    accuracy: float
    speed: Optional[float] = None
    heading: Optional[float] = None
    timestamp: int


class Frame(FrozenModel):
    """
    동기화된 IMU (+ 선택적 GPS) 샘플 1개.
    timestamp / acc_g 가 유효하지 않으면 ValidationError 로 즉시 실패합니다.
    """

    timestamp: int
    acc_g: Vector3
    lin_acc: Optional[Vector3] = None
    gyro_rate: Optional[GyroRate] = None
    gps: Optional[GpsFix] = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def check_timestamp(cls, v):
        if isinstance(v, bool) or v is None:
            raise ValueError("timestamp is required")
        if isinstance(v, float):
            if not math.isfinite(v):
                raise ValueError("timestamp must be finite")
            if not v.is_integer():
                raise ValueError("timestamp must be integer epoch milliseconds")
            return int(v)
        return v

    @field_validator("acc_g")
    @classmethod
    def check_acc_g(cls, v: Vector3) -> Vector3:
        if not v.is_finite():
            raise ValueError("accG components must be finite")
        return v


class SensorCapability(FrozenModel):
    supported_by_api: bool
    supported_in_practice: bool


class CapabilitiesReport(FrozenModel):
    device_motion: SensorCapability
    gps: SensorCapability


# ---------------------------------------------------------------------------
# Feature / statistics outputs
# ---------------------------------------------------------------------------


class StreamStats(CoreModel):
    samples_count: int
    observed_hz: float
    dt_median: Optional[float] = None
    dt_p95: Optional[float] = None


class CoreMetrics(CoreModel):
    accel_rms: float = 0.0
    accel_p95: float = 0.0
    jerk_rms: float = 0.0
    jerk_p95: float = 0.0
    gyro_rms: Optional[float] = None
    gyro_p95: Optional[float] = None


class FeatureResult(CoreModel):
    metrics: CoreMetrics
    accel_mags: List[float] = Field(default_factory=list)
    jerk_mags: List[float] = Field(default_factory=list)
    flags: List[CoreFlag] = Field(default_factory=list)


class GpsContext(CoreModel):
    accuracy: Optional[float] = None
    speed: Optional[float] = None


class ImpactEvent(CoreModel):
    t_start_sec: float
    t_peak_sec: float
    t_end_sec: float
    peak_acc: float
    energy_index: float
    trigger: EventTrigger
    gps_context: Optional[GpsContext] = None

    @property
    def duration_sec(self) -> float:
        return self.t_end_sec - self.t_start_sec


# ---------------------------------------------------------------------------
# Classification outputs
# ---------------------------------------------------------------------------


class MotionClassification(CoreModel):
    state: MotionState
    confidence: float
    signals: Dict[str, float]
    debug: dict = Field(default_factory=dict)


class InVehicleDetection(CoreModel):
    value: bool
    confidence: float
    reason: str
    signals: Dict[str, Optional[float]] = Field(default_factory=dict)


class WindowClassification(CoreModel):
    state: CoreState = CoreState.UNKNOWN
    confidence: float = 0.0
    reason: str = ""
    signals: Dict[str, Optional[float]] = Field(default_factory=dict)
    debug: Dict[str, bool] = Field(default_factory=dict)


class WindowImuStats(CoreModel):
    samples_count: int
    accel_rms: float
    accel_p95: float
    jerk_rms: float
    jerk_p95: float
    gyro_rms: Optional[float] = None
    gyro_p95: Optional[float] = None


class WindowGpsStats(CoreModel):
    samples_count: int = 0
    observed_hz: float = 0.0
    accuracy_median_m: Optional[float] = None
    accuracy_p95_m: Optional[float] = None
    speed_median: Optional[float] = None


class WindowSummary(CoreModel):
    t_start_sec: float
    t_end_sec: float
    duration_ms: int
    imu: WindowImuStats
    gps: WindowGpsStats
    classification: WindowClassification
    motion: Optional[MotionClassification] = None
    in_vehicle: Optional[InVehicleDetection] = None
    event: Optional[ImpactEvent] = None
    flags: List[CoreFlag] = Field(default_factory=list)


class Segment(CoreModel):
    t_start_sec: float
    t_end_sec: float
    state: CoreState
    confidence: float
    reason: str = ""

    @property
    def duration_sec(self) -> float:
        return self.t_end_sec - self.t_start_sec


class DisplaySegment(Segment):
    was_bridged: bool = False
    bridged_duration_sec: Optional[float] = None


class WindowingResult(CoreModel):
    window_size_ms: int
    step_ms: int
    windows: List[WindowSummary] = Field(default_factory=list)
    segments: List[Segment] = Field(default_factory=list)
    display_segments: List[DisplaySegment] = Field(default_factory=list)
    events: List[ImpactEvent] = Field(default_factory=list)


class GpsStreamStats(StreamStats):
    accuracy_median_m: Optional[float] = None
    accuracy_p95_m: Optional[float] = None
    has_speed_observed: bool = False


class ImuStreamStats(StreamStats):
    accel_rms: float = 0.0
    accel_p95: float = 0.0
    jerk_rms: float = 0.0
    jerk_p95: float = 0.0
    gyro_rms: Optional[float] = None
    gyro_p95: Optional[float] = None


class AnalyzeResult(CoreModel):
    duration_ms: int
    imu: ImuStreamStats
    gps: GpsStreamStats
    flags: List[CoreFlag] = Field(default_factory=list)
    impact_events: List[ImpactEvent] = Field(default_factory=list)
