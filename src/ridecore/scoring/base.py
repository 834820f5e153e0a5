"""
Base interface for archetype membership scoring.
Strategy Pattern implementation.
"""

import math
from abc import ABC, abstractmethod
from typing import Dict, Optional

from src.ridecore.core import MotionState

SIGNAL_NAMES = ("accel_rms", "jerk_rms", "gyro_rms")


def clamp01(value: float) -> float:
    return min(1.0, max(0.0, value))


def score_low(value: float, good_max: float, bad_max: float) -> float:
    if value <= good_max:
        return 1.0
    if value >= bad_max:
        return 0.0
    return 1.0 - (value - good_max) / (bad_max - good_max)


def score_high(value: float, bad_min: float, good_min: float) -> float:
    if value <= bad_min:
        return 0.0
    if value >= good_min:
        return 1.0
    return (value - bad_min) / (good_min - bad_min)


def score_band(
    value: float, low_bad: float, low_good: float, high_good: float, high_bad: float
) -> float:
    """사다리꼴 membership: low_good ~ high_good 구간에서 1"""
    return min(score_high(value, low_bad, low_good), score_low(value, high_good, high_bad))


def finite_or_none(value: Optional[float]) -> Optional[float]:
    if value is None or not math.isfinite(value):
        return None
    return value


class ArchetypeScorer(ABC):
    """모든 archetype 점수기의 부모 클래스"""

    state: MotionState

    def __init__(self, table):
        self.table = table

    @abstractmethod
    def score_signal(self, name: str, value: float) -> float:
        """신호 하나의 membership 점수 (0~1)"""
        pass

    def score(self, signals: Dict[str, Optional[float]]) -> float:
        """
        사용 가능한(finite) 신호 점수의 산술 평균.
        없는 신호는 0 이 아니라 평균에서 제외합니다.
        """
        scores = []
        for name in SIGNAL_NAMES:
            value = finite_or_none(signals.get(name))
            if value is not None:
                scores.append(self.score_signal(name, value))
        if not scores:
            return 0.0
        return clamp01(sum(scores) / len(scores))
