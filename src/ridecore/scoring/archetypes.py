"""
Archetype scorers (STATIC / WALKING / MOVING).
"""

from typing import List

from src.ridecore.core import MotionState
from src.ridecore.thresholds import MotionScoringConfig

from .base import ArchetypeScorer, score_band, score_high, score_low


class StaticScorer(ArchetypeScorer):
    """낮을수록 정지 상태에 가까움"""

    state = MotionState.STATIC

    def score_signal(self, name: str, value: float) -> float:
        band = getattr(self.table, name)
        return score_low(value, band.good_max, band.bad_max)


class WalkingScorer(ArchetypeScorer):
    """높은 jerk / gyro 는 보행 특성"""

    state = MotionState.WALKING

    def score_signal(self, name: str, value: float) -> float:
        band = getattr(self.table, name)
        return score_high(value, band.bad_min, band.good_min)


class MovingScorer(ArchetypeScorer):
    """차량 같은 이동: 너무 조용하지도, 너무 거칠지도 않은 대역"""

    state = MotionState.MOVING

    def score_signal(self, name: str, value: float) -> float:
        band = getattr(self.table, name)
        return score_band(value, band.low_bad, band.low_good, band.high_good, band.high_bad)


def build_scorers(scoring: MotionScoringConfig) -> List[ArchetypeScorer]:
    # 순서 = 동점일 때 우선순위
    return [
        StaticScorer(scoring.static),
        WalkingScorer(scoring.walking),
        MovingScorer(scoring.moving),
    ]
