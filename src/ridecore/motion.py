"""
Multi-signal fuzzy motion classifier.

각 archetype (STATIC / WALKING / MOVING) 에 대해 신호별 membership 점수를 평균하고,
1위와 2위의 점수 차(separation)로 신뢰도를 계산합니다. 상태를 갖지 않는 순수 함수입니다.
"""

from typing import Dict, Optional

from src.ridecore.core import CoreMetrics, MotionClassification, MotionState
from src.ridecore.scoring.archetypes import build_scorers
from src.ridecore.scoring.base import SIGNAL_NAMES, clamp01, finite_or_none
from src.ridecore.thresholds import DEFAULT_CONFIG, AnalysisConfig

SMALL_SAMPLE_FRAMES = 10
SMALL_SAMPLE_FACTOR = 0.6
FALLBACK_SCALE = 0.6


def metric_signals(metrics: CoreMetrics) -> Dict[str, Optional[float]]:
    return {
        "accel_rms": finite_or_none(metrics.accel_rms),
        "jerk_rms": finite_or_none(metrics.jerk_rms),
        "gyro_rms": finite_or_none(metrics.gyro_rms),
    }


def classify_motion(
    metrics: CoreMetrics, frame_count: int, config: AnalysisConfig = DEFAULT_CONFIG
) -> MotionClassification:
    scoring = config.motion_scoring
    signals = metric_signals(metrics)
    available = sum(1 for name in SIGNAL_NAMES if signals[name] is not None)
    reported = {name: (value if value is not None else 0.0) for name, value in signals.items()}
    thresholds = scoring.model_dump()

    if available == 0:
        return MotionClassification(
            state=MotionState.UNKNOWN,
            confidence=0.0,
            signals=reported,
            debug={
                "rule": MotionState.UNKNOWN.value,
                "scores": {"static": 0.0, "walking": 0.0, "moving": 0.0},
                "thresholds": thresholds,
            },
        )

    # 1. archetype 별 점수
    scorers = build_scorers(scoring)
    scores = {scorer.state: scorer.score(signals) for scorer in scorers}

    # 2. 1위 / 2위 (sorted 는 stable 이므로 동점이면 정의 순서 유지)
    ranked = sorted(scores.items(), key=lambda item: item[1], reverse=True)
    top_state, top_score = ranked[0]
    runner_up_score = ranked[1][1]

    # 3. 신뢰도
    separation = clamp01(top_score - runner_up_score)
    availability_factor = 0.6 + 0.4 * (available / len(SIGNAL_NAMES))
    sample_factor = SMALL_SAMPLE_FACTOR if frame_count < SMALL_SAMPLE_FRAMES else 1.0
    confidence = clamp01(separation * availability_factor * sample_factor)
    if round(separation, 3) == 0 and top_score > 0:
        # 동점(separation 0)이지만 우세한 archetype 이 0 신뢰도로 묻히지 않도록
        confidence = clamp01(top_score * FALLBACK_SCALE * availability_factor * sample_factor)

    accepted = top_score >= scoring.min_top_score and confidence >= scoring.min_confidence
    state = top_state if accepted else MotionState.UNKNOWN

    return MotionClassification(
        state=state,
        confidence=round(confidence, 3),
        signals=reported,
        debug={
            "rule": state.value,
            "scores": {
                "static": round(scores[MotionState.STATIC], 3),
                "walking": round(scores[MotionState.WALKING], 3),
                "moving": round(scores[MotionState.MOVING], 3),
            },
            "top": top_state.value,
            "separation": round(separation, 3),
            "available_signals": available,
            "thresholds": thresholds,
        },
    )
