"""
Cross-window state smoothing (hysteresis).

Stable(state) / Pending(candidate, count) 두 상태를 갖는 작은 상태 기계입니다.
step_smoothing() 은 순수 함수이고, apply_state_smoothing() 이 윈도우 목록에 대해 반복합니다.
EVENT 윈도우는 hysteresis 를 거치지 않지만 연속 지속시간이 event_max_sec 를 넘으면 UNKNOWN 으로 강제합니다.
"""

from dataclasses import dataclass, replace
from typing import List, Optional, Sequence, Tuple

from loguru import logger

from src.ridecore.core import CoreState, WindowClassification, WindowSummary
from src.ridecore.thresholds import DEFAULT_CONFIG, AnalysisConfig


@dataclass(frozen=True)
class SmoothingState:
    current: CoreState = CoreState.UNKNOWN
    pending: Optional[CoreState] = None
    pending_count: int = 0
    event_run_sec: float = 0.0

    @property
    def is_pending(self) -> bool:
        return self.pending is not None


@dataclass(frozen=True)
class SmoothedDecision:
    state: CoreState
    reason: str
    confidence: float


def initial_smoothing_state(classifications: Sequence[WindowClassification]) -> SmoothingState:
    """첫 번째 비-EVENT 윈도우의 상태에서 시작 (없으면 UNKNOWN)"""
    for classification in classifications:
        if classification.state != CoreState.EVENT:
            return SmoothingState(current=classification.state)
    return SmoothingState()


def step_smoothing(
    state: SmoothingState,
    candidate: WindowClassification,
    window_duration_sec: float,
    config: AnalysisConfig = DEFAULT_CONFIG,
) -> Tuple[SmoothingState, SmoothedDecision]:
    cfg = config.smoothing

    if candidate.state == CoreState.EVENT:
        run_sec = state.event_run_sec + window_duration_sec
        new_state = replace(state, event_run_sec=run_sec)
        if run_sec <= cfg.event_max_sec:
            return new_state, SmoothedDecision(
                CoreState.EVENT, candidate.reason, candidate.confidence
            )
        return new_state, SmoothedDecision(CoreState.UNKNOWN, "event_over_max", 0.0)

    if candidate.state == state.current:
        return SmoothingState(current=state.current), SmoothedDecision(
            state.current, candidate.reason, candidate.confidence
        )

    if candidate.state == state.pending:
        pending_count = state.pending_count + 1
    else:
        pending_count = 1

    if pending_count >= cfg.hysteresis_windows:
        logger.debug(f"state switch {state.current.value} -> {candidate.state.value}")
        return SmoothingState(current=candidate.state), SmoothedDecision(
            candidate.state, "hysteresis_switch", candidate.confidence
        )

    # 보류 중: 이전 상태를 낮은 신뢰도로 보고
    new_state = SmoothingState(
        current=state.current, pending=candidate.state, pending_count=pending_count
    )
    return new_state, SmoothedDecision(
        state.current,
        "hysteresis_hold",
        round(candidate.confidence * cfg.pending_confidence_factor, 3),
    )


def apply_state_smoothing(
    windows: Sequence[WindowSummary], config: AnalysisConfig = DEFAULT_CONFIG
) -> List[SmoothedDecision]:
    if not windows:
        return []

    state = initial_smoothing_state([w.classification for w in windows])
    decisions = []
    for window in windows:
        state, decision = step_smoothing(
            state, window.classification, window.t_end_sec - window.t_start_sec, config
        )
        decisions.append(decision)
    return decisions
