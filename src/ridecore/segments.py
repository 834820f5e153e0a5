"""
Segment construction and display bridging.
"""

from collections import Counter
from typing import List, Optional, Sequence

from src.ridecore.core import CoreState, DisplaySegment, Segment, WindowSummary
from src.ridecore.smoothing import SmoothedDecision
from src.ridecore.thresholds import DEFAULT_CONFIG, AnalysisConfig


def _close_segment(windows, decisions) -> Segment:
    reasons = Counter(d.reason for d in decisions if d.reason)
    return Segment(
        t_start_sec=windows[0].t_start_sec,
        t_end_sec=windows[-1].t_end_sec,
        state=decisions[0].state,
        confidence=round(sum(d.confidence for d in decisions) / len(decisions), 3),
        reason=reasons.most_common(1)[0][0] if reasons else "",
    )


def merge_windows(
    windows: Sequence[WindowSummary], decisions: Sequence[SmoothedDecision]
) -> List[Segment]:
    """같은 smoothed 상태의 연속 윈도우를 하나의 세그먼트로"""
    segments: List[Segment] = []
    start = 0
    for i in range(1, len(windows) + 1):
        if i == len(windows) or decisions[i].state != decisions[start].state:
            segments.append(_close_segment(windows[start:i], decisions[start:i]))
            start = i
    return segments


def enforce_min_duration(
    segments: Sequence[Segment], config: AnalysisConfig = DEFAULT_CONFIG
) -> List[Segment]:
    """최소 지속시간보다 짧은 MOVING / STATIC 세그먼트를 UNKNOWN 으로 강등"""
    cfg = config.smoothing
    minimums = {
        CoreState.MOVING: cfg.min_segment_sec.moving,
        CoreState.STATIC: cfg.min_segment_sec.static,
    }
    adjusted = []
    for segment in segments:
        minimum = minimums.get(segment.state)
        if minimum is not None and segment.duration_sec < minimum:
            segment = segment.model_copy(
                update={
                    "state": CoreState.UNKNOWN,
                    "confidence": min(segment.confidence, cfg.demoted_confidence_cap),
                    "reason": "min_duration",
                }
            )
        adjusted.append(segment)
    return adjusted


def coalesce(segments: Sequence[Segment]) -> List[Segment]:
    """인접한 동일 상태 세그먼트 병합 (신뢰도는 지속시간 가중 평균, 첫 번째 비어있지 않은 reason 유지)"""
    merged: List[Segment] = []
    for segment in segments:
        if merged and merged[-1].state == segment.state:
            last = merged[-1]
            total = last.duration_sec + segment.duration_sec
            if total > 0:
                confidence = (
                    last.confidence * last.duration_sec + segment.confidence * segment.duration_sec
                ) / total
            else:
                confidence = (last.confidence + segment.confidence) / 2
            merged[-1] = last.model_copy(
                update={
                    "t_end_sec": segment.t_end_sec,
                    "confidence": round(confidence, 3),
                    "reason": last.reason or segment.reason,
                }
            )
        else:
            merged.append(segment.model_copy())
    return merged


def build_segments(
    windows: Sequence[WindowSummary],
    decisions: Sequence[SmoothedDecision],
    config: AnalysisConfig = DEFAULT_CONFIG,
) -> List[Segment]:
    if not windows:
        return []
    segments = merge_windows(windows, decisions)
    return coalesce(enforce_min_duration(segments, config))


def build_display_segments(
    segments: Sequence[Segment], max_unknown_sec: Optional[float] = None
) -> List[DisplaySegment]:
    """
    같은 상태 사이에 낀 짧은 UNKNOWN 세그먼트를 양옆 상태로 메움 (표시용).

    - 처음/마지막 UNKNOWN 은 메우지 않음
    - 양옆 상태가 다르거나 UNKNOWN 이 max_unknown_sec 보다 길면 그대로 둠
    - 연속 bridge 는 마지막 표시 세그먼트를 연장 (중복 생성 없음)
    입력 세그먼트는 변경하지 않습니다.
    """
    if max_unknown_sec is None:
        max_unknown_sec = DEFAULT_CONFIG.smoothing.unknown_bridge_sec

    display: List[DisplaySegment] = []
    i = 0
    while i < len(segments):
        segment = segments[i]
        prev = segments[i - 1] if i > 0 else None
        nxt = segments[i + 1] if i + 1 < len(segments) else None

        bridgeable = (
            segment.state == CoreState.UNKNOWN
            and prev is not None
            and nxt is not None
            and prev.state == nxt.state
            and prev.state != CoreState.UNKNOWN
            and segment.duration_sec <= max_unknown_sec
        )
        if bridgeable:
            gap = segment.duration_sec
            last = display[-1] if display else None
            if last is not None and last.state == prev.state and last.t_end_sec == prev.t_end_sec:
                last.t_end_sec = nxt.t_end_sec
                last.confidence = max(last.confidence, nxt.confidence)
                last.was_bridged = True
                last.bridged_duration_sec = (last.bridged_duration_sec or 0.0) + gap
            else:
                display.append(
                    DisplaySegment(
                        **prev.model_dump(),
                        was_bridged=True,
                        bridged_duration_sec=gap,
                    )
                )
                display[-1].t_end_sec = nxt.t_end_sec
                display[-1].confidence = max(prev.confidence, nxt.confidence)
            i += 2
            continue

        display.append(DisplaySegment(**segment.model_dump(), was_bridged=False))
        i += 1

    return display
