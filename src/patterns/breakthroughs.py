"""
Breakthrough scans over a skill's event window.

Each scan looks at the ordered events for one skill and returns the most
recent occurrence of its breakthrough kind, or None.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from src.core.models import BreakthroughKind, Event, EventKind
from src.core.tunables import Tunables


@dataclass
class BreakthroughHit:
    kind: BreakthroughKind
    event_id: str
    timestamp: datetime
    prior_attempts: int
    evidence: list[str] = field(default_factory=list)
    detail: str = ""


def breakthrough_confidence(kind: BreakthroughKind, prior_attempts: int, tunables: Tunables | None = None) -> float:
    """
    Confidence of a breakthrough on a 0-1 scale.

    base_score(kind) + bonus when prior_attempts exceeds the threshold,
    clamped to [0, 10] and divided by 10.
    """
    t = tunables or Tunables()
    score = t.breakthrough_base_scores.get(kind.value, 5)
    if prior_attempts > t.prior_attempts_bonus_threshold:
        score += t.prior_attempts_bonus
    return max(0, min(10, score)) / 10.0


def _graded(events: list[Event]) -> list[Event]:
    return [e for e in events if e.event_kind.is_graded]


def find_first_success(events: list[Event], tunables: Tunables) -> BreakthroughHit | None:
    """A success following at least N consecutive failures."""
    hit = None
    streak: list[str] = []
    for index, event in enumerate(_graded(events)):
        if event.event_kind == EventKind.ERROR:
            streak.append(event.id)
            continue
        if len(streak) >= tunables.first_success_min_failures:
            hit = BreakthroughHit(
                kind=BreakthroughKind.FIRST_SUCCESS,
                event_id=event.id,
                timestamp=event.timestamp,
                prior_attempts=index,
                evidence=streak + [event.id],
                detail=f"after {len(streak)} failed attempts",
            )
        streak = []
    return hit


def find_consistency(events: list[Event], window: int = 5) -> BreakthroughHit | None:
    """The last `window` graded attempts all succeeded."""
    graded = _graded(events)
    if len(graded) < window:
        return None
    tail = graded[-window:]
    if not all(e.event_kind == EventKind.SUCCESS for e in tail):
        return None
    return BreakthroughHit(
        kind=BreakthroughKind.CONSISTENCY_ACHIEVED,
        event_id=tail[-1].id,
        timestamp=tail[-1].timestamp,
        prior_attempts=len(graded) - window,
        evidence=[e.id for e in tail],
        detail=f"{window} successes in a row",
    )


def find_speed_improvement(events: list[Event], tunables: Tunables) -> BreakthroughHit | None:
    """A response faster than ratio x the trailing average latency for the same tool."""
    hit = None
    timed = [e for e in events if e.performance.latency_ms is not None]
    for index, event in enumerate(timed):
        trailing = [e for e in timed[:index] if e.tool_name == event.tool_name]
        trailing = trailing[-tunables.speed_trailing_events:]
        if len(trailing) < 3:
            continue
        average = sum(e.performance.latency_ms for e in trailing) / len(trailing)
        if average > 0 and event.performance.latency_ms < tunables.speed_improvement_ratio * average:
            hit = BreakthroughHit(
                kind=BreakthroughKind.SPEED_IMPROVEMENT,
                event_id=event.id,
                timestamp=event.timestamp,
                prior_attempts=index,
                evidence=[e.id for e in trailing] + [event.id],
                detail=f"{event.performance.latency_ms:.0f}ms vs {average:.0f}ms average",
            )
    return hit


def find_independence(events: list[Event], min_assisted: int = 3) -> BreakthroughHit | None:
    """A first-attempt success after several successes that each needed retries."""
    hit = None
    assisted: list[str] = []
    for index, event in enumerate(_graded(events)):
        if event.event_kind != EventKind.SUCCESS:
            continue
        if event.performance.attempts > 1:
            assisted.append(event.id)
            continue
        if len(assisted) >= min_assisted:
            hit = BreakthroughHit(
                kind=BreakthroughKind.INDEPENDENCE_GAINED,
                event_id=event.id,
                timestamp=event.timestamp,
                prior_attempts=index,
                evidence=assisted + [event.id],
                detail=f"first unassisted success after {len(assisted)} assisted ones",
            )
        assisted = []
    return hit


def accuracy_drop(events: list[Event]) -> tuple[float, list[Event]] | None:
    """
    Mean accuracy of the leading half of the window minus the trailing half.

    Returns None when fewer than 4 events carry an accuracy.
    """
    scored = [e for e in events if e.performance.accuracy is not None]
    if len(scored) < 4:
        return None
    half = len(scored) // 2
    leading, trailing = scored[:half], scored[half:]
    lead_avg = sum(e.performance.accuracy for e in leading) / len(leading)
    trail_avg = sum(e.performance.accuracy for e in trailing) / len(trailing)
    return lead_avg - trail_avg, scored
