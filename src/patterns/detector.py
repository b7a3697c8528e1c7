"""
Pattern Detector.

Scans each skill's recent event window together with the profile and emits
Pattern records:

- strength / challenge from current mastery (always evaluated)
- breakthrough (first_success, consistency_achieved, level_up,
  speed_improvement, independence_gained)
- regression_warning from an accuracy drop across the window

Skills with fewer than min_events_for_trends events in the window only get
strength/challenge detection. Results are upserted against the previous
active set keyed by (user, type, key).
"""

from __future__ import annotations

from datetime import datetime, timedelta

from loguru import logger

from src.core.errors import InsufficientDataError
from src.core.models import (
    BreakthroughKind,
    Event,
    LearningProfile,
    MilestoneKind,
    Pattern,
    PatternType,
    Significance,
    SkillProgress,
    Trend,
)
from src.core.tunables import Tunables
from src.patterns.breakthroughs import (
    BreakthroughHit,
    accuracy_drop,
    breakthrough_confidence,
    find_consistency,
    find_first_success,
    find_independence,
    find_speed_improvement,
)
from src.profile.skills import skills_for_tool

TREND_DELTA = 0.05
CRITICAL_REGRESSION_DROP = 25.0
HIGH_CHALLENGE_MASTERY = 20.0

STATE_PATTERN_TYPES = (PatternType.STRENGTH, PatternType.CHALLENGE)

_BREAKTHROUGH_LABELS = {
    BreakthroughKind.FIRST_SUCCESS: "First success",
    BreakthroughKind.CONSISTENCY_ACHIEVED: "Consistency achieved",
    BreakthroughKind.LEVEL_UP: "Level up",
    BreakthroughKind.SPEED_IMPROVEMENT: "Speed improvement",
    BreakthroughKind.INDEPENDENCE_GAINED: "Independence gained",
}


def pattern_sort_key(pattern: Pattern) -> tuple:
    """Significance desc, confidence desc, key asc."""
    return (-pattern.significance.rank, -pattern.confidence, pattern.key)


class PatternDetector:
    def __init__(self, tunables: Tunables | None = None):
        self.tunables = tunables or Tunables()

    # ========================================
    # Public API
    # ========================================

    def detect(
        self,
        profile: LearningProfile,
        events: list[Event],
        previous: list[Pattern] | None = None,
        now: datetime | None = None,
    ) -> list[Pattern]:
        """
        Run detection and merge the result into the previous active set.

        Args:
            profile: Current learning profile
            events: The user's events (any range; the window is applied here)
            previous: Active patterns from the last run
            now: Detection time (defaults to the profile's last event time)

        Returns:
            Active patterns sorted by significance, confidence, key
        """
        now = now or profile.last_event_at or profile.created_at
        candidates = self.candidates(profile, events, now)
        merged = self.merge(previous or [], candidates, profile, now)
        logger.debug(
            f"{profile.user_id}: {len(candidates)} pattern candidates, {len(merged)} active patterns"
        )
        return merged

    def candidates(self, profile: LearningProfile, events: list[Event], now: datetime) -> list[Pattern]:
        """Fresh observations for this run, before merging."""
        window_start = now - timedelta(days=self.tunables.pattern_window_days)
        recent = [e for e in events if window_start <= e.timestamp <= now]

        found: dict[tuple[PatternType, str], Pattern] = {}
        for skill_name in sorted(profile.skills):
            progress = profile.skills[skill_name]
            skill_events = self.skill_window(recent, skill_name)

            for pattern in self._state_patterns(profile, progress, skill_events, now):
                found[(pattern.type, pattern.key)] = pattern

            try:
                trend_patterns = self._trend_patterns(profile, progress, skill_events, window_start, now)
            except InsufficientDataError as e:
                logger.debug(f"{profile.user_id}: {e}")
                continue
            for pattern in trend_patterns:
                found[(pattern.type, pattern.key)] = pattern

        return sorted(found.values(), key=pattern_sort_key)

    def skill_window(self, events: list[Event], skill: str) -> list[Event]:
        """Last pattern_window_events events per tool that exercise the skill."""
        per_tool: dict[str, list[Event]] = {}
        for event in events:
            if skill in skills_for_tool(event.tool_name):
                per_tool.setdefault(event.tool_name, []).append(event)
        limit = self.tunables.pattern_window_events
        window = [e for tool_events in per_tool.values() for e in tool_events[-limit:]]
        return sorted(window, key=lambda e: (e.timestamp, e.id))

    # ========================================
    # Strength / challenge
    # ========================================

    def _state_patterns(
        self,
        profile: LearningProfile,
        progress: SkillProgress,
        skill_events: list[Event],
        now: datetime,
    ) -> list[Pattern]:
        t = self.tunables
        confidence = min(1.0, progress.sessions_practiced / t.confidence_saturation_sessions)
        evidence = [e.id for e in skill_events[-5:]]
        skill = progress.skill

        if progress.mastery_pct > t.strength_threshold:
            return [
                self._pattern(
                    profile, PatternType.STRENGTH, f"strength:{skill}",
                    f"Strong {skill} skills ({progress.mastery_pct:.0f}% mastery)",
                    confidence, Significance.MODERATE, now, skill=skill, evidence=evidence,
                )
            ]
        if progress.mastery_pct < t.challenge_threshold:
            significance = (
                Significance.HIGH if progress.mastery_pct < HIGH_CHALLENGE_MASTERY else Significance.MODERATE
            )
            return [
                self._pattern(
                    profile, PatternType.CHALLENGE, f"challenge:{skill}",
                    f"{skill} needs support ({progress.mastery_pct:.0f}% mastery)",
                    confidence, significance, now, skill=skill, evidence=evidence,
                )
            ]
        return []

    # ========================================
    # Breakthroughs & regression
    # ========================================

    def _trend_patterns(
        self,
        profile: LearningProfile,
        progress: SkillProgress,
        skill_events: list[Event],
        window_start: datetime,
        now: datetime,
    ) -> list[Pattern]:
        t = self.tunables
        skill = progress.skill
        if len(skill_events) < t.min_events_for_trends:
            raise InsufficientDataError(
                f"{skill}: {len(skill_events)} events in window, need {t.min_events_for_trends}"
            )

        hits = [
            find_first_success(skill_events, t),
            self._consistency(profile, skill, skill_events, window_start),
            self._level_up(profile, skill, window_start, now),
            find_speed_improvement(skill_events, t),
            find_independence(skill_events),
        ]
        patterns = [self._breakthrough_pattern(profile, skill, hit, now) for hit in hits if hit is not None]

        regression = self._regression(profile, skill, skill_events, now)
        if regression is not None:
            patterns.append(regression)
        return patterns

    def _consistency(
        self,
        profile: LearningProfile,
        skill: str,
        skill_events: list[Event],
        window_start: datetime,
    ) -> BreakthroughHit | None:
        turnarounds = [
            m for m in profile.milestones
            if m.kind == MilestoneKind.IMPROVEMENT_TURNAROUND and m.skill == skill and m.timestamp >= window_start
        ]
        if turnarounds:
            latest = turnarounds[-1]
            return BreakthroughHit(
                kind=BreakthroughKind.CONSISTENCY_ACHIEVED,
                event_id=latest.event_id,
                timestamp=latest.timestamp,
                prior_attempts=latest.prior_attempts,
                evidence=[m.event_id for m in turnarounds],
                detail="improvement rate turned positive",
            )
        return find_consistency(skill_events)

    def _level_up(
        self,
        profile: LearningProfile,
        skill: str,
        window_start: datetime,
        now: datetime,
    ) -> BreakthroughHit | None:
        level_ups = [
            m for m in profile.milestones
            if m.kind == MilestoneKind.LEVEL_UP and m.skill == skill and window_start <= m.timestamp <= now
        ]
        if not level_ups:
            return None
        latest = level_ups[-1]
        return BreakthroughHit(
            kind=BreakthroughKind.LEVEL_UP,
            event_id=latest.event_id,
            timestamp=latest.timestamp,
            prior_attempts=latest.prior_attempts,
            evidence=[m.event_id for m in level_ups],
            detail=f"reached level {latest.level}",
        )

    def _breakthrough_pattern(
        self,
        profile: LearningProfile,
        skill: str,
        hit: BreakthroughHit,
        now: datetime,
    ) -> Pattern:
        significance = (
            Significance.CRITICAL
            if hit.kind in (BreakthroughKind.LEVEL_UP, BreakthroughKind.INDEPENDENCE_GAINED)
            else Significance.HIGH
        )
        label = _BREAKTHROUGH_LABELS[hit.kind]
        return self._pattern(
            profile,
            PatternType.BREAKTHROUGH,
            f"breakthrough:{hit.kind.value}:{skill}",
            f"{label} in {skill} ({hit.detail})",
            breakthrough_confidence(hit.kind, hit.prior_attempts, self.tunables),
            significance,
            now,
            skill=skill,
            evidence=hit.evidence,
            breakthrough_kind=hit.kind,
        )

    def _regression(
        self,
        profile: LearningProfile,
        skill: str,
        skill_events: list[Event],
        now: datetime,
    ) -> Pattern | None:
        t = self.tunables
        result = accuracy_drop(skill_events)
        if result is None:
            return None
        drop, scored = result
        if drop <= t.regression_drop_threshold:
            return None
        confidence = min(1.0, drop / (2 * t.regression_drop_threshold)) * min(
            1.0, len(scored) / t.pattern_window_events
        )
        significance = Significance.CRITICAL if drop > CRITICAL_REGRESSION_DROP else Significance.HIGH
        return self._pattern(
            profile,
            PatternType.REGRESSION_WARNING,
            f"regression_warning:{skill}",
            f"Accuracy in {skill} dropped {drop:.1f} points across recent practice",
            confidence,
            significance,
            now,
            skill=skill,
            evidence=[e.id for e in scored[len(scored) // 2:]],
        )

    # ========================================
    # Upsert
    # ========================================

    def merge(
        self,
        previous: list[Pattern],
        candidates: list[Pattern],
        profile: LearningProfile,
        now: datetime,
    ) -> list[Pattern]:
        """
        Upsert candidates into the previous active set.

        A re-observation accumulates frequency only when it brings evidence not
        seen before. Strength/challenge patterns that were not re-observed are
        dropped; event-driven patterns stay until unobserved for the window.
        """
        stale_before = now - timedelta(days=self.tunables.pattern_window_days)
        previous_by_key = {(p.type, p.key): p for p in previous}
        merged: dict[tuple[PatternType, str], Pattern] = {}

        for candidate in candidates:
            old = previous_by_key.get((candidate.type, candidate.key))
            if old is None:
                candidate.trend = self._initial_trend(profile, candidate)
                merged[(candidate.type, candidate.key)] = candidate
                continue

            unseen = [eid for eid in candidate.evidence_event_ids if eid not in old.evidence_event_ids]
            candidate.first_observed = old.first_observed
            candidate.frequency = old.frequency + (1 if unseen else 0)
            candidate.trend = self._confidence_trend(old.confidence, candidate.confidence)
            if unseen:
                candidate.evidence_event_ids = _dedupe(old.evidence_event_ids + candidate.evidence_event_ids)[-50:]
            else:
                candidate.evidence_event_ids = list(old.evidence_event_ids)
            merged[(candidate.type, candidate.key)] = candidate

        for key, old in previous_by_key.items():
            if key in merged or old.type in STATE_PATTERN_TYPES:
                continue
            if old.last_observed >= stale_before:
                merged[key] = old

        return sorted(merged.values(), key=pattern_sort_key)

    @staticmethod
    def _confidence_trend(old: float, new: float) -> Trend:
        delta = new - old
        if delta > TREND_DELTA:
            return Trend.INCREASING
        if delta < -TREND_DELTA:
            return Trend.DECREASING
        return Trend.STABLE

    @staticmethod
    def _initial_trend(profile: LearningProfile, pattern: Pattern) -> Trend:
        progress = profile.skills.get(pattern.skill or "")
        if progress is None or progress.improvement_rate == 0:
            return Trend.STABLE
        return Trend.INCREASING if progress.improvement_rate > 0 else Trend.DECREASING

    @staticmethod
    def _pattern(
        profile: LearningProfile,
        pattern_type: PatternType,
        key: str,
        description: str,
        confidence: float,
        significance: Significance,
        now: datetime,
        skill: str | None = None,
        evidence: list[str] | None = None,
        breakthrough_kind: BreakthroughKind | None = None,
    ) -> Pattern:
        return Pattern(
            user_id=profile.user_id,
            type=pattern_type,
            key=key,
            description=description,
            confidence=max(0.0, min(1.0, confidence)),
            first_observed=now,
            last_observed=now,
            significance=significance,
            skill=skill,
            breakthrough_kind=breakthrough_kind,
            evidence_event_ids=list(evidence or []),
        )


def _dedupe(ids: list[str]) -> list[str]:
    seen: set[str] = set()
    result = []
    for eid in ids:
        if eid not in seen:
            seen.add(eid)
            result.append(eid)
    return result
