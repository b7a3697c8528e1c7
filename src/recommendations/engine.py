"""
Recommendation Engine.

Expands focus areas into concrete recommendations, scores and ranks them,
and maintains the per-user recommendation lifecycle:

    active -> completed   (positive outcome)
    active -> superseded  (older than max age, replaced, or ranked out)
    active <-> paused     (explicit signal)

Scoring:
    score = priority_weight x confidence x style_match_factor
    style_match_factor = 1.0 + modality (0.1) + pace (0.05) + tolerance (0.05), max 1.2

Ranking is by score desc, then newest generated_at, then id, so the result
does not depend on input order.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from loguru import logger

from src.core.models import (
    Activity,
    ChallengeTolerance,
    Energy,
    FocusArea,
    FocusKind,
    FocusRun,
    LearningProfile,
    LearningStyleProfile,
    Outcome,
    OutcomeType,
    Pace,
    Priority,
    Progress,
    Recommendation,
    RecommendationStatus,
    RecommendationType,
    Timing,
    new_id,
)
from src.core.tunables import Tunables
from src.recommendations.catalog import ActivityTemplate, generic_template, match_templates

FREQUENCY_BY_TYPE = {
    RecommendationType.IMMEDIATE_ACTION: "today",
    RecommendationType.SHORT_TERM_GOAL: "daily",
    RecommendationType.LONG_TERM_PATHWAY: "3x weekly",
    RecommendationType.BREAKTHROUGH_ACCELERATION: "daily",
    RecommendationType.ADAPTIVE_ADJUSTMENT: "next session",
}

TYPE_BY_FOCUS_KIND = {
    FocusKind.SKILL_BUILDING: RecommendationType.SHORT_TERM_GOAL,
    FocusKind.REINFORCEMENT: RecommendationType.IMMEDIATE_ACTION,
    FocusKind.BREAKTHROUGH_ACCELERATION: RecommendationType.BREAKTHROUGH_ACCELERATION,
    FocusKind.NARRATIVE: RecommendationType.SHORT_TERM_GOAL,
}

ENERGY_DURATION_BOUNDS = {
    Energy.HIGH: (15, None),
    Energy.MEDIUM: (10, 25),
    Energy.LOW: (None, 15),
}

SUPPORT_ACCURACY_THRESHOLD = 60.0
CHALLENGE_ACCURACY_THRESHOLD = 90.0
SESSION_LENGTH_TOLERANCE_MINUTES = 5.0


def difficulty_for_mastery(mastery: float | None) -> int:
    """Activity difficulty from mastery; unknown skills start at 2."""
    if mastery is None:
        return 2
    if mastery > 80:
        return 4
    if mastery > 60:
        return 3
    if mastery > 40:
        return 2
    return 1


def style_match_factor(rec: Recommendation, style: LearningStyleProfile, cap: float = 1.2) -> float:
    factor = 1.0
    preference = {
        "visual": style.visual_preference,
        "auditory": style.auditory_preference,
        "kinesthetic": style.kinesthetic_preference,
    }.get(rec.activity.modality, 0.0)
    if preference > 70:
        factor += 0.1

    minutes = rec.timing.duration_minutes
    if (style.pace_preference == Pace.FAST and minutes < 20) or (
        style.pace_preference == Pace.SLOW and minutes > 25
    ):
        factor += 0.05

    difficulty = rec.activity.difficulty
    tolerance = style.challenge_tolerance
    if (
        (tolerance == ChallengeTolerance.HIGH and difficulty >= 3)
        or (tolerance == ChallengeTolerance.LOW and difficulty <= 2)
        or (tolerance == ChallengeTolerance.MEDIUM and difficulty in (2, 3))
    ):
        factor += 0.05
    return min(cap, factor)


def rank_key(rec: Recommendation) -> tuple:
    return (-rec.score, -rec.generated_at.timestamp(), rec.id)


def rank_recommendations(recommendations: list[Recommendation]) -> list[Recommendation]:
    """Sort by score desc, newest first, then id."""
    return sorted(recommendations, key=rank_key)


def filter_by_context(recommendations: list[Recommendation], energy: Energy | None = None) -> list[Recommendation]:
    """Keep recommendations whose session length suits the learner's current energy."""
    if energy is None:
        return list(recommendations)
    low, high = ENERGY_DURATION_BOUNDS[energy]
    return [
        rec for rec in recommendations
        if not (low is not None and rec.timing.duration_minutes < low)
        and not (high is not None and rec.timing.duration_minutes > high)
    ]


def _same_area(a: str, b: str) -> bool:
    return a.strip().lower() == b.strip().lower()


class RecommendationEngine:
    def __init__(self, tunables: Tunables | None = None):
        self.tunables = tunables or Tunables()

    # ========================================
    # Expansion & scoring
    # ========================================

    def expand(
        self,
        focus: FocusArea,
        profile: LearningProfile,
        now: datetime,
        available_minutes: int | None = None,
    ) -> list[Recommendation]:
        """One or two recommendations for a focus area."""
        templates = match_templates(focus.area, focus.skill) or [generic_template(focus.area, focus.skill)]
        rec_type = TYPE_BY_FOCUS_KIND[focus.kind]

        plan: list[tuple[ActivityTemplate, RecommendationType]] = [(t, rec_type) for t in templates]
        if len(templates) == 1 and focus.kind == FocusKind.SKILL_BUILDING:
            plan.append((templates[0], RecommendationType.LONG_TERM_PATHWAY))

        return [
            self._build(focus, template, kind, profile, now, available_minutes)
            for template, kind in plan
        ]

    def _build(
        self,
        focus: FocusArea,
        template: ActivityTemplate,
        rec_type: RecommendationType,
        profile: LearningProfile,
        now: datetime,
        available_minutes: int | None,
    ) -> Recommendation:
        progress = profile.skills.get(focus.skill) if focus.skill else None
        difficulty = difficulty_for_mastery(progress.mastery_pct if progress else None)
        duration = profile.style.optimal_session_length
        if available_minutes is not None:
            duration = min(duration, available_minutes)
        duration = max(1, duration)

        horizon = "over the next month" if rec_type == RecommendationType.LONG_TERM_PATHWAY else "this week"
        rec = Recommendation(
            id=new_id("rec"),
            user_id=profile.user_id,
            type=rec_type,
            priority=focus.priority,
            confidence=focus.confidence,
            title=f"{template.name}: {focus.area}",
            description=f"{template.name} targeting {focus.area} {horizon}.",
            focus_area=focus.area,
            actions=list(template.actions),
            expected_outcomes=list(template.expected_outcomes),
            activity=template.activity(difficulty),
            timing=Timing(duration_minutes=duration, frequency=FREQUENCY_BY_TYPE[rec_type]),
            generated_at=now,
            rationale=focus.rationale,
        )
        rec.score = self.score(rec, profile.style)
        return rec

    def score(self, rec: Recommendation, style: LearningStyleProfile) -> float:
        weight = self.tunables.priority_weights.get(rec.priority.value, 1)
        return weight * rec.confidence * style_match_factor(rec, style, self.tunables.max_style_factor)

    def fit_to_time(
        self,
        recommendations: list[Recommendation],
        available_minutes: int,
        style: LearningStyleProfile,
    ) -> list[Recommendation]:
        """
        Copies with session length clamped to the time the learner has now.

        Clamped copies are re-scored (pace matching depends on duration) and
        re-ranked. Stored recommendations are left untouched.
        """
        limit = max(1, available_minutes)
        fitted = []
        for rec in recommendations:
            if rec.timing.duration_minutes <= limit:
                fitted.append(rec)
                continue
            copy = Recommendation.from_dict(rec.to_dict())
            copy.timing.duration_minutes = limit
            copy.score = self.score(copy, style)
            fitted.append(copy)
        return rank_recommendations(fitted)

    # ========================================
    # Lifecycle
    # ========================================

    def expire(self, recommendations: list[Recommendation], now: datetime) -> int:
        """Supersede active recommendations older than the max age. Returns the count."""
        cutoff = now - timedelta(days=self.tunables.recommendation_max_age_days)
        expired = 0
        for rec in recommendations:
            if rec.status == RecommendationStatus.ACTIVE and rec.generated_at < cutoff:
                rec.status = RecommendationStatus.SUPERSEDED
                expired += 1
        return expired

    def refresh(
        self,
        existing: list[Recommendation],
        focus_run: FocusRun,
        profile: LearningProfile,
        now: datetime,
    ) -> list[Recommendation]:
        """
        Merge a new focus run into the user's recommendation set.

        A live recommendation with the same focus area, type and activity is
        kept (and re-scored) so its progress survives. Other live
        recommendations for a refreshed focus area are superseded by the new
        ones. Adaptive adjustments are only replaced by age.
        """
        recommendations = list(existing)
        self.expire(recommendations, now)

        for focus in focus_run.areas:
            fresh = self.expand(focus, profile, now)
            live_for_area = [
                r for r in recommendations
                if not r.status.is_terminal
                and r.type != RecommendationType.ADAPTIVE_ADJUSTMENT
                and _same_area(r.focus_area, focus.area)
            ]
            kept_ids = set()
            for candidate in fresh:
                match = next(
                    (
                        r for r in live_for_area
                        if r.type == candidate.type and r.activity.name == candidate.activity.name
                    ),
                    None,
                )
                if match is not None:
                    match.priority = candidate.priority
                    match.confidence = candidate.confidence
                    match.rationale = candidate.rationale
                    match.activity.difficulty = candidate.activity.difficulty
                    kept_ids.add(match.id)
                else:
                    recommendations.append(candidate)
            for rec in live_for_area:
                if rec.id not in kept_ids:
                    rec.status = RecommendationStatus.SUPERSEDED

        for rec in recommendations:
            if not rec.status.is_terminal:
                rec.score = self.score(rec, profile.style)

        self.enforce_cap(recommendations)
        return self.prune_history(recommendations, now)

    def prune_history(self, recommendations: list[Recommendation], now: datetime) -> list[Recommendation]:
        """Drop completed/superseded recommendations generated before the history window."""
        cutoff = now - timedelta(days=self.tunables.recommendation_history_days)
        kept = [r for r in recommendations if not (r.status.is_terminal and r.generated_at < cutoff)]
        if len(kept) < len(recommendations):
            logger.debug(f"Pruned {len(recommendations) - len(kept)} recommendations from history")
        return kept

    def enforce_cap(self, recommendations: list[Recommendation]) -> int:
        """Keep the top max_active_recommendations active; supersede the rest."""
        active = rank_recommendations([r for r in recommendations if r.status == RecommendationStatus.ACTIVE])
        overflow = active[self.tunables.max_active_recommendations:]
        for rec in overflow:
            rec.status = RecommendationStatus.SUPERSEDED
        if overflow:
            logger.debug(f"Superseded {len(overflow)} recommendations beyond the active cap")
        return len(overflow)

    def active(self, recommendations: list[Recommendation], now: datetime) -> list[Recommendation]:
        """Ranked active recommendations, after age-based expiry."""
        self.expire(recommendations, now)
        return rank_recommendations([r for r in recommendations if r.status == RecommendationStatus.ACTIVE])

    # ========================================
    # Adaptation
    # ========================================

    def create_adaptive_adjustment(
        self,
        rec: Recommendation,
        outcome: Outcome,
        profile: LearningProfile,
        now: datetime,
    ) -> Recommendation:
        """
        Build the single corrective recommendation for an unsuccessful outcome.

        Accuracy below 60 lowers difficulty, above 90 raises it; otherwise a
        session length far from the learner's optimum is corrected; failing
        both, support is increased.
        """
        accuracy = _metric(outcome, "accuracy")
        optimal = profile.style.optimal_session_length
        average = profile.average_session_minutes
        difficulty = rec.activity.difficulty
        duration = rec.timing.duration_minutes

        if accuracy is not None and accuracy > CHALLENGE_ACCURACY_THRESHOLD:
            label = "Challenge Level Increase"
            difficulty = min(5, difficulty + 1)
            reason = f"Accuracy {accuracy:.0f}% suggests the activity is too easy"
        elif accuracy is not None and accuracy < SUPPORT_ACCURACY_THRESHOLD:
            label = "Support Level Increase"
            difficulty = max(1, difficulty - 1)
            reason = f"Accuracy {accuracy:.0f}% is below the support threshold"
        elif average > 0 and abs(average - optimal) > SESSION_LENGTH_TOLERANCE_MINUTES:
            label = "Session Length Optimization"
            duration = max(5, min(60, round(average)))
            reason = f"Sessions average {average:.0f} min against an optimum of {optimal} min"
        else:
            label = "Support Level Increase"
            difficulty = max(1, difficulty - 1)
            duration = max(5, duration - 5)
            reason = f"Outcome was {outcome.outcome_type.value.replace('_', ' ')}"

        priority = Priority.CRITICAL if outcome.outcome_type == OutcomeType.REGRESSION else Priority.HIGH
        activity = Activity.from_dict(rec.activity.to_dict())
        activity.difficulty = difficulty
        adjustment = Recommendation(
            id=new_id("rec"),
            user_id=rec.user_id,
            type=RecommendationType.ADAPTIVE_ADJUSTMENT,
            priority=priority,
            confidence=0.8,
            title=f"{label}: {rec.activity.name}",
            description=f"{label} for {rec.focus_area}. {reason}.",
            focus_area=rec.focus_area,
            actions=[
                f"Run {rec.activity.name} at difficulty {difficulty} for {duration} minutes",
                "Record the next outcome so the plan can adapt again",
            ],
            expected_outcomes=["Recovered accuracy", "Sustained engagement"],
            activity=activity,
            timing=Timing(duration_minutes=duration, frequency=FREQUENCY_BY_TYPE[RecommendationType.ADAPTIVE_ADJUSTMENT]),
            generated_at=now,
            progress=Progress(),
            rationale=reason,
        )
        adjustment.score = self.score(adjustment, profile.style)
        return adjustment


def _metric(outcome: Outcome, name: str) -> float | None:
    for metric in outcome.metrics:
        if name in metric.name.lower():
            return metric.achieved
    return None


def effectiveness_metrics(recommendations: list[Recommendation], outcomes: list[Outcome]) -> dict[str, Any]:
    """
    Aggregate how well recommendations are working for a user.

    success_rate and adaptation_frequency are percentages; average_engagement
    is on the 1-5 feedback scale (None without feedback).
    """
    total = len(recommendations)
    by_status = {status.value: 0 for status in RecommendationStatus}
    for rec in recommendations:
        by_status[rec.status.value] += 1

    positive = sum(1 for o in outcomes if o.outcome_type.is_positive)
    engagements = [o.feedback.engagement for o in outcomes if o.feedback is not None]
    adaptive = sum(1 for r in recommendations if r.type == RecommendationType.ADAPTIVE_ADJUSTMENT)

    return {
        "total_recommendations": total,
        "by_status": by_status,
        "outcomes_recorded": len(outcomes),
        "success_rate": round(positive / len(outcomes) * 100, 2) if outcomes else 0.0,
        "average_engagement": round(sum(engagements) / len(engagements), 2) if engagements else None,
        "adaptation_frequency": round(adaptive / total * 100, 2) if total else 0.0,
    }
