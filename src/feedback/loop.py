"""
Outcome Feedback Loop.

Records an Outcome against a recommendation and closes the loop:

- advances the recommendation's progress and state machine
- nudges the learner's style profile (motivation, reward responsiveness)
- derives human-readable adaptive insights
- for no_progress / regression, creates exactly one adaptive_adjustment
  recommendation and asks for an immediate recompute
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from loguru import logger

from src.core.errors import NotFoundError, ValidationError
from src.core.models import (
    LearningProfile,
    Outcome,
    OutcomeType,
    Recommendation,
    RecommendationStatus,
    clamp,
)
from src.recommendations.engine import RecommendationEngine

MOTIVATION_GAIN_ON_SUCCESS = 2.0
MOTIVATION_LOSS_ON_NO_PROGRESS = 1.0
REWARD_SENSITIVITY = 2.0


@dataclass
class FeedbackResult:
    outcome: Outcome
    recommendation: Recommendation
    adjustment: Recommendation | None = None
    recompute_requested: bool = False
    duplicate: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome.to_dict(),
            "recommendation": self.recommendation.to_dict(),
            "adjustment": self.adjustment.to_dict() if self.adjustment else None,
            "recompute_requested": self.recompute_requested,
            "duplicate": self.duplicate,
        }


class FeedbackLoop:
    """Applies outcomes to in-memory user state; the caller persists it."""

    def __init__(self, engine: RecommendationEngine | None = None):
        self.engine = engine or RecommendationEngine()

    def record_outcome(
        self,
        profile: LearningProfile,
        recommendations: list[Recommendation],
        outcomes: list[Outcome],
        recommendation_id: str,
        outcome: Outcome,
        now: datetime,
    ) -> FeedbackResult:
        """
        Apply one outcome.

        Mutates profile.style, the matching recommendation, and appends to
        recommendations (adjustment) and outcomes.

        Raises:
            NotFoundError: No recommendation with that id for the user
            ValidationError: Recommendation already completed or superseded
        """
        rec = next((r for r in recommendations if r.id == recommendation_id), None)
        if rec is None:
            raise NotFoundError("recommendation", recommendation_id)

        existing = next((o for o in outcomes if o.id == outcome.id), None)
        if existing is not None:
            logger.debug(f"Outcome {outcome.id} already recorded, ignoring replay")
            return FeedbackResult(outcome=existing, recommendation=rec, duplicate=True)

        if outcome.recommendation_id != recommendation_id:
            raise ValidationError(
                f"Outcome targets {outcome.recommendation_id}, not {recommendation_id}",
                field="recommendation_id",
            )
        if rec.status.is_terminal:
            raise ValidationError(
                f"Recommendation {rec.id} is {rec.status.value} and accepts no further outcomes",
                field="recommendation_id",
            )

        recorded_at = outcome.recorded_at or now
        outcome.recorded_at = recorded_at

        rec.progress.attempts += 1
        rec.progress.last_activity = recorded_at
        if outcome.outcome_type.is_positive:
            rec.progress.successes += 1
            rec.status = RecommendationStatus.COMPLETED

        self._update_style(profile, outcome)
        outcome.adaptive_insights = derive_adaptive_insights(rec, outcome)

        result = FeedbackResult(outcome=outcome, recommendation=rec)
        if outcome.outcome_type in (OutcomeType.NO_PROGRESS, OutcomeType.REGRESSION):
            adjustment = self.engine.create_adaptive_adjustment(rec, outcome, profile, now)
            recommendations.append(adjustment)
            result.adjustment = adjustment
            result.recompute_requested = True
            logger.info(f"{profile.user_id}: {outcome.outcome_type.value} on {rec.id}, created {adjustment.id}")

        outcomes.append(outcome)
        return result

    @staticmethod
    def _update_style(profile: LearningProfile, outcome: Outcome) -> None:
        style = profile.style
        if outcome.outcome_type == OutcomeType.SUCCESS:
            style.intrinsic_motivation = clamp(style.intrinsic_motivation + MOTIVATION_GAIN_ON_SUCCESS)
        elif outcome.outcome_type == OutcomeType.NO_PROGRESS:
            style.intrinsic_motivation = clamp(style.intrinsic_motivation - MOTIVATION_LOSS_ON_NO_PROGRESS)
        if outcome.feedback is not None:
            style.reward_responsiveness = clamp(
                style.reward_responsiveness + (outcome.feedback.engagement - 3) * REWARD_SENSITIVITY
            )


def derive_adaptive_insights(rec: Recommendation, outcome: Outcome) -> list[str]:
    """Short observations explaining how the plan should adapt."""
    insights: list[str] = []
    activity = rec.activity.name

    if outcome.outcome_type == OutcomeType.SUCCESS:
        insights.append(f"{activity} worked well; ready for a higher difficulty level")
    elif outcome.outcome_type == OutcomeType.PARTIAL_SUCCESS:
        insights.append(f"{activity} partially effective; keep the current level a little longer")
    elif outcome.outcome_type == OutcomeType.NO_PROGRESS:
        insights.append(f"No measurable progress with {activity}; adjusting the approach")
    else:
        insights.append(f"Performance declined during {activity}; increasing support")

    for metric in outcome.metrics:
        if metric.target > 0 and metric.achieved >= metric.target:
            insights.append(f"{metric.name} target met ({metric.achieved:g}/{metric.target:g})")
        elif metric.target > 0 and metric.achieved < metric.target * 0.5:
            insights.append(f"{metric.name} well below target ({metric.achieved:g}/{metric.target:g})")

    feedback = outcome.feedback
    if feedback is not None:
        if feedback.difficulty >= 4:
            insights.append("Activity felt too difficult; add scaffolding or lower difficulty")
        elif feedback.difficulty <= 2:
            insights.append("Activity felt too easy; consider increasing challenge")
        if feedback.enjoyment <= 2:
            insights.append(f"Low enjoyment; try a different modality than {rec.activity.modality}")
        elif feedback.enjoyment >= 4:
            insights.append(f"High enjoyment of {rec.activity.modality} activities")
        if feedback.engagement <= 2:
            insights.append("Low engagement; shorten sessions or add rewards")
    return insights


def prune_outcomes(outcomes: list[Outcome], now: datetime, history_days: int = 90) -> list[Outcome]:
    """Keep outcomes recorded within the last history_days."""
    cutoff = now - timedelta(days=history_days)
    return [o for o in outcomes if o.recorded_at is None or o.recorded_at >= cutoff]
