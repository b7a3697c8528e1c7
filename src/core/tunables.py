"""
Heuristic constants used by detection, synthesis and ranking.

The defaults reproduce the reference behaviour. None of them has a derivation
behind it, so every value is overridable through Settings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from config import Settings


DEFAULT_BREAKTHROUGH_BASE_SCORES: dict[str, int] = {
    "first_success": 8,
    "consistency_achieved": 7,
    "level_up": 9,
    "speed_improvement": 6,
    "independence_gained": 10,
}

DEFAULT_PRIORITY_WEIGHTS: dict[str, int] = {
    "critical": 4,
    "high": 3,
    "medium": 2,
    "low": 1,
}


@dataclass(frozen=True)
class Tunables:
    """Frozen bag of engine parameters."""

    # Profile maintenance
    mastery_success_gain: float = 2.0
    mastery_failure_penalty: float = 1.0
    default_accuracy: float = 80.0
    level_step: float = 20.0
    max_level: int = 5
    session_gap_minutes: int = 30
    improvement_window_sessions: int = 5
    session_history_limit: int = 50

    # Pattern detection
    strength_threshold: float = 80.0
    challenge_threshold: float = 40.0
    confidence_saturation_sessions: int = 25
    min_events_for_trends: int = 5
    pattern_window_events: int = 20
    pattern_window_days: int = 30
    first_success_min_failures: int = 3
    prior_attempts_bonus_threshold: int = 10
    prior_attempts_bonus: int = 2
    regression_drop_threshold: float = 10.0
    speed_improvement_ratio: float = 0.7
    speed_trailing_events: int = 10
    breakthrough_base_scores: dict[str, int] = field(
        default_factory=lambda: dict(DEFAULT_BREAKTHROUGH_BASE_SCORES)
    )

    # Focus synthesis
    max_focus_areas: int = 5
    max_challenge_focus: int = 3
    inactivity_days: int = 7
    near_breakthrough_low: float = 60.0
    near_breakthrough_high: float = 80.0
    focus_history_days: int = 30

    # Recommendations
    priority_weights: dict[str, int] = field(
        default_factory=lambda: dict(DEFAULT_PRIORITY_WEIGHTS)
    )
    max_style_factor: float = 1.2
    max_active_recommendations: int = 10
    recommendation_max_age_days: int = 30
    recommendation_history_days: int = 90
    default_session_minutes: int = 20

    # Retention
    event_retention_days: int = 180

    @classmethod
    def from_settings(cls, settings: Settings) -> Tunables:
        """
        Build tunables from application settings.

        Score tables are merged over the defaults, so an override may name
        only the entries it changes.
        """
        return cls(
            mastery_success_gain=settings.mastery_success_gain,
            mastery_failure_penalty=settings.mastery_failure_penalty,
            default_accuracy=settings.default_accuracy,
            level_step=settings.level_step,
            session_gap_minutes=settings.session_gap_minutes,
            strength_threshold=settings.strength_threshold,
            challenge_threshold=settings.challenge_threshold,
            confidence_saturation_sessions=settings.confidence_saturation_sessions,
            min_events_for_trends=settings.min_events_for_trends,
            pattern_window_events=settings.pattern_window_events,
            pattern_window_days=settings.pattern_window_days,
            first_success_min_failures=settings.first_success_min_failures,
            prior_attempts_bonus_threshold=settings.prior_attempts_bonus_threshold,
            prior_attempts_bonus=settings.prior_attempts_bonus,
            regression_drop_threshold=settings.regression_drop_threshold,
            speed_improvement_ratio=settings.speed_improvement_ratio,
            breakthrough_base_scores={**DEFAULT_BREAKTHROUGH_BASE_SCORES, **settings.breakthrough_base_scores},
            max_focus_areas=settings.max_focus_areas,
            max_challenge_focus=settings.max_challenge_focus,
            inactivity_days=settings.inactivity_days,
            near_breakthrough_low=settings.near_breakthrough_low,
            near_breakthrough_high=settings.near_breakthrough_high,
            focus_history_days=settings.focus_history_days,
            priority_weights={**DEFAULT_PRIORITY_WEIGHTS, **settings.priority_weights},
            max_style_factor=settings.max_style_factor,
            max_active_recommendations=settings.max_active_recommendations,
            recommendation_max_age_days=settings.recommendation_max_age_days,
            recommendation_history_days=settings.recommendation_history_days,
            default_session_minutes=settings.default_session_minutes,
            event_retention_days=settings.event_retention_days,
        )
