"""
Configuration settings for the learnloop analytics service.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Any, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.core.tunables import DEFAULT_BREAKTHROUGH_BASE_SCORES, DEFAULT_PRIORITY_WEIGHTS


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="LEARNLOOP_",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Database
    # ========================================
    database_url: str = Field(
        default="sqlite:///./learnloop.db",
        description="SQLAlchemy URL backing the key-value store",
    )
    use_memory_store: bool = Field(
        default=False,
        description="Keep all state in process memory (tests, demos)",
    )

    # ========================================
    # Narrative Insight Service
    # ========================================
    insight_service_url: str | None = Field(
        default=None,
        description="Base URL of the narrative-insight generator (None disables it)",
    )
    insight_api_key: str | None = Field(
        default=None,
        description="API key sent as X-API-Key to the insight service",
    )
    insight_timeout_seconds: float = Field(
        default=8.0,
        ge=1.0,
        le=30.0,
        description="Per-call timeout for the insight service",
    )
    insight_cache_ttl_seconds: int = Field(
        default=6 * 60 * 60,
        description="How long a cached narrative analysis stays valid",
    )
    insight_cache_max_entries: int = Field(
        default=512,
        description="Maximum cached narrative analyses",
    )

    # ========================================
    # Retention & Windows
    # ========================================
    event_retention_days: int = Field(
        default=180,
        description="Events older than this are pruned and rejected at ingestion",
    )
    pattern_window_events: int = Field(
        default=20,
        description="Events per tool considered by the pattern detector",
    )
    pattern_window_days: int = Field(
        default=30,
        description="Days of history considered by the pattern detector",
    )
    session_gap_minutes: int = Field(
        default=30,
        description="Inactivity gap that closes a session",
    )
    recommendation_max_age_days: int = Field(
        default=30,
        description="Active recommendations older than this become superseded",
    )
    focus_history_days: int = Field(
        default=30,
        description="How long focus synthesis runs are kept for audit",
    )
    recommendation_history_days: int = Field(
        default=90,
        description="Completed/superseded recommendations and their outcomes are pruned after this",
    )

    # ========================================
    # Scheduler
    # ========================================
    scheduler_enabled: bool = Field(
        default=True,
        description="Run the recompute worker inside the API process",
    )
    recompute_interval_hours: float = Field(
        default=12.0,
        ge=1.0,
        le=24.0,
        description="Periodic recompute interval per active user",
    )
    scheduler_poll_seconds: float = Field(
        default=60.0,
        description="How often the worker checks for due users",
    )

    # ========================================
    # Heuristic Constants (tunable)
    # ========================================
    mastery_success_gain: float = Field(
        default=2.0,
        description="Mastery points per fully accurate success",
    )
    mastery_failure_penalty: float = Field(
        default=1.0,
        description="Mastery points lost per failure",
    )
    level_step: float = Field(
        default=20.0,
        description="Mastery points required per level",
    )
    strength_threshold: float = Field(
        default=80.0,
        description="Mastery above which a skill is a strength",
    )
    challenge_threshold: float = Field(
        default=40.0,
        description="Mastery below which a skill is a challenge",
    )
    confidence_saturation_sessions: int = Field(
        default=25,
        description="Practice count at which strength/challenge confidence saturates",
    )
    min_events_for_trends: int = Field(
        default=5,
        description="Minimum events on a skill before trend patterns are detected",
    )
    regression_drop_threshold: float = Field(
        default=10.0,
        description="Accuracy drop (points) that raises a regression warning",
    )
    speed_improvement_ratio: float = Field(
        default=0.7,
        description="Latency ratio vs trailing average that counts as a speed breakthrough",
    )
    inactivity_days: int = Field(
        default=7,
        description="Days without practice before a reinforcement focus area",
    )
    max_focus_areas: int = Field(
        default=5,
        description="Maximum focus areas per synthesis run",
    )
    max_active_recommendations: int = Field(
        default=10,
        description="Active recommendations kept per user",
    )
    default_session_minutes: int = Field(
        default=20,
        description="Initial optimal session length for new learners",
    )
    default_accuracy: float = Field(
        default=80.0,
        ge=0.0,
        le=100.0,
        description="Accuracy assumed for a success event that reports none",
    )
    first_success_min_failures: int = Field(
        default=3,
        description="Consecutive failures before a success counts as a first success",
    )
    breakthrough_base_scores: dict[str, int] = Field(
        default_factory=lambda: dict(DEFAULT_BREAKTHROUGH_BASE_SCORES),
        description="Base score (0-10) per breakthrough kind; JSON object, merged over the defaults",
    )
    prior_attempts_bonus_threshold: int = Field(
        default=10,
        description="Prior attempts above which a breakthrough earns the bonus",
    )
    prior_attempts_bonus: int = Field(
        default=2,
        description="Score bonus for breakthroughs after many prior attempts",
    )
    max_challenge_focus: int = Field(
        default=3,
        description="Challenge-driven focus areas per synthesis run",
    )
    near_breakthrough_low: float = Field(
        default=60.0,
        description="Lower mastery bound of the near-breakthrough band",
    )
    near_breakthrough_high: float = Field(
        default=80.0,
        description="Upper mastery bound of the near-breakthrough band",
    )
    priority_weights: dict[str, int] = Field(
        default_factory=lambda: dict(DEFAULT_PRIORITY_WEIGHTS),
        description="Score weight per priority; JSON object, merged over the defaults",
    )
    max_style_factor: float = Field(
        default=1.2,
        ge=1.0,
        description="Cap on the learning-style match multiplier",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default="logs/learnloop.log",
        description="Log file path (None for stderr only)",
    )

    # ========================================
    # API Server
    # ========================================
    api_host: str = Field(
        default="127.0.0.1",
        description="API server host",
    )
    api_port: int = Field(
        default=8100,
        description="API server port",
    )

    # ========================================
    # Helper Methods
    # ========================================
    def has_insight_service(self) -> bool:
        """Check if the narrative-insight collaborator is configured."""
        return bool(self.insight_service_url)

    def get_insight_config(self) -> dict[str, Any]:
        """Get narrative-insight configuration as a dictionary (no secrets)."""
        return {
            "configured": self.has_insight_service(),
            "url": self.insight_service_url,
            "timeout_seconds": self.insight_timeout_seconds,
            "cache_ttl_seconds": self.insight_cache_ttl_seconds,
            "cache_max_entries": self.insight_cache_max_entries,
        }

    def get_window_config(self) -> dict[str, Any]:
        """Get retention and analysis window configuration as a dictionary."""
        return {
            "event_retention_days": self.event_retention_days,
            "pattern_window_events": self.pattern_window_events,
            "pattern_window_days": self.pattern_window_days,
            "session_gap_minutes": self.session_gap_minutes,
            "recommendation_max_age_days": self.recommendation_max_age_days,
            "focus_history_days": self.focus_history_days,
            "recommendation_history_days": self.recommendation_history_days,
        }

    def get_scheduler_config(self) -> dict[str, Any]:
        """Get recompute scheduler configuration as a dictionary."""
        return {
            "enabled": self.scheduler_enabled,
            "interval_hours": self.recompute_interval_hours,
            "poll_seconds": self.scheduler_poll_seconds,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
