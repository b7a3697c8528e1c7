"""
Recommendation lifecycle endpoints.

GET  /recommendations/{id}
POST /recommendations/{id}/outcome   record an Outcome (201)
POST /recommendations/{id}/pause
POST /recommendations/{id}/resume
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from src.api.dependencies import get_service
from src.core.models import Outcome, OutcomeType, new_id
from src.engine.service import LearningAnalyticsService

router = APIRouter()


# ========================================
# Request Models
# ========================================


class MetricIn(BaseModel):
    name: str = Field(..., min_length=1)
    achieved: float
    target: float


class FeedbackIn(BaseModel):
    engagement: int = Field(3, ge=1, le=5)
    difficulty: int = Field(3, ge=1, le=5)
    enjoyment: int = Field(3, ge=1, le=5)


class OutcomeIn(BaseModel):
    """Request model for recording an outcome."""

    id: str | None = Field(None, description="Outcome id; replays with the same id are no-ops")
    outcome_type: OutcomeType
    metrics: list[MetricIn] = Field(default_factory=list)
    feedback: FeedbackIn | None = None
    recorded_at: datetime | None = None

    def to_outcome(self, recommendation_id: str) -> Outcome:
        data = self.model_dump(mode="json")
        data["id"] = self.id or new_id("outcome")
        data["recommendation_id"] = recommendation_id
        return Outcome.from_dict(data)


# ========================================
# Endpoints
# ========================================


@router.get("/{recommendation_id}")
def get_recommendation(
    recommendation_id: str,
    service: LearningAnalyticsService = Depends(get_service),
) -> dict[str, Any]:
    return service.get_recommendation(recommendation_id).to_dict()


@router.post("/{recommendation_id}/outcome", status_code=status.HTTP_201_CREATED)
def record_outcome(
    recommendation_id: str,
    body: OutcomeIn,
    service: LearningAnalyticsService = Depends(get_service),
) -> dict[str, Any]:
    """Record an outcome; no_progress/regression also yields an adaptive adjustment."""
    result = service.record_outcome(recommendation_id, body.to_outcome(recommendation_id))
    return result.to_dict()


@router.post("/{recommendation_id}/pause")
def pause_recommendation(
    recommendation_id: str,
    service: LearningAnalyticsService = Depends(get_service),
) -> dict[str, Any]:
    return service.pause(recommendation_id).to_dict()


@router.post("/{recommendation_id}/resume")
def resume_recommendation(
    recommendation_id: str,
    service: LearningAnalyticsService = Depends(get_service),
) -> dict[str, Any]:
    return service.resume(recommendation_id).to_dict()
