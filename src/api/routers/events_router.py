"""
Telemetry ingestion endpoints.

POST /events        one event, 201 with {"event_id", "applied"}
POST /events/batch  many events, reordered by timestamp before application
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from src.api.dependencies import get_service
from src.core.models import Event, EventKind
from src.engine.service import LearningAnalyticsService

router = APIRouter()


# ========================================
# Request Models
# ========================================


class PerformanceIn(BaseModel):
    accuracy: float | None = Field(None, ge=0, le=100, description="Percent correct (0-100)")
    latency_ms: float | None = Field(None, ge=0, description="Response latency in milliseconds")
    attempts: int = Field(1, ge=1, description="Attempts needed")
    difficulty: int = Field(1, ge=1, le=5, description="Difficulty level (1-5)")


class BehaviorIn(BaseModel):
    engagement: float = Field(50.0, ge=0, le=100)
    frustration: float = Field(0.0, ge=0, le=100)
    persistence: float = Field(50.0, ge=0, le=100)
    attention: float = Field(50.0, ge=0, le=100)
    mood: str = "neutral"


class EnvironmentIn(BaseModel):
    time_of_day: str = "unknown"
    location: str | None = None
    distractions: int | None = Field(None, ge=0)


class EventIn(BaseModel):
    """Request model for a telemetry event."""

    id: str = Field(..., min_length=1, description="Client-generated unique event id")
    user_id: str = Field(..., min_length=1)
    timestamp: datetime
    tool_name: str = Field(..., min_length=1)
    event_kind: EventKind
    performance: PerformanceIn = Field(default_factory=PerformanceIn)
    behavior: BehaviorIn = Field(default_factory=BehaviorIn)
    environment: EnvironmentIn = Field(default_factory=EnvironmentIn)

    def to_event(self) -> Event:
        return Event.from_dict(self.model_dump(mode="json"))


class EventBatchIn(BaseModel):
    events: list[EventIn] = Field(..., min_length=1, max_length=5000)


# ========================================
# Endpoints
# ========================================


@router.post("", status_code=status.HTTP_201_CREATED)
def ingest_event(
    body: EventIn,
    service: LearningAnalyticsService = Depends(get_service),
) -> dict[str, Any]:
    """Append an event and fold it into the learner's profile."""
    return service.ingest_event(body.to_event()).to_dict()


@router.post("/batch")
def ingest_batch(
    body: EventBatchIn,
    service: LearningAnalyticsService = Depends(get_service),
) -> dict[str, Any]:
    """Apply a batch in timestamp order; invalid events are reported per id."""
    return service.ingest_batch([e.to_event() for e in body.events]).to_dict()
