"""
Per-learner query endpoints.

Profile, patterns, ranked recommendations, bundles, focus history,
effectiveness metrics and on-demand recompute.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from src.api.dependencies import get_service
from src.core.models import Energy
from src.engine.service import LearningAnalyticsService

router = APIRouter()


@router.get("")
def list_users(service: LearningAnalyticsService = Depends(get_service)) -> dict[str, Any]:
    """All learners with a profile."""
    users = service.list_users()
    return {"users": users, "count": len(users)}


@router.get("/{user_id}/profile")
def get_profile(user_id: str, service: LearningAnalyticsService = Depends(get_service)) -> dict[str, Any]:
    return service.get_profile(user_id).to_dict()


@router.get("/{user_id}/patterns")
def get_patterns(user_id: str, service: LearningAnalyticsService = Depends(get_service)) -> dict[str, Any]:
    patterns = service.get_patterns(user_id)
    return {"user_id": user_id, "patterns": [p.to_dict() for p in patterns], "count": len(patterns)}


@router.get("/{user_id}/recommendations")
def get_recommendations(
    user_id: str,
    limit: int = Query(10, ge=1, le=100, description="Maximum recommendations"),
    energy: Energy | None = Query(None, description="Current energy level: high, medium, low"),
    available_minutes: int | None = Query(None, ge=1, le=240, description="Time available now"),
    include_inactive: bool = Query(False, description="Also return completed/paused/superseded"),
    service: LearningAnalyticsService = Depends(get_service),
) -> dict[str, Any]:
    """Ranked recommendations (score desc, newest first, id)."""
    recommendations = service.get_recommendations(
        user_id,
        limit=limit,
        energy=energy,
        available_minutes=available_minutes,
        include_inactive=include_inactive,
    )
    return {
        "user_id": user_id,
        "recommendations": [r.to_dict() for r in recommendations],
        "count": len(recommendations),
    }


@router.get("/{user_id}/bundle")
def get_bundle(
    user_id: str,
    focus: str | None = Query(None, description="Focus area to bundle for"),
    minutes: int = Query(..., ge=1, le=240, description="Time budget in minutes"),
    service: LearningAnalyticsService = Depends(get_service),
) -> dict[str, Any]:
    """Greedy time-boxed bundle that never exceeds the budget."""
    return service.get_bundle(user_id, focus, minutes).to_dict()


@router.get("/{user_id}/focus")
def get_focus_history(
    user_id: str,
    service: LearningAnalyticsService = Depends(get_service),
) -> dict[str, Any]:
    """Focus synthesis runs from the history window, newest last."""
    runs = service.get_focus_history(user_id)
    return {
        "user_id": user_id,
        "current": runs[-1].to_dict() if runs else None,
        "history": [r.to_dict() for r in runs],
    }


@router.get("/{user_id}/effectiveness")
def get_effectiveness(
    user_id: str,
    service: LearningAnalyticsService = Depends(get_service),
) -> dict[str, Any]:
    return {"user_id": user_id, **service.effectiveness(user_id)}


@router.post("/{user_id}/recompute")
async def recompute(user_id: str, service: LearningAnalyticsService = Depends(get_service)) -> dict[str, Any]:
    """Run pattern detection, focus synthesis and recommendation refresh now."""
    summary = await service.recompute_user(user_id)
    return summary.to_dict()
