"""FastAPI dependencies shared by the routers."""

from __future__ import annotations

from fastapi import Request

from src.engine.service import LearningAnalyticsService


def get_service(request: Request) -> LearningAnalyticsService:
    """The service instance attached to the application at startup."""
    return request.app.state.service
