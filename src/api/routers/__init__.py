"""API routers for learnloop."""

from src.api.routers import events_router, recommendations_router, users_router

__all__ = [
    "events_router",
    "recommendations_router",
    "users_router",
]
