"""
FastAPI application for learnloop.

Provides REST API for:
- Telemetry ingestion
- Learner profiles and detected patterns
- Focus areas, ranked recommendations and time-boxed bundles
- Outcome feedback and recommendation lifecycle
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from config import Settings, get_settings
from src.core.errors import NotFoundError, PersistenceError, ValidationError
from src.core.log_setup import configure_logging
from src.engine.service import LearningAnalyticsService

VERSION = "0.1.0"


def _check_store_health(service: LearningAnalyticsService) -> tuple[str, str | None]:
    """
    Check key-value store connectivity.

    Returns:
        Tuple of (status, error_message). Status is "ok", "error" or "memory".
    """
    ping = getattr(service.store, "ping", None)
    if ping is None:
        return "memory", None
    return ping()


def create_app(
    service: LearningAnalyticsService | None = None,
    settings: Settings | None = None,
    start_worker: bool | None = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        service: Pre-built service (tests inject one backed by memory and a fixed clock)
        settings: Settings override, defaults to get_settings()
        start_worker: Run the recompute worker; defaults to settings.scheduler_enabled
    """
    settings = settings or get_settings()
    run_worker = settings.scheduler_enabled if start_worker is None else start_worker

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler for startup/shutdown events."""
        # Startup
        owns_service = service is None
        if owns_service:
            configure_logging(settings)
        logger.info("Starting learnloop service...")
        app.state.service = service or LearningAnalyticsService.from_settings(settings)

        stop = asyncio.Event()
        worker_task: asyncio.Task | None = None
        if run_worker:
            worker_task = asyncio.create_task(app.state.service.worker.run_forever(stop))
        logger.info(f"Service started on {settings.api_host}:{settings.api_port}")

        yield

        # Shutdown
        logger.info("Shutting down learnloop service...")
        if worker_task is not None:
            stop.set()
            await worker_task
        if owns_service:
            await app.state.service.aclose()

    app = FastAPI(
        title="learnloop",
        description="""
    Adaptive learning analytics and recommendation engine.

    ## Data Flow

    ```
    Telemetry events
        ↓ ingest
    Learning profile (mastery, sessions, style)
        ↓ scheduled recompute
    Patterns → Focus areas → Recommendations
        ↑ outcomes
    Feedback loop
    ```
    """,
        version=VERSION,
        lifespan=lifespan,
    )

    # CORS middleware for local development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ========================================
    # Error Mapping
    # ========================================

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "validation_error", "detail": str(exc), "field": exc.field},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "validation_error", "detail": jsonable_errors(exc)},
        )

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"error": "not_found", "detail": str(exc), "kind": exc.kind},
        )

    @app.exception_handler(PersistenceError)
    async def persistence_error_handler(request: Request, exc: PersistenceError) -> JSONResponse:
        logger.error(f"Persistence failure on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"error": "persistence_error", "detail": str(exc)},
        )

    # ========================================
    # Health & Status Endpoints
    # ========================================

    @app.get("/", tags=["Health"])
    def root() -> dict[str, str]:
        """Root endpoint returning service info."""
        return {
            "service": "learnloop",
            "version": VERSION,
            "status": "ok",
        }

    @app.get("/health", tags=["Health"])
    def health_check(request: Request) -> dict[str, Any]:
        """Health check with an actual store round-trip."""
        svc: LearningAnalyticsService = request.app.state.service
        store_status, store_error = _check_store_health(svc)

        result: dict[str, Any] = {
            "status": "unhealthy" if store_status == "error" else "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "components": {
                "store": store_status,
                "insight_service": "configured" if svc.insight_client is not None else "not_configured",
                "scheduler": "running" if run_worker else "disabled",
            },
        }
        if store_error:
            result["errors"] = {"store": store_error}
        return result

    @app.get("/config", tags=["Health"])
    def get_config() -> dict[str, Any]:
        """Get current configuration (non-sensitive)."""
        return {
            "insight": settings.get_insight_config(),
            "windows": settings.get_window_config(),
            "scheduler": settings.get_scheduler_config(),
        }

    # ========================================
    # Mount routers
    # ========================================

    from src.api.routers import events_router, recommendations_router, users_router

    app.include_router(events_router.router, prefix="/events", tags=["Events"])
    app.include_router(users_router.router, prefix="/users", tags=["Users"])
    app.include_router(recommendations_router.router, prefix="/recommendations", tags=["Recommendations"])

    return app


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    """Pydantic error entries reduced to JSON-safe fields."""
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]


app = create_app()
