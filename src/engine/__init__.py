"""Service facade wiring all analytics components."""

from src.engine.service import (
    BatchIngestResult,
    IngestResult,
    LearningAnalyticsService,
    RecomputeSummary,
)

__all__ = ["BatchIngestResult", "IngestResult", "LearningAnalyticsService", "RecomputeSummary"]
