"""
Core Module - Shared domain models and interfaces.

Components:
- models: Event, LearningProfile, Pattern, FocusArea, Recommendation, Outcome
- errors: LearnLoopError hierarchy mapped to HTTP status codes by the API
- clock: Injectable time source (SystemClock, FixedClock)
- tunables: Heuristic constants, overridable through Settings

Design Principle:
All component packages (src/telemetry/, src/profile/, src/patterns/, ...)
import shared concepts from src/core/ rather than redefining them.
"""

from src.core.clock import Clock, FixedClock, SystemClock
from src.core.errors import (
    CollaboratorUnavailableError,
    InsightTimeoutError,
    InsufficientDataError,
    LearnLoopError,
    MalformedInsightResponseError,
    NotFoundError,
    OutOfOrderEventError,
    PersistenceError,
    ValidationError,
)
from src.core.tunables import Tunables

__all__ = [
    # Clock
    "Clock",
    "FixedClock",
    "SystemClock",
    # Errors
    "CollaboratorUnavailableError",
    "InsightTimeoutError",
    "InsufficientDataError",
    "LearnLoopError",
    "MalformedInsightResponseError",
    "NotFoundError",
    "OutOfOrderEventError",
    "PersistenceError",
    "ValidationError",
    # Tunables
    "Tunables",
]
