"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import itertools
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.core.clock import FixedClock  # noqa: E402
from src.core.models import (  # noqa: E402
    Activity,
    Behavior,
    Event,
    EventKind,
    Performance,
    Priority,
    Recommendation,
    RecommendationStatus,
    RecommendationType,
    Timing,
)
from src.core.tunables import Tunables  # noqa: E402
from src.engine.service import LearningAnalyticsService  # noqa: E402
from src.persistence.memory_store import InMemoryKeyValueStore  # noqa: E402

START = datetime(2026, 1, 5, 9, 0, tzinfo=UTC)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (in-process service)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def clock():
    """Clock pinned to Monday 2026-01-05 09:00 UTC."""
    return FixedClock(START)


@pytest.fixture
def tunables():
    return Tunables()


@pytest.fixture
def service(clock, tunables):
    """Service on an in-memory store with no narrative collaborator."""
    return LearningAnalyticsService(InMemoryKeyValueStore(), tunables=tunables, clock=clock)


@pytest.fixture
def make_event():
    """
    Factory for events spaced one minute apart by default.

    Usage:
        make_event("success", accuracy=90)
        make_event("error", tool="phonics", at=START + timedelta(hours=1))
    """
    counter = itertools.count(1)

    def _make(
        kind: str = "success",
        tool: str = "phonics",
        user: str = "learner-1",
        accuracy: float | None = None,
        latency_ms: float | None = None,
        attempts: int = 1,
        at: datetime | None = None,
        event_id: str | None = None,
        engagement: float = 60.0,
    ) -> Event:
        n = next(counter)
        return Event(
            id=event_id or f"evt-{n:04d}",
            user_id=user,
            timestamp=at or START + timedelta(minutes=n),
            tool_name=tool,
            event_kind=EventKind(kind),
            performance=Performance(accuracy=accuracy, latency_ms=latency_ms, attempts=attempts),
            behavior=Behavior(engagement=engagement),
        )

    return _make


@pytest.fixture
def sample_event_payload():
    """Provide a raw event payload as the telemetry collector sends it."""
    return {
        "id": "evt-payload-001",
        "user_id": "learner-1",
        "timestamp": "2026-01-05T08:30:00Z",
        "tool_name": "memory_games",
        "event_kind": "success",
        "performance": {"accuracy": 85, "latency_ms": 1200, "attempts": 1, "difficulty": 2},
        "behavior": {"engagement": 70, "frustration": 10, "persistence": 60, "attention": 65, "mood": "happy"},
        "environment": {"time_of_day": "morning", "location": "home", "distractions": 1},
    }


@pytest.fixture
def make_recommendation():
    """
    Factory for active recommendations with sensible defaults.

    Usage:
        make_recommendation(confidence=0.9, minutes=15)
        make_recommendation(rec_type="long_term_pathway", skills=("phonics",))
    """
    counter = itertools.count(1)

    def _make(
        confidence: float = 0.5,
        minutes: int = 20,
        priority: str = "high",
        rec_type: str = "short_term_goal",
        focus_area: str = "phonics skill building",
        activity_name: str = "Phonics Tile Building",
        skills: tuple[str, ...] = ("phonics",),
        difficulty: int = 2,
        status: str = "active",
        generated_at: datetime | None = None,
        score: float | None = None,
        rec_id: str | None = None,
    ) -> Recommendation:
        n = next(counter)
        rec = Recommendation(
            id=rec_id or f"rec-{n:03d}",
            user_id="learner-1",
            type=RecommendationType(rec_type),
            priority=Priority(priority),
            confidence=confidence,
            title=f"{activity_name}: {focus_area}",
            description=f"{activity_name} targeting {focus_area}.",
            focus_area=focus_area,
            activity=Activity(
                name=activity_name,
                game_type="phonics_tiles",
                modality="kinesthetic",
                target_skills=list(skills),
                difficulty=difficulty,
            ),
            timing=Timing(duration_minutes=minutes),
            generated_at=generated_at or START,
            status=RecommendationStatus(status),
        )
        rec.score = confidence if score is None else score
        return rec

    return _make
