"""
Unit tests for domain models and payload validation.
"""

from datetime import UTC, datetime

import pytest

from src.core.errors import ValidationError
from src.core.models import (
    EventKind,
    Event,
    LearningProfile,
    Outcome,
    OutcomeType,
    Priority,
    RecommendationStatus,
    Significance,
)


class TestEventFromDict:
    """Event payload parsing."""

    def test_full_payload(self, sample_event_payload):
        event = Event.from_dict(sample_event_payload)

        assert event.id == "evt-payload-001"
        assert event.event_kind == EventKind.SUCCESS
        assert event.timestamp == datetime(2026, 1, 5, 8, 30, tzinfo=UTC)
        assert event.performance.accuracy == 85.0
        assert event.environment.distractions == 1

    def test_minimal_payload_uses_defaults(self):
        event = Event.from_dict(
            {
                "id": "e1",
                "user_id": "u1",
                "timestamp": "2026-01-05T08:30:00+00:00",
                "tool_name": "math_games",
                "event_kind": "navigation",
            }
        )

        assert event.performance.accuracy is None
        assert event.performance.attempts == 1
        assert event.behavior.engagement == 50.0
        assert event.environment.time_of_day == "unknown"

    def test_naive_timestamp_is_utc(self, sample_event_payload):
        sample_event_payload["timestamp"] = "2026-01-05T08:30:00"
        event = Event.from_dict(sample_event_payload)
        assert event.timestamp.tzinfo is not None

    @pytest.mark.parametrize("missing", ["id", "user_id", "timestamp", "tool_name", "event_kind"])
    def test_missing_required_field(self, sample_event_payload, missing):
        del sample_event_payload[missing]
        with pytest.raises(ValidationError) as exc_info:
            Event.from_dict(sample_event_payload)
        assert exc_info.value.field == missing

    def test_unknown_event_kind(self, sample_event_payload):
        sample_event_payload["event_kind"] = "teleport"
        with pytest.raises(ValidationError, match="event_kind"):
            Event.from_dict(sample_event_payload)

    def test_accuracy_out_of_range(self, sample_event_payload):
        sample_event_payload["performance"]["accuracy"] = 140
        with pytest.raises(ValidationError) as exc_info:
            Event.from_dict(sample_event_payload)
        assert exc_info.value.field == "performance.accuracy"

    def test_zero_attempts_rejected(self, sample_event_payload):
        sample_event_payload["performance"]["attempts"] = 0
        with pytest.raises(ValidationError):
            Event.from_dict(sample_event_payload)

    def test_bad_timestamp(self, sample_event_payload):
        sample_event_payload["timestamp"] = "yesterday"
        with pytest.raises(ValidationError, match="timestamp"):
            Event.from_dict(sample_event_payload)

    def test_only_success_and_error_are_graded(self):
        graded = {kind for kind in EventKind if kind.is_graded}
        assert graded == {EventKind.SUCCESS, EventKind.ERROR}


class TestOutcomeFromDict:
    """Outcome payload parsing."""

    def test_feedback_out_of_range(self):
        with pytest.raises(ValidationError) as exc_info:
            Outcome.from_dict(
                {
                    "id": "o1",
                    "recommendation_id": "rec_1",
                    "outcome_type": "success",
                    "feedback": {"engagement": 6, "difficulty": 3, "enjoyment": 3},
                }
            )
        assert exc_info.value.field == "feedback.engagement"

    def test_recorded_at_is_optional(self):
        outcome = Outcome.from_dict(
            {"id": "o1", "recommendation_id": "rec_1", "outcome_type": "partial_success"}
        )
        assert outcome.recorded_at is None
        assert outcome.outcome_type.is_positive

    def test_regression_is_not_positive(self):
        assert not OutcomeType.REGRESSION.is_positive
        assert not OutcomeType.NO_PROGRESS.is_positive


class TestOrdering:
    """Enum ranks used for sorting."""

    def test_priority_rank(self):
        ranked = sorted(Priority, key=lambda p: p.rank)
        assert ranked == [Priority.LOW, Priority.MEDIUM, Priority.HIGH, Priority.CRITICAL]

    def test_significance_rank(self):
        assert Significance.CRITICAL.rank > Significance.HIGH.rank > Significance.MODERATE.rank

    def test_terminal_statuses(self):
        assert RecommendationStatus.COMPLETED.is_terminal
        assert RecommendationStatus.SUPERSEDED.is_terminal
        assert not RecommendationStatus.PAUSED.is_terminal


class TestProfileSerialization:
    def test_profile_survives_round_trip(self, make_event):
        from src.profile.maintainer import ProfileMaintainer

        maintainer = ProfileMaintainer()
        profile = None
        for kind in ("start", "success", "error", "success", "complete"):
            profile = maintainer.apply(profile, make_event(kind, accuracy=90 if kind == "success" else None))

        restored = LearningProfile.from_dict(profile.to_dict())

        assert restored.to_dict() == profile.to_dict()
        assert restored.skills["phonics"].successes == 2
        assert restored.current_session.goals_completed == 1
