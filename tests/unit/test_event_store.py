"""
Unit tests for the append-only event log and batch reordering.
"""

from datetime import UTC, datetime, timedelta

import pytest

from src.core.errors import OutOfOrderEventError, ValidationError
from src.persistence.memory_store import InMemoryKeyValueStore
from src.persistence.repository import AnalyticsRepository
from src.telemetry.event_store import EventStore
from src.telemetry.reorder import ReorderBuffer

START = datetime(2026, 1, 5, 9, 0, tzinfo=UTC)


@pytest.fixture
def event_store(clock):
    return EventStore(AnalyticsRepository(InMemoryKeyValueStore()), clock, retention_days=180)


class TestAppend:
    def test_append_and_read_back(self, event_store, make_event):
        assert event_store.append(make_event("success"))
        assert event_store.append(make_event("error"))
        assert [e.id for e in event_store.events("learner-1")] == ["evt-0001", "evt-0002"]

    def test_duplicate_id_acknowledged_once(self, event_store, make_event):
        event = make_event("success")
        assert event_store.append(event) is True
        assert event_store.append(event) is False
        assert len(event_store.events("learner-1")) == 1

    def test_out_of_order_rejected(self, event_store, make_event):
        event_store.append(make_event("success", at=START + timedelta(hours=2)))
        with pytest.raises(OutOfOrderEventError):
            event_store.append(make_event("success", at=START + timedelta(hours=1)))

    def test_equal_timestamp_accepted(self, event_store, make_event):
        event_store.append(make_event("success", at=START))
        assert event_store.append(make_event("error", at=START))

    def test_event_outside_retention_rejected(self, event_store, make_event):
        with pytest.raises(ValidationError, match="retention"):
            event_store.append(make_event("success", at=START - timedelta(days=181)))

    def test_users_are_isolated(self, event_store, make_event):
        event_store.append(make_event("success", user="a", at=START + timedelta(hours=1)))
        event_store.append(make_event("success", user="b", at=START))
        assert len(event_store.events("a")) == 1
        assert len(event_store.events("b")) == 1


class TestQueries:
    def test_filters(self, event_store, make_event):
        event_store.append(make_event("success", tool="phonics", at=START))
        event_store.append(make_event("success", tool="math_games", at=START + timedelta(days=1)))
        event_store.append(make_event("error", tool="phonics", at=START + timedelta(days=2)))

        assert len(event_store.events("learner-1", since=START + timedelta(hours=12))) == 2
        assert len(event_store.events("learner-1", tool="phonics")) == 2
        assert [e.id for e in event_store.events("learner-1", limit=1)] == ["evt-0003"]
        assert event_store.events("learner-1", limit=0) == []


class TestPrune:
    def test_prune_drops_expired(self, event_store, clock, make_event):
        event_store.append(make_event("success", at=START - timedelta(days=100)))
        event_store.append(make_event("success", at=START))
        clock.advance(days=90)

        assert event_store.prune("learner-1") == 1
        assert [e.id for e in event_store.events("learner-1")] == ["evt-0002"]
        assert event_store.prune("learner-1") == 0


class TestReorderBuffer:
    def test_drain_sorts_by_timestamp_then_id(self, make_event):
        late = make_event("success", at=START + timedelta(minutes=5), event_id="b")
        early = make_event("success", at=START, event_id="z")
        tie = make_event("error", at=START + timedelta(minutes=5), event_id="a")

        buffer = ReorderBuffer([late, early, tie])

        assert [e.id for e in buffer.drain()] == ["z", "a", "b"]
        assert len(buffer) == 0

    def test_in_batch_duplicates(self, make_event):
        event = make_event("success")
        buffer = ReorderBuffer([event, event])
        assert buffer.duplicates == [event.id]
        assert len(buffer) == 1
