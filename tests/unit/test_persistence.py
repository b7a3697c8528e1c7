"""
Unit tests for the key-value stores, snapshot codec and repository.
"""

from datetime import UTC, datetime, timedelta

import pytest

from src.core.errors import PersistenceError
from src.core.models import FocusRun
from src.persistence import codec
from src.persistence.memory_store import InMemoryKeyValueStore
from src.persistence.repository import AnalyticsRepository
from src.persistence.sql_store import SqlKeyValueStore


START = datetime(2026, 1, 5, 9, 0, tzinfo=UTC)


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    """Both store implementations behave the same."""
    if request.param == "memory":
        yield InMemoryKeyValueStore()
    else:
        sql_store = SqlKeyValueStore(f"sqlite:///{tmp_path / 'kv.db'}")
        yield sql_store
        sql_store.close()


class TestKeyValueStore:
    def test_get_missing_returns_none(self, store):
        assert store.get("profile/nobody") is None

    def test_put_replaces_value(self, store):
        store.put("profile/u1", b"one")
        store.put("profile/u1", b"two")
        assert store.get("profile/u1") == b"two"

    def test_list_keys_by_prefix(self, store):
        store.put("profile/a", b"1")
        store.put("profile/b", b"2")
        store.put("patterns/a", b"3")
        assert store.list_keys("profile/") == ["profile/a", "profile/b"]

    def test_prefix_wildcards_are_literal(self, store):
        store.put("profile/a_b", b"1")
        store.put("profile/axb", b"2")
        assert store.list_keys("profile/a_") == ["profile/a_b"]

    def test_delete(self, store):
        store.put("schedule/u1", b"x")
        store.delete("schedule/u1")
        store.delete("schedule/u1")
        assert store.get("schedule/u1") is None


class TestSqlStore:
    def test_ping(self, tmp_path):
        store = SqlKeyValueStore(f"sqlite:///{tmp_path / 'kv.db'}")
        assert store.ping() == ("ok", None)
        store.close()

    def test_requires_url_or_engine(self):
        with pytest.raises(PersistenceError):
            SqlKeyValueStore()

    def test_data_survives_reopen(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'kv.db'}"
        first = SqlKeyValueStore(url)
        first.put("profile/u1", b"payload")
        first.close()

        second = SqlKeyValueStore(url)
        assert second.get("profile/u1") == b"payload"
        second.close()


class TestCodec:
    def test_envelope_contains_version_and_kind(self):
        raw = codec.encode("profile", {"user_id": "u1"})
        assert b'"schema_version":1' in raw
        assert codec.decode(raw, "profile") == {"user_id": "u1"}

    def test_wrong_kind(self):
        raw = codec.encode("patterns", [])
        with pytest.raises(PersistenceError, match="Expected a profile"):
            codec.decode(raw, "profile")

    def test_corrupt_payload(self):
        with pytest.raises(PersistenceError, match="Corrupt"):
            codec.decode(b"{not json", "profile")

    def test_future_version_rejected(self):
        raw = b'{"schema_version": 99, "kind": "profile", "data": {}}'
        with pytest.raises(PersistenceError, match="Unknown schema_version"):
            codec.decode(raw, "profile")

    def test_migration_applied_on_read(self):
        @codec.register_migration("test_widget", 1)
        def _add_color(data):
            return {**data, "color": "blue"}

        raw = codec.encode("test_widget", {"name": "w"})
        assert codec.decode(raw, "test_widget", target_version=2) == {"name": "w", "color": "blue"}

    def test_missing_migration(self):
        raw = codec.encode("unmigrated", {})
        with pytest.raises(PersistenceError, match="No migration"):
            codec.decode(raw, "unmigrated", target_version=2)


class TestRepository:
    def test_events_round_trip(self, make_event):
        repo = AnalyticsRepository(InMemoryKeyValueStore())
        events = [make_event("success", accuracy=80), make_event("error")]
        repo.save_events("learner-1", events)
        assert [e.id for e in repo.load_events("learner-1")] == ["evt-0001", "evt-0002"]

    def test_unknown_user_has_no_profile(self):
        repo = AnalyticsRepository(InMemoryKeyValueStore())
        assert repo.load_profile("ghost") is None
        assert repo.load_patterns("ghost") == []

    def test_due_time_cleared_with_none(self, clock):
        repo = AnalyticsRepository(InMemoryKeyValueStore())
        due = clock.now() + timedelta(hours=1)
        repo.save_due_time("u1", due)
        assert repo.load_due_time("u1") == due
        assert repo.scheduled_users() == ["u1"]

        repo.save_due_time("u1", None)
        assert repo.load_due_time("u1") is None
        assert repo.scheduled_users() == []


class CountingStore(InMemoryKeyValueStore):
    def __init__(self):
        super().__init__()
        self.puts: list[str] = []

    def put(self, key, value):
        self.puts.append(key)
        super().put(key, value)


class TestDerivedSnapshot:
    def test_recompute_result_is_one_put(self, make_recommendation):
        store = CountingStore()
        repo = AnalyticsRepository(store)
        recs = [make_recommendation(rec_id="rec-a"), make_recommendation(rec_id="rec-b")]

        repo.save_derived("learner-1", [], [], recs)

        assert [k for k in store.puts if not k.startswith("recindex/")] == ["derived/learner-1"]
        assert [r.id for r in repo.load_recommendations("learner-1")] == ["rec-a", "rec-b"]

    def test_index_written_only_for_new_ids(self, make_recommendation):
        store = CountingStore()
        repo = AnalyticsRepository(store)
        a, b = make_recommendation(rec_id="rec-a"), make_recommendation(rec_id="rec-b")

        repo.save_recommendations("learner-1", [a])
        repo.save_recommendations("learner-1", [a, b])

        assert [k for k in store.puts if k.startswith("recindex/")] == ["recindex/rec-a", "recindex/rec-b"]

    def test_dropped_recommendation_loses_index_entry(self, make_recommendation):
        repo = AnalyticsRepository(InMemoryKeyValueStore())
        a, b = make_recommendation(rec_id="rec-a"), make_recommendation(rec_id="rec-b")
        repo.save_recommendations("learner-1", [a, b])

        repo.save_recommendations("learner-1", [b])

        assert repo.find_recommendation_owner("rec-a") is None
        assert repo.find_recommendation_owner("rec-b") == "learner-1"

    def test_saving_recommendations_keeps_patterns_and_focus(self, make_recommendation):
        repo = AnalyticsRepository(InMemoryKeyValueStore())
        run = FocusRun(id="focus-1", user_id="learner-1", created_at=START, areas=[])
        repo.save_derived("learner-1", [], [run], [make_recommendation(rec_id="rec-a")])

        repo.save_recommendations("learner-1", [])

        assert [r.id for r in repo.load_focus_runs("learner-1")] == ["focus-1"]
        assert repo.load_recommendations("learner-1") == []
