"""
Typed snapshot repository over a KeyValueStore.

Key layout (one whole snapshot per key, replaced on every commit):

    events/{user_id}            ordered event log
    profile/{user_id}           LearningProfile
    derived/{user_id}           patterns, focus run history and recommendations
    recindex/{rec_id}           owning user_id
    outcomes/{user_id}          recorded Outcomes
    bundles/{user_id}           recent Bundles
    schedule/{user_id}          next recompute due time
"""

from __future__ import annotations

from datetime import datetime

from src.core.clock import parse_timestamp
from src.core.models import Bundle, Event, FocusRun, LearningProfile, Outcome, Pattern, Recommendation
from src.persistence import codec
from src.persistence.base import KeyValueStore


class AnalyticsRepository:
    """Reads and writes engine snapshots through the codec."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    # ========================================
    # Internal helpers
    # ========================================

    def _read(self, key: str, kind: str):
        raw = self.store.get(key)
        if raw is None:
            return None
        return codec.decode(raw, kind)

    def _write(self, key: str, kind: str, data) -> None:
        self.store.put(key, codec.encode(kind, data))

    def _users_with(self, prefix: str) -> list[str]:
        return [key[len(prefix):] for key in self.store.list_keys(prefix)]

    # ========================================
    # Events
    # ========================================

    def load_events(self, user_id: str) -> list[Event]:
        data = self._read(f"events/{user_id}", "event_log") or []
        return [Event.from_dict(e) for e in data]

    def save_events(self, user_id: str, events: list[Event]) -> None:
        self._write(f"events/{user_id}", "event_log", [e.to_dict() for e in events])

    # ========================================
    # Profiles
    # ========================================

    def load_profile(self, user_id: str) -> LearningProfile | None:
        data = self._read(f"profile/{user_id}", "profile")
        return LearningProfile.from_dict(data) if data else None

    def save_profile(self, profile: LearningProfile) -> None:
        self._write(f"profile/{profile.user_id}", "profile", profile.to_dict())

    def list_users(self) -> list[str]:
        return self._users_with("profile/")

    # ========================================
    # Derived snapshot: patterns, focus history, recommendations
    # ========================================

    def _read_derived(self, user_id: str) -> dict:
        data = self._read(f"derived/{user_id}", "derived") or {}
        return {
            "patterns": data.get("patterns", []),
            "focus_runs": data.get("focus_runs", []),
            "recommendations": data.get("recommendations", []),
        }

    def load_patterns(self, user_id: str) -> list[Pattern]:
        return [Pattern.from_dict(p) for p in self._read_derived(user_id)["patterns"]]

    def load_focus_runs(self, user_id: str) -> list[FocusRun]:
        return [FocusRun.from_dict(r) for r in self._read_derived(user_id)["focus_runs"]]

    def load_recommendations(self, user_id: str) -> list[Recommendation]:
        return [Recommendation.from_dict(r) for r in self._read_derived(user_id)["recommendations"]]

    def save_derived(
        self,
        user_id: str,
        patterns: list[Pattern],
        focus_runs: list[FocusRun],
        recommendations: list[Recommendation],
    ) -> None:
        """Commit a whole recompute result with one put."""
        current = self._read_derived(user_id)
        self._commit_derived(
            user_id,
            current,
            {
                "patterns": [p.to_dict() for p in patterns],
                "focus_runs": [r.to_dict() for r in focus_runs],
                "recommendations": [r.to_dict() for r in recommendations],
            },
        )

    def save_recommendations(self, user_id: str, recommendations: list[Recommendation]) -> None:
        """Replace the recommendations, keeping patterns and focus history."""
        current = self._read_derived(user_id)
        self._commit_derived(
            user_id,
            current,
            {**current, "recommendations": [r.to_dict() for r in recommendations]},
        )

    def _commit_derived(self, user_id: str, current: dict, new: dict) -> None:
        before = {r["id"] for r in current["recommendations"]}
        after = {r["id"] for r in new["recommendations"]}

        # Every committed recommendation id has an index entry.
        for rec_id in sorted(after - before):
            self._write(f"recindex/{rec_id}", "recindex", user_id)
        self._write(f"derived/{user_id}", "derived", new)
        for rec_id in sorted(before - after):
            self.store.delete(f"recindex/{rec_id}")

    def find_recommendation_owner(self, recommendation_id: str) -> str | None:
        return self._read(f"recindex/{recommendation_id}", "recindex")

    # ========================================
    # Outcomes & bundles
    # ========================================

    def load_outcomes(self, user_id: str) -> list[Outcome]:
        data = self._read(f"outcomes/{user_id}", "outcomes") or []
        return [Outcome.from_dict(o) for o in data]

    def save_outcomes(self, user_id: str, outcomes: list[Outcome]) -> None:
        self._write(f"outcomes/{user_id}", "outcomes", [o.to_dict() for o in outcomes])

    def load_bundles(self, user_id: str) -> list[Bundle]:
        data = self._read(f"bundles/{user_id}", "bundles") or []
        return [Bundle.from_dict(b) for b in data]

    def save_bundles(self, user_id: str, bundles: list[Bundle]) -> None:
        self._write(f"bundles/{user_id}", "bundles", [b.to_dict() for b in bundles])

    # ========================================
    # Schedule
    # ========================================

    def load_due_time(self, user_id: str) -> datetime | None:
        value = self._read(f"schedule/{user_id}", "schedule")
        return parse_timestamp(value) if value else None

    def save_due_time(self, user_id: str, due: datetime | None) -> None:
        if due is None:
            self.store.delete(f"schedule/{user_id}")
            return
        self._write(f"schedule/{user_id}", "schedule", due.isoformat())

    def scheduled_users(self) -> list[str]:
        return self._users_with("schedule/")
