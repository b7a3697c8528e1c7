"""
Recompute scheduling.

Downstream state (patterns, focus, recommendations) is recomputed by a
scheduled job rather than on each request. The engine only calls
schedule(user_id, not_before); QueueScheduler keeps due times in the
key-value store so pending work survives restarts.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from datetime import datetime

from src.persistence.repository import AnalyticsRepository


class Scheduler(ABC):
    @abstractmethod
    def schedule(self, user_id: str, not_before: datetime) -> datetime:
        """Request a recompute no later than not_before. Returns the effective due time."""

    @abstractmethod
    def due(self, now: datetime) -> list[str]:
        """Users whose recompute is due at now."""

    @abstractmethod
    def next_due(self, user_id: str) -> datetime | None:
        """Pending due time for a user, if any."""

    @abstractmethod
    def clear(self, user_id: str) -> None:
        """Drop a user's pending recompute."""


class QueueScheduler(Scheduler):
    """Work queue persisted under schedule/{user_id} keys."""

    def __init__(self, repository: AnalyticsRepository):
        self.repository = repository
        self._lock = threading.Lock()

    def schedule(self, user_id: str, not_before: datetime) -> datetime:
        """An earlier pending run wins over a later request."""
        with self._lock:
            pending = self.repository.load_due_time(user_id)
            if pending is not None and pending <= not_before:
                return pending
            self.repository.save_due_time(user_id, not_before)
            return not_before

    def due(self, now: datetime) -> list[str]:
        with self._lock:
            users = []
            for user_id in self.repository.scheduled_users():
                pending = self.repository.load_due_time(user_id)
                if pending is not None and pending <= now:
                    users.append(user_id)
            return users

    def next_due(self, user_id: str) -> datetime | None:
        return self.repository.load_due_time(user_id)

    def clear(self, user_id: str) -> None:
        with self._lock:
            self.repository.save_due_time(user_id, None)

    def clear_if_not_after(self, user_id: str, due: datetime) -> None:
        """Clear only if nothing was rescheduled later while a run was in flight."""
        with self._lock:
            pending = self.repository.load_due_time(user_id)
            if pending is not None and pending <= due:
                self.repository.save_due_time(user_id, None)
