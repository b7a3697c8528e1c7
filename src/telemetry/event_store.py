"""
Append-only per-user event log.

Events are kept ordered by (timestamp, id). A user's log only grows forward in
time: an event earlier than the newest stored event is rejected, a replay of a
known id is acknowledged without being stored twice.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from loguru import logger

from src.core.clock import Clock
from src.core.errors import OutOfOrderEventError, ValidationError
from src.core.models import Event
from src.persistence.repository import AnalyticsRepository


class EventStore:
    """Event log backed by the snapshot repository."""

    def __init__(self, repository: AnalyticsRepository, clock: Clock, retention_days: int = 180):
        self.repository = repository
        self.clock = clock
        self.retention_days = retention_days

    def retention_cutoff(self) -> datetime:
        return self.clock.now() - timedelta(days=self.retention_days)

    def check_retention(self, event: Event) -> None:
        """Reject events that would be pruned the moment they are stored."""
        if event.timestamp < self.retention_cutoff():
            raise ValidationError(
                f"Event {event.id} is older than the {self.retention_days}-day retention window",
                field="timestamp",
            )

    def append(self, event: Event) -> bool:
        """
        Append an event to its user's log.

        Returns:
            True if stored, False if the id was already present (idempotent replay)

        Raises:
            ValidationError: Event outside the retention window
            OutOfOrderEventError: Event earlier than the newest stored event
        """
        events = self.repository.load_events(event.user_id)
        if any(e.id == event.id for e in events):
            logger.debug(f"Duplicate event {event.id} for {event.user_id} ignored")
            return False

        self.check_retention(event)
        if events and event.timestamp < events[-1].timestamp:
            raise OutOfOrderEventError(
                f"Event {event.id} at {event.timestamp.isoformat()} is earlier than "
                f"the last applied event at {events[-1].timestamp.isoformat()}",
                field="timestamp",
            )

        events.append(event)
        self.repository.save_events(event.user_id, self._prune(events))
        return True

    def contains(self, user_id: str, event_id: str) -> bool:
        return any(e.id == event_id for e in self.repository.load_events(user_id))

    def events(
        self,
        user_id: str,
        since: datetime | None = None,
        tool: str | None = None,
        limit: int | None = None,
    ) -> list[Event]:
        """
        Read a user's events in timestamp order.

        Args:
            user_id: Learner identifier
            since: Only events at or after this time
            tool: Only events for this tool
            limit: Keep the most recent N matching events
        """
        events = self.repository.load_events(user_id)
        if since is not None:
            events = [e for e in events if e.timestamp >= since]
        if tool is not None:
            events = [e for e in events if e.tool_name == tool]
        if limit is not None:
            events = events[-limit:] if limit > 0 else []
        return events

    def prune(self, user_id: str) -> int:
        """Drop events older than the retention window. Returns the number removed."""
        events = self.repository.load_events(user_id)
        kept = self._prune(events)
        removed = len(events) - len(kept)
        if removed:
            self.repository.save_events(user_id, kept)
            logger.info(f"Pruned {removed} expired events for {user_id}")
        return removed

    def _prune(self, events: list[Event]) -> list[Event]:
        cutoff = self.retention_cutoff()
        return [e for e in events if e.timestamp >= cutoff]
