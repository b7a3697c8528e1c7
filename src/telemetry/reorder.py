"""Ordering of batched telemetry before it reaches the profile maintainer."""

from __future__ import annotations

from collections.abc import Iterable

from src.core.models import Event


class ReorderBuffer:
    """
    Collects a batch of events and releases them in application order.

    Events are sorted by (timestamp, id) and in-batch duplicates (same id) are
    dropped, keeping the first occurrence.
    """

    def __init__(self, events: Iterable[Event] | None = None):
        self._events: dict[str, Event] = {}
        self.duplicates: list[str] = []
        for event in events or []:
            self.add(event)

    def add(self, event: Event) -> bool:
        if event.id in self._events:
            self.duplicates.append(event.id)
            return False
        self._events[event.id] = event
        return True

    def drain(self) -> list[Event]:
        """Return buffered events in order and empty the buffer."""
        ordered = sorted(self._events.values(), key=lambda e: (e.timestamp, e.id))
        self._events.clear()
        return ordered

    def __len__(self) -> int:
        return len(self._events)
