"""Telemetry ingestion: the per-user event log and batch reordering."""

from src.telemetry.event_store import EventStore
from src.telemetry.reorder import ReorderBuffer

__all__ = ["EventStore", "ReorderBuffer"]
