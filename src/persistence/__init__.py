"""
Persistence - abstract key-value storage plus typed snapshot repository.

Stores:
- InMemoryKeyValueStore: process-local, for tests and demos
- SqlKeyValueStore: SQLAlchemy table kv_entries (any SQL URL)
"""

from src.persistence.base import KeyValueStore
from src.persistence.memory_store import InMemoryKeyValueStore
from src.persistence.repository import AnalyticsRepository
from src.persistence.sql_store import SqlKeyValueStore

__all__ = [
    "AnalyticsRepository",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "SqlKeyValueStore",
]
