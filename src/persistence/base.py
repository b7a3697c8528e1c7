"""
Abstract key-value persistence interface.

The engine never talks to a storage technology directly. Everything it keeps
is a whole-snapshot blob under a string key, so any store that can get, put and
list keys by prefix is enough.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class KeyValueStore(ABC):
    """Minimal byte store used by the repository layer."""

    @abstractmethod
    def get(self, key: str) -> bytes | None:
        """Return the value stored under key, or None."""

    @abstractmethod
    def put(self, key: str, value: bytes) -> None:
        """Replace the value stored under key."""

    @abstractmethod
    def list_keys(self, prefix: str = "") -> list[str]:
        """Return all keys starting with prefix, sorted."""

    def delete(self, key: str) -> None:
        """Remove a key. Stores that cannot delete may leave this a no-op."""

    def close(self) -> None:
        """Release resources held by the store."""
