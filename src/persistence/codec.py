"""
Versioned JSON envelopes for stored snapshots.

Every value written to the key-value store is wrapped as

    {"schema_version": 1, "kind": "profile", "data": {...}}

so that older snapshots can be upgraded on read. A migration is registered
per (kind, from_version) and returns the payload at from_version + 1.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

from src.core.errors import PersistenceError

SCHEMA_VERSION = 1

Migration = Callable[[Any], Any]

_MIGRATIONS: dict[tuple[str, int], Migration] = {}


def register_migration(kind: str, from_version: int) -> Callable[[Migration], Migration]:
    """Decorator registering an upgrade step for one kind of snapshot."""

    def decorator(fn: Migration) -> Migration:
        _MIGRATIONS[(kind, from_version)] = fn
        return fn

    return decorator


def encode(kind: str, data: Any) -> bytes:
    envelope = {"schema_version": SCHEMA_VERSION, "kind": kind, "data": data}
    return json.dumps(envelope, sort_keys=True, separators=(",", ":")).encode("utf-8")


def decode(raw: bytes, expected_kind: str, target_version: int = SCHEMA_VERSION) -> Any:
    """
    Unwrap an envelope, applying migrations up to target_version.

    Raises:
        PersistenceError: Corrupt JSON, wrong kind, or a version with no upgrade path
    """
    try:
        envelope = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise PersistenceError(f"Corrupt {expected_kind} snapshot: {e}") from e

    if not isinstance(envelope, dict) or "schema_version" not in envelope:
        raise PersistenceError(f"{expected_kind} snapshot has no schema_version")

    kind = envelope.get("kind")
    if kind != expected_kind:
        raise PersistenceError(f"Expected a {expected_kind} snapshot, found {kind!r}")

    version = envelope["schema_version"]
    if not isinstance(version, int) or version > target_version or version < 1:
        raise PersistenceError(f"Unknown schema_version {version!r} for {kind}")

    data = envelope.get("data")
    while version < target_version:
        migration = _MIGRATIONS.get((kind, version))
        if migration is None:
            raise PersistenceError(f"No migration for {kind} from schema_version {version}")
        data = migration(data)
        version += 1
    return data
