"""Key-value stores — local persistence for records and cached previews.

Two backends satisfy the KeyValueStore protocol:
- MemoryStore: process-local, for tests and ephemeral sessions.
- JsonFileStore: a single JSON file, suitable for a single-node client.
  Every write rewrites the file.

Both honour per-key expiry. An expired key reads as absent and is
purged lazily on access. The clock is injectable for deterministic tests.

Both are safe to share between threads: every operation holds one
re-entrant store lock, so the file is never rewritten while another
thread changes the entries. ``set_many`` applies a batch of writes
all-or-nothing.
"""

from __future__ import annotations

import json
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Mapping, Optional


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MemoryStore:
    """In-memory key-value store with optional per-key expiry.

    Usage:
        store = MemoryStore()
        store.set("escrow:e1", {...})
        store.set_with_expiry("cache:staking_stats", {...}, ttl_seconds=300)
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._clock = clock or _utc_now
        self._entries: dict[str, tuple[dict[str, Any], Optional[datetime]]] = {}
        self._mutex = threading.RLock()

    def get(self, key: str) -> Optional[dict[str, Any]]:
        with self._mutex:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and self._clock() >= expires_at:
                del self._entries[key]
                return None
            return json.loads(json.dumps(value))

    def set(self, key: str, value: dict[str, Any]) -> None:
        self.set_many({key: value})

    def set_many(self, items: Mapping[str, dict[str, Any]]) -> None:
        """Write every item, or none of them."""
        with self._mutex:
            self._apply({key: (value, None) for key, value in items.items()})

    def set_with_expiry(self, key: str, value: dict[str, Any], ttl_seconds: float) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        with self._mutex:
            self._apply({key: (value, self._clock() + timedelta(seconds=ttl_seconds))})

    def delete(self, key: str) -> None:
        with self._mutex:
            self._entries.pop(key, None)

    def keys_by_prefix(self, prefix: str) -> list[str]:
        with self._mutex:
            return sorted(
                key for key in list(self._entries)
                if key.startswith(prefix) and self.get(key) is not None
            )

    def _apply(self, batch: dict[str, tuple[dict[str, Any], Optional[datetime]]]) -> None:
        # Round-trip through JSON so stored values never alias caller objects.
        for key, (value, expires_at) in batch.items():
            self._entries[key] = (json.loads(json.dumps(value)), expires_at)


class JsonFileStore(MemoryStore):
    """Key-value store persisted to a single JSON file.

    File layout:
        {"entries": {"<key>": {"value": {...}, "expires_at": "<iso>" | null}}}

    A failed save (``OSError``) restores the entries it touched and
    re-raises, so memory never runs ahead of the file.
    """

    def __init__(
        self,
        storage_path: Path,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        super().__init__(clock)
        self._path = storage_path
        if storage_path.exists():
            self._load()

    def get(self, key: str) -> Optional[dict[str, Any]]:
        with self._mutex:
            present = key in self._entries
            value = super().get(key)
            if present and key not in self._entries:
                self._save()
            return value

    def delete(self, key: str) -> None:
        with self._mutex:
            if key not in self._entries:
                return
            previous = self._entries.pop(key)
            try:
                self._save()
            except OSError:
                self._entries[key] = previous
                raise

    def _apply(self, batch: dict[str, tuple[dict[str, Any], Optional[datetime]]]) -> None:
        previous = {key: self._entries.get(key) for key in batch}
        super()._apply(batch)
        try:
            self._save()
        except OSError:
            for key, entry in previous.items():
                if entry is None:
                    self._entries.pop(key, None)
                else:
                    self._entries[key] = entry
            raise

    def _load(self) -> None:
        with self._path.open("r", encoding="utf-8") as f:
            raw = json.load(f)
        for key, entry in raw.get("entries", {}).items():
            expires = entry.get("expires_at")
            self._entries[key] = (
                entry["value"],
                datetime.fromisoformat(expires) if expires else None,
            )

    def _save(self) -> None:
        entries = {
            key: {
                "value": value,
                "expires_at": expires_at.isoformat() if expires_at else None,
            }
            for key, (value, expires_at) in self._entries.items()
        }
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("w", encoding="utf-8") as f:
            json.dump({"entries": entries}, f, indent=2, sort_keys=True, ensure_ascii=False)
