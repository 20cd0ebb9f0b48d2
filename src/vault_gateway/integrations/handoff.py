"""Short-lived, read-once key/value store.

Used for both OAuth ``state:<token>`` records and ``handoff:<id>`` token
payloads. An entry dies on its first ``take`` or when its TTL elapses,
whichever comes first; entries are never updated in place.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from vault_gateway.errors import HandoffStoreFullError

DEFAULT_TTL_SECONDS: float = 300.0
_MAX_ENTRIES: int = 10_000


@dataclass(frozen=True)
class HandoffEntry:
    key: str
    payload: Any
    created_at: float
    ttl: float

    def expired(self, now: float) -> bool:
        return now >= self.created_at + self.ttl


class HandoffStore:
    def __init__(
        self,
        max_entries: int = _MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: dict[str, HandoffEntry] = {}
        self._max_entries = max_entries
        self._clock = clock
        # put/take must be atomic for the read-once guarantee to hold.
        self._lock = threading.Lock()

    def put(self, key: str, payload: Any, ttl: float = DEFAULT_TTL_SECONDS) -> None:
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        with self._lock:
            now = self._clock()
            self._purge_expired_unlocked(now)
            if key not in self._entries and len(self._entries) >= self._max_entries:
                raise HandoffStoreFullError()
            self._entries[key] = HandoffEntry(key=key, payload=payload, created_at=now, ttl=ttl)

    def take(self, key: str) -> Any | None:
        """Remove and return the payload for ``key``; None if unknown or expired."""
        with self._lock:
            now = self._clock()
            entry = self._entries.pop(key, None)
            self._purge_expired_unlocked(now)
        if entry is None or entry.expired(now):
            return None
        return entry.payload

    def peek(self, key: str) -> Any | None:
        """Return the payload for ``key`` without consuming it."""
        with self._lock:
            entry = self._entries.get(key)
            now = self._clock()
        if entry is None or entry.expired(now):
            return None
        return entry.payload

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge_expired_unlocked(self._clock())

    def _purge_expired_unlocked(self, now: float) -> int:
        expired = [key for key, entry in self._entries.items() if entry.expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
