"""
TTL cache with an injectable clock.

Replaces ad-hoc dict caches with manual timestamp checks: entries carry an
expiry computed from the clock, and callers can expire single keys or any
key matching a predicate (e.g. all entries for one user).
"""
from __future__ import annotations

import threading
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from personalization.core.clock import Clock, SystemClock


@dataclass
class _Entry:
    value: Any
    expires_at: datetime


class TTLCache:
    """
    Thread-safe key/value cache where every entry expires after ``ttl_seconds``.

    A TTL of zero disables caching: ``put`` becomes a no-op.
    """

    def __init__(self, ttl_seconds: float, clock: Clock | None = None):
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock or SystemClock()
        self._entries: dict[Hashable, _Entry] = {}
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self._ttl > timedelta(0)

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            if entry.expires_at <= self._clock.now():
                del self._entries[key]
                return default
            return entry.value

    def put(self, key: Hashable, value: Any) -> None:
        if not self.enabled:
            return
        with self._lock:
            self._entries[key] = _Entry(value=value, expires_at=self._clock.now() + self._ttl)

    def expire(self, key: Hashable) -> bool:
        """Drop one key. Returns True if it was present."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def expire_where(self, predicate: Callable[[Hashable], bool]) -> int:
        """Drop every key matching ``predicate``. Returns the number dropped."""
        with self._lock:
            doomed = [key for key in self._entries if predicate(key)]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    def purge_expired(self) -> int:
        now = self._clock.now()
        with self._lock:
            doomed = [key for key, entry in self._entries.items() if entry.expires_at <= now]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
