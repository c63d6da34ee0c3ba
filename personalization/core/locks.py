"""
Per-user mutual exclusion.

One logical owner per user id: writes to a user's ledger, usage pattern
and gate states happen under that user's lock. Distinct users never
contend with each other.
"""
from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class UserLockRegistry:
    """Lazily created re-entrant lock per user id."""

    def __init__(self) -> None:
        self._locks: dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    def lock_for(self, user_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[user_id] = lock
            return lock

    @contextmanager
    def hold(self, user_id: str) -> Iterator[None]:
        lock = self.lock_for(user_id)
        with lock:
            yield
