"""
Cancellation tokens for batch operations.

A token is cancelled either explicitly or when its deadline (read from the
injected clock) passes. Batch loops poll ``cancelled`` between items and
return the work completed so far.
"""
from __future__ import annotations

import threading
from datetime import datetime, timedelta

from personalization.core.clock import Clock, SystemClock


class CancellationToken:
    def __init__(self, deadline: datetime | None = None, clock: Clock | None = None):
        self._deadline = deadline
        self._clock = clock or SystemClock()
        self._event = threading.Event()

    @classmethod
    def with_timeout(cls, seconds: float, clock: Clock | None = None) -> CancellationToken:
        clock = clock or SystemClock()
        return cls(deadline=clock.now() + timedelta(seconds=seconds), clock=clock)

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and self._clock.now() >= self._deadline:
            self._event.set()
            return True
        return False
