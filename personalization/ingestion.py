"""
Bounded ingestion queue.

Producers submit events faster than the engine may want to apply them.
Each user gets a bounded FIFO; when it is full the oldest queued event is
dropped. Validation happens on submit so invalid events are rejected
immediately and never occupy queue space.
"""
from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass

from loguru import logger

from config import get_settings
from personalization.engine import PersonalizationEngine
from personalization.ledger import validate_event
from personalization.models import Accepted, AppendResult, InteractionEvent, Rejected


@dataclass
class DrainReport:
    user_id: str
    applied: int = 0
    rejected: int = 0


class IngestionQueue:
    """Per-user bounded queues with a drop-oldest overflow policy."""

    def __init__(self, engine: PersonalizationEngine, capacity: int | None = None):
        self._engine = engine
        self.capacity = capacity if capacity is not None else get_settings().ingestion_queue_capacity
        if self.capacity < 1:
            raise ValueError(f"Queue capacity must be >= 1 (got {self.capacity})")
        self._queues: dict[str, deque[InteractionEvent]] = {}
        self._dropped: dict[str, int] = {}
        self._lock = threading.Lock()

    def submit(self, user_id: str, event: InteractionEvent) -> AppendResult:
        """
        Validate and enqueue an event.

        Returns:
            Accepted when queued, Rejected when validation failed
        """
        error = validate_event(user_id, event)
        if error is not None:
            return Rejected(error=error)

        with self._lock:
            queue = self._queues.setdefault(user_id, deque())
            if len(queue) >= self.capacity:
                queue.popleft()
                self._dropped[user_id] = self._dropped.get(user_id, 0) + 1
                logger.warning(
                    f"Ingestion queue for {user_id} full ({self.capacity}); "
                    f"dropped oldest event ({self._dropped[user_id]} dropped so far)"
                )
            queue.append(event)
        return Accepted(event=event)

    def pending(self, user_id: str) -> int:
        with self._lock:
            return len(self._queues.get(user_id, ()))

    def dropped(self, user_id: str) -> int:
        with self._lock:
            return self._dropped.get(user_id, 0)

    def drain(self, user_id: str) -> DrainReport:
        """Apply every queued event for ``user_id`` through the engine, in order."""
        with self._lock:
            queue = self._queues.pop(user_id, deque())

        report = DrainReport(user_id=user_id)
        for event in queue:
            if isinstance(self._engine.record_interaction(user_id, event), Accepted):
                report.applied += 1
            else:
                report.rejected += 1
        if report.applied or report.rejected:
            logger.debug(f"Drained {report.applied} events for {user_id} ({report.rejected} rejected)")
        return report

    def drain_all(self) -> list[DrainReport]:
        with self._lock:
            users = sorted(self._queues)
        return [self.drain(user_id) for user_id in users]
