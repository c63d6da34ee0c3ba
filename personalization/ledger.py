"""
Interaction Ledger.

Per-user bounded, strictly ordered history of interaction events:
- FIFO of at most ``capacity`` events per user; overflow evicts the oldest
- Validation on append (invalid events are rejected, never stored)
- Consistent snapshots for readers (tuples, never live views)
- Optional append-only archive for external rotation
"""
from __future__ import annotations

import math
from collections import deque

from loguru import logger

from config import get_settings
from personalization.core.exceptions import InvalidEventError
from personalization.core.locks import UserLockRegistry
from personalization.models import Accepted, AppendResult, InteractionEvent, Rejected
from personalization.repositories.base import EventArchive


def validate_event(user_id: str, event: InteractionEvent) -> InvalidEventError | None:
    """
    Check an event before it is allowed into the ledger.

    Returns:
        The rejection error, or None if the event is valid
    """
    if event.user_id != user_id:
        return InvalidEventError(f"event user '{event.user_id}' does not match ledger user '{user_id}'")
    if not event.action_type or not event.action_type.strip():
        return InvalidEventError("action type must be non-empty")
    if math.isnan(event.duration) or event.duration < 0:
        return InvalidEventError(f"duration must be >= 0 (got {event.duration})")
    return None


class InteractionLedger:
    """
    Bounded per-user event history.

    Appends for one user are serialized through that user's lock; appends
    for distinct users never contend.
    """

    def __init__(
        self,
        capacity: int | None = None,
        archive: EventArchive | None = None,
        locks: UserLockRegistry | None = None,
    ):
        self.capacity = capacity if capacity is not None else get_settings().ledger_capacity
        if self.capacity < 1:
            raise ValueError(f"Ledger capacity must be >= 1 (got {self.capacity})")
        self._archive = archive
        self._locks = locks or UserLockRegistry()
        self._events: dict[str, deque[InteractionEvent]] = {}

    def append(self, user_id: str, event: InteractionEvent) -> AppendResult:
        error = validate_event(user_id, event)
        if error is not None:
            logger.debug(f"Rejected event for {user_id}: {error.reason}")
            return Rejected(error=error)

        with self._locks.hold(user_id):
            history = self._events.get(user_id)
            if history is None:
                history = deque(maxlen=self.capacity)
                self._events[user_id] = history
            if len(history) == self.capacity:
                logger.debug(f"Ledger for {user_id} at capacity {self.capacity}, evicting oldest event")
            history.append(event)
            if self._archive is not None:
                self._archive.append(event)

        return Accepted(event=event)

    def snapshot(self, user_id: str) -> tuple[InteractionEvent, ...]:
        """Return the user's events, oldest first, as an immutable tuple."""
        with self._locks.hold(user_id):
            return tuple(self._events.get(user_id, ()))

    def size(self, user_id: str) -> int:
        with self._locks.hold(user_id):
            return len(self._events.get(user_id, ()))

    def clear(self, user_id: str) -> None:
        with self._locks.hold(user_id):
            self._events.pop(user_id, None)
        logger.info(f"Cleared interaction ledger for {user_id}")

    def users(self) -> list[str]:
        return sorted(self._events)
