"""
Injected id generators.

The engine never builds ids from timestamps or random strings itself;
it asks an IdGenerator so tests can assert on the ids produced.
"""
from __future__ import annotations

import itertools
import threading
import uuid
from typing import Protocol


class IdGenerator(Protocol):
    def new_id(self, prefix: str = "") -> str: ...


class UuidIdGenerator:
    """Random UUID4 ids, optionally prefixed."""

    def new_id(self, prefix: str = "") -> str:
        value = uuid.uuid4().hex
        return f"{prefix}-{value}" if prefix else value


class CounterIdGenerator:
    """Monotonic counter ids: ``rec-1``, ``rec-2``, ..."""

    def __init__(self, start: int = 1):
        self._counter = itertools.count(start)
        self._lock = threading.Lock()

    def new_id(self, prefix: str = "") -> str:
        with self._lock:
            value = next(self._counter)
        return f"{prefix}-{value}" if prefix else str(value)
