"""
Core Module - Shared primitives used across the engine.

Components:
- exceptions: PersonalizationError hierarchy
- clock: Clock protocol, SystemClock, FixedClock
- ids: IdGenerator protocol, UuidIdGenerator, CounterIdGenerator
- cache: TTLCache with injectable clock
- locks: UserLockRegistry (per-user mutual exclusion)
- cancellation: CancellationToken (explicit cancel or deadline)
"""

from personalization.core.cache import TTLCache
from personalization.core.cancellation import CancellationToken
from personalization.core.clock import Clock, FixedClock, SystemClock
from personalization.core.exceptions import (
    ConfigurationError,
    GateConfigurationError,
    GateNotFoundError,
    InvalidEventError,
    ItemNotFoundError,
    PersonalizationError,
)
from personalization.core.ids import CounterIdGenerator, IdGenerator, UuidIdGenerator
from personalization.core.locks import UserLockRegistry

__all__ = [
    # Errors
    "PersonalizationError",
    "InvalidEventError",
    "ItemNotFoundError",
    "GateNotFoundError",
    "ConfigurationError",
    "GateConfigurationError",
    # Time & ids
    "Clock",
    "SystemClock",
    "FixedClock",
    "IdGenerator",
    "UuidIdGenerator",
    "CounterIdGenerator",
    # Concurrency & caching
    "TTLCache",
    "UserLockRegistry",
    "CancellationToken",
]
