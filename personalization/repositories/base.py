"""
Repository contracts for the engine's collaborators.

The engine owns no persistence engine; every store is injected at
construction. In-memory implementations live in ``memory.py`` and
SQLAlchemy adapters in ``sql.py``.
"""
from __future__ import annotations

from typing import Protocol

from personalization.models import CatalogItem, InteractionEvent, UsagePattern, UserGateState, UserProfile


class ProfileStore(Protocol):
    def get_profile(self, user_id: str) -> UserProfile | None:
        """Return the stored profile, or None when the user has no record."""
        ...


class CatalogStore(Protocol):
    def list_candidate_ids(self, category: str | None = None) -> list[str]: ...

    def get_item(self, item_id: str) -> CatalogItem:
        """Load one item. Raises ItemNotFoundError when it cannot be loaded."""
        ...


class UsagePatternRepository(Protocol):
    def get(self, user_id: str) -> UsagePattern | None: ...

    def put(self, pattern: UsagePattern) -> None: ...


class GateStateRepository(Protocol):
    def get(self, user_id: str, gate_id: str) -> UserGateState | None: ...

    def put(self, state: UserGateState) -> None: ...

    def list_for_user(self, user_id: str) -> list[UserGateState]: ...


class EventArchive(Protocol):
    """Append-only log of accepted events; rotation is the host's concern."""

    def append(self, event: InteractionEvent) -> None: ...
