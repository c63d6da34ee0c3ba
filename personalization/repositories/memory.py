"""
In-memory repository implementations.

Used by default and in tests. Reads return copies so that callers never
hold a reference into the store.
"""
from __future__ import annotations

import json
import threading
from collections.abc import Iterable
from dataclasses import replace
from pathlib import Path

from loguru import logger

from personalization.core.exceptions import ConfigurationError, ItemNotFoundError
from personalization.models import CatalogItem, InteractionEvent, UsagePattern, UserGateState, UserProfile


def _read_json_list(path: str | Path, what: str) -> list[dict]:
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"{what} file not found: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"{what} file is not valid JSON: {path}: {e}") from e
    if not isinstance(data, list):
        raise ConfigurationError(f"{what} file must contain a list: {path}")
    return data


def load_catalog(path: str | Path) -> InMemoryCatalogStore:
    """Load catalog items from a JSON list."""
    try:
        items = [CatalogItem.from_dict(entry) for entry in _read_json_list(path, "Catalog")]
    except (KeyError, ValueError, TypeError) as e:
        raise ConfigurationError(f"Invalid catalog entry in {path}: {e}") from e
    logger.info(f"Loaded {len(items)} catalog items from {path}")
    return InMemoryCatalogStore(items)


def load_profiles(path: str | Path) -> InMemoryProfileStore:
    """Load user profiles from a JSON list."""
    try:
        profiles = [UserProfile.from_dict(entry) for entry in _read_json_list(path, "Profiles")]
    except (KeyError, ValueError, TypeError) as e:
        raise ConfigurationError(f"Invalid profile entry in {path}: {e}") from e
    logger.info(f"Loaded {len(profiles)} user profiles from {path}")
    return InMemoryProfileStore(profiles)


class InMemoryProfileStore:
    def __init__(self, profiles: Iterable[UserProfile] = ()):
        self._profiles = {profile.user_id: profile for profile in profiles}

    def get_profile(self, user_id: str) -> UserProfile | None:
        return self._profiles.get(user_id)

    def save(self, profile: UserProfile) -> None:
        self._profiles[profile.user_id] = profile


class InMemoryCatalogStore:
    """Catalog keyed by item id, preserving insertion order for listing."""

    def __init__(self, items: Iterable[CatalogItem] = ()):
        self._items: dict[str, CatalogItem] = {}
        for item in items:
            self.add(item)

    def add(self, item: CatalogItem) -> None:
        self._items[item.id] = item

    def list_candidate_ids(self, category: str | None = None) -> list[str]:
        return [
            item.id
            for item in self._items.values()
            if category is None or item.category == category
        ]

    def get_item(self, item_id: str) -> CatalogItem:
        item = self._items.get(item_id)
        if item is None:
            raise ItemNotFoundError(item_id)
        return item

    def __len__(self) -> int:
        return len(self._items)


class InMemoryUsagePatternRepository:
    def __init__(self) -> None:
        self._patterns: dict[str, UsagePattern] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> UsagePattern | None:
        with self._lock:
            pattern = self._patterns.get(user_id)
            return pattern.copy() if pattern else None

    def put(self, pattern: UsagePattern) -> None:
        with self._lock:
            self._patterns[pattern.user_id] = pattern.copy()


class InMemoryGateStateRepository:
    def __init__(self) -> None:
        self._states: dict[tuple[str, str], UserGateState] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str, gate_id: str) -> UserGateState | None:
        with self._lock:
            state = self._states.get((user_id, gate_id))
            return replace(state) if state else None

    def put(self, state: UserGateState) -> None:
        with self._lock:
            self._states[(state.user_id, state.gate_id)] = replace(state)

    def list_for_user(self, user_id: str) -> list[UserGateState]:
        with self._lock:
            return [
                replace(state)
                for (owner, _), state in sorted(self._states.items())
                if owner == user_id
            ]


class InMemoryEventArchive:
    def __init__(self) -> None:
        self._events: list[InteractionEvent] = []
        self._lock = threading.Lock()

    def append(self, event: InteractionEvent) -> None:
        with self._lock:
            self._events.append(event)

    def events_for(self, user_id: str) -> list[InteractionEvent]:
        with self._lock:
            return [event for event in self._events if event.user_id == user_id]

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
