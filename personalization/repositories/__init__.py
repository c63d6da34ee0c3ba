"""
Repository contracts and adapters.

Contracts are typing Protocols; the engine depends only on them.
"""

from personalization.repositories.base import (
    CatalogStore,
    EventArchive,
    GateStateRepository,
    ProfileStore,
    UsagePatternRepository,
)
from personalization.repositories.memory import (
    InMemoryCatalogStore,
    InMemoryEventArchive,
    InMemoryGateStateRepository,
    InMemoryProfileStore,
    InMemoryUsagePatternRepository,
    load_catalog,
    load_profiles,
)

__all__ = [
    "CatalogStore",
    "EventArchive",
    "GateStateRepository",
    "ProfileStore",
    "UsagePatternRepository",
    "InMemoryCatalogStore",
    "InMemoryEventArchive",
    "InMemoryGateStateRepository",
    "InMemoryProfileStore",
    "InMemoryUsagePatternRepository",
    "load_catalog",
    "load_profiles",
]
