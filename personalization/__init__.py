"""
Personalization & Gating Engine.

Ingests per-user interaction events, derives usage patterns, classifies
skill tier and journey stage, ranks catalog items and decides when to
progressively unlock gated features.
"""

from personalization.engine import PersonalizationEngine, build_engine
from personalization.models import (
    Accepted,
    CatalogItem,
    InteractionEvent,
    RecommendationContext,
    Rejected,
    UserProfile,
    default_profile,
)

__version__ = "0.1.0"

__all__ = [
    "Accepted",
    "CatalogItem",
    "InteractionEvent",
    "PersonalizationEngine",
    "RecommendationContext",
    "Rejected",
    "UserProfile",
    "build_engine",
    "default_profile",
]
