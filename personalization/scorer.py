"""
Recommendation Scorer.

Scores catalog items against a user's profile, usage pattern and skill tier
using seven weighted factors, each in [0, 1]:

    taste       preferred flavour tags present on the item
    dietary     item flags satisfy the user's restrictions
    cultural    region and cultural flavour overlap
    seasonal    current-season flavours and season tags
    budget      price position inside the caller's budget range
    skill       item difficulty vs assessed tier
    behavioral  category affinity and current time-slot activity

Weights must sum to 1.0 so the overall score stays in [0, 1].
"""
from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, replace
from datetime import datetime

from loguru import logger

from config import get_settings
from personalization.core.cache import TTLCache
from personalization.core.cancellation import CancellationToken
from personalization.core.clock import Clock, SystemClock
from personalization.core.exceptions import ConfigurationError, ItemNotFoundError
from personalization.core.ids import IdGenerator, UuidIdGenerator
from personalization.models import (
    BudgetRange,
    CatalogItem,
    FactorScores,
    Recommendation,
    RecommendationContext,
    Season,
    SkillLevel,
    TimeSlot,
    UsagePattern,
    UserProfile,
)
from personalization.repositories.base import CatalogStore

FACTORS = ("taste", "dietary", "cultural", "seasonal", "budget", "skill", "behavioral")
WEIGHT_TOLERANCE = 1e-9

SEASONAL_FLAVORS: dict[Season, frozenset[str]] = {
    Season.SPRING: frozenset({"fresh", "citrus", "berry", "mint"}),
    Season.SUMMER: frozenset({"tropical", "citrus", "mint", "berry"}),
    Season.AUTUMN: frozenset({"spice", "pumpkin", "apple", "cinnamon"}),
    Season.WINTER: frozenset({"chocolate", "peppermint", "citrus", "spice"}),
}

DIETARY_PENALTIES = {"caffeine-free": 0.7}
DEFAULT_DIETARY_PENALTY = 0.5

# (factor, minimum value, reason) in presentation order
REASON_RULES = (
    ("taste", 0.8, "Matches your taste preferences"),
    ("dietary", 0.8, "Meets your dietary requirements"),
    ("cultural", 0.7, "Aligns with your cultural preferences"),
    ("seasonal", 0.7, "Perfect for current season"),
    ("budget", 0.8, "Fits your budget"),
    ("skill", 0.8, "Matches your skill level"),
    ("behavioral", 0.7, "Based on your usage patterns"),
)
FALLBACK_REASON = "Recommended for you"

# Context filters applied after scoring
DIETARY_FILTER_MIN = 0.8
BUDGET_FILTER_MIN = 0.6


def validate_weights(weights: Mapping[str, float]) -> dict[str, float]:
    """
    Check factor weights before any scoring happens.

    Raises:
        ConfigurationError: if factors are missing, negative or do not sum to 1.0
    """
    missing = set(FACTORS) - set(weights)
    unknown = set(weights) - set(FACTORS)
    if missing or unknown:
        raise ConfigurationError(
            f"Factor weights must name exactly {', '.join(FACTORS)} "
            f"(missing: {sorted(missing)}, unknown: {sorted(unknown)})"
        )
    negative = {name: value for name, value in weights.items() if value < 0}
    if negative:
        raise ConfigurationError(f"Factor weights must be non-negative: {negative}")
    total = math.fsum(weights.values())
    if abs(total - 1.0) > WEIGHT_TOLERANCE:
        raise ConfigurationError(f"Factor weights must sum to 1.0 (got {total!r})")
    return dict(weights)


def _clamp(value: float) -> float:
    return max(0.0, min(value, 1.0))


# ========================================
# Individual factors
# ========================================


def taste_score(item: CatalogItem, profile: UserProfile) -> float:
    if not profile.taste_preferences:
        return 0.6
    matched = len(item.tags & profile.taste_preferences)
    return _clamp(0.6 + 0.4 * matched / len(profile.taste_preferences))


def dietary_score(item: CatalogItem, restrictions: frozenset[str]) -> float:
    score = 1.0
    for restriction in sorted(restrictions):
        if restriction not in item.dietary_flags:
            score -= DIETARY_PENALTIES.get(restriction, DEFAULT_DIETARY_PENALTY)
    return _clamp(score)


def cultural_score(item: CatalogItem, profile: UserProfile) -> float:
    score = 0.5
    if item.region and item.region == profile.region:
        score += 0.3
    score += 0.1 * len(item.tags & profile.cultural_flavors)
    return _clamp(score)


def seasonal_score(item: CatalogItem, season: Season) -> float:
    score = 0.5 + 0.1 * len(item.tags & SEASONAL_FLAVORS[season])
    if season.value in item.seasonal_tags:
        score += 0.2
    return _clamp(score)


def budget_score(item: CatalogItem, budget: BudgetRange | None) -> float:
    if budget is None:
        return 0.8
    if item.price_estimate is None:
        return 0.5
    price = item.price_estimate
    if price <= budget.min:
        return 1.0
    if price >= budget.max:
        return 0.2
    position = (price - budget.min) / (budget.max - budget.min)
    return _clamp(1.0 - 0.8 * position)


def skill_score(item: CatalogItem, level: SkillLevel) -> float:
    difference = item.difficulty.rank - level.rank
    if difference == 0:
        return 1.0
    if difference == -1:
        return 0.9
    if difference <= -2:
        return 0.7
    if difference == 1:
        return 0.7
    return 0.4


def behavioral_score(item: CatalogItem, pattern: UsagePattern, now: datetime) -> float:
    score = 0.5
    if item.category:
        score += min(pattern.category_preferences.get(item.category, 0) * 0.1, 0.3)
    if pattern.time_slots.get(TimeSlot.from_hour(now.hour).value, 0) > 0:
        score += 0.2
    return _clamp(score)


def _ranking_key(rec: Recommendation) -> tuple:
    added_at = rec.item.added_at
    recency = (0, -added_at.timestamp()) if added_at else (1, 0.0)
    return (-rec.score, recency, rec.item.id)


@dataclass(frozen=True)
class ScoringInputs:
    """Everything one user's batch is scored against, captured once."""

    profile: UserProfile
    pattern: UsagePattern
    skill_level: SkillLevel
    now: datetime

    def cache_key(self) -> tuple:
        """Everything besides the context that a cached batch depends on."""
        return (
            self.profile,
            self.skill_level,
            self.pattern.total_events,
            Season.from_month(self.now.month),
            TimeSlot.from_hour(self.now.hour),
        )


class RecommendationScorer:
    """
    Score and rank catalog candidates for a user.

    Scoring is pure over the captured inputs; the only side effect is the
    per-(user, context, inputs) result cache.
    """

    def __init__(
        self,
        catalog: CatalogStore,
        weights: Mapping[str, float] | None = None,
        inclusion_threshold: float | None = None,
        clock: Clock | None = None,
        id_generator: IdGenerator | None = None,
        cache_ttl_seconds: float | None = None,
    ):
        settings = get_settings()
        self._catalog = catalog
        self.weights = validate_weights(weights if weights is not None else settings.get_factor_weights())
        self.inclusion_threshold = (
            inclusion_threshold if inclusion_threshold is not None else settings.inclusion_threshold
        )
        self._clock = clock or SystemClock()
        self._ids = id_generator or UuidIdGenerator()
        ttl = cache_ttl_seconds if cache_ttl_seconds is not None else settings.recommendation_cache_ttl_seconds
        self._cache = TTLCache(ttl, clock=self._clock)

    def factors(self, item: CatalogItem, inputs: ScoringInputs, context: RecommendationContext) -> FactorScores:
        restrictions = inputs.profile.dietary_restrictions | frozenset(context.dietary_restrictions)
        return FactorScores(
            taste=taste_score(item, inputs.profile),
            dietary=dietary_score(item, restrictions),
            cultural=cultural_score(item, inputs.profile),
            seasonal=seasonal_score(item, Season.from_month(inputs.now.month)),
            budget=budget_score(item, context.budget_range),
            skill=skill_score(item, inputs.skill_level),
            behavioral=behavioral_score(item, inputs.pattern, inputs.now),
        )

    def score(self, item: CatalogItem, inputs: ScoringInputs, context: RecommendationContext) -> Recommendation:
        factors = self.factors(item, inputs, context)
        values = factors.as_dict()
        overall = _clamp(math.fsum(values[name] * self.weights[name] for name in FACTORS))

        reasons = [reason for name, minimum, reason in REASON_RULES if values[name] >= minimum]
        if not reasons:
            reasons = [FALLBACK_REASON]

        return Recommendation(
            recommendation_id=self._ids.new_id("rec"),
            item=item,
            score=overall,
            factors=factors,
            reasons=reasons,
            confidence=min(overall * 1.2, 1.0),
        )

    def passes_context(self, rec: Recommendation, context: RecommendationContext) -> bool:
        if context.exclude_tags and rec.item.tags & set(context.exclude_tags):
            return False
        if context.dietary_restrictions and rec.factors.dietary < DIETARY_FILTER_MIN:
            return False
        if context.budget_range is not None and rec.factors.budget < BUDGET_FILTER_MIN:
            return False
        return True

    def recommend(
        self,
        user_id: str,
        inputs: ScoringInputs,
        context: RecommendationContext,
        cancellation: CancellationToken | None = None,
    ) -> list[Recommendation]:
        """
        Produce a ranked batch for one user.

        Catalog misses skip the item. On cancellation the items scored so far
        are ranked and returned (and not cached).

        Returns:
            At most ``context.count`` recommendations, best first
        """
        cache_key = (user_id, context.cache_key(), inputs.cache_key())
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug(f"Recommendation cache hit for {user_id}")
            return [replace(rec, reasons=list(rec.reasons)) for rec in cached]

        scored: list[Recommendation] = []
        cancelled = False
        for item_id in self._catalog.list_candidate_ids(context.category):
            if cancellation is not None and cancellation.cancelled:
                cancelled = True
                logger.info(f"Recommendation batch for {user_id} cancelled after {len(scored)} items")
                break
            try:
                item = self._catalog.get_item(item_id)
            except ItemNotFoundError as e:
                logger.warning(f"Skipping candidate: {e}")
                continue
            scored.append(self.score(item, inputs, context))

        eligible = [rec for rec in scored if self.passes_context(rec, context)]
        results = sorted(
            (rec for rec in eligible if rec.score >= self.inclusion_threshold),
            key=_ranking_key,
        )[: context.count]

        if not results and eligible:
            results = sorted(eligible, key=_ranking_key)[: context.count]
            for rec in results:
                rec.is_fallback = True
            logger.debug(f"No candidate cleared the threshold for {user_id}, serving {len(results)} fallback items")

        if not cancelled:
            self._cache.put(cache_key, [replace(rec, reasons=list(rec.reasons)) for rec in results])
        return results

    def invalidate(self, user_id: str) -> int:
        """Expire every cached batch for ``user_id``."""
        return self._cache.expire_where(lambda key: key[0] == user_id)
