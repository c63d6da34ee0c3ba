"""
Skill & Journey Assessor.

Classifies a user's proficiency tier and product-journey stage from the
usage pattern plus the stored profile. Tiers are an ordered rule table
(first match wins) taken from configuration; journey stages carry the
features to surface next and a default introduction strategy.
"""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from config import get_settings
from personalization.aggregator import UsagePatternAggregator
from personalization.gating.definitions import IntroductionStrategy, Messaging
from personalization.ledger import InteractionLedger
from personalization.models import (
    IntroductionMethod,
    IntroductionTiming,
    JourneyStageName,
    Presentation,
    ProgressionMetrics,
    SkillAssessment,
    SkillIndicators,
    SkillLevel,
    SkillRecommendations,
    UsagePattern,
    UserProfile,
    default_profile,
)
from personalization.repositories.base import ProfileStore


@dataclass(frozen=True)
class SkillTier:
    level: SkillLevel
    min_sessions: int  # exclusive
    min_features: int  # exclusive
    confidence: float

    def matches(self, sessions: int, distinct_features: int) -> bool:
        return sessions > self.min_sessions and distinct_features > self.min_features


BEGINNER_CONFIDENCE = 0.5


@dataclass(frozen=True)
class JourneyStage:
    stage: JourneyStageName
    characteristics: list[str]
    recommended_features: list[str]
    introduction_strategy: IntroductionStrategy
    content_priorities: list[str]
    learning_path: list[str]


@dataclass(frozen=True)
class SkillAdaptation:
    """Interface adjustments for a skill tier."""

    level: SkillLevel
    help_level: str
    difficulty_adjustments: list[str] = field(default_factory=list)
    shortcuts: list[str] = field(default_factory=list)


def _strategy(
    method: IntroductionMethod,
    timing: IntroductionTiming,
    presentation: Presentation,
    title: str,
    description: str,
    call_to_action: str,
    benefits: tuple[str, ...],
) -> IntroductionStrategy:
    return IntroductionStrategy(
        method=method,
        timing=timing,
        presentation=presentation,
        messaging=Messaging(
            title=title,
            description=description,
            call_to_action=call_to_action,
            benefits=benefits,
        ),
    )


JOURNEY_STAGES: dict[JourneyStageName, JourneyStage] = {
    JourneyStageName.DISCOVERY: JourneyStage(
        stage=JourneyStageName.DISCOVERY,
        characteristics=["new-user", "exploring", "learning-basics"],
        recommended_features=["basic-calculator", "simple-recipes", "safety-guidelines"],
        introduction_strategy=_strategy(
            IntroductionMethod.GRADUAL,
            IntroductionTiming.TIME_BASED,
            Presentation.TOOLTIP,
            "Getting Started",
            "Welcome! Let's explore the basics together.",
            "Start Learning",
            ("Easy to start", "Safe guidance", "Quick results"),
        ),
        content_priorities=["beginner-guides", "safety-information", "basic-recipes"],
        learning_path=["safety-first", "basic-calculation", "simple-recipe"],
    ),
    JourneyStageName.EXPLORATION: JourneyStage(
        stage=JourneyStageName.EXPLORATION,
        characteristics=["learning", "experimenting", "building-confidence"],
        recommended_features=["recipe-variations", "cost-analysis", "flavor-explorer"],
        introduction_strategy=_strategy(
            IntroductionMethod.CONTEXTUAL,
            IntroductionTiming.BEHAVIORAL,
            Presentation.INLINE,
            "Try Something New",
            "Ready to explore more advanced features?",
            "Discover",
            ("More variety", "Better results", "Cost savings"),
        ),
        content_priorities=["intermediate-recipes", "cost-optimization", "flavor-profiles"],
        learning_path=["intermediate-techniques", "cost-calculation", "flavor-blending"],
    ),
    JourneyStageName.REGULAR_USE: JourneyStage(
        stage=JourneyStageName.REGULAR_USE,
        characteristics=["confident", "regular-user", "seeking-efficiency"],
        recommended_features=["batch-processing", "advanced-calculator", "community-sharing"],
        introduction_strategy=_strategy(
            IntroductionMethod.GUIDED,
            IntroductionTiming.AFTER_MILESTONE,
            Presentation.HIGHLIGHT,
            "Level Up Your Skills",
            "You're ready for advanced features!",
            "Upgrade Now",
            ("Save time", "Batch processing", "Share with others"),
        ),
        content_priorities=["advanced-techniques", "efficiency-tools", "social-features"],
        learning_path=["batch-processing", "advanced-calculation", "community-engagement"],
    ),
    JourneyStageName.POWER_USER: JourneyStage(
        stage=JourneyStageName.POWER_USER,
        characteristics=["expert", "innovative", "community-leader"],
        recommended_features=["premium-analytics", "custom-recipes", "mentoring-tools"],
        introduction_strategy=_strategy(
            IntroductionMethod.IMMEDIATE,
            IntroductionTiming.ON_DEMAND,
            Presentation.HIGHLIGHT,
            "Expert Features",
            "Access our most powerful tools for experts like you.",
            "Explore",
            ("Full control", "Advanced analytics", "Expert community"),
        ),
        content_priorities=["expert-techniques", "analytics", "leadership-tools"],
        learning_path=["expert-techniques", "analytics-mastery", "community-leadership"],
    ),
}

SKILL_RECOMMENDATIONS: dict[SkillLevel, SkillRecommendations] = {
    SkillLevel.BEGINNER: SkillRecommendations(
        current_level_features=["basic-calculator", "simple-recipes"],
        next_level_features=["recipe-variations"],
        skill_development=["practice-basic-calculations"],
    ),
    SkillLevel.INTERMEDIATE: SkillRecommendations(
        current_level_features=["recipe-variations", "cost-analysis"],
        next_level_features=["advanced-calculator"],
        skill_development=["experiment-with-flavors"],
    ),
    SkillLevel.ADVANCED: SkillRecommendations(
        current_level_features=["advanced-calculator", "batch-processing"],
        next_level_features=["premium-analytics"],
        skill_development=["master-batch-calculations"],
    ),
    SkillLevel.EXPERT: SkillRecommendations(
        current_level_features=["premium-analytics", "custom-recipes"],
        next_level_features=[],
        skill_development=["mentor-others"],
    ),
}

_POWER_SHORTCUTS = ["Ctrl+K: Quick calculator", "Ctrl+S: Save recipe", "Ctrl+B: Batch mode"]

SKILL_ADAPTATIONS: dict[SkillLevel, SkillAdaptation] = {
    SkillLevel.BEGINNER: SkillAdaptation(
        SkillLevel.BEGINNER,
        "comprehensive",
        ["simplified-interface", "detailed-help", "step-by-step-guidance"],
    ),
    SkillLevel.INTERMEDIATE: SkillAdaptation(
        SkillLevel.INTERMEDIATE,
        "basic",
        ["balanced-help", "optional-advanced-features"],
    ),
    SkillLevel.ADVANCED: SkillAdaptation(
        SkillLevel.ADVANCED,
        "minimal",
        ["minimal-help", "advanced-features-visible"],
        _POWER_SHORTCUTS,
    ),
    SkillLevel.EXPERT: SkillAdaptation(
        SkillLevel.EXPERT,
        "none",
        ["no-help-by-default", "full-customization"],
        _POWER_SHORTCUTS,
    ),
}


def tiers_from_settings() -> list[SkillTier]:
    return [
        SkillTier(SkillLevel(level), sessions, features, confidence)
        for level, sessions, features, confidence in get_settings().get_skill_tiers()
    ]


def classify_skill(
    sessions: int, distinct_features: int, tiers: Sequence[SkillTier]
) -> tuple[SkillLevel, float]:
    """First matching tier wins; nothing matching means beginner."""
    for tier in tiers:
        if tier.matches(sessions, distinct_features):
            return tier.level, tier.confidence
    return SkillLevel.BEGINNER, BEGINNER_CONFIDENCE


def classify_journey(sessions: int, usage: int, thresholds: dict[str, tuple[int, int]]) -> JourneyStageName:
    for stage in (JourneyStageName.DISCOVERY, JourneyStageName.EXPLORATION, JourneyStageName.REGULAR_USE):
        max_sessions, max_usage = thresholds[stage.value]
        if sessions < max_sessions or usage < max_usage:
            return stage
    return JourneyStageName.POWER_USER


class SkillJourneyAssessor:
    """
    Assess skill tier and journey stage for a user.

    Sessions are the larger of the distinct session ids in the ledger and
    the profile's historical session count.
    """

    def __init__(
        self,
        ledger: InteractionLedger,
        aggregator: UsagePatternAggregator,
        profiles: ProfileStore,
        tiers: Sequence[SkillTier] | None = None,
        journey_thresholds: dict[str, tuple[int, int]] | None = None,
    ):
        self._ledger = ledger
        self._aggregator = aggregator
        self._profiles = profiles
        self.tiers = list(tiers) if tiers is not None else tiers_from_settings()
        self.journey_thresholds = journey_thresholds or get_settings().get_journey_thresholds()

    def profile(self, user_id: str) -> UserProfile:
        return self._profiles.get_profile(user_id) or default_profile(user_id)

    def usage_pattern(self, user_id: str) -> UsagePattern:
        return self._aggregator.rebuild(user_id)

    def session_count(self, pattern: UsagePattern, profile: UserProfile) -> int:
        return max(pattern.session_count, profile.total_sessions)

    def assess(self, user_id: str, pattern: UsagePattern | None = None) -> SkillAssessment:
        """
        Assess one user from a usage pattern (rebuilt from the ledger if not given).

        Returns:
            SkillAssessment with level, confidence, evidence and next steps
        """
        if pattern is None:
            pattern = self._aggregator.rebuild(user_id)
        profile = self.profile(user_id)
        sessions = self.session_count(pattern, profile)
        distinct = pattern.distinct_features

        level, confidence = classify_skill(sessions, distinct, self.tiers)
        recommendations = SKILL_RECOMMENDATIONS[level]

        return SkillAssessment(
            user_id=user_id,
            level=level,
            confidence=confidence,
            sessions=sessions,
            journey_stage=classify_journey(sessions, pattern.feature_volume, self.journey_thresholds),
            indicators=self._indicators(user_id, pattern),
            progression=ProgressionMetrics(
                learning_velocity=sessions / max(distinct, 1),
                retention_rate=min(sessions / 30, 1.0),
                skill_application=min(distinct / 10, 1.0),
            ),
            recommendations=SkillRecommendations(
                current_level_features=list(recommendations.current_level_features),
                next_level_features=list(recommendations.next_level_features),
                skill_development=list(recommendations.skill_development),
            ),
        )

    def journey_stage(self, user_id: str, pattern: UsagePattern | None = None) -> JourneyStage:
        if pattern is None:
            pattern = self._aggregator.rebuild(user_id)
        sessions = self.session_count(pattern, self.profile(user_id))
        return JOURNEY_STAGES[classify_journey(sessions, pattern.feature_volume, self.journey_thresholds)]

    @staticmethod
    def adapt_for_skill_level(level: SkillLevel) -> SkillAdaptation:
        return SKILL_ADAPTATIONS[level]

    def _indicators(self, user_id: str, pattern: UsagePattern) -> SkillIndicators:
        totals: dict[str, int] = {}
        failures: dict[str, int] = {}
        for event in self._ledger.snapshot(user_id):
            totals[event.context] = totals.get(event.context, 0) + 1
            if not event.success:
                failures[event.context] = failures.get(event.context, 0) + 1

        return SkillIndicators(
            feature_usage=dict(pattern.feature_usage),
            completion_rates={
                context: (total - failures.get(context, 0)) / total for context, total in totals.items()
            },
            error_rates={context: failures.get(context, 0) / total for context, total in totals.items()},
            distinct_features=pattern.distinct_features,
        )
