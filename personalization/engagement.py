"""
Engagement Strategy Generator.

Proposes re-engagement strategies and abandonment-recovery actions from a
user's usage pattern. Rules are declarative: each rule is a predicate over
an ``EngagementSignals`` snapshot plus a builder for the proposal. Read-only;
nothing here mutates user state.

Summary metrics:
    engagement score = 50 + min(events / 30 * 10, 30)
                       + completion rate * 20 + return frequency * 10   (max 100)
    retention        = 0.5 (+0.3 increasing / -0.2 decreasing)
                       + return frequency * 0.2                         (clamped to [0, 1])
    churn risk       = low above 0.8 retention, medium above 0.5, else high
"""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from config import get_settings
from personalization.core.clock import Clock, SystemClock
from personalization.models import (
    AbandonmentRecovery,
    ChurnRisk,
    EngagementPlan,
    EngagementStrategy,
    EngagementTrend,
    UsagePattern,
)

ADOPTION_SATURATION = 10


@dataclass(frozen=True)
class EngagementSignals:
    """Inputs every engagement rule is evaluated against."""

    user_id: str
    pattern: UsagePattern
    sessions: int
    now: datetime
    config: dict[str, Any]

    @property
    def days_since_last_event(self) -> int:
        if self.pattern.last_event_at is None:
            return 0
        return max((self.now - self.pattern.last_event_at).days, 0)

    def low_adoption_features(self) -> list[tuple[str, float]]:
        """Used features whose adoption rate is below the threshold, least adopted first."""
        rates = [
            (feature, min(count / ADOPTION_SATURATION, 1.0))
            for feature, count in self.pattern.feature_usage.items()
        ]
        low = [(feature, rate) for feature, rate in rates if rate < self.config["low_adoption"]]
        return sorted(low, key=lambda entry: (entry[1], entry[0]))


def feature_display_name(feature: str) -> str:
    return feature.replace("-", " ").replace("_", " ").title()


# ========================================
# Strategy rules
# ========================================


def _personalization(signals: EngagementSignals) -> EngagementStrategy:
    return EngagementStrategy(
        user_id=signals.user_id,
        strategy="personalization",
        trigger="decreasing-engagement",
        message="We noticed you haven't been active lately. Here are some personalized recommendations!",
        timing="delayed",
        channel="email",
        priority="high",
        expected_impact=0.7,
        personalizations=["recent-activity", "similar-users", "trending-content"],
    )


def _education(signals: EngagementSignals) -> EngagementStrategy:
    feature, _ = signals.low_adoption_features()[0]
    return EngagementStrategy(
        user_id=signals.user_id,
        strategy="education",
        trigger="feature-discovery",
        message=f"Discover {feature_display_name(feature)} and unlock new possibilities!",
        timing="immediate",
        channel="in-app",
        priority="medium",
        expected_impact=0.6,
        personalizations=["usage-patterns", "skill-level"],
    )


def _social(signals: EngagementSignals) -> EngagementStrategy:
    return EngagementStrategy(
        user_id=signals.user_id,
        strategy="social",
        trigger="engaged-user",
        message="Share your favorite recipes with the community!",
        timing="scheduled",
        channel="in-app",
        priority="medium",
        expected_impact=0.5,
        personalizations=["recipe-history", "social-preferences"],
    )


STRATEGY_RULES: list[tuple[Callable[[EngagementSignals], bool], Callable[[EngagementSignals], EngagementStrategy]]] = [
    (lambda s: s.pattern.engagement_trend == EngagementTrend.DECREASING, _personalization),
    (lambda s: bool(s.low_adoption_features()), _education),
    (lambda s: s.sessions > s.config["social_sessions"], _social),
]


# ========================================
# Recovery rules
# ========================================


def _simplification(signals: EngagementSignals) -> AbandonmentRecovery:
    return AbandonmentRecovery(
        user_id=signals.user_id,
        abandonment_point="high-abandonment-rate",
        days_since_abandonment=0,
        recovery_method="simplification",
        message="We've simplified the interface based on your usage patterns.",
        success_probability=0.6,
        fallback_strategies=["personalized-tour", "step-by-step-guide"],
    )


def _reminder(signals: EngagementSignals) -> AbandonmentRecovery:
    return AbandonmentRecovery(
        user_id=signals.user_id,
        abandonment_point="inactive-period",
        days_since_abandonment=signals.days_since_last_event,
        recovery_method="reminder",
        message="We miss you! Here are some new recipes you might love.",
        success_probability=0.4,
        offer="Get 20% off premium features",
        fallback_strategies=["exclusive-content", "personalized-recommendations"],
    )


RECOVERY_RULES: list[tuple[Callable[[EngagementSignals], bool], Callable[[EngagementSignals], AbandonmentRecovery]]] = [
    (lambda s: s.pattern.abandonment_rate > s.config["abandonment_rate"], _simplification),
    (lambda s: s.days_since_last_event > s.config["inactivity_days"], _reminder),
]


# ========================================
# Summary metrics
# ========================================


def engagement_score(pattern: UsagePattern) -> float:
    if pattern.total_events == 0:
        return 0.0
    score = 50.0
    score += min(pattern.total_events / 30 * 10, 30)
    completion_rate = sum(pattern.completion_rates.values()) / pattern.total_events
    score += completion_rate * 20
    score += pattern.return_frequency * 10
    return min(score, 100.0)


def predict_retention(pattern: UsagePattern) -> float:
    retention = 0.5
    if pattern.engagement_trend == EngagementTrend.INCREASING:
        retention += 0.3
    elif pattern.engagement_trend == EngagementTrend.DECREASING:
        retention -= 0.2
    retention += pattern.return_frequency * 0.2
    return max(min(retention, 1.0), 0.0)


def churn_risk(retention: float) -> ChurnRisk:
    if retention > 0.8:
        return ChurnRisk.LOW
    if retention > 0.5:
        return ChurnRisk.MEDIUM
    return ChurnRisk.HIGH


class EngagementStrategyGenerator:
    """Evaluate the engagement rule tables for one user."""

    def __init__(self, clock: Clock | None = None, config: dict[str, Any] | None = None):
        self._clock = clock or SystemClock()
        self.config = config or get_settings().get_engagement_config()

    def generate(self, user_id: str, pattern: UsagePattern, sessions: int) -> EngagementPlan:
        """
        Build the engagement plan for a user.

        An empty history yields an empty plan with neutral retention.
        """
        if pattern.total_events == 0:
            return EngagementPlan(user_id=user_id)

        signals = EngagementSignals(
            user_id=user_id,
            pattern=pattern,
            sessions=sessions,
            now=self._clock.now(),
            config=self.config,
        )
        retention = predict_retention(pattern)
        return EngagementPlan(
            user_id=user_id,
            engagement_opportunities=[build(signals) for applies, build in STRATEGY_RULES if applies(signals)],
            abandonment_risks=[build(signals) for applies, build in RECOVERY_RULES if applies(signals)],
            engagement_score=engagement_score(pattern),
            retention_prediction=retention,
            churn_risk=churn_risk(retention),
        )
