"""
Personalization Engine Models.

Shared domain types for the personalization pipeline:
- Interaction events and ledger append results
- Usage patterns (derived aggregates)
- Skill assessments and journey stages
- Catalog items, recommendation contexts and recommendations
- Per-user gate state and gating outcomes
- Engagement proposals
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Literal

from personalization.core.exceptions import InvalidEventError


# ============================================================================
# Enums
# ============================================================================


class TimeSlot(str, Enum):
    """Coarse time-of-day buckets used by the usage histogram."""

    MORNING = "morning"  # [6, 12)
    AFTERNOON = "afternoon"  # [12, 18)
    EVENING = "evening"  # [18, 22)
    NIGHT = "night"  # everything else

    @classmethod
    def from_hour(cls, hour: int) -> TimeSlot:
        if 6 <= hour < 12:
            return cls.MORNING
        if 12 <= hour < 18:
            return cls.AFTERNOON
        if 18 <= hour < 22:
            return cls.EVENING
        return cls.NIGHT


class EngagementTrend(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class SkillLevel(str, Enum):
    """
    Assessed proficiency tier.

    Forms a total order through ``rank``; a gate requiring rank R is
    satisfiable only when the assessed rank is >= R.
    """

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"

    @property
    def rank(self) -> int:
        return _SKILL_RANKS[self]

    def satisfies(self, required: SkillLevel) -> bool:
        return self.rank >= required.rank


_SKILL_RANKS = {
    SkillLevel.BEGINNER: 1,
    SkillLevel.INTERMEDIATE: 2,
    SkillLevel.ADVANCED: 3,
    SkillLevel.EXPERT: 4,
}


class JourneyStageName(str, Enum):
    DISCOVERY = "discovery"
    EXPLORATION = "exploration"
    REGULAR_USE = "regular-use"
    POWER_USER = "power-user"


class SubscriptionTier(str, Enum):
    FREE = "free"
    PREMIUM = "premium"
    PRO = "pro"

    @property
    def rank(self) -> int:
        return {SubscriptionTier.FREE: 0, SubscriptionTier.PREMIUM: 1, SubscriptionTier.PRO: 2}[self]


class Season(str, Enum):
    SPRING = "spring"
    SUMMER = "summer"
    AUTUMN = "autumn"
    WINTER = "winter"

    @classmethod
    def from_month(cls, month: int) -> Season:
        """Northern-hemisphere meteorological seasons (month is 1-12)."""
        if 3 <= month <= 5:
            return cls.SPRING
        if 6 <= month <= 8:
            return cls.SUMMER
        if 9 <= month <= 11:
            return cls.AUTUMN
        return cls.WINTER


class IntroductionMethod(str, Enum):
    GRADUAL = "gradual"
    IMMEDIATE = "immediate"
    NOTIFICATION = "notification"
    GUIDED = "guided"
    CONTEXTUAL = "contextual"


class IntroductionTiming(str, Enum):
    ON_DEMAND = "on-demand"
    AFTER_MILESTONE = "after-milestone"
    TIME_BASED = "time-based"
    BEHAVIORAL = "behavioral"


class Presentation(str, Enum):
    TOOLTIP = "tooltip"
    MODAL = "modal"
    HIGHLIGHT = "highlight"
    NEW_TAB = "new-tab"
    INLINE = "inline"


class GateStatus(str, Enum):
    """Per-user gate state machine: locked -> eligible -> introduced -> unlocked."""

    LOCKED = "locked"
    ELIGIBLE = "eligible"
    INTRODUCED = "introduced"
    UNLOCKED = "unlocked"


class IneligibilityReason(str, Enum):
    """Machine-readable soft-failure reasons returned by gate evaluation."""

    INSUFFICIENT_SKILL_LEVEL = "insufficient-skill-level"
    INSUFFICIENT_EXPERIENCE = "insufficient-experience"
    AGE_RESTRICTION = "age-restriction"
    REGION_RESTRICTED = "region-restricted"
    SUBSCRIPTION_REQUIRED = "subscription-required"
    OUTSIDE_AVAILABILITY_WINDOW = "outside-availability-window"
    MISSING_DEPENDENCIES = "missing-dependencies"


class ChurnRisk(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# ============================================================================
# Interaction events
# ============================================================================


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


@dataclass(frozen=True)
class InteractionEvent:
    """A single recorded user action. Immutable once created."""

    user_id: str
    action_type: str
    timestamp: datetime
    target_element: str = ""
    context: str = ""
    duration: float = 0.0
    success: bool = True
    device: str = "unknown"
    session_id: str = ""
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "timestamp", _as_utc(self.timestamp))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @property
    def category(self) -> str | None:
        value = self.metadata.get("category")
        return value if isinstance(value, str) and value else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "action_type": self.action_type,
            "timestamp": self.timestamp.isoformat(),
            "target_element": self.target_element,
            "context": self.context,
            "duration": self.duration,
            "success": self.success,
            "device": self.device,
            "session_id": self.session_id,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> InteractionEvent:
        timestamp = data["timestamp"]
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp)
        return cls(
            user_id=data["user_id"],
            action_type=data.get("action_type", ""),
            timestamp=timestamp,
            target_element=data.get("target_element", ""),
            context=data.get("context", ""),
            duration=float(data.get("duration", 0.0)),
            success=bool(data.get("success", True)),
            device=data.get("device", "unknown"),
            session_id=data.get("session_id", ""),
            metadata=data.get("metadata") or {},
        )


@dataclass(frozen=True)
class Accepted:
    """Ledger append succeeded."""

    event: InteractionEvent
    accepted: Literal[True] = True


@dataclass(frozen=True)
class Rejected:
    """Ledger append refused; the event was not stored."""

    error: InvalidEventError
    accepted: Literal[False] = False

    @property
    def reason(self) -> str:
        return self.error.reason


AppendResult = Accepted | Rejected


# ============================================================================
# Usage pattern
# ============================================================================


@dataclass
class UsagePattern:
    """
    Aggregated behavioral profile for one user.

    Always re-derivable from the ledger contents alone.
    """

    user_id: str
    time_slots: dict[str, int] = field(default_factory=dict)
    device_preferences: dict[str, int] = field(default_factory=dict)
    feature_usage: dict[str, int] = field(default_factory=dict)
    category_preferences: dict[str, int] = field(default_factory=dict)
    session_duration: dict[str, float] = field(default_factory=dict)
    completion_rates: dict[str, int] = field(default_factory=dict)
    abandonment_points: dict[str, int] = field(default_factory=dict)
    engagement_trend: EngagementTrend = EngagementTrend.STABLE
    return_frequency: float = 0.0
    total_events: int = 0
    session_ids: set[str] = field(default_factory=set)
    first_event_at: datetime | None = None
    last_event_at: datetime | None = None

    @property
    def total_usage(self) -> int:
        """Total bucketed usage across all time slots."""
        return sum(self.time_slots.values())

    @property
    def session_count(self) -> int:
        return len(self.session_ids)

    @property
    def distinct_features(self) -> int:
        return len(self.feature_usage)

    @property
    def feature_volume(self) -> int:
        return sum(self.feature_usage.values())

    @property
    def abandonment_total(self) -> int:
        return sum(self.abandonment_points.values())

    @property
    def abandonment_rate(self) -> float:
        if self.total_events == 0:
            return 0.0
        return self.abandonment_total / self.total_events

    def copy(self) -> UsagePattern:
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["engagement_trend"] = self.engagement_trend.value
        data["session_ids"] = sorted(self.session_ids)
        data["session_count"] = self.session_count
        data["first_event_at"] = self.first_event_at.isoformat() if self.first_event_at else None
        data["last_event_at"] = self.last_event_at.isoformat() if self.last_event_at else None
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> UsagePattern:
        def _when(value: Any) -> datetime | None:
            return datetime.fromisoformat(value) if value else None

        return cls(
            user_id=data["user_id"],
            time_slots=dict(data.get("time_slots", {})),
            device_preferences=dict(data.get("device_preferences", {})),
            feature_usage=dict(data.get("feature_usage", {})),
            category_preferences=dict(data.get("category_preferences", {})),
            session_duration=dict(data.get("session_duration", {})),
            completion_rates=dict(data.get("completion_rates", {})),
            abandonment_points=dict(data.get("abandonment_points", {})),
            engagement_trend=EngagementTrend(data.get("engagement_trend", "stable")),
            return_frequency=float(data.get("return_frequency", 0.0)),
            total_events=int(data.get("total_events", 0)),
            session_ids=set(data.get("session_ids", [])),
            first_event_at=_when(data.get("first_event_at")),
            last_event_at=_when(data.get("last_event_at")),
        )


# ============================================================================
# Skill assessment
# ============================================================================


@dataclass
class SkillIndicators:
    """Evidence the skill level was derived from."""

    feature_usage: dict[str, int] = field(default_factory=dict)
    completion_rates: dict[str, float] = field(default_factory=dict)
    error_rates: dict[str, float] = field(default_factory=dict)
    distinct_features: int = 0


@dataclass
class ProgressionMetrics:
    learning_velocity: float = 0.0
    retention_rate: float = 0.0
    skill_application: float = 0.0


@dataclass
class SkillRecommendations:
    current_level_features: list[str] = field(default_factory=list)
    next_level_features: list[str] = field(default_factory=list)
    skill_development: list[str] = field(default_factory=list)


@dataclass
class SkillAssessment:
    """Proficiency tier plus the evidence and next steps behind it."""

    user_id: str
    level: SkillLevel = SkillLevel.BEGINNER
    confidence: float = 0.5
    sessions: int = 0
    journey_stage: JourneyStageName = JourneyStageName.DISCOVERY
    indicators: SkillIndicators = field(default_factory=SkillIndicators)
    progression: ProgressionMetrics = field(default_factory=ProgressionMetrics)
    recommendations: SkillRecommendations = field(default_factory=SkillRecommendations)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["level"] = self.level.value
        data["journey_stage"] = self.journey_stage.value
        return data


# ============================================================================
# Profiles & catalog
# ============================================================================


@dataclass(frozen=True)
class UserProfile:
    """Stored preferences read from the Profile Store."""

    user_id: str
    region: str = "US"
    language: str = "en"
    age: int | None = None
    subscription_tier: SubscriptionTier = SubscriptionTier.FREE
    taste_preferences: frozenset[str] = frozenset()
    dietary_restrictions: frozenset[str] = frozenset()
    cultural_flavors: frozenset[str] = frozenset()
    total_sessions: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> UserProfile:
        return cls(
            user_id=data["user_id"],
            region=data.get("region", "US"),
            language=data.get("language", "en"),
            age=data.get("age"),
            subscription_tier=SubscriptionTier(data.get("subscription_tier", "free")),
            taste_preferences=frozenset(data.get("taste_preferences", ())),
            dietary_restrictions=frozenset(data.get("dietary_restrictions", ())),
            cultural_flavors=frozenset(data.get("cultural_flavors", ())),
            total_sessions=int(data.get("total_sessions", 0)),
        )


def default_profile(user_id: str) -> UserProfile:
    """Fully-populated profile used when the Profile Store has no record."""
    return UserProfile(
        user_id=user_id,
        region="US",
        language="en",
        age=None,
        subscription_tier=SubscriptionTier.FREE,
        taste_preferences=frozenset(),
        dietary_restrictions=frozenset(),
        cultural_flavors=frozenset(),
        total_sessions=0,
    )


@dataclass(frozen=True)
class CatalogItem:
    """Candidate item owned by the external catalog (read-only here)."""

    id: str
    name: str = ""
    category: str | None = None
    tags: frozenset[str] = frozenset()
    region: str | None = None
    difficulty: SkillLevel = SkillLevel.BEGINNER
    price_estimate: float | None = None
    dietary_flags: frozenset[str] = frozenset()
    seasonal_tags: frozenset[str] = frozenset()
    added_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CatalogItem:
        added_at = data.get("added_at")
        if isinstance(added_at, str):
            added_at = datetime.fromisoformat(added_at)
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            category=data.get("category"),
            tags=frozenset(data.get("tags", ())),
            region=data.get("region"),
            difficulty=SkillLevel(data.get("difficulty", "beginner")),
            price_estimate=data.get("price_estimate"),
            dietary_flags=frozenset(data.get("dietary_flags", ())),
            seasonal_tags=frozenset(data.get("seasonal_tags", ())),
            added_at=_as_utc(added_at) if added_at else None,
        )


# ============================================================================
# Recommendations
# ============================================================================


@dataclass(frozen=True)
class BudgetRange:
    min: float
    max: float

    def __post_init__(self) -> None:
        if self.min > self.max:
            raise ValueError(f"Budget min {self.min} exceeds max {self.max}")


@dataclass(frozen=True)
class RecommendationContext:
    """Caller filters for a recommendation batch."""

    count: int = 10
    category: str | None = None
    dietary_restrictions: tuple[str, ...] = ()
    budget_range: BudgetRange | None = None
    exclude_tags: tuple[str, ...] = ()

    def cache_key(self) -> tuple:
        budget = (self.budget_range.min, self.budget_range.max) if self.budget_range else None
        return (
            self.count,
            self.category,
            tuple(sorted(self.dietary_restrictions)),
            budget,
            tuple(sorted(self.exclude_tags)),
        )


@dataclass(frozen=True)
class FactorScores:
    """Seven-factor breakdown; every factor is in [0, 1]."""

    taste: float
    dietary: float
    cultural: float
    seasonal: float
    budget: float
    skill: float
    behavioral: float

    def as_dict(self) -> dict[str, float]:
        return asdict(self)


@dataclass
class Recommendation:
    recommendation_id: str
    item: CatalogItem
    score: float
    factors: FactorScores
    reasons: list[str]
    confidence: float
    is_fallback: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "recommendation_id": self.recommendation_id,
            "item_id": self.item.id,
            "item_name": self.item.name,
            "score": self.score,
            "factors": self.factors.as_dict(),
            "reasons": list(self.reasons),
            "confidence": self.confidence,
            "is_fallback": self.is_fallback,
        }


# ============================================================================
# Gating outcomes
# ============================================================================


@dataclass
class UserGateState:
    """
    Per (user, gate) record. Created lazily on first eligibility check.

    Monotonic: once ``unlocked`` is true it is never reset.
    """

    user_id: str
    gate_id: str
    status: GateStatus = GateStatus.LOCKED
    unlocked: bool = False
    unlocked_at: datetime | None = None
    introduction_method: IntroductionMethod | None = None
    introduced_at: datetime | None = None
    view_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "gate_id": self.gate_id,
            "status": self.status.value,
            "unlocked": self.unlocked,
            "unlocked_at": self.unlocked_at.isoformat() if self.unlocked_at else None,
            "introduction_method": self.introduction_method.value if self.introduction_method else None,
            "introduced_at": self.introduced_at.isoformat() if self.introduced_at else None,
            "view_count": self.view_count,
        }


@dataclass(frozen=True)
class EligibilityResult:
    eligible: bool
    reason: IneligibilityReason | None = None

    @classmethod
    def ok(cls) -> EligibilityResult:
        return cls(eligible=True)

    @classmethod
    def blocked(cls, reason: IneligibilityReason) -> EligibilityResult:
        return cls(eligible=False, reason=reason)


@dataclass
class IntroductionResult:
    gate_id: str
    introduced: bool
    unlocked: bool = False
    method: IntroductionMethod | None = None
    timing: IntroductionTiming | None = None
    presentation: Presentation | None = None
    message: str = ""
    onboarding_steps: list[dict[str, Any]] = field(default_factory=list)
    reason: IneligibilityReason | None = None
    introduction_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "gate_id": self.gate_id,
            "introduced": self.introduced,
            "unlocked": self.unlocked,
            "method": self.method.value if self.method else None,
            "timing": self.timing.value if self.timing else None,
            "presentation": self.presentation.value if self.presentation else None,
            "message": self.message,
            "onboarding_steps": list(self.onboarding_steps),
            "reason": self.reason.value if self.reason else None,
            "introduction_id": self.introduction_id,
        }


# ============================================================================
# Engagement
# ============================================================================


@dataclass
class EngagementStrategy:
    user_id: str
    strategy: Literal["education", "gamification", "social", "personalization", "rewards"]
    trigger: str
    message: str
    timing: Literal["immediate", "delayed", "scheduled"]
    channel: Literal["email", "push", "in-app", "sms"]
    priority: Literal["low", "medium", "high"]
    expected_impact: float
    personalizations: list[str] = field(default_factory=list)


@dataclass
class AbandonmentRecovery:
    user_id: str
    abandonment_point: str
    days_since_abandonment: int
    recovery_method: Literal["reminder", "incentive", "simplification", "education"]
    message: str
    success_probability: float
    offer: str | None = None
    fallback_strategies: list[str] = field(default_factory=list)


@dataclass
class EngagementPlan:
    user_id: str
    engagement_opportunities: list[EngagementStrategy] = field(default_factory=list)
    abandonment_risks: list[AbandonmentRecovery] = field(default_factory=list)
    engagement_score: float = 0.0
    retention_prediction: float = 0.5
    churn_risk: ChurnRisk = ChurnRisk.MEDIUM

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["churn_risk"] = self.churn_risk.value
        return data
