"""
Content Gate Definitions.

Static gate configuration as pydantic models:
- Conditions (skill, experience, age, region, subscription, dependencies, time window)
- Introduction strategy (method, timing, presentation, messaging, onboarding)
- Content descriptor shown while the gate is locked

Definitions are immutable once loaded. Mutable per-gate counters live in
``GateAnalytics``. ``GateCatalog`` validates the whole set at startup:
duplicate ids, unknown or cyclic dependencies and inverted ranges are fatal.
"""
from __future__ import annotations

import json
import string
import threading
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from personalization.core.exceptions import GateConfigurationError, GateNotFoundError
from personalization.models import (
    IntroductionMethod,
    IntroductionTiming,
    Presentation,
    SkillLevel,
    SubscriptionTier,
)

DEFAULT_MESSAGE_TEMPLATE = "{title}: {description}"
TEMPLATE_FIELDS = frozenset({"title", "description", "call_to_action", "gate_name"})


# ========================================
# Definition Models
# ========================================


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class AgeRestriction(_Frozen):
    min: int = Field(0, ge=0, description="Minimum age (0 disables the lower bound)")
    max: int | None = Field(None, ge=0, description="Maximum age, inclusive")

    @model_validator(mode="after")
    def _check_bounds(self) -> AgeRestriction:
        if self.max is not None and self.min > self.max:
            raise ValueError(f"age min {self.min} exceeds max {self.max}")
        return self


class TimeWindow(_Frozen):
    available_from: datetime
    available_until: datetime | None = None

    @field_validator("available_from", "available_until")
    @classmethod
    def _to_utc(cls, value: datetime | None) -> datetime | None:
        # Naive bounds are read as UTC
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @model_validator(mode="after")
    def _check_order(self) -> TimeWindow:
        if self.available_until is not None and self.available_until < self.available_from:
            raise ValueError("availability window ends before it starts")
        return self

    def contains(self, moment: datetime) -> bool:
        if moment < self.available_from:
            return False
        return self.available_until is None or moment <= self.available_until


class GateConditions(_Frozen):
    skill_level: SkillLevel = SkillLevel.BEGINNER
    experience_threshold: int = Field(0, ge=0, description="Minimum session count")
    behavioral_triggers: tuple[str, ...] = ()
    regional_restrictions: tuple[str, ...] = Field((), description="Regions where the gate is blocked")
    age_restrictions: AgeRestriction = AgeRestriction()
    subscription_tier: SubscriptionTier | None = None
    feature_dependencies: tuple[str, ...] = ()
    time_based_access: TimeWindow | None = None


class Messaging(_Frozen):
    title: str
    description: str
    call_to_action: str = ""
    benefits: tuple[str, ...] = ()
    template: str = DEFAULT_MESSAGE_TEMPLATE

    @field_validator("template")
    @classmethod
    def _known_placeholders(cls, value: str) -> str:
        for _, field_name, _, _ in string.Formatter().parse(value):
            if field_name is None:
                continue
            if not field_name or field_name not in TEMPLATE_FIELDS:
                allowed = ", ".join(sorted(TEMPLATE_FIELDS))
                raise ValueError(f"unknown template placeholder {{{field_name}}} (allowed: {allowed})")
        try:
            value.format(**dict.fromkeys(TEMPLATE_FIELDS, ""))
        except (KeyError, IndexError, ValueError) as e:
            raise ValueError(f"template does not render: {e}") from e
        return value

    def render(self, gate_name: str = "") -> str:
        return self.template.format(
            title=self.title,
            description=self.description,
            call_to_action=self.call_to_action,
            gate_name=gate_name,
        )


class OnboardingStep(_Frozen):
    id: str
    title: str
    description: str
    action: str
    target: str | None = None


class Onboarding(_Frozen):
    steps: tuple[OnboardingStep, ...] = ()
    skip_option: bool = True
    required: bool = False


class IntroductionStrategy(_Frozen):
    method: IntroductionMethod
    timing: IntroductionTiming
    presentation: Presentation
    messaging: Messaging
    onboarding: Onboarding | None = None


class FallbackContent(_Frozen):
    message: str
    action: str = ""
    alternatives: tuple[str, ...] = ()


class GatedContent(_Frozen):
    visible: bool = False
    priority: int = Field(50, ge=0, le=100)
    fallback: FallbackContent | None = None


class ContentGate(_Frozen):
    """A feature or content item whose exposure is conditional."""

    id: str = Field(..., min_length=1)
    name: str
    category: str = Field("calculator", pattern="^(recipe|calculator|community|advanced|premium)$")
    type: str = Field("feature", pattern="^(feature|content|interface|functionality)$")
    conditions: GateConditions = GateConditions()
    introduction: IntroductionStrategy | None = None
    content: GatedContent = GatedContent()
    unlock_actions: tuple[str, ...] = Field(
        (), description="Action types that count as engagement with an introduced gate"
    )

    @model_validator(mode="after")
    def _no_self_dependency(self) -> ContentGate:
        if self.id in self.conditions.feature_dependencies:
            raise ValueError(f"gate '{self.id}' depends on itself")
        return self


# ========================================
# Analytics Counters
# ========================================


@dataclass
class GateAnalytics:
    total_views: int = 0
    successful_introductions: int = 0
    unlocks: int = 0

    @property
    def conversion_rate(self) -> float:
        if self.successful_introductions == 0:
            return 0.0
        return self.unlocks / self.successful_introductions


# ========================================
# Catalog
# ========================================


class GateCatalog:
    """
    Validated, immutable set of gate definitions plus their counters.

    Raises:
        GateConfigurationError: on duplicate ids, unknown dependencies or cycles
    """

    def __init__(self, gates: Iterable[ContentGate]):
        self._gates: dict[str, ContentGate] = {}
        for gate in gates:
            if gate.id in self._gates:
                raise GateConfigurationError(f"Duplicate gate id: {gate.id}")
            self._gates[gate.id] = gate

        self._check_dependencies()
        self._analytics = {gate_id: GateAnalytics() for gate_id in self._gates}
        self._analytics_lock = threading.Lock()

    def _check_dependencies(self) -> None:
        for gate in self._gates.values():
            for dependency in gate.conditions.feature_dependencies:
                if dependency not in self._gates:
                    raise GateConfigurationError(f"Gate '{gate.id}' depends on unknown gate '{dependency}'")

        # Depth-first search with three colours; grey on the stack means a cycle
        state: dict[str, int] = {}

        def visit(gate_id: str, path: list[str]) -> None:
            state[gate_id] = 1
            for dependency in self._gates[gate_id].conditions.feature_dependencies:
                if state.get(dependency) == 1:
                    cycle = " -> ".join([*path, gate_id, dependency])
                    raise GateConfigurationError(f"Dependency cycle: {cycle}")
                if dependency not in state:
                    visit(dependency, [*path, gate_id])
            state[gate_id] = 2

        for gate_id in self._gates:
            if gate_id not in state:
                visit(gate_id, [])

    def get(self, gate_id: str) -> ContentGate:
        gate = self._gates.get(gate_id)
        if gate is None:
            raise GateNotFoundError(gate_id)
        return gate

    def analytics(self, gate_id: str) -> GateAnalytics:
        self.get(gate_id)
        with self._analytics_lock:
            counters = self._analytics[gate_id]
            return GateAnalytics(counters.total_views, counters.successful_introductions, counters.unlocks)

    def record_view(self, gate_id: str) -> None:
        with self._analytics_lock:
            self._analytics[gate_id].total_views += 1

    def record_introduction(self, gate_id: str) -> None:
        with self._analytics_lock:
            self._analytics[gate_id].successful_introductions += 1

    def record_unlock(self, gate_id: str) -> None:
        with self._analytics_lock:
            self._analytics[gate_id].unlocks += 1

    def __contains__(self, gate_id: object) -> bool:
        return gate_id in self._gates

    def __iter__(self) -> Iterator[ContentGate]:
        return iter(self._gates.values())

    def __len__(self) -> int:
        return len(self._gates)

    @property
    def ids(self) -> list[str]:
        return list(self._gates)


# ========================================
# Loading
# ========================================


def parse_gates(raw: Iterable[dict]) -> list[ContentGate]:
    gates = []
    for entry in raw:
        try:
            gates.append(ContentGate.model_validate(entry))
        except ValidationError as e:
            gate_id = entry.get("id", "<missing id>") if isinstance(entry, dict) else "<invalid>"
            raise GateConfigurationError(f"Invalid gate definition '{gate_id}': {e}") from e
    return gates


def load_gate_catalog(path: str | Path | None = None) -> GateCatalog:
    """
    Load and validate gate definitions.

    Args:
        path: JSON file holding a list of gate objects (None uses the built-in defaults)

    Returns:
        Validated GateCatalog
    """
    if path is None:
        catalog = GateCatalog(default_gate_definitions())
        logger.debug(f"Loaded {len(catalog)} built-in gate definitions")
        return catalog

    path = Path(path)
    if not path.exists():
        raise GateConfigurationError(f"Gate definitions file not found: {path}")
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise GateConfigurationError(f"Gate definitions file is not valid JSON: {path}: {e}") from e
    if not isinstance(raw, list):
        raise GateConfigurationError(f"Gate definitions file must contain a list: {path}")

    catalog = GateCatalog(parse_gates(raw))
    logger.info(f"Loaded {len(catalog)} gate definitions from {path}")
    return catalog


def default_gate_definitions() -> list[ContentGate]:
    """Built-in gates for the drink-mix product."""
    return [
        ContentGate(
            id="basic-calculator",
            name="Basic Calculator",
            category="calculator",
            conditions=GateConditions(
                skill_level=SkillLevel.BEGINNER,
                experience_threshold=0,
                behavioral_triggers=("calculator-usage",),
            ),
            introduction=IntroductionStrategy(
                method=IntroductionMethod.IMMEDIATE,
                timing=IntroductionTiming.ON_DEMAND,
                presentation=Presentation.INLINE,
                messaging=Messaging(
                    title="Basic Calculator",
                    description="Work out simple mix ratios in seconds.",
                    call_to_action="Open Calculator",
                    benefits=("Quick results", "Safe defaults"),
                ),
            ),
            content=GatedContent(visible=True, priority=50),
            unlock_actions=("calculator-usage",),
        ),
        ContentGate(
            id="advanced-calculator",
            name="Advanced Calculator",
            category="calculator",
            conditions=GateConditions(
                skill_level=SkillLevel.INTERMEDIATE,
                experience_threshold=5,
                behavioral_triggers=("calculator-usage", "recipe-calculation"),
                age_restrictions=AgeRestriction(min=16),
                feature_dependencies=("basic-calculator",),
            ),
            introduction=IntroductionStrategy(
                method=IntroductionMethod.GRADUAL,
                timing=IntroductionTiming.AFTER_MILESTONE,
                presentation=Presentation.HIGHLIGHT,
                messaging=Messaging(
                    title="Unlock Advanced Calculator Features",
                    description="Get access to precision dosing, cost analysis, and optimization tools.",
                    call_to_action="Try Advanced Mode",
                    benefits=("Precision measurements", "Cost optimization", "Advanced scaling"),
                ),
                onboarding=Onboarding(
                    steps=(
                        OnboardingStep(
                            id="overview",
                            title="Advanced Calculator Overview",
                            description="Learn about precision dosing and optimization features",
                            action="Continue",
                        ),
                        OnboardingStep(
                            id="precision",
                            title="Precision Dosing",
                            description="Set exact measurements for professional results",
                            action="Set Precision",
                        ),
                    ),
                ),
            ),
            content=GatedContent(
                priority=80,
                fallback=FallbackContent(
                    message="Complete more calculations to unlock advanced features",
                    action="Continue Learning",
                    alternatives=("basic-calculator", "tutorial"),
                ),
            ),
            unlock_actions=("advanced-calculation",),
        ),
        ContentGate(
            id="community-sharing",
            name="Community Features",
            category="community",
            conditions=GateConditions(
                skill_level=SkillLevel.BEGINNER,
                experience_threshold=3,
                behavioral_triggers=("recipe-creation", "favorites-usage"),
                age_restrictions=AgeRestriction(min=13),
            ),
            introduction=IntroductionStrategy(
                method=IntroductionMethod.CONTEXTUAL,
                timing=IntroductionTiming.BEHAVIORAL,
                presentation=Presentation.MODAL,
                messaging=Messaging(
                    title="Share Your Creations",
                    description="Connect with other enthusiasts and share your amazing recipes!",
                    call_to_action="Share Recipe",
                    benefits=("Get feedback", "Discover new recipes", "Build reputation"),
                ),
            ),
            content=GatedContent(
                priority=60,
                fallback=FallbackContent(
                    message="Create your first recipe to unlock community features",
                    action="Start Creating",
                    alternatives=("recipe-templates", "tutorial"),
                ),
            ),
            unlock_actions=("recipe-share",),
        ),
        ContentGate(
            id="premium-analytics",
            name="Premium Analytics",
            category="premium",
            conditions=GateConditions(
                skill_level=SkillLevel.ADVANCED,
                experience_threshold=20,
                behavioral_triggers=("advanced-calculation", "batch-processing"),
                age_restrictions=AgeRestriction(min=18),
                subscription_tier=SubscriptionTier.PREMIUM,
                feature_dependencies=("advanced-calculator",),
            ),
            introduction=IntroductionStrategy(
                method=IntroductionMethod.NOTIFICATION,
                timing=IntroductionTiming.BEHAVIORAL,
                presentation=Presentation.MODAL,
                messaging=Messaging(
                    title="Upgrade to Premium",
                    description="Unlock detailed analytics and advanced optimization tools.",
                    call_to_action="Upgrade Now",
                    benefits=("Detailed analytics", "Optimization tools", "Priority support"),
                ),
            ),
            content=GatedContent(
                priority=90,
                fallback=FallbackContent(
                    message="Upgrade to premium for advanced analytics",
                    action="View Plans",
                    alternatives=("free-analytics", "trial"),
                ),
            ),
            unlock_actions=("analytics-view",),
        ),
    ]
