"""
Content Gate Evaluator.

Per-user gate state machine:

    locked -> eligible -> introduced -> unlocked

Eligibility checks run in a fixed order and return the first failing
reason as a soft result. Once a gate is unlocked for a user it stays
unlocked and always evaluates as eligible.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from loguru import logger

from config import get_settings
from personalization.core.clock import Clock, SystemClock
from personalization.core.ids import IdGenerator, UuidIdGenerator
from personalization.core.locks import UserLockRegistry
from personalization.gating.definitions import ContentGate, GateCatalog, IntroductionStrategy
from personalization.models import (
    EligibilityResult,
    GateStatus,
    IneligibilityReason,
    IntroductionMethod,
    IntroductionResult,
    IntroductionTiming,
    SkillAssessment,
    UsagePattern,
    UserGateState,
    UserProfile,
)
from personalization.repositories.base import GateStateRepository

if TYPE_CHECKING:
    from personalization.assessor import SkillJourneyAssessor


@dataclass(frozen=True)
class FeatureReadiness:
    """A gate proposed for progressive introduction."""

    gate_id: str
    readiness: float
    method: IntroductionMethod
    timing: IntroductionTiming


def check_conditions(
    gate: ContentGate,
    assessment: SkillAssessment,
    profile: UserProfile,
    now: datetime,
    unlocked_gate_ids: set[str],
) -> EligibilityResult:
    """
    Evaluate a gate's conditions for one user. Pure; first failure wins.

    Order: skill, experience, age, region, subscription, time window, dependencies.
    """
    conditions = gate.conditions
    reason = IneligibilityReason

    if not assessment.level.satisfies(conditions.skill_level):
        return EligibilityResult.blocked(reason.INSUFFICIENT_SKILL_LEVEL)

    if assessment.sessions < conditions.experience_threshold:
        return EligibilityResult.blocked(reason.INSUFFICIENT_EXPERIENCE)

    ages = conditions.age_restrictions
    if profile.age is None:
        if ages.min > 0:
            return EligibilityResult.blocked(reason.AGE_RESTRICTION)
    elif profile.age < ages.min or (ages.max is not None and profile.age > ages.max):
        return EligibilityResult.blocked(reason.AGE_RESTRICTION)

    if profile.region in conditions.regional_restrictions:
        return EligibilityResult.blocked(reason.REGION_RESTRICTED)

    required_tier = conditions.subscription_tier
    if required_tier is not None and profile.subscription_tier.rank < required_tier.rank:
        return EligibilityResult.blocked(reason.SUBSCRIPTION_REQUIRED)

    window = conditions.time_based_access
    if window is not None and not window.contains(now):
        return EligibilityResult.blocked(reason.OUTSIDE_AVAILABILITY_WINDOW)

    if any(dependency not in unlocked_gate_ids for dependency in conditions.feature_dependencies):
        return EligibilityResult.blocked(reason.MISSING_DEPENDENCIES)

    return EligibilityResult.ok()


class ContentGateEvaluator:
    """
    Decide when and how gated features are exposed to a user.

    State transitions for one user happen under that user's lock.
    """

    def __init__(
        self,
        catalog: GateCatalog,
        states: GateStateRepository,
        assessor: SkillJourneyAssessor,
        clock: Clock | None = None,
        locks: UserLockRegistry | None = None,
        id_generator: IdGenerator | None = None,
        readiness_threshold: float | None = None,
        milestone_sessions: int | None = None,
    ):
        settings = get_settings()
        self.catalog = catalog
        self._states = states
        self._assessor = assessor
        self._clock = clock or SystemClock()
        self._locks = locks or UserLockRegistry()
        self._ids = id_generator or UuidIdGenerator()
        self.readiness_threshold = (
            readiness_threshold if readiness_threshold is not None else settings.gate_readiness_threshold
        )
        self.milestone_sessions = (
            milestone_sessions if milestone_sessions is not None else settings.milestone_session_threshold
        )

    # ========================================
    # State helpers
    # ========================================

    def _load_state(self, user_id: str, gate_id: str) -> UserGateState:
        state = self._states.get(user_id, gate_id)
        if state is None:
            state = UserGateState(user_id=user_id, gate_id=gate_id)
            self._states.put(state)
        return state

    def _unlocked_ids(self, user_id: str) -> set[str]:
        return {state.gate_id for state in self._states.list_for_user(user_id) if state.unlocked}

    def _unlock(self, state: UserGateState) -> None:
        state.status = GateStatus.UNLOCKED
        state.unlocked = True
        state.unlocked_at = self._clock.now()
        self.catalog.record_unlock(state.gate_id)
        logger.info(f"Gate '{state.gate_id}' unlocked for {state.user_id}")

    # ========================================
    # Eligibility
    # ========================================

    def evaluate_gate(
        self,
        user_id: str,
        gate_id: str,
        assessment: SkillAssessment | None = None,
    ) -> EligibilityResult:
        """
        Check whether ``user_id`` currently qualifies for ``gate_id``.

        Raises:
            GateNotFoundError: if the gate id is not in the catalog
        """
        gate = self.catalog.get(gate_id)
        with self._locks.hold(user_id):
            state = self._load_state(user_id, gate_id)
            if state.unlocked:
                return EligibilityResult.ok()

            assessment = assessment or self._assessor.assess(user_id)
            result = check_conditions(
                gate,
                assessment,
                self._assessor.profile(user_id),
                self._clock.now(),
                self._unlocked_ids(user_id),
            )
            if result.eligible and state.status == GateStatus.LOCKED:
                state.status = GateStatus.ELIGIBLE
                self._states.put(state)
            logger.debug(f"Gate '{gate_id}' for {user_id}: eligible={result.eligible} reason={result.reason}")
            return result

    # ========================================
    # Introduction
    # ========================================

    def _strategy_for(self, user_id: str, gate: ContentGate) -> IntroductionStrategy:
        if gate.introduction is not None:
            return gate.introduction
        return self._assessor.journey_stage(user_id).introduction_strategy

    def _timing_for(self, strategy: IntroductionStrategy, sessions: int) -> IntroductionTiming:
        if strategy.timing == IntroductionTiming.AFTER_MILESTONE and sessions <= self.milestone_sessions:
            return IntroductionTiming.TIME_BASED
        return strategy.timing

    def _introduction_result(
        self,
        gate: ContentGate,
        strategy: IntroductionStrategy,
        state: UserGateState,
        sessions: int,
    ) -> IntroductionResult:
        onboarding = strategy.onboarding
        return IntroductionResult(
            gate_id=gate.id,
            introduced=True,
            unlocked=state.unlocked,
            method=state.introduction_method,
            timing=self._timing_for(strategy, sessions),
            presentation=strategy.presentation,
            message=strategy.messaging.render(gate_name=gate.name),
            onboarding_steps=[step.model_dump() for step in onboarding.steps] if onboarding else [],
        )

    def introduce_feature(
        self,
        user_id: str,
        gate_id: str,
        method_override: IntroductionMethod | None = None,
    ) -> IntroductionResult:
        """
        Introduce a gated feature if the user is eligible.

        Re-invoking after a successful introduction changes nothing but the
        view counter. The ``immediate`` method unlocks at once.

        Raises:
            GateNotFoundError: if the gate id is not in the catalog
        """
        gate = self.catalog.get(gate_id)
        with self._locks.hold(user_id):
            assessment = self._assessor.assess(user_id)
            strategy = self._strategy_for(user_id, gate)
            self.catalog.record_view(gate_id)

            eligibility = None
            state = self._load_state(user_id, gate_id)
            if state.status not in (GateStatus.INTRODUCED, GateStatus.UNLOCKED):
                eligibility = self.evaluate_gate(user_id, gate_id, assessment)
                state = self._load_state(user_id, gate_id)
            state.view_count += 1

            if eligibility is None:
                self._states.put(state)
                return self._introduction_result(gate, strategy, state, assessment.sessions)

            if not eligibility.eligible:
                self._states.put(state)
                return IntroductionResult(gate_id=gate_id, introduced=False, reason=eligibility.reason)

            state.status = GateStatus.INTRODUCED
            state.introduction_method = method_override or strategy.method
            state.introduced_at = self._clock.now()
            self.catalog.record_introduction(gate_id)
            if state.introduction_method == IntroductionMethod.IMMEDIATE:
                self._unlock(state)
            self._states.put(state)

            result = self._introduction_result(gate, strategy, state, assessment.sessions)
            result.introduction_id = self._ids.new_id("intro")
            logger.info(f"Introduced '{gate_id}' to {user_id} via {state.introduction_method.value}")
            return result

    # ========================================
    # Unlocking
    # ========================================

    def record_engagement(self, user_id: str, gate_id: str) -> bool:
        """
        Signal that the user engaged with an introduced feature.

        Returns:
            True if this call moved the gate from introduced to unlocked
        """
        self.catalog.get(gate_id)
        with self._locks.hold(user_id):
            state = self._load_state(user_id, gate_id)
            if state.status != GateStatus.INTRODUCED:
                return False
            self._unlock(state)
            self._states.put(state)
            return True

    def unlock_from_action(self, user_id: str, action_type: str) -> list[str]:
        """Unlock every introduced gate whose unlock actions include ``action_type``."""
        unlocked = []
        for gate in self.catalog:
            if action_type in gate.unlock_actions and self.record_engagement(user_id, gate.id):
                unlocked.append(gate.id)
        return unlocked

    # ========================================
    # Progressive introduction
    # ========================================

    @staticmethod
    def readiness(gate: ContentGate, pattern: UsagePattern, sessions: int) -> float:
        trigger_usage = sum(pattern.feature_usage.get(trigger, 0) for trigger in gate.conditions.behavioral_triggers)
        score = 0.5 + min(sessions / 20, 0.3) + min(trigger_usage / 10, 0.2)
        return min(score, 1.0)

    def progressive_features(self, user_id: str, pattern: UsagePattern | None = None) -> list[FeatureReadiness]:
        """
        Gates from the user's journey stage worth introducing now.

        Returns:
            Eligible, not-yet-unlocked gates above the readiness threshold,
            most ready first
        """
        if pattern is None:
            pattern = self._assessor.usage_pattern(user_id)
        stage = self._assessor.journey_stage(user_id, pattern)
        assessment = self._assessor.assess(user_id, pattern)

        proposals = []
        for gate_id in stage.recommended_features:
            if gate_id not in self.catalog:
                continue
            gate = self.catalog.get(gate_id)
            state = self._states.get(user_id, gate_id)
            if state is not None and state.unlocked:
                continue
            if not self.evaluate_gate(user_id, gate_id, assessment).eligible:
                continue
            score = self.readiness(gate, pattern, assessment.sessions)
            if score <= self.readiness_threshold:
                continue
            strategy = self._strategy_for(user_id, gate)
            proposals.append(
                FeatureReadiness(
                    gate_id=gate_id,
                    readiness=score,
                    method=strategy.method,
                    timing=self._timing_for(strategy, assessment.sessions),
                )
            )

        proposals.sort(key=lambda proposal: (-proposal.readiness, proposal.gate_id))
        return proposals

    def gate_states(self, user_id: str) -> list[UserGateState]:
        """Current state for every catalog gate (unseen gates report as locked)."""
        return [
            self._states.get(user_id, gate.id) or UserGateState(user_id=user_id, gate_id=gate.id)
            for gate in self.catalog
        ]
