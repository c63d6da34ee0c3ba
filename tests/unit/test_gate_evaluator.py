"""
Unit tests for the content gate evaluator.

Covers the ordered eligibility checks, the locked -> eligible ->
introduced -> unlocked state machine, idempotent introduction and
progressive feature proposals.
"""
import json
import threading
from datetime import datetime, timedelta, timezone

import pytest

from personalization.core.exceptions import GateNotFoundError
from personalization.engine import PersonalizationEngine
from personalization.gating.definitions import (
    AgeRestriction,
    ContentGate,
    GateCatalog,
    GateConditions,
    TimeWindow,
    load_gate_catalog,
)
from personalization.gating.evaluator import ContentGateEvaluator, check_conditions
from personalization.models import (
    GateStatus,
    IneligibilityReason,
    IntroductionMethod,
    IntroductionTiming,
    SkillAssessment,
    SkillLevel,
    SubscriptionTier,
    UsagePattern,
    UserProfile,
)
from tests.helpers import START, make_event, session_events

RESTRICTED = ContentGate(
    id="restricted",
    name="Restricted",
    category="premium",
    conditions=GateConditions(
        skill_level=SkillLevel.INTERMEDIATE,
        experience_threshold=5,
        age_restrictions=AgeRestriction(min=18),
        regional_restrictions=("CN",),
        subscription_tier=SubscriptionTier.PREMIUM,
        time_based_access=TimeWindow(
            available_from=datetime(2024, 6, 1, tzinfo=timezone.utc),
            available_until=datetime(2024, 6, 30, tzinfo=timezone.utc),
        ),
        feature_dependencies=("basic",),
    ),
)

QUALIFIED = SkillAssessment(user_id="u", level=SkillLevel.ADVANCED, sessions=10)
ADULT = UserProfile(user_id="u", region="US", age=30, subscription_tier=SubscriptionTier.PRO)


def record_sessions(engine, sessions, actions, user_id="user-1"):
    for event in session_events(user_id, sessions, actions):
        engine.record_interaction(user_id, event)


class TestCheckConditions:
    """Tests for the pure, ordered condition check."""

    def test_all_conditions_met(self):
        assert check_conditions(RESTRICTED, QUALIFIED, ADULT, START, {"basic"}).eligible

    def test_skill_checked_first(self):
        novice = SkillAssessment(user_id="u", level=SkillLevel.BEGINNER, sessions=0)
        child = UserProfile(user_id="u", region="CN", age=10)

        result = check_conditions(RESTRICTED, novice, child, START - timedelta(days=60), set())

        assert result.reason == IneligibilityReason.INSUFFICIENT_SKILL_LEVEL

    def test_experience(self):
        fresh = SkillAssessment(user_id="u", level=SkillLevel.EXPERT, sessions=4)
        result = check_conditions(RESTRICTED, fresh, ADULT, START, {"basic"})
        assert result.reason == IneligibilityReason.INSUFFICIENT_EXPERIENCE

    @pytest.mark.parametrize("age", [17, None])
    def test_age(self, age):
        profile = UserProfile(user_id="u", age=age, subscription_tier=SubscriptionTier.PRO)
        result = check_conditions(RESTRICTED, QUALIFIED, profile, START, {"basic"})
        assert result.reason == IneligibilityReason.AGE_RESTRICTION

    def test_unknown_age_passes_without_minimum(self):
        open_gate = ContentGate(id="open", name="Open")
        assert check_conditions(open_gate, QUALIFIED, UserProfile(user_id="u"), START, set()).eligible

    def test_maximum_age(self):
        youth = ContentGate(id="youth", name="Youth", conditions=GateConditions(age_restrictions=AgeRestriction(max=17)))
        assert not check_conditions(youth, QUALIFIED, ADULT, START, set()).eligible

    def test_region(self):
        profile = UserProfile(user_id="u", region="CN", age=30, subscription_tier=SubscriptionTier.PRO)
        result = check_conditions(RESTRICTED, QUALIFIED, profile, START, {"basic"})
        assert result.reason == IneligibilityReason.REGION_RESTRICTED

    def test_subscription(self):
        profile = UserProfile(user_id="u", age=30, subscription_tier=SubscriptionTier.FREE)
        result = check_conditions(RESTRICTED, QUALIFIED, profile, START, {"basic"})
        assert result.reason == IneligibilityReason.SUBSCRIPTION_REQUIRED

    def test_availability_window(self):
        result = check_conditions(RESTRICTED, QUALIFIED, ADULT, datetime(2024, 7, 2, tzinfo=timezone.utc), {"basic"})
        assert result.reason == IneligibilityReason.OUTSIDE_AVAILABILITY_WINDOW

    def test_dependencies(self):
        result = check_conditions(RESTRICTED, QUALIFIED, ADULT, START, set())
        assert result.reason == IneligibilityReason.MISSING_DEPENDENCIES


class TestEvaluateGate:
    """Tests for stateful gate evaluation."""

    def test_basic_gate_eligible_for_new_user(self, engine):
        assert engine.evaluate_gate("user-1", "basic-calculator").eligible

        state = next(s for s in engine.gate_states("user-1") if s.gate_id == "basic-calculator")
        assert state.status == GateStatus.ELIGIBLE

    def test_advanced_gate_needs_skill(self, engine):
        result = engine.evaluate_gate("user-1", "advanced-calculator")

        assert not result.eligible
        assert result.reason == IneligibilityReason.INSUFFICIENT_SKILL_LEVEL

    def test_unknown_gate(self, engine):
        with pytest.raises(GateNotFoundError):
            engine.evaluate_gate("user-1", "teleporter")

    def test_dependency_unlocks_in_order(self, engine):
        record_sessions(engine, 6, ["calculator-usage", "recipe-calculation", "recipe-creation"])

        blocked = engine.evaluate_gate("user-1", "advanced-calculator")
        engine.introduce_feature("user-1", "basic-calculator")
        allowed = engine.evaluate_gate("user-1", "advanced-calculator")

        assert blocked.reason == IneligibilityReason.MISSING_DEPENDENCIES
        assert allowed.eligible

    def test_unlocked_gate_stays_eligible(self, engine, profiles):
        """An unlocked gate evaluates as eligible even when conditions later fail."""
        record_sessions(engine, 3, ["recipe-creation"])
        engine.introduce_feature("user-1", "community-sharing")
        engine.record_engagement("user-1", "community-sharing")

        profiles.save(UserProfile(user_id="user-1", age=10))

        assert engine.evaluate_gate("user-1", "community-sharing").eligible

    def test_naive_window_from_file_evaluates(self, tmp_path, profiles, catalog, clock, ids):
        opened, later = "2024-01-01T00:00:00", "2025-01-01T00:00:00"
        path = tmp_path / "gates.json"
        path.write_text(
            json.dumps(
                [
                    {"id": "open", "name": "Open", "conditions": {"time_based_access": {"available_from": opened}}},
                    {"id": "later", "name": "Later", "conditions": {"time_based_access": {"available_from": later}}},
                ]
            )
        )
        engine = PersonalizationEngine(profiles, catalog, gates=load_gate_catalog(path), clock=clock, id_generator=ids)

        assert engine.evaluate_gate("user-1", "open").eligible
        assert engine.evaluate_gate("user-1", "later").reason == IneligibilityReason.OUTSIDE_AVAILABILITY_WINDOW

    def test_gate_states_cover_catalog(self, engine):
        states = engine.gate_states("user-1")

        assert [s.gate_id for s in states] == engine.gates.ids
        assert all(s.status == GateStatus.LOCKED for s in states)


class TestIntroduceFeature:
    """Tests for feature introduction."""

    def test_immediate_method_unlocks(self, engine):
        result = engine.introduce_feature("user-1", "basic-calculator")

        assert result.introduced
        assert result.unlocked
        assert result.method == IntroductionMethod.IMMEDIATE
        assert result.introduction_id is not None
        assert result.message == "Basic Calculator: Work out simple mix ratios in seconds."

    def test_ineligible_introduction(self, engine):
        result = engine.introduce_feature("user-1", "premium-analytics")

        assert not result.introduced
        assert result.reason == IneligibilityReason.INSUFFICIENT_SKILL_LEVEL
        state = next(s for s in engine.gate_states("user-1") if s.gate_id == "premium-analytics")
        assert state.status == GateStatus.LOCKED
        assert state.view_count == 1

    def test_introduction_is_idempotent(self, engine):
        record_sessions(engine, 3, ["recipe-creation"])

        first = engine.introduce_feature("user-1", "community-sharing")
        second = engine.introduce_feature("user-1", "community-sharing")

        assert first.introduction_id is not None
        assert second.introduction_id is None
        assert second.introduced
        assert second.method == first.method == IntroductionMethod.CONTEXTUAL
        counters = engine.gates.analytics("community-sharing")
        assert counters.successful_introductions == 1
        assert counters.total_views == 2
        state = next(s for s in engine.gate_states("user-1") if s.gate_id == "community-sharing")
        assert state.status == GateStatus.INTRODUCED
        assert state.view_count == 2

    def test_method_override(self, engine):
        record_sessions(engine, 3, ["recipe-creation"])

        result = engine.introduce_feature("user-1", "community-sharing", IntroductionMethod.IMMEDIATE)

        assert result.unlocked
        assert result.method == IntroductionMethod.IMMEDIATE

    def test_milestone_timing_and_onboarding(self, engine):
        record_sessions(engine, 6, ["calculator-usage", "recipe-calculation", "recipe-creation"])
        engine.introduce_feature("user-1", "basic-calculator")

        result = engine.introduce_feature("user-1", "advanced-calculator")

        assert result.introduced
        assert not result.unlocked
        assert result.method == IntroductionMethod.GRADUAL
        assert result.timing == IntroductionTiming.AFTER_MILESTONE
        assert [step["id"] for step in result.onboarding_steps] == ["overview", "precision"]

    def test_concurrent_introductions_count_once(self, engine):
        record_sessions(engine, 3, ["recipe-creation"])
        results = []

        def worker():
            results.append(engine.introduce_feature("user-1", "community-sharing"))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sum(1 for r in results if r.introduction_id is not None) == 1
        assert engine.gates.analytics("community-sharing").successful_introductions == 1

    def test_gate_without_strategy_uses_journey_default(self, profiles, catalog, clock, ids):
        gates = GateCatalog([ContentGate(id="plain", name="Plain")])
        engine = PersonalizationEngine(profiles, catalog, gates=gates, clock=clock, id_generator=ids)

        result = engine.introduce_feature("user-1", "plain")

        # New users are in discovery, which introduces gradually
        assert result.method == IntroductionMethod.GRADUAL
        assert result.message == "Getting Started: Welcome! Let's explore the basics together."


class TestUnlocking:
    """Tests for engagement-driven unlocks."""

    def test_engagement_unlocks_introduced_gate(self, engine):
        record_sessions(engine, 3, ["recipe-creation"])
        engine.introduce_feature("user-1", "community-sharing")

        assert engine.record_engagement("user-1", "community-sharing") is True
        assert engine.record_engagement("user-1", "community-sharing") is False

        state = next(s for s in engine.gate_states("user-1") if s.gate_id == "community-sharing")
        assert state.unlocked
        assert state.unlocked_at == START

    def test_engagement_before_introduction_does_nothing(self, engine):
        assert engine.record_engagement("user-1", "community-sharing") is False

    def test_unlock_action_in_interaction(self, engine, sink):
        record_sessions(engine, 3, ["recipe-creation"])
        engine.introduce_feature("user-1", "community-sharing")

        engine.record_interaction("user-1", make_event(action_type="recipe-share", session_id="s9"))

        assert any(s.unlocked for s in engine.gate_states("user-1") if s.gate_id == "community-sharing")
        assert [e.gate_id for e in sink.of_kind("gate_unlocked")] == ["community-sharing"]

    def test_failed_unlock_action_does_not_unlock(self, engine):
        record_sessions(engine, 3, ["recipe-creation"])
        engine.introduce_feature("user-1", "community-sharing")

        engine.record_interaction("user-1", make_event(action_type="recipe-share", success=False))

        assert not any(s.unlocked for s in engine.gate_states("user-1"))


class TestProgressiveFeatures:
    """Tests for progressive introduction proposals."""

    def test_readiness_score(self):
        gate = ContentGate(
            id="g",
            name="G",
            conditions=GateConditions(behavioral_triggers=("calculator-usage",)),
        )
        busy = UsagePattern(user_id="u", feature_usage={"calculator-usage": 5})

        assert ContentGateEvaluator.readiness(gate, busy, 10) == pytest.approx(1.0)
        assert ContentGateEvaluator.readiness(gate, UsagePattern(user_id="u"), 2) == pytest.approx(0.6)

    def test_new_user_not_ready(self, engine):
        assert engine.progressive_features("user-1") == []

    def test_active_user_gets_proposal(self, engine):
        record_sessions(engine, 1, ["calculator-usage"] * 3)

        proposals = engine.progressive_features("user-1")

        assert [p.gate_id for p in proposals] == ["basic-calculator"]
        assert proposals[0].readiness == pytest.approx(0.75)
        assert proposals[0].method == IntroductionMethod.IMMEDIATE
        assert proposals[0].timing == IntroductionTiming.ON_DEMAND

    def test_unlocked_gates_not_proposed(self, engine):
        record_sessions(engine, 1, ["calculator-usage"] * 3)
        engine.introduce_feature("user-1", "basic-calculator")

        assert engine.progressive_features("user-1") == []
