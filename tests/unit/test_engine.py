"""
Unit tests for the PersonalizationEngine facade (fully in-memory).
"""
import json
import threading
from dataclasses import replace
from datetime import timedelta

import pytest

from config import Settings
from personalization.analytics import InMemoryAnalyticsSink
from personalization.core.exceptions import ConfigurationError
from personalization.engine import PersonalizationEngine, build_engine
from personalization.models import (
    Accepted,
    JourneyStageName,
    RecommendationContext,
    Rejected,
    SkillLevel,
)
from tests.helpers import START, make_event, session_events


class TestRecordInteraction:
    """Tests for interaction recording."""

    def test_accepted_event_updates_pattern(self, engine, sink):
        result = engine.record_interaction("user-1", make_event(category="drink"))

        assert isinstance(result, Accepted)
        pattern = engine.get_usage_pattern("user-1")
        assert pattern.total_events == 1
        assert pattern.category_preferences == {"drink": 1}
        assert [e.action_type for e in sink.of_kind("interaction_recorded")] == ["calculator-usage"]

    def test_rejected_event_changes_nothing(self, engine, sink):
        result = engine.record_interaction("user-1", make_event(action_type=""))

        assert isinstance(result, Rejected)
        assert engine.get_usage_pattern("user-1").total_events == 0
        assert len(sink.of_kind("interaction_rejected")) == 1
        assert sink.of_kind("interaction_recorded") == []

    def test_pattern_matches_rebuild_after_eviction(self, profiles, catalog, clock, ids):
        engine = PersonalizationEngine(profiles, catalog, clock=clock, id_generator=ids, ledger_capacity=3)
        for i in range(5):
            engine.record_interaction("user-1", make_event(at=START + timedelta(hours=i), session_id=f"s{i}"))

        pattern = engine.get_usage_pattern("user-1")

        assert pattern.total_events == 3
        assert pattern.session_ids == {"s2", "s3", "s4"}
        assert pattern.to_dict() == engine.aggregator.rebuild("user-1").to_dict()

    def test_returned_pattern_is_a_copy(self, engine):
        engine.record_interaction("user-1", make_event())

        engine.get_usage_pattern("user-1").feature_usage.clear()

        assert engine.get_usage_pattern("user-1").feature_usage == {"calculator-usage": 1}

    def test_concurrent_recording(self, engine):
        def worker(offset):
            for i in range(25):
                engine.record_interaction("user-1", make_event(at=START + timedelta(seconds=offset * 100 + i)))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        pattern = engine.get_usage_pattern("user-1")
        assert pattern.total_events == 100
        assert pattern.to_dict() == engine.aggregator.rebuild("user-1").to_dict()


class TestAssessment:
    """Tests for skill and journey through the engine."""

    def test_progression(self, engine):
        for event in session_events("user-1", 4, ["calculator-usage", "recipe-view", "favorites-usage"]):
            engine.record_interaction("user-1", event)

        assert engine.assess_skill("user-1").level == SkillLevel.INTERMEDIATE
        assert engine.journey_stage("user-1").stage == JourneyStageName.EXPLORATION
        assert engine.adapt_for_skill_level("user-1").help_level == "basic"


class TestRecommendations:
    """Tests for recommendations through the engine."""

    def test_new_interaction_invalidates_cache(self, engine):
        first = engine.get_recommendations("user-1")
        cached = engine.get_recommendations("user-1")

        engine.record_interaction("user-1", make_event(category="drink"))
        fresh = engine.get_recommendations("user-1")

        assert [r.recommendation_id for r in first] == [r.recommendation_id for r in cached]
        assert fresh[0].recommendation_id not in {r.recommendation_id for r in first}
        assert first[0].factors.behavioral == pytest.approx(0.5)
        # Drink affinity plus activity in the current time slot
        assert fresh[0].factors.behavioral == pytest.approx(0.8)

    def test_profile_update_is_not_served_from_cache(self, engine, profiles):
        before = engine.get_recommendations("user-1")

        profile = profiles.get_profile("user-1")
        profiles.save(replace(profile, dietary_restrictions=frozenset({"caffeine-free", "vegan", "sugar-free"})))
        after = engine.get_recommendations("user-1")

        assert all(rec.factors.dietary == 1.0 for rec in before)
        assert any(rec.factors.dietary < 1.0 for rec in after)

    def test_served_event(self, engine, sink):
        engine.get_recommendations("user-1", RecommendationContext(count=2))

        served = sink.of_kind("recommendations_served")
        assert served[0].item_ids == ("berry-blast", "cola-classic")
        assert served[0].fallback is False

    def test_unknown_user_gets_defaults(self, engine):
        recs = engine.get_recommendations("stranger")
        assert len(recs) == 4


class TestEngagementPlan:
    def test_plan_for_active_user(self, engine):
        for event in session_events("user-1", 2, ["calculator-usage"]):
            engine.record_interaction("user-1", event)

        plan = engine.get_engagement_plan("user-1")

        assert plan.user_id == "user-1"
        assert plan.engagement_score > 50
        assert [s.strategy for s in plan.engagement_opportunities] == ["personalization", "education"]


class TestBuildEngine:
    """Tests for constructing an engine from settings."""

    def test_from_files(self, tmp_path):
        catalog_file = tmp_path / "catalog.json"
        catalog_file.write_text(json.dumps([{"id": "lemon-zest", "tags": ["citrus"], "category": "drink"}]))
        profiles_file = tmp_path / "profiles.json"
        profiles_file.write_text(json.dumps([{"user_id": "user-1", "taste_preferences": ["citrus"]}]))
        settings = Settings(catalog_file=str(catalog_file), profiles_file=str(profiles_file))

        engine = build_engine(settings, analytics=InMemoryAnalyticsSink())

        recs = engine.get_recommendations("user-1")
        assert [r.item.id for r in recs] == ["lemon-zest"]
        assert recs[0].factors.taste == 1.0

    def test_invalid_weights_fail_fast(self):
        settings = Settings(weight_taste=0.9)
        with pytest.raises(ConfigurationError):
            build_engine(settings)

    def test_missing_catalog_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            build_engine(Settings(catalog_file=str(tmp_path / "missing.json")))
