"""
Unit tests for skill tier and journey stage assessment.
"""
import pytest

from personalization.aggregator import UsagePatternAggregator
from personalization.assessor import (
    BEGINNER_CONFIDENCE,
    SkillJourneyAssessor,
    classify_journey,
    classify_skill,
    tiers_from_settings,
)
from personalization.ledger import InteractionLedger
from personalization.models import JourneyStageName, SkillLevel, UserProfile
from personalization.repositories.memory import InMemoryProfileStore
from tests.helpers import make_event, session_events

THRESHOLDS = {
    "discovery": (3, 5),
    "exploration": (10, 20),
    "regular-use": (25, 50),
}


@pytest.fixture
def tiers():
    return tiers_from_settings()


@pytest.fixture
def ledger():
    return InteractionLedger(capacity=500)


@pytest.fixture
def assessor(ledger, profiles):
    return SkillJourneyAssessor(
        ledger,
        UsagePatternAggregator(ledger),
        profiles,
        journey_thresholds=THRESHOLDS,
    )


class TestClassifySkill:
    """Tests for the ordered tier table."""

    @pytest.mark.parametrize(
        "sessions,features,expected,confidence",
        [
            (0, 0, SkillLevel.BEGINNER, BEGINNER_CONFIDENCE),
            (3, 3, SkillLevel.BEGINNER, BEGINNER_CONFIDENCE),
            (4, 3, SkillLevel.INTERMEDIATE, 0.7),
            (21, 3, SkillLevel.INTERMEDIATE, 0.7),
            (11, 6, SkillLevel.ADVANCED, 0.8),
            (21, 11, SkillLevel.EXPERT, 0.9),
        ],
    )
    def test_tiers(self, tiers, sessions, features, expected, confidence):
        level, conf = classify_skill(sessions, features, tiers)
        assert level == expected
        assert conf == confidence

    def test_more_evidence_never_lowers_level(self, tiers):
        """Adding a session or a feature should never reduce the tier."""
        for sessions in range(25):
            for features in range(13):
                level, _ = classify_skill(sessions, features, tiers)
                more_sessions, _ = classify_skill(sessions + 1, features, tiers)
                more_features, _ = classify_skill(sessions, features + 1, tiers)
                assert more_sessions.rank >= level.rank
                assert more_features.rank >= level.rank


class TestClassifyJourney:
    """Tests for journey stage thresholds."""

    @pytest.mark.parametrize(
        "sessions,usage,expected",
        [
            (0, 0, JourneyStageName.DISCOVERY),
            (30, 4, JourneyStageName.DISCOVERY),
            (3, 5, JourneyStageName.EXPLORATION),
            (10, 20, JourneyStageName.REGULAR_USE),
            (25, 50, JourneyStageName.POWER_USER),
        ],
    )
    def test_stages(self, sessions, usage, expected):
        assert classify_journey(sessions, usage, THRESHOLDS) == expected


class TestSkillJourneyAssessor:
    """Tests for SkillJourneyAssessor over a ledger."""

    def test_new_user_is_beginner_in_discovery(self, assessor):
        assessment = assessor.assess("user-1")

        assert assessment.level == SkillLevel.BEGINNER
        assert assessment.confidence == BEGINNER_CONFIDENCE
        assert assessment.sessions == 0
        assert assessment.journey_stage == JourneyStageName.DISCOVERY

    def test_sessions_and_features_from_ledger(self, ledger, assessor):
        for event in session_events("user-1", 4, ["calculator-usage", "recipe-view", "favorites-usage"]):
            ledger.append("user-1", event)

        assessment = assessor.assess("user-1")

        assert assessment.sessions == 4
        assert assessment.indicators.distinct_features == 3
        assert assessment.level == SkillLevel.INTERMEDIATE
        assert assessment.journey_stage == JourneyStageName.EXPLORATION
        assert assessment.recommendations.next_level_features == ["advanced-calculator"]

    def test_profile_session_history_counts(self, ledger):
        profiles = InMemoryProfileStore([UserProfile(user_id="veteran", total_sessions=30)])
        assessor = SkillJourneyAssessor(ledger, UsagePatternAggregator(ledger), profiles)

        assessment = assessor.assess("veteran")

        assert assessment.sessions == 30
        # No distinct features yet, so the tier stays at beginner
        assert assessment.level == SkillLevel.BEGINNER

    def test_indicators_per_context(self, ledger, assessor):
        for success in (True, True, True, False):
            ledger.append("user-1", make_event(success=success))
        ledger.append("user-1", make_event(context="recipes"))

        indicators = assessor.assess("user-1").indicators

        assert indicators.completion_rates == {"calculator": 0.75, "recipes": 1.0}
        assert indicators.error_rates == {"calculator": 0.25, "recipes": 0.0}

    def test_unknown_profile_uses_defaults(self, assessor):
        profile = assessor.profile("stranger")

        assert profile.region == "US"
        assert profile.age is None
        assert profile.total_sessions == 0

    def test_journey_stage_carries_strategy(self, assessor):
        stage = assessor.journey_stage("user-1")

        assert stage.stage == JourneyStageName.DISCOVERY
        assert "basic-calculator" in stage.recommended_features
        assert stage.introduction_strategy.method.value == "gradual"


class TestSkillAdaptation:
    """Tests for skill-level interface adaptation."""

    def test_beginner_gets_full_help(self):
        adaptation = SkillJourneyAssessor.adapt_for_skill_level(SkillLevel.BEGINNER)

        assert adaptation.help_level == "comprehensive"
        assert adaptation.shortcuts == []

    def test_expert_gets_shortcuts(self):
        adaptation = SkillJourneyAssessor.adapt_for_skill_level(SkillLevel.EXPERT)

        assert adaptation.help_level == "none"
        assert adaptation.shortcuts
