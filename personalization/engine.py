"""
Personalization Engine.

Facade over the pipeline:

    InteractionEvent -> Ledger -> Aggregator -> Assessor
                     -> {Scorer, Gate Evaluator, Engagement Generator}

All collaborators are injected at construction; nothing here is a
singleton. Writes for one user (ledger append, usage-pattern update, gate
transitions) are serialized through a shared per-user lock registry.
"""
from __future__ import annotations

from loguru import logger

from config import Settings, get_settings
from personalization.aggregator import UsagePatternAggregator
from personalization.analytics import (
    AnalyticsSink,
    FeatureIntroduced,
    GateEvaluated,
    GateUnlocked,
    InteractionRecorded,
    InteractionRejected,
    NullAnalyticsSink,
    RecommendationsServed,
    safe_emit,
    sink_from_settings,
)
from personalization.assessor import JourneyStage, SkillAdaptation, SkillJourneyAssessor
from personalization.core.cancellation import CancellationToken
from personalization.core.clock import Clock, SystemClock
from personalization.core.ids import IdGenerator, UuidIdGenerator
from personalization.core.locks import UserLockRegistry
from personalization.engagement import EngagementStrategyGenerator
from personalization.gating.definitions import GateCatalog, load_gate_catalog
from personalization.gating.evaluator import ContentGateEvaluator, FeatureReadiness
from personalization.ledger import InteractionLedger
from personalization.models import (
    Accepted,
    AppendResult,
    EligibilityResult,
    EngagementPlan,
    InteractionEvent,
    IntroductionMethod,
    IntroductionResult,
    Recommendation,
    RecommendationContext,
    SkillAssessment,
    SkillLevel,
    UsagePattern,
    UserGateState,
)
from personalization.repositories.base import (
    CatalogStore,
    EventArchive,
    GateStateRepository,
    ProfileStore,
    UsagePatternRepository,
)
from personalization.repositories.memory import (
    InMemoryCatalogStore,
    InMemoryGateStateRepository,
    InMemoryProfileStore,
    InMemoryUsagePatternRepository,
    load_catalog,
    load_profiles,
)
from personalization.scorer import RecommendationScorer, ScoringInputs


class PersonalizationEngine:
    """
    Entry point for the inbound operations.

    Raises:
        ConfigurationError: at construction when factor weights are invalid
        GateConfigurationError: at construction when gate definitions are invalid
    """

    def __init__(
        self,
        profiles: ProfileStore,
        catalog: CatalogStore,
        *,
        gates: GateCatalog | None = None,
        patterns: UsagePatternRepository | None = None,
        gate_states: GateStateRepository | None = None,
        archive: EventArchive | None = None,
        analytics: AnalyticsSink | None = None,
        clock: Clock | None = None,
        id_generator: IdGenerator | None = None,
        ledger_capacity: int | None = None,
        weights: dict[str, float] | None = None,
        inclusion_threshold: float | None = None,
        cache_ttl_seconds: float | None = None,
    ):
        self.clock = clock or SystemClock()
        self.ids = id_generator or UuidIdGenerator()
        self.locks = UserLockRegistry()
        self.analytics = analytics or NullAnalyticsSink()
        self._patterns = patterns or InMemoryUsagePatternRepository()

        self.ledger = InteractionLedger(capacity=ledger_capacity, archive=archive, locks=self.locks)
        self.aggregator = UsagePatternAggregator(self.ledger)
        self.assessor = SkillJourneyAssessor(self.ledger, self.aggregator, profiles)
        self.scorer = RecommendationScorer(
            catalog,
            weights=weights,
            inclusion_threshold=inclusion_threshold,
            clock=self.clock,
            id_generator=self.ids,
            cache_ttl_seconds=cache_ttl_seconds,
        )
        self.gates = gates or load_gate_catalog()
        self.evaluator = ContentGateEvaluator(
            self.gates,
            gate_states or InMemoryGateStateRepository(),
            self.assessor,
            clock=self.clock,
            locks=self.locks,
            id_generator=self.ids,
        )
        self.engagement = EngagementStrategyGenerator(clock=self.clock)
        logger.debug(f"Personalization engine ready with {len(self.gates)} gates")

    # ========================================
    # Interactions & usage
    # ========================================

    def record_interaction(self, user_id: str, event: InteractionEvent) -> AppendResult:
        """
        Append an event and refresh everything derived from it.

        Invalid events come back as ``Rejected``; nothing is raised or stored.
        """
        with self.locks.hold(user_id):
            result = self.ledger.append(user_id, event)
            if not isinstance(result, Accepted):
                safe_emit(
                    self.analytics,
                    InteractionRejected(
                        event_id=self.ids.new_id("evt"),
                        user_id=user_id,
                        reason=result.reason,
                        occurred_at=self.clock.now(),
                    ),
                )
                return result

            self._refresh_pattern(user_id, event)
            self.scorer.invalidate(user_id)
            unlocked = self.evaluator.unlock_from_action(user_id, event.action_type) if event.success else []

        safe_emit(
            self.analytics,
            InteractionRecorded(
                event_id=self.ids.new_id("evt"),
                user_id=user_id,
                action_type=event.action_type,
                occurred_at=self.clock.now(),
            ),
        )
        for gate_id in unlocked:
            self._emit_unlock(user_id, gate_id)
        return result

    def _refresh_pattern(self, user_id: str, event: InteractionEvent) -> None:
        stored = self._patterns.get(user_id)
        size = self.ledger.size(user_id)
        if stored is not None and stored.total_events + 1 == size:
            pattern = self.aggregator.apply(stored, event)
        else:
            # First event or an eviction happened; fold the retained window
            pattern = self.aggregator.rebuild(user_id)
        self._patterns.put(pattern)

    def get_usage_pattern(self, user_id: str) -> UsagePattern:
        """Copy of the user's current pattern (empty for unknown users)."""
        with self.locks.hold(user_id):
            stored = self._patterns.get(user_id)
            if stored is not None and stored.total_events == self.ledger.size(user_id):
                return stored
            pattern = self.aggregator.rebuild(user_id)
            if stored is not None:
                # Stored by another process or before a restart; the ledger wins
                logger.debug(f"Stored pattern for {user_id} does not match the ledger, rebuilt")
                self._patterns.put(pattern)
            return pattern

    # ========================================
    # Assessment
    # ========================================

    def assess_skill(self, user_id: str) -> SkillAssessment:
        return self.assessor.assess(user_id, self.get_usage_pattern(user_id))

    def journey_stage(self, user_id: str) -> JourneyStage:
        return self.assessor.journey_stage(user_id, self.get_usage_pattern(user_id))

    def adapt_for_skill_level(self, user_id: str) -> SkillAdaptation:
        level: SkillLevel = self.assess_skill(user_id).level
        return self.assessor.adapt_for_skill_level(level)

    # ========================================
    # Recommendations
    # ========================================

    def get_recommendations(
        self,
        user_id: str,
        context: RecommendationContext | None = None,
        cancellation: CancellationToken | None = None,
    ) -> list[Recommendation]:
        context = context or RecommendationContext()
        pattern = self.get_usage_pattern(user_id)
        inputs = ScoringInputs(
            profile=self.assessor.profile(user_id),
            pattern=pattern,
            skill_level=self.assessor.assess(user_id, pattern).level,
            now=self.clock.now(),
        )
        recommendations = self.scorer.recommend(user_id, inputs, context, cancellation)

        safe_emit(
            self.analytics,
            RecommendationsServed(
                event_id=self.ids.new_id("evt"),
                user_id=user_id,
                item_ids=tuple(rec.item.id for rec in recommendations),
                fallback=any(rec.is_fallback for rec in recommendations),
                occurred_at=self.clock.now(),
            ),
        )
        return recommendations

    # ========================================
    # Gating
    # ========================================

    def evaluate_gate(self, user_id: str, gate_id: str) -> EligibilityResult:
        result = self.evaluator.evaluate_gate(user_id, gate_id)
        safe_emit(
            self.analytics,
            GateEvaluated(
                event_id=self.ids.new_id("evt"),
                user_id=user_id,
                gate_id=gate_id,
                eligible=result.eligible,
                reason=result.reason.value if result.reason else None,
                occurred_at=self.clock.now(),
            ),
        )
        return result

    def introduce_feature(
        self,
        user_id: str,
        gate_id: str,
        method_override: IntroductionMethod | None = None,
    ) -> IntroductionResult:
        result = self.evaluator.introduce_feature(user_id, gate_id, method_override)
        if result.introduction_id is not None:
            safe_emit(
                self.analytics,
                FeatureIntroduced(
                    event_id=self.ids.new_id("evt"),
                    user_id=user_id,
                    gate_id=gate_id,
                    method=result.method.value if result.method else "",
                    occurred_at=self.clock.now(),
                ),
            )
            if result.unlocked:
                self._emit_unlock(user_id, gate_id)
        return result

    def record_engagement(self, user_id: str, gate_id: str) -> bool:
        unlocked = self.evaluator.record_engagement(user_id, gate_id)
        if unlocked:
            self._emit_unlock(user_id, gate_id)
        return unlocked

    def progressive_features(self, user_id: str) -> list[FeatureReadiness]:
        return self.evaluator.progressive_features(user_id, self.get_usage_pattern(user_id))

    def gate_states(self, user_id: str) -> list[UserGateState]:
        return self.evaluator.gate_states(user_id)

    def _emit_unlock(self, user_id: str, gate_id: str) -> None:
        safe_emit(
            self.analytics,
            GateUnlocked(
                event_id=self.ids.new_id("evt"),
                user_id=user_id,
                gate_id=gate_id,
                occurred_at=self.clock.now(),
            ),
        )

    # ========================================
    # Engagement
    # ========================================

    def get_engagement_plan(self, user_id: str) -> EngagementPlan:
        pattern = self.get_usage_pattern(user_id)
        sessions = self.assessor.session_count(pattern, self.assessor.profile(user_id))
        return self.engagement.generate(user_id, pattern, sessions)


def build_engine(
    settings: Settings | None = None,
    *,
    analytics: AnalyticsSink | None = None,
    clock: Clock | None = None,
) -> PersonalizationEngine:
    """
    Construct an engine from settings.

    Catalog and profiles come from ``catalog_file`` / ``profiles_file`` when
    set. With ``persistence="sql"`` gate states, usage patterns and the event
    archive are stored through SQLAlchemy at ``database_url``.
    """
    settings = settings or get_settings()
    catalog = load_catalog(settings.catalog_file) if settings.catalog_file else InMemoryCatalogStore()
    profiles = load_profiles(settings.profiles_file) if settings.profiles_file else InMemoryProfileStore()

    patterns: UsagePatternRepository | None = None
    gate_states: GateStateRepository | None = None
    archive: EventArchive | None = None
    if settings.persistence == "sql":
        from personalization.db.database import create_session_factory
        from personalization.repositories.sql import (
            SqlEventArchive,
            SqlGateStateRepository,
            SqlUsagePatternRepository,
        )

        session_factory = create_session_factory(settings.database_url)
        patterns = SqlUsagePatternRepository(session_factory)
        gate_states = SqlGateStateRepository(session_factory)
        archive = SqlEventArchive(session_factory)
        logger.info(f"Using SQL persistence at {settings.database_url.split('@')[-1]}")

    return PersonalizationEngine(
        profiles,
        catalog,
        gates=load_gate_catalog(settings.gates_file),
        patterns=patterns,
        gate_states=gate_states,
        archive=archive,
        analytics=analytics or sink_from_settings(),
        clock=clock,
        ledger_capacity=settings.ledger_capacity,
        weights=settings.get_factor_weights(),
        inclusion_threshold=settings.inclusion_threshold,
        cache_ttl_seconds=settings.recommendation_cache_ttl_seconds,
    )
