"""
Personalization API Router.

Endpoints for the inbound engine operations:
- Interaction recording
- Usage pattern, skill assessment and journey stage
- Recommendations
- Gate eligibility, introduction and engagement
- Engagement plans
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from loguru import logger
from pydantic import BaseModel, Field

from config import get_settings
from personalization.engine import PersonalizationEngine
from personalization.models import (
    BudgetRange,
    InteractionEvent,
    IntroductionMethod,
    RecommendationContext,
    Rejected,
)

router = APIRouter()


def get_engine(request: Request) -> PersonalizationEngine:
    """FastAPI dependency returning the app's engine."""
    return request.app.state.engine


# ========================================
# Request/Response Models
# ========================================


class InteractionRequest(BaseModel):
    """Request model for recording an interaction."""

    action_type: str = Field(..., description="Action type, e.g. calculator-usage")
    timestamp: datetime | None = Field(None, description="Event time (defaults to now, UTC)")
    target_element: str = Field("", description="UI element acted on")
    context: str = Field("", description="Context tag, e.g. calculator")
    duration: float = Field(0.0, description="Duration in seconds")
    success: bool = Field(True, description="Whether the action completed")
    device: str = Field("unknown", description="Device class")
    session_id: str = Field("", description="Client session identifier")
    metadata: dict[str, Any] = Field(default_factory=dict)


class InteractionResponse(BaseModel):
    accepted: bool
    user_id: str
    action_type: str


class BudgetModel(BaseModel):
    min: float = Field(..., ge=0)
    max: float = Field(..., ge=0)


class RecommendationRequest(BaseModel):
    """Request model for a recommendation batch."""

    count: int | None = Field(None, ge=1, le=100, description="Maximum recommendations (defaults from settings)")
    category: str | None = Field(None, description="Restrict candidates to a category")
    dietary_restrictions: list[str] = Field(default_factory=list)
    budget_range: BudgetModel | None = None
    exclude_tags: list[str] = Field(default_factory=list)


class EligibilityResponse(BaseModel):
    gate_id: str
    eligible: bool
    reason: str | None


class IntroduceRequest(BaseModel):
    method_override: IntroductionMethod | None = Field(None, description="Force an introduction method")


class EngagementResponse(BaseModel):
    gate_id: str
    unlocked: bool


class FeatureReadinessResponse(BaseModel):
    gate_id: str
    readiness: float
    method: str
    timing: str


# ========================================
# Interaction & Usage Endpoints
# ========================================


@router.post(
    "/users/{user_id}/interactions",
    response_model=InteractionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record interaction",
)
def record_interaction(
    user_id: str,
    request: InteractionRequest,
    engine: PersonalizationEngine = Depends(get_engine),
) -> InteractionResponse:
    """Record one interaction event. Invalid events are rejected with 422."""
    event = InteractionEvent(
        user_id=user_id,
        action_type=request.action_type,
        timestamp=request.timestamp or datetime.now(timezone.utc),
        target_element=request.target_element,
        context=request.context,
        duration=request.duration,
        success=request.success,
        device=request.device,
        session_id=request.session_id,
        metadata=request.metadata,
    )
    result = engine.record_interaction(user_id, event)
    if isinstance(result, Rejected):
        logger.info(f"Rejected interaction for {user_id}: {result.reason}")
        raise HTTPException(status_code=422, detail=result.reason)
    return InteractionResponse(accepted=True, user_id=user_id, action_type=event.action_type)


@router.get("/users/{user_id}/usage-pattern", summary="Get usage pattern")
def get_usage_pattern(user_id: str, engine: PersonalizationEngine = Depends(get_engine)) -> dict[str, Any]:
    return engine.get_usage_pattern(user_id).to_dict()


@router.get("/users/{user_id}/skill", summary="Assess skill level")
def assess_skill(user_id: str, engine: PersonalizationEngine = Depends(get_engine)) -> dict[str, Any]:
    return engine.assess_skill(user_id).to_dict()


@router.get("/users/{user_id}/journey", summary="Get journey stage")
def journey_stage(user_id: str, engine: PersonalizationEngine = Depends(get_engine)) -> dict[str, Any]:
    stage = engine.journey_stage(user_id)
    return {
        "stage": stage.stage.value,
        "characteristics": stage.characteristics,
        "recommended_features": stage.recommended_features,
        "introduction_strategy": stage.introduction_strategy.model_dump(mode="json"),
        "content_priorities": stage.content_priorities,
        "learning_path": stage.learning_path,
    }


# ========================================
# Recommendation Endpoints
# ========================================


@router.post("/users/{user_id}/recommendations", summary="Get recommendations")
def get_recommendations(
    user_id: str,
    request: RecommendationRequest,
    engine: PersonalizationEngine = Depends(get_engine),
) -> list[dict[str, Any]]:
    if request.budget_range and request.budget_range.min > request.budget_range.max:
        raise HTTPException(status_code=422, detail="budget min exceeds max")
    context = RecommendationContext(
        count=request.count or get_settings().default_recommendation_count,
        category=request.category,
        dietary_restrictions=tuple(request.dietary_restrictions),
        budget_range=BudgetRange(request.budget_range.min, request.budget_range.max)
        if request.budget_range
        else None,
        exclude_tags=tuple(request.exclude_tags),
    )
    return [rec.to_dict() for rec in engine.get_recommendations(user_id, context)]


# ========================================
# Gating Endpoints
# ========================================


@router.get("/users/{user_id}/gates", summary="List gate states")
def gate_states(user_id: str, engine: PersonalizationEngine = Depends(get_engine)) -> list[dict[str, Any]]:
    return [state.to_dict() for state in engine.gate_states(user_id)]


@router.get(
    "/users/{user_id}/gates/{gate_id}/eligibility",
    response_model=EligibilityResponse,
    summary="Evaluate gate",
)
def evaluate_gate(
    user_id: str,
    gate_id: str,
    engine: PersonalizationEngine = Depends(get_engine),
) -> EligibilityResponse:
    result = engine.evaluate_gate(user_id, gate_id)
    return EligibilityResponse(
        gate_id=gate_id,
        eligible=result.eligible,
        reason=result.reason.value if result.reason else None,
    )


@router.post("/users/{user_id}/gates/{gate_id}/introduce", summary="Introduce feature")
def introduce_feature(
    user_id: str,
    gate_id: str,
    request: IntroduceRequest | None = None,
    engine: PersonalizationEngine = Depends(get_engine),
) -> dict[str, Any]:
    override = request.method_override if request else None
    return engine.introduce_feature(user_id, gate_id, override).to_dict()


@router.post(
    "/users/{user_id}/gates/{gate_id}/engagement",
    response_model=EngagementResponse,
    summary="Record engagement with an introduced feature",
)
def record_engagement(
    user_id: str,
    gate_id: str,
    engine: PersonalizationEngine = Depends(get_engine),
) -> EngagementResponse:
    engine.record_engagement(user_id, gate_id)
    unlocked = any(state.unlocked for state in engine.gate_states(user_id) if state.gate_id == gate_id)
    return EngagementResponse(gate_id=gate_id, unlocked=unlocked)


@router.get(
    "/users/{user_id}/progressive-features",
    response_model=list[FeatureReadinessResponse],
    summary="Features ready for progressive introduction",
)
def progressive_features(
    user_id: str,
    engine: PersonalizationEngine = Depends(get_engine),
) -> list[FeatureReadinessResponse]:
    return [
        FeatureReadinessResponse(
            gate_id=proposal.gate_id,
            readiness=proposal.readiness,
            method=proposal.method.value,
            timing=proposal.timing.value,
        )
        for proposal in engine.progressive_features(user_id)
    ]


# ========================================
# Engagement Endpoints
# ========================================


@router.get("/users/{user_id}/engagement-plan", summary="Get engagement plan")
def engagement_plan(user_id: str, engine: PersonalizationEngine = Depends(get_engine)) -> dict[str, Any]:
    return engine.get_engagement_plan(user_id).to_dict()
