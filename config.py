"""
Configuration settings for the personalization engine.

Uses Pydantic Settings for environment variable management with .env file support.
All numeric thresholds here are tunable policy, not fixed law.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Any, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Database (persistence adapters)
    # ========================================
    database_url: str = Field(
        default="sqlite:///personalization.db",
        description="SQLAlchemy connection string for gate state / usage pattern / event archive",
    )
    persistence: Literal["memory", "sql"] = Field(
        default="memory",
        description="Repository backend for gate states, usage patterns and the event archive",
    )

    # ========================================
    # Catalog & Profiles (external collaborators)
    # ========================================
    catalog_file: str | None = Field(
        default=None,
        description="JSON file with catalog items for the in-memory catalog store",
    )
    profiles_file: str | None = Field(
        default=None,
        description="JSON file with user profiles for the in-memory profile store",
    )

    # ========================================
    # Interaction Ledger & Ingestion
    # ========================================
    ledger_capacity: int = Field(
        default=1000,
        ge=1,
        description="Maximum retained interaction events per user (oldest evicted first)",
    )
    ingestion_queue_capacity: int = Field(
        default=100,
        ge=1,
        description="Bounded per-user ingestion queue size (drop-oldest on overflow)",
    )

    # ========================================
    # Usage Pattern Aggregation
    # ========================================
    trend_increasing_threshold: int = Field(
        default=50,
        description="Total bucketed usage at or above which engagement is 'increasing'",
    )
    trend_decreasing_threshold: int = Field(
        default=10,
        description="Total bucketed usage below which engagement is 'decreasing'",
    )

    # ========================================
    # Skill Tiers (sessions, distinct features, confidence)
    # ========================================
    skill_expert_sessions: int = Field(default=20, description="Sessions must exceed this for expert")
    skill_expert_features: int = Field(default=10, description="Distinct features must exceed this for expert")
    skill_advanced_sessions: int = Field(default=10, description="Sessions must exceed this for advanced")
    skill_advanced_features: int = Field(default=5, description="Distinct features must exceed this for advanced")
    skill_intermediate_sessions: int = Field(default=3, description="Sessions must exceed this for intermediate")
    skill_intermediate_features: int = Field(default=2, description="Distinct features must exceed this for intermediate")

    # ========================================
    # Journey Stages (sessions, total feature usage)
    # ========================================
    journey_exploration_sessions: int = Field(default=3, description="Below this: discovery")
    journey_exploration_usage: int = Field(default=5, description="Below this usage: discovery")
    journey_regular_sessions: int = Field(default=10, description="Below this: exploration")
    journey_regular_usage: int = Field(default=20, description="Below this usage: exploration")
    journey_power_sessions: int = Field(default=25, description="Below this: regular-use")
    journey_power_usage: int = Field(default=50, description="Below this usage: regular-use")

    # ========================================
    # Recommendation Scoring
    # ========================================
    weight_taste: float = Field(default=0.25, description="Weight for taste-match factor")
    weight_dietary: float = Field(default=0.20, description="Weight for dietary-compatibility factor")
    weight_cultural: float = Field(default=0.15, description="Weight for cultural-relevance factor")
    weight_seasonal: float = Field(default=0.10, description="Weight for seasonal-relevance factor")
    weight_budget: float = Field(default=0.10, description="Weight for budget-fit factor")
    weight_skill: float = Field(default=0.10, description="Weight for skill-level-match factor")
    weight_behavioral: float = Field(default=0.10, description="Weight for behavioral-fit factor")
    inclusion_threshold: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Recommendations scoring below this are dropped",
    )
    recommendation_cache_ttl_seconds: float = Field(
        default=300.0,
        ge=0.0,
        description="TTL for cached recommendation batches (0 disables caching)",
    )
    default_recommendation_count: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Batch size when a request does not name one",
    )

    # ========================================
    # Content Gating
    # ========================================
    gates_file: str | None = Field(
        default=None,
        description="JSON file with gate definitions (None uses built-in defaults)",
    )
    gate_readiness_threshold: float = Field(
        default=0.6,
        description="Readiness above which a gate is proposed for progressive introduction",
    )
    milestone_session_threshold: int = Field(
        default=5,
        description="Sessions required before 'after-milestone' timing applies",
    )

    # ========================================
    # Engagement
    # ========================================
    abandonment_rate_threshold: float = Field(default=0.3, description="Abandonment rate triggering simplification")
    inactivity_days_threshold: int = Field(default=7, description="Idle days triggering a reminder")
    social_session_threshold: int = Field(default=10, description="Sessions above which social engagement is proposed")
    low_adoption_threshold: float = Field(default=0.3, description="Adoption rate below which education is proposed")

    # ========================================
    # Analytics
    # ========================================
    analytics_endpoint: str | None = Field(
        default=None,
        description="HTTP endpoint for the analytics sink (None disables remote emission)",
    )
    analytics_timeout_seconds: float = Field(default=2.0, description="Analytics HTTP timeout")

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    # ========================================
    # API Server
    # ========================================
    api_host: str = Field(
        default="127.0.0.1",
        description="API server host",
    )
    api_port: int = Field(
        default=8200,
        description="API server port",
    )

    def get_factor_weights(self) -> dict[str, float]:
        """Get recommendation factor weights keyed by factor name."""
        return {
            "taste": self.weight_taste,
            "dietary": self.weight_dietary,
            "cultural": self.weight_cultural,
            "seasonal": self.weight_seasonal,
            "budget": self.weight_budget,
            "skill": self.weight_skill,
            "behavioral": self.weight_behavioral,
        }

    def get_skill_tiers(self) -> list[tuple[str, int, int, float]]:
        """Ordered skill rule table: (level, sessions >, distinct features >, confidence)."""
        return [
            ("expert", self.skill_expert_sessions, self.skill_expert_features, 0.9),
            ("advanced", self.skill_advanced_sessions, self.skill_advanced_features, 0.8),
            ("intermediate", self.skill_intermediate_sessions, self.skill_intermediate_features, 0.7),
        ]

    def get_journey_thresholds(self) -> dict[str, tuple[int, int]]:
        """Upper bounds (sessions, usage) for each journey stage below power-user."""
        return {
            "discovery": (self.journey_exploration_sessions, self.journey_exploration_usage),
            "exploration": (self.journey_regular_sessions, self.journey_regular_usage),
            "regular-use": (self.journey_power_sessions, self.journey_power_usage),
        }

    def get_engagement_config(self) -> dict[str, Any]:
        """Get engagement rule thresholds as a dictionary."""
        return {
            "abandonment_rate": self.abandonment_rate_threshold,
            "inactivity_days": self.inactivity_days_threshold,
            "social_sessions": self.social_session_threshold,
            "low_adoption": self.low_adoption_threshold,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
