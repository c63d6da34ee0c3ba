"""
FastAPI application for the personalization engine.

Provides REST API for:
- Interaction ingestion
- Usage patterns, skill assessment and journey stages
- Personalized recommendations
- Content gating (eligibility, introduction, engagement)
- Engagement plans
"""

from __future__ import annotations

import sys
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from config import get_settings
from personalization.core.exceptions import GateNotFoundError, ItemNotFoundError
from personalization.engine import PersonalizationEngine, build_engine

settings = get_settings()


def configure_logging() -> None:
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )
    if settings.log_file:
        logger.add(settings.log_file, level=settings.log_level, rotation="10 MB")


def create_app(engine: PersonalizationEngine | None = None) -> FastAPI:
    """
    Build the application around an engine (built from settings when omitted).

    The engine is created in the lifespan so configuration errors surface at
    startup rather than on first request.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler for startup/shutdown events."""
        # Startup
        logger.info("Starting personalization service...")
        if getattr(app.state, "engine", None) is None:
            app.state.engine = build_engine(settings)
        logger.info(f"Service started on {settings.api_host}:{settings.api_port}")

        yield

        # Shutdown
        logger.info("Shutting down personalization service...")

    app = FastAPI(
        title="Personalization Engine",
        description="""
    User-adaptive personalization and gating service.

    ## Data Flow

    ```
    Interaction events
        ↓ ledger
    Usage patterns
        ↓ assessment
    Skill tier & journey stage
        ↓
    Recommendations / gate decisions / engagement plans
    ```
    """,
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.engine = engine

    @app.exception_handler(GateNotFoundError)
    async def gate_not_found_handler(request: Request, exc: GateNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc), "gate_id": exc.gate_id})

    @app.exception_handler(ItemNotFoundError)
    async def item_not_found_handler(request: Request, exc: ItemNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc), "item_id": exc.item_id})

    @app.get("/", tags=["Health"])
    def root() -> dict[str, str]:
        """Root endpoint returning service info."""
        return {
            "service": "personalization-engine",
            "version": "0.1.0",
            "status": "ok",
        }

    @app.get("/config", tags=["Health"])
    def get_config() -> dict[str, Any]:
        """Get current configuration (non-sensitive)."""
        return {
            "persistence": settings.persistence,
            "ledger_capacity": settings.ledger_capacity,
            "factor_weights": settings.get_factor_weights(),
            "inclusion_threshold": settings.inclusion_threshold,
            "skill_tiers": settings.get_skill_tiers(),
            "journey_thresholds": settings.get_journey_thresholds(),
            "engagement": settings.get_engagement_config(),
            "gates": app.state.engine.gates.ids if app.state.engine else [],
        }

    from personalization.api.routers import personalization_router

    app.include_router(personalization_router.router, prefix="/api/personalization", tags=["Personalization"])
    return app


app = create_app()


def main() -> None:
    import uvicorn

    configure_logging()
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    main()
