"""API routers for the personalization engine."""

from personalization.api.routers import personalization_router

__all__ = ["personalization_router"]
