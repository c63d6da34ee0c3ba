"""
Analytics events and sinks.

Every observable engine action produces a tagged event. Sinks are
fire-and-forget: a failing sink is logged and discarded, never allowed to
fail the operation that produced the event.
"""
from __future__ import annotations

import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Literal, Protocol

import httpx
from loguru import logger

from config import get_settings


@dataclass(frozen=True)
class InteractionRecorded:
    event_id: str
    user_id: str
    action_type: str
    occurred_at: datetime
    kind: Literal["interaction_recorded"] = "interaction_recorded"


@dataclass(frozen=True)
class InteractionRejected:
    event_id: str
    user_id: str
    reason: str
    occurred_at: datetime
    kind: Literal["interaction_rejected"] = "interaction_rejected"


@dataclass(frozen=True)
class RecommendationsServed:
    event_id: str
    user_id: str
    item_ids: tuple[str, ...]
    fallback: bool
    occurred_at: datetime
    kind: Literal["recommendations_served"] = "recommendations_served"


@dataclass(frozen=True)
class GateEvaluated:
    event_id: str
    user_id: str
    gate_id: str
    eligible: bool
    reason: str | None
    occurred_at: datetime
    kind: Literal["gate_evaluated"] = "gate_evaluated"


@dataclass(frozen=True)
class FeatureIntroduced:
    event_id: str
    user_id: str
    gate_id: str
    method: str
    occurred_at: datetime
    kind: Literal["feature_introduced"] = "feature_introduced"


@dataclass(frozen=True)
class GateUnlocked:
    event_id: str
    user_id: str
    gate_id: str
    occurred_at: datetime
    kind: Literal["gate_unlocked"] = "gate_unlocked"


AnalyticsEvent = (
    InteractionRecorded
    | InteractionRejected
    | RecommendationsServed
    | GateEvaluated
    | FeatureIntroduced
    | GateUnlocked
)


def event_payload(event: AnalyticsEvent) -> dict[str, Any]:
    payload = asdict(event)
    payload["occurred_at"] = event.occurred_at.isoformat()
    if "item_ids" in payload:
        payload["item_ids"] = list(payload["item_ids"])
    return payload


class AnalyticsSink(Protocol):
    def emit(self, event: AnalyticsEvent) -> None: ...


class NullAnalyticsSink:
    def emit(self, event: AnalyticsEvent) -> None:
        return None


@dataclass
class InMemoryAnalyticsSink:
    """Collects events in order; used by tests and the CLI simulator."""

    events: list[AnalyticsEvent] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def emit(self, event: AnalyticsEvent) -> None:
        with self._lock:
            self.events.append(event)

    def of_kind(self, kind: str) -> list[AnalyticsEvent]:
        with self._lock:
            return [event for event in self.events if event.kind == kind]


class HttpAnalyticsSink:
    """POST each event as JSON to an analytics collector."""

    def __init__(
        self,
        endpoint: str,
        timeout_seconds: float | None = None,
        client: httpx.Client | None = None,
    ):
        self.endpoint = endpoint
        timeout = timeout_seconds if timeout_seconds is not None else get_settings().analytics_timeout_seconds
        self.client = client or httpx.Client(timeout=httpx.Timeout(timeout))

    def emit(self, event: AnalyticsEvent) -> None:
        response = self.client.post(self.endpoint, json=event_payload(event))
        response.raise_for_status()

    def close(self) -> None:
        self.client.close()


def safe_emit(sink: AnalyticsSink, event: AnalyticsEvent) -> None:
    """Emit without letting sink failures reach the caller."""
    try:
        sink.emit(event)
    except httpx.HTTPError as e:
        logger.warning(f"Analytics sink HTTP error for {event.kind}: {e}")
    except Exception as e:  # Intentionally broad - sink failures are logged, never raised
        logger.warning(f"Analytics sink failed for {event.kind}: {e}")


def sink_from_settings() -> AnalyticsSink:
    settings = get_settings()
    if settings.analytics_endpoint:
        logger.info(f"Analytics events will be posted to {settings.analytics_endpoint}")
        return HttpAnalyticsSink(settings.analytics_endpoint, settings.analytics_timeout_seconds)
    return NullAnalyticsSink()
