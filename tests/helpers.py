"""Shared builders for tests."""
from datetime import datetime, timedelta, timezone

from personalization.models import CatalogItem, InteractionEvent, SkillLevel

# Saturday 2024-06-15 10:00 UTC: summer, morning slot
START = datetime(2024, 6, 15, 10, 0, tzinfo=timezone.utc)


def make_event(
    user_id: str = "user-1",
    action_type: str = "calculator-usage",
    *,
    at: datetime = START,
    success: bool = True,
    context: str = "calculator",
    target_element: str = "calc-button",
    duration: float = 30.0,
    device: str = "mobile",
    session_id: str = "s1",
    **metadata,
) -> InteractionEvent:
    """Build an interaction event with sensible defaults."""
    return InteractionEvent(
        user_id=user_id,
        action_type=action_type,
        timestamp=at,
        target_element=target_element,
        context=context,
        duration=duration,
        success=success,
        device=device,
        session_id=session_id,
        metadata=metadata,
    )


def sample_catalog_items() -> list[CatalogItem]:
    return [
        CatalogItem(
            id="berry-blast",
            name="Berry Blast",
            category="drink",
            tags=frozenset({"berry", "citrus", "sweet"}),
            region="US",
            difficulty=SkillLevel.BEGINNER,
            price_estimate=4.0,
            dietary_flags=frozenset({"sugar-free", "vegan"}),
            seasonal_tags=frozenset({"summer"}),
            added_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
        ),
        CatalogItem(
            id="cola-classic",
            name="Cola Classic",
            category="drink",
            tags=frozenset({"cola", "sweet"}),
            region="US",
            difficulty=SkillLevel.BEGINNER,
            price_estimate=3.0,
            dietary_flags=frozenset(),
            seasonal_tags=frozenset(),
            added_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        ),
        CatalogItem(
            id="pumpkin-spice",
            name="Pumpkin Spice",
            category="seasonal",
            tags=frozenset({"pumpkin", "spice", "cinnamon"}),
            region="EU",
            difficulty=SkillLevel.ADVANCED,
            price_estimate=9.0,
            dietary_flags=frozenset({"caffeine-free"}),
            seasonal_tags=frozenset({"autumn"}),
        ),
        CatalogItem(
            id="mint-fizz",
            name="Mint Fizz",
            category="drink",
            tags=frozenset({"mint", "fresh"}),
            region="US",
            difficulty=SkillLevel.INTERMEDIATE,
            price_estimate=None,
            dietary_flags=frozenset({"sugar-free", "caffeine-free"}),
            seasonal_tags=frozenset({"summer", "spring"}),
            added_at=datetime(2024, 3, 1, tzinfo=timezone.utc),
        ),
    ]


def session_events(user_id: str, sessions: int, actions: list[str], start: datetime = START) -> list[InteractionEvent]:
    """One event per (session, action), one session per hour."""
    events = []
    for number in range(sessions):
        for action in actions:
            events.append(
                make_event(
                    user_id,
                    action,
                    at=start + timedelta(hours=number),
                    session_id=f"s{number}",
                )
            )
    return events
