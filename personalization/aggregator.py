"""
Usage Pattern Aggregator.

Folds a user's ledger into a UsagePattern. ``apply`` is the incremental
step and ``rebuild`` is ``apply`` folded over the ledger snapshot, so the
two paths agree by construction.

Derivations:
- time slot histogram from the event's UTC hour
- feature usage keyed by action type
- completion counts per context (successful events)
- abandonment counts per target element (failed events)
- engagement trend from total bucketed usage
- return frequency as events per day across the retained span
"""
from __future__ import annotations

from collections.abc import Iterable

from config import get_settings
from personalization.ledger import InteractionLedger
from personalization.models import EngagementTrend, InteractionEvent, TimeSlot, UsagePattern


def time_slot(event: InteractionEvent) -> TimeSlot:
    return TimeSlot.from_hour(event.timestamp.hour)


class UsagePatternAggregator:
    """Pure derivation of usage patterns from ledger contents."""

    def __init__(
        self,
        ledger: InteractionLedger,
        increasing_threshold: int | None = None,
        decreasing_threshold: int | None = None,
    ):
        settings = get_settings()
        self._ledger = ledger
        self.increasing_threshold = (
            increasing_threshold if increasing_threshold is not None else settings.trend_increasing_threshold
        )
        self.decreasing_threshold = (
            decreasing_threshold if decreasing_threshold is not None else settings.trend_decreasing_threshold
        )

    def rebuild(self, user_id: str) -> UsagePattern:
        """Derive the user's pattern from the current ledger snapshot."""
        return self.fold(user_id, self._ledger.snapshot(user_id))

    def fold(self, user_id: str, events: Iterable[InteractionEvent]) -> UsagePattern:
        pattern = UsagePattern(user_id=user_id)
        for event in events:
            self.apply(pattern, event)
        return pattern

    def apply(self, pattern: UsagePattern, event: InteractionEvent) -> UsagePattern:
        """
        Fold one event into ``pattern`` in place.

        Returns:
            The same pattern, for chaining
        """
        slot = time_slot(event).value
        pattern.time_slots[slot] = pattern.time_slots.get(slot, 0) + 1
        pattern.device_preferences[event.device] = pattern.device_preferences.get(event.device, 0) + 1
        pattern.feature_usage[event.action_type] = pattern.feature_usage.get(event.action_type, 0) + 1

        category = event.category
        if category:
            pattern.category_preferences[category] = pattern.category_preferences.get(category, 0) + 1

        if event.success:
            pattern.completion_rates[event.context] = pattern.completion_rates.get(event.context, 0) + 1
        else:
            point = event.target_element
            pattern.abandonment_points[point] = pattern.abandonment_points.get(point, 0) + 1

        pattern.session_duration[event.context] = pattern.session_duration.get(event.context, 0.0) + event.duration
        if event.session_id:
            pattern.session_ids.add(event.session_id)

        pattern.total_events += 1
        if pattern.first_event_at is None or event.timestamp < pattern.first_event_at:
            pattern.first_event_at = event.timestamp
        if pattern.last_event_at is None or event.timestamp > pattern.last_event_at:
            pattern.last_event_at = event.timestamp

        pattern.engagement_trend = self.trend(pattern.total_usage)
        pattern.return_frequency = self._return_frequency(pattern)
        return pattern

    def trend(self, total_usage: int) -> EngagementTrend:
        if total_usage >= self.increasing_threshold:
            return EngagementTrend.INCREASING
        if total_usage < self.decreasing_threshold:
            return EngagementTrend.DECREASING
        return EngagementTrend.STABLE

    @staticmethod
    def _return_frequency(pattern: UsagePattern) -> float:
        # Measured across retained events only
        if pattern.first_event_at is None or pattern.last_event_at is None:
            return 0.0
        span_days = (pattern.last_event_at - pattern.first_event_at).total_seconds() / 86400
        return pattern.total_events / max(span_days, 1.0)
