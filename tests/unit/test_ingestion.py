"""
Unit tests for the bounded ingestion queue.
"""
from datetime import timedelta

import pytest

from personalization.ingestion import IngestionQueue
from personalization.models import Accepted, Rejected
from tests.helpers import START, make_event


class TestIngestionQueue:
    """Tests for IngestionQueue."""

    def test_submit_and_drain(self, engine):
        queue = IngestionQueue(engine, capacity=5)
        for i in range(3):
            assert isinstance(queue.submit("user-1", make_event(at=START + timedelta(minutes=i))), Accepted)

        assert queue.pending("user-1") == 3
        assert engine.ledger.size("user-1") == 0

        report = queue.drain("user-1")

        assert report.applied == 3
        assert report.rejected == 0
        assert queue.pending("user-1") == 0
        assert engine.get_usage_pattern("user-1").total_events == 3

    def test_overflow_drops_oldest(self, engine):
        queue = IngestionQueue(engine, capacity=2)
        for action in ("first", "second", "third"):
            queue.submit("user-1", make_event(action_type=action))

        assert queue.pending("user-1") == 2
        assert queue.dropped("user-1") == 1

        queue.drain("user-1")
        assert [e.action_type for e in engine.ledger.snapshot("user-1")] == ["second", "third"]

    def test_invalid_event_rejected_on_submit(self, engine):
        queue = IngestionQueue(engine, capacity=2)

        result = queue.submit("user-1", make_event("user-2"))

        assert isinstance(result, Rejected)
        assert queue.pending("user-1") == 0

    def test_drain_all(self, engine):
        queue = IngestionQueue(engine, capacity=3)
        queue.submit("user-1", make_event("user-1"))
        queue.submit("user-2", make_event("user-2"))
        queue.submit("user-2", make_event("user-2"))

        reports = queue.drain_all()

        assert [(r.user_id, r.applied) for r in reports] == [("user-1", 1), ("user-2", 2)]

    def test_invalid_capacity(self, engine):
        with pytest.raises(ValueError):
            IngestionQueue(engine, capacity=0)
