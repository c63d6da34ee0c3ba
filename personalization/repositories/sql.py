"""
SQLAlchemy repository adapters.

Each adapter opens a short transaction per call through ``session_scope``.
SQLite drops tz info on read, so timestamps are normalized back to UTC.
"""
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from personalization.db.database import session_scope
from personalization.db.models import GateStateRecord, InteractionEventRecord, UsagePatternRecord
from personalization.models import (
    GateStatus,
    InteractionEvent,
    IntroductionMethod,
    UsagePattern,
    UserGateState,
)


def _utc(moment: datetime | None) -> datetime | None:
    if moment is None:
        return None
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


class SqlGateStateRepository:
    def __init__(self, session_factory: sessionmaker[Session] | None = None):
        self._session_factory = session_factory

    @staticmethod
    def _to_state(record: GateStateRecord) -> UserGateState:
        return UserGateState(
            user_id=record.user_id,
            gate_id=record.gate_id,
            status=GateStatus(record.status),
            unlocked=record.unlocked,
            unlocked_at=_utc(record.unlocked_at),
            introduction_method=IntroductionMethod(record.introduction_method) if record.introduction_method else None,
            introduced_at=_utc(record.introduced_at),
            view_count=record.view_count,
        )

    def get(self, user_id: str, gate_id: str) -> UserGateState | None:
        with session_scope(self._session_factory) as session:
            record = session.scalar(
                select(GateStateRecord).where(
                    GateStateRecord.user_id == user_id,
                    GateStateRecord.gate_id == gate_id,
                )
            )
            return self._to_state(record) if record else None

    def put(self, state: UserGateState) -> None:
        with session_scope(self._session_factory) as session:
            record = session.scalar(
                select(GateStateRecord).where(
                    GateStateRecord.user_id == state.user_id,
                    GateStateRecord.gate_id == state.gate_id,
                )
            )
            if record is None:
                record = GateStateRecord(user_id=state.user_id, gate_id=state.gate_id)
                session.add(record)
            elif record.unlocked and not state.unlocked:
                # Unlocks are permanent; ignore stale writers
                return
            record.status = state.status.value
            record.unlocked = state.unlocked
            record.unlocked_at = state.unlocked_at
            record.introduction_method = state.introduction_method.value if state.introduction_method else None
            record.introduced_at = state.introduced_at
            record.view_count = state.view_count

    def list_for_user(self, user_id: str) -> list[UserGateState]:
        with session_scope(self._session_factory) as session:
            records = session.scalars(
                select(GateStateRecord).where(GateStateRecord.user_id == user_id).order_by(GateStateRecord.gate_id)
            ).all()
            return [self._to_state(record) for record in records]


class SqlUsagePatternRepository:
    def __init__(self, session_factory: sessionmaker[Session] | None = None):
        self._session_factory = session_factory

    def get(self, user_id: str) -> UsagePattern | None:
        with session_scope(self._session_factory) as session:
            record = session.get(UsagePatternRecord, user_id)
            return UsagePattern.from_dict(record.pattern) if record else None

    def put(self, pattern: UsagePattern) -> None:
        with session_scope(self._session_factory) as session:
            record = session.get(UsagePatternRecord, pattern.user_id)
            if record is None:
                record = UsagePatternRecord(user_id=pattern.user_id)
                session.add(record)
            record.pattern = pattern.to_dict()
            record.total_events = pattern.total_events


class SqlEventArchive:
    def __init__(self, session_factory: sessionmaker[Session] | None = None):
        self._session_factory = session_factory

    def append(self, event: InteractionEvent) -> None:
        with session_scope(self._session_factory) as session:
            session.add(
                InteractionEventRecord(
                    user_id=event.user_id,
                    action_type=event.action_type,
                    occurred_at=event.timestamp,
                    target_element=event.target_element,
                    context=event.context,
                    duration=event.duration,
                    success=event.success,
                    device=event.device,
                    session_id=event.session_id,
                    event_metadata=dict(event.metadata),
                )
            )

    def events_for(self, user_id: str, limit: int | None = None) -> list[InteractionEvent]:
        """Archived events for a user, oldest first."""
        with session_scope(self._session_factory) as session:
            query = (
                select(InteractionEventRecord)
                .where(InteractionEventRecord.user_id == user_id)
                .order_by(InteractionEventRecord.occurred_at, InteractionEventRecord.id)
            )
            if limit is not None:
                query = query.limit(limit)
            return [
                InteractionEvent(
                    user_id=record.user_id,
                    action_type=record.action_type,
                    timestamp=_utc(record.occurred_at),
                    target_element=record.target_element,
                    context=record.context,
                    duration=record.duration,
                    success=record.success,
                    device=record.device,
                    session_id=record.session_id,
                    metadata=record.event_metadata or {},
                )
                for record in session.scalars(query).all()
            ]
