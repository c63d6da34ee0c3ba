"""
Personalization persistence models.

SQLAlchemy tables backing the SQL repository adapters:
- Per (user, gate) state
- Latest usage pattern per user (JSON document)
- Append-only interaction event archive
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Float, Index, Integer, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class GateStateRecord(Base):
    """
    Gate progression for one user.

    ``unlocked`` is monotonic: adapters never write it back to false.
    """

    __tablename__ = "user_gate_states"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    gate_id: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="locked")
    unlocked: Mapped[bool] = mapped_column(Boolean, default=False)
    unlocked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    introduction_method: Mapped[str | None] = mapped_column(Text)
    introduced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    view_count: Mapped[int] = mapped_column(Integer, default=0)
    updated_at: Mapped[datetime] = mapped_column(default=func.now(), onupdate=func.now())

    __table_args__ = (UniqueConstraint("user_id", "gate_id", name="uq_user_gate"),)

    def __repr__(self) -> str:
        return f"<GateStateRecord user={self.user_id} gate={self.gate_id} status={self.status}>"


class UsagePatternRecord(Base):
    """Latest derived usage pattern; always rebuildable from the ledger."""

    __tablename__ = "usage_patterns"

    user_id: Mapped[str] = mapped_column(Text, primary_key=True)
    pattern: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    total_events: Mapped[int] = mapped_column(Integer, default=0)
    updated_at: Mapped[datetime] = mapped_column(default=func.now(), onupdate=func.now())


class InteractionEventRecord(Base):
    """Archived interaction event."""

    __tablename__ = "interaction_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    action_type: Mapped[str] = mapped_column(Text, nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    target_element: Mapped[str] = mapped_column(Text, default="")
    context: Mapped[str] = mapped_column(Text, default="")
    duration: Mapped[float] = mapped_column(Float, default=0.0)
    success: Mapped[bool] = mapped_column(Boolean, default=True)
    device: Mapped[str] = mapped_column(Text, default="unknown")
    session_id: Mapped[str] = mapped_column(Text, default="")
    event_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, default=dict)
    archived_at: Mapped[datetime] = mapped_column(default=func.now())

    __table_args__ = (Index("idx_interaction_events_user_time", "user_id", "occurred_at"),)
