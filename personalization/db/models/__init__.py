# SQLAlchemy models
from .base import Base
from .personalization import (
    GateStateRecord,
    InteractionEventRecord,
    UsagePatternRecord,
)

__all__ = [
    "Base",
    "GateStateRecord",
    "InteractionEventRecord",
    "UsagePatternRecord",
]
