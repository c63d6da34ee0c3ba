"""
Content gating: static gate definitions and the per-user gate state machine.
"""

from personalization.gating.definitions import (
    ContentGate,
    GateCatalog,
    IntroductionStrategy,
    default_gate_definitions,
    load_gate_catalog,
)
from personalization.gating.evaluator import ContentGateEvaluator, FeatureReadiness, check_conditions

__all__ = [
    "ContentGate",
    "ContentGateEvaluator",
    "FeatureReadiness",
    "GateCatalog",
    "IntroductionStrategy",
    "check_conditions",
    "default_gate_definitions",
    "load_gate_catalog",
]
