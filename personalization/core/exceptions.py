"""
Exception hierarchy for the personalization engine.

Soft outcomes (gate ineligibility, rejected events) are returned as values;
these exceptions cover caller errors and fatal configuration problems.
"""
from __future__ import annotations


class PersonalizationError(Exception):
    """Base class for all engine errors."""


class InvalidEventError(PersonalizationError):
    """An interaction event failed validation and was not recorded."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class ItemNotFoundError(PersonalizationError):
    """A catalog item could not be loaded."""

    def __init__(self, item_id: str):
        super().__init__(f"Catalog item not found: {item_id}")
        self.item_id = item_id


class GateNotFoundError(PersonalizationError):
    """A gate id is not part of the loaded gate catalog."""

    def __init__(self, gate_id: str):
        super().__init__(f"Unknown gate: {gate_id}")
        self.gate_id = gate_id


class ConfigurationError(PersonalizationError):
    """Configuration violates an invariant; raised at startup."""


class GateConfigurationError(ConfigurationError):
    """Gate definitions are malformed (duplicates, unknown or cyclic dependencies)."""
