"""Domain-specific exceptions for the Petri net engine."""

from __future__ import annotations


class PetriError(RuntimeError):
    """Base class for Petri net engine errors."""


class ConstructionError(PetriError):
    """Raised when place, transition or net arguments are malformed."""


class ConfigError(PetriError):
    """Raised when simulation settings are invalid."""


class GuardError(PetriError):
    """Raised when a proposed marking violates a place guard."""


class InfeasibilityError(GuardError):
    """Raised when an action would drive a marking negative."""


class ConsistencyError(PetriError):
    """Raised when a simulation cannot assign a marking to every place."""


class FiringError(PetriError):
    """Raised when a transition is fired with unusable arguments."""


class ReentrancyError(PetriError):
    """Raised when a simulation step is requested from inside a step."""


class RecordingError(PetriError):
    """Raised when a recording cannot resolve the requested event."""


__all__ = [
    "PetriError",
    "ConstructionError",
    "ConfigError",
    "GuardError",
    "InfeasibilityError",
    "ConsistencyError",
    "FiringError",
    "ReentrancyError",
    "RecordingError",
]
