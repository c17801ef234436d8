"""Public exports for the hybrid Petri net engine."""

from .errors import (
    ConfigError,
    ConsistencyError,
    ConstructionError,
    FiringError,
    GuardError,
    InfeasibilityError,
    PetriError,
    RecordingError,
    ReentrancyError,
)
from .guard import Guard, default_guards
from .net import Net
from .place import Place
from .recording import Recording
from .settings import SimulationSettings
from .simulation import Simulation
from .transition import Cocking, Transition, TransitionKind

__all__ = [
    "Cocking",
    "ConfigError",
    "ConsistencyError",
    "ConstructionError",
    "FiringError",
    "Guard",
    "GuardError",
    "InfeasibilityError",
    "Net",
    "PetriError",
    "Place",
    "Recording",
    "RecordingError",
    "ReentrancyError",
    "Simulation",
    "SimulationSettings",
    "Transition",
    "TransitionKind",
    "default_guards",
]
