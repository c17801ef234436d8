"""Immutable run-time image of a net, owned by one simulation."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, List, Optional, Tuple

import numpy as np

from .guard import Guard, GuardClosure, federated_guard, simulated_guards
from .transition import TransitionKind

if TYPE_CHECKING:  # pragma: no cover
    from .net import Net
    from .simulation import Simulation


@dataclass(frozen=True)
class PlaceSpec:
    name: str
    default_marking: Any
    quantum: float
    guards: Tuple[Guard, ...]


@dataclass(frozen=True)
class TransitionSpec:
    name: str
    kind: TransitionKind
    domain: Tuple[str, ...]
    codomain: Tuple[str, ...]
    stoichiometry: Optional[Tuple[float, ...]]
    function: Callable[..., Any]
    functional: bool


@dataclass(frozen=True)
class NetSnapshot:
    """Places and transitions of a net as they were at snapshot time."""

    name: Optional[str]
    places: Tuple[PlaceSpec, ...]
    transitions: Tuple[TransitionSpec, ...]

    @classmethod
    def of(cls, net: "Net") -> "NetSnapshot":
        places = tuple(
            PlaceSpec(
                name=p.name,
                default_marking=copy.deepcopy(p.default_marking),
                quantum=p.quantum,
                guards=tuple(p.guards),
            )
            for p in net.places
        )
        transitions = tuple(
            TransitionSpec(
                name=t.name,
                kind=t.kind,
                domain=tuple(p.name for p in t.domain),
                codomain=tuple(p.name for p in t.codomain),
                stoichiometry=None if t.stoichiometry is None else tuple(t.stoichiometry),
                function=t.function,
                functional=t.functional,
            )
            for t in net.transitions
        )
        return cls(name=net.name, places=places, transitions=transitions)

    @property
    def place_names(self) -> Tuple[str, ...]:
        return tuple(p.name for p in self.places)

    @property
    def timed(self) -> bool:
        return any(t.kind.timed for t in self.transitions)


@dataclass(frozen=True)
class PlaceRepresentation:
    spec: PlaceSpec
    index: int
    clamped: bool
    simulation: "Simulation" = field(repr=False, compare=False)

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def free(self) -> bool:
        return not self.clamped

    @property
    def default_marking(self) -> Any:
        return self.spec.default_marking

    @property
    def quantum(self) -> float:
        return self.spec.quantum

    @property
    def guards(self) -> Tuple[Guard, ...]:
        """The place guards, with the Boolean type check relaxed to 0.0 or 1.0."""
        return simulated_guards(self.spec.guards)

    @property
    def guard(self) -> GuardClosure:
        return federated_guard(self.guards, self)

    @property
    def marking(self) -> float:
        return float(self.simulation._marking[self.index])


@dataclass(frozen=True)
class TransitionRepresentation:
    spec: TransitionSpec
    domain_indices: Tuple[int, ...]
    codomain_indices: Tuple[int, ...]
    simulation: "Simulation" = field(repr=False, compare=False)

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def kind(self) -> TransitionKind:
        return self.spec.kind

    @property
    def function(self) -> Callable[..., Any]:
        return self.spec.function

    @property
    def stoichiometry(self) -> Optional[Tuple[float, ...]]:
        return self.spec.stoichiometry

    @property
    def functional(self) -> bool:
        return self.spec.functional

    def domain_marking(self, marking: Optional[np.ndarray] = None) -> List[float]:
        vector = self.simulation._marking if marking is None else marking
        return [vector[i] for i in self.domain_indices]

    @property
    def rate(self) -> Any:
        """Rate (flux) of a with-rate transition at the current state."""
        return self.spec.function(*self.domain_marking())

    def firing(self, delta_time: Optional[float] = None) -> float:
        """Scalar firing of a stoichiometric transition."""
        kind = self.spec.kind
        if kind.has_rate:
            return self.rate * delta_time
        if kind.timed:
            return self.spec.function(delta_time, *self.domain_marking())
        return self.spec.function(*self.domain_marking())

    def action(self, delta_time: Optional[float] = None) -> List[float]:
        """Codomain deltas (assigned values for assignments) at the current state."""
        kind = self.spec.kind
        if kind.stoichiometric:
            scalar = self.firing(delta_time)
            return [scalar * coeff for coeff in self.spec.stoichiometry]
        if kind.has_rate:
            values = self.rate
        elif kind.timed:
            values = self.spec.function(delta_time, *self.domain_marking())
        else:
            values = self.spec.function(*self.domain_marking())
        values = np.atleast_1d(np.asarray(values, dtype=float))
        if kind.has_rate:
            values = values * delta_time
        return [float(v) for v in values]


__all__ = [
    "NetSnapshot",
    "PlaceRepresentation",
    "PlaceSpec",
    "TransitionRepresentation",
    "TransitionSpec",
]
