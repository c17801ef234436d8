"""Structural container of places and transitions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable, List, Optional, Tuple, Union

from .errors import ConstructionError
from .place import Place
from .transition import Transition, TransitionKind

if TYPE_CHECKING:  # pragma: no cover
    from .simulation import Simulation


class Net:
    """Ordered sets of places and transitions.

    Every transition's arcs must lead to places of the net, and a place cannot
    leave the net while a transition of the net references it.
    """

    def __init__(
        self,
        name: Optional[str] = None,
        *,
        places: Iterable[Place] = (),
        transitions: Iterable[Transition] = (),
    ):
        self.name = name
        self._places: List[Place] = []
        self._transitions: List[Transition] = []
        for place in places:
            self.include_place(place)
        for transition in transitions:
            self.include_transition(transition)

    # ------------------------------------------------------------------ access
    @property
    def places(self) -> Tuple[Place, ...]:
        return tuple(self._places)

    @property
    def transitions(self) -> Tuple[Transition, ...]:
        return tuple(self._transitions)

    def includes_place(self, place: Union[Place, str]) -> bool:
        if isinstance(place, str):
            return any(p.name == place for p in self._places)
        return any(p is place for p in self._places)

    def includes_transition(self, transition: Union[Transition, str]) -> bool:
        if isinstance(transition, str):
            return any(t.name == transition for t in self._transitions)
        return any(t is transition for t in self._transitions)

    def __contains__(self, element: Any) -> bool:
        return self.includes_place(element) or self.includes_transition(element)

    def place(self, name: str) -> Place:
        for place in self._places:
            if place.name == name:
                return place
        raise KeyError(f"{self} contains no place {name!r}")

    def transition(self, name: str) -> Transition:
        for transition in self._transitions:
            if transition.name == name:
                return transition
        raise KeyError(f"{self} contains no transition {name!r}")

    def transitions_of_kind(self, kind: Union[TransitionKind, str]) -> Tuple[Transition, ...]:
        wanted = TransitionKind(kind)
        return tuple(t for t in self._transitions if t.kind is wanted)

    # --------------------------------------------------------------- mutation
    def include_place(self, place: Place) -> bool:
        if not isinstance(place, Place):
            raise ConstructionError(f"{place!r} is not a place")
        if self.includes_place(place):
            return False
        if self.includes_place(place.name):
            raise ConstructionError(f"{self} already contains another place named {place.name!r}")
        self._places.append(place)
        return True

    def include_transition(self, transition: Transition) -> bool:
        if not isinstance(transition, Transition):
            raise ConstructionError(f"{transition!r} is not a transition")
        if self.includes_transition(transition):
            return False
        if self.includes_transition(transition.name):
            raise ConstructionError(f"{self} already contains another transition named {transition.name!r}")
        outside = [p.name for p in transition.arcs if not self.includes_place(p)]
        if outside:
            raise ConstructionError(f"Transition {transition.name} has arcs to places outside {self}: {outside}")
        self._transitions.append(transition)
        return True

    def include(self, element: Union[Place, Transition]) -> bool:
        if isinstance(element, Place):
            return self.include_place(element)
        if isinstance(element, Transition):
            return self.include_transition(element)
        raise ConstructionError(f"{element!r} is neither a place nor a transition")

    def exclude_place(self, place: Place) -> bool:
        dependants = [t.name for t in self._transitions if any(p is place for p in t.arcs)]
        if dependants:
            raise ConstructionError(
                f"Unable to exclude {place} from {self}: transitions {dependants} depend on it"
            )
        for idx, candidate in enumerate(self._places):
            if candidate is place:
                del self._places[idx]
                return True
        return False

    def exclude_transition(self, transition: Transition) -> bool:
        for idx, candidate in enumerate(self._transitions):
            if candidate is transition:
                del self._transitions[idx]
                return True
        return False

    def include_net(self, other: "Net") -> bool:
        """Merge ``other`` into this net; true if anything changed."""
        place_results = [self.include_place(p) for p in other.places]
        transition_results = [self.include_transition(t) for t in other.transitions]
        return any(place_results + transition_results)

    merge = include_net

    def exclude_net(self, other: "Net") -> bool:
        leaving = list(other.transitions)
        for place in other.places:
            dependants = [
                t.name
                for t in self._transitions
                if not any(t is gone for gone in leaving) and any(p is place for p in t.arcs)
            ]
            if dependants:
                raise ConstructionError(
                    f"Unable to exclude {place} from {self}: transitions {dependants} depend on it"
                )
        transition_results = [self.exclude_transition(t) for t in other.transitions]
        place_results = [self.exclude_place(p) for p in other.places]
        return any(place_results + transition_results)

    def __add__(self, other: "Net") -> "Net":
        net = Net()
        net.include_net(self)
        net.include_net(other)
        return net

    def __sub__(self, other: "Net") -> "Net":
        net = Net()
        net.include_net(self)
        net.exclude_net(other)
        return net

    # ----------------------------------------------------------------- queries
    @property
    def functional(self) -> bool:
        return any(t.functional for t in self._transitions)

    @property
    def timed(self) -> bool:
        return any(t.timed for t in self._transitions)

    def simulation(self, **kwargs: Any) -> "Simulation":
        from .simulation import Simulation

        return Simulation(self, **kwargs)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Net):
            return NotImplemented
        return (
            len(self._places) == len(other._places)
            and len(self._transitions) == len(other._transitions)
            and all(a is b for a, b in zip(self._places, other._places))
            and all(a is b for a, b in zip(self._transitions, other._transitions))
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        label = f"name: {self.name}, " if self.name else ""
        return f"<Net: {label}{len(self._places)} places, {len(self._transitions)} transitions>"


__all__ = ["Net"]
