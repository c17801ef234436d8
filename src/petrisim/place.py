"""Places: named marking cells with guards and weak arc back-references."""

from __future__ import annotations

import weakref
from typing import TYPE_CHECKING, Any, Callable, Iterable, List, Optional, Set

from .errors import ConstructionError
from .guard import Guard, GuardClosure, default_guards, federated_guard

if TYPE_CHECKING:  # pragma: no cover
    from .transition import Transition


def _unique(items: Iterable[Any]) -> List[Any]:
    seen: List[Any] = []
    for item in items:
        if not any(item is other for other in seen):
            seen.append(item)
    return seen


class Place:
    """A named cell holding marking.

    The place does not own the transitions connected to it: ``upstream_arcs``
    (transitions writing the place) and ``downstream_arcs`` (transitions
    reading it) are kept as weak references.
    """

    def __init__(
        self,
        name: str,
        *,
        marking: Any = None,
        default_marking: Any = None,
        quantum: float = 1,
        guards: Optional[Iterable[Guard]] = None,
    ):
        if not isinstance(name, str) or not name:
            raise ConstructionError("Place name must be a non-empty string")
        self.name = name
        self.default_marking = default_marking
        self.quantum = quantum
        reference = marking if marking is not None else default_marking
        self._guards: List[Guard] = list(guards) if guards is not None else default_guards(reference)
        self._upstream: List[weakref.ReferenceType] = []
        self._downstream: List[weakref.ReferenceType] = []
        self._marking: Any = None
        if reference is not None:
            self.marking = reference

    # ------------------------------------------------------------------ guards
    @property
    def guards(self) -> List[Guard]:
        return list(self._guards)

    def add_guard(self, assertion: str, predicate: Callable[[Any], Optional[bool]], error=None) -> Guard:
        guard = Guard(assertion, predicate) if error is None else Guard(assertion, predicate, error)
        self._guards.append(guard)
        return guard

    @property
    def guard(self) -> GuardClosure:
        return federated_guard(self._guards, self)

    def validate(self, value: Any) -> Any:
        return self.guard(value)

    def check(self) -> Any:
        """Apply the guards to the marking currently held."""
        return self.guard(self._marking)

    # ----------------------------------------------------------------- marking
    @property
    def marking(self) -> Any:
        return self._marking

    @marking.setter
    def marking(self, value: Any) -> None:
        self._marking = self.guard(value)

    value = marking

    def add(self, amount: Any) -> Any:
        self.marking = self._marking + amount
        return self._marking

    def subtract(self, amount: Any) -> Any:
        self.marking = self._marking - amount
        return self._marking

    def reset_marking(self) -> None:
        self.marking = self.default_marking

    # -------------------------------------------------------------------- arcs
    @staticmethod
    def _live(refs: List[weakref.ReferenceType]) -> List["Transition"]:
        return [t for t in (ref() for ref in refs) if t is not None]

    @property
    def upstream_arcs(self) -> List["Transition"]:
        return self._live(self._upstream)

    @property
    def downstream_arcs(self) -> List["Transition"]:
        return self._live(self._downstream)

    @property
    def arcs(self) -> List["Transition"]:
        return _unique(self.upstream_arcs + self.downstream_arcs)

    @property
    def upstream_places(self) -> List["Place"]:
        """Union of the domains of the upstream transitions."""
        return _unique(p for t in self.upstream_arcs for p in t.upstream_places)

    precedents = upstream_places

    @property
    def downstream_places(self) -> List["Place"]:
        """Union of the codomains of the downstream transitions."""
        return _unique(p for t in self.downstream_arcs for p in t.downstream_places)

    dependents = downstream_places

    def _register_upstream(self, transition: "Transition") -> None:
        if all(ref() is not transition for ref in self._upstream):
            self._upstream.append(weakref.ref(transition))

    def _register_downstream(self, transition: "Transition") -> None:
        if all(ref() is not transition for ref in self._downstream):
            self._downstream.append(weakref.ref(transition))

    # -------------------------------------------------------------- token game
    def fire_upstream(self, delta_time: Optional[float] = None, *, force: bool = False) -> List[bool]:
        return [t.fire(delta_time, force=force) for t in self.upstream_arcs]

    def fire_downstream(self, delta_time: Optional[float] = None, *, force: bool = False) -> List[bool]:
        return [t.fire(delta_time, force=force) for t in self.downstream_arcs]

    def fire_upstream_recursively(
        self, delta_time: Optional[float] = None, visited: Optional[Set[int]] = None
    ) -> bool:
        visited = set() if visited is None else visited
        results = [t.fire_upstream_recursively(delta_time, visited) for t in self.upstream_arcs]
        return any(results)

    def fire_downstream_recursively(
        self, delta_time: Optional[float] = None, visited: Optional[Set[int]] = None
    ) -> bool:
        visited = set() if visited is None else visited
        results = [t.fire_downstream_recursively(delta_time, visited) for t in self.downstream_arcs]
        return any(results)

    def __repr__(self) -> str:
        return f"<Place {self.name}: marking={self._marking!r}, default={self.default_marking!r}>"

    def __str__(self) -> str:
        return f"Place[{self.name}]"


__all__ = ["Place"]
