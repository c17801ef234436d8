"""Marking guards: validated predicates over prospective place markings."""

from __future__ import annotations

import numbers
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Type

import numpy as np

from .errors import GuardError, InfeasibilityError

Predicate = Callable[[Any], Optional[bool]]
GuardClosure = Callable[[Any], Any]


def is_numeric(value: Any) -> bool:
    """True for numbers (complex included), false for booleans."""
    if isinstance(value, (bool, np.bool_)):
        return False
    return isinstance(value, numbers.Number)


def is_real(value: Any) -> bool:
    return is_numeric(value) and isinstance(value, numbers.Real)


def _describe(place: Any) -> str:
    if place is None:
        return ""
    name = getattr(place, "name", place)
    return f" of place {name}"


@dataclass(frozen=True)
class Guard:
    """Natural-language assertion paired with a predicate expressing it.

    The guard fails when the predicate returns a falsy value (numpy booleans
    included) or raises :class:`GuardError` itself; a ``None`` result counts
    as a pass.
    """

    assertion: str
    predicate: Predicate
    error: Type[GuardError] = GuardError

    def message(self, value: Any, place: Any = None) -> str:
        return f"Marking {value!r}:{type(value).__name__}{_describe(place)} {self.assertion}!"

    def validate(self, value: Any, place: Any = None) -> Any:
        result = self.predicate(value)
        if result is not None and not bool(result):
            raise self.error(self.message(value, place))
        return value


def _not_complex(value: Any) -> bool:
    return not (isinstance(value, numbers.Complex) and not isinstance(value, numbers.Real))


def _not_negative(value: Any) -> bool:
    return bool(value >= 0)


def _is_boolean(value: Any) -> bool:
    return isinstance(value, (bool, np.bool_))


def _zero_or_one(value: Any) -> bool:
    return _is_boolean(value) or (is_real(value) and value in (0, 1))


BOOLEAN_GUARD = Guard("should be Boolean", _is_boolean)
SIMULATED_BOOLEAN_GUARD = Guard("should be 0 or 1", _zero_or_one)


def default_guards(reference: Any) -> List[Guard]:
    """Derive the standard guard set from the type of a reference marking."""
    if reference is None:
        return []
    if _is_boolean(reference):
        return [BOOLEAN_GUARD]
    if is_numeric(reference) and not is_real(reference):
        return [Guard("should be Numeric", is_numeric)]
    if is_real(reference):
        return [
            Guard("should be Numeric", is_numeric),
            Guard("should not be complex", _not_complex),
            Guard("should not be negative", _not_negative, InfeasibilityError),
        ]
    cls = type(reference)
    return [Guard(f"should be a {cls.__name__}", lambda m: isinstance(m, cls))]


def simulated_guards(guards: Iterable[Guard]) -> Tuple[Guard, ...]:
    """Guards as applied to a float marking vector.

    Simulations hold Boolean markings as 0.0 or 1.0, so the Boolean type
    guard is swapped for a value check.
    """
    return tuple(SIMULATED_BOOLEAN_GUARD if guard is BOOLEAN_GUARD else guard for guard in guards)


def federated_guard(guards: Iterable[Guard], place: Any = None) -> GuardClosure:
    """Conjunction of ``guards``; later additions to the source list are not seen."""
    lineup: Tuple[Guard, ...] = tuple(guards)

    def closure(value: Any) -> Any:
        for guard in lineup:
            guard.validate(value, place)
        return value

    return closure


def check_markings(
    owner: str,
    places: Sequence[Any],
    markings: Sequence[Any],
    guards: Optional[Sequence[GuardClosure]] = None,
) -> None:
    """Validate several places at once, naming every offender in one error.

    ``guards`` defaults to each place's own ``guard`` closure. Raises
    :class:`InfeasibilityError` when every failure is a negative marking and
    :class:`GuardError` otherwise.
    """
    closures = guards if guards is not None else [place.guard for place in places]
    failures: Dict[str, Any] = {}
    kinds: List[Type[GuardError]] = []
    for place, value, closure in zip(places, markings, closures):
        try:
            closure(value)
        except GuardError as exc:
            failures[getattr(place, "name", str(place))] = value
            kinds.append(type(exc))
    if not failures:
        return
    if len(failures) == 1:
        (name, value), = failures.items()
        detail = f"{value!r} of place {name}!"
    else:
        detail = f"of the following places: {failures}!"
    error = InfeasibilityError if all(issubclass(k, InfeasibilityError) for k in kinds) else GuardError
    raise error(f"{owner} rejects marking {detail}")


__all__ = [
    "BOOLEAN_GUARD",
    "Guard",
    "SIMULATED_BOOLEAN_GUARD",
    "check_markings",
    "default_guards",
    "federated_guard",
    "is_numeric",
    "is_real",
    "simulated_guards",
]
