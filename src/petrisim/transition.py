"""Transition taxonomy, per-category builders and token-game firing."""

from __future__ import annotations

import inspect
import logging
import numbers
from enum import Enum
from typing import Any, Callable, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union

import numpy as np

from .errors import ConstructionError, FiringError, GuardError
from .expressions import compile_expression
from .guard import check_markings, is_real
from .place import Place

logger = logging.getLogger(__name__)

Closure = Callable[..., Any]
FunctionSpec = Union[Closure, str, float, int, None]
Stoichiometry = Union[Mapping[Place, float], Sequence[float]]

_DELTA_TIME_SYMBOL = "dt"


class TransitionKind(str, Enum):
    """Category of a transition.

    Upper-case ``T``/``S``/``R`` mark timed, stoichiometric and with-rate
    transitions; ``A`` is the timeless assignment category.
    """

    ts = "ts"
    tS = "tS"
    Tsr = "Tsr"
    TSr = "TSr"
    sR = "sR"
    SR = "SR"
    A = "A"

    @property
    def stoichiometric(self) -> bool:
        return self in (TransitionKind.tS, TransitionKind.TSr, TransitionKind.SR)

    @property
    def timed(self) -> bool:
        return self in (TransitionKind.Tsr, TransitionKind.TSr, TransitionKind.sR, TransitionKind.SR)

    @property
    def has_rate(self) -> bool:
        return self in (TransitionKind.sR, TransitionKind.SR)

    @property
    def assignment(self) -> bool:
        return self is TransitionKind.A


class Cocking(Enum):
    UNCOCKED = "uncocked"
    COCKED = "cocked"


def _unique_places(collection: Optional[Iterable[Place]], what: str) -> Tuple[Place, ...]:
    places = tuple(collection or ())
    for place in places:
        if not isinstance(place, Place):
            raise ConstructionError(f"{what.capitalize()} member {place!r} is not a place")
    if len({id(p) for p in places}) != len(places):
        raise ConstructionError(f"{what.capitalize()} must not contain duplicate places")
    return places


def _stoichiometry(
    stoichiometry: Stoichiometry, codomain: Optional[Sequence[Place]]
) -> Tuple[Tuple[Place, ...], Tuple[float, ...]]:
    if isinstance(stoichiometry, Mapping):
        if codomain is not None:
            raise ConstructionError("With mapping stoichiometry, codomain must not be given")
        places, coefficients = tuple(stoichiometry.keys()), tuple(stoichiometry.values())
    else:
        if codomain is None:
            raise ConstructionError("With sequence stoichiometry, codomain must be given")
        places, coefficients = tuple(codomain), tuple(stoichiometry)
    places = _unique_places(places, "supplied codomain")
    if len(places) != len(coefficients):
        raise ConstructionError(
            f"Stoichiometry has {len(coefficients)} coefficients for {len(places)} codomain places"
        )
    if not all(is_real(c) for c in coefficients):
        raise ConstructionError(f"Stoichiometry coefficients must be real numbers: {coefficients}")
    return places, coefficients


def _arity(func: Closure) -> Optional[int]:
    """Number of required positional parameters, ``None`` when variadic."""
    try:
        signature = inspect.signature(func)
    except (TypeError, ValueError):
        return None
    count = 0
    for param in signature.parameters.values():
        if param.kind is inspect.Parameter.VAR_POSITIONAL:
            return None
        if param.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD):
            if param.default is inspect.Parameter.empty:
                count += 1
    return count


def _infer_domain(
    arity: Optional[int],
    name: str,
    options: Sequence[Tuple[Place, ...]],
) -> Tuple[Place, ...]:
    if arity is None:
        raise ConstructionError(f"Transition {name}: cannot infer the domain of a variadic closure")
    for candidate in options:
        if len(candidate) == arity:
            return candidate
    sizes = sorted({len(c) for c in options})
    raise ConstructionError(
        f"Transition {name}: closure arity {arity} matches none of the admissible domain sizes {sizes}"
    )


def _resolve_function(
    name: str,
    function: Union[Closure, str],
    domain: Optional[Iterable[Place]],
    options: Sequence[Tuple[Place, ...]],
    *,
    timed_rateless: bool = False,
    parameters: Optional[Mapping[str, float]] = None,
) -> Tuple[Tuple[Place, ...], Closure]:
    """Pair a rate/action closure with its domain.

    ``options`` lists the admissible inferred domains in order of preference;
    the last one is also the candidate set for textual formulas.
    """
    leading = (_DELTA_TIME_SYMBOL,) if timed_rateless else ()
    if isinstance(function, str):
        if domain is not None:
            dom = _unique_places(domain, "supplied domain")
            compiled = compile_expression(
                function, [p.name for p in dom], parameters=parameters, leading=leading, all_names=True
            )
            return dom, compiled.func
        candidates = options[-1] if options else ()
        compiled = compile_expression(
            function, [p.name for p in candidates], parameters=parameters, leading=leading
        )
        by_name = {p.name: p for p in candidates}
        return tuple(by_name[token] for token in compiled.tokens), compiled.func
    if not callable(function):
        raise ConstructionError(f"Transition {name}: {function!r} is not callable")
    arity = _arity(function)
    if arity is not None and timed_rateless:
        if arity < 1:
            raise ConstructionError(f"Transition {name}: timed rateless closure must accept delta time")
        arity -= 1
    if domain is None:
        return _infer_domain(arity, name, options), function
    dom = _unique_places(domain, "supplied domain")
    if arity is not None and arity > len(dom):
        raise ConstructionError(f"Transition {name}: closure arity ({arity}) > domain ({len(dom)})")
    return dom, function


def standard_mass_action(constant: float, coefficients: Sequence[float]) -> Closure:
    """Mass-action rate over the places with non-positive coefficients.

    Coefficients 0 and -1 contribute the plain marking; any other coefficient
    ``c`` contributes ``marking ** -c``.
    """
    reactants = tuple(c for c in coefficients if c <= 0)

    def rate(*markings: float) -> float:
        acc = constant
        for marking, coeff in zip(markings, reactants):
            acc = acc * marking if coeff in (0, -1) else acc * marking ** -coeff
        return acc

    return rate


def _as_list(value: Any, size: int, name: str) -> List[Any]:
    if isinstance(value, (list, tuple, np.ndarray)):
        values = list(value)
    elif size == 1:
        values = [value]
    else:
        raise FiringError(f"Transition {name}: closure returned a scalar for {size} codomain places")
    if len(values) != size:
        raise FiringError(f"Transition {name}: closure returned {len(values)} values for {size} codomain places")
    return values


class Transition:
    """A rule moving or replacing marking across places.

    Instances are created through the per-category builders
    (:meth:`timeless`, :meth:`stoichiometric_with_rate`, ...) or the tagged
    :meth:`build`; the constructor itself only checks invariants.
    """

    def __init__(
        self,
        name: str,
        kind: TransitionKind,
        *,
        codomain: Sequence[Place],
        domain: Sequence[Place],
        function: Closure,
        stoichiometry: Optional[Sequence[float]] = None,
        functional: bool = True,
        domain_guard: Optional[Callable[[Sequence[Any]], Any]] = None,
    ):
        if not isinstance(name, str) or not name:
            raise ConstructionError("Transition name must be a non-empty string")
        self.name = name
        self.kind = TransitionKind(kind)
        self.codomain = _unique_places(codomain, "codomain")
        self.domain = _unique_places(domain, "domain")
        if self.kind.stoichiometric:
            if stoichiometry is None or len(stoichiometry) != len(self.codomain):
                raise ConstructionError(f"Transition {name}: stoichiometry must match the codomain")
            self.stoichiometry: Optional[Tuple[float, ...]] = tuple(stoichiometry)
        elif stoichiometry is not None:
            raise ConstructionError(f"Transition {name}: {self.kind.value} transitions take no stoichiometry")
        else:
            self.stoichiometry = None
        if not callable(function):
            raise ConstructionError(f"Transition {name}: function must be callable")
        self.function = function
        self.functional = functional
        self._domain_guard = domain_guard
        self._cocking = Cocking.UNCOCKED
        for place in self.domain:
            place._register_downstream(self)
        for place in self.codomain:
            place._register_upstream(self)

    # ---------------------------------------------------------------- builders
    @classmethod
    def timeless(
        cls,
        name: str,
        *,
        codomain: Sequence[Place],
        action: Union[Closure, str],
        domain: Optional[Sequence[Place]] = None,
        parameters: Optional[Mapping[str, float]] = None,
        domain_guard=None,
    ) -> "Transition":
        """Timeless non-stoichiometric (``ts``): one delta per codomain place."""
        cod = _unique_places(codomain, "supplied codomain")
        dom, func = _resolve_function(name, action, domain, [(), cod], parameters=parameters)
        return cls(name, TransitionKind.ts, codomain=cod, domain=dom, function=func, domain_guard=domain_guard)

    @classmethod
    def timeless_stoichiometric(
        cls,
        name: str,
        *,
        stoichiometry: Stoichiometry,
        action: Union[Closure, str, None] = None,
        codomain: Optional[Sequence[Place]] = None,
        domain: Optional[Sequence[Place]] = None,
        parameters: Optional[Mapping[str, float]] = None,
        domain_guard=None,
    ) -> "Transition":
        """Timeless stoichiometric (``tS``); without an action it fires once per call."""
        cod, coeffs = _stoichiometry(stoichiometry, codomain)
        if action is None:
            if domain:
                raise ConstructionError(f"Transition {name}: a functionless transition has no domain")
            return cls(
                name,
                TransitionKind.tS,
                codomain=cod,
                domain=(),
                function=lambda: 1,
                stoichiometry=coeffs,
                functional=False,
                domain_guard=domain_guard,
            )
        reactants = tuple(p for p, c in zip(cod, coeffs) if c <= 0)
        dom, func = _resolve_function(name, action, domain, [(), reactants, cod], parameters=parameters)
        return cls(
            name, TransitionKind.tS, codomain=cod, domain=dom, function=func,
            stoichiometry=coeffs, domain_guard=domain_guard,
        )

    @classmethod
    def timed_rateless(
        cls,
        name: str,
        *,
        codomain: Sequence[Place],
        action: Union[Closure, str],
        domain: Optional[Sequence[Place]] = None,
        parameters: Optional[Mapping[str, float]] = None,
        domain_guard=None,
    ) -> "Transition":
        """Timed rateless (``Tsr``): ``action(dt, *domain)`` gives the codomain deltas."""
        cod = _unique_places(codomain, "supplied codomain")
        dom, func = _resolve_function(
            name, action, domain, [(), cod], timed_rateless=True, parameters=parameters
        )
        return cls(name, TransitionKind.Tsr, codomain=cod, domain=dom, function=func, domain_guard=domain_guard)

    @classmethod
    def timed_rateless_stoichiometric(
        cls,
        name: str,
        *,
        stoichiometry: Stoichiometry,
        action: Union[Closure, str],
        codomain: Optional[Sequence[Place]] = None,
        domain: Optional[Sequence[Place]] = None,
        parameters: Optional[Mapping[str, float]] = None,
        domain_guard=None,
    ) -> "Transition":
        """Timed rateless stoichiometric (``TSr``): scalar ``action(dt, *domain)``."""
        cod, coeffs = _stoichiometry(stoichiometry, codomain)
        reactants = tuple(p for p, c in zip(cod, coeffs) if c <= 0)
        dom, func = _resolve_function(
            name, action, domain, [(), reactants, cod], timed_rateless=True, parameters=parameters
        )
        return cls(
            name, TransitionKind.TSr, codomain=cod, domain=dom, function=func,
            stoichiometry=coeffs, domain_guard=domain_guard,
        )

    @classmethod
    def with_rate(
        cls,
        name: str,
        *,
        codomain: Sequence[Place],
        rate: FunctionSpec,
        domain: Optional[Sequence[Place]] = None,
        parameters: Optional[Mapping[str, float]] = None,
        domain_guard=None,
    ) -> "Transition":
        """Non-stoichiometric with rate (``sR``): one rate per codomain place."""
        cod = _unique_places(codomain, "supplied codomain")
        if isinstance(rate, numbers.Number) and not isinstance(rate, bool):
            if len(cod) != 1:
                raise ConstructionError(
                    f"Transition {name}: with a numeric rate and no stoichiometry the codomain size must be 1"
                )
            if domain:
                raise ConstructionError(f"Transition {name}: rate is a number, but the domain is non-empty")
            constant = rate
            return cls(
                name, TransitionKind.sR, codomain=cod, domain=(), function=lambda: constant,
                domain_guard=domain_guard,
            )
        dom, func = _resolve_function(name, rate, domain, [(), cod], parameters=parameters)
        return cls(name, TransitionKind.sR, codomain=cod, domain=dom, function=func, domain_guard=domain_guard)

    @classmethod
    def stoichiometric_with_rate(
        cls,
        name: str,
        *,
        stoichiometry: Stoichiometry,
        rate: FunctionSpec,
        codomain: Optional[Sequence[Place]] = None,
        domain: Optional[Sequence[Place]] = None,
        parameters: Optional[Mapping[str, float]] = None,
        domain_guard=None,
    ) -> "Transition":
        """Stoichiometric with rate (``SR``); a numeric rate means mass action."""
        cod, coeffs = _stoichiometry(stoichiometry, codomain)
        reactants = tuple(p for p, c in zip(cod, coeffs) if c <= 0)
        if isinstance(rate, numbers.Number) and not isinstance(rate, bool):
            if domain is not None:
                raise ConstructionError(f"Transition {name}: with a numeric rate, the domain must not be given")
            return cls(
                name, TransitionKind.SR, codomain=cod, domain=reactants,
                function=standard_mass_action(rate, coeffs), stoichiometry=coeffs,
                domain_guard=domain_guard,
            )
        dom, func = _resolve_function(name, rate, domain, [(), reactants, cod], parameters=parameters)
        return cls(
            name, TransitionKind.SR, codomain=cod, domain=dom, function=func,
            stoichiometry=coeffs, domain_guard=domain_guard,
        )

    @classmethod
    def assignment(
        cls,
        name: str,
        *,
        codomain: Sequence[Place],
        action: Union[Closure, str],
        domain: Optional[Sequence[Place]] = None,
        parameters: Optional[Mapping[str, float]] = None,
        domain_guard=None,
    ) -> "Transition":
        """Assignment (``A``): the action replaces the codomain marking."""
        cod = _unique_places(codomain, "supplied codomain")
        dom, func = _resolve_function(name, action, domain, [(), cod], parameters=parameters)
        return cls(name, TransitionKind.A, codomain=cod, domain=dom, function=func, domain_guard=domain_guard)

    @classmethod
    def build(cls, kind: Union[TransitionKind, str], name: str, **fields: Any) -> "Transition":
        """Tagged entry point dispatching to the builder of ``kind``."""
        try:
            builder = _BUILDERS[TransitionKind(kind)]
        except ValueError as exc:
            raise ConstructionError(f"Unknown transition kind: {kind!r}") from exc
        try:
            return getattr(cls, builder)(name, **fields)
        except TypeError as exc:
            raise ConstructionError(f"Transition {name} ({kind}): {exc}") from exc

    # ------------------------------------------------------------ descriptors
    @property
    def stoichiometric(self) -> bool:
        return self.kind.stoichiometric

    @property
    def timed(self) -> bool:
        return self.kind.timed

    @property
    def has_rate(self) -> bool:
        return self.kind.has_rate

    @property
    def rateless(self) -> bool:
        return not self.kind.has_rate

    @property
    def assignment_action(self) -> bool:
        return self.kind.assignment

    @property
    def functionless(self) -> bool:
        return not self.functional

    @property
    def basic_type(self) -> str:
        """One of ``ts``, ``tS``, ``Ts``, ``TS``."""
        return ("T" if self.timed else "t") + ("S" if self.stoichiometric else "s")

    @property
    def rate_closure(self) -> Optional[Closure]:
        return self.function if self.has_rate else None

    @property
    def action_closure(self) -> Optional[Closure]:
        return None if self.has_rate else self.function

    @property
    def upstream_places(self) -> Tuple[Place, ...]:
        return self.domain

    @property
    def downstream_places(self) -> Tuple[Place, ...]:
        return self.codomain

    @property
    def arcs(self) -> Tuple[Place, ...]:
        seen = {id(p) for p in self.domain}
        return self.domain + tuple(p for p in self.codomain if id(p) not in seen)

    @property
    def domain_marking(self) -> List[Any]:
        return [p.marking for p in self.domain]

    @property
    def codomain_marking(self) -> List[Any]:
        return [p.marking for p in self.codomain]

    @property
    def zero_action(self) -> List[float]:
        return [0] * len(self.codomain)

    def domain_guard(self, markings: Sequence[Any]) -> Sequence[Any]:
        """Validate a prospective domain marking, naming every failing place."""
        if self._domain_guard is not None:
            self._domain_guard(markings)
            return markings
        check_markings(f"Domain guard of {self.name}", self.domain, list(markings))
        return markings

    # ---------------------------------------------------------------- cocking
    @property
    def cocking(self) -> Cocking:
        return self._cocking

    @property
    def cocked(self) -> bool:
        return self._cocking is Cocking.COCKED

    def cock(self) -> None:
        self._cocking = Cocking.COCKED

    def uncock(self) -> None:
        self._cocking = Cocking.UNCOCKED

    # ----------------------------------------------------------------- firing
    def _require_delta_time(self, delta_time: Optional[float]) -> float:
        if delta_time is None:
            raise FiringError(f"Timed transition {self.name} requires delta_time to act")
        return delta_time

    def action(self, delta_time: Optional[float] = None) -> List[Any]:
        """Codomain deltas (assigned values for ``A``), before validation."""
        markings = self.domain_marking
        size = len(self.codomain)
        if self.has_rate:
            dt = self._require_delta_time(delta_time)
            rate = self.function(*markings)
            if self.stoichiometric:
                return [rate * coeff * dt for coeff in self.stoichiometry]
            return [component * dt for component in _as_list(rate, size, self.name)]
        if self.timed:
            result = self.function(self._require_delta_time(delta_time), *markings)
        else:
            result = self.function(*markings)
        if self.stoichiometric:
            return [result * coeff for coeff in self.stoichiometry]
        return _as_list(result, size, self.name)

    def _proposed(self, delta_time: Optional[float]) -> List[Any]:
        act = self.action(delta_time)
        if self.assignment_action:
            return act
        return [place.marking + change for place, change in zip(self.codomain, act)]

    def enabled(self, delta_time: Optional[float] = None) -> bool:
        """Whether the action would leave every codomain place legal."""
        if self.assignment_action:
            return True
        try:
            check_markings(f"Transition {self.name}", self.codomain, self._proposed(delta_time))
        except GuardError:
            return False
        return True

    def _fire(self, delta_time: Optional[float]) -> None:
        proposed = self._proposed(delta_time)
        check_markings(f"Transition {self.name}", self.codomain, proposed)
        for place, value in zip(self.codomain, proposed):
            place.marking = value
        logger.debug("fired %s -> %s", self.name, dict(zip((p.name for p in self.codomain), proposed)))

    def fire(self, delta_time: Optional[float] = None, *, force: bool = False) -> bool:
        """Fire honouring cocking; ``force`` fires regardless of it.

        Returns ``False`` when an uncocked transition was not fired. Raises
        :class:`GuardError` without touching any place, or the cock, if the
        result would be illegal.
        """
        if not force and not self.cocked:
            return False
        self._fire(delta_time)
        if not force:
            self.uncock()
        return True

    def fire_upstream_recursively(
        self, delta_time: Optional[float] = None, visited: Optional[Set[int]] = None
    ) -> bool:
        visited = set() if visited is None else visited
        if id(self) in visited or not self.cocked:
            return False
        visited.add(id(self))
        for place in self.upstream_places:
            place.fire_upstream_recursively(delta_time, visited)
        self._fire(delta_time)
        self.uncock()
        return True

    def fire_downstream_recursively(
        self, delta_time: Optional[float] = None, visited: Optional[Set[int]] = None
    ) -> bool:
        visited = set() if visited is None else visited
        if id(self) in visited or not self.cocked:
            return False
        visited.add(id(self))
        self._fire(delta_time)
        self.uncock()
        for place in self.downstream_places:
            place.fire_downstream_recursively(delta_time, visited)
        return True

    def __repr__(self) -> str:
        return (
            f"<Transition {self.name} ({self.kind.value}): "
            f"domain={[p.name for p in self.domain]}, codomain={[p.name for p in self.codomain]}>"
        )

    def __str__(self) -> str:
        return f"Transition[{self.name}]"


_BUILDERS = {
    TransitionKind.ts: "timeless",
    TransitionKind.tS: "timeless_stoichiometric",
    TransitionKind.Tsr: "timed_rateless",
    TransitionKind.TSr: "timed_rateless_stoichiometric",
    TransitionKind.sR: "with_rate",
    TransitionKind.SR: "stoichiometric_with_rate",
    TransitionKind.A: "assignment",
}


__all__ = ["Cocking", "Transition", "TransitionKind", "standard_mass_action"]
