"""Simulation of a net snapshot: place partition, stepping and recording."""

from __future__ import annotations

import json
import logging
import math
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
from scipy import sparse

from .core import STOICHIOMETRIC_KINDS, Core
from .errors import ConfigError, ConsistencyError, ReentrancyError
from .guard import check_markings, is_real
from .methods import StepMethod, method_for
from .net import Net
from .recorder import Recorder, TimedRecorder
from .recording import Recording
from .representation import NetSnapshot, PlaceRepresentation, TransitionRepresentation
from .settings import SimulationSettings
from .transition import TransitionKind

logger = logging.getLogger(__name__)

_TIME_TOL = 1e-9
FINAL_STEP_OPTIONS = ("before", "exact", "after")

PlaceKey = Any
MarkingMap = Mapping[PlaceKey, float]


def _key(place: PlaceKey) -> str:
    return getattr(place, "name", place)


def _by_name(mapping: Optional[MarkingMap], names: Sequence[str], what: str) -> Dict[str, float]:
    out: Dict[str, float] = {}
    for key, value in (mapping or {}).items():
        name = _key(key)
        if name not in names:
            raise ConsistencyError(f"{what.capitalize()} given for unknown place {name!r}")
        out[name] = value
    return out


class Simulation:
    """Run-time image of a net plus the marking vector stepped over it.

    The net is snapshotted at construction: later changes to the net, its
    places or its transitions are not observed. Every place is either free
    (initial marking) or clamped; places named in neither map are completed
    from their default marking. ``settings`` keywords may also be given
    directly (``Simulation(net, step=0.1, time=(0, 10))``).
    """

    def __init__(
        self,
        net: Union[Net, NetSnapshot],
        *,
        marking_clamps: Optional[MarkingMap] = None,
        initial_marking: Optional[MarkingMap] = None,
        settings: Union[SimulationSettings, Mapping[str, Any], None] = None,
        features: Optional[Sequence[Any]] = None,
        **setting_overrides: Any,
    ):
        self.snapshot = net if isinstance(net, NetSnapshot) else NetSnapshot.of(net)
        if settings is None:
            settings = SimulationSettings()
        elif not isinstance(settings, SimulationSettings):
            settings = SimulationSettings.from_mapping(settings)
        if setting_overrides:
            settings = settings.replace(**setting_overrides)
        self.settings: SimulationSettings = settings
        self.timed = self.snapshot.timed

        names = self.snapshot.place_names
        clamps = _by_name(marking_clamps, names, "marking clamp")
        initial = _by_name(initial_marking, names, "initial marking")
        both = [name for name in names if name in clamps and name in initial]
        if both:
            raise ConsistencyError(f"Places both clamped and given initial marking: {', '.join(both)}")
        missing: List[str] = []
        for spec in self.snapshot.places:
            if spec.name in clamps or spec.name in initial:
                continue
            if spec.default_marking is None:
                missing.append(spec.name)
            else:
                initial[spec.name] = spec.default_marking
        if missing:
            raise ConsistencyError(f"Missing clamp or initial marking for places: {', '.join(missing)}")
        values = {**initial, **clamps}
        opaque = [name for name in names if not is_real(values[name]) and not isinstance(values[name], (bool, np.bool_))]
        if opaque:
            raise ConsistencyError(f"Simulated markings must be real numbers; offending places: {', '.join(opaque)}")
        self._clamps: Dict[str, float] = {name: float(clamps[name]) for name in names if name in clamps}
        self._initial: Dict[str, float] = {name: float(initial[name]) for name in names if name in initial}

        self._places: Tuple[PlaceRepresentation, ...] = tuple(
            PlaceRepresentation(spec=spec, index=idx, clamped=spec.name in self._clamps, simulation=self)
            for idx, spec in enumerate(self.snapshot.places)
        )
        self._place_index: Dict[str, int] = {p.name: p.index for p in self._places}
        self._transitions: Tuple[TransitionRepresentation, ...] = tuple(
            TransitionRepresentation(
                spec=spec,
                domain_indices=tuple(self._place_index[n] for n in spec.domain),
                codomain_indices=tuple(self._place_index[n] for n in spec.codomain),
                simulation=self,
            )
            for spec in self.snapshot.transitions
        )
        self.core = Core(self._places, self._transitions)
        self._free_guards = [p.guard for p in self.free_places]
        check_markings(
            "Simulation",
            self._places,
            [values[p.name] for p in self._places],
            [p.guard for p in self._places],
        )

        self._method: StepMethod = method_for(settings.method, self.timed)
        self._stepping = False
        self._marking = np.zeros(len(self._places), dtype=float)
        self._time = settings.initial_time
        self._next_tick = self._time
        record = None if features is None else [_key(f) for f in features]
        if self.timed:
            self._recorder: Recorder = TimedRecorder(self, sampling=settings.sampling, features=record)
        else:
            self._recorder = Recorder(self, features=record)

        counts = {kind.value: len(self.core.by_kind[kind]) for kind in TransitionKind}
        logger.info("simulation_settings %s", json.dumps(settings.as_dict(), sort_keys=True))
        logger.info(
            "simulation places free=%d clamped=%d transitions=%s",
            len(self.free_places),
            len(self.clamped_places),
            json.dumps(counts, sort_keys=True),
        )
        self.reset()

    # ------------------------------------------------------------------ places
    @property
    def places(self) -> Tuple[PlaceRepresentation, ...]:
        return self._places

    @property
    def place_names(self) -> Tuple[str, ...]:
        return tuple(p.name for p in self._places)

    @property
    def free_places(self) -> Tuple[PlaceRepresentation, ...]:
        return tuple(p for p in self._places if p.free)

    @property
    def clamped_places(self) -> Tuple[PlaceRepresentation, ...]:
        return tuple(p for p in self._places if p.clamped)

    def place(self, place: PlaceKey) -> PlaceRepresentation:
        try:
            return self._places[self._place_index[_key(place)]]
        except KeyError as exc:
            raise KeyError(f"Simulation has no place {_key(place)!r}") from exc

    def includes_place(self, place: PlaceKey) -> bool:
        return _key(place) in self._place_index

    @property
    def initial_marking(self) -> Dict[str, float]:
        return dict(self._initial)

    @property
    def marking_clamps(self) -> Dict[str, float]:
        return dict(self._clamps)

    @property
    def f2a(self) -> sparse.csr_matrix:
        """Free-to-all correspondence matrix."""
        return self.core.f2a

    @property
    def c2a(self) -> sparse.csr_matrix:
        """Clamped-to-all correspondence matrix."""
        return self.core.c2a

    # ------------------------------------------------------------- transitions
    @property
    def transitions(self) -> Tuple[TransitionRepresentation, ...]:
        return self._transitions

    def transition(self, name: Any) -> TransitionRepresentation:
        wanted = _key(name)
        for t in self._transitions:
            if t.name == wanted:
                return t
        raise KeyError(f"Simulation has no transition {wanted!r}")

    def transitions_of_kind(self, kind: Union[TransitionKind, str]) -> Tuple[TransitionRepresentation, ...]:
        return self.core.by_kind[TransitionKind(kind)]

    def stoichiometry_matrix(self, kind: Union[TransitionKind, str], *, all_places: bool = False) -> sparse.csr_matrix:
        """Stoichiometry of ``tS``, ``TSr`` or ``SR`` transitions over free (or all) places."""
        wanted = TransitionKind(kind)
        if wanted not in STOICHIOMETRIC_KINDS:
            raise ConfigError(f"{wanted.value} transitions have no stoichiometry matrix")
        return (self.core.SM if all_places else self.core.S)[wanted]

    # ----------------------------------------------------------------- marking
    @property
    def marking_vector(self) -> np.ndarray:
        """Copy of the all-places marking vector."""
        return self._marking.copy()

    @property
    def free_marking(self) -> np.ndarray:
        return self._marking[self.core.free_indices].copy()

    def marking(self, places: Optional[Sequence[PlaceKey]] = None) -> List[float]:
        if places is None:
            return [float(v) for v in self._marking]
        return [float(self._marking[self.place(p).index]) for p in places]

    def marking_of(self, place: PlaceKey) -> float:
        return float(self._marking[self.place(place).index])

    @property
    def state(self) -> Dict[str, float]:
        return dict(zip(self.place_names, self.marking()))

    @property
    def time(self) -> float:
        return self._time

    @property
    def recorder(self) -> Recorder:
        return self._recorder

    @property
    def recording(self) -> Recording:
        return self._recorder.recording

    @property
    def method(self) -> str:
        return self._method.name

    # ------------------------------------------------------------ diagnostics
    def flux(self) -> Dict[str, float]:
        """Flux of each ``SR`` transition at the current state."""
        names = [t.name for t in self.core.by_kind[TransitionKind.SR]]
        return dict(zip(names, (float(v) for v in self.core.flux_SR(self._marking))))

    def firing(self, delta_time: Optional[float] = None) -> Dict[str, float]:
        """Firing of each stoichiometric transition for one step."""
        dt = self.settings.step if delta_time is None else delta_time
        out = {t.name: float(v) for t, v in zip(self.core.by_kind[TransitionKind.tS], self.core.firing_tS(self._marking))}
        if self.timed:
            out.update(
                (t.name, float(v))
                for t, v in zip(self.core.by_kind[TransitionKind.TSr], self.core.firing_TSr(self._marking, dt))
            )
            out.update(
                (t.name, float(v) * dt)
                for t, v in zip(self.core.by_kind[TransitionKind.SR], self.core.flux_SR(self._marking))
            )
        return out

    def gradient(self) -> np.ndarray:
        """Rate gradient over all places (zero on clamped places)."""
        return np.asarray(self.f2a @ self.core.gradient(self._marking)).reshape(-1)

    def delta(self, delta_time: Optional[float] = None) -> np.ndarray:
        """All-places marking change one pseudo-Euler step would make, before assignments."""
        delta_free = self.core.delta_timeless(self._marking)
        if self.timed:
            dt = self.settings.step if delta_time is None else delta_time
            delta_free = delta_free + self.core.delta_euler(self._marking, dt)
        return np.asarray(self.f2a @ delta_free).reshape(-1)

    # ---------------------------------------------------------------- mutation
    def _commit(self, candidate: np.ndarray) -> None:
        if self.settings.guarded:
            check_markings(
                "Simulation step",
                self.free_places,
                list(candidate[self.core.free_indices]),
                self._free_guards,
            )
        self._marking = candidate

    def _increment(self, delta_free: np.ndarray) -> None:
        self._commit(self.core.increment(self._marking, delta_free))

    def _fire_assignments(self) -> None:
        if self.core.has_assignments:
            self._commit(self.core.assign(self._marking))

    def _advance_time(self, delta_time: float) -> None:
        self._time += delta_time

    def _alert(self) -> None:
        self._recorder.alert()

    def reset(self) -> "Simulation":
        """Restore the initial marking and time, and start a fresh recording."""
        marking = np.zeros(len(self._places), dtype=float)
        for place in self._places:
            marking[place.index] = self._clamps[place.name] if place.clamped else self._initial[place.name]
        self._marking = marking
        self._time = self.settings.initial_time
        self._method.reset(self)
        self._recorder.reset()
        self._alert()
        return self

    # ----------------------------------------------------------------- stepping
    def step(self, delta_time: Optional[float] = None) -> "Simulation":
        """Advance by one step; the state is left untouched if the step fails."""
        if self._stepping:
            raise ReentrancyError("Simulation step requested while a step is in progress")
        dt = self.settings.step if delta_time is None else delta_time
        saved = (self._marking, self._time, self._next_tick)
        self._stepping = True
        try:
            self._method.step(self, dt)
        except Exception:
            self._marking, self._time, self._next_tick = saved
            raise
        finally:
            self._stepping = False
        return self

    def run_until(self, target: float, final_step: str = "exact") -> Recording:
        """Step until ``target`` time.

        ``before`` stops on or just before the target with full steps,
        ``after`` stops on or just after it, and ``exact`` shortens the last
        step to land exactly on the target.
        """
        if not self.timed:
            raise ConfigError("run_until applies to timed simulations; use run(steps) instead")
        if final_step not in FINAL_STEP_OPTIONS:
            raise ConfigError(f"Unrecognized final_step option {final_step!r}; expected one of {FINAL_STEP_OPTIONS}")
        if target < self._time - _TIME_TOL:
            logger.warning("run_until target %s precedes current time %s; nothing to do", target, self._time)
            return self.recording
        step = self.settings.step
        steps = 0
        if final_step == "before":
            while self._time + step <= target + _TIME_TOL:
                self.step()
                steps += 1
        elif final_step == "exact":
            while self._time + step < target - _TIME_TOL:
                self.step()
                steps += 1
            remaining = target - self._time
            if remaining > _TIME_TOL:
                self.step(remaining)
                steps += 1
            self._time = float(target)
        else:
            while self._time < target - _TIME_TOL:
                self.step()
                steps += 1
        logger.info("run_until target=%s final_step=%s steps=%d", target, final_step, steps)
        return self.recording

    def run(self, until: Optional[float] = None, final_step: str = "exact") -> Recording:
        """Timed: run to ``until`` (default target time). Timeless: run ``until`` steps."""
        if self.timed:
            target = self.settings.target_time if until is None else until
            if math.isinf(target):
                raise ConfigError("Target time equals infinity")
            return self.run_until(target, final_step=final_step)
        if until is None or until < 0:
            raise ConfigError("Timeless simulations need a non-negative number of steps")
        for _ in range(int(until)):
            self.step()
        logger.info("run steps=%d", int(until))
        return self.recording

    # ------------------------------------------------------------- duplicates
    def at(
        self,
        time: Optional[float] = None,
        *,
        marking: Optional[MarkingMap] = None,
        marking_clamps: Optional[MarkingMap] = None,
    ) -> "Simulation":
        """Independent simulation from the same snapshot, set to the current (or given) state."""
        clamps = dict(self._clamps)
        clamps.update({_key(k): v for k, v in (marking_clamps or {}).items()})
        initial = {p.name: float(self._marking[p.index]) for p in self._places if p.name not in clamps}
        for key, value in (marking or {}).items():
            clamps.pop(_key(key), None)
            initial[_key(key)] = value
        settings = self.settings
        if self.timed:
            start = self._time if time is None else float(time)
            settings = settings.replace(time=(start, max(start, settings.target_time)))
        return Simulation(
            self.snapshot,
            marking_clamps=clamps,
            initial_marking=initial,
            settings=settings,
            features=self._recorder.features,
        )

    def dup(self) -> "Simulation":
        return self.at()

    def __repr__(self) -> str:
        clock = f"time: {self._time}, " if self.timed else ""
        return f"<Simulation: {clock}{len(self._places)} places, {len(self._transitions)} transitions>"


__all__ = ["FINAL_STEP_OPTIONS", "Simulation"]
