"""Pluggable step strategies.

A strategy decides when timeless transitions are interleaved with the timed
integration tick. Each ``step`` ends by alerting the recorder.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Protocol, Type

import numpy as np

from .core import Core
from .errors import ConfigError

if TYPE_CHECKING:  # pragma: no cover
    from .simulation import Simulation

_TIME_TOL = 1e-9


class StepMethod(Protocol):
    """Callable extension point advancing a simulation by one step."""

    name: str

    def reset(self, simulation: "Simulation") -> None:
        ...

    def step(self, simulation: "Simulation", delta_time: float) -> None:
        ...


class Euler:
    """Timed transitions only: marking += (gradient + timed rateless) * dt."""

    name = "euler"

    def reset(self, simulation: "Simulation") -> None:
        pass

    def delta(self, core: Core, m: np.ndarray, dt: float) -> np.ndarray:
        return core.delta_euler(m, dt)

    def step(self, simulation: "Simulation", delta_time: float) -> None:
        simulation._increment(self.delta(simulation.core, simulation._marking, delta_time))
        simulation._advance_time(delta_time)
        simulation._alert()


class PseudoEuler(Euler):
    """Euler with the timeless transitions firing after each step."""

    name = "pseudo_euler"

    def delta(self, core: Core, m: np.ndarray, dt: float) -> np.ndarray:
        return super().delta(core, m, dt) + core.delta_timeless(m)

    def step(self, simulation: "Simulation", delta_time: float) -> None:
        simulation._increment(self.delta(simulation.core, simulation._marking, delta_time))
        simulation._fire_assignments()
        simulation._advance_time(delta_time)
        simulation._alert()


class QuasiEuler(Euler):
    """Euler with the timeless transitions firing once per elapsed time tick.

    A step crossing tick boundaries is split at each boundary; the timeless
    transitions (then the assignment transitions) fire whenever a tick
    elapses.
    """

    name = "quasi_euler"

    def reset(self, simulation: "Simulation") -> None:
        simulation._next_tick = simulation.time + simulation.settings.tick_period

    def step(self, simulation: "Simulation", delta_time: float) -> None:
        core = simulation.core
        tick = simulation.settings.tick_period
        remaining = delta_time
        while remaining > _TIME_TOL:
            h = min(remaining, simulation._next_tick - simulation.time)
            if h > _TIME_TOL:
                simulation._increment(self.delta(core, simulation._marking, h))
                simulation._advance_time(h)
                remaining -= h
            if simulation.time >= simulation._next_tick - _TIME_TOL:
                simulation._increment(core.delta_timeless(simulation._marking))
                simulation._fire_assignments()
                simulation._next_tick += tick
        simulation._alert()


class RungeKutta(PseudoEuler):
    """Fourth-order Runge-Kutta on the rate gradient.

    Timed rateless and timeless contributions are added as in pseudo-Euler.
    """

    name = "runge_kutta"

    def delta(self, core: Core, m: np.ndarray, dt: float) -> np.ndarray:
        k1 = core.gradient(m)
        k2 = core.gradient(core.increment(m, k1 * (dt / 2)))
        k3 = core.gradient(core.increment(m, k2 * (dt / 2)))
        k4 = core.gradient(core.increment(m, k3 * dt))
        rates = (k1 + 2 * k2 + 2 * k3 + k4) * (dt / 6)
        return rates + core.delta_timed_rateless(m, dt) + core.delta_timeless(m)


class TimelessPseudoEuler:
    """Timeless nets: all timeless transitions fire at once, then assignments."""

    name = "pseudo_euler"

    def reset(self, simulation: "Simulation") -> None:
        pass

    def step(self, simulation: "Simulation", delta_time: float = 0.0) -> None:
        simulation._increment(simulation.core.delta_timeless(simulation._marking))
        simulation._fire_assignments()
        simulation._alert()


TIMED_METHODS: Dict[str, Type] = {
    Euler.name: Euler,
    PseudoEuler.name: PseudoEuler,
    QuasiEuler.name: QuasiEuler,
    RungeKutta.name: RungeKutta,
}


def method_for(name: str, timed: bool) -> StepMethod:
    if not timed:
        if name != TimelessPseudoEuler.name:
            raise ConfigError(f"Timeless simulations support only {TimelessPseudoEuler.name!r}, got {name!r}")
        return TimelessPseudoEuler()
    try:
        return TIMED_METHODS[name]()
    except KeyError as exc:
        raise ConfigError(f"Unknown simulation method {name!r}") from exc


__all__ = [
    "Euler",
    "PseudoEuler",
    "QuasiEuler",
    "RungeKutta",
    "StepMethod",
    "TIMED_METHODS",
    "TimelessPseudoEuler",
    "method_for",
]
