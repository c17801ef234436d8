"""Simulation settings with documented defaults."""

from __future__ import annotations

import dataclasses
import hashlib
import json
import math
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

from .errors import ConfigError

DEFAULT_STEP = 0.02
DEFAULT_SAMPLING = 2.0
DEFAULT_TIME: Tuple[float, float] = (0.0, 60.0)
DEFAULT_METHOD = "pseudo_euler"
KNOWN_METHODS = ("euler", "pseudo_euler", "quasi_euler", "runge_kutta")

_ALIASES = {
    "step_size": "step",
    "sampling_period": "sampling",
    "time_range": "time",
}


@dataclass(frozen=True)
class SimulationSettings:
    """Configuration driving a simulation run.

    ``time`` is the ``(initial, target)`` pair; ``tick`` is the period at
    which the quasi-Euler method fires timeless transitions and defaults to
    the sampling period. ``guarded`` validates every proposed marking before
    it is written.
    """

    step: float = DEFAULT_STEP
    sampling: float = DEFAULT_SAMPLING
    time: Tuple[float, float] = DEFAULT_TIME
    method: str = DEFAULT_METHOD
    guarded: bool = True
    tick: Optional[float] = None

    def __post_init__(self) -> None:
        try:
            start, end = (float(v) for v in self.time)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"time must be an (initial, target) pair, got {self.time!r}") from exc
        object.__setattr__(self, "time", (start, end))
        if not (self.step > 0 and math.isfinite(self.step)):
            raise ConfigError(f"step must be positive and finite, got {self.step!r}")
        if not self.sampling > 0:
            raise ConfigError(f"sampling must be positive, got {self.sampling!r}")
        if self.tick is not None and not self.tick > 0:
            raise ConfigError(f"tick must be positive, got {self.tick!r}")
        if end < start:
            raise ConfigError(f"time range is reversed: {self.time!r}")
        if self.method not in KNOWN_METHODS:
            raise ConfigError(f"Unknown simulation method {self.method!r}; expected one of {KNOWN_METHODS}")

    @property
    def initial_time(self) -> float:
        return self.time[0]

    @property
    def target_time(self) -> float:
        return self.time[1]

    @property
    def sampling_rate(self) -> float:
        return 1.0 / self.sampling

    @property
    def tick_period(self) -> float:
        return self.tick if self.tick is not None else self.sampling

    def as_dict(self) -> Dict[str, object]:
        return {
            "step": self.step,
            "sampling": self.sampling,
            "time": list(self.time),
            "method": self.method,
            "guarded": self.guarded,
            "tick": self.tick,
        }

    def identity(self) -> str:
        payload = json.dumps(self.as_dict(), sort_keys=True)
        return hashlib.sha256(payload.encode("utf8")).hexdigest()

    def replace(self, **changes: Any) -> "SimulationSettings":
        return dataclasses.replace(self, **_normalise(changes, self))

    @classmethod
    def from_mapping(cls, mapping: Optional[Mapping[str, Any]] = None) -> "SimulationSettings":
        return cls(**_normalise(dict(mapping or {}), cls()))


def _normalise(raw: Mapping[str, Any], base: SimulationSettings) -> Dict[str, Any]:
    fields = {f.name for f in dataclasses.fields(SimulationSettings)}
    out: Dict[str, Any] = {}
    initial = raw.get("initial_time")
    target = raw.get("target_time")
    for key, value in raw.items():
        if key in ("initial_time", "target_time"):
            continue
        name = _ALIASES.get(key, key)
        if name not in fields:
            raise ConfigError(f"Unknown simulation setting {key!r}")
        out[name] = value
    if initial is not None or target is not None:
        start, end = out.get("time", base.time)
        out["time"] = (
            start if initial is None else initial,
            end if target is None else target,
        )
    return out


__all__ = [
    "DEFAULT_METHOD",
    "DEFAULT_SAMPLING",
    "DEFAULT_STEP",
    "DEFAULT_TIME",
    "KNOWN_METHODS",
    "SimulationSettings",
]
