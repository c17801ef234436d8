"""Recorded state history: lookup, interpolation and reconstruction."""

from __future__ import annotations

import math
from collections.abc import Mapping as MappingABC
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .errors import RecordingError
from .representation import NetSnapshot
from .settings import SimulationSettings

if TYPE_CHECKING:  # pragma: no cover
    from .simulation import Simulation

Event = Union[float, int]
Sample = Tuple[float, ...]

SAMPLING_DECIMAL_PLACES = 5
_TIME_TOL = 1e-9


def _name(key: Any) -> str:
    return getattr(key, "name", key)


@dataclass(frozen=True)
class ReconstructionSource:
    """What a recording needs to rebuild a simulation without the net."""

    snapshot: NetSnapshot
    marking_clamps: Mapping[str, float] = field(default_factory=dict)
    settings: SimulationSettings = field(default_factory=SimulationSettings)


class Recording(MappingABC):
    """Insertion-ordered map ``event -> sample``.

    A sample holds the marking of ``features`` (place names) in order. Timed
    recordings are keyed by time and support :meth:`floor`, :meth:`ceiling`
    and linear :meth:`interpolate`; timeless ones are keyed by step counters.
    """

    def __init__(
        self,
        features: Sequence[str],
        *,
        timed: bool,
        source: Optional[ReconstructionSource] = None,
        data: Optional[Mapping[Event, Sequence[float]]] = None,
    ):
        self.features: Tuple[str, ...] = tuple(features)
        self.timed = timed
        self.source = source
        self._data: Dict[Event, Sample] = {}
        if data:
            self.update(data)

    # ---------------------------------------------------------- mapping api
    def __getitem__(self, event: Event) -> Sample:
        if event in self._data:
            return self._data[event]
        if self.timed:
            key = round(float(event), SAMPLING_DECIMAL_PLACES)
            if key in self._data:
                return self._data[key]
        raise KeyError(event)

    def __iter__(self) -> Iterator[Event]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, event: object) -> bool:
        try:
            self[event]  # type: ignore[index]
        except (KeyError, TypeError, ValueError):
            return False
        return True

    def update(self, data: Mapping[Event, Sequence[float]]) -> None:
        for event, values in data.items():
            self.append(event, values)

    def append(self, event: Event, values: Sequence[float]) -> None:
        sample = tuple(float(v) for v in values)
        if len(sample) != len(self.features):
            raise RecordingError(
                f"Sample at {event!r} has {len(sample)} values for {len(self.features)} features"
            )
        self._data[event] = sample

    @property
    def events(self) -> List[Event]:
        return list(self._data)

    @property
    def place_names(self) -> Tuple[str, ...]:
        return self.features

    @property
    def settings(self) -> Optional[SimulationSettings]:
        return self.source.settings if self.source is not None else None

    def record(self, event: Event) -> Sample:
        try:
            return self[event]
        except KeyError as exc:
            raise RecordingError(f"Event {event!r} not recorded") from exc

    # -------------------------------------------------------------- queries
    def _require_timed(self, operation: str) -> None:
        if not self.timed:
            raise RecordingError(f"{operation} is supported by timed recordings only")

    def floor(self, event: Event, equal_ok: bool = True) -> Optional[Event]:
        """Nearest recorded event below (or equal to) ``event``."""
        self._require_timed("floor")
        candidates = [e for e in self._data if e < event or (equal_ok and e == event)]
        return max(candidates) if candidates else None

    def ceiling(self, event: Event, equal_ok: bool = True) -> Optional[Event]:
        """Nearest recorded event above (or equal to) ``event``."""
        self._require_timed("ceiling")
        candidates = [e for e in self._data if e > event or (equal_ok and e == event)]
        return min(candidates) if candidates else None

    def interpolate(self, event: Event) -> Sample:
        """Exact record if present, else linear interpolation between neighbours."""
        if event in self:
            return self[event]
        if not self.timed:
            raise RecordingError(f"Event {event!r} not recorded (timeless recording)")
        lower = self.floor(event)
        if lower is None:
            raise RecordingError(f"Event {event!r} has no floor")
        upper = self.ceiling(event)
        if upper is None:
            raise RecordingError(f"Event {event!r} has no ceiling")
        fl = np.asarray(self._data[lower], dtype=float)
        ce = np.asarray(self._data[upper], dtype=float)
        result = fl + (ce - fl) / (upper - lower) * (event - lower)
        return tuple(float(v) for v in result)

    at = interpolate

    def series(self, places: Optional[Sequence[Any]] = None) -> Dict[str, np.ndarray]:
        """Per-place columns of the recording."""
        names = self.features if places is None else tuple(_name(p) for p in places)
        positions = [self._position(n) for n in names]
        matrix = np.asarray(list(self._data.values()), dtype=float).reshape(len(self._data), len(self.features))
        return {name: matrix[:, pos].copy() for name, pos in zip(names, positions)}

    def _position(self, name: str) -> int:
        try:
            return self.features.index(name)
        except ValueError as exc:
            raise RecordingError(f"Place {name!r} is not recorded") from exc

    def marking(self, places: Optional[Sequence[Any]] = None) -> "Recording":
        """Recording reduced to the given places (all recorded places by default)."""
        names = self.features if places is None else tuple(_name(p) for p in places)
        positions = [self._position(n) for n in names]
        reduced = Recording(names, timed=self.timed, source=self.source)
        for event, sample in self._data.items():
            reduced.append(event, [sample[pos] for pos in positions])
        return reduced

    def resample(self, sampling: float, time_range: Optional[Tuple[float, float]] = None) -> "Recording":
        self._require_timed("resample")
        if not sampling > 0:
            raise RecordingError(f"sampling must be positive, got {sampling!r}")
        if time_range is None:
            if not self._data:
                raise RecordingError("Cannot resample an empty recording")
            time_range = (min(self._data), max(self._data))
        start, end = time_range
        out = Recording(self.features, timed=True, source=self.source)
        k = 0
        while True:
            t = start + k * sampling
            if t > end + _TIME_TOL:
                return out
            out.append(round(t, SAMPLING_DECIMAL_PLACES), self.interpolate(t))
            k += 1

    def distance(self, other: "Recording") -> float:
        """Root of the summed squared distances to ``other`` at this recording's events."""
        positions = [other._position(n) for n in self.features]
        total = 0.0
        for event, sample in self._data.items():
            theirs = other.interpolate(event)
            diff = np.asarray(sample) - np.asarray([theirs[p] for p in positions])
            total += float(diff @ diff)
        return math.sqrt(total)

    # ------------------------------------------------------- reconstruction
    def reconstruct(
        self,
        at: Event,
        *,
        marking_clamps: Optional[Mapping[Any, float]] = None,
        initial_marking: Optional[Mapping[Any, float]] = None,
        **settings: Any,
    ) -> "Simulation":
        """New simulation seeded from the (possibly interpolated) state at ``at``.

        ``marking_clamps`` and ``initial_marking`` override the recorded
        state and must cover any place the recording does not hold; other
        keywords override simulation settings.
        """
        from .simulation import Simulation

        if self.source is None:
            raise RecordingError("Recording carries no simulation source to reconstruct from")
        values = dict(zip(self.features, self.interpolate(at)))
        clamps = dict(self.source.marking_clamps)
        clamps.update({_name(k): v for k, v in (marking_clamps or {}).items()})
        initial = {name: value for name, value in values.items() if name not in clamps}
        for key, value in (initial_marking or {}).items():
            clamps.pop(_name(key), None)
            initial[_name(key)] = value
        unknown = [name for name in self.source.snapshot.place_names if name not in clamps and name not in initial]
        if unknown:
            raise RecordingError(
                f"Recording lacks the state of places {', '.join(unknown)}; "
                "give them as marking_clamps or initial_marking"
            )
        base = self.source.settings
        if self.timed:
            start = float(at)
            base = base.replace(time=(start, max(start, base.target_time)))
        if settings:
            base = base.replace(**settings)
        return Simulation(
            self.source.snapshot,
            marking_clamps=clamps,
            initial_marking=initial,
            settings=base,
            features=self.features,
        )

    # --------------------------------------------------------------- export
    def to_frame(self) -> pd.DataFrame:
        frame = pd.DataFrame(
            [list(sample) for sample in self._data.values()],
            index=pd.Index(list(self._data), name="event"),
            columns=list(self.features),
        )
        frame.attrs["timed"] = self.timed
        return frame

    def to_csv(self, path: Optional[Path] = None, *, header: bool = False, **to_csv_kwargs: Any) -> Optional[str]:
        """``event,value1,value2,...`` lines; returns the text when no path is given."""
        frame = self.to_frame()
        if path is None:
            return frame.to_csv(header=header, lineterminator="\n", **to_csv_kwargs)
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        frame.to_csv(path, header=header, lineterminator="\n", **to_csv_kwargs)
        return None

    def __repr__(self) -> str:
        kind = "timed" if self.timed else "timeless"
        return f"<Recording {kind}: {len(self._data)} events, features={list(self.features)}>"


__all__ = ["ReconstructionSource", "Recording", "SAMPLING_DECIMAL_PLACES"]
