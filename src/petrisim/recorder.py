"""Recorders turn simulation state-change alerts into recordings."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Mapping, Optional, Sequence

import numpy as np

from .errors import RecordingError
from .recording import SAMPLING_DECIMAL_PLACES, Event, ReconstructionSource, Recording

if TYPE_CHECKING:  # pragma: no cover
    from .simulation import Simulation

logger = logging.getLogger(__name__)

TIME_DECIMAL_PLACES = 5


class Recorder:
    """Samples the recorded places at every alert.

    Events are step counters starting at 0.
    """

    timed = False

    def __init__(
        self,
        simulation: "Simulation",
        *,
        features: Optional[Sequence[str]] = None,
        recording: Optional[Mapping[Event, Sequence[float]]] = None,
    ):
        self.simulation = simulation
        self.features = tuple(features) if features else simulation.place_names
        self._indices = np.array([simulation.place(name).index for name in self.features], dtype=int)
        self.next_event: Event = 0
        self.reset(recording=recording)

    def new_recording(self) -> Recording:
        sim = self.simulation
        source = ReconstructionSource(
            snapshot=sim.snapshot,
            marking_clamps=dict(sim.marking_clamps),
            settings=sim.settings,
        )
        return Recording(self.features, timed=self.timed, source=source)

    @property
    def recording(self) -> Recording:
        return self._recording

    def reset(self, recording: Optional[Mapping[Event, Sequence[float]]] = None, **_: Any) -> "Recorder":
        self._recording = self.new_recording()
        if recording:
            self._recording.update(recording)
        self.next_event = 0
        return self

    def alert(self) -> None:
        """Hook called by the simulation after every state change."""
        self.sample(self.next_event)
        self.next_event += 1

    def sample(self, event: Event) -> None:
        values = self.simulation._marking[self._indices]
        self._recording.append(event, [round(float(v), SAMPLING_DECIMAL_PLACES) for v in values])
        logger.debug("sample event=%s", event)


class TimedRecorder(Recorder):
    """Samples when the simulation time reaches the next sampling time.

    With ``sampling=None`` every alert is sampled.
    """

    timed = True

    def __init__(
        self,
        simulation: "Simulation",
        *,
        sampling: Optional[float] = None,
        features: Optional[Sequence[str]] = None,
        recording: Optional[Mapping[Event, Sequence[float]]] = None,
    ):
        self.sampling = sampling
        self.next_time = simulation.time
        super().__init__(simulation, features=features, recording=recording)

    def reset(
        self,
        recording: Optional[Mapping[Event, Sequence[float]]] = None,
        *,
        sampling: Optional[float] = None,
        next_time: Optional[float] = None,
        **_: Any,
    ) -> "TimedRecorder":
        super().reset(recording=recording)
        if sampling is not None:
            self.sampling = sampling
        self.next_time = self.simulation.time if next_time is None else next_time
        return self

    def alert(self) -> None:
        time = self.simulation.time
        if self.sampling is None:
            self.sample(round(time, TIME_DECIMAL_PLACES))
            return
        if round(time, 9) >= round(self.next_time, 9):
            self.sample(round(time, TIME_DECIMAL_PLACES))
            self.next_time += self.sampling

    def back(self, by: Optional[float] = None) -> "Simulation":
        """Rebuild the simulation ``by`` time units earlier from the nearest earlier record."""
        sim = self.simulation
        target = sim.time - (sim.settings.step if by is None else by)
        floor = self._recording.floor(target)
        if floor is None:
            raise RecordingError(f"No record at or before time {target!r}")
        rebuilt = self._recording.reconstruct(at=floor)
        if target > rebuilt.time:
            rebuilt.run_until(target)
        return rebuilt


__all__ = ["Recorder", "TIME_DECIMAL_PLACES", "TimedRecorder"]
