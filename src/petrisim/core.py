"""Per-category compute closures over the all-places marking vector.

Everything here is built once per simulation from precomputed index arrays.
The functions take the marking vector ``m`` (all places, net order) and
return free-place deltas, except :meth:`Core.assign` and
:meth:`Core.increment` which return a new all-places vector.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Tuple

import numpy as np
from scipy import sparse

from .errors import FiringError
from .matrix import correspondence_matrix, stoichiometry_matrix, stoichiometry_vector
from .representation import PlaceRepresentation, TransitionRepresentation
from .transition import TransitionKind

logger = logging.getLogger(__name__)

STOICHIOMETRIC_KINDS = (TransitionKind.tS, TransitionKind.TSr, TransitionKind.SR)


@dataclass(frozen=True)
class _Plan:
    """Index arrays of one transition.

    ``source`` selects the codomain positions that land on free places and
    ``target`` holds their positions in the free vector (``target_all`` in
    the all-places vector).
    """

    transition: TransitionRepresentation
    domain: np.ndarray
    source: np.ndarray
    target: np.ndarray
    target_all: np.ndarray


def _vector(value: Any, size: int, name: str) -> np.ndarray:
    out = np.asarray(value, dtype=float)
    if out.ndim == 0 and size == 1:
        out = out.reshape(1)
    if out.shape != (size,):
        raise FiringError(f"Transition {name}: closure returned {value!r} for {size} codomain places")
    return out


class Core:
    def __init__(
        self,
        places: Sequence[PlaceRepresentation],
        transitions: Sequence[TransitionRepresentation],
    ):
        self.size = len(places)
        self.free_indices = np.array([p.index for p in places if p.free], dtype=int)
        self.clamped_indices = np.array([p.index for p in places if p.clamped], dtype=int)
        self.f2a = correspondence_matrix(self.free_indices, self.size)
        self.c2a = correspondence_matrix(self.clamped_indices, self.size)
        free_position = {int(idx): pos for pos, idx in enumerate(self.free_indices)}

        self.by_kind: Dict[TransitionKind, Tuple[TransitionRepresentation, ...]] = {
            kind: tuple(t for t in transitions if t.kind is kind) for kind in TransitionKind
        }
        self._plans: Dict[TransitionKind, List[_Plan]] = {}
        for kind, members in self.by_kind.items():
            self._plans[kind] = [self._plan(t, free_position) for t in members]

        self.stoichiometry_columns: Dict[str, sparse.spmatrix] = {}
        self.S: Dict[TransitionKind, sparse.csr_matrix] = {}
        self.SM: Dict[TransitionKind, sparse.csr_matrix] = {}
        for kind in STOICHIOMETRIC_KINDS:
            columns = []
            for t in self.by_kind[kind]:
                column = stoichiometry_vector(t.codomain_indices, t.stoichiometry, self.size)
                self.stoichiometry_columns[t.name] = column
                columns.append(column)
            self.SM[kind] = stoichiometry_matrix(columns, self.size)
            self.S[kind] = stoichiometry_matrix(columns, self.size, selector=self.f2a)

        for plan in self._plans[TransitionKind.A]:
            skipped = len(plan.transition.codomain_indices) - len(plan.source)
            if skipped:
                logger.warning(
                    "assignment transition %s writes to %d clamped place(s); those writes are skipped",
                    plan.transition.name,
                    skipped,
                )

    @staticmethod
    def _plan(t: TransitionRepresentation, free_position: Dict[int, int]) -> _Plan:
        landing = [(k, idx) for k, idx in enumerate(t.codomain_indices) if idx in free_position]
        return _Plan(
            transition=t,
            domain=np.array(t.domain_indices, dtype=int),
            source=np.array([k for k, _ in landing], dtype=int),
            target=np.array([free_position[idx] for _, idx in landing], dtype=int),
            target_all=np.array([idx for _, idx in landing], dtype=int),
        )

    @property
    def free_size(self) -> int:
        return len(self.free_indices)

    def _zeros(self) -> np.ndarray:
        return np.zeros(self.free_size, dtype=float)

    def _scatter(self, kind: TransitionKind, m: np.ndarray, *leading: float) -> np.ndarray:
        out = self._zeros()
        for plan in self._plans[kind]:
            t = plan.transition
            values = _vector(t.function(*leading, *m[plan.domain]), len(t.codomain_indices), t.name)
            out[plan.target] += values[plan.source]
        return out

    def _scalars(self, kind: TransitionKind, m: np.ndarray, *leading: float) -> np.ndarray:
        return np.array(
            [plan.transition.function(*leading, *m[plan.domain]) for plan in self._plans[kind]],
            dtype=float,
        )

    def _through(self, kind: TransitionKind, vector: np.ndarray) -> np.ndarray:
        if not self._plans[kind]:
            return self._zeros()
        return np.asarray(self.S[kind] @ vector, dtype=float).reshape(-1)

    # ---------------------------------------------------------------- timeless
    def delta_ts(self, m: np.ndarray) -> np.ndarray:
        return self._scatter(TransitionKind.ts, m)

    def firing_tS(self, m: np.ndarray) -> np.ndarray:
        return self._scalars(TransitionKind.tS, m)

    def delta_tS(self, m: np.ndarray) -> np.ndarray:
        return self._through(TransitionKind.tS, self.firing_tS(m))

    def delta_timeless(self, m: np.ndarray) -> np.ndarray:
        return self.delta_ts(m) + self.delta_tS(m)

    # ---------------------------------------------------------- timed rateless
    def delta_Tsr(self, m: np.ndarray, dt: float) -> np.ndarray:
        return self._scatter(TransitionKind.Tsr, m, dt)

    def firing_TSr(self, m: np.ndarray, dt: float) -> np.ndarray:
        return self._scalars(TransitionKind.TSr, m, dt)

    def delta_TSr(self, m: np.ndarray, dt: float) -> np.ndarray:
        return self._through(TransitionKind.TSr, self.firing_TSr(m, dt))

    def delta_timed_rateless(self, m: np.ndarray, dt: float) -> np.ndarray:
        return self.delta_Tsr(m, dt) + self.delta_TSr(m, dt)

    # --------------------------------------------------------------- with rate
    def gradient_sR(self, m: np.ndarray) -> np.ndarray:
        return self._scatter(TransitionKind.sR, m)

    def flux_SR(self, m: np.ndarray) -> np.ndarray:
        return self._scalars(TransitionKind.SR, m)

    def gradient_SR(self, m: np.ndarray) -> np.ndarray:
        return self._through(TransitionKind.SR, self.flux_SR(m))

    def gradient(self, m: np.ndarray) -> np.ndarray:
        return self.gradient_sR(m) + self.gradient_SR(m)

    def delta_euler(self, m: np.ndarray, dt: float) -> np.ndarray:
        return self.gradient(m) * dt + self.delta_timed_rateless(m, dt)

    # ------------------------------------------------------------- application
    def increment(self, m: np.ndarray, delta_free: np.ndarray) -> np.ndarray:
        out = m.copy()
        out[self.free_indices] += delta_free
        return out

    def assign(self, m: np.ndarray) -> np.ndarray:
        """Fire assignment transitions in declared order on a copy of ``m``.

        Each transition reads the vector as left by the previous ones.
        """
        out = m.copy()
        for plan in self._plans[TransitionKind.A]:
            t = plan.transition
            values = _vector(t.function(*out[plan.domain]), len(t.codomain_indices), t.name)
            out[plan.target_all] = values[plan.source]
        return out

    @property
    def has_assignments(self) -> bool:
        return bool(self._plans[TransitionKind.A])


__all__ = ["Core", "STOICHIOMETRIC_KINDS"]
