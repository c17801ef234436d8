from __future__ import annotations

import math
from pathlib import Path

import numpy as np
import pytest

from petrisim.errors import RecordingError
from petrisim.recording import Recording


def _make_recording() -> Recording:
    return Recording(["A", "B"], timed=True, data={0.0: [0.0, 10.0], 2.0: [2.0, 30.0], 4.0: [4.0, 20.0]})


def test_floor_and_ceiling() -> None:
    rec = _make_recording()
    assert rec.floor(1.0) == 0.0
    assert rec.ceiling(1.0) == 2.0
    assert rec.floor(2.0) == 2.0
    assert rec.floor(2.0, equal_ok=False) == 0.0
    assert rec.ceiling(2.0, equal_ok=False) == 4.0
    assert rec.ceiling(5.0) is None
    assert rec.floor(-1.0) is None


def test_interpolation_is_linear_between_neighbours() -> None:
    rec = _make_recording()
    assert rec.interpolate(0.5) == pytest.approx((0.5, 15.0))
    assert rec.at(3.0) == pytest.approx((3.0, 25.0))
    assert rec.interpolate(2.0) == (2.0, 30.0)
    with pytest.raises(RecordingError, match="ceiling"):
        rec.interpolate(5.0)
    with pytest.raises(RecordingError, match="floor"):
        rec.interpolate(-0.5)


def test_lookup_tolerates_float_noise_in_time() -> None:
    rec = _make_recording()
    assert rec[2.0000000001] == (2.0, 30.0)
    assert 2.0000000001 in rec
    assert 1.0 not in rec
    with pytest.raises(RecordingError):
        rec.record(1.0)


def test_timeless_recordings_do_not_interpolate() -> None:
    rec = Recording(["A"], timed=False, data={0: [1.0], 1: [2.0]})
    assert rec.interpolate(1) == (2.0,)
    with pytest.raises(RecordingError):
        rec.floor(0)
    with pytest.raises(RecordingError):
        rec.interpolate(5)


def test_samples_must_match_features() -> None:
    rec = _make_recording()
    with pytest.raises(RecordingError):
        rec.append(6.0, [1.0])


def test_series_and_reduced_marking() -> None:
    rec = _make_recording()
    series = rec.series()
    assert list(series) == ["A", "B"]
    assert np.allclose(series["B"], [10.0, 30.0, 20.0])
    reduced = rec.marking(["B"])
    assert reduced.features == ("B",)
    assert reduced[4.0] == (20.0,)
    with pytest.raises(RecordingError, match="not recorded"):
        rec.series(["Z"])


def test_resample_on_a_regular_grid() -> None:
    rec = _make_recording().resample(1.0)
    assert rec.events == [0.0, 1.0, 2.0, 3.0, 4.0]
    assert rec[1.0] == pytest.approx((1.0, 20.0))
    partial = _make_recording().resample(0.5, time_range=(1.0, 2.0))
    assert partial.events == [1.0, 1.5, 2.0]


def test_distance_interpolates_the_other_recording() -> None:
    rec = Recording(["A"], timed=True, data={0.0: [0.0], 2.0: [2.0], 4.0: [4.0]})
    other = Recording(["A"], timed=True, data={0.0: [1.0], 4.0: [5.0]})
    assert rec.distance(other) == pytest.approx(math.sqrt(3.0))
    assert rec.distance(rec) == 0.0


def test_frame_and_csv_export(tmp_path: Path) -> None:
    rec = Recording(["a", "b", "c"], timed=True, data={0.0: [1.0, 2.0, 3.0], 10.0: [0.5, 1.5, 3.5]})
    frame = rec.to_frame()
    assert list(frame.columns) == ["a", "b", "c"]
    assert frame.index.name == "event"
    text = rec.to_csv()
    assert text.startswith("0.0,1.0,2.0,3.0\n")
    assert text.splitlines()[1] == "10.0,0.5,1.5,3.5"
    target = tmp_path / "out" / "recording.csv"
    assert rec.to_csv(target) is None
    assert target.read_text() == text


def test_reconstruct_needs_a_source() -> None:
    with pytest.raises(RecordingError, match="source"):
        _make_recording().reconstruct(at=1.0)
