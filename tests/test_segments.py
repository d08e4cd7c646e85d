# tests/test_segments.py
from __future__ import annotations

import numpy as np
import pytest

from ephemserve.core.dual import Gradient
from ephemserve.core.errors import DateNotCovered
from ephemserve.core.segments import SegmentCollection


def _collection(starts, durations) -> SegmentCollection:
    n = len(starts)
    blocks = np.zeros((n, 3, 2))
    blocks[:, :, 0] = np.arange(n)[:, None]     # constant position = segment index
    return SegmentCollection("MARS", np.array(starts, float), np.array(durations, float), blocks)


def test_find_uses_half_open_spans() -> None:
    coll = _collection([0.0, 10.0, 20.0], [10.0, 10.0, 10.0])
    assert coll.find(0.0).start == 0.0
    assert coll.find(9.999).start == 0.0
    assert coll.find(10.0).start == 10.0
    assert coll.position(25.0).x == 2.0
    with pytest.raises(DateNotCovered):
        coll.find(30.0)
    with pytest.raises(DateNotCovered):
        coll.find(-0.001)


def test_gap_surfaces_as_date_not_covered() -> None:
    coll = _collection([0.0, 20.0], [10.0, 10.0])
    assert coll.gaps() == [(10.0, 20.0)]
    with pytest.raises(DateNotCovered) as ei:
        coll.position(15.0)
    assert ei.value.context["previous_end"] == 10.0
    assert ei.value.context["next_start"] == 20.0


def test_find_accepts_gradient_dates() -> None:
    coll = _collection([0.0, 10.0], [10.0, 10.0])
    pv = coll.position_velocity_acceleration(Gradient.variable(12.0, 0, 1))
    assert pv.position.x.value == 1.0


def test_rejects_overlap_and_disorder() -> None:
    with pytest.raises(ValueError):
        _collection([0.0, 5.0], [10.0, 10.0])
    with pytest.raises(ValueError):
        _collection([10.0, 0.0], [10.0, 10.0])
    with pytest.raises(ValueError):
        _collection([0.0], [0.0])


def test_read_only_storage_and_iteration() -> None:
    coll = _collection([0.0, 10.0, 20.0], [10.0, 10.0, 10.0])
    with pytest.raises(ValueError):
        coll.starts[0] = 1.0
    assert [s.start for s in coll] == [0.0, 10.0, 20.0]
    assert coll[-1].start == 20.0
    assert (coll.start, coll.end, len(coll)) == (0.0, 30.0, 3)
    empty = SegmentCollection.empty("MARS")
    assert len(empty) == 0 and empty.start is None
    with pytest.raises(DateNotCovered):
        empty.find(0.0)
