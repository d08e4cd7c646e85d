# ephemserve/core/segments.py
# -----------------------------------------------------------------------------
# Time-ordered, duplicate-free collection of Chebyshev segments for one series.
#
# Storage is columnar (numpy): start epochs, durations and an (n, axes, ncoef)
# coefficient block. ChebyshevSegment objects are materialised on access, so a
# multi-century archive does not keep hundreds of thousands of small objects
# alive. The arrays are made read-only once the collection is built.
# -----------------------------------------------------------------------------
from __future__ import annotations

import bisect
from typing import Any, Iterator, List, Optional, Tuple

import numpy as np

from .dual import real_value
from .errors import DateNotCovered
from .segment import ChebyshevSegment
from .vectors import PVCoordinates, Vector3

# rounding slack when record epochs (JD doubles) are converted to seconds
_OVERLAP_TOL_S = 1e-6


class SegmentCollection:
    def __init__(self, body: str, starts: np.ndarray, durations: np.ndarray, blocks: np.ndarray):
        starts = np.asarray(starts, dtype=float)
        durations = np.asarray(durations, dtype=float)
        blocks = np.asarray(blocks, dtype=float)
        if starts.ndim != 1 or starts.shape != durations.shape or blocks.ndim != 3 or blocks.shape[0] != starts.shape[0]:
            raise ValueError("inconsistent segment collection shapes")
        if starts.size and (np.any(durations <= 0.0) or np.any(np.diff(starts) <= 0.0)):
            raise ValueError("segments must have positive durations and strictly ascending starts")
        if starts.size > 1 and np.any(starts[1:] < starts[:-1] + durations[:-1] - _OVERLAP_TOL_S):
            raise ValueError("segments overlap")
        for arr in (starts, durations, blocks):
            arr.setflags(write=False)
        self._body = body
        self._starts = starts
        self._durations = durations
        self._blocks = blocks
        self._start_list: List[float] = starts.tolist()

    @classmethod
    def empty(cls, body: str, axes: int = 3) -> "SegmentCollection":
        return cls(body, np.empty(0), np.empty(0), np.empty((0, axes, 0)))

    @property
    def body(self) -> str:
        return self._body

    @property
    def starts(self) -> np.ndarray:
        return self._starts

    @property
    def durations(self) -> np.ndarray:
        return self._durations

    @property
    def start(self) -> Optional[float]:
        return float(self._starts[0]) if self._starts.size else None

    @property
    def end(self) -> Optional[float]:
        if not self._starts.size:
            return None
        return float(self._starts[-1] + self._durations[-1])

    def __len__(self) -> int:
        return int(self._starts.shape[0])

    def __getitem__(self, index: int) -> ChebyshevSegment:
        n = len(self)
        if index < 0:
            index += n
        if not 0 <= index < n:
            raise IndexError(index)
        return ChebyshevSegment(self._body, self._starts[index], self._durations[index], self._blocks[index])

    def __iter__(self) -> Iterator[ChebyshevSegment]:
        for i in range(len(self)):
            yield self[i]

    def gaps(self) -> List[Tuple[float, float]]:
        """Uncovered (end, next_start) intervals between consecutive segments."""
        if len(self) < 2:
            return []
        ends = self._starts[:-1] + self._durations[:-1]
        idx = np.nonzero(self._starts[1:] > ends)[0]
        return [(float(ends[i]), float(self._starts[i + 1])) for i in idx]

    def find(self, date: Any) -> ChebyshevSegment:
        """Segment whose half-open span contains the date."""
        d = real_value(date)
        i = bisect.bisect_right(self._start_list, d) - 1
        if i >= 0 and d < self._start_list[i] + float(self._durations[i]):
            return self[i]
        raise DateNotCovered(self._body, d, start=self.start, end=self.end,
                             previous_end=(float(self._starts[i] + self._durations[i]) if i >= 0 else None),
                             next_start=(self._start_list[i + 1] if i + 1 < len(self) else None))

    def position(self, date: Any) -> Vector3:
        return self.find(date).position(date)

    def position_velocity_acceleration(self, date: Any) -> PVCoordinates:
        return self.find(date).position_velocity_acceleration(date)

    def __repr__(self) -> str:
        return f"SegmentCollection({self._body!r}, n={len(self)}, start={self.start!r}, end={self.end!r})"


__all__ = ["SegmentCollection"]
