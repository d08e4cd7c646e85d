# ephemserve/core/segment.py
# -----------------------------------------------------------------------------
# Piecewise Chebyshev evaluator.
#
# One ChebyshevSegment covers [start, start + duration) for one series of an
# archive (a body position, nutation angles, libration angles). Dates are
# seconds since J2000 in the archive time scale. The evaluator is written only
# in terms of + - * / and float constants, so it runs unchanged on floats and
# on Gradient dates; there is no separate "differentiable" code path.
#
# Normalised time:  t = 2 (date - start) / duration - 1 ∈ [-1, 1)
# Clenshaw:         b_k   = c_k + 2t b_{k+1} - b_{k+2}
#                   b'_k  = 2 b_{k+1}  + 2t b'_{k+1}  - b'_{k+2}
#                   b''_k = 4 b'_{k+1} + 2t b''_{k+1} - b''_{k+2}
#                   f = c_0 + t b_1 - b_2, f' = b_1 + t b'_1 - b'_2,
#                   f'' = 2 b'_1 + t b''_1 - b''_2
# d/d(date) = (2 / duration) d/dt
# -----------------------------------------------------------------------------
from __future__ import annotations

import math
from typing import Any, Sequence, Tuple

from .dual import real_value
from .errors import DateNotCovered
from .vectors import PVCoordinates, Vector3


def _clenshaw(coefficients: Tuple[float, ...], t: Any, two_t: Any) -> Any:
    b1 = 0.0
    b2 = 0.0
    for k in range(len(coefficients) - 1, 0, -1):
        b1, b2 = coefficients[k] + two_t * b1 - b2, b1
    return coefficients[0] + t * b1 - b2


def _clenshaw_derivatives(coefficients: Tuple[float, ...], t: Any, two_t: Any) -> Tuple[Any, Any, Any]:
    b1 = b2 = 0.0
    d1 = d2 = 0.0
    s1 = s2 = 0.0
    for k in range(len(coefficients) - 1, 0, -1):
        bk = coefficients[k] + two_t * b1 - b2
        dk = (b1 + b1) + two_t * d1 - d2
        sk = 4.0 * d1 + two_t * s1 - s2
        b1, b2 = bk, b1
        d1, d2 = dk, d1
        s1, s2 = sk, s1
    value = coefficients[0] + t * b1 - b2
    first = b1 + t * d1 - d2
    second = (d1 + d1) + t * s1 - s2
    return value, first, second


class ChebyshevSegment:
    """Immutable Chebyshev piece for one series over one sub-interval."""

    __slots__ = ("_body", "_start", "_duration", "_coefficients")

    def __init__(self, body: str, start: float, duration: float, coefficients: Sequence[Sequence[float]]):
        duration = float(duration)
        if not math.isfinite(duration) or duration <= 0.0:
            raise ValueError(f"segment duration must be > 0, got {duration!r}")
        axes = tuple(tuple(float(c) for c in axis) for axis in coefficients)
        if not axes:
            raise ValueError("segment needs at least one axis")
        degree = len(axes[0])
        if degree == 0:
            raise ValueError("segment coefficient arrays must not be empty")
        if any(len(a) != degree for a in axes):
            raise ValueError("segment axes have different coefficient counts")
        object.__setattr__(self, "_body", body)
        object.__setattr__(self, "_start", float(start))
        object.__setattr__(self, "_duration", duration)
        object.__setattr__(self, "_coefficients", axes)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("ChebyshevSegment is immutable")

    # ── attributes ─────────────────────────────────────────────────────────
    @property
    def body(self) -> str:
        return self._body

    @property
    def start(self) -> float:
        return self._start

    @property
    def duration(self) -> float:
        return self._duration

    @property
    def end(self) -> float:
        return self._start + self._duration

    @property
    def coefficients(self) -> Tuple[Tuple[float, ...], ...]:
        return self._coefficients

    @property
    def axes(self) -> int:
        return len(self._coefficients)

    @property
    def degree(self) -> int:
        return len(self._coefficients[0])

    def contains(self, date: Any) -> bool:
        d = real_value(date)
        return self._start <= d < self._start + self._duration

    # ── evaluation ─────────────────────────────────────────────────────────
    def _normalised(self, date: Any) -> Tuple[Any, Any]:
        if not self.contains(date):
            raise DateNotCovered(self._body, real_value(date), start=self._start, end=self.end)
        t = (date - self._start) * (2.0 / self._duration) - 1.0
        return t, t + t

    def evaluate(self, date: Any) -> Tuple[Any, ...]:
        t, two_t = self._normalised(date)
        return tuple(_clenshaw(axis, t, two_t) for axis in self._coefficients)

    def evaluate_with_derivatives(self, date: Any) -> Tuple[Tuple[Any, ...], Tuple[Any, ...], Tuple[Any, ...]]:
        """Values, first and second derivatives with respect to the date (seconds)."""
        t, two_t = self._normalised(date)
        scale = 2.0 / self._duration
        scale2 = scale * scale
        values, rates, accelerations = [], [], []
        for axis in self._coefficients:
            f, df, d2f = _clenshaw_derivatives(axis, t, two_t)
            values.append(f)
            rates.append(df * scale)
            accelerations.append(d2f * scale2)
        return tuple(values), tuple(rates), tuple(accelerations)

    def _require_three_axes(self) -> None:
        if len(self._coefficients) != 3:
            raise ValueError(f"{self._body} segment has {len(self._coefficients)} axes, expected 3")

    def position(self, date: Any) -> Vector3:
        self._require_three_axes()
        return Vector3(*self.evaluate(date))

    def position_velocity_acceleration(self, date: Any) -> PVCoordinates:
        self._require_three_axes()
        p, v, a = self.evaluate_with_derivatives(date)
        return PVCoordinates(Vector3(*p), Vector3(*v), Vector3(*a))

    def __repr__(self) -> str:
        return (f"ChebyshevSegment({self._body!r}, start={self._start!r}, duration={self._duration!r}, "
                f"axes={self.axes}, degree={self.degree})")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ChebyshevSegment):
            return NotImplemented
        return (self._body == other._body and self._start == other._start
                and self._duration == other._duration and self._coefficients == other._coefficients)

    def __hash__(self) -> int:
        return hash((self._body, self._start, self._duration))


__all__ = ["ChebyshevSegment"]
