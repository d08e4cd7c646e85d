# ephemserve/core/dual.py
# -----------------------------------------------------------------------------
# First-order dual numbers ("gradients") for derivative propagation.
#
# The Chebyshev evaluator only ever uses + - * / and float constants, so any
# type implementing those operators can flow through it. Gradient is the one
# shipped here: a value plus the vector of its partial derivatives with respect
# to n free parameters. Plain floats and gradients mix freely on either side of
# an operator.
# -----------------------------------------------------------------------------
from __future__ import annotations

from typing import Any, Iterable, Union

import numpy as np

Number = Union[float, int]


class Gradient:
    __slots__ = ("value", "derivatives")

    # numpy scalars must hand mixed operations over to our reflected operators
    __array_ufunc__ = None

    def __init__(self, value: Number, derivatives: Iterable[float]):
        self.value = float(value)
        self.derivatives = np.asarray(derivatives, dtype=float)
        self.derivatives.setflags(write=False)

    # ── factories ──────────────────────────────────────────────────────────
    @classmethod
    def constant(cls, value: Number, free_parameters: int) -> "Gradient":
        return cls(value, np.zeros(free_parameters))

    @classmethod
    def variable(cls, value: Number, index: int, free_parameters: int) -> "Gradient":
        d = np.zeros(free_parameters)
        d[index] = 1.0
        return cls(value, d)

    @property
    def free_parameters(self) -> int:
        return int(self.derivatives.shape[0])

    def _lift(self, other: Any) -> "Gradient":
        if isinstance(other, Gradient):
            if other.free_parameters != self.free_parameters:
                raise ValueError(
                    f"gradient dimension mismatch: {self.free_parameters} vs {other.free_parameters}"
                )
            return other
        return Gradient(other, np.zeros(self.free_parameters))

    # ── arithmetic ─────────────────────────────────────────────────────────
    def __add__(self, other: Any) -> "Gradient":
        if isinstance(other, Gradient):
            o = self._lift(other)
            return Gradient(self.value + o.value, self.derivatives + o.derivatives)
        return Gradient(self.value + other, self.derivatives)

    def __radd__(self, other: Any) -> "Gradient":
        return Gradient(other + self.value, self.derivatives)

    def __sub__(self, other: Any) -> "Gradient":
        if isinstance(other, Gradient):
            o = self._lift(other)
            return Gradient(self.value - o.value, self.derivatives - o.derivatives)
        return Gradient(self.value - other, self.derivatives)

    def __rsub__(self, other: Any) -> "Gradient":
        return Gradient(other - self.value, -self.derivatives)

    def __mul__(self, other: Any) -> "Gradient":
        if isinstance(other, Gradient):
            o = self._lift(other)
            return Gradient(self.value * o.value,
                            self.derivatives * o.value + o.derivatives * self.value)
        return Gradient(self.value * other, self.derivatives * other)

    def __rmul__(self, other: Any) -> "Gradient":
        return Gradient(other * self.value, other * self.derivatives)

    def __truediv__(self, other: Any) -> "Gradient":
        if isinstance(other, Gradient):
            o = self._lift(other)
            q = self.value / o.value
            return Gradient(q, (self.derivatives - o.derivatives * q) / o.value)
        return Gradient(self.value / other, self.derivatives / other)

    def __rtruediv__(self, other: Any) -> "Gradient":
        q = other / self.value
        return Gradient(q, -self.derivatives * (q / self.value))

    def __neg__(self) -> "Gradient":
        return Gradient(-self.value, -self.derivatives)

    def __pos__(self) -> "Gradient":
        return self

    # ── misc ───────────────────────────────────────────────────────────────
    def partial(self, index: int) -> float:
        return float(self.derivatives[index])

    def __repr__(self) -> str:
        return f"Gradient({self.value!r}, {self.derivatives.tolist()!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Gradient):
            return NotImplemented
        return self.value == other.value and np.array_equal(self.derivatives, other.derivatives)

    __hash__ = None  # type: ignore[assignment]


def real_value(x: Any) -> float:
    """Plain float behind a number, whatever its representation."""
    if isinstance(x, Gradient):
        return x.value
    return float(x)


__all__ = ["Gradient", "real_value"]
