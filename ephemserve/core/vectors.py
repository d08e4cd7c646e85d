# ephemserve/core/vectors.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Tuple


@dataclass(frozen=True)
class Vector3:
    """Cartesian triple; components may be floats or Gradient instances."""
    x: Any
    y: Any
    z: Any

    def add(self, other: "Vector3") -> "Vector3":
        return Vector3(self.x + other.x, self.y + other.y, self.z + other.z)

    def subtract(self, other: "Vector3") -> "Vector3":
        return Vector3(self.x - other.x, self.y - other.y, self.z - other.z)

    def scale(self, factor: Any) -> "Vector3":
        return Vector3(self.x * factor, self.y * factor, self.z * factor)

    def negate(self) -> "Vector3":
        return Vector3(-self.x, -self.y, -self.z)

    def as_tuple(self) -> Tuple[Any, Any, Any]:
        return (self.x, self.y, self.z)


@dataclass(frozen=True)
class PVCoordinates:
    position: Vector3
    velocity: Vector3
    acceleration: Vector3

    def negate(self) -> "PVCoordinates":
        return PVCoordinates(self.position.negate(), self.velocity.negate(), self.acceleration.negate())

    @staticmethod
    def combine(a: "PVCoordinates", wa: Any, b: "PVCoordinates", wb: Any) -> "PVCoordinates":
        """wa * a + wb * b, component-wise."""
        return PVCoordinates(
            a.position.scale(wa).add(b.position.scale(wb)),
            a.velocity.scale(wa).add(b.velocity.scale(wb)),
            a.acceleration.scale(wa).add(b.acceleration.scale(wb)),
        )

    @staticmethod
    def zero_like(date: Any) -> "PVCoordinates":
        # multiplying the date keeps the numeric type (and derivative count) of the query
        z = date * 0.0
        v = Vector3(z, z, z)
        return PVCoordinates(v, v, v)


__all__ = ["Vector3", "PVCoordinates"]
