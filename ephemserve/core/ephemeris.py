# ephemserve/core/ephemeris.py
# -----------------------------------------------------------------------------
# Query façade used by orbit theories and frame code
#
#   position(body, date, frame=None, time_scale=None)          → Vector3
#   position_velocity_acceleration(body, date, ...)            → PVCoordinates
#   gm(body) / constant(pattern, name) / sources_for(body)
#
# `body` is a name (resolved through the body cache) or an already resolved
# CelestialBodyHandle. `frame` is any object with
#   transform(center, date, pv) -> PVCoordinates
# and is applied to the state expressed relative to the handle's centre in the
# archive's defining frame. `time_scale` names the scale of `date` when it is
# not the archive's own (TDB/TCB).
# -----------------------------------------------------------------------------
from __future__ import annotations

from typing import Any, Dict, Optional, Protocol, Tuple, Union
import logging

from .bodies import CelestialBodyHandle
from .body_cache import BodyCache, get_default_cache
from .timescales import convert_seconds
from .vectors import PVCoordinates, Vector3

log = logging.getLogger(__name__)


class Frame(Protocol):
    def transform(self, center: Optional[str], date: Any, pv: PVCoordinates) -> PVCoordinates: ...


BodyRef = Union[str, CelestialBodyHandle]


class EphemerisService:
    def __init__(self, cache: Optional[BodyCache] = None):
        self._cache = cache

    @property
    def cache(self) -> BodyCache:
        return self._cache if self._cache is not None else get_default_cache()

    def handle(self, body: BodyRef) -> CelestialBodyHandle:
        if isinstance(body, CelestialBodyHandle):
            return body
        return self.cache.get(body)

    @staticmethod
    def _archive_date(handle: CelestialBodyHandle, date: Any, time_scale: Optional[str]) -> Any:
        if time_scale is None:
            return date
        return convert_seconds(date, time_scale, handle.time_scale)

    def position(self, body: BodyRef, date: Any, frame: Optional[Frame] = None,
                 time_scale: Optional[str] = None) -> Vector3:
        h = self.handle(body)
        d = self._archive_date(h, date, time_scale)
        if frame is None:
            return h.position(d)
        return frame.transform(h.center, d, h.position_velocity_acceleration(d)).position

    def position_velocity_acceleration(self, body: BodyRef, date: Any, frame: Optional[Frame] = None,
                                       time_scale: Optional[str] = None) -> PVCoordinates:
        h = self.handle(body)
        d = self._archive_date(h, date, time_scale)
        pv = h.position_velocity_acceleration(d)
        return pv if frame is None else frame.transform(h.center, d, pv)

    def gm(self, body: BodyRef) -> float:
        return self.handle(body).gm

    def constant(self, pattern: str, name: str) -> float:
        """Named header constant of the archive behind `pattern`; NaN when absent."""
        return self.cache.archive(pattern).constant(name)

    def sources_for(self, body: BodyRef) -> Tuple[str, ...]:
        return self.handle(body).sources

    def diagnostics(self) -> Dict[str, Any]:
        return self.cache.describe()


__all__ = ["EphemerisService", "Frame"]
