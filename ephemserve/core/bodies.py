# ephemserve/core/bodies.py
# -----------------------------------------------------------------------------
# Celestial body handles
#
# A handle binds a body name to one decoded archive snapshot. Centres follow
# what the archive actually stores:
#   • Sun, planets, Earth-Moon barycentre  → relative to the solar-system barycentre
#   • Moon                                  → relative to the Earth (geocentric series)
#   • Earth                                 → EMB − Moon / (1 + EMRAT), relative to the barycentre
#   • Solar-system barycentre               → zero state
# Handles are immutable; a cache clear builds new ones and leaves old ones
# valid on the archive they were built from.
# -----------------------------------------------------------------------------
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union
import math

from .errors import MissingSeries
from .jpl_header import Series
from .jpl_loader import EphemerisArchive
from .vectors import PVCoordinates, Vector3

SOLAR_SYSTEM_BARYCENTER = "SOLAR_SYSTEM_BARYCENTER"
EARTH = "EARTH"

# name → (kind, series, center)
_WELL_KNOWN: Dict[str, Tuple[str, Optional[Series], Optional[str]]] = {
    SOLAR_SYSTEM_BARYCENTER: ("barycenter", None, None),
    "SUN": ("series", Series.SUN, SOLAR_SYSTEM_BARYCENTER),
    "MERCURY": ("series", Series.MERCURY, SOLAR_SYSTEM_BARYCENTER),
    "VENUS": ("series", Series.VENUS, SOLAR_SYSTEM_BARYCENTER),
    "EARTH_MOON": ("series", Series.EARTH_MOON, SOLAR_SYSTEM_BARYCENTER),
    EARTH: ("earth", None, SOLAR_SYSTEM_BARYCENTER),
    "MOON": ("series", Series.MOON, EARTH),
    "MARS": ("series", Series.MARS, SOLAR_SYSTEM_BARYCENTER),
    "JUPITER": ("series", Series.JUPITER, SOLAR_SYSTEM_BARYCENTER),
    "SATURN": ("series", Series.SATURN, SOLAR_SYSTEM_BARYCENTER),
    "URANUS": ("series", Series.URANUS, SOLAR_SYSTEM_BARYCENTER),
    "NEPTUNE": ("series", Series.NEPTUNE, SOLAR_SYSTEM_BARYCENTER),
    "PLUTO": ("series", Series.PLUTO, SOLAR_SYSTEM_BARYCENTER),
}

_ALIASES = {
    "SSB": SOLAR_SYSTEM_BARYCENTER,
    "EMB": "EARTH_MOON",
    "EARTH_MOON_BARYCENTER": "EARTH_MOON",
}

WELL_KNOWN_BODIES: Tuple[str, ...] = tuple(_WELL_KNOWN)


def canonical_name(name: str) -> str:
    """Upper-case, underscore-separated body name; aliases resolved."""
    nm = "_".join(str(name or "").strip().upper().replace("-", " ").split())
    if not nm:
        raise ValueError("body name must be non-empty")
    return _ALIASES.get(nm, nm)


def is_well_known(name: str) -> bool:
    return canonical_name(name) in _WELL_KNOWN


@dataclass(frozen=True)
class CelestialBodyHandle:
    name: str
    archive: EphemerisArchive
    gm: float
    center: Optional[str]
    kind: str                              # "series" | "earth" | "barycenter"
    series: Optional[Series] = None
    sources: Tuple[str, ...] = ()

    @property
    def frame_name(self) -> str:
        return f"{self.name} centered ICRF"

    @property
    def time_scale(self) -> str:
        return self.archive.time_scale

    def _emb_weight(self) -> float:
        return -1.0 / (1.0 + self.archive.earth_moon_mass_ratio)

    def position(self, date: Any) -> Vector3:
        if self.kind == "barycenter":
            return PVCoordinates.zero_like(date).position
        if self.kind == "earth":
            emb = self.archive.segments_for(Series.EARTH_MOON).position(date)
            moon = self.archive.segments_for(Series.MOON).position(date)
            return emb.add(moon.scale(self._emb_weight()))
        return self.archive.segments_for(self.series).position(date)

    def position_velocity_acceleration(self, date: Any) -> PVCoordinates:
        if self.kind == "barycenter":
            return PVCoordinates.zero_like(date)
        if self.kind == "earth":
            emb = self.archive.segments_for(Series.EARTH_MOON).position_velocity_acceleration(date)
            moon = self.archive.segments_for(Series.MOON).position_velocity_acceleration(date)
            return PVCoordinates.combine(emb, 1.0, moon, self._emb_weight())
        return self.archive.segments_for(self.series).position_velocity_acceleration(date)

    def __repr__(self) -> str:
        return (f"CelestialBodyHandle({self.name!r}, center={self.center!r}, "
                f"archive={self.archive.pattern!r}, DE{self.archive.de_number})")


def _required_series(kind: str, series: Optional[Series]) -> Tuple[Series, ...]:
    if kind == "earth":
        return (Series.EARTH_MOON, Series.MOON)
    return (series,) if series is not None else ()


def make_handle(name: str, archive: EphemerisArchive,
                series: Optional[Union[str, Series]] = None) -> CelestialBodyHandle:
    """
    Build the handle for `name` on `archive`.

    `series` binds a custom name to an explicit coefficient series; well-known
    names use their built-in mapping when it is omitted.
    """
    canon = canonical_name(name)
    if series is not None:
        s = series if isinstance(series, Series) else Series[canonical_name(series)]
        center = EARTH if s is Series.MOON else (SOLAR_SYSTEM_BARYCENTER if s.is_position else None)
        kind, center_name = "series", center
    elif canon in _WELL_KNOWN:
        kind, s, center_name = _WELL_KNOWN[canon]
    else:
        raise ValueError(f"unknown body '{name}' and no coefficient series given")

    available = set(archive.available_series())
    for req in _required_series(kind, s):
        if req not in available:
            raise MissingSeries(req.name, archive.pattern, body=canon)

    try:
        gm = archive.gm(canon if canon in _WELL_KNOWN else s.name)
    except KeyError:
        gm = math.nan

    return CelestialBodyHandle(
        name=canon,
        archive=archive,
        gm=gm,
        center=center_name,
        kind=kind,
        series=s,
        sources=archive.sources,
    )


__all__ = [
    "CelestialBodyHandle",
    "SOLAR_SYSTEM_BARYCENTER",
    "EARTH",
    "WELL_KNOWN_BODIES",
    "canonical_name",
    "is_well_known",
    "make_handle",
]
