# ephemserve/core/jpl_loader.py
# -----------------------------------------------------------------------------
# Archive decoder for JPL DE / INPOP binary ephemerides
#
#   open_archive(pattern, sources) → EphemerisArchive
#
# • Every source whose name matches the pattern is decoded on its own (its own
#   byte order, its own header), then the data records of all files are merged
#   into one ascending, non-overlapping sequence.
# • Merge rule (independent of processing order): records sorted by
#   (start ↑, span ↓, file name ↑); a record is accepted when it starts at or
#   after the end of the accepted coverage, discarded when it lies inside it,
#   and rejected (MalformedRecord) when it straddles its end. Exact duplicates
#   must carry identical coefficients under the "strict" policy; under "first"
#   the first file in name order wins.
# • Structural problems abort the whole open: no partial archives.
# • Positions are converted to metres; angles (nutations, librations) stay in
#   radians; dates are seconds since J2000 in the archive time scale.
# -----------------------------------------------------------------------------
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union
import logging
import math

import numpy as np

from ..utils.config import OVERLAP_POLICIES
from ..utils.metrics import ARCHIVE_LOAD_SECONDS, ARCHIVE_LOADS
from .errors import EphemerisError, MalformedRecord, MissingSeries
from .jpl_header import HeaderRecord, Series, parse_header
from .segments import SegmentCollection
from .sources import DataSources, Source
from .timescales import SECONDS_PER_DAY, jd_to_seconds

log = logging.getLogger(__name__)

# Epoch comparison slack (days), ~1 ms
_EPOCH_TOL_DAYS = 1.0e-8
# Record span must match the header step to this tolerance (days)
_SPAN_TOL_DAYS = 1.0e-6
# Cross-file header agreement
_AU_TOL_M = 1.0e-3
_EMRAT_TOL = 1.0e-8

# Raw GM constant names, JPL style first then INPOP style; values in AU³/day²
_GM_NAMES: Dict[str, Tuple[str, ...]] = {
    "MERCURY": ("GM1", "GM_Mer"),
    "VENUS": ("GM2", "GM_Ven"),
    "EARTH_MOON": ("GMB", "GM_EMB"),
    "MARS": ("GM4", "GM_Mar"),
    "JUPITER": ("GM5", "GM_Jup"),
    "SATURN": ("GM6", "GM_Sat"),
    "URANUS": ("GM7", "GM_Ura"),
    "NEPTUNE": ("GM8", "GM_Nep"),
    "PLUTO": ("GM9", "GM_Plu"),
    "SUN": ("GMS", "GM_Sun"),
}


@dataclass(frozen=True)
class _DecodedFile:
    source: Source
    header: HeaderRecord
    starts_jd: np.ndarray
    ends_jd: np.ndarray
    records: np.ndarray        # (n, doubles_per_record), native float64


# ─────────────────────────────────────────────────────────────────────────────
# Per-file decoding
# ─────────────────────────────────────────────────────────────────────────────
def _decode_file(source: Source) -> _DecodedFile:
    payload = source.read()
    header = parse_header(payload, source.origin)
    size = header.record_size
    if size % 8:
        raise MalformedRecord(f"record size {size} is not a whole number of doubles", source=source.origin)
    if len(payload) % size:
        raise MalformedRecord(f"file length {len(payload)} is not a multiple of the {size}-byte record size",
                              source=source.origin)

    count = len(payload) // size - 2
    dtype = np.dtype(header.byte_order + "f8")
    records = np.frombuffer(payload, dtype=dtype, offset=2 * size).reshape(count, size // 8).astype(np.float64)
    starts = records[:, 0].copy()
    ends = records[:, 1].copy()

    if count:
        if not (np.all(np.isfinite(starts)) and np.all(np.isfinite(ends))):
            raise MalformedRecord("non-finite record epoch", source=source.origin)
        bad = np.nonzero(np.abs((ends - starts) - header.span_days) > _SPAN_TOL_DAYS)[0]
        if bad.size:
            i = int(bad[0])
            raise MalformedRecord(
                f"record {i} spans {ends[i] - starts[i]!r} days, header step is {header.span_days!r}",
                source=source.origin, record=i)
        outside = np.nonzero((starts < header.start_jd - _EPOCH_TOL_DAYS) | (ends > header.end_jd + _EPOCH_TOL_DAYS))[0]
        if outside.size:
            i = int(outside[0])
            raise MalformedRecord(
                f"record {i} [{starts[i]!r}, {ends[i]!r}] outside file span "
                f"[{header.start_jd!r}, {header.end_jd!r}]", source=source.origin, record=i)

    log.debug("decoded %s: %d data record(s)", source.origin, count)
    return _DecodedFile(source, header, starts, ends, records)


def _check_consistency(reference: HeaderRecord, other: HeaderRecord) -> None:
    if other.de_number != reference.de_number:
        raise MalformedRecord(f"mixed ephemeris numbers {reference.de_number} and {other.de_number}",
                              source=other.source)
    if other.record_size != reference.record_size or other.layout_signature() != reference.layout_signature():
        raise MalformedRecord("coefficient layout differs between files", source=other.source)
    if abs(other.span_days - reference.span_days) > _SPAN_TOL_DAYS:
        raise MalformedRecord(
            f"record span differs between files: {reference.span_days!r} and {other.span_days!r} days",
            source=other.source)
    if abs(other.au_km - reference.au_km) * 1000.0 >= _AU_TOL_M:
        raise MalformedRecord(
            f"inconsistent astronomical unit: {reference.au_km!r} km and {other.au_km!r} km", source=other.source)
    if abs(other.emrat - reference.emrat) >= _EMRAT_TOL:
        raise MalformedRecord(
            f"inconsistent Earth/Moon mass ratio: {reference.emrat!r} and {other.emrat!r}", source=other.source)
    if other.time_scale != reference.time_scale or other.position_unit != reference.position_unit:
        raise MalformedRecord("time scale or length unit differs between files", source=other.source)


# ─────────────────────────────────────────────────────────────────────────────
# Merge
# ─────────────────────────────────────────────────────────────────────────────
def _merge(files: Sequence[_DecodedFile], policy: str) -> Tuple[np.ndarray, np.ndarray, np.ndarray, int]:
    starts = np.concatenate([f.starts_jd for f in files])
    ends = np.concatenate([f.ends_jd for f in files])
    records = np.concatenate([f.records for f in files]) if files else np.empty((0, 0))
    file_index = np.concatenate([np.full(f.starts_jd.shape[0], i) for i, f in enumerate(files)])

    order = np.lexsort((file_index, -(ends - starts), starts))
    accepted: List[int] = []
    discarded = 0
    coverage_end = -math.inf
    for i in order.tolist():
        s, e = starts[i], ends[i]
        if s >= coverage_end - _EPOCH_TOL_DAYS:
            accepted.append(i)
            coverage_end = e
            continue
        if e > coverage_end + _EPOCH_TOL_DAYS:
            raise MalformedRecord(
                f"record [{s!r}, {e!r}] partially overlaps accepted coverage ending at {coverage_end!r}",
                source=files[int(file_index[i])].source.origin)
        last = accepted[-1]
        if (abs(s - starts[last]) <= _EPOCH_TOL_DAYS and abs(e - ends[last]) <= _EPOCH_TOL_DAYS
                and not np.array_equal(records[i, 2:], records[last, 2:])):
            if policy == "strict":
                raise MalformedRecord(
                    f"files disagree on coefficients for record [{s!r}, {e!r}]",
                    source=files[int(file_index[i])].source.origin,
                    kept=files[int(file_index[last])].source.origin)
            log.debug("duplicate record [%r, %r] from %s differs, keeping %s", s, e,
                      files[int(file_index[i])].source.origin, files[int(file_index[last])].source.origin)
        discarded += 1

    idx = np.asarray(accepted, dtype=int)
    return starts[idx], ends[idx], records[idx], discarded


def _collections(header: HeaderRecord, starts_jd: np.ndarray, records: np.ndarray) -> Dict[Series, SegmentCollection]:
    out: Dict[Series, SegmentCollection] = {}
    n = starts_jd.shape[0]
    starts_s = jd_to_seconds(starts_jd)
    for series, l in header.layout.items():
        if not l.available:
            continue
        sub = header.span_days * SECONDS_PER_DAY / l.sub_intervals
        first = l.offset - 1
        block = records[:, first:first + l.doubles].reshape(n, l.sub_intervals, l.components, l.coefficients)
        if series.is_position:
            block = block * header.position_unit
        seg_starts = (starts_s[:, None] + np.arange(l.sub_intervals)[None, :] * sub).reshape(-1)
        out[series] = SegmentCollection(
            series.name,
            seg_starts,
            np.full(seg_starts.shape[0], sub),
            block.reshape(n * l.sub_intervals, l.components, l.coefficients).copy(),
        )
    return out


# ─────────────────────────────────────────────────────────────────────────────
# Archive
# ─────────────────────────────────────────────────────────────────────────────
class EphemerisArchive:
    """Decoded, immutable ephemeris archive (constants + per-series segments)."""

    def __init__(self, pattern: str, headers: Sequence[HeaderRecord], sources: Sequence[str],
                 collections: Mapping[Series, SegmentCollection], records: int, discarded: int):
        reference = headers[0]
        self.pattern = pattern
        self.sources: Tuple[str, ...] = tuple(sources)
        self.labels = reference.labels
        self.de_number = reference.de_number
        self.byte_orders: Tuple[str, ...] = tuple(h.byte_order for h in headers)
        self.time_scale = reference.time_scale
        self.record_span = reference.span_days * SECONDS_PER_DAY
        self.start = jd_to_seconds(min(h.start_jd for h in headers))
        self.end = jd_to_seconds(max(h.end_jd for h in headers))
        self.layout = reference.layout
        self.records = records
        self.discarded_records = discarded

        constants: Dict[str, float] = {}
        for h in reversed(headers):
            constants.update(h.constants)
        self.constants: Mapping[str, float] = MappingProxyType(constants)
        self._au = reference.au_km * 1000.0
        self._emrat = reference.emrat
        self._collections: Mapping[Series, SegmentCollection] = MappingProxyType(dict(collections))
        self._gm: Mapping[str, float] = MappingProxyType(self._normalised_gms())

    # ── constants ──────────────────────────────────────────────────────────
    def constant(self, name: str) -> float:
        """Header constant value, NaN when this archive does not define it."""
        return self.constants.get(name, math.nan)

    def constant_or_none(self, name: str) -> Optional[float]:
        return self.constants.get(name)

    def has_constant(self, name: str) -> bool:
        return name in self.constants

    @property
    def astronomical_unit(self) -> float:
        """Astronomical unit in metres."""
        return self._au

    @property
    def earth_moon_mass_ratio(self) -> float:
        return self._emrat

    def _raw_gm(self, body: str) -> float:
        for name in _GM_NAMES[body]:
            v = self.constants.get(name)
            if v is not None:
                return v
        return math.nan

    def _normalised_gms(self) -> Dict[str, float]:
        # AU³/day² → m³/s²
        factor = self._au ** 3 / (SECONDS_PER_DAY * SECONDS_PER_DAY)
        gms = {body: self._raw_gm(body) * factor for body in _GM_NAMES}
        emb = gms["EARTH_MOON"]
        gms["MOON"] = emb / (1.0 + self._emrat)
        gms["EARTH"] = emb * self._emrat / (1.0 + self._emrat)
        gms["SOLAR_SYSTEM_BARYCENTER"] = sum(gms[b] for b in _GM_NAMES)
        return gms

    def gm(self, body: Union[str, Series]) -> float:
        """Gravitational parameter (m³/s²) of a body; NaN when the archive lacks it."""
        key = body.name if isinstance(body, Series) else str(body).strip().upper()
        if key not in self._gm:
            raise KeyError(f"no gravitational parameter defined for {body!r}")
        return self._gm[key]

    # ── segments ───────────────────────────────────────────────────────────
    def available_series(self) -> Tuple[Series, ...]:
        return tuple(self._collections)

    def segments_for(self, series: Union[str, Series]) -> SegmentCollection:
        s = series if isinstance(series, Series) else Series[str(series).strip().upper()]
        coll = self._collections.get(s)
        if coll is None:
            raise MissingSeries(s.name, self.pattern)
        return coll

    def describe(self) -> Dict[str, Any]:
        return {
            "pattern": self.pattern,
            "sources": list(self.sources),
            "de_number": self.de_number,
            "labels": list(self.labels),
            "byte_orders": ["big" if bo == ">" else "little" for bo in self.byte_orders],
            "time_scale": self.time_scale,
            "start": self.start,
            "end": self.end,
            "record_span_s": self.record_span,
            "records": self.records,
            "discarded_records": self.discarded_records,
            "constants": len(self.constants),
            "series": {s.name: {"segments": len(c), "gaps": len(c.gaps())} for s, c in self._collections.items()},
        }

    def __repr__(self) -> str:
        return f"EphemerisArchive({self.pattern!r}, DE{self.de_number}, files={len(self.sources)}, records={self.records})"


def open_archive(pattern: str, sources: DataSources, *, overlap_policy: str = "strict",
                 window: Optional[Tuple[float, float]] = None) -> EphemerisArchive:
    """
    Decode every source matching `pattern` into one merged archive.

    window: optional (start, end) in seconds since J2000; only records that
    intersect it are kept (partial load around a date of interest).
    """
    if overlap_policy not in OVERLAP_POLICIES:
        raise ValueError(f"overlap_policy must be one of {OVERLAP_POLICIES}, got {overlap_policy!r}")
    try:
        with ARCHIVE_LOAD_SECONDS.time():
            archive = _open(pattern, sources, overlap_policy, window)
    except EphemerisError as e:
        ARCHIVE_LOADS.labels(outcome=type(e).__name__).inc()
        raise
    ARCHIVE_LOADS.labels(outcome="ok").inc()
    log.info("loaded ephemeris %r: DE%d, %d file(s), %d record(s), %d discarded",
             pattern, archive.de_number, len(archive.sources), archive.records, archive.discarded_records)
    return archive


def _open(pattern: str, sources: DataSources, policy: str,
          window: Optional[Tuple[float, float]]) -> EphemerisArchive:
    selected = sources.select(pattern)
    files = [_decode_file(s) for s in selected]
    reference = files[0].header
    for f in files[1:]:
        _check_consistency(reference, f.header)

    if window is not None:
        w0, w1 = window
        trimmed = []
        for f in files:
            keep = (jd_to_seconds(f.ends_jd) > w0) & (jd_to_seconds(f.starts_jd) < w1)
            trimmed.append(_DecodedFile(f.source, f.header, f.starts_jd[keep], f.ends_jd[keep], f.records[keep]))
        files = trimmed

    starts, _ends, records, discarded = _merge(files, policy)
    collections = _collections(reference, starts, records)
    return EphemerisArchive(pattern, [f.header for f in files], [f.source.origin for f in files],
                            collections, int(starts.shape[0]), discarded)


__all__ = ["EphemerisArchive", "open_archive"]
