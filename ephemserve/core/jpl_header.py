# ephemserve/core/jpl_header.py
# -----------------------------------------------------------------------------
# JPL DE / INPOP binary header records
#
# Record 1 (fixed offsets, bytes):
#      0  3 × 84 chars  labels
#    252  400 × 6 chars constant names
#   2652  f8  start JD          2660  f8  end JD          2668  f8  record span (days)
#   2676  i4  constant count    2680  f8  AU (km)         2688  f8  Earth/Moon mass ratio
#   2696  12 × 3 i4 pointers (1-based offset, coefficients, sub-intervals) for
#         Mercury … Sun (3 components) and nutations (2 components)
#   2840  i4  DE number (100 for INPOP)
#   2844  3 i4 libration pointers (3 components)
#   2856  i4  record size in doubles (INPOP only)
# Record 2: constant values, f8, same order as the names.
#
# No byte-order tag exists: the sentinel triple (start, end, span) is decoded
# with both orderings and the physically plausible one is kept.
# -----------------------------------------------------------------------------
from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple
import logging
import math

import numpy as np

from .errors import MalformedRecord

log = logging.getLogger(__name__)

LABEL_SIZE = 84
LABELS_OFFSET = 0
CONSTANT_NAMES_OFFSET = 252
CONSTANT_NAME_SIZE = 6
CONSTANTS_MAX_NUMBER = 400
START_EPOCH_OFFSET = 2652
END_EPOCH_OFFSET = 2660
SPAN_OFFSET = 2668
CONSTANT_COUNT_OFFSET = 2676
AU_OFFSET = 2680
EMRAT_OFFSET = 2688
CHEBYSHEV_POINTERS_OFFSET = 2696
DE_NUMBER_OFFSET = 2840
LIBRATION_POINTERS_OFFSET = 2844
RECORD_SIZE_OFFSET = 2856
HEADER_MIN_BYTES = RECORD_SIZE_OFFSET + 4

INPOP_DE_NUMBER = 100

# Plausibility window for the byte-order sentinels
_JD_MIN = -5.0e6
_JD_MAX = 1.0e7
_SPAN_MIN_DAYS = 1.0e-3
_SPAN_MAX_DAYS = 100.0

BIG_ENDIAN = ">"
LITTLE_ENDIAN = "<"


class Series(IntEnum):
    """Coefficient series stored in a JPL record, valued by pointer index."""
    MERCURY = 0
    VENUS = 1
    EARTH_MOON = 2
    MARS = 3
    JUPITER = 4
    SATURN = 5
    URANUS = 6
    NEPTUNE = 7
    PLUTO = 8
    MOON = 9
    SUN = 10
    NUTATIONS = 11
    LIBRATIONS = 12

    @property
    def components(self) -> int:
        return 2 if self is Series.NUTATIONS else 3

    @property
    def is_position(self) -> bool:
        return self not in (Series.NUTATIONS, Series.LIBRATIONS)


@dataclass(frozen=True)
class SeriesLayout:
    series: Series
    offset: int            # 1-based index of the first double in the record
    coefficients: int      # per component and sub-interval
    sub_intervals: int

    @property
    def components(self) -> int:
        return self.series.components

    @property
    def available(self) -> bool:
        return self.coefficients > 0 and self.sub_intervals > 0

    @property
    def doubles(self) -> int:
        return self.coefficients * self.sub_intervals * self.components


@dataclass(frozen=True)
class HeaderRecord:
    source: str
    byte_order: str
    labels: Tuple[str, str, str]
    de_number: int
    start_jd: float
    end_jd: float
    span_days: float
    au_km: float
    emrat: float
    record_size: int                       # bytes
    layout: Mapping[Series, SeriesLayout]
    constants: Mapping[str, float]
    time_scale: str                        # "TDB" | "TCB"
    position_unit: float                   # metres per file length unit

    @property
    def doubles_per_record(self) -> int:
        return self.record_size // 8

    def layout_signature(self) -> Tuple[Tuple[int, int, int], ...]:
        return tuple((l.offset, l.coefficients, l.sub_intervals) for l in
                     (self.layout[s] for s in Series))


# ─────────────────────────────────────────────────────────────────────────────
# Raw field extraction
# ─────────────────────────────────────────────────────────────────────────────
def extract_double(record: bytes, offset: int, byte_order: str) -> float:
    return float(np.frombuffer(record, dtype=np.dtype(byte_order + "f8"), count=1, offset=offset)[0])


def extract_int(record: bytes, offset: int, byte_order: str) -> int:
    return int(np.frombuffer(record, dtype=np.dtype(byte_order + "i4"), count=1, offset=offset)[0])


def extract_string(record: bytes, offset: int, length: int) -> str:
    return record[offset:offset + length].decode("ascii", errors="replace").strip(" \x00")


def _plausible_ordering(record: bytes, byte_order: str) -> bool:
    start = extract_double(record, START_EPOCH_OFFSET, byte_order)
    end = extract_double(record, END_EPOCH_OFFSET, byte_order)
    span = extract_double(record, SPAN_OFFSET, byte_order)
    if not (math.isfinite(start) and math.isfinite(end) and math.isfinite(span)):
        return False
    return _JD_MIN < start < end < _JD_MAX and _SPAN_MIN_DAYS <= span < _SPAN_MAX_DAYS


def detect_byte_order(record: bytes, source: str = "") -> str:
    """Byte order yielding plausible header epochs; big-endian wins a tie."""
    if len(record) < HEADER_MIN_BYTES:
        raise MalformedRecord(f"header record truncated ({len(record)} bytes)", source=source)
    candidates = [bo for bo in (BIG_ENDIAN, LITTLE_ENDIAN) if _plausible_ordering(record, bo)]
    if not candidates:
        raise MalformedRecord("header epochs are implausible in both byte orders", source=source)
    if len(candidates) > 1:
        log.debug("both byte orders plausible for %s, using big-endian", source)
    return candidates[0]


# ─────────────────────────────────────────────────────────────────────────────
# Layout / record size
# ─────────────────────────────────────────────────────────────────────────────
def _read_layout(record: bytes, byte_order: str) -> Dict[Series, SeriesLayout]:
    layout: Dict[Series, SeriesLayout] = {}
    for i in range(12):
        base = CHEBYSHEV_POINTERS_OFFSET + 12 * i
        layout[Series(i)] = SeriesLayout(Series(i),
                                         extract_int(record, base, byte_order),
                                         extract_int(record, base + 4, byte_order),
                                         extract_int(record, base + 8, byte_order))
    layout[Series.LIBRATIONS] = SeriesLayout(Series.LIBRATIONS,
                                             extract_int(record, LIBRATION_POINTERS_OFFSET, byte_order),
                                             extract_int(record, LIBRATION_POINTERS_OFFSET + 4, byte_order),
                                             extract_int(record, LIBRATION_POINTERS_OFFSET + 8, byte_order))
    return layout


def _record_size(record: bytes, byte_order: str, de_number: int,
                 layout: Mapping[Series, SeriesLayout], source: str) -> int:
    if de_number == INPOP_DE_NUMBER:
        size = extract_int(record, RECORD_SIZE_OFFSET, byte_order) * 8
    else:
        doubles = 2
        for l in layout.values():
            if l.coefficients < 0 or l.sub_intervals < 0:
                raise MalformedRecord(f"negative coefficient count for {l.series.name}", source=source)
            doubles += l.doubles
        size = doubles * 8
    if size < HEADER_MIN_BYTES:
        raise MalformedRecord(f"record size {size} bytes is smaller than the header", source=source)
    return size


def _check_layout(layout: Mapping[Series, SeriesLayout], doubles_per_record: int, source: str) -> None:
    for l in layout.values():
        if l.coefficients < 0 or l.sub_intervals < 0 or l.offset < 0:
            raise MalformedRecord(f"negative pointer for {l.series.name}", source=source)
        if not l.available:
            continue
        if l.offset < 3 or l.offset - 1 + l.doubles > doubles_per_record:
            raise MalformedRecord(
                f"{l.series.name} coefficients [{l.offset}, {l.offset - 1 + l.doubles}] "
                f"do not fit in a {doubles_per_record}-double record", source=source)


# ─────────────────────────────────────────────────────────────────────────────
# Public entry point
# ─────────────────────────────────────────────────────────────────────────────
def parse_header(payload: bytes, source: str = "") -> HeaderRecord:
    """Parse the two header records at the start of an archive file."""
    byte_order = detect_byte_order(payload, source)

    de_number = extract_int(payload, DE_NUMBER_OFFSET, byte_order)
    layout = _read_layout(payload, byte_order)
    record_size = _record_size(payload, byte_order, de_number, layout, source)
    if len(payload) < 2 * record_size:
        raise MalformedRecord(f"file holds {len(payload)} bytes, less than two {record_size}-byte header records",
                              source=source)
    _check_layout(layout, record_size // 8, source)

    first = payload[:record_size]
    second = payload[record_size:2 * record_size]

    labels = tuple(extract_string(first, LABELS_OFFSET + i * LABEL_SIZE, LABEL_SIZE) for i in range(3))

    declared = extract_int(first, CONSTANT_COUNT_OFFSET, byte_order)
    if declared < 0 or declared > record_size // 8:
        raise MalformedRecord(f"implausible constant count {declared}", source=source)
    count = min(declared, CONSTANTS_MAX_NUMBER) if declared > 0 else CONSTANTS_MAX_NUMBER
    constants: Dict[str, float] = {}
    names: List[str] = []
    for i in range(count):
        name = extract_string(first, CONSTANT_NAMES_OFFSET + i * CONSTANT_NAME_SIZE, CONSTANT_NAME_SIZE)
        if not name:
            break
        names.append(name)
        constants[name] = extract_double(second, 8 * i, byte_order)

    start_jd = extract_double(first, START_EPOCH_OFFSET, byte_order)
    end_jd = extract_double(first, END_EPOCH_OFFSET, byte_order)
    span_days = extract_double(first, SPAN_OFFSET, byte_order)

    au_km = extract_double(first, AU_OFFSET, byte_order)
    if not 1.4e8 < au_km < 1.6e8:
        raise MalformedRecord(f"astronomical unit {au_km!r} km out of range", source=source)
    emrat = extract_double(first, EMRAT_OFFSET, byte_order)
    if not 80.0 < emrat < 82.0:
        raise MalformedRecord(f"Earth/Moon mass ratio {emrat!r} out of range", source=source)

    timesc = constants.get("TIMESC")
    time_scale = "TCB" if timesc is not None and math.isfinite(timesc) and int(timesc) == 1 else "TDB"

    # INPOP may store polynomials in AU; FORMAT's units digit is 1 for km
    fmt = constants.get("FORMAT")
    in_au = fmt is not None and math.isfinite(fmt) and int(math.remainder(fmt, 10)) != 1
    position_unit = au_km * 1000.0 if in_au else 1000.0

    header = HeaderRecord(
        source=source,
        byte_order=byte_order,
        labels=labels,  # type: ignore[arg-type]
        de_number=de_number,
        start_jd=start_jd,
        end_jd=end_jd,
        span_days=span_days,
        au_km=au_km,
        emrat=emrat,
        record_size=record_size,
        layout=MappingProxyType(layout),
        constants=MappingProxyType(constants),
        time_scale=time_scale,
        position_unit=position_unit,
    )
    log.debug("header %s: DE%d %s-endian, JD %.1f..%.1f, %d-byte records, %d constants",
              source, de_number, "big" if byte_order == BIG_ENDIAN else "little",
              start_jd, end_jd, record_size, len(names))
    return header


__all__ = [
    "Series",
    "SeriesLayout",
    "HeaderRecord",
    "BIG_ENDIAN",
    "LITTLE_ENDIAN",
    "INPOP_DE_NUMBER",
    "detect_byte_order",
    "parse_header",
    "extract_double",
    "extract_int",
    "extract_string",
]
