# ephemserve/core/timescales.py
# -----------------------------------------------------------------------------
# Epoch helpers for the ephemeris core (ERFA aligned)
#
# Dates used throughout the core are seconds since J2000 (JD 2451545.0) in the
# time scale of the archive being queried: TDB for JPL DE files, TDB or TCB for
# INPOP files (TIMESC header constant).
#
#   • Calendar → seconds via erfa.dtf2d (two-part JD preserved)
#   • TDB ↔ TCB via erfa.tdbtcb / erfa.tcbtdb
#   • Gradient dates are shifted by the offset computed at their real value
#     and their derivatives scaled by the TDB/TCB clock rate
# -----------------------------------------------------------------------------
from __future__ import annotations

import math
import re
from typing import Any, Tuple

import erfa  # pyERFA

from .dual import real_value

J2000_JD = 2451545.0
SECONDS_PER_DAY = 86400.0
# IAU 2006 Resolution B3: 1 - d(TDB)/d(TCB)
L_B = 1.550519768e-8

TDB = "TDB"
TCB = "TCB"
_SCALES = (TDB, TCB)

_DATE_RE = re.compile(r"^\s*(\d{4})-(\d{2})-(\d{2})\s*$")
_TIME_RE = re.compile(r"^\s*(?P<h>\d{2}):(?P<m>\d{2}):(?P<s>\d{2}(?:\.\d+)?)\s*$")


def jd_to_seconds(jd: float, jd2: float = 0.0) -> float:
    """Seconds since J2000 from a (possibly two-part) Julian date."""
    return ((jd - J2000_JD) + jd2) * SECONDS_PER_DAY


def seconds_to_jd(seconds: float) -> Tuple[float, float]:
    """Two-part JD (whole day at J2000 + fraction) for seconds since J2000."""
    days = seconds / SECONDS_PER_DAY
    whole = math.floor(days)
    return J2000_JD + whole, days - whole


def seconds_from_calendar(date_str: str, time_str: str = "00:00:00", scale: str = TDB) -> float:
    """Seconds since J2000 for a YYYY-MM-DD / HH:MM:SS[.f] date in a uniform scale."""
    scale = _check_scale(scale)
    m = _DATE_RE.match(date_str or "")
    if not m:
        raise ValueError(f"Invalid date_str '{date_str}': expected YYYY-MM-DD")
    t = _TIME_RE.match(time_str or "")
    if not t:
        raise ValueError(f"Invalid time_str '{time_str}': expected HH:MM:SS[.fff]")
    iy, im, iday = int(m.group(1)), int(m.group(2)), int(m.group(3))
    d1, d2 = erfa.dtf2d(scale, iy, im, iday, int(t.group("h")), int(t.group("m")), float(t.group("s")))
    return jd_to_seconds(float(d1), float(d2))


def _check_scale(scale: str) -> str:
    s = (scale or "").strip().upper()
    if s not in _SCALES:
        raise ValueError(f"unsupported time scale '{scale}' (expected one of {', '.join(_SCALES)})")
    return s


def _convert_plain(seconds: float, source: str) -> float:
    d1, d2 = seconds_to_jd(seconds)
    if source == TDB:
        o1, o2 = erfa.tdbtcb(d1, d2)
    else:
        o1, o2 = erfa.tcbtdb(d1, d2)
    return jd_to_seconds(float(o1), float(o2))


def rate(source: str, target: str) -> float:
    """d(target)/d(source) between two uniform scales."""
    source = _check_scale(source)
    target = _check_scale(target)
    if source == target:
        return 1.0
    return 1.0 / (1.0 - L_B) if source == TDB else 1.0 - L_B


def convert_seconds(seconds: Any, source: str, target: str) -> Any:
    """Re-express a date (float or Gradient) given in `source` scale in `target` scale."""
    source = _check_scale(source)
    target = _check_scale(target)
    if source == target:
        return seconds
    v = real_value(seconds)
    converted = _convert_plain(v, source)
    if isinstance(seconds, (int, float)):
        return converted
    # derivative part scales with the clock rate between the two scales
    return (seconds - v) * rate(source, target) + converted


__all__ = [
    "J2000_JD",
    "SECONDS_PER_DAY",
    "L_B",
    "TDB",
    "TCB",
    "jd_to_seconds",
    "seconds_to_jd",
    "seconds_from_calendar",
    "rate",
    "convert_seconds",
]
