# tests/conftest.py
from __future__ import annotations

"""
Pytest configuration for the ephemserve suite.

- Registers Hypothesis profiles for local dev and CI.
- Builds synthetic JPL DE / INPOP binary archives (either byte order) so the
  decoder, the body cache and the service can be exercised without shipping
  real ephemeris files.
- Adds a 'slow' marker for the concurrency stress tests.
"""

import os
import struct
from typing import Dict, Iterable, Optional, Tuple

import pytest
from hypothesis import settings, HealthCheck


# ──────────────────────────────────────────────────────────────────────────────
# Hypothesis profiles
# ──────────────────────────────────────────────────────────────────────────────
settings.register_profile(
    "dev",
    settings(
        deadline=None,           # avoid flaky timeouts on slower runners
        max_examples=60,         # fast local runs
        suppress_health_check=[HealthCheck.too_slow],
    ),
)
settings.register_profile(
    "ci",
    settings(
        deadline=None,
        max_examples=120,        # a bit more coverage in CI
        suppress_health_check=[HealthCheck.too_slow],
    ),
)

_profile = (
    "ci"
    if (os.getenv("CI") or os.getenv("GITHUB_ACTIONS"))
    else os.getenv("HYPOTHESIS_PROFILE", "dev")
)
settings.load_profile(_profile)


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "slow: mark test as slow")


def pytest_report_header(config: pytest.Config) -> str:
    return f"Hypothesis profile: '{_profile}'"


# ──────────────────────────────────────────────────────────────────────────────
# Synthetic archives
# ──────────────────────────────────────────────────────────────────────────────
AU_KM = 149597870.7
EMRAT = 81.30056907419062
BASE_JD = 2451536.5

# JPL-style GM values (AU³/day²)
GM_CONSTANTS: Dict[str, float] = {
    "GM1": 4.912480450364760e-11,
    "GM2": 7.243452332644120e-10,
    "GMB": 8.997011390199871e-10,
    "GM4": 9.549548695550771e-11,
    "GM5": 2.825345840833870e-07,
    "GM6": 8.459706073245031e-08,
    "GM7": 1.292024825782960e-08,
    "GM8": 1.524357347885110e-08,
    "GM9": 2.175096464893358e-12,
    "GMS": 2.959122082855911e-04,
}


class SyntheticArchive:
    """
    Builder for small, self-consistent DE/INPOP binary files.

    Coefficients are a deterministic function of (series, record start JD,
    sub-interval, component, degree) so two files covering the same record
    carry identical data unless `perturb` is given.
    """

    AU_KM = AU_KM
    EMRAT = EMRAT
    BASE_JD = BASE_JD

    # series index → (coefficients, sub-intervals); 11 bodies × 3 × 11 + 2 = 365 doubles
    DEFAULT_LAYOUT: Dict[int, Tuple[int, int]] = {i: (11, 1) for i in range(11)}

    def __init__(self, *, byte_order: str = ">", de_number: int = 405, span_days: float = 32.0,
                 layout: Optional[Dict[int, Tuple[int, int]]] = None,
                 librations: Optional[Tuple[int, int]] = None,
                 constants: Optional[Dict[str, float]] = None,
                 au_km: float = AU_KM, emrat: float = EMRAT,
                 inpop_record_doubles: Optional[int] = None):
        self.byte_order = byte_order
        self.de_number = de_number
        self.span_days = span_days
        self.layout = dict(self.DEFAULT_LAYOUT if layout is None else layout)
        self.librations = librations
        self.au_km = au_km
        self.emrat = emrat
        self.constants: Dict[str, float] = {"DENUM": float(de_number), "AU": au_km, "EMRAT": emrat}
        self.constants.update(GM_CONSTANTS)
        self.constants.update(constants or {})

        self.pointers: Dict[int, Tuple[int, int, int]] = {}
        offset = 3
        for series in range(13):
            if series == 12:
                ncoef, nsub = librations or (0, 0)
            else:
                ncoef, nsub = self.layout.get(series, (0, 0))
            comps = 2 if series == 11 else 3
            if ncoef and nsub:
                self.pointers[series] = (offset, ncoef, nsub)
                offset += ncoef * nsub * comps
            else:
                self.pointers[series] = (0, 0, 0)
        doubles = offset - 1
        if inpop_record_doubles is not None:
            doubles = max(doubles, inpop_record_doubles)
        self.record_doubles = doubles
        self.record_size = doubles * 8
        if self.record_size < 2864:
            raise ValueError("synthetic layout too small for a JPL header record")

    @staticmethod
    def coefficient(series: int, start_jd: float, sub: int, comp: int, degree: int) -> float:
        base = (series + 1) * 1.0e4 + comp * 1.0e3 + (start_jd - BASE_JD) * 10.0 + sub
        return base / float(degree + 1) ** 3

    def _record(self, start_jd: float, perturb: float = 0.0) -> bytes:
        values = [0.0] * self.record_doubles
        values[0] = start_jd
        values[1] = start_jd + self.span_days
        for series, (offset, ncoef, nsub) in self.pointers.items():
            if not ncoef:
                continue
            comps = 2 if series == 11 else 3
            i = offset - 1
            for k in range(nsub):
                for a in range(comps):
                    for j in range(ncoef):
                        values[i] = self.coefficient(series, start_jd, k, a, j) + perturb
                        i += 1
        return struct.pack(f"{self.byte_order}{self.record_doubles}d", *values)

    def _header(self, start_jd: float, end_jd: float) -> bytes:
        bo = self.byte_order
        first = bytearray(self.record_size)
        labels = (f"SYNTHETIC EPHEMERIS DE{self.de_number:03d}",
                  f"Start Epoch: JED= {start_jd:.1f}", f"Final Epoch: JED= {end_jd:.1f}")
        for i, label in enumerate(labels):
            first[i * 84:(i + 1) * 84] = label.ljust(84).encode("ascii")
        names = list(self.constants)
        for i, name in enumerate(names):
            first[252 + 6 * i:252 + 6 * (i + 1)] = name.ljust(6).encode("ascii")
        struct.pack_into(f"{bo}ddd", first, 2652, start_jd, end_jd, self.span_days)
        struct.pack_into(f"{bo}i", first, 2676, len(names))
        struct.pack_into(f"{bo}dd", first, 2680, self.au_km, self.emrat)
        for series in range(12):
            struct.pack_into(f"{bo}3i", first, 2696 + 12 * series, *self.pointers[series])
        struct.pack_into(f"{bo}i", first, 2840, self.de_number)
        struct.pack_into(f"{bo}3i", first, 2844, *self.pointers[12])
        struct.pack_into(f"{bo}i", first, 2856, self.record_doubles)

        second = bytearray(self.record_size)
        for i, name in enumerate(names):
            struct.pack_into(f"{bo}d", second, 8 * i, self.constants[name])
        return bytes(first) + bytes(second)

    def build(self, first_jd: float = BASE_JD, records: int = 3,
              perturb: Optional[Dict[int, float]] = None) -> bytes:
        """File covering `records` consecutive records starting at `first_jd`."""
        end_jd = first_jd + records * self.span_days
        out = [self._header(first_jd, end_jd)]
        for r in range(records):
            out.append(self._record(first_jd + r * self.span_days, (perturb or {}).get(r, 0.0)))
        return b"".join(out)

    def build_records(self, starts: Iterable[float], header_span: Tuple[float, float]) -> bytes:
        out = [self._header(*header_span)]
        out.extend(self._record(s) for s in starts)
        return b"".join(out)


@pytest.fixture
def synthetic():
    """Factory: synthetic(**options) → SyntheticArchive."""
    return SyntheticArchive


@pytest.fixture
def de_payload(synthetic) -> bytes:
    return synthetic().build(records=4)


@pytest.fixture(params=[">", "<"], ids=["big-endian", "little-endian"])
def byte_order(request) -> str:
    return request.param
