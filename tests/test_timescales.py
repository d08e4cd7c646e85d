# tests/test_timescales.py
from __future__ import annotations

import pytest

from ephemserve.core.dual import Gradient
from ephemserve.core.timescales import (
    J2000_JD,
    L_B,
    convert_seconds,
    jd_to_seconds,
    rate,
    seconds_from_calendar,
    seconds_to_jd,
)


def test_j2000_is_zero() -> None:
    assert jd_to_seconds(J2000_JD) == 0.0
    assert seconds_from_calendar("2000-01-01", "12:00:00") == 0.0


def test_two_part_round_trip() -> None:
    s = 123456789.25
    d1, d2 = seconds_to_jd(s)
    assert d1 == int(d1) + 0.0
    assert 0.0 <= d2 < 1.0
    assert jd_to_seconds(d1, d2) == pytest.approx(s, abs=1e-6)


@pytest.mark.parametrize("date_str,time_str", [("2000-13-01", "00:00:00"), ("2000-01-01", "25:00"), ("", "")])
def test_calendar_rejects_bad_input(date_str: str, time_str: str) -> None:
    with pytest.raises(ValueError):
        seconds_from_calendar(date_str, time_str)


def test_unknown_scale() -> None:
    with pytest.raises(ValueError):
        seconds_from_calendar("2000-01-01", scale="UTC")
    with pytest.raises(ValueError):
        convert_seconds(0.0, "TT", "TDB")


def test_tdb_tcb_offset_sign_and_size() -> None:
    # TCB runs ahead of TDB by ~11.25 s around J2000 (L_B drift since 1977)
    s = seconds_from_calendar("2000-01-01", "12:00:00")
    off = convert_seconds(s, "TDB", "TCB") - s
    assert 11.0 < off < 11.5
    assert convert_seconds(convert_seconds(s, "TDB", "TCB"), "TCB", "TDB") == pytest.approx(s, abs=1e-6)
    assert convert_seconds(s, "TDB", "TDB") == s


def test_gradient_conversion_scales_derivatives_by_clock_rate() -> None:
    g = Gradient.variable(1.0e8, 0, 2)
    out = convert_seconds(g, "TDB", "TCB")
    assert isinstance(out, Gradient)
    assert out.value == pytest.approx(convert_seconds(1.0e8, "TDB", "TCB"))
    assert out.derivatives[1] == 0.0
    assert out.derivatives[0] == rate("TDB", "TCB")
    assert out.derivatives[0] - 1.0 == pytest.approx(L_B, rel=1e-6)

    # matches the slope of the plain conversion
    h = 1.0e6
    slope = (convert_seconds(1.0e8 + h, "TDB", "TCB") - convert_seconds(1.0e8, "TDB", "TCB")) / h
    assert out.derivatives[0] == pytest.approx(slope, abs=1e-12)

    back = convert_seconds(out, "TCB", "TDB")
    assert back.value == pytest.approx(1.0e8, abs=1e-6)
    assert back.derivatives[0] == pytest.approx(1.0, abs=1e-15)
