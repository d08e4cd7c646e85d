# tests/test_jpl_header.py
from __future__ import annotations

import struct

import pytest

from ephemserve.core.errors import MalformedRecord
from ephemserve.core.jpl_header import (
    BIG_ENDIAN,
    LITTLE_ENDIAN,
    Series,
    detect_byte_order,
    parse_header,
)


def test_byte_order_detected(synthetic, byte_order: str) -> None:
    payload = synthetic(byte_order=byte_order).build(records=2)
    assert detect_byte_order(payload) == byte_order


def test_header_fields(synthetic, byte_order: str) -> None:
    arch = synthetic(byte_order=byte_order)
    h = parse_header(arch.build(records=2), "mem")
    assert h.de_number == 405
    assert h.start_jd == synthetic.BASE_JD
    assert h.end_jd == synthetic.BASE_JD + 64.0
    assert h.span_days == 32.0
    assert h.au_km == synthetic.AU_KM
    assert h.emrat == synthetic.EMRAT
    assert h.record_size == 365 * 8
    assert h.labels[0].startswith("SYNTHETIC EPHEMERIS")
    assert h.constants["GMS"] == pytest.approx(2.959122082855911e-04)
    assert h.time_scale == "TDB"
    assert h.position_unit == 1000.0
    mars = h.layout[Series.MARS]
    assert (mars.offset, mars.coefficients, mars.sub_intervals, mars.components) == (3 + 3 * 33, 11, 1, 3)
    assert not h.layout[Series.LIBRATIONS].available


def test_both_orders_parse_identically(synthetic) -> None:
    big = parse_header(synthetic(byte_order=BIG_ENDIAN).build(records=2))
    little = parse_header(synthetic(byte_order=LITTLE_ENDIAN).build(records=2))
    assert dict(big.constants) == dict(little.constants)
    assert big.layout_signature() == little.layout_signature()
    assert (big.start_jd, big.end_jd, big.span_days) == (little.start_jd, little.end_jd, little.span_days)


def test_implausible_sentinel_raises(synthetic) -> None:
    payload = bytearray(synthetic().build(records=1))
    # NaN sentinels in either byte order
    payload[2652:2676] = b"\xff" * 24
    with pytest.raises(MalformedRecord):
        parse_header(bytes(payload))


@pytest.mark.parametrize("start,end,span", [
    (2451636.5, 2451536.5, 32.0),      # start after end
    (2451536.5, 2451600.5, 1.0e6),     # step far too long
    (2451536.5, 2451600.5, 1.0e-6),    # step far too short
    (-6.0e6, 2451600.5, 32.0),         # start before the supported JD range
    (2451536.5, 2.0e7, 32.0),          # end after it
])
def test_finite_but_implausible_epochs_raise(synthetic, byte_order: str, start, end, span) -> None:
    payload = bytearray(synthetic(byte_order=byte_order).build(records=1))
    struct.pack_into(f"{byte_order}ddd", payload, 2652, start, end, span)
    with pytest.raises(MalformedRecord):
        detect_byte_order(bytes(payload))
    with pytest.raises(MalformedRecord):
        parse_header(bytes(payload))


def test_truncated_header_raises(synthetic) -> None:
    with pytest.raises(MalformedRecord):
        parse_header(synthetic().build(records=1)[:1000])
    with pytest.raises(MalformedRecord):
        parse_header(synthetic().build(records=0)[:3000])


def test_pointer_outside_record_raises(synthetic) -> None:
    payload = bytearray(synthetic().build(records=1))
    # MARS coefficient count blown up past the record length
    struct.pack_into(">i", payload, 2696 + 12 * 3 + 4, 500)
    with pytest.raises(MalformedRecord):
        parse_header(bytes(payload))


def test_inpop_header_units_and_time_scale(synthetic) -> None:
    arch = synthetic(de_number=100, constants={"TIMESC": 1.0, "FORMAT": 100.0}, inpop_record_doubles=400)
    h = parse_header(arch.build(records=1))
    assert h.record_size == 400 * 8
    assert h.time_scale == "TCB"
    assert h.position_unit == pytest.approx(synthetic.AU_KM * 1000.0)


def test_out_of_range_au_rejected(synthetic) -> None:
    with pytest.raises(MalformedRecord):
        parse_header(synthetic(au_km=1.0).build(records=1))
