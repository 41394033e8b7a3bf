import pytest

from core.errors import MalformedBody
from core.timestamp import (MILLIS_PER_DAY, build_body, decode_timestamp,
                            encode_timestamp, now_millis_of_day, parse_body,
                            remote_time)


@pytest.mark.parametrize("millis", [0, 1, 12_345_678, MILLIS_PER_DAY - 1])
def test_timestamp_round_trip(millis):
    assert decode_timestamp(encode_timestamp(millis)) == millis


def test_encode_is_big_endian():
    assert encode_timestamp(0x01020304) == b"\x01\x02\x03\x04"


def test_encode_wraps_to_32_bits():
    assert encode_timestamp((1 << 32) + 5) == b"\x00\x00\x00\x05"


def test_decode_rejects_short_input():
    with pytest.raises(MalformedBody):
        decode_timestamp(b"\x00\x01\x02")


def test_body_layout():
    body = build_body(1, 2, 3)

    assert body == bytes.fromhex("000000010000000200000003")
    assert parse_body(body) == (1, 2, 3)


def test_parse_body_ignores_trailing_bytes():
    assert parse_body(build_body(7, 8, 9) + b"\xff\xff") == (7, 8, 9)


def test_parse_body_rejects_short_input():
    with pytest.raises(MalformedBody):
        parse_body(build_body(1, 2, 3)[:11])


def test_remote_time_adds_processing_delay_to_transmit():
    assert remote_time(originate=100, receive=150, transmit=160) == 210


def test_remote_time_wraps_modulo_2_32():
    # remote clock behind ours: receive - originate is negative
    assert remote_time(originate=200, receive=100, transmit=50) == (1 << 32) - 50
    assert remote_time(originate=200, receive=100, transmit=150) == 50


def test_now_millis_of_day_uses_utc_time_of_day():
    three_days = 3 * 86400
    clock = lambda: three_days + 3661.25     # 01:01:01.250

    assert now_millis_of_day(clock) == 3_661_250


def test_now_millis_of_day_stays_in_range():
    clock = lambda: 86400 * 10 - 0.0001

    assert 0 <= now_millis_of_day(clock) < MILLIS_PER_DAY
