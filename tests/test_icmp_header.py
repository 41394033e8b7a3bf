import struct

import pytest

from core.errors import MalformedHeader
from core.icmp_header import (HEADER_SIZE, TIMESTAMP_REPLY, TIMESTAMP_REQUEST,
                              ICMPHeader, calculate_checksum)


def test_checksum_matches_rfc1071_example():
    # RFC 1071 section 3: 0001 f203 f4f5 f6f7 sums to ddf2
    assert calculate_checksum(bytes.fromhex("0001f203f4f5f6f7")) == 0x220D


def test_checksum_pads_odd_tail_as_high_byte():
    assert calculate_checksum(b"\x12") == calculate_checksum(b"\x12\x00")
    assert calculate_checksum(b"\x12") == ~0x1200 & 0xFFFF


def test_checksum_splits_header_and_body_transparently():
    data = bytes(range(1, 21))
    assert calculate_checksum(data[:8], data[8:]) == calculate_checksum(data)


@pytest.mark.parametrize("body", [
    b"",
    b"\x00" * 12,
    bytes.fromhex("00bc614e00bc614e00bc614e"),
    b"\xff" * 12,
    b"odd-length-body",
])
def test_built_message_sums_to_zero(body):
    header = ICMPHeader(TIMESTAMP_REQUEST, identifier=0xBEEF, sequence_number=7)
    packet = header.build(body)

    assert calculate_checksum(packet) == 0
    assert struct.unpack("!H", packet[2:4])[0] == header.checksum


def test_encode_layout_is_big_endian():
    header = ICMPHeader(TIMESTAMP_REQUEST, code=0, identifier=0x1234,
                        sequence_number=0x0102, checksum=0xABCD)

    assert header.encode() == bytes([13, 0, 0xAB, 0xCD, 0x12, 0x34, 0x01, 0x02])
    assert header.encode(checksum=0)[2:4] == b"\x00\x00"


@pytest.mark.parametrize("fields", [
    (TIMESTAMP_REQUEST, 0, 0, 0, 0),
    (TIMESTAMP_REPLY, 0, 0xFFFF, 0xFFFF, 0xFFFF),
    (TIMESTAMP_REPLY, 3, 0x1234, 42, 0x55AA),
])
def test_parse_reverses_encode(fields):
    header = ICMPHeader(*fields)

    parsed, rest = ICMPHeader.parse(header.encode())

    assert parsed == header
    assert rest == b""


def test_parse_returns_remaining_bytes():
    header = ICMPHeader(TIMESTAMP_REPLY, identifier=1, sequence_number=2)
    packet = header.build(b"body-bytes!!")

    parsed, rest = ICMPHeader.parse(packet)

    assert parsed.type == TIMESTAMP_REPLY
    assert parsed.checksum == header.checksum
    assert rest == b"body-bytes!!"


@pytest.mark.parametrize("length", [0, 1, HEADER_SIZE - 1])
def test_parse_rejects_short_input(length):
    with pytest.raises(MalformedHeader):
        ICMPHeader.parse(b"\x0e" * length)


def test_repr_shows_fields():
    text = repr(ICMPHeader(TIMESTAMP_REPLY, identifier=0x10, sequence_number=3))
    assert "type=14" in text
    assert "seq=3" in text
