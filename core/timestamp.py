"""
core/timestamp.py — ICMP Timestamp Fields
=========================================

The body of a Timestamp Request/Reply is three 32-bit big-endian
integers, each "milliseconds since midnight UTC":

  originate → when the requester sent the request
  receive   → when the responder got it
  transmit  → when the responder sent the reply

A day has 86,400,000 ms so a value always fits in 32 bits, but the
arithmetic between them is done modulo 2^32 like the wire type.
"""

import struct
import time

from core.errors import MalformedBody

TIMESTAMP_FORMAT = "!I"
BODY_FORMAT = "!III"
BODY_SIZE = struct.calcsize(BODY_FORMAT)   # 12

MILLIS_PER_DAY = 86_400_000
WRAP = 1 << 32


def now_millis_of_day(clock=time.time) -> int:
    """Current UTC time of day in milliseconds (0 - 86,399,999)."""
    # Epoch seconds are UTC, so the remainder of a day is UTC time of day.
    return int((clock() % 86400) * 1000) % MILLIS_PER_DAY


def encode_timestamp(millis: int) -> bytes:
    return struct.pack(TIMESTAMP_FORMAT, millis % WRAP)


def decode_timestamp(data: bytes) -> int:
    if len(data) < 4:
        raise MalformedBody(f"timestamp needs 4 bytes, got {len(data)}")
    return struct.unpack(TIMESTAMP_FORMAT, data[:4])[0]


def build_body(originate: int, receive: int, transmit: int) -> bytes:
    return encode_timestamp(originate) + encode_timestamp(receive) + encode_timestamp(transmit)


def parse_body(data: bytes) -> tuple:
    """
    Split a reply body into (originate, receive, transmit).

    Raises:
        MalformedBody: fewer than 12 bytes.
    """
    if len(data) < BODY_SIZE:
        raise MalformedBody(f"timestamp body needs {BODY_SIZE} bytes, got {len(data)}")
    return (
        decode_timestamp(data[0:4]),
        decode_timestamp(data[4:8]),
        decode_timestamp(data[8:12]),
    )


def remote_time(originate: int, receive: int, transmit: int) -> int:
    """
    Estimate the remote clock's time of day.

    The remote's transmit stamp plus the gap between our originate and
    its receive stamp:

        remote_now = transmit + (receive - originate)    (mod 2^32)

    Network delay is assumed negligible.
    """
    return (transmit + (receive - originate)) % WRAP
