"""
core/icmp_header.py — ICMP Header Construction from Scratch
===========================================================

WHAT IS ICMP?
ICMP (Internet Control Message Protocol) is the network's own
messaging channel. Ping uses it, traceroute uses it, and so does
the old Timestamp Request/Reply pair this project speaks:

  Type 13 → Timestamp Request  "what time is it over there?"
  Type 14 → Timestamp Reply    "here are my clock readings"

Unlike TCP and UDP there are no ports. Requests and replies are
matched using two 16-bit values the sender chooses and the
responder echoes back: the identifier and the sequence number.

ICMP HEADER (8 bytes):
 0                   1                   2                   3
 0 1 2 3 4 5 6 7 8 9 0 1 2 3 4 5 6 7 8 9 0 1 2 3 4 5 6 7 8 9 0 1
+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
|     Type      |     Code      |           Checksum            |
+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
|          Identifier           |        Sequence Number        |
+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
|                     Body (timestamps, ...)                    |
+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+

RFC 792 is the spec: https://tools.ietf.org/html/rfc792
"""

import struct

from core.errors import MalformedHeader

# '!'  = network byte order (big-endian)
# 'B'  = type, 'B' = code, 'H' = checksum, 'H' = identifier, 'H' = sequence
HEADER_FORMAT = "!BBHHH"
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)   # 8

TIMESTAMP_REQUEST = 13
TIMESTAMP_REPLY = 14


def calculate_checksum(header: bytes, body: bytes = b"") -> int:
    """
    RFC 1071 Internet Checksum over header + body.

    The same one's complement sum used by IP, TCP and UDP:
      1. Split the data into 16-bit words (pad an odd tail with 0x00,
         so the last byte becomes the HIGH byte of the final word).
      2. Add them all up, folding any carry above bit 15 back in.
      3. Flip every bit.

    The checksum field inside `header` must be zero when building.
    When VERIFYING, run it over the message with the checksum in place:
    an intact message sums to 0xFFFF, so the result here is 0.

    Args:
        header: ICMP header bytes.
        body:   Everything after the header.

    Returns:
        16-bit checksum as an integer.
    """
    data = header + body
    if len(data) % 2 != 0:
        data += b'\x00'

    checksum = 0
    for i in range(0, len(data), 2):
        word = (data[i] << 8) + data[i + 1]
        checksum += word

    while checksum >> 16:
        checksum = (checksum & 0xFFFF) + (checksum >> 16)

    return ~checksum & 0xFFFF


class ICMPHeader:
    """
    Represents, serializes and parses an ICMP header.

    Usage:
        hdr = ICMPHeader(TIMESTAMP_REQUEST, identifier=0x1234, sequence_number=1)
        packet = hdr.build(body)          # header with real checksum + body

        hdr, rest = ICMPHeader.parse(icmp_bytes)
    """

    def __init__(
        self,
        icmp_type: int,
        code: int = 0,
        identifier: int = 0,
        sequence_number: int = 0,
        checksum: int = 0,
    ):
        self.type = icmp_type
        self.code = code
        self.identifier = identifier
        self.sequence_number = sequence_number
        self.checksum = checksum

    def encode(self, checksum: int = None) -> bytes:
        """
        Serialize the 8 header bytes.

        Pass checksum=0 for the placeholder form used while computing
        the checksum. Without an argument the stored checksum is used.
        """
        if checksum is None:
            checksum = self.checksum
        return struct.pack(
            HEADER_FORMAT,
            self.type,
            self.code,
            checksum,
            self.identifier,
            self.sequence_number,
        )

    def build(self, body: bytes = b"") -> bytes:
        """
        Serialize header + body with the real checksum slotted in.

        Same two-pass approach as the IP header: pack with checksum 0,
        compute, then pack again. The computed value is remembered on
        the instance.
        """
        self.checksum = calculate_checksum(self.encode(checksum=0), body)
        return self.encode() + body

    @classmethod
    def parse(cls, data: bytes) -> tuple:
        """
        Parse the first 8 bytes of an ICMP message.

        Args:
            data: Raw bytes starting at the ICMP header (IP header already stripped).

        Returns:
            Tuple of (ICMPHeader, remaining_bytes)

        Raises:
            MalformedHeader: fewer than 8 bytes available.
        """
        if len(data) < HEADER_SIZE:
            raise MalformedHeader(
                f"ICMP header needs {HEADER_SIZE} bytes, got {len(data)}"
            )

        icmp_type, code, checksum, identifier, sequence_number = struct.unpack(
            HEADER_FORMAT, data[:HEADER_SIZE]
        )
        header = cls(icmp_type, code, identifier, sequence_number, checksum)
        return header, data[HEADER_SIZE:]

    def __eq__(self, other) -> bool:
        if not isinstance(other, ICMPHeader):
            return NotImplemented
        return (
            self.type == other.type
            and self.code == other.code
            and self.checksum == other.checksum
            and self.identifier == other.identifier
            and self.sequence_number == other.sequence_number
        )

    def __repr__(self) -> str:
        return (
            f"ICMPHeader(type={self.type}, code={self.code}, "
            f"id={self.identifier:#06x}, seq={self.sequence_number}, "
            f"checksum={self.checksum:#06x})"
        )
