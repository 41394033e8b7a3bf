"""
core/ip_header.py — IPv4 Header Parsing
=======================================

WHY DO WE SEE AN IP HEADER AT ALL?
A raw AF_INET/IPPROTO_ICMP socket SENDS only what we give it (the
kernel writes the IP header for us), but on RECEIVE it hands us the
whole datagram, IP header included:

  [ IPv4 header (20-60 bytes) ][ ICMP header (8) ][ timestamps (12) ]

So before we can look at the ICMP reply we have to find out how big
the IP header is and skip over it.

HOW BIG IS IT?
The low nibble of byte 0 is the IHL (Internet Header Length) in
32-bit words. IHL 5 = 20 bytes (no options), IHL 15 = 60 bytes (max).
Never assume 20: a router or host may add IP options.

RFC 791 is the spec: https://tools.ietf.org/html/rfc791
"""

import socket
import struct

from core.errors import MalformedIPHeader

MIN_HEADER_SIZE = 20


def parse_ip_header(datagram: bytes) -> dict:
    """
    Parse and validate the IPv4 header at the front of a datagram.

    We only need the fields that tell us how far to skip and who sent
    the datagram. Byte map of the fixed 20-byte part:
      Byte 0:      version(4 bits) + IHL(4 bits)
      Byte 9:      protocol
      Bytes 12-15: source IP
      Bytes 16-19: destination IP

    STRUCT FORMAT "!9xB2x4s4s":
      9x  skip version/IHL, TOS, total length, identification, flags, TTL
      B   protocol
      2x  skip header checksum
      4s  source IP
      4s  destination IP

    Args:
        datagram: Raw bytes as returned by recv() on a raw socket.

    Returns:
        Dictionary with version, header_length, protocol, src_ip, dst_ip.

    Raises:
        MalformedIPHeader: version is not 4, IHL is impossible, or the
                           datagram is shorter than the header it declares.
    """
    if len(datagram) < 1:
        raise MalformedIPHeader("empty datagram")

    # version is the HIGH nibble, IHL the LOW nibble
    version = datagram[0] >> 4
    ihl = datagram[0] & 0x0F
    header_length = ihl * 4

    if version != 4:
        raise MalformedIPHeader(f"not an IPv4 datagram (version={version})")
    if header_length < MIN_HEADER_SIZE:
        raise MalformedIPHeader(f"IHL {ihl} is below the 20-byte minimum")
    if header_length > len(datagram):
        raise MalformedIPHeader(
            f"header declares {header_length} bytes, datagram has {len(datagram)}"
        )

    protocol, src_ip_raw, dst_ip_raw = struct.unpack("!9xB2x4s4s", datagram[0:20])

    return {
        "version": version,
        "header_length": header_length,  # in bytes
        "protocol": protocol,
        "src_ip": socket.inet_ntoa(src_ip_raw),
        "dst_ip": socket.inet_ntoa(dst_ip_raw),
    }


def strip_ipv4_header(datagram: bytes) -> tuple:
    """
    Skip the IPv4 header and return what follows it.

    Returns:
        Tuple of (header_length, payload) where payload starts at the
        ICMP header.
    """
    header_length = parse_ip_header(datagram)["header_length"]
    return header_length, datagram[header_length:]
