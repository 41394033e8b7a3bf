"""
core/transport.py — Raw ICMP Socket
===================================

Thin wrapper over an AF_INET / SOCK_RAW / IPPROTO_ICMP socket.

WHY IPPROTO_ICMP AND NOT IPPROTO_RAW?
--------------------------------------
The port scanner sends with IPPROTO_RAW + IP_HDRINCL because it
builds its own IP header. Here we only need to control the ICMP
part, so we let the kernel write the IP header. On receive the
kernel delivers every inbound ICMP datagram to this socket, IP
header included, including traffic that has nothing to do with us.

WHY select()?
-------------
The session has a deadline (the retransmission timer) and must wake
up either when a datagram arrives or when the deadline passes,
whichever comes first. select() with a timeout gives us exactly that
on a single thread, no locks needed.

Raw sockets require root. Run with: sudo timeprobe <host>
"""

import select
import socket

from core.errors import ReceiveFailure, ResolutionFailure, SendFailure

# Largest plausible IP datagram. One buffer, one outstanding receive.
RECV_BUFFER_SIZE = 65536


def resolve(host: str) -> str:
    """
    Resolve a hostname or IPv4 literal to a dotted-decimal address.

    Raises:
        ResolutionFailure: the name does not resolve to an IPv4 address.
    """
    try:
        return socket.gethostbyname(host)
    except (socket.gaierror, UnicodeError) as e:
        raise ResolutionFailure(f"cannot resolve {host!r}: {e}") from e


class ICMPTransport:
    """
    Sends ICMP messages to one destination and receives raw datagrams.

    Usage:
        with ICMPTransport.open() as transport:
            transport.send(packet, "192.0.2.1")
            datagram = transport.receive(timeout=5.0)   # None on timeout
    """

    def __init__(self, sock: socket.socket, buffer_size: int = RECV_BUFFER_SIZE):
        self.sock = sock
        self.buffer_size = buffer_size

    @classmethod
    def open(cls, buffer_size: int = RECV_BUFFER_SIZE) -> "ICMPTransport":
        # PermissionError (not root) is left to the caller.
        sock = socket.socket(socket.AF_INET, socket.SOCK_RAW, socket.IPPROTO_ICMP)
        return cls(sock, buffer_size)

    def send(self, packet: bytes, destination: str) -> None:
        # Port is meaningless for ICMP, 0 by convention.
        try:
            self.sock.sendto(packet, (destination, 0))
        except OSError as e:
            raise SendFailure(f"sendto {destination} failed: {e}") from e

    def receive(self, timeout: float = None):
        """
        Wait up to `timeout` seconds for one datagram.

        timeout=None blocks until something arrives.

        Returns:
            The raw datagram bytes, or None if the wait timed out.
        """
        try:
            readable, _, _ = select.select([self.sock], [], [], timeout)
            if not readable:
                return None
            return self.sock.recv(self.buffer_size)
        except OSError as e:
            raise ReceiveFailure(f"receive failed: {e}") from e

    def close(self) -> None:
        self.sock.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
