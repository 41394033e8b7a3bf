"""
core/errors.py — Exception Types
================================

Two families matter to the probe:

  MalformedPacket  → a datagram we received makes no sense.
                     Never fatal. The session drops it and keeps listening.
  TransportError   → the socket itself is broken.
                     Fatal for the attempt. Retrying would loop forever.
"""


class ProbeError(Exception):
    """Base class for everything the probe raises on purpose."""


class ResolutionFailure(ProbeError):
    """The destination hostname or address could not be resolved."""


class MalformedPacket(ProbeError):
    pass


class MalformedHeader(MalformedPacket):
    pass


class MalformedIPHeader(MalformedPacket):
    pass


class MalformedBody(MalformedPacket):
    pass


class ChecksumMismatch(MalformedPacket):
    pass


class TransportError(ProbeError):
    pass


class SendFailure(TransportError):
    pass


class ReceiveFailure(TransportError):
    pass
