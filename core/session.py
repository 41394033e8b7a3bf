"""
core/session.py — Timestamp Synchronization Session
===================================================

WHAT THIS FILE DOES:
Owns one ICMP Timestamp exchange from the first request to the first
valid reply, and turns the three timestamps in that reply into an
estimate of the remote clock.

THE STATE MACHINE:
------------------
  IDLE           → send_request()            → AWAITING_REPLY
  AWAITING_REPLY → unrelated/broken datagram → AWAITING_REPLY (discard)
  AWAITING_REPLY → 5s with no reply          → report timeout,
                                               wait 1s more, send again
  AWAITING_REPLY → matching reply            → DONE
  any            → socket error              → FAILED (error propagates)

ONE TIMER, ONE THREAD:
----------------------
Three things can happen while we wait: a datagram arrives, the reply
timeout expires, or the retry delay expires. Everything runs on one
thread through step(), and there is only ever ONE live timer handle.
send_request() overwrites it, an accepted reply cancels it, and a
timer only fires while the session is still AWAITING_REPLY. So a reply
and a timeout landing at the same instant can never both act: the
datagram is handled first, and once the session is DONE the timer is
dead.
"""

import os
import time
from typing import NamedTuple

from core.errors import ChecksumMismatch, MalformedPacket, TransportError
from core.icmp_header import (TIMESTAMP_REPLY, TIMESTAMP_REQUEST, ICMPHeader,
                              calculate_checksum)
from core.ip_header import parse_ip_header, strip_ipv4_header
from core.timestamp import build_body, now_millis_of_day, parse_body, remote_time

# Wait this long for a reply before reporting a timeout.
REPLY_TIMEOUT = 5.0

# Extra delay after a timeout before the next request.
# Requests must be sent no less than one second apart.
REQUEST_INTERVAL = 1.0
MIN_REQUEST_INTERVAL = 1.0


class SyncResult(NamedTuple):
    remote_time: int       # estimated remote ms since midnight UTC
    round_trip_ms: int
    originate: int
    receive: int
    transmit: int


class Timer:
    """A deadline and the callback to run when it passes."""

    def __init__(self, deadline: float, callback):
        self.deadline = deadline
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def due(self, now: float) -> bool:
        return not self.cancelled and now >= self.deadline


class NullReporter:
    """
    Presentation interface. The session calls these and ignores the result.

    Subclass and override what you want to show.
    """

    def report_local_time(self, millis_of_day: int) -> None:
        pass

    def report_remote_time(self, millis_of_day: int) -> None:
        pass

    def report_round_trip(self, duration_ms: int) -> None:
        pass

    def report_timeout(self) -> None:
        pass

    def report_discarded(self, reason: str) -> None:
        pass


class TimestampSession:
    """
    One-shot ICMP Timestamp probe against a single destination.

    Usage:
        with ICMPTransport.open() as transport:
            session = TimestampSession(transport, resolve("example.com"), reporter)
            result = session.run()      # blocks until a valid reply
    """

    IDLE = "IDLE"
    AWAITING_REPLY = "AWAITING_REPLY"
    DONE = "DONE"
    FAILED = "FAILED"

    def __init__(
        self,
        transport,
        destination: str,
        reporter=None,
        clock=time.time,
        identifier: int = None,
        reply_timeout: float = REPLY_TIMEOUT,
        request_interval: float = REQUEST_INTERVAL,
        verify_checksum: bool = True,
    ):
        """
        Args:
            transport        : Object with send(packet, destination) and
                               receive(timeout) -> bytes | None.
            destination      : Resolved IPv4 address, fixed for the session.
            reporter         : Presentation collaborator (see NullReporter).
            clock            : Returns wall-clock seconds since the epoch.
            identifier       : 16-bit ICMP identifier. Defaults to our PID.
            reply_timeout    : Seconds to wait before reporting a timeout.
            request_interval : Extra seconds after a timeout before resending.
            verify_checksum  : Drop replies whose ICMP checksum is wrong.
        """
        self.transport = transport
        self.destination = destination
        self.reporter = reporter if reporter is not None else NullReporter()
        self.clock = clock
        if identifier is None:
            identifier = os.getpid()
        self.identifier = identifier & 0xFFFF
        if reply_timeout <= 0:
            raise ValueError(f"reply_timeout must be positive, got {reply_timeout}")
        if request_interval < MIN_REQUEST_INTERVAL:
            raise ValueError(
                f"request_interval must be at least {MIN_REQUEST_INTERVAL}s, "
                f"got {request_interval}"
            )
        self.reply_timeout = reply_timeout
        self.request_interval = request_interval
        self.verify_checksum = verify_checksum

        self.state = self.IDLE
        self.sequence_number = 0
        self.reply_count = 0
        self.time_sent = None
        self.result = None
        self._timer = None

    # ─────────────────────────────────────────────────────────────
    # TIMER HANDLE
    # ─────────────────────────────────────────────────────────────

    @property
    def timer(self):
        return self._timer

    def _arm(self, deadline: float, callback) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = Timer(deadline, callback)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire_due_timer(self) -> None:
        timer = self._timer
        if self.state != self.AWAITING_REPLY or timer is None:
            return
        if timer.due(self.clock()):
            self._timer = None
            timer.callback()

    # ─────────────────────────────────────────────────────────────
    # SEND PATH
    # ─────────────────────────────────────────────────────────────

    def send_request(self) -> None:
        """
        Build and transmit the next Timestamp Request, then arm the reply timeout.

        All three timestamps carry the same "now". Responders only read
        originate, the other two are overwritten in the reply.
        """
        self.sequence_number = (self.sequence_number + 1) & 0xFFFF

        now_ms = now_millis_of_day(self.clock)
        body = build_body(now_ms, now_ms, now_ms)
        header = ICMPHeader(
            TIMESTAMP_REQUEST,
            identifier=self.identifier,
            sequence_number=self.sequence_number,
        )
        packet = header.build(body)

        self.reporter.report_local_time(now_ms)

        self.time_sent = self.clock()
        self.transport.send(packet, self.destination)

        self.reply_count = 0
        self.state = self.AWAITING_REPLY
        self._arm(self.time_sent + self.reply_timeout, self.handle_timeout)

    def handle_timeout(self) -> None:
        if self.reply_count == 0:
            self.reporter.report_timeout()
        self._arm(self.clock() + self.request_interval, self.send_request)

    # ─────────────────────────────────────────────────────────────
    # RECEIVE PATH
    # ─────────────────────────────────────────────────────────────

    def matches(self, header: ICMPHeader) -> bool:
        """A reply is ours only if type, identifier and sequence all line up."""
        return (
            header.type == TIMESTAMP_REPLY
            and header.identifier == self.identifier
            and header.sequence_number == self.sequence_number
        )

    def handle_datagram(self, datagram: bytes) -> bool:
        """
        Process one raw datagram from the socket.

        Anything malformed or not addressed to this session is reported
        as discarded and the session keeps waiting. Once DONE, further
        datagrams (duplicate replies included) are ignored.

        Returns:
            True if the datagram was accepted as THE reply.
        """
        if self.state != self.AWAITING_REPLY:
            return False

        try:
            _, icmp = strip_ipv4_header(datagram)
            header, body = ICMPHeader.parse(icmp)
            if not self.matches(header):
                source = parse_ip_header(datagram)["src_ip"]
                self.reporter.report_discarded(f"not our reply from {source}: {header!r}")
                return False
            if self.verify_checksum and calculate_checksum(icmp) != 0:
                raise ChecksumMismatch(f"bad checksum {header.checksum:#06x}")
            originate, receive, transmit = parse_body(body)
        except MalformedPacket as e:
            self.reporter.report_discarded(str(e))
            return False

        if self.reply_count == 0:
            self._cancel_timer()
        self.reply_count += 1

        round_trip_ms = round((self.clock() - self.time_sent) * 1000)
        self.result = SyncResult(
            remote_time=remote_time(originate, receive, transmit),
            round_trip_ms=round_trip_ms,
            originate=originate,
            receive=receive,
            transmit=transmit,
        )
        self.state = self.DONE

        self.reporter.report_round_trip(self.result.round_trip_ms)
        self.reporter.report_remote_time(self.result.remote_time)
        return True

    # ─────────────────────────────────────────────────────────────
    # DRIVER
    # ─────────────────────────────────────────────────────────────

    def step(self) -> None:
        """
        One turn of the loop: wait for a datagram until the timer's
        deadline, handle it if one came, then fire the timer if due.
        """
        timer = self._timer
        wait = None
        if timer is not None:
            wait = max(0.0, timer.deadline - self.clock())

        datagram = self.transport.receive(wait)
        if datagram is not None:
            self.handle_datagram(datagram)

        self._fire_due_timer()

    def run(self) -> SyncResult:
        """
        Send the first request and loop until a reply is accepted.

        Returns:
            The SyncResult of the accepted reply.

        Raises:
            TransportError: the socket failed. The session is left FAILED.
        """
        try:
            if self.state == self.IDLE:
                self.send_request()
            while self.state == self.AWAITING_REPLY:
                self.step()
        except TransportError:
            self.state = self.FAILED
            self._cancel_timer()
            raise
        return self.result
