"""
tools/timestamp_probe.py — ICMP Timestamp Clock Probe
=====================================================

WHAT THIS FILE DOES:
Asks a remote host what time it is using ICMP Timestamp messages
(type 13/14) and prints its answer next to our own clock.

  Old time: 14h 2m 9s UTC             ← our clock when we sent
  Time between request and response: 12 ms
  New time: 14h 2m 11s UTC            ← the remote clock, estimated

HOW IT WORKS:
1. Resolve the host to an IPv4 address
2. Open a raw ICMP socket
3. Hand both to a TimestampSession (core/session.py), which sends a
   request, retries every ~6 seconds without an answer, and stops at
   the first matching reply
4. This file only prints what the session reports

WHY ROOT IS REQUIRED:
Raw sockets are restricted to root. Run with:
    sudo python3 tools/timestamp_probe.py <host>
"""

import argparse
import os
import sys

# ─────────────────────────────────────────────────────────────
# PATH SETUP
# ─────────────────────────────────────────────────────────────

# Add project root to Python's path so imports from core/ work
# when this file is run directly as a script.
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.errors import ProbeError
from core.session import (MIN_REQUEST_INTERVAL, REPLY_TIMEOUT, REQUEST_INTERVAL,
                          NullReporter, TimestampSession)
from core.timestamp import MILLIS_PER_DAY
from core.transport import ICMPTransport, resolve

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INTERRUPTED = 130


# ─────────────────────────────────────────────────────────────
# PRESENTATION
# ─────────────────────────────────────────────────────────────

def format_millis_of_day(millis: int) -> str:
    """
    Render milliseconds since midnight as "14h 2m 9s UTC".

    Example:
        50_529_000 → "14h 2m 9s UTC"

    The estimate is computed modulo 2^32, so it can land past midnight
    (or wrap to ~4.29e9 when the remote clock is behind ours). Reduce
    it to a time of day before splitting into fields.
    """
    total_seconds = (millis % MILLIS_PER_DAY) // 1000
    hours = total_seconds // 3600
    minutes = (total_seconds // 60) % 60
    seconds = total_seconds % 60
    return f"{hours}h {minutes}m {seconds}s UTC"


class ConsoleReporter(NullReporter):
    """Prints everything the session reports. Discards only with verbose=True."""

    def __init__(self, verbose: bool = False, out=None):
        self.verbose = verbose
        self.out = out if out is not None else sys.stdout

    def _print(self, line: str) -> None:
        print(line, file=self.out, flush=True)

    def report_local_time(self, millis_of_day: int) -> None:
        self._print(f"Old time: {format_millis_of_day(millis_of_day)}")

    def report_round_trip(self, duration_ms: int) -> None:
        self._print(f"Time between request and response: {duration_ms} ms")

    def report_remote_time(self, millis_of_day: int) -> None:
        self._print(f"New time: {format_millis_of_day(millis_of_day)}")

    def report_timeout(self) -> None:
        self._print("Request timed out")

    def report_discarded(self, reason: str) -> None:
        if self.verbose:
            self._print(f"[-] Discarded datagram: {reason}")


# ─────────────────────────────────────────────────────────────
# ARGUMENTS
# ─────────────────────────────────────────────────────────────

class ProbeArgumentParser(argparse.ArgumentParser):
    """argparse exits with 2 on bad usage. This tool has always used 1."""

    def error(self, message):
        self.print_usage(sys.stderr)
        if os.name != "nt":
            print("(You may need to run this program as root.)", file=sys.stderr)
        self.exit(EXIT_ERROR, f"{self.prog}: error: {message}\n")


def positive_seconds(text: str) -> float:
    value = float(text)
    if value <= 0:
        raise argparse.ArgumentTypeError(f"must be greater than 0, got {text}")
    return value


def retry_seconds(text: str) -> float:
    # Requests must be sent no less than one second apart.
    value = float(text)
    if value < MIN_REQUEST_INTERVAL:
        raise argparse.ArgumentTypeError(
            f"must be at least {MIN_REQUEST_INTERVAL}, got {text}"
        )
    return value


def build_parser() -> ProbeArgumentParser:
    parser = ProbeArgumentParser(
        prog="timeprobe",
        description="Read a remote host's clock with ICMP Timestamp requests",
    )
    parser.add_argument("host", help="hostname or IPv4 address to probe")
    parser.add_argument("--timeout", type=positive_seconds, default=REPLY_TIMEOUT,
                        help=f"seconds to wait for a reply (default: {REPLY_TIMEOUT})")
    parser.add_argument("--interval", type=retry_seconds, default=REQUEST_INTERVAL,
                        help=f"extra seconds before retrying (default: {REQUEST_INTERVAL})")
    parser.add_argument("--no-verify-checksum", dest="verify_checksum",
                        action="store_false",
                        help="accept replies with a wrong ICMP checksum")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="show datagrams that were discarded")
    return parser


# ─────────────────────────────────────────────────────────────
# MAIN
# ─────────────────────────────────────────────────────────────

def main(argv=None, transport_factory=ICMPTransport.open) -> int:
    """
    Entry point. Returns the process exit status.

    EXIT CODES:
      0   → a reply was received and printed
      1   → bad usage, unresolvable host, no permission, socket error
      130 → Ctrl+C
    """
    args = build_parser().parse_args(argv)
    reporter = ConsoleReporter(verbose=args.verbose)

    try:
        destination = resolve(args.host)
        if args.verbose:
            print(f"[*] Probing {args.host} ({destination})", flush=True)

        with transport_factory() as transport:
            session = TimestampSession(
                transport,
                destination,
                reporter,
                reply_timeout=args.timeout,
                request_interval=args.interval,
                verify_checksum=args.verify_checksum,
            )
            session.run()

    except PermissionError as e:
        print(f"[!] {e} (raw sockets need root)", file=sys.stderr)
        return EXIT_ERROR
    except ProbeError as e:
        print(f"[!] {e}", file=sys.stderr)
        return EXIT_ERROR
    except KeyboardInterrupt:
        print("\n[*] Probe stopped.")
        return EXIT_INTERRUPTED

    return EXIT_OK


# ─────────────────────────────────────────────────────────────
# ENTRY POINT
# ─────────────────────────────────────────────────────────────

if __name__ == "__main__":
    sys.exit(main())
