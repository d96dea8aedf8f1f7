"""SNTP server side of the protocol: request validation and reply building.

NTP message layout (all fields big endian)::

    0               1               2               3
    +-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
    |LI | VN  |Mode |    Stratum    |     Poll      |   Precision   |
    |                          Root Delay                           |
    |                       Root Dispersion                         |
    |                     Reference Identifier                      |
    |                   Reference Timestamp (64)                    |
    |                   Originate Timestamp (64)                    |
    |                    Receive Timestamp (64)                     |
    |                    Transmit Timestamp (64)                    |
    |                 Key Identifier (optional) (32)                |
    |                 Message Digest (optional) (128)               |
    +-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+

A timestamp is 32 bits of seconds since 1900-01-01 followed by
32 bits of fraction.
"""

from __future__ import annotations

import time

LI_NO_WARNING = 0
LI_ALARM_CONDITION = 3
VN_FIRST = 1
VN_LAST = 4
MODE_CLIENT = 3
MODE_SERVER = 4
FROM_1900_TO_1970 = 2208988800

PACKET_SIZE = 48
REFERENCE_ID = b"NICT"
PRECISION = 0xEC

_NANOS_PER_SECOND = 1_000_000_000


class InvalidFormatError(ValueError):
    """Raised when a request is not a well-formed SNTP client request."""


def valid_format(request: bytes) -> bool:
    """Check the first byte: LI must be 0 or 3, VN 1..4 and mode 3."""
    if not request:
        return False
    first = request[0]
    leap = first >> 6
    version = (first >> 3) & 0x07
    mode = first & 0x07
    return (
        leap in (LI_NO_WARNING, LI_ALARM_CONDITION)
        and VN_FIRST <= version <= VN_LAST
        and mode == MODE_CLIENT
    )


def unix_to_ntp(seconds: int) -> int:
    """Convert seconds since 1970 to seconds since 1900."""
    return seconds + FROM_1900_TO_1970


def ntp_to_unix(seconds: int) -> int:
    """Convert seconds since 1900 to seconds since 1970."""
    return seconds - FROM_1900_TO_1970


def int_to_bytes(value: int) -> bytes:
    """Encode the low 32 bits of an integer as four big-endian bytes."""
    return (value & 0xFFFFFFFF).to_bytes(4, "big")


def generate(request: bytes, now: int | None = None) -> bytes:
    """Build the 48-byte reply to a client request.

    ``now`` is the current time in nanoseconds since the Unix epoch;
    the system clock is used when it is omitted.
    """
    if len(request) < PACKET_SIZE:
        raise InvalidFormatError(
            f"request is {len(request)} bytes, expected at least {PACKET_SIZE}"
        )
    if now is None:
        now = time.time_ns()
    unix_seconds, nanos = divmod(now, _NANOS_PER_SECOND)
    seconds = int_to_bytes(unix_to_ntp(unix_seconds))
    fraction = int_to_bytes(unix_to_ntp(nanos))

    reply = bytearray(PACKET_SIZE)
    reply[0] = (request[0] & 0x38) + MODE_SERVER
    reply[1] = 1
    reply[2] = request[2]
    reply[3] = PRECISION
    reply[12:16] = REFERENCE_ID
    reply[16:20] = seconds
    reply[24:32] = request[40:48]
    reply[32:36] = seconds
    reply[36:40] = fraction
    reply[40:48] = reply[32:40]
    return bytes(reply)


def serve(request: bytes, now: int | None = None) -> bytes:
    """Validate a request and return the reply for it."""
    if not valid_format(request):
        raise InvalidFormatError("invalid format.")
    return generate(request, now)