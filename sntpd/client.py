"""Minimal NTP version 4 client."""

from __future__ import annotations

import enum
import socket
import struct
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

_EPOCH_1900 = datetime(1900, 1, 1, tzinfo=timezone.utc)
_HEADER = struct.Struct(">BBBBIII")
_TIMESTAMP = struct.Struct(">II")
MESSAGE_SIZE = _HEADER.size + 4 * _TIMESTAMP.size


class Mode(enum.IntEnum):
    """NTP association modes."""

    RESERVED = 0
    SYMMETRIC_ACTIVE = 1
    SYMMETRIC_PASSIVE = 2
    CLIENT = 3
    SERVER = 4
    BROADCAST = 5
    CONTROL_MESSAGE = 6
    RESERVED_PRIVATE = 7


@dataclass(frozen=True)
class NtpTime:
    """A 64-bit NTP timestamp: seconds and fraction since 1900."""

    seconds: int = 0
    fraction: int = 0

    def to_datetime(self) -> datetime:
        """Return the timestamp as an aware UTC datetime."""
        nanos = self.seconds * 1_000_000_000 + ((self.fraction * 1_000_000_000) >> 32)
        return _EPOCH_1900 + timedelta(microseconds=nanos // 1000)


@dataclass
class Message:
    """An NTP packet without the optional authentication fields."""

    li_vn_mode: int = 0
    stratum: int = 0
    poll: int = 0
    precision: int = 0
    root_delay: int = 0
    root_dispersion: int = 0
    reference_id: int = 0
    reference_time: NtpTime = field(default_factory=NtpTime)
    origin_time: NtpTime = field(default_factory=NtpTime)
    receive_time: NtpTime = field(default_factory=NtpTime)
    transmit_time: NtpTime = field(default_factory=NtpTime)

    def pack(self) -> bytes:
        """Encode the message as 48 big-endian bytes."""
        parts = [
            _HEADER.pack(
                self.li_vn_mode,
                self.stratum,
                self.poll,
                self.precision,
                self.root_delay,
                self.root_dispersion,
                self.reference_id,
            )
        ]
        parts.extend(
            _TIMESTAMP.pack(stamp.seconds, stamp.fraction)
            for stamp in (
                self.reference_time,
                self.origin_time,
                self.receive_time,
                self.transmit_time,
            )
        )
        return b"".join(parts)

    @classmethod
    def unpack(cls, data: bytes) -> "Message":
        """Decode a message from at least 48 bytes."""
        if len(data) < MESSAGE_SIZE:
            raise ValueError(
                f"NTP message needs {MESSAGE_SIZE} bytes, got {len(data)}"
            )
        header = _HEADER.unpack_from(data, 0)
        stamps = [
            NtpTime(*_TIMESTAMP.unpack_from(data, _HEADER.size + index * _TIMESTAMP.size))
            for index in range(4)
        ]
        return cls(*header, *stamps)


def _with_version(li_vn_mode: int, version: int) -> int:
    return ((li_vn_mode & 0xC7) | (version << 3)) & 0xFF


def _with_mode(li_vn_mode: int, mode: Mode) -> int:
    return (li_vn_mode & 0xF8) | int(mode)


def query(host: str, port: int = 123, timeout: float = 5.0) -> datetime:
    """Ask an NTP server for the time and return its receive timestamp.

    The result is an aware datetime in the local time zone. Network
    failures and timeouts raise ``OSError``.
    """
    family, socktype, proto, _, address = socket.getaddrinfo(
        host, port, type=socket.SOCK_DGRAM
    )[0]
    with socket.socket(family, socktype, proto) as sock:
        sock.settimeout(timeout)
        sock.connect(address)
        request = Message(li_vn_mode=_with_version(_with_mode(0, Mode.CLIENT), 4))
        sock.send(request.pack())
        reply = Message.unpack(sock.recv(MESSAGE_SIZE))
    return reply.receive_time.to_datetime().astimezone()