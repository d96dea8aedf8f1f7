"""SNTP server: answers client requests received over UDP."""

from __future__ import annotations

import argparse
import time
from typing import Any, Callable, Sequence

from sntpd.protocol import InvalidFormatError, serve
from sntpd.reactor import DatagramHandler, Reactor

DEFAULT_PORT = 123


def split_addr(addr: str) -> tuple[str, int]:
    """Split ``host:port`` (or ``[v6-host]:port``) into host and integer port."""
    host, sep, port = addr.rpartition(":")
    if not sep or not host:
        raise ValueError(f"address {addr!r} has no port")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host, int(port)


class SntpHandler(DatagramHandler):
    """Replies to every valid SNTP request with the current time."""

    def __init__(self, clock: Callable[[], int] | None = None) -> None:
        super().__init__()
        self._clock = clock or time.time_ns

    def datagram_received(self, data: bytes, addr: Any) -> None:
        """Answer ``data`` if it is a valid request; ignore it otherwise."""
        try:
            reply = serve(data, self._clock())
        except InvalidFormatError:
            return
        host, port = split_addr(addr) if isinstance(addr, str) else addr[:2]
        self.write(reply, host, port)


def main(argv: Sequence[str] | None = None) -> int:
    """Run the SNTP server until interrupted."""
    parser = argparse.ArgumentParser(prog="sntpd", description="Serve SNTP time over UDP.")
    parser.add_argument("--host", default="", help="address to bind (default: all)")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="UDP port")
    args = parser.parse_args(argv)

    reactor = Reactor()
    reactor.listen_udp(args.port, SntpHandler(), args.host)
    try:
        reactor.run()
    except KeyboardInterrupt:
        reactor.stop()
    return 0