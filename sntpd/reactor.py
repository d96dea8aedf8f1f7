"""A small threaded network reactor for UDP, TCP and Unix stream sockets.

Handlers are registered with :class:`Reactor` before :meth:`Reactor.run`
is called. Every incoming datagram or connection is handed to its handler
on a separate daemon thread, and an exception raised by a handler is
logged and otherwise ignored so one bad request cannot stop the server.
"""

from __future__ import annotations

import abc
import contextlib
import logging
import os
import socket
import threading
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)

UDP_BUFFER_SIZE = 512
TCP_BUFFER_SIZE = 1024
UNIX_BUFFER_SIZE = 512


def _guarded(func: Callable[..., Any], *args: Any) -> None:
    try:
        func(*args)
    except Exception:
        logger.exception("handler failed")


def _dispatch(func: Callable[..., Any], *args: Any) -> None:
    threading.Thread(target=_guarded, args=(func, *args), daemon=True).start()


class UdpTransport:
    """Sends datagrams through a bound UDP socket."""

    def __init__(self, sock: socket.socket) -> None:
        self.sock = sock

    def write(self, data: bytes | str, host: str, port: int) -> None:
        """Send ``data`` to ``host``:``port``; delivery failures are logged."""
        payload = data.encode() if isinstance(data, str) else bytes(data)
        try:
            self.sock.sendto(payload, (host, port))
        except OSError as exc:
            logger.debug("could not send to %s:%s: %s", host, port, exc)


class DatagramHandler(abc.ABC):
    """Receives datagrams from a UDP listener and can answer through it."""

    def __init__(self, transport: UdpTransport | None = None) -> None:
        self.transport = transport

    @abc.abstractmethod
    def datagram_received(self, data: bytes, addr: Any) -> None:
        """Handle one datagram received from ``addr``."""

    def write(self, data: bytes | str, host: str, port: int) -> None:
        """Send ``data`` through the transport this handler listens on."""
        if self.transport is None:
            raise RuntimeError("handler is not attached to a transport")
        self.transport.write(data, host, port)


class StreamHandler(abc.ABC):
    """Receives the first chunk of data of each accepted stream connection."""

    @abc.abstractmethod
    def data_received(self, data: bytes, conn: socket.socket) -> None:
        """Handle ``data`` read from ``conn``; the connection is closed afterwards."""


@dataclass
class _LaterCall:
    milliseconds: int
    callback: Callable[[], Any]


class Reactor:
    """Owns the listening sockets and runs their receive loops."""

    def __init__(self, poll_interval: float = 0.2, read_timeout: float = 5.0) -> None:
        self._poll_interval = poll_interval
        self._read_timeout = read_timeout
        self._udp: dict[int, tuple[socket.socket, DatagramHandler]] = {}
        self._tcp: dict[int, tuple[socket.socket, StreamHandler]] = {}
        self._unix: dict[str, tuple[socket.socket, StreamHandler]] = {}
        self._timers: deque[_LaterCall] = deque()
        self._threads: list[threading.Thread] = []
        self._stopped = threading.Event()

    @staticmethod
    def _family(host: str) -> socket.AddressFamily:
        return socket.AF_INET6 if ":" in host else socket.AF_INET

    def listen_udp(
        self, port: int, handler: DatagramHandler, host: str = ""
    ) -> tuple[str, int]:
        """Bind a UDP socket, attach ``handler`` to it and return the bound address."""
        sock = socket.socket(self._family(host), socket.SOCK_DGRAM)
        try:
            sock.bind((host, port))
        except OSError:
            sock.close()
            raise
        sock.settimeout(self._poll_interval)
        address = sock.getsockname()[:2]
        previous = self._udp.pop(address[1], None)
        if previous is not None:
            previous[0].close()
        self._udp[address[1]] = (sock, handler)
        handler.transport = UdpTransport(sock)
        return address

    def listen_tcp(
        self, port: int, handler: StreamHandler, host: str = ""
    ) -> tuple[str, int]:
        """Listen for TCP connections for ``handler`` and return the bound address."""
        sock = socket.socket(self._family(host), socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, port))
            sock.listen()
        except OSError:
            sock.close()
            raise
        sock.settimeout(self._poll_interval)
        address = sock.getsockname()[:2]
        previous = self._tcp.pop(address[1], None)
        if previous is not None:
            previous[0].close()
        self._tcp[address[1]] = (sock, handler)
        return address

    def listen_unix(self, path: str | os.PathLike[str], handler: StreamHandler) -> str:
        """Listen on a Unix stream socket at ``path`` for ``handler``."""
        path = os.fspath(path)
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.bind(path)
            sock.listen()
        except OSError:
            sock.close()
            raise
        sock.settimeout(self._poll_interval)
        previous = self._unix.pop(path, None)
        if previous is not None:
            previous[0].close()
        self._unix[path] = (sock, handler)
        return path

    def call_later(self, milliseconds: int, callback: Callable[[], Any]) -> None:
        """Queue ``callback`` to run ``milliseconds`` after the previous one, once running."""
        self._timers.append(_LaterCall(milliseconds, callback))

    def run(self) -> None:
        """Start every receive loop, run queued calls in order, then block until stopped."""
        self._stopped.clear()
        loops: list[tuple[Callable[..., None], tuple[Any, ...]]] = [
            (self._serve_udp, (sock, handler)) for sock, handler in self._udp.values()
        ]
        loops += [
            (self._serve_stream, (sock, handler, TCP_BUFFER_SIZE))
            for sock, handler in self._tcp.values()
        ]
        loops += [
            (self._serve_stream, (sock, handler, UNIX_BUFFER_SIZE))
            for sock, handler in self._unix.values()
        ]
        self._threads = [
            threading.Thread(target=target, args=args, daemon=True)
            for target, args in loops
        ]
        for thread in self._threads:
            thread.start()
        try:
            while self._timers:
                call = self._timers.popleft()
                if self._stopped.wait(call.milliseconds / 1000):
                    break
                call.callback()
            self._stopped.wait()
        finally:
            self.stop()
            for thread in self._threads:
                thread.join(self._poll_interval * 5)
            self._threads = []

    def stop(self) -> None:
        """Stop the receive loops and close every listening socket."""
        self._stopped.set()
        for sock, _ in (*self._udp.values(), *self._tcp.values()):
            sock.close()
        for path, (sock, _) in self._unix.items():
            sock.close()
            with contextlib.suppress(OSError):
                os.unlink(path)

    def _serve_udp(self, sock: socket.socket, handler: DatagramHandler) -> None:
        while not self._stopped.is_set():
            try:
                data, addr = sock.recvfrom(UDP_BUFFER_SIZE)
            except socket.timeout:
                continue
            except OSError:
                return
            if data:
                _dispatch(handler.datagram_received, data, addr)

    def _serve_stream(
        self, listener: socket.socket, handler: StreamHandler, size: int
    ) -> None:
        while not self._stopped.is_set():
            try:
                conn, _ = listener.accept()
            except socket.timeout:
                continue
            except OSError:
                if listener.fileno() == -1:
                    return
                continue
            _dispatch(self._handle_stream, conn, handler, size)

    def _handle_stream(
        self, conn: socket.socket, handler: StreamHandler, size: int
    ) -> None:
        with conn:
            conn.settimeout(self._read_timeout)
            try:
                data = conn.recv(size)
            except OSError:
                return
            if data:
                handler.data_received(data, conn)