import socket
import threading
from datetime import datetime, timezone

import pytest

from sntpd.client import Message, Mode, query
from sntpd.protocol import REFERENCE_ID, serve
from sntpd.reactor import Reactor
from sntpd.server import SntpHandler, main, split_addr

FIXED_NOW = 1_700_000_000 * 1_000_000_000


def _request(first_byte=0x23, poll=6):
    data = bytearray(48)
    data[0] = first_byte
    data[2] = poll
    data[40:48] = bytes(range(1, 9))
    return bytes(data)


class _Recorder:
    def __init__(self):
        self.sent = []

    def write(self, data, host, port):
        self.sent.append((data, host, port))


@pytest.fixture
def handler():
    instance = SntpHandler(clock=lambda: FIXED_NOW)
    instance.transport = _Recorder()
    return instance


@pytest.fixture
def reactor():
    instance = Reactor(poll_interval=0.05)
    yield instance
    instance.stop()


def test_split_addr_ipv4():
    assert split_addr("127.0.0.1:123") == ("127.0.0.1", 123)


def test_split_addr_ipv6_brackets():
    assert split_addr("[::1]:5000") == ("::1", 5000)


def test_split_addr_bad_port():
    with pytest.raises(ValueError):
        split_addr("127.0.0.1:abc")


def test_split_addr_missing_port():
    with pytest.raises(ValueError):
        split_addr("localhost")


def test_valid_request_is_answered(handler):
    request = _request()
    handler.datagram_received(request, ("127.0.0.1", 4000))
    assert handler.transport.sent == [
        (serve(request, FIXED_NOW), "127.0.0.1", 4000)
    ]


def test_reply_fields(handler):
    request = _request()
    handler.datagram_received(request, ("127.0.0.1", 4000))
    reply = handler.transport.sent[0][0]
    assert reply[0] & 0x07 == Mode.SERVER
    assert reply[0] & 0x38 == request[0] & 0x38
    assert reply[2] == request[2]
    assert reply[12:16] == REFERENCE_ID
    assert reply[24:32] == request[40:48]


def test_string_address_is_split(handler):
    handler.datagram_received(_request(), "10.0.0.1:7000")
    assert handler.transport.sent[0][1:] == ("10.0.0.1", 7000)


def test_invalid_mode_is_ignored(handler):
    handler.datagram_received(_request(first_byte=0x24), ("127.0.0.1", 4000))
    assert handler.transport.sent == []


def test_short_request_is_ignored(handler):
    handler.datagram_received(_request()[:10], ("127.0.0.1", 4000))
    assert handler.transport.sent == []


def test_end_to_end_over_udp(reactor):
    _, port = reactor.listen_udp(0, SntpHandler(clock=lambda: FIXED_NOW), "127.0.0.1")
    threading.Thread(target=reactor.run, daemon=True).start()
    request = _request()
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as client:
        client.settimeout(2)
        client.sendto(request, ("127.0.0.1", port))
        data, _ = client.recvfrom(512)
    message = Message.unpack(data)
    assert data == serve(request, FIXED_NOW)
    assert message.stratum == 1
    assert message.transmit_time == message.receive_time


def test_client_query_against_server(reactor):
    _, port = reactor.listen_udp(0, SntpHandler(clock=lambda: FIXED_NOW), "127.0.0.1")
    threading.Thread(target=reactor.run, daemon=True).start()
    result = query("127.0.0.1", port, 2.0)
    expected = datetime.fromtimestamp(FIXED_NOW // 1_000_000_000, timezone.utc)
    assert int(result.timestamp()) == int(expected.timestamp())


def test_main_rejects_bad_port():
    with pytest.raises(SystemExit):
        main(["--port", "not-a-port"])