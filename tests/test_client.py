import socket
import threading
from datetime import datetime, timedelta, timezone

import pytest

from sntpd.client import Message, Mode, NtpTime, query
from sntpd.protocol import FROM_1900_TO_1970, serve


def test_ntp_time_zero_is_1900():
    assert NtpTime(0, 0).to_datetime() == datetime(1900, 1, 1, tzinfo=timezone.utc)


def test_ntp_time_unix_epoch():
    assert NtpTime(FROM_1900_TO_1970, 0).to_datetime() == datetime(
        1970, 1, 1, tzinfo=timezone.utc
    )


def test_ntp_time_half_second_fraction():
    base = NtpTime(FROM_1900_TO_1970, 0).to_datetime()
    assert NtpTime(FROM_1900_TO_1970, 2**31).to_datetime() - base == timedelta(
        milliseconds=500
    )


def test_message_pack_length_and_round_trip():
    message = Message(
        li_vn_mode=(4 << 3) | Mode.CLIENT,
        stratum=2,
        poll=6,
        precision=0xEC,
        root_delay=10,
        root_dispersion=20,
        reference_id=30,
        reference_time=NtpTime(1, 2),
        origin_time=NtpTime(3, 4),
        receive_time=NtpTime(5, 6),
        transmit_time=NtpTime(7, 8),
    )
    data = message.pack()
    assert len(data) == 48
    assert Message.unpack(data) == message


def test_message_pack_layout():
    data = Message(li_vn_mode=Mode.CLIENT, transmit_time=NtpTime(9, 10)).pack()
    assert data[0] == Mode.CLIENT
    assert data[40:44] == (9).to_bytes(4, "big")
    assert data[44:48] == (10).to_bytes(4, "big")


def test_message_unpack_too_short():
    with pytest.raises(ValueError):
        Message.unpack(bytes(47))


@pytest.fixture
def udp_server():
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    received = []

    def run():
        data, addr = sock.recvfrom(512)
        received.append(data)
        sock.sendto(serve(data, 0), addr)

    thread = threading.Thread(target=run, daemon=True)
    thread.start()
    yield sock.getsockname()[1], received
    thread.join(timeout=2)
    sock.close()


def test_query_times_out():
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as silent:
        silent.bind(("127.0.0.1", 0))
        port = silent.getsockname()[1]
        with pytest.raises(OSError):
            query("127.0.0.1", port, timeout=0.2)