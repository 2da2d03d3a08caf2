"""리슨 주소 파싱 테스트."""

import socket

import pytest

from conntrack_exporter.utils.network import bind_socket, parse_listen_address


@pytest.mark.parametrize("address,expected", [
    (":9100", ("0.0.0.0", 9100)),
    ("0.0.0.0:9100", ("0.0.0.0", 9100)),
    ("127.0.0.1:8080", ("127.0.0.1", 8080)),
    ("localhost:9100", ("localhost", 9100)),
    ("[::1]:9100", ("::1", 9100)),
    ("[::]:9100", ("::", 9100)),
])
def test_parse_valid(address, expected):
    assert parse_listen_address(address) == expected


@pytest.mark.parametrize("address", [
    "9100",
    "host:",
    "host:abc",
    ":70000",
    "::1:9100",
    "[::1]9100",
])
def test_parse_invalid(address):
    with pytest.raises(ValueError):
        parse_listen_address(address)


def test_bind_socket_ephemeral_port():
    sock = bind_socket("127.0.0.1", 0)
    try:
        assert sock.family == socket.AF_INET
        assert sock.getsockname()[1] > 0
    finally:
        sock.close()


def test_bind_conflict_raises():
    first = bind_socket("127.0.0.1", 0)
    try:
        port = first.getsockname()[1]
        with pytest.raises(OSError):
            bind_socket("127.0.0.1", port)
    finally:
        first.close()
