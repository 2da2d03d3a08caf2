"""리슨 주소 파싱과 소켓 사전 바인딩."""

from __future__ import annotations

import socket


def parse_listen_address(address: str) -> tuple[str, int]:
    """리슨 주소를 (host, port)로 변환한다.

    지원 형식: ":9100", "0.0.0.0:9100", "localhost:9100", "[::1]:9100".
    호스트가 비어 있으면 모든 인터페이스("0.0.0.0")를 의미한다.

    Raises:
        ValueError: 포트가 없거나 범위를 벗어난 경우.
    """
    address = address.strip()
    if address.startswith("["):
        host, sep, rest = address[1:].partition("]")
        if not sep or not rest.startswith(":"):
            raise ValueError(f"invalid listen address: {address!r}")
        port_str = rest[1:]
    else:
        host, sep, port_str = address.rpartition(":")
        if not sep:
            raise ValueError(f"invalid listen address (missing port): {address!r}")
        if ":" in host:
            raise ValueError(f"IPv6 listen address must be bracketed: {address!r}")

    try:
        port = int(port_str)
    except ValueError:
        raise ValueError(f"invalid port in listen address: {address!r}") from None
    if not 0 <= port <= 65535:
        raise ValueError(f"port out of range in listen address: {address!r}")

    return host or "0.0.0.0", port


def bind_socket(host: str, port: int) -> socket.socket:
    """TCP 리슨 소켓을 만들고 바인딩한다. 실패하면 OSError를 전파한다."""
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        sock.listen(128)
        sock.setblocking(False)
    except OSError:
        sock.close()
        raise
    return sock
