"""/proc/net/nf_conntrack 라인 파서.

라인 형식은 엄격한 key=value 형식이 아니다. 몇 개의 위치 토큰 뒤에
반복되는 key=value 토큰이 이어진다:

    ipv4 2 tcp 6 431999 ESTABLISHED src=... dst=... sport=... dport=...
      packets=... bytes=... src=... dst=... sport=... dport=... packets=... bytes=...
      [mark=.. zone=.. use=..]

첫 번째 등장은 original 방향, 두 번째 등장은 reply 방향이다.
방향 표시가 따로 없으므로 이 순서 규칙을 바꾸면 sent/reply 의미가 뒤바뀐다.

IP 형식은 검증하지 않는다. 주소는 불투명한 라벨 값으로 취급된다.
"""

from __future__ import annotations

from conntrack_exporter.conntrack.models import (
    ConntrackEntry,
    ConntrackTuple,
    DirectionStats,
)

_TUPLE_KEYS   = ("src", "dst", "sport", "dport")
_COUNTER_KEYS = ("packets", "bytes")


def _parse_uint(value: str) -> int:
    """10진수 부호 없는 정수를 파싱한다. 실패하면 0을 반환한다."""
    if not (value.isascii() and value.isdigit()):
        return 0
    return int(value, 10)


def _nth(values: list, index: int, default):
    return values[index] if len(values) > index else default


def parse_line(line: str) -> ConntrackEntry | None:
    """nf_conntrack 한 줄을 ConntrackEntry로 파싱한다.

    누락된 필드에 관대하다:
      - packets/bytes가 없으면 (nf_conntrack_acct=0) 카운터는 0
      - 포트가 없는 프로토콜(icmp)은 sport/dport가 빈 문자열

    Returns:
        파싱된 엔트리. L3 프로토콜 또는 original src/dst가 없으면 None.
    """
    fields = line.split()
    if not fields:
        return None

    # 위치 토큰: 0번은 L3 프로토콜, 2번은 L4 프로토콜
    l3_proto = fields[0]
    l4_proto = fields[2] if len(fields) >= 3 else ""

    seen: dict[str, list] = {key: [] for key in _TUPLE_KEYS + _COUNTER_KEYS}
    for token in fields:
        key, sep, value = token.partition("=")
        if not sep or key not in seen:
            continue
        if key in _COUNTER_KEYS:
            seen[key].append(_parse_uint(value))
        else:
            seen[key].append(value)

    original = ConntrackTuple(*(_nth(seen[k], 0, "") for k in _TUPLE_KEYS))
    reply    = ConntrackTuple(*(_nth(seen[k], 1, "") for k in _TUPLE_KEYS))

    if not l3_proto or not original.src or not original.dst:
        return None

    return ConntrackEntry(
        l3_proto=l3_proto,
        l4_proto=l4_proto,
        original=original,
        reply=reply,
        original_stats=DirectionStats(
            packets=_nth(seen["packets"], 0, 0),
            bytes=_nth(seen["bytes"], 0, 0),
        ),
        reply_stats=DirectionStats(
            packets=_nth(seen["packets"], 1, 0),
            bytes=_nth(seen["bytes"], 1, 0),
        ),
    )
