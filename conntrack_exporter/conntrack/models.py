"""nf_conntrack 라인의 정규화 모델 (ConntrackEntry)."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ConntrackTuple:
    """conntrack 엔트리의 한 방향 튜플.

    포트가 없는 프로토콜(icmp 등)은 sport/dport가 빈 문자열이다 ("0"이 아님).
    """
    src: str   = ""
    dst: str   = ""
    sport: str = ""
    dport: str = ""


@dataclass(frozen=True)
class DirectionStats:
    """한 방향의 packets/bytes 카운터.

    nf_conntrack_acct가 꺼져 있으면 커널이 카운터를 기록하지 않으므로 0이 된다.
    이 경우는 실제 트래픽 0과 구분할 수 없다.
    """
    packets: int = 0
    bytes:   int = 0


@dataclass(frozen=True)
class ConntrackEntry:
    """/proc/net/nf_conntrack 한 줄의 파싱 결과.

    l3/l4 프로토콜은 파일에 나타난 문자열 그대로 보관한다 (예: "ipv4", "tcp").
    """
    l3_proto: str
    l4_proto: str
    original:       ConntrackTuple = field(default_factory=ConntrackTuple)
    reply:          ConntrackTuple = field(default_factory=ConntrackTuple)
    original_stats: DirectionStats = field(default_factory=DirectionStats)
    reply_stats:    DirectionStats = field(default_factory=DirectionStats)

    @property
    def has_ports(self) -> bool:
        """원본 방향 튜플에 L4 포트(sport/dport)가 있는지 여부."""
        return bool(self.original.dport or self.original.sport)
