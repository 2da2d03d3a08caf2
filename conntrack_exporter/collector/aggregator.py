"""conntrack 원시 텍스트 → 집계 스냅샷.

집계 키는 src, dst, l3, l4, dport, l7 6-튜플이다. 소스 포트는 키에서 제외되므로
임시 소스 포트만 다른 엔트리들은 하나의 키로 합쳐진다.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from conntrack_exporter.collector.errors import EmptySnapshotError
from conntrack_exporter.conntrack.models import ConntrackEntry
from conntrack_exporter.conntrack.parser import parse_line
from conntrack_exporter.conntrack.ports import NOT_APPLICABLE, l7_protocol_from_dport

logger = logging.getLogger("conntrack_exporter.collector.aggregator")

# 모든 메트릭에 고정된 라벨 순서
LABEL_NAMES: tuple[str, ...] = ("src", "dst", "l3protocol", "l4protocol", "l7protocol", "dport")

# 포트가 없는 프로토콜에 쓰는 값
NO_PORT = "0"


@dataclass(frozen=True)
class AggregationKey:
    """스냅샷 집계 키. frozen이므로 dict 키로 사용한다."""
    src:      str
    dst:      str
    l3_proto: str
    l4_proto: str
    dport:    str
    l7_proto: str

    @classmethod
    def from_entry(cls, entry: ConntrackEntry) -> AggregationKey:
        """엔트리에서 키를 만든다. 포트가 없으면 dport="0", l7="na"로 고정한다."""
        if entry.has_ports:
            dport = entry.original.dport
            l7    = l7_protocol_from_dport(dport)
        else:
            dport = NO_PORT
            l7    = NOT_APPLICABLE
        return cls(
            src=entry.original.src,
            dst=entry.original.dst,
            l3_proto=entry.l3_proto,
            l4_proto=entry.l4_proto,
            dport=dport,
            l7_proto=l7,
        )

    def label_values(self) -> tuple[str, ...]:
        """LABEL_NAMES 순서의 라벨 값."""
        return (self.src, self.dst, self.l3_proto, self.l4_proto, self.l7_proto, self.dport)


@dataclass(frozen=True)
class AggregatedValues:
    """한 키에 속한 모든 엔트리의 방향별 카운터 합."""
    sent_packets:  int = 0
    sent_bytes:    int = 0
    reply_packets: int = 0
    reply_bytes:   int = 0

    @classmethod
    def from_entry(cls, entry: ConntrackEntry) -> AggregatedValues:
        return cls(
            sent_packets=entry.original_stats.packets,
            sent_bytes=entry.original_stats.bytes,
            reply_packets=entry.reply_stats.packets,
            reply_bytes=entry.reply_stats.bytes,
        )

    def __add__(self, other: AggregatedValues) -> AggregatedValues:
        return AggregatedValues(
            sent_packets=self.sent_packets + other.sent_packets,
            sent_bytes=self.sent_bytes + other.sent_bytes,
            reply_packets=self.reply_packets + other.reply_packets,
            reply_bytes=self.reply_bytes + other.reply_bytes,
        )

    def positive_delta(self, previous: AggregatedValues) -> AggregatedValues:
        """카운터별로 양수 증가분만 남긴다. 감소나 변화 없음은 0이다.

        감소는 소스 쪽 카운터 리셋(커널 엔트리 교체)으로 간주한다.
        """
        return AggregatedValues(
            sent_packets=max(0, self.sent_packets - previous.sent_packets),
            sent_bytes=max(0, self.sent_bytes - previous.sent_bytes),
            reply_packets=max(0, self.reply_packets - previous.reply_packets),
            reply_bytes=max(0, self.reply_bytes - previous.reply_bytes),
        )

    def is_zero(self) -> bool:
        return not (self.sent_packets or self.sent_bytes or self.reply_packets or self.reply_bytes)


ZERO = AggregatedValues()

Snapshot = Mapping[AggregationKey, AggregatedValues]

EMPTY_SNAPSHOT: Snapshot = MappingProxyType({})


def aggregate(raw: str) -> Snapshot:
    """nf_conntrack 원시 텍스트 전체를 파싱하고 키별로 합산한다.

    파싱할 수 없는 라인(빈 줄, 헤더, 잘못된 행)은 건너뛴다.
    부작용이 없는 순수 함수이며 결과는 읽기 전용 매핑이다.

    Raises:
        EmptySnapshotError: 유효한 레코드가 하나도 없는 경우.
    """
    totals: dict[AggregationKey, AggregatedValues] = {}
    parsed  = 0
    skipped = 0

    for line in raw.splitlines():
        line = line.strip()
        if not line:
            continue

        entry = parse_line(line)
        if entry is None:
            skipped += 1
            continue
        parsed += 1

        key = AggregationKey.from_entry(entry)
        totals[key] = totals.get(key, ZERO) + AggregatedValues.from_entry(entry)

    if skipped:
        logger.debug("Skipped %d unparseable conntrack lines", skipped)

    if parsed == 0:
        raise EmptySnapshotError("no conntrack entries parsed from nf_conntrack")

    logger.debug("Aggregated %d conntrack entries into %d keys", parsed, len(totals))
    return MappingProxyType(totals)
