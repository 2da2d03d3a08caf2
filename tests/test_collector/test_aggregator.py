"""스냅샷 집계 단위 테스트."""

import pytest

from conntrack_exporter.collector.aggregator import (
    LABEL_NAMES,
    AggregatedValues,
    AggregationKey,
    aggregate,
)
from conntrack_exporter.collector.errors import EmptySnapshotError
from conntrack_exporter.conntrack.parser import parse_line

from tests.samples import ICMP_LINE, SAMPLE_LINE, tcp_line

HTTPS_KEY = AggregationKey(
    src="10.0.0.5",
    dst="93.184.216.34",
    l3_proto="ipv4",
    l4_proto="tcp",
    dport="443",
    l7_proto="https",
)


class TestAggregationKey:
    def test_source_port_excluded(self):
        a = AggregationKey.from_entry(parse_line(tcp_line(sport=51514)))
        b = AggregationKey.from_entry(parse_line(tcp_line(sport=51520)))
        assert a == b

    def test_portless_sentinels(self):
        key = AggregationKey.from_entry(parse_line(ICMP_LINE))
        assert key.dport == "0"
        assert key.l7_proto == "na"
        assert key.l4_proto == "icmp"

    def test_portless_sentinels_any_l4(self):
        line = "ipv4 2 gre 47 100 src=10.0.0.1 dst=10.0.0.2 packets=1 bytes=10"
        key = AggregationKey.from_entry(parse_line(line))
        assert (key.dport, key.l7_proto) == ("0", "na")

    def test_unknown_service(self):
        key = AggregationKey.from_entry(parse_line(tcp_line(dport=8081)))
        assert key.dport == "8081"
        assert key.l7_proto == "unknown"

    def test_label_values_order(self):
        assert LABEL_NAMES == ("src", "dst", "l3protocol", "l4protocol", "l7protocol", "dport")
        assert HTTPS_KEY.label_values() == (
            "10.0.0.5", "93.184.216.34", "ipv4", "tcp", "https", "443",
        )


class TestAggregate:
    def test_single_line(self):
        snapshot = aggregate(SAMPLE_LINE)
        assert dict(snapshot) == {HTTPS_KEY: AggregatedValues(10, 1000, 8, 900)}

    def test_lines_differing_by_sport_merge(self):
        raw = "\n".join([SAMPLE_LINE, SAMPLE_LINE.replace("sport=51514", "sport=51520")])
        snapshot = aggregate(raw)
        assert len(snapshot) == 1
        assert snapshot[HTTPS_KEY] == AggregatedValues(20, 2000, 16, 1800)

    def test_key_collapse_sums_counters(self):
        raw = "\n".join([
            tcp_line(sport=1000, packets=1, nbytes=10, reply_packets=2, reply_bytes=20),
            tcp_line(sport=2000, packets=3, nbytes=30, reply_packets=4, reply_bytes=40),
        ])
        snapshot = aggregate(raw)
        assert snapshot[HTTPS_KEY] == AggregatedValues(4, 40, 6, 60)

    def test_distinct_keys_kept_apart(self):
        raw = "\n".join([SAMPLE_LINE, tcp_line(dport=80), ICMP_LINE])
        snapshot = aggregate(raw)
        assert len(snapshot) == 3
        assert {k.l7_proto for k in snapshot} == {"https", "http", "na"}

    def test_malformed_and_blank_lines_skipped(self):
        raw = "\n".join(["", "garbage", "   ", SAMPLE_LINE, "ipv4 2 tcp 6 src=only"])
        snapshot = aggregate(raw)
        assert list(snapshot) == [HTTPS_KEY]

    def test_empty_input_fails(self):
        with pytest.raises(EmptySnapshotError):
            aggregate("")

    def test_no_valid_lines_fails(self):
        with pytest.raises(EmptySnapshotError):
            aggregate("header line\nnot conntrack\n\n")

    def test_snapshot_is_read_only(self):
        snapshot = aggregate(SAMPLE_LINE)
        with pytest.raises(TypeError):
            snapshot[HTTPS_KEY] = AggregatedValues()


class TestAggregatedValues:
    def test_positive_delta_clamps_regression(self):
        prev = AggregatedValues(sent_packets=100, sent_bytes=10)
        cur  = AggregatedValues(sent_packets=40, sent_bytes=15)
        assert cur.positive_delta(prev) == AggregatedValues(sent_packets=0, sent_bytes=5)

    def test_is_zero(self):
        assert AggregatedValues().is_zero()
        assert not AggregatedValues(reply_bytes=1).is_zero()
