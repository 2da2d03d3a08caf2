"""목적지 포트 → L7 프로토콜 매핑 테스트."""

import pytest

from conntrack_exporter.conntrack.ports import l7_protocol_from_dport


@pytest.mark.parametrize("dport,expected", [
    ("443", "https"),
    ("80", "http"),
    ("53", "dns"),
    ("22", "ssh"),
    ("20", "ftp"),
    ("21", "ftp"),
    ("25", "smtp"),
    ("465", "smtp"),
    ("587", "smtp"),
    ("5432", "postgres"),
    ("9200", "elasticsearch"),
])
def test_well_known_ports(dport, expected):
    assert l7_protocol_from_dport(dport) == expected


def test_unregistered_port_is_unknown():
    assert l7_protocol_from_dport("51514") == "unknown"


def test_empty_port_is_unknown():
    assert l7_protocol_from_dport("") == "unknown"


def test_zero_port_is_not_applicable():
    assert l7_protocol_from_dport("0") == "na"


def test_non_numeric_port_is_unknown():
    assert l7_protocol_from_dport("https") == "unknown"
