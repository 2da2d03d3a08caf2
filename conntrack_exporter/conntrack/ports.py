"""목적지 포트 → L7 프로토콜 이름 매핑."""

from __future__ import annotations

UNKNOWN = "unknown"
NOT_APPLICABLE = "na"

# 의도적으로 작고 보수적인 목록
_WELL_KNOWN_PORTS: dict[int, str] = {
    20:   "ftp",
    21:   "ftp",
    22:   "ssh",
    23:   "telnet",
    25:   "smtp",
    53:   "dns",
    80:   "http",
    110:  "pop3",
    143:  "imap",
    389:  "ldap",
    443:  "https",
    465:  "smtp",
    587:  "smtp",
    631:  "ipp",
    993:  "imaps",
    995:  "pop3s",
    3306: "mysql",
    5432: "postgres",
    6379: "redis",
    9200: "elasticsearch",
}


def l7_protocol_from_dport(dport: str) -> str:
    """목적지 포트 문자열에서 짧은 L7 프로토콜 이름을 반환한다.

    표준 포트면 의미 있는 이름 (443 -> "https"), 그 외에는 "unknown".
    포트가 없는 프로토콜은 호출자가 "0"을 넘기며 "na"를 돌려받는다.
    """
    if not dport:
        return UNKNOWN
    if dport == "0":
        return NOT_APPLICABLE
    try:
        port = int(dport)
    except ValueError:
        return UNKNOWN
    return _WELL_KNOWN_PORTS.get(port, UNKNOWN)
