"""net.netfilter.nf_conntrack_acct sysctl 읽기/설정.

값이 1이면 커널이 /proc/net/nf_conntrack에 packets/bytes 카운터를 기록한다.
"""

from __future__ import annotations

from conntrack_exporter.utils.procfs import ProcFS

NF_CONNTRACK_ACCT = "sys/net/netfilter/nf_conntrack_acct"


def read_nf_conntrack_acct(procfs: ProcFS) -> int:
    """현재 nf_conntrack_acct 값을 반환한다.

    Raises:
        OSError: 파일을 읽을 수 없는 경우.
        ValueError: 값이 비어 있거나 정수가 아닌 경우.
    """
    value = procfs.read_text(NF_CONNTRACK_ACCT).strip()
    if not value:
        raise ValueError(f"{procfs.path(NF_CONNTRACK_ACCT)} is empty")
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(
            f"invalid {procfs.path(NF_CONNTRACK_ACCT)} value {value!r}"
        ) from exc


def configure_nf_conntrack_acct(procfs: ProcFS) -> None:
    """nf_conntrack_acct=1 설정을 시도하고 다시 읽어 검증한다.

    보통 root 권한이 필요하다. 실패하면 호출자가 경고만 남기고 계속 실행한다.
    """
    procfs.write_text(NF_CONNTRACK_ACCT, "1\n")

    value = read_nf_conntrack_acct(procfs)
    if value != 1:
        raise ValueError(
            f"failed to set {procfs.path(NF_CONNTRACK_ACCT)} to 1 (current={value})"
        )
