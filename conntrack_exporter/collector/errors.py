"""수집 사이클 실패 유형."""

from __future__ import annotations


class CollectError(Exception):
    """한 수집 사이클을 중단시키는 실패. 프로세스에는 치명적이지 않다."""

    reason: str = "error"


class SourceUnavailableError(CollectError):
    """conntrack 테이블을 읽을 수 없음 (권한, procfs 미마운트 등)."""

    reason = "source_unavailable"


class EmptySnapshotError(CollectError):
    """유효한 레코드가 하나도 파싱되지 않음 (형식 불일치 또는 빈 테이블)."""

    reason = "empty_snapshot"


class ReadTimeoutError(SourceUnavailableError):
    """conntrack 테이블 읽기가 제한 시간을 초과함."""

    reason = "timeout"
