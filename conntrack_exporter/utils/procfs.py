"""procfs 마운트 포인트에 대한 작은 헬퍼.

--path.procfs를 임의의 디렉터리로 지정하면 실제 커널 없이도
동일한 레이아웃의 파일로 익스포터를 시험할 수 있다.
"""

from __future__ import annotations

from pathlib import Path

CONNTRACK_TABLE = "net/nf_conntrack"


class ProcFS:
    """procfs 루트 기준 상대 경로 읽기/쓰기."""

    def __init__(self, root: str | Path = "/proc") -> None:
        self.root = Path(root)

    def path(self, rel: str) -> Path:
        return self.root / rel

    def read_text(self, rel: str) -> str:
        """상대 경로 파일을 읽는다. 실패하면 OSError를 그대로 전파한다."""
        return self.path(rel).read_text(encoding="utf-8", errors="replace")

    def write_text(self, rel: str, data: str) -> None:
        self.path(rel).write_text(data, encoding="utf-8")

    def __repr__(self) -> str:
        return f"<ProcFS root={str(self.root)!r}>"
