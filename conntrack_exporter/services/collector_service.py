"""ConntrackCollectorService - 주기적 conntrack 수집 사이클 루프."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from conntrack_exporter.collector.aggregator import aggregate
from conntrack_exporter.collector.delta import CounterDeltaEngine
from conntrack_exporter.collector.errors import (
    CollectError,
    ReadTimeoutError,
    SourceUnavailableError,
)
from conntrack_exporter.utils.procfs import CONNTRACK_TABLE, ProcFS
from conntrack_exporter.web.metrics import (
    ConntrackMetrics,
    cycle_duration,
    cycles_total,
    last_success,
    tracked_keys,
)

logger = logging.getLogger("conntrack_exporter.services.collector_service")


def _consume_result(future: asyncio.Future) -> None:
    # 버려진 읽기의 예외가 "never retrieved" 경고로 남지 않게 한다
    if not future.cancelled():
        future.exception()


class ConntrackCollectorService:
    """시작 즉시 한 번, 이후 고정 주기로 수집 사이클을 실행한다.

    사이클: Reading -> Aggregating -> Reconciling -> Publishing.
    Reading/Aggregating 실패는 사이클만 중단하며 이전에 게시된 메트릭은 그대로 남는다.
    Reconciling/Publishing 사이에는 await가 없으므로 취소되어도 부분 적용되지 않는다.
    """

    def __init__(
        self,
        procfs: ProcFS,
        metrics: ConntrackMetrics,
        interval: float,
        read_timeout: float = 10.0,
        engine: CounterDeltaEngine | None = None,
    ) -> None:
        """수집 서비스를 초기화한다. procfs, 메트릭 상태, 주기(초)를 주입받는다."""
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval!r}")
        if read_timeout <= 0:
            raise ValueError(f"read_timeout must be positive, got {read_timeout!r}")

        self.procfs       = procfs
        self.metrics      = metrics
        self.interval     = float(interval)
        self.read_timeout = float(read_timeout)
        self.engine       = engine or CounterDeltaEngine()

        self._task: asyncio.Task | None = None
        self._cycle_lock = asyncio.Lock()
        self._pending_read: asyncio.Future | None = None

        self._cycles          = 0
        self._failures        = 0
        self._last_success: float | None = None
        self._last_error: str | None     = None

    async def start(self) -> None:
        """수집 루프 비동기 태스크를 시작한다."""
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        """수집 루프 태스크를 취소하고 종료를 기다린다."""
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _loop(self) -> None:
        """고정 주기로 사이클을 실행하는 메인 루프. 밀린 틱은 건너뛴다."""
        loop     = asyncio.get_running_loop()
        next_run = loop.time()
        while True:
            try:
                await self.run_once()
            except Exception:
                logger.exception("Unexpected error in conntrack collection cycle")

            next_run += self.interval
            now = loop.time()
            if now > next_run:
                missed = int((now - next_run) // self.interval) + 1
                logger.warning(
                    "Collection cycle overran the %.1fs interval; skipping %d tick(s)",
                    self.interval, missed,
                )
                next_run += missed * self.interval
            await asyncio.sleep(next_run - now)

    async def run_once(self) -> bool:
        """수집 사이클 하나를 실행한다. 게시에 성공하면 True를 반환한다.

        동시 호출은 락으로 직렬화되므로 사이클이 겹쳐 실행되지 않는다.
        """
        async with self._cycle_lock:
            started = time.monotonic()
            try:
                raw      = await self._read()
                snapshot = aggregate(raw)
            except CollectError as exc:
                self._record_failure(exc)
                return False

            update = self.engine.reconcile(snapshot)
            self.metrics.publish(snapshot, update)

            elapsed = time.monotonic() - started
            self._cycles      += 1
            self._last_success = time.time()
            self._last_error   = None

            cycles_total.labels(result="success").inc()
            cycle_duration.observe(elapsed)
            last_success.set(self._last_success)
            tracked_keys.set(len(snapshot))

            logger.debug(
                "Published %d keys (%d new, %d with traffic) in %.3fs",
                len(snapshot), len(update.new_keys), len(update.deltas), elapsed,
            )
            return True

    async def _read(self) -> str:
        """conntrack 테이블을 워커 스레드에서 제한 시간 내에 읽는다.

        시간 초과된 읽기의 워커 스레드는 중단할 수 없으므로, 그 읽기가
        끝나기 전에는 새 읽기를 시작하지 않고 사이클을 건너뛴다.
        """
        path = self.procfs.path(CONNTRACK_TABLE)
        if self._pending_read is not None and not self._pending_read.done():
            raise ReadTimeoutError(f"previous read of {path} is still in progress")

        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(None, self.procfs.read_text, CONNTRACK_TABLE)
        future.add_done_callback(_consume_result)
        self._pending_read = future
        try:
            # shield: 시간 초과나 취소가 워커 future를 완료 상태로 만들지 않게 한다
            return await asyncio.wait_for(asyncio.shield(future), timeout=self.read_timeout)
        except asyncio.TimeoutError as exc:
            raise ReadTimeoutError(
                f"reading {path} exceeded {self.read_timeout:.1f}s"
            ) from exc
        except OSError as exc:
            raise SourceUnavailableError(f"cannot read {path}: {exc}") from exc

    def _record_failure(self, exc: CollectError) -> None:
        self._failures  += 1
        self._last_error = f"{exc.reason}: {exc}"
        cycles_total.labels(result=exc.reason).inc()
        logger.warning("Conntrack collection cycle aborted (%s): %s", exc.reason, exc)

    def status(self) -> dict[str, Any]:
        """헬스체크용 수집 상태 요약."""
        return {
            "running":      self.is_running,
            "interval":     self.interval,
            "cycles":       self._cycles,
            "failures":     self._failures,
            "last_success": self._last_success,
            "last_error":   self._last_error,
            "tracked_keys": self.engine.tracked_keys,
            "seen_keys":    self.engine.seen_keys,
        }
