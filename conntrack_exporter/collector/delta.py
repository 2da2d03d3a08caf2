"""CounterDeltaEngine: 연속 스냅샷을 단조 증가 누적값으로 변환한다."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field

from conntrack_exporter.collector.aggregator import (
    ZERO,
    AggregatedValues,
    AggregationKey,
    Snapshot,
)

logger = logging.getLogger("conntrack_exporter.collector.delta")


@dataclass
class TotalsUpdate:
    """한 사이클에서 단조 누적 카운터에 더할 값.

    new_keys
      프로세스 시작 후 처음 관측된 키. 연결 수 카운터를 1씩 증가시킨다.

    deltas
      키별 양수 증가분. 모든 카운터가 0인 키는 포함하지 않는다.
    """
    new_keys: list[AggregationKey] = field(default_factory=list)
    deltas:   dict[AggregationKey, AggregatedValues] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.new_keys and not self.deltas


class CounterDeltaEngine:
    """이전 스냅샷과 관측된 키 집합을 보유하고 사이클마다 증가분을 계산한다.

    상태 규칙:
      - 처음 보는 키는 연결 수에 1을 더한다. 커널 수준의 신규 연결 여부와는 무관하다.
      - 카운터가 감소하거나 그대로면 아무것도 더하지 않는다 (누적값은 절대 감소하지 않음).
      - 현재 스냅샷에 없는 키는 이전 스냅샷에서 제거된다. 나중에 다시 나타나면
        기준값 0에서 시작하므로 사라지기 전의 트래픽은 다시 계산되지 않는다.
      - 관측된 키 집합은 프로세스 수명 동안 유지된다.

    reconcile()은 단일 락 아래에서 실행되며 전부 적용되거나 전혀 적용되지 않는다.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._previous: dict[AggregationKey, AggregatedValues] = {}
        self._seen: set[AggregationKey] = set()

    def reconcile(self, current: Snapshot) -> TotalsUpdate:
        """현재 스냅샷을 이전 스냅샷과 비교해 TotalsUpdate를 반환하고 상태를 교체한다."""
        with self._lock:
            update   = TotalsUpdate()
            new_seen = set()

            for key, values in current.items():
                if key not in self._seen:
                    update.new_keys.append(key)
                    new_seen.add(key)

                delta = values.positive_delta(self._previous.get(key, ZERO))
                if not delta.is_zero():
                    update.deltas[key] = delta

            # 통째로 교체: 사라진 키는 기준값을 잃는다
            self._seen.update(new_seen)
            self._previous = dict(current)

        logger.debug(
            "Reconciled %d keys: %d new, %d with traffic",
            len(current), len(update.new_keys), len(update.deltas),
        )
        return update

    @property
    def tracked_keys(self) -> int:
        """이전 스냅샷에 남아 있는 키 수."""
        return len(self._previous)

    @property
    def seen_keys(self) -> int:
        """프로세스 시작 후 관측된 전체 키 수."""
        return len(self._seen)
