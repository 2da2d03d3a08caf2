"""conntrack-exporter Prometheus 메트릭 정의."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterator, Mapping

from prometheus_client import (
    GC_COLLECTOR,
    PLATFORM_COLLECTOR,
    PROCESS_COLLECTOR,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily, Metric
from prometheus_client.registry import Collector

from conntrack_exporter.collector.aggregator import (
    EMPTY_SNAPSHOT,
    LABEL_NAMES,
    ZERO,
    AggregatedValues,
    AggregationKey,
    Snapshot,
)
from conntrack_exporter.collector.delta import TotalsUpdate

# (필드명, 메트릭 이름 접미사, 설명)
_VALUE_FIELDS: tuple[tuple[str, str, str], ...] = (
    ("sent_packets",  "sent_packets",  "packets sent (original direction)"),
    ("sent_bytes",    "sent_bytes",    "bytes sent (original direction)"),
    ("reply_packets", "reply_packets", "packets received (reply direction)"),
    ("reply_bytes",   "reply_bytes",   "bytes received (reply direction)"),
)

# --- 익스포터 자체 메트릭 (레지스트리 구성 시 선택적으로 등록) ---
cycles_total = Counter(
    "conntrack_exporter_cycles",
    "Collection cycles by result",
    ["result"],
    registry=None,
)
cycle_duration = Histogram(
    "conntrack_exporter_cycle_duration_seconds",
    "Duration of one read/aggregate/reconcile/publish cycle",
    registry=None,
)
last_success = Gauge(
    "conntrack_exporter_last_success_timestamp_seconds",
    "Unix time of the last successfully published cycle",
    registry=None,
)
tracked_keys = Gauge(
    "conntrack_exporter_tracked_keys",
    "Aggregation keys present in the last published snapshot",
    registry=None,
)
scrape_requests = Counter(
    "conntrack_exporter_scrape_requests",
    "Telemetry endpoint requests by HTTP status code",
    ["code"],
    registry=None,
)

_EXPORTER_METRICS = (cycles_total, cycle_duration, last_success, tracked_keys, scrape_requests)
_RUNTIME_COLLECTORS = (PROCESS_COLLECTOR, PLATFORM_COLLECTOR, GC_COLLECTOR)


@dataclass(frozen=True)
class _PublishedState:
    snapshot:    Snapshot = field(default_factory=lambda: EMPTY_SNAPSHOT)
    connections: Mapping[AggregationKey, int] = field(default_factory=lambda: MappingProxyType({}))
    totals:      Mapping[AggregationKey, AggregatedValues] = field(
        default_factory=lambda: MappingProxyType({})
    )


class ConntrackMetrics(Collector):
    """스크레이퍼에 노출되는 conntrack 메트릭 상태.

    두 계열을 보유한다:
      - 게이지: 키별 순간값. publish() 때마다 통째로 교체된다.
      - 카운터: 키별 단조 누적값. publish() 때마다 증가분만 더해진다.

    새 상태는 옆에서 만들어진 뒤 참조 하나로 교체되므로,
    스크레이프는 절반만 교체된 스냅샷이나 일부만 반영된 누적값을 보지 않는다.
    """

    def __init__(self, prefix: str = "conntrack") -> None:
        self._prefix = prefix
        self._lock   = threading.Lock()
        self._state  = _PublishedState()

    def publish(self, snapshot: Snapshot, update: TotalsUpdate) -> None:
        """사이클 결과를 원자적으로 게시한다."""
        current     = self._state
        connections = dict(current.connections)
        totals      = dict(current.totals)

        for key in update.new_keys:
            connections[key] = connections.get(key, 0) + 1
        for key, delta in update.deltas.items():
            totals[key] = totals.get(key, ZERO) + delta

        state = _PublishedState(
            snapshot=snapshot,
            connections=MappingProxyType(connections),
            totals=MappingProxyType(totals),
        )
        with self._lock:
            self._state = state

    @property
    def snapshot(self) -> Snapshot:
        """마지막으로 게시된 스냅샷."""
        return self._state.snapshot

    def total(self, key: AggregationKey) -> AggregatedValues:
        """키의 누적값. 관측된 적 없으면 0."""
        return self._state.totals.get(key, ZERO)

    def connections(self, key: AggregationKey) -> int:
        return self._state.connections.get(key, 0)

    def collect(self) -> Iterator[Metric]:
        with self._lock:
            state = self._state

        labels = list(LABEL_NAMES)

        for attr, suffix, help_text in _VALUE_FIELDS:
            gauge = GaugeMetricFamily(
                f"{self._prefix}_{suffix}",
                f"Number of {help_text} for the aggregated conntrack key.",
                labels=labels,
            )
            for key, values in state.snapshot.items():
                gauge.add_metric(key.label_values(), getattr(values, attr))
            yield gauge

        conns = CounterMetricFamily(
            f"{self._prefix}_total_connections",
            "Total number of aggregated conntrack keys observed since exporter start.",
            labels=labels,
        )
        for key, count in state.connections.items():
            conns.add_metric(key.label_values(), count)
        yield conns

        for attr, suffix, help_text in _VALUE_FIELDS:
            counter = CounterMetricFamily(
                f"{self._prefix}_total_{suffix}",
                f"Monotonic total of {help_text}, accumulated by deltas between snapshots.",
                labels=labels,
            )
            for key, values in state.totals.items():
                counter.add_metric(key.label_values(), getattr(values, attr))
            yield counter


def build_registry(conntrack: ConntrackMetrics, exporter_metrics: bool = True) -> CollectorRegistry:
    """conntrack 메트릭과 (선택적으로) 익스포터/런타임 메트릭을 담은 레지스트리를 만든다."""
    registry = CollectorRegistry()
    registry.register(conntrack)
    if exporter_metrics:
        for collector in _EXPORTER_METRICS + _RUNTIME_COLLECTORS:
            registry.register(collector)
    return registry


def get_metrics_output(registry: CollectorRegistry) -> bytes:
    """Prometheus 텍스트 노출 형식을 생성한다."""
    return generate_latest(registry)
