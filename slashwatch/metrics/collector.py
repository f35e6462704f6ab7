"""
Slashwatch Prometheus Metrics Collector

Pure-Python Prometheus exposition format implementation.
We generate the text format ourselves, so ``prometheus_client`` is not
required.

Metric types:
    - Counter: monotonically increasing (e.g. poll cycles)
    - Gauge: can go up and down (e.g. current round)
    - Histogram: cycle durations with configurable buckets

Every network monitor owns a MonitorMetrics whose samples carry a
``network`` label. All monitors share one registry, so the exposition holds
one HELP/TYPE header per metric name followed by one sample per network.
"""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


def _format_labels(labels: Dict[str, str], extra: Optional[Dict[str, str]] = None) -> str:
    merged = {**labels, **(extra or {})}
    if not merged:
        return ""
    body = ",".join(
        '{}="{}"'.format(k, str(v).replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n"))
        for k, v in sorted(merged.items())
    )
    return "{" + body + "}"


# ---------------------------------------------------------------------------
# Metric primitives
# ---------------------------------------------------------------------------

@dataclass
class Counter:
    """Monotonically increasing counter."""
    name: str
    help: str = ""
    labels: Dict[str, str] = field(default_factory=dict)
    _value: float = 0.0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    type_name = "counter"

    def inc(self, amount: float = 1.0) -> None:
        if amount < 0:
            raise ValueError("Counter can only be incremented")
        with self._lock:
            self._value += amount

    @property
    def value(self) -> float:
        return self._value

    def samples(self) -> List[str]:
        return [f"{self.name}{_format_labels(self.labels)} {self._value}"]


@dataclass
class Gauge:
    """Gauge that can go up and down."""
    name: str
    help: str = ""
    labels: Dict[str, str] = field(default_factory=dict)
    _value: float = 0.0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    type_name = "gauge"

    def set(self, value: float) -> None:
        with self._lock:
            self._value = value

    def inc(self, amount: float = 1.0) -> None:
        with self._lock:
            self._value += amount

    def dec(self, amount: float = 1.0) -> None:
        with self._lock:
            self._value -= amount

    @property
    def value(self) -> float:
        return self._value

    def samples(self) -> List[str]:
        return [f"{self.name}{_format_labels(self.labels)} {self._value}"]


# Poll cycle durations in seconds
DEFAULT_BUCKETS: Tuple[float, ...] = (
    0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 90.0,
)


@dataclass
class Histogram:
    """Histogram with configurable buckets."""
    name: str
    help: str = ""
    labels: Dict[str, str] = field(default_factory=dict)
    buckets: Tuple[float, ...] = DEFAULT_BUCKETS
    _bucket_counts: Dict[float, int] = field(default_factory=dict, repr=False)
    _sum: float = 0.0
    _count: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    type_name = "histogram"

    def __post_init__(self):
        self.buckets = tuple(sorted(b for b in self.buckets if b != math.inf))
        if not self._bucket_counts:
            self._bucket_counts = {b: 0 for b in self.buckets}

    def observe(self, value: float) -> None:
        with self._lock:
            self._sum += value
            self._count += 1
            # Increment only the first (smallest) matching bucket
            for b in self.buckets:
                if value <= b:
                    self._bucket_counts[b] += 1
                    break

    @property
    def count(self) -> int:
        return self._count

    @property
    def sum(self) -> float:
        return self._sum

    def samples(self) -> List[str]:
        lines = []
        cumulative = 0
        for b in self.buckets:
            cumulative += self._bucket_counts.get(b, 0)
            lines.append(f"{self.name}_bucket{_format_labels(self.labels, {'le': str(b)})} {cumulative}")

        # +Inf bucket = total count
        lines.append(f"{self.name}_bucket{_format_labels(self.labels, {'le': '+Inf'})} {self._count}")
        lines.append(f"{self.name}_sum{_format_labels(self.labels)} {self._sum}")
        lines.append(f"{self.name}_count{_format_labels(self.labels)} {self._count}")
        return lines


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class MetricsRegistry:
    """
    Central registry holding all metrics.

    Metrics are keyed by name and label set. Provides ``expose()`` to render
    all metrics in Prometheus text format.
    """

    def __init__(self):
        self._metrics: Dict[Tuple[str, Tuple[Tuple[str, str], ...]], Any] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(metric: Any) -> Tuple[str, Tuple[Tuple[str, str], ...]]:
        return metric.name, tuple(sorted(metric.labels.items()))

    def register(self, metric: Any) -> None:
        """Register a metric (Counter, Gauge, or Histogram)."""
        key = self._key(metric)
        with self._lock:
            if key in self._metrics:
                raise ValueError(f"Metric already registered: {metric.name}{_format_labels(metric.labels)}")
            for other in self._metrics.values():
                if other.name == metric.name and other.type_name != metric.type_name:
                    raise ValueError(f"Metric {metric.name} already registered as {other.type_name}")
            self._metrics[key] = metric

    def unregister(self, name: str, labels: Optional[Dict[str, str]] = None) -> None:
        with self._lock:
            self._metrics.pop((name, tuple(sorted((labels or {}).items()))), None)

    def get(self, name: str, labels: Optional[Dict[str, str]] = None) -> Optional[Any]:
        return self._metrics.get((name, tuple(sorted((labels or {}).items()))))

    @property
    def metric_count(self) -> int:
        return len(self._metrics)

    def expose(self) -> str:
        """
        Render all registered metrics in Prometheus text exposition format.

        Returns:
            String in Prometheus text format (0.0.4)
        """
        families: Dict[str, List[Any]] = {}
        with self._lock:
            for metric in self._metrics.values():
                families.setdefault(metric.name, []).append(metric)

        parts: List[str] = []
        for name in sorted(families):
            members = families[name]
            lines = []
            if members[0].help:
                lines.append(f"# HELP {name} {members[0].help}")
            lines.append(f"# TYPE {name} {members[0].type_name}")
            for metric in members:
                lines.extend(metric.samples())
            parts.append("\n".join(lines))
        return "\n\n".join(parts) + "\n"


# ---------------------------------------------------------------------------
# Per-network collector
# ---------------------------------------------------------------------------

class MonitorMetrics:
    """
    Pre-configured metrics for one network monitor.

    Instantiate once per network and update metrics as cycles complete.
    Call ``registry.expose()`` to get the Prometheus endpoint body.
    """

    def __init__(self, network: str, registry: Optional[MetricsRegistry] = None):
        self.network = network
        self.registry = registry or MetricsRegistry()
        labels = {"network": network}

        # --- Cycle metrics ---
        self.poll_cycles = Counter(
            "slashwatch_poll_cycles_total",
            "Total poll cycles completed",
            dict(labels),
        )
        self.poll_failures = Counter(
            "slashwatch_poll_failures_total",
            "Total poll cycles that failed or timed out",
            dict(labels),
        )
        self.poll_skipped = Counter(
            "slashwatch_poll_skipped_total",
            "Poll cycles skipped because a cycle was still running",
            dict(labels),
        )
        self.cycle_duration = Histogram(
            "slashwatch_cycle_duration_seconds",
            "Poll cycle duration in seconds",
            dict(labels),
        )

        # --- Chain metrics ---
        self.current_round = Gauge(
            "slashwatch_current_round",
            "Current slashing round",
            dict(labels),
        )
        self.current_slot = Gauge(
            "slashwatch_current_slot",
            "Current slot",
            dict(labels),
        )
        self.slashing_enabled = Gauge(
            "slashwatch_slashing_enabled",
            "Whether slashing is enabled (0 or 1)",
            dict(labels),
        )

        # --- Detection metrics ---
        self.detections = Gauge(
            "slashwatch_detections",
            "Rounds detected in the last cycle",
            dict(labels),
        )
        self.actionable_rounds = Gauge(
            "slashwatch_actionable_rounds",
            "Rounds in quorum-reached, in-veto-window or executable status",
            dict(labels),
        )
        self.vetoed_payloads = Gauge(
            "slashwatch_vetoed_payloads",
            "Detected rounds whose payload is vetoed",
            dict(labels),
        )
        self.alerts_sent = Counter(
            "slashwatch_alerts_total",
            "Total alerts offered to the notifier",
            dict(labels),
        )

        # --- Round cache metrics ---
        self.cache_hits = Gauge(
            "slashwatch_round_cache_hits",
            "Round cache hits",
            dict(labels),
        )
        self.cache_misses = Gauge(
            "slashwatch_round_cache_misses",
            "Round cache misses",
            dict(labels),
        )
        self.cache_promotions = Gauge(
            "slashwatch_round_cache_promotions",
            "Round cache entries promoted to the permanent tier",
            dict(labels),
        )
        self.cache_immutable_size = Gauge(
            "slashwatch_round_cache_immutable_size",
            "Entries in the permanent tier of the round cache",
            dict(labels),
        )
        self.cache_mutable_size = Gauge(
            "slashwatch_round_cache_mutable_size",
            "Entries in the TTL tier of the round cache",
            dict(labels),
        )

        # Register all
        for attr_name in dir(self):
            attr = getattr(self, attr_name)
            if isinstance(attr, (Counter, Gauge, Histogram)):
                self.registry.register(attr)

    def record_cycle(self, duration: float, chain, stats) -> None:
        """Update cycle, chain and detection metrics after a successful cycle."""
        self.poll_cycles.inc()
        self.cycle_duration.observe(duration)
        self.current_round.set(chain.current_round)
        self.current_slot.set(chain.current_slot)
        self.slashing_enabled.set(1 if chain.is_slashing_enabled else 0)
        self.detections.set(stats.total_rounds_monitored)
        self.actionable_rounds.set(stats.active_slashings)
        self.vetoed_payloads.set(stats.vetoed_payloads)

    def record_cache(self, cache_stats) -> None:
        self.cache_hits.set(cache_stats.hits)
        self.cache_misses.set(cache_stats.misses)
        self.cache_promotions.set(cache_stats.promotions)
        self.cache_immutable_size.set(cache_stats.immutable_size)
        self.cache_mutable_size.set(cache_stats.mutable_size)

    def expose(self) -> str:
        return self.registry.expose()
