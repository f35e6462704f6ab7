"""
Slashwatch Metrics Tests
"""

import pytest

from slashwatch.cache import CacheStats
from slashwatch.metrics import Counter, Gauge, Histogram, MetricsRegistry, MonitorMetrics
from slashwatch.types import SlashingStats

from conftest import make_chain


class TestPrimitives:

    def test_counter_rejects_negative(self):
        c = Counter("x_total")
        c.inc()
        c.inc(2)
        assert c.value == 3
        with pytest.raises(ValueError):
            c.inc(-1)

    def test_gauge(self):
        g = Gauge("x")
        g.set(5)
        g.inc()
        g.dec(2)
        assert g.value == 4

    def test_histogram_buckets_are_cumulative(self):
        h = Histogram("d", buckets=(1.0, 5.0))
        for v in (0.5, 2.0, 3.0, 10.0):
            h.observe(v)

        lines = h.samples()

        assert 'd_bucket{le="1.0"} 1' in lines
        assert 'd_bucket{le="5.0"} 3' in lines
        assert 'd_bucket{le="+Inf"} 4' in lines
        assert "d_sum 15.5" in lines
        assert h.count == 4

    def test_label_values_are_escaped(self):
        g = Gauge("x", labels={"network": 'a"b'})
        assert g.samples() == ['x{network="a\\"b"} 0.0']


class TestRegistry:

    def test_duplicate_registration(self):
        registry = MetricsRegistry()
        registry.register(Counter("x_total", labels={"network": "a"}))
        registry.register(Counter("x_total", labels={"network": "b"}))
        with pytest.raises(ValueError):
            registry.register(Counter("x_total", labels={"network": "a"}))

    def test_type_conflict(self):
        registry = MetricsRegistry()
        registry.register(Counter("x", labels={"network": "a"}))
        with pytest.raises(ValueError):
            registry.register(Gauge("x", labels={"network": "b"}))

    def test_one_header_per_family(self):
        registry = MetricsRegistry()
        MonitorMetrics("mainnet", registry)
        MonitorMetrics("testnet", registry)

        text = registry.expose()

        assert text.count("# TYPE slashwatch_current_round gauge") == 1
        assert 'slashwatch_current_round{network="mainnet"} 0.0' in text
        assert 'slashwatch_current_round{network="testnet"} 0.0' in text
        assert text.endswith("\n")


class TestMonitorMetrics:

    def test_record_cycle(self):
        metrics = MonitorMetrics("testnet")
        stats = SlashingStats(current_round=100, total_rounds_monitored=3, active_slashings=2, vetoed_payloads=1)

        metrics.record_cycle(1.5, make_chain(100, enabled=False), stats)

        assert metrics.poll_cycles.value == 1
        assert metrics.cycle_duration.count == 1
        assert metrics.current_slot.value == 100 * 192
        assert metrics.slashing_enabled.value == 0
        assert metrics.actionable_rounds.value == 2
        assert metrics.vetoed_payloads.value == 1

    def test_record_cache(self):
        metrics = MonitorMetrics("testnet")
        metrics.record_cache(CacheStats(immutable_size=4, mutable_size=6, hits=10, misses=2, promotions=1))

        assert metrics.cache_hits.value == 10
        assert metrics.cache_immutable_size.value == 4
        assert 'slashwatch_round_cache_promotions{network="testnet"} 1' in metrics.expose()
