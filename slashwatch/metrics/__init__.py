"""
Slashwatch Metrics Module

Prometheus-compatible metrics for monitoring.
"""

from .collector import (
    MonitorMetrics,
    Counter,
    Gauge,
    Histogram,
    MetricsRegistry,
)

__all__ = [
    "MonitorMetrics",
    "Counter",
    "Gauge",
    "Histogram",
    "MetricsRegistry",
]
