"""
Shared metrics configuration for the resource cache.
"""

from prometheus_client import Counter, Histogram, Gauge, CollectorRegistry
from typing import Dict, Any, Optional


class MetricsCollector:
    """Centralized metrics collector for resource caches.

    One collector can be shared by several caches; every series is labeled
    with the cache name. Pass ``registry=None`` to keep the metrics out of
    any registry (useful in tests and short-lived scripts).
    """

    def __init__(self, namespace: str = "resource_cache", registry: Optional[CollectorRegistry] = None):
        self.namespace = namespace
        self.registry = registry
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up cache metrics."""
        self._metrics["hits_total"] = Counter(
            f"{self.namespace}_hits_total",
            "Total ensure() calls served from a populated entry",
            ["cache"],
            registry=self.registry
        )

        self._metrics["misses_total"] = Counter(
            f"{self.namespace}_misses_total",
            "Total ensure() calls that started a loader",
            ["cache", "forced"],
            registry=self.registry
        )

        self._metrics["dedup_total"] = Counter(
            f"{self.namespace}_dedup_total",
            "Total ensure() calls collapsed into an in-flight load",
            ["cache"],
            registry=self.registry
        )

        self._metrics["errors_total"] = Counter(
            f"{self.namespace}_errors_total",
            "Total loader failures",
            ["cache", "error_type"],
            registry=self.registry
        )

        self._metrics["load_duration_seconds"] = Histogram(
            f"{self.namespace}_load_duration_seconds",
            "Loader duration in seconds",
            ["cache"],
            registry=self.registry
        )

        self._metrics["scopes"] = Gauge(
            f"{self.namespace}_scopes",
            "Number of scope stores held",
            ["cache"],
            registry=self.registry
        )

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        if metric_name in self._metrics:
            self._metrics[metric_name].labels(**labels).inc()

    def set_gauge(self, metric_name: str, value: float, **labels):
        """Set a gauge metric value."""
        if metric_name in self._metrics:
            self._metrics[metric_name].labels(**labels).set(value)

    def observe_histogram(self, metric_name: str, value: float, **labels):
        """Observe a histogram metric."""
        if metric_name in self._metrics:
            self._metrics[metric_name].labels(**labels).observe(value)
