"""
Shared metrics configuration for the content access layer.
"""

from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry, generate_latest
from typing import Dict, Any, Optional


class MetricsCollector:
    """Centralized Prometheus collector for the orchestration layer."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up the orchestration metrics."""

        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        # Cache metrics
        self._metrics["cache_hits_total"] = Counter(
            "cache_hits_total",
            "Total cache hits",
            ["tier"],
            registry=self.registry
        )

        self._metrics["cache_misses_total"] = Counter(
            "cache_misses_total",
            "Total cache misses (origin fetches)",
            ["tier"],
            registry=self.registry
        )

        # Rate limiting metrics
        self._metrics["rate_limit_admissions_total"] = Counter(
            "rate_limit_admissions_total",
            "Rate limiter admissions by outcome",
            ["endpoint", "outcome"],
            registry=self.registry
        )

        self._metrics["rate_limit_queue_depth"] = Gauge(
            "rate_limit_queue_depth",
            "Requests waiting in the rate limiter queue",
            ["endpoint"],
            registry=self.registry
        )

        # Batching metrics
        self._metrics["batch_executions_total"] = Counter(
            "batch_executions_total",
            "Total executed batches",
            ["batch_key"],
            registry=self.registry
        )

        self._metrics["batch_size"] = Histogram(
            "batch_size",
            "Members per executed batch",
            buckets=(1, 2, 5, 10, 20, 50, 100),
            registry=self.registry
        )

        # Resilience metrics
        self._metrics["retry_attempts_total"] = Counter(
            "retry_attempts_total",
            "Retries performed after a failed origin call",
            ["function"],
            registry=self.registry
        )

        self._metrics["background_write_failures_total"] = Counter(
            "background_write_failures_total",
            "Best-effort background writes that failed",
            ["task"],
            registry=self.registry
        )

        self._metrics["operation_duration_seconds"] = Histogram(
            "operation_duration_seconds",
            "Measured operation duration in seconds",
            ["operation"],
            registry=self.registry
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

    def export(self) -> bytes:
        """Render the registry in Prometheus text format."""
        return generate_latest(self.registry)

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
        if metric_name not in self._metrics:
            return
        metric = self._metrics[metric_name]
        if labels:
            metric = metric.labels(**labels)
        metric.observe(value)

    def sample(self, metric_name: str, **labels) -> Optional[float]:
        """Read back the current value of a counter or gauge sample."""
        return self.registry.get_sample_value(metric_name, labels or None)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
