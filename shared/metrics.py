"""
Shared metrics configuration for Ping Fleet.
"""

from typing import Dict, Any, Optional

from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry, generate_latest


class MetricsCollector:
    """Centralized metrics collector for services.

    Each collector owns its registry so several services (or tests) can live
    in one process without colliding on metric names.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        # Service info
        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        # HTTP metrics
        self._metrics["http_requests_total"] = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"],
            registry=self.registry
        )

        self._metrics["http_request_duration_seconds"] = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=self.registry
        )

        # Health check metrics
        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )

        # Error metrics
        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )

        # Service-specific metrics
        if self.service_name == "ping":
            self._setup_ping_metrics()
        elif self.service_name == "pong":
            self._setup_pong_metrics()

    def _setup_ping_metrics(self):
        """Set up ping-specific metrics."""
        self._metrics["ping_attempts_total"] = Counter(
            "ping_attempts_total",
            "Scheduled ping attempts by terminal outcome",
            ["outcome"],
            registry=self.registry
        )

        self._metrics["ping_outbound_duration_seconds"] = Histogram(
            "ping_outbound_duration_seconds",
            "Duration of outbound calls to the pong service",
            registry=self.registry
        )

    def _setup_pong_metrics(self):
        """Set up pong-specific metrics."""
        self._metrics["pong_requests_total"] = Counter(
            "pong_requests_total",
            "Pong requests by gate decision",
            ["decision"],
            registry=self.registry
        )

        self._metrics["gate_permits_in_use"] = Gauge(
            "gate_permits_in_use",
            "Receiver gate permits currently held",
            registry=self.registry
        )

    def render(self) -> bytes:
        """Render this collector's registry in Prometheus text format."""
        return generate_latest(self.registry)

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        """Record HTTP request metrics."""
        self._metrics["http_requests_total"].labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code)
        ).inc()

        self._metrics["http_request_duration_seconds"].labels(
            method=method,
            endpoint=endpoint
        ).observe(duration)

    def record_health_check(self, status: str):
        """Record health check metrics."""
        self._metrics["health_check_total"].labels(status=status).inc()

    def record_error(self, error_type: str, service: Optional[str] = None):
        """Record error metrics."""
        service_name = service or self.service_name
        self._metrics["errors_total"].labels(error_type=error_type, service=service_name).inc()

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        if metric_name in self._metrics:
            self._labelled(metric_name, labels).inc()

    def set_gauge(self, metric_name: str, value: float, **labels):
        """Set a gauge metric value."""
        if metric_name in self._metrics:
            self._labelled(metric_name, labels).set(value)

    def observe_histogram(self, metric_name: str, value: float, **labels):
        """Observe a histogram metric."""
        if metric_name in self._metrics:
            self._labelled(metric_name, labels).observe(value)

    def get_sample(self, metric_name: str, **labels) -> Optional[float]:
        """Read back a sample value from this collector's registry."""
        return self.registry.get_sample_value(metric_name, labels or None)

    def _labelled(self, metric_name: str, labels: Dict[str, Any]):
        metric = self._metrics[metric_name]
        return metric.labels(**labels) if labels else metric


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
