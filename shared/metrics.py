"""
Shared metrics configuration for the GitHub Backend API.
"""

from prometheus_client import Counter, Histogram, Info, CollectorRegistry, generate_latest
from typing import Dict, Any, Optional
import time
from contextlib import contextmanager


class MetricsCollector:
    """Centralized metrics collector for services."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        # Private registry per collector
        self.registry = registry or CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up metrics for the service."""

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

        # Upstream metrics
        self._metrics["upstream_requests_total"] = Counter(
            "upstream_requests_total",
            "Total GitHub API calls",
            ["operation", "outcome"],
            registry=self.registry
        )

        self._metrics["upstream_request_duration_seconds"] = Histogram(
            "upstream_request_duration_seconds",
            "GitHub API call duration in seconds",
            ["operation"],
            registry=self.registry
        )

        # Gate metrics
        self._metrics["auth_failures_total"] = Counter(
            "auth_failures_total",
            "Total rejected credentials",
            registry=self.registry
        )

        self._metrics["rate_limit_hits_total"] = Counter(
            "rate_limit_hits_total",
            "Total rate limit hits",
            registry=self.registry
        )

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

    def record_upstream_call(self, operation: str, outcome: str, duration: float):
        self._metrics["upstream_requests_total"].labels(operation=operation, outcome=outcome).inc()
        self._metrics["upstream_request_duration_seconds"].labels(operation=operation).observe(duration)

    def record_auth_failure(self):
        self._metrics["auth_failures_total"].inc()

    def record_rate_limit_hit(self):
        self._metrics["rate_limit_hits_total"].inc()

    @contextmanager
    def time_upstream_call(self, operation: str):
        """Context manager timing one upstream call and labelling its outcome."""
        start_time = time.time()
        outcome = "error"
        try:
            yield
            outcome = "success"
        finally:
            self.record_upstream_call(operation, outcome, time.time() - start_time)

    def render(self) -> bytes:
        """Prometheus text exposition of this collector's registry."""
        return generate_latest(self.registry)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
