"""
Shared metrics configuration for the Eligibility Screening platform.

Metrics are registered on a registry owned by each collector, so several
service instances in one process never collide on metric names.
"""

from typing import Any, Dict, Optional, Sequence, Tuple

from prometheus_client import Counter, Gauge, Histogram, Info, CollectorRegistry

# Evaluations finish in single-digit milliseconds; the default buckets start at 5ms
EVALUATION_BUCKETS = (0.0005, 0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0)

MetricDefinition = Tuple[type, str, str, Sequence[str], Dict[str, Any]]

COMMON_METRICS: Tuple[MetricDefinition, ...] = (
    (Counter, "http_requests_total", "Total HTTP requests", ("method", "endpoint", "status_code"), {}),
    (Histogram, "http_request_duration_seconds", "HTTP request duration in seconds", ("method", "endpoint"), {}),
    (Counter, "health_check_total", "Total health check requests", ("status",), {}),
    (Counter, "errors_total", "Total errors", ("error_type", "service"), {}),
)

ELIGIBILITY_METRICS: Tuple[MetricDefinition, ...] = (
    (Counter, "eligibility_evaluations_total", "Total eligibility evaluations", ("state_code", "status"), {}),
    (Histogram, "eligibility_evaluation_duration_seconds", "Eligibility evaluation duration in seconds",
     ("state_code",), {"buckets": EVALUATION_BUCKETS}),
    (Counter, "eligibility_programs_excluded_total", "Programs skipped for lack of an active rule",
     ("state_code",), {}),
    (Counter, "cache_hits_total", "Total cache hits", ("cache_type",), {}),
    (Counter, "cache_misses_total", "Total cache misses", ("cache_type",), {}),
    (Gauge, "cache_entries", "Entries currently held per cache", ("cache_type",), {}),
)


class MetricsCollector:
    """Centralized metrics collector for services."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry or CollectorRegistry()
        self._metrics: Dict[str, Any] = {}

        info = Info("service_info", "Service information", registry=self.registry)
        info.info({"service": service_name, "version": "1.0.0"})
        self._metrics["service_info"] = info

        self._register(COMMON_METRICS)
        if service_name == "eligibility":
            self._register(ELIGIBILITY_METRICS)

    def _register(self, definitions: Sequence[MetricDefinition]):
        for metric_type, name, documentation, labels, options in definitions:
            self._metrics[name] = metric_type(name, documentation, labels, registry=self.registry, **options)

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        """Record one handled request; ``endpoint`` is the route template."""
        self._metrics["http_requests_total"].labels(method, endpoint, str(status_code)).inc()
        self._metrics["http_request_duration_seconds"].labels(method, endpoint).observe(duration)

    def record_health_check(self, status: str):
        """Record health check metrics."""
        self._metrics["health_check_total"].labels(status=status).inc()

    def record_error(self, error_type: str, service: Optional[str] = None):
        """Record error metrics."""
        service_name = service or self.service_name
        self._metrics["errors_total"].labels(error_type=error_type, service=service_name).inc()

    def record_evaluation(self, state_code: str, status: str, duration: float, excluded: int = 0):
        """Record one evaluation request and the programs it had to skip."""
        if "eligibility_evaluations_total" not in self._metrics:
            return
        self._metrics["eligibility_evaluations_total"].labels(state_code=state_code, status=status).inc()
        self._metrics["eligibility_evaluation_duration_seconds"].labels(state_code=state_code).observe(duration)
        if excluded:
            self._metrics["eligibility_programs_excluded_total"].labels(state_code=state_code).inc(excluded)

    def record_cache_access(self, cache_type: str, hit: bool, entries: Optional[int] = None):
        """Record a cache lookup and, when known, the cache size."""
        if "cache_hits_total" not in self._metrics:
            return
        metric = "cache_hits_total" if hit else "cache_misses_total"
        self._metrics[metric].labels(cache_type=cache_type).inc()
        if entries is not None:
            self._metrics["cache_entries"].labels(cache_type=cache_type).set(entries)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
