"""
Shared metrics configuration for the feed coordination services.
"""

from typing import Dict, Any, Optional

from prometheus_client import Counter, Gauge, Histogram, Info, CollectorRegistry, generate_latest


class MetricsCollector:
    """Centralized metrics collector for services.

    Each collector owns its registry so that several service instances (for
    example one per test case) never collide on metric names.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

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

        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )

        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )

        self._setup_coordination_metrics()

    def _setup_coordination_metrics(self):
        """Set up request-coordination metrics."""
        self._metrics["dedup_requests_total"] = Counter(
            "dedup_requests_total",
            "Requests seen by the deduplicating queue",
            ["outcome"],
            registry=self.registry
        )

        self._metrics["inflight_requests"] = Gauge(
            "inflight_requests",
            "In-flight requests tracked by the queue",
            ["queue"],
            registry=self.registry
        )

        self._metrics["cache_hits_total"] = Counter(
            "cache_hits_total",
            "Total cache hits",
            ["cache_type"],
            registry=self.registry
        )

        self._metrics["cache_misses_total"] = Counter(
            "cache_misses_total",
            "Total cache misses",
            ["cache_type"],
            registry=self.registry
        )

        self._metrics["cache_evictions_total"] = Counter(
            "cache_evictions_total",
            "Entries removed from caches",
            ["cache_type", "reason"],
            registry=self.registry
        )

        self._metrics["mutations_total"] = Counter(
            "mutations_total",
            "Optimistic mutations by outcome",
            ["collection", "outcome"],
            registry=self.registry
        )

        self._metrics["mutation_duration_seconds"] = Histogram(
            "mutation_duration_seconds",
            "Time from optimistic apply to commit or rollback",
            ["collection"],
            registry=self.registry
        )

        self._metrics["stale_results_dropped_total"] = Counter(
            "stale_results_dropped_total",
            "Refetch results discarded by generation check",
            ["collection"],
            registry=self.registry
        )

    def render(self) -> bytes:
        """Render the registry in Prometheus text format."""
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

    def record_dedup(self, outcome: str):
        """Record whether a queued request was issued or joined an in-flight one."""
        self._metrics["dedup_requests_total"].labels(outcome=outcome).inc()

    def record_cache_access(self, cache_type: str, hit: bool):
        """Record a cache lookup."""
        name = "cache_hits_total" if hit else "cache_misses_total"
        self._metrics[name].labels(cache_type=cache_type).inc()

    def record_cache_eviction(self, cache_type: str, reason: str, count: int = 1):
        """Record evicted cache entries."""
        if count:
            self._metrics["cache_evictions_total"].labels(cache_type=cache_type, reason=reason).inc(count)

    def record_mutation(self, collection: str, outcome: str, duration: float):
        """Record an optimistic mutation outcome."""
        self._metrics["mutations_total"].labels(collection=collection, outcome=outcome).inc()
        self._metrics["mutation_duration_seconds"].labels(collection=collection).observe(duration)

    def record_stale_result(self, collection: str):
        """Record a refetch result dropped as stale."""
        self._metrics["stale_results_dropped_total"].labels(collection=collection).inc()

    def set_gauge(self, metric_name: str, value: float, **labels):
        """Set a gauge metric value."""
        if metric_name in self._metrics:
            self._metrics[metric_name].labels(**labels).set(value)

    def sample(self, metric_name: str, **labels) -> Optional[float]:
        """Read back a single sample value (used by health/stats endpoints and tests)."""
        return self.registry.get_sample_value(metric_name, labels)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
