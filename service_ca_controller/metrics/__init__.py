"""
Metrics collection for the service CA controller.

This module provides Prometheus metrics for reconcile passes and store
writes, plus a helper to expose them over HTTP.
"""

from prometheus_client import CollectorRegistry, Counter, Histogram, start_http_server

from ..logger import get_logger

logger = get_logger(__name__)


class ReconcileMetrics:
    """Prometheus metrics for reconcile outcomes."""

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry or CollectorRegistry()

        self.reconcile_total = Counter(
            "service_ca_reconcile_total",
            "Total reconcile passes",
            ["controller", "result"],
            registry=self.registry,
        )

        self.reconcile_duration_seconds = Histogram(
            "service_ca_reconcile_duration_seconds",
            "Reconcile pass duration in seconds",
            ["controller"],
            buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
            registry=self.registry,
        )

        self.store_writes_total = Counter(
            "service_ca_store_writes_total",
            "Writes issued against the object store",
            ["kind", "operation"],
            registry=self.registry,
        )

    def record_reconcile(self, controller: str, result: str, duration: float) -> None:
        """Record one reconcile pass; result is success, requeue or error."""
        self.reconcile_total.labels(controller=controller, result=result).inc()
        self.reconcile_duration_seconds.labels(controller=controller).observe(duration)

    def record_write(self, kind: str, operation: str) -> None:
        self.store_writes_total.labels(kind=kind, operation=operation).inc()

    def serve(self, port: int) -> None:
        """Expose the registry on ``/metrics``."""
        start_http_server(port, registry=self.registry)
        logger.info("Metrics server started", port=port)
