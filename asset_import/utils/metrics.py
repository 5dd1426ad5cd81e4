"""
Prometheus metrics for import runs.

Metrics Provided:
    - asset_import_items_total: per-file outcomes by kind and outcome
    - asset_import_categories_total: category resolutions (created/existing)
    - asset_import_upload_bytes_total: bytes written to the object store
    - asset_import_upload_duration_seconds: object store write latency
    - asset_import_uploads_total: uploads by result (written/reused)
    - asset_import_storage_errors_total: store errors by operation/error type
    - asset_import_runs_total: runs by kind and final status

Usage:
    from asset_import.utils.metrics import get_metrics

    metrics = get_metrics()
    with metrics.track_upload():
        store.put(...)
    metrics.record_item(kind="resource", outcome="created")

    # Push-less batch job: expose while running with
    start_metrics_server(port=9090)
"""

import os
from contextlib import nullcontext
from typing import Any, Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    start_http_server,
)

from asset_import.utils.logging import get_logger

logger = get_logger(__name__)


class ImportMetrics:
    """
    Prometheus collectors for the import pipeline.

    Pass a private CollectorRegistry to get an isolated instance (tests do
    this); the global instance registers on the default registry.
    """

    def __init__(
        self,
        enabled: bool = True,
        registry: Optional[CollectorRegistry] = None,
    ) -> None:
        self.enabled = enabled
        self.registry = registry if registry is not None else REGISTRY

        if not self.enabled:
            logger.debug("Metrics collection disabled")
            return

        self.items = Counter(
            name="asset_import_items_total",
            documentation="Imported files by kind and outcome",
            labelnames=["kind", "outcome"],  # kind: resource/animation
            registry=self.registry,
        )

        self.categories = Counter(
            name="asset_import_categories_total",
            documentation="Category resolutions by outcome",
            labelnames=["outcome"],  # created, existing
            registry=self.registry,
        )

        self.upload_bytes = Counter(
            name="asset_import_upload_bytes_total",
            documentation="Total bytes written to the object store",
            registry=self.registry,
        )

        self.uploads = Counter(
            name="asset_import_uploads_total",
            documentation="Object store writes by result",
            labelnames=["result"],  # written, reused
            registry=self.registry,
        )

        self.upload_duration = Histogram(
            name="asset_import_upload_duration_seconds",
            documentation="Time spent writing one object",
            buckets=[0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0],
            registry=self.registry,
        )

        self.storage_errors = Counter(
            name="asset_import_storage_errors_total",
            documentation="Object store errors",
            labelnames=["operation", "error_type"],
            registry=self.registry,
        )

        self.runs = Counter(
            name="asset_import_runs_total",
            documentation="Import runs by kind and status",
            labelnames=["kind", "status"],  # status: completed, stopped
            registry=self.registry,
        )

    def track_upload(self) -> Any:
        """Context manager timing one object store write."""
        if not self.enabled:
            return nullcontext()
        return self.upload_duration.time()

    def record_item(self, kind: str, outcome: str) -> None:
        if not self.enabled:
            return
        self.items.labels(kind=kind, outcome=outcome).inc()

    def record_category(self, created: bool) -> None:
        if not self.enabled:
            return
        self.categories.labels(outcome="created" if created else "existing").inc()

    def record_upload(self, bytes_uploaded: int, reused: bool) -> None:
        if not self.enabled:
            return
        self.uploads.labels(result="reused" if reused else "written").inc()
        if not reused:
            self.upload_bytes.inc(bytes_uploaded)

    def record_storage_error(self, operation: str, error_type: str) -> None:
        if not self.enabled:
            return
        self.storage_errors.labels(operation=operation, error_type=error_type).inc()

    def record_run(self, kind: str, status: str) -> None:
        if not self.enabled:
            return
        self.runs.labels(kind=kind, status=status).inc()


_metrics_instance: Optional[ImportMetrics] = None


def get_metrics() -> ImportMetrics:
    """
    Get global metrics instance (singleton).

    Disabled when METRICS_ENABLED=false.
    """
    global _metrics_instance

    if _metrics_instance is None:
        enabled = os.getenv("METRICS_ENABLED", "true").lower() == "true"
        _metrics_instance = ImportMetrics(enabled=enabled)

    return _metrics_instance


def start_metrics_server(port: int = 9090, addr: str = "0.0.0.0") -> None:
    """
    Expose the default registry over HTTP for the lifetime of the process.

    Returns immediately; the server runs in a daemon thread.
    """
    logger.info(f"Starting Prometheus metrics server on {addr}:{port}")
    start_http_server(port=port, addr=addr)
