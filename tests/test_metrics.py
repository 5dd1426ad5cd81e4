"""Tests for Prometheus import metrics."""

from unittest.mock import patch

from prometheus_client import CollectorRegistry

from asset_import.utils import metrics as metrics_module
from asset_import.utils.metrics import ImportMetrics, get_metrics


class TestImportMetrics:
    def test_counters_on_private_registry(self):
        registry = CollectorRegistry()
        metrics = ImportMetrics(registry=registry)

        metrics.record_item("animation", "created")
        metrics.record_item("animation", "created")
        metrics.record_upload(100, reused=False)
        metrics.record_upload(100, reused=True)
        metrics.record_storage_error("put", "StorageUnavailable")
        metrics.record_run("animations", "stopped")

        assert registry.get_sample_value(
            "asset_import_items_total", {"kind": "animation", "outcome": "created"}
        ) == 2
        assert registry.get_sample_value("asset_import_upload_bytes_total") == 100
        assert registry.get_sample_value("asset_import_uploads_total", {"result": "reused"}) == 1
        assert registry.get_sample_value(
            "asset_import_storage_errors_total",
            {"operation": "put", "error_type": "StorageUnavailable"},
        ) == 1
        assert registry.get_sample_value(
            "asset_import_runs_total", {"kind": "animations", "status": "stopped"}
        ) == 1

    def test_track_upload_observes_duration(self):
        registry = CollectorRegistry()
        metrics = ImportMetrics(registry=registry)

        with metrics.track_upload():
            pass

        assert registry.get_sample_value("asset_import_upload_duration_seconds_count") == 1

    def test_disabled_metrics_are_noops(self):
        metrics = ImportMetrics(enabled=False)

        with metrics.track_upload():
            metrics.record_item("resource", "failed")
            metrics.record_category(created=True)
            metrics.record_upload(10, reused=False)
            metrics.record_run("resources", "completed")

        assert not hasattr(metrics, "items")

    def test_get_metrics_respects_env(self, monkeypatch):
        monkeypatch.setenv("METRICS_ENABLED", "false")
        with patch.object(metrics_module, "_metrics_instance", None):
            instance = get_metrics()
            assert instance.enabled is False
            assert get_metrics() is instance
