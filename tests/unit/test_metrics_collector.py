"""
Unit tests for MetricsCollector methods in observability/metrics.py.

Tests the individual methods of MetricsCollector to verify they call the
correct Prometheus metric objects with the correct label values.
"""

from unittest.mock import MagicMock, patch

import pytest
from prometheus_client import CollectorRegistry

from argocd_operator.observability.metrics import (
    MetricsCollector,
    get_metrics_registry,
)


@pytest.fixture
def collector():
    """Create a MetricsCollector with the registry init patched out."""
    with patch(
        "argocd_operator.observability.metrics.get_metrics_registry",
        return_value=MagicMock(),
    ):
        return MetricsCollector()


class TestMetricsRegistry:
    """Test the shared registry."""

    def test_registry_is_created_once(self):
        registry = get_metrics_registry()
        assert isinstance(registry, CollectorRegistry)
        assert get_metrics_registry() is registry

    def test_registry_holds_read_path_metrics(self):
        names = {
            metric.name for metric in get_metrics_registry().collect()
        }
        assert "argocd_operator_hybrid_reads" in names
        assert "argocd_operator_tracking_label_patches" in names
        assert "argocd_operator_cache_synced" in names


class TestMetricsCollectorHybridReads:
    """Test hybrid read metric methods."""

    @patch("argocd_operator.observability.metrics.HYBRID_READ_DURATION")
    @patch("argocd_operator.observability.metrics.HYBRID_READS_TOTAL")
    def test_record_hybrid_read_with_duration(
        self, mock_total, mock_duration, collector
    ):
        """A timed read increments the counter and observes the histogram."""
        collector.record_hybrid_read("Secret", "get", "cache_hit", 0.002)
        mock_total.labels.assert_called_with(
            kind="Secret", operation="get", path="cache_hit"
        )
        mock_total.labels().inc.assert_called_once()
        mock_duration.labels.assert_called_with(kind="Secret", operation="get")
        mock_duration.labels().observe.assert_called_with(0.002)

    @patch("argocd_operator.observability.metrics.HYBRID_READ_DURATION")
    @patch("argocd_operator.observability.metrics.HYBRID_READS_TOTAL")
    def test_record_hybrid_read_without_duration(
        self, mock_total, mock_duration, collector
    ):
        """Without a duration only the counter moves."""
        collector.record_hybrid_read("ConfigMap", "list", "delegated")
        mock_total.labels().inc.assert_called_once()
        mock_duration.labels.assert_not_called()


class TestMetricsCollectorLabelPatches:
    """Test tracking label metric methods."""

    @patch("argocd_operator.observability.metrics.TRACKING_LABEL_PATCHES_TOTAL")
    def test_record_label_patch(self, mock_patches, collector):
        collector.record_label_patch("Secret", "patched")
        mock_patches.labels.assert_called_with(kind="Secret", outcome="patched")
        mock_patches.labels().inc.assert_called_once()


class TestMetricsCollectorCaches:
    """Test cache and informer metric methods."""

    @patch("argocd_operator.observability.metrics.CACHE_SYNCED")
    def test_update_cache_sync_status_synced(self, mock_synced, collector):
        collector.update_cache_sync_status("primary", True)
        mock_synced.labels.assert_called_with(cache="primary")
        mock_synced.labels().set.assert_called_with(1)

    @patch("argocd_operator.observability.metrics.CACHE_SYNCED")
    def test_update_cache_sync_status_not_synced(self, mock_synced, collector):
        collector.update_cache_sync_status("filtered", False)
        mock_synced.labels.assert_called_with(cache="filtered")
        mock_synced.labels().set.assert_called_with(0)

    @patch("argocd_operator.observability.metrics.INFORMER_WATCH_ERRORS_TOTAL")
    def test_record_informer_error(self, mock_errors, collector):
        collector.record_informer_error("filtered", "Secret", "Forbidden")
        mock_errors.labels.assert_called_with(
            cache="filtered", kind="Secret", reason="Forbidden"
        )
        mock_errors.labels().inc.assert_called_once()

    @patch("argocd_operator.observability.metrics.INFORMER_OBJECTS")
    def test_update_informer_objects(self, mock_objects, collector):
        collector.update_informer_objects("primary", "ConfigMap", "argocd", 12)
        mock_objects.labels.assert_called_with(
            cache="primary", kind="ConfigMap", namespace="argocd"
        )
        mock_objects.labels().set.assert_called_with(12)
