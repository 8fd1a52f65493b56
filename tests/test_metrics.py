"""Tests for the handler's Prometheus metrics."""

from prometheus_client import CollectorRegistry

from sightline.metrics import IngestMetrics
from tests.conftest import sample


class TestIngestMetrics:
    def test_counters(self, metrics):
        metrics.event("stream_end", "received")
        metrics.event("stream_end", "received")
        metrics.insert("stream_event_log", "success")
        metrics.duplicate("stream_end")

        assert sample(
            metrics, "sightline_events_total", event_type="stream_end", status="received"
        ) == 2
        assert sample(
            metrics, "sightline_store_inserts_total", table="stream_event_log", status="success"
        ) == 1
        assert sample(metrics, "sightline_duplicate_events_total", event_type="stream_end") == 1

    def test_registries_are_independent(self):
        a = IngestMetrics.create(CollectorRegistry())
        b = IngestMetrics.create(CollectorRegistry())
        a.event("x", "received")
        assert sample(b, "sightline_events_total", event_type="x", status="received") == 0

    def test_create_without_registry(self):
        assert isinstance(IngestMetrics.create().registry, CollectorRegistry)

    def test_exposition(self, metrics):
        metrics.processing_seconds.labels(source="foghorn").observe(0.01)
        body, content_type = metrics.exposition()
        text = body.decode("utf-8")
        assert content_type.startswith("text/plain")
        assert 'sightline_event_processing_seconds_count{source="foghorn"} 1.0' in text
