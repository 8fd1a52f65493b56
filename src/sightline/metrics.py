"""Prometheus counters for the event handler.

Metrics live on a ``CollectorRegistry`` the caller owns and passes in, never
on the process-global default registry, so several handlers (and every test)
get independent counters::

    registry = CollectorRegistry()
    metrics = IngestMetrics.create(registry)
    handler = EventHandler(store, metrics=metrics)
    ...
    body, content_type = metrics.exposition()

Exported series:

    sightline_events_total{event_type, status}
    sightline_store_inserts_total{table, status}     status: attempt|success|error|skip
    sightline_duplicate_events_total{event_type}
    sightline_event_processing_seconds{source}
"""

from __future__ import annotations

from dataclasses import dataclass

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)


@dataclass(frozen=True)
class IngestMetrics:
    registry: CollectorRegistry
    events: Counter
    store_inserts: Counter
    duplicates: Counter
    processing_seconds: Histogram

    @classmethod
    def create(cls, registry: CollectorRegistry | None = None) -> IngestMetrics:
        """Register the handler's metrics on ``registry`` (a fresh one if None)."""
        if registry is None:
            registry = CollectorRegistry()
        return cls(
            registry=registry,
            events=Counter(
                "sightline_events",
                "Events seen by the handler, by type and outcome.",
                ["event_type", "status"],
                registry=registry,
            ),
            store_inserts=Counter(
                "sightline_store_inserts",
                "Batched store writes, by table and outcome.",
                ["table", "status"],
                registry=registry,
            ),
            duplicates=Counter(
                "sightline_duplicate_events",
                "Events skipped because their event_id was already stored.",
                ["event_type"],
                registry=registry,
            ),
            processing_seconds=Histogram(
                "sightline_event_processing_seconds",
                "Wall time spent handling one event.",
                ["source"],
                registry=registry,
            ),
        )

    def event(self, event_type: str, status: str) -> None:
        self.events.labels(event_type=event_type, status=status).inc()

    def insert(self, table: str, status: str) -> None:
        self.store_inserts.labels(table=table, status=status).inc()

    def duplicate(self, event_type: str) -> None:
        self.duplicates.labels(event_type=event_type).inc()

    def exposition(self) -> tuple[bytes, str]:
        """Render the registry in the Prometheus text format."""
        return generate_latest(self.registry), CONTENT_TYPE_LATEST
