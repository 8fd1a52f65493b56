"""Ordered, fail-fast writes of projected rows.

A transformer turns one event into one or more batches of rows and hands
them to :meth:`Projection.write` in dependency order, typically::

    projection.write([state_row], [log_row], [health_row])

Batches are written one after another, each as a single store call.  The
first failure stops the sequence and propagates; batches already written
stay written, and redelivery of the event repeats them (state rows are
last-write-wins upserts, so the repeat is harmless there).

Per-table attempt/success/error counts go to ``IngestMetrics``.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from sightline.errors import StoreError
from sightline.logging import get_logger
from sightline.metrics import IngestMetrics
from sightline.models.rows import Row
from sightline.rollups import RollupStore, RollupUpdate
from sightline.warehouse import AnalyticsStore

_log = get_logger(__name__)


@dataclass(frozen=True)
class Projection:
    """Everything a transformer may write to."""

    store: AnalyticsStore
    metrics: IngestMetrics = field(default_factory=IngestMetrics.create)
    rollups: RollupStore | None = None

    def write(self, *batches: Sequence[Row]) -> int:
        """Write ``batches`` in order; return the total number of rows written."""
        written = 0
        for rows in batches:
            if not rows:
                continue
            table = type(rows[0]).TABLE
            self.metrics.insert(table, "attempt")
            try:
                written += self.store.write(rows)
            except StoreError as exc:
                self.metrics.insert(table, "error")
                _log.error("store write failed", table=table, rows=len(rows), error=str(exc))
                raise
            self.metrics.insert(table, "success")
        return written

    def rollup(self, update: RollupUpdate) -> None:
        """Apply a rollup delta; failures are logged, never raised."""
        if self.rollups is None:
            return
        try:
            self.rollups.apply(update)
        except StoreError as exc:
            _log.warning(
                "rollup update failed",
                tenant_id=update.tenant_id,
                internal_name=update.internal_name,
                error=str(exc),
            )
