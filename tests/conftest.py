"""Shared pytest helpers and fixtures for the sightline test suite.

make_event(type, data)       — build an AnalyticsEvent envelope
make_service_event(type, …)  — build a ServiceEvent envelope
trigger(variant, payload)    — camelCase MistTrigger ``data`` as producers send it
fetch(conn, table)           — every row of ``table`` as a list of dicts
MemoryStore                  — in-memory AnalyticsStore double with failure switches

conn      — in-memory DuckDB with the bundled schema applied
store     — Warehouse over ``conn``
metrics   — IngestMetrics on a private registry
handler   — EventHandler wired to the three above plus DuckDB rollups
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path
from typing import Any

import duckdb
import pytest
import structlog
from prometheus_client import CollectorRegistry

from sightline.config import get_settings
from sightline.dispatch import EventHandler
from sightline.errors import StoreError
from sightline.metrics import IngestMetrics
from sightline.models.envelope import AnalyticsEvent, ServiceEvent
from sightline.models.rows import Row
from sightline.rollups import DuckDBRollups
from sightline.sql_runner import apply_pending_migrations
from sightline.warehouse import Warehouse

SQL_DIR = Path(__file__).parent.parent / "src" / "sightline" / "sql" / "schema"

TENANT = "5eedfeed-11fe-4d0e-8f3b-2a3c9b7c1a01"
OTHER_TENANT = "0ddba11e-2222-4333-8444-555566667777"
STREAM = "9f1c2d3e-4b5a-4c6d-8e7f-0a1b2c3d4e5f"
TS = "2026-10-19T08:12:03Z"
TS_NAIVE = datetime(2026, 10, 19, 8, 12, 3)

# Stable namespace for synthetic event IDs; never change this value.
_EVENT_NS = uuid.UUID("e4a3b2c1-d5e6-7890-abcd-ef0123456789")


def make_event_id(event_type: str, n: int = 0) -> str:
    """Deterministic event id for synthetic event *n* of *event_type*."""
    return str(uuid.uuid5(_EVENT_NS, f"{event_type}:{n}"))


def make_event(
    event_type: str,
    data: dict[str, Any] | None = None,
    *,
    tenant_id: str = TENANT,
    event_id: str | None = None,
    timestamp: str = TS,
    **extra: Any,
) -> AnalyticsEvent:
    return AnalyticsEvent.model_validate(
        {
            "event_id": event_id or make_event_id(event_type),
            "event_type": event_type,
            "timestamp": timestamp,
            "source": "foghorn",
            "tenant_id": tenant_id,
            "data": data or {},
            **extra,
        }
    )


def make_service_event(
    event_type: str,
    data: dict[str, Any] | None = None,
    *,
    tenant_id: str = TENANT,
    **extra: Any,
) -> ServiceEvent:
    return ServiceEvent.model_validate(
        {
            "event_id": make_event_id(event_type),
            "event_type": event_type,
            "timestamp": TS,
            "source": "gateway",
            "tenant_id": tenant_id,
            "data": data or {},
            **extra,
        }
    )


def trigger(
    variant: str,
    payload: dict[str, Any],
    *,
    stream_id: str | None = STREAM,
    node_id: str = "edge-1",
    **routing: Any,
) -> dict[str, Any]:
    """MistTrigger JSON with one payload under its camelCase ``variant`` key."""
    data: dict[str, Any] = {"nodeId": node_id, variant: payload, **routing}
    if stream_id is not None:
        data["streamId"] = stream_id
    return data


def fetch(conn: duckdb.DuckDBPyConnection, table: str) -> list[dict[str, Any]]:
    cur = conn.execute(f"SELECT * FROM {table}")
    names = [d[0] for d in cur.description]
    return [dict(zip(names, row, strict=True)) for row in cur.fetchall()]


def count(conn: duckdb.DuckDBPyConnection, table: str) -> int:
    row = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()
    assert row is not None
    return int(row[0])


class MemoryStore:
    """Records every batch written; can be told to fail per table or on lookups."""

    def __init__(self, *, fail_tables: Sequence[str] = (), fail_lookup: bool = False) -> None:
        self.batches: list[tuple[str, list[Row]]] = []
        self.fail_tables = set(fail_tables)
        self.fail_lookup = fail_lookup

    def write(self, rows: Sequence[Row]) -> int:
        table = type(rows[0]).TABLE
        if table in self.fail_tables:
            raise StoreError(f"write to {table} failed: injected")
        self.batches.append((table, list(rows)))
        return len(rows)

    def has_event(self, table: str, event_id: str) -> bool:
        if self.fail_lookup:
            raise StoreError(f"lookup in {table} failed: injected")
        return any(
            getattr(row, "event_id", None) == event_id
            for name, rows in self.batches
            if name == table
            for row in rows
        )

    def tables(self) -> list[str]:
        return [name for name, _ in self.batches]

    def rows(self, table: str) -> list[Row]:
        return [row for name, rows in self.batches if name == table for row in rows]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _isolate():
    """Fresh settings cache and structlog state for every test."""
    get_settings.cache_clear()
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    yield
    get_settings.cache_clear()
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


@pytest.fixture()
def conn():
    c = duckdb.connect(":memory:")
    apply_pending_migrations(c, SQL_DIR)
    yield c
    c.close()


@pytest.fixture()
def store(conn) -> Warehouse:
    return Warehouse(conn)


@pytest.fixture()
def metrics() -> IngestMetrics:
    return IngestMetrics.create(CollectorRegistry())


@pytest.fixture()
def handler(conn, store, metrics) -> EventHandler:
    return EventHandler(store, metrics=metrics, rollups=DuckDBRollups(conn))


def sample(metrics: IngestMetrics, name: str, **labels: str) -> float:
    """Current value of a metric sample, 0.0 when it has never been set."""
    value = metrics.registry.get_sample_value(name, labels)
    return value or 0.0
