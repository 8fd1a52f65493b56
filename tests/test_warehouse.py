"""Tests for the DuckDB store, migrations and last-write-wins upserts."""

from datetime import datetime, timedelta

import duckdb
import pytest

from sightline.config import Settings
from sightline.errors import StoreError
from sightline.models.rows import ApiEventRow, ArtifactStateRow, StreamStateRow
from sightline.paths import ProjectPaths
from sightline.sql_runner import apply_pending_migrations, split_statements
from sightline.warehouse import (
    LOOKUP_TABLES,
    WAREHOUSE_FILE,
    Warehouse,
    insert_sql,
    open_warehouse,
    run_migrations,
)
from tests.conftest import SQL_DIR, STREAM, TENANT, fetch

T0 = datetime(2026, 10, 19, 8, 0)


def _state(status: str, at: datetime, **kw) -> StreamStateRow:
    return StreamStateRow(
        tenant_id=TENANT,
        stream_id=STREAM,
        internal_name="demo",
        node_id="edge-1",
        status=status,
        updated_at=at,
        **kw,
    )


def _artifact(stage: str, requested: datetime, updated: datetime) -> ArtifactStateRow:
    return ArtifactStateRow(
        tenant_id=TENANT,
        request_id="clip-1",
        stream_id=STREAM,
        internal_name="demo",
        content_type="clip",
        stage=stage,
        requested_at=requested,
        updated_at=updated,
    )


# ---------------------------------------------------------------------------
# Migrations
# ---------------------------------------------------------------------------


class TestMigrations:
    def test_first_run_applies_init(self):
        c = duckdb.connect(":memory:")
        assert apply_pending_migrations(c, SQL_DIR) == ["001_init"]

    def test_second_run_is_noop(self, conn):
        assert apply_pending_migrations(conn, SQL_DIR) == []

    def test_run_migrations_uses_bundled_schema(self):
        c = duckdb.connect(":memory:")
        assert run_migrations(c) == ["001_init"]
        assert c.execute("SELECT COUNT(*) FROM stream_rollups").fetchone() == (0,)

    def test_failed_migration_rolls_back(self, tmp_path):
        (tmp_path / "001_bad.sql").write_text("CREATE TABLE ok (x INT);\nNOT VALID SQL;\n")
        c = duckdb.connect(":memory:")
        with pytest.raises(duckdb.Error):
            apply_pending_migrations(c, tmp_path)
        rows = c.execute("SELECT table_name FROM information_schema.tables").fetchall()
        tables = {r[0] for r in rows}
        assert "ok" not in tables
        assert c.execute("SELECT COUNT(*) FROM schema_migrations").fetchone() == (0,)

    def test_split_statements_ignores_comment_semicolons(self):
        sql = "-- a; b\nCREATE TABLE t (x INT);\n\nSELECT 1;"
        assert split_statements(sql) == ["CREATE TABLE t (x INT)", "SELECT 1"]

    def test_open_warehouse_creates_file(self, tmp_path):
        paths = ProjectPaths.from_settings(Settings(paths={"data_root": tmp_path}))
        paths.ensure_output_dirs()
        c = open_warehouse(paths)
        c.close()
        assert (paths.warehouse_dir / WAREHOUSE_FILE).exists()


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


class TestWrite:
    def test_append_batch(self, conn, store):
        rows = [
            ApiEventRow(
                event_id=f"e-{i}", timestamp=T0, tenant_id=TENANT, event_type="x", source="s"
            )
            for i in range(3)
        ]
        assert store.write(rows) == 3
        assert [r["event_id"] for r in fetch(conn, "api_events")] == ["e-0", "e-1", "e-2"]

    def test_empty_batch(self, store):
        assert store.write([]) == 0

    def test_mixed_batch_rejected(self, store):
        with pytest.raises(TypeError, match="mixed row types"):
            store.write([_state("live", T0), _artifact("requested", T0, T0)])

    def test_driver_error_becomes_store_error(self, conn):
        conn.execute("DROP TABLE api_events")
        row = ApiEventRow(event_id="e", timestamp=T0, tenant_id=TENANT, event_type="x", source="s")
        with pytest.raises(StoreError, match="write to api_events failed"):
            Warehouse(conn).write([row])

    def test_unencodable_text_becomes_store_error(self, store):
        row = ApiEventRow(
            event_id="e", timestamp=T0, tenant_id="\ud800", event_type="x", source="s"
        )
        with pytest.raises(StoreError, match="write to api_events failed"):
            store.write([row])


class TestLastWriteWins:
    def test_newer_replaces(self, conn, store):
        store.write([_state("live", T0)])
        store.write([_state("offline", T0 + timedelta(seconds=5))])
        (row,) = fetch(conn, "stream_state_current")
        assert row["status"] == "offline"

    def test_older_is_ignored(self, conn, store):
        store.write([_state("offline", T0 + timedelta(seconds=5))])
        store.write([_state("live", T0)])
        (row,) = fetch(conn, "stream_state_current")
        assert row["status"] == "offline"
        assert row["updated_at"] == T0 + timedelta(seconds=5)

    def test_equal_timestamp_replaces(self, conn, store):
        store.write([_state("live", T0)])
        store.write([_state("offline", T0)])
        assert fetch(conn, "stream_state_current")[0]["status"] == "offline"

    def test_requested_at_keeps_first_write(self, conn, store):
        store.write([_artifact("requested", T0, T0)])
        store.write([_artifact("done", T0 + timedelta(minutes=1), T0 + timedelta(minutes=1))])
        (row,) = fetch(conn, "artifact_state_current")
        assert row["stage"] == "done"
        assert row["requested_at"] == T0

    def test_upsert_sql_shape(self):
        sql = insert_sql(StreamStateRow)
        assert 'ON CONFLICT ("tenant_id", "stream_id")' in sql
        assert "WHERE excluded.updated_at >= stream_state_current.updated_at" in sql
        assert "ON CONFLICT" not in insert_sql(ApiEventRow)


class TestHasEvent:
    def test_lookup(self, store):
        row = ApiEventRow(
            event_id="e-1", timestamp=T0, tenant_id=TENANT, event_type="x", source="s"
        )
        store.write([row])
        assert store.has_event("api_events", "e-1")
        assert not store.has_event("api_events", "e-2")

    def test_lookup_tables_only_have_event_ids(self):
        dedup = {"stream_event_log", "viewer_connection_events", "federation_events"}
        assert dedup <= LOOKUP_TABLES
        assert "stream_state_current" not in LOOKUP_TABLES
        assert "ingest_errors" in LOOKUP_TABLES

    def test_unknown_table_rejected(self, store):
        with pytest.raises(ValueError, match="not a dedup table"):
            store.has_event("stream_state_current; DROP TABLE x", "e")

    def test_unencodable_event_id_becomes_store_error(self, store):
        with pytest.raises(StoreError, match="lookup in api_events failed"):
            store.has_event("api_events", "e-\udc80")
