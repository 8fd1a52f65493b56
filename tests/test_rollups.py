"""Tests for the relational stream rollups."""

from datetime import datetime, timedelta

import pytest

from sightline.errors import StoreError
from sightline.rollups import DuckDBRollups, RollupUpdate
from tests.conftest import TENANT, fetch

T0 = datetime(2026, 10, 19, 8, 0)


class TestDuckDBRollups:
    def test_first_update_creates_row(self, conn):
        DuckDBRollups(conn).apply(RollupUpdate(TENANT, "demo", T0, viewer_delta=1, sessions=1))
        (row,) = fetch(conn, "stream_rollups")
        assert row["current_viewers"] == 1
        assert row["total_sessions"] == 1
        assert row["updated_at"] == T0

    def test_updates_accumulate(self, conn):
        rollups = DuckDBRollups(conn)
        rollups.apply(RollupUpdate(TENANT, "demo", T0, viewer_delta=1, sessions=1))
        rollups.apply(RollupUpdate(TENANT, "demo", T0, viewer_delta=1, sessions=1))
        rollups.apply(
            RollupUpdate(
                TENANT,
                "demo",
                T0 + timedelta(minutes=1),
                viewer_delta=-1,
                session_seconds=42,
                bytes_transferred=300,
            )
        )
        (row,) = fetch(conn, "stream_rollups")
        assert row["current_viewers"] == 1
        assert row["total_sessions"] == 2
        assert row["total_session_seconds"] == 42
        assert row["total_bytes"] == 300
        assert row["updated_at"] == T0 + timedelta(minutes=1)

    def test_viewers_never_negative(self, conn):
        DuckDBRollups(conn).apply(RollupUpdate(TENANT, "demo", T0, viewer_delta=-1))
        assert fetch(conn, "stream_rollups")[0]["current_viewers"] == 0

    def test_streams_kept_apart(self, conn):
        rollups = DuckDBRollups(conn)
        rollups.apply(RollupUpdate(TENANT, "a", T0, viewer_delta=1))
        rollups.apply(RollupUpdate(TENANT, "b", T0, viewer_delta=1))
        assert len(fetch(conn, "stream_rollups")) == 2

    def test_driver_error_becomes_store_error(self, conn):
        conn.execute("DROP TABLE stream_rollups")
        with pytest.raises(StoreError, match="rollup update failed"):
            DuckDBRollups(conn).apply(RollupUpdate(TENANT, "demo", T0))
