"""Relational rollups: running per-stream counters.

The analytical tables are append-only history; ``stream_rollups`` holds the
"right now" numbers dashboards read directly (viewers currently connected,
session totals).  Rollups are best-effort: a failed update is logged by the
projector and never fails the event.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

import duckdb

from sightline.errors import StoreError
from sightline.warehouse import DRIVER_ERRORS


@dataclass(frozen=True)
class RollupUpdate:
    """Deltas to apply to one stream's counters."""

    tenant_id: str
    internal_name: str
    at: datetime
    viewer_delta: int = 0
    sessions: int = 0
    session_seconds: int = 0
    bytes_transferred: int = 0


class RollupStore(Protocol):
    def apply(self, update: RollupUpdate) -> None: ...


_ENSURE_SQL = """
    INSERT INTO stream_rollups
        (tenant_id, internal_name, current_viewers, total_sessions,
         total_session_seconds, total_bytes, updated_at)
    VALUES (?, ?, 0, 0, 0, 0, ?)
    ON CONFLICT (tenant_id, internal_name) DO NOTHING
"""

_APPLY_SQL = """
    UPDATE stream_rollups SET
        current_viewers       = greatest(current_viewers + ?, 0),
        total_sessions        = total_sessions + ?,
        total_session_seconds = total_session_seconds + ?,
        total_bytes           = total_bytes + ?,
        updated_at            = greatest(updated_at, ?)
    WHERE tenant_id = ? AND internal_name = ?
"""


class DuckDBRollups:
    """:class:`RollupStore` on the ``stream_rollups`` table."""

    def __init__(self, conn: duckdb.DuckDBPyConnection) -> None:
        self._conn = conn

    def apply(self, update: RollupUpdate) -> None:
        try:
            with self._conn.cursor() as cur:
                cur.begin()
                cur.execute(_ENSURE_SQL, [update.tenant_id, update.internal_name, update.at])
                cur.execute(
                    _APPLY_SQL,
                    [
                        update.viewer_delta,
                        update.sessions,
                        update.session_seconds,
                        update.bytes_transferred,
                        update.at,
                        update.tenant_id,
                        update.internal_name,
                    ],
                )
                cur.commit()
        except DRIVER_ERRORS as exc:
            raise StoreError(f"rollup update failed: {exc}") from exc
