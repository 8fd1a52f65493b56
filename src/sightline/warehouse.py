"""DuckDB analytical store.

``open_warehouse(paths)`` opens or creates ``analytics.duckdb``.
``run_migrations(conn)``  brings the schema up to date.
``Warehouse(conn)``       is the store the event handler writes through.

Anything the handler writes to must satisfy :class:`AnalyticsStore`; tests
substitute small in-memory doubles to exercise failure paths.

Typical wiring:

    paths = ProjectPaths.from_settings(settings)
    paths.ensure_output_dirs()

    conn = open_warehouse(paths)
    run_migrations(conn)
    handler = EventHandler(Warehouse(conn), rollups=DuckDBRollups(conn))
"""

from __future__ import annotations

from collections.abc import Sequence
from functools import lru_cache
from pathlib import Path
from typing import Protocol

import duckdb

from sightline.errors import StoreError
from sightline.models import rows as _rows
from sightline.models.rows import Row
from sightline.paths import ProjectPaths

WAREHOUSE_FILE = "analytics.duckdb"

_SQL_DIR = Path(__file__).parent / "sql" / "schema"

# Parameter binding raises plain RuntimeError or UnicodeError for values DuckDB
# cannot encode (lone surrogates in a str), outside the duckdb.Error tree.
DRIVER_ERRORS = (duckdb.Error, RuntimeError, UnicodeError)

# Tables the duplicate lookup may query.  Table names are interpolated into
# SQL, so anything outside this set is rejected.
LOOKUP_TABLES: frozenset[str] = frozenset(
    cls.TABLE
    for cls in vars(_rows).values()
    if isinstance(cls, type) and issubclass(cls, Row) and cls is not Row
    and "event_id" in cls.columns()
)


class AnalyticsStore(Protocol):
    def write(self, rows: Sequence[Row]) -> int: ...

    def has_event(self, table: str, event_id: str) -> bool: ...


def open_warehouse(paths: ProjectPaths) -> duckdb.DuckDBPyConnection:
    """Open (or create) the warehouse database and return a connection.

    The warehouse directory must already exist; call
    ``paths.ensure_output_dirs()`` first.  The caller closes the connection.
    """
    return duckdb.connect(str(paths.warehouse_dir / WAREHOUSE_FILE))


def run_migrations(conn: duckdb.DuckDBPyConnection) -> list[str]:
    """Apply any pending schema migrations and return the versions applied."""
    from sightline.sql_runner import apply_pending_migrations

    return apply_pending_migrations(conn, _SQL_DIR)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class Warehouse:
    """Batched writes and point lookups against a DuckDB connection.

    Each call runs on its own cursor, so one ``Warehouse`` can be shared by
    concurrent handler calls.  Driver errors surface as ``StoreError``.
    """

    def __init__(self, conn: duckdb.DuckDBPyConnection) -> None:
        self._conn = conn

    def write(self, rows: Sequence[Row]) -> int:
        """Insert ``rows`` (all of one table) as a single batch; return the count."""
        if not rows:
            return 0
        row_cls = type(rows[0])
        if any(type(row) is not row_cls for row in rows):
            raise TypeError(f"mixed row types in one batch for {row_cls.TABLE}")

        params = [row.as_params() for row in rows]
        try:
            with self._conn.cursor() as cur:
                cur.executemany(insert_sql(row_cls), params)
        except DRIVER_ERRORS as exc:
            raise StoreError(f"write to {row_cls.TABLE} failed: {exc}") from exc
        return len(rows)

    def has_event(self, table: str, event_id: str) -> bool:
        if table not in LOOKUP_TABLES:
            raise ValueError(f"not a dedup table: {table!r}")
        try:
            with self._conn.cursor() as cur:
                found = cur.execute(
                    f"SELECT 1 FROM {table} WHERE event_id = ? LIMIT 1", [event_id]
                ).fetchone()
        except DRIVER_ERRORS as exc:
            raise StoreError(f"lookup in {table} failed: {exc}") from exc
        return found is not None


@lru_cache(maxsize=None)
def insert_sql(row_cls: type[Row]) -> str:
    """Build the INSERT statement for ``row_cls``.

    Keyed rows become a last-write-wins upsert: an incoming row replaces the
    stored one only if its ``updated_at`` is not older, and ``KEEP_FIRST``
    columns are never overwritten.
    """
    cols = row_cls.columns()
    sql = (
        f"INSERT INTO {row_cls.TABLE} ({', '.join(_quote(c) for c in cols)}) "
        f"VALUES ({', '.join(['?'] * len(cols))})"
    )
    if not row_cls.KEY:
        return sql

    updatable = [c for c in cols if c not in row_cls.KEY and c not in row_cls.KEEP_FIRST]
    assignments = ", ".join(f"{_quote(c)} = excluded.{_quote(c)}" for c in updatable)
    return (
        f"{sql} ON CONFLICT ({', '.join(_quote(c) for c in row_cls.KEY)}) "
        f"DO UPDATE SET {assignments} "
        f"WHERE excluded.updated_at >= {row_cls.TABLE}.updated_at"
    )


def _quote(column: str) -> str:
    return f'"{column}"'
