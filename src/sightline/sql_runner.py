"""Forward-only SQL migration runner for the analytical store.

``apply_pending_migrations(conn, sql_dir)`` bootstraps a ``schema_migrations``
table, then applies every ``*.sql`` file in ``sql_dir`` whose stem has not
been recorded yet, in filename order.  Each file runs inside its own
transaction together with its ``schema_migrations`` row, so a failing file
leaves no partial schema behind and is retried on the next startup.
"""

from __future__ import annotations

from pathlib import Path

import duckdb

from sightline.logging import get_logger

_log = get_logger(__name__)

_BOOTSTRAP = """
    CREATE TABLE IF NOT EXISTS schema_migrations (
        version     TEXT PRIMARY KEY,
        applied_at  TIMESTAMPTZ NOT NULL DEFAULT current_timestamp
    )
"""


def apply_pending_migrations(
    conn: duckdb.DuckDBPyConnection,
    sql_dir: Path,
) -> list[str]:
    """Apply pending migrations from ``sql_dir`` and return the versions applied.

    Migration files carry a sortable numeric prefix (``001_init.sql``,
    ``002_rollups.sql``, …); the file stem is the version key.  An empty
    list means the schema was already current.
    """
    conn.execute(_BOOTSTRAP)
    applied = {row[0] for row in conn.execute("SELECT version FROM schema_migrations").fetchall()}
    pending = sorted(p for p in sql_dir.glob("*.sql") if p.stem not in applied)

    versions: list[str] = []
    for sql_file in pending:
        conn.begin()
        try:
            for stmt in split_statements(sql_file.read_text(encoding="utf-8")):
                conn.execute(stmt)
            conn.execute("INSERT INTO schema_migrations (version) VALUES (?)", [sql_file.stem])
        except duckdb.Error:
            conn.rollback()
            _log.error("migration failed", version=sql_file.stem)
            raise
        conn.commit()
        _log.info("migration applied", version=sql_file.stem)
        versions.append(sql_file.stem)

    return versions


def split_statements(sql: str) -> list[str]:
    """Split a migration file into statements.

    ``--`` comment lines are dropped first so a semicolon inside a comment
    cannot split a statement.
    """
    body = "\n".join(line for line in sql.splitlines() if not line.lstrip().startswith("--"))
    return [stmt.strip() for stmt in body.split(";") if stmt.strip()]
