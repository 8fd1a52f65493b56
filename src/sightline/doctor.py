"""Warehouse health checks for ``sightline doctor``.

Each check takes an open DuckDB connection plus the reference time ``now``
(naive UTC) and returns a ``CheckResult``.  All checks are safe to run on an
empty warehouse.

``exit_code(results)`` maps results to the CLI exit status: 0 when all
pass, 1 when the worst result is a warning, 2 when any check failed.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Literal

import duckdb

Status = Literal["pass", "warn", "fail"]

# Append-only tables that every healthy deployment writes to continuously.
_ACTIVITY_TABLES = ("stream_event_log", "viewer_connection_events", "node_metrics_samples")

_WINDOW = timedelta(hours=24)


@dataclass(frozen=True)
class CheckResult:
    name: str
    status: Status
    message: str
    hint: str = ""


def _count(conn: duckdb.DuckDBPyConnection, sql: str, *params: object) -> int:
    row = conn.execute(sql, list(params)).fetchone()
    assert row is not None
    return int(row[0] or 0)


def _recent_activity(conn: duckdb.DuckDBPyConnection, since: datetime) -> int:
    return sum(
        _count(conn, f"SELECT COUNT(*) FROM {table} WHERE timestamp >= ?", since)
        for table in _ACTIVITY_TABLES
    )


# ---------------------------------------------------------------------------
# Individual checks
# ---------------------------------------------------------------------------


def check_freshness(conn: duckdb.DuckDBPyConnection, now: datetime) -> CheckResult:
    """The newest stream, viewer or node row must be recent.

    PASS  — newest row ≤ 1 h old
    WARN  — 1 h – 24 h
    FAIL  — older than 24 h, or no rows at all
    """
    union = " UNION ALL ".join(f"SELECT MAX(timestamp) AS ts FROM {t}" for t in _ACTIVITY_TABLES)
    row = conn.execute(f"SELECT MAX(ts) FROM ({union})").fetchone()
    latest = row[0] if row else None
    if latest is None:
        return CheckResult(
            name="freshness",
            status="fail",
            message="no stream, viewer or node events stored",
            hint="feed events with `sightline ingest`",
        )

    age_hours = (now - latest).total_seconds() / 3600.0
    if age_hours <= 1:
        return CheckResult(
            name="freshness", status="pass", message=f"newest event {age_hours:.1f} h ago"
        )
    if age_hours <= 24:
        return CheckResult(
            name="freshness",
            status="warn",
            message=f"newest event {age_hours:.1f} h ago (threshold: 1 h)",
            hint="check that the event consumer is running",
        )
    return CheckResult(
        name="freshness",
        status="fail",
        message=f"newest event {age_hours:.1f} h ago (threshold: 24 h)",
        hint="check the event consumer and its upstream topic",
    )


def check_ingest_error_rate(conn: duckdb.DuckDBPyConnection, now: datetime) -> CheckResult:
    """Share of the last 24 h of events that ended in ``ingest_errors``.

    PASS  — ≤ 2 %
    WARN  — 2 % – 10 %
    FAIL  — > 10 %
    """
    since = now - _WINDOW
    errors = _count(conn, "SELECT COUNT(*) FROM ingest_errors WHERE received_at >= ?", since)
    total = errors + _recent_activity(conn, since)
    if total == 0:
        return CheckResult(
            name="ingest_error_rate",
            status="pass",
            message="no events in the last 24 h; skipping",
        )

    rate = 100.0 * errors / total
    if rate <= 2.0:
        return CheckResult(
            name="ingest_error_rate",
            status="pass",
            message=f"{rate:.1f}% of events audited as errors ({errors}/{total})",
        )
    if rate <= 10.0:
        return CheckResult(
            name="ingest_error_rate",
            status="warn",
            message=f"{rate:.1f}% of events audited as errors (warn threshold: 2%)",
            hint="group ingest_errors by error to find the noisy producer",
        )
    return CheckResult(
        name="ingest_error_rate",
        status="fail",
        message=f"{rate:.1f}% of events audited as errors (fail threshold: 10%)",
        hint="group ingest_errors by error to find the noisy producer",
    )


def check_handler_errors(conn: duckdb.DuckDBPyConnection, now: datetime) -> CheckResult:
    """Redeliverable failures in the last 24 h.

    Policy drops are expected noise; ``handler_error`` rows mean events the
    consumer had to redeliver.

    PASS  — none
    WARN  — any
    """
    n = _count(
        conn,
        "SELECT COUNT(*) FROM ingest_errors WHERE received_at >= ? AND error LIKE 'handler_error%'",
        now - _WINDOW,
    )
    if n == 0:
        return CheckResult(
            name="handler_errors", status="pass", message="no handler errors in the last 24 h"
        )
    return CheckResult(
        name="handler_errors",
        status="warn",
        message=f"{n} handler error(s) in the last 24 h",
        hint="SELECT error, payload_json FROM ingest_errors WHERE error LIKE 'handler_error%'",
    )


def check_stale_streams(conn: duckdb.DuckDBPyConnection, now: datetime) -> CheckResult:
    """Streams still marked live whose state has not moved in an hour.

    PASS  — none
    WARN  — any
    """
    n = _count(
        conn,
        "SELECT COUNT(*) FROM stream_state_current WHERE status = 'live' AND updated_at < ?",
        now - timedelta(hours=1),
    )
    if n == 0:
        return CheckResult(name="stale_streams", status="pass", message="no stale live streams")
    return CheckResult(
        name="stale_streams",
        status="warn",
        message=f"{n} live stream(s) without a lifecycle update for over 1 h",
        hint="nodes may have stopped reporting; compare with node_state_current",
    )


# ---------------------------------------------------------------------------
# Registry and runner
# ---------------------------------------------------------------------------

_ALL_CHECKS: dict[str, Callable[[duckdb.DuckDBPyConnection, datetime], CheckResult]] = {
    "freshness": check_freshness,
    "ingest_error_rate": check_ingest_error_rate,
    "handler_errors": check_handler_errors,
    "stale_streams": check_stale_streams,
}


def run_checks(
    conn: duckdb.DuckDBPyConnection,
    *,
    only: str = "",
    now: datetime | None = None,
) -> list[CheckResult]:
    """Run all registered checks (or just ``only`` if named) and return results.

    Args:
        conn: Open DuckDB connection with the schema applied.
        only: If non-empty, run only the check with this name.
        now:  Reference time as naive UTC (defaults to the current time).

    Raises:
        ValueError: If ``only`` names a check that does not exist.
    """
    if now is None:
        now = datetime.now(UTC).replace(tzinfo=None)
    if only:
        if only not in _ALL_CHECKS:
            raise ValueError(f"unknown check: {only!r}.  Known: {sorted(_ALL_CHECKS)}")
        return [_ALL_CHECKS[only](conn, now)]
    return [fn(conn, now) for fn in _ALL_CHECKS.values()]


_EXIT_CODES: dict[Status, int] = {"pass": 0, "warn": 1, "fail": 2}


def exit_code(results: list[CheckResult]) -> int:
    """Process exit status for a set of results: the worst status wins."""
    return max((_EXIT_CODES[r.status] for r in results), default=0)
