"""CLI root — entry point for all sightline subcommands.

Entry points:
  sightline             (installed script)
  python -m sightline

Command surface:
  sightline init               initialise warehouse and directory layout
  sightline ingest FILE        feed a JSONL file of envelopes through the handler
  sightline doctor             check ingest health and data freshness
  sightline config show        print resolved configuration
"""

from pathlib import Path

import typer

from sightline import __version__
from sightline.logging import get_logger

app = typer.Typer(
    name="sightline",
    help="Streaming telemetry ingest: validate, decode and project events into DuckDB.",
    no_args_is_help=True,
)

_log = get_logger(__name__)


# ---------------------------------------------------------------------------
# Global callback: runs before every subcommand
# ---------------------------------------------------------------------------


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"sightline {__version__}")
        raise typer.Exit()


@app.callback()
def _main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Print version and exit.",
    ),
) -> None:
    """Streaming telemetry ingest: validate, decode and project events into DuckDB."""
    # Eager options (--version) exit before this body runs.
    from sightline.logging import configure_logging

    configure_logging()


# ---------------------------------------------------------------------------
# init
# ---------------------------------------------------------------------------


@app.command("init")
def init() -> None:
    """Create the warehouse under data_root and apply any pending migrations.

    Re-running is harmless; applied migrations are recorded and skipped.
    """
    from sightline.config import get_settings
    from sightline.paths import ProjectPaths
    from sightline.warehouse import WAREHOUSE_FILE, open_warehouse, run_migrations

    paths = ProjectPaths.from_settings(get_settings())
    paths.ensure_output_dirs()
    conn = open_warehouse(paths)
    try:
        applied = run_migrations(conn)
    finally:
        conn.close()

    db_path = paths.warehouse_dir / WAREHOUSE_FILE
    _log.info("warehouse initialised", path=str(db_path), applied=applied)
    typer.echo(f"warehouse: {db_path}")
    typer.echo(f"migrations applied: {len(applied)}")


# ---------------------------------------------------------------------------
# ingest
# ---------------------------------------------------------------------------


@app.command("ingest")
def ingest(
    feed: Path = typer.Argument(
        ...,
        exists=True,
        dir_okay=False,
        readable=True,
        help="JSONL file with one event envelope per line.",
    ),
    service: bool = typer.Option(
        False,
        "--service",
        help="Treat lines as service-plane envelopes instead of analytics events.",
    ),
    show_metrics: bool = typer.Option(
        False,
        "--metrics",
        help="Print the Prometheus exposition for this run after the summary.",
    ),
) -> None:
    """Feed a JSONL file of envelopes through the event handler.

    Each line is validated as an envelope and handled exactly as a consumer
    would handle a delivered message.  Lines that fail to parse or validate
    are reported and skipped; events the handler fails on are already
    recorded in ingest_errors and are counted as failed.  There is no retry.

    Exit codes: 0 = every line handled, 1 = one or more lines invalid or failed.
    """
    from collections import Counter

    from sightline.config import get_settings
    from sightline.dispatch import EventHandler
    from sightline.errors import EnvelopeError, IngestError
    from sightline.parser import BadLine, iter_feed
    from sightline.paths import ProjectPaths
    from sightline.rollups import DuckDBRollups
    from sightline.validate import validate_envelope, validate_service_envelope
    from sightline.warehouse import Warehouse, open_warehouse, run_migrations

    settings = get_settings()
    paths = ProjectPaths.from_settings(settings)
    paths.ensure_output_dirs()

    conn = open_warehouse(paths)
    run_migrations(conn)
    handler = EventHandler(Warehouse(conn), rollups=DuckDBRollups(conn), ingest=settings.ingest)
    validate = validate_service_envelope if service else validate_envelope
    handle = handler.handle_service_event if service else handler.handle_event

    counts: Counter[str] = Counter()
    try:
        for line in iter_feed(feed):
            if isinstance(line, BadLine):
                _log.warning("unparseable line", line=line.line_number, reason=line.reason)
                counts["invalid"] += 1
                continue
            try:
                event = validate(line.data)
            except EnvelopeError as exc:
                _log.warning("invalid envelope", line=line.line_number, error=str(exc))
                counts["invalid"] += 1
                continue
            try:
                counts[handle(event)] += 1
            except IngestError as exc:
                _log.error(
                    "event failed",
                    line=line.line_number,
                    event_id=event.event_id,
                    error=str(exc),
                )
                counts["failed"] += 1
    finally:
        conn.close()

    typer.echo(f"\nIngest complete — {sum(counts.values())} line(s) read from {feed}")
    for outcome in ("processed", "duplicate", "skipped", "dropped", "failed", "invalid"):
        typer.echo(f"  {outcome + ':':<11} {counts[outcome]}")
    _log.info("ingest finished", **counts)

    if show_metrics:
        body, _ = handler.metrics.exposition()
        typer.echo()
        typer.echo(body.decode("utf-8"))

    if counts["failed"] or counts["invalid"]:
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# doctor
# ---------------------------------------------------------------------------


@app.command("doctor")
def doctor(
    check: str = typer.Option(
        "",
        "--check",
        "-c",
        help="Run a single check by name instead of all of them.",
    ),
    as_json: bool = typer.Option(
        False,
        "--json",
        help="Print results as a JSON array for monitoring scripts.",
    ),
) -> None:
    """Check ingest health and data freshness.

    Checks: freshness of stream/viewer/node data, the ingest error rate,
    redeliverable handler errors, and live streams that have gone quiet.

    Exit codes: 0 = all pass, 1 = worst result is a warning, 2 = any failure.
    """
    import json
    from dataclasses import asdict

    from sightline.config import get_settings
    from sightline.doctor import exit_code, run_checks
    from sightline.paths import ProjectPaths
    from sightline.warehouse import open_warehouse, run_migrations

    paths = ProjectPaths.from_settings(get_settings())
    paths.ensure_output_dirs()
    conn = open_warehouse(paths)
    try:
        run_migrations(conn)
        results = run_checks(conn, only=check)
    except ValueError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(2) from exc
    finally:
        conn.close()

    if as_json:
        typer.echo(json.dumps([asdict(r) for r in results], indent=2))
    else:
        width = max(len(r.name) for r in results)
        for r in results:
            typer.echo(f"{r.status.upper():<4}  {r.name:<{width}}  {r.message}")
            if r.hint:
                typer.echo(f"{'':<4}  {'':<{width}}  hint: {r.hint}")

    code = exit_code(results)
    _log.info(
        "doctor finished",
        checks=len(results),
        warnings=sum(r.status == "warn" for r in results),
        failures=sum(r.status == "fail" for r in results),
    )
    if code:
        raise typer.Exit(code)


# ---------------------------------------------------------------------------
# config show
# ---------------------------------------------------------------------------

_config_app = typer.Typer(help="Inspect resolved configuration.")
app.add_typer(_config_app, name="config")


@_config_app.command("show")
def config_show() -> None:
    """Print the resolved settings in TOML form.

    Values overridden by a SIGHTLINE_* environment variable are marked with
    the variable's name.
    """
    import json
    import os

    from sightline.config import _config_file, get_settings

    typer.echo(f"# file: {_config_file()}")
    for section, values in get_settings().model_dump(mode="json").items():
        typer.echo(f"\n[{section}]")
        for key, value in values.items():
            env_var = f"SIGHTLINE_{section}__{key}".upper()
            note = f"  # {env_var}" if env_var in os.environ else ""
            typer.echo(f"{key} = {json.dumps(value)}{note}")
