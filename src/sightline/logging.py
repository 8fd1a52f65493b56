"""structlog setup for sightline processes.

The CLI calls ``configure_logging()`` before running a command.  Everything
else only calls ``get_logger(__name__)`` and logs key/value events:

    log = get_logger(__name__)
    log.warning("event dropped", reason="missing_or_invalid_tenant_id", event_id=eid)

Every line carries ``run_id`` for the process and, while an envelope is being
handled, ``event_id`` / ``event_type`` / ``source`` bound by ``event_context``.
Output goes to stderr as JSON (``logging.format = "json"``) or through the
console renderer (``"text"``).
"""

import logging as _stdlib
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Protocol

import structlog

from sightline.config import Settings, get_settings


class _Envelope(Protocol):
    event_id: str
    event_type: str
    source: str


def configure_logging(settings: Settings | None = None) -> str:
    """Install the processor chain and bind a fresh ``run_id``, which is returned."""
    settings = settings or get_settings()

    if settings.logging.format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            _stdlib.getLevelName(settings.logging.level)
        ),
        context_class=dict,
        # stdout is reserved for command output.  Loggers are rebuilt on each
        # use so a swapped sys.stderr (CliRunner) is picked up.
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )

    run_id = uuid.uuid4().hex[:8]
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(run_id=run_id)
    return run_id


@contextmanager
def event_context(event: _Envelope) -> Iterator[None]:
    """Bind the envelope's identity to every log line emitted inside the block."""
    with structlog.contextvars.bound_contextvars(
        event_id=event.event_id,
        event_type=event.event_type,
        source=event.source,
    ):
        yield


def get_logger(name: str = "sightline") -> structlog.BoundLogger:
    return structlog.get_logger(name)
