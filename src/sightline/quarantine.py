"""Ingest error sink: audit rows for events that were dropped or failed.

``quarantine_event(store, event, reason, cause=...)`` appends one row to
``ingest_errors`` carrying enough context to investigate or replay:

- ``received_at``   the envelope's own timestamp (UTC), the same time basis
                    the analytical tables use
- ``event_id`` / ``event_type`` / ``source`` / ``tenant_id`` from the envelope
- ``stream_id``     the raw stream identifier, if the producer sent one
- ``error``         ``"<reason>"`` or ``"<reason>: <cause>"``
- ``payload_json``  the envelope's ``data`` as JSON

When ``data`` cannot be serialized the row still gets written, with
``payload_json = "{}"`` and ``" (payload_marshal_error: …)"`` appended to
the reason.  Text that cannot be encoded as UTF-8 (lone surrogates) is
written with ``U+FFFD`` in its place.  A failing store is logged and
swallowed.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime

from sightline.errors import StoreError
from sightline.logging import get_logger
from sightline.models.envelope import AnalyticsEvent, ServiceEvent
from sightline.models.rows import IngestErrorRow
from sightline.warehouse import AnalyticsStore

_log = get_logger(__name__)


def _utf8(text: str) -> str:
    return text.encode("utf-8", errors="replace").decode("utf-8")


def quarantine_event(
    store: AnalyticsStore,
    event: AnalyticsEvent | ServiceEvent,
    reason: str,
    *,
    cause: BaseException | str | None = None,
    stream_id: str = "",
    now: datetime | None = None,
) -> None:
    """Write an ``ingest_errors`` row for ``event``; never raises ``StoreError``.

    Args:
        store:     Analytical store to write through.
        event:     The envelope being dropped or failed.
        reason:    Stable machine-readable reason, e.g. ``missing_or_invalid_stream_id``.
        cause:     Underlying error, appended to the reason in the ``error`` column.
        stream_id: Raw stream identifier from the payload, if any.
        now:       Override ``received_at`` instead of using ``event.timestamp``.
    """
    try:
        payload_json = json.dumps(event.data)
    except (TypeError, ValueError) as exc:
        payload_json = "{}"
        reason = f"{reason} (payload_marshal_error: {exc})"

    message = reason if cause is None else f"{reason}: {cause}"
    received = now if now is not None else event.timestamp

    row = IngestErrorRow(
        received_at=received.astimezone(UTC).replace(tzinfo=None),
        event_id=_utf8(event.event_id),
        event_type=_utf8(event.event_type),
        source=_utf8(event.source),
        tenant_id=_utf8(event.tenant_id),
        stream_id=_utf8(stream_id),
        error=_utf8(message),
        payload_json=_utf8(payload_json),
    )
    try:
        store.write([row])
    except StoreError as exc:
        _log.error(
            "failed to write ingest error",
            event_id=event.event_id,
            event_type=event.event_type,
            reason=reason,
            error=str(exc),
        )
