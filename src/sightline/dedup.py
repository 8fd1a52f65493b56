"""Duplicate detection by ``event_id``.

A point lookup against an append-only table: has a row with this event id
already been stored?  The lookup and the later write are separate calls, so
two concurrent deliveries of one event can both pass.  Downstream readers
must tolerate the occasional duplicate.

A failed lookup is logged and counts as "not a duplicate".
"""

from __future__ import annotations

from sightline.errors import StoreError
from sightline.logging import get_logger
from sightline.warehouse import AnalyticsStore

_log = get_logger(__name__)


def is_duplicate(store: AnalyticsStore, table: str, event_id: str | None) -> bool:
    """True if ``table`` already holds a row for ``event_id``."""
    if not event_id:
        return False
    try:
        return store.has_event(table, event_id)
    except StoreError as exc:
        _log.warning("duplicate lookup failed", table=table, event_id=event_id, error=str(exc))
        return False


def seen_in_any(store: AnalyticsStore, tables: tuple[str, ...], event_id: str | None) -> bool:
    """True if any of ``tables`` already holds ``event_id``; lookups stop at the first hit."""
    return any(is_duplicate(store, table, event_id) for table in tables)
