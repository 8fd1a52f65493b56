"""Service-plane events: API usage batches, tenant signups, and the audit trail.

Service events carry plain key/value ``data`` rather than a trigger, so
these projectors take the :class:`ServiceEvent` itself.  Everything except
``api_request_batch`` is written to ``api_events`` as an audit row; message
and conversation events keep only an allow-listed subset of their data.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from sightline.derive import from_unix, to_json, utc_naive
from sightline.errors import PayloadDecodeError, StoreError
from sightline.identity import parse_uuid
from sightline.logging import get_logger
from sightline.models.envelope import ServiceEvent
from sightline.models.rows import ApiEventRow, ApiRequestRow, TenantAcquisitionRow
from sightline.models.trigger import APIRequestAggregate
from sightline.projector import Projection
from sightline.transform.base import Outcome
from sightline.transform.usage import api_request_rows
from sightline.validate import decode_model

_log = get_logger(__name__)

_DATA_ALLOW_LIST: dict[str, tuple[str, ...]] = {
    "message_received": ("conversation_id", "message_id", "sender", "timestamp"),
    "message_updated": ("conversation_id", "message_id", "sender", "timestamp"),
    "conversation_created": ("conversation_id", "status", "subject", "timestamp"),
    "conversation_updated": ("conversation_id", "status", "subject", "timestamp"),
}

_ATTRIBUTION_FIELDS = (
    "signup_method",
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_content",
    "utm_term",
    "http_referer",
    "landing_page",
    "referral_code",
)


def sanitize_service_data(event_type: str, data: Mapping[str, Any]) -> dict[str, Any]:
    """Reduce ``data`` to the allow-listed keys for ``event_type``.

    Event types without an allow-list keep their data unchanged.
    """
    keys = _DATA_ALLOW_LIST.get(event_type)
    if keys is None:
        return dict(data)
    return {k: data[k] for k in keys if k in data}


def _text(data: Mapping[str, Any], key: str) -> str | None:
    value = data.get(key)
    return value if isinstance(value, str) and value else None


def _unix(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    return int(value)


def _audit_row(
    event: ServiceEvent,
    tenant_id: str,
    details: Mapping[str, Any],
    at: datetime | None = None,
) -> ApiEventRow:
    return ApiEventRow(
        event_id=event.event_id,
        timestamp=at or utc_naive(event.timestamp),
        tenant_id=tenant_id,
        event_type=event.event_type,
        source=event.source,
        user_id=event.user_id or None,
        resource_type=event.resource_type or None,
        resource_id=event.resource_id or None,
        details=to_json(details),
    )


# ---------------------------------------------------------------------------
# API usage
# ---------------------------------------------------------------------------


def project_service_api_batch(projection: Projection, event: ServiceEvent) -> Outcome:
    """Fan an API usage batch out to ``api_requests``, one row per tenant aggregate.

    The batch spans many tenants, so the envelope tenant is not consulted.
    Aggregates that are not objects, fail to decode, or lack a valid tenant
    are skipped individually; a batch with nothing left is a no-op.  After
    the rows land, one audit row per aggregate is written on a best-effort
    basis.

    Raises:
        PayloadDecodeError: ``aggregates`` is missing or not a list.
    """
    data = event.data
    if "aggregates" not in data:
        raise PayloadDecodeError("missing aggregates in api_request_batch service event")
    raw_aggregates = data["aggregates"]
    if not isinstance(raw_aggregates, list):
        raise PayloadDecodeError("invalid aggregates type in api_request_batch service event")

    batch_ts = from_unix(_unix(data.get("timestamp"))) or utc_naive(event.timestamp)
    source_node = _text(data, "source_node")

    aggregates: list[APIRequestAggregate] = []
    for raw in raw_aggregates:
        if not isinstance(raw, dict):
            _log.warning("api aggregate is not an object", event_id=event.event_id)
            continue
        try:
            aggregates.append(decode_model(APIRequestAggregate, raw))
        except PayloadDecodeError as exc:
            _log.warning("api aggregate failed to decode", event_id=event.event_id, error=str(exc))

    rows = api_request_rows(aggregates, batch_ts, source_node)
    if not rows:
        projection.metrics.insert(ApiRequestRow.TABLE, "skip")
        _log.debug(
            "api request batch had no valid aggregates",
            event_id=event.event_id,
            source_node=source_node,
        )
        return "skipped"
    projection.write(rows)

    audit = [
        _audit_row(
            event,
            row.tenant_id,
            {
                "source_node": row.source_node,
                "auth_type": row.auth_type,
                "operation_name": row.operation_name,
                "operation_type": row.operation_type,
                "request_count": row.request_count,
                "error_count": row.error_count,
                "total_duration_ms": row.total_duration_ms,
                "total_complexity": row.total_complexity,
                "user_hashes": row.user_hashes,
                "token_hashes": row.token_hashes,
            },
            at=row.timestamp,
        )
        for row in rows
    ]
    try:
        projection.write(audit)
    except StoreError as exc:
        _log.warning("api request batch audit failed", event_id=event.event_id, error=str(exc))
    return "processed"


# ---------------------------------------------------------------------------
# Tenants and audit
# ---------------------------------------------------------------------------


def project_tenant_created(projection: Projection, event: ServiceEvent, tenant_id: str) -> Outcome:
    """Record signup attribution when the producer supplied a channel, then audit."""
    attribution = event.data.get("attribution")
    if isinstance(attribution, dict) and _text(attribution, "signup_channel"):
        projection.write(
            [
                TenantAcquisitionRow(
                    tenant_id=tenant_id,
                    timestamp=utc_naive(event.timestamp),
                    user_id=parse_uuid(event.user_id),
                    signup_channel=attribution["signup_channel"],
                    is_agent=1 if attribution.get("is_agent") is True else 0,
                    event_data=to_json(event.data),
                    **{name: _text(attribution, name) for name in _ATTRIBUTION_FIELDS},
                )
            ]
        )
    return project_service_audit(projection, event, tenant_id)


def project_service_audit(projection: Projection, event: ServiceEvent, tenant_id: str) -> Outcome:
    details = sanitize_service_data(event.event_type, event.data)
    projection.write([_audit_row(event, tenant_id, details)])
    return "processed"
