"""Billing and API usage: transcoder process samples and API request aggregates."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from sightline.derive import flag, from_unix
from sightline.identity import canonical_name, parse_uuid
from sightline.logging import get_logger
from sightline.models.rows import ApiRequestRow, ProcessingEventRow
from sightline.models.trigger import APIRequestAggregate, APIRequestBatch, ProcessBilling
from sightline.projector import Projection
from sightline.transform.base import Outcome, TriggerEvent

_log = get_logger(__name__)


def project_process_billing(
    projection: Projection,
    te: TriggerEvent,
    payload: ProcessBilling,
) -> Outcome:
    projection.write(
        [
            ProcessingEventRow(
                timestamp=te.timestamp,
                tenant_id=te.tenant_id,
                stream_id=te.stream_id,
                internal_name=canonical_name(payload.stream_name, te.event.internal_name),
                node_id=te.node_id,
                process_type=payload.process_type or None,
                track_type=payload.track_type or "unknown",
                duration_ms=payload.duration_ms,
                input_codec=payload.input_codec or None,
                output_codec=payload.output_codec or None,
                input_width=payload.input_width,
                input_height=payload.input_height,
                output_width=payload.output_width,
                output_height=payload.output_height,
                input_fps=payload.input_fps,
                output_fps=payload.output_fps,
                input_bytes=payload.input_bytes,
                output_bytes=payload.output_bytes,
                input_frames=payload.input_frames,
                output_frames=payload.output_frames,
                input_bitrate_bps=payload.input_bitrate_bps,
                output_bitrate_bps=payload.output_bitrate_bps,
                rtf_in=payload.rtf_in,
                rtf_out=payload.rtf_out,
                pipeline_lag_ms=payload.pipeline_lag_ms,
                is_final=flag(payload.is_final),
            )
        ]
    )
    return "processed"


def api_request_rows(
    aggregates: Iterable[APIRequestAggregate],
    batch_ts: datetime,
    source_node: str | None,
) -> list[ApiRequestRow]:
    """One ``api_requests`` row per aggregate with a valid tenant.

    An aggregate's own timestamp, when set, overrides the batch timestamp.
    Aggregates without a valid tenant are logged and left out.
    """
    rows = []
    for agg in aggregates:
        tenant_id = parse_uuid(agg.tenant_id)
        if tenant_id is None:
            _log.warning(
                "api aggregate without valid tenant",
                tenant_id=agg.tenant_id,
                source_node=source_node,
            )
            continue
        rows.append(
            ApiRequestRow(
                timestamp=from_unix(agg.timestamp) or batch_ts,
                tenant_id=tenant_id,
                source_node=source_node or None,
                auth_type=agg.auth_type or None,
                operation_type=agg.operation_type or None,
                operation_name=agg.operation_name or None,
                request_count=agg.request_count,
                error_count=agg.error_count,
                total_duration_ms=agg.total_duration_ms,
                total_complexity=agg.total_complexity,
                user_hashes=list(agg.user_hashes),
                token_hashes=list(agg.token_hashes),
            )
        )
    return rows


def project_api_request_batch(
    projection: Projection,
    te: TriggerEvent,
    payload: APIRequestBatch,
) -> Outcome:
    """Gateway API usage reported through the analytics stream."""
    rows = api_request_rows(
        payload.aggregates,
        from_unix(payload.timestamp) or te.timestamp,
        payload.source_node,
    )
    if not rows:
        projection.metrics.insert(ApiRequestRow.TABLE, "skip")
        _log.debug(
            "api request batch had no valid aggregates",
            event_id=te.event_id,
            source_node=payload.source_node,
        )
        return "skipped"
    projection.write(rows)
    return "processed"
