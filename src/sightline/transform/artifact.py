"""Clip, DVR and VOD artifacts, plus storage lifecycle and snapshots.

Every artifact event upserts ``artifact_state_current`` keyed by
``(tenant_id, request_id)`` and then appends to ``artifact_events``.  The
first ``requested_at`` seen for a request survives later upserts.
"""

from __future__ import annotations

from sightline.derive import dvr_stage, from_unix, strip_enum, vod_stage
from sightline.identity import (
    canonical_name,
    cluster_attribution,
    parse_uuid,
    resolve_tenant,
)
from sightline.logging import get_logger
from sightline.models.rows import (
    ArtifactEventRow,
    ArtifactStateRow,
    StorageEventRow,
    StorageSnapshotRow,
)
from sightline.models.trigger import (
    ClipLifecycleData,
    DVRLifecycleData,
    StorageLifecycleData,
    StorageSnapshot,
    VodLifecycleData,
)
from sightline.projector import Projection
from sightline.transform.base import Outcome, TriggerEvent

_log = get_logger(__name__)


def _event_row(
    state: ArtifactStateRow,
    te: TriggerEvent,
    *,
    start_unix: int | None = None,
    stop_unix: int | None = None,
    node_id: str | None = None,
) -> ArtifactEventRow:
    cluster_id, origin_cluster_id = cluster_attribution(
        te.trigger.cluster_id, te.trigger.origin_cluster_id
    )
    return ArtifactEventRow(
        timestamp=te.timestamp,
        tenant_id=state.tenant_id,
        stream_id=state.stream_id,
        internal_name=state.internal_name,
        cluster_id=cluster_id,
        origin_cluster_id=origin_cluster_id,
        request_id=state.request_id,
        content_type=state.content_type,
        stage=state.stage,
        progress_percent=state.progress_percent,
        error_message=state.error_message,
        start_unix=start_unix,
        stop_unix=stop_unix,
        file_path=state.file_path,
        s3_url=state.s3_url,
        size_bytes=state.size_bytes,
        node_id=node_id,
        expires_at=state.expires_at,
    )


def project_clip_lifecycle(
    projection: Projection,
    te: TriggerEvent,
    payload: ClipLifecycleData,
) -> Outcome:
    stream_id = te.require_stream_id()
    request_id = payload.clip_hash or payload.request_id
    if not request_id:
        _log.warning("clip lifecycle without clip hash or request id", event_id=te.event_id)
        return "skipped"

    node_id = payload.node_id or te.node_id
    state = ArtifactStateRow(
        tenant_id=te.tenant_id,
        request_id=request_id,
        stream_id=stream_id,
        internal_name=canonical_name(payload.internal_name, te.event.internal_name),
        filename=None,
        content_type="clip",
        stage=strip_enum(payload.stage, "STAGE_"),
        progress_percent=payload.progress_percent,
        error_message=payload.error or None,
        requested_at=te.timestamp,
        started_at=from_unix(payload.started_at),
        completed_at=from_unix(payload.completed_at),
        clip_start_unix=payload.start_unix,
        clip_stop_unix=payload.stop_unix,
        file_path=payload.file_path or None,
        s3_url=payload.s3_url or None,
        size_bytes=payload.size_bytes,
        processing_node_id=node_id,
        expires_at=from_unix(payload.expires_at),
        updated_at=te.timestamp,
    )
    event = _event_row(
        state,
        te,
        start_unix=payload.start_unix,
        stop_unix=payload.stop_unix,
        node_id=node_id,
    )
    projection.write([state], [event])
    return "processed"


def project_dvr_lifecycle(
    projection: Projection,
    te: TriggerEvent,
    payload: DVRLifecycleData,
) -> Outcome:
    """DVR recordings; the request id is the DVR hash."""
    stream_id = te.require_stream_id()
    if not payload.dvr_hash:
        _log.warning("dvr lifecycle without dvr hash", event_id=te.event_id)
        return "skipped"

    node_id = payload.node_id or te.node_id
    state = ArtifactStateRow(
        tenant_id=resolve_tenant(te.tenant_id, payload.tenant_id) or te.tenant_id,
        request_id=payload.dvr_hash,
        stream_id=stream_id,
        internal_name=canonical_name(payload.internal_name, te.event.internal_name),
        filename=None,
        content_type="dvr",
        stage=dvr_stage(payload.status),
        error_message=payload.error or None,
        requested_at=te.timestamp,
        started_at=from_unix(payload.started_at),
        completed_at=from_unix(payload.ended_at),
        segment_count=payload.segment_count,
        manifest_path=payload.manifest_path or None,
        file_path=payload.manifest_path or None,
        size_bytes=payload.size_bytes,
        processing_node_id=node_id,
        expires_at=from_unix(payload.expires_at),
        updated_at=te.timestamp,
    )
    projection.write([state], [_event_row(state, te, node_id=node_id)])
    return "processed"


def project_vod_lifecycle(
    projection: Projection,
    te: TriggerEvent,
    payload: VodLifecycleData,
) -> Outcome:
    """VOD uploads.  The VOD hash doubles as request id and internal name."""
    if not payload.vod_hash:
        _log.warning("vod lifecycle without vod hash", event_id=te.event_id)
        return "skipped"

    node_id = payload.node_id or te.node_id
    state = ArtifactStateRow(
        tenant_id=resolve_tenant(te.tenant_id, payload.tenant_id) or te.tenant_id,
        request_id=payload.vod_hash,
        stream_id=te.stream_id,
        internal_name=payload.vod_hash,
        filename=payload.filename or None,
        content_type="vod",
        stage=vod_stage(payload.status),
        error_message=payload.error or None,
        requested_at=te.timestamp,
        started_at=from_unix(payload.started_at),
        completed_at=from_unix(payload.completed_at),
        file_path=payload.file_path or None,
        s3_url=payload.s3_url or None,
        size_bytes=payload.size_bytes,
        processing_node_id=node_id,
        expires_at=from_unix(payload.expires_at),
        updated_at=te.timestamp,
    )
    projection.write([state], [_event_row(state, te, node_id=node_id)])
    return "processed"


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


def project_storage_lifecycle(
    projection: Projection,
    te: TriggerEvent,
    payload: StorageLifecycleData,
) -> Outcome:
    """Freeze, defrost and eviction actions on stored assets.

    A malformed stream id is logged and stored as NULL; the action itself is
    still recorded.
    """
    if te.trigger.stream_id and te.stream_id is None:
        _log.warning(
            "storage lifecycle with invalid stream id",
            event_id=te.event_id,
            stream_id=te.trigger.stream_id,
        )

    projection.write(
        [
            StorageEventRow(
                timestamp=te.timestamp,
                tenant_id=resolve_tenant(te.tenant_id, payload.tenant_id) or te.tenant_id,
                stream_id=te.stream_id,
                internal_name=canonical_name(payload.internal_name, te.event.internal_name),
                asset_hash=payload.asset_hash or None,
                action=strip_enum(payload.action, "ACTION_"),
                asset_type=payload.asset_type or None,
                size_bytes=payload.size_bytes,
                s3_url=payload.s3_url or None,
                local_path=payload.local_path or None,
                node_id=te.node_id,
                duration_ms=payload.duration_ms,
                warm_duration_ms=payload.warm_duration_ms,
                error=payload.error or None,
            )
        ]
    )
    return "processed"


def project_storage_snapshot(
    projection: Projection,
    te: TriggerEvent,
    payload: StorageSnapshot,
) -> Outcome:
    """Fan a node's storage report out to one row per tenant.

    Usage entries carry their own tenant; entries without a valid one are
    dropped individually.
    """
    at = from_unix(payload.timestamp) or te.timestamp
    node_id = payload.node_id or te.node_id
    scope = payload.storage_scope or "hot"

    rows = []
    for usage in payload.usage:
        tenant_id = parse_uuid(usage.tenant_id)
        if tenant_id is None:
            _log.warning(
                "storage usage entry without valid tenant",
                event_id=te.event_id,
                tenant_id=usage.tenant_id,
            )
            projection.metrics.insert(StorageSnapshotRow.TABLE, "skip")
            continue
        rows.append(
            StorageSnapshotRow(
                timestamp=at,
                tenant_id=tenant_id,
                node_id=node_id,
                storage_scope=scope,
                total_bytes=usage.total_bytes,
                file_count=usage.file_count,
                dvr_bytes=usage.dvr_bytes,
                clip_bytes=usage.clip_bytes,
                vod_bytes=usage.vod_bytes,
                frozen_dvr_bytes=usage.frozen_dvr_bytes,
                frozen_clip_bytes=usage.frozen_clip_bytes,
                frozen_vod_bytes=usage.frozen_vod_bytes,
            )
        )

    if not rows:
        _log.info("storage snapshot without usable entries", event_id=te.event_id, node_id=node_id)
        return "skipped"
    projection.write(rows)
    return "processed"
