"""Cross-cluster federation events."""

from __future__ import annotations

from sightline.identity import canonical_name, parse_uuid, resolve_tenant
from sightline.models.rows import FederationEventRow
from sightline.models.trigger import FederationEventData
from sightline.projector import Projection
from sightline.transform.base import Outcome, TriggerEvent


def project_federation_event(
    projection: Projection,
    te: TriggerEvent,
    payload: FederationEventData,
) -> Outcome:
    """Append one ``federation_events`` row.

    Numeric fields keep the absent/zero distinction: a reported
    ``latency_ms`` of 0 is stored as 0, an absent one as NULL.
    """
    projection.write(
        [
            FederationEventRow(
                event_id=te.event_id,
                timestamp=te.timestamp,
                tenant_id=resolve_tenant(te.tenant_id, payload.tenant_id) or te.tenant_id,
                event_type=(payload.event_type or "unknown").lower(),
                local_cluster=payload.local_cluster or None,
                remote_cluster=payload.remote_cluster or None,
                peer_cluster=payload.peer_cluster or None,
                stream_name=canonical_name(payload.stream_name),
                stream_id=parse_uuid(payload.stream_id) or te.stream_id,
                source_node=payload.source_node or None,
                dest_node=payload.dest_node or None,
                reason=payload.reason or None,
                role=payload.role or None,
                latency_ms=payload.latency_ms,
                time_to_live_ms=payload.time_to_live_ms,
                queried_clusters=payload.queried_clusters,
                responding_clusters=payload.responding_clusters,
                total_candidates=payload.total_candidates,
                best_remote_score=payload.best_remote_score,
                blocked_cluster=payload.blocked_cluster or None,
                existing_replication_cluster=payload.existing_replication_cluster or None,
                local_lat=payload.local_lat,
                local_lon=payload.local_lon,
                remote_lat=payload.remote_lat,
                remote_lon=payload.remote_lon,
            )
        ]
    )
    return "processed"
