"""Node lifecycle and load-balancer routing decisions."""

from __future__ import annotations

from sightline.derive import compact_json, h3_bucket
from sightline.identity import canonical_name, parse_uuid
from sightline.logging import get_logger
from sightline.models.rows import NodeMetricsRow, NodeStateRow, RoutingDecisionRow
from sightline.models.trigger import LoadBalancingData, NodeLifecycleUpdate
from sightline.projector import Projection
from sightline.transform.base import Outcome, TriggerEvent

_log = get_logger(__name__)


def project_node_lifecycle(
    projection: Projection,
    te: TriggerEvent,
    payload: NodeLifecycleUpdate,
) -> Outcome:
    """Upsert current node state, then append a metrics sample."""
    node_id = payload.node_id or te.node_id
    if not node_id:
        _log.warning("node lifecycle update without node id", event_id=te.event_id)
        return "skipped"

    cpu = payload.cpu_tenths / 10 if payload.cpu_tenths is not None else None
    # Operational metadata only; bulk inventories stay out of the state row.
    metadata = compact_json(
        {
            "capabilities": payload.capabilities,
            "limits": payload.limits,
            "bw_limit": payload.bw_limit if payload.bw_limit and payload.bw_limit > 0 else None,
            "base_url": payload.base_url or None,
        }
    )
    cluster_id = te.trigger.cluster_id

    state = NodeStateRow(
        tenant_id=te.tenant_id,
        node_id=node_id,
        cluster_id=cluster_id,
        is_healthy=payload.is_healthy,
        cpu_percent=cpu,
        ram_used_bytes=payload.ram_current,
        ram_total_bytes=payload.ram_max,
        disk_used_bytes=payload.disk_used_bytes,
        disk_total_bytes=payload.disk_total_bytes,
        bandwidth_in_bps=payload.up_speed,
        bandwidth_out_bps=payload.down_speed,
        connections_current=payload.connections_current,
        active_streams=payload.active_streams,
        latitude=payload.latitude,
        longitude=payload.longitude,
        location=payload.location,
        metadata=metadata,
        updated_at=te.timestamp,
    )
    sample = NodeMetricsRow(
        timestamp=te.timestamp,
        tenant_id=te.tenant_id,
        node_id=node_id,
        cluster_id=cluster_id,
        cpu_usage=cpu,
        ram_max=payload.ram_max,
        ram_current=payload.ram_current,
        shm_total_bytes=payload.shm_total_bytes,
        shm_used_bytes=payload.shm_used_bytes,
        disk_total_bytes=payload.disk_total_bytes,
        disk_used_bytes=payload.disk_used_bytes,
        bandwidth_in=payload.bandwidth_in_total,
        bandwidth_out=payload.bandwidth_out_total,
        up_speed=payload.up_speed,
        down_speed=payload.down_speed,
        connections_current=payload.connections_current,
        active_streams=payload.active_streams,
        is_healthy=payload.is_healthy,
        latitude=payload.latitude,
        longitude=payload.longitude,
    )
    projection.write([state], [sample])
    return "processed"


def project_load_balancing(
    projection: Projection,
    te: TriggerEvent,
    payload: LoadBalancingData,
) -> Outcome:
    """One ``routing_decisions`` row per balancer decision.

    The decision is attributed twice: ``tenant_id`` is the tenant that ran
    the balancer, ``stream_tenant_id`` the tenant owning the stream when the
    balancer reports one.
    """
    client_h3, client_res = h3_bucket(payload.client_bucket)
    node_h3, node_res = h3_bucket(payload.node_bucket)
    projection.write(
        [
            RoutingDecisionRow(
                timestamp=te.timestamp,
                tenant_id=te.tenant_id,
                stream_tenant_id=parse_uuid(payload.stream_tenant_id),
                stream_id=te.require_stream_id(),
                internal_name=canonical_name(payload.internal_name, te.event.internal_name),
                cluster_id=payload.cluster_id or te.trigger.cluster_id,
                selected_node=payload.selected_node,
                selected_node_id=payload.selected_node_id or None,
                status=payload.status,
                details=payload.details,
                score=payload.score,
                client_ip=payload.client_ip,
                client_country=payload.client_country or "--",
                client_latitude=payload.latitude,
                client_longitude=payload.longitude,
                client_bucket_h3=client_h3,
                client_bucket_res=client_res,
                node_name=payload.node_name,
                node_latitude=payload.node_latitude,
                node_longitude=payload.node_longitude,
                node_bucket_h3=node_h3,
                node_bucket_res=node_res,
                routing_distance_km=payload.routing_distance_km,
                latency_ms=payload.latency_ms,
                candidates_count=payload.candidates_count,
                event_type=payload.event_type,
                source=payload.source,
            )
        ]
    )
    return "processed"
