"""Viewer sessions: connects, disconnects and client QoE samples."""

from __future__ import annotations

from sightline.derive import connection_quality, h3_bucket, session_totals
from sightline.errors import PayloadMismatchError
from sightline.identity import canonical_name, cluster_attribution
from sightline.models.rows import ClientQoeRow, ViewerConnectionRow
from sightline.models.trigger import ClientLifecycleUpdate, ViewerConnect, ViewerDisconnect
from sightline.projector import Projection
from sightline.rollups import RollupUpdate
from sightline.transform.base import Outcome, TriggerEvent

_EXPECTED = {"viewer_connect": ViewerConnect, "viewer_disconnect": ViewerDisconnect}


def project_viewer_connection(
    projection: Projection,
    te: TriggerEvent,
    payload: ViewerConnect | ViewerDisconnect,
) -> Outcome:
    """One ``viewer_connection_events`` row per connect or disconnect.

    The payload direction must agree with the event type.  Disconnects carry
    the session totals; connects record zero for both.
    """
    expected = _EXPECTED[te.event.event_type]
    if not isinstance(payload, expected):
        raise PayloadMismatchError(
            "viewer connection payload mismatch: "
            f"expected {expected.__name__}, got {type(payload).__name__}"
        )

    stream_id = te.require_stream_id()
    cluster_id, origin_cluster_id = cluster_attribution(
        te.trigger.cluster_id, te.trigger.origin_cluster_id
    )
    internal_name = canonical_name(payload.stream_name, te.event.internal_name)
    client_h3, client_res = h3_bucket(payload.client_bucket)
    node_h3, node_res = h3_bucket(payload.node_bucket)

    if isinstance(payload, ViewerConnect):
        row = ViewerConnectionRow(
            event_id=te.event_id,
            timestamp=te.timestamp,
            tenant_id=te.tenant_id,
            stream_id=stream_id,
            internal_name=internal_name,
            session_id=payload.session_id,
            event_type="connect",
            connector=payload.connector,
            connection_addr=payload.host,
            request_url=payload.request_url,
            node_id=te.node_id,
            cluster_id=cluster_id,
            origin_cluster_id=origin_cluster_id,
            country_code=payload.client_country or "--",
            city=payload.client_city,
            latitude=payload.client_latitude,
            longitude=payload.client_longitude,
            client_bucket_h3=client_h3,
            client_bucket_res=client_res,
            node_bucket_h3=node_h3,
            node_bucket_res=node_res,
        )
        rollup = RollupUpdate(
            te.tenant_id, internal_name or "", te.timestamp, viewer_delta=1, sessions=1
        )
    else:
        seconds, transferred = session_totals(
            payload.duration, payload.seconds_connected, payload.up_bytes, payload.down_bytes
        )
        row = ViewerConnectionRow(
            event_id=te.event_id,
            timestamp=te.timestamp,
            tenant_id=te.tenant_id,
            stream_id=stream_id,
            internal_name=internal_name,
            session_id=payload.session_id,
            event_type="disconnect",
            connector=payload.connector,
            connection_addr=payload.host,
            node_id=payload.node_id or te.node_id,
            cluster_id=cluster_id,
            origin_cluster_id=origin_cluster_id,
            country_code=payload.country_code or "--",
            city=payload.city,
            latitude=payload.latitude,
            longitude=payload.longitude,
            client_bucket_h3=client_h3,
            client_bucket_res=client_res,
            node_bucket_h3=node_h3,
            node_bucket_res=node_res,
            session_duration=seconds,
            bytes_transferred=transferred,
        )
        rollup = RollupUpdate(
            te.tenant_id,
            internal_name or "",
            te.timestamp,
            viewer_delta=-1,
            session_seconds=seconds,
            bytes_transferred=transferred,
        )

    projection.write([row])
    if internal_name:
        projection.rollup(rollup)
    return "processed"


def project_client_lifecycle(
    projection: Projection,
    te: TriggerEvent,
    payload: ClientLifecycleUpdate,
) -> Outcome:
    projection.write(
        [
            ClientQoeRow(
                timestamp=te.timestamp,
                tenant_id=te.tenant_id,
                stream_id=te.stream_id,
                internal_name=canonical_name(payload.internal_name, te.event.internal_name),
                session_id=payload.session_id,
                node_id=te.node_id,
                protocol=payload.protocol,
                host=payload.host,
                connection_time=payload.connection_time,
                position=payload.position,
                bandwidth_in_bps=payload.bandwidth_in_bps,
                bandwidth_out_bps=payload.bandwidth_out_bps,
                bytes_downloaded=payload.bytes_downloaded,
                bytes_uploaded=payload.bytes_uploaded,
                packets_sent=payload.packets_sent,
                packets_lost=payload.packets_lost,
                packets_retransmitted=payload.packets_retransmitted,
                connection_quality=connection_quality(payload.packets_sent, payload.packets_lost),
            )
        ]
    )
    return "processed"
