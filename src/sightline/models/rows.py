"""Flat row models, one frozen dataclass per analytical-store table.

Every row class mirrors its table in ``sql/schema/`` column for column, in
the same order.  ``columns()`` and ``as_params()`` feed the warehouse's
batched ``executemany`` directly.

State tables (``*_current``) declare a ``KEY``: the warehouse upserts them
last-write-wins on ``updated_at``.  Columns named in ``KEEP_FIRST`` keep the
value from the first write for that key.  Everything else is append-only.

Conventions:
  - timestamps are naive UTC ``datetime`` values
  - ``None`` is written as SQL NULL and means "not reported"
  - JSON blobs are pre-serialized strings
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, ClassVar


class Row:
    """Mixin giving every row class its table metadata and INSERT params."""

    TABLE: ClassVar[str]
    KEY: ClassVar[tuple[str, ...]] = ()
    KEEP_FIRST: ClassVar[tuple[str, ...]] = ()

    @classmethod
    def columns(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls))  # type: ignore[arg-type]

    def as_params(self) -> list[Any]:
        """Column values in INSERT order."""
        return [getattr(self, name) for name in self.columns()]


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------


@dataclass(frozen=True, kw_only=True)
class IngestErrorRow(Row):
    TABLE: ClassVar[str] = "ingest_errors"

    received_at: datetime
    event_id: str
    event_type: str
    source: str
    tenant_id: str
    stream_id: str
    error: str
    payload_json: str


@dataclass(frozen=True, kw_only=True)
class ApiEventRow(Row):
    TABLE: ClassVar[str] = "api_events"

    event_id: str
    timestamp: datetime
    tenant_id: str
    event_type: str
    source: str
    user_id: str | None = None
    resource_type: str | None = None
    resource_id: str | None = None
    details: str = "{}"


@dataclass(frozen=True, kw_only=True)
class TenantAcquisitionRow(Row):
    TABLE: ClassVar[str] = "tenant_acquisition_events"

    tenant_id: str
    timestamp: datetime
    user_id: str | None
    signup_channel: str
    signup_method: str | None = None
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None
    utm_content: str | None = None
    utm_term: str | None = None
    http_referer: str | None = None
    landing_page: str | None = None
    referral_code: str | None = None
    is_agent: int = 0
    event_data: str = "{}"


# ---------------------------------------------------------------------------
# Viewers
# ---------------------------------------------------------------------------


@dataclass(frozen=True, kw_only=True)
class ViewerConnectionRow(Row):
    TABLE: ClassVar[str] = "viewer_connection_events"

    event_id: str
    timestamp: datetime
    tenant_id: str
    stream_id: str
    internal_name: str | None
    session_id: str | None
    event_type: str
    connector: str | None = None
    connection_addr: str | None = None
    request_url: str | None = None
    node_id: str | None = None
    cluster_id: str | None = None
    origin_cluster_id: str | None = None
    country_code: str = "--"
    city: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    client_bucket_h3: int | None = None
    client_bucket_res: int | None = None
    node_bucket_h3: int | None = None
    node_bucket_res: int | None = None
    session_duration: int = 0
    bytes_transferred: int = 0


@dataclass(frozen=True, kw_only=True)
class ClientQoeRow(Row):
    TABLE: ClassVar[str] = "client_qoe_samples"

    timestamp: datetime
    tenant_id: str
    stream_id: str | None
    internal_name: str | None
    session_id: str | None
    node_id: str | None
    protocol: str | None = None
    host: str | None = None
    connection_time: int | None = None
    position: float | None = None
    bandwidth_in_bps: int | None = None
    bandwidth_out_bps: int | None = None
    bytes_downloaded: int | None = None
    bytes_uploaded: int | None = None
    packets_sent: int | None = None
    packets_lost: int | None = None
    packets_retransmitted: int | None = None
    connection_quality: float | None = None


@dataclass(frozen=True, kw_only=True)
class RoutingDecisionRow(Row):
    TABLE: ClassVar[str] = "routing_decisions"

    timestamp: datetime
    tenant_id: str
    stream_tenant_id: str | None
    stream_id: str
    internal_name: str | None
    cluster_id: str | None
    selected_node: str | None = None
    selected_node_id: str | None = None
    status: str | None = None
    details: str | None = None
    score: int | None = None
    client_ip: str | None = None
    client_country: str = "--"
    client_latitude: float | None = None
    client_longitude: float | None = None
    client_bucket_h3: int | None = None
    client_bucket_res: int | None = None
    node_name: str | None = None
    node_latitude: float | None = None
    node_longitude: float | None = None
    node_bucket_h3: int | None = None
    node_bucket_res: int | None = None
    routing_distance_km: float | None = None
    latency_ms: float | None = None
    candidates_count: int | None = None
    event_type: str | None = None
    source: str | None = None


# ---------------------------------------------------------------------------
# Streams
# ---------------------------------------------------------------------------


@dataclass(frozen=True, kw_only=True)
class StreamStateRow(Row):
    TABLE: ClassVar[str] = "stream_state_current"
    KEY: ClassVar[tuple[str, ...]] = ("tenant_id", "stream_id")

    tenant_id: str
    stream_id: str
    internal_name: str | None
    node_id: str | None
    status: str
    buffer_state: str | None = None
    current_viewers: int | None = None
    total_inputs: int | None = None
    total_outputs: int | None = None
    uploaded_bytes: int | None = None
    downloaded_bytes: int | None = None
    viewer_seconds: int | None = None
    has_issues: bool | None = None
    issues_description: str | None = None
    track_count: int | None = None
    quality_tier: str | None = None
    primary_width: int | None = None
    primary_height: int | None = None
    primary_fps: float | None = None
    primary_codec: str | None = None
    primary_bitrate: int | None = None
    packets_sent: int | None = None
    packets_lost: int | None = None
    packets_retransmitted: int | None = None
    started_at: datetime | None = None
    updated_at: datetime


@dataclass(frozen=True, kw_only=True)
class StreamEventRow(Row):
    TABLE: ClassVar[str] = "stream_event_log"

    event_id: str
    timestamp: datetime
    tenant_id: str
    stream_id: str | None
    internal_name: str | None
    node_id: str | None
    cluster_id: str | None
    event_type: str
    status: str | None = None
    buffer_state: str | None = None
    has_issues: bool | None = None
    issues_description: str | None = None
    track_count: int | None = None
    quality_tier: str | None = None
    primary_width: int | None = None
    primary_height: int | None = None
    primary_fps: float | None = None
    primary_codec: str | None = None
    primary_bitrate: int | None = None
    total_viewers: int | None = None
    total_inputs: int | None = None
    total_outputs: int | None = None
    downloaded_bytes: int | None = None
    uploaded_bytes: int | None = None
    viewer_seconds: int | None = None
    latitude: float | None = None
    longitude: float | None = None
    event_data: str = "{}"


@dataclass(frozen=True, kw_only=True)
class StreamHealthRow(Row):
    TABLE: ClassVar[str] = "stream_health_samples"

    timestamp: datetime
    tenant_id: str
    stream_id: str | None
    internal_name: str | None
    node_id: str | None
    bitrate: int | None = None
    fps: float | None = None
    width: int | None = None
    height: int | None = None
    codec: str | None = None
    gop_size: int | None = None
    buffer_state: str | None = None
    buffer_size: int | None = None
    buffer_health: float | None = None
    frame_jitter_ms: int | None = None
    frame_ms_max: float | None = None
    frame_ms_min: float | None = None
    keyframe_ms_max: float | None = None
    keyframe_ms_min: float | None = None
    frames_max: int | None = None
    frames_min: int | None = None
    has_issues: bool | None = None
    issues_description: str | None = None
    track_count: int | None = None
    quality_tier: str | None = None
    audio_codec: str | None = None
    audio_channels: int | None = None
    audio_sample_rate: int | None = None
    audio_bitrate: int | None = None
    packets_sent: int | None = None
    packets_lost: int | None = None
    packets_retransmitted: int | None = None
    track_metadata: str = "{}"


@dataclass(frozen=True, kw_only=True)
class TrackListRow(Row):
    TABLE: ClassVar[str] = "track_list_events"

    event_id: str
    timestamp: datetime
    tenant_id: str
    stream_id: str
    internal_name: str | None
    node_id: str | None
    track_list: str = "[]"
    track_count: int | None = None
    video_track_count: int | None = None
    audio_track_count: int | None = None
    quality_tier: str | None = None
    primary_width: int | None = None
    primary_height: int | None = None
    primary_fps: float | None = None
    primary_video_codec: str | None = None
    primary_video_bitrate: int | None = None
    primary_audio_codec: str | None = None
    primary_audio_channels: int | None = None
    primary_audio_sample_rate: int | None = None
    primary_audio_bitrate: int | None = None


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------


@dataclass(frozen=True, kw_only=True)
class NodeStateRow(Row):
    TABLE: ClassVar[str] = "node_state_current"
    KEY: ClassVar[tuple[str, ...]] = ("tenant_id", "node_id")

    tenant_id: str
    node_id: str
    cluster_id: str | None
    is_healthy: bool | None = None
    cpu_percent: float | None = None
    ram_used_bytes: int | None = None
    ram_total_bytes: int | None = None
    disk_used_bytes: int | None = None
    disk_total_bytes: int | None = None
    bandwidth_in_bps: int | None = None
    bandwidth_out_bps: int | None = None
    connections_current: int | None = None
    active_streams: int | None = None
    latitude: float | None = None
    longitude: float | None = None
    location: str | None = None
    metadata: str = "{}"
    updated_at: datetime


@dataclass(frozen=True, kw_only=True)
class NodeMetricsRow(Row):
    TABLE: ClassVar[str] = "node_metrics_samples"

    timestamp: datetime
    tenant_id: str
    node_id: str
    cluster_id: str | None
    cpu_usage: float | None = None
    ram_max: int | None = None
    ram_current: int | None = None
    shm_total_bytes: int | None = None
    shm_used_bytes: int | None = None
    disk_total_bytes: int | None = None
    disk_used_bytes: int | None = None
    bandwidth_in: int | None = None
    bandwidth_out: int | None = None
    up_speed: int | None = None
    down_speed: int | None = None
    connections_current: int | None = None
    active_streams: int | None = None
    is_healthy: bool | None = None
    latitude: float | None = None
    longitude: float | None = None


# ---------------------------------------------------------------------------
# Artifacts and storage
# ---------------------------------------------------------------------------


@dataclass(frozen=True, kw_only=True)
class ArtifactStateRow(Row):
    TABLE: ClassVar[str] = "artifact_state_current"
    KEY: ClassVar[tuple[str, ...]] = ("tenant_id", "request_id")
    KEEP_FIRST: ClassVar[tuple[str, ...]] = ("requested_at",)

    tenant_id: str
    request_id: str
    stream_id: str | None
    internal_name: str | None
    filename: str | None = None
    content_type: str
    stage: str
    progress_percent: int | None = None
    error_message: str | None = None
    requested_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    clip_start_unix: int | None = None
    clip_stop_unix: int | None = None
    segment_count: int | None = None
    manifest_path: str | None = None
    file_path: str | None = None
    s3_url: str | None = None
    size_bytes: int | None = None
    processing_node_id: str | None = None
    expires_at: datetime | None = None
    updated_at: datetime


@dataclass(frozen=True, kw_only=True)
class ArtifactEventRow(Row):
    TABLE: ClassVar[str] = "artifact_events"

    timestamp: datetime
    tenant_id: str
    stream_id: str | None
    internal_name: str | None
    cluster_id: str | None = None
    origin_cluster_id: str | None = None
    request_id: str
    content_type: str
    stage: str
    progress_percent: int | None = None
    error_message: str | None = None
    start_unix: int | None = None
    stop_unix: int | None = None
    file_path: str | None = None
    s3_url: str | None = None
    size_bytes: int | None = None
    node_id: str | None = None
    expires_at: datetime | None = None


@dataclass(frozen=True, kw_only=True)
class StorageSnapshotRow(Row):
    TABLE: ClassVar[str] = "storage_snapshots"

    timestamp: datetime
    tenant_id: str
    node_id: str | None
    storage_scope: str
    total_bytes: int | None = None
    file_count: int | None = None
    dvr_bytes: int | None = None
    clip_bytes: int | None = None
    vod_bytes: int | None = None
    frozen_dvr_bytes: int | None = None
    frozen_clip_bytes: int | None = None
    frozen_vod_bytes: int | None = None


@dataclass(frozen=True, kw_only=True)
class StorageEventRow(Row):
    TABLE: ClassVar[str] = "storage_events"

    timestamp: datetime
    tenant_id: str
    stream_id: str | None
    internal_name: str | None
    asset_hash: str | None
    action: str
    asset_type: str | None = None
    size_bytes: int | None = None
    s3_url: str | None = None
    local_path: str | None = None
    node_id: str | None = None
    duration_ms: int | None = None
    warm_duration_ms: int | None = None
    error: str | None = None


# ---------------------------------------------------------------------------
# Billing, usage and federation
# ---------------------------------------------------------------------------


@dataclass(frozen=True, kw_only=True)
class ProcessingEventRow(Row):
    TABLE: ClassVar[str] = "processing_events"

    timestamp: datetime
    tenant_id: str
    stream_id: str | None
    internal_name: str | None
    node_id: str | None
    process_type: str | None
    track_type: str = "unknown"
    duration_ms: int | None = None
    input_codec: str | None = None
    output_codec: str | None = None
    input_width: int | None = None
    input_height: int | None = None
    output_width: int | None = None
    output_height: int | None = None
    input_fps: float | None = None
    output_fps: float | None = None
    input_bytes: int | None = None
    output_bytes: int | None = None
    input_frames: int | None = None
    output_frames: int | None = None
    input_bitrate_bps: int | None = None
    output_bitrate_bps: int | None = None
    rtf_in: float | None = None
    rtf_out: float | None = None
    pipeline_lag_ms: int | None = None
    is_final: int | None = None


@dataclass(frozen=True, kw_only=True)
class ApiRequestRow(Row):
    TABLE: ClassVar[str] = "api_requests"

    timestamp: datetime
    tenant_id: str
    source_node: str | None
    auth_type: str | None = None
    operation_type: str | None = None
    operation_name: str | None = None
    request_count: int | None = None
    error_count: int | None = None
    total_duration_ms: int | None = None
    total_complexity: int | None = None
    user_hashes: list[int] = field(default_factory=list)
    token_hashes: list[int] = field(default_factory=list)


@dataclass(frozen=True, kw_only=True)
class FederationEventRow(Row):
    TABLE: ClassVar[str] = "federation_events"

    event_id: str
    timestamp: datetime
    tenant_id: str
    event_type: str
    local_cluster: str | None = None
    remote_cluster: str | None = None
    peer_cluster: str | None = None
    stream_name: str | None = None
    stream_id: str | None = None
    source_node: str | None = None
    dest_node: str | None = None
    reason: str | None = None
    role: str | None = None
    latency_ms: float | None = None
    time_to_live_ms: float | None = None
    queried_clusters: int | None = None
    responding_clusters: int | None = None
    total_candidates: int | None = None
    best_remote_score: int | None = None
    blocked_cluster: str | None = None
    existing_replication_cluster: str | None = None
    local_lat: float | None = None
    local_lon: float | None = None
    remote_lat: float | None = None
    remote_lon: float | None = None
