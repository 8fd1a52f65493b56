"""Typed model of the MistTrigger payload carried in analytics ``data``.

Producers serialize the trigger with protobuf's JSON mapping, so keys arrive
in lowerCamelCase and 64-bit integers arrive as decimal strings::

    {
        "triggerType": "USER_NEW",
        "nodeId": "edge-ams-1",
        "streamId": "8f14e45f-ceea-4a67-9e3b-2c7c4b1d9a10",
        "clusterId": "eu-west",
        "viewerConnect": {"streamName": "live+demo", "sessionId": "s-1", ...}
    }

Every model here accepts both the camelCase wire keys and the snake_case
attribute names, and ignores keys it does not know so a producer running a
newer schema is still decodable.  Exactly one variant field may be set on a
``MistTrigger``; :attr:`MistTrigger.payload` returns it.

Every scalar inside a variant is optional and decodes to ``None`` when the
producer omitted it.  A present zero stays zero all the way to the store.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class _Wire(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# ---------------------------------------------------------------------------
# Shared nested types
# ---------------------------------------------------------------------------


class GeoBucket(_Wire):
    """Coarse H3 cell used instead of precise coordinates."""

    h3_index: int | None = None
    resolution: int | None = None


class StreamTrack(_Wire):
    track_name: str | None = None
    track_type: str | None = None
    codec: str | None = None
    bitrate_kbps: int | None = None
    bitrate_bps: int | None = None
    fps: float | None = None
    width: int | None = None
    height: int | None = None
    channels: int | None = None
    sample_rate: int | None = None
    buffer: int | None = None
    jitter: int | None = None
    frames_max: int | None = None
    frames_min: int | None = None
    frame_ms_max: float | None = None
    frame_ms_min: float | None = None
    keyframe_ms_max: float | None = None
    keyframe_ms_min: float | None = None


class StorageUsage(_Wire):
    tenant_id: str | None = None
    total_bytes: int | None = None
    file_count: int | None = None
    dvr_bytes: int | None = None
    clip_bytes: int | None = None
    vod_bytes: int | None = None
    frozen_dvr_bytes: int | None = None
    frozen_clip_bytes: int | None = None
    frozen_vod_bytes: int | None = None


class APIRequestAggregate(_Wire):
    tenant_id: str | None = None
    auth_type: str | None = None
    operation_type: str | None = None
    operation_name: str | None = None
    request_count: int | None = None
    error_count: int | None = None
    total_duration_ms: int | None = None
    total_complexity: int | None = None
    user_hashes: list[int] = Field(default_factory=list)
    token_hashes: list[int] = Field(default_factory=list)
    timestamp: int | None = None


# ---------------------------------------------------------------------------
# Viewer sessions
# ---------------------------------------------------------------------------


class ViewerConnect(_Wire):
    stream_name: str | None = None
    session_id: str | None = None
    connector: str | None = None
    host: str | None = None
    request_url: str | None = None
    client_country: str | None = None
    client_city: str | None = None
    client_latitude: float | None = None
    client_longitude: float | None = None
    client_bucket: GeoBucket | None = None
    node_bucket: GeoBucket | None = None


class ViewerDisconnect(_Wire):
    stream_name: str | None = None
    session_id: str | None = None
    connector: str | None = None
    host: str | None = None
    node_id: str | None = None
    duration: int | None = None
    seconds_connected: int | None = None
    up_bytes: int | None = None
    down_bytes: int | None = None
    country_code: str | None = None
    city: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    client_bucket: GeoBucket | None = None
    node_bucket: GeoBucket | None = None


class ClientLifecycleUpdate(_Wire):
    internal_name: str | None = None
    session_id: str | None = None
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


# ---------------------------------------------------------------------------
# Stream lifecycle and health
# ---------------------------------------------------------------------------


class PushRewrite(_Wire):
    push_url: str | None = None
    hostname: str | None = None
    stream_name: str | None = None
    protocol: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    location: str | None = None
    publisher_latitude: float | None = None
    publisher_longitude: float | None = None
    publisher_country_code: str | None = None
    publisher_city: str | None = None


class PushOutStart(_Wire):
    stream_name: str | None = None
    push_target: str | None = None


class PushEnd(_Wire):
    push_id: int | None = None
    stream_name: str | None = None
    target_uri: str | None = None
    push_status: str | None = None
    log_messages: list[str] = Field(default_factory=list)


class StreamBuffer(_Wire):
    stream_name: str | None = None
    buffer_state: str | None = None
    has_issues: bool | None = None
    issues_description: str | None = None
    track_count: int | None = None
    quality_tier: str | None = None
    tracks: list[StreamTrack] = Field(default_factory=list)
    stream_buffer_ms: int | None = None
    stream_jitter_ms: int | None = None
    max_keepaway_ms: int | None = None


class StreamEnd(_Wire):
    stream_name: str | None = None
    downloaded_bytes: int | None = None
    uploaded_bytes: int | None = None
    total_viewers: int | None = None
    total_inputs: int | None = None
    total_outputs: int | None = None
    viewer_seconds: int | None = None


class TrackList(_Wire):
    stream_name: str | None = None
    track_list: str | None = None
    tracks: list[StreamTrack] = Field(default_factory=list)
    total_tracks: int | None = None
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


class StreamBandwidth(_Wire):
    stream_name: str | None = None
    current_bytes_per_second: int | None = None
    total_bytes_up: int | None = None
    total_bytes_down: int | None = None
    viewer_count: int | None = None


class RecordingComplete(_Wire):
    stream_name: str | None = None
    file_path: str | None = None
    output_protocol: str | None = None
    bytes_written: int | None = None
    seconds_writing: int | None = None
    time_started: int | None = None
    time_ended: int | None = None
    media_duration_ms: int | None = None


class StreamLifecycleUpdate(_Wire):
    node_id: str | None = None
    internal_name: str | None = None
    status: str | None = None
    buffer_state: str | None = None
    started_at: int | None = None
    total_viewers: int | None = None
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
    audio_codec: str | None = None
    audio_channels: int | None = None
    audio_sample_rate: int | None = None
    audio_bitrate: int | None = None
    buffer_ms: int | None = None
    max_keepaway_ms: int | None = None
    jitter_ms: int | None = None
    packets_sent: int | None = None
    packets_lost: int | None = None
    packets_retransmitted: int | None = None
    track_details_json: str | None = None


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------


class NodeLifecycleUpdate(_Wire):
    node_id: str | None = None
    is_healthy: bool | None = None
    cpu_tenths: int | None = None
    ram_max: int | None = None
    ram_current: int | None = None
    up_speed: int | None = None
    down_speed: int | None = None
    bandwidth_in_total: int | None = None
    bandwidth_out_total: int | None = None
    connections_current: int | None = None
    active_streams: int | None = None
    disk_total_bytes: int | None = None
    disk_used_bytes: int | None = None
    shm_total_bytes: int | None = None
    shm_used_bytes: int | None = None
    latitude: float | None = None
    longitude: float | None = None
    location: str | None = None
    bw_limit: int | None = None
    base_url: str | None = None
    capabilities: dict[str, Any] | None = None
    limits: dict[str, Any] | None = None


class LoadBalancingData(_Wire):
    internal_name: str | None = None
    cluster_id: str | None = None
    selected_node: str | None = None
    selected_node_id: str | None = None
    status: str | None = None
    details: str | None = None
    score: int | None = None
    client_ip: str | None = None
    client_country: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    node_latitude: float | None = None
    node_longitude: float | None = None
    node_name: str | None = None
    routing_distance_km: float | None = None
    candidates_count: int | None = None
    latency_ms: float | None = None
    event_type: str | None = None
    source: str | None = None
    stream_tenant_id: str | None = None
    client_bucket: GeoBucket | None = None
    node_bucket: GeoBucket | None = None


class FederationEventData(_Wire):
    event_type: str | None = None
    tenant_id: str | None = None
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


# ---------------------------------------------------------------------------
# Artifacts and storage
# ---------------------------------------------------------------------------


class ClipLifecycleData(_Wire):
    stage: str | None = None
    clip_hash: str | None = None
    request_id: str | None = None
    internal_name: str | None = None
    tenant_id: str | None = None
    node_id: str | None = None
    start_unix: int | None = None
    stop_unix: int | None = None
    progress_percent: int | None = None
    file_path: str | None = None
    s3_url: str | None = None
    size_bytes: int | None = None
    error: str | None = None
    started_at: int | None = None
    completed_at: int | None = None
    expires_at: int | None = None


class DVRLifecycleData(_Wire):
    status: str | None = None
    dvr_hash: str | None = None
    internal_name: str | None = None
    tenant_id: str | None = None
    node_id: str | None = None
    manifest_path: str | None = None
    segment_count: int | None = None
    size_bytes: int | None = None
    error: str | None = None
    started_at: int | None = None
    ended_at: int | None = None
    expires_at: int | None = None


class VodLifecycleData(_Wire):
    status: str | None = None
    vod_hash: str | None = None
    tenant_id: str | None = None
    filename: str | None = None
    node_id: str | None = None
    file_path: str | None = None
    s3_url: str | None = None
    size_bytes: int | None = None
    error: str | None = None
    started_at: int | None = None
    completed_at: int | None = None
    expires_at: int | None = None


class StorageLifecycleData(_Wire):
    action: str | None = None
    asset_type: str | None = None
    asset_hash: str | None = None
    internal_name: str | None = None
    tenant_id: str | None = None
    size_bytes: int | None = None
    s3_url: str | None = None
    local_path: str | None = None
    duration_ms: int | None = None
    warm_duration_ms: int | None = None
    error: str | None = None


class StorageSnapshot(_Wire):
    node_id: str | None = None
    timestamp: int | None = None
    storage_scope: str | None = None
    usage: list[StorageUsage] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Billing and usage
# ---------------------------------------------------------------------------


class ProcessBilling(_Wire):
    stream_name: str | None = None
    process_type: str | None = None
    track_type: str | None = None
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
    is_final: bool | None = None


class APIRequestBatch(_Wire):
    timestamp: int | None = None
    source_node: str | None = None
    aggregates: list[APIRequestAggregate] = Field(default_factory=list)


TriggerPayload = (
    ViewerConnect
    | ViewerDisconnect
    | ClientLifecycleUpdate
    | PushRewrite
    | PushOutStart
    | PushEnd
    | StreamBuffer
    | StreamEnd
    | TrackList
    | StreamBandwidth
    | RecordingComplete
    | StreamLifecycleUpdate
    | NodeLifecycleUpdate
    | LoadBalancingData
    | FederationEventData
    | ClipLifecycleData
    | DVRLifecycleData
    | VodLifecycleData
    | StorageLifecycleData
    | StorageSnapshot
    | ProcessBilling
    | APIRequestBatch
)


# ---------------------------------------------------------------------------
# Trigger envelope
# ---------------------------------------------------------------------------

# Attribute name of each variant field on MistTrigger.
VARIANT_FIELDS: tuple[str, ...] = (
    "viewer_connect",
    "viewer_disconnect",
    "client_lifecycle_update",
    "push_rewrite",
    "push_out_start",
    "push_end",
    "stream_buffer",
    "stream_end",
    "track_list",
    "stream_bandwidth",
    "recording_complete",
    "stream_lifecycle_update",
    "node_lifecycle_update",
    "load_balancing_data",
    "federation_event_data",
    "clip_lifecycle_data",
    "dvr_lifecycle_data",
    "vod_lifecycle_data",
    "storage_lifecycle_data",
    "storage_snapshot",
    "process_billing",
    "api_request_batch",
)


class MistTrigger(_Wire):
    """Routing metadata plus exactly one typed payload."""

    trigger_type: str | None = None
    node_id: str | None = None
    timestamp: int | None = None
    request_id: str | None = None
    tenant_id: str | None = None
    stream_id: str | None = None
    cluster_id: str | None = None
    origin_cluster_id: str | None = None

    viewer_connect: ViewerConnect | None = None
    viewer_disconnect: ViewerDisconnect | None = None
    client_lifecycle_update: ClientLifecycleUpdate | None = None
    push_rewrite: PushRewrite | None = None
    push_out_start: PushOutStart | None = None
    push_end: PushEnd | None = None
    stream_buffer: StreamBuffer | None = None
    stream_end: StreamEnd | None = None
    track_list: TrackList | None = None
    stream_bandwidth: StreamBandwidth | None = None
    recording_complete: RecordingComplete | None = None
    stream_lifecycle_update: StreamLifecycleUpdate | None = None
    node_lifecycle_update: NodeLifecycleUpdate | None = None
    load_balancing_data: LoadBalancingData | None = None
    federation_event_data: FederationEventData | None = None
    clip_lifecycle_data: ClipLifecycleData | None = None
    dvr_lifecycle_data: DVRLifecycleData | None = None
    vod_lifecycle_data: VodLifecycleData | None = None
    storage_lifecycle_data: StorageLifecycleData | None = None
    storage_snapshot: StorageSnapshot | None = None
    process_billing: ProcessBilling | None = None
    api_request_batch: APIRequestBatch | None = None

    @model_validator(mode="after")
    def _one_payload(self) -> MistTrigger:
        present = [name for name in VARIANT_FIELDS if getattr(self, name) is not None]
        if len(present) > 1:
            raise ValueError(f"trigger carries more than one payload: {', '.join(present)}")
        return self

    @property
    def payload(self) -> TriggerPayload | None:
        """The single payload variant, or ``None`` when the trigger has none."""
        for name in VARIANT_FIELDS:
            value = getattr(self, name)
            if value is not None:
                return value
        return None
