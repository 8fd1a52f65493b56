"""Stream lifecycle, health and push events.

``stream_lifecycle_update`` is the one dual-write in this module: the
current-state row, then the event-log row, then the health sample.  The
other stream events append to the log (and the health table for buffer and
bandwidth samples).
"""

from __future__ import annotations

from sightline.derive import (
    buffer_health,
    compact_json,
    default_buffer_state,
    event_data,
    from_unix,
    gop_size,
    kbps_from_bytes,
    primary_tracks,
    to_json,
    track_metadata,
)
from sightline.identity import canonical_name
from sightline.logging import get_logger
from sightline.models.rows import StreamEventRow, StreamHealthRow, StreamStateRow, TrackListRow
from sightline.models.trigger import (
    PushEnd,
    PushOutStart,
    PushRewrite,
    RecordingComplete,
    StreamBandwidth,
    StreamBuffer,
    StreamEnd,
    StreamLifecycleUpdate,
    TrackList,
)
from sightline.projector import Projection
from sightline.transform.base import Outcome, TriggerEvent

_log = get_logger(__name__)


def _log_row(
    te: TriggerEvent, event_type: str, internal_name: str | None, **columns
) -> StreamEventRow:
    return StreamEventRow(
        event_id=te.event_id,
        timestamp=te.timestamp,
        tenant_id=te.tenant_id,
        stream_id=te.stream_id,
        internal_name=internal_name,
        node_id=te.node_id,
        cluster_id=te.trigger.cluster_id,
        event_type=event_type,
        **columns,
    )


def _prefer(first: float | None, fallback: float | None) -> float | None:
    return first if first is not None else fallback


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


def project_stream_lifecycle(
    projection: Projection,
    te: TriggerEvent,
    payload: StreamLifecycleUpdate,
) -> Outcome:
    """Upsert current stream state, then log the update and a health sample.

    Updates without a valid stream id cannot be keyed and are skipped
    without an audit row.
    """
    if te.stream_id is None:
        _log.warning(
            "stream lifecycle update without stream id",
            event_id=te.event_id,
            stream_id=te.trigger.stream_id,
        )
        return "skipped"

    internal_name = canonical_name(payload.internal_name, te.event.internal_name)
    node_id = payload.node_id or te.node_id
    status = payload.status or "live"
    buffer_state = default_buffer_state(payload.buffer_state, payload.buffer_ms)
    health = (
        buffer_health(payload.buffer_ms, payload.max_keepaway_ms)
        if payload.buffer_ms and payload.buffer_ms > 0
        else None
    )

    state = StreamStateRow(
        tenant_id=te.tenant_id,
        stream_id=te.stream_id,
        internal_name=internal_name,
        node_id=node_id,
        status=status,
        buffer_state=buffer_state,
        current_viewers=payload.total_viewers,
        total_inputs=payload.total_inputs,
        total_outputs=payload.total_outputs,
        uploaded_bytes=payload.uploaded_bytes,
        downloaded_bytes=payload.downloaded_bytes,
        viewer_seconds=payload.viewer_seconds,
        has_issues=payload.has_issues,
        issues_description=payload.issues_description,
        track_count=payload.track_count,
        quality_tier=payload.quality_tier,
        primary_width=payload.primary_width,
        primary_height=payload.primary_height,
        primary_fps=payload.primary_fps,
        primary_codec=payload.primary_codec,
        primary_bitrate=payload.primary_bitrate,
        packets_sent=payload.packets_sent,
        packets_lost=payload.packets_lost,
        packets_retransmitted=payload.packets_retransmitted,
        started_at=from_unix(payload.started_at),
        updated_at=te.timestamp,
    )
    log_row = StreamEventRow(
        event_id=te.event_id,
        timestamp=te.timestamp,
        tenant_id=te.tenant_id,
        stream_id=te.stream_id,
        internal_name=internal_name,
        node_id=node_id,
        cluster_id=te.trigger.cluster_id,
        event_type="stream_lifecycle",
        status=status,
        buffer_state=buffer_state,
        has_issues=payload.has_issues,
        issues_description=payload.issues_description,
        track_count=payload.track_count,
        quality_tier=payload.quality_tier,
        primary_width=payload.primary_width,
        primary_height=payload.primary_height,
        primary_fps=payload.primary_fps,
        primary_codec=payload.primary_codec,
        primary_bitrate=payload.primary_bitrate,
        total_viewers=payload.total_viewers,
        total_inputs=payload.total_inputs,
        total_outputs=payload.total_outputs,
        downloaded_bytes=payload.downloaded_bytes,
        uploaded_bytes=payload.uploaded_bytes,
        viewer_seconds=payload.viewer_seconds,
        event_data=compact_json({"started_at": payload.started_at}),
    )
    sample = StreamHealthRow(
        timestamp=te.timestamp,
        tenant_id=te.tenant_id,
        stream_id=te.stream_id,
        internal_name=internal_name,
        node_id=node_id,
        bitrate=payload.primary_bitrate,
        fps=payload.primary_fps,
        width=payload.primary_width,
        height=payload.primary_height,
        codec=payload.primary_codec,
        buffer_state=buffer_state,
        buffer_size=payload.buffer_ms,
        buffer_health=health,
        frame_jitter_ms=payload.jitter_ms,
        has_issues=payload.has_issues,
        issues_description=payload.issues_description,
        track_count=payload.track_count,
        quality_tier=payload.quality_tier,
        audio_codec=payload.audio_codec,
        audio_channels=payload.audio_channels,
        audio_sample_rate=payload.audio_sample_rate,
        audio_bitrate=payload.audio_bitrate,
        packets_sent=payload.packets_sent,
        packets_lost=payload.packets_lost,
        packets_retransmitted=payload.packets_retransmitted,
        track_metadata=track_metadata(payload.track_details_json),
    )
    projection.write([state], [log_row], [sample])
    return "processed"


def project_stream_end(projection: Projection, te: TriggerEvent, payload: StreamEnd) -> Outcome:
    internal_name = canonical_name(payload.stream_name, te.event.internal_name)
    projection.write(
        [
            _log_row(
                te,
                "stream_end",
                internal_name,
                downloaded_bytes=payload.downloaded_bytes,
                uploaded_bytes=payload.uploaded_bytes,
                total_viewers=payload.total_viewers,
                total_inputs=payload.total_inputs,
                total_outputs=payload.total_outputs,
                viewer_seconds=payload.viewer_seconds,
                event_data=event_data(payload),
            )
        ]
    )
    return "processed"


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


def project_stream_buffer(
    projection: Projection, te: TriggerEvent, payload: StreamBuffer
) -> Outcome:
    """Log a buffer transition and record the health sample it carries."""
    internal_name = canonical_name(payload.stream_name, te.event.internal_name)
    video, audio = primary_tracks(payload.tracks)
    video_bitrate = video.bitrate_kbps if video else None

    log_row = _log_row(
        te,
        "stream_buffer",
        internal_name,
        status="live",
        buffer_state=payload.buffer_state,
        has_issues=payload.has_issues,
        issues_description=payload.issues_description,
        track_count=payload.track_count,
        quality_tier=payload.quality_tier,
        primary_width=video.width if video else None,
        primary_height=video.height if video else None,
        primary_fps=video.fps if video else None,
        primary_codec=video.codec if video else None,
        primary_bitrate=video_bitrate,
        event_data=event_data(payload),
    )
    tracks = [track.model_dump(mode="json", exclude_none=True) for track in payload.tracks]
    sample = StreamHealthRow(
        timestamp=te.timestamp,
        tenant_id=te.tenant_id,
        stream_id=te.stream_id,
        internal_name=internal_name,
        node_id=te.node_id,
        bitrate=video_bitrate,
        fps=video.fps if video else None,
        width=video.width if video else None,
        height=video.height if video else None,
        codec=video.codec if video else None,
        gop_size=gop_size(video),
        buffer_state=payload.buffer_state,
        buffer_size=payload.stream_buffer_ms,
        buffer_health=buffer_health(payload.stream_buffer_ms, payload.max_keepaway_ms),
        frame_jitter_ms=payload.stream_jitter_ms,
        frame_ms_max=video.frame_ms_max if video else None,
        frame_ms_min=video.frame_ms_min if video else None,
        keyframe_ms_max=video.keyframe_ms_max if video else None,
        keyframe_ms_min=video.keyframe_ms_min if video else None,
        frames_max=video.frames_max if video else None,
        frames_min=video.frames_min if video else None,
        has_issues=payload.has_issues,
        issues_description=payload.issues_description,
        track_count=payload.track_count,
        quality_tier=payload.quality_tier,
        audio_codec=audio.codec if audio else None,
        audio_channels=audio.channels if audio else None,
        audio_sample_rate=audio.sample_rate if audio else None,
        audio_bitrate=audio.bitrate_kbps if audio else None,
        track_metadata=to_json({"tracks": tracks}) if tracks else "{}",
    )
    projection.write([log_row], [sample])
    return "processed"


def project_stream_bandwidth(
    projection: Projection,
    te: TriggerEvent,
    payload: StreamBandwidth,
) -> Outcome:
    projection.write(
        [
            StreamHealthRow(
                timestamp=te.timestamp,
                tenant_id=te.tenant_id,
                stream_id=te.stream_id,
                internal_name=canonical_name(payload.stream_name, te.event.internal_name),
                node_id=te.node_id,
                bitrate=kbps_from_bytes(payload.current_bytes_per_second),
            )
        ]
    )
    return "processed"


def project_track_list(projection: Projection, te: TriggerEvent, payload: TrackList) -> Outcome:
    internal_name = canonical_name(payload.stream_name, te.event.internal_name)
    tracks = [track.model_dump(mode="json", exclude_none=True) for track in payload.tracks]
    track_row = TrackListRow(
        event_id=te.event_id,
        timestamp=te.timestamp,
        tenant_id=te.tenant_id,
        stream_id=te.require_stream_id(),
        internal_name=internal_name,
        node_id=te.node_id,
        track_list=to_json(tracks),
        track_count=payload.total_tracks,
        video_track_count=payload.video_track_count,
        audio_track_count=payload.audio_track_count,
        quality_tier=payload.quality_tier,
        primary_width=payload.primary_width,
        primary_height=payload.primary_height,
        primary_fps=payload.primary_fps,
        primary_video_codec=payload.primary_video_codec,
        primary_video_bitrate=payload.primary_video_bitrate,
        primary_audio_codec=payload.primary_audio_codec,
        primary_audio_channels=payload.primary_audio_channels,
        primary_audio_sample_rate=payload.primary_audio_sample_rate,
        primary_audio_bitrate=payload.primary_audio_bitrate,
    )
    log_row = _log_row(
        te,
        "track_list_update",
        internal_name,
        track_count=payload.total_tracks,
        quality_tier=payload.quality_tier,
        primary_width=payload.primary_width,
        primary_height=payload.primary_height,
        primary_fps=payload.primary_fps,
        primary_codec=payload.primary_video_codec,
        primary_bitrate=payload.primary_video_bitrate,
        event_data=compact_json(
            {
                "video_track_count": payload.video_track_count,
                "audio_track_count": payload.audio_track_count,
            }
        ),
    )
    projection.write([track_row], [log_row])
    return "processed"


# ---------------------------------------------------------------------------
# Ingest and egress
# ---------------------------------------------------------------------------


def project_push_rewrite(projection: Projection, te: TriggerEvent, payload: PushRewrite) -> Outcome:
    """An ingest push was accepted: the stream has started."""
    projection.write(
        [
            _log_row(
                te,
                "stream_start",
                canonical_name(payload.stream_name, te.event.internal_name),
                status="live",
                latitude=_prefer(payload.publisher_latitude, payload.latitude),
                longitude=_prefer(payload.publisher_longitude, payload.longitude),
                event_data=compact_json(
                    {
                        "push_url": payload.push_url,
                        "hostname": payload.hostname,
                        "protocol": payload.protocol,
                        "location": payload.location,
                        "publisher_country_code": payload.publisher_country_code,
                        "publisher_city": payload.publisher_city,
                    }
                ),
            )
        ]
    )
    return "processed"


def project_push_out_start(
    projection: Projection, te: TriggerEvent, payload: PushOutStart
) -> Outcome:
    projection.write(
        [
            _log_row(
                te,
                "push_out_start",
                canonical_name(payload.stream_name, te.event.internal_name),
                event_data=event_data(payload),
            )
        ]
    )
    return "processed"


def project_push_end(projection: Projection, te: TriggerEvent, payload: PushEnd) -> Outcome:
    projection.write(
        [
            _log_row(
                te,
                "push_end",
                canonical_name(payload.stream_name, te.event.internal_name),
                status=payload.push_status,
                event_data=event_data(payload),
            )
        ]
    )
    return "processed"


def project_recording_complete(
    projection: Projection,
    te: TriggerEvent,
    payload: RecordingComplete,
) -> Outcome:
    projection.write(
        [
            _log_row(
                te,
                "recording_complete",
                canonical_name(payload.stream_name, te.event.internal_name),
                event_data=event_data(payload),
            )
        ]
    )
    return "processed"
