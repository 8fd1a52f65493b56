"""Pure derivations shared by the transformers.

Nothing here touches a store or a logger; every function maps payload
values to column values, and ``None`` in means ``None`` out unless stated.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel

from sightline.models.trigger import GeoBucket, StreamTrack

_DVR_STAGES = {
    "STATUS_STARTED": "started",
    "STATUS_RECORDING": "recording",
    "STATUS_STOPPED": "stopped",
    "STATUS_FAILED": "failed",
    "STATUS_DELETED": "deleted",
}

_VOD_STAGES = {
    "STATUS_REQUESTED": "requested",
    "STATUS_UPLOADING": "uploading",
    "STATUS_PROCESSING": "processing",
    "STATUS_COMPLETED": "completed",
    "STATUS_FAILED": "failed",
    "STATUS_DELETED": "deleted",
}


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------


def utc_naive(ts: datetime) -> datetime:
    """Convert an aware datetime to the naive-UTC form the store uses."""
    return ts.astimezone(UTC).replace(tzinfo=None)


def from_unix(seconds: int | None) -> datetime | None:
    """Unix seconds to naive UTC; zero and negative mean unset."""
    if seconds is None or seconds <= 0:
        return None
    return datetime.fromtimestamp(seconds, UTC).replace(tzinfo=None)


# ---------------------------------------------------------------------------
# Quality metrics
# ---------------------------------------------------------------------------


def _clamp(value: float) -> float:
    return min(max(value, 0.0), 1.0)


def connection_quality(packets_sent: int | None, packets_lost: int | None) -> float | None:
    """Delivered-packet ratio ``1 - lost/sent`` in [0, 1]; ``None`` when nothing was sent."""
    if packets_sent is None or packets_sent <= 0:
        return None
    return _clamp(1.0 - (packets_lost or 0) / packets_sent)


def buffer_health(buffer_ms: int | None, max_keepaway_ms: int | None) -> float | None:
    """Buffered media as a fraction of the keep-away window, in [0, 1]."""
    if buffer_ms is None or max_keepaway_ms is None or max_keepaway_ms <= 0:
        return None
    return _clamp(buffer_ms / max_keepaway_ms)


def default_buffer_state(state: str | None, buffer_ms: int | None) -> str | None:
    """A stream reporting buffered media but no state is ``FULL``."""
    if not state and buffer_ms is not None and buffer_ms > 0:
        return "FULL"
    return state or None


def kbps_from_bytes(bytes_per_second: int | None) -> int | None:
    if bytes_per_second is None:
        return None
    return bytes_per_second * 8 // 1000


def primary_tracks(tracks: Iterable[StreamTrack]) -> tuple[StreamTrack | None, StreamTrack | None]:
    """First video and first audio track, in list order."""
    video = audio = None
    for track in tracks:
        kind = (track.track_type or "").lower()
        if kind == "video" and video is None:
            video = track
        elif kind == "audio" and audio is None:
            audio = track
    return video, audio


def gop_size(video: StreamTrack | None) -> int | None:
    if video is None or not video.frames_max or video.frames_max <= 0:
        return None
    return video.frames_max


def h3_bucket(bucket: GeoBucket | None) -> tuple[int | None, int | None]:
    """(H3 index, resolution), or a pair of ``None`` when no cell was reported."""
    # Index 0 is not an H3 cell.
    if bucket is None or not bucket.h3_index:
        return None, None
    return bucket.h3_index, bucket.resolution


def session_totals(
    duration: int | None,
    seconds_connected: int | None,
    up_bytes: int | None,
    down_bytes: int | None,
) -> tuple[int, int]:
    """(session seconds, bytes transferred) for a viewer disconnect."""
    if duration and duration > 0:
        seconds = duration
    elif seconds_connected and seconds_connected > 0:
        seconds = seconds_connected
    else:
        seconds = 0
    return seconds, max(0, up_bytes or 0) + max(0, down_bytes or 0)


# ---------------------------------------------------------------------------
# Enum normalization
# ---------------------------------------------------------------------------


def strip_enum(value: str | None, prefix: str, default: str = "unknown") -> str:
    """``STAGE_DONE`` → ``done`` for prefix ``STAGE_``."""
    if not value:
        return default
    return value.removeprefix(prefix).lower()


def dvr_stage(status: str | None) -> str:
    return _DVR_STAGES.get(status or "", "unknown")


def vod_stage(status: str | None) -> str:
    return _VOD_STAGES.get(status or "", "unknown")


def flag(value: bool | None) -> int | None:
    """Nullable boolean as a 0/1 column value."""
    if value is None:
        return None
    return 1 if value else 0


# ---------------------------------------------------------------------------
# JSON columns
# ---------------------------------------------------------------------------


def to_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), sort_keys=True, default=str)


def compact_json(values: Mapping[str, Any]) -> str:
    """Serialize ``values`` without the keys whose value is ``None``."""
    return to_json({k: v for k, v in values.items() if v is not None})


def track_metadata(raw: str | None) -> str:
    """Normalize a producer's track-detail JSON to an object.

    Objects pass through, arrays become ``{"tracks": [...]}``, and anything
    else (including malformed JSON) becomes ``{}``.
    """
    text = (raw or "").strip()
    if text.startswith("{"):
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            return "{}"
        return to_json(parsed) if isinstance(parsed, dict) else "{}"
    if text.startswith("["):
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            return "{}"
        return to_json({"tracks": parsed})
    return "{}"


def event_data(payload: BaseModel) -> str:
    """The payload's reported fields as a JSON object (snake_case keys)."""
    return to_json(payload.model_dump(mode="json", exclude_none=True))
