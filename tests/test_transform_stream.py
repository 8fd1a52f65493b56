"""Tests for stream lifecycle, health, track list and push projections."""

import json
from datetime import datetime

import pytest
import structlog

from sightline.dispatch import EventHandler
from sightline.errors import StoreError
from tests.conftest import STREAM, TENANT, TS_NAIVE, MemoryStore, count, fetch, make_event, trigger


def _lifecycle(n: int = 0, timestamp: str = "2026-10-19T08:12:03Z", **payload):
    return make_event(
        "stream_lifecycle_update",
        trigger("streamLifecycleUpdate", {"internalName": "live+demo", **payload}),
        event_id=f"00000000-0000-4000-8000-00000000000{n}",
        timestamp=timestamp,
    )


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestStreamLifecycle:
    def test_writes_state_log_and_sample(self, conn, handler):
        event = _lifecycle(
            status="live",
            totalViewers=12,
            primaryWidth=1920,
            primaryFps=29.97,
            bufferMs=8000,
            maxKeepawayMs=10000,
            startedAt="1700000000",
            trackDetailsJson='[{"id": 1}]',
        )
        assert handler.handle_event(event) == "processed"

        (state,) = fetch(conn, "stream_state_current")
        assert state["tenant_id"] == TENANT
        assert state["stream_id"] == STREAM
        assert state["internal_name"] == "demo"
        assert state["status"] == "live"
        assert state["current_viewers"] == 12
        assert state["buffer_state"] == "FULL"
        assert state["started_at"] == datetime(2023, 11, 14, 22, 13, 20)
        assert state["updated_at"] == TS_NAIVE

        (log,) = fetch(conn, "stream_event_log")
        assert log["event_type"] == "stream_lifecycle"
        assert log["total_viewers"] == 12
        assert json.loads(log["event_data"]) == {"started_at": 1700000000}

        (sample,) = fetch(conn, "stream_health_samples")
        assert sample["buffer_health"] == pytest.approx(0.8)
        assert sample["width"] == 1920
        assert json.loads(sample["track_metadata"]) == {"tracks": [{"id": 1}]}

    def test_status_defaults_to_live(self, conn, handler):
        handler.handle_event(_lifecycle())
        assert fetch(conn, "stream_state_current")[0]["status"] == "live"

    def test_no_buffer_no_health(self, conn, handler):
        handler.handle_event(_lifecycle(bufferMs=0, maxKeepawayMs=1000))
        sample = fetch(conn, "stream_health_samples")[0]
        assert sample["buffer_health"] is None
        assert sample["buffer_size"] == 0

    def test_out_of_order_update_loses(self, conn, handler):
        handler.handle_event(_lifecycle(1, "2026-10-19T08:12:10Z", status="offline"))
        handler.handle_event(_lifecycle(2, "2026-10-19T08:12:03Z", status="live"))
        (state,) = fetch(conn, "stream_state_current")
        assert state["status"] == "offline"
        assert count(conn, "stream_event_log") == 2

    def test_without_stream_id_skipped(self, conn, handler):
        event = make_event(
            "stream_lifecycle_update",
            trigger("streamLifecycleUpdate", {"status": "live"}, stream_id="nope"),
        )
        with structlog.testing.capture_logs() as logs:
            assert handler.handle_event(event) == "skipped"
        assert any(e["event"] == "stream lifecycle update without stream id" for e in logs)
        assert count(conn, "stream_state_current") == 0
        assert count(conn, "ingest_errors") == 0

    def test_state_failure_stops_before_log(self):
        store = MemoryStore(fail_tables=["stream_state_current"])
        with pytest.raises(StoreError):
            EventHandler(store).handle_event(_lifecycle())
        assert store.tables() == ["ingest_errors"]

    def test_log_failure_leaves_state_written(self):
        store = MemoryStore(fail_tables=["stream_event_log"])
        with pytest.raises(StoreError):
            EventHandler(store).handle_event(_lifecycle())
        assert store.tables() == ["stream_state_current", "ingest_errors"]


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class TestStreamBuffer:
    def _event(self, **payload):
        return make_event(
            "stream_buffer",
            trigger(
                "streamBuffer",
                {
                    "streamName": "live+demo",
                    "bufferState": "FULL",
                    "streamBufferMs": 8000,
                    "maxKeepawayMs": 10000,
                    "tracks": [
                        {"trackName": "a1", "trackType": "audio", "codec": "AAC", "channels": 2},
                        {
                            "trackName": "v1",
                            "trackType": "video",
                            "codec": "H264",
                            "bitrateKbps": 4500,
                            "width": 1280,
                            "height": 720,
                            "framesMax": 60,
                        },
                    ],
                    **payload,
                },
            ),
        )

    def test_log_and_sample(self, conn, handler):
        assert handler.handle_event(self._event()) == "processed"

        (log,) = fetch(conn, "stream_event_log")
        assert log["event_type"] == "stream_buffer"
        assert log["status"] == "live"
        assert log["buffer_state"] == "FULL"
        assert log["primary_codec"] == "H264"
        assert log["primary_bitrate"] == 4500

        (sample,) = fetch(conn, "stream_health_samples")
        assert sample["buffer_health"] == pytest.approx(0.8)
        assert sample["gop_size"] == 60
        assert sample["audio_codec"] == "AAC"
        assert sample["audio_channels"] == 2
        assert len(json.loads(sample["track_metadata"])["tracks"]) == 2

    def test_health_clamped(self, conn, handler):
        handler.handle_event(self._event(streamBufferMs=12000))
        assert fetch(conn, "stream_health_samples")[0]["buffer_health"] == 1.0


class TestStreamEnd:
    def test_log_row_with_nullable_status(self, conn, handler):
        event = make_event(
            "stream_end",
            trigger(
                "streamEnd",
                {"streamName": "live+demo", "totalViewers": 0, "downloadedBytes": "5"},
            ),
        )
        assert handler.handle_event(event) == "processed"
        (log,) = fetch(conn, "stream_event_log")
        assert log["event_type"] == "stream_end"
        assert log["status"] is None
        assert log["total_viewers"] == 0
        assert log["downloaded_bytes"] == 5


class TestStreamBandwidth:
    def test_bitrate_in_kbps(self, conn, handler):
        event = make_event(
            "stream_bandwidth",
            trigger("streamBandwidth", {"streamName": "demo", "currentBytesPerSecond": 125000}),
        )
        handler.handle_event(event)
        (sample,) = fetch(conn, "stream_health_samples")
        assert sample["bitrate"] == 1000
        assert sample["internal_name"] == "demo"


class TestTrackList:
    def test_track_row_and_log(self, conn, handler):
        event = make_event(
            "stream_track_list",
            trigger(
                "trackList",
                {
                    "streamName": "live+demo",
                    "tracks": [{"trackName": "v1", "trackType": "video"}],
                    "totalTracks": 1,
                    "videoTrackCount": 1,
                    "audioTrackCount": 0,
                    "primaryVideoCodec": "H264",
                },
            ),
        )
        assert handler.handle_event(event) == "processed"

        (tracks,) = fetch(conn, "track_list_events")
        assert tracks["track_count"] == 1
        assert json.loads(tracks["track_list"]) == [{"track_name": "v1", "track_type": "video"}]

        (log,) = fetch(conn, "stream_event_log")
        assert log["event_type"] == "track_list_update"
        assert log["primary_codec"] == "H264"
        assert json.loads(log["event_data"]) == {"video_track_count": 1, "audio_track_count": 0}

    def test_replay_is_duplicate(self, conn, handler):
        event = make_event("stream_track_list", trigger("trackList", {"streamName": "demo"}))
        handler.handle_event(event)
        assert handler.handle_event(event) == "duplicate"
        assert count(conn, "track_list_events") == 1


# ---------------------------------------------------------------------------
# Push
# ---------------------------------------------------------------------------


class TestPush:
    def test_push_rewrite_starts_stream(self, conn, handler):
        event = make_event(
            "push_rewrite",
            trigger(
                "pushRewrite",
                {
                    "streamName": "live+demo",
                    "pushUrl": "rtmp://ingest/live",
                    "latitude": 1.5,
                    "publisherLatitude": 0.0,
                    "publisherLongitude": 4.9,
                },
            ),
        )
        assert handler.handle_event(event) == "processed"
        (log,) = fetch(conn, "stream_event_log")
        assert log["event_type"] == "stream_start"
        assert log["status"] == "live"
        assert log["latitude"] == 0.0
        assert log["longitude"] == 4.9
        assert json.loads(log["event_data"]) == {"push_url": "rtmp://ingest/live"}

    def test_push_rewrite_without_stream_id(self, conn, handler):
        data = trigger("pushRewrite", {"streamName": "demo"}, stream_id=None)
        event = make_event("push_rewrite", data)
        assert handler.handle_event(event) == "processed"
        assert fetch(conn, "stream_event_log")[0]["stream_id"] is None

    def test_push_end_status(self, conn, handler):
        event = make_event(
            "push_end",
            trigger(
                "pushEnd",
                {"streamName": "demo", "pushStatus": "failed", "logMessages": ["x"]},
            ),
        )
        handler.handle_event(event)
        (log,) = fetch(conn, "stream_event_log")
        assert log["event_type"] == "push_end"
        assert log["status"] == "failed"
        assert json.loads(log["event_data"])["log_messages"] == ["x"]

    def test_push_out_start(self, conn, handler):
        event = make_event("push_out_start", trigger("pushOutStart", {"pushTarget": "srt://out"}))
        handler.handle_event(event)
        assert fetch(conn, "stream_event_log")[0]["event_type"] == "push_out_start"

    def test_recording_complete(self, conn, handler):
        event = make_event(
            "recording_complete",
            trigger("recordingComplete", {"streamName": "demo", "bytesWritten": 2048}),
        )
        handler.handle_event(event)
        (log,) = fetch(conn, "stream_event_log")
        assert log["event_type"] == "recording_complete"
        assert json.loads(log["event_data"])["bytes_written"] == 2048

    def test_timestamp_is_envelope_time(self, conn, handler):
        event = make_event(
            "push_out_start",
            trigger("pushOutStart", {}),
            timestamp="2026-10-19T10:12:03+02:00",
        )
        handler.handle_event(event)
        assert fetch(conn, "stream_event_log")[0]["timestamp"] == TS_NAIVE
