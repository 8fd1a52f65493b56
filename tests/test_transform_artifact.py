"""Tests for clip, DVR, VOD and storage projections."""

from datetime import datetime

import structlog

from tests.conftest import (
    OTHER_TENANT,
    STREAM,
    TENANT,
    TS_NAIVE,
    count,
    fetch,
    make_event,
    sample,
    trigger,
)


def _clip(n: int = 0, timestamp: str = "2026-10-19T08:12:03Z", **payload):
    return make_event(
        "clip_lifecycle",
        trigger(
            "clipLifecycleData", {"clipHash": "c0ffee", "internalName": "live+demo", **payload}
        ),
        event_id=f"00000000-0000-4000-8000-0000000000c{n}",
        timestamp=timestamp,
    )


class TestClipLifecycle:
    def test_state_and_event(self, conn, handler):
        event = _clip(
            stage="STAGE_PROGRESS",
            startUnix="1700000000",
            stopUnix="1700000060",
            progressPercent=40,
            startedAt="1700000100",
            sizeBytes="1048576",
            nodeId="edge-7",
        )
        assert handler.handle_event(event) == "processed"

        (state,) = fetch(conn, "artifact_state_current")
        assert state["tenant_id"] == TENANT
        assert state["request_id"] == "c0ffee"
        assert state["stream_id"] == STREAM
        assert state["internal_name"] == "demo"
        assert state["content_type"] == "clip"
        assert state["stage"] == "progress"
        assert state["progress_percent"] == 40
        assert state["requested_at"] == TS_NAIVE
        assert state["started_at"] == datetime(2023, 11, 14, 22, 15)
        assert state["completed_at"] is None
        assert state["clip_start_unix"] == 1_700_000_000
        assert state["processing_node_id"] == "edge-7"

        (ev,) = fetch(conn, "artifact_events")
        assert ev["request_id"] == "c0ffee"
        assert ev["stage"] == "progress"
        assert ev["start_unix"] == 1_700_000_000
        assert ev["stop_unix"] == 1_700_000_060
        assert ev["node_id"] == "edge-7"

    def test_requested_at_survives_later_stages(self, conn, handler):
        handler.handle_event(_clip(1, "2026-10-19T08:00:00Z", stage="STAGE_REQUESTED"))
        handler.handle_event(_clip(2, "2026-10-19T08:05:00Z", stage="STAGE_DONE"))
        (state,) = fetch(conn, "artifact_state_current")
        assert state["stage"] == "done"
        assert state["requested_at"] == datetime(2026, 10, 19, 8, 0)
        assert state["updated_at"] == datetime(2026, 10, 19, 8, 5)
        assert count(conn, "artifact_events") == 2

    def test_serving_and_origin_cluster(self, conn, handler):
        data = trigger(
            "clipLifecycleData",
            {"clipHash": "c0ffee", "stage": "STAGE_DONE"},
            clusterId="cluster-serving",
            originClusterId="cluster-origin",
        )
        handler.handle_event(make_event("clip_lifecycle", data))

        (ev,) = fetch(conn, "artifact_events")
        assert ev["cluster_id"] == "cluster-serving"
        assert ev["origin_cluster_id"] == "cluster-origin"

    def test_single_cluster_fills_both(self, conn, handler):
        data = trigger("clipLifecycleData", {"clipHash": "c0ffee"}, originClusterId="eu-origin")
        handler.handle_event(make_event("clip_lifecycle", data))

        (ev,) = fetch(conn, "artifact_events")
        assert ev["cluster_id"] == ev["origin_cluster_id"] == "eu-origin"

    def test_without_cluster(self, conn, handler):
        handler.handle_event(_clip())
        (ev,) = fetch(conn, "artifact_events")
        assert ev["cluster_id"] is None
        assert ev["origin_cluster_id"] is None

    def test_request_id_fallback(self, conn, handler):
        handler.handle_event(_clip(clipHash="", requestId="req-9"))
        assert fetch(conn, "artifact_state_current")[0]["request_id"] == "req-9"

    def test_without_identifier_skipped(self, conn, handler):
        with structlog.testing.capture_logs() as logs:
            assert handler.handle_event(_clip(clipHash="")) == "skipped"
        assert any(e["event"] == "clip lifecycle without clip hash or request id" for e in logs)
        assert count(conn, "artifact_state_current") == 0

    def test_requires_stream(self, conn, handler):
        data = trigger("clipLifecycleData", {"clipHash": "x"}, stream_id=None)
        event = make_event("clip_lifecycle", data)
        assert handler.handle_event(event) == "dropped"


class TestDvrLifecycle:
    def test_state_and_event(self, conn, handler):
        event = make_event(
            "dvr_lifecycle",
            trigger(
                "dvrLifecycleData",
                {
                    "dvrHash": "d1",
                    "status": "STATUS_RECORDING",
                    "manifestPath": "/dvr/d1/index.m3u8",
                    "segmentCount": 12,
                    "endedAt": "1700000000",
                },
            ),
        )
        assert handler.handle_event(event) == "processed"

        (state,) = fetch(conn, "artifact_state_current")
        assert state["request_id"] == "d1"
        assert state["content_type"] == "dvr"
        assert state["stage"] == "recording"
        assert state["manifest_path"] == state["file_path"] == "/dvr/d1/index.m3u8"
        assert state["segment_count"] == 12
        assert state["completed_at"] == datetime(2023, 11, 14, 22, 13, 20)
        assert fetch(conn, "artifact_events")[0]["file_path"] == "/dvr/d1/index.m3u8"

    def test_cluster_attribution(self, conn, handler):
        data = trigger("dvrLifecycleData", {"dvrHash": "d1"}, clusterId="us-east")
        handler.handle_event(make_event("dvr_lifecycle", data))
        (ev,) = fetch(conn, "artifact_events")
        assert ev["cluster_id"] == ev["origin_cluster_id"] == "us-east"

    def test_envelope_tenant_beats_payload(self, conn, handler):
        event = make_event(
            "dvr_lifecycle",
            trigger("dvrLifecycleData", {"dvrHash": "d1", "tenantId": OTHER_TENANT}),
        )
        handler.handle_event(event)
        assert fetch(conn, "artifact_state_current")[0]["tenant_id"] == TENANT

    def test_unknown_status(self, conn, handler):
        data = trigger("dvrLifecycleData", {"dvrHash": "d1", "status": "WAT"})
        event = make_event("dvr_lifecycle", data)
        handler.handle_event(event)
        assert fetch(conn, "artifact_state_current")[0]["stage"] == "unknown"

    def test_without_hash_skipped(self, conn, handler):
        data = trigger("dvrLifecycleData", {"status": "STATUS_STARTED"})
        event = make_event("dvr_lifecycle", data)
        assert handler.handle_event(event) == "skipped"


class TestVodLifecycle:
    def test_stream_optional(self, conn, handler):
        event = make_event(
            "vod_lifecycle",
            trigger(
                "vodLifecycleData",
                {"vodHash": "v1", "status": "STATUS_UPLOADING", "filename": "talk.mp4"},
                stream_id=None,
            ),
        )
        assert handler.handle_event(event) == "processed"

        (state,) = fetch(conn, "artifact_state_current")
        assert state["request_id"] == state["internal_name"] == "v1"
        assert state["stream_id"] is None
        assert state["filename"] == "talk.mp4"
        assert state["content_type"] == "vod"
        assert state["stage"] == "uploading"

    def test_without_hash_skipped(self, conn, handler):
        event = make_event("vod_lifecycle", trigger("vodLifecycleData", {}, stream_id=None))
        assert handler.handle_event(event) == "skipped"
        assert count(conn, "artifact_events") == 0


class TestStorageLifecycle:
    def test_event_row(self, conn, handler):
        event = make_event(
            "storage_lifecycle",
            trigger(
                "storageLifecycleData",
                {"action": "ACTION_FROZEN", "assetHash": "h1", "assetType": "clip", "sizeBytes": 0},
            ),
        )
        assert handler.handle_event(event) == "processed"
        (row,) = fetch(conn, "storage_events")
        assert row["action"] == "frozen"
        assert row["asset_hash"] == "h1"
        assert row["stream_id"] == STREAM
        assert row["size_bytes"] == 0

    def test_invalid_stream_id_stored_as_null(self, conn, handler):
        event = make_event(
            "storage_lifecycle",
            trigger("storageLifecycleData", {"action": "ACTION_DEFROSTED"}, stream_id="garbage"),
        )
        with structlog.testing.capture_logs() as logs:
            assert handler.handle_event(event) == "processed"
        assert any(e["event"] == "storage lifecycle with invalid stream id" for e in logs)
        assert fetch(conn, "storage_events")[0]["stream_id"] is None


class TestStorageSnapshot:
    def test_one_row_per_valid_tenant(self, conn, handler, metrics):
        event = make_event(
            "storage_snapshot",
            trigger(
                "storageSnapshot",
                {
                    "nodeId": "edge-9",
                    "timestamp": "1700000000",
                    "usage": [
                        {"tenantId": TENANT, "totalBytes": "100", "fileCount": 2},
                        {"tenantId": "not-a-tenant", "totalBytes": "5"},
                        {"tenantId": OTHER_TENANT, "totalBytes": "0", "frozenVodBytes": 7},
                    ],
                },
                stream_id=None,
            ),
        )
        assert handler.handle_event(event) == "processed"

        rows = sorted(fetch(conn, "storage_snapshots"), key=lambda r: r["total_bytes"])
        assert [r["tenant_id"] for r in rows] == [OTHER_TENANT, TENANT]
        assert rows[0]["frozen_vod_bytes"] == 7
        assert rows[1]["file_count"] == 2
        assert all(r["storage_scope"] == "hot" for r in rows)
        assert all(r["node_id"] == "edge-9" for r in rows)
        assert all(r["timestamp"] == datetime(2023, 11, 14, 22, 13, 20) for r in rows)
        assert sample(
            metrics, "sightline_store_inserts_total", table="storage_snapshots", status="skip"
        ) == 1

    def test_no_usable_entries(self, conn, handler):
        event = make_event(
            "storage_snapshot",
            trigger(
                "storageSnapshot",
                {"storageScope": "cold", "usage": [{"tenantId": ""}]},
                stream_id=None,
            ),
        )
        assert handler.handle_event(event) == "skipped"
        assert count(conn, "storage_snapshots") == 0
