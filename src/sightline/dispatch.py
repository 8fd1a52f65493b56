"""Event handler: the single entry point for analytics and service events.

``EventHandler.handle_event(event)`` runs one analytics envelope through::

    tenant gate → route lookup → decode trigger → stream-id gate
        → duplicate lookup → payload variant check → transformer

and returns an :data:`~sightline.transform.base.Outcome`.  What happens to
a failing event depends on its error class:

- missing/invalid tenant or stream id: audited, returns ``"dropped"``
- duplicate ``event_id``: not audited, returns ``"duplicate"``
- unknown or non-canonical event type: not audited, returns ``"skipped"``
- anything else (decode errors, payload mismatches, store failures):
  audited as ``handler_error`` and re-raised so the caller redelivers

``handle_service_event(event)`` does the same for service-plane envelopes,
which carry plain ``data`` instead of a trigger.

The handler holds no per-event state; concurrent calls are safe as long as
the store is.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from sightline.config import IngestSettings
from sightline.dedup import seen_in_any
from sightline.errors import IdentityDrop
from sightline.identity import legacy_tenant, parse_uuid
from sightline.logging import event_context, get_logger
from sightline.metrics import IngestMetrics
from sightline.models import trigger as t
from sightline.models.envelope import AnalyticsEvent, ServiceEvent
from sightline.models.rows import (
    FederationEventRow,
    StreamEventRow,
    TrackListRow,
    ViewerConnectionRow,
)
from sightline.projector import Projection
from sightline.quarantine import quarantine_event
from sightline.rollups import RollupStore
from sightline.transform import artifact, federation, node, service, stream, usage, viewer
from sightline.transform.base import Outcome, TriggerEvent
from sightline.validate import decode_trigger, expect_payload
from sightline.warehouse import AnalyticsStore

_log = get_logger(__name__)

MISSING_TENANT_REASON = "missing_or_invalid_tenant_id"
MISSING_SERVICE_TENANT_REASON = "missing_or_invalid_tenant_id_service_event"
HANDLER_ERROR_REASON = "handler_error"


@dataclass(frozen=True)
class Route:
    """How one event type is handled.

    ``variants`` are the payload classes the event type may carry;
    ``dedup`` lists the tables searched for an existing ``event_id``.
    """

    handler: Callable[[Projection, TriggerEvent, Any], Outcome]
    variants: tuple[type[BaseModel], ...]
    requires_stream: bool = False
    dedup: tuple[str, ...] = ()


_STREAM_LOG = (StreamEventRow.TABLE,)

ROUTES: Mapping[str, Route] = {
    "viewer_connect": Route(
        viewer.project_viewer_connection,
        (t.ViewerConnect, t.ViewerDisconnect),
        requires_stream=True,
        dedup=(ViewerConnectionRow.TABLE,),
    ),
    "viewer_disconnect": Route(
        viewer.project_viewer_connection,
        (t.ViewerConnect, t.ViewerDisconnect),
        requires_stream=True,
        dedup=(ViewerConnectionRow.TABLE,),
    ),
    "client_lifecycle_update": Route(viewer.project_client_lifecycle, (t.ClientLifecycleUpdate,)),
    "stream_buffer": Route(
        stream.project_stream_buffer, (t.StreamBuffer,), requires_stream=True, dedup=_STREAM_LOG
    ),
    "stream_end": Route(
        stream.project_stream_end, (t.StreamEnd,), requires_stream=True, dedup=_STREAM_LOG
    ),
    "push_rewrite": Route(stream.project_push_rewrite, (t.PushRewrite,), dedup=_STREAM_LOG),
    "push_out_start": Route(stream.project_push_out_start, (t.PushOutStart,), dedup=_STREAM_LOG),
    "push_end": Route(stream.project_push_end, (t.PushEnd,), dedup=_STREAM_LOG),
    "stream_track_list": Route(
        stream.project_track_list,
        (t.TrackList,),
        requires_stream=True,
        dedup=(TrackListRow.TABLE, StreamEventRow.TABLE),
    ),
    "stream_bandwidth": Route(stream.project_stream_bandwidth, (t.StreamBandwidth,)),
    "recording_complete": Route(
        stream.project_recording_complete, (t.RecordingComplete,), dedup=_STREAM_LOG
    ),
    "stream_lifecycle_update": Route(stream.project_stream_lifecycle, (t.StreamLifecycleUpdate,)),
    "node_lifecycle_update": Route(node.project_node_lifecycle, (t.NodeLifecycleUpdate,)),
    "load_balancing": Route(
        node.project_load_balancing, (t.LoadBalancingData,), requires_stream=True
    ),
    "clip_lifecycle": Route(
        artifact.project_clip_lifecycle, (t.ClipLifecycleData,), requires_stream=True
    ),
    "dvr_lifecycle": Route(
        artifact.project_dvr_lifecycle, (t.DVRLifecycleData,), requires_stream=True
    ),
    "vod_lifecycle": Route(artifact.project_vod_lifecycle, (t.VodLifecycleData,)),
    "storage_lifecycle": Route(artifact.project_storage_lifecycle, (t.StorageLifecycleData,)),
    "storage_snapshot": Route(artifact.project_storage_snapshot, (t.StorageSnapshot,)),
    "process_billing": Route(usage.project_process_billing, (t.ProcessBilling,)),
    "api_request_batch": Route(usage.project_api_request_batch, (t.APIRequestBatch,)),
    "federation_event": Route(
        federation.project_federation_event,
        (t.FederationEventData,),
        dedup=(FederationEventRow.TABLE,),
    ),
}

# Recognised event types that carry nothing this pipeline stores.
SKIPPED: frozenset[str] = frozenset({"play_rewrite", "stream_source", "recording_segment"})


def _raw_stream_id(data: Mapping[str, Any]) -> str:
    value = data.get("streamId", data.get("stream_id"))
    return value if isinstance(value, str) else ""


class EventHandler:
    """Validate, route and project events into the analytical store.

    Args:
        store:   Analytical store every row and audit row is written to.
        metrics: Counters to update; a fresh private registry if omitted.
        rollups: Optional relational rollup store (best-effort).
        ingest:  Ingest settings; only the legacy placeholder switch is read.
    """

    def __init__(
        self,
        store: AnalyticsStore,
        *,
        metrics: IngestMetrics | None = None,
        rollups: RollupStore | None = None,
        ingest: IngestSettings | None = None,
    ) -> None:
        self.store = store
        self.metrics = metrics if metrics is not None else IngestMetrics.create()
        self.ingest = ingest if ingest is not None else IngestSettings()
        self._projection = Projection(store, self.metrics, rollups)

    # ------------------------------------------------------------------
    # Analytics events
    # ------------------------------------------------------------------

    def handle_event(self, event: AnalyticsEvent) -> Outcome:
        """Handle one analytics envelope.

        Raises:
            IngestError: The event failed and should be redelivered.  It has
                         already been written to ``ingest_errors``.
        """
        with event_context(event):
            return self._handle_event(event)

    def _handle_event(self, event: AnalyticsEvent) -> Outcome:
        started = time.perf_counter()
        event_type = event.event_type
        self.metrics.event(event_type, "received")

        tenant_id = parse_uuid(event.tenant_id)
        if tenant_id is None:
            self.metrics.event(event_type, "tenant_missing")
            return self._drop(event, MISSING_TENANT_REASON)

        if event_type in SKIPPED:
            _log.info("non-canonical event skipped", event_type=event_type, event_id=event.event_id)
            self.metrics.event(event_type, "skipped")
            return "skipped"

        route = ROUTES.get(event_type)
        if route is None:
            _log.info("unknown event type skipped", event_type=event_type, event_id=event.event_id)
            self.metrics.event(event_type, "skipped")
            return "skipped"

        try:
            outcome = self._run(route, event, tenant_id)
        except IdentityDrop as drop:
            return self._drop(event, drop.reason, stream_id=drop.stream_id)
        except Exception as exc:
            self._fail(event, exc)
            raise

        self._finish(event, outcome, started)
        return outcome

    def _run(self, route: Route, event: AnalyticsEvent, tenant_id: str) -> Outcome:
        te = TriggerEvent(event, decode_trigger(event.data), tenant_id)
        if route.requires_stream:
            te.require_stream_id()
        if route.dedup and seen_in_any(self.store, route.dedup, event.event_id):
            _log.debug(
                "duplicate event skipped", event_type=event.event_type, event_id=event.event_id
            )
            self.metrics.duplicate(event.event_type)
            return "duplicate"
        payload = expect_payload(te.trigger, *route.variants)
        return route.handler(self._projection, te, payload)

    # ------------------------------------------------------------------
    # Service events
    # ------------------------------------------------------------------

    def handle_service_event(self, event: ServiceEvent) -> Outcome:
        """Handle one service-plane envelope.

        ``api_request_batch`` spans tenants and skips the envelope tenant
        gate.  Every other type needs a valid tenant, except that generic
        audit rows fall back to the legacy placeholder tenant when
        ``ingest.legacy_placeholder_tenant`` is on.
        """
        with event_context(event):
            return self._handle_service_event(event)

    def _handle_service_event(self, event: ServiceEvent) -> Outcome:
        started = time.perf_counter()
        event_type = event.event_type
        self.metrics.event(event_type, "received")

        tenant_id = None
        if event_type != "api_request_batch":
            tenant_id = parse_uuid(event.tenant_id)
            if tenant_id is None:
                if event_type == "tenant_created" or not self.ingest.legacy_placeholder_tenant:
                    self.metrics.event(event_type, "tenant_missing")
                    return self._drop(event, MISSING_SERVICE_TENANT_REASON)
                tenant_id = legacy_tenant(
                    self.ingest.placeholder_tenant_id,
                    event_id=event.event_id,
                    event_type=event_type,
                )

        try:
            if event_type == "api_request_batch":
                outcome = service.project_service_api_batch(self._projection, event)
            elif event_type == "tenant_created":
                outcome = service.project_tenant_created(self._projection, event, tenant_id)
            else:
                outcome = service.project_service_audit(self._projection, event, tenant_id)
        except Exception as exc:
            self._fail(event, exc)
            raise

        self._finish(event, outcome, started)
        return outcome

    # ------------------------------------------------------------------
    # Outcomes
    # ------------------------------------------------------------------

    def _drop(
        self, event: AnalyticsEvent | ServiceEvent, reason: str, *, stream_id: str = ""
    ) -> Outcome:
        quarantine_event(self.store, event, reason, stream_id=stream_id)
        _log.warning(
            "event dropped",
            reason=reason,
            event_type=event.event_type,
            event_id=event.event_id,
            tenant_id=event.tenant_id,
        )
        self.metrics.event(event.event_type, "dropped")
        return "dropped"

    def _fail(self, event: AnalyticsEvent | ServiceEvent, exc: Exception) -> None:
        quarantine_event(
            self.store,
            event,
            HANDLER_ERROR_REASON,
            cause=exc,
            stream_id=_raw_stream_id(event.data),
        )
        _log.error(
            "event handling failed",
            event_type=event.event_type,
            event_id=event.event_id,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        self.metrics.event(event.event_type, "error")

    def _finish(
        self, event: AnalyticsEvent | ServiceEvent, outcome: Outcome, started: float
    ) -> None:
        self.metrics.event(event.event_type, outcome)
        if outcome == "processed":
            self.metrics.processing_seconds.labels(source=event.source or "unknown").observe(
                time.perf_counter() - started
            )
