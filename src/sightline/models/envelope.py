"""Pydantic models for the two event envelopes the handler accepts.

Analytics events carry node telemetry; ``data`` holds a serialized
``MistTrigger`` (see :mod:`sightline.models.trigger`).  Service events come
from platform services (API gateway, account service) and carry plain
key/value ``data``.

Sample analytics envelope:

    {
        "event_id": "0b9c7e8e-...",
        "event_type": "viewer_connect",
        "timestamp": "2026-10-19T08:12:03Z",
        "source": "foghorn",
        "tenant_id": "5eedfeed-11fe-4d0e-8f3b-2a3c9b7c1a01",
        "data": {"streamId": "...", "nodeId": "edge-1", "viewerConnect": {...}}
    }

Unknown envelope keys are ignored so producers can add fields freely.
``tenant_id`` defaults to an empty string: the identity gate, not the model,
decides whether a missing tenant drops the event.
"""

from typing import Any

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field


class _Envelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    event_id: str
    event_type: str
    timestamp: AwareDatetime
    source: str = ""
    tenant_id: str = ""
    user_id: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)


class AnalyticsEvent(_Envelope):
    """Node telemetry envelope handled by ``EventHandler.handle_event``."""

    # Optional stream name stamped by the producer; payload names win.
    internal_name: str | None = None


class ServiceEvent(_Envelope):
    """Platform service envelope handled by ``EventHandler.handle_service_event``."""

    resource_type: str | None = None
    resource_id: str | None = None
