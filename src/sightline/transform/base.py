"""Shared types for transformers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from functools import cached_property
from typing import Literal

from sightline.derive import utc_naive
from sightline.errors import IdentityDrop
from sightline.identity import parse_uuid
from sightline.models.envelope import AnalyticsEvent
from sightline.models.trigger import MistTrigger

Outcome = Literal["processed", "dropped", "duplicate", "skipped"]

MISSING_STREAM_REASON = "missing_or_invalid_stream_id"


@dataclass(frozen=True)
class TriggerEvent:
    """An analytics envelope, its decoded trigger, and its validated tenant."""

    event: AnalyticsEvent
    trigger: MistTrigger
    tenant_id: str

    @cached_property
    def timestamp(self) -> datetime:
        return utc_naive(self.event.timestamp)

    @cached_property
    def stream_id(self) -> str | None:
        return parse_uuid(self.trigger.stream_id)

    @property
    def event_id(self) -> str:
        return self.event.event_id

    @property
    def node_id(self) -> str | None:
        return self.trigger.node_id or None

    def require_stream_id(self) -> str:
        """The stream UUID, or an ``IdentityDrop`` when there is none."""
        if self.stream_id is None:
            raise IdentityDrop(MISSING_STREAM_REASON, stream_id=self.trigger.stream_id or "")
        return self.stream_id
