"""Envelope validation and trigger payload decoding.

``validate_envelope(raw)`` / ``validate_service_envelope(raw)`` turn a raw
dict (one JSONL line from the local feed) into a typed envelope or raise a
typed :class:`~sightline.errors.EnvelopeError`.

``decode_trigger(data)`` recovers the typed :class:`MistTrigger` from an
analytics envelope's untyped ``data`` mapping.  The mapping is re-encoded
as JSON and parsed with the protobuf-JSON field names, so values that do
not fit their declared types (an object where a string is expected, a
non-numeric string where an integer is expected) raise
:class:`~sightline.errors.PayloadDecodeError`.  Unknown keys are ignored.

``expect_payload(trigger, *kinds)`` narrows the decoded trigger to the
variant an event type declares, raising
:class:`~sightline.errors.PayloadMismatchError` otherwise.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as _PydanticError

from sightline.errors import (
    EnvelopeError,
    InvalidFieldError,
    MissingFieldError,
    PayloadDecodeError,
    PayloadMismatchError,
)
from sightline.models.envelope import AnalyticsEvent, ServiceEvent
from sightline.models.trigger import MistTrigger

_P = TypeVar("_P", bound=BaseModel)


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------


def validate_envelope(raw: dict[str, Any]) -> AnalyticsEvent:
    """Parse ``raw`` into an :class:`AnalyticsEvent`.

    Raises:
        MissingFieldError: A required envelope field is absent.
        InvalidFieldError: A field is present but has the wrong type or format
                           (e.g. a timestamp without a UTC offset).
    """
    try:
        return AnalyticsEvent.model_validate(raw)
    except _PydanticError as exc:
        raise _convert_pydantic_error(exc) from exc


def validate_service_envelope(raw: dict[str, Any]) -> ServiceEvent:
    """Parse ``raw`` into a :class:`ServiceEvent`; errors as ``validate_envelope``."""
    try:
        return ServiceEvent.model_validate(raw)
    except _PydanticError as exc:
        raise _convert_pydantic_error(exc) from exc


# ---------------------------------------------------------------------------
# Trigger payloads
# ---------------------------------------------------------------------------


def decode_trigger(data: Mapping[str, Any]) -> MistTrigger:
    """Decode an analytics envelope's ``data`` into a :class:`MistTrigger`."""
    try:
        encoded = json.dumps(data)
    except (TypeError, ValueError) as exc:
        raise PayloadDecodeError(f"failed to marshal event data: {exc}") from exc
    try:
        return MistTrigger.model_validate_json(encoded)
    except _PydanticError as exc:
        raise PayloadDecodeError(f"failed to decode trigger payload: {_first_error(exc)}") from exc


def decode_model(model: type[_P], data: Any) -> _P:
    """Validate a plain mapping against ``model``; decode failures are structural."""
    try:
        return model.model_validate(data)
    except _PydanticError as exc:
        raise PayloadDecodeError(f"failed to decode {model.__name__}: {_first_error(exc)}") from exc


def expect_payload(trigger: MistTrigger, *kinds: type[_P]) -> _P:
    """Return the trigger's payload if it is one of ``kinds``."""
    payload = trigger.payload
    if not isinstance(payload, kinds):
        expected = " or ".join(k.__name__ for k in kinds)
        got = type(payload).__name__ if payload is not None else "no payload"
        raise PayloadMismatchError(f"unexpected payload: expected {expected}, got {got}")
    return payload


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _first_error(exc: _PydanticError) -> str:
    first = exc.errors(include_url=False)[0]
    field = ".".join(str(loc) for loc in first.get("loc", ()))
    return f"{field}: {first.get('msg', str(exc))}" if field else first.get("msg", str(exc))


def _convert_pydantic_error(exc: _PydanticError) -> EnvelopeError:
    """Map the first Pydantic validation error to one of our typed errors.

    The full Pydantic error stays available as ``__cause__``.
    """
    first = exc.errors(include_url=False)[0]
    field = " → ".join(str(loc) for loc in first.get("loc", ()))
    msg = first.get("msg", str(exc))

    if first.get("type") == "missing":
        return MissingFieldError(f"Required field missing: {field!r}")
    return InvalidFieldError(f"Invalid value for {field!r}: {msg}")
