"""Error taxonomy for the ingest pipeline.

Every failure the handler can see falls into one of these classes, and the
class decides what happens to the event::

    IngestError
    ├── EnvelopeError          — envelope JSON failed validation (ValueError)
    │   ├── MissingFieldError
    │   └── InvalidFieldError
    ├── PayloadDecodeError     — data does not decode into a MistTrigger
    ├── PayloadMismatchError   — payload variant contradicts the event type
    ├── IdentityDrop           — required identity missing; drop, never redeliver
    └── StoreError             — a store write or lookup failed

``IdentityDrop`` is a policy outcome: the dispatcher audits it and reports
success so the event is not redelivered.  Everything else is audited and
re-raised so the transport redelivers the event.
"""


class IngestError(Exception):
    """Base class for every pipeline failure."""


class EnvelopeError(IngestError, ValueError):
    """Base class for envelope validation errors."""


class MissingFieldError(EnvelopeError):
    """A required field is absent from the event envelope."""


class InvalidFieldError(EnvelopeError):
    """A field value is present but fails type or constraint checks."""


class PayloadDecodeError(IngestError):
    """The envelope's data mapping does not decode into a trigger payload."""


class PayloadMismatchError(IngestError):
    """The decoded payload variant is not the one the event type declares."""


class IdentityDrop(IngestError):
    """A required identity field is missing or malformed.

    ``reason`` is the audit reason written to ``ingest_errors``; ``stream_id``
    is whatever raw value the producer sent, kept for the audit row.
    """

    def __init__(self, reason: str, *, stream_id: str = "") -> None:
        super().__init__(reason)
        self.reason = reason
        self.stream_id = stream_id


class StoreError(IngestError):
    """A write to (or lookup in) a backing store failed."""
