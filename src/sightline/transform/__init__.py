"""Per-event-type transformers.

Each transformer takes a :class:`~sightline.transform.base.TriggerEvent`
and its narrowed payload, builds destination rows, and writes them through
a :class:`~sightline.projector.Projection`.  Routing, identity checks and
duplicate lookups happen in :mod:`sightline.dispatch` before a transformer
runs.
"""
