"""Identity normalization: tenants, streams, names and clusters.

Tenant and stream identifiers must be canonical, non-nil UUIDs.  Anything
else (empty, malformed, or ``00000000-0000-0000-0000-000000000000``) is
treated as absent.

Stream names arrive with routing prefixes (``live+demo``, ``vod+abc``); the
stored ``internal_name`` is the bare name.
"""

from __future__ import annotations

import uuid

from sightline.logging import get_logger

_log = get_logger(__name__)

STREAM_NAME_PREFIXES: tuple[str, ...] = ("live+", "vod+")

# Fixed tenant for producers that predate tenant stamping.  Only ever
# applied through ``legacy_tenant()`` and only when the legacy switch is on.
LEGACY_PLACEHOLDER_TENANT = "00000000-0000-0000-0000-000000000001"


def is_valid_uuid(value: str | None) -> bool:
    """True for a parseable, non-nil UUID string."""
    if not value:
        return False
    try:
        parsed = uuid.UUID(value)
    except ValueError:
        return False
    return parsed.int != 0


def parse_uuid(value: str | None) -> str | None:
    """Canonical lowercase form of a valid UUID, else ``None``."""
    if not is_valid_uuid(value):
        return None
    return str(uuid.UUID(value))


def canonical_name(*candidates: str | None) -> str | None:
    """First non-empty candidate with any routing prefix stripped."""
    for name in candidates:
        if name:
            for prefix in STREAM_NAME_PREFIXES:
                if name.startswith(prefix):
                    return name[len(prefix) :]
            return name
    return None


def resolve_tenant(explicit: str | None, embedded: str | None = None) -> str | None:
    """Pick the tenant for a row.

    The envelope's explicit tenant wins over one embedded in the payload;
    either must be a valid UUID to count.
    """
    for candidate in (explicit, embedded):
        tenant = parse_uuid(candidate)
        if tenant is not None:
            return tenant
    return None


def legacy_tenant(placeholder: str = LEGACY_PLACEHOLDER_TENANT, **context: object) -> str:
    """Return the legacy placeholder tenant, logging every use."""
    _log.warning("legacy placeholder tenant applied", tenant_id=placeholder, **context)
    return placeholder


def cluster_attribution(
    cluster_id: str | None, origin_cluster_id: str | None
) -> tuple[str | None, str | None]:
    """Fill whichever of (cluster, origin cluster) is missing from the other."""
    cluster = cluster_id or origin_cluster_id or None
    origin = origin_cluster_id or cluster_id or None
    return cluster, origin
