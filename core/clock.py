"""
core/clock.py -- UTC time helpers shared by the auth core and its stores.

Every timestamp in Gatekeeper is timezone-aware UTC in memory and an ISO 8601
string at rest (same convention as the stores' created_at columns). The auth
service takes a clock callable so tests can move time past an expiry without
sleeping; utcnow is the production clock.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime | None) -> str | None:
    """Serialize a datetime for storage. Naive values are assumed to be UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def from_iso(value: str | None) -> datetime | None:
    """Parse a stored ISO 8601 timestamp back into an aware UTC datetime.

    Handles both timezone-aware strings (e.g. '2024-01-01T00:00:00+00:00') and
    naive strings, which are treated as UTC. Empty values map to None.
    """
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
