"""Blob key namespacing.

Centralizes the namespaced key format so that only blob backends ever see it.

Namespaced keys: bot{tenant_id}/{session_key}

The tenant segment is decimal digits only, so the first "/" always ends it and
keys that themselves contain "/" cannot collide across tenants.
"""

from __future__ import annotations

from .exceptions import SessionValidationError

NAMESPACE_PREFIX = "bot"
NAMESPACE_SEPARATOR = "/"


def validate_tenant_id(tenant_id: int) -> int:
    """Check that a tenant id is a non-negative integer.

    Raises SessionValidationError otherwise.
    """
    if isinstance(tenant_id, bool) or not isinstance(tenant_id, int) or tenant_id < 0:
        raise SessionValidationError(
            f"Tenant id must be a non-negative integer, got {tenant_id!r}", field="tenant_id"
        )
    return tenant_id


def namespace_key(tenant_id: int, key: str) -> str:
    """Generate the blob key for a tenant's session key."""
    validate_tenant_id(tenant_id)
    return f"{NAMESPACE_PREFIX}{tenant_id}{NAMESPACE_SEPARATOR}{key}"


def split_namespaced_key(namespaced_key: str) -> tuple[int, str]:
    """Extract (tenant_id, session_key) from a namespaced blob key.

    Raises ValueError on malformed input.
    """
    head, sep, key = namespaced_key.partition(NAMESPACE_SEPARATOR)
    digits = head[len(NAMESPACE_PREFIX) :]
    if not sep or not head.startswith(NAMESPACE_PREFIX) or not digits.isdigit():
        raise ValueError(f"Malformed namespaced key: {namespaced_key}")
    if not digits.isascii() or (len(digits) > 1 and digits[0] == "0"):
        raise ValueError(f"Malformed namespaced key: {namespaced_key}")
    return int(digits), key
