# clinic_core/common/scope.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from rest_framework.exceptions import ValidationError


@dataclass(frozen=True)
class Scope:
    tenant_id: UUID
    clinic_id: UUID


# request.headers lookups are case-insensitive
HDR_TENANT = "X-Tenant-Id"
HDR_CLINIC = "X-Clinic-Id"

MISSING_SCOPE_MSG = "Missing scope headers. Provide X-Tenant-Id and X-Clinic-Id."
INVALID_SCOPE_MSG = "Invalid scope headers. Provide valid UUIDs for X-Tenant-Id and X-Clinic-Id."


def _parse_uuid(value: str) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


def _get_header(request, name: str) -> Optional[str]:
    """
    request.headers is case-insensitive; fallback to META for pytest/client.
    """
    headers = getattr(request, "headers", None)
    if headers is not None:
        v = headers.get(name)
        if v:
            return v

    meta_key = "HTTP_" + name.upper().replace("-", "_")
    return request.META.get(meta_key)


def resolve_scope(request) -> Optional[Scope]:
    """
    Returns Scope if both headers are present and valid.
    Returns None if no scope headers are present at all.
    Raises ValidationError if only one is present or either is not a UUID.
    """
    tenant_raw = _get_header(request, HDR_TENANT)
    clinic_raw = _get_header(request, HDR_CLINIC)

    if not tenant_raw and not clinic_raw:
        return None

    if not tenant_raw or not clinic_raw:
        raise ValidationError({"detail": MISSING_SCOPE_MSG})

    tenant_id = _parse_uuid(tenant_raw)
    clinic_id = _parse_uuid(clinic_raw)
    if not tenant_id or not clinic_id:
        raise ValidationError({"detail": INVALID_SCOPE_MSG})

    return Scope(tenant_id=tenant_id, clinic_id=clinic_id)


def require_scope(request) -> Scope:
    """
    Resolve scope for a view and attach it to the request.

    Does NOT check membership; that belongs to the auth layer.
    """
    scope = resolve_scope(request)
    if scope is None:
        raise ValidationError({"detail": MISSING_SCOPE_MSG})

    request.scope = scope
    request.tenant_id = scope.tenant_id
    request.clinic_id = scope.clinic_id
    return scope
