# Overview: Service-layer permission checks against a pluggable permission provider.

"""
Permission Checking with Multi-Tenant Context

WHY: Role-permission storage lives outside this system. Services only ask
"may this context do X?" and fail closed when the answer is no.

DESIGN PRINCIPLES:
- Fail closed: deny by default, require an explicit grant
- Checked before any transaction starts
- Denials are logged with tenant and actor for security monitoring
"""

from __future__ import annotations

from flask import current_app

from ..context import RequestContext
from ..errors import ForbiddenError, ValidationError
from ..extensions import get_collaborator
from ..permissions import get_role_permissions, validate_permission_code


class PermissionProvider:
    """Interface: answer whether a caller holds a permission code."""

    def has_permission(self, ctx: RequestContext, code: str) -> bool:
        raise NotImplementedError


class RolePermissionProvider(PermissionProvider):
    """
    Default provider backed by DEFAULT_ROLE_PERMISSIONS.

    `overrides` maps role name -> iterable of codes and replaces the default
    grant set for that role.
    """

    def __init__(self, overrides: dict | None = None):
        self._overrides = {role: frozenset(codes) for role, codes in (overrides or {}).items()}

    def has_permission(self, ctx: RequestContext, code: str) -> bool:
        if ctx.role in self._overrides:
            return code in self._overrides[ctx.role]
        return code in get_role_permissions(ctx.role)


def has_permission(ctx: RequestContext, code: str) -> bool:
    if not validate_permission_code(code):
        raise ValidationError(f"Unknown permission code: {code}")
    provider = get_collaborator("permissions")
    return bool(provider.has_permission(ctx, code))


def require_permission(ctx: RequestContext, code: str) -> None:
    """
    Raise ForbiddenError unless ctx holds `code`.

    Callers invoke this before opening a unit of work.
    """
    if has_permission(ctx, code):
        return
    current_app.logger.warning(
        "Permission denied: tenant=%s actor=%s role=%s permission=%s",
        ctx.tenant_id, ctx.actor_id, ctx.role, code,
    )
    raise ForbiddenError(f"Permission denied: {code}", required_permission=code)


def can_manage_request(ctx: RequestContext, request) -> bool:
    """Owners may always touch their own request; others need MANAGE_REQUESTS."""
    if request.requester_user_id == ctx.actor_id or request.created_by_user_id == ctx.actor_id:
        return True
    return has_permission(ctx, "MANAGE_REQUESTS")


def require_request_access(ctx: RequestContext, request) -> None:
    if not can_manage_request(ctx, request):
        raise ForbiddenError("Forbidden: request belongs to another user")
