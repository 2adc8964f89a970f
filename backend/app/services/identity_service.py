# Overview: Resolve the caller's RequestContext from an incoming HTTP request.

"""
Authentication and session issuance live outside this system. The default
resolver trusts headers set by the gateway in front of the API:

    X-Actor-Id                 required, integer
    X-Tenant-Id                required, integer
    X-Role                     optional, defaults to "user"
    X-Requesting-Service-Id    optional, integer

Deployments with a different identity source configure IDENTITY_RESOLVER
with any object exposing resolve(flask_request) -> RequestContext | None.
"""

from __future__ import annotations

from typing import Optional

from ..context import KNOWN_ROLES, ROLE_USER, RequestContext
from ..errors import ValidationError
from ..validation import coerce_int


class IdentityResolver:
    def resolve(self, flask_request) -> Optional[RequestContext]:
        raise NotImplementedError


class HeaderIdentityResolver(IdentityResolver):

    def resolve(self, flask_request) -> Optional[RequestContext]:
        headers = flask_request.headers
        actor = headers.get("X-Actor-Id")
        tenant = headers.get("X-Tenant-Id")
        if not actor or not tenant:
            return None

        role = (headers.get("X-Role") or ROLE_USER).strip().lower()
        if role not in KNOWN_ROLES:
            raise ValidationError(f"Unknown role: {role}")

        service = headers.get("X-Requesting-Service-Id")
        return RequestContext(
            actor_id=coerce_int(actor, "X-Actor-Id"),
            tenant_id=coerce_int(tenant, "X-Tenant-Id"),
            role=role,
            requesting_service_id=coerce_int(service, "X-Requesting-Service-Id") if service else None,
            ip_address=flask_request.headers.get("X-Forwarded-For", flask_request.remote_addr),
            user_agent=flask_request.headers.get("User-Agent"),
        )
