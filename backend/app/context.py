# Overview: Caller identity passed explicitly as the first argument of every core operation.

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

ROLE_ADMIN = "admin"
ROLE_MANAGER = "manager"
ROLE_WAREHOUSE = "warehouse"
ROLE_USER = "user"

KNOWN_ROLES = (ROLE_ADMIN, ROLE_MANAGER, ROLE_WAREHOUSE, ROLE_USER)


@dataclass(frozen=True)
class RequestContext:
    """
    Who is acting, for which tenant.

    MULTI-TENANT: tenant_id scopes every query a service runs on behalf of
    this context. Nothing ever reads tenant or actor from ambient state.
    """
    actor_id: int
    tenant_id: int
    role: str = ROLE_USER
    requesting_service_id: Optional[int] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN
