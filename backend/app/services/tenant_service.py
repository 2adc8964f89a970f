"""
Multi-Tenant Service: Tenant Validation and Scoping Helpers

WHY: Centralize tenant-scoped lookups for reuse across services, routes and
the CLI. Every core operation runs on behalf of a RequestContext whose
tenant_id scopes every query; entities from another tenant are reported as
not found.

SECURITY INVARIANTS:
1. IDs from client input are always resolved together with ctx.tenant_id
2. A row belonging to another tenant is indistinguishable from a missing row
3. Cross-tenant lookups are logged

USAGE:
    from app.services.tenant_service import require_product_in_tenant

    product = require_product_in_tenant(product_id, ctx.tenant_id)
"""

from __future__ import annotations

from flask import current_app

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product, Request, Tenant
from .concurrency import lock_for_update


def _log_cross_tenant_attempt(entity: str, entity_id: int, owner_tenant_id: int, tenant_id: int) -> None:
    current_app.logger.warning(
        "Cross-tenant access denied: %s %s belongs to tenant %s, requested from tenant %s",
        entity, entity_id, owner_tenant_id, tenant_id,
    )


def create_tenant(*, name: str, code: str | None = None) -> Tenant:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    if code and db.session.query(Tenant).filter_by(code=code).first():
        raise ConflictError(f"Tenant code already exists: {code}")
    tenant = Tenant(name=name, code=code, is_active=True)
    db.session.add(tenant)
    db.session.commit()
    return tenant


def list_tenants() -> list[Tenant]:
    return db.session.query(Tenant).order_by(Tenant.id).all()


def validate_tenant_active(tenant_id: int) -> Tenant:
    tenant = db.session.get(Tenant, tenant_id)
    if not tenant:
        raise NotFoundError("Tenant not found")
    if not tenant.is_active:
        raise ConflictError("Tenant is not active")
    return tenant


def require_product_in_tenant(product_id: int, tenant_id: int, *, lock: bool = False) -> Product:
    """
    Resolve a product inside the tenant.

    Raises NotFoundError if it does not exist or belongs to another tenant.
    """
    query = db.session.query(Product).filter(Product.id == product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()

    if not product:
        raise NotFoundError(f"Product {product_id} not found")

    if product.tenant_id != tenant_id:
        _log_cross_tenant_attempt("Product", product_id, product.tenant_id, tenant_id)
        raise NotFoundError(f"Product {product_id} not found")

    return product


def require_products_in_tenant(product_ids, tenant_id: int) -> dict[int, Product]:
    """
    Batch variant: every id must resolve inside the tenant.

    Returns a dict keyed by product id.
    """
    wanted = set(product_ids)
    if not wanted:
        return {}

    products = db.session.query(Product).filter(
        Product.id.in_(wanted),
        Product.tenant_id == tenant_id,
    ).all()
    found = {p.id: p for p in products}

    missing = sorted(wanted - set(found))
    if missing:
        raise NotFoundError(f"Product {missing[0]} not found", missing_product_ids=missing)

    return found


def require_request_in_tenant(request_id: int, tenant_id: int, *, lock: bool = False) -> Request:
    query = db.session.query(Request).filter(Request.id == request_id)
    if lock:
        query = lock_for_update(query)
    req = query.first()

    if not req:
        raise NotFoundError("Request not found")

    if req.tenant_id != tenant_id:
        _log_cross_tenant_attempt("Request", request_id, req.tenant_id, tenant_id)
        raise NotFoundError("Request not found")

    return req
