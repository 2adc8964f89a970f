# Overview: Allocate and restore stock for request lines; all-or-nothing line replacement.

"""
Allocation Engine

Every function here runs inside the caller's UnitOfWork and never commits.
Any exception aborts the caller's transaction, which undoes every unit flip,
quantity change and movement written so far. Domain errors propagate
unchanged and are never retried.

Tracking modes:
- unit-tracked: the product owns ProductUnit rows; each line is exactly one
  unit, recorded in RequestItem.destination by its code.
- quantity-tracked: no units; the line quantity is drawn from Product.quantity.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from flask import current_app
from sqlalchemy import func

from ..context import RequestContext
from ..errors import UnitUnavailableError, ValidationError
from ..extensions import db
from ..models import Request, RequestItem
from ..models.inventory import MOVEMENT_OUT, MOVEMENT_RETURN, UNIT_STATUS_ACQUIRED, UNIT_STATUS_IN_STOCK
from ..models.requests import REQUEST_STATUS_FULFILLED
from ..schemas import ItemSpec
from . import quantity_ledger, unit_registry
from .movement_service import record_movement
from .tenant_service import require_product_in_tenant, require_products_in_tenant


@dataclass(frozen=True)
class AllocationResult:
    product_id: int
    quantity: int
    unit_code: Optional[str]
    movement_id: int


def allocate(ctx: RequestContext, request: Request, item: RequestItem) -> AllocationResult:
    """
    Take stock for one line.

    Unit-tracked: the requested unit code (or the oldest IN_STOCK unit when
    none is given) is acquired and its code written back to item.destination.
    Quantity-tracked: on-hand is reduced by item.quantity.
    """
    product = require_product_in_tenant(item.product_id, ctx.tenant_id)

    if unit_registry.is_unit_tracked(product.id):
        if item.quantity != 1:
            raise ValidationError("quantity must be 1 for unit-tracked product", product_id=product.id)

        if item.destination:
            unit = unit_registry.find_unit(
                tenant_id=ctx.tenant_id,
                product_id=product.id,
                code=item.destination,
            )
            if unit is None or unit.status != UNIT_STATUS_IN_STOCK:
                raise UnitUnavailableError(
                    f"unit {item.destination} is not available", unit_code=item.destination
                )
        else:
            unit = unit_registry.oldest_in_stock(tenant_id=ctx.tenant_id, product_id=product.id)
            if unit is None:
                raise UnitUnavailableError(
                    f"no unit in stock for product {product.id}", product_id=product.id
                )

        movement = unit_registry.acquire(
            ctx,
            unit,
            request=request,
            assigned_to_user_id=request.requester_user_id,
            reason=f"Request {request.display_number}",
        )
        quantity_ledger.decrement(product.id, 1)
        item.destination = unit.code
        current_app.logger.debug(
            "Allocated unit %s of product %s to request %s", unit.code, product.id, request.display_number
        )
        return AllocationResult(product.id, 1, unit.code, movement.id)

    quantity_ledger.decrement(product.id, item.quantity)
    movement = record_movement(
        tenant_id=ctx.tenant_id,
        product_id=product.id,
        movement_type=MOVEMENT_OUT,
        quantity=item.quantity,
        request=request,
        performed_by_user_id=ctx.actor_id,
        assigned_to_user_id=request.requester_user_id,
        reason=f"Request {request.display_number}",
    )
    current_app.logger.debug(
        "Allocated %d of product %s to request %s", item.quantity, product.id, request.display_number
    )
    return AllocationResult(product.id, item.quantity, None, movement.id)


def restore(ctx: RequestContext, request: Request, item: RequestItem) -> AllocationResult:
    """Give back the stock a line holds: exact inverse of allocate()."""
    product = require_product_in_tenant(item.product_id, ctx.tenant_id)

    if unit_registry.is_unit_tracked(product.id):
        unit = None
        if item.destination:
            unit = unit_registry.find_unit(
                tenant_id=ctx.tenant_id,
                product_id=product.id,
                code=item.destination,
            )
        if unit is None or unit.status != UNIT_STATUS_ACQUIRED:
            raise UnitUnavailableError(
                "cannot restore unit: not found or not acquired", unit_code=item.destination
            )
        movement = unit_registry.release(
            ctx, unit, request=request, reason=f"Request {request.display_number} reverted"
        )
        quantity_ledger.increment(product.id, 1)
        return AllocationResult(product.id, 1, unit.code, movement.id)

    quantity_ledger.increment(product.id, item.quantity)
    movement = record_movement(
        tenant_id=ctx.tenant_id,
        product_id=product.id,
        movement_type=MOVEMENT_RETURN,
        quantity=item.quantity,
        request=request,
        performed_by_user_id=ctx.actor_id,
        reason=f"Request {request.display_number} reverted",
    )
    return AllocationResult(product.id, item.quantity, None, movement.id)


def allocate_all(ctx: RequestContext, request: Request) -> list[AllocationResult]:
    """Allocate every line in stored order and mark the request as holding stock."""
    results = [allocate(ctx, request, item) for item in request.items]
    request.stock_allocated = True
    return results


def restore_all(ctx: RequestContext, request: Request) -> list[AllocationResult]:
    """Restore every line in stored order; no-op when the request holds nothing."""
    if not request.stock_allocated:
        return []
    results = [restore(ctx, request, item) for item in request.items]
    request.stock_allocated = False
    return results


def build_items(ctx: RequestContext, request: Request, specs: Iterable[ItemSpec]) -> list[RequestItem]:
    """
    Attach new lines built from specs to `request` in the given order.

    Every referenced product must exist in the tenant; unit-tracked products
    only accept quantity 1 even when nothing is allocated yet.
    """
    specs = list(specs)
    products = require_products_in_tenant([spec.product_id for spec in specs], ctx.tenant_id)

    items = []
    for position, spec in enumerate(specs):
        if spec.quantity != 1 and unit_registry.is_unit_tracked(spec.product_id):
            raise ValidationError(
                "quantity must be 1 for unit-tracked product", product_id=spec.product_id
            )
        item = RequestItem(
            product_id=products[spec.product_id].id,
            position=position,
            quantity=spec.quantity,
            destination=spec.destination,
            notes=spec.notes,
            unit=spec.unit,
            reference=spec.reference,
        )
        request.items.append(item)
        items.append(item)
    return items


def replace_items(ctx: RequestContext, request: Request, specs: Iterable[ItemSpec]) -> list[RequestItem]:
    """
    Swap a request's lines for new ones.

    When the request holds stock: restore every existing line in stored
    order, drop them, then allocate each new line in order, persisting the
    unit code or quantity actually assigned. The caller's UnitOfWork makes
    this all-or-nothing.
    """
    held = request.stock_allocated
    if held:
        restore_all(ctx, request)

    request.items.clear()
    db.session.flush()

    items = build_items(ctx, request, specs)
    db.session.flush()

    if held:
        allocate_all(ctx, request)
    return items


def held_quantity(tenant_id: int, product_id: int) -> int:
    """
    Quantity of a product held by requests that can still give it back.

    FULFILLED requests keep their allocation for good and are not counted.
    """
    value = (
        db.session.query(func.coalesce(func.sum(RequestItem.quantity), 0))
        .join(Request, RequestItem.request_id == Request.id)
        .filter(
            Request.tenant_id == tenant_id,
            Request.stock_allocated.is_(True),
            Request.status != REQUEST_STATUS_FULFILLED,
            RequestItem.product_id == product_id,
        )
        .scalar()
    )
    return int(value or 0)
