# Overview: Service-layer operations for the append-only stock movement log.

from __future__ import annotations

from typing import Optional

from sqlalchemy import func

from ..context import RequestContext
from ..errors import ValidationError
from ..extensions import db
from ..models import ProductUnit, StockMovement
from ..models.inventory import MOVEMENT_SIGNS, UNIT_STATUS_IN_STOCK
from .permission_service import require_permission
from .tenant_service import require_product_in_tenant
"""
Stock Movement Log Invariants (authoritative)

- Append-only: rows are inserted here and nowhere else, never updated or deleted.
- Written inside the same DB transaction as the quantity or unit change it explains.
- quantity_delta carries the sign of the movement type; callers pass a positive quantity.
- For every product: sum(quantity_delta) == Product.quantity.
"""


def record_movement(
    *,
    tenant_id: int,
    product_id: int,
    movement_type: str,
    quantity: int,
    unit_id: Optional[int] = None,
    invoice_id: Optional[int] = None,
    request=None,
    performed_by_user_id: Optional[int] = None,
    assigned_to_user_id: Optional[int] = None,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
) -> StockMovement:
    """
    Append one movement to the current session (no commit).

    `request` may be a Request (its id and display number are snapshotted)
    or None.
    """
    if movement_type not in MOVEMENT_SIGNS:
        raise ValidationError(f"Unknown movement type: {movement_type}")
    if quantity is None or quantity <= 0:
        raise ValidationError("movement quantity must be > 0")

    movement = StockMovement(
        tenant_id=tenant_id,
        product_id=product_id,
        unit_id=unit_id,
        invoice_id=invoice_id,
        type=movement_type,
        quantity_delta=MOVEMENT_SIGNS[movement_type] * quantity,
        request_id=request.id if request is not None else None,
        request_number=request.display_number if request is not None else None,
        performed_by_user_id=performed_by_user_id,
        assigned_to_user_id=assigned_to_user_id,
        reason=reason,
        notes=notes,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def list_movements(
    ctx: RequestContext,
    *,
    product_id: Optional[int] = None,
    unit_id: Optional[int] = None,
    request_id: Optional[int] = None,
    movement_type: Optional[str] = None,
    limit: int = 200,
) -> list[StockMovement]:
    require_permission(ctx, "VIEW_INVENTORY")

    query = db.session.query(StockMovement).filter(StockMovement.tenant_id == ctx.tenant_id)
    if product_id is not None:
        query = query.filter(StockMovement.product_id == product_id)
    if unit_id is not None:
        query = query.filter(StockMovement.unit_id == unit_id)
    if request_id is not None:
        query = query.filter(StockMovement.request_id == request_id)
    if movement_type is not None:
        if movement_type not in MOVEMENT_SIGNS:
            raise ValidationError(f"Unknown movement type: {movement_type}")
        query = query.filter(StockMovement.type == movement_type)

    limit = max(1, min(int(limit), 1000))
    return query.order_by(StockMovement.id.desc()).limit(limit).all()


def ledger_sum(tenant_id: int, product_id: int) -> int:
    total = db.session.query(func.coalesce(func.sum(StockMovement.quantity_delta), 0)).filter(
        StockMovement.tenant_id == tenant_id,
        StockMovement.product_id == product_id,
    ).scalar()
    return int(total or 0)


def reconcile_product(ctx: RequestContext, product_id: int) -> dict:
    """
    Compare stored quantity with the movement log (and unit rows when unit-tracked).

    Returns {"quantity", "ledger_sum", "in_stock_units", "balanced"}.
    in_stock_units is None for quantity-tracked products.
    """
    require_permission(ctx, "VIEW_INVENTORY")
    product = require_product_in_tenant(product_id, ctx.tenant_id)

    total = ledger_sum(ctx.tenant_id, product.id)

    unit_count = db.session.query(func.count(ProductUnit.id)).filter(
        ProductUnit.product_id == product.id
    ).scalar()
    in_stock_units = None
    if unit_count:
        in_stock_units = db.session.query(func.count(ProductUnit.id)).filter(
            ProductUnit.product_id == product.id,
            ProductUnit.status == UNIT_STATUS_IN_STOCK,
        ).scalar()

    balanced = total == product.quantity and (in_stock_units is None or in_stock_units == product.quantity)
    return {
        "product_id": product.id,
        "quantity": product.quantity,
        "ledger_sum": total,
        "in_stock_units": in_stock_units,
        "balanced": balanced,
    }
