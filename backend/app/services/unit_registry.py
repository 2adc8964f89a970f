# Overview: Serialized product units; lookups, FIFO selection, guarded custody changes and scan operations.

from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy import update

from ..context import RequestContext
from ..errors import ConflictError, NotFoundError, UnitUnavailableError
from ..extensions import db
from ..models import ProductUnit, Request, RequestItem, StockMovement
from ..models.inventory import (
    MOVEMENT_OUT,
    MOVEMENT_REPAIR_IN,
    MOVEMENT_REPAIR_OUT,
    MOVEMENT_RETURN,
    UNIT_STATUS_ACQUIRED,
    UNIT_STATUS_IN_REPAIR,
    UNIT_STATUS_IN_STOCK,
)
from ..models.requests import REQUEST_STATUS_FULFILLED
from ..time_utils import utcnow
from . import quantity_ledger
from .concurrency import UnitOfWork, lock_for_update, run_with_retry
from .movement_service import record_movement
from .permission_service import require_permission


def is_unit_tracked(product_id: int) -> bool:
    """A product is unit-tracked as soon as it owns at least one unit row."""
    return db.session.query(
        db.session.query(ProductUnit.id).filter(ProductUnit.product_id == product_id).exists()
    ).scalar()


def find_unit(
    *,
    tenant_id: int,
    product_id: int,
    code: str,
    status: Optional[str] = None,
) -> Optional[ProductUnit]:
    query = db.session.query(ProductUnit).filter(
        ProductUnit.tenant_id == tenant_id,
        ProductUnit.product_id == product_id,
        ProductUnit.code == code,
    )
    if status is not None:
        query = query.filter(ProductUnit.status == status)
    return query.first()


def oldest_in_stock(*, tenant_id: int, product_id: int) -> Optional[ProductUnit]:
    """FIFO pick: oldest IN_STOCK unit by (created_at, id)."""
    return (
        db.session.query(ProductUnit)
        .filter(
            ProductUnit.tenant_id == tenant_id,
            ProductUnit.product_id == product_id,
            ProductUnit.status == UNIT_STATUS_IN_STOCK,
        )
        .order_by(ProductUnit.created_at.asc(), ProductUnit.id.asc())
        .first()
    )


def list_available_units(ctx: RequestContext, product_id: int) -> list[ProductUnit]:
    require_permission(ctx, "VIEW_INVENTORY")
    return (
        db.session.query(ProductUnit)
        .filter(
            ProductUnit.tenant_id == ctx.tenant_id,
            ProductUnit.product_id == product_id,
            ProductUnit.status == UNIT_STATUS_IN_STOCK,
        )
        .order_by(ProductUnit.created_at.asc(), ProductUnit.id.asc())
        .all()
    )


def acquire(
    ctx: RequestContext,
    unit: ProductUnit,
    *,
    request=None,
    assigned_to_user_id: Optional[int] = None,
    reason: Optional[str] = None,
) -> StockMovement:
    """
    Mark a unit ACQUIRED and write its OUT movement (no commit).

    The UPDATE only matches while the unit is still IN_STOCK; if a concurrent
    writer got there first nothing matches and UnitUnavailableError is raised.
    """
    now = utcnow()
    result = db.session.execute(
        update(ProductUnit)
        .where(ProductUnit.id == unit.id, ProductUnit.status == UNIT_STATUS_IN_STOCK)
        .values(
            status=UNIT_STATUS_ACQUIRED,
            acquired_at=now,
            acquired_by_user_id=ctx.actor_id,
            assigned_to_user_id=assigned_to_user_id,
            acquired_reason=reason,
        )
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        raise UnitUnavailableError(f"unit {unit.code} is not available", unit_code=unit.code)
    db.session.refresh(unit)

    return record_movement(
        tenant_id=unit.tenant_id,
        product_id=unit.product_id,
        movement_type=MOVEMENT_OUT,
        quantity=1,
        unit_id=unit.id,
        invoice_id=unit.invoice_id,
        request=request,
        performed_by_user_id=ctx.actor_id,
        assigned_to_user_id=assigned_to_user_id,
        reason=reason,
    )


def release(
    ctx: RequestContext,
    unit: ProductUnit,
    *,
    request=None,
    reason: Optional[str] = None,
) -> StockMovement:
    """Mark an ACQUIRED unit IN_STOCK again, clear custody, write RETURN (no commit)."""
    result = db.session.execute(
        update(ProductUnit)
        .where(ProductUnit.id == unit.id, ProductUnit.status == UNIT_STATUS_ACQUIRED)
        .values(
            status=UNIT_STATUS_IN_STOCK,
            acquired_at=None,
            acquired_by_user_id=None,
            assigned_to_user_id=None,
            acquired_reason=None,
        )
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        raise UnitUnavailableError(
            "cannot restore unit: not found or not acquired", unit_code=unit.code
        )
    db.session.refresh(unit)

    return record_movement(
        tenant_id=unit.tenant_id,
        product_id=unit.product_id,
        movement_type=MOVEMENT_RETURN,
        quantity=1,
        unit_id=unit.id,
        invoice_id=unit.invoice_id,
        request=request,
        performed_by_user_id=ctx.actor_id,
        reason=reason,
    )


def register_units(
    *,
    tenant_id: int,
    product_id: int,
    invoice_id: Optional[int],
    count: int,
    serial_number: Optional[str] = None,
    part_number: Optional[str] = None,
    asset_tag: Optional[str] = None,
) -> list[ProductUnit]:
    """Create `count` IN_STOCK units with generated codes (no commit)."""
    units = []
    for _ in range(count):
        unit = ProductUnit(
            tenant_id=tenant_id,
            product_id=product_id,
            invoice_id=invoice_id,
            code=str(uuid.uuid4()),
            status=UNIT_STATUS_IN_STOCK,
            serial_number=serial_number,
            part_number=part_number,
            asset_tag=asset_tag,
        )
        db.session.add(unit)
        units.append(unit)
    db.session.flush()
    return units


# =============================================================================
# Scan operations
# =============================================================================
#
# Standalone custody changes addressed by unit code (barcode / QR scan),
# outside any request. Each is one UnitOfWork pairing the guarded status
# UPDATE with its movement and the quantity change.

def _require_unit(tenant_id: int, code: str, *, lock: bool = False) -> ProductUnit:
    code = (code or "").strip()
    query = db.session.query(ProductUnit).filter(
        ProductUnit.tenant_id == tenant_id,
        ProductUnit.code == code,
    )
    if lock:
        query = lock_for_update(query)
    unit = query.first()
    if unit is None:
        raise NotFoundError(f"Unit {code} not found", unit_code=code)
    return unit


def _flip_status(unit: ProductUnit, from_status: str, to_status: str) -> None:
    result = db.session.execute(
        update(ProductUnit)
        .where(ProductUnit.id == unit.id, ProductUnit.status == from_status)
        .values(status=to_status)
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        raise UnitUnavailableError(
            f"unit {unit.code} is no longer {from_status}", unit_code=unit.code
        )
    db.session.refresh(unit)


def holding_request(unit: ProductUnit) -> Optional[Request]:
    """The open request whose allocation holds `unit`, if any."""
    return (
        db.session.query(Request)
        .join(RequestItem, RequestItem.request_id == Request.id)
        .filter(
            Request.tenant_id == unit.tenant_id,
            Request.stock_allocated.is_(True),
            Request.status != REQUEST_STATUS_FULFILLED,
            RequestItem.product_id == unit.product_id,
            RequestItem.destination == unit.code,
        )
        .first()
    )


def lookup_unit(ctx: RequestContext, code: str) -> dict:
    require_permission(ctx, "VIEW_INVENTORY")
    unit = _require_unit(ctx.tenant_id, code)
    holder = holding_request(unit)
    return {
        "unit": unit,
        "product": unit.product,
        "held_by_request": holder,
    }


def acquire_unit_by_code(
    ctx: RequestContext,
    code: str,
    *,
    assigned_to_user_id: Optional[int] = None,
    reason: Optional[str] = None,
) -> dict:
    """Hand an IN_STOCK unit out directly: ACQUIRED, OUT movement, quantity -1."""
    require_permission(ctx, "MANAGE_UNITS")

    def _op() -> dict:
        unit = _require_unit(ctx.tenant_id, code, lock=True)
        if unit.status != UNIT_STATUS_IN_STOCK:
            raise UnitUnavailableError(
                f"unit {unit.code} is not available", unit_code=unit.code, status=unit.status
            )
        movement = acquire(ctx, unit, assigned_to_user_id=assigned_to_user_id, reason=reason)
        product = quantity_ledger.decrement(unit.product_id, 1)
        return {"unit": unit, "product": product, "movement": movement}

    return run_with_retry(lambda: UnitOfWork("acquire_unit").add(_op).run())


def return_unit_by_code(ctx: RequestContext, code: str, *, reason: Optional[str] = None) -> dict:
    """
    Take an ACQUIRED unit back into stock: IN_STOCK, RETURN movement, quantity +1.

    Units held by an open request are refused; rejecting or editing that
    request is what gives them back.
    """
    require_permission(ctx, "MANAGE_UNITS")

    def _op() -> dict:
        unit = _require_unit(ctx.tenant_id, code, lock=True)
        if unit.status != UNIT_STATUS_ACQUIRED:
            raise ConflictError(
                f"unit {unit.code} is not acquired (cannot return)", unit_code=unit.code, status=unit.status
            )
        holder = holding_request(unit)
        if holder is not None:
            raise ConflictError(
                f"unit {unit.code} is held by request {holder.display_number}",
                unit_code=unit.code,
                request_id=holder.id,
            )
        movement = release(ctx, unit, reason=reason)
        product = quantity_ledger.increment(unit.product_id, 1)
        return {"unit": unit, "product": product, "movement": movement}

    return run_with_retry(lambda: UnitOfWork("return_unit").add(_op).run())


def send_unit_to_repair(ctx: RequestContext, code: str, *, reason: Optional[str] = None) -> dict:
    """IN_STOCK -> IN_REPAIR with a REPAIR_OUT movement; the unit leaves on-hand stock."""
    require_permission(ctx, "MANAGE_UNITS")

    def _op() -> dict:
        unit = _require_unit(ctx.tenant_id, code, lock=True)
        if unit.status != UNIT_STATUS_IN_STOCK:
            raise ConflictError(
                f"unit {unit.code} must be in stock to go to repair", unit_code=unit.code, status=unit.status
            )
        _flip_status(unit, UNIT_STATUS_IN_STOCK, UNIT_STATUS_IN_REPAIR)
        movement = record_movement(
            tenant_id=unit.tenant_id,
            product_id=unit.product_id,
            movement_type=MOVEMENT_REPAIR_OUT,
            quantity=1,
            unit_id=unit.id,
            invoice_id=unit.invoice_id,
            performed_by_user_id=ctx.actor_id,
            reason=reason,
        )
        product = quantity_ledger.decrement(unit.product_id, 1)
        return {"unit": unit, "product": product, "movement": movement}

    return run_with_retry(lambda: UnitOfWork("repair_out").add(_op).run())


def receive_unit_from_repair(ctx: RequestContext, code: str, *, reason: Optional[str] = None) -> dict:
    """IN_REPAIR -> IN_STOCK with a REPAIR_IN movement; the unit is on hand again."""
    require_permission(ctx, "MANAGE_UNITS")

    def _op() -> dict:
        unit = _require_unit(ctx.tenant_id, code, lock=True)
        if unit.status != UNIT_STATUS_IN_REPAIR:
            raise ConflictError(
                f"unit {unit.code} is not in repair", unit_code=unit.code, status=unit.status
            )
        _flip_status(unit, UNIT_STATUS_IN_REPAIR, UNIT_STATUS_IN_STOCK)
        movement = record_movement(
            tenant_id=unit.tenant_id,
            product_id=unit.product_id,
            movement_type=MOVEMENT_REPAIR_IN,
            quantity=1,
            unit_id=unit.id,
            invoice_id=unit.invoice_id,
            performed_by_user_id=ctx.actor_id,
            reason=reason,
        )
        product = quantity_ledger.increment(unit.product_id, 1)
        return {"unit": unit, "product": product, "movement": movement}

    return run_with_retry(lambda: UnitOfWork("repair_in").add(_op).run())
