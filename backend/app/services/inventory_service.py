# Overview: Service-layer operations for the product catalogue, stock intake and write-offs.

from __future__ import annotations

from typing import Optional

from ..context import RequestContext
from ..errors import ConflictError, ValidationError
from ..extensions import db
from ..models import Product, ProductInvoice, ProductUnit
from ..models.inventory import MOVEMENT_IN, UNIT_STATUS_IN_STOCK
from ..schemas import ReceiveStockCommand, WriteOffCommand
from . import allocation_service, quantity_ledger, unit_registry
from .concurrency import ConstraintConflict, UnitOfWork, run_with_retry
from .movement_service import record_movement
from .permission_service import require_permission
from .tenant_service import require_product_in_tenant
"""
Inventory Invariants (authoritative)

- Product.quantity is stored, and always equals sum(StockMovement.quantity_delta)
  for the product; every change here writes both in one transaction.
- A product is either unit-tracked (owns ProductUnit rows) or quantity-tracked.
  Intake cannot mix the two for the same product, and a product only becomes
  unit-tracked while no untracked stock is on hand or held by open requests
  (those lines must stay restorable as quantities).
- Unit-tracked on-hand equals the number of IN_STOCK units.
- Write-offs (LOST / SCRAP) apply to quantity-tracked stock; units leave
  stock through request allocation or the unit registry scan operations.
"""


def create_product(
    ctx: RequestContext,
    *,
    sku: str,
    name: str,
    description: Optional[str] = None,
) -> Product:
    """Create an empty product (quantity 0, status out)."""
    require_permission(ctx, "MANAGE_PRODUCTS")
    sku = (sku or "").strip()
    name = (name or "").strip()
    if not sku:
        raise ValidationError("sku is required")
    if not name:
        raise ValidationError("name is required")
    if len(sku) > 64:
        raise ValidationError("sku exceeds max length 64")

    def _op() -> Product:
        exists = db.session.query(Product.id).filter_by(tenant_id=ctx.tenant_id, sku=sku).first()
        if exists:
            raise ConflictError(f"SKU already exists: {sku}")
        product = Product(
            tenant_id=ctx.tenant_id,
            sku=sku,
            name=name,
            description=description,
            quantity=0,
            status=quantity_ledger.derive_status(0),
        )
        db.session.add(product)
        return product

    try:
        return UnitOfWork("create_product").add(_op).run()
    except ConstraintConflict as exc:
        raise ConflictError(f"SKU already exists: {sku}") from exc


def list_products(ctx: RequestContext, *, status: Optional[str] = None) -> list[Product]:
    require_permission(ctx, "VIEW_INVENTORY")
    query = db.session.query(Product).filter(Product.tenant_id == ctx.tenant_id)
    if status is not None:
        query = query.filter(Product.status == status)
    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def get_product_summary(ctx: RequestContext, product_id: int) -> dict:
    require_permission(ctx, "VIEW_INVENTORY")
    product = require_product_in_tenant(product_id, ctx.tenant_id)

    unit_tracked = unit_registry.is_unit_tracked(product.id)
    summary = product.to_dict()
    summary["unit_tracked"] = unit_tracked
    if unit_tracked:
        summary["units_in_stock"] = db.session.query(ProductUnit).filter(
            ProductUnit.product_id == product.id,
            ProductUnit.status == UNIT_STATUS_IN_STOCK,
        ).count()
        summary["units_total"] = db.session.query(ProductUnit).filter(
            ProductUnit.product_id == product.id,
        ).count()
    return summary


def receive_stock(ctx: RequestContext, command: ReceiveStockCommand) -> dict:
    """
    Register an intake invoice and bring stock in.

    Creates one ProductInvoice, (for unit-tracked intake) one IN_STOCK unit
    per item, increments quantity and writes a single IN movement, all in
    one transaction.
    """
    require_permission(ctx, "RECEIVE_INVENTORY")

    def _op() -> dict:
        product = require_product_in_tenant(command.product_id, ctx.tenant_id, lock=True)
        already_unit_tracked = unit_registry.is_unit_tracked(product.id)

        if already_unit_tracked and not command.unit_tracked:
            raise ValidationError("product is unit-tracked; receive it with unit_tracked=true")
        if command.unit_tracked and not already_unit_tracked:
            if product.quantity > 0:
                raise ValidationError("product already holds untracked stock; cannot switch to unit tracking")
            held = allocation_service.held_quantity(ctx.tenant_id, product.id)
            if held:
                raise ConflictError(
                    "requests still hold untracked stock of this product; cannot switch to unit tracking",
                    product_id=product.id,
                    held_quantity=held,
                )

        invoice = ProductInvoice(
            tenant_id=ctx.tenant_id,
            product_id=product.id,
            invoice_number=command.invoice_number,
            issued_at=command.issued_at,
            quantity=command.quantity,
            notes=command.notes,
            request_id=command.request_id,
            received_by_user_id=ctx.actor_id,
        )
        db.session.add(invoice)
        db.session.flush()

        units = []
        if command.unit_tracked:
            units = unit_registry.register_units(
                tenant_id=ctx.tenant_id,
                product_id=product.id,
                invoice_id=invoice.id,
                count=command.quantity,
                serial_number=command.serial_number,
                part_number=command.part_number,
                asset_tag=command.asset_tag,
            )

        quantity_ledger.increment(product.id, command.quantity)
        movement = record_movement(
            tenant_id=ctx.tenant_id,
            product_id=product.id,
            movement_type=MOVEMENT_IN,
            quantity=command.quantity,
            invoice_id=invoice.id,
            performed_by_user_id=ctx.actor_id,
            reason=f"Invoice {command.invoice_number}",
            notes=command.notes,
        )
        return {
            "product": product,
            "invoice": invoice,
            "units": units,
            "movement": movement,
        }

    try:
        return run_with_retry(lambda: UnitOfWork("receive_stock").add(_op).run())
    except ConstraintConflict as exc:
        raise ConflictError("a unit with the same serial number, part number or asset tag already exists") from exc


def write_off_stock(ctx: RequestContext, command: WriteOffCommand) -> dict:
    """Remove lost or scrapped quantity-tracked stock with a LOST/SCRAP movement."""
    require_permission(ctx, "ADJUST_INVENTORY")

    def _op() -> dict:
        product = require_product_in_tenant(command.product_id, ctx.tenant_id, lock=True)
        if unit_registry.is_unit_tracked(product.id):
            raise ValidationError("write-off applies to quantity-tracked products only")

        quantity_ledger.decrement(product.id, command.quantity)
        movement = record_movement(
            tenant_id=ctx.tenant_id,
            product_id=product.id,
            movement_type=command.movement_type,
            quantity=command.quantity,
            performed_by_user_id=ctx.actor_id,
            reason=command.reason,
        )
        return {"product": product, "movement": movement}

    return run_with_retry(lambda: UnitOfWork("write_off_stock").add(_op).run())
