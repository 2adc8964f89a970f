from __future__ import annotations

from sqlalchemy import event

from ..errors import ImmutableRecordError
from ..extensions import db
from app.time_utils import to_utc_z


PRODUCT_STATUS_OUT = "out"
PRODUCT_STATUS_LOW = "low"
PRODUCT_STATUS_AVAILABLE = "available"

UNIT_STATUS_IN_STOCK = "IN_STOCK"
UNIT_STATUS_ACQUIRED = "ACQUIRED"
UNIT_STATUS_IN_REPAIR = "IN_REPAIR"

MOVEMENT_IN = "IN"
MOVEMENT_OUT = "OUT"
MOVEMENT_RETURN = "RETURN"
MOVEMENT_LOST = "LOST"
MOVEMENT_SCRAP = "SCRAP"
MOVEMENT_REPAIR_OUT = "REPAIR_OUT"
MOVEMENT_REPAIR_IN = "REPAIR_IN"

# Sign applied to the (positive) moved quantity when recording quantity_delta
MOVEMENT_SIGNS = {
    MOVEMENT_IN: 1,
    MOVEMENT_RETURN: 1,
    MOVEMENT_REPAIR_IN: 1,
    MOVEMENT_OUT: -1,
    MOVEMENT_LOST: -1,
    MOVEMENT_SCRAP: -1,
    MOVEMENT_REPAIR_OUT: -1,
}


class Product(db.Model):
    """
    Product master data with on-hand quantity.

    MULTI-TENANT: SKUs are unique within a tenant.

    QUANTITY: `quantity` and `status` are written only by the quantity
    ledger service, always in the same transaction as the stock movement
    that explains the change. `status` is derived, never set by callers.

    TRACKING MODE: a product with at least one ProductUnit row is
    unit-tracked; otherwise it is quantity-tracked.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "sku", name="uq_products_tenant_sku"),
        db.CheckConstraint("quantity >= 0", name="ck_products_quantity_non_negative"),
        db.Index("ix_products_tenant_name", "tenant_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default=PRODUCT_STATUS_OUT)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    tenant = db.relationship("Tenant", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} quantity={self.quantity} tenant_id={self.tenant_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "quantity": self.quantity,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductInvoice(db.Model):
    """Intake document: every received unit and IN movement points back at one."""
    __tablename__ = "product_invoices"
    __table_args__ = (
        db.Index("ix_product_invoices_tenant_product", "tenant_id", "product_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    invoice_number = db.Column(db.String(64), nullable=False)
    issued_at = db.Column(db.DateTime(timezone=True), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    # Intake may be linked to the procurement request that triggered it
    request_id = db.Column(db.Integer, nullable=True, index=True)

    received_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "product_id": self.product_id,
            "invoice_number": self.invoice_number,
            "issued_at": to_utc_z(self.issued_at),
            "quantity": self.quantity,
            "notes": self.notes,
            "request_id": self.request_id,
            "received_by_user_id": self.received_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class ProductUnit(db.Model):
    """
    One serialized physical instance of a product.

    INVARIANT: status flips IN_STOCK -> ACQUIRED and back only through
    guarded UPDATEs in the unit registry, each paired with an OUT or RETURN
    movement in the same transaction. IN_STOCK -> IN_REPAIR and back pair
    with REPAIR_OUT / REPAIR_IN the same way.

    FIFO: allocation without an explicit code takes the oldest IN_STOCK
    unit ordered by (created_at, id).
    """
    __tablename__ = "product_units"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "code", name="uq_product_units_tenant_code"),
        db.UniqueConstraint("tenant_id", "serial_number", name="uq_product_units_tenant_serial"),
        db.UniqueConstraint("tenant_id", "part_number", name="uq_product_units_tenant_part"),
        db.UniqueConstraint("tenant_id", "asset_tag", name="uq_product_units_tenant_asset_tag"),
        db.Index("ix_product_units_product_status", "product_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    invoice_id = db.Column(db.Integer, db.ForeignKey("product_invoices.id"), nullable=True, index=True)

    code = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=UNIT_STATUS_IN_STOCK)

    # NULLs do not collide under the unique constraints above
    serial_number = db.Column(db.String(128), nullable=True)
    part_number = db.Column(db.String(128), nullable=True)
    asset_tag = db.Column(db.String(128), nullable=True)

    acquired_at = db.Column(db.DateTime(timezone=True), nullable=True)
    acquired_by_user_id = db.Column(db.Integer, nullable=True)
    assigned_to_user_id = db.Column(db.Integer, nullable=True)
    acquired_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("units", lazy="dynamic"))
    invoice = db.relationship("ProductInvoice")

    def __repr__(self) -> str:
        return f"<ProductUnit id={self.id} code={self.code!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "product_id": self.product_id,
            "invoice_id": self.invoice_id,
            "code": self.code,
            "status": self.status,
            "serial_number": self.serial_number,
            "part_number": self.part_number,
            "asset_tag": self.asset_tag,
            "acquired_at": to_utc_z(self.acquired_at),
            "acquired_by_user_id": self.acquired_by_user_id,
            "assigned_to_user_id": self.assigned_to_user_id,
            "acquired_reason": self.acquired_reason,
            "created_at": to_utc_z(self.created_at),
        }


class StockMovement(db.Model):
    """
    Append-only stock movement log.

    INVARIANTS:
    - Rows are never updated or deleted (enforced by ORM listeners below).
    - quantity_delta is signed: IN/RETURN/REPAIR_IN positive, the rest negative.
    - sum(quantity_delta) per product equals Product.quantity.
    - request_id is a plain column so history survives request deletion;
      request_number snapshots the display number at write time.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_tenant_product", "tenant_id", "product_id", "occurred_at"),
        db.Index("ix_stock_movements_unit", "unit_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    unit_id = db.Column(db.Integer, db.ForeignKey("product_units.id"), nullable=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("product_invoices.id"), nullable=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    quantity_delta = db.Column(db.Integer, nullable=False)

    request_id = db.Column(db.Integer, nullable=True, index=True)
    request_number = db.Column(db.String(32), nullable=True)

    performed_by_user_id = db.Column(db.Integer, nullable=True)
    assigned_to_user_id = db.Column(db.Integer, nullable=True)
    reason = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    occurred_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<StockMovement id={self.id} type={self.type} delta={self.quantity_delta} product_id={self.product_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "product_id": self.product_id,
            "unit_id": self.unit_id,
            "invoice_id": self.invoice_id,
            "type": self.type,
            "quantity_delta": self.quantity_delta,
            "request_id": self.request_id,
            "request_number": self.request_number,
            "performed_by_user_id": self.performed_by_user_id,
            "assigned_to_user_id": self.assigned_to_user_id,
            "reason": self.reason,
            "notes": self.notes,
            "occurred_at": to_utc_z(self.occurred_at),
        }


@event.listens_for(StockMovement, "before_update")
def _prevent_movement_update(mapper, connection, target):
    raise ImmutableRecordError(f"StockMovement {target.id} is append-only and cannot be modified")


@event.listens_for(StockMovement, "before_delete")
def _prevent_movement_delete(mapper, connection, target):
    raise ImmutableRecordError(f"StockMovement {target.id} is append-only and cannot be deleted")
