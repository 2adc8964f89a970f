# Overview: Product on-hand quantity and derived stock status.

"""
The only writer of Product.quantity and Product.status.

Both mutations are guarded single-statement UPDATEs so concurrent writers
cannot drive quantity below zero: the decrement only matches rows whose
quantity still covers the request, and zero matched rows means someone else
took the stock first. Status is recomputed from the fresh quantity in the
same transaction.
"""

from __future__ import annotations

from sqlalchemy import update

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product
from ..models.inventory import PRODUCT_STATUS_AVAILABLE, PRODUCT_STATUS_LOW, PRODUCT_STATUS_OUT


LOW_STOCK_MAX = 20


def derive_status(quantity: int) -> str:
    """0 -> out, 1..20 -> low, above 20 -> available."""
    if quantity > LOW_STOCK_MAX:
        return PRODUCT_STATUS_AVAILABLE
    if quantity > 0:
        return PRODUCT_STATUS_LOW
    return PRODUCT_STATUS_OUT


def _refresh_status(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    db.session.refresh(product, attribute_names=["quantity"])
    product.status = derive_status(product.quantity)
    return product


def increment(product_id: int, quantity: int) -> Product:
    if quantity <= 0:
        raise ValidationError("increment quantity must be > 0")

    result = db.session.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(quantity=Product.quantity + quantity)
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        raise NotFoundError(f"Product {product_id} not found")
    return _refresh_status(product_id)


def decrement(product_id: int, quantity: int) -> Product:
    """
    Remove `quantity` from on-hand stock.

    Raises InsufficientStockError when on-hand is below `quantity` at the
    moment the UPDATE runs.
    """
    if quantity <= 0:
        raise ValidationError("decrement quantity must be > 0")

    result = db.session.execute(
        update(Product)
        .where(Product.id == product_id, Product.quantity >= quantity)
        .values(quantity=Product.quantity - quantity)
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        available = db.session.query(Product.quantity).filter(Product.id == product_id).scalar()
        if available is None:
            raise NotFoundError(f"Product {product_id} not found")
        raise InsufficientStockError(
            f"insufficient stock for product {product_id}: requested {quantity}, available {available}",
            product_id=product_id,
            requested=quantity,
            available=available,
        )
    return _refresh_status(product_id)
