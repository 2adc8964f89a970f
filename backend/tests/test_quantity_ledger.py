# Overview: Pytest coverage for on-hand quantity, stock status and the movement log.

"""
Quantity Ledger Tests

- Product.quantity never goes below zero
- status is derived from quantity: 0 out, 1..20 low, above 20 available
- every quantity change has a matching movement; the log is append-only
"""

import pytest
from app.errors import ImmutableRecordError, InsufficientStockError, ValidationError
from app.models import Product, StockMovement
from app.models.inventory import (
    MOVEMENT_IN,
    PRODUCT_STATUS_AVAILABLE,
    PRODUCT_STATUS_LOW,
    PRODUCT_STATUS_OUT,
)
from app.services import movement_service, quantity_ledger


class TestDeriveStatus:

    @pytest.mark.parametrize("quantity,expected", [
        (0, PRODUCT_STATUS_OUT),
        (1, PRODUCT_STATUS_LOW),
        (20, PRODUCT_STATUS_LOW),
        (21, PRODUCT_STATUS_AVAILABLE),
        (500, PRODUCT_STATUS_AVAILABLE),
    ])
    def test_thresholds(self, quantity, expected):
        assert quantity_ledger.derive_status(quantity) == expected


class TestIncrementDecrement:

    def test_new_product_is_out_of_stock(self, db_session, stock_product):
        product = stock_product(0)
        assert product.quantity == 0
        assert product.status == PRODUCT_STATUS_OUT

    def test_increment_updates_status(self, db_session, stock_product):
        product = stock_product(0)

        quantity_ledger.increment(product.id, 25)
        db_session.commit()

        product = db_session.get(Product, product.id)
        assert product.quantity == 25
        assert product.status == PRODUCT_STATUS_AVAILABLE

    def test_decrement_to_low_then_out(self, db_session, stock_product):
        product = stock_product(25)

        quantity_ledger.decrement(product.id, 10)
        assert db_session.get(Product, product.id).status == PRODUCT_STATUS_LOW

        quantity_ledger.decrement(product.id, 15)
        product = db_session.get(Product, product.id)
        assert product.quantity == 0
        assert product.status == PRODUCT_STATUS_OUT
        db_session.rollback()

    def test_decrement_beyond_on_hand_raises(self, db_session, stock_product):
        product = stock_product(3)

        with pytest.raises(InsufficientStockError) as exc_info:
            quantity_ledger.decrement(product.id, 4)

        assert exc_info.value.details["requested"] == 4
        assert exc_info.value.details["available"] == 3
        db_session.rollback()
        assert db_session.get(Product, product.id).quantity == 3

    def test_non_positive_amounts_rejected(self, db_session, stock_product):
        product = stock_product(3)
        with pytest.raises(ValidationError):
            quantity_ledger.increment(product.id, 0)
        with pytest.raises(ValidationError):
            quantity_ledger.decrement(product.id, -1)


class TestMovementLog:

    def test_intake_writes_in_movement(self, db_session, stock_product):
        product = stock_product(7)

        movements = db_session.query(StockMovement).filter_by(product_id=product.id).all()
        assert len(movements) == 1
        assert movements[0].type == MOVEMENT_IN
        assert movements[0].quantity_delta == 7

    def test_ledger_sum_matches_quantity(self, db_session, stock_product, admin_ctx):
        product = stock_product(7)

        result = movement_service.reconcile_product(admin_ctx, product.id)

        assert result["ledger_sum"] == 7
        assert result["quantity"] == 7
        assert result["in_stock_units"] is None
        assert result["balanced"] is True

    def test_movement_rows_cannot_be_modified(self, db_session, stock_product):
        product = stock_product(7)
        movement = db_session.query(StockMovement).filter_by(product_id=product.id).first()

        movement.notes = "edited"
        with pytest.raises(ImmutableRecordError):
            db_session.flush()
        db_session.rollback()

    def test_movement_rows_cannot_be_deleted(self, db_session, stock_product):
        product = stock_product(7)
        movement = db_session.query(StockMovement).filter_by(product_id=product.id).first()

        db_session.delete(movement)
        with pytest.raises(ImmutableRecordError):
            db_session.flush()
        db_session.rollback()

    def test_unknown_movement_type_rejected(self, db_session, stock_product, admin_ctx):
        product = stock_product(1)
        with pytest.raises(ValidationError):
            movement_service.record_movement(
                tenant_id=admin_ctx.tenant_id,
                product_id=product.id,
                movement_type="TELEPORT",
                quantity=1,
            )
