# Overview: Pytest coverage for serialized unit intake, FIFO selection and guarded custody.

import pytest
from sqlalchemy import update

from app.errors import ConflictError, ForbiddenError, NotFoundError, UnitUnavailableError, ValidationError
from app.models import Product, ProductUnit, StockMovement
from app.models.inventory import (
    MOVEMENT_OUT,
    MOVEMENT_REPAIR_IN,
    MOVEMENT_REPAIR_OUT,
    MOVEMENT_RETURN,
    UNIT_STATUS_ACQUIRED,
    UNIT_STATUS_IN_REPAIR,
    UNIT_STATUS_IN_STOCK,
)
from app.schemas import ReceiveStockCommand
from app.services import inventory_service, movement_service, unit_registry, workflow_service


class TestUnitIntake:

    def test_unit_tracked_intake_creates_one_unit_per_item(self, db_session, stock_product):
        product = stock_product(3, unit_tracked=True)

        units = db_session.query(ProductUnit).filter_by(product_id=product.id).all()
        assert len(units) == 3
        assert all(u.status == UNIT_STATUS_IN_STOCK for u in units)
        assert len({u.code for u in units}) == 3
        assert unit_registry.is_unit_tracked(product.id)

    def test_quantity_tracked_product_has_no_units(self, db_session, stock_product):
        product = stock_product(3)
        assert not unit_registry.is_unit_tracked(product.id)

    def test_serial_number_requires_single_unit(self, db_session):
        with pytest.raises(ValidationError):
            ReceiveStockCommand(
                product_id=1, quantity=2, invoice_number="INV-1", unit_tracked=True, serial_number="SN-1",
            )

    def test_duplicate_serial_is_conflict(self, db_session, stock_product, admin_ctx):
        product = stock_product(0)
        command = ReceiveStockCommand(
            product_id=product.id, quantity=1, invoice_number="INV-1", unit_tracked=True, serial_number="SN-1",
        )
        inventory_service.receive_stock(admin_ctx, command)

        with pytest.raises(ConflictError):
            inventory_service.receive_stock(admin_ctx, command)

        assert db_session.get(Product, product.id).quantity == 1

    def test_cannot_switch_tracking_mode(self, db_session, stock_product, admin_ctx):
        quantity_product = stock_product(2)
        with pytest.raises(ValidationError):
            inventory_service.receive_stock(admin_ctx, ReceiveStockCommand(
                product_id=quantity_product.id, quantity=1, invoice_number="INV-9", unit_tracked=True,
            ))

        unit_product = stock_product(2, unit_tracked=True)
        with pytest.raises(ValidationError):
            inventory_service.receive_stock(admin_ctx, ReceiveStockCommand(
                product_id=unit_product.id, quantity=1, invoice_number="INV-10",
            ))


class TestAcquireRelease:

    def test_oldest_in_stock_is_fifo(self, db_session, stock_product, admin_ctx):
        product = stock_product(3, unit_tracked=True)
        first = (
            db_session.query(ProductUnit)
            .filter_by(product_id=product.id)
            .order_by(ProductUnit.id.asc())
            .first()
        )

        picked = unit_registry.oldest_in_stock(tenant_id=admin_ctx.tenant_id, product_id=product.id)
        assert picked.id == first.id

    def test_acquire_marks_unit_and_writes_out_movement(self, db_session, stock_product, admin_ctx):
        product = stock_product(1, unit_tracked=True)
        unit = unit_registry.oldest_in_stock(tenant_id=admin_ctx.tenant_id, product_id=product.id)

        movement = unit_registry.acquire(admin_ctx, unit, assigned_to_user_id=7, reason="test")
        db_session.commit()

        unit = db_session.get(ProductUnit, unit.id)
        assert unit.status == UNIT_STATUS_ACQUIRED
        assert unit.assigned_to_user_id == 7
        assert unit.acquired_by_user_id == admin_ctx.actor_id
        assert unit.acquired_at is not None
        assert movement.type == MOVEMENT_OUT
        assert movement.unit_id == unit.id
        assert movement.quantity_delta == -1

    def test_acquire_loses_race(self, db_session, stock_product, admin_ctx):
        """A unit taken by someone else after we read it is unavailable."""
        product = stock_product(1, unit_tracked=True)
        stale = unit_registry.oldest_in_stock(tenant_id=admin_ctx.tenant_id, product_id=product.id)

        db_session.execute(
            update(ProductUnit)
            .where(ProductUnit.id == stale.id)
            .values(status=UNIT_STATUS_ACQUIRED)
            .execution_options(synchronize_session=False)
        )

        with pytest.raises(UnitUnavailableError):
            unit_registry.acquire(admin_ctx, stale)
        db_session.rollback()

    def test_release_clears_custody(self, db_session, stock_product, admin_ctx):
        product = stock_product(1, unit_tracked=True)
        unit = unit_registry.oldest_in_stock(tenant_id=admin_ctx.tenant_id, product_id=product.id)
        unit_registry.acquire(admin_ctx, unit, assigned_to_user_id=7)

        movement = unit_registry.release(admin_ctx, unit)
        db_session.commit()

        unit = db_session.get(ProductUnit, unit.id)
        assert unit.status == UNIT_STATUS_IN_STOCK
        assert unit.assigned_to_user_id is None
        assert unit.acquired_at is None
        assert movement.type == MOVEMENT_RETURN

    def test_release_of_in_stock_unit_fails(self, db_session, stock_product, admin_ctx):
        product = stock_product(1, unit_tracked=True)
        unit = unit_registry.oldest_in_stock(tenant_id=admin_ctx.tenant_id, product_id=product.id)

        with pytest.raises(UnitUnavailableError):
            unit_registry.release(admin_ctx, unit)
        db_session.rollback()

        assert db_session.query(StockMovement).filter_by(type=MOVEMENT_RETURN).count() == 0

    def test_list_available_units_excludes_acquired(self, db_session, stock_product, admin_ctx):
        product = stock_product(2, unit_tracked=True)
        unit = unit_registry.oldest_in_stock(tenant_id=admin_ctx.tenant_id, product_id=product.id)
        unit_registry.acquire(admin_ctx, unit)
        db_session.commit()

        available = unit_registry.list_available_units(admin_ctx, product.id)
        assert len(available) == 1
        assert available[0].id != unit.id


def _first_unit(ctx, product):
    return unit_registry.oldest_in_stock(tenant_id=ctx.tenant_id, product_id=product.id)


class TestScanOperations:

    def test_lookup_by_code(self, db_session, stock_product, admin_ctx):
        product = stock_product(1, unit_tracked=True)
        unit = _first_unit(admin_ctx, product)

        result = unit_registry.lookup_unit(admin_ctx, f"  {unit.code} ")

        assert result["unit"].id == unit.id
        assert result["product"].id == product.id
        assert result["held_by_request"] is None

    def test_lookup_unknown_code(self, db_session, admin_ctx):
        with pytest.raises(NotFoundError):
            unit_registry.lookup_unit(admin_ctx, "no-such-unit")

    def test_lookup_is_tenant_scoped(self, db_session, stock_product, admin_ctx, admin_ctx_b):
        product = stock_product(1, unit_tracked=True)
        unit = _first_unit(admin_ctx, product)

        with pytest.raises(NotFoundError):
            unit_registry.lookup_unit(admin_ctx_b, unit.code)

    def test_acquire_by_code(self, db_session, stock_product, admin_ctx):
        product = stock_product(2, unit_tracked=True)
        unit = _first_unit(admin_ctx, product)

        result = unit_registry.acquire_unit_by_code(admin_ctx, unit.code, assigned_to_user_id=9, reason="field kit")

        assert result["unit"].status == UNIT_STATUS_ACQUIRED
        assert result["unit"].assigned_to_user_id == 9
        assert result["movement"].type == MOVEMENT_OUT
        assert result["movement"].request_id is None
        assert db_session.get(Product, product.id).quantity == 1
        assert movement_service.reconcile_product(admin_ctx, product.id)["balanced"] is True

    def test_acquire_twice_is_unavailable(self, db_session, stock_product, admin_ctx):
        product = stock_product(1, unit_tracked=True)
        unit = _first_unit(admin_ctx, product)
        unit_registry.acquire_unit_by_code(admin_ctx, unit.code)

        with pytest.raises(UnitUnavailableError):
            unit_registry.acquire_unit_by_code(admin_ctx, unit.code)

        assert db_session.query(StockMovement).filter_by(unit_id=unit.id, type=MOVEMENT_OUT).count() == 1

    def test_return_by_code(self, db_session, stock_product, admin_ctx):
        product = stock_product(1, unit_tracked=True)
        unit = _first_unit(admin_ctx, product)
        unit_registry.acquire_unit_by_code(admin_ctx, unit.code, assigned_to_user_id=9)

        result = unit_registry.return_unit_by_code(admin_ctx, unit.code, reason="back from site")

        assert result["unit"].status == UNIT_STATUS_IN_STOCK
        assert result["unit"].assigned_to_user_id is None
        assert result["movement"].type == MOVEMENT_RETURN
        assert db_session.get(Product, product.id).quantity == 1

    def test_return_of_in_stock_unit_is_conflict(self, db_session, stock_product, admin_ctx):
        product = stock_product(1, unit_tracked=True)
        unit = _first_unit(admin_ctx, product)

        with pytest.raises(ConflictError):
            unit_registry.return_unit_by_code(admin_ctx, unit.code)

    def test_return_refused_for_unit_held_by_open_request(self, db_session, stock_product, make_request, admin_ctx):
        product = stock_product(1, unit_tracked=True)
        req = make_request([(product, 1)], submit=True)
        code = req.items[0].destination

        assert unit_registry.lookup_unit(admin_ctx, code)["held_by_request"].id == req.id
        with pytest.raises(ConflictError):
            unit_registry.return_unit_by_code(admin_ctx, code)

        # The request can still give the unit back itself
        workflow_service.reject(admin_ctx, req.id)
        assert db_session.get(Product, product.id).quantity == 1

    def test_user_cannot_scan(self, db_session, stock_product, admin_ctx, user_ctx):
        product = stock_product(1, unit_tracked=True)
        unit = _first_unit(admin_ctx, product)

        with pytest.raises(ForbiddenError):
            unit_registry.acquire_unit_by_code(user_ctx, unit.code)


class TestRepair:

    def test_repair_round_trip(self, db_session, stock_product, admin_ctx):
        product = stock_product(2, unit_tracked=True)
        unit = _first_unit(admin_ctx, product)

        out = unit_registry.send_unit_to_repair(admin_ctx, unit.code, reason="cracked screen")
        assert out["unit"].status == UNIT_STATUS_IN_REPAIR
        assert out["movement"].type == MOVEMENT_REPAIR_OUT
        assert out["movement"].quantity_delta == -1
        assert db_session.get(Product, product.id).quantity == 1
        assert unit.id not in [u.id for u in unit_registry.list_available_units(admin_ctx, product.id)]
        assert movement_service.reconcile_product(admin_ctx, product.id)["balanced"] is True

        back = unit_registry.receive_unit_from_repair(admin_ctx, unit.code)
        assert back["unit"].status == UNIT_STATUS_IN_STOCK
        assert back["movement"].type == MOVEMENT_REPAIR_IN
        assert back["movement"].quantity_delta == 1
        assert db_session.get(Product, product.id).quantity == 2
        assert movement_service.reconcile_product(admin_ctx, product.id)["balanced"] is True

    def test_unit_in_repair_cannot_be_allocated(self, db_session, stock_product, make_request, admin_ctx):
        product = stock_product(1, unit_tracked=True)
        unit = _first_unit(admin_ctx, product)
        unit_registry.send_unit_to_repair(admin_ctx, unit.code)

        with pytest.raises(UnitUnavailableError):
            make_request([(product, 1, unit.code)], submit=True)

    def test_acquired_unit_cannot_go_to_repair(self, db_session, stock_product, admin_ctx):
        product = stock_product(1, unit_tracked=True)
        unit = _first_unit(admin_ctx, product)
        unit_registry.acquire_unit_by_code(admin_ctx, unit.code)

        with pytest.raises(ConflictError):
            unit_registry.send_unit_to_repair(admin_ctx, unit.code)

    def test_repair_in_requires_unit_in_repair(self, db_session, stock_product, admin_ctx):
        product = stock_product(1, unit_tracked=True)
        unit = _first_unit(admin_ctx, product)

        with pytest.raises(ConflictError):
            unit_registry.receive_unit_from_repair(admin_ctx, unit.code)
