# Overview: Threaded coverage for sequence allocation and stock contention on a file-backed database.

"""
Concurrency tests.

Each worker runs in its own thread with its own app context (and therefore
its own session and connection) against a SQLite file, so writers really
contend for the database lock. Results and errors are collected under a
threading.Lock and checked after every thread has joined.
"""

import os
import threading

import pytest

from app import create_app
from app.context import ROLE_ADMIN, RequestContext
from app.errors import InsufficientStockError, UnitUnavailableError
from app.extensions import db
from app.models import Product, ProductUnit, Request, Tenant
from app.schemas import CreateRequestCommand, ItemSpec, ReceiveStockCommand
from app.services import inventory_service, movement_service, workflow_service


@pytest.fixture
def concurrent_app(tmp_path):
    db_path = os.path.join(str(tmp_path), "concurrency.db")
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{db_path}",
        'SEQUENCE_MAX_ATTEMPTS': 12,
        'SEQUENCE_RETRY_BACKOFF': 0.002,
    })

    with app.app_context():
        db.drop_all()
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.session.remove()
        db.engine.dispose()


@pytest.fixture
def seeded(concurrent_app):
    """Tenant, admin context and a product id; returns (ctx, product_id)."""
    with concurrent_app.app_context():
        tenant = Tenant(name="Concurrency Tenant", code="CONC", is_active=True)
        db.session.add(tenant)
        db.session.commit()
        ctx = RequestContext(actor_id=1, tenant_id=tenant.id, role=ROLE_ADMIN)
        product = inventory_service.create_product(ctx, sku="CONC-1", name="Contended Product")
        product_id = product.id
        db.session.remove()
    return ctx, product_id


def _run_threads(targets):
    threads = [threading.Thread(target=target) for target in targets]
    for t in threads:
        t.start()
    for t in threads:
        t.join()


def _receive(app, ctx, product_id, quantity, *, unit_tracked=False):
    with app.app_context():
        inventory_service.receive_stock(ctx, ReceiveStockCommand(
            product_id=product_id,
            quantity=quantity,
            invoice_number="INV-CONC",
            unit_tracked=unit_tracked,
        ))
        db.session.remove()


def _draft(app, ctx, product_id, quantity, destination=None):
    with app.app_context():
        command = CreateRequestCommand(
            items=(ItemSpec(product_id=product_id, quantity=quantity, destination=destination),),
            details={},
            submit=False,
        )
        request_id = workflow_service.create_request(ctx, command).id
        db.session.remove()
    return request_id


def _submit_all(app, ctx, request_ids):
    """Submit every request from its own thread; returns (successes, failures, errors)."""
    successes = []
    failures = []
    errors = []
    lock = threading.Lock()

    def worker(request_id):
        with app.app_context():
            try:
                workflow_service.submit(ctx, request_id)
                with lock:
                    successes.append(request_id)
            except (InsufficientStockError, UnitUnavailableError) as exc:
                with lock:
                    failures.append(exc)
            except Exception as exc:
                with lock:
                    errors.append(exc)
            finally:
                db.session.remove()

    _run_threads([lambda rid=rid: worker(rid) for rid in request_ids])
    return successes, failures, errors


class TestConcurrentCreation:

    def test_concurrent_creations_get_unique_increasing_sequences(self, concurrent_app, seeded):
        ctx, product_id = seeded
        workers = 8
        created = []
        errors = []
        lock = threading.Lock()

        def worker():
            with concurrent_app.app_context():
                try:
                    command = CreateRequestCommand(
                        items=(ItemSpec(product_id=product_id, quantity=1),),
                        details={},
                        submit=False,
                    )
                    request = workflow_service.create_request(ctx, command)
                    with lock:
                        created.append(request.display_number)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        _run_threads([worker] * workers)

        assert not errors
        assert len(created) == workers
        assert len(set(created)) == workers

        with concurrent_app.app_context():
            sequences = sorted(r.sequence for r in db.session.query(Request).all())
            db.session.remove()
        assert sequences == list(range(1, workers + 1))


class TestConcurrentAllocation:

    def test_same_unit_is_acquired_exactly_once(self, concurrent_app, seeded):
        ctx, product_id = seeded
        _receive(concurrent_app, ctx, product_id, 1, unit_tracked=True)
        with concurrent_app.app_context():
            code = db.session.query(ProductUnit).filter_by(product_id=product_id).one().code
            db.session.remove()
        request_ids = [_draft(concurrent_app, ctx, product_id, 1, destination=code) for _ in range(2)]

        successes, failures, errors = _submit_all(concurrent_app, ctx, request_ids)

        assert not errors
        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], UnitUnavailableError)

        with concurrent_app.app_context():
            assert db.session.get(Product, product_id).quantity == 0
            assert movement_service.reconcile_product(ctx, product_id)["balanced"] is True
            db.session.remove()

    def test_overlapping_quantity_allocations_never_oversell(self, concurrent_app, seeded):
        ctx, product_id = seeded
        _receive(concurrent_app, ctx, product_id, 5)
        request_ids = [_draft(concurrent_app, ctx, product_id, 4) for _ in range(2)]

        successes, failures, errors = _submit_all(concurrent_app, ctx, request_ids)

        assert not errors
        assert len(successes) <= 1
        assert any(isinstance(exc, InsufficientStockError) for exc in failures)

        with concurrent_app.app_context():
            quantity = db.session.get(Product, product_id).quantity
            assert quantity >= 0
            assert quantity == 5 - 4 * len(successes)
            assert movement_service.reconcile_product(ctx, product_id)["balanced"] is True
            db.session.remove()
