"""
Pytest fixtures for request fulfillment backend tests.

Provides test database setup, tenant isolation fixtures, request contexts,
stocked products and a test client.
"""

import pytest
from app import create_app
from app.context import ROLE_ADMIN, ROLE_USER, RequestContext
from app.extensions import db, COLLABORATORS_KEY
from app.models import Tenant
from app.schemas import CreateRequestCommand, ItemSpec, ReceiveStockCommand
from app.services import inventory_service, workflow_service
from app.services.notification_service import NotificationEmitter


PNG_SIGNATURE = "data:image/png;base64," + "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNk" * 2


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SEQUENCE_RETRY_BACKOFF': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def tenant_a(db_session):
    """Create Tenant A (first tenant)."""
    tenant = Tenant(name="Tenant A - Acme Corp", code="ACME", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def tenant_b(db_session):
    """Create Tenant B (second tenant)."""
    tenant = Tenant(name="Tenant B - Beta Inc", code="BETA", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def admin_ctx(tenant_a):
    return RequestContext(actor_id=1, tenant_id=tenant_a.id, role=ROLE_ADMIN, ip_address="10.0.0.1")


@pytest.fixture(scope='function')
def user_ctx(tenant_a):
    return RequestContext(actor_id=2, tenant_id=tenant_a.id, role=ROLE_USER)


@pytest.fixture(scope='function')
def other_user_ctx(tenant_a):
    return RequestContext(actor_id=3, tenant_id=tenant_a.id, role=ROLE_USER)


@pytest.fixture(scope='function')
def admin_ctx_b(tenant_b):
    return RequestContext(actor_id=101, tenant_id=tenant_b.id, role=ROLE_ADMIN)


@pytest.fixture(scope='function')
def stock_product(admin_ctx):
    """
    Factory: create a product in Tenant A and receive `quantity` of it.

    unit_tracked=True registers one unit per item.
    """
    counter = {"n": 0}

    def _make(quantity: int = 10, *, unit_tracked: bool = False, sku: str | None = None, ctx=None):
        ctx = ctx or admin_ctx
        counter["n"] += 1
        product = inventory_service.create_product(
            ctx,
            sku=sku or f"SKU-{counter['n']:03d}",
            name=f"Product {counter['n']}",
        )
        if quantity:
            inventory_service.receive_stock(ctx, ReceiveStockCommand(
                product_id=product.id,
                quantity=quantity,
                invoice_number=f"INV-{counter['n']:03d}",
                unit_tracked=unit_tracked,
            ))
        return product

    return _make


@pytest.fixture(scope='function')
def make_request(admin_ctx):
    """Factory: create a request from (product, quantity) pairs."""

    def _make(lines, *, ctx=None, submit: bool = False, **details):
        items = []
        for line in lines:
            product, quantity, *rest = line
            items.append(ItemSpec(product_id=product.id, quantity=quantity, destination=rest[0] if rest else None))
        command = CreateRequestCommand(items=tuple(items), details=details, submit=submit)
        return workflow_service.create_request(ctx or admin_ctx, command)

    return _make


class RecordingEmitter(NotificationEmitter):
    """Captures emissions in memory; optionally fails on every call."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.audits = []
        self.events = []

    def emit_status_audit(self, *, tenant_id, request_id, from_status, to_status, actor_id, note=None, source=None):
        if self.fail:
            raise RuntimeError("notification backend down")
        self.audits.append((request_id, from_status, to_status))

    def emit_event(self, event_type, *, tenant_id, payload):
        if self.fail:
            raise RuntimeError("notification backend down")
        self.events.append((event_type, payload))


@pytest.fixture(scope='function')
def recording_emitter(app, monkeypatch):
    emitter = RecordingEmitter()
    monkeypatch.setitem(app.extensions[COLLABORATORS_KEY], "notifications", emitter)
    return emitter


@pytest.fixture(scope='function')
def failing_emitter(app, monkeypatch):
    emitter = RecordingEmitter(fail=True)
    monkeypatch.setitem(app.extensions[COLLABORATORS_KEY], "notifications", emitter)
    return emitter


def ctx_headers(ctx: RequestContext) -> dict:
    """Identity headers understood by the default resolver."""
    return {
        'X-Actor-Id': str(ctx.actor_id),
        'X-Tenant-Id': str(ctx.tenant_id),
        'X-Role': ctx.role,
    }
