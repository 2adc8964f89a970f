# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/app/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (use `flask db upgrade` for migrated databases).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Tenant management (MULTI-TENANT):
# - python -m flask tenants list
# - python -m flask tenants create --name "Acme Corp" --code "ACME"
#
# Product catalogue:
# - python -m flask products list --tenant-id 1 [--status low]
# - python -m flask products create --tenant-id 1 --sku "LAP-14" --name "Laptop 14in"
#
# Stock:
# - python -m flask inventory receive --tenant-id 1 --product-id 3 --quantity 10 --invoice "INV-881"
#   Add --unit-tracked to register one unit per item.
# - python -m flask inventory reconcile --tenant-id 1 [--product-id 3]
#   Compare stored quantity with the movement log.
#
# Requests:
# - python -m flask requests show --tenant-id 1 REQ-2026-000042

import click
from flask.cli import with_appcontext

from .context import ROLE_ADMIN, RequestContext
from .errors import DomainError
from .extensions import db
from .models import Product, Request
from .schemas import ReceiveStockCommand
from .services import inventory_service, movement_service, tenant_service


def _cli_context(tenant_id: int, actor_id: int) -> RequestContext:
    """Operators run commands with admin rights inside one tenant."""
    tenant_service.validate_tenant_active(tenant_id)
    return RequestContext(actor_id=actor_id, tenant_id=tenant_id, role=ROLE_ADMIN)


def _tenant_options(f):
    f = click.option('--actor-id', default=0, show_default=True, type=int, help='User id recorded on changes')(f)
    f = click.option('--tenant-id', required=True, type=int, help='Tenant id')(f)
    return f


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create any missing tables."""
    db.create_all()
    click.echo("PASS Tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('tenants')
def tenants_group():
    """Tenant management commands."""


@tenants_group.command('list')
@with_appcontext
def list_tenants_cli():
    """List all tenants."""
    tenants = tenant_service.list_tenants()

    if not tenants:
        click.echo("No tenants found.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active':<8} {'Products'}")
    click.echo("="*70)

    for tenant in tenants:
        product_count = db.session.query(Product).filter_by(tenant_id=tenant.id).count()
        active_str = "Yes" if tenant.is_active else "No"
        click.echo(f"{tenant.id:<5} {tenant.name:<30} {tenant.code or '-':<15} {active_str:<8} {product_count}")

    click.echo("="*70 + "\n")


@tenants_group.command('create')
@click.option('--name', required=True, help='Tenant name')
@click.option('--code', required=True, help='Short code (unique)')
@with_appcontext
def create_tenant_cli(name, code):
    """Create a new tenant."""
    try:
        tenant = tenant_service.create_tenant(name=name, code=code)
    except DomainError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id}, Code: {tenant.code})")


@click.group('products')
def products_group():
    """Product catalogue commands."""


@products_group.command('list')
@_tenant_options
@click.option('--status', type=click.Choice(['out', 'low', 'available']), default=None)
@with_appcontext
def list_products_cli(tenant_id, actor_id, status):
    """List products with stock level."""
    ctx = _cli_context(tenant_id, actor_id)
    products = inventory_service.list_products(ctx, status=status)

    if not products:
        click.echo("No products found.")
        return

    click.echo(f"{'ID':<5} {'SKU':<20} {'Name':<30} {'Qty':>6}  {'Status'}")
    for p in products:
        click.echo(f"{p.id:<5} {p.sku:<20} {p.name[:30]:<30} {p.quantity:>6}  {p.status}")


@products_group.command('create')
@_tenant_options
@click.option('--sku', required=True)
@click.option('--name', required=True)
@click.option('--description', default=None)
@with_appcontext
def create_product_cli(tenant_id, actor_id, sku, name, description):
    """Create an empty product."""
    ctx = _cli_context(tenant_id, actor_id)
    try:
        product = inventory_service.create_product(ctx, sku=sku, name=name, description=description)
    except DomainError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Created product {product.sku} (ID: {product.id})")


@click.group('inventory')
def inventory_group():
    """Stock intake and reconciliation commands."""


@inventory_group.command('receive')
@_tenant_options
@click.option('--product-id', required=True, type=int)
@click.option('--quantity', required=True, type=int)
@click.option('--invoice', 'invoice_number', required=True, help='Supplier invoice number')
@click.option('--unit-tracked', is_flag=True, help='Register one unit per item')
@click.option('--serial', 'serial_number', default=None, help='Serial number (single unit only)')
@with_appcontext
def receive_cli(tenant_id, actor_id, product_id, quantity, invoice_number, unit_tracked, serial_number):
    """Receive stock against an invoice."""
    ctx = _cli_context(tenant_id, actor_id)
    try:
        command = ReceiveStockCommand(
            product_id=product_id,
            quantity=quantity,
            invoice_number=invoice_number,
            unit_tracked=unit_tracked,
            serial_number=serial_number,
        )
        result = inventory_service.receive_stock(ctx, command)
    except DomainError as e:
        click.echo(f"FAIL {e}")
        return

    product = result["product"]
    click.echo(f"PASS Received {quantity} x {product.sku}; on hand {product.quantity} ({product.status})")
    for unit in result["units"]:
        click.echo(f"     unit {unit.code}")


@inventory_group.command('reconcile')
@_tenant_options
@click.option('--product-id', type=int, default=None, help='Single product (default: all)')
@with_appcontext
def reconcile_cli(tenant_id, actor_id, product_id):
    """Compare stored quantity with the movement log."""
    ctx = _cli_context(tenant_id, actor_id)
    if product_id is not None:
        product_ids = [product_id]
    else:
        product_ids = [p.id for p in inventory_service.list_products(ctx)]

    mismatches = 0
    for pid in product_ids:
        try:
            result = movement_service.reconcile_product(ctx, pid)
        except DomainError as e:
            click.echo(f"FAIL product {pid}: {e}")
            mismatches += 1
            continue
        if result["balanced"]:
            click.echo(f"PASS product {pid}: quantity {result['quantity']}")
        else:
            mismatches += 1
            click.echo(
                f"FAIL product {pid}: quantity {result['quantity']}, ledger {result['ledger_sum']}, "
                f"units in stock {result['in_stock_units']}"
            )

    if mismatches:
        raise click.ClickException(f"{mismatches} product(s) out of balance")


@click.group('requests')
def requests_group():
    """Request inspection commands."""


@requests_group.command('show')
@click.option('--tenant-id', required=True, type=int)
@click.argument('display_number')
@with_appcontext
def show_request_cli(tenant_id, display_number):
    """Show one request by display number."""
    req = db.session.query(Request).filter_by(tenant_id=tenant_id, display_number=display_number).first()
    if req is None:
        raise click.ClickException(f"Request not found: {display_number}")

    click.echo(f"{req.display_number}  {req.status}  allocated={'yes' if req.stock_allocated else 'no'}")
    click.echo(f"  requester: {req.requester_name or '-'} (user {req.requester_user_id or '-'})")
    click.echo(f"  approval signature: {req.signed_by_name or '-'}")
    click.echo(f"  pickup signature:   {req.pickup_signed_by_name or '-'}")
    for item in req.items:
        click.echo(f"  #{item.position} product {item.product_id} x{item.quantity}  {item.destination or ''}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tenants_group)
    app.cli.add_command(products_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(requests_group)
