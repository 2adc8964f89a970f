"""Initial schema: tenants, products, units, movements, requests, signatures, audit

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19

This migration adds:
1. Tenants
2. Products, intake invoices and individually tracked units
3. Append-only stock movement log
4. Requests (per-tenant yearly sequence, approval and pickup signature slots) and items
5. Request history events, status audit rows and notifications
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. TENANTS
    # ==========================================================================
    op.create_table('tenants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_tenants_code', 'tenants', ['code'], unique=True)
    op.create_index('ix_tenants_is_active', 'tenants', ['is_active'])

    # ==========================================================================
    # 2. PRODUCTS / INVOICES / UNITS
    # ==========================================================================
    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='out'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'sku', name='uq_products_tenant_sku'),
        sa.CheckConstraint('quantity >= 0', name='ck_products_quantity_non_negative'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_products_tenant_id', 'products', ['tenant_id'])
    op.create_index('ix_products_tenant_name', 'products', ['tenant_id', 'name'])

    op.create_table('product_invoices',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('invoice_number', sa.String(length=64), nullable=False),
        sa.Column('issued_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('request_id', sa.Integer(), nullable=True),
        sa.Column('received_by_user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_product_invoices_tenant_id', 'product_invoices', ['tenant_id'])
    op.create_index('ix_product_invoices_request_id', 'product_invoices', ['request_id'])
    op.create_index('ix_product_invoices_tenant_product', 'product_invoices', ['tenant_id', 'product_id'])

    op.create_table('product_units',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=True),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='IN_STOCK'),
        sa.Column('serial_number', sa.String(length=128), nullable=True),
        sa.Column('part_number', sa.String(length=128), nullable=True),
        sa.Column('asset_tag', sa.String(length=128), nullable=True),
        sa.Column('acquired_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('acquired_by_user_id', sa.Integer(), nullable=True),
        sa.Column('assigned_to_user_id', sa.Integer(), nullable=True),
        sa.Column('acquired_reason', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['invoice_id'], ['product_invoices.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'code', name='uq_product_units_tenant_code'),
        sa.UniqueConstraint('tenant_id', 'serial_number', name='uq_product_units_tenant_serial'),
        sa.UniqueConstraint('tenant_id', 'part_number', name='uq_product_units_tenant_part'),
        sa.UniqueConstraint('tenant_id', 'asset_tag', name='uq_product_units_tenant_asset_tag'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_product_units_tenant_id', 'product_units', ['tenant_id'])
    op.create_index('ix_product_units_invoice_id', 'product_units', ['invoice_id'])
    op.create_index('ix_product_units_product_status', 'product_units', ['product_id', 'status', 'created_at'])

    # ==========================================================================
    # 3. STOCK MOVEMENTS (append-only)
    # ==========================================================================
    op.create_table('stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('unit_id', sa.Integer(), nullable=True),
        sa.Column('invoice_id', sa.Integer(), nullable=True),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('quantity_delta', sa.Integer(), nullable=False),
        sa.Column('request_id', sa.Integer(), nullable=True),
        sa.Column('request_number', sa.String(length=32), nullable=True),
        sa.Column('performed_by_user_id', sa.Integer(), nullable=True),
        sa.Column('assigned_to_user_id', sa.Integer(), nullable=True),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['unit_id'], ['product_units.id']),
        sa.ForeignKeyConstraint(['invoice_id'], ['product_invoices.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_stock_movements_tenant_id', 'stock_movements', ['tenant_id'])
    op.create_index('ix_stock_movements_type', 'stock_movements', ['type'])
    op.create_index('ix_stock_movements_request_id', 'stock_movements', ['request_id'])
    op.create_index('ix_stock_movements_tenant_product', 'stock_movements', ['tenant_id', 'product_id', 'occurred_at'])
    op.create_index('ix_stock_movements_unit', 'stock_movements', ['unit_id', 'occurred_at'])

    # ==========================================================================
    # 4. REQUESTS / ITEMS
    # ==========================================================================
    op.create_table('requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('display_number', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='DRAFT'),
        sa.Column('stock_allocated', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('requester_user_id', sa.Integer(), nullable=True),
        sa.Column('requester_name', sa.String(length=120), nullable=True),
        sa.Column('requester_employee_no', sa.String(length=32), nullable=True),
        sa.Column('requesting_service_id', sa.Integer(), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('delivery_location', sa.String(length=255), nullable=True),
        sa.Column('expected_delivery_from', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expected_delivery_to', sa.DateTime(timezone=True), nullable=True),
        sa.Column('requested_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('signed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('signed_by_name', sa.String(length=120), nullable=True),
        sa.Column('signed_by_title', sa.String(length=120), nullable=True),
        sa.Column('signed_by_user_id', sa.Integer(), nullable=True),
        sa.Column('signed_ip', sa.String(length=64), nullable=True),
        sa.Column('signed_user_agent', sa.String(length=255), nullable=True),
        sa.Column('signed_voided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('signed_voided_reason', sa.String(length=500), nullable=True),
        sa.Column('signed_voided_by_user_id', sa.Integer(), nullable=True),
        sa.Column('pickup_signed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('pickup_signed_by_name', sa.String(length=120), nullable=True),
        sa.Column('pickup_signed_by_title', sa.String(length=120), nullable=True),
        sa.Column('pickup_recorded_by_user_id', sa.Integer(), nullable=True),
        sa.Column('pickup_signed_ip', sa.String(length=64), nullable=True),
        sa.Column('pickup_signed_user_agent', sa.String(length=255), nullable=True),
        sa.Column('pickup_signature_data_url', sa.Text(), nullable=True),
        sa.Column('pickup_voided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('pickup_voided_reason', sa.String(length=500), nullable=True),
        sa.Column('pickup_voided_by_user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'year', 'sequence', name='uq_requests_tenant_year_sequence'),
        sa.UniqueConstraint('tenant_id', 'display_number', name='uq_requests_tenant_display_number'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_requests_tenant_id', 'requests', ['tenant_id'])
    op.create_index('ix_requests_tenant_status', 'requests', ['tenant_id', 'status'])
    op.create_index('ix_requests_tenant_requester', 'requests', ['tenant_id', 'requester_user_id'])

    op.create_table('request_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('request_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('destination', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('unit', sa.String(length=32), nullable=True),
        sa.Column('reference', sa.String(length=128), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['request_id'], ['requests.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('quantity >= 1', name='ck_request_items_quantity_positive'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_request_items_product_id', 'request_items', ['product_id'])
    op.create_index('ix_request_items_request_position', 'request_items', ['request_id', 'position'])

    # ==========================================================================
    # 5. HISTORY / AUDIT / NOTIFICATIONS
    # ==========================================================================
    op.create_table('request_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('request_id', sa.Integer(), nullable=False),
        sa.Column('request_number', sa.String(length=32), nullable=True),
        sa.Column('event_type', sa.String(length=48), nullable=False),
        sa.Column('actor_user_id', sa.Integer(), nullable=True),
        sa.Column('note', sa.String(length=500), nullable=True),
        sa.Column('payload', sa.Text(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_request_events_tenant_id', 'request_events', ['tenant_id'])
    op.create_index('ix_request_events_event_type', 'request_events', ['event_type'])
    op.create_index('ix_request_events_tenant_request', 'request_events', ['tenant_id', 'request_id', 'occurred_at'])

    op.create_table('request_status_audits',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('request_id', sa.Integer(), nullable=False),
        sa.Column('from_status', sa.String(length=16), nullable=True),
        sa.Column('to_status', sa.String(length=16), nullable=False),
        sa.Column('changed_by_user_id', sa.Integer(), nullable=True),
        sa.Column('note', sa.String(length=500), nullable=True),
        sa.Column('source', sa.String(length=32), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_request_status_audits_tenant_id', 'request_status_audits', ['tenant_id'])
    op.create_index('ix_request_status_audits_tenant_request', 'request_status_audits', ['tenant_id', 'request_id'])

    op.create_table('notifications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=48), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('message', sa.String(length=500), nullable=True),
        sa.Column('recipient_user_id', sa.Integer(), nullable=True),
        sa.Column('recipient_role', sa.String(length=32), nullable=True),
        sa.Column('payload', sa.Text(), nullable=True),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_notifications_tenant_id', 'notifications', ['tenant_id'])
    op.create_index('ix_notifications_tenant_user', 'notifications', ['tenant_id', 'recipient_user_id', 'read_at'])
    op.create_index('ix_notifications_tenant_role', 'notifications', ['tenant_id', 'recipient_role', 'read_at'])


def downgrade():
    op.drop_table('notifications')
    op.drop_table('request_status_audits')
    op.drop_table('request_events')
    op.drop_table('request_items')
    op.drop_table('requests')
    op.drop_table('stock_movements')
    op.drop_table('product_units')
    op.drop_table('product_invoices')
    op.drop_table('products')
    op.drop_table('tenants')
