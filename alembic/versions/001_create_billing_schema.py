"""Create billing schema

Revision ID: 001_billing
Revises:
Create Date: 2026-10-17
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSONB

# revision identifiers
revision = '001_billing'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(with_updated=True):
    columns = [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    ]
    if with_updated:
        columns.append(
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False)
        )
    return columns


def _rate_columns():
    return [
        sa.Column('rate_category', sa.String(20), nullable=False),
        sa.Column('rate_code', sa.String(50), nullable=False),
        sa.Column('rate_name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('unit_price', sa.Numeric(12, 4), nullable=False),
        sa.Column('price_unit', sa.String(30), server_default='per_unit', nullable=False),
        sa.Column('volume_tiers', JSONB, nullable=True),
        sa.Column('minimum_charge', sa.Numeric(12, 2), server_default='0', nullable=False),
    ]


def upgrade():
    """Create client, billing, inventory and sequence tables"""

    # ====================
    # CLIENTS
    # ====================
    op.create_table(
        'clients',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('company_name', sa.String(200), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('active', sa.Boolean, server_default='true', nullable=False),
        *_timestamps(with_updated=False),
    )
    op.create_index('ix_clients_active', 'clients', ['active'])

    # ====================
    # CLIENT BILLING CONFIG
    # ====================
    op.create_table(
        'client_billing_config',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('client_id', UUID(as_uuid=True), sa.ForeignKey('clients.id', ondelete='CASCADE'),
                  unique=True, nullable=False),
        sa.Column('billing_frequency', sa.String(20), server_default='monthly', nullable=False),
        sa.Column('billing_day_of_month', sa.Integer, server_default='1'),
        sa.Column('billing_day_of_week', sa.Integer, server_default='1'),
        sa.Column('payment_terms_days', sa.Integer, server_default='30'),
        sa.Column('late_fee_percent', sa.Numeric(5, 2), server_default='0'),
        sa.Column('monthly_minimum', sa.Numeric(12, 2), server_default='0'),
        sa.Column('tax_rate', sa.Numeric(5, 2), server_default='0'),
        sa.Column('tax_exempt', sa.Boolean, server_default='false'),
        sa.Column('auto_generate_invoices', sa.Boolean, server_default='true'),
        sa.Column('auto_send_invoices', sa.Boolean, server_default='false'),
        sa.Column('billing_email', sa.String(255), nullable=True),
        sa.Column('billing_contact_name', sa.String(200), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        *_timestamps(),
    )

    # ====================
    # RATE CARDS & TEMPLATES
    # ====================
    op.create_table(
        'client_rate_cards',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('client_id', UUID(as_uuid=True), sa.ForeignKey('clients.id', ondelete='CASCADE'), nullable=False),
        *_rate_columns(),
        sa.Column('effective_date', sa.Date, nullable=True),
        sa.Column('expiration_date', sa.Date, nullable=True),
        sa.Column('is_active', sa.Boolean, server_default='true'),
        sa.Column('created_by', UUID(as_uuid=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('client_id', 'rate_code', name='uq_client_rate_code'),
    )
    op.create_index('ix_client_rate_cards_client_id', 'client_rate_cards', ['client_id'])
    op.create_index('ix_client_rate_cards_category', 'client_rate_cards', ['rate_category'])

    op.create_table(
        'default_rate_templates',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('template_name', sa.String(100), nullable=False),
        sa.Column('is_default', sa.Boolean, server_default='false'),
        *_rate_columns(),
        sa.Column('is_active', sa.Boolean, server_default='true'),
        *_timestamps(),
        sa.UniqueConstraint('template_name', 'rate_code', name='uq_template_rate_code'),
    )
    op.create_index('ix_default_rate_templates_template_name', 'default_rate_templates', ['template_name'])

    # ====================
    # INVOICES
    # ====================
    op.create_table(
        'invoices',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('client_id', UUID(as_uuid=True), sa.ForeignKey('clients.id', ondelete='CASCADE'), nullable=False),
        sa.Column('invoice_number', sa.String(30), unique=True, nullable=False),
        sa.Column('status', sa.String(20), server_default='draft', nullable=False),
        sa.Column('period_start', sa.Date, nullable=False),
        sa.Column('period_end', sa.Date, nullable=False),
        sa.Column('due_date', sa.Date, nullable=True),
        sa.Column('subtotal', sa.Numeric(12, 2), server_default='0'),
        sa.Column('tax_rate', sa.Numeric(5, 2), server_default='0'),
        sa.Column('tax_amount', sa.Numeric(12, 2), server_default='0'),
        sa.Column('total', sa.Numeric(12, 2), server_default='0'),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_invoices_client_id', 'invoices', ['client_id'])
    op.create_index('ix_invoices_status', 'invoices', ['status'])
    op.create_index('ix_invoices_period', 'invoices', ['period_start', 'period_end'])

    op.create_table(
        'invoice_items',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('invoice_id', UUID(as_uuid=True), sa.ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False),
        sa.Column('description', sa.String(255), nullable=False),
        sa.Column('quantity', sa.Numeric(12, 2), nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 4), nullable=False),
        sa.Column('total', sa.Numeric(12, 2), nullable=False),
        sa.Column('sort_order', sa.Integer, server_default='0'),
        *_timestamps(with_updated=False),
    )
    op.create_index('ix_invoice_items_invoice_id', 'invoice_items', ['invoice_id'])

    # ====================
    # USAGE LEDGER
    # ====================
    op.create_table(
        'usage_records',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('client_id', UUID(as_uuid=True), sa.ForeignKey('clients.id', ondelete='CASCADE'), nullable=False),
        sa.Column('usage_type', sa.String(100), nullable=False),
        sa.Column('rate_code', sa.String(50), nullable=True),
        sa.Column('quantity', sa.Numeric(12, 2), nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 4), nullable=False),
        sa.Column('total', sa.Numeric(12, 2), nullable=False),
        sa.Column('usage_date', sa.Date, nullable=False),
        sa.Column('reference_type', sa.String(50), nullable=True),
        sa.Column('reference_id', UUID(as_uuid=True), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('invoiced', sa.Boolean, server_default='false', nullable=False),
        sa.Column('invoice_id', UUID(as_uuid=True), sa.ForeignKey('invoices.id', ondelete='SET NULL'), nullable=True),
        *_timestamps(with_updated=False),
    )
    op.create_index('ix_usage_records_client_id', 'usage_records', ['client_id'])
    op.create_index('ix_usage_records_invoice_id', 'usage_records', ['invoice_id'])
    op.create_index(
        'ix_usage_records_client_uninvoiced', 'usage_records',
        ['client_id', 'invoiced', 'usage_date']
    )

    # ====================
    # BILLING RUNS
    # ====================
    op.create_table(
        'billing_runs',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('run_number', sa.String(30), unique=True, nullable=False),
        sa.Column('run_type', sa.String(20), nullable=False),
        sa.Column('period_start', sa.Date, nullable=False),
        sa.Column('period_end', sa.Date, nullable=False),
        sa.Column('client_id', UUID(as_uuid=True), sa.ForeignKey('clients.id', ondelete='SET NULL'), nullable=True),
        sa.Column('status', sa.String(20), server_default='pending', nullable=False),
        sa.Column('invoices_generated', sa.Integer, server_default='0'),
        sa.Column('total_billed', sa.Numeric(12, 2), server_default='0'),
        sa.Column('errors', JSONB, server_default='[]'),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('started_by', UUID(as_uuid=True), nullable=True),
        *_timestamps(with_updated=False),
    )
    op.create_index('ix_billing_runs_client_id', 'billing_runs', ['client_id'])
    op.create_index('ix_billing_runs_status', 'billing_runs', ['status'])

    # ====================
    # INVENTORY
    # ====================
    op.create_table(
        'inventory',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('product_id', UUID(as_uuid=True), nullable=False),
        sa.Column('location_id', UUID(as_uuid=True), nullable=False),
        sa.Column('client_id', UUID(as_uuid=True), nullable=False),
        sa.Column('qty_on_hand', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('qty_reserved', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.UniqueConstraint('product_id', 'location_id', name='uq_inventory_product_location'),
    )
    op.create_index('ix_inventory_product_id', 'inventory', ['product_id'])
    op.create_index('ix_inventory_location_id', 'inventory', ['location_id'])
    op.create_index('ix_inventory_client_id', 'inventory', ['client_id'])

    op.create_table(
        'inventory_transactions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('product_id', UUID(as_uuid=True), nullable=False),
        sa.Column('location_id', UUID(as_uuid=True), nullable=False),
        sa.Column('transaction_type', sa.String(20), nullable=False),
        sa.Column('qty_change', sa.Numeric(12, 2), nullable=False),
        sa.Column('reference_type', sa.String(50), nullable=True),
        sa.Column('reference_id', UUID(as_uuid=True), nullable=True),
        sa.Column('performed_by', UUID(as_uuid=True), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        *_timestamps(with_updated=False),
    )
    op.create_index('ix_inventory_transactions_transaction_type', 'inventory_transactions', ['transaction_type'])
    op.create_index('ix_inventory_txn_reference', 'inventory_transactions', ['reference_type', 'reference_id'])

    op.create_table(
        'storage_snapshots',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('snapshot_date', sa.Date, nullable=False),
        sa.Column('client_id', UUID(as_uuid=True), nullable=False),
        sa.Column('product_id', UUID(as_uuid=True), nullable=False),
        sa.Column('location_id', UUID(as_uuid=True), nullable=False),
        sa.Column('qty_on_hand', sa.Numeric(12, 2), nullable=False),
        *_timestamps(with_updated=False),
        sa.UniqueConstraint('snapshot_date', 'product_id', 'location_id', name='uq_storage_snapshot_day'),
    )
    op.create_index('ix_storage_snapshots_client_date', 'storage_snapshots', ['client_id', 'snapshot_date'])

    # ====================
    # OUTBOUND ORDERS
    # ====================
    op.create_table(
        'outbound_orders',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('order_number', sa.String(50), unique=True, nullable=False),
        sa.Column('client_id', UUID(as_uuid=True), nullable=False),
        sa.Column('status', sa.String(30), server_default='pending', nullable=False),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        *_timestamps(with_updated=False),
    )
    op.create_index('ix_outbound_orders_client_id', 'outbound_orders', ['client_id'])
    op.create_index('ix_outbound_orders_status', 'outbound_orders', ['status'])

    # ====================
    # DOCUMENT SEQUENCES
    # ====================
    op.create_table(
        'document_sequences',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('document_type', sa.String(10), nullable=False),
        sa.Column('document_name', sa.String(100), nullable=False),
        sa.Column('sequence_year', sa.Integer, nullable=False),
        sa.Column('current_number', sa.Integer, server_default='0', nullable=False),
        sa.Column('padding_length', sa.Integer, server_default='5'),
        sa.Column('separator', sa.String(5), server_default='-'),
        sa.Column('is_active', sa.Boolean, server_default='true'),
        sa.Column('description', sa.Text, nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('document_type', 'sequence_year', name='uq_document_type_year'),
    )
    op.create_index('ix_document_sequences_document_type', 'document_sequences', ['document_type'])


def downgrade():
    """Drop all billing tables"""
    op.drop_table('document_sequences')
    op.drop_table('outbound_orders')
    op.drop_table('storage_snapshots')
    op.drop_table('inventory_transactions')
    op.drop_table('inventory')
    op.drop_table('billing_runs')
    op.drop_table('usage_records')
    op.drop_table('invoice_items')
    op.drop_table('invoices')
    op.drop_table('default_rate_templates')
    op.drop_table('client_rate_cards')
    op.drop_table('client_billing_config')
    op.drop_table('clients')
