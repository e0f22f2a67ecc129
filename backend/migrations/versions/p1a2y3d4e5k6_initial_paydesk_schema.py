"""initial paydesk schema

Revision ID: p1a2y3d4e5k6
Revises:
Create Date: 2026-10-19 00:00:00.000000

This migration creates the complete schema from scratch:
- products: catalog with live prices and a stock counter
- loyalty_customers: autocomplete reference data (cars as JSON)
- payments: sale records with a single settlement_state column
- stock_effects: pending stock decrements owned by a sale record
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'p1a2y3d4e5k6'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # products: Catalog entries
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=False),
        sa.Column('available', sa.Boolean(), nullable=False),
        sa.Column('stock_quantity', sa.Integer(), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_available_name', 'products', ['available', 'name'])

    # ============================================================================
    # loyalty_customers: Autocomplete reference data
    # ============================================================================
    op.create_table(
        'loyalty_customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('cars', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_loyalty_customers_name', 'loyalty_customers', ['name'])

    # ============================================================================
    # payments: Sale records
    # ============================================================================
    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_name', sa.String(length=255), nullable=False),
        sa.Column('line_items', sa.JSON(), nullable=False),
        sa.Column('total_price_cents', sa.Integer(), nullable=False),
        sa.Column('cashier_id', sa.String(length=128), nullable=False),
        sa.Column('cashier_display_name', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('settlement_state', sa.String(length=16), nullable=False),
        sa.Column('payment_method', sa.String(length=16), nullable=True),
        sa.Column('amount_tendered_cents', sa.Integer(), nullable=True),
        sa.Column('change_given_cents', sa.Integer(), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('voided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('voided_by', sa.String(length=128), nullable=True),
        sa.Column('void_reason', sa.String(length=255), nullable=True),
        sa.Column('legacy_service_id', sa.Integer(), nullable=True),
        sa.Column('legacy_service_name', sa.String(length=255), nullable=True),
        sa.Column('legacy_quantity', sa.Integer(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_payments_created_at', 'payments', ['created_at'])
    op.create_index('ix_payments_settlement_state', 'payments', ['settlement_state'])
    op.create_index('ix_payments_state_created', 'payments', ['settlement_state', 'created_at'])
    op.create_index('ix_payments_customer_name', 'payments', ['customer_name'])

    # ============================================================================
    # stock_effects: Pending stock decrements (settlement saga)
    # ============================================================================
    op.create_table(
        'stock_effects',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_record_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('settlement_key', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('last_error', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('applied_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['sale_record_id'], ['payments.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sale_record_id', 'product_id', 'settlement_key',
                            name='uq_stock_effects_record_product_key'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_effects_sale_record_id', 'stock_effects', ['sale_record_id'])
    op.create_index('ix_stock_effects_status', 'stock_effects', ['status'])


def downgrade():
    op.drop_index('ix_stock_effects_status', table_name='stock_effects')
    op.drop_index('ix_stock_effects_sale_record_id', table_name='stock_effects')
    op.drop_table('stock_effects')

    op.drop_index('ix_payments_customer_name', table_name='payments')
    op.drop_index('ix_payments_state_created', table_name='payments')
    op.drop_index('ix_payments_settlement_state', table_name='payments')
    op.drop_index('ix_payments_created_at', table_name='payments')
    op.drop_table('payments')

    op.drop_index('ix_loyalty_customers_name', table_name='loyalty_customers')
    op.drop_table('loyalty_customers')

    op.drop_index('ix_products_available_name', table_name='products')
    op.drop_table('products')
