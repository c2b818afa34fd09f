"""initial ledger schema

Revision ID: ts001
Revises:
Create Date: 2026-10-17 00:00:00.000000

Creates the distribution-chain schema:
- accounts / products / product_prices / customers: master data
- inventory_balances: per-(account, product) stock, quantity >= 0
- transfer_requests: purchase orders between tiers
- customer_orders: customer sales, manual and imported
- stock_movements: append-only journal of every balance change
- reward_targets / document_sequences
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'ts001'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
    ]


def upgrade():
    # ============================================================================
    # accounts: every entity that can hold stock
    # ============================================================================
    op.create_table(
        'accounts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('sub_role', sa.String(length=32), nullable=True),
        sa.Column('parent_account_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['parent_account_id'], ['accounts.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_accounts_code', 'accounts', ['code'], unique=True)
    op.create_index('ix_accounts_parent_account_id', 'accounts', ['parent_account_id'])
    op.create_index('ix_accounts_role_active', 'accounts', ['role', 'is_active'])

    # ============================================================================
    # products + tier price schedule
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_name', 'products', ['name'])

    op.create_table(
        'product_prices',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('tier', sa.String(length=32), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'tier', name='uq_product_prices_product_tier'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_product_prices_product_id', 'product_prices', ['product_id'])

    op.create_table(
        'customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('owner_account_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=64), nullable=False),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('state', sa.String(length=64), nullable=True),
        sa.Column('postcode', sa.String(length=16), nullable=True),
        sa.Column('city', sa.String(length=128), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['owner_account_id'], ['accounts.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('owner_account_id', 'phone', name='uq_customers_owner_phone'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_customers_owner_account_id', 'customers', ['owner_account_id'])

    # ============================================================================
    # inventory_balances: the ledger store
    # ============================================================================
    op.create_table(
        'inventory_balances',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('account_id', 'product_id', name='uq_inventory_balances_account_product'),
        sa.CheckConstraint('quantity >= 0', name='ck_inventory_balances_non_negative'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_balances_account_id', 'inventory_balances', ['account_id'])
    op.create_index('ix_inventory_balances_product_id', 'inventory_balances', ['product_id'])

    # ============================================================================
    # transfer_requests: purchase orders between tiers
    # ============================================================================
    op.create_table(
        'transfer_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('request_number', sa.String(length=64), nullable=False),
        sa.Column('requester_account_id', sa.Integer(), nullable=False),
        sa.Column('fulfiller_account_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=True),
        sa.Column('total_price_cents', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('requested_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('decided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('decided_by_account_id', sa.Integer(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['requester_account_id'], ['accounts.id'], ),
        sa.ForeignKeyConstraint(['fulfiller_account_id'], ['accounts.id'], ),
        sa.ForeignKeyConstraint(['decided_by_account_id'], ['accounts.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('request_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_transfer_requests_requester_account_id', 'transfer_requests', ['requester_account_id'])
    op.create_index('ix_transfer_requests_fulfiller_account_id', 'transfer_requests', ['fulfiller_account_id'])
    op.create_index('ix_transfer_requests_product_id', 'transfer_requests', ['product_id'])
    op.create_index('ix_transfer_requests_status', 'transfer_requests', ['status'])
    op.create_index('ix_transfer_requests_fulfiller_status', 'transfer_requests', ['fulfiller_account_id', 'status'])
    op.create_index('ix_transfer_requests_requester_status', 'transfer_requests', ['requester_account_id', 'status'])

    # ============================================================================
    # customer_orders: customer sales (manual and point-of-sale imports)
    # ============================================================================
    op.create_table(
        'customer_orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_number', sa.String(length=64), nullable=False),
        sa.Column('seller_account_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('total_price_cents', sa.Integer(), nullable=False),
        sa.Column('payment_method', sa.String(length=16), nullable=False),
        sa.Column('delivery_status', sa.String(length=16), nullable=False),
        sa.Column('platform', sa.String(length=16), nullable=False),
        sa.Column('tracking_number', sa.String(length=64), nullable=True),
        sa.Column('courier_order_id', sa.String(length=128), nullable=True),
        sa.Column('courier_booked', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('date_order', sa.Date(), nullable=False),
        sa.Column('date_processed', sa.Date(), nullable=True),
        sa.Column('date_return', sa.Date(), nullable=True),
        sa.Column('cod_collected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('restocked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('source_invoice_number', sa.String(length=64), nullable=True),
        sa.Column('source_line_index', sa.Integer(), nullable=True),
        sa.Column('source_product_name', sa.String(length=255), nullable=True),
        sa.Column('source_sku', sa.String(length=128), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['seller_account_id'], ['accounts.id'], ),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_number'),
        sa.UniqueConstraint('seller_account_id', 'source_invoice_number', 'source_line_index',
                            name='uq_customer_orders_seller_source_line'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_customer_orders_seller_account_id', 'customer_orders', ['seller_account_id'])
    op.create_index('ix_customer_orders_customer_id', 'customer_orders', ['customer_id'])
    op.create_index('ix_customer_orders_product_id', 'customer_orders', ['product_id'])
    op.create_index('ix_customer_orders_delivery_status', 'customer_orders', ['delivery_status'])
    op.create_index('ix_customer_orders_seller_status', 'customer_orders', ['seller_account_id', 'delivery_status'])
    op.create_index('ix_customer_orders_tracking', 'customer_orders', ['tracking_number'])

    # ============================================================================
    # stock_movements: journal written alongside every balance change
    # ============================================================================
    op.create_table(
        'stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False),
        sa.Column('from_account_id', sa.Integer(), nullable=True),
        sa.Column('to_account_id', sa.Integer(), nullable=True),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('from_balance_after', sa.Integer(), nullable=True),
        sa.Column('to_balance_after', sa.Integer(), nullable=True),
        sa.Column('transfer_request_id', sa.Integer(), nullable=True),
        sa.Column('customer_order_id', sa.Integer(), nullable=True),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['from_account_id'], ['accounts.id'], ),
        sa.ForeignKeyConstraint(['to_account_id'], ['accounts.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['transfer_request_id'], ['transfer_requests.id'], ),
        sa.ForeignKeyConstraint(['customer_order_id'], ['customer_orders.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_movements_kind', 'stock_movements', ['kind'])
    op.create_index('ix_stock_movements_from_account_id', 'stock_movements', ['from_account_id'])
    op.create_index('ix_stock_movements_to_account_id', 'stock_movements', ['to_account_id'])
    op.create_index('ix_stock_movements_product_id', 'stock_movements', ['product_id'])
    op.create_index('ix_stock_movements_transfer_request_id', 'stock_movements', ['transfer_request_id'])
    op.create_index('ix_stock_movements_customer_order_id', 'stock_movements', ['customer_order_id'])
    op.create_index('ix_stock_movements_occurred_at', 'stock_movements', ['occurred_at'])
    op.create_index('ix_stock_movements_to_kind_occurred', 'stock_movements', ['to_account_id', 'kind', 'occurred_at'])
    op.create_index('ix_stock_movements_from_occurred', 'stock_movements', ['from_account_id', 'occurred_at'])

    # ============================================================================
    # reward_targets / document_sequences
    # ============================================================================
    op.create_table(
        'reward_targets',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('sub_role', sa.String(length=32), nullable=True),
        sa.Column('month', sa.Integer(), nullable=True),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('min_quantity', sa.Integer(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_reward_targets_role_period', 'reward_targets', ['role', 'year', 'month'])

    op.create_table(
        'document_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('document_type', sa.String(length=32), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('document_type', name='uq_document_sequences_type'),
        sqlite_autoincrement=True
    )


def downgrade():
    """Drop all tables (destructive operation)."""
    op.drop_table('document_sequences')
    op.drop_table('reward_targets')
    op.drop_table('stock_movements')
    op.drop_table('customer_orders')
    op.drop_table('transfer_requests')
    op.drop_table('inventory_balances')
    op.drop_table('customers')
    op.drop_table('product_prices')
    op.drop_table('products')
    op.drop_table('accounts')
