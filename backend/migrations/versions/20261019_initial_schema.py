"""Initial schema: users, sessions, catalog, stock ledger, sales, treasury, company config

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19

This migration creates:
1. users and session_tokens (bearer-token authentication)
2. clients
3. products and stock_movements (quantity cache + append-only movement log)
4. sales and sale_items (invoice header and snapshot lines)
5. expenses and financial_goals (treasury)
6. company_config (singleton shop identity)
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
    # 1. USERS AND SESSIONS
    # ==========================================================================
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='cashier'),
        sa.Column('full_name', sa.String(length=255), nullable=True),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('last_login_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_users'),
        sa.UniqueConstraint('username', name='uq_users_username'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.create_index('ix_users_username', ['username'], unique=False)

    op.create_table('session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('last_used_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('revoked_at', sa.DateTime(), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='fk_session_tokens_user_id_users', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name='pk_session_tokens'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('session_tokens', schema=None) as batch_op:
        batch_op.create_index('ix_session_tokens_user_id', ['user_id'], unique=False)
        batch_op.create_index('ix_session_tokens_token_hash', ['token_hash'], unique=True)
        batch_op.create_index('ix_session_tokens_expires_at', ['expires_at'], unique=False)
        batch_op.create_index('ix_session_tokens_is_revoked', ['is_revoked'], unique=False)
        batch_op.create_index('ix_session_tokens_user_active', ['user_id', 'is_revoked'], unique=False)

    # ==========================================================================
    # 2. CLIENTS
    # ==========================================================================
    op.create_table('clients',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_clients'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('clients', schema=None) as batch_op:
        batch_op.create_index('ix_clients_name', ['name'], unique=False)
        batch_op.create_index('ix_clients_phone', ['phone'], unique=False)

    # ==========================================================================
    # 3. PRODUCTS AND STOCK MOVEMENTS
    # ==========================================================================
    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=128), nullable=True),
        sa.Column('purchase_price_cents', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('sale_price_cents', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('min_stock', sa.Integer(), nullable=False, server_default=sa.text('5')),
        sa.Column('image', sa.String(length=512), nullable=True),
        sa.Column('barcode', sa.String(length=64), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default=sa.text('1')),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_products'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index('ix_products_category', ['category'], unique=False)
        batch_op.create_index('ix_products_barcode', ['barcode'], unique=False)
        batch_op.create_index('ix_products_category_name', ['category', 'name'], unique=False)

    op.create_table('stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('movement_type', sa.String(length=8), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_stock_movements_quantity_positive'),
        sa.CheckConstraint("movement_type IN ('entry', 'exit')", name='ck_stock_movements_movement_type_valid'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name='fk_stock_movements_product_id_products', ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='fk_stock_movements_user_id_users', ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id', name='pk_stock_movements'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('stock_movements', schema=None) as batch_op:
        batch_op.create_index('ix_stock_movements_product_id', ['product_id'], unique=False)
        batch_op.create_index('ix_stock_movements_movement_type', ['movement_type'], unique=False)
        batch_op.create_index('ix_stock_movements_user_id', ['user_id'], unique=False)
        batch_op.create_index('ix_stock_movements_created_at', ['created_at'], unique=False)
        batch_op.create_index('ix_stock_movements_product_created', ['product_id', 'created_at'], unique=False)

    # ==========================================================================
    # 4. SALES AND SALE ITEMS
    # ==========================================================================
    op.create_table('sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('invoice_number', sa.String(length=64), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('discount_type', sa.String(length=16), nullable=False, server_default='percent'),
        sa.Column('discount_value', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('discount_cents', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('total_cents', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('payment_method', sa.String(length=32), nullable=False, server_default='cash'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], name='fk_sales_client_id_clients', ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='fk_sales_user_id_users', ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id', name='pk_sales'),
        sa.UniqueConstraint('invoice_number', name='uq_sales_invoice_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sales', schema=None) as batch_op:
        batch_op.create_index('ix_sales_client_id', ['client_id'], unique=False)
        batch_op.create_index('ix_sales_user_id', ['user_id'], unique=False)
        batch_op.create_index('ix_sales_created_at', ['created_at'], unique=False)

    op.create_table('sale_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('line_total_cents', sa.Integer(), nullable=False),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], name='fk_sale_items_sale_id_sales', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name='fk_sale_items_product_id_products', ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id', name='pk_sale_items'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sale_items', schema=None) as batch_op:
        batch_op.create_index('ix_sale_items_sale_id', ['sale_id'], unique=False)
        batch_op.create_index('ix_sale_items_product_id', ['product_id'], unique=False)

    # ==========================================================================
    # 5. TREASURY
    # ==========================================================================
    op.create_table('expenses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False, server_default='realized'),
        sa.Column('category', sa.String(length=128), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_expenses'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('expenses', schema=None) as batch_op:
        batch_op.create_index('ix_expenses_status_created', ['status', 'created_at'], unique=False)

    op.create_table('financial_goals',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('target_amount_cents', sa.Integer(), nullable=False),
        sa.Column('current_amount_cents', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('deadline', sa.Date(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_financial_goals'),
        sqlite_autoincrement=True
    )

    # ==========================================================================
    # 6. COMPANY CONFIG (singleton, id=1)
    # ==========================================================================
    op.create_table('company_config',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False, server_default='ORION POS'),
        sa.Column('logo', sa.String(length=512), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('website', sa.String(length=255), nullable=True),
        sa.Column('invoice_header', sa.Text(), nullable=True),
        sa.Column('invoice_footer', sa.Text(), nullable=True),
        sa.Column('currency', sa.String(length=16), nullable=False, server_default='Ar'),
        sa.Column('tax_rate_bps', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_company_config')
    )


def downgrade():
    op.drop_table('company_config')
    op.drop_table('financial_goals')
    op.drop_table('expenses')

    with op.batch_alter_table('sale_items', schema=None) as batch_op:
        batch_op.drop_index('ix_sale_items_product_id')
        batch_op.drop_index('ix_sale_items_sale_id')
    op.drop_table('sale_items')

    with op.batch_alter_table('sales', schema=None) as batch_op:
        batch_op.drop_index('ix_sales_created_at')
        batch_op.drop_index('ix_sales_user_id')
        batch_op.drop_index('ix_sales_client_id')
    op.drop_table('sales')

    with op.batch_alter_table('stock_movements', schema=None) as batch_op:
        batch_op.drop_index('ix_stock_movements_product_created')
        batch_op.drop_index('ix_stock_movements_created_at')
        batch_op.drop_index('ix_stock_movements_user_id')
        batch_op.drop_index('ix_stock_movements_movement_type')
        batch_op.drop_index('ix_stock_movements_product_id')
    op.drop_table('stock_movements')

    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.drop_index('ix_products_category_name')
        batch_op.drop_index('ix_products_barcode')
        batch_op.drop_index('ix_products_category')
    op.drop_table('products')

    with op.batch_alter_table('clients', schema=None) as batch_op:
        batch_op.drop_index('ix_clients_phone')
        batch_op.drop_index('ix_clients_name')
    op.drop_table('clients')

    with op.batch_alter_table('session_tokens', schema=None) as batch_op:
        batch_op.drop_index('ix_session_tokens_user_active')
        batch_op.drop_index('ix_session_tokens_is_revoked')
        batch_op.drop_index('ix_session_tokens_expires_at')
        batch_op.drop_index('ix_session_tokens_token_hash')
        batch_op.drop_index('ix_session_tokens_user_id')
    op.drop_table('session_tokens')

    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.drop_index('ix_users_username')
    op.drop_table('users')
