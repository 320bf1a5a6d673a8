"""
Alembic migration: Initial storefront schema.

Creates users, products, store_settings, carts, cart_items, orders and
order_items with the constraints the order lifecycle relies on: unique
order numbers, non-negative amounts and stock, and totals matching their
components.

Revision ID: 001
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# Revision identifiers, used by Alembic
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _base_columns() -> list[sa.Column]:
    return [
        sa.Column(
            'id',
            postgresql.UUID(as_uuid=True),
            nullable=False,
            server_default=sa.text('gen_random_uuid()'),
            comment='Unique identifier for the record',
        ),
        sa.Column(
            'created_at',
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text('CURRENT_TIMESTAMP'),
            comment='Timestamp when record was created',
        ),
        sa.Column(
            'updated_at',
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text('CURRENT_TIMESTAMP'),
            comment='Timestamp when record was last updated',
        ),
    ]


def upgrade() -> None:
    """Create the storefront tables."""
    op.create_table(
        'users',
        *_base_columns(),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=10), nullable=False, server_default='customer'),
        sa.Column('status', sa.String(length=8), nullable=False, server_default='active'),
        sa.Column('is_email_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('email_verification_token_hash', sa.String(length=64), nullable=True),
        sa.Column('email_verification_expires_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('email_verification_sent_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('total_orders', sa.Integer(), nullable=False, server_default='0'),
        sa.Column(
            'total_spent',
            sa.Numeric(precision=12, scale=2),
            nullable=False,
            server_default='0.00',
        ),
        sa.Column('last_order_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_users'),
        sa.CheckConstraint('total_orders >= 0', name='ck_users_total_orders_non_negative'),
        sa.CheckConstraint('total_spent >= 0', name='ck_users_total_spent_non_negative'),
        comment='Customer and staff accounts',
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])
    op.create_index('ix_users_role_status', 'users', ['role', 'status'])
    op.create_index(
        'ix_users_email_verification_token_hash',
        'users',
        ['email_verification_token_hash'],
    )

    op.create_table(
        'products',
        *_base_columns(),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('thumbnail', sa.String(length=1024), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint('id', name='pk_products'),
        sa.CheckConstraint('price >= 0', name='ck_products_price_non_negative'),
        sa.CheckConstraint('stock >= 0', name='ck_products_stock_non_negative'),
        comment='Sellable products',
    )

    op.create_table(
        'store_settings',
        *_base_columns(),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD'),
        sa.Column('tax_rate', sa.Numeric(precision=5, scale=2), nullable=False, server_default='10'),
        sa.Column('include_tax_in_prices', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            'free_shipping_threshold',
            sa.Numeric(precision=10, scale=2),
            nullable=False,
            server_default='50',
        ),
        sa.Column(
            'standard_shipping_cost',
            sa.Numeric(precision=10, scale=2),
            nullable=False,
            server_default='5.99',
        ),
        sa.Column(
            'express_shipping_cost',
            sa.Numeric(precision=10, scale=2),
            nullable=False,
            server_default='12.99',
        ),
        sa.Column('express_shipping_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('standard_delivery_days', sa.String(length=20), nullable=False, server_default='5-7'),
        sa.Column('express_delivery_days', sa.String(length=20), nullable=False, server_default='2-3'),
        sa.Column('order_notifications', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint('id', name='pk_store_settings'),
        sa.CheckConstraint(
            'tax_rate >= 0 AND tax_rate <= 100',
            name='ck_store_settings_tax_rate_range',
        ),
        comment='Store wide pricing and shipping configuration',
    )

    op.create_table(
        'carts',
        *_base_columns(),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_carts'),
        sa.ForeignKeyConstraint(
            ['user_id'],
            ['users.id'],
            name='fk_carts_user_id',
            ondelete='CASCADE',
        ),
        comment='Server-side shopping carts, one per user',
    )
    op.create_index('ix_carts_user_id', 'carts', ['user_id'], unique=True)

    op.create_table(
        'cart_items',
        *_base_columns(),
        sa.Column('cart_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('product_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column(
            'price',
            sa.Numeric(precision=10, scale=2),
            nullable=False,
            comment='Unit price when the line was last written',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_cart_items'),
        sa.ForeignKeyConstraint(
            ['cart_id'],
            ['carts.id'],
            name='fk_cart_items_cart_id',
            ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['product_id'],
            ['products.id'],
            name='fk_cart_items_product_id',
            ondelete='CASCADE',
        ),
        sa.UniqueConstraint('cart_id', 'product_id', name='uq_cart_items_cart_product'),
        sa.CheckConstraint('quantity > 0', name='ck_cart_items_quantity_positive'),
        sa.CheckConstraint('price >= 0', name='ck_cart_items_price_non_negative'),
        comment='Product lines in shopping carts',
    )
    op.create_index('ix_cart_items_cart_id', 'cart_items', ['cart_id'])
    op.create_index('ix_cart_items_product_id', 'cart_items', ['product_id'])

    op.create_table(
        'orders',
        *_base_columns(),
        sa.Column('order_number', sa.String(length=50), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column(
            'shipping_address',
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column('payment_method', sa.String(length=20), nullable=False, server_default='cod'),
        sa.Column('payment_status', sa.String(length=7), nullable=False, server_default='pending'),
        sa.Column('order_status', sa.String(length=10), nullable=False, server_default='pending'),
        sa.Column('shipping_method', sa.String(length=8), nullable=False, server_default='standard'),
        sa.Column('payment_intent_id', sa.String(length=255), nullable=True),
        sa.Column('subtotal', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('shipping_cost', sa.Numeric(precision=10, scale=2), nullable=False, server_default='0.00'),
        sa.Column('tax', sa.Numeric(precision=10, scale=2), nullable=False, server_default='0.00'),
        sa.Column('total_amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('is_archived', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('processing_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('shipped_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_orders'),
        sa.ForeignKeyConstraint(
            ['user_id'],
            ['users.id'],
            name='fk_orders_user_id',
            ondelete='SET NULL',
        ),
        sa.CheckConstraint('subtotal >= 0', name='ck_orders_subtotal_non_negative'),
        sa.CheckConstraint('shipping_cost >= 0', name='ck_orders_shipping_cost_non_negative'),
        sa.CheckConstraint('tax >= 0', name='ck_orders_tax_non_negative'),
        sa.CheckConstraint('total_amount >= 0', name='ck_orders_total_amount_non_negative'),
        sa.CheckConstraint(
            'abs(total_amount - (subtotal + shipping_cost + tax)) <= 0.01',
            name='ck_orders_total_matches_components',
        ),
        comment='Customer orders',
    )
    op.create_index('ix_orders_order_number', 'orders', ['order_number'], unique=True)
    op.create_index('ix_orders_user_id', 'orders', ['user_id'])
    op.create_index('ix_orders_payment_status', 'orders', ['payment_status'])
    op.create_index('ix_orders_order_status', 'orders', ['order_status'])
    op.create_index('ix_orders_user_created', 'orders', ['user_id', 'created_at'])
    op.create_index('ix_orders_status_created', 'orders', ['order_status', 'created_at'])

    op.create_table(
        'order_items',
        *_base_columns(),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('product_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('thumbnail', sa.String(length=1024), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_order_items'),
        sa.ForeignKeyConstraint(
            ['order_id'],
            ['orders.id'],
            name='fk_order_items_order_id',
            ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['product_id'],
            ['products.id'],
            name='fk_order_items_product_id',
            ondelete='SET NULL',
        ),
        sa.CheckConstraint('quantity > 0', name='ck_order_items_quantity_positive'),
        sa.CheckConstraint('price >= 0', name='ck_order_items_price_non_negative'),
        comment='Snapshotted order lines',
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])


def downgrade() -> None:
    """Drop the storefront tables in dependency order."""
    op.drop_index('ix_order_items_order_id', table_name='order_items')
    op.drop_table('order_items')

    for index_name in (
        'ix_orders_status_created',
        'ix_orders_user_created',
        'ix_orders_order_status',
        'ix_orders_payment_status',
        'ix_orders_user_id',
        'ix_orders_order_number',
    ):
        op.drop_index(index_name, table_name='orders')
    op.drop_table('orders')

    op.drop_index('ix_cart_items_product_id', table_name='cart_items')
    op.drop_index('ix_cart_items_cart_id', table_name='cart_items')
    op.drop_table('cart_items')

    op.drop_index('ix_carts_user_id', table_name='carts')
    op.drop_table('carts')

    op.drop_table('store_settings')
    op.drop_table('products')

    for index_name in (
        'ix_users_email_verification_token_hash',
        'ix_users_role_status',
        'ix_users_role',
        'ix_users_email',
    ):
        op.drop_index(index_name, table_name='users')
    op.drop_table('users')
