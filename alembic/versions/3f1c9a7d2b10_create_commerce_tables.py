"""create_commerce_tables

Revision ID: 3f1c9a7d2b10
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3f1c9a7d2b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

address_json = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')

product_status = sa.Enum(
    'draft', 'active', 'archived', name='commerce_product_status_enum'
)
order_status = sa.Enum(
    'pending', 'processing', 'shipped', 'delivered', 'cancelled',
    name='commerce_order_status_enum',
)
payment_status = sa.Enum(
    'pending', 'cod_due', 'paid', 'refunded', name='commerce_payment_status_enum'
)
fulfillment_status = sa.Enum(
    'unfulfilled', 'packed', 'dispatched', 'delivered', 'picked_up', 'cancelled',
    name='commerce_fulfillment_status_enum',
)
delivery_method = sa.Enum(
    'courier', 'pickup', name='commerce_delivery_method_enum'
)


def upgrade() -> None:
    """Upgrade schema - Create catalog, cart and order tables."""

    # Catalog
    op.create_table(
        'commerce_products',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('slug', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', product_status, server_default='draft', nullable=False),
        sa.Column('published_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_commerce_products'),
        sa.UniqueConstraint('slug', name='uq_commerce_products_slug'),
    )

    op.create_table(
        'commerce_product_variants',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('sku', sa.String(length=100), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('position', sa.Integer(), server_default='0', nullable=False),
        sa.Column('price_minor', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('compare_at_price_minor', sa.Integer(), nullable=True),
        sa.Column('stock_quantity', sa.Integer(), server_default='0', nullable=False),
        sa.Column('track_inventory', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('allow_backorder', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('is_default', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('canonical_variant', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('sales_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('conversion_score', sa.Numeric(8, 4), server_default='0', nullable=False),
        sa.Column('size_value', sa.Numeric(10, 2), nullable=True),
        sa.Column('size_unit', sa.String(length=20), nullable=True),
        sa.Column('size_type', sa.String(length=20), nullable=True),
        sa.Column('color_name', sa.String(length=50), nullable=True),
        sa.Column('color_hex', sa.String(length=7), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('price_minor > 0', name='ck_commerce_product_variants_positive_price'),
        sa.CheckConstraint('stock_quantity >= 0', name='ck_commerce_product_variants_non_negative_stock'),
        sa.CheckConstraint('sales_count >= 0', name='ck_commerce_product_variants_non_negative_sales'),
        sa.CheckConstraint('conversion_score >= 0', name='ck_commerce_product_variants_non_negative_conversion'),
        sa.ForeignKeyConstraint(
            ['product_id'], ['commerce_products.id'],
            name='fk_commerce_product_variants_product_id_commerce_products',
            ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_commerce_product_variants'),
        sa.UniqueConstraint('sku', name='uq_commerce_product_variants_sku'),
    )
    op.create_index(
        'ix_commerce_variants_product_default',
        'commerce_product_variants',
        ['product_id', 'is_default'],
    )
    op.create_index(
        'ix_commerce_variants_size',
        'commerce_product_variants',
        ['size_type', 'size_value'],
    )

    # Carts
    op.create_table(
        'commerce_carts',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('session_token', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=True),
        sa.Column('abandoned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_commerce_carts'),
        sa.UniqueConstraint('session_token', name='uq_commerce_carts_session_token'),
    )
    op.create_index('ix_commerce_carts_user_id', 'commerce_carts', ['user_id'])
    op.create_index(
        'ix_commerce_carts_user_id_abandoned_at',
        'commerce_carts',
        ['user_id', 'abandoned_at'],
    )

    op.create_table(
        'commerce_cart_lines',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('cart_id', sa.Uuid(), nullable=False),
        sa.Column('variant_id', sa.Uuid(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price_snapshot_minor', sa.Integer(), nullable=False),
        sa.Column('price_snapshot_currency', sa.String(length=3), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_commerce_cart_lines_positive_quantity'),
        sa.CheckConstraint('price_snapshot_minor >= 0', name='ck_commerce_cart_lines_non_negative_snapshot'),
        sa.ForeignKeyConstraint(
            ['cart_id'], ['commerce_carts.id'],
            name='fk_commerce_cart_lines_cart_id_commerce_carts',
            ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['variant_id'], ['commerce_product_variants.id'],
            name='fk_commerce_cart_lines_variant_id_commerce_product_variants',
            ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_commerce_cart_lines'),
        sa.UniqueConstraint('cart_id', 'variant_id', name='uq_commerce_cart_variant'),
    )
    op.create_index('ix_commerce_cart_lines_cart_id', 'commerce_cart_lines', ['cart_id'])

    # Orders
    op.create_table(
        'commerce_orders',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('number', sa.String(length=20), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone_number', sa.String(length=50), nullable=False),
        sa.Column('status', order_status, server_default='pending', nullable=False),
        sa.Column('payment_status', payment_status, server_default='pending', nullable=False),
        sa.Column('fulfillment_status', fulfillment_status, server_default='unfulfilled', nullable=False),
        sa.Column('fulfillment_progress', fulfillment_status, server_default='unfulfilled', nullable=False),
        sa.Column('shipping_address', address_json, nullable=False),
        sa.Column('billing_address', address_json, nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('subtotal_minor', sa.Integer(), nullable=False),
        sa.Column('tax_total_minor', sa.Integer(), nullable=False),
        sa.Column('shipping_total_minor', sa.Integer(), nullable=False),
        sa.Column('discount_total_minor', sa.Integer(), nullable=False),
        sa.Column('total_minor', sa.Integer(), nullable=False),
        sa.Column('delivery_method', delivery_method, server_default='pickup', nullable=False),
        sa.Column('delivery_date', sa.Date(), nullable=True),
        sa.Column('delivery_time_slot', sa.String(length=50), nullable=True),
        sa.Column('delivery_notes', sa.Text(), nullable=True),
        sa.Column('source_cart_id', sa.Uuid(), nullable=True),
        sa.Column('stock_committed', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('subtotal_minor >= 0', name='ck_commerce_orders_non_negative_subtotal'),
        sa.ForeignKeyConstraint(
            ['source_cart_id'], ['commerce_carts.id'],
            name='fk_commerce_orders_source_cart_id_commerce_carts',
            ondelete='SET NULL',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_commerce_orders'),
    )
    op.create_index('ix_commerce_orders_number', 'commerce_orders', ['number'], unique=True)
    op.create_index('ix_commerce_orders_user_id', 'commerce_orders', ['user_id'])
    op.create_index('ix_commerce_orders_phone_number', 'commerce_orders', ['phone_number'])
    op.create_index('ix_commerce_orders_delivery_method', 'commerce_orders', ['delivery_method'])

    op.create_table(
        'commerce_order_lines',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('variant_id', sa.Uuid(), nullable=True),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('variant_name', sa.String(length=255), nullable=True),
        sa.Column('sku', sa.String(length=100), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_minor', sa.Integer(), nullable=False),
        sa.Column('total_price_minor', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_commerce_order_lines_positive_line_quantity'),
        sa.CheckConstraint('unit_price_minor > 0', name='ck_commerce_order_lines_positive_unit_price'),
        sa.CheckConstraint(
            'total_price_minor = unit_price_minor * quantity',
            name='ck_commerce_order_lines_line_total_matches',
        ),
        sa.ForeignKeyConstraint(
            ['order_id'], ['commerce_orders.id'],
            name='fk_commerce_order_lines_order_id_commerce_orders',
            ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['variant_id'], ['commerce_product_variants.id'],
            name='fk_commerce_order_lines_variant_id_commerce_product_variants',
            ondelete='SET NULL',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_commerce_order_lines'),
    )
    op.create_index('ix_commerce_order_lines_order_id', 'commerce_order_lines', ['order_id'])


def downgrade() -> None:
    """Downgrade schema - Drop commerce tables and enum types."""
    op.drop_table('commerce_order_lines')
    op.drop_table('commerce_orders')
    op.drop_table('commerce_cart_lines')
    op.drop_table('commerce_carts')
    op.drop_table('commerce_product_variants')
    op.drop_table('commerce_products')

    bind = op.get_bind()
    for enum_type in (
        delivery_method,
        fulfillment_status,
        payment_status,
        order_status,
        product_status,
    ):
        enum_type.drop(bind, checkfirst=True)
