"""Initial analytics schema

Revision ID: 5d2c81e7a4b0
Revises:
Create Date: 2026-10-02 09:00:41.118204+00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '5d2c81e7a4b0'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table('categories',
    sa.Column('id', sa.String(length=255), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    schema='analytics'
    )

    op.create_table('items',
    sa.Column('id', sa.String(length=255), nullable=False),
    sa.Column('name', sa.String(length=500), nullable=False),
    sa.Column('category_id', sa.String(length=255), nullable=True),
    sa.Column('price', sa.Float(), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('image_url', sa.String(length=1000), nullable=True),
    sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    sa.ForeignKeyConstraint(['category_id'], ['analytics.categories.id'], ondelete='SET NULL'),
    sa.PrimaryKeyConstraint('id'),
    schema='analytics'
    )
    op.create_index('ix_items_category', 'items', ['category_id'], unique=False, schema='analytics')

    op.create_table('orders',
    sa.Column('id', sa.String(length=255), nullable=False),
    sa.Column('customer_id', sa.String(length=255), nullable=True),
    sa.Column('total_amount', sa.Float(), nullable=False),
    sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    schema='analytics'
    )
    op.create_index(op.f('ix_analytics_orders_customer_id'), 'orders', ['customer_id'], unique=False, schema='analytics')
    op.create_index(op.f('ix_analytics_orders_created_at'), 'orders', ['created_at'], unique=False, schema='analytics')

    # item_id carries no foreign key so order lines survive catalog deletes
    op.create_table('order_items',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('order_id', sa.String(length=255), nullable=False),
    sa.Column('item_id', sa.String(length=255), nullable=False),
    sa.Column('item_name', sa.String(length=500), nullable=True),
    sa.Column('quantity', sa.Integer(), nullable=False),
    sa.ForeignKeyConstraint(['order_id'], ['analytics.orders.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    schema='analytics'
    )
    op.create_index('ix_order_items_order', 'order_items', ['order_id'], unique=False, schema='analytics')
    op.create_index('ix_order_items_item', 'order_items', ['item_id'], unique=False, schema='analytics')

    op.create_table('customer_analytics',
    sa.Column('customer_id', sa.String(length=255), nullable=False),
    sa.Column('summary', sa.JSON(), nullable=False),
    sa.Column('version', sa.Integer(), nullable=False),
    sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('customer_id'),
    schema='analytics'
    )


def downgrade() -> None:
    op.drop_table('customer_analytics', schema='analytics')
    op.drop_index('ix_order_items_item', table_name='order_items', schema='analytics')
    op.drop_index('ix_order_items_order', table_name='order_items', schema='analytics')
    op.drop_table('order_items', schema='analytics')
    op.drop_index(op.f('ix_analytics_orders_created_at'), table_name='orders', schema='analytics')
    op.drop_index(op.f('ix_analytics_orders_customer_id'), table_name='orders', schema='analytics')
    op.drop_table('orders', schema='analytics')
    op.drop_index('ix_items_category', table_name='items', schema='analytics')
    op.drop_table('items', schema='analytics')
    op.drop_table('categories', schema='analytics')
