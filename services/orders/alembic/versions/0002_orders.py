"""orders_and_order_items

Revision ID: 0002_orders
Revises: 0001_init
Create Date: 2025-01-02

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0002_orders'
down_revision = '0001_init'
branch_labels = None
depends_on = None

STATUSES = (
    'PENDING_ADMIN_DECISION', 'ADMIN_ACCEPTED', 'PREPARING', 'READY_FOR_DELIVERY',
    'OUT_FOR_DELIVERY', 'DELIVERED', 'REJECTED_BY_ADMIN', 'CANCELLED',
)


def upgrade() -> None:
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('order_number', sa.String(50), nullable=True),
        sa.Column('user_id', sa.Integer, nullable=False),
        sa.Column('status', sa.String(30), nullable=False),
        sa.Column('total_amount', sa.Numeric(10,2), nullable=False),
        sa.Column('delivery_address', sa.JSON, nullable=False),
        sa.Column('rejection_reason', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('updated_at', sa.DateTime, nullable=False),
        sa.CheckConstraint(
            "status IN ({})".format(", ".join(f"'{s}'" for s in STATUSES)),
            name='ck_orders_status'
        ),
        sa.CheckConstraint(
            "(status = 'REJECTED_BY_ADMIN' AND rejection_reason IS NOT NULL) "
            "OR (status != 'REJECTED_BY_ADMIN' AND rejection_reason IS NULL)",
            name='ck_orders_rejection_reason'
        )
    )
    op.create_index('ix_orders_order_number', 'orders', ['order_number'], unique=True)
    op.create_index('ix_orders_user_id', 'orders', ['user_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('order_id', sa.Integer, sa.ForeignKey('orders.id'), nullable=False),
        sa.Column('product_id', sa.String(64), nullable=False),
        sa.Column('name', sa.String(200), nullable=True),
        sa.Column('quantity', sa.Integer, nullable=False),
        sa.Column('price', sa.Numeric(10,2), nullable=False),
        sa.Column('total', sa.Numeric(10,2), nullable=False),
        sa.CheckConstraint('quantity >= 1', name='ck_order_items_quantity'),
        sa.CheckConstraint('price >= 0', name='ck_order_items_price')
    )


def downgrade() -> None:
    op.drop_table('order_items')
    op.drop_index('ix_orders_status')
    op.drop_index('ix_orders_user_id')
    op.drop_index('ix_orders_order_number')
    op.drop_table('orders')
