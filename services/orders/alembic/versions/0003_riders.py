"""riders

Revision ID: 0003_riders
Revises: 0002_orders
Create Date: 2025-01-09

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0003_riders'
down_revision = '0002_orders'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'riders',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('phone', sa.String(20), nullable=False, unique=True),
        sa.Column('vehicle_number', sa.String(20), nullable=True),
        sa.Column('vehicle_model', sa.String(100), nullable=True),
        sa.Column('is_available', sa.Boolean, nullable=False),
        sa.Column('current_lat', sa.Numeric(10,8), nullable=True),
        sa.Column('current_lng', sa.Numeric(11,8), nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('updated_at', sa.DateTime, nullable=False)
    )


def downgrade() -> None:
    op.drop_table('riders')
