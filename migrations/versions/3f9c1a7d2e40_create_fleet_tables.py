"""create fleet tables

Revision ID: 3f9c1a7d2e40
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '3f9c1a7d2e40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('users',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=True),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('is_available', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('max_active_orders', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('deactivated_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_users_phone', 'users', ['phone'], unique=False)
    op.create_index('ix_users_role', 'users', ['role'], unique=False)

    # Courier <-> supervisor assignments (many-to-many)
    op.create_table('courier_supervisors',
        sa.Column('courier_id', sa.String(length=36), nullable=False),
        sa.Column('supervisor_id', sa.String(length=36), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['courier_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['supervisor_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('courier_id', 'supervisor_id')
    )
    op.create_index('ix_courier_supervisors_supervisor_id', 'courier_supervisors', ['supervisor_id'], unique=False)

    op.create_table('delivery_orders',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('order_number', sa.String(length=50), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('origin', sa.String(length=32), nullable=False),
        sa.Column('can_reject', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('customer_id', sa.String(length=36), nullable=True),
        sa.Column('customer_name', sa.String(length=255), nullable=False),
        sa.Column('customer_phone', sa.String(length=20), nullable=False),
        sa.Column('delivery_address', sa.Text(), nullable=False),
        sa.Column('delivery_latitude', sa.Float(), nullable=True),
        sa.Column('delivery_longitude', sa.Float(), nullable=True),
        sa.Column('provider_id', sa.String(length=36), nullable=True),
        sa.Column('courier_id', sa.String(length=36), nullable=True),
        sa.Column('supervisor_id', sa.String(length=36), nullable=True),
        sa.Column('created_by', sa.String(length=36), nullable=True),
        sa.Column('bundle_id', sa.String(length=36), nullable=True),
        sa.Column('is_edited', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('subtotal', sa.Numeric(precision=10, scale=2), nullable=False, server_default='0'),
        sa.Column('discount', sa.Numeric(precision=10, scale=2), nullable=False, server_default='0'),
        sa.Column('delivery_fee', sa.Numeric(precision=10, scale=2), nullable=False, server_default='0'),
        sa.Column('total', sa.Numeric(precision=10, scale=2), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('delivered_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['customer_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['provider_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['courier_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['supervisor_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_delivery_orders_order_number', 'delivery_orders', ['order_number'], unique=True)
    for column in ('status', 'customer_id', 'provider_id', 'courier_id', 'supervisor_id', 'bundle_id'):
        op.create_index(f'ix_delivery_orders_{column}', 'delivery_orders', [column], unique=False)

    op.create_table('delivery_order_items',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('order_id', sa.String(length=36), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('provider_id', sa.String(length=36), nullable=True),
        sa.Column('product_id', sa.String(length=36), nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['delivery_orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_delivery_order_items_order_id', 'delivery_order_items', ['order_id'], unique=False)

    op.create_table('order_status_history',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.String(length=36), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('changed_by', sa.String(length=36), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['order_id'], ['delivery_orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_order_status_history_order_id', 'order_status_history', ['order_id'], unique=False)

    op.create_table('wheel_prizes',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('prize_type', sa.String(length=32), nullable=False),
        sa.Column('prize_value', sa.Numeric(precision=10, scale=2), nullable=False, server_default='0'),
        sa.Column('provider_id', sa.String(length=36), nullable=True),
        sa.Column('weight', sa.Numeric(precision=10, scale=2), nullable=False, server_default='10'),
        sa.Column('color', sa.String(length=20), nullable=False, server_default='#f44336'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )

    # Prize terms are copied onto the grant at win time
    op.create_table('user_prizes',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('prize_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('prize_type', sa.String(length=32), nullable=False),
        sa.Column('prize_value', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('provider_id', sa.String(length=36), nullable=True),
        sa.Column('is_redeemed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('redeemed_at', sa.DateTime(), nullable=True),
        sa.Column('bundle_id', sa.String(length=36), nullable=True),
        sa.Column('won_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['prize_id'], ['wheel_prizes.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_user_prizes_user_id', 'user_prizes', ['user_id'], unique=False)
    op.create_index('ix_user_prizes_bundle_id', 'user_prizes', ['bundle_id'], unique=False)


def downgrade():
    op.drop_table('user_prizes')
    op.drop_table('wheel_prizes')
    op.drop_table('order_status_history')
    op.drop_table('delivery_order_items')
    op.drop_table('delivery_orders')
    op.drop_table('courier_supervisors')
    op.drop_table('users')
