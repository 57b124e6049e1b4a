"""Initial schema - orders, bookings, daily occupancy, sync runs

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-16
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'orders',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('external_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(50), nullable=False),
        sa.Column('date_created', sa.DateTime(), nullable=False),
        sa.Column('billing_first_name', sa.String(100), server_default=''),
        sa.Column('billing_last_name', sa.String(100), server_default=''),
        sa.Column('billing_email', sa.String(255), server_default=''),
        sa.Column('billing_phone', sa.String(50), nullable=True),
        sa.Column('synced_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_orders_external_id', 'orders', ['external_id'], unique=True)
    op.create_index('ix_orders_synced_at', 'orders', ['synced_at'])

    op.create_table(
        'order_bookings',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('order_id', sa.String(36),
                  sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('external_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(500), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('duration_nights', sa.Integer(), nullable=True),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('meta_data', sa.JSON(), nullable=True),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint('order_id', 'external_id', name='uq_booking_order_external'),
    )
    # Overlap scans: start_date <= :end AND end_date >= :start
    op.create_index('ix_booking_span', 'order_bookings', ['start_date', 'end_date'])

    op.create_table(
        'daily_occupancy',
        sa.Column('date', sa.Date(), primary_key=True),
        sa.Column('car_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('occupancy_percentage', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('computed_at', sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        'aggregate_state',
        sa.Column('name', sa.String(50), primary_key=True),
        sa.Column('rebuilt_at', sa.DateTime(), nullable=True),
        sa.Column('day_count', sa.Integer(), server_default='0'),
        sa.Column('booking_count', sa.Integer(), server_default='0'),
    )

    op.create_table(
        'sync_runs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('sync_type', sa.String(20), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='running'),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('finished_at', sa.DateTime(), nullable=True),
        sa.Column('since', sa.DateTime(), nullable=False),
        sa.Column('orders_fetched', sa.Integer(), server_default='0'),
        sa.Column('orders_processed', sa.Integer(), server_default='0'),
        sa.Column('errors', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_sync_runs_status_started', 'sync_runs', ['status', 'started_at'])

    op.create_table(
        'sync_locks',
        sa.Column('name', sa.String(50), primary_key=True),
        sa.Column('owner', sa.String(100), nullable=True),
        sa.Column('acquired_at', sa.DateTime(), nullable=False),
    )


def downgrade():
    op.drop_table('sync_locks')
    op.drop_index('ix_sync_runs_status_started', table_name='sync_runs')
    op.drop_table('sync_runs')
    op.drop_table('aggregate_state')
    op.drop_table('daily_occupancy')
    op.drop_index('ix_booking_span', table_name='order_bookings')
    op.drop_table('order_bookings')
    op.drop_index('ix_orders_synced_at', table_name='orders')
    op.drop_index('ix_orders_external_id', table_name='orders')
    op.drop_table('orders')
