"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
import sqlalchemy.dialects.postgresql as psql

# revision identifiers, used by Alembic.
revision = '0001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None

JSON = sa.JSON().with_variant(psql.JSONB(), 'postgresql')


def upgrade() -> None:
    # -------------------------------
    # User table
    # -------------------------------
    op.create_table(
        'user',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('name', sa.String(120), nullable=False),
        sa.Column('email', sa.String(120), nullable=False),
        sa.Column('phone', sa.String(30)),
        sa.Column('address', sa.String(255)),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('role', sa.String(30), nullable=False, server_default='resident'),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('last_login_at', sa.DateTime),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('email', name='user_email_key'),
        sa.CheckConstraint(
            "role in ('admin', 'collector', 'operator', 'resident', 'super_admin')",
            name='ck_user_role',
        ),
    )
    op.create_index('ix_user_role', 'user', ['role'])

    # -------------------------------
    # Smart bin table
    # -------------------------------
    op.create_table(
        'smart_bin',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('bin_code', sa.String(40), nullable=False, unique=True),
        sa.Column('bin_type', sa.String(20), nullable=False, server_default='general'),
        sa.Column('capacity', sa.Float, nullable=False, server_default='120'),
        sa.Column('current_level', sa.Float, nullable=False, server_default='0'),
        sa.Column('latitude', sa.Float, nullable=False, server_default='0'),
        sa.Column('longitude', sa.Float, nullable=False, server_default='0'),
        sa.Column('address', sa.String(255)),
        sa.Column('status', sa.String(20), nullable=False, server_default='available'),
        sa.Column('assigned_to_id', sa.Integer, sa.ForeignKey('user.id', ondelete='SET NULL')),
        sa.Column('created_by_id', sa.Integer, sa.ForeignKey('user.id', ondelete='SET NULL')),
        sa.Column('delivery_date', sa.DateTime),
        sa.Column('activation_date', sa.DateTime),
        sa.Column('last_emptied', sa.DateTime),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "status in ('active', 'assigned', 'available', 'in-transit', 'maintenance')",
            name='ck_smart_bin_status',
        ),
        sa.CheckConstraint(
            "bin_type in ('general', 'hazardous', 'organic', 'recyclable')",
            name='ck_smart_bin_bin_type',
        ),
    )
    op.create_index('ix_smart_bin_bin_type', 'smart_bin', ['bin_type'])
    op.create_index('ix_smart_bin_status', 'smart_bin', ['status'])
    op.create_index('ix_smart_bin_assigned_to_id', 'smart_bin', ['assigned_to_id'])

    # -------------------------------
    # Bin request table
    # -------------------------------
    op.create_table(
        'bin_request',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('request_code', sa.String(40), nullable=False, unique=True),
        sa.Column('resident_id', sa.Integer, sa.ForeignKey('user.id', ondelete='CASCADE'), nullable=False),
        sa.Column('requested_bin_type', sa.String(20), nullable=False),
        sa.Column('preferred_delivery_date', sa.DateTime),
        sa.Column('notes', sa.Text),
        sa.Column('address', sa.String(255)),
        sa.Column('street', sa.String(160)),
        sa.Column('city', sa.String(120)),
        sa.Column('province', sa.String(120)),
        sa.Column('postal_code', sa.String(20)),
        sa.Column('coordinates', JSON),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('assigned_bin_id', sa.Integer, sa.ForeignKey('smart_bin.id', ondelete='SET NULL')),
        sa.Column('delivery_id', sa.Integer),
        sa.Column('payment_verified', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('rejection_reason', sa.Text),
        sa.Column('approved_at', sa.DateTime),
        sa.Column('cancelled_at', sa.DateTime),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "status in ('approved', 'cancelled', 'delivered', 'pending', 'rejected')",
            name='ck_bin_request_status',
        ),
        sa.CheckConstraint(
            "requested_bin_type in ('general', 'hazardous', 'organic', 'recyclable')",
            name='ck_bin_request_bin_type',
        ),
    )
    op.create_index('ix_bin_request_resident_id', 'bin_request', ['resident_id'])
    op.create_index('ix_bin_request_status', 'bin_request', ['status'])
    op.create_index('ix_bin_request_delivery_id', 'bin_request', ['delivery_id'])

    # -------------------------------
    # Delivery table
    # -------------------------------
    op.create_table(
        'delivery',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('delivery_code', sa.String(40), nullable=False, unique=True),
        sa.Column('tracking_number', sa.String(40), nullable=False, unique=True),
        sa.Column('bin_id', sa.Integer, sa.ForeignKey('smart_bin.id', ondelete='SET NULL')),
        sa.Column('resident_id', sa.Integer, sa.ForeignKey('user.id', ondelete='CASCADE'), nullable=False),
        sa.Column('bin_request_id', sa.Integer, sa.ForeignKey('bin_request.id', ondelete='SET NULL')),
        sa.Column('delivery_team_id', sa.Integer, sa.ForeignKey('user.id', ondelete='SET NULL')),
        sa.Column('scheduled_date', sa.DateTime),
        sa.Column('status', sa.String(20), nullable=False, server_default='scheduled'),
        sa.Column('attempts', JSON, nullable=False),
        sa.Column('confirmed_at', sa.DateTime),
        sa.Column('notes', sa.Text),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "status in ('delivered', 'failed', 'in-transit', 'rescheduled', 'scheduled')",
            name='ck_delivery_status',
        ),
    )
    op.create_index('ix_delivery_bin_id', 'delivery', ['bin_id'])
    op.create_index('ix_delivery_resident_id', 'delivery', ['resident_id'])
    op.create_index('ix_delivery_bin_request_id', 'delivery', ['bin_request_id'])
    op.create_index('ix_delivery_status', 'delivery', ['status'])

    # -------------------------------
    # Pickup request table
    # -------------------------------
    op.create_table(
        'pickup_request',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('request_code', sa.String(40), nullable=False, unique=True),
        sa.Column('requested_by_id', sa.Integer, sa.ForeignKey('user.id', ondelete='CASCADE'), nullable=False),
        sa.Column('waste_type', sa.String(20), nullable=False),
        sa.Column('description', sa.Text, nullable=False),
        sa.Column('quantity_value', sa.Float, nullable=False),
        sa.Column('quantity_unit', sa.String(20), nullable=False, server_default='items'),
        sa.Column('address', sa.String(255), nullable=False),
        sa.Column('latitude', sa.Float, nullable=False),
        sa.Column('longitude', sa.Float, nullable=False),
        sa.Column('preferred_date', sa.DateTime, nullable=False),
        sa.Column('time_slot', sa.String(20), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('priority', sa.String(10), nullable=False, server_default='normal'),
        sa.Column('assigned_collector_id', sa.Integer, sa.ForeignKey('user.id', ondelete='SET NULL')),
        sa.Column('scheduled_date', sa.DateTime),
        sa.Column('completed_date', sa.DateTime),
        sa.Column('bin_status', sa.String(20)),
        sa.Column('cancellation_reason', sa.Text),
        sa.Column('rejection_reason', sa.Text),
        sa.Column('notes', sa.Text),
        sa.Column('status_history', JSON, nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "status in ('approved', 'cancelled', 'completed', 'in-progress', 'pending', "
            "'rejected', 'scheduled')",
            name='ck_pickup_request_status',
        ),
        sa.CheckConstraint(
            "waste_type in ('bulk', 'construction', 'electronic', 'hazardous', 'organic', "
            "'other', 'recyclable')",
            name='ck_pickup_request_waste_type',
        ),
        sa.CheckConstraint(
            "quantity_unit in ('bags', 'cubic meters', 'items', 'kg')",
            name='ck_pickup_request_quantity_unit',
        ),
        sa.CheckConstraint(
            "time_slot in ('afternoon', 'evening', 'morning')",
            name='ck_pickup_request_time_slot',
        ),
        sa.CheckConstraint(
            "priority in ('high', 'low', 'normal', 'urgent')",
            name='ck_pickup_request_priority',
        ),
        sa.CheckConstraint(
            "bin_status is null or bin_status in ('collected', 'damaged', 'empty')",
            name='ck_pickup_request_bin_status',
        ),
    )
    op.create_index('ix_pickup_request_requested_by_id', 'pickup_request', ['requested_by_id'])
    op.create_index('ix_pickup_request_status', 'pickup_request', ['status'])
    op.create_index('ix_pickup_request_assigned_collector_id', 'pickup_request', ['assigned_collector_id'])
    op.create_index('ix_pickup_request_status_preferred', 'pickup_request', ['status', 'preferred_date'])

    # -------------------------------
    # Payment table
    # -------------------------------
    op.create_table(
        'payment',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('transaction_id', sa.String(40), nullable=False, unique=True),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('user.id', ondelete='CASCADE'), nullable=False),
        sa.Column('amount', sa.Float, nullable=False),
        sa.Column('currency', sa.String(10), nullable=False, server_default='USD'),
        sa.Column('payment_type', sa.String(30), nullable=False),
        sa.Column('payment_method', sa.String(30), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('description', sa.Text),
        sa.Column('paid_at', sa.DateTime),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "status in ('cancelled', 'completed', 'failed', 'pending', 'processing', 'refunded')",
            name='ck_payment_status',
        ),
        sa.CheckConstraint(
            "payment_type in ('installation-fee', 'maintenance-fee', 'penalty', 'service-charge')",
            name='ck_payment_payment_type',
        ),
        sa.CheckConstraint(
            "payment_method in ('bank-transfer', 'cash', 'credit-card', 'debit-card', "
            "'mobile-payment')",
            name='ck_payment_payment_method',
        ),
    )
    op.create_index('ix_payment_user_id', 'payment', ['user_id'])
    op.create_index('ix_payment_status', 'payment', ['status'])

    # -------------------------------
    # Notification table
    # -------------------------------
    op.create_table(
        'notification',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('recipient_id', sa.Integer, sa.ForeignKey('user.id', ondelete='CASCADE'), nullable=False),
        sa.Column('type', sa.String(40), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('message', sa.Text, nullable=False),
        sa.Column('priority', sa.String(10), nullable=False, server_default='medium'),
        sa.Column('channel', JSON, nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('related_entity_type', sa.String(30)),
        sa.Column('related_entity_id', sa.Integer),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "type in ('bin-damaged', 'bin-delivered', 'bin-request-approved', "
            "'bin-request-cancelled', 'bin-request-rejected', 'delivery-assigned', 'general', "
            "'payment-received', 'pickup-completed', 'pickup-scheduled')",
            name='ck_notification_type',
        ),
        sa.CheckConstraint(
            "priority in ('high', 'low', 'medium', 'urgent')",
            name='ck_notification_priority',
        ),
    )
    op.create_index(
        'ix_notification_recipient_status', 'notification', ['recipient_id', 'status', 'created_at'],
    )


def downgrade() -> None:
    op.drop_table('notification')
    op.drop_table('payment')
    op.drop_table('pickup_request')
    op.drop_table('delivery')
    op.drop_table('bin_request')
    op.drop_table('smart_bin')
    op.drop_table('user')
