"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-12

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_initial_schema'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


bookingstatus_enum = sa.Enum('RESERVED', 'ACTIVE', 'CANCELLED', 'DELETED', name='bookingstatus')
paymentstatus_enum = sa.Enum('PENDING', 'PAID', 'FAILED', 'REFUNDED', name='paymentstatus')
paymentmethod_enum = sa.Enum('TRANSFER', 'CARD', name='paymentmethod')


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'room_types',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('display_name', sa.String(length=100), nullable=False),
        sa.Column('price', sa.Integer(), nullable=False),
        sa.Column('holiday_surcharge', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_occupancy', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('extra_beds', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('icon', sa.String(length=20), nullable=True),
        sa.Column('display_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(), nullable=True),
        sa.UniqueConstraint('name'),
    )
    op.create_index('ix_room_types_id', 'room_types', ['id'])

    op.create_table(
        'addons',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('display_name', sa.String(length=100), nullable=False),
        sa.Column('price', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('icon', sa.String(length=20), nullable=True),
        sa.Column('display_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(), nullable=True),
        sa.UniqueConstraint('name'),
    )
    op.create_index('ix_addons_id', 'addons', ['id'])

    op.create_table(
        'holidays',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('holiday_date', sa.Date(), nullable=False),
        sa.Column('holiday_name', sa.String(length=100), nullable=True),
        sa.Column('is_weekend', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=True),
        sa.UniqueConstraint('holiday_date'),
    )
    op.create_index('ix_holidays_id', 'holidays', ['id'])

    op.create_table(
        'settings',
        sa.Column('key', sa.String(length=80), primary_key=True),
        sa.Column('value', sa.Text(), nullable=True),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(), nullable=True),
    )

    op.create_table(
        'email_templates',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('template_key', sa.String(length=50), nullable=False),
        sa.Column('template_name', sa.String(length=100), nullable=False),
        sa.Column('subject', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('content', sa.Text(), nullable=False, server_default=''),
        sa.Column('is_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('days_reserved', sa.Integer(), nullable=True),
        sa.Column('days_before_checkin', sa.Integer(), nullable=True),
        sa.Column('days_after_checkout', sa.Integer(), nullable=True),
        sa.Column('send_hour', sa.Integer(), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(), nullable=True),
        sa.UniqueConstraint('template_key'),
    )
    op.create_index('ix_email_templates_id', 'email_templates', ['id'])

    op.create_table(
        'bookings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('booking_id', sa.String(length=20), nullable=False),
        sa.Column('room_type_id', sa.Integer(), sa.ForeignKey('room_types.id'), nullable=True),
        sa.Column('room_type_name', sa.String(length=100), nullable=False),
        sa.Column('check_in_date', sa.Date(), nullable=False),
        sa.Column('check_out_date', sa.Date(), nullable=False),
        sa.Column('guest_name', sa.String(length=100), nullable=False),
        sa.Column('guest_phone', sa.String(length=30), nullable=False),
        sa.Column('guest_email', sa.String(length=255), nullable=False),
        sa.Column('adults', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('children', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('price_per_night', sa.Integer(), nullable=False),
        sa.Column('nights', sa.Integer(), nullable=False),
        sa.Column('total_amount', sa.Integer(), nullable=False),
        sa.Column('final_amount', sa.Integer(), nullable=False),
        sa.Column('is_deposit', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('deposit_percentage', sa.Integer(), nullable=True),
        sa.Column('addons', sa.JSON(), nullable=True),
        sa.Column('addons_total', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('payment_method', paymentmethod_enum, nullable=False),
        sa.Column('payment_status', paymentstatus_enum, nullable=False, server_default='PENDING'),
        sa.Column('status', bookingstatus_enum, nullable=False, server_default='ACTIVE'),
        sa.Column('days_reserved', sa.Integer(), nullable=True),
        sa.Column('payment_deadline', sa.TIMESTAMP(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(), nullable=True),
    )
    op.create_index('ix_bookings_id', 'bookings', ['id'])
    op.create_index('ix_bookings_booking_id', 'bookings', ['booking_id'], unique=True)
    op.create_index('ix_bookings_room_type_id', 'bookings', ['room_type_id'])
    op.create_index('ix_bookings_guest_email', 'bookings', ['guest_email'])
    op.create_index('ix_bookings_status_payment_status', 'bookings', ['status', 'payment_status'])
    op.create_index('ix_bookings_room_type_dates', 'bookings', ['room_type_id', 'check_in_date', 'check_out_date'])

    op.create_table(
        'booking_nights',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('booking_pk', sa.Integer(), sa.ForeignKey('bookings.id', ondelete='CASCADE'), nullable=False),
        sa.Column('room_type_id', sa.Integer(), sa.ForeignKey('room_types.id'), nullable=False),
        sa.Column('night', sa.Date(), nullable=False),
        sa.UniqueConstraint('room_type_id', 'night', name='uq_booking_nights_room_type_night'),
    )
    op.create_index('ix_booking_nights_booking_pk', 'booking_nights', ['booking_pk'])

    op.create_table(
        'booking_emails',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('booking_pk', sa.Integer(), sa.ForeignKey('bookings.id', ondelete='CASCADE'), nullable=False),
        sa.Column('template_key', sa.String(length=50), nullable=False),
        sa.Column('sent_at', sa.TIMESTAMP(), nullable=False),
        sa.UniqueConstraint('booking_pk', 'template_key', name='uq_booking_emails_booking_template'),
    )
    op.create_index('ix_booking_emails_booking_pk', 'booking_emails', ['booking_pk'])

    op.create_table(
        'verification_codes',
        sa.Column('subject', sa.String(length=255), primary_key=True),
        sa.Column('purpose', sa.String(length=20), primary_key=True),
        sa.Column('code', sa.String(length=10), nullable=False),
        sa.Column('expires_at', sa.TIMESTAMP(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=True),
    )

    op.create_table(
        'outbox_events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='PENDING'),
        sa.Column('topic', sa.String(length=255), nullable=False),
        sa.Column('payload', sa.Text(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=True),
        sa.Column('sent_at', sa.TIMESTAMP(), nullable=True),
    )
    op.create_index('ix_outbox_events_id', 'outbox_events', ['id'])
    op.create_index('ix_outbox_events_status', 'outbox_events', ['status'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('outbox_events')
    op.drop_table('verification_codes')
    op.drop_table('booking_emails')
    op.drop_table('booking_nights')
    op.drop_table('bookings')
    op.drop_table('email_templates')
    op.drop_table('settings')
    op.drop_table('holidays')
    op.drop_table('addons')
    op.drop_table('room_types')

    # --- Then, drop the ENUM types ---
    bind = op.get_bind()
    bookingstatus_enum.drop(bind, checkfirst=True)
    paymentstatus_enum.drop(bind, checkfirst=True)
    paymentmethod_enum.drop(bind, checkfirst=True)
