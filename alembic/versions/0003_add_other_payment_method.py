"""add other payment method

Revision ID: 0003_add_other_payment_method
Revises: 0002_backfill_booking_room_type_id
Create Date: 2026-10-19

Admin quick bookings are settled outside the booking flow and carry the
OTHER payment method.
"""
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '0003_add_other_payment_method'
down_revision: Union[str, Sequence[str], None] = '0002_backfill_booking_room_type_id'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    # SQLite stores enums as plain strings; only PostgreSQL has a type to extend
    if op.get_bind().dialect.name == 'postgresql':
        with op.get_context().autocommit_block():
            op.execute("ALTER TYPE paymentmethod ADD VALUE IF NOT EXISTS 'OTHER'")


def downgrade() -> None:
    """Downgrade schema."""
    # PostgreSQL cannot drop an enum value; the type keeps OTHER
    pass
