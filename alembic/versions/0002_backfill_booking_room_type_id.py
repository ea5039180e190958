"""backfill booking room type id

Revision ID: 0002_backfill_booking_room_type_id
Revises: 0001_initial_schema
Create Date: 2026-10-12

Imported bookings only carry the room type's display name. Point them at the
matching room type so availability and night claims use the id. Rows whose
name matches nothing keep room_type_id NULL and are still matched by name.
"""
import datetime
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0002_backfill_booking_room_type_id'
down_revision: Union[str, Sequence[str], None] = '0001_initial_schema'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.execute(sa.text(
        """
        UPDATE bookings
        SET room_type_id = (
            SELECT MIN(room_types.id) FROM room_types
            WHERE room_types.display_name = bookings.room_type_name
               OR room_types.name = bookings.room_type_name
        )
        WHERE room_type_id IS NULL
        """
    ))

    # Claim the nights of blocking bookings that were just linked
    bind = op.get_bind()
    rows = bind.execute(sa.text(
        """
        SELECT b.id, b.room_type_id, b.check_in_date, b.nights FROM bookings b
        WHERE b.room_type_id IS NOT NULL
          AND b.status IN ('ACTIVE', 'RESERVED')
          AND NOT EXISTS (SELECT 1 FROM booking_nights bn WHERE bn.booking_pk = b.id)
        """
    )).fetchall()

    booking_nights = sa.table(
        'booking_nights',
        sa.column('booking_pk', sa.Integer),
        sa.column('room_type_id', sa.Integer),
        sa.column('night', sa.Date),
    )
    taken = set()
    for room_type_id, night in bind.execute(sa.text("SELECT room_type_id, night FROM booking_nights")):
        taken.add((room_type_id, str(night)))

    claims = []
    for booking_pk, room_type_id, check_in_date, nights in rows:
        if isinstance(check_in_date, str):
            check_in_date = datetime.date.fromisoformat(check_in_date)
        for offset in range(nights):
            night = check_in_date + datetime.timedelta(days=offset)
            # Legacy data may already be double-booked; the first booking keeps the night
            if (room_type_id, str(night)) in taken:
                continue
            taken.add((room_type_id, str(night)))
            claims.append({'booking_pk': booking_pk, 'room_type_id': room_type_id, 'night': night})
    if claims:
        op.bulk_insert(booking_nights, claims)


def downgrade() -> None:
    """Downgrade schema."""
    # The backfill cannot tell linked legacy rows from new ones; nothing to undo.
    pass
