import datetime
from sqlalchemy.orm import Session

from . import crud
from .exceptions import ValidationError, NotFoundError


# Stays are half-open ranges [check_in, check_out): a stay ending on day X
# does not collide with one starting on day X.

def _check_range(check_in: datetime.date, check_out: datetime.date):
    if check_out <= check_in:
        raise ValidationError("Check-out date must be after check-in date.")


def is_room_type_available(db: Session, room_type_name: str, check_in: datetime.date,
                           check_out: datetime.date) -> bool:
    _check_range(check_in, check_out)
    room_type = crud.get_room_type_by_name(db, room_type_name)
    if room_type is None:
        raise NotFoundError(f"Room type '{room_type_name}' not found.")
    return not crud.check_booking_conflict(db, room_type, check_in, check_out)


def unavailable_room_types(db: Session, check_in: datetime.date, check_out: datetime.date) -> set[str]:
    """Room type codes that cannot take a booking for [check_in, check_out)."""
    _check_range(check_in, check_out)
    return crud.find_booked_room_type_names(db, check_in, check_out)
