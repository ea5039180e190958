"""
Figures for the admin dashboard. Days are calendar days in the business
timezone; timestamps are compared in UTC.
"""
import datetime
from sqlalchemy.orm import Session

from . import crud
from .clock import as_utc_naive, local_today, local_day_bounds, utcnow
from .exceptions import ValidationError
from .models import BookingStatus, PaymentMethod

RECENT_DAYS = 7


def today_summary(db: Session, now: datetime.datetime | None = None) -> dict:
    """Today's arrivals and departures, today's new bookings per payment method, and bookings per status."""
    today = local_today(now)
    start, end = local_day_bounds(today)
    created = crud.count_bookings_created_by_method(db, start, end)
    by_status = crud.count_bookings_by_status(db)
    return {
        "date": today,
        "check_ins": crud.count_check_ins_on(db, today),
        "check_outs": crud.count_check_outs_on(db, today),
        "new_bookings": {method.value: created.get(method, 0) for method in PaymentMethod},
        "by_status": {status.value: by_status.get(status, 0) for status in BookingStatus},
    }


def booking_statistics(db: Session, start_date: datetime.date | None = None, end_date: datetime.date | None = None,
                       now: datetime.datetime | None = None) -> dict:
    """
    Totals over bookings created between start_date and end_date (inclusive),
    or over all bookings when no range is given. Revenue only counts paid
    bookings. recent_bookings is the range count, or the last seven days
    without a range.
    """
    if (start_date is None) != (end_date is None):
        raise ValidationError("Give both start_date and end_date, or neither.")
    if start_date is not None and end_date < start_date:
        raise ValidationError("end_date must not be before start_date.")

    start, end = local_day_bounds(start_date, end_date) if start_date else (None, None)
    total = crud.count_bookings_created(db, start, end)
    if start_date:
        recent = total
    else:
        since = (as_utc_naive(now) if now else utcnow()) - datetime.timedelta(days=RECENT_DAYS)
        recent = crud.count_bookings_created(db, since)

    return {
        "start_date": start_date,
        "end_date": end_date,
        "total_bookings": total,
        "total_revenue": crud.sum_paid_revenue(db, start, end),
        "by_room_type": [
            {"room_type_name": name, "count": count}
            for name, count in crud.count_bookings_by_room_type(db, start, end)
        ],
        "recent_bookings": recent,
    }
