"""
Holiday / weekday classification.

A date is a holiday when it is flagged in the holidays table, or when its
weekday is not one of the configured business weekdays. Weekday indices follow
the stored convention, 0=Sunday .. 6=Saturday.
"""
import datetime
import logging
from dataclasses import dataclass
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models, settings_service
from .exceptions import ValidationError, NotFoundError

logger = logging.getLogger("booking_service")


def weekday_index(day: datetime.date) -> int:
    """Sunday-based weekday: 0=Sunday, 1=Monday, ... 6=Saturday."""
    return day.isoweekday() % 7


@dataclass(frozen=True)
class HolidayCalendar:
    """A snapshot of the holiday table and weekday settings; classification has no hidden state."""
    holiday_dates: frozenset
    business_weekdays: frozenset = settings_service.DEFAULT_BUSINESS_WEEKDAYS

    def is_holiday_or_weekend(self, day: datetime.date, include_weekend: bool = True) -> bool:
        if day in self.holiday_dates:
            return True
        if not include_weekend:
            return False
        return weekday_index(day) not in self.business_weekdays


def load_calendar(db: Session, start: datetime.date | None = None, end: datetime.date | None = None) -> HolidayCalendar:
    """Loads flagged dates in [start, end) (all of them when unbounded) plus the weekday settings."""
    q = db.query(models.Holiday.holiday_date)
    if start is not None:
        q = q.filter(models.Holiday.holiday_date >= start)
    if end is not None:
        q = q.filter(models.Holiday.holiday_date < end)
    dates = frozenset(row[0] for row in q.all())
    return HolidayCalendar(holiday_dates=dates, business_weekdays=settings_service.get_business_weekdays(db))


def is_holiday_or_weekend(db: Session, day: datetime.date, include_weekend: bool = True) -> bool:
    calendar = load_calendar(db, day, day + datetime.timedelta(days=1))
    return calendar.is_holiday_or_weekend(day, include_weekend)


def list_holidays(db: Session) -> list[models.Holiday]:
    return db.query(models.Holiday).order_by(models.Holiday.holiday_date.asc()).all()


def add_holiday(db: Session, holiday_date: datetime.date, holiday_name: str | None = None) -> bool:
    """Flags a date. Returns False when the date was already flagged."""
    if db.query(models.Holiday).filter(models.Holiday.holiday_date == holiday_date).first():
        return False
    db.add(models.Holiday(holiday_date=holiday_date, holiday_name=holiday_name, is_weekend=False))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return False
    logger.info(f"Holiday added: {holiday_date} ({holiday_name or 'unnamed'})")
    return True


def add_holiday_range(db: Session, start_date: datetime.date, end_date: datetime.date,
                      holiday_name: str | None = None) -> int:
    """Flags every date from start_date to end_date inclusive, skipping existing ones."""
    if end_date < start_date:
        raise ValidationError("Holiday range end date must not be before its start date.")
    added = 0
    day = start_date
    while day <= end_date:
        if add_holiday(db, day, holiday_name):
            added += 1
        day += datetime.timedelta(days=1)
    return added


def delete_holiday(db: Session, holiday_date: datetime.date) -> None:
    holiday = db.query(models.Holiday).filter(models.Holiday.holiday_date == holiday_date).first()
    if holiday is None:
        raise NotFoundError(f"No holiday on {holiday_date}.")
    if holiday.is_weekend:
        raise ValidationError(f"{holiday_date} is an automatic weekend entry and cannot be deleted.")
    db.delete(holiday)
    db.commit()
    logger.info(f"Holiday removed: {holiday_date}")
