import json
import logging
import random
import time
import datetime
from sqlalchemy import func, or_, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models, schemas
from .config import settings
from .exceptions import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger("booking_service")


# --- Room types ---

def get_room_type(db: Session, room_type_id: int) -> models.RoomType | None:
    return db.get(models.RoomType, room_type_id)


def get_room_type_by_name(db: Session, name: str) -> models.RoomType | None:
    """Looks a room type up by its code or by its display name."""
    return db.query(models.RoomType).filter(
        or_(models.RoomType.name == name, models.RoomType.display_name == name)
    ).order_by(models.RoomType.is_active.desc(), models.RoomType.id).first()


def list_active_room_types(db: Session) -> list[models.RoomType]:
    return db.query(models.RoomType).filter(models.RoomType.is_active.is_(True)).order_by(
        models.RoomType.display_order.asc(), models.RoomType.id.asc()
    ).all()


def list_room_types(db: Session) -> list[models.RoomType]:
    return db.query(models.RoomType).order_by(models.RoomType.display_order.asc(), models.RoomType.id.asc()).all()


def create_room_type(db: Session, room_type: schemas.RoomTypeCreate) -> models.RoomType:
    if db.query(models.RoomType).filter(models.RoomType.name == room_type.name).first():
        raise ValidationError(f"Room type code '{room_type.name}' is already in use.")
    db_room_type = models.RoomType(**room_type.model_dump())
    db.add(db_room_type)
    db.commit()
    db.refresh(db_room_type)
    return db_room_type


def update_room_type(db: Session, room_type_id: int, data: schemas.RoomTypeUpdate) -> models.RoomType:
    db_room_type = get_room_type(db, room_type_id)
    if db_room_type is None:
        raise NotFoundError(f"Room type {room_type_id} not found.")
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(db_room_type, field, value)
    db.commit()
    db.refresh(db_room_type)
    return db_room_type


def count_bookings_for_room_type(db: Session, room_type: models.RoomType) -> int:
    return db.query(models.Booking).filter(
        or_(
            models.Booking.room_type_id == room_type.id,
            and_(models.Booking.room_type_id.is_(None), models.Booking.room_type_name == room_type.display_name),
        )
    ).count()


def delete_room_type(db: Session, room_type_id: int) -> str:
    """
    Hard-deletes a room type nobody has booked. A room type with bookings
    is only deactivated so historical bookings keep their reference.
    Returns "deleted" or "deactivated".
    """
    db_room_type = get_room_type(db, room_type_id)
    if db_room_type is None:
        raise NotFoundError(f"Room type {room_type_id} not found.")
    if count_bookings_for_room_type(db, db_room_type) > 0:
        db_room_type.is_active = False
        db.commit()
        return "deactivated"
    db.delete(db_room_type)
    db.commit()
    return "deleted"


# --- Add-ons ---

def list_active_addons(db: Session) -> list[models.Addon]:
    return db.query(models.Addon).filter(models.Addon.is_active.is_(True)).order_by(
        models.Addon.display_order.asc(), models.Addon.id.asc()
    ).all()


def list_addons(db: Session) -> list[models.Addon]:
    return db.query(models.Addon).order_by(models.Addon.display_order.asc(), models.Addon.id.asc()).all()


def create_addon(db: Session, addon: schemas.AddonCreate) -> models.Addon:
    if db.query(models.Addon).filter(models.Addon.name == addon.name).first():
        raise ValidationError(f"Add-on code '{addon.name}' is already in use.")
    db_addon = models.Addon(**addon.model_dump())
    db.add(db_addon)
    db.commit()
    db.refresh(db_addon)
    return db_addon


def update_addon(db: Session, addon_id: int, data: schemas.AddonUpdate) -> models.Addon:
    db_addon = db.get(models.Addon, addon_id)
    if db_addon is None:
        raise NotFoundError(f"Add-on {addon_id} not found.")
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(db_addon, field, value)
    db.commit()
    db.refresh(db_addon)
    return db_addon


def delete_addon(db: Session, addon_id: int) -> bool:
    # Bookings keep their own price snapshot, so removing the catalog row is safe
    db_addon = db.get(models.Addon, addon_id)
    if db_addon:
        db.delete(db_addon)
        db.commit()
        return True
    return False


# --- Bookings ---

def _same_room_type(room_type: models.RoomType):
    # Legacy rows without room_type_id are matched on the display name
    return or_(
        models.Booking.room_type_id == room_type.id,
        and_(models.Booking.room_type_id.is_(None), models.Booking.room_type_name == room_type.display_name),
    )


def list_bookings_overlapping(db: Session, room_type: models.RoomType, check_in: datetime.date,
                              check_out: datetime.date, statuses=models.BLOCKING_STATUSES) -> list[models.Booking]:
    """
    Bookings of this room type whose stay overlaps [check_in, check_out).

    The logic for an overlap is:
    (Existing check-in < New check-out) AND (Existing check-out > New check-in)
    """
    return db.query(models.Booking).filter(
        _same_room_type(room_type),
        models.Booking.status.in_(list(statuses)),
        models.Booking.check_in_date < check_out,
        models.Booking.check_out_date > check_in,
    ).all()


def check_booking_conflict(db: Session, room_type: models.RoomType, check_in: datetime.date,
                           check_out: datetime.date) -> bool:
    """Returns True if an active or reserved booking already holds part of the range."""
    existing_booking = db.query(models.Booking).filter(
        _same_room_type(room_type),
        models.Booking.status.in_(list(models.BLOCKING_STATUSES)),
        models.Booking.check_in_date < check_out,
        models.Booking.check_out_date > check_in,
    ).first()

    return existing_booking is not None


def find_booked_room_type_names(db: Session, check_in: datetime.date, check_out: datetime.date) -> set[str]:
    """Codes of every room type with a blocking booking overlapping [check_in, check_out)."""
    rows = db.query(models.RoomType.name).join(
        models.Booking,
        or_(
            models.Booking.room_type_id == models.RoomType.id,
            and_(models.Booking.room_type_id.is_(None), models.Booking.room_type_name == models.RoomType.display_name),
        ),
    ).filter(
        models.Booking.status.in_(list(models.BLOCKING_STATUSES)),
        models.Booking.check_in_date < check_out,
        models.Booking.check_out_date > check_in,
    ).distinct().all()
    return {row[0] for row in rows}


def generate_booking_id(db: Session) -> str:
    """BK followed by eight digits, taken from the clock and falling back to random digits."""
    candidate = "BK" + str(int(time.time() * 1000))[-8:]
    for _ in range(10):
        if not db.query(models.Booking.id).filter(models.Booking.booking_id == candidate).first():
            return candidate
        candidate = "BK" + "".join(random.choices("0123456789", k=8))
    raise RuntimeError("could not allocate booking reference")


def _claim_nights(db: Session, booking: models.Booking):
    if booking.room_type_id is None:
        return
    for offset in range(booking.nights):
        booking.nights_claimed.append(models.BookingNight(
            room_type_id=booking.room_type_id,
            night=booking.check_in_date + datetime.timedelta(days=offset),
        ))
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise ConflictError("This room type is no longer available for the selected dates.")


def insert_booking(db: Session, booking: models.Booking, max_attempts: int = 3) -> models.Booking:
    """
    Adds the booking and claims each of its nights in the current transaction.

    The booking row is flushed before its claims, so a failure there can only
    be a booking_id clash; the reference is regenerated and the insert retried.
    A claim collision means another booking committed first and raises ConflictError.
    Both failures roll the transaction back, so call this before writing anything else.
    Note: Does NOT commit. The caller commits together with its outbox events.
    """
    for attempt in range(1, max_attempts + 1):
        db.add(booking)
        try:
            db.flush()
            break
        except IntegrityError:
            db.rollback()
            if attempt == max_attempts:
                raise
            clashing = booking.booking_id
            booking.booking_id = generate_booking_id(db)
            logger.warning(f"Booking reference {clashing} was taken; retrying as {booking.booking_id}.")
    _claim_nights(db, booking)
    return booking


def reclaim_nights(db: Session, booking: models.Booking) -> models.Booking:
    """
    Drops the booking's night claims and claims its current range again.
    Raises ConflictError when another booking holds one of the new nights.
    Note: Does NOT commit.
    """
    booking.nights_claimed.clear()
    # The old claims must be gone before the new ones are inserted
    db.flush()
    _claim_nights(db, booking)
    return booking


def get_booking(db: Session, booking_id: str) -> models.Booking | None:
    return db.query(models.Booking).filter(models.Booking.booking_id == booking_id).first()


def get_booking_for_update(db: Session, booking_id: str) -> models.Booking:
    booking = db.query(models.Booking).filter(models.Booking.booking_id == booking_id).with_for_update().first()
    if booking is None:
        raise NotFoundError(f"Booking {booking_id} not found.")
    return booking


def list_bookings(db: Session, status: models.BookingStatus | None = None, skip: int = 0, limit: int = 100):
    q = db.query(models.Booking)
    if status is not None:
        q = q.filter(models.Booking.status == status)
    return q.order_by(models.Booking.created_at.desc(), models.Booking.id.desc()).offset(skip).limit(limit).all()


def get_bookings_by_email(db: Session, email: str) -> list[models.Booking]:
    return db.query(models.Booking).filter(models.Booking.guest_email == email).order_by(
        models.Booking.created_at.desc()
    ).all()


def list_bookings_in_range(db: Session, start_date: datetime.date, end_date: datetime.date) -> list[models.Booking]:
    """Calendar view: every non-deleted booking touching [start_date, end_date]."""
    return db.query(models.Booking).filter(
        models.Booking.check_in_date <= end_date,
        models.Booking.check_out_date >= start_date,
        models.Booking.status != models.BookingStatus.DELETED,
    ).order_by(models.Booking.check_in_date, models.Booking.room_type_name).all()


def update_booking_status(db: Session, booking: models.Booking, payment_status: models.PaymentStatus | None = None,
                          status: models.BookingStatus | None = None) -> models.Booking:
    """
    Writes the new states and releases the claimed nights once the booking
    stops blocking. Transition rules live in the lifecycle module.
    Note: Does NOT commit.
    """
    if payment_status is not None:
        booking.payment_status = payment_status
    if status is not None:
        booking.status = status
        if status not in models.BLOCKING_STATUSES:
            booking.nights_claimed.clear()
    db.flush()
    return booking


def list_reserved_expired(db: Session, now: datetime.datetime) -> list[models.Booking]:
    """Reserved, unpaid bookings whose payment deadline is at or before `now` (naive UTC)."""
    return db.query(models.Booking).filter(
        models.Booking.status == models.BookingStatus.RESERVED,
        models.Booking.payment_status == models.PaymentStatus.PENDING,
        models.Booking.payment_deadline.is_not(None),
        models.Booking.payment_deadline <= now,
    ).order_by(models.Booking.payment_deadline).with_for_update().all()


def _not_yet_sent(template_key: str):
    return ~models.Booking.emails.any(models.BookingEmail.template_key == template_key)


def list_reserved_pending_without_email(db: Session, template_key: str) -> list[models.Booking]:
    return db.query(models.Booking).filter(
        models.Booking.status == models.BookingStatus.RESERVED,
        models.Booking.payment_status == models.PaymentStatus.PENDING,
        _not_yet_sent(template_key),
    ).all()


def list_checking_in_on(db: Session, day: datetime.date, template_key: str) -> list[models.Booking]:
    return db.query(models.Booking).filter(
        models.Booking.check_in_date == day,
        models.Booking.status == models.BookingStatus.ACTIVE,
        models.Booking.payment_status == models.PaymentStatus.PAID,
        _not_yet_sent(template_key),
    ).all()


def list_checked_out_on(db: Session, day: datetime.date, template_key: str) -> list[models.Booking]:
    return db.query(models.Booking).filter(
        models.Booking.check_out_date == day,
        models.Booking.status == models.BookingStatus.ACTIVE,
        _not_yet_sent(template_key),
    ).all()


# --- Notification history and outbox ---

def has_email_record(db: Session, booking: models.Booking, template_key: str) -> bool:
    return db.query(models.BookingEmail.id).filter(
        models.BookingEmail.booking_pk == booking.id,
        models.BookingEmail.template_key == template_key,
    ).first() is not None


def add_email_record(db: Session, booking: models.Booking, template_key: str) -> models.BookingEmail:
    """Note: Does NOT commit."""
    record = models.BookingEmail(template_key=template_key)
    booking.emails.append(record)
    db.flush()
    return record


def create_notification_event_in_outbox(db: Session, payload: dict) -> models.OutboxEvent:
    """
    Creates a notification event in the outbox table.
    Note: Does NOT commit. The calling function is responsible for the commit.
    """
    db_outbox_event = models.OutboxEvent(
        topic=settings.KAFKA_NOTIFICATION_TOPIC,
        payload=json.dumps(payload),
        status="PENDING"
    )
    db.add(db_outbox_event)
    return db_outbox_event


# --- Customers ---

def list_customers(db: Session) -> list[dict]:
    """One row per guest email, newest booking first."""
    rows = db.query(models.Booking.guest_email).filter(
        models.Booking.status != models.BookingStatus.DELETED,
        models.Booking.guest_email != "",
    ).group_by(models.Booking.guest_email).order_by(func.max(models.Booking.created_at).desc()).all()

    return [get_customer(db, email) for (email,) in rows]


def get_customer(db: Session, email: str) -> dict | None:
    bookings = [b for b in get_bookings_by_email(db, email) if b.status != models.BookingStatus.DELETED]
    if not bookings:
        return None
    latest = bookings[0]
    spent = sum(b.amount_due for b in bookings if b.payment_status == models.PaymentStatus.PAID)
    return {
        "guest_email": email,
        "guest_name": latest.guest_name,
        "guest_phone": latest.guest_phone,
        "booking_count": len(bookings),
        "total_spent": spent,
        "last_booking_at": latest.created_at,
        "bookings": bookings,
    }


# --- Dashboard ---

def count_check_ins_on(db: Session, day: datetime.date) -> int:
    return db.query(models.Booking).filter(
        models.Booking.check_in_date == day,
        models.Booking.status.in_(list(models.BLOCKING_STATUSES)),
    ).count()


def count_check_outs_on(db: Session, day: datetime.date) -> int:
    return db.query(models.Booking).filter(
        models.Booking.check_out_date == day,
        models.Booking.status == models.BookingStatus.ACTIVE,
    ).count()


def count_bookings_by_status(db: Session) -> dict[models.BookingStatus, int]:
    rows = db.query(models.Booking.status, func.count(models.Booking.id)).group_by(models.Booking.status).all()
    return {status: count for status, count in rows}


def count_bookings_created_by_method(db: Session, start: datetime.datetime,
                                     end: datetime.datetime) -> dict[models.PaymentMethod, int]:
    """Bookings created in [start, end) (naive UTC), per payment method."""
    rows = db.query(models.Booking.payment_method, func.count(models.Booking.id)).filter(
        models.Booking.created_at >= start,
        models.Booking.created_at < end,
    ).group_by(models.Booking.payment_method).all()
    return {method: count for method, count in rows}


def _created_between(q, start: datetime.datetime | None, end: datetime.datetime | None):
    if start is not None:
        q = q.filter(models.Booking.created_at >= start)
    if end is not None:
        q = q.filter(models.Booking.created_at < end)
    return q


def count_bookings_created(db: Session, start: datetime.datetime | None = None,
                           end: datetime.datetime | None = None) -> int:
    return _created_between(db.query(models.Booking), start, end).count()


def sum_paid_revenue(db: Session, start: datetime.datetime | None = None,
                     end: datetime.datetime | None = None) -> int:
    """Room amounts plus add-ons of paid bookings created in the window."""
    q = db.query(func.coalesce(func.sum(models.Booking.final_amount + models.Booking.addons_total), 0)).filter(
        models.Booking.payment_status == models.PaymentStatus.PAID,
    )
    return int(_created_between(q, start, end).scalar() or 0)


def count_bookings_by_room_type(db: Session, start: datetime.datetime | None = None,
                                end: datetime.datetime | None = None) -> list[tuple[str, int]]:
    q = db.query(models.Booking.room_type_name, func.count(models.Booking.id))
    rows = _created_between(q, start, end).group_by(models.Booking.room_type_name).order_by(
        models.Booking.room_type_name
    ).all()
    return [(name, count) for name, count in rows]
