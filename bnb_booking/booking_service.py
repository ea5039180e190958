import datetime
import logging
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import crud, models, schemas, pricing, settings_service
from .clock import utcnow, as_utc_naive, local_today
from .exceptions import ValidationError, ConflictError
from .lifecycle import queue_notification, BOOKING_CONFIRMATION

logger = logging.getLogger("booking_service")


def resolve_room_type(db: Session, room_type_name: str) -> models.RoomType:
    room_type = crud.get_room_type_by_name(db, room_type_name)
    if room_type is None or not room_type.is_active:
        raise ValidationError(f"Unknown room type '{room_type_name}'.")
    return room_type


def quote_price(db: Session, room_type_name: str, check_in: datetime.date, check_out: datetime.date,
                addons: list[dict] | None = None, is_deposit: bool = False) -> pricing.Quote:
    room_type = resolve_room_type(db, room_type_name)
    return pricing.quote_price(db, room_type, check_in, check_out, addons=addons, is_deposit=is_deposit)


def _validate_request(db: Session, request: schemas.BookingCreate, today: datetime.date):
    pricing.count_nights(request.check_in_date, request.check_out_date)
    if request.check_in_date < today:
        raise ValidationError("Check-in date cannot be earlier than today.")
    if request.adults < 1:
        raise ValidationError("At least one adult is required.")
    if request.children < 0:
        raise ValidationError("Children count cannot be negative.")
    if not settings_service.is_payment_method_enabled(db, request.payment_method):
        raise ValidationError(f"Payment method '{request.payment_method.value}' is currently disabled.")


def create_booking(db: Session, request: schemas.BookingCreate, now: datetime.datetime | None = None) -> models.Booking:
    """
    Validates, prices and stores a booking.

    Bank transfers start as (pending, reserved) with a payment deadline; card
    payments start as (pending, active). The booking and its night claims are
    committed together, so a booking that lost a race for the same nights
    fails with ConflictError instead of double-booking.
    """
    now = as_utc_naive(now) if now else utcnow()
    _validate_request(db, request, local_today(now))

    room_type = resolve_room_type(db, request.room_type)
    quote = pricing.quote_price(
        db, room_type, request.check_in_date, request.check_out_date,
        addons=[a.model_dump() for a in request.addons], is_deposit=request.is_deposit,
    )

    if crud.check_booking_conflict(db, room_type, request.check_in_date, request.check_out_date):
        raise ConflictError("This room type is already booked for these dates.")

    booking = models.Booking(
        booking_id=crud.generate_booking_id(db),
        room_type_id=room_type.id,
        room_type_name=room_type.display_name,
        check_in_date=request.check_in_date,
        check_out_date=request.check_out_date,
        guest_name=request.guest_name,
        guest_phone=request.guest_phone,
        guest_email=request.guest_email,
        adults=request.adults,
        children=request.children,
        price_per_night=quote.stay.average_price_per_night,
        nights=quote.nights,
        total_amount=quote.total_amount,
        final_amount=quote.final_amount,
        is_deposit=quote.is_deposit,
        deposit_percentage=quote.deposit_percentage if quote.is_deposit else None,
        addons=[a.snapshot() for a in quote.addons] or None,
        addons_total=quote.addons_total,
        payment_method=request.payment_method,
        payment_status=models.PaymentStatus.PENDING,
        created_at=now,
    )

    if request.payment_method == models.PaymentMethod.TRANSFER:
        days_reserved = settings_service.get_days_reserved(db)
        booking.status = models.BookingStatus.RESERVED
        booking.days_reserved = days_reserved
        booking.payment_deadline = now + datetime.timedelta(days=days_reserved)
    else:
        booking.status = models.BookingStatus.ACTIVE

    crud.insert_booking(db, booking)

    # Card bookings are confirmed once the gateway reports the payment
    if booking.status == models.BookingStatus.RESERVED:
        queue_notification(db, booking, BOOKING_CONFIRMATION)

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("This room type is no longer available for the selected dates.")
    db.refresh(booking)

    logger.info(
        f"Booking {booking.booking_id} created: {booking.room_type_name} "
        f"{booking.check_in_date}..{booking.check_out_date}, "
        f"{booking.payment_method.value}, status {booking.status.value}, due {booking.amount_due}"
    )
    return booking


def create_quick_booking(db: Session, request: schemas.QuickBookingCreate,
                         now: datetime.datetime | None = None) -> models.Booking:
    """
    Admin entry for stays arranged by phone or on another platform. The dates
    are blocked like any booking, but nothing is priced or charged and no
    email goes out. Past dates are accepted so earlier stays can be recorded.
    """
    now = as_utc_naive(now) if now else utcnow()
    nights = pricing.count_nights(request.check_in_date, request.check_out_date)
    room_type = resolve_room_type(db, request.room_type)

    if crud.check_booking_conflict(db, room_type, request.check_in_date, request.check_out_date):
        raise ConflictError("This room type is already booked for these dates.")

    booking = models.Booking(
        booking_id=crud.generate_booking_id(db),
        room_type_id=room_type.id,
        room_type_name=room_type.display_name,
        check_in_date=request.check_in_date,
        check_out_date=request.check_out_date,
        guest_name=request.guest_name,
        guest_phone=request.guest_phone,
        guest_email=request.guest_email,
        adults=request.adults,
        children=request.children,
        price_per_night=0,
        nights=nights,
        total_amount=0,
        final_amount=0,
        addons_total=0,
        payment_method=models.PaymentMethod.OTHER,
        payment_status=request.payment_status,
        status=request.status,
        created_at=now,
    )
    if booking.status == models.BookingStatus.RESERVED:
        booking.days_reserved = settings_service.get_days_reserved(db)
        booking.payment_deadline = now + datetime.timedelta(days=booking.days_reserved)

    crud.insert_booking(db, booking)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("This room type is no longer available for the selected dates.")
    db.refresh(booking)

    logger.info(
        f"Quick booking {booking.booking_id} created: {booking.room_type_name} "
        f"{booking.check_in_date}..{booking.check_out_date}, status {booking.status.value}"
    )
    return booking


def _current_room_type(db: Session, booking: models.Booking) -> models.RoomType:
    room_type = crud.get_room_type(db, booking.room_type_id) if booking.room_type_id else None
    if room_type is None:
        room_type = crud.get_room_type_by_name(db, booking.room_type_name)
    if room_type is None:
        raise ValidationError(f"Room type '{booking.room_type_name}' no longer exists.")
    return room_type


def edit_booking(db: Session, booking_id: str, update: schemas.BookingEdit,
                 now: datetime.datetime | None = None) -> models.Booking:
    """
    Admin edit of guest details and of the stay itself.

    Moving the stay (dates, room type, add-ons or deposit choice) re-checks
    availability against every other booking, re-claims the nights and
    re-prices through the same calculator as a new booking, all in one
    transaction. Only bookings that still hold their room can be moved.
    Payment state and deadline are left alone; use the status operations for those.
    """
    now = as_utc_naive(now) if now else utcnow()
    booking = crud.get_booking_for_update(db, booking_id)
    if booking.status == models.BookingStatus.DELETED:
        raise ValidationError("Anonymized bookings cannot be edited.")

    changes = update.model_dump(exclude_unset=True)
    stay_fields = {"check_in_date", "check_out_date", "room_type", "is_deposit", "addons"}
    if stay_fields & changes.keys():
        if booking.status not in models.BLOCKING_STATUSES:
            raise ValidationError("Only active or reserved bookings can be moved.")
        _move_stay(db, booking, update, local_today(now))

    for field in ("guest_name", "guest_phone", "guest_email", "adults", "children"):
        if changes.get(field) is not None:
            setattr(booking, field, changes[field])

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("This room type is no longer available for the selected dates.")
    db.refresh(booking)
    logger.info(f"Booking {booking.booking_id} edited: {', '.join(sorted(changes))}")
    return booking


def _move_stay(db: Session, booking: models.Booking, update: schemas.BookingEdit, today: datetime.date):
    check_in = update.check_in_date or booking.check_in_date
    check_out = update.check_out_date or booking.check_out_date
    pricing.count_nights(check_in, check_out)
    if check_in != booking.check_in_date and check_in < today:
        raise ValidationError("Check-in date cannot be earlier than today.")

    room_type = resolve_room_type(db, update.room_type) if update.room_type else _current_room_type(db, booking)

    others = [
        b for b in crud.list_bookings_overlapping(db, room_type, check_in, check_out)
        if b.id != booking.id
    ]
    if others:
        raise ConflictError("This room type is already booked for these dates.")

    is_deposit = booking.is_deposit if update.is_deposit is None else update.is_deposit
    addons = [a.model_dump() for a in update.addons] if update.addons is not None else None
    quote = pricing.quote_price(db, room_type, check_in, check_out, addons=addons, is_deposit=is_deposit)

    booking.room_type_id = room_type.id
    booking.room_type_name = room_type.display_name
    booking.check_in_date = check_in
    booking.check_out_date = check_out
    booking.nights = quote.nights
    booking.price_per_night = quote.stay.average_price_per_night
    booking.total_amount = quote.total_amount
    booking.final_amount = quote.final_amount
    booking.is_deposit = quote.is_deposit
    booking.deposit_percentage = quote.deposit_percentage if quote.is_deposit else None
    # Add-ons keep their booked prices unless a new selection is sent
    if addons is not None:
        booking.addons = [a.snapshot() for a in quote.addons] or None
        booking.addons_total = quote.addons_total

    crud.reclaim_nights(db, booking)
