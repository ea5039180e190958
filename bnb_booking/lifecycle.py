"""
Reservation lifecycle.

A booking carries two states: its status (reserved, active, cancelled,
deleted) and its payment status (pending, paid, failed, refunded). Every
change goes through the transition tables below; anything else raises
IllegalTransitionError. Leaving active/reserved releases the claimed nights.
"""
import datetime
import logging
from sqlalchemy.orm import Session

from . import crud, settings_service
from .clock import as_utc_naive, local_today, local_date_of
from .exceptions import IllegalTransitionError
from .models import Booking, BookingStatus, PaymentStatus, PaymentMethod, BLOCKING_STATUSES

logger = logging.getLogger("booking_service")

STATUS_TRANSITIONS = {
    BookingStatus.RESERVED: {BookingStatus.ACTIVE, BookingStatus.CANCELLED},
    BookingStatus.ACTIVE: {BookingStatus.CANCELLED},
    BookingStatus.CANCELLED: set(),
    BookingStatus.DELETED: set(),
}

PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.PAID, PaymentStatus.FAILED},
    PaymentStatus.FAILED: {PaymentStatus.PAID},
    PaymentStatus.PAID: {PaymentStatus.REFUNDED},
    PaymentStatus.REFUNDED: set(),
}

PAYMENT_REMINDER = "payment_reminder"
CHECKIN_REMINDER = "checkin_reminder"
FEEDBACK_REQUEST = "feedback_request"
CANCEL_NOTIFICATION = "cancel_notification"
PAYMENT_RECEIVED = "payment_received"
BOOKING_CONFIRMATION = "booking_confirmation"


def _reject(booking: Booking, field: str, current, requested):
    error = IllegalTransitionError(booking.booking_id, field, current, requested)
    logger.warning(f"Rejected transition: {error}")
    raise error


def _check_transition(booking: Booking, payment_status: PaymentStatus | None, status: BookingStatus | None):
    if status is not None and status != booking.status:
        if status not in STATUS_TRANSITIONS[booking.status]:
            _reject(booking, "status", booking.status, status)
    if payment_status is not None and payment_status != booking.payment_status:
        if payment_status not in PAYMENT_TRANSITIONS[booking.payment_status]:
            _reject(booking, "payment_status", booking.payment_status, payment_status)
        # Money can only arrive for a booking that still holds its room
        final_status = status or booking.status
        if payment_status == PaymentStatus.PAID and final_status not in BLOCKING_STATUSES:
            _reject(booking, "payment_status", booking.payment_status, payment_status)
        # A transfer reservation is either paid or swept at its deadline
        if payment_status == PaymentStatus.FAILED and final_status == BookingStatus.RESERVED:
            _reject(booking, "payment_status", booking.payment_status, payment_status)
    # Only a payment activates a reservation
    if booking.status == BookingStatus.RESERVED and status == BookingStatus.ACTIVE:
        if (payment_status or booking.payment_status) != PaymentStatus.PAID:
            _reject(booking, "status", booking.status, status)


# --- Notification history ---

def record_notification(db: Session, booking: Booking, template_key: str) -> bool:
    """Adds template_key to the booking's history. Returns False if it was already there."""
    if crud.has_email_record(db, booking, template_key):
        return False
    crud.add_email_record(db, booking, template_key)
    return True


def queue_notification(db: Session, booking: Booking, template_key: str) -> bool:
    """
    Records the notification and hands it to the email sender through the outbox,
    at most once per booking and template. Does NOT commit.
    """
    if not settings_service.is_template_enabled(db, template_key):
        logger.info(f"Template '{template_key}' is disabled; nothing queued for {booking.booking_id}.")
        return False
    if not booking.guest_email:
        logger.info(f"Booking {booking.booking_id} has no email address; '{template_key}' not queued.")
        return False
    if not record_notification(db, booking, template_key):
        return False
    crud.create_notification_event_in_outbox(db, {
        "booking_id": booking.booking_id,
        "template_key": template_key,
        "guest_email": booking.guest_email,
    })
    return True


# --- Transitions ---

def _apply(db: Session, booking: Booking, payment_status: PaymentStatus | None = None,
           status: BookingStatus | None = None) -> Booking:
    _check_transition(booking, payment_status, status)

    became_paid = payment_status == PaymentStatus.PAID and booking.payment_status != PaymentStatus.PAID
    became_cancelled = status == BookingStatus.CANCELLED and booking.status != BookingStatus.CANCELLED
    old = (booking.payment_status.value, booking.status.value)

    crud.update_booking_status(db, booking, payment_status=payment_status, status=status)
    logger.info(
        f"Booking {booking.booking_id}: ({old[0]}, {old[1]}) -> "
        f"({booking.payment_status.value}, {booking.status.value})"
    )

    if became_paid:
        # Card bookings get their confirmation only once the money is in
        if booking.payment_method == PaymentMethod.CARD:
            queue_notification(db, booking, BOOKING_CONFIRMATION)
        elif booking.payment_method == PaymentMethod.TRANSFER:
            queue_notification(db, booking, PAYMENT_RECEIVED)
    if became_cancelled:
        queue_notification(db, booking, CANCEL_NOTIFICATION)
    return booking


def update_booking_status(db: Session, booking_id: str, payment_status: PaymentStatus | None = None,
                          status: BookingStatus | None = None) -> Booking:
    """
    Admin edit path. Marking a reserved booking paid also activates it, and
    activating a reserved booking records it as paid.
    The deleted status is only reachable through anonymize_customer_data.
    """
    booking = crud.get_booking_for_update(db, booking_id)
    if status == BookingStatus.DELETED:
        _reject(booking, "status", booking.status, status)
    if booking.status == BookingStatus.RESERVED:
        if payment_status == PaymentStatus.PAID and status is None:
            status = BookingStatus.ACTIVE
        elif status == BookingStatus.ACTIVE and payment_status is None:
            payment_status = PaymentStatus.PAID
    _apply(db, booking, payment_status=payment_status, status=status)
    db.commit()
    db.refresh(booking)
    return booking


def confirm_payment(db: Session, booking_id: str) -> Booking:
    """Marks the booking paid and active. Confirming an already paid, active booking changes nothing."""
    booking = crud.get_booking_for_update(db, booking_id)
    if booking.payment_status == PaymentStatus.PAID and booking.status == BookingStatus.ACTIVE:
        logger.info(f"Booking {booking_id} is already paid; confirmation ignored.")
        return booking
    if booking.status not in BLOCKING_STATUSES:
        _reject(booking, "status", booking.status, BookingStatus.ACTIVE)
    status = BookingStatus.ACTIVE if booking.status == BookingStatus.RESERVED else None
    _apply(db, booking, payment_status=PaymentStatus.PAID, status=status)
    db.commit()
    db.refresh(booking)
    return booking


def mark_payment_failed(db: Session, booking_id: str) -> Booking:
    booking = crud.get_booking_for_update(db, booking_id)
    _apply(db, booking, payment_status=PaymentStatus.FAILED)
    db.commit()
    db.refresh(booking)
    return booking


def record_payment_result(db: Session, booking_id: str, success: bool) -> Booking:
    """Entry point for the payment gateway's result callback."""
    if success:
        return confirm_payment(db, booking_id)
    return mark_payment_failed(db, booking_id)


def refund_payment(db: Session, booking_id: str) -> Booking:
    booking = crud.get_booking_for_update(db, booking_id)
    _apply(db, booking, payment_status=PaymentStatus.REFUNDED)
    db.commit()
    db.refresh(booking)
    return booking


def cancel_booking(db: Session, booking_id: str, reason: str = "admin") -> Booking:
    booking = crud.get_booking_for_update(db, booking_id)
    _apply(db, booking, status=BookingStatus.CANCELLED)
    db.commit()
    db.refresh(booking)
    logger.info(f"Booking {booking_id} cancelled ({reason}).")
    return booking


def hard_delete_booking(db: Session, booking_id: str) -> None:
    """Removes a cancelled booking for good; any other status is refused."""
    booking = crud.get_booking_for_update(db, booking_id)
    if booking.status != BookingStatus.CANCELLED:
        _reject(booking, "status", booking.status, "removed")
    db.delete(booking)
    db.commit()
    logger.info(f"Booking {booking_id} permanently deleted.")


def anonymize_customer_data(db: Session, email: str) -> int:
    """
    Right to erasure: masks guest name, phone and email on every booking of
    `email` and marks them deleted. Rows are kept for the accounting history.
    Returns the number of bookings touched.
    """
    bookings = crud.get_bookings_by_email(db, email)
    local, _, domain = email.partition("@")
    masked_email = f"{local[:1]}***@{domain}"
    for booking in bookings:
        name = booking.guest_name or ""
        booking.guest_name = name[:1] + "*" * max(2, len(name) - 1)
        booking.guest_phone = "*" * 10
        booking.guest_email = masked_email
        crud.update_booking_status(db, booking, status=BookingStatus.DELETED)
    db.commit()
    logger.info(f"Anonymized {len(bookings)} bookings for a data deletion request.")
    return len(bookings)


# --- Scheduler operations ---

def run_expiry_sweep(db: Session, now: datetime.datetime) -> list[str]:
    """
    Cancels every reserved, unpaid booking whose payment deadline has passed
    and queues one cancellation notice for each. Running it again finds nothing.
    """
    expired = crud.list_reserved_expired(db, as_utc_naive(now))
    cancelled = []
    for booking in expired:
        _apply(db, booking, status=BookingStatus.CANCELLED)
        cancelled.append(booking.booking_id)
    db.commit()
    if cancelled:
        logger.info(f"Expiry sweep cancelled {len(cancelled)} reservations: {', '.join(cancelled)}")
    return cancelled


def find_payment_reminder_candidates(db: Session, now: datetime.datetime) -> list[str]:
    """Unpaid reservations whose payment deadline falls on today (business timezone)."""
    today = local_today(now)
    return [
        b.booking_id for b in crud.list_reserved_pending_without_email(db, PAYMENT_REMINDER)
        if b.payment_deadline is not None and local_date_of(b.payment_deadline) == today
    ]


def find_checkin_reminder_candidates(db: Session, now: datetime.datetime, days_before: int) -> list[str]:
    day = local_today(now) + datetime.timedelta(days=days_before)
    return [b.booking_id for b in crud.list_checking_in_on(db, day, CHECKIN_REMINDER)]


def find_feedback_candidates(db: Session, now: datetime.datetime, days_after: int) -> list[str]:
    day = local_today(now) - datetime.timedelta(days=days_after)
    return [b.booking_id for b in crud.list_checked_out_on(db, day, FEEDBACK_REQUEST)]
