import asyncio
import datetime
import logging
from sqlalchemy.orm import Session

from .database import SessionLocal
from .clock import utcnow, local_time
from .config import settings
from . import crud, lifecycle, settings_service

# Get the logger
logger = logging.getLogger("booking_service")  # Use the main service logger


def _due(db: Session, template_key: str, now: datetime.datetime) -> bool:
    """A reminder goes out from its template's send hour onwards; the history stops repeats."""
    template = settings_service.get_email_template(db, template_key)
    if template is not None and not template.is_enabled:
        logger.info(f"Template '{template_key}' is disabled, skipping.")
        return False
    send_hour = template.send_hour if template is not None and template.send_hour is not None else 0
    if local_time(now).hour < send_hour:
        logger.info(f"Too early for '{template_key}' (sends from {send_hour}:00).")
        return False
    return True


def _queue_all(db: Session, booking_ids: list[str], template_key: str) -> list[str]:
    queued = []
    for booking_id in booking_ids:
        booking = crud.get_booking(db, booking_id)
        if booking is not None and lifecycle.queue_notification(db, booking, template_key):
            queued.append(booking_id)
    db.commit()
    if queued:
        logger.info(f"Queued '{template_key}' for {len(queued)} bookings.")
    return queued


def send_payment_reminders(db: Session, now: datetime.datetime) -> list[str]:
    if not _due(db, lifecycle.PAYMENT_REMINDER, now):
        return []
    candidates = lifecycle.find_payment_reminder_candidates(db, now)
    return _queue_all(db, candidates, lifecycle.PAYMENT_REMINDER)


def send_checkin_reminders(db: Session, now: datetime.datetime) -> list[str]:
    if not _due(db, lifecycle.CHECKIN_REMINDER, now):
        return []
    candidates = lifecycle.find_checkin_reminder_candidates(db, now, settings_service.get_days_before_checkin(db))
    return _queue_all(db, candidates, lifecycle.CHECKIN_REMINDER)


def send_feedback_requests(db: Session, now: datetime.datetime) -> list[str]:
    if not _due(db, lifecycle.FEEDBACK_REQUEST, now):
        return []
    candidates = lifecycle.find_feedback_candidates(db, now, settings_service.get_days_after_checkout(db))
    return _queue_all(db, candidates, lifecycle.FEEDBACK_REQUEST)


def run_scheduler_cycle(db: Session, now: datetime.datetime | None = None) -> dict[str, list[str]]:
    """
    One pass of the periodic work: cancel expired reservations, then queue
    the reminders that are due. A failing step is rolled back and logged
    without stopping the others.
    """
    now = now or utcnow()
    steps = [
        ("cancelled", lifecycle.run_expiry_sweep),
        ("payment_reminders", send_payment_reminders),
        ("checkin_reminders", send_checkin_reminders),
        ("feedback_requests", send_feedback_requests),
    ]
    results = {}
    for name, step in steps:
        try:
            results[name] = step(db, now)
        except Exception as e:
            logger.error(f"Scheduler step '{name}' failed: {e}")
            db.rollback()
            results[name] = []
    return results


async def run_booking_scheduler():
    """
    Main background loop for the scheduler.
    """
    while True:
        # Add a log to show the scheduler is waking up
        logger.info("Scheduler waking up to check reservations and reminders...")
        db: Session = SessionLocal()
        try:
            run_scheduler_cycle(db)
        except Exception as e:
            logger.error(f"Error in booking scheduler loop: {e}")
            db.rollback()
        finally:
            db.close()

        # Wait for the next poll interval
        await asyncio.sleep(settings.SCHEDULER_POLL_INTERVAL_SECONDS)
