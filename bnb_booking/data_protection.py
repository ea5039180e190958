"""
Personal data requests: a guest proves ownership of an email address with a
one-time code, then may read or erase their booking data. Codes live in the
database with an expiry timestamp that is checked on read.
"""
import datetime
import logging
import secrets
from sqlalchemy.orm import Session

from . import crud, models
from .clock import utcnow, as_utc_naive
from .config import settings
from .exceptions import NotFoundError, ValidationError
from .lifecycle import anonymize_customer_data

logger = logging.getLogger("booking_service")


def generate_verification_code() -> str:
    return str(100000 + secrets.randbelow(900000))


def issue_verification_code(db: Session, email: str, purpose: str,
                            now: datetime.datetime | None = None) -> str:
    """Stores a fresh code for (email, purpose), replacing any earlier one, and queues it for mailing."""
    if crud.get_customer(db, email) is None:
        raise NotFoundError("No booking data found for this email.")

    now = as_utc_naive(now) if now else utcnow()
    code = generate_verification_code()
    expires_at = now + datetime.timedelta(minutes=settings.VERIFICATION_CODE_TTL_MINUTES)

    entry = db.get(models.VerificationCode, (email, purpose))
    if entry is None:
        db.add(models.VerificationCode(subject=email, purpose=purpose, code=code, expires_at=expires_at))
    else:
        entry.code = code
        entry.expires_at = expires_at

    crud.create_notification_event_in_outbox(db, {
        "template_key": "verification_code",
        "email": email,
        "code": code,
        "purpose": purpose,
    })
    db.commit()
    logger.info(f"Verification code issued for purpose '{purpose}'.")
    return code


def verify_code(db: Session, email: str, code: str, purpose: str, now: datetime.datetime | None = None) -> None:
    """Consumes a matching, unexpired code. Raises ValidationError otherwise."""
    now = as_utc_naive(now) if now else utcnow()
    entry = db.get(models.VerificationCode, (email, purpose))
    if entry is None:
        raise ValidationError("Verification code does not exist or has expired.")
    if now > entry.expires_at:
        db.delete(entry)
        db.commit()
        raise ValidationError("Verification code has expired.")
    if not secrets.compare_digest(entry.code, code):
        raise ValidationError("Verification code is incorrect.")
    db.delete(entry)
    db.commit()


def query_personal_data(db: Session, email: str, code: str, now: datetime.datetime | None = None) -> dict:
    verify_code(db, email, code, "query", now)
    customer = crud.get_customer(db, email)
    if customer is None:
        raise NotFoundError("No booking data found for this email.")
    return customer


def request_erasure(db: Session, email: str, code: str, now: datetime.datetime | None = None) -> int:
    verify_code(db, email, code, "delete", now)
    if crud.get_customer(db, email) is None:
        raise NotFoundError("No booking data found for this email.")
    return anonymize_customer_data(db, email)
