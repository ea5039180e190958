import json
import logging
import warnings
from sqlalchemy.orm import Session

from . import models
from .exceptions import ConfigurationFallbackWarning, ValidationError, NotFoundError

logger = logging.getLogger("booking_service")

DEFAULT_DEPOSIT_PERCENTAGE = 30
DEFAULT_BUSINESS_WEEKDAYS = frozenset({1, 2, 3, 4, 5})
DEFAULT_DAYS_RESERVED = 3
DEFAULT_DAYS_BEFORE_CHECKIN = 1
DEFAULT_DAYS_AFTER_CHECKOUT = 1

DEFAULT_EMAIL_TEMPLATES = [
    {"template_key": "booking_confirmation", "template_name": "Booking confirmation",
     "subject": "Your booking is confirmed"},
    {"template_key": "payment_reminder", "template_name": "Payment reminder",
     "subject": "Reminder: bank transfer deadline", "days_reserved": DEFAULT_DAYS_RESERVED, "send_hour": 9},
    {"template_key": "checkin_reminder", "template_name": "Check-in reminder",
     "subject": "See you soon", "days_before_checkin": DEFAULT_DAYS_BEFORE_CHECKIN, "send_hour": 9},
    {"template_key": "feedback_request", "template_name": "Feedback request",
     "subject": "How was your stay?", "days_after_checkout": DEFAULT_DAYS_AFTER_CHECKOUT, "send_hour": 10},
    {"template_key": "cancel_notification", "template_name": "Cancellation notice",
     "subject": "Your booking has been cancelled"},
    {"template_key": "payment_received", "template_name": "Payment received",
     "subject": "We have received your payment"},
]


def _fallback(message: str):
    logger.warning(message)
    warnings.warn(message, ConfigurationFallbackWarning, stacklevel=3)


def get_setting(db: Session, key: str) -> str | None:
    s = db.get(models.Setting, key)
    return s.value if s else None


def get_all_settings(db: Session) -> list[models.Setting]:
    return db.query(models.Setting).order_by(models.Setting.key).all()


def update_setting(db: Session, key: str, value: str, description: str | None = None) -> models.Setting:
    """Last write wins; there is no versioning."""
    s = db.get(models.Setting, key)
    if not s:
        s = models.Setting(key=key, value=value, description=description)
        db.add(s)
    else:
        s.value = value
        if description is not None:
            s.description = description
    db.commit()
    db.refresh(s)
    logger.info(f"Setting '{key}' updated.")
    return s


def get_deposit_percentage(db: Session) -> int:
    raw = get_setting(db, "deposit_percentage")
    if raw is None:
        _fallback(f"deposit_percentage is not set; using {DEFAULT_DEPOSIT_PERCENTAGE}%.")
        return DEFAULT_DEPOSIT_PERCENTAGE
    try:
        pct = int(str(raw).strip())
    except ValueError:
        _fallback(f"deposit_percentage '{raw}' is not an integer; using {DEFAULT_DEPOSIT_PERCENTAGE}%.")
        return DEFAULT_DEPOSIT_PERCENTAGE
    if not 0 < pct <= 100:
        _fallback(f"deposit_percentage {pct} is out of range; using {DEFAULT_DEPOSIT_PERCENTAGE}%.")
        return DEFAULT_DEPOSIT_PERCENTAGE
    return pct


def parse_business_weekdays(raw: str | None) -> frozenset[int]:
    """Reads {"weekdays": [...]} with 0=Sunday..6=Saturday. Never raises."""
    if raw is None:
        return DEFAULT_BUSINESS_WEEKDAYS
    try:
        data = json.loads(raw)
        weekdays = frozenset(int(d) for d in data["weekdays"])
    except (json.JSONDecodeError, TypeError, KeyError, ValueError) as e:
        _fallback(f"Malformed weekday_settings {raw!r} ({e}); using Monday-Friday as business days.")
        return DEFAULT_BUSINESS_WEEKDAYS
    if not weekdays or any(d < 0 or d > 6 for d in weekdays):
        _fallback(f"weekday_settings {raw!r} has no valid weekdays; using Monday-Friday as business days.")
        return DEFAULT_BUSINESS_WEEKDAYS
    return weekdays


def get_business_weekdays(db: Session) -> frozenset[int]:
    return parse_business_weekdays(get_setting(db, "weekday_settings"))


def set_business_weekdays(db: Session, weekdays: list[int]) -> frozenset[int]:
    if any(d < 0 or d > 6 for d in weekdays):
        raise ValidationError("Weekdays must be between 0 (Sunday) and 6 (Saturday).")
    value = json.dumps({"weekdays": sorted(set(weekdays))})
    update_setting(db, "weekday_settings", value, "Business (non-holiday) weekdays, 0=Sunday")
    return frozenset(weekdays)


def is_payment_method_enabled(db: Session, method: models.PaymentMethod) -> bool:
    raw = get_setting(db, f"enable_{method.value}")
    # Unset means enabled
    if raw is None:
        return True
    return str(raw).strip().lower() in ("1", "true")


# --- Email template scheduling parameters ---

def list_email_templates(db: Session) -> list[models.EmailTemplate]:
    return db.query(models.EmailTemplate).order_by(models.EmailTemplate.template_key).all()


def get_email_template(db: Session, template_key: str) -> models.EmailTemplate | None:
    return db.query(models.EmailTemplate).filter(models.EmailTemplate.template_key == template_key).first()


def update_email_template(db: Session, template_key: str, data: dict) -> models.EmailTemplate:
    template = get_email_template(db, template_key)
    if template is None:
        raise NotFoundError(f"Email template '{template_key}' not found.")
    for field, value in data.items():
        setattr(template, field, value)
    db.commit()
    db.refresh(template)
    return template


def seed_email_templates(db: Session) -> int:
    """Inserts the default templates that are missing; existing rows are left alone."""
    created = 0
    for defaults in DEFAULT_EMAIL_TEMPLATES:
        if get_email_template(db, defaults["template_key"]) is None:
            db.add(models.EmailTemplate(**defaults))
            created += 1
    if created:
        db.commit()
    return created


def _template_int(db: Session, template_key: str, field: str, default: int) -> int:
    template = get_email_template(db, template_key)
    value = getattr(template, field, None) if template else None
    if value is None or value < 0:
        return default
    return int(value)


def get_days_reserved(db: Session) -> int:
    days = _template_int(db, "payment_reminder", "days_reserved", DEFAULT_DAYS_RESERVED)
    return days or DEFAULT_DAYS_RESERVED


def get_days_before_checkin(db: Session) -> int:
    return _template_int(db, "checkin_reminder", "days_before_checkin", DEFAULT_DAYS_BEFORE_CHECKIN)


def get_days_after_checkout(db: Session) -> int:
    return _template_int(db, "feedback_request", "days_after_checkout", DEFAULT_DAYS_AFTER_CHECKOUT)


def is_template_enabled(db: Session, template_key: str) -> bool:
    template = get_email_template(db, template_key)
    # A missing template row does not switch the notification off
    return template.is_enabled if template else True
