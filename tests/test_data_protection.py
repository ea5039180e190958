import json
import datetime

import pytest
from sqlalchemy.orm import Session

from bnb_booking import data_protection, models
from bnb_booking.exceptions import ValidationError, NotFoundError

NOW = datetime.datetime(2025, 3, 1, 2, 0, 0)
EMAIL = "guest@example.com"


def test_code_is_six_digits():
    for _ in range(20):
        code = data_protection.generate_verification_code()
        assert len(code) == 6 and code.isdigit()


def test_issue_code_queues_mail(db_session: Session, make_booking):
    make_booking(email=EMAIL)
    code = data_protection.issue_verification_code(db_session, EMAIL, "query", now=NOW)

    entry = db_session.get(models.VerificationCode, (EMAIL, "query"))
    assert entry.code == code
    assert entry.expires_at == NOW + datetime.timedelta(minutes=15)

    payloads = [json.loads(e.payload) for e in db_session.query(models.OutboxEvent)]
    assert {"template_key": "verification_code", "email": EMAIL, "code": code, "purpose": "query"} in payloads


def test_issue_code_for_unknown_email(db_session: Session):
    with pytest.raises(NotFoundError):
        data_protection.issue_verification_code(db_session, "stranger@example.com", "query", now=NOW)


def test_new_code_replaces_old_one(db_session: Session, make_booking):
    make_booking(email=EMAIL)
    first = data_protection.issue_verification_code(db_session, EMAIL, "query", now=NOW)
    second = data_protection.issue_verification_code(db_session, EMAIL, "query", now=NOW)
    assert db_session.query(models.VerificationCode).count() == 1
    if first != second:
        with pytest.raises(ValidationError):
            data_protection.verify_code(db_session, EMAIL, first, "query", now=NOW)
    data_protection.verify_code(db_session, EMAIL, second, "query", now=NOW)


def test_code_is_single_use(db_session: Session, make_booking):
    make_booking(email=EMAIL)
    code = data_protection.issue_verification_code(db_session, EMAIL, "query", now=NOW)
    data_protection.verify_code(db_session, EMAIL, code, "query", now=NOW)
    with pytest.raises(ValidationError):
        data_protection.verify_code(db_session, EMAIL, code, "query", now=NOW)


def test_expired_code_is_rejected(db_session: Session, make_booking):
    make_booking(email=EMAIL)
    code = data_protection.issue_verification_code(db_session, EMAIL, "query", now=NOW)
    with pytest.raises(ValidationError):
        data_protection.verify_code(db_session, EMAIL, code, "query", now=NOW + datetime.timedelta(minutes=16))
    assert db_session.get(models.VerificationCode, (EMAIL, "query")) is None


def test_code_is_bound_to_its_purpose(db_session: Session, make_booking):
    make_booking(email=EMAIL)
    code = data_protection.issue_verification_code(db_session, EMAIL, "query", now=NOW)
    with pytest.raises(ValidationError):
        data_protection.request_erasure(db_session, EMAIL, code, now=NOW)


def test_query_personal_data(db_session: Session, make_booking):
    booking = make_booking(email=EMAIL)
    code = data_protection.issue_verification_code(db_session, EMAIL, "query", now=NOW)
    data = data_protection.query_personal_data(db_session, EMAIL, code, now=NOW)
    assert data["guest_email"] == EMAIL
    assert [b.booking_id for b in data["bookings"]] == [booking.booking_id]


def test_request_erasure_anonymizes(db_session: Session, make_booking):
    booking = make_booking(email=EMAIL)
    code = data_protection.issue_verification_code(db_session, EMAIL, "delete", now=NOW)

    assert data_protection.request_erasure(db_session, EMAIL, code, now=NOW) == 1

    db_session.refresh(booking)
    assert booking.status == models.BookingStatus.DELETED
    assert booking.guest_email == "g***@example.com"
