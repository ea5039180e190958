import datetime
from datetime import date, timedelta

import pytest
from sqlalchemy.orm import Session

from bnb_booking import booking_service, crud, lifecycle, models, schemas
from bnb_booking.exceptions import ConflictError, ValidationError
from bnb_booking.models import BookingStatus, PaymentMethod, PaymentStatus

NOW = datetime.datetime(2025, 3, 1, 2, 0, 0)


def edit(db: Session, booking: models.Booking, **fields) -> models.Booking:
    return booking_service.edit_booking(db, booking.booking_id, schemas.BookingEdit(**fields), now=NOW)


def quick(db: Session, **fields) -> models.Booking:
    data = {"check_in_date": "2025-03-10", "check_out_date": "2025-03-12", "room_type": "deluxe",
            "guest_name": "Phone Guest"}
    data.update(fields)
    return booking_service.create_quick_booking(db, schemas.QuickBookingCreate(**data), now=NOW)


def claimed_nights(booking: models.Booking) -> list[date]:
    return sorted(n.night for n in booking.nights_claimed)


# --- Editing a booking ---

def test_move_stay_reprices_and_reclaims_nights(db_session: Session, make_booking):
    booking = make_booking(check_in="2025-03-10", check_out="2025-03-12")

    moved = edit(db_session, booking, check_in_date="2025-03-17", check_out_date="2025-03-20")

    assert (moved.check_in_date, moved.check_out_date, moved.nights) == (date(2025, 3, 17), date(2025, 3, 20), 3)
    assert moved.total_amount == 6000
    assert moved.final_amount == 6000
    assert claimed_nights(moved) == [date(2025, 3, 17), date(2025, 3, 18), date(2025, 3, 19)]

    # The old nights are free again
    other = make_booking(check_in="2025-03-10", check_out="2025-03-12", email="other@example.com")
    assert other.status == BookingStatus.RESERVED


def test_extend_stay_over_its_own_nights(db_session: Session, make_booking):
    booking = make_booking(check_in="2025-03-10", check_out="2025-03-12")
    extended = edit(db_session, booking, check_out_date="2025-03-13")
    assert extended.nights == 3
    assert claimed_nights(extended) == [date(2025, 3, 10), date(2025, 3, 11), date(2025, 3, 12)]


def test_move_onto_another_booking_conflicts(db_session: Session, make_booking):
    make_booking(check_in="2025-03-10", check_out="2025-03-12")
    second = make_booking(check_in="2025-03-12", check_out="2025-03-14", email="other@example.com")

    with pytest.raises(ConflictError):
        edit(db_session, second, check_in_date="2025-03-11", check_out_date="2025-03-13")

    db_session.refresh(second)
    assert second.check_in_date == date(2025, 3, 12)
    assert claimed_nights(second) == [date(2025, 3, 12), date(2025, 3, 13)]


def test_change_room_type(db_session: Session, make_booking):
    booking = make_booking(check_in="2025-03-10", check_out="2025-03-12")
    changed = edit(db_session, booking, room_type="standard")
    assert changed.room_type_name == "Standard"
    assert changed.total_amount == 3000
    assert {n.room_type_id for n in changed.nights_claimed} == {changed.room_type_id}


def test_add_ons_keep_booked_prices_unless_reselected(db_session: Session, make_booking, breakfast):
    booking = make_booking(check_in="2025-03-10", check_out="2025-03-12",
                           addons=[{"name": "breakfast", "quantity": 2}])
    breakfast.price = 300
    db_session.commit()

    moved = edit(db_session, booking, check_out_date="2025-03-13")
    assert moved.addons_total == 500

    reselected = edit(db_session, booking, addons=[{"name": "breakfast", "quantity": 1}])
    assert reselected.addons_total == 300
    assert reselected.addons == [{"name": "breakfast", "display_name": "Breakfast", "price": 300, "quantity": 1}]


def test_deposit_choice_is_repriced(db_session: Session, make_booking):
    db_session.add(models.Setting(key="deposit_percentage", value="30"))
    db_session.commit()
    booking = make_booking(check_in="2025-03-10", check_out="2025-03-12")

    deposit = edit(db_session, booking, is_deposit=True)
    assert (deposit.total_amount, deposit.final_amount, deposit.deposit_percentage) == (4000, 1200, 30)


def test_guest_details_edit_keeps_the_stay(db_session: Session, make_booking):
    booking = make_booking(check_in="2025-03-10", check_out="2025-03-12")
    edited = edit(db_session, booking, guest_name="Lin Wei", guest_email="Lin.Wei@Example.com", adults=2)
    assert (edited.guest_name, edited.guest_email, edited.adults) == ("Lin Wei", "lin.wei@example.com", 2)
    assert edited.total_amount == 4000
    assert edited.payment_deadline == NOW + timedelta(days=3)


def test_cancelled_booking_cannot_be_moved(db_session: Session, make_booking):
    booking = make_booking(check_in="2025-03-10", check_out="2025-03-12")
    lifecycle.cancel_booking(db_session, booking.booking_id)

    with pytest.raises(ValidationError):
        edit(db_session, booking, check_in_date="2025-03-17", check_out_date="2025-03-19")
    # Contact details can still be corrected
    assert edit(db_session, booking, guest_phone="0987654321").guest_phone == "0987654321"


def test_anonymized_booking_cannot_be_edited(db_session: Session, make_booking):
    booking = make_booking(email="gone@example.com")
    lifecycle.anonymize_customer_data(db_session, "gone@example.com")
    with pytest.raises(ValidationError):
        edit(db_session, booking, guest_name="Back Again")


def test_move_rejects_bad_ranges(db_session: Session, make_booking):
    booking = make_booking(check_in="2025-03-10", check_out="2025-03-12")
    with pytest.raises(ValidationError):
        edit(db_session, booking, check_out_date="2025-03-10")
    with pytest.raises(ValidationError):
        edit(db_session, booking, check_in_date="2025-02-20")


def test_empty_edit_is_rejected():
    with pytest.raises(ValueError):
        schemas.BookingEdit()


# --- Quick bookings ---

def test_quick_booking_blocks_dates_without_email(db_session: Session, room_types):
    booking = quick(db_session)

    assert (booking.payment_status, booking.status) == (PaymentStatus.PAID, BookingStatus.ACTIVE)
    assert booking.payment_method == PaymentMethod.OTHER
    assert (booking.total_amount, booking.final_amount, booking.amount_due) == (0, 0, 0)
    assert booking.email_history == []
    assert db_session.query(models.OutboxEvent).count() == 0
    assert claimed_nights(booking) == [date(2025, 3, 10), date(2025, 3, 11)]


def test_quick_booking_conflicts_with_online_booking(db_session: Session, make_booking):
    make_booking(check_in="2025-03-10", check_out="2025-03-12")
    with pytest.raises(ConflictError):
        quick(db_session, check_in_date="2025-03-11", check_out_date="2025-03-13")


def test_quick_booking_may_record_a_past_stay(db_session: Session, room_types):
    booking = quick(db_session, check_in_date="2025-02-01", check_out_date="2025-02-03")
    assert booking.nights == 2


def test_reserved_quick_booking_gets_a_deadline(db_session: Session, room_types):
    booking = quick(db_session, status="reserved", payment_status="pending", guest_email="phone@example.com")
    assert booking.payment_deadline == NOW + timedelta(days=3)

    # Paying it sends nothing, since the money is settled elsewhere
    paid = lifecycle.confirm_payment(db_session, booking.booking_id)
    assert (paid.payment_status, paid.status) == (PaymentStatus.PAID, BookingStatus.ACTIVE)
    assert paid.email_history == []


def test_quick_booking_state_rules():
    base = {"check_in_date": "2025-03-10", "check_out_date": "2025-03-12", "room_type": "deluxe",
            "guest_name": "Phone Guest"}
    with pytest.raises(ValueError):
        schemas.QuickBookingCreate(**base, status="reserved", payment_status="paid")
    with pytest.raises(ValueError):
        schemas.QuickBookingCreate(**base, status="cancelled")
    with pytest.raises(ValueError):
        schemas.QuickBookingCreate(**base, payment_status="refunded")


def test_online_booking_cannot_choose_other_method():
    with pytest.raises(ValueError):
        schemas.BookingCreate(
            check_in_date="2025-03-10", check_out_date="2025-03-12", room_type="deluxe",
            guest_name="Chen Mei", guest_phone="0912345678", guest_email="guest@example.com",
            payment_method="other",
        )


def test_quick_booking_without_email_is_not_a_customer(db_session: Session, room_types):
    quick(db_session)
    assert crud.list_customers(db_session) == []
