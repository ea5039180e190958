from datetime import date, timedelta

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from bnb_booking import models, settings_service


def next_monday(weeks_ahead: int = 2) -> date:
    start = date.today() + timedelta(weeks=weeks_ahead)
    return start + timedelta(days=(0 - start.weekday()) % 7)


def create_booking(client: TestClient, **overrides) -> dict:
    check_in = next_monday()
    data = {
        "check_in_date": str(check_in),
        "check_out_date": str(check_in + timedelta(days=2)),
        "room_type": "deluxe",
        "guest_name": "Chen Mei",
        "guest_phone": "0912345678",
        "guest_email": "guest@example.com",
        "payment_method": "transfer",
    }
    data.update(overrides)
    response = client.post("/bookings", json=data)
    assert response.status_code == 201, response.text
    return response.json()


# --- Bookings ---

def test_list_bookings_filtered_by_status(client: TestClient, room_types):
    reserved = create_booking(client)
    create_booking(client, room_type="standard", payment_method="card", guest_email="card@example.com")

    response = client.get("/admin/bookings", params={"status": "reserved"})
    assert response.status_code == 200
    assert [b["booking_id"] for b in response.json()] == [reserved["booking_id"]]
    assert len(client.get("/admin/bookings").json()) == 2


def test_confirm_booking(client: TestClient, room_types):
    booking = create_booking(client)
    response = client.post(f"/admin/bookings/{booking['booking_id']}/confirm")
    assert response.status_code == 200
    assert response.json()["status"] == "active"
    assert response.json()["payment_status"] == "paid"


def test_illegal_transition_returns_409(client: TestClient, room_types):
    booking = create_booking(client)
    assert client.post(f"/admin/bookings/{booking['booking_id']}/cancel", json={"reason": "guest"}).status_code == 200

    response = client.patch(f"/admin/bookings/{booking['booking_id']}", json={"status": "active"})
    assert response.status_code == 409
    body = response.json()
    assert body["current"] == "cancelled"
    assert body["requested"] == "active"


def test_patch_requires_a_field(client: TestClient, room_types):
    booking = create_booking(client)
    assert client.patch(f"/admin/bookings/{booking['booking_id']}", json={}).status_code == 422


def test_delete_booking_only_when_cancelled(client: TestClient, room_types):
    booking = create_booking(client)
    assert client.delete(f"/admin/bookings/{booking['booking_id']}").status_code == 409

    client.post(f"/admin/bookings/{booking['booking_id']}/cancel")
    assert client.delete(f"/admin/bookings/{booking['booking_id']}").status_code == 204
    assert client.get(f"/admin/bookings/{booking['booking_id']}").status_code == 404


def test_unknown_booking_returns_404(client: TestClient):
    assert client.post("/admin/bookings/BK00000000/confirm").status_code == 404


def test_booking_calendar(client: TestClient, room_types):
    booking = create_booking(client)
    check_in = date.fromisoformat(booking["check_in_date"])
    response = client.get("/admin/bookings/calendar", params={
        "start_date": str(check_in), "end_date": str(check_in + timedelta(days=30)),
    })
    assert [b["booking_id"] for b in response.json()] == [booking["booking_id"]]


def test_edit_booking_moves_and_reprices(client: TestClient, room_types):
    booking = create_booking(client)
    new_check_in = date.fromisoformat(booking["check_in_date"]) + timedelta(weeks=1)

    response = client.put(f"/admin/bookings/{booking['booking_id']}", json={
        "check_in_date": str(new_check_in),
        "check_out_date": str(new_check_in + timedelta(days=3)),
        "guest_phone": "0987654321",
    })
    assert response.status_code == 200, response.text
    data = response.json()
    assert data["check_in_date"] == str(new_check_in)
    assert data["nights"] == 3
    assert data["total_amount"] == 6000
    assert data["guest_phone"] == "0987654321"
    assert data["status"] == "reserved"

    # The old nights are open again
    assert client.get("/room-availability", params={
        "check_in_date": booking["check_in_date"], "check_out_date": booking["check_out_date"],
    }).json()["unavailable"] == []


def test_edit_booking_conflict_returns_409(client: TestClient, room_types):
    first = create_booking(client)
    check_in = date.fromisoformat(first["check_in_date"])
    second = create_booking(client, check_in_date=str(check_in + timedelta(days=2)),
                            check_out_date=str(check_in + timedelta(days=4)), guest_email="b@example.com")

    response = client.put(f"/admin/bookings/{second['booking_id']}",
                          json={"check_in_date": str(check_in + timedelta(days=1))})
    assert response.status_code == 409
    assert client.put("/admin/bookings/BK00000000", json={"guest_name": "x"}).status_code == 404
    assert client.put(f"/admin/bookings/{second['booking_id']}", json={}).status_code == 422


def test_quick_booking(client: TestClient, db_session: Session, room_types):
    check_in = next_monday()
    response = client.post("/admin/bookings/quick", json={
        "check_in_date": str(check_in),
        "check_out_date": str(check_in + timedelta(days=2)),
        "room_type": "deluxe",
        "guest_name": "Phone Guest",
    })
    assert response.status_code == 201, response.text
    data = response.json()
    assert (data["status"], data["payment_status"], data["payment_method"]) == ("active", "paid", "other")
    assert data["total_amount"] == 0
    assert db_session.query(models.OutboxEvent).count() == 0

    # The dates are now blocked for guests
    guest = client.post("/bookings", json={
        "check_in_date": str(check_in), "check_out_date": str(check_in + timedelta(days=1)),
        "room_type": "deluxe", "guest_name": "Chen Mei", "guest_phone": "0912345678",
        "guest_email": "guest@example.com", "payment_method": "transfer",
    })
    assert guest.status_code == 409


def test_guests_cannot_pick_the_other_method(client: TestClient, room_types):
    check_in = next_monday()
    response = client.post("/bookings", json={
        "check_in_date": str(check_in), "check_out_date": str(check_in + timedelta(days=1)),
        "room_type": "deluxe", "guest_name": "Chen Mei", "guest_phone": "0912345678",
        "guest_email": "guest@example.com", "payment_method": "other",
    })
    assert response.status_code == 422


def test_dashboard_and_statistics(client: TestClient, room_types):
    create_booking(client)
    create_booking(client, room_type="standard", payment_method="card", guest_email="card@example.com")

    dashboard = client.get("/admin/dashboard")
    assert dashboard.status_code == 200
    body = dashboard.json()
    assert body["by_status"] == {"reserved": 1, "active": 1, "cancelled": 0, "deleted": 0}
    assert sum(body["new_bookings"].values()) == 2

    stats = client.get("/admin/statistics").json()
    assert stats["total_bookings"] == 2
    assert stats["total_revenue"] == 0
    assert {r["room_type_name"] for r in stats["by_room_type"]} == {"Deluxe", "Standard"}

    assert client.get("/admin/statistics", params={"start_date": "2025-03-01"}).status_code == 400


# --- Catalog ---

def test_room_type_crud(client: TestClient):
    created = client.post("/admin/room-types", json={
        "name": "family", "display_name": "Family Room", "price": 3200, "holiday_surcharge": 800,
    })
    assert created.status_code == 201
    room_type_id = created.json()["id"]

    assert client.post("/admin/room-types", json={
        "name": "family", "display_name": "Duplicate", "price": 1,
    }).status_code == 400

    updated = client.put(f"/admin/room-types/{room_type_id}", json={"price": 3500})
    assert updated.json()["price"] == 3500
    assert updated.json()["holiday_surcharge"] == 800

    assert client.delete(f"/admin/room-types/{room_type_id}").json() == {"result": "deleted"}
    assert client.put(f"/admin/room-types/{room_type_id}", json={"price": 1}).status_code == 404


def test_room_type_with_bookings_is_deactivated(client: TestClient, room_types):
    create_booking(client)
    response = client.delete(f"/admin/room-types/{room_types['deluxe'].id}")
    assert response.json() == {"result": "deactivated"}
    assert "deluxe" not in [r["name"] for r in client.get("/room-types").json()]
    assert "deluxe" in [r["name"] for r in client.get("/admin/room-types").json()]


def test_addon_crud(client: TestClient):
    created = client.post("/admin/addons", json={"name": "bike", "display_name": "Bicycle", "price": 300})
    assert created.status_code == 201
    addon_id = created.json()["id"]
    assert [a["name"] for a in client.get("/addons").json()] == ["bike"]

    client.put(f"/admin/addons/{addon_id}", json={"is_active": False})
    assert client.get("/addons").json() == []

    assert client.delete(f"/admin/addons/{addon_id}").status_code == 204
    assert client.delete(f"/admin/addons/{addon_id}").status_code == 404


def test_holiday_endpoints(client: TestClient):
    response = client.post("/admin/holidays", json={
        "start_date": "2026-01-28", "end_date": "2026-01-30", "holiday_name": "Lunar New Year",
    })
    assert response.json() == {"added": 3}
    assert client.post("/admin/holidays", json={"holiday_date": "2026-01-28"}).json() == {"added": 0}
    assert client.post("/admin/holidays", json={"holiday_name": "no date"}).status_code == 422
    assert len(client.get("/admin/holidays").json()) == 3

    assert client.delete("/admin/holidays/2026-01-29").status_code == 204
    assert client.delete("/admin/holidays/2026-01-29").status_code == 404


# --- Settings and templates ---

def test_settings_endpoints(client: TestClient, db_session: Session):
    response = client.put("/admin/settings/deposit_percentage", json={"value": "40"})
    assert response.status_code == 200
    assert settings_service.get_deposit_percentage(db_session) == 40

    response = client.put("/admin/settings/weekdays", json={"weekdays": [0, 1, 2, 3, 4]})
    assert response.json() == {"weekdays": [0, 1, 2, 3, 4]}
    assert client.put("/admin/settings/weekdays", json={"weekdays": [9]}).status_code == 400

    keys = [s["key"] for s in client.get("/admin/settings").json()]
    assert keys == ["deposit_percentage", "weekday_settings"]


def test_email_template_endpoints(client: TestClient, db_session: Session):
    settings_service.seed_email_templates(db_session)

    templates = client.get("/admin/email-templates").json()
    assert "payment_reminder" in [t["template_key"] for t in templates]

    response = client.put("/admin/email-templates/payment_reminder", json={"days_reserved": 5, "send_hour": 8})
    assert response.status_code == 200
    assert settings_service.get_days_reserved(db_session) == 5

    assert client.put("/admin/email-templates/payment_reminder", json={"send_hour": 24}).status_code == 422
    assert client.get("/admin/email-templates/nope").status_code == 404
    assert client.put("/admin/email-templates/nope", json={"subject": "x"}).status_code == 404


def test_days_reserved_setting_drives_deadline(client: TestClient, db_session: Session, room_types):
    settings_service.seed_email_templates(db_session)
    client.put("/admin/email-templates/payment_reminder", json={"days_reserved": 5})
    booking = create_booking(client)
    assert booking["days_reserved"] == 5


# --- Customers and scheduler ---

def test_customers(client: TestClient, room_types):
    booking = create_booking(client)
    client.post(f"/admin/bookings/{booking['booking_id']}/confirm")

    customers = client.get("/admin/customers").json()
    assert customers == [{
        "guest_email": "guest@example.com",
        "guest_name": "Chen Mei",
        "guest_phone": "0912345678",
        "booking_count": 1,
        "total_spent": 4000,
        "last_booking_at": customers[0]["last_booking_at"],
    }]

    detail = client.get("/admin/customers/guest@example.com").json()
    assert [b["booking_id"] for b in detail["bookings"]] == [booking["booking_id"]]
    assert client.get("/admin/customers/nobody@example.com").status_code == 404


def test_run_scheduler(client: TestClient, db_session: Session, room_types):
    create_booking(client)
    response = client.post("/admin/scheduler/run")
    assert response.status_code == 200
    assert set(response.json()) == {"cancelled", "payment_reminders", "checkin_reminders", "feedback_requests"}
    # The reservation was made moments ago and has days to go
    assert response.json()["cancelled"] == []
    assert db_session.query(models.Booking).first().status == models.BookingStatus.RESERVED
