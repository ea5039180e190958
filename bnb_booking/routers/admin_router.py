import datetime
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session
from typing import List, Optional

from .. import schemas, crud, holidays, lifecycle, settings_service, booking_scheduler, booking_service, dashboard
from ..database import get_db
from ..models import BookingStatus


router = APIRouter(prefix="/admin", tags=["Admin"])


# --- Bookings ---

@router.get("/bookings", response_model=List[schemas.BookingRead])
def read_bookings(
        status_filter: Optional[BookingStatus] = Query(default=None, alias="status"),
        skip: int = 0,
        limit: int = 100,
        db: Session = Depends(get_db),
):
    return crud.list_bookings(db, status=status_filter, skip=skip, limit=limit)


@router.post("/bookings/quick", response_model=schemas.BookingRead, status_code=status.HTTP_201_CREATED)
def create_quick_booking(booking: schemas.QuickBookingCreate, db: Session = Depends(get_db)):
    """Blocks dates for a booking taken by phone or on another platform. No email is sent."""
    return booking_service.create_quick_booking(db, booking)


@router.get("/bookings/calendar", response_model=List[schemas.BookingRead])
def read_booking_calendar(start_date: datetime.date, end_date: datetime.date, db: Session = Depends(get_db)):
    if end_date < start_date:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="end_date must not be before start_date")
    return crud.list_bookings_in_range(db, start_date, end_date)


@router.get("/bookings/{booking_id}", response_model=schemas.BookingRead)
def read_booking(booking_id: str, db: Session = Depends(get_db)):
    db_booking = crud.get_booking(db, booking_id)
    if db_booking is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")
    return db_booking


@router.put("/bookings/{booking_id}", response_model=schemas.BookingRead)
def edit_booking(booking_id: str, update: schemas.BookingEdit, db: Session = Depends(get_db)):
    """
    Edits guest details or moves the stay. A moved stay is checked for
    conflicts and priced again.
    """
    return booking_service.edit_booking(db, booking_id, update)


@router.patch("/bookings/{booking_id}", response_model=schemas.BookingRead)
def update_booking(booking_id: str, update: schemas.BookingStatusUpdate, db: Session = Depends(get_db)):
    """
    Changes the status and/or payment status. Only moves allowed by the
    lifecycle tables are accepted; anything else answers 409.
    """
    return lifecycle.update_booking_status(db, booking_id, payment_status=update.payment_status, status=update.status)


@router.post("/bookings/{booking_id}/confirm", response_model=schemas.BookingRead)
def confirm_booking(booking_id: str, db: Session = Depends(get_db)):
    return lifecycle.confirm_payment(db, booking_id)


@router.post("/bookings/{booking_id}/cancel", response_model=schemas.BookingRead)
def cancel_booking(booking_id: str, request: Optional[schemas.CancelRequest] = None, db: Session = Depends(get_db)):
    reason = request.reason if request else "admin"
    return lifecycle.cancel_booking(db, booking_id, reason)


@router.post("/bookings/{booking_id}/refund", response_model=schemas.BookingRead)
def refund_booking(booking_id: str, db: Session = Depends(get_db)):
    return lifecycle.refund_payment(db, booking_id)


@router.delete("/bookings/{booking_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_booking(booking_id: str, db: Session = Depends(get_db)):
    lifecycle.hard_delete_booking(db, booking_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Room types ---

@router.get("/room-types", response_model=List[schemas.RoomTypeRead])
def read_room_types(db: Session = Depends(get_db)):
    return crud.list_room_types(db)


@router.post("/room-types", response_model=schemas.RoomTypeRead, status_code=status.HTTP_201_CREATED)
def create_room_type(room_type: schemas.RoomTypeCreate, db: Session = Depends(get_db)):
    return crud.create_room_type(db, room_type)


@router.put("/room-types/{room_type_id}", response_model=schemas.RoomTypeRead)
def update_room_type(room_type_id: int, data: schemas.RoomTypeUpdate, db: Session = Depends(get_db)):
    return crud.update_room_type(db, room_type_id, data)


@router.delete("/room-types/{room_type_id}")
def delete_room_type(room_type_id: int, db: Session = Depends(get_db)):
    """Room types that have bookings are deactivated instead of removed."""
    return {"result": crud.delete_room_type(db, room_type_id)}


# --- Add-ons ---

@router.get("/addons", response_model=List[schemas.AddonRead])
def read_addons(db: Session = Depends(get_db)):
    return crud.list_addons(db)


@router.post("/addons", response_model=schemas.AddonRead, status_code=status.HTTP_201_CREATED)
def create_addon(addon: schemas.AddonCreate, db: Session = Depends(get_db)):
    return crud.create_addon(db, addon)


@router.put("/addons/{addon_id}", response_model=schemas.AddonRead)
def update_addon(addon_id: int, data: schemas.AddonUpdate, db: Session = Depends(get_db)):
    return crud.update_addon(db, addon_id, data)


@router.delete("/addons/{addon_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_addon(addon_id: int, db: Session = Depends(get_db)):
    if not crud.delete_addon(db, addon_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Add-on not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Holidays ---

@router.get("/holidays", response_model=List[schemas.HolidayRead])
def read_holidays(db: Session = Depends(get_db)):
    return holidays.list_holidays(db)


@router.post("/holidays", status_code=status.HTTP_201_CREATED)
def create_holiday(holiday: schemas.HolidayCreate, db: Session = Depends(get_db)):
    if holiday.holiday_date is not None:
        added = 1 if holidays.add_holiday(db, holiday.holiday_date, holiday.holiday_name) else 0
    else:
        added = holidays.add_holiday_range(db, holiday.start_date, holiday.end_date, holiday.holiday_name)
    return {"added": added}


@router.delete("/holidays/{holiday_date}", status_code=status.HTTP_204_NO_CONTENT)
def delete_holiday(holiday_date: datetime.date, db: Session = Depends(get_db)):
    holidays.delete_holiday(db, holiday_date)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Settings ---

@router.get("/settings", response_model=List[schemas.SettingRead])
def read_settings(db: Session = Depends(get_db)):
    return settings_service.get_all_settings(db)


@router.put("/settings/weekdays")
def update_business_weekdays(data: schemas.WeekdaySettingsUpdate, db: Session = Depends(get_db)):
    weekdays = settings_service.set_business_weekdays(db, data.weekdays)
    return {"weekdays": sorted(weekdays)}


@router.put("/settings/{key}", response_model=schemas.SettingRead)
def update_setting(key: str, data: schemas.SettingUpdate, db: Session = Depends(get_db)):
    return settings_service.update_setting(db, key, data.value, data.description)


# --- Email templates ---

@router.get("/email-templates", response_model=List[schemas.EmailTemplateRead])
def read_email_templates(db: Session = Depends(get_db)):
    return settings_service.list_email_templates(db)


@router.get("/email-templates/{template_key}", response_model=schemas.EmailTemplateRead)
def read_email_template(template_key: str, db: Session = Depends(get_db)):
    template = settings_service.get_email_template(db, template_key)
    if template is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Email template not found")
    return template


@router.put("/email-templates/{template_key}", response_model=schemas.EmailTemplateRead)
def update_email_template(template_key: str, data: schemas.EmailTemplateUpdate, db: Session = Depends(get_db)):
    return settings_service.update_email_template(db, template_key, data.model_dump(exclude_unset=True))


# --- Customers ---

@router.get("/customers", response_model=List[schemas.CustomerRead])
def read_customers(db: Session = Depends(get_db)):
    return crud.list_customers(db)


@router.get("/customers/{email}", response_model=schemas.CustomerDetailRead)
def read_customer(email: str, db: Session = Depends(get_db)):
    customer = crud.get_customer(db, email.strip().lower())
    if customer is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer not found")
    return customer


# --- Scheduler ---

@router.post("/scheduler/run", response_model=schemas.SchedulerRunResult)
def run_scheduler(db: Session = Depends(get_db)):
    """Runs one scheduler cycle now instead of waiting for the next poll."""
    return booking_scheduler.run_scheduler_cycle(db)


# --- Dashboard ---

@router.get("/dashboard", response_model=schemas.DashboardRead)
def read_dashboard(db: Session = Depends(get_db)):
    return dashboard.today_summary(db)


@router.get("/statistics", response_model=schemas.StatisticsRead)
def read_statistics(
        start_date: Optional[datetime.date] = None,
        end_date: Optional[datetime.date] = None,
        db: Session = Depends(get_db),
):
    return dashboard.booking_statistics(db, start_date, end_date)
