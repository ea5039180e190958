import datetime
import hmac
from fastapi import APIRouter, Depends, Header, HTTPException, Query, status, Request
from sqlalchemy.orm import Session
from typing import List

from .. import schemas, crud, availability, booking_service, holidays, lifecycle
from ..database import get_db
from ..config import settings

from fastapi_limiter.depends import RateLimiter


router = APIRouter(tags=["Bookings"])


async def get_client_ip(request: Request) -> str:
    """Public routes are limited per client IP; a proxy's forwarded address wins when present."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


public_limiter = RateLimiter(times=settings.PUBLIC_RATE_LIMIT_PER_MINUTE, minutes=1, identifier=get_client_ip)


async def verify_gateway_secret(x_gateway_secret: str | None = Header(default=None)):
    """Payment results are only accepted from the gateway, which sends the shared secret in X-Gateway-Secret."""
    expected = settings.PAYMENT_GATEWAY_SECRET
    if not expected or not x_gateway_secret or not hmac.compare_digest(x_gateway_secret.encode(), expected.encode()):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid gateway credentials"
        )


def _parse_addons(values: list[str]) -> list[dict]:
    """Query add-ons come as `name` or `name:quantity`."""
    selections = []
    for value in values:
        name, _, quantity = value.partition(":")
        try:
            selections.append({"name": name.strip(), "quantity": int(quantity) if quantity else 1})
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid add-on quantity in '{value}'."
            )
    return selections


@router.get("/room-types", response_model=List[schemas.RoomTypeRead], dependencies=[Depends(public_limiter)])
def read_room_types(db: Session = Depends(get_db)):
    return crud.list_active_room_types(db)


@router.get("/addons", response_model=List[schemas.AddonRead], dependencies=[Depends(public_limiter)])
def read_addons(db: Session = Depends(get_db)):
    return crud.list_active_addons(db)


@router.get("/room-availability", response_model=schemas.AvailabilityRead, dependencies=[Depends(public_limiter)])
def read_room_availability(
        check_in_date: datetime.date,
        check_out_date: datetime.date,
        db: Session = Depends(get_db),
):
    """
    Room type codes that are already taken for the requested stay.
    """
    unavailable = availability.unavailable_room_types(db, check_in_date, check_out_date)
    return schemas.AvailabilityRead(
        check_in_date=check_in_date,
        check_out_date=check_out_date,
        unavailable=sorted(unavailable),
    )


@router.get("/check-holiday", dependencies=[Depends(public_limiter)])
def check_holiday(date: datetime.date, db: Session = Depends(get_db)):
    return {"date": date, "is_holiday": holidays.is_holiday_or_weekend(db, date, include_weekend=True)}


@router.get("/calculate-price", response_model=schemas.QuoteRead, dependencies=[Depends(public_limiter)])
def calculate_price(
        room_type: str,
        check_in_date: datetime.date,
        check_out_date: datetime.date,
        is_deposit: bool = False,
        addons: List[str] = Query(default=[]),
        db: Session = Depends(get_db),
):
    """
    Quotes a stay without storing anything. Creating the same booking right
    afterwards charges exactly the quoted amount.
    """
    quote = booking_service.quote_price(
        db, room_type, check_in_date, check_out_date,
        addons=_parse_addons(addons), is_deposit=is_deposit,
    )
    return schemas.QuoteRead.from_quote(quote)


@router.post("/bookings", response_model=schemas.BookingRead, status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(public_limiter)])
def create_booking(booking: schemas.BookingCreate, db: Session = Depends(get_db)):
    """
    Create a new booking. Transfers are held as reservations until paid;
    card bookings wait for the gateway's payment result.
    """
    return booking_service.create_booking(db, booking)


@router.get("/bookings/{booking_id}", response_model=schemas.BookingRead, dependencies=[Depends(public_limiter)])
def read_booking(booking_id: str, db: Session = Depends(get_db)):
    db_booking = crud.get_booking(db, booking_id)
    if db_booking is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")
    return db_booking


@router.post("/payments/result", response_model=schemas.BookingRead,
             dependencies=[Depends(public_limiter), Depends(verify_gateway_secret)])
def payment_result(result: schemas.PaymentResult, db: Session = Depends(get_db)):
    """
    Callback for the payment gateway. A repeated success report for an
    already paid booking is accepted and changes nothing.
    """
    return lifecycle.record_payment_result(db, result.booking_id, result.success)
