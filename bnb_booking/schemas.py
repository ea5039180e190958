import re
import datetime
from typing import Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .models import BookingStatus, PaymentStatus, PaymentMethod

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _normalize_email(v: str) -> str:
    v = v.strip().lower()
    if not EMAIL_RE.match(v) or len(v) > 255:
        raise ValueError("invalid email address")
    return v


# --- Catalog ---

class RoomTypeBase(BaseModel):
    display_name: str = Field(min_length=1, max_length=100)
    price: int = Field(ge=0, le=1_000_000)
    holiday_surcharge: int = 0
    max_occupancy: int = Field(default=0, ge=0)
    extra_beds: int = Field(default=0, ge=0)
    icon: str = "🏠"
    display_order: int = 0
    is_active: bool = True


class RoomTypeCreate(RoomTypeBase):
    name: str = Field(min_length=1, max_length=50)


class RoomTypeUpdate(BaseModel):
    display_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    price: Optional[int] = Field(default=None, ge=0, le=1_000_000)
    holiday_surcharge: Optional[int] = None
    max_occupancy: Optional[int] = Field(default=None, ge=0)
    extra_beds: Optional[int] = Field(default=None, ge=0)
    icon: Optional[str] = None
    display_order: Optional[int] = None
    is_active: Optional[bool] = None


class RoomTypeRead(RoomTypeCreate):
    id: int

    model_config = ConfigDict(from_attributes=True)


class AddonCreate(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    display_name: str = Field(min_length=1, max_length=100)
    price: int = Field(default=0, ge=0, le=100_000)
    icon: str = "➕"
    display_order: int = 0
    is_active: bool = True


class AddonUpdate(BaseModel):
    display_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    price: Optional[int] = Field(default=None, ge=0, le=100_000)
    icon: Optional[str] = None
    display_order: Optional[int] = None
    is_active: Optional[bool] = None


class AddonRead(AddonCreate):
    id: int

    model_config = ConfigDict(from_attributes=True)


class HolidayCreate(BaseModel):
    """Either a single holiday_date or an inclusive start_date..end_date range."""
    holiday_date: Optional[datetime.date] = None
    start_date: Optional[datetime.date] = None
    end_date: Optional[datetime.date] = None
    holiday_name: Optional[str] = Field(default=None, max_length=100)

    @model_validator(mode="after")
    def check_date_or_range(self):
        if self.holiday_date is None and (self.start_date is None or self.end_date is None):
            raise ValueError("provide holiday_date or both start_date and end_date")
        return self


class HolidayRead(BaseModel):
    holiday_date: datetime.date
    holiday_name: Optional[str]
    is_weekend: bool

    model_config = ConfigDict(from_attributes=True)


class SettingUpdate(BaseModel):
    value: str
    description: Optional[str] = None


class SettingRead(BaseModel):
    key: str
    value: Optional[str]
    description: Optional[str]

    model_config = ConfigDict(from_attributes=True)


class WeekdaySettingsUpdate(BaseModel):
    weekdays: list[int]


class EmailTemplateUpdate(BaseModel):
    template_name: Optional[str] = None
    subject: Optional[str] = None
    content: Optional[str] = None
    is_enabled: Optional[bool] = None
    days_reserved: Optional[int] = Field(default=None, ge=1, le=30)
    days_before_checkin: Optional[int] = Field(default=None, ge=0, le=30)
    days_after_checkout: Optional[int] = Field(default=None, ge=0, le=30)
    send_hour: Optional[int] = Field(default=None, ge=0, le=23)


class EmailTemplateRead(BaseModel):
    template_key: str
    template_name: str
    subject: str
    content: str
    is_enabled: bool
    days_reserved: Optional[int]
    days_before_checkin: Optional[int]
    days_after_checkout: Optional[int]
    send_hour: Optional[int]

    model_config = ConfigDict(from_attributes=True)


# --- Quotes and bookings ---

class AddonSelection(BaseModel):
    name: str
    quantity: int = Field(default=1, ge=1, le=99)


class NightlyRateRead(BaseModel):
    date: datetime.date
    is_holiday: bool
    price: int

    model_config = ConfigDict(from_attributes=True)


class QuoteRead(BaseModel):
    room_type_name: str
    check_in_date: datetime.date
    check_out_date: datetime.date
    nights: int
    nightly_rates: list[NightlyRateRead]
    total_amount: int
    average_price_per_night: int
    is_deposit: bool
    deposit_percentage: int
    final_amount: int
    addons_total: int
    amount_due: int

    @classmethod
    def from_quote(cls, quote) -> "QuoteRead":
        return cls(
            room_type_name=quote.room_type_name,
            check_in_date=quote.check_in_date,
            check_out_date=quote.check_out_date,
            nights=quote.nights,
            nightly_rates=[NightlyRateRead.model_validate(r) for r in quote.stay.nightly_rates],
            total_amount=quote.total_amount,
            average_price_per_night=quote.stay.average_price_per_night,
            is_deposit=quote.is_deposit,
            deposit_percentage=quote.deposit_percentage,
            final_amount=quote.final_amount,
            addons_total=quote.addons_total,
            amount_due=quote.amount_due,
        )


class AvailabilityRead(BaseModel):
    check_in_date: datetime.date
    check_out_date: datetime.date
    unavailable: list[str]


class BookingCreate(BaseModel):
    check_in_date: datetime.date
    check_out_date: datetime.date
    # Room type code or display name
    room_type: str
    guest_name: str = Field(min_length=1, max_length=100)
    guest_phone: str = Field(min_length=6, max_length=30)
    guest_email: str
    adults: int = Field(default=1, ge=1, le=20)
    children: int = Field(default=0, ge=0, le=20)
    payment_method: PaymentMethod
    is_deposit: bool = False
    addons: list[AddonSelection] = Field(default_factory=list)

    @field_validator("guest_email")
    @classmethod
    def check_email(cls, v: str) -> str:
        return _normalize_email(v)

    @field_validator("payment_method")
    @classmethod
    def check_online_method(cls, v: PaymentMethod) -> PaymentMethod:
        if v == PaymentMethod.OTHER:
            raise ValueError("online bookings pay by transfer or card")
        return v

    @field_validator("guest_name", "guest_phone")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class BookingRead(BaseModel):
    booking_id: str
    room_type_id: Optional[int]
    room_type_name: str
    check_in_date: datetime.date
    check_out_date: datetime.date
    guest_name: str
    guest_phone: str
    guest_email: str
    adults: int
    children: int
    price_per_night: int
    nights: int
    total_amount: int
    final_amount: int
    is_deposit: bool
    deposit_percentage: Optional[int]
    addons: Optional[list[dict]]
    addons_total: int
    amount_due: int
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    status: BookingStatus
    days_reserved: Optional[int]
    payment_deadline: Optional[datetime.datetime]
    email_history: list[str]
    created_at: datetime.datetime

    model_config = ConfigDict(from_attributes=True)


class BookingStatusUpdate(BaseModel):
    payment_status: Optional[PaymentStatus] = None
    status: Optional[BookingStatus] = None

    @model_validator(mode="after")
    def check_something_to_update(self):
        if self.payment_status is None and self.status is None:
            raise ValueError("nothing to update")
        return self


class BookingEdit(BaseModel):
    """Admin edit of a stored booking; only the fields sent are changed."""
    check_in_date: Optional[datetime.date] = None
    check_out_date: Optional[datetime.date] = None
    room_type: Optional[str] = None
    guest_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    guest_phone: Optional[str] = Field(default=None, min_length=6, max_length=30)
    guest_email: Optional[str] = None
    adults: Optional[int] = Field(default=None, ge=1, le=20)
    children: Optional[int] = Field(default=None, ge=0, le=20)
    is_deposit: Optional[bool] = None
    addons: Optional[list[AddonSelection]] = None

    @field_validator("guest_email")
    @classmethod
    def check_email(cls, v: Optional[str]) -> Optional[str]:
        return _normalize_email(v) if v is not None else v

    @field_validator("guest_name", "guest_phone")
    @classmethod
    def strip_text(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @model_validator(mode="after")
    def check_something_to_update(self):
        if not self.model_fields_set:
            raise ValueError("nothing to update")
        return self


class QuickBookingCreate(BaseModel):
    """
    Blocks dates for a stay arranged outside the booking flow (phone, other
    platforms). Nothing is charged here and no email is sent.
    """
    check_in_date: datetime.date
    check_out_date: datetime.date
    room_type: str
    guest_name: str = Field(min_length=1, max_length=100)
    guest_phone: str = Field(default="", max_length=30)
    guest_email: str = ""
    adults: int = Field(default=1, ge=0, le=20)
    children: int = Field(default=0, ge=0, le=20)
    status: BookingStatus = BookingStatus.ACTIVE
    payment_status: PaymentStatus = PaymentStatus.PAID

    @field_validator("guest_email")
    @classmethod
    def check_email(cls, v: str) -> str:
        return _normalize_email(v) if v.strip() else ""

    @field_validator("guest_name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @model_validator(mode="after")
    def check_states(self):
        if self.status not in (BookingStatus.ACTIVE, BookingStatus.RESERVED):
            raise ValueError("a quick booking is active or reserved")
        if self.payment_status not in (PaymentStatus.PAID, PaymentStatus.PENDING):
            raise ValueError("a quick booking is paid or pending")
        if self.status == BookingStatus.RESERVED and self.payment_status == PaymentStatus.PAID:
            raise ValueError("a paid booking is active, not reserved")
        return self


class CancelRequest(BaseModel):
    reason: str = "admin"


class PaymentResult(BaseModel):
    booking_id: str
    success: bool


class CustomerRead(BaseModel):
    guest_email: str
    guest_name: str
    guest_phone: str
    booking_count: int
    total_spent: int
    last_booking_at: Optional[datetime.datetime]


class CustomerDetailRead(CustomerRead):
    bookings: list[BookingRead]


class SchedulerRunResult(BaseModel):
    cancelled: list[str]
    payment_reminders: list[str]
    checkin_reminders: list[str]
    feedback_requests: list[str]


# --- Data protection ---

class VerificationCodeRequest(BaseModel):
    email: str
    purpose: Literal["query", "delete"]

    @field_validator("email")
    @classmethod
    def check_email(cls, v: str) -> str:
        return _normalize_email(v)


class VerificationSubmit(BaseModel):
    email: str
    code: str = Field(min_length=6, max_length=6)

    @field_validator("email")
    @classmethod
    def check_email(cls, v: str) -> str:
        return _normalize_email(v)


# --- Dashboard ---

class DashboardRead(BaseModel):
    date: datetime.date
    check_ins: int
    check_outs: int
    new_bookings: dict[str, int]
    by_status: dict[str, int]


class RoomTypeCount(BaseModel):
    room_type_name: str
    count: int


class StatisticsRead(BaseModel):
    start_date: Optional[datetime.date]
    end_date: Optional[datetime.date]
    total_bookings: int
    total_revenue: int
    by_room_type: list[RoomTypeCount]
    recent_bookings: int
