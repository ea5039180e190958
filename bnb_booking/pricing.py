"""
Stay pricing.

Every night in [check_in, check_out) is charged the room's base price, plus
the holiday surcharge when the night is a holiday. The check-out date is not
a charged night. A deposit is a percentage of the room cost only; add-ons are
always charged in full on top of it.
"""
import datetime
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from sqlalchemy.orm import Session

from . import models, settings_service
from .holidays import HolidayCalendar, load_calendar
from .exceptions import ValidationError


@dataclass(frozen=True)
class NightlyRate:
    date: datetime.date
    is_holiday: bool
    price: int


@dataclass(frozen=True)
class StayPrice:
    nightly_rates: list[NightlyRate]
    total_amount: int
    nights: int

    @property
    def average_price_per_night(self) -> int:
        return round_half_up(Decimal(self.total_amount) / Decimal(self.nights))


@dataclass(frozen=True)
class AddonLine:
    name: str
    display_name: str
    price: int
    quantity: int = 1

    @property
    def line_total(self) -> int:
        return self.price * self.quantity

    def snapshot(self) -> dict:
        return {"name": self.name, "display_name": self.display_name, "price": self.price, "quantity": self.quantity}


@dataclass(frozen=True)
class Quote:
    room_type_id: int
    room_type_name: str
    check_in_date: datetime.date
    check_out_date: datetime.date
    stay: StayPrice
    is_deposit: bool
    deposit_percentage: int
    final_amount: int
    addons: list[AddonLine] = field(default_factory=list)

    @property
    def nights(self) -> int:
        return self.stay.nights

    @property
    def total_amount(self) -> int:
        return self.stay.total_amount

    @property
    def addons_total(self) -> int:
        return sum(a.line_total for a in self.addons)

    @property
    def amount_due(self) -> int:
        return self.final_amount + self.addons_total


def round_half_up(value) -> int:
    """Rounds to a whole currency unit, halves away from zero."""
    return int(Decimal(value).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def count_nights(check_in: datetime.date, check_out: datetime.date) -> int:
    nights = (check_out - check_in).days
    if nights < 1:
        raise ValidationError("Check-out date must be after check-in date.")
    return nights


def price_for_stay(room_type: models.RoomType, check_in: datetime.date, check_out: datetime.date,
                   calendar: HolidayCalendar) -> StayPrice:
    nights = count_nights(check_in, check_out)
    base = room_type.price or 0
    surcharge = room_type.holiday_surcharge or 0

    rates = []
    for offset in range(nights):
        day = check_in + datetime.timedelta(days=offset)
        holiday = calendar.is_holiday_or_weekend(day)
        rates.append(NightlyRate(date=day, is_holiday=holiday, price=base + surcharge if holiday else base))

    return StayPrice(nightly_rates=rates, total_amount=sum(r.price for r in rates), nights=nights)


def deposit_amount(total_amount: int, deposit_percentage: int) -> int:
    return round_half_up(Decimal(total_amount) * Decimal(deposit_percentage) / Decimal(100))


def resolve_addons(db: Session, selections: list[dict] | None) -> list[AddonLine]:
    """Prices each selected add-on from the catalog; client-sent prices are ignored."""
    lines = []
    for selection in selections or []:
        name = selection.get("name")
        quantity = selection.get("quantity", 1)
        if quantity is None or quantity < 1:
            raise ValidationError(f"Add-on '{name}' quantity must be at least 1.")
        addon = db.query(models.Addon).filter(models.Addon.name == name).first()
        if addon is None or not addon.is_active:
            raise ValidationError(f"Unknown add-on '{name}'.")
        lines.append(AddonLine(name=addon.name, display_name=addon.display_name, price=addon.price, quantity=quantity))
    return lines


def quote_price(db: Session, room_type: models.RoomType, check_in: datetime.date, check_out: datetime.date,
                addons: list[dict] | None = None, is_deposit: bool = False) -> Quote:
    count_nights(check_in, check_out)
    calendar = load_calendar(db, check_in, check_out)
    stay = price_for_stay(room_type, check_in, check_out, calendar)

    pct = settings_service.get_deposit_percentage(db) if is_deposit else 100
    final = deposit_amount(stay.total_amount, pct) if is_deposit else stay.total_amount

    return Quote(
        room_type_id=room_type.id,
        room_type_name=room_type.display_name,
        check_in_date=check_in,
        check_out_date=check_out,
        stay=stay,
        is_deposit=is_deposit,
        deposit_percentage=pct,
        final_amount=final,
        addons=resolve_addons(db, addons),
    )
