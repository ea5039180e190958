from sqlalchemy import (
    Column, Integer, String, Text, Date, TIMESTAMP, Boolean, JSON, ForeignKey, Index, UniqueConstraint,
)
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import relationship
from enum import Enum as PyEnum

from .database import Base
from .clock import utcnow


class BookingStatus(str, PyEnum):
    RESERVED = "reserved"
    ACTIVE = "active"
    CANCELLED = "cancelled"
    DELETED = "deleted"


class PaymentStatus(str, PyEnum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, PyEnum):
    TRANSFER = "transfer"
    CARD = "card"
    # Settled outside the booking flow, set by admin quick bookings
    OTHER = "other"


# Bookings in these states hold their nights
BLOCKING_STATUSES = (BookingStatus.ACTIVE, BookingStatus.RESERVED)


class RoomType(Base):
    __tablename__ = "room_types"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), unique=True, nullable=False)
    display_name = Column(String(100), nullable=False)

    price = Column(Integer, nullable=False)
    holiday_surcharge = Column(Integer, default=0, nullable=False)

    max_occupancy = Column(Integer, default=0, nullable=False)
    extra_beds = Column(Integer, default=0, nullable=False)
    icon = Column(String(20), default="🏠")
    display_order = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(TIMESTAMP, default=utcnow)
    updated_at = Column(TIMESTAMP, default=utcnow, onupdate=utcnow)


class Addon(Base):
    __tablename__ = "addons"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), unique=True, nullable=False)
    display_name = Column(String(100), nullable=False)
    price = Column(Integer, default=0, nullable=False)
    icon = Column(String(20), default="➕")
    display_order = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(TIMESTAMP, default=utcnow)
    updated_at = Column(TIMESTAMP, default=utcnow, onupdate=utcnow)


class Holiday(Base):
    __tablename__ = "holidays"

    id = Column(Integer, primary_key=True, index=True)
    holiday_date = Column(Date, unique=True, nullable=False)
    holiday_name = Column(String(100), nullable=True)

    # Auto-derived weekend rows are kept out of manual deletion
    is_weekend = Column(Boolean, default=False, nullable=False)

    created_at = Column(TIMESTAMP, default=utcnow)


class Setting(Base):
    __tablename__ = "settings"

    key = Column(String(80), primary_key=True)
    value = Column(Text, nullable=True)
    description = Column(String(255), nullable=True)
    updated_at = Column(TIMESTAMP, default=utcnow, onupdate=utcnow)


class EmailTemplate(Base):
    __tablename__ = "email_templates"

    id = Column(Integer, primary_key=True, index=True)
    template_key = Column(String(50), unique=True, nullable=False)
    template_name = Column(String(100), nullable=False)
    subject = Column(String(255), nullable=False, default="")
    content = Column(Text, nullable=False, default="")
    is_enabled = Column(Boolean, default=True, nullable=False)

    # Scheduling parameters read by the reminder queries
    days_reserved = Column(Integer, nullable=True)
    days_before_checkin = Column(Integer, nullable=True)
    days_after_checkout = Column(Integer, nullable=True)
    send_hour = Column(Integer, nullable=True)

    updated_at = Column(TIMESTAMP, default=utcnow, onupdate=utcnow)


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(String(20), unique=True, index=True, nullable=False)

    # Rows imported from the old schema may only carry the display name
    room_type_id = Column(Integer, ForeignKey("room_types.id"), index=True, nullable=True)
    room_type_name = Column(String(100), nullable=False)

    check_in_date = Column(Date, nullable=False)
    check_out_date = Column(Date, nullable=False)

    guest_name = Column(String(100), nullable=False)
    guest_phone = Column(String(30), nullable=False)
    guest_email = Column(String(255), index=True, nullable=False)
    adults = Column(Integer, default=1, nullable=False)
    children = Column(Integer, default=0, nullable=False)

    price_per_night = Column(Integer, nullable=False)
    nights = Column(Integer, nullable=False)
    total_amount = Column(Integer, nullable=False)
    final_amount = Column(Integer, nullable=False)
    is_deposit = Column(Boolean, default=False, nullable=False)
    deposit_percentage = Column(Integer, nullable=True)

    addons = Column(JSON, nullable=True)
    addons_total = Column(Integer, default=0, nullable=False)

    payment_method = Column(SQLEnum(PaymentMethod), nullable=False)
    payment_status = Column(SQLEnum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False)
    status = Column(SQLEnum(BookingStatus), default=BookingStatus.ACTIVE, nullable=False)

    days_reserved = Column(Integer, nullable=True)
    payment_deadline = Column(TIMESTAMP, nullable=True)

    created_at = Column(TIMESTAMP, default=utcnow, nullable=False)
    updated_at = Column(TIMESTAMP, default=utcnow, onupdate=utcnow)

    room_type = relationship("RoomType")
    nights_claimed = relationship("BookingNight", back_populates="booking", cascade="all, delete-orphan")
    emails = relationship(
        "BookingEmail", back_populates="booking", cascade="all, delete-orphan", order_by="BookingEmail.id"
    )

    __table_args__ = (
        Index("ix_bookings_status_payment_status", "status", "payment_status"),
        Index("ix_bookings_room_type_dates", "room_type_id", "check_in_date", "check_out_date"),
    )

    @property
    def amount_due(self) -> int:
        """Room amount owed plus add-ons, which are never split by the deposit."""
        return (self.final_amount or 0) + (self.addons_total or 0)

    @property
    def email_history(self) -> list[str]:
        return [e.template_key for e in self.emails]


class BookingNight(Base):
    """One claimed night of a room type; the unique key stops double-booking at commit."""
    __tablename__ = "booking_nights"

    id = Column(Integer, primary_key=True)
    booking_pk = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    room_type_id = Column(Integer, ForeignKey("room_types.id"), nullable=False)
    night = Column(Date, nullable=False)

    booking = relationship("Booking", back_populates="nights_claimed")

    __table_args__ = (
        UniqueConstraint("room_type_id", "night", name="uq_booking_nights_room_type_night"),
    )


class BookingEmail(Base):
    __tablename__ = "booking_emails"

    id = Column(Integer, primary_key=True)
    booking_pk = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    template_key = Column(String(50), nullable=False)
    sent_at = Column(TIMESTAMP, default=utcnow, nullable=False)

    booking = relationship("Booking", back_populates="emails")

    __table_args__ = (
        UniqueConstraint("booking_pk", "template_key", name="uq_booking_emails_booking_template"),
    )


class VerificationCode(Base):
    __tablename__ = "verification_codes"

    subject = Column(String(255), primary_key=True)
    purpose = Column(String(20), primary_key=True)
    code = Column(String(10), nullable=False)
    expires_at = Column(TIMESTAMP, nullable=False)
    created_at = Column(TIMESTAMP, default=utcnow)


class OutboxEvent(Base):
    __tablename__ = "outbox_events"

    id = Column(Integer, primary_key=True, index=True)

    # PENDING until the poller hands it to Kafka, then SENT
    status = Column(String(20), default="PENDING", nullable=False)
    topic = Column(String(255), nullable=False)
    payload = Column(Text, nullable=False)

    created_at = Column(TIMESTAMP, default=utcnow)
    sent_at = Column(TIMESTAMP, nullable=True)

    __table_args__ = (
        Index('ix_outbox_events_status', 'status'),
    )
