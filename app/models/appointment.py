from datetime import UTC, date, datetime

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


def _utc_naive_now() -> datetime:
    """Naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


class Booking(SQLModel, table=True):
    __tablename__ = "bookings"
    id: int | None = Field(default=None, primary_key=True)
    client_id: str = Field(index=True)
    client_email: str | None = None
    client_name: str | None = None
    professional_profile_id: int = Field(foreign_key="professional_profiles.id", index=True)
    service_id: int = Field(foreign_key="services.id")
    extra_service_ids: list[int] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    status: str = Field(default="confirmed", index=True)  # confirmed | cancelled | completed
    notes: str | None = None
    cancellation_reason: str | None = None
    created_at: datetime = Field(default_factory=_utc_naive_now)


class Appointment(SQLModel, table=True):
    __tablename__ = "appointments"
    id: int | None = Field(default=None, primary_key=True)
    booking_id: int = Field(foreign_key="bookings.id", unique=True, index=True)
    start_time: datetime = Field(index=True)  # naive UTC
    end_time: datetime


class BookingPayment(SQLModel, table=True):
    __tablename__ = "booking_payments"
    id: int | None = Field(default=None, primary_key=True)
    booking_id: int = Field(foreign_key="bookings.id", unique=True, index=True)
    amount: float  # service price plus add-ons, dollars
    tip_amount: float = 0.0
    service_fee: float = 0.0
    deposit_amount: float = 0.0
    balance_amount: float = 0.0
    stripe_payment_intent_id: str | None = None
    deposit_payment_intent_id: str | None = None
    status: str = "pending"
    refunded_amount: float = 0.0


class BookingCreate(SQLModel):
    professional_profile_id: int
    service_id: int
    extra_service_ids: list[int] = Field(default_factory=list)
    appointment_date: date
    time_slot: str
    notes: str | None = None
    tip_amount: float = Field(default=0.0, ge=0)


class BookingPublic(SQLModel):
    id: int
    client_id: str
    professional_profile_id: int
    service_id: int
    status: str
    start_time: datetime | None = None
    end_time: datetime | None = None
    notes: str | None = None
    cancellation_reason: str | None = None
    created_at: datetime
