from typing import Literal

from pydantic import BaseModel, Field

from app.models.appointment import BookingPublic


class ChargeInfoOut(BaseModel):
    percentage: float
    amount: float
    time_until_appointment: float  # hours


class CancellationPreviewResponse(BaseModel):
    booking_id: int
    policy: Literal["no_policy", "charge", "not_cancellable"]
    charge: ChargeInfoOut | None = None
    reason: str | None = None
    is_professional: bool


class CancelBookingRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class CancellationResponse(BaseModel):
    booking: BookingPublic
    policy: Literal["no_policy", "charge"]
    charge_amount: float
    refund_amount: float
    payment_status: str | None = None
    payment_error: str | None = None


class ActivityRequest(BaseModel):
    activity_type: str = Field(..., min_length=1, max_length=64)
    path: str | None = None


class ActivityResponse(BaseModel):
    session_id: str
