"""Pytest configuration and common fixtures."""

import os

# Settings are read at import time; bootstrap them before any app imports.
os.environ.setdefault("DATABASE_URL", "postgresql://localhost:5432/suite_test")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-secret-for-suite-tests")
os.environ.setdefault("ENV", "testing")
os.environ["STRIPE_SECRET_KEY"] = ""
os.environ["BREVO_API_KEY"] = ""

from datetime import UTC, datetime, timedelta

import pytest
from jose import jwt

from app.models.appointment import Appointment, Booking, BookingPayment
from app.models.professional import ProfessionalProfile
from app.services.errors import PaymentError
from app.services.payment_gateway import IntentState


def make_token(sub: str = "client-1", email: str | None = "client@example.com", **extra) -> str:
    claims = {
        "sub": sub,
        "aud": "authenticated",
        "exp": datetime.now(UTC) + timedelta(hours=1),
        "email": email,
        "user_metadata": {"full_name": "Casey Client"},
    }
    claims.update(extra)
    return jwt.encode(claims, os.environ["SUPABASE_JWT_SECRET"], algorithm="HS256")


class FakeGateway:
    """Records payment calls; intents are seeded by id."""

    def __init__(self, intents: dict[str, IntentState] | None = None, failing: set[str] | None = None) -> None:
        self.intents = intents or {}
        self.failing = failing or set()
        self.calls: list[tuple] = []

    def retrieve(self, intent_id: str) -> IntentState:
        self.calls.append(("retrieve", intent_id))
        if intent_id in self.failing:
            raise PaymentError(f"Stripe error on {intent_id}: card_declined")
        return self.intents[intent_id]

    def capture(self, intent_id: str, amount_cents: int | None = None) -> int:
        self.calls.append(("capture", intent_id, amount_cents))
        return amount_cents if amount_cents is not None else self.intents[intent_id].amount

    def cancel(self, intent_id: str) -> None:
        self.calls.append(("cancel", intent_id))

    def refund(self, intent_id: str, amount_cents: int | None, metadata: dict[str, str]) -> int:
        self.calls.append(("refund", intent_id, amount_cents))
        return amount_cents or 0

    def money_calls(self) -> list[tuple]:
        return [c for c in self.calls if c[0] != "retrieve"]


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def professional():
    return ProfessionalProfile(
        id=7,
        user_id="pro-1",
        display_name="Pat Pro",
        timezone="America/New_York",
        working_hours=[
            {"day": "monday", "enabled": True, "startTime": "9:00 AM", "endTime": "12:00 PM"},
            {"day": "tuesday", "enabled": False, "startTime": "9:00 AM", "endTime": "5:00 PM"},
            {"day": "friday", "enabled": True, "startTime": "10:00", "endTime": "14:00"},
        ],
        cancellation_policy_enabled=True,
        cancellation_24h_charge_percentage=50,
        cancellation_48h_charge_percentage=25,
    )


@pytest.fixture
def booking():
    return Booking(
        id=11,
        client_id="client-1",
        professional_profile_id=7,
        service_id=3,
        status="confirmed",
    )


@pytest.fixture
def appointment_in_30h():
    start = datetime.now(UTC).replace(tzinfo=None) + timedelta(hours=30)
    return Appointment(id=5, booking_id=11, start_time=start, end_time=start + timedelta(hours=1))


@pytest.fixture
def payment():
    return BookingPayment(
        id=2,
        booking_id=11,
        amount=80.0,
        tip_amount=20.0,
        service_fee=1.0,
        balance_amount=101.0,
        stripe_payment_intent_id="pi_balance",
        status="authorized",
    )


@pytest.fixture
def token_factory():
    return make_token
