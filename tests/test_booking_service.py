"""Tests for booking creation and cancellation orchestration."""

from datetime import UTC, date, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock
from zoneinfo import ZoneInfo

import pytest

from app.models.appointment import BookingCreate, BookingPayment
from app.models.service import Service
from app.services import booking_service
from app.services.booking_service import (
    CancellationContext,
    cancel_booking,
    create_booking,
    evaluate_context,
    settle_cancellation_payment,
)
from app.services.errors import BookingNotFoundError, NotCancellableError, SlotUnavailableError
from app.services.payment_gateway import IntentState
from app.services.slot_service import local_to_utc_naive


def _next_monday() -> date:
    today = datetime.now(UTC).date()
    return today + timedelta(days=(7 - today.weekday()) % 7 + 7)


def _mock_session():
    session = MagicMock()
    session.flush = AsyncMock()
    session.refresh = AsyncMock()
    return session


def _context(booking, appointment, payment, professional, is_professional=False):
    return CancellationContext(
        booking=booking,
        appointment=appointment,
        payment=payment,
        professional=professional,
        is_professional=is_professional,
    )


class TestSettleCancellationPayment:
    def test_captures_fee_on_authorised_balance(self, fake_gateway, payment):
        fake_gateway.intents["pi_balance"] = IntentState("requires_capture", 10100)
        settle_cancellation_payment(fake_gateway, payment, 2500, False, 11, "sick")
        assert fake_gateway.money_calls() == [("capture", "pi_balance", 2600)]

    def test_free_client_cancellation_captures_service_fee(self, fake_gateway, payment):
        fake_gateway.intents["pi_balance"] = IntentState("requires_capture", 10100)
        settle_cancellation_payment(fake_gateway, payment, 0, False, 11, "sick")
        assert fake_gateway.money_calls() == [("capture", "pi_balance", 100)]

    def test_professional_releases_authorisation(self, fake_gateway, payment):
        fake_gateway.intents["pi_balance"] = IntentState("requires_capture", 10100)
        settle_cancellation_payment(fake_gateway, payment, 0, True, 11, "double booked")
        assert fake_gateway.money_calls() == [("cancel", "pi_balance")]

    def test_fee_covering_whole_balance_captures_all(self, fake_gateway, payment):
        fake_gateway.intents["pi_balance"] = IntentState("requires_capture", 5000)
        settle_cancellation_payment(fake_gateway, payment, 5000, False, 11, "sick")
        assert fake_gateway.money_calls() == [("capture", "pi_balance", None)]

    def test_client_refund_keeps_service_fee(self, fake_gateway, payment):
        fake_gateway.intents["pi_balance"] = IntentState("succeeded", 10100)
        settle_cancellation_payment(fake_gateway, payment, 0, False, 11, "sick")
        assert fake_gateway.money_calls() == [("refund", "pi_balance", 10000)]

    def test_client_refund_keeps_charge(self, fake_gateway, payment):
        fake_gateway.intents["pi_balance"] = IntentState("succeeded", 10100)
        settle_cancellation_payment(fake_gateway, payment, 2500, False, 11, "sick")
        assert fake_gateway.money_calls() == [("refund", "pi_balance", 7500)]

    def test_professional_refund_returns_everything(self, fake_gateway, payment):
        fake_gateway.intents["pi_balance"] = IntentState("succeeded", 10100)
        settle_cancellation_payment(fake_gateway, payment, 0, True, 11, "double booked")
        assert fake_gateway.money_calls() == [("refund", "pi_balance", 10100)]

    def test_fee_split_across_deposit_and_balance(self, fake_gateway):
        payment = BookingPayment(
            booking_id=11,
            amount=100.0,
            service_fee=1.0,
            deposit_amount=20.0,
            deposit_payment_intent_id="pi_deposit",
            stripe_payment_intent_id="pi_balance",
        )
        fake_gateway.intents.update(
            pi_deposit=IntentState("requires_capture", 2000),
            pi_balance=IntentState("requires_capture", 8100),
        )
        settle_cancellation_payment(fake_gateway, payment, 5000, False, 11, "sick")
        assert fake_gateway.money_calls() == [
            ("capture", "pi_deposit", 1000),
            ("capture", "pi_balance", 4100),
        ]

    def test_paid_deposit_is_refunded_less_its_share(self, fake_gateway):
        payment = BookingPayment(
            booking_id=11,
            amount=100.0,
            deposit_amount=20.0,
            deposit_payment_intent_id="pi_deposit",
        )
        fake_gateway.intents["pi_deposit"] = IntentState("succeeded", 2000)
        settle_cancellation_payment(fake_gateway, payment, 5000, False, 11, "sick")
        assert fake_gateway.money_calls() == [("refund", "pi_deposit", 1000)]


class TestEvaluateContext:
    def test_client_pays_policy_fee(self, booking, appointment_in_30h, payment, professional):
        outcome = evaluate_context(_context(booking, appointment_in_30h, payment, professional))
        assert outcome.kind == "charge"
        assert outcome.charge.percentage == 25
        assert outcome.charge.amount == 25.0

    def test_professional_never_pays(self, booking, appointment_in_30h, payment, professional):
        outcome = evaluate_context(_context(booking, appointment_in_30h, payment, professional, True))
        assert outcome.kind == "no_policy"

    def test_missing_appointment_is_not_cancellable(self, booking, payment, professional):
        outcome = evaluate_context(_context(booking, None, payment, professional))
        assert outcome.kind == "not_cancellable"


class TestCancelBooking:
    @pytest.mark.asyncio
    async def test_client_cancellation(
        self, monkeypatch, fake_gateway, booking, appointment_in_30h, payment, professional
    ):
        ctx = _context(booking, appointment_in_30h, payment, professional)
        monkeypatch.setattr(booking_service, "load_cancellation_context", AsyncMock(return_value=ctx))
        fake_gateway.intents["pi_balance"] = IntentState("requires_capture", 10100)

        result = await cancel_booking(_mock_session(), 11, "client-1", "sick", fake_gateway)

        assert result.outcome.kind == "charge"
        assert result.charge_amount == 25.0
        assert result.refund_amount == 75.0
        assert result.payment_status == "partially_refunded"
        assert booking.status == "cancelled"
        assert booking.cancellation_reason == "sick"
        assert payment.refunded_amount == 75.0
        assert fake_gateway.money_calls() == [("capture", "pi_balance", 2600)]

    @pytest.mark.asyncio
    async def test_professional_cancellation(
        self, monkeypatch, fake_gateway, booking, appointment_in_30h, payment, professional
    ):
        ctx = _context(booking, appointment_in_30h, payment, professional, is_professional=True)
        monkeypatch.setattr(booking_service, "load_cancellation_context", AsyncMock(return_value=ctx))
        fake_gateway.intents["pi_balance"] = IntentState("requires_capture", 10100)

        result = await cancel_booking(_mock_session(), 11, "pro-1", "double booked", fake_gateway)

        assert result.outcome.kind == "no_policy"
        assert result.charge_amount == 0
        assert result.refund_amount == 101.0
        assert result.payment_status == "refunded"
        assert fake_gateway.money_calls() == [("cancel", "pi_balance")]

    @pytest.mark.asyncio
    async def test_balance_failure_after_deposit_refund_is_recorded(
        self, monkeypatch, fake_gateway, booking, appointment_in_30h, payment, professional
    ):
        payment.deposit_amount = 30.0
        payment.deposit_payment_intent_id = "pi_dep"
        fake_gateway.intents["pi_dep"] = IntentState("succeeded", 3000)
        fake_gateway.failing.add("pi_balance")
        ctx = _context(booking, appointment_in_30h, payment, professional)
        monkeypatch.setattr(booking_service, "load_cancellation_context", AsyncMock(return_value=ctx))
        session = _mock_session()

        result = await cancel_booking(session, 11, "client-1", "sick", fake_gateway)

        assert fake_gateway.money_calls() == [("refund", "pi_dep", 2250)]
        assert result.payment_status == "failed"
        assert result.payment_error == "Stripe error on pi_balance: card_declined"
        assert result.refund_amount == 0.0
        assert payment.status == "failed"
        assert booking.status == "cancelled"
        session.add.assert_any_call(payment)
        session.flush.assert_awaited()

        with pytest.raises(NotCancellableError, match="already cancelled"):
            await cancel_booking(session, 11, "client-1", "sick", fake_gateway)
        assert fake_gateway.money_calls() == [("refund", "pi_dep", 2250)]

    @pytest.mark.asyncio
    async def test_without_gateway_still_cancels(
        self, monkeypatch, booking, appointment_in_30h, payment, professional
    ):
        ctx = _context(booking, appointment_in_30h, payment, professional)
        monkeypatch.setattr(booking_service, "load_cancellation_context", AsyncMock(return_value=ctx))

        result = await cancel_booking(_mock_session(), 11, "client-1", "sick", None)

        assert booking.status == "cancelled"
        assert result.charge_amount == 25.0

    @pytest.mark.asyncio
    async def test_unknown_booking(self, monkeypatch):
        monkeypatch.setattr(booking_service, "load_cancellation_context", AsyncMock(return_value=None))
        with pytest.raises(BookingNotFoundError):
            await cancel_booking(_mock_session(), 99, "client-1", "sick", None)

    @pytest.mark.asyncio
    async def test_already_cancelled(self, monkeypatch, booking, appointment_in_30h, payment, professional):
        booking.status = "cancelled"
        ctx = _context(booking, appointment_in_30h, payment, professional)
        monkeypatch.setattr(booking_service, "load_cancellation_context", AsyncMock(return_value=ctx))
        with pytest.raises(NotCancellableError, match="already cancelled"):
            await cancel_booking(_mock_session(), 11, "client-1", "sick", None)

    @pytest.mark.asyncio
    async def test_started_appointment(self, monkeypatch, booking, appointment_in_30h, payment, professional):
        ctx = _context(booking, appointment_in_30h, payment, professional)
        monkeypatch.setattr(booking_service, "load_cancellation_context", AsyncMock(return_value=ctx))
        later = datetime.now(UTC) + timedelta(hours=31)
        with pytest.raises(NotCancellableError, match="already started"):
            await cancel_booking(_mock_session(), 11, "client-1", "sick", None, now=later)


class TestCreateBooking:
    @pytest.fixture
    def wired(self, monkeypatch, professional):
        service = Service(id=3, professional_profile_id=7, name="Cut", price=80.0, duration_minutes=60)
        monkeypatch.setattr(booking_service, "get_professional", AsyncMock(return_value=professional))
        monkeypatch.setattr(booking_service, "_get_services", AsyncMock(return_value=[service]))
        monkeypatch.setattr(
            booking_service,
            "get_available_slot_labels",
            AsyncMock(return_value=["9:00 AM", "9:30 AM", "10:00 AM", "11:00 AM"]),
        )
        return service

    @pytest.mark.asyncio
    async def test_books_contiguous_slots(self, wired):
        day = _next_monday()
        data = BookingCreate(
            professional_profile_id=7, service_id=3, appointment_date=day, time_slot="9:00 AM", tip_amount=10
        )

        details = await create_booking(
            _mock_session(), "client-1", data, client_email="casey@example.com", client_name="Casey"
        )

        expected_start = local_to_utc_naive(day, 9 * 60, ZoneInfo("America/New_York"))
        assert details.appointment.start_time == expected_start
        assert details.appointment.end_time == expected_start + timedelta(minutes=60)
        assert details.payment.amount == 80.0
        assert details.payment.service_fee == 1.0
        assert details.payment.balance_amount == 91.0
        assert details.booking.client_id == "client-1"
        assert details.booking.client_email == "casey@example.com"
        assert details.booking.client_name == "Casey"
        assert details.duration_minutes == 60

    @pytest.mark.asyncio
    async def test_rejects_start_before_gap(self, wired):
        data = BookingCreate(
            professional_profile_id=7, service_id=3, appointment_date=_next_monday(), time_slot="10:00 AM"
        )
        with pytest.raises(SlotUnavailableError, match="gap in availability"):
            await create_booking(_mock_session(), "client-1", data)

    @pytest.mark.asyncio
    async def test_rejects_vanished_slot(self, wired):
        data = BookingCreate(
            professional_profile_id=7, service_id=3, appointment_date=_next_monday(), time_slot="4:00 PM"
        )
        with pytest.raises(SlotUnavailableError, match="no longer available"):
            await create_booking(_mock_session(), "client-1", data)

    @pytest.mark.asyncio
    async def test_unknown_professional(self, monkeypatch):
        monkeypatch.setattr(booking_service, "get_professional", AsyncMock(return_value=None))
        data = BookingCreate(
            professional_profile_id=404, service_id=3, appointment_date=_next_monday(), time_slot="9:00 AM"
        )
        with pytest.raises(BookingNotFoundError):
            await create_booking(_mock_session(), "client-1", data)


class TestCompletePastBookings:
    @pytest.mark.asyncio
    async def test_returns_updated_count(self):
        session = _mock_session()
        session.execute = AsyncMock(return_value=MagicMock(rowcount=3))

        assert await booking_service.complete_past_bookings(session) == 3
        statement = session.execute.await_args.args[0]
        assert "UPDATE bookings" in str(statement)
        session.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_nothing_to_complete(self):
        session = _mock_session()
        session.execute = AsyncMock(return_value=MagicMock(rowcount=None))
        assert await booking_service.complete_past_bookings(session, now=datetime.now(UTC)) == 0
