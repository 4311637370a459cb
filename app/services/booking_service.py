import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from app.core.config import settings
from app.models.appointment import Appointment, Booking, BookingCreate, BookingPayment
from app.models.professional import CancellationPolicyUpdate, ProfessionalProfile
from app.models.service import Service
from app.services.cancellation_policy import (
    PolicyOutcome,
    calculate_refund_amount,
    evaluate_cancellation,
    post_cancellation_status,
    round_currency,
    rules_from_profile,
    split_cancellation_fee,
    to_cents,
)
from app.services.errors import BookingNotFoundError, NotCancellableError, PaymentError, SlotUnavailableError
from app.services.payment_gateway import PaymentGateway
from app.services.slot_engine import (
    ProcessedTimeSlots,
    process_time_slots,
    required_slots_for,
    total_duration_minutes,
)
from app.services.slot_service import (
    get_available_slot_labels,
    local_to_utc_naive,
    professional_zone,
)
from app.utils.relations import to_single

logger = logging.getLogger(__name__)


@dataclass
class BookingDetails:
    booking: Booking
    appointment: Appointment
    payment: BookingPayment
    service: Service
    professional: ProfessionalProfile
    duration_minutes: int


@dataclass
class CancellationContext:
    booking: Booking
    appointment: Appointment | None
    payment: BookingPayment | None
    professional: ProfessionalProfile | None
    is_professional: bool

    @property
    def service_amount(self) -> float:
        if not self.payment:
            return 0.0
        return round_currency(self.payment.amount + (self.payment.tip_amount or 0))


@dataclass
class CancellationResult:
    booking: Booking
    appointment: Appointment | None
    professional: ProfessionalProfile | None
    outcome: PolicyOutcome
    charge_amount: float
    refund_amount: float
    payment_status: str | None
    is_professional: bool
    payment_error: str | None = None


# --- Professionals ---


async def get_professional(session: AsyncSession, professional_id: int) -> ProfessionalProfile | None:
    return await session.get(ProfessionalProfile, professional_id)


async def get_professional_by_user(session: AsyncSession, user_id: str) -> ProfessionalProfile | None:
    result = await session.execute(select(ProfessionalProfile).where(ProfessionalProfile.user_id == user_id))
    return result.scalar_one_or_none()


async def update_cancellation_policy(
    session: AsyncSession, user_id: str, data: CancellationPolicyUpdate
) -> ProfessionalProfile | None:
    professional = await get_professional_by_user(session, user_id)
    if not professional:
        return None
    professional.cancellation_policy_enabled = data.enabled
    professional.cancellation_24h_charge_percentage = data.charge_24h_percentage
    professional.cancellation_48h_charge_percentage = data.charge_48h_percentage
    session.add(professional)
    await session.flush()
    logger.info(
        "Cancellation policy for professional %s set to enabled=%s 24h=%s 48h=%s",
        professional.id,
        data.enabled,
        data.charge_24h_percentage,
        data.charge_48h_percentage,
    )
    return professional


async def get_availability(
    session: AsyncSession,
    professional: ProfessionalProfile,
    day: date,
    duration_minutes: int,
    selected_time_slot: str | None = None,
) -> ProcessedTimeSlots:
    labels = await get_available_slot_labels(session, professional, day)
    return process_time_slots(labels, day, selected_time_slot, required_slots_for(duration_minutes))


# --- Bookings ---


async def _get_services(session: AsyncSession, professional_id: int, ids: list[int]) -> list[Service]:
    if not ids:
        return []
    result = await session.execute(
        select(Service).where(Service.id.in_(ids), Service.professional_profile_id == professional_id)
    )
    services = {s.id: s for s in result.scalars().all()}
    missing = [i for i in ids if i not in services]
    if missing:
        raise BookingNotFoundError(f"Service(s) not offered by this professional: {missing}")
    return [services[i] for i in ids]


async def create_booking(
    session: AsyncSession,
    client_id: str,
    data: BookingCreate,
    client_email: str | None = None,
    client_name: str | None = None,
) -> BookingDetails:
    professional = await get_professional(session, data.professional_profile_id)
    if not professional:
        raise BookingNotFoundError("Professional not found")
    service, *extras = await _get_services(
        session, professional.id, [data.service_id, *data.extra_service_ids]
    )

    duration = total_duration_minutes(service.duration_minutes, [e.duration_minutes for e in extras])
    processed = await get_availability(session, professional, data.appointment_date, duration, data.time_slot)
    status = processed.validation_status
    if not status.is_valid:
        raise SlotUnavailableError(status.message or "Selected time slot is not available.")
    selected = next((s for s in processed.time_slots if s.is_selected), None)
    if selected is None:
        raise SlotUnavailableError("No time slots available for this date.")
    if selected.is_disabled:
        raise SlotUnavailableError("Selected time slot does not have enough consecutive availability.")

    start = local_to_utc_naive(data.appointment_date, selected.minutes, professional_zone(professional))
    if start <= datetime.now(UTC).replace(tzinfo=None):
        raise SlotUnavailableError("Selected time slot is in the past.")

    booking = Booking(
        client_id=client_id,
        client_email=client_email,
        client_name=client_name,
        professional_profile_id=professional.id,
        service_id=service.id,
        extra_service_ids=[e.id for e in extras],
        notes=data.notes,
    )
    session.add(booking)
    await session.flush()

    appointment = Appointment(
        booking_id=booking.id,
        start_time=start,
        end_time=start + timedelta(minutes=duration),
    )
    price = round_currency(service.price + sum(e.price for e in extras))
    payment = BookingPayment(
        booking_id=booking.id,
        amount=price,
        tip_amount=data.tip_amount,
        service_fee=settings.service_fee_dollars,
        balance_amount=round_currency(price + data.tip_amount + settings.service_fee_dollars),
    )
    session.add(appointment)
    session.add(payment)
    await session.flush()
    await session.refresh(booking)
    logger.info(
        "Booking %s created for client %s with professional %s at %s (%d min)",
        booking.id,
        client_id,
        professional.id,
        start,
        duration,
    )
    return BookingDetails(booking, appointment, payment, service, professional, duration)


async def complete_past_bookings(session: AsyncSession, now: datetime | None = None) -> int:
    """Mark confirmed bookings whose appointment has ended as completed. Returns count updated."""
    cutoff = (now or datetime.now(UTC)).astimezone(UTC).replace(tzinfo=None)
    ended = select(Appointment.booking_id).where(Appointment.end_time < cutoff)
    result = await session.execute(
        update(Booking)
        .where(Booking.status == "confirmed", Booking.id.in_(ended))
        .values(status="completed")
        .execution_options(synchronize_session=False)
    )
    await session.flush()
    return result.rowcount or 0


async def list_bookings_for_client(
    session: AsyncSession, client_id: str
) -> list[tuple[Booking, Appointment | None]]:
    result = await session.execute(
        select(Booking, Appointment)
        .outerjoin(Appointment, Appointment.booking_id == Booking.id)
        .where(Booking.client_id == client_id)
        .order_by(Appointment.start_time)
    )
    return [(b, a) for b, a in result.all()]


# --- Cancellation ---


async def load_cancellation_context(
    session: AsyncSession, booking_id: int, user_id: str
) -> CancellationContext | None:
    """Booking with its appointment, payment and professional, if `user_id` may see it."""
    booking = await session.get(Booking, booking_id)
    if not booking:
        return None
    professional = await session.get(ProfessionalProfile, booking.professional_profile_id)
    is_professional = professional is not None and professional.user_id == user_id
    if booking.client_id != user_id and not is_professional:
        return None
    appointments = await session.execute(select(Appointment).where(Appointment.booking_id == booking.id))
    payments = await session.execute(select(BookingPayment).where(BookingPayment.booking_id == booking.id))
    return CancellationContext(
        booking=booking,
        appointment=to_single(list(appointments.scalars().all())),
        payment=to_single(list(payments.scalars().all())),
        professional=professional,
        is_professional=is_professional,
    )


def evaluate_context(ctx: CancellationContext, now: datetime | None = None) -> PolicyOutcome:
    # Professionals cancelling never pay a fee; the client policy only binds clients
    rules = None if ctx.is_professional else rules_from_profile(ctx.professional)
    start = ctx.appointment.start_time if ctx.appointment else ""
    return evaluate_cancellation(start, ctx.service_amount, rules, now=now)


async def preview_cancellation(
    session: AsyncSession, booking_id: int, user_id: str, now: datetime | None = None
) -> tuple[CancellationContext, PolicyOutcome] | None:
    ctx = await load_cancellation_context(session, booking_id, user_id)
    if ctx is None:
        return None
    return ctx, evaluate_context(ctx, now)


def settle_cancellation_payment(
    gateway: PaymentGateway,
    payment: BookingPayment,
    fee_cents: int,
    is_professional: bool,
    booking_id: int,
    reason: str,
) -> None:
    """Move money for a cancellation: keep `fee_cents` split across deposit and
    balance, release or refund the rest. The balance intent carries the platform
    fee, which is only returned when the professional cancels."""
    who = "Professional" if is_professional else "Client"
    deposit_cents = to_cents(payment.deposit_amount)
    service_price_cents = to_cents(payment.amount + (payment.tip_amount or 0))
    deposit_fee, balance_fee = split_cancellation_fee(fee_cents, deposit_cents, service_price_cents)
    kept = balance_fee if is_professional else balance_fee + to_cents(payment.service_fee)
    metadata = {"booking_id": str(booking_id), "reason": f"{who} cancellation: {reason}"}

    if payment.deposit_payment_intent_id and deposit_cents > 0:
        deposit = gateway.retrieve(payment.deposit_payment_intent_id)
        if deposit.status == "succeeded":
            refund_cents = deposit_cents - deposit_fee
            if refund_cents > 0:
                gateway.refund(payment.deposit_payment_intent_id, refund_cents, metadata)
        elif deposit.status == "requires_capture":
            if deposit_fee > 0:
                gateway.capture(payment.deposit_payment_intent_id, deposit_fee)
            else:
                gateway.cancel(payment.deposit_payment_intent_id)

    if not payment.stripe_payment_intent_id:
        return
    balance = gateway.retrieve(payment.stripe_payment_intent_id)
    if balance.status == "requires_capture":
        if 0 < kept < balance.amount:
            gateway.capture(payment.stripe_payment_intent_id, kept)
        elif kept >= balance.amount > 0:
            gateway.capture(payment.stripe_payment_intent_id)
        else:
            gateway.cancel(payment.stripe_payment_intent_id)
    elif balance.status == "succeeded":
        refund_cents = balance.amount - kept
        if refund_cents > 0:
            gateway.refund(payment.stripe_payment_intent_id, refund_cents, metadata)
    else:
        logger.info("Balance payment %s in status %s, nothing to do", payment.stripe_payment_intent_id, balance.status)


async def cancel_booking(
    session: AsyncSession,
    booking_id: int,
    user_id: str,
    reason: str,
    gateway: PaymentGateway | None,
    now: datetime | None = None,
) -> CancellationResult:
    ctx = await load_cancellation_context(session, booking_id, user_id)
    if ctx is None:
        raise BookingNotFoundError("Booking not found or not yours")
    if ctx.booking.status == "cancelled":
        raise NotCancellableError("Booking is already cancelled.")
    outcome = evaluate_context(ctx, now)
    if outcome.kind == "not_cancellable":
        raise NotCancellableError(outcome.reason or "Booking can no longer be cancelled.")

    charge_amount = outcome.charge_amount
    payment_status = None
    payment_error = None
    refund_amount = 0.0
    if ctx.payment:
        has_intents = bool(ctx.payment.stripe_payment_intent_id or ctx.payment.deposit_payment_intent_id)
        if has_intents and gateway is not None:
            try:
                await run_in_threadpool(
                    settle_cancellation_payment,
                    gateway,
                    ctx.payment,
                    to_cents(charge_amount),
                    ctx.is_professional,
                    ctx.booking.id,
                    reason,
                )
            except PaymentError as e:
                # intents settled before the failure stay settled; the booking is cancelled regardless
                logger.exception("Settling payment for booking %s failed: %s", booking_id, e)
                payment_error = str(e)
        elif has_intents:
            logger.warning("Payments disabled; booking %s cancelled without settling Stripe intents", booking_id)
        if payment_error is None:
            refund_amount = calculate_refund_amount(
                total_paid=ctx.payment.amount + (ctx.payment.tip_amount or 0) + (ctx.payment.service_fee or 0),
                service_fee=ctx.payment.service_fee or 0,
                charge_amount=charge_amount,
                is_professional=ctx.is_professional,
            )
            ctx.payment.refunded_amount = refund_amount
        payment_status = post_cancellation_status(
            charge_amount, failed=payment_error is not None, refunded=has_intents
        )
        ctx.payment.status = payment_status
        session.add(ctx.payment)

    ctx.booking.status = "cancelled"
    ctx.booking.cancellation_reason = reason
    session.add(ctx.booking)
    await session.flush()
    logger.info(
        "Booking %s cancelled by %s (%s): policy=%s charge=%.2f refund=%.2f",
        booking_id,
        "professional" if ctx.is_professional else "client",
        user_id,
        outcome.kind,
        charge_amount,
        refund_amount,
    )
    return CancellationResult(
        booking=ctx.booking,
        appointment=ctx.appointment,
        professional=ctx.professional,
        outcome=outcome,
        charge_amount=charge_amount,
        refund_amount=refund_amount,
        payment_status=payment_status,
        is_professional=ctx.is_professional,
        payment_error=payment_error,
    )
