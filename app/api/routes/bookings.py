import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import AuthUser, get_current_user, get_session, payment_gateway
from app.api.schemas.booking import (
    CancelBookingRequest,
    CancellationPreviewResponse,
    CancellationResponse,
    ChargeInfoOut,
)
from app.models.appointment import Appointment, Booking, BookingCreate, BookingPublic
from app.services.booking_service import (
    cancel_booking,
    create_booking,
    list_bookings_for_client,
    preview_cancellation,
)
from app.services.email_service import send_booking_confirmation_email, send_cancellation_email
from app.services.payment_gateway import PaymentGateway
from app.services.slot_service import professional_zone, utc_naive_to_local

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/bookings", tags=["bookings"])


def _to_public(b: Booking, a: Appointment | None) -> BookingPublic:
    return BookingPublic(
        id=int(b.id) if b.id is not None else 0,
        client_id=b.client_id,
        professional_profile_id=b.professional_profile_id,
        service_id=b.service_id,
        status=b.status,
        start_time=a.start_time if a else None,
        end_time=a.end_time if a else None,
        notes=b.notes,
        cancellation_reason=b.cancellation_reason,
        created_at=b.created_at,
    )


@router.post("", response_model=BookingPublic, status_code=status.HTTP_201_CREATED)
async def book(
    body: BookingCreate,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
    current_user: AuthUser = Depends(get_current_user),
) -> BookingPublic:
    details = await create_booking(
        session, current_user.id, body, client_email=current_user.email, client_name=current_user.full_name
    )
    if current_user.email:
        background_tasks.add_task(
            send_booking_confirmation_email,
            to_email=current_user.email,
            recipient_name=current_user.full_name,
            professional_name=details.professional.display_name,
            service_name=details.service.name,
            start_local=utc_naive_to_local(details.appointment.start_time, professional_zone(details.professional)),
            duration_minutes=details.duration_minutes,
        )
    else:
        logger.info("No email on token for user %s, skipping confirmation for booking %s", current_user.id, details.booking.id)
    return _to_public(details.booking, details.appointment)


@router.get("", response_model=list[BookingPublic])
async def list_my_bookings(
    session: AsyncSession = Depends(get_session),
    current_user: AuthUser = Depends(get_current_user),
) -> list[BookingPublic]:
    rows = await list_bookings_for_client(session, current_user.id)
    return [_to_public(b, a) for b, a in rows]


@router.get("/{booking_id}/cancellation-charge", response_model=CancellationPreviewResponse)
async def cancellation_charge(
    booking_id: int,
    session: AsyncSession = Depends(get_session),
    current_user: AuthUser = Depends(get_current_user),
) -> CancellationPreviewResponse:
    """What cancelling now would cost. `policy` tells apart no policy, a (possibly 0%) charge,
    and bookings that can no longer be cancelled."""
    preview = await preview_cancellation(session, booking_id, current_user.id)
    if preview is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found or not yours")
    ctx, outcome = preview
    charge = None
    if outcome.charge:
        charge = ChargeInfoOut(
            percentage=outcome.charge.percentage,
            amount=outcome.charge.amount,
            time_until_appointment=outcome.charge.time_until_appointment,
        )
    return CancellationPreviewResponse(
        booking_id=booking_id,
        policy=outcome.kind,
        charge=charge,
        reason=outcome.reason,
        is_professional=ctx.is_professional,
    )


@router.post("/{booking_id}/cancel", response_model=CancellationResponse)
async def cancel(
    booking_id: int,
    body: CancelBookingRequest,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
    current_user: AuthUser = Depends(get_current_user),
    gateway: PaymentGateway | None = Depends(payment_gateway),
) -> CancellationResponse:
    result = await cancel_booking(session, booking_id, current_user.id, body.reason, gateway)
    appointment = result.appointment
    booking = result.booking
    client_email = booking.client_email or (None if result.is_professional else current_user.email)
    client_name = booking.client_name or (None if result.is_professional else current_user.full_name)
    if client_email and appointment and result.professional:
        background_tasks.add_task(
            send_cancellation_email,
            to_email=client_email,
            recipient_name=client_name,
            start_local=utc_naive_to_local(appointment.start_time, professional_zone(result.professional)),
            charge_amount=result.charge_amount,
            refund_amount=result.refund_amount,
            reason=body.reason,
            cancelled_by_professional=result.is_professional,
        )
    elif not client_email:
        logger.info("No client email on booking %s, skipping cancellation notice", booking_id)
    return CancellationResponse(
        booking=_to_public(result.booking, appointment),
        policy=result.outcome.kind,
        charge_amount=result.charge_amount,
        refund_amount=result.refund_amount,
        payment_status=result.payment_status,
        payment_error=result.payment_error,
    )
