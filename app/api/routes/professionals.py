from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import AuthUser, get_current_user, get_session
from app.api.schemas.slots import AvailableDaysResponse, ProcessedSlotsResponse
from app.models.professional import CancellationPolicyUpdate, ProfessionalPolicyPublic
from app.services.booking_service import get_availability, get_professional, update_cancellation_policy
from app.services.slot_engine import required_slots_for
from app.services.slot_service import get_available_days

router = APIRouter(prefix="/professionals", tags=["professionals"])


@router.put("/me/cancellation-policy", response_model=ProfessionalPolicyPublic)
async def set_cancellation_policy(
    body: CancellationPolicyUpdate,
    session: AsyncSession = Depends(get_session),
    current_user: AuthUser = Depends(get_current_user),
) -> ProfessionalPolicyPublic:
    professional = await update_cancellation_policy(session, current_user.id, body)
    if not professional:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No professional profile for this account",
        )
    return ProfessionalPolicyPublic.model_validate(professional, from_attributes=True)


@router.get("/{professional_id}/available-days", response_model=AvailableDaysResponse)
async def available_days(
    professional_id: int,
    session: AsyncSession = Depends(get_session),
) -> AvailableDaysResponse:
    professional = await get_professional(session, professional_id)
    if not professional:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Professional not found")
    return AvailableDaysResponse(
        professional_id=professional_id,
        timezone=professional.timezone,
        days=get_available_days(professional),
    )


@router.get("/{professional_id}/availability", response_model=ProcessedSlotsResponse)
async def availability(
    professional_id: int,
    date_param: date = Query(..., alias="date"),
    duration_minutes: int = Query(30, gt=0),
    selected: str | None = Query(None),
    session: AsyncSession = Depends(get_session),
) -> ProcessedSlotsResponse:
    """Slots for the professional's day in their local time, annotated for a service of `duration_minutes`."""
    professional = await get_professional(session, professional_id)
    if not professional:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Professional not found")
    processed = await get_availability(session, professional, date_param, duration_minutes, selected)
    return ProcessedSlotsResponse.from_processed(processed, required_slots_for(duration_minutes))
