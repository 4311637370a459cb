from fastapi import APIRouter

from app.api.schemas.slots import EvaluateSlotsRequest, ProcessedSlotsResponse
from app.services.slot_engine import process_time_slots

router = APIRouter(prefix="/slots", tags=["slots"])


@router.post("/evaluate", response_model=ProcessedSlotsResponse)
async def evaluate_slots(body: EvaluateSlotsRequest) -> ProcessedSlotsResponse:
    """Annotate a day's slot labels for a service and validate the selected start."""
    required = body.resolved_required_slots()
    processed = process_time_slots(
        body.available_time_slots,
        body.selected_date,
        body.selected_time_slot,
        required,
    )
    return ProcessedSlotsResponse.from_processed(processed, required)
